# registry.py
"""Customer and product master records."""
import logging

from domain import Customer, Product
from errors import ValidationError
from utils import utc_now

logger = logging.getLogger(__name__)


class CustomerService:
    def __init__(self, store, clock=utc_now):
        self.store = store
        self.clock = clock

    def create_customer(self, code, name, username, phone=None, address=None, village=None):
        customer = Customer.create(code, name, username, phone=phone, address=address,
                                   village=village, now=self.clock())
        if self.store.customer_code_exists(customer.code):
            raise ValidationError(f"Customer code '{customer.code}' already exists")
        with self.store.transaction():
            customer = self.store.save_customer(customer)
        logger.info(f"Customer {customer.code} created by {customer.created_by}")
        return customer

    def update_customer(self, customer_id, name, username, phone=None, address=None, village=None):
        customer = self.store.get_customer(customer_id)
        customer.update(name, username, phone=phone, address=address, village=village, now=self.clock())
        with self.store.transaction():
            return self.store.save_customer(customer)

    def activate_customer(self, customer_id, username):
        customer = self.store.get_customer(customer_id)
        customer.activate(username, now=self.clock())
        with self.store.transaction():
            return self.store.save_customer(customer)

    def deactivate_customer(self, customer_id, username):
        customer = self.store.get_customer(customer_id)
        customer.deactivate(username, now=self.clock())
        with self.store.transaction():
            customer = self.store.save_customer(customer)
        logger.info(f"Customer {customer.code} deactivated by {customer.updated_by}")
        return customer

    def get_customer(self, customer_id):
        return self.store.get_customer(customer_id)

    def get_customer_by_code(self, code):
        return self.store.find_customer_by_code(code)

    def list_customers(self, active_only=False):
        return self.store.list_customers(active_only=active_only)

    def search_customers(self, term):
        return self.store.list_customers(search=term)

    def customer_code_exists(self, code):
        return self.store.customer_code_exists(code)


class ProductService:
    def __init__(self, store, clock=utc_now):
        self.store = store
        self.clock = clock

    def create_product(self, code, name, unit, unit_price, reorder_level, username, description=None):
        product = Product.create(code, name, unit, unit_price, reorder_level, username,
                                 description=description, now=self.clock())
        if self.store.product_code_exists(product.code):
            raise ValidationError(f"Product code '{product.code}' already exists")
        with self.store.transaction():
            product = self.store.save_product(product)
        logger.info(f"Product {product.code} created by {product.created_by}")
        return product

    def update_product(self, product_id, name, unit_price, reorder_level, username, description=None):
        product = self.store.get_product(product_id)
        product.update(name, unit_price, reorder_level, username, description=description, now=self.clock())
        with self.store.transaction():
            return self.store.save_product(product)

    def activate_product(self, product_id, username):
        product = self.store.get_product(product_id)
        product.activate(username, now=self.clock())
        with self.store.transaction():
            return self.store.save_product(product)

    def deactivate_product(self, product_id, username):
        product = self.store.get_product(product_id)
        product.deactivate(username, now=self.clock())
        with self.store.transaction():
            return self.store.save_product(product)

    def get_product(self, product_id):
        return self.store.get_product(product_id)

    def get_product_by_code(self, code):
        return self.store.find_product_by_code(code)

    def list_products(self, active_only=False):
        return self.store.list_products(active_only=active_only)

    def products_by_stock_status(self, status):
        return [p for p in self.store.list_products(active_only=True) if p.stock_status() == status]

    def product_code_exists(self, code):
        return self.store.product_code_exists(code)
