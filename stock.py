# stock.py
"""
Stock ledger.

A product's on-hand quantity only moves through a purchase (in) or a sale
to a customer (out). The ledger functions below mutate the product in
place; StockService writes the new stock and the purchase/sale row that
caused it in a single transaction, re-reading the product inside that
transaction so concurrent movements add up instead of overwriting each other.
"""
import logging

from cycles import cycle_lock, product_lock
from domain import ProductPurchase, ProductSale
from errors import InsufficientStockError, InvalidStateError, NotFoundError, ValidationError
from money import QUANTITY_PLACES, Quantity, check_places
from utils import to_decimal, utc_now

logger = logging.getLogger(__name__)


def _quantity_for(product, quantity, label="Quantity"):
    if isinstance(quantity, Quantity):
        if quantity.unit != product.unit:
            raise ValidationError(f"Cannot apply {quantity.unit} to a product stocked in {product.unit}")
        value = quantity.value
    else:
        value = to_decimal(quantity, label)
    if value <= 0:
        raise ValidationError(f"{label} must be positive")
    check_places(value, QUANTITY_PLACES, label)
    return Quantity(value, product.unit)


def increase_stock(product, quantity):
    qty = _quantity_for(product, quantity)
    product.current_stock = product.current_stock + qty
    return product.current_stock


def decrease_stock(product, quantity):
    qty = _quantity_for(product, quantity)
    if not product.current_stock.is_sufficient_for(qty):
        raise InsufficientStockError(product.current_stock.value, qty.value, product.unit)
    product.current_stock = product.current_stock - qty
    return product.current_stock


def has_sufficient_stock(product, required):
    if isinstance(required, Quantity):
        return product.current_stock.is_sufficient_for(required)
    return product.current_stock.value >= to_decimal(required, "Required quantity")


class StockService:
    def __init__(self, store, clock=utc_now):
        self.store = store
        self.clock = clock

    def _move_stock(self, product_id, quantity, username, now, outgoing=False):
        # re-read inside the open transaction so the movement applies to the
        # committed stock, not to the copy read before the transaction began
        product = self.store.get_product(product_id, for_update=True)
        if outgoing:
            decrease_stock(product, quantity)
        else:
            increase_stock(product, quantity)
        product.stamp_updated(username, now)
        return self.store.save_product(product)

    def record_purchase(self, product_id, quantity, unit_price, username,
                        supplier_name=None, invoice_number=None, notes=None, purchase_date=None):
        with product_lock(product_id):
            product = self.store.get_product(product_id)
            now = self.clock()
            purchase = ProductPurchase.create(product.id, quantity, product.unit, unit_price, username,
                                              supplier_name=supplier_name, invoice_number=invoice_number,
                                              notes=notes, purchase_date=purchase_date, now=now)
            with self.store.transaction():
                purchase = self.store.add_purchase(purchase)
                product = self._move_stock(product.id, purchase.quantity, username, now)
        logger.info(f"Purchase {purchase.id}: {purchase.quantity} of {product.code}, stock now {product.current_stock}")
        return purchase

    def record_sale(self, cycle_id, customer_id, product_id, quantity, username,
                    unit_price=None, notes=None, sale_date=None):
        with cycle_lock(cycle_id), product_lock(product_id):
            product = self.store.get_product(product_id)
            cycle = self.store.get_cycle(cycle_id, with_details=False)
            if not product.is_active:
                raise InvalidStateError(f"Product {product.code} is inactive")
            if unit_price in (None, ""):
                unit_price = product.unit_price
            now = self.clock()
            sale = ProductSale.create(customer_id, product.id, cycle.id, quantity, product.unit, unit_price,
                                      username, notes=notes, sale_date=sale_date, now=now)
            cycle.record_product_sale(sale)
            if not has_sufficient_stock(product, sale.quantity):
                raise InsufficientStockError(product.current_stock.value, sale.quantity.value, product.unit)
            with self.store.transaction():
                sale = self.store.add_sale(sale)
                product = self._move_stock(product.id, sale.quantity, username, now, outgoing=True)
        logger.info(f"Sale {sale.id}: {sale.quantity} of {product.code} on cycle {cycle_id} ({sale.total_amount})")
        return sale

    def current_stock(self, product_id):
        return self.store.get_product(product_id).current_stock

    def check_stock_availability(self, product_id, required_quantity):
        try:
            product = self.store.get_product(product_id)
        except NotFoundError:
            return False
        return has_sufficient_stock(product, required_quantity)

    def products_needing_reorder(self):
        return [p for p in self.store.list_products(active_only=True) if p.needs_reorder()]
