# store.py
"""
Persistence provider backed by Flask-SQLAlchemy.

Rows in ``models`` are mapped to and from the records in ``domain``. Reads
assemble whole aggregates (a cycle with its sales and advances, a settlement
with its details). Writes only flush; nothing is committed until the
enclosing ``transaction()`` block exits cleanly.
"""
import logging
from contextlib import contextmanager
from dataclasses import replace

from flask import current_app
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

import domain
import models
from errors import InvalidStateError, NotFoundError
from models import db
from money import Money, Quantity
from utils import datetime_end_of, datetime_start_of

logger = logging.getLogger(__name__)


def current_store():
    """Store bound to the request's session."""
    return SqlStore()


def current_clock():
    return current_app.config["CLOCK"]


class SqlStore:
    def __init__(self, session=None, currency="INR"):
        self.session = session or db.session
        self.currency = currency

    @contextmanager
    def transaction(self):
        """Commit everything written inside the block, or roll all of it back."""
        try:
            yield self
            self.session.commit()
        except IntegrityError as e:
            # a concurrent writer got there first (duplicate code, second settlement)
            self.session.rollback()
            logger.warning(f"Transaction rolled back on constraint: {e.orig}")
            raise InvalidStateError("The record was changed by another request. Reload and try again.") from e
        except Exception as e:
            self.session.rollback()
            logger.error(f"Transaction rolled back: {e}")
            raise

    def _money(self, value):
        return Money(value if value is not None else 0, self.currency)

    def _get_row(self, model, row_id, label, for_update=False):
        # for_update re-reads the row inside the current transaction, bypassing the identity map
        options = {"with_for_update": True, "populate_existing": True} if for_update else {}
        row = self.session.get(model, row_id, **options) if row_id is not None else None
        if row is None:
            raise NotFoundError(f"{label} {row_id} not found")
        return row

    @staticmethod
    def _copy_audit(row, record):
        row.created_at = record.created_at
        row.created_by = record.created_by
        row.updated_at = record.updated_at
        row.updated_by = record.updated_by

    @staticmethod
    def _audit(row):
        return dict(created_at=row.created_at, created_by=row.created_by,
                    updated_at=row.updated_at, updated_by=row.updated_by)

    # ------------------------------------------------------------------
    # Customers
    # ------------------------------------------------------------------

    def _customer(self, row):
        return domain.Customer(
            id=row.id, code=row.code, name=row.name, phone=row.phone, address=row.address,
            village=row.village, is_active=row.is_active, **self._audit(row),
        )

    def get_customer(self, customer_id):
        return self._customer(self._get_row(models.Customer, customer_id, "Customer"))

    def find_customer_by_code(self, code):
        row = models.Customer.query.filter_by(code=(code or "").strip().upper()).first()
        return self._customer(row) if row else None

    def customer_code_exists(self, code):
        return self.find_customer_by_code(code) is not None

    def list_customers(self, active_only=False, search=None):
        q = models.Customer.query
        if active_only:
            q = q.filter(models.Customer.is_active.is_(True))
        if search:
            q = q.filter(models.Customer.name.ilike(f"%{search.strip()}%"))
        return [self._customer(r) for r in q.order_by(models.Customer.name).all()]

    def count_customers(self, active_only=True):
        q = models.Customer.query
        if active_only:
            q = q.filter(models.Customer.is_active.is_(True))
        return q.count()

    def save_customer(self, customer):
        row = self._get_row(models.Customer, customer.id, "Customer") if customer.id else models.Customer()
        row.code = customer.code
        row.name = customer.name
        row.phone = customer.phone
        row.address = customer.address
        row.village = customer.village
        row.is_active = customer.is_active
        self._copy_audit(row, customer)
        self.session.add(row)
        self.session.flush()
        return replace(customer, id=row.id)

    # ------------------------------------------------------------------
    # Products and purchases
    # ------------------------------------------------------------------

    def _product(self, row):
        return domain.Product(
            id=row.id, code=row.code, name=row.name, description=row.description, unit=row.unit,
            unit_price=self._money(row.unit_price),
            current_stock=Quantity(row.current_stock, row.unit),
            reorder_level=Quantity(row.reorder_level, row.unit),
            is_active=row.is_active, **self._audit(row),
        )

    def get_product(self, product_id, for_update=False):
        return self._product(self._get_row(models.Product, product_id, "Product", for_update))

    def find_product_by_code(self, code):
        row = models.Product.query.filter_by(code=(code or "").strip().upper()).first()
        return self._product(row) if row else None

    def product_code_exists(self, code):
        return self.find_product_by_code(code) is not None

    def list_products(self, active_only=False):
        q = models.Product.query
        if active_only:
            q = q.filter(models.Product.is_active.is_(True))
        return [self._product(r) for r in q.order_by(models.Product.name).all()]

    def product_names(self, product_ids):
        ids = set(product_ids)
        if not ids:
            return {}
        rows = self.session.query(models.Product.id, models.Product.name).filter(models.Product.id.in_(ids))
        return {pid: name for pid, name in rows}

    def save_product(self, product):
        row = self._get_row(models.Product, product.id, "Product") if product.id else models.Product()
        row.code = product.code
        row.name = product.name
        row.description = product.description
        row.unit = product.unit
        row.unit_price = product.unit_price.amount
        row.current_stock = product.current_stock.value
        row.reorder_level = product.reorder_level.value
        row.is_active = product.is_active
        self._copy_audit(row, product)
        self.session.add(row)
        self.session.flush()
        return replace(product, id=row.id)

    def add_purchase(self, purchase):
        row = models.ProductPurchase(
            product_id=purchase.product_id,
            purchase_date=purchase.purchase_date,
            quantity=purchase.quantity.value,
            unit=purchase.quantity.unit,
            unit_price=purchase.unit_price.amount,
            total_amount=purchase.total_amount.amount,
            supplier_name=purchase.supplier_name,
            invoice_number=purchase.invoice_number,
            notes=purchase.notes,
            created_at=purchase.created_at,
            created_by=purchase.created_by,
        )
        self.session.add(row)
        self.session.flush()
        return replace(purchase, id=row.id)

    # ------------------------------------------------------------------
    # Milk cycles, sales and advances
    # ------------------------------------------------------------------

    def _sale(self, row):
        return domain.ProductSale(
            id=row.id, customer_id=row.customer_id, product_id=row.product_id, cycle_id=row.cycle_id,
            sale_date=row.sale_date, quantity=Quantity(row.quantity, row.unit),
            unit_price=self._money(row.unit_price), total_amount=self._money(row.total_amount),
            notes=row.notes, created_by=row.created_by, created_at=row.created_at,
        )

    def _advance(self, row):
        return domain.AdvancePayment(
            id=row.id, customer_id=row.customer_id, cycle_id=row.cycle_id,
            payment_date=row.payment_date, amount=self._money(row.amount),
            payment_mode=domain.PaymentMode.parse(row.payment_mode),
            reference_number=row.reference_number, notes=row.notes,
            created_by=row.created_by, created_at=row.created_at,
        )

    def _cycle(self, row, with_details=True):
        cycle = domain.MilkCycle(
            id=row.id, customer_id=row.customer_id, start_date=row.start_date, end_date=row.end_date,
            total_milk_amount=self._money(row.total_milk_amount), is_settled=row.is_settled,
            settlement_date=row.settlement_date, notes=row.notes, **self._audit(row),
        )
        if with_details:
            cycle.product_sales = tuple(self._sale(s) for s in row.sales)
            cycle.advance_payments = tuple(self._advance(a) for a in row.advances)
        return cycle

    def get_cycle(self, cycle_id, with_details=True):
        return self._cycle(self._get_row(models.MilkCycle, cycle_id, "Milk cycle"), with_details)

    def list_cycles(self, customer_id=None, unsettled_only=False, start=None, end=None):
        q = models.MilkCycle.query
        if customer_id is not None:
            q = q.filter(models.MilkCycle.customer_id == customer_id)
        if unsettled_only:
            q = q.filter(models.MilkCycle.is_settled.is_(False))
        if start is not None:
            q = q.filter(models.MilkCycle.start_date >= start)
        if end is not None:
            q = q.filter(models.MilkCycle.end_date <= end)
        rows = q.order_by(models.MilkCycle.start_date.desc(), models.MilkCycle.id.desc()).all()
        return [self._cycle(r, with_details=False) for r in rows]

    def count_cycles(self, unsettled_only=True):
        q = models.MilkCycle.query
        if unsettled_only:
            q = q.filter(models.MilkCycle.is_settled.is_(False))
        return q.count()

    def save_cycle(self, cycle):
        """Write the cycle's own fields. Sales and advances are added separately."""
        row = self._get_row(models.MilkCycle, cycle.id, "Milk cycle") if cycle.id else models.MilkCycle()
        row.customer_id = cycle.customer_id
        row.start_date = cycle.start_date
        row.end_date = cycle.end_date
        row.total_milk_amount = cycle.total_milk_amount.amount
        row.is_settled = cycle.is_settled
        row.settlement_date = cycle.settlement_date
        row.notes = cycle.notes
        self._copy_audit(row, cycle)
        self.session.add(row)
        self.session.flush()
        return replace(cycle, id=row.id)

    def add_sale(self, sale):
        row = models.ProductSale(
            customer_id=sale.customer_id,
            product_id=sale.product_id,
            cycle_id=sale.cycle_id,
            sale_date=sale.sale_date,
            quantity=sale.quantity.value,
            unit=sale.quantity.unit,
            unit_price=sale.unit_price.amount,
            total_amount=sale.total_amount.amount,
            notes=sale.notes,
            created_at=sale.created_at,
            created_by=sale.created_by,
        )
        self.session.add(row)
        self.session.flush()
        return replace(sale, id=row.id)

    def add_advance(self, advance):
        row = models.AdvancePayment(
            customer_id=advance.customer_id,
            cycle_id=advance.cycle_id,
            payment_date=advance.payment_date,
            amount=advance.amount.amount,
            payment_mode=advance.payment_mode.value,
            reference_number=advance.reference_number,
            notes=advance.notes,
            created_at=advance.created_at,
            created_by=advance.created_by,
        )
        self.session.add(row)
        self.session.flush()
        return replace(advance, id=row.id)

    # ------------------------------------------------------------------
    # Settlements
    # ------------------------------------------------------------------

    def _detail(self, row):
        return domain.SettlementDetail(
            id=row.id, settlement_id=row.settlement_id,
            detail_type=domain.SettlementDetailType(row.detail_type),
            reference_id=row.reference_id, description=row.description,
            amount=self._money(row.amount), transaction_date=row.transaction_date,
        )

    def _settlement(self, row, with_details=True):
        settlement = domain.Settlement(
            id=row.id, customer_id=row.customer_id, cycle_id=row.cycle_id,
            settlement_date=row.settlement_date,
            milk_amount=self._money(row.milk_amount),
            total_product_sales=self._money(row.total_product_sales),
            total_advance_paid=self._money(row.total_advance_paid),
            final_payable=self._money(row.final_payable),
            payment_mode=domain.PaymentMode.parse(row.payment_mode),
            payment_reference=row.payment_reference, payment_date=row.payment_date,
            is_paid=row.is_paid, notes=row.notes, **self._audit(row),
        )
        if with_details:
            settlement.details = tuple(self._detail(d) for d in row.details)
        return settlement

    def get_settlement(self, settlement_id, with_details=True):
        return self._settlement(self._get_row(models.Settlement, settlement_id, "Settlement"), with_details)

    def find_settlement_by_cycle(self, cycle_id):
        row = models.Settlement.query.filter_by(cycle_id=cycle_id).first()
        return self._settlement(row) if row else None

    def list_settlements(self, customer_id=None, unpaid_only=False, start=None, end=None):
        q = models.Settlement.query
        if customer_id is not None:
            q = q.filter(models.Settlement.customer_id == customer_id)
        if unpaid_only:
            q = q.filter(models.Settlement.is_paid.is_(False))
        if start is not None:
            q = q.filter(models.Settlement.settlement_date >= datetime_start_of(start))
        if end is not None:
            q = q.filter(models.Settlement.settlement_date <= datetime_end_of(end))
        rows = q.order_by(models.Settlement.settlement_date.desc(), models.Settlement.id.desc()).all()
        return [self._settlement(r) for r in rows]

    def count_settlements(self, unpaid_only=True):
        q = self.session.query(func.count(models.Settlement.id))
        if unpaid_only:
            q = q.filter(models.Settlement.is_paid.is_(False))
        return q.scalar() or 0

    def add_settlement(self, settlement):
        row = models.Settlement(
            customer_id=settlement.customer_id,
            cycle_id=settlement.cycle_id,
            settlement_date=settlement.settlement_date,
            milk_amount=settlement.milk_amount.amount,
            total_product_sales=settlement.total_product_sales.amount,
            total_advance_paid=settlement.total_advance_paid.amount,
            final_payable=settlement.final_payable.amount,
            payment_mode=settlement.payment_mode.value,
            payment_reference=settlement.payment_reference,
            payment_date=settlement.payment_date,
            is_paid=settlement.is_paid,
            notes=settlement.notes,
        )
        self._copy_audit(row, settlement)
        for detail in settlement.details:
            row.details.append(models.SettlementDetail(
                detail_type=detail.detail_type.value,
                reference_id=detail.reference_id,
                description=detail.description,
                amount=detail.amount.amount,
                transaction_date=detail.transaction_date,
            ))
        self.session.add(row)
        self.session.flush()
        return self._settlement(row)

    def save_settlement_payment(self, settlement):
        """Flip an unpaid settlement to paid. Only the payment fields may change.

        The update is conditional on the row still being unpaid, so a second
        writer working from a stale copy is rejected instead of overwriting.
        """
        self._get_row(models.Settlement, settlement.id, "Settlement")
        changed = models.Settlement.query.filter(
            models.Settlement.id == settlement.id,
            models.Settlement.is_paid.is_(False),
        ).update({
            models.Settlement.is_paid: True,
            models.Settlement.payment_date: settlement.payment_date,
            models.Settlement.payment_reference: settlement.payment_reference,
            models.Settlement.updated_at: settlement.updated_at,
            models.Settlement.updated_by: settlement.updated_by,
        }, synchronize_session=False)
        if changed != 1:
            raise InvalidStateError("Settlement is already marked as paid")
        return self._settlement(self._get_row(models.Settlement, settlement.id, "Settlement", for_update=True))
