# domain.py
"""
Domain records for the milk settlement ledger.

Aggregates (Customer, Product, MilkCycle, Settlement) change only through
their own methods, each of which takes the acting username and stamps the
audit fields itself. Line items (purchases, sales, advances, settlement
details) are frozen once created. Parents are referenced by id only;
children are held by value as tuples.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum

from errors import ConsistencyError, InvalidStateError, ValidationError
from money import (DEFAULT_CURRENCY, MONEY_PLACES, QUANTITY_PLACES, DateRange, Money, Quantity,
                   check_places, round_money)
from utils import as_datetime, datetime_start_of, require_text, require_username, to_decimal, utc_now

CODE_MAX_LENGTH = 20
NAME_MAX_LENGTH = 200
SETTLEMENT_TOLERANCE = Decimal("0.01")
# business rule: "medium" stock is anything up to 1.5x the reorder level
MEDIUM_STOCK_FACTOR = Decimal("1.5")


class PaymentMode(str, Enum):
    CASH = "Cash"
    BANK_TRANSFER = "BankTransfer"
    CHEQUE = "Cheque"
    UPI = "UPI"

    @classmethod
    def parse(cls, value):
        """Accepts 'Cash', 'CASH', 'bank transfer', 'bank_transfer', 'BankTransfer'..."""
        if isinstance(value, cls):
            return value
        key = "".join(ch for ch in str(value or "") if ch.isalnum()).lower()
        for mode in cls:
            if key and key in (mode.name.replace("_", "").lower(), mode.value.lower()):
                return mode
        raise ValidationError(f"Invalid payment mode: {value}")


class SettlementDetailType(str, Enum):
    MILK = "Milk"
    PRODUCT_SALE = "ProductSale"
    ADVANCE = "Advance"


class StockStatus(str, Enum):
    OUT_OF_STOCK = "OutOfStock"
    LOW_STOCK = "LowStock"
    MEDIUM_STOCK = "MediumStock"
    GOOD_STOCK = "GoodStock"


def _optional_text(value):
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def _non_negative_money(value, label):
    currency = value.currency if isinstance(value, Money) else DEFAULT_CURRENCY
    amount = to_decimal(value.amount if isinstance(value, Money) else value, label)
    if amount < 0:
        raise ValidationError(f"{label} cannot be negative")
    check_places(amount, MONEY_PLACES, label)
    return Money(amount, currency)


def _positive_quantity(value, unit, label="Quantity"):
    amount = to_decimal(value.value if isinstance(value, Quantity) else value, label)
    if amount <= 0:
        raise ValidationError(f"{label} must be positive")
    check_places(amount, QUANTITY_PLACES, label)
    if not unit or not str(unit).strip():
        raise ValidationError("Unit is required")
    return Quantity(amount, unit)


def _non_negative_quantity(value, unit, label):
    amount = to_decimal(value.value if isinstance(value, Quantity) else value, label)
    if amount < 0:
        raise ValidationError(f"{label} cannot be negative")
    check_places(amount, QUANTITY_PLACES, label)
    return Quantity(amount, unit)


def _line_total(quantity: Quantity, unit_price: Money):
    return Money(round_money(quantity.value * unit_price.amount), unit_price.currency)


@dataclass(kw_only=True)
class Audited:
    created_at: datetime | None = None
    created_by: str | None = None
    updated_at: datetime | None = None
    updated_by: str | None = None

    def stamp_created(self, username, now=None):
        self.created_by = require_username(username)
        self.created_at = now or utc_now()
        self.updated_by = self.created_by
        self.updated_at = self.created_at

    def stamp_updated(self, username, now=None):
        self.updated_by = require_username(username)
        self.updated_at = now or utc_now()


# ---------------------------------------------------------------------------
# Master records
# ---------------------------------------------------------------------------

@dataclass
class Customer(Audited):
    code: str
    name: str
    id: int | None = None
    phone: str | None = None
    address: str | None = None
    village: str | None = None
    is_active: bool = True

    @classmethod
    def create(cls, code, name, username, phone=None, address=None, village=None, now=None):
        username = require_username(username)
        customer = cls(
            code=require_text(code, "Customer code", CODE_MAX_LENGTH).upper(),
            name=require_text(name, "Full name", NAME_MAX_LENGTH),
            phone=_optional_text(phone),
            address=_optional_text(address),
            village=_optional_text(village),
        )
        customer.stamp_created(username, now)
        return customer

    def update(self, name, username, phone=None, address=None, village=None, now=None):
        username = require_username(username)
        self.name = require_text(name, "Full name", NAME_MAX_LENGTH)
        self.phone = _optional_text(phone)
        self.address = _optional_text(address)
        self.village = _optional_text(village)
        self.stamp_updated(username, now)

    def activate(self, username, now=None):
        username = require_username(username)
        self.is_active = True
        self.stamp_updated(username, now)

    def deactivate(self, username, now=None):
        # history (cycles, settlements) stays; only new cycles are blocked
        username = require_username(username)
        self.is_active = False
        self.stamp_updated(username, now)

    def can_create_new_cycle(self):
        return self.is_active

    def __str__(self):
        return f"{self.code} - {self.name}"


@dataclass
class Product(Audited):
    code: str
    name: str
    unit: str
    unit_price: Money
    current_stock: Quantity
    reorder_level: Quantity
    id: int | None = None
    description: str | None = None
    is_active: bool = True

    @classmethod
    def create(cls, code, name, unit, unit_price, reorder_level, username, description=None, now=None):
        username = require_username(username)
        unit = require_text(unit, "Unit of measure").upper()
        product = cls(
            code=require_text(code, "Product code", CODE_MAX_LENGTH).upper(),
            name=require_text(name, "Product name", NAME_MAX_LENGTH),
            unit=unit,
            unit_price=_non_negative_money(unit_price, "Unit price"),
            current_stock=Quantity.zero(unit),
            reorder_level=_non_negative_quantity(reorder_level, unit, "Reorder level"),
            description=_optional_text(description),
        )
        product.stamp_created(username, now)
        return product

    def update(self, name, unit_price, reorder_level, username, description=None, now=None):
        username = require_username(username)
        name = require_text(name, "Product name", NAME_MAX_LENGTH)
        price = _non_negative_money(unit_price, "Unit price")
        reorder = _non_negative_quantity(reorder_level, self.unit, "Reorder level")
        self.name = name
        self.unit_price = price
        self.reorder_level = reorder
        self.description = _optional_text(description)
        self.stamp_updated(username, now)

    def activate(self, username, now=None):
        username = require_username(username)
        self.is_active = True
        self.stamp_updated(username, now)

    def deactivate(self, username, now=None):
        username = require_username(username)
        self.is_active = False
        self.stamp_updated(username, now)

    def stock_status(self):
        stock = self.current_stock.value
        reorder = self.reorder_level.value
        if stock <= 0:
            return StockStatus.OUT_OF_STOCK
        if stock <= reorder:
            return StockStatus.LOW_STOCK
        if stock <= reorder * MEDIUM_STOCK_FACTOR:
            return StockStatus.MEDIUM_STOCK
        return StockStatus.GOOD_STOCK

    def needs_reorder(self):
        return self.current_stock.value <= self.reorder_level.value

    def __str__(self):
        return f"{self.code} - {self.name} ({self.current_stock})"


# ---------------------------------------------------------------------------
# Line items
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ProductPurchase:
    product_id: int
    purchase_date: datetime
    quantity: Quantity
    unit_price: Money
    total_amount: Money
    id: int | None = None
    supplier_name: str | None = None
    invoice_number: str | None = None
    notes: str | None = None
    created_by: str | None = None
    created_at: datetime | None = None

    @classmethod
    def create(cls, product_id, quantity, unit, unit_price, username,
               supplier_name=None, invoice_number=None, notes=None, purchase_date=None, now=None):
        username = require_username(username)
        quantity = _positive_quantity(quantity, unit)
        price = _non_negative_money(unit_price, "Unit price")
        now = now or utc_now()
        return cls(
            product_id=product_id,
            purchase_date=as_datetime(purchase_date) or now,
            quantity=quantity,
            unit_price=price,
            total_amount=_line_total(quantity, price),
            supplier_name=_optional_text(supplier_name),
            invoice_number=_optional_text(invoice_number),
            notes=_optional_text(notes),
            created_by=username,
            created_at=now,
        )


@dataclass(frozen=True)
class ProductSale:
    customer_id: int
    product_id: int
    cycle_id: int
    sale_date: datetime
    quantity: Quantity
    unit_price: Money
    total_amount: Money
    id: int | None = None
    notes: str | None = None
    created_by: str | None = None
    created_at: datetime | None = None

    @classmethod
    def create(cls, customer_id, product_id, cycle_id, quantity, unit, unit_price, username,
               notes=None, sale_date=None, now=None):
        username = require_username(username)
        quantity = _positive_quantity(quantity, unit)
        price = _non_negative_money(unit_price, "Unit price")
        now = now or utc_now()
        return cls(
            customer_id=customer_id,
            product_id=product_id,
            cycle_id=cycle_id,
            sale_date=as_datetime(sale_date) or now,
            quantity=quantity,
            unit_price=price,
            total_amount=_line_total(quantity, price),
            notes=_optional_text(notes),
            created_by=username,
            created_at=now,
        )

    def validate_customer_match(self, cycle_customer_id):
        if self.customer_id != cycle_customer_id:
            raise ValidationError("Sale customer must match cycle customer")


@dataclass(frozen=True)
class AdvancePayment:
    customer_id: int
    cycle_id: int
    payment_date: datetime
    amount: Money
    payment_mode: PaymentMode
    id: int | None = None
    reference_number: str | None = None
    notes: str | None = None
    created_by: str | None = None
    created_at: datetime | None = None

    @classmethod
    def create(cls, customer_id, cycle_id, amount, payment_mode, username,
               reference_number=None, notes=None, payment_date=None, now=None):
        username = require_username(username)
        value = to_decimal(amount, "Advance amount")
        if value <= 0:
            raise ValidationError("Advance amount must be positive")
        check_places(value, MONEY_PLACES, "Advance amount")
        mode = PaymentMode.parse(payment_mode)
        reference_number = _optional_text(reference_number)
        if mode is not PaymentMode.CASH and not reference_number:
            raise ValidationError("Reference number is required for non-cash payments")
        now = now or utc_now()
        return cls(
            customer_id=customer_id,
            cycle_id=cycle_id,
            payment_date=as_datetime(payment_date) or now,
            amount=Money(value),
            payment_mode=mode,
            reference_number=reference_number,
            notes=_optional_text(notes),
            created_by=username,
            created_at=now,
        )

    def validate_customer_match(self, cycle_customer_id):
        if self.customer_id != cycle_customer_id:
            raise ValidationError("Advance customer must match cycle customer")


# ---------------------------------------------------------------------------
# Milk cycle
# ---------------------------------------------------------------------------

@dataclass
class MilkCycle(Audited):
    """One customer's dated window of milk earnings, sales and advances.

    Open until settled; settling is terminal. Once settled, the milk amount,
    notes, sales and advances can no longer change.
    """
    customer_id: int
    start_date: date
    end_date: date
    id: int | None = None
    total_milk_amount: Money = field(default_factory=Money.zero)
    is_settled: bool = False
    settlement_date: datetime | None = None
    notes: str | None = None
    product_sales: tuple[ProductSale, ...] = ()
    advance_payments: tuple[AdvancePayment, ...] = ()

    @classmethod
    def create(cls, customer_id, start_date, end_date, username, notes=None, now=None):
        username = require_username(username)
        period = DateRange(start_date, end_date)
        cycle = cls(
            customer_id=customer_id,
            start_date=period.start,
            end_date=period.end,
            notes=_optional_text(notes),
        )
        cycle.stamp_created(username, now)
        return cycle

    @classmethod
    def ten_day_cycle(cls, customer_id, start_date, username, notes=None, now=None):
        period = DateRange.ten_day_cycle(start_date)
        return cls.create(customer_id, period.start, period.end, username, notes=notes, now=now)

    @property
    def date_range(self):
        return DateRange(self.start_date, self.end_date)

    @property
    def currency(self):
        return self.total_milk_amount.currency

    def _ensure_open(self):
        if self.is_settled:
            raise InvalidStateError("Cannot modify settled cycle")

    def set_milk_amount(self, amount, username, now=None):
        username = require_username(username)
        self._ensure_open()
        value = to_decimal(amount, "Milk amount")
        if value < 0:
            raise ValidationError("Milk amount cannot be negative")
        check_places(value, MONEY_PLACES, "Milk amount")
        self.total_milk_amount = Money(value, self.currency)
        self.stamp_updated(username, now)

    def update_notes(self, notes, username, now=None):
        username = require_username(username)
        self._ensure_open()
        self.notes = _optional_text(notes)
        self.stamp_updated(username, now)

    def _check_line_item(self, item):
        if self.id is not None and item.cycle_id is not None and item.cycle_id != self.id:
            raise ValidationError(f"Line item belongs to cycle {item.cycle_id}, not {self.id}")

    def record_product_sale(self, sale: ProductSale):
        self._ensure_open()
        sale.validate_customer_match(self.customer_id)
        self._check_line_item(sale)
        self.product_sales = (*self.product_sales, sale)

    def record_advance_payment(self, advance: AdvancePayment):
        self._ensure_open()
        advance.validate_customer_match(self.customer_id)
        self._check_line_item(advance)
        self.advance_payments = (*self.advance_payments, advance)

    def can_be_settled(self):
        return not self.is_settled and self.total_milk_amount.is_positive

    def mark_as_settled(self, username, now=None):
        username = require_username(username)
        if self.is_settled:
            raise InvalidStateError("Cycle is already settled")
        if not self.total_milk_amount.is_positive:
            # business rule: a cycle with no recorded milk cannot be closed out
            raise InvalidStateError("Cannot settle cycle with zero milk amount")
        now = now or utc_now()
        self.is_settled = True
        self.settlement_date = now
        self.stamp_updated(username, now)

    def calculate_total_product_sales(self):
        return sum((sale.total_amount for sale in self.product_sales), Money.zero(self.currency))

    def calculate_total_advances(self):
        return sum((advance.amount for advance in self.advance_payments), Money.zero(self.currency))

    def calculate_estimated_payable(self):
        return self.total_milk_amount - self.calculate_total_product_sales() - self.calculate_total_advances()

    def has_ended(self, today=None):
        return self.date_range.has_ended(today)

    def is_active(self, today=None):
        return self.date_range.is_active(today)

    def __str__(self):
        return f"Cycle {self.id}: {self.date_range}"


# ---------------------------------------------------------------------------
# Settlement
# ---------------------------------------------------------------------------

_DETAIL_AMOUNT_LABELS = {
    SettlementDetailType.MILK: "Milk amount",
    SettlementDetailType.PRODUCT_SALE: "Product sale amount",
    SettlementDetailType.ADVANCE: "Advance amount",
}


@dataclass(frozen=True)
class SettlementDetail:
    detail_type: SettlementDetailType
    description: str
    amount: Money
    transaction_date: datetime
    reference_id: int | None = None
    id: int | None = None
    settlement_id: int | None = None

    @classmethod
    def _create(cls, detail_type, description, amount, transaction_date, reference_id=None):
        if not isinstance(transaction_date, datetime):
            transaction_date = datetime_start_of(transaction_date)
        return cls(
            detail_type=detail_type,
            description=require_text(description, "Description"),
            amount=_non_negative_money(amount, _DETAIL_AMOUNT_LABELS[detail_type]),
            transaction_date=transaction_date,
            reference_id=reference_id,
        )

    @classmethod
    def milk(cls, amount, transaction_date, description="Milk Amount"):
        return cls._create(SettlementDetailType.MILK, description, amount, transaction_date)

    @classmethod
    def product_sale(cls, sale_id, description, amount, transaction_date):
        return cls._create(SettlementDetailType.PRODUCT_SALE, description, amount, transaction_date, sale_id)

    @classmethod
    def advance(cls, advance_id, description, amount, transaction_date):
        return cls._create(SettlementDetailType.ADVANCE, description, amount, transaction_date, advance_id)

    def is_credit(self):
        return self.detail_type is SettlementDetailType.MILK

    def is_debit(self):
        return self.detail_type in (SettlementDetailType.PRODUCT_SALE, SettlementDetailType.ADVANCE)

    def signed_amount(self):
        if self.is_credit():
            return self.amount
        return Money.from_balance(-self.amount.amount, self.amount.currency)


@dataclass
class Settlement(Audited):
    """Final netting of a cycle: milk earnings less product sales and advances.

    ``final_payable`` is positive when the dairy owes the customer and
    negative when the customer owes the dairy. Apart from the one-way
    paid transition a settlement never changes once saved.
    """
    customer_id: int
    cycle_id: int
    settlement_date: datetime
    milk_amount: Money
    total_product_sales: Money
    total_advance_paid: Money
    final_payable: Money
    payment_mode: PaymentMode
    id: int | None = None
    notes: str | None = None
    is_paid: bool = False
    payment_date: datetime | None = None
    payment_reference: str | None = None
    details: tuple[SettlementDetail, ...] = ()

    @classmethod
    def create(cls, customer_id, cycle_id, milk_amount, total_product_sales, total_advance_paid,
               payment_mode, username, notes=None, now=None):
        username = require_username(username)
        milk = _non_negative_money(milk_amount, "Milk amount")
        sales = _non_negative_money(total_product_sales, "Total product sales")
        advances = _non_negative_money(total_advance_paid, "Total advance paid")
        mode = PaymentMode.parse(payment_mode)
        final = milk - sales - advances
        now = now or utc_now()
        settlement = cls(
            customer_id=customer_id,
            cycle_id=cycle_id,
            settlement_date=now,
            milk_amount=milk,
            total_product_sales=sales,
            total_advance_paid=advances,
            final_payable=Money.from_balance(final.amount, final.currency),
            payment_mode=mode,
            notes=_optional_text(notes),
        )
        settlement.stamp_created(username, now)
        return settlement

    def add_detail(self, detail: SettlementDetail):
        if self.id is not None:
            raise InvalidStateError("Settlement details cannot change once saved")
        self.details = (*self.details, detail)

    @property
    def credits(self):
        return [d for d in self.details if d.is_credit()]

    @property
    def debits(self):
        return [d for d in self.details if d.is_debit()]

    def mark_as_paid(self, username, payment_reference=None, now=None):
        username = require_username(username)
        if self.is_paid:
            raise InvalidStateError("Settlement is already marked as paid")
        now = now or utc_now()
        self.is_paid = True
        self.payment_date = now
        self.payment_reference = _optional_text(payment_reference)
        self.stamp_updated(username, now)

    def customer_owes_money(self):
        return self.final_payable.is_negative

    def get_amount_owed(self):
        if self.customer_owes_money():
            return abs(self.final_payable)
        return Money.zero(self.final_payable.currency)

    def requires_payment_to_customer(self):
        return self.final_payable.is_positive

    def expected_final_payable(self):
        return self.milk_amount - self.total_product_sales - self.total_advance_paid

    def validate_calculation(self):
        expected = self.expected_final_payable()
        if abs(expected.amount - self.final_payable.amount) > SETTLEMENT_TOLERANCE:
            raise ConsistencyError(
                f"Settlement {self.id} calculation mismatch: stored {self.final_payable.amount}, "
                f"expected {expected.amount}"
            )

    def __str__(self):
        return f"Settlement {self.id}: {self.final_payable} ({'Paid' if self.is_paid else 'Unpaid'})"
