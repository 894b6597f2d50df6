# money.py
"""
Value types: Money, Quantity and DateRange.

All three are frozen. Money built with ``from_amount`` is never negative;
``from_balance`` is the only way to hold a signed figure (net payable).
"""
from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal, ROUND_HALF_UP
from functools import total_ordering

from errors import ValidationError
from utils import as_date, to_decimal

DEFAULT_CURRENCY = "INR"
CURRENCY_SYMBOLS = {"INR": "₹"}
PAISE = Decimal("0.01")
# storage scale: Numeric(12, 2) for money, Numeric(12, 3) for quantities
MONEY_PLACES = 2
QUANTITY_PLACES = 3


def round_money(value: Decimal) -> Decimal:
    return value.quantize(PAISE, rounding=ROUND_HALF_UP)


def check_places(value: Decimal, places: int, label: str) -> Decimal:
    """Reject values finer than the column they are stored in can hold."""
    if value != value.quantize(Decimal(1).scaleb(-places)):
        raise ValidationError(f"{label} cannot have more than {places} decimal places")
    return value


@total_ordering
@dataclass(frozen=True)
class Money:
    amount: Decimal
    currency: str = DEFAULT_CURRENCY

    def __post_init__(self):
        object.__setattr__(self, "amount", to_decimal(self.amount))
        if not self.currency:
            raise ValidationError("Currency is required")

    @classmethod
    def from_amount(cls, amount, currency=DEFAULT_CURRENCY):
        value = to_decimal(amount)
        if value < 0:
            raise ValidationError("Amount cannot be negative")
        return cls(value, currency)

    @classmethod
    def from_balance(cls, amount, currency=DEFAULT_CURRENCY):
        return cls(to_decimal(amount), currency)

    @classmethod
    def zero(cls, currency=DEFAULT_CURRENCY):
        return cls(Decimal("0"), currency)

    def _check_currency(self, other, action):
        if not isinstance(other, Money):
            raise ValidationError(f"Cannot {action} money and {type(other).__name__}")
        if self.currency != other.currency:
            raise ValidationError(f"Cannot {action} money with different currencies: {self.currency} and {other.currency}")

    def __add__(self, other):
        self._check_currency(other, "add")
        return Money(self.amount + other.amount, self.currency)

    def __sub__(self, other):
        self._check_currency(other, "subtract")
        return Money(self.amount - other.amount, self.currency)

    def __mul__(self, multiplier):
        return Money(self.amount * to_decimal(multiplier, "multiplier"), self.currency)

    def __lt__(self, other):
        self._check_currency(other, "compare")
        return self.amount < other.amount

    def __abs__(self):
        return Money(abs(self.amount), self.currency)

    @property
    def is_positive(self):
        return self.amount > 0

    @property
    def is_negative(self):
        return self.amount < 0

    @property
    def is_zero(self):
        return self.amount == 0

    def __str__(self):
        symbol = CURRENCY_SYMBOLS.get(self.currency, self.currency + " ")
        sign = "-" if self.amount < 0 else ""
        return f"{sign}{symbol}{abs(round_money(self.amount)):,.2f}"

    def with_sign(self):
        return str(self) if self.amount < 0 else "+" + str(self)


@total_ordering
@dataclass(frozen=True)
class Quantity:
    value: Decimal
    unit: str

    def __post_init__(self):
        value = to_decimal(self.value, "quantity")
        if value < 0:
            raise ValidationError("Quantity cannot be negative")
        if not self.unit or not str(self.unit).strip():
            raise ValidationError("Unit cannot be empty")
        object.__setattr__(self, "value", value)
        object.__setattr__(self, "unit", str(self.unit).strip().upper())

    @classmethod
    def zero(cls, unit):
        return cls(Decimal("0"), unit)

    def _check_unit(self, other, action):
        if not isinstance(other, Quantity):
            raise ValidationError(f"Cannot {action} quantity and {type(other).__name__}")
        if self.unit != other.unit:
            raise ValidationError(f"Cannot {action} quantities with different units: {self.unit} and {other.unit}")

    def __add__(self, other):
        self._check_unit(other, "add")
        return Quantity(self.value + other.value, self.unit)

    def __sub__(self, other):
        self._check_unit(other, "subtract")
        result = self.value - other.value
        if result < 0:
            raise ValidationError("Resulting quantity cannot be negative")
        return Quantity(result, self.unit)

    def __mul__(self, multiplier):
        multiplier = to_decimal(multiplier, "multiplier")
        if multiplier < 0:
            raise ValidationError("Multiplier cannot be negative")
        return Quantity(self.value * multiplier, self.unit)

    def __lt__(self, other):
        self._check_unit(other, "compare")
        return self.value < other.value

    @property
    def is_zero(self):
        return self.value == 0

    @property
    def is_positive(self):
        return self.value > 0

    def is_sufficient_for(self, required):
        self._check_unit(required, "compare")
        return self.value >= required.value

    def __str__(self):
        return f"{self.value:,.2f} {self.unit}"


@dataclass(frozen=True)
class DateRange:
    start: date
    end: date

    def __post_init__(self):
        start, end = as_date(self.start), as_date(self.end)
        if end < start:
            raise ValidationError("End date cannot be before start date")
        object.__setattr__(self, "start", start)
        object.__setattr__(self, "end", end)

    @classmethod
    def ten_day_cycle(cls, start):
        return cls.cycle_of(start, 10)

    @classmethod
    def cycle_of(cls, start, days: int):
        if days <= 0:
            raise ValidationError("Number of days must be positive")
        start = as_date(start)
        return cls(start, start + timedelta(days=days - 1))

    @property
    def duration_in_days(self):
        return (self.end - self.start).days + 1

    def contains(self, d):
        return self.start <= as_date(d) <= self.end

    def overlaps_with(self, other):
        return self.start <= other.end and self.end >= other.start

    def has_ended(self, today=None):
        return self.end < (today or date.today())

    def is_active(self, today=None):
        return self.contains(today or date.today())

    def is_future(self, today=None):
        return self.start > (today or date.today())

    def __str__(self):
        return f"{self.start:%d/%m/%Y} to {self.end:%d/%m/%Y}"
