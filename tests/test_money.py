from datetime import date
from decimal import Decimal

import pytest

from errors import ValidationError
from money import DateRange, Money, Quantity, round_money


def test_money_from_amount_rejects_negative():
    with pytest.raises(ValidationError, match="Amount cannot be negative"):
        Money.from_amount(-1)


def test_money_balance_may_be_negative():
    balance = Money.from_balance("-100.50")
    assert balance.is_negative
    assert str(balance) == "-₹100.50"


def test_money_arithmetic_keeps_decimals_exact():
    total = Money.from_amount("0.10") + Money.from_amount("0.20")
    assert total.amount == Decimal("0.30")
    assert (Money.from_amount(500) - Money.from_amount(600)).amount == Decimal("-100")


def test_money_currency_mismatch():
    with pytest.raises(ValidationError, match="different currencies"):
        Money.from_amount(1, "INR") + Money.from_amount(1, "USD")


def test_money_ordering_and_formatting():
    assert Money.from_amount(5) < Money.from_amount(10)
    assert str(Money.from_amount("1234.5")) == "₹1,234.50"
    assert Money.from_amount(3).with_sign() == "+₹3.00"
    assert Money.zero().is_zero


def test_round_money_half_up():
    assert round_money(Decimal("2.345")) == Decimal("2.35")
    assert round_money(Decimal("2.344")) == Decimal("2.34")


def test_quantity_normalises_unit_and_rejects_negative():
    assert Quantity("2", "kg").unit == "KG"
    with pytest.raises(ValidationError):
        Quantity(-1, "KG")
    with pytest.raises(ValidationError):
        Quantity(1, " ")


def test_quantity_subtraction_cannot_go_below_zero():
    stock = Quantity(5, "KG")
    assert (stock - Quantity(5, "KG")).is_zero
    with pytest.raises(ValidationError, match="cannot be negative"):
        stock - Quantity("5.01", "KG")


def test_quantity_units_must_match():
    with pytest.raises(ValidationError, match="different units"):
        Quantity(1, "KG") + Quantity(1, "L")


def test_quantity_sufficiency_and_str():
    assert Quantity(10, "KG").is_sufficient_for(Quantity(10, "KG"))
    assert not Quantity(10, "KG").is_sufficient_for(Quantity("10.5", "KG"))
    assert str(Quantity(2, "KG")) == "2.00 KG"


def test_date_range_validation_and_duration():
    with pytest.raises(ValidationError, match="End date cannot be before start date"):
        DateRange(date(2025, 1, 10), date(2025, 1, 1))
    period = DateRange.ten_day_cycle(date(2025, 1, 1))
    assert period.end == date(2025, 1, 10)
    assert period.duration_in_days == 10
    assert DateRange(date(2025, 1, 1), date(2025, 1, 1)).duration_in_days == 1


def test_date_range_queries():
    period = DateRange(date(2025, 1, 1), date(2025, 1, 10))
    assert period.contains(date(2025, 1, 10))
    assert not period.contains(date(2025, 1, 11))
    assert period.overlaps_with(DateRange(date(2025, 1, 10), date(2025, 1, 20)))
    assert not period.overlaps_with(DateRange(date(2025, 1, 11), date(2025, 1, 20)))
    assert period.has_ended(today=date(2025, 1, 11))
    assert period.is_active(today=date(2025, 1, 5))
    assert period.is_future(today=date(2024, 12, 31))
    assert str(period) == "01/01/2025 to 10/01/2025"
