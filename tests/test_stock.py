from datetime import date
from decimal import Decimal

import pytest

from domain import Product
from errors import InsufficientStockError, InvalidStateError, NotFoundError, ValidationError
from money import Quantity
from stock import decrease_stock, has_sufficient_stock, increase_stock

from conftest import USER


def make_product(stock="10"):
    product = Product.create("FEED", "Cattle Feed", "KG", "100", "5", USER)
    product.current_stock = Quantity(stock, "KG")
    return product


def test_increase_and_decrease_in_place():
    product = make_product("10")
    increase_stock(product, "2.5")
    assert product.current_stock.value == Decimal("12.5")
    decrease_stock(product, Quantity("12.5", "KG"))
    assert product.current_stock.is_zero


def test_decrease_past_zero_raises_and_leaves_stock():
    product = make_product("10")
    with pytest.raises(InsufficientStockError) as exc:
        decrease_stock(product, "10.01")
    assert exc.value.available == Decimal("10")
    assert exc.value.required == Decimal("10.01")
    assert "Insufficient stock" in exc.value.message
    assert product.current_stock.value == Decimal("10")


def test_stock_movement_must_be_positive_and_same_unit():
    product = make_product()
    with pytest.raises(ValidationError, match="must be positive"):
        increase_stock(product, "0")
    with pytest.raises(ValidationError, match="Cannot apply L"):
        increase_stock(product, Quantity(1, "L"))


def test_has_sufficient_stock():
    product = make_product("3")
    assert has_sufficient_stock(product, "3")
    assert not has_sufficient_stock(product, Quantity("3.001", "KG"))


def test_purchase_increases_stock_and_records_total(stock, products, feed):
    purchase = stock.record_purchase(feed.id, "10", "80", USER, invoice_number="INV-1")
    assert purchase.id is not None
    assert purchase.total_amount.amount == Decimal("800")
    assert products.get_product(feed.id).current_stock.value == Decimal("60")


def test_purchase_of_unknown_product(stock):
    with pytest.raises(NotFoundError):
        stock.record_purchase(999, "1", "1", USER)


def test_sale_at_exact_stock_leaves_zero(stock, products, feed, cycle, customer):
    sale = stock.record_sale(cycle.id, customer.id, feed.id, "50", USER)
    assert sale.unit_price.amount == Decimal("100")
    assert sale.total_amount.amount == Decimal("5000")
    assert stock.current_stock(feed.id).is_zero
    assert products.get_product(feed.id).needs_reorder()


def test_sale_over_stock_is_rejected_without_side_effects(stock, cycles, feed, cycle, customer):
    with pytest.raises(InsufficientStockError):
        stock.record_sale(cycle.id, customer.id, feed.id, "50.01", USER)
    assert stock.current_stock(feed.id).value == Decimal("50")
    assert cycles.get_cycle(cycle.id).product_sales == ()


def test_sale_customer_must_match_cycle(stock, customers, feed, cycle):
    other = customers.create_customer("C002", "Suresh Jadhav", USER)
    with pytest.raises(ValidationError, match="Sale customer must match cycle customer"):
        stock.record_sale(cycle.id, other.id, feed.id, "1", USER)
    assert stock.current_stock(feed.id).value == Decimal("50")


def test_sale_of_inactive_product(stock, products, feed, cycle, customer):
    products.deactivate_product(feed.id, USER)
    with pytest.raises(InvalidStateError, match="inactive"):
        stock.record_sale(cycle.id, customer.id, feed.id, "1", USER)


def test_sale_price_override(stock, feed, cycle, customer):
    sale = stock.record_sale(cycle.id, customer.id, feed.id, "2", USER, unit_price="90")
    assert sale.total_amount.amount == Decimal("180")


def test_availability_and_reorder_queries(stock, products, feed):
    assert stock.check_stock_availability(feed.id, "50")
    assert not stock.check_stock_availability(feed.id, "51")
    assert not stock.check_stock_availability(999, "1")
    assert stock.products_needing_reorder() == []
    low = products.create_product("MIN", "Mineral Mix", "KG", "250", "2", USER)
    assert [p.code for p in stock.products_needing_reorder()] == [low.code]


def run_before_cycle_read(monkeypatch, store, action):
    """Run action once, right after the sale has read the product and before it reads the cycle."""
    original = store.get_cycle

    def get_cycle(*args, **kwargs):
        monkeypatch.setattr(store, "get_cycle", original)
        action()
        return original(*args, **kwargs)

    monkeypatch.setattr(store, "get_cycle", get_cycle)


def test_purchase_during_sale_is_not_lost(monkeypatch, store, stock, feed, cycle, customer):
    run_before_cycle_read(monkeypatch, store, lambda: stock.record_purchase(feed.id, "10", "80", USER))
    stock.record_sale(cycle.id, customer.id, feed.id, "5", USER)
    assert stock.current_stock(feed.id).value == Decimal("55")


def test_competing_sale_cannot_oversell(monkeypatch, store, stock, cycles, feed, cycle, customer):
    other = cycles.create_cycle(customer.id, date(2025, 1, 11), date(2025, 1, 20), USER)
    run_before_cycle_read(monkeypatch, store, lambda: stock.record_sale(other.id, customer.id, feed.id, "50", USER))
    with pytest.raises(InsufficientStockError):
        stock.record_sale(cycle.id, customer.id, feed.id, "5", USER)
    assert stock.current_stock(feed.id).is_zero
    assert cycles.get_cycle(cycle.id).product_sales == ()
    assert len(cycles.get_cycle(other.id).product_sales) == 1


def test_quantity_finer_than_storage_is_rejected(stock, cycles, feed, cycle, customer):
    with pytest.raises(ValidationError, match="cannot have more than 3 decimal places"):
        stock.record_sale(cycle.id, customer.id, feed.id, "0.0004", USER)
    with pytest.raises(ValidationError, match="cannot have more than 3 decimal places"):
        stock.record_purchase(feed.id, "1.0005", "80", USER)
    assert stock.current_stock(feed.id).value == Decimal("50")
    assert cycles.get_cycle(cycle.id).product_sales == ()
