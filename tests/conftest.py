from datetime import date, datetime

import pytest

from app import create_app
from auth import create_user
from cycles import MilkCycleService
from models import db
from registry import CustomerService, ProductService
from settlement import SettlementService
from stock import StockService
from store import SqlStore

FIXED_NOW = datetime(2025, 1, 11, 9, 30)
CYCLE_START = date(2025, 1, 1)
CYCLE_END = date(2025, 1, 10)
USER = "admin"
PASSWORD = "adminpass"


def fixed_clock():
    return FIXED_NOW


@pytest.fixture
def app():
    app = create_app({
        "TESTING": True,
        "SECRET_KEY": "test",
        "SQLALCHEMY_DATABASE_URI": "sqlite://",
        "CLOCK": fixed_clock,
        "LOG_LEVEL": "WARNING",
    })
    with app.app_context():
        create_user(USER, PASSWORD, name="Administrator")
    yield app
    with app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture
def ctx(app):
    with app.app_context():
        yield app
        db.session.remove()


@pytest.fixture
def store(ctx):
    return SqlStore()


@pytest.fixture
def customers(store):
    return CustomerService(store, fixed_clock)


@pytest.fixture
def products(store):
    return ProductService(store, fixed_clock)


@pytest.fixture
def cycles(store):
    return MilkCycleService(store, fixed_clock)


@pytest.fixture
def stock(store):
    return StockService(store, fixed_clock)


@pytest.fixture
def settlements(store):
    return SettlementService(store, fixed_clock)


@pytest.fixture
def customer(customers):
    return customers.create_customer("C001", "Ramesh Patil", USER, phone="9876543210", village="Wadgaon")


@pytest.fixture
def feed(products, stock):
    product = products.create_product("FEED", "Cattle Feed", "KG", "100", "5", USER)
    stock.record_purchase(product.id, "50", "80", USER, supplier_name="Agro Mart")
    return products.get_product(product.id)


@pytest.fixture
def cycle(cycles, customer):
    return cycles.create_cycle(customer.id, CYCLE_START, CYCLE_END, USER)


@pytest.fixture
def client(app):
    client = app.test_client()
    response = client.post("/auth/login", json={"username": USER, "password": PASSWORD})
    assert response.status_code == 200
    return client
