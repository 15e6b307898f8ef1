# tests/conftest.py
# ---------------------------------------------------------------------
# Ground rules:
# - One Flask app per test (autouse), built from TestingConfig (in-memory SQLite)
# - Fresh schema for every test: create_all() / drop_all()
# - The app context stays pushed for the whole test, so services and
#   the test client share db.session
# - Factories commit their rows so services see them as persisted data
# ---------------------------------------------------------------------
from __future__ import annotations

import pytest

from backoffice import create_app
from backoffice.extensions import db
from backoffice.models import Customer, Product, Supplier
from backoffice.services import conversion, documents
from backoffice.settings import TestingConfig


@pytest.fixture(autouse=True)
def app():
    app = create_app(TestingConfig)
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


# ---------- Factories ----------
@pytest.fixture
def make_product(app):
    counter = {"n": 0}

    def _make(price=100.0, stock=10, name=None, cost_price=60.0, sku=None):
        counter["n"] += 1
        n = counter["n"]
        product = Product(
            sku=sku or f"SKU-{n:03d}",
            name=name or f"Product {n}",
            unit="Cái",
            price=price,
            cost_price=cost_price,
            stock=stock,
        )
        db.session.add(product)
        db.session.commit()
        return product

    return _make


@pytest.fixture
def make_customer(app):
    def _make(name="Nguyễn Văn An", phone="0912345678", debt=0.0):
        customer = Customer(name=name, phone=phone, debt=debt)
        db.session.add(customer)
        db.session.commit()
        return customer

    return _make


@pytest.fixture
def make_supplier(app):
    def _make(name="NCC Sài Gòn", phone="0283456789", debt=0.0):
        supplier = Supplier(name=name, phone=phone, debt=debt)
        db.session.add(supplier)
        db.session.commit()
        return supplier

    return _make


@pytest.fixture
def make_order(app):
    def _make(lines, customer=None, **extra):
        body = {
            "items": [
                {"productId": product.id, "quantity": qty, "price": price}
                for product, qty, price in lines
            ],
            **extra,
        }
        if customer is not None:
            body["customerId"] = customer.id
        return documents.create_order(body)

    return _make


@pytest.fixture
def exported(make_product, make_customer, make_order):
    """Order of 2 x 100 exported with 50 paid: invoice total 200, debt 150."""
    product = make_product(price=100.0, stock=10)
    customer = make_customer()
    order = make_order([(product, 2, 100.0)], customer=customer)
    result = conversion.order_to_invoice(order.id, 50)
    return result.invoice, customer, product
