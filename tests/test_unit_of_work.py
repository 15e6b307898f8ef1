# tests/test_unit_of_work.py
from __future__ import annotations

import pytest
import sqlalchemy as sa
from sqlalchemy.exc import IntegrityError as DBIntegrityError

from backoffice.errors import IntegrityError
from backoffice.extensions import db
from backoffice.models import Order, Product
from backoffice.services.numbering import format_number, next_number
from backoffice.services.unit_of_work import atomic, guarded_update, run_numbered

COLLISION = 'duplicate key value violates unique constraint "invoice_invoice_number_key"'


def test_atomic_rolls_back_everything(make_product):
    product = make_product(stock=5)

    with pytest.raises(RuntimeError):
        with atomic("test"):
            guarded_update(Product, product.id, stock=Product.stock - 3)
            raise RuntimeError("boom")

    assert db.session.get(Product, product.id).stock == 5


def test_guarded_update_refuses_when_condition_fails(make_product):
    product = make_product(stock=2)

    assert guarded_update(Product, product.id, Product.stock >= 3, stock=Product.stock - 3) is None
    updated = guarded_update(Product, product.id, Product.stock >= 2, stock=Product.stock - 2)
    assert updated.stock == 0


def test_run_numbered_retries_a_numbering_collision_once(app):
    calls = []

    def _write():
        calls.append(1)
        if len(calls) == 1:
            raise DBIntegrityError("INSERT", {}, Exception(COLLISION))
        return "ok"

    assert run_numbered("Create thing", _write) == "ok"
    assert len(calls) == 2


def test_run_numbered_gives_up_after_second_collision(app):
    def _write():
        raise DBIntegrityError("INSERT", {}, Exception(COLLISION))

    with pytest.raises(IntegrityError):
        run_numbered("Create thing", _write)


def test_numbers_continue_from_the_highest(app, make_product, make_order):
    assert format_number("HD", 42) == "HD-00042"
    assert next_number("order") == "DH-00001"

    product = make_product()
    make_order([(product, 1, 1.0)])
    make_order([(product, 1, 1.0)])

    assert next_number("order") == "DH-00003"
    assert next_number("quote") == "BG-00001"
    assert db.session.execute(sa.select(sa.func.count(Product.id))).scalar() == 1


def test_run_numbered_does_not_retry_other_constraint_failures(make_product):
    product = make_product(stock=1)
    calls = []

    def _write():
        calls.append(1)
        db.session.get(Product, product.id).stock = -1
        db.session.flush()

    with pytest.raises(DBIntegrityError):
        run_numbered("Break stock", _write)

    assert len(calls) == 1
    assert db.session.get(Product, product.id).stock == 1


def test_numbers_keep_growing_past_five_digits(make_product, make_order):
    product = make_product()
    order = make_order([(product, 1, 1.0)])
    order.order_number = "DH-99999"
    other = make_order([(product, 1, 1.0)])
    other.order_number = "DH-100000"
    db.session.commit()

    assert next_number("order") == "DH-100001"
    assert db.session.get(Order, order.id).order_number == "DH-99999"
