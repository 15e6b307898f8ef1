# tests/test_purchases.py
from __future__ import annotations

import pytest
import sqlalchemy as sa

from backoffice.errors import InsufficientStockError, InvalidStateError, ValidationError
from backoffice.extensions import db
from backoffice.models import CashFlowTransaction, Product, Purchase, StockHistory, Supplier
from backoffice.services import conversion, payments, purchases


def _receive(product, supplier, quantity=5, cost=20000, paid=40000):
    return purchases.create_purchase(
        {
            "supplierId": supplier.id,
            "issueDate": "2026-10-01",
            "items": [{"productId": product.id, "quantity": quantity, "costPrice": cost}],
            "totalAmount": quantity * cost,
            "paidAmount": paid,
        }
    )


def test_receiving_increments_stock_and_supplier_debt(make_product, make_supplier):
    product = make_product(stock=10, cost_price=18000)
    supplier = make_supplier()

    purchase = _receive(product, supplier)

    assert purchase.purchase_number == "PN-00001"
    assert purchase.total_amount == 100000
    assert purchase.debt == 60000
    assert str(purchase.issue_date) == "2026-10-01"

    fresh = db.session.get(Product, product.id)
    assert fresh.stock == 15
    assert fresh.cost_price == 20000
    assert db.session.get(Supplier, supplier.id).debt == 60000

    [history] = db.session.execute(sa.select(StockHistory)).scalars().all()
    assert (history.kind, history.change_amount, history.balance_after) == ("Nhập hàng", 5, 15)

    [payment] = db.session.execute(sa.select(CashFlowTransaction)).scalars().all()
    assert (payment.kind, payment.amount, payment.category) == ("chi", 40000, "Trả NCC")


def test_total_must_match_lines(make_product, make_supplier):
    product = make_product(stock=10)
    supplier = make_supplier()

    with pytest.raises(ValidationError) as exc:
        purchases.create_purchase(
            {
                "supplierId": supplier.id,
                "items": [{"productId": product.id, "quantity": 2, "costPrice": 100}],
                "totalAmount": 250,
            }
        )
    assert exc.value.field == "totalAmount"
    assert db.session.get(Product, product.id).stock == 10
    assert db.session.execute(sa.select(sa.func.count(Purchase.id))).scalar() == 0


def test_paid_cannot_exceed_total(make_product, make_supplier):
    with pytest.raises(ValidationError):
        _receive(make_product(), make_supplier(), quantity=1, cost=100, paid=101)


def test_return_reverses_receipt(make_product, make_supplier):
    product = make_product(stock=10)
    supplier = make_supplier()
    purchase = _receive(product, supplier)

    returned = purchases.return_purchase(purchase.id, reason="hàng lỗi")

    assert returned.returned_at is not None
    assert db.session.get(Product, product.id).stock == 10
    assert db.session.get(Supplier, supplier.id).debt == 0

    refund = db.session.execute(
        sa.select(CashFlowTransaction).where(CashFlowTransaction.kind == "thu")
    ).scalar_one()
    assert refund.amount == 40000

    with pytest.raises(InvalidStateError):
        purchases.return_purchase(purchase.id)


def test_return_needs_the_stock_to_still_be_there(make_product, make_supplier, make_order):
    product = make_product(stock=0)
    supplier = make_supplier()
    purchase = _receive(product, supplier, quantity=5, cost=100, paid=0)

    order = make_order([(product, 4, 150.0)])
    conversion.order_to_invoice(order.id, 600)

    with pytest.raises(InsufficientStockError):
        purchases.return_purchase(purchase.id)

    assert db.session.get(Purchase, purchase.id).returned_at is None
    assert db.session.get(Product, product.id).stock == 1
    assert db.session.get(Supplier, supplier.id).debt == 500


def test_receipt_and_payment_keep_their_payment_method(make_product, make_supplier):
    product = make_product(stock=0)
    supplier = make_supplier()
    purchase = purchases.create_purchase(
        {
            "supplierId": supplier.id,
            "items": [{"productId": product.id, "quantity": 2, "costPrice": 500}],
            "totalAmount": 1000,
            "paidAmount": 400,
            "paymentMethod": "Chuyển khoản",
        }
    )
    payments.pay_purchase(purchase.id, 600, payment_method="Thẻ")

    methods = db.session.execute(
        sa.select(CashFlowTransaction.amount, CashFlowTransaction.payment_method)
        .where(CashFlowTransaction.reference_type == "purchase")
        .order_by(CashFlowTransaction.id)
    ).all()
    assert [tuple(row) for row in methods] == [(400, "Chuyển khoản"), (600, "Thẻ")]
    assert db.session.get(Supplier, supplier.id).debt == 0
