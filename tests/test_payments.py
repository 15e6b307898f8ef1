# tests/test_payments.py
from __future__ import annotations

import pytest
import sqlalchemy as sa

from backoffice.errors import IntegrityError, InvalidStateError, NotFoundError, ValidationError
from backoffice.extensions import db
from backoffice.models import PAYMENT_PAID, CashFlowTransaction, Customer, Invoice, Supplier
from backoffice.services import conversion, ledger, payments, purchases


def test_payment_settles_invoice_and_customer_debt(exported):
    invoice, customer, _product = exported

    paid = payments.pay_invoice(invoice.id, 150, update_debt=True)

    assert paid.paid_amount == 200
    assert paid.debt == 0
    assert paid.payment_status == PAYMENT_PAID
    assert db.session.get(Customer, customer.id).debt == 0

    collection = db.session.execute(
        sa.select(CashFlowTransaction).where(CashFlowTransaction.category == "Thu nợ khách hàng")
    ).scalar_one()
    assert collection.amount == 150
    assert collection.kind == "thu"


def test_overpayment_is_rejected_and_nothing_changes(exported):
    invoice, customer, _product = exported

    with pytest.raises(ValidationError) as exc:
        payments.pay_invoice(invoice.id, 999999, update_debt=True)

    assert exc.value.field == "amount"
    assert exc.value.details["outstanding"] == 150
    assert db.session.get(Invoice, invoice.id).paid_amount == 50
    assert db.session.get(Customer, customer.id).debt == 150


@pytest.mark.parametrize("amount", [0, -10, "abc", None])
def test_payment_amount_must_be_positive(exported, amount):
    invoice, _customer, _product = exported

    with pytest.raises(ValidationError):
        payments.pay_invoice(invoice.id, amount)


def test_sequential_payments_reduce_debt_by_their_sum(exported):
    invoice, customer, _product = exported

    for amount in (40, 60, 50):
        payments.pay_invoice(invoice.id, amount, update_debt=True)

    assert db.session.get(Invoice, invoice.id).paid_amount == 200
    assert db.session.get(Customer, customer.id).debt == 0


def test_payment_without_debt_update_leaves_ledger(exported):
    invoice, customer, _product = exported

    paid = payments.pay_invoice(invoice.id, 50, update_debt=False)

    assert paid.debt == 100
    assert db.session.get(Customer, customer.id).debt == 150


def test_payment_that_would_push_ledger_negative_rolls_back(exported):
    invoice, customer, _product = exported
    ledger.update_partner("customer", customer.id, {"debt": 10.0, "debt_reason": "legacy import"})

    with pytest.raises(IntegrityError):
        payments.pay_invoice(invoice.id, 50, update_debt=True)

    assert db.session.get(Invoice, invoice.id).paid_amount == 50
    assert db.session.get(Customer, customer.id).debt == 10
    assert db.session.execute(
        sa.select(sa.func.count(CashFlowTransaction.id)).where(CashFlowTransaction.category == "Thu nợ khách hàng")
    ).scalar() == 0


def test_cancelled_invoice_accepts_no_payment(exported):
    invoice, _customer, _product = exported
    conversion.cancel_invoice(invoice.id)

    with pytest.raises(InvalidStateError):
        payments.pay_invoice(invoice.id, 10)


def test_payment_on_missing_invoice():
    with pytest.raises(NotFoundError):
        payments.pay_invoice(12345, 10)


def test_purchase_payment_reduces_supplier_debt(make_product, make_supplier):
    product = make_product(stock=0)
    supplier = make_supplier()
    purchase = purchases.create_purchase(
        {
            "supplierId": supplier.id,
            "items": [{"productId": product.id, "quantity": 10, "costPrice": 20}],
            "totalAmount": 200,
        }
    )
    assert db.session.get(Supplier, supplier.id).debt == 200

    paid = payments.pay_purchase(purchase.id, 120)

    assert paid.paid_amount == 120
    assert paid.debt == 80
    assert db.session.get(Supplier, supplier.id).debt == 80

    with pytest.raises(ValidationError):
        payments.pay_purchase(purchase.id, 100)


def test_paying_the_exact_remainder_settles_despite_float_sums(make_product, make_customer, make_order):
    product = make_product(price=1.1, stock=10)
    customer = make_customer()
    order = make_order([(product, 3, 1.1)], customer=customer)
    invoice = conversion.order_to_invoice(order.id, 1.1).invoice
    assert invoice.total_amount == 3.3

    paid = payments.pay_invoice(invoice.id, 2.2, update_debt=True)

    assert paid.paid_amount == paid.total_amount
    assert paid.debt == 0
    assert paid.payment_status == PAYMENT_PAID
    assert db.session.get(Customer, customer.id).debt == 0


def test_payment_against_a_stale_read_is_refused(exported):
    invoice, _customer, _product = exported
    stale = db.session.get(Invoice, invoice.id)
    assert stale.paid_amount == 50

    # another writer pays 100 after our read
    db.session.execute(
        sa.update(Invoice)
        .where(Invoice.id == invoice.id)
        .values(paid_amount=Invoice.paid_amount + 100)
        .execution_options(synchronize_session=False)
    )
    assert stale.paid_amount == 50

    with pytest.raises(ValidationError) as exc:
        payments._guarded_payment(Invoice, stale, 120, Invoice.cancelled_at.is_(None))

    assert exc.value.details["outstanding"] == 50
    assert db.session.get(Invoice, invoice.id, populate_existing=True).paid_amount == 150
    db.session.rollback()


def test_payment_method_is_recorded_on_the_journal(exported):
    invoice, _customer, _product = exported

    payments.pay_invoice(invoice.id, 100, payment_method="Chuyển khoản")

    collection = db.session.execute(
        sa.select(CashFlowTransaction).where(CashFlowTransaction.category == "Thu nợ khách hàng")
    ).scalar_one()
    assert collection.payment_method == "Chuyển khoản"


def test_unknown_payment_method_is_rejected(exported):
    invoice, _customer, _product = exported

    with pytest.raises(ValidationError) as exc:
        payments.pay_invoice(invoice.id, 10, payment_method="Bitcoin")

    assert exc.value.field == "paymentMethod"
    assert db.session.get(Invoice, invoice.id).paid_amount == 50


def test_invoice_payment_history_lists_its_entries(exported):
    invoice, _customer, _product = exported
    payments.pay_invoice(invoice.id, 30)
    payments.pay_invoice(invoice.id, 20, payment_method="Thẻ")

    history = payments.invoice_payments(invoice.id)

    assert [entry.amount for entry in history] == [20, 30, 50]
    assert {entry.reference_id for entry in history} == {invoice.id}
    assert history[0].payment_method == "Thẻ"
    assert history[-1].category == "Doanh thu bán hàng"


def test_payment_history_for_missing_invoice():
    with pytest.raises(NotFoundError):
        payments.invoice_payments(999)
