# backoffice/services/payments.py
from __future__ import annotations

import logging

import sqlalchemy as sa

from ..errors import InvalidStateError, ValidationError
from ..extensions import db
from ..models import CASH_IN, CASH_OUT, MONEY_TOLERANCE, CashFlowTransaction, Invoice, Purchase
from . import cashflow, ledger
from .conversion import get_invoice
from .purchases import get_purchase
from .unit_of_work import guarded_update, run_numbered
from .validation import parse_payment_method, parse_positive_money

log = logging.getLogger(__name__)


def _guarded_payment(model, doc, amount: float, *conditions):
    """
    paid_amount += amount only while the document still owes at least
    that much, checked and written in the same UPDATE. A payment that
    lands within MONEY_TOLERANCE of the total settles it exactly.
    """
    outstanding = round(doc.total_amount - doc.paid_amount, 2)
    if amount > outstanding + MONEY_TOLERANCE:
        raise ValidationError(
            f"Payment {amount} exceeds the outstanding balance {outstanding}.",
            field="amount",
            details={"outstanding": outstanding},
        )

    new_paid = model.paid_amount + amount
    updated = guarded_update(
        model,
        doc.id,
        *conditions,
        new_paid <= model.total_amount + MONEY_TOLERANCE,
        paid_amount=sa.case(
            (new_paid >= model.total_amount - MONEY_TOLERANCE, model.total_amount),
            else_=new_paid,
        ),
    )
    if updated is None:
        # another payment landed between our read and the update
        fresh = db.session.get(model, doc.id, populate_existing=True)
        raise ValidationError(
            "Payment exceeds the outstanding balance.",
            field="amount",
            details={"outstanding": round(fresh.total_amount - fresh.paid_amount, 2)},
        )
    return updated


def pay_invoice(invoice_id: int, amount, update_debt: bool = True, payment_method=None) -> Invoice:
    amount = parse_positive_money(amount, "amount")
    method = parse_payment_method(payment_method)

    def _pay():
        invoice = get_invoice(invoice_id)
        if invoice.is_cancelled:
            raise InvalidStateError(f"Invoice {invoice.invoice_number} is cancelled and accepts no payments.")

        invoice = _guarded_payment(Invoice, invoice, amount, Invoice.cancelled_at.is_(None))

        if update_debt and invoice.customer_id is not None:
            ledger.adjust_debt("customer", invoice.customer_id, -amount)

        cashflow.record_cash_flow(
            CASH_IN,
            amount,
            category=cashflow.CATEGORY_DEBT_COLLECTION,
            description=f"Thu nợ hóa đơn {invoice.invoice_number}",
            payer_receiver_name=invoice.customer_name,
            payment_method=method,
            reference_type="invoice",
            reference_id=invoice.id,
        )
        return invoice

    invoice = run_numbered("Invoice payment", _pay)
    log.info(
        "invoice %s paid %s (now %s/%s, debt updated=%s)",
        invoice.invoice_number,
        amount,
        invoice.paid_amount,
        invoice.total_amount,
        update_debt,
    )
    return invoice


def pay_purchase(purchase_id: int, amount, update_debt: bool = True, payment_method=None) -> Purchase:
    amount = parse_positive_money(amount, "amount")
    method = parse_payment_method(payment_method)

    def _pay():
        purchase = get_purchase(purchase_id)
        if purchase.is_returned:
            raise InvalidStateError(f"Purchase {purchase.purchase_number} was returned and accepts no payments.")

        purchase = _guarded_payment(Purchase, purchase, amount, Purchase.returned_at.is_(None))

        if update_debt:
            ledger.adjust_debt("supplier", purchase.supplier_id, -amount)

        cashflow.record_cash_flow(
            CASH_OUT,
            amount,
            category=cashflow.CATEGORY_SUPPLIER_PAYMENT,
            description=f"Trả tiền phiếu nhập {purchase.purchase_number}",
            payer_receiver_name=purchase.supplier_name,
            payment_method=method,
            reference_type="purchase",
            reference_id=purchase.id,
        )
        return purchase

    purchase = run_numbered("Purchase payment", _pay)
    log.info("purchase %s paid %s (now %s/%s)", purchase.purchase_number, amount, purchase.paid_amount, purchase.total_amount)
    return purchase


def invoice_payments(invoice_id: int) -> list[CashFlowTransaction]:
    """Sale receipt, debt collections and refund recorded against an invoice."""
    invoice = get_invoice(invoice_id)
    return cashflow.entries_for("invoice", invoice.id)
