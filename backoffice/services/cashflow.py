# backoffice/services/cashflow.py
from __future__ import annotations

import logging
from datetime import date

import sqlalchemy as sa

from ..errors import ValidationError
from ..extensions import db
from ..models import CASH_IN, CASH_OUT, PAYMENT_METHOD_CASH, CashFlowTransaction
from .numbering import next_number
from .unit_of_work import run_numbered
from .validation import (
    NAME_MAXLEN,
    clean_str,
    parse_date,
    parse_payment_method,
    parse_positive_money,
    require_object,
)

log = logging.getLogger(__name__)

CATEGORY_SALES = "Doanh thu bán hàng"
CATEGORY_DEBT_COLLECTION = "Thu nợ khách hàng"
CATEGORY_REFUND = "Hoàn tiền"
CATEGORY_SUPPLIER_PAYMENT = "Trả NCC"
CATEGORY_OPERATING = "Chi phí hoạt động"
CATEGORY_OTHER = "Khác"

CATEGORIES = (
    CATEGORY_SALES,
    CATEGORY_DEBT_COLLECTION,
    CATEGORY_REFUND,
    CATEGORY_SUPPLIER_PAYMENT,
    CATEGORY_OPERATING,
    CATEGORY_OTHER,
)


def record_cash_flow(
    kind: str,
    amount: float,
    *,
    category: str,
    description: str,
    payer_receiver_name: str | None = None,
    payment_method: str = PAYMENT_METHOD_CASH,
    reference_type: str | None = None,
    reference_id: int | None = None,
    transaction_date: date | None = None,
) -> CashFlowTransaction:
    """Append a journal entry inside the caller's transaction."""
    if kind not in (CASH_IN, CASH_OUT):
        raise ValueError(f"unknown cash-flow kind {kind!r}")

    entry = CashFlowTransaction(
        transaction_number=next_number("receipt" if kind == CASH_IN else "payment"),
        kind=kind,
        amount=round(float(amount), 2),
        category=category,
        description=description,
        payer_receiver_name=payer_receiver_name,
        payment_method=payment_method,
        reference_type=reference_type,
        reference_id=reference_id,
        transaction_date=transaction_date or date.today(),
    )
    db.session.add(entry)
    db.session.flush()
    return entry


def create_manual_entry(raw) -> CashFlowTransaction:
    body = require_object(raw)

    kind = str(body.get("type") or "").strip().lower()
    if kind not in (CASH_IN, CASH_OUT):
        raise ValidationError("type must be 'thu' or 'chi'.", field="type")

    category = clean_str(body.get("category"), "category", 60) or CATEGORY_OTHER
    if category not in CATEGORIES:
        raise ValidationError("category is not a known cash-flow category.", field="category")

    amount = parse_positive_money(body.get("amount"), "amount")
    description = clean_str(body.get("description"), "description", 255, required=True)
    payer = clean_str(body.get("payerReceiverName"), "payerReceiverName", NAME_MAXLEN)
    when = parse_date(body.get("transactionDate"), "transactionDate")
    method = parse_payment_method(body.get("paymentMethod"))

    def _write():
        return record_cash_flow(
            kind,
            amount,
            category=category,
            description=description,
            payer_receiver_name=payer,
            payment_method=method,
            transaction_date=when,
        )

    entry = run_numbered("Record cash-flow entry", _write)
    log.info("cash-flow %s %s %s recorded", entry.transaction_number, kind, amount)
    return entry


def entries_for(reference_type: str, reference_id: int) -> list[CashFlowTransaction]:
    """Journal entries written against one document, newest first."""
    return (
        db.session.execute(
            sa.select(CashFlowTransaction)
            .where(
                CashFlowTransaction.reference_type == reference_type,
                CashFlowTransaction.reference_id == reference_id,
            )
            .order_by(CashFlowTransaction.created_at.desc(), CashFlowTransaction.id.desc())
        )
        .scalars()
        .all()
    )
