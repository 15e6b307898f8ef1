# backoffice/services/numbering.py
from __future__ import annotations

import sqlalchemy as sa

from ..extensions import db
from ..models import (
    CashFlowTransaction,
    DeliveryNote,
    Invoice,
    Order,
    Purchase,
    Quote,
)

NUMBER_WIDTH = 5

# kind -> (prefix, numbered column)
NUMBER_SERIES = {
    "quote": ("BG", Quote.quote_number),
    "order": ("DH", Order.order_number),
    "invoice": ("HD", Invoice.invoice_number),
    "purchase": ("PN", Purchase.purchase_number),
    "delivery": ("GH", DeliveryNote.delivery_number),
    "receipt": ("PT", CashFlowTransaction.transaction_number),
    "payment": ("PC", CashFlowTransaction.transaction_number),
}


def format_number(prefix: str, seq: int) -> str:
    return f"{prefix}-{seq:0{NUMBER_WIDTH}d}"


def next_number(kind: str) -> str:
    """
    Next human-friendly number for a document kind, e.g. HD-00042.
    Highest existing + 1, longest number first so HD-100000 ranks
    above HD-99999. Not concurrency-safe on its own: the unique
    constraint on the column catches collisions and callers retry.
    """
    prefix, column = NUMBER_SERIES[kind]
    latest = db.session.execute(
        sa.select(column)
        .where(column.like(f"{prefix}-%"))
        .order_by(sa.func.length(column).desc(), column.desc())
        .limit(1)
    ).scalar()

    seq = 0
    if latest:
        try:
            seq = int(latest.rsplit("-", 1)[1])
        except (IndexError, ValueError):
            seq = 0
    return format_number(prefix, seq + 1)


def numbered_columns() -> set[str]:
    return {column.key for _, column in NUMBER_SERIES.values()}
