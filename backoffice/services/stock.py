# backoffice/services/stock.py
from __future__ import annotations

import logging
from collections import OrderedDict

import sqlalchemy as sa

from ..errors import InsufficientStockError, not_found
from ..extensions import db
from ..models import Product, StockHistory
from .unit_of_work import guarded_update

log = logging.getLogger(__name__)

# Movement kinds written to stock history
SALE_OUT = "Xuất hàng"
PURCHASE_IN = "Nhập hàng"
SALE_RETURN_IN = "Nhập hàng trả"
PURCHASE_RETURN_OUT = "Xuất trả NCC"


def _merge(lines) -> OrderedDict:
    """Sum quantities per product so one product on two lines is checked once."""
    merged: OrderedDict = OrderedDict()
    for line in lines:
        pid, qty = line.product_id, int(line.quantity)
        if pid in merged:
            merged[pid] = (merged[pid][0], merged[pid][1] + qty)
        else:
            merged[pid] = (line.name, qty)
    return merged


def _history(product: Product, change: int, kind: str, reference: str | None, note: str | None) -> None:
    db.session.add(
        StockHistory(
            product_id=product.id,
            product_name=product.name,
            sku=product.sku,
            change_amount=change,
            balance_after=product.stock,
            kind=kind,
            reference_number=reference,
            note=note,
        )
    )


def decrement_stock(lines, *, kind: str, reference: str | None = None, note: str | None = None) -> None:
    """
    Take stock out for every line, all or nothing.

    Each product is decremented with a conditional UPDATE (stock >= qty),
    never read-then-write. Shortfalls are collected across all lines and
    raised together; the caller's atomic() block undoes any decrement that
    already went through.
    """
    shortfalls = []
    for pid, (name, qty) in _merge(lines).items():
        product = guarded_update(
            Product,
            pid,
            Product.stock >= qty,
            stock=Product.stock - qty,
        )
        if product is not None:
            _history(product, -qty, kind, reference, note)
            continue

        row = db.session.execute(
            sa.select(Product.name, Product.stock).where(Product.id == pid)
        ).one_or_none()
        if row is None:
            raise not_found("Product", pid)
        shortfalls.append(
            {"productId": pid, "name": row.name or name, "requested": qty, "available": int(row.stock)}
        )

    if shortfalls:
        log.info("stock check failed for %s: %s", reference or kind, shortfalls)
        raise InsufficientStockError(shortfalls)


def increment_stock(lines, *, kind: str, reference: str | None = None, note: str | None = None) -> None:
    for pid, (_name, qty) in _merge(lines).items():
        product = guarded_update(Product, pid, stock=Product.stock + qty)
        if product is None:
            raise not_found("Product", pid)
        _history(product, qty, kind, reference, note)


def stock_history(product_id: int, limit: int = 100) -> list[StockHistory]:
    if db.session.get(Product, product_id) is None:
        raise not_found("Product", product_id)
    return (
        db.session.execute(
            sa.select(StockHistory)
            .where(StockHistory.product_id == product_id)
            .order_by(StockHistory.created_at.desc(), StockHistory.id.desc())
            .limit(limit)
        )
        .scalars()
        .all()
    )
