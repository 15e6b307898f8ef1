# backoffice/services/listing.py
"""
Read side: filtered, paginated listings with statistics.

Every list_* function builds one list of WHERE conditions and feeds it to
both the page query and the statistics queries, so the numbers shown
above a table always describe the rows in it.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, time, timedelta

import sqlalchemy as sa
from flask import current_app

from ..errors import ValidationError
from ..extensions import db
from ..models import (
    CASH_IN,
    CASH_OUT,
    PAYMENT_CANCELLED,
    PAYMENT_PAID,
    PAYMENT_PARTIAL,
    PAYMENT_UNPAID,
    CashFlowTransaction,
    Customer,
    DeliveryNote,
    DeliveryStatus,
    Invoice,
    Order,
    OrderStatus,
    Product,
    Purchase,
    Quote,
    QuoteStatus,
    Supplier,
)
from .validation import parse_date, parse_id, parse_payment_method


@dataclass
class Page:
    items: list
    total: int
    page: int
    limit: int
    stats: dict = field(default_factory=dict)

    @property
    def total_pages(self) -> int:
        if self.limit <= 0:
            return 0
        return (self.total + self.limit - 1) // self.limit


# ======================
# Argument helpers
# ======================
def _page_args(args) -> tuple[int, int]:
    cfg = current_app.config
    try:
        page = int(args.get("page") or 1)
        limit = int(args.get("limit") or cfg["DEFAULT_PAGE_SIZE"])
    except (TypeError, ValueError):
        raise ValidationError("page and limit must be whole numbers.", field="page")
    page = max(page, 1)
    limit = min(max(limit, 1), cfg["MAX_PAGE_SIZE"])
    return page, limit


def _search(args, *columns) -> list:
    term = (args.get("search") or "").strip()
    if not term:
        return []
    like = f"%{term}%"
    return [sa.or_(*(c.ilike(like) for c in columns))]


def _date_range(args, column, *, is_datetime: bool = False) -> list:
    """Inclusive from/to on a date (or datetime) column."""
    conds = []
    start = parse_date(args.get("from") or args.get("startDate"), "from")
    end = parse_date(args.get("to") or args.get("endDate"), "to")
    if start and end and start > end:
        raise ValidationError("from must not be after to.", field="from")
    if is_datetime:
        if start:
            conds.append(column >= datetime.combine(start, time.min))
        if end:
            conds.append(column < datetime.combine(end + timedelta(days=1), time.min))
    else:
        if start:
            conds.append(column >= start)
        if end:
            conds.append(column <= end)
    return conds


def _enum_filter(args, enum_cls, column) -> list:
    raw = (args.get("status") or "").strip()
    if not raw or raw.lower() == "all":
        return []
    try:
        return [column == enum_cls(raw)]
    except ValueError:
        allowed = ", ".join(s.value for s in enum_cls)
        raise ValidationError(f"status must be one of: {allowed}.", field="status")


def _paginate(model, conds: list, order_by, args) -> Page:
    page, limit = _page_args(args)
    pagination = db.paginate(
        sa.select(model).where(*conds).order_by(*order_by),
        page=page,
        per_page=limit,
        error_out=False,
        count=True,
    )
    return Page(items=list(pagination.items), total=pagination.total or 0, page=page, limit=limit)


def _sum(expr, conds: list) -> float:
    value = db.session.execute(sa.select(sa.func.coalesce(sa.func.sum(expr), 0.0)).where(*conds)).scalar()
    return round(float(value or 0), 2)


def _count(model, conds: list) -> int:
    return db.session.execute(sa.select(sa.func.count(model.id)).where(*conds)).scalar() or 0


def _counts_by_status(model, conds: list, enum_cls) -> dict:
    rows = db.session.execute(
        sa.select(model.status, sa.func.count(model.id)).where(*conds).group_by(model.status)
    ).all()
    counts = {s.value: 0 for s in enum_cls}
    for status, n in rows:
        counts[status.value] = n
    return counts


# ======================
# Quotes / orders
# ======================
def list_quotes(args) -> Page:
    conds = [
        *_search(args, Quote.quote_number, Quote.customer_name, Quote.customer_phone),
        *_enum_filter(args, QuoteStatus, Quote.status),
        *_date_range(args, Quote.issue_date),
    ]
    page = _paginate(Quote, conds, (Quote.created_at.desc(), Quote.id.desc()), args)
    page.stats = {
        "count": page.total,
        "totalAmount": _sum(Quote.total_amount - Quote.discount_amount, conds),
        "byStatus": _counts_by_status(Quote, conds, QuoteStatus),
    }
    return page


def list_orders(args) -> Page:
    conds = [
        *_search(args, Order.order_number, Order.customer_name, Order.customer_phone),
        *_enum_filter(args, OrderStatus, Order.status),
        *_date_range(args, Order.created_at, is_datetime=True),
    ]
    customer_id = parse_id(args.get("customerId"), "customerId", required=False)
    if customer_id:
        conds.append(Order.customer_id == customer_id)

    page = _paginate(Order, conds, (Order.created_at.desc(), Order.id.desc()), args)
    by_status = _counts_by_status(Order, conds, OrderStatus)
    page.stats = {
        "count": page.total,
        "totalAmount": _sum(Order.total_amount, conds),
        "pending": by_status[OrderStatus.NEW.value],
        "byStatus": by_status,
    }
    return page


# ======================
# Invoices
# ======================
_OPEN = Invoice.cancelled_at.is_(None)

INVOICE_STATUS_FILTERS = {
    "paid": [_OPEN, Invoice.paid_amount >= Invoice.total_amount],
    "debt": [_OPEN, Invoice.paid_amount < Invoice.total_amount],
    "partial": [_OPEN, Invoice.paid_amount > 0, Invoice.paid_amount < Invoice.total_amount],
    "unpaid": [_OPEN, Invoice.paid_amount <= 0, Invoice.total_amount > 0],
    "cancelled": [Invoice.cancelled_at.is_not(None)],
}
INVOICE_STATUS_FILTERS[PAYMENT_PAID] = INVOICE_STATUS_FILTERS["paid"]
INVOICE_STATUS_FILTERS[PAYMENT_PARTIAL] = INVOICE_STATUS_FILTERS["partial"]
INVOICE_STATUS_FILTERS[PAYMENT_UNPAID] = INVOICE_STATUS_FILTERS["unpaid"]
INVOICE_STATUS_FILTERS[PAYMENT_CANCELLED] = INVOICE_STATUS_FILTERS["cancelled"]


def list_invoices(args) -> Page:
    conds = [
        *_search(args, Invoice.invoice_number, Invoice.customer_name),
        *_date_range(args, Invoice.issue_date),
    ]
    status = (args.get("status") or "").strip()
    if status and status.lower() != "all":
        if status not in INVOICE_STATUS_FILTERS:
            allowed = ", ".join(INVOICE_STATUS_FILTERS)
            raise ValidationError(f"status must be one of: {allowed}.", field="status")
        conds.extend(INVOICE_STATUS_FILTERS[status])

    customer_id = parse_id(args.get("customerId"), "customerId", required=False)
    if customer_id:
        conds.append(Invoice.customer_id == customer_id)

    page = _paginate(Invoice, conds, (Invoice.created_at.desc(), Invoice.id.desc()), args)
    live = conds + [_OPEN]
    page.stats = {
        "count": page.total,
        "totalRevenue": _sum(Invoice.total_amount, live),
        "totalPaid": _sum(Invoice.paid_amount, live),
        "totalDebt": _sum(Invoice.debt, live),
        "debtCount": _count(Invoice, live + [Invoice.paid_amount < Invoice.total_amount]),
        "cancelledCount": _count(Invoice, conds + [Invoice.cancelled_at.is_not(None)]),
    }
    return page


# ======================
# Purchases / deliveries
# ======================
def list_purchases(args) -> Page:
    conds = [
        *_search(args, Purchase.purchase_number, Purchase.supplier_name),
        *_date_range(args, Purchase.issue_date),
    ]
    supplier_id = parse_id(args.get("supplierId"), "supplierId", required=False)
    if supplier_id:
        conds.append(Purchase.supplier_id == supplier_id)

    page = _paginate(Purchase, conds, (Purchase.created_at.desc(), Purchase.id.desc()), args)
    live = conds + [Purchase.returned_at.is_(None)]
    page.stats = {
        "count": page.total,
        "totalAmount": _sum(Purchase.total_amount, live),
        "totalPaid": _sum(Purchase.paid_amount, live),
        "totalDebt": _sum(Purchase.debt, live),
    }
    return page


def list_deliveries(args) -> Page:
    conds = [
        *_search(args, DeliveryNote.delivery_number, DeliveryNote.customer_name, DeliveryNote.phone),
        *_enum_filter(args, DeliveryStatus, DeliveryNote.status),
        *_date_range(args, DeliveryNote.created_at, is_datetime=True),
    ]
    page = _paginate(DeliveryNote, conds, (DeliveryNote.created_at.desc(), DeliveryNote.id.desc()), args)
    page.stats = {
        "count": page.total,
        "codTotal": _sum(DeliveryNote.cod_amount, conds),
        "shipFeeTotal": _sum(DeliveryNote.ship_fee, conds),
        "byStatus": _counts_by_status(DeliveryNote, conds, DeliveryStatus),
    }
    return page


# ======================
# Cash flow
# ======================
def list_cash_flow(args) -> Page:
    conds = [
        *_search(args, CashFlowTransaction.transaction_number, CashFlowTransaction.description,
                 CashFlowTransaction.payer_receiver_name),
        *_date_range(args, CashFlowTransaction.transaction_date),
    ]
    kind = (args.get("type") or "").strip().lower()
    if kind and kind != "all":
        if kind not in (CASH_IN, CASH_OUT):
            raise ValidationError("type must be 'thu' or 'chi'.", field="type")
        conds.append(CashFlowTransaction.kind == kind)
    category = (args.get("category") or "").strip()
    if category and category.lower() != "all":
        conds.append(CashFlowTransaction.category == category)
    method = (args.get("paymentMethod") or "").strip()
    if method and method.lower() != "all":
        conds.append(CashFlowTransaction.payment_method == parse_payment_method(method))
    reference_type = (args.get("referenceType") or "").strip().lower()
    if reference_type:
        if reference_type not in ("invoice", "purchase"):
            raise ValidationError("referenceType must be 'invoice' or 'purchase'.", field="referenceType")
        conds.append(CashFlowTransaction.reference_type == reference_type)
    reference_id = parse_id(args.get("referenceId"), "referenceId", required=False)
    if reference_id is not None:
        conds.append(CashFlowTransaction.reference_id == reference_id)

    page = _paginate(
        CashFlowTransaction,
        conds,
        (CashFlowTransaction.transaction_date.desc(), CashFlowTransaction.id.desc()),
        args,
    )
    income = _sum(CashFlowTransaction.amount, conds + [CashFlowTransaction.kind == CASH_IN])
    expense = _sum(CashFlowTransaction.amount, conds + [CashFlowTransaction.kind == CASH_OUT])
    page.stats = {
        "count": page.total,
        "totalIncome": income,
        "totalExpense": expense,
        "net": round(income - expense, 2),
    }
    return page


# ======================
# Partners / catalog
# ======================
def list_partners(kind: str, args) -> Page:
    model = Customer if kind == "customer" else Supplier
    conds = _search(args, model.name, model.phone, model.email)
    group = (args.get("group") or "").strip()
    if group and group.lower() != "all":
        conds.append(model.group == group)
    if (args.get("hasDebt") or "").strip().lower() in ("1", "true", "yes"):
        conds.append(model.debt > 0)

    page = _paginate(model, conds, (model.name.asc(), model.id.asc()), args)
    page.stats = {
        "count": page.total,
        "totalDebt": _sum(model.debt, conds),
        "withDebt": _count(model, conds + [model.debt > 0]),
    }
    return page


def list_products(args) -> Page:
    conds = _search(args, Product.name, Product.sku)
    if (args.get("inStock") or "").strip().lower() in ("1", "true", "yes"):
        conds.append(Product.stock > 0)

    page = _paginate(Product, conds, (Product.name.asc(), Product.id.asc()), args)
    page.stats = {
        "count": page.total,
        "totalStock": int(_sum(Product.stock, conds)),
        "outOfStock": _count(Product, conds + [Product.stock <= 0]),
    }
    return page
