# backoffice/services/documents.py
"""
Document store for quotes and orders: create, edit while still open,
manual status moves and delete. Conversions live in conversion.py.
"""
from __future__ import annotations

import logging

import sqlalchemy as sa
from flask import current_app

from ..errors import InvalidStateError, ValidationError, not_found
from ..extensions import db
from ..models import (
    NO_DELIVERY,
    ORDER_TRANSITIONS,
    Customer,
    Order,
    OrderItem,
    OrderStatus,
    Quote,
    QuoteItem,
    QuoteStatus,
    can_transition,
    utcnow_naive,
)
from .numbering import next_number
from .unit_of_work import atomic, run_numbered
from .validation import (
    ADDRESS_MAXLEN,
    NAME_MAXLEN,
    NOTE_MAXLEN,
    PHONE_MAXLEN,
    clean_str,
    items_total,
    parse_date,
    parse_delivery_info,
    parse_id,
    parse_line_items,
    parse_money,
    require_object,
    resolve_line_items,
)

log = logging.getLogger(__name__)

_QUOTE_CONTENT_KEYS = (
    "customerId", "customerName", "customerPhone", "customerAddress",
    "items", "discountAmount", "issueDate", "expiryDate", "note",
)
_ORDER_CONTENT_KEYS = (
    "customerId", "customerName", "customerPhone", "customerAddress",
    "items", "discountAmount", "paymentAmount", "deliveryInfo", "note",
)

# Status moves a caller may make by hand; Đã chốt / Hoàn thành only via conversion.
MANUAL_QUOTE_MOVES = {
    QuoteStatus.NEW: {QuoteStatus.SENT, QuoteStatus.CANCELLED},
    QuoteStatus.SENT: {QuoteStatus.CANCELLED},
}


def _parse_status(enum_cls, raw, field: str = "status"):
    try:
        return enum_cls(str(raw).strip())
    except ValueError:
        allowed = ", ".join(s.value for s in enum_cls)
        raise ValidationError(f"{field} must be one of: {allowed}.", field=field)


# ======================
# Customer snapshot
# ======================
def _customer_snapshot(body: dict, current=None) -> dict:
    """
    Registered customer when customerId is given, otherwise the plain
    name/phone/address snapshot (walk-in when no name is given).
    """
    out = {}
    if "customerId" in body:
        customer_id = parse_id(body.get("customerId"), "customerId", required=False)
        customer = None
        if customer_id is not None:
            customer = db.session.get(Customer, customer_id)
            if customer is None:
                err = not_found("Customer", customer_id)
                err.field = "customerId"
                raise err
        out["customer_id"] = customer_id
        if customer is not None:
            out["customer_name"] = customer.name
            out["customer_phone"] = customer.phone
            out["customer_address"] = customer.address

    if "customerName" in body:
        out["customer_name"] = clean_str(body.get("customerName"), "customerName", NAME_MAXLEN)
    if "customerPhone" in body:
        out["customer_phone"] = clean_str(body.get("customerPhone"), "customerPhone", PHONE_MAXLEN)
    if "customerAddress" in body:
        out["customer_address"] = clean_str(body.get("customerAddress"), "customerAddress", ADDRESS_MAXLEN)

    if current is None or "customer_name" in out:
        if not out.get("customer_name"):
            out["customer_name"] = current_app.config["WALK_IN_CUSTOMER_NAME"]
    return out


def _check_discount(discount: float, ceiling: float) -> None:
    if discount > ceiling:
        raise ValidationError("discountAmount cannot exceed the document total.", field="discountAmount")


# ======================
# Quotes
# ======================
def get_quote(quote_id: int) -> Quote:
    quote = db.session.get(Quote, quote_id)
    if quote is None:
        raise not_found("Quote", quote_id)
    return quote


def create_quote(raw) -> Quote:
    body = require_object(raw)
    items = resolve_line_items(parse_line_items(body.get("items")))
    total = items_total(items)
    discount = parse_money(body.get("discountAmount"), "discountAmount")
    _check_discount(discount, total)

    values = {
        "customer_id": None,
        **_customer_snapshot(body),
        "total_amount": total,
        "discount_amount": discount,
        "expiry_date": parse_date(body.get("expiryDate"), "expiryDate"),
        "note": clean_str(body.get("note"), "note", NOTE_MAXLEN),
    }
    issue_date = parse_date(body.get("issueDate"), "issueDate")
    if issue_date:
        values["issue_date"] = issue_date

    def _write():
        quote = Quote(quote_number=next_number("quote"), status=QuoteStatus.NEW, **values)
        quote.items = [QuoteItem(**line.columns()) for line in items]
        db.session.add(quote)
        db.session.flush()
        return quote

    quote = run_numbered("Create quote", _write)
    log.info("quote %s created total=%s", quote.quote_number, quote.total_amount)
    return quote


def update_quote(quote_id: int, raw) -> Quote:
    body = require_object(raw)
    content = any(k in body for k in _QUOTE_CONTENT_KEYS)
    target = _parse_status(QuoteStatus, body["status"]) if body.get("status") else None

    with atomic("Update quote"):
        quote = get_quote(quote_id)

        if content:
            if quote.status != QuoteStatus.NEW:
                raise InvalidStateError(f"Quote {quote.quote_number} can only be edited while {QuoteStatus.NEW.value}.")
            _apply_quote_content(quote, body)

        if target is not None and target != quote.status:
            if target == QuoteStatus.ACCEPTED:
                raise InvalidStateError("A quote is accepted by converting it to an order.")
            if target not in MANUAL_QUOTE_MOVES.get(quote.status, set()):
                raise InvalidStateError(
                    f"Quote {quote.quote_number} cannot move from {quote.status.value} to {target.value}."
                )
            quote.status = target

    log.info("quote %s updated status=%s", quote.quote_number, quote.status.value)
    return quote


def _apply_quote_content(quote: Quote, body: dict) -> None:
    for column, value in _customer_snapshot(body, current=quote).items():
        setattr(quote, column, value)

    if "items" in body:
        items = resolve_line_items(parse_line_items(body.get("items")))
        quote.items = [QuoteItem(**line.columns()) for line in items]
        quote.total_amount = items_total(items)

    if "discountAmount" in body:
        quote.discount_amount = parse_money(body.get("discountAmount"), "discountAmount")
    _check_discount(quote.discount_amount, quote.total_amount)

    if "issueDate" in body:
        quote.issue_date = parse_date(body.get("issueDate"), "issueDate") or quote.issue_date
    if "expiryDate" in body:
        quote.expiry_date = parse_date(body.get("expiryDate"), "expiryDate")
    if "note" in body:
        quote.note = clean_str(body.get("note"), "note", NOTE_MAXLEN)


def delete_quote(quote_id: int) -> None:
    with atomic("Delete quote"):
        quote = get_quote(quote_id)
        # an order made from it keeps its own copy of the lines
        db.session.execute(
            sa.update(Order)
            .where(Order.source_quote_id == quote.id)
            .values(source_quote_id=None)
            .execution_options(synchronize_session=False)
        )
        db.session.delete(quote)
    log.info("quote %s deleted", quote.quote_number)


# ======================
# Orders
# ======================
def get_order(order_id: int) -> Order:
    order = db.session.get(Order, order_id)
    if order is None:
        raise not_found("Order", order_id)
    return order


def order_total(items_sum: float, delivery, discount: float) -> float:
    return round(items_sum + float(delivery.ship_fee) - discount, 2)


def _price_order(order: Order, items_sum: float, delivery, discount: float, deposit: float) -> None:
    _check_discount(discount, round(items_sum + float(delivery.ship_fee), 2))
    total = order_total(items_sum, delivery, discount)
    if deposit > total:
        raise ValidationError("paymentAmount cannot exceed the order total.", field="paymentAmount")
    order.delivery = delivery
    order.discount_amount = discount
    order.total_amount = total
    order.deposit_amount = deposit


def create_order(raw) -> Order:
    body = require_object(raw)
    items = resolve_line_items(parse_line_items(body.get("items")))
    delivery = parse_delivery_info(body.get("deliveryInfo"))
    discount = parse_money(body.get("discountAmount"), "discountAmount")
    deposit = parse_money(body.get("paymentAmount"), "paymentAmount")
    snapshot = _customer_snapshot(body)
    note = clean_str(body.get("note"), "note", NOTE_MAXLEN)

    def _write():
        order = Order(
            order_number=next_number("order"),
            status=OrderStatus.NEW,
            note=note,
            **{"customer_id": None, **snapshot},
        )
        _price_order(order, items_total(items), delivery, discount, deposit)
        order.items = [OrderItem(cost_price=line.cost_price, **line.columns()) for line in items]
        db.session.add(order)
        db.session.flush()
        return order

    order = run_numbered("Create order", _write)
    log.info("order %s created total=%s", order.order_number, order.total_amount)
    return order


def update_order(order_id: int, raw) -> Order:
    body = require_object(raw)
    content = any(k in body for k in _ORDER_CONTENT_KEYS)
    target = _parse_status(OrderStatus, body["status"]) if body.get("status") else None

    with atomic("Update order"):
        order = get_order(order_id)

        if content:
            if order.status != OrderStatus.NEW:
                raise InvalidStateError(f"Order {order.order_number} can only be edited while {OrderStatus.NEW.value}.")
            _apply_order_content(order, body)

        if target is not None and target != order.status:
            if target == OrderStatus.COMPLETED:
                raise InvalidStateError("An order is completed by exporting it to an invoice.")
            if not can_transition(ORDER_TRANSITIONS, order.status, target):
                raise InvalidStateError(
                    f"Order {order.order_number} cannot move from {order.status.value} to {target.value}."
                )
            order.status = target
            if target == OrderStatus.CANCELLED:
                order.cancelled_at = utcnow_naive()

    log.info("order %s updated status=%s", order.order_number, order.status.value)
    return order


def _apply_order_content(order: Order, body: dict) -> None:
    for column, value in _customer_snapshot(body, current=order).items():
        setattr(order, column, value)

    items_sum = order.items_total
    if "items" in body:
        items = resolve_line_items(parse_line_items(body.get("items")))
        order.items = [OrderItem(cost_price=line.cost_price, **line.columns()) for line in items]
        items_sum = items_total(items)

    delivery = order.delivery
    if "deliveryInfo" in body:
        delivery = parse_delivery_info(body.get("deliveryInfo")) if body.get("deliveryInfo") else NO_DELIVERY

    discount = order.discount_amount
    if "discountAmount" in body:
        discount = parse_money(body.get("discountAmount"), "discountAmount")

    deposit = order.deposit_amount
    if "paymentAmount" in body:
        deposit = parse_money(body.get("paymentAmount"), "paymentAmount")

    _price_order(order, items_sum, delivery, discount, deposit)

    if "note" in body:
        order.note = clean_str(body.get("note"), "note", NOTE_MAXLEN)


def delete_order(order_id: int) -> None:
    with atomic("Delete order"):
        order = get_order(order_id)
        if order.status not in (OrderStatus.NEW, OrderStatus.CANCELLED):
            raise InvalidStateError(f"Order {order.order_number} was exported and cannot be deleted.")
        db.session.delete(order)
    log.info("order %s deleted", order.order_number)
