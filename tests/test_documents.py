# tests/test_documents.py
from __future__ import annotations

import pytest
import sqlalchemy as sa

from backoffice.errors import InvalidStateError, NotFoundError, ValidationError
from backoffice.extensions import db
from backoffice.models import NO_DELIVERY, Delivery, Order, OrderStatus, Quote, QuoteStatus
from backoffice.services import conversion, documents


# ======================
# Validation gate
# ======================
def test_order_needs_items():
    with pytest.raises(ValidationError) as exc:
        documents.create_order({"items": []})
    assert exc.value.field == "items"


@pytest.mark.parametrize(
    "line, field",
    [
        ({"quantity": 0, "price": 10}, "items[0].quantity"),
        ({"quantity": 1.5, "price": 10}, "items[0].quantity"),
        ({"quantity": "two", "price": 10}, "items[0].quantity"),
        ({"quantity": 1, "price": -1}, "items[0].price"),
    ],
)
def test_line_item_constraints(make_product, line, field):
    product = make_product()
    with pytest.raises(ValidationError) as exc:
        documents.create_order({"items": [{"productId": product.id, **line}]})
    assert exc.value.field == field


def test_line_item_must_reference_real_product():
    with pytest.raises(NotFoundError) as exc:
        documents.create_order({"items": [{"productId": 77, "quantity": 1, "price": 10}]})
    assert exc.value.field == "items[0].productId"


def test_delivery_contact_required_only_when_delivering(make_product):
    product = make_product()
    items = [{"productId": product.id, "quantity": 1, "price": 10}]

    with pytest.raises(ValidationError) as exc:
        documents.create_order({"items": items, "deliveryInfo": {"isDelivery": True, "phone": "0901"}})
    assert exc.value.field == "deliveryInfo.address"

    with pytest.raises(ValidationError) as exc:
        documents.create_order({"items": items, "deliveryInfo": {"isDelivery": True, "address": "1 Hai Bà Trưng"}})
    assert exc.value.field == "deliveryInfo.phone"

    order = documents.create_order({"items": items, "deliveryInfo": {"isDelivery": False, "shipFee": 99}})
    assert order.delivery == NO_DELIVERY
    assert order.ship_fee == 0
    assert order.total_amount == 10


def test_order_total_includes_ship_fee_and_discount(make_product):
    product = make_product()
    order = documents.create_order(
        {
            "items": [{"productId": product.id, "quantity": 3, "price": 50}],
            "deliveryInfo": {"isDelivery": True, "address": "5 Nguyễn Huệ", "phone": "0909", "shipFee": 25},
            "discountAmount": 15,
        }
    )

    assert order.total_amount == 160
    assert order.delivery == Delivery(address="5 Nguyễn Huệ", phone="0909", ship_fee=25.0)
    assert order.order_number == "DH-00001"


def test_line_price_defaults_to_catalog_snapshot(make_product):
    product = make_product(price=42.0)
    order = documents.create_order({"items": [{"productId": product.id, "quantity": 2}]})

    [line] = order.items
    assert line.price == 42.0
    assert line.line_total == 84.0
    assert line.sku == product.sku


def test_deposit_cannot_exceed_total(make_product):
    product = make_product()
    with pytest.raises(ValidationError) as exc:
        documents.create_order(
            {"items": [{"productId": product.id, "quantity": 1, "price": 10}], "paymentAmount": 11}
        )
    assert exc.value.field == "paymentAmount"


def test_unknown_customer_is_not_found(make_product):
    product = make_product()
    with pytest.raises(NotFoundError):
        documents.create_order({"customerId": 5, "items": [{"productId": product.id, "quantity": 1}]})


# ======================
# Order lifecycle
# ======================
def test_order_edit_recomputes_total(make_product, make_order):
    product = make_product()
    order = make_order([(product, 1, 100.0)])

    updated = documents.update_order(
        order.id, {"items": [{"productId": product.id, "quantity": 4, "price": 25}], "note": "giao buổi sáng"}
    )

    assert updated.total_amount == 100
    assert [i.quantity for i in updated.items] == [4]
    assert updated.note == "giao buổi sáng"


def test_order_cannot_be_completed_by_hand(make_product, make_order):
    order = make_order([(make_product(), 1, 10.0)])

    with pytest.raises(InvalidStateError):
        documents.update_order(order.id, {"status": "Hoàn thành"})
    assert documents.get_order(order.id).status == OrderStatus.NEW


def test_exported_order_is_frozen(make_product, make_order):
    order = make_order([(make_product(), 1, 10.0)])
    conversion.order_to_invoice(order.id, 10)

    with pytest.raises(InvalidStateError):
        documents.update_order(order.id, {"note": "late edit"})
    with pytest.raises(InvalidStateError):
        documents.update_order(order.id, {"status": "Hủy"})
    with pytest.raises(InvalidStateError):
        documents.delete_order(order.id)


def test_cancel_then_delete_order(make_product, make_order):
    order = make_order([(make_product(), 1, 10.0)])

    cancelled = documents.update_order(order.id, {"status": "Hủy"})
    assert cancelled.status == OrderStatus.CANCELLED
    assert cancelled.cancelled_at is not None

    with pytest.raises(InvalidStateError):
        documents.update_order(order.id, {"status": "Mới"})

    documents.delete_order(order.id)
    assert db.session.get(Order, order.id) is None


def test_bad_status_value(make_product, make_order):
    order = make_order([(make_product(), 1, 10.0)])
    with pytest.raises(ValidationError) as exc:
        documents.update_order(order.id, {"status": "Done"})
    assert exc.value.field == "status"


# ======================
# Quote lifecycle
# ======================
def test_quote_create_and_edit_while_new(make_product):
    product = make_product(price=100.0)
    quote = documents.create_quote(
        {
            "customerName": "Chị Lan",
            "customerPhone": "0933",
            "items": [{"productId": product.id, "quantity": 2}],
            "discountAmount": 10,
            "expiryDate": "2026-12-31",
        }
    )
    assert quote.quote_number == "BG-00001"
    assert quote.status == QuoteStatus.NEW
    assert quote.final_amount == 190

    edited = documents.update_quote(quote.id, {"items": [{"productId": product.id, "quantity": 1, "price": 80}]})
    assert edited.total_amount == 80
    assert edited.final_amount == 70


def test_quote_discount_cannot_exceed_total(make_product):
    product = make_product(price=10.0)
    with pytest.raises(ValidationError) as exc:
        documents.create_quote({"items": [{"productId": product.id, "quantity": 1}], "discountAmount": 11})
    assert exc.value.field == "discountAmount"


def test_sent_quote_is_read_only(make_product):
    quote = documents.create_quote({"items": [{"productId": make_product().id, "quantity": 1}]})
    documents.update_quote(quote.id, {"status": "Đã gửi"})

    with pytest.raises(InvalidStateError):
        documents.update_quote(quote.id, {"note": "changed"})


def test_quote_manual_status_moves(make_product):
    quote = documents.create_quote({"items": [{"productId": make_product().id, "quantity": 1}]})

    with pytest.raises(InvalidStateError):
        documents.update_quote(quote.id, {"status": "Đã chốt"})

    assert documents.update_quote(quote.id, {"status": "Đã gửi"}).status == QuoteStatus.SENT
    with pytest.raises(InvalidStateError):
        documents.update_quote(quote.id, {"status": "Mới"})
    assert documents.update_quote(quote.id, {"status": "Hủy"}).status == QuoteStatus.CANCELLED


def test_delete_quote_keeps_its_order(make_product):
    quote = documents.create_quote({"items": [{"productId": make_product().id, "quantity": 1}]})
    order = conversion.quote_to_order(quote.id)

    documents.delete_quote(quote.id)

    assert db.session.get(Quote, quote.id) is None
    kept = db.session.get(Order, order.id)
    assert kept.source_quote_id is None
    assert len(kept.items) == 1
    assert db.session.execute(sa.select(sa.func.count(Quote.id))).scalar() == 0
