# tests/test_conversion.py
from __future__ import annotations

import pytest
import sqlalchemy as sa

from backoffice.errors import (
    InsufficientStockError,
    IntegrityError,
    InvalidStateError,
    NotFoundError,
)
from backoffice.extensions import db
from backoffice.models import (
    PAYMENT_PARTIAL,
    CashFlowTransaction,
    Customer,
    DeliveryNote,
    DeliveryStatus,
    Invoice,
    Order,
    OrderStatus,
    Product,
    QuoteStatus,
    StockHistory,
)
from backoffice.services import conversion, documents, stock


def _invoice_count() -> int:
    return db.session.execute(sa.select(sa.func.count(Invoice.id))).scalar()


# ======================
# Order -> Invoice
# ======================
def test_export_partial_payment_moves_stock_and_debt(make_product, make_customer, make_order):
    product = make_product(price=100.0, stock=10)
    customer = make_customer()
    order = make_order([(product, 2, 100.0)], customer=customer)

    result = conversion.order_to_invoice(order.id, 50)
    invoice = result.invoice

    assert invoice.total_amount == 200
    assert invoice.paid_amount == 50
    assert invoice.debt == 150
    assert invoice.payment_status == PAYMENT_PARTIAL
    assert invoice.invoice_number == "HD-00001"
    assert result.change_due == 0
    assert result.delivery is None

    assert db.session.get(Customer, customer.id).debt == 150
    assert db.session.get(Product, product.id).stock == 8
    assert db.session.get(Order, order.id).status == OrderStatus.COMPLETED

    [line] = invoice.items
    assert (line.product_id, line.quantity, line.price, line.line_total) == (product.id, 2, 100.0, 200.0)


def test_export_writes_stock_history_and_sale_receipt(exported):
    invoice, _customer, product = exported

    [history] = db.session.execute(sa.select(StockHistory)).scalars().all()
    assert history.product_id == product.id
    assert history.change_amount == -2
    assert history.balance_after == 8
    assert history.kind == "Xuất hàng"
    assert history.reference_number == invoice.invoice_number

    [receipt] = db.session.execute(sa.select(CashFlowTransaction)).scalars().all()
    assert receipt.kind == "thu"
    assert receipt.amount == 50
    assert receipt.transaction_number == "PT-00001"
    assert receipt.reference_id == invoice.id


def test_second_export_fails_without_touching_stock(exported):
    invoice, customer, product = exported

    with pytest.raises(InvalidStateError):
        conversion.order_to_invoice(invoice.order_id, 50)

    assert _invoice_count() == 1
    assert db.session.get(Product, product.id).stock == 8
    assert db.session.get(Customer, customer.id).debt == 150


def test_insufficient_stock_leaves_everything_untouched(make_product, make_customer, make_order):
    product = make_product(stock=1, name="Máy tính Casio")
    customer = make_customer()
    order = make_order([(product, 5, 100.0)], customer=customer)

    with pytest.raises(InsufficientStockError) as exc:
        conversion.order_to_invoice(order.id, 0)

    [shortfall] = exc.value.shortfalls
    assert shortfall == {"productId": product.id, "name": "Máy tính Casio", "requested": 5, "available": 1}

    assert db.session.get(Order, order.id).status == OrderStatus.NEW
    assert db.session.get(Product, product.id).stock == 1
    assert db.session.get(Customer, customer.id).debt == 0
    assert _invoice_count() == 0


def test_one_short_line_rolls_back_the_lines_already_taken(make_product, make_order):
    plenty = make_product(stock=10)
    scarce = make_product(stock=1)
    order = make_order([(plenty, 2, 10.0), (scarce, 3, 10.0)])

    with pytest.raises(InsufficientStockError) as exc:
        conversion.order_to_invoice(order.id, 0)

    assert [s["productId"] for s in exc.value.shortfalls] == [scarce.id]
    assert db.session.get(Product, plenty.id).stock == 10
    assert db.session.get(Product, scarce.id).stock == 1
    assert db.session.execute(sa.select(sa.func.count(StockHistory.id))).scalar() == 0


def test_same_product_on_two_lines_is_checked_as_one_quantity(make_product, make_order):
    product = make_product(stock=5)
    order = make_order([(product, 3, 10.0), (product, 3, 10.0)])

    with pytest.raises(InsufficientStockError) as exc:
        conversion.order_to_invoice(order.id, 0)

    assert exc.value.shortfalls[0]["requested"] == 6
    assert db.session.get(Product, product.id).stock == 5


def test_competing_orders_never_drive_stock_negative(make_product, make_order):
    product = make_product(stock=5)
    first = make_order([(product, 3, 10.0)])
    second = make_order([(product, 3, 10.0)])

    conversion.order_to_invoice(first.id, 0)
    with pytest.raises(InsufficientStockError):
        conversion.order_to_invoice(second.id, 0)

    assert db.session.get(Product, product.id).stock == 2
    assert db.session.get(Order, second.id).status == OrderStatus.NEW


def test_decrement_checks_live_stock_not_a_stale_read(make_product, make_order):
    product = make_product(stock=5)
    order = make_order([(product, 3, 10.0)])
    assert product.stock == 5

    # another sale takes 4 after our read
    db.session.execute(
        sa.update(Product)
        .where(Product.id == product.id)
        .values(stock=Product.stock - 4)
        .execution_options(synchronize_session=False)
    )
    assert product.stock == 5

    with pytest.raises(InsufficientStockError) as exc:
        stock.decrement_stock(order.items, kind=stock.SALE_OUT)

    assert exc.value.shortfalls == [
        {"productId": product.id, "name": product.name, "requested": 3, "available": 1}
    ]
    assert db.session.get(Product, product.id, populate_existing=True).stock == 1
    db.session.rollback()


def test_export_records_payment_method(make_product, make_order):
    product = make_product(stock=10)
    order = make_order([(product, 1, 100.0)])

    result = conversion.order_to_invoice(order.id, 100, payment_method="Thẻ")

    receipt = db.session.execute(
        sa.select(CashFlowTransaction).where(CashFlowTransaction.reference_id == result.invoice.id)
    ).scalar_one()
    assert receipt.payment_method == "Thẻ"


def test_excess_payment_is_change_not_credit(make_product, make_customer, make_order):
    product = make_product(stock=10)
    customer = make_customer()
    order = make_order([(product, 2, 100.0)], customer=customer)

    result = conversion.order_to_invoice(order.id, 250)

    assert result.invoice.paid_amount == 200
    assert result.invoice.debt == 0
    assert result.change_due == 50
    assert db.session.get(Customer, customer.id).debt == 0


def test_order_deposit_counts_toward_paid_amount(make_product, make_customer, make_order):
    product = make_product(stock=10)
    customer = make_customer()
    order = make_order([(product, 2, 100.0)], customer=customer, paymentAmount=80)

    result = conversion.order_to_invoice(order.id, 20)

    assert result.invoice.paid_amount == 100
    assert db.session.get(Customer, customer.id).debt == 100


def test_walk_in_sale_does_not_touch_any_ledger(make_product, make_customer, make_order):
    product = make_product(stock=10)
    bystander = make_customer()
    order = make_order([(product, 1, 100.0)])

    result = conversion.order_to_invoice(order.id, 0)

    assert result.invoice.customer_id is None
    assert result.invoice.customer_name == "Khách lẻ"
    assert result.invoice.debt == 100
    assert db.session.get(Customer, bystander.id).debt == 0


def test_delivery_export_creates_delivery_with_cod(make_product, make_customer, make_order):
    product = make_product(stock=10)
    customer = make_customer()
    order = make_order(
        [(product, 2, 100.0)],
        customer=customer,
        deliveryInfo={"isDelivery": True, "address": "12 Lê Lợi, Q1", "phone": "0901234567", "shipFee": 30},
    )
    assert order.total_amount == 230

    result = conversion.order_to_invoice(order.id, 30)

    assert result.invoice.ship_fee == 30
    assert result.invoice.subtotal == 200
    assert result.invoice.total_amount == 230
    note = result.delivery
    assert note.delivery_number == "GH-00001"
    assert note.cod_amount == 200
    assert note.status == DeliveryStatus.PENDING
    assert note.address == "12 Lê Lợi, Q1"
    assert db.session.get(DeliveryNote, note.id).invoice_id == result.invoice.id


def test_export_missing_order():
    with pytest.raises(NotFoundError):
        conversion.order_to_invoice(999, 0)


def test_export_cancelled_order_is_rejected(make_product, make_order):
    product = make_product(stock=10)
    order = make_order([(product, 1, 100.0)])
    documents.update_order(order.id, {"status": "Hủy"})

    with pytest.raises(InvalidStateError):
        conversion.order_to_invoice(order.id, 0)
    assert db.session.get(Product, product.id).stock == 10


def test_totals_that_do_not_reconcile_are_surfaced(make_product, make_order):
    product = make_product(stock=10)
    order = make_order([(product, 2, 100.0)])
    db.session.execute(sa.update(Order).where(Order.id == order.id).values(total_amount=150.0))
    db.session.commit()

    with pytest.raises(IntegrityError):
        conversion.order_to_invoice(order.id, 0)

    assert db.session.get(Order, order.id).status == OrderStatus.NEW
    assert db.session.get(Product, product.id).stock == 10


# ======================
# Quote -> Order
# ======================
def test_quote_prices_survive_catalog_price_changes(make_product, make_customer):
    product = make_product(price=100.0)
    customer = make_customer()
    quote = documents.create_quote(
        {
            "customerId": customer.id,
            "items": [{"productId": product.id, "quantity": 3, "price": 90}],
            "discountAmount": 20,
        }
    )

    product.price = 150.0
    db.session.commit()

    order = conversion.quote_to_order(quote.id)

    [line] = order.items
    assert line.price == 90
    assert order.total_amount == 250
    assert order.discount_amount == 20
    assert order.customer_id == customer.id
    assert order.source_quote_id == quote.id
    assert order.status == OrderStatus.NEW
    assert documents.get_quote(quote.id).status == QuoteStatus.ACCEPTED
    assert db.session.get(Product, product.id).stock == 10


def test_quote_converts_once(make_product):
    product = make_product()
    quote = documents.create_quote({"items": [{"productId": product.id, "quantity": 1}]})
    conversion.quote_to_order(quote.id)

    with pytest.raises(InvalidStateError):
        conversion.quote_to_order(quote.id)
    assert db.session.execute(sa.select(sa.func.count(Order.id))).scalar() == 1


def test_sent_quote_converts_cancelled_does_not(make_product):
    product = make_product()
    sent = documents.create_quote({"items": [{"productId": product.id, "quantity": 1}]})
    documents.update_quote(sent.id, {"status": "Đã gửi"})
    cancelled = documents.create_quote({"items": [{"productId": product.id, "quantity": 1}]})
    documents.update_quote(cancelled.id, {"status": "Hủy"})

    assert conversion.quote_to_order(sent.id).source_quote_id == sent.id
    with pytest.raises(InvalidStateError):
        conversion.quote_to_order(cancelled.id)


def test_quote_to_order_missing_quote():
    with pytest.raises(NotFoundError):
        conversion.quote_to_order(404)


# ======================
# Invoice cancellation
# ======================
def test_cancel_invoice_restores_stock_debt_and_refunds(exported):
    invoice, customer, product = exported

    cancelled = conversion.cancel_invoice(invoice.id, reason="Khách trả hàng")

    assert cancelled.cancelled_at is not None
    assert cancelled.payment_status == "Đã hủy"
    assert db.session.get(Product, product.id).stock == 10
    assert db.session.get(Customer, customer.id).debt == 0

    refund = db.session.execute(
        sa.select(CashFlowTransaction).where(CashFlowTransaction.kind == "chi")
    ).scalar_one()
    assert refund.amount == 50
    assert refund.category == "Hoàn tiền"
    assert refund.transaction_number == "PC-00001"

    kinds = db.session.execute(sa.select(StockHistory.kind).order_by(StockHistory.id)).scalars().all()
    assert kinds == ["Xuất hàng", "Nhập hàng trả"]


def test_cancel_invoice_twice_fails(exported):
    invoice, _customer, product = exported
    conversion.cancel_invoice(invoice.id)

    with pytest.raises(InvalidStateError):
        conversion.cancel_invoice(invoice.id)
    assert db.session.get(Product, product.id).stock == 10
