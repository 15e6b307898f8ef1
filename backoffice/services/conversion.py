# backoffice/services/conversion.py
"""
Conversion service: the document state machine.

quote_to_order()   Quote (Mới | Đã gửi) -> Order, no stock or debt effect.
order_to_invoice() Order (Mới) -> Invoice. The one place a sale takes
                   stock out and raises customer debt.
cancel_invoice()   Reverses an export: stock back in, debt and cash refunded.

Each runs as a single atomic() unit of work. State claims are conditional
UPDATEs on the status column, so a second call on the same document loses
the race and fails with InvalidStateError instead of repeating the effects.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass

from ..errors import IntegrityError, InvalidStateError, not_found
from ..extensions import db
from ..models import (
    CASH_IN,
    CASH_OUT,
    Delivery,
    DeliveryNote,
    DeliveryStatus,
    Invoice,
    InvoiceItem,
    Order,
    OrderItem,
    OrderStatus,
    Quote,
    QuoteStatus,
    utcnow_naive,
)
from . import cashflow, ledger, stock
from .documents import get_order, get_quote
from .numbering import next_number
from .unit_of_work import guarded_update, run_numbered
from .validation import parse_money, parse_payment_method

log = logging.getLogger(__name__)

TOTAL_TOLERANCE = 0.005


@dataclass(frozen=True)
class ExportResult:
    """What the caller needs after an export: no navigation state, just results."""

    invoice: Invoice
    change_due: float
    delivery: DeliveryNote | None = None


def _same_amount(a: float, b: float) -> bool:
    return abs(float(a) - float(b)) <= TOTAL_TOLERANCE


# ======================
# Quote -> Order
# ======================
def quote_to_order(quote_id: int) -> Order:
    def _convert():
        quote = get_quote(quote_id)
        claimed = guarded_update(
            Quote,
            quote.id,
            Quote.status.in_([QuoteStatus.NEW, QuoteStatus.SENT]),
            status=QuoteStatus.ACCEPTED,
        )
        if claimed is None:
            raise InvalidStateError(
                f"Quote {quote.quote_number} is {quote.status.value} and cannot be converted.",
                details={"status": quote.status.value},
            )

        # Lines and prices are copied as they were quoted, not re-read from the catalog.
        order = Order(
            order_number=next_number("order"),
            status=OrderStatus.NEW,
            source_quote_id=quote.id,
            customer_id=quote.customer_id,
            customer_name=quote.customer_name,
            customer_phone=quote.customer_phone,
            customer_address=quote.customer_address,
            discount_amount=quote.discount_amount,
            total_amount=quote.final_amount,
            deposit_amount=0.0,
            note=quote.note,
        )
        order.items = [OrderItem(**item.snapshot()) for item in quote.items]
        db.session.add(order)
        db.session.flush()
        return order

    order = run_numbered("Convert quote to order", _convert)
    log.info("quote %s converted to order %s", quote_id, order.order_number)
    return order


# ======================
# Order -> Invoice
# ======================
def order_to_invoice(order_id: int, payment_amount=None, payment_method=None) -> ExportResult:
    """
    Export an order.

    paidAmount = clamp(deposit + payment, 0, total); anything above the
    total is change handed back, never a credit. The unpaid remainder is
    added to the customer's debt when a registered customer is attached.
    """
    payment = parse_money(payment_amount, "paymentAmount")
    method = parse_payment_method(payment_method)

    def _export():
        order = get_order(order_id)
        claimed = guarded_update(
            Order,
            order.id,
            Order.status == OrderStatus.NEW,
            status=OrderStatus.COMPLETED,
            completed_at=utcnow_naive(),
        )
        if claimed is None:
            raise InvalidStateError(
                f"Order {order.order_number} is {order.status.value} and cannot be exported.",
                details={"status": order.status.value},
            )
        order = claimed

        subtotal = round(order.items_total, 2)
        expected = round(subtotal + order.ship_fee - order.discount_amount, 2)
        if not _same_amount(expected, order.total_amount):
            raise IntegrityError(
                f"Order {order.order_number} total {order.total_amount} does not match its lines ({expected}).",
                details={"expected": expected, "recorded": order.total_amount},
            )

        invoice_number = next_number("invoice")
        stock.decrement_stock(order.items, kind=stock.SALE_OUT, reference=invoice_number)

        total = float(order.total_amount)
        tendered = round(float(order.deposit_amount) + payment, 2)
        paid = min(max(tendered, 0.0), total)
        change_due = round(tendered - paid, 2)

        invoice = Invoice(
            invoice_number=invoice_number,
            order_id=order.id,
            customer_id=order.customer_id,
            customer_name=order.customer_name,
            subtotal=subtotal,
            discount_amount=order.discount_amount,
            total_amount=total,
            paid_amount=paid,
            note=order.note,
        )
        invoice.delivery = order.delivery
        invoice.items = [
            InvoiceItem(cost_price=item.cost_price, **item.snapshot()) for item in order.items
        ]
        db.session.add(invoice)
        db.session.flush()

        remainder = round(total - paid, 2)
        if remainder > 0 and order.customer_id is not None:
            ledger.adjust_debt("customer", order.customer_id, remainder)

        if paid > 0:
            cashflow.record_cash_flow(
                CASH_IN,
                paid,
                category=cashflow.CATEGORY_SALES,
                description=f"Thu tiền hóa đơn {invoice.invoice_number}",
                payer_receiver_name=invoice.customer_name,
                payment_method=method,
                reference_type="invoice",
                reference_id=invoice.id,
            )

        note = None
        if isinstance(order.delivery, Delivery):
            note = DeliveryNote(
                delivery_number=next_number("delivery"),
                invoice_id=invoice.id,
                customer_name=invoice.customer_name,
                phone=order.delivery_phone,
                address=order.delivery_address,
                ship_fee=order.ship_fee,
                cod_amount=remainder,
                status=DeliveryStatus.PENDING,
            )
            db.session.add(note)
            db.session.flush()

        return ExportResult(invoice=invoice, change_due=change_due, delivery=note)

    result = run_numbered("Export order", _export)
    log.info(
        "order %s exported to invoice %s paid=%s/%s",
        order_id,
        result.invoice.invoice_number,
        result.invoice.paid_amount,
        result.invoice.total_amount,
    )
    return result


# ======================
# Invoice cancellation
# ======================
def get_invoice(invoice_id: int) -> Invoice:
    invoice = db.session.get(Invoice, invoice_id)
    if invoice is None:
        raise not_found("Invoice", invoice_id)
    return invoice


def cancel_invoice(invoice_id: int, reason: str | None = None) -> Invoice:
    """
    Goods come back: stock is restored for every line, the outstanding
    remainder leaves the customer's debt and what was paid is refunded.
    """

    def _cancel():
        invoice = get_invoice(invoice_id)
        claimed = guarded_update(
            Invoice,
            invoice.id,
            Invoice.cancelled_at.is_(None),
            cancelled_at=utcnow_naive(),
        )
        if claimed is None:
            raise InvalidStateError(f"Invoice {invoice.invoice_number} is already cancelled.")
        invoice = claimed

        stock.increment_stock(
            invoice.items,
            kind=stock.SALE_RETURN_IN,
            reference=invoice.invoice_number,
            note=reason,
        )

        remainder = round(invoice.total_amount - invoice.paid_amount, 2)
        if remainder > 0 and invoice.customer_id is not None:
            ledger.adjust_debt("customer", invoice.customer_id, -remainder)

        if invoice.paid_amount > 0:
            cashflow.record_cash_flow(
                CASH_OUT,
                invoice.paid_amount,
                category=cashflow.CATEGORY_REFUND,
                description=f"Hoàn tiền hóa đơn {invoice.invoice_number}",
                payer_receiver_name=invoice.customer_name,
                reference_type="invoice",
                reference_id=invoice.id,
            )
        return invoice

    invoice = run_numbered("Cancel invoice", _cancel)
    log.info("invoice %s cancelled", invoice.invoice_number)
    return invoice
