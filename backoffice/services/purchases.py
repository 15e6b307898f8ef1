# backoffice/services/purchases.py
"""
Receiving: goods in from a supplier. Mirror image of an order export:
stock goes up, the supplier's debt grows by what is still unpaid.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass

from ..errors import InvalidStateError, ValidationError, not_found
from ..extensions import db
from ..models import CASH_IN, CASH_OUT, Product, Purchase, PurchaseItem, Supplier, utcnow_naive
from . import cashflow, ledger, stock
from .numbering import next_number
from .unit_of_work import guarded_update, run_numbered
from .validation import (
    NOTE_MAXLEN,
    clean_str,
    parse_date,
    parse_id,
    parse_money,
    parse_payment_method,
    parse_quantity,
    require_object,
)

log = logging.getLogger(__name__)

TOTAL_TOLERANCE = 0.005


@dataclass(frozen=True)
class ReceivedLine:
    product_id: int
    name: str
    quantity: int
    cost_price: float

    @property
    def line_total(self) -> float:
        return round(self.quantity * self.cost_price, 2)


def get_purchase(purchase_id: int) -> Purchase:
    purchase = db.session.get(Purchase, purchase_id)
    if purchase is None:
        raise not_found("Purchase", purchase_id)
    return purchase


def _parse_received_lines(raw) -> list[ReceivedLine]:
    if not isinstance(raw, list) or not raw:
        raise ValidationError("At least one item is required.", field="items")

    lines = []
    for idx, entry in enumerate(raw):
        path = f"items[{idx}]"
        if not isinstance(entry, dict):
            raise ValidationError(f"{path} must be an object.", field=path)
        product_id = parse_id(entry.get("productId"), f"{path}.productId")
        product = db.session.get(Product, product_id)
        if product is None:
            err = not_found("Product", product_id)
            err.field = f"{path}.productId"
            raise err
        lines.append(
            ReceivedLine(
                product_id=product.id,
                name=clean_str(entry.get("name"), f"{path}.name", 200) or product.name,
                quantity=parse_quantity(entry.get("quantity"), f"{path}.quantity"),
                cost_price=parse_money(entry.get("costPrice"), f"{path}.costPrice", required=True),
            )
        )
    return lines


def create_purchase(raw) -> Purchase:
    body = require_object(raw)

    supplier_id = parse_id(body.get("supplierId"), "supplierId")
    supplier = db.session.get(Supplier, supplier_id)
    if supplier is None:
        err = not_found("Supplier", supplier_id)
        err.field = "supplierId"
        raise err

    lines = _parse_received_lines(body.get("items"))
    total = parse_money(body.get("totalAmount"), "totalAmount", required=True)
    computed = round(sum(line.line_total for line in lines), 2)
    if abs(total - computed) > TOTAL_TOLERANCE:
        raise ValidationError(
            f"totalAmount {total} does not match the items ({computed}).",
            field="totalAmount",
            details={"expected": computed},
        )

    paid = parse_money(body.get("paidAmount"), "paidAmount")
    method = parse_payment_method(body.get("paymentMethod"))
    if paid > total:
        raise ValidationError("paidAmount cannot exceed totalAmount.", field="paidAmount")

    issue_date = parse_date(body.get("issueDate"), "issueDate")
    note = clean_str(body.get("note"), "note", NOTE_MAXLEN)

    def _receive():
        purchase = Purchase(
            purchase_number=next_number("purchase"),
            supplier_id=supplier.id,
            supplier_name=supplier.name,
            total_amount=total,
            paid_amount=paid,
            note=note,
        )
        if issue_date:
            purchase.issue_date = issue_date
        purchase.items = [
            PurchaseItem(
                product_id=line.product_id,
                name=line.name,
                quantity=line.quantity,
                cost_price=line.cost_price,
                line_total=line.line_total,
            )
            for line in lines
        ]
        db.session.add(purchase)
        db.session.flush()

        stock.increment_stock(lines, kind=stock.PURCHASE_IN, reference=purchase.purchase_number)
        for line in lines:
            db.session.get(Product, line.product_id).cost_price = line.cost_price

        remainder = round(total - paid, 2)
        if remainder > 0:
            ledger.adjust_debt("supplier", supplier.id, remainder)

        if paid > 0:
            cashflow.record_cash_flow(
                CASH_OUT,
                paid,
                category=cashflow.CATEGORY_SUPPLIER_PAYMENT,
                description=f"Trả tiền phiếu nhập {purchase.purchase_number}",
                payer_receiver_name=supplier.name,
                payment_method=method,
                reference_type="purchase",
                reference_id=purchase.id,
            )
        return purchase

    purchase = run_numbered("Receive purchase", _receive)
    log.info("purchase %s received total=%s paid=%s", purchase.purchase_number, total, paid)
    return purchase


def return_purchase(purchase_id: int, reason: str | None = None) -> Purchase:
    """
    Send the goods back. Stock is taken out with the same all-or-nothing
    conditional decrement as a sale; the unpaid remainder leaves the
    supplier's debt and any paid amount comes back as a refund.
    """

    def _return():
        purchase = get_purchase(purchase_id)
        claimed = guarded_update(
            Purchase,
            purchase.id,
            Purchase.returned_at.is_(None),
            returned_at=utcnow_naive(),
        )
        if claimed is None:
            raise InvalidStateError(f"Purchase {purchase.purchase_number} was already returned.")
        purchase = claimed

        stock.decrement_stock(
            purchase.items,
            kind=stock.PURCHASE_RETURN_OUT,
            reference=purchase.purchase_number,
            note=reason,
        )

        remainder = round(purchase.total_amount - purchase.paid_amount, 2)
        if remainder > 0:
            ledger.adjust_debt("supplier", purchase.supplier_id, -remainder)

        if purchase.paid_amount > 0:
            cashflow.record_cash_flow(
                CASH_IN,
                purchase.paid_amount,
                category=cashflow.CATEGORY_REFUND,
                description=f"NCC hoàn tiền phiếu nhập {purchase.purchase_number}",
                payer_receiver_name=purchase.supplier_name,
                reference_type="purchase",
                reference_id=purchase.id,
            )
        return purchase

    purchase = run_numbered("Return purchase", _return)
    log.info("purchase %s returned", purchase.purchase_number)
    return purchase
