# backoffice/services/validation.py
"""
Validation gate for everything that gets persisted.

Request payloads are camelCase JSON; parsers here return plain Python
values (or small frozen dataclasses) and raise ValidationError with the
offending field path, e.g. ``items[2].quantity``.
"""
from __future__ import annotations

import math
import re
from dataclasses import dataclass
from datetime import date
from typing import Any

from ..errors import ValidationError, not_found
from ..extensions import db
from ..models import NO_DELIVERY, PAYMENT_METHOD_CASH, PAYMENT_METHODS, Delivery, Product

NAME_MAXLEN = 160
PHONE_MAXLEN = 30
EMAIL_MAXLEN = 120
ADDRESS_MAXLEN = 255
TAX_CODE_MAXLEN = 60
GROUP_MAXLEN = 60
WEBSITE_MAXLEN = 160
NOTE_MAXLEN = 2000

MONEY_PLACES = 2

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
_SUPPLIER_PHONE_RE = re.compile(r"^[0-9]{10,11}$")


# ======================
# Scalars
# ======================
def _is_blank(val: Any) -> bool:
    return val is None or (isinstance(val, str) and val.strip() == "")


def parse_money(val: Any, field: str, *, required: bool = False, default: float = 0.0) -> float:
    if _is_blank(val):
        if required:
            raise ValidationError(f"{field} is required.", field=field)
        return default
    if isinstance(val, bool):
        raise ValidationError(f"{field} must be a number.", field=field)
    try:
        amount = float(val)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be a number.", field=field)
    if not math.isfinite(amount):
        raise ValidationError(f"{field} must be a finite number.", field=field)
    if amount < 0:
        raise ValidationError(f"{field} must be 0 or greater.", field=field)
    return round(amount, MONEY_PLACES)


def parse_positive_money(val: Any, field: str) -> float:
    amount = parse_money(val, field, required=True)
    if amount <= 0:
        raise ValidationError(f"{field} must be greater than 0.", field=field)
    return amount


def parse_quantity(val: Any, field: str) -> int:
    if _is_blank(val):
        raise ValidationError(f"{field} is required.", field=field)
    if isinstance(val, bool):
        raise ValidationError(f"{field} must be a whole number.", field=field)
    try:
        qty = float(val)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be a whole number.", field=field)
    if not math.isfinite(qty) or qty != int(qty):
        raise ValidationError(f"{field} must be a whole number.", field=field)
    if qty < 1:
        raise ValidationError(f"{field} must be at least 1.", field=field)
    return int(qty)


def parse_id(val: Any, field: str, *, required: bool = True) -> int | None:
    if _is_blank(val):
        if required:
            raise ValidationError(f"{field} is required.", field=field)
        return None
    if isinstance(val, bool):
        raise ValidationError(f"{field} must be an id.", field=field)
    try:
        ident = int(val)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be an id.", field=field)
    if ident < 1:
        raise ValidationError(f"{field} must be an id.", field=field)
    return ident


def parse_date(val: Any, field: str) -> date | None:
    if _is_blank(val):
        return None
    try:
        # accept full ISO timestamps too, only the date part matters
        return date.fromisoformat(str(val).strip()[:10])
    except ValueError:
        raise ValidationError(f"{field} must be a date (YYYY-MM-DD).", field=field)


def parse_bool(val: Any, default: bool = False) -> bool:
    if val is None:
        return default
    if isinstance(val, bool):
        return val
    return str(val).strip().lower() in ("1", "true", "yes", "on")


def parse_payment_method(val: Any, field: str = "paymentMethod") -> str:
    if _is_blank(val):
        return PAYMENT_METHOD_CASH
    method = str(val).strip()
    if method not in PAYMENT_METHODS:
        raise ValidationError(
            f"{field} must be one of: {', '.join(PAYMENT_METHODS)}.",
            field=field,
        )
    return method


def clean_str(val: Any, field: str, maxlen: int, *, required: bool = False) -> str | None:
    s = "" if val is None else str(val).strip()
    if not s:
        if required:
            raise ValidationError(f"{field} is required.", field=field)
        return None
    if len(s) > maxlen:
        raise ValidationError(f"{field} is too long (max {maxlen}).", field=field)
    return s


def require_object(body: Any, field: str = "body") -> dict:
    if not isinstance(body, dict):
        raise ValidationError("Request body must be a JSON object.", field=field)
    return body


# ======================
# Line items
# ======================
@dataclass(frozen=True)
class LineItemInput:
    product_id: int
    quantity: int
    price: float | None


@dataclass(frozen=True)
class LineItem:
    """Value snapshot copied into a document; never a live product reference."""

    product_id: int
    sku: str | None
    name: str
    unit: str | None
    quantity: int
    price: float
    cost_price: float = 0.0

    @property
    def line_total(self) -> float:
        return round(self.quantity * self.price, MONEY_PLACES)

    def columns(self) -> dict:
        return {
            "product_id": self.product_id,
            "sku": self.sku,
            "name": self.name,
            "unit": self.unit,
            "quantity": self.quantity,
            "price": self.price,
            "line_total": self.line_total,
        }


def parse_line_items(raw: Any, field: str = "items") -> list[LineItemInput]:
    if not isinstance(raw, list) or not raw:
        raise ValidationError("At least one item is required.", field=field)

    out: list[LineItemInput] = []
    for idx, entry in enumerate(raw):
        path = f"{field}[{idx}]"
        if not isinstance(entry, dict):
            raise ValidationError(f"{path} must be an object.", field=path)
        product_id = parse_id(entry.get("productId"), f"{path}.productId")
        quantity = parse_quantity(entry.get("quantity"), f"{path}.quantity")
        price = None
        if not _is_blank(entry.get("price")):
            price = parse_money(entry.get("price"), f"{path}.price")
        out.append(LineItemInput(product_id=product_id, quantity=quantity, price=price))
    return out


def resolve_line_items(inputs: list[LineItemInput], field: str = "items") -> list[LineItem]:
    """
    Check every product exists and snapshot it. A price given by the
    caller wins; otherwise the current catalog price is captured.
    """
    items: list[LineItem] = []
    for idx, entry in enumerate(inputs):
        product = db.session.get(Product, entry.product_id)
        if product is None:
            err = not_found("Product", entry.product_id)
            err.field = f"{field}[{idx}].productId"
            raise err
        items.append(
            LineItem(
                product_id=product.id,
                sku=product.sku,
                name=product.name,
                unit=product.unit,
                quantity=entry.quantity,
                price=float(product.price) if entry.price is None else entry.price,
                cost_price=float(product.cost_price or 0),
            )
        )
    return items


def items_total(items) -> float:
    return round(sum(i.line_total for i in items), MONEY_PLACES)


# ======================
# Delivery info
# ======================
def parse_delivery_info(raw: Any, field: str = "deliveryInfo"):
    """NoDelivery unless isDelivery is true; then address and phone become required."""
    if raw is None:
        return NO_DELIVERY
    if not isinstance(raw, dict):
        raise ValidationError(f"{field} must be an object.", field=field)
    if not parse_bool(raw.get("isDelivery")):
        return NO_DELIVERY

    return Delivery(
        address=clean_str(raw.get("address"), f"{field}.address", ADDRESS_MAXLEN, required=True),
        phone=clean_str(raw.get("phone"), f"{field}.phone", PHONE_MAXLEN, required=True),
        ship_fee=parse_money(raw.get("shipFee"), f"{field}.shipFee"),
    )


# ======================
# Partners
# ======================
_PARTNER_FIELDS = {
    # payload key -> (column, maxlen)
    "name": ("name", NAME_MAXLEN),
    "phone": ("phone", PHONE_MAXLEN),
    "email": ("email", EMAIL_MAXLEN),
    "address": ("address", ADDRESS_MAXLEN),
    "taxCode": ("tax_code", TAX_CODE_MAXLEN),
    "group": ("group", GROUP_MAXLEN),
    "notes": ("notes", NOTE_MAXLEN),
}

_SUPPLIER_FIELDS = {**_PARTNER_FIELDS, "website": ("website", WEBSITE_MAXLEN)}


def parse_partner_payload(raw: Any, kind: str, *, creating: bool) -> dict:
    """
    Column values for a customer/supplier write.

    ``debt`` is refused on create (a new partner starts at 0). On update a
    numeric ``debt`` is accepted and returned under the "debt" key so the
    caller can record it as an explicit adjustment.
    """
    body = require_object(raw)
    fields = _SUPPLIER_FIELDS if kind == "supplier" else _PARTNER_FIELDS

    if creating and "debt" in body:
        raise ValidationError("debt cannot be set when creating a partner.", field="debt")

    values: dict = {}
    for key, (column, maxlen) in fields.items():
        if key not in body:
            continue
        required = key == "name"
        values[column] = clean_str(body.get(key), key, maxlen, required=required)

    if creating and not values.get("name"):
        raise ValidationError("name is required.", field="name")

    email = values.get("email")
    if email and not _EMAIL_RE.match(email):
        raise ValidationError("email is not a valid address.", field="email")

    phone = values.get("phone")
    if kind == "supplier" and phone and not _SUPPLIER_PHONE_RE.match(phone):
        raise ValidationError("phone must be 10 or 11 digits.", field="phone")

    if not creating and "debt" in body:
        if _is_blank(body.get("debt")) or isinstance(body.get("debt"), bool):
            raise ValidationError("debt must be a number.", field="debt")
        try:
            values["debt"] = round(float(body["debt"]), MONEY_PLACES)
        except (TypeError, ValueError):
            raise ValidationError("debt must be a number.", field="debt")
        values["debt_reason"] = clean_str(body.get("debtReason"), "debtReason", ADDRESS_MAXLEN)

    if not creating and not values:
        raise ValidationError("Provide at least one field to update.")

    return values
