# backoffice/models.py
from __future__ import annotations

import enum
from dataclasses import dataclass
from datetime import date, datetime

import sqlalchemy as sa
from sqlalchemy import Enum as SAEnum
from sqlalchemy.ext.hybrid import hybrid_property

from .extensions import db


# Naive UTC everywhere: DB columns are "timestamp without time zone".
def utcnow_naive() -> datetime:
    return datetime.utcnow()


def _enum_column(enum_cls, name: str, default):
    return db.Column(
        SAEnum(
            enum_cls,
            name=name,
            values_callable=lambda cls: [e.value for e in cls],
            native_enum=False,
            length=30,
        ),
        nullable=False,
        default=default,
        index=True,
    )


# =========================================================
# Statuses + transitions
# =========================================================
class QuoteStatus(enum.Enum):
    NEW = "Mới"
    SENT = "Đã gửi"
    ACCEPTED = "Đã chốt"
    CANCELLED = "Hủy"


class OrderStatus(enum.Enum):
    NEW = "Mới"
    COMPLETED = "Hoàn thành"
    CANCELLED = "Hủy"


class DeliveryStatus(enum.Enum):
    PENDING = "Chờ giao"
    SHIPPING = "Đang giao"
    DELIVERED = "Đã giao"
    FAILED = "Giao thất bại"


QUOTE_TRANSITIONS = {
    QuoteStatus.NEW: {QuoteStatus.SENT, QuoteStatus.ACCEPTED, QuoteStatus.CANCELLED},
    QuoteStatus.SENT: {QuoteStatus.ACCEPTED, QuoteStatus.CANCELLED},
    QuoteStatus.ACCEPTED: set(),
    QuoteStatus.CANCELLED: set(),
}

ORDER_TRANSITIONS = {
    OrderStatus.NEW: {OrderStatus.COMPLETED, OrderStatus.CANCELLED},
    OrderStatus.COMPLETED: set(),
    OrderStatus.CANCELLED: set(),
}

DELIVERY_TRANSITIONS = {
    DeliveryStatus.PENDING: {DeliveryStatus.SHIPPING, DeliveryStatus.FAILED},
    DeliveryStatus.SHIPPING: {DeliveryStatus.DELIVERED, DeliveryStatus.FAILED},
    DeliveryStatus.DELIVERED: set(),
    DeliveryStatus.FAILED: set(),
}


def can_transition(table: dict, current, target) -> bool:
    return target in table.get(current, set())


# Amounts closer than this are the same amount (money is stored as float).
MONEY_TOLERANCE = 0.005

# Payment states are derived from amounts, never stored.
PAYMENT_UNPAID = "Chưa thanh toán"
PAYMENT_PARTIAL = "Thanh toán một phần"
PAYMENT_PAID = "Đã thanh toán"
PAYMENT_CANCELLED = "Đã hủy"


def payment_state(total: float, paid: float, cancelled: bool = False) -> str:
    if cancelled:
        return PAYMENT_CANCELLED
    if paid >= total:
        return PAYMENT_PAID
    if paid > 0:
        return PAYMENT_PARTIAL
    return PAYMENT_UNPAID


# =========================================================
# Delivery info (tagged variant)
# =========================================================
@dataclass(frozen=True)
class NoDelivery:
    is_delivery = False
    ship_fee = 0.0


@dataclass(frozen=True)
class Delivery:
    address: str
    phone: str
    ship_fee: float = 0.0
    is_delivery = True


NO_DELIVERY = NoDelivery()


class DeliveryFieldsMixin:
    is_delivery = db.Column(db.Boolean, nullable=False, default=False)
    delivery_address = db.Column(db.String(255), nullable=True)
    delivery_phone = db.Column(db.String(30), nullable=True)
    ship_fee = db.Column(db.Float, nullable=False, default=0.0)

    @property
    def delivery(self):
        if not self.is_delivery:
            return NO_DELIVERY
        return Delivery(
            address=self.delivery_address,
            phone=self.delivery_phone,
            ship_fee=float(self.ship_fee or 0),
        )

    @delivery.setter
    def delivery(self, info) -> None:
        if isinstance(info, Delivery):
            self.is_delivery = True
            self.delivery_address = info.address
            self.delivery_phone = info.phone
            self.ship_fee = float(info.ship_fee)
        else:
            self.is_delivery = False
            self.delivery_address = None
            self.delivery_phone = None
            self.ship_fee = 0.0


def _delivery_check(table: str) -> sa.CheckConstraint:
    return db.CheckConstraint(
        "NOT is_delivery OR (delivery_address IS NOT NULL AND delivery_phone IS NOT NULL)",
        name=f"ck_{table}_delivery_contact",
    )


# =========================================================
# Catalog
# =========================================================
class Product(db.Model):
    __tablename__ = "product"

    id = db.Column(db.Integer, primary_key=True)
    sku = db.Column(db.String(60), unique=True, nullable=False)
    name = db.Column(db.String(200), nullable=False)
    unit = db.Column(db.String(30), nullable=False, default="Cái")

    price = db.Column(db.Float, nullable=False, default=0.0)        # retail unit price
    cost_price = db.Column(db.Float, nullable=False, default=0.0)
    stock = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow_naive)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow_naive, onupdate=utcnow_naive)

    __table_args__ = (
        db.CheckConstraint("stock >= 0", name="ck_product_stock_nonnegative"),
        db.CheckConstraint("price >= 0", name="ck_product_price_nonnegative"),
    )

    def __repr__(self) -> str:
        return f"<Product {self.id} {self.sku} stock={self.stock}>"


class StockHistory(db.Model):
    __tablename__ = "stock_history"

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("product.id"), nullable=False, index=True)

    product_name = db.Column(db.String(200), nullable=False)
    sku = db.Column(db.String(60), nullable=True)

    change_amount = db.Column(db.Integer, nullable=False)   # +10 / -5
    balance_after = db.Column(db.Integer, nullable=False)
    kind = db.Column(db.String(40), nullable=False)         # Xuất hàng, Nhập hàng, ...
    reference_number = db.Column(db.String(40), nullable=True)
    note = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow_naive, index=True)


# =========================================================
# Partners
# =========================================================
class Customer(db.Model):
    __tablename__ = "customer"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(160), nullable=False)
    phone = db.Column(db.String(30), nullable=True)
    email = db.Column(db.String(120), nullable=True)
    address = db.Column(db.String(255), nullable=True)
    tax_code = db.Column(db.String(60), nullable=True)
    group = db.Column(db.String(60), nullable=True, default="Khách lẻ")
    notes = db.Column(db.Text, nullable=True)

    # Positive = customer owes the store. Only moved by conversion/payment services.
    debt = db.Column(db.Float, nullable=False, default=0.0)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow_naive)

    def __repr__(self) -> str:
        return f"<Customer {self.id} {self.name} debt={self.debt}>"


class Supplier(db.Model):
    __tablename__ = "supplier"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(160), nullable=False, index=True)
    phone = db.Column(db.String(30), nullable=True)
    email = db.Column(db.String(120), nullable=True)
    address = db.Column(db.String(255), nullable=True)
    tax_code = db.Column(db.String(60), nullable=True)
    website = db.Column(db.String(160), nullable=True)
    group = db.Column(db.String(60), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    # Positive = store owes the supplier.
    debt = db.Column(db.Float, nullable=False, default=0.0)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow_naive)

    def __repr__(self) -> str:
        return f"<Supplier {self.id} {self.name} debt={self.debt}>"


class DebtAdjustment(db.Model):
    """Manual debt override, kept so the ledger can still be reconciled."""

    __tablename__ = "debt_adjustment"

    id = db.Column(db.Integer, primary_key=True)
    partner_type = db.Column(db.String(20), nullable=False)  # customer|supplier
    partner_id = db.Column(db.Integer, nullable=False)

    previous_debt = db.Column(db.Float, nullable=False)
    new_debt = db.Column(db.Float, nullable=False)
    delta = db.Column(db.Float, nullable=False)
    reason = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow_naive)

    __table_args__ = (
        db.CheckConstraint("partner_type in ('customer','supplier')", name="ck_debt_adjustment_partner_type"),
        db.Index("ix_debt_adjustment_partner", "partner_type", "partner_id"),
    )


# =========================================================
# Quote
# =========================================================
class Quote(db.Model):
    __tablename__ = "quote"

    id = db.Column(db.Integer, primary_key=True)
    quote_number = db.Column(db.String(40), unique=True, nullable=False)

    customer_id = db.Column(db.Integer, db.ForeignKey("customer.id", ondelete="SET NULL"), nullable=True, index=True)
    customer = db.relationship("Customer", foreign_keys=[customer_id], lazy="joined")

    # Snapshot for non-registered customers
    customer_name = db.Column(db.String(160), nullable=False)
    customer_phone = db.Column(db.String(30), nullable=True)
    customer_address = db.Column(db.String(255), nullable=True)

    total_amount = db.Column(db.Float, nullable=False, default=0.0)
    discount_amount = db.Column(db.Float, nullable=False, default=0.0)

    status = _enum_column(QuoteStatus, "quote_status", QuoteStatus.NEW)

    issue_date = db.Column(db.Date, nullable=False, default=date.today)
    expiry_date = db.Column(db.Date, nullable=True)
    note = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow_naive, index=True)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow_naive, onupdate=utcnow_naive)

    items = db.relationship(
        "QuoteItem",
        back_populates="quote",
        cascade="all, delete-orphan",
        order_by="QuoteItem.id",
        lazy="select",
    )

    __table_args__ = (
        db.CheckConstraint("discount_amount >= 0 AND discount_amount <= total_amount", name="ck_quote_discount"),
    )

    @hybrid_property
    def final_amount(self):
        return self.total_amount - self.discount_amount

    def __repr__(self) -> str:
        return f"<Quote {self.id} {self.quote_number} {self.status}>"


class LineItemMixin:
    """Value snapshot of a product at the time the document was written."""

    id = db.Column(db.Integer, primary_key=True)
    sku = db.Column(db.String(60), nullable=True)
    name = db.Column(db.String(200), nullable=False)
    unit = db.Column(db.String(30), nullable=True)
    quantity = db.Column(db.Integer, nullable=False)
    price = db.Column(db.Float, nullable=False)
    line_total = db.Column(db.Float, nullable=False)

    def snapshot(self) -> dict:
        return {
            "product_id": self.product_id,
            "sku": self.sku,
            "name": self.name,
            "unit": self.unit,
            "quantity": self.quantity,
            "price": self.price,
            "line_total": self.line_total,
        }


def _line_checks(table: str) -> tuple:
    return (
        db.CheckConstraint("quantity >= 1", name=f"ck_{table}_quantity"),
        db.CheckConstraint("price >= 0", name=f"ck_{table}_price"),
    )


class QuoteItem(LineItemMixin, db.Model):
    __tablename__ = "quote_item"

    quote_id = db.Column(db.Integer, db.ForeignKey("quote.id", ondelete="CASCADE"), nullable=False, index=True)
    quote = db.relationship("Quote", back_populates="items")
    product_id = db.Column(db.Integer, db.ForeignKey("product.id"), nullable=False)

    __table_args__ = _line_checks("quote_item")


# =========================================================
# Order
# =========================================================
class Order(DeliveryFieldsMixin, db.Model):
    __tablename__ = "sales_order"

    id = db.Column(db.Integer, primary_key=True)
    order_number = db.Column(db.String(40), unique=True, nullable=False)

    customer_id = db.Column(db.Integer, db.ForeignKey("customer.id", ondelete="SET NULL"), nullable=True, index=True)
    customer = db.relationship("Customer", foreign_keys=[customer_id], lazy="joined")
    customer_name = db.Column(db.String(160), nullable=False)
    customer_phone = db.Column(db.String(30), nullable=True)
    customer_address = db.Column(db.String(255), nullable=True)

    # One order per accepted quote
    source_quote_id = db.Column(db.Integer, db.ForeignKey("quote.id", ondelete="SET NULL"), unique=True, nullable=True)

    total_amount = db.Column(db.Float, nullable=False, default=0.0)     # items + ship fee - discount
    discount_amount = db.Column(db.Float, nullable=False, default=0.0)
    deposit_amount = db.Column(db.Float, nullable=False, default=0.0)   # collected at order time

    status = _enum_column(OrderStatus, "order_status", OrderStatus.NEW)
    note = db.Column(db.Text, nullable=True)

    completed_at = db.Column(db.DateTime, nullable=True)
    cancelled_at = db.Column(db.DateTime, nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow_naive, index=True)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow_naive, onupdate=utcnow_naive)

    items = db.relationship(
        "OrderItem",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderItem.id",
        lazy="select",
    )

    __table_args__ = (
        db.CheckConstraint("deposit_amount >= 0 AND deposit_amount <= total_amount", name="ck_sales_order_deposit"),
        db.CheckConstraint("discount_amount >= 0", name="ck_sales_order_discount"),
        _delivery_check("sales_order"),
    )

    @property
    def items_total(self) -> float:
        return sum(float(i.line_total) for i in self.items)

    def __repr__(self) -> str:
        return f"<Order {self.id} {self.order_number} {self.status}>"


class OrderItem(LineItemMixin, db.Model):
    __tablename__ = "sales_order_item"

    order_id = db.Column(db.Integer, db.ForeignKey("sales_order.id", ondelete="CASCADE"), nullable=False, index=True)
    order = db.relationship("Order", back_populates="items")
    product_id = db.Column(db.Integer, db.ForeignKey("product.id"), nullable=False)
    cost_price = db.Column(db.Float, nullable=False, default=0.0)

    __table_args__ = _line_checks("sales_order_item")


# =========================================================
# Invoice
# =========================================================
class Invoice(DeliveryFieldsMixin, db.Model):
    __tablename__ = "invoice"

    id = db.Column(db.Integer, primary_key=True)
    invoice_number = db.Column(db.String(40), unique=True, nullable=False)

    # Exactly one invoice per exported order
    order_id = db.Column(db.Integer, db.ForeignKey("sales_order.id"), unique=True, nullable=False)
    order = db.relationship("Order", foreign_keys=[order_id], lazy="joined")

    customer_id = db.Column(db.Integer, db.ForeignKey("customer.id", ondelete="SET NULL"), nullable=True, index=True)
    customer_name = db.Column(db.String(160), nullable=False)

    issue_date = db.Column(db.Date, nullable=False, default=date.today, index=True)

    subtotal = db.Column(db.Float, nullable=False, default=0.0)
    discount_amount = db.Column(db.Float, nullable=False, default=0.0)
    total_amount = db.Column(db.Float, nullable=False, default=0.0)
    paid_amount = db.Column(db.Float, nullable=False, default=0.0)

    note = db.Column(db.Text, nullable=True)
    cancelled_at = db.Column(db.DateTime, nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow_naive, index=True)

    items = db.relationship(
        "InvoiceItem",
        back_populates="invoice",
        cascade="all, delete-orphan",
        order_by="InvoiceItem.id",
        lazy="select",
    )

    __table_args__ = (
        db.CheckConstraint("paid_amount >= 0 AND paid_amount <= total_amount", name="ck_invoice_paid_amount"),
        _delivery_check("invoice"),
    )

    # Outstanding balance: always computed from the two source fields.
    @hybrid_property
    def debt(self):
        return self.total_amount - self.paid_amount

    @property
    def is_cancelled(self) -> bool:
        return self.cancelled_at is not None

    @property
    def payment_status(self) -> str:
        return payment_state(self.total_amount, self.paid_amount, self.is_cancelled)

    def __repr__(self) -> str:
        return f"<Invoice {self.id} {self.invoice_number} {self.paid_amount}/{self.total_amount}>"


class InvoiceItem(LineItemMixin, db.Model):
    __tablename__ = "invoice_item"

    invoice_id = db.Column(db.Integer, db.ForeignKey("invoice.id", ondelete="CASCADE"), nullable=False, index=True)
    invoice = db.relationship("Invoice", back_populates="items")
    product_id = db.Column(db.Integer, db.ForeignKey("product.id"), nullable=False)
    cost_price = db.Column(db.Float, nullable=False, default=0.0)

    __table_args__ = _line_checks("invoice_item")


# =========================================================
# Delivery
# =========================================================
class DeliveryNote(db.Model):
    __tablename__ = "delivery"

    id = db.Column(db.Integer, primary_key=True)
    delivery_number = db.Column(db.String(40), unique=True, nullable=False)

    invoice_id = db.Column(db.Integer, db.ForeignKey("invoice.id"), unique=True, nullable=False)
    invoice = db.relationship("Invoice", foreign_keys=[invoice_id], lazy="joined")

    customer_name = db.Column(db.String(160), nullable=False)
    phone = db.Column(db.String(30), nullable=False)
    address = db.Column(db.String(255), nullable=False)

    ship_fee = db.Column(db.Float, nullable=False, default=0.0)
    cod_amount = db.Column(db.Float, nullable=False, default=0.0)   # unpaid remainder at export

    status = _enum_column(DeliveryStatus, "delivery_status", DeliveryStatus.PENDING)
    shipper_name = db.Column(db.String(120), nullable=True)
    note = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow_naive, index=True)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow_naive, onupdate=utcnow_naive)


# =========================================================
# Purchase (receiving)
# =========================================================
class Purchase(db.Model):
    __tablename__ = "purchase"

    id = db.Column(db.Integer, primary_key=True)
    purchase_number = db.Column(db.String(40), unique=True, nullable=False)

    supplier_id = db.Column(db.Integer, db.ForeignKey("supplier.id"), nullable=False, index=True)
    supplier = db.relationship("Supplier", foreign_keys=[supplier_id], lazy="joined")
    supplier_name = db.Column(db.String(160), nullable=False)

    issue_date = db.Column(db.Date, nullable=False, default=date.today, index=True)
    total_amount = db.Column(db.Float, nullable=False, default=0.0)
    paid_amount = db.Column(db.Float, nullable=False, default=0.0)
    note = db.Column(db.Text, nullable=True)

    returned_at = db.Column(db.DateTime, nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow_naive, index=True)

    items = db.relationship(
        "PurchaseItem",
        back_populates="purchase",
        cascade="all, delete-orphan",
        order_by="PurchaseItem.id",
        lazy="select",
    )

    __table_args__ = (
        db.CheckConstraint("paid_amount >= 0 AND paid_amount <= total_amount", name="ck_purchase_paid_amount"),
    )

    @hybrid_property
    def debt(self):
        return self.total_amount - self.paid_amount

    @property
    def is_returned(self) -> bool:
        return self.returned_at is not None

    @property
    def payment_status(self) -> str:
        return payment_state(self.total_amount, self.paid_amount, self.is_returned)


class PurchaseItem(db.Model):
    __tablename__ = "purchase_item"

    id = db.Column(db.Integer, primary_key=True)
    purchase_id = db.Column(db.Integer, db.ForeignKey("purchase.id", ondelete="CASCADE"), nullable=False, index=True)
    purchase = db.relationship("Purchase", back_populates="items")

    product_id = db.Column(db.Integer, db.ForeignKey("product.id"), nullable=False)
    name = db.Column(db.String(200), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    cost_price = db.Column(db.Float, nullable=False)
    line_total = db.Column(db.Float, nullable=False)

    __table_args__ = (
        db.CheckConstraint("quantity >= 1", name="ck_purchase_item_quantity"),
        db.CheckConstraint("cost_price >= 0", name="ck_purchase_item_cost_price"),
    )


# =========================================================
# Cash-flow journal
# =========================================================
CASH_IN = "thu"
CASH_OUT = "chi"

PAYMENT_METHOD_CASH = "Tiền mặt"
PAYMENT_METHOD_TRANSFER = "Chuyển khoản"
PAYMENT_METHOD_CARD = "Thẻ"
PAYMENT_METHODS = (PAYMENT_METHOD_CASH, PAYMENT_METHOD_TRANSFER, PAYMENT_METHOD_CARD)


class CashFlowTransaction(db.Model):
    __tablename__ = "cash_flow_transaction"

    id = db.Column(db.Integer, primary_key=True)
    transaction_number = db.Column(db.String(40), unique=True, nullable=False)

    kind = db.Column(db.String(10), nullable=False, index=True)  # thu|chi
    amount = db.Column(db.Float, nullable=False)
    category = db.Column(db.String(60), nullable=False)
    description = db.Column(db.String(255), nullable=False)
    payer_receiver_name = db.Column(db.String(160), nullable=True)
    payment_method = db.Column(db.String(30), nullable=False, default=PAYMENT_METHOD_CASH)

    reference_type = db.Column(db.String(20), nullable=True)  # invoice|purchase
    reference_id = db.Column(db.Integer, nullable=True)

    transaction_date = db.Column(db.Date, nullable=False, default=date.today, index=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow_naive)

    __table_args__ = (
        db.CheckConstraint("kind in ('thu','chi')", name="ck_cash_flow_kind"),
        db.CheckConstraint("amount > 0", name="ck_cash_flow_amount_positive"),
        db.Index("ix_cash_flow_reference", "reference_type", "reference_id"),
    )
