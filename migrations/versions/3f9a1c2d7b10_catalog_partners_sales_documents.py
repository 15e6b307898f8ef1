"""catalog_partners_sales_documents

Revision ID: 3f9a1c2d7b10
Revises:
Create Date: 2026-09-28 10:12:41.503117

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '3f9a1c2d7b10'
down_revision = None
branch_labels = None
depends_on = None


def _line_columns():
    return [
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("product_id", sa.Integer(), sa.ForeignKey("product.id"), nullable=False),
        sa.Column("sku", sa.String(length=60), nullable=True),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("unit", sa.String(length=30), nullable=True),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("price", sa.Float(), nullable=False),
        sa.Column("line_total", sa.Float(), nullable=False),
    ]


def upgrade():
    # =========================
    # product
    # =========================
    op.create_table(
        "product",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("sku", sa.String(length=60), nullable=False, unique=True),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("unit", sa.String(length=30), nullable=False, server_default="Cái"),
        sa.Column("price", sa.Float(), nullable=False, server_default="0"),
        sa.Column("cost_price", sa.Float(), nullable=False, server_default="0"),
        sa.Column("stock", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint("stock >= 0", name="ck_product_stock_nonnegative"),
        sa.CheckConstraint("price >= 0", name="ck_product_price_nonnegative"),
    )

    # =========================
    # stock_history
    # =========================
    op.create_table(
        "stock_history",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("product_id", sa.Integer(), sa.ForeignKey("product.id"), nullable=False),
        sa.Column("product_name", sa.String(length=200), nullable=False),
        sa.Column("sku", sa.String(length=60), nullable=True),
        sa.Column("change_amount", sa.Integer(), nullable=False),
        sa.Column("balance_after", sa.Integer(), nullable=False),
        sa.Column("kind", sa.String(length=40), nullable=False),
        sa.Column("reference_number", sa.String(length=40), nullable=True),
        sa.Column("note", sa.String(length=255), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_stock_history_product_id", "stock_history", ["product_id"])
    op.create_index("ix_stock_history_created_at", "stock_history", ["created_at"])

    # =========================
    # customer / supplier
    # =========================
    op.create_table(
        "customer",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=160), nullable=False),
        sa.Column("phone", sa.String(length=30), nullable=True),
        sa.Column("email", sa.String(length=120), nullable=True),
        sa.Column("address", sa.String(length=255), nullable=True),
        sa.Column("tax_code", sa.String(length=60), nullable=True),
        sa.Column("group", sa.String(length=60), nullable=True, server_default="Khách lẻ"),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("debt", sa.Float(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )

    op.create_table(
        "supplier",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=160), nullable=False),
        sa.Column("phone", sa.String(length=30), nullable=True),
        sa.Column("email", sa.String(length=120), nullable=True),
        sa.Column("address", sa.String(length=255), nullable=True),
        sa.Column("tax_code", sa.String(length=60), nullable=True),
        sa.Column("website", sa.String(length=160), nullable=True),
        sa.Column("group", sa.String(length=60), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("debt", sa.Float(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_supplier_name", "supplier", ["name"])

    # =========================
    # quote + quote_item
    # =========================
    op.create_table(
        "quote",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("quote_number", sa.String(length=40), nullable=False, unique=True),
        sa.Column("customer_id", sa.Integer(), sa.ForeignKey("customer.id", ondelete="SET NULL"), nullable=True),
        sa.Column("customer_name", sa.String(length=160), nullable=False),
        sa.Column("customer_phone", sa.String(length=30), nullable=True),
        sa.Column("customer_address", sa.String(length=255), nullable=True),
        sa.Column("total_amount", sa.Float(), nullable=False, server_default="0"),
        sa.Column("discount_amount", sa.Float(), nullable=False, server_default="0"),
        sa.Column("status", sa.String(length=30), nullable=False, server_default="Mới"),
        sa.Column("issue_date", sa.Date(), nullable=False, server_default=sa.func.current_date()),
        sa.Column("expiry_date", sa.Date(), nullable=True),
        sa.Column("note", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint("discount_amount >= 0 AND discount_amount <= total_amount", name="ck_quote_discount"),
    )
    op.create_index("ix_quote_customer_id", "quote", ["customer_id"])
    op.create_index("ix_quote_status", "quote", ["status"])
    op.create_index("ix_quote_created_at", "quote", ["created_at"])

    op.create_table(
        "quote_item",
        *_line_columns(),
        sa.Column("quote_id", sa.Integer(), sa.ForeignKey("quote.id", ondelete="CASCADE"), nullable=False),
        sa.CheckConstraint("quantity >= 1", name="ck_quote_item_quantity"),
        sa.CheckConstraint("price >= 0", name="ck_quote_item_price"),
    )
    op.create_index("ix_quote_item_quote_id", "quote_item", ["quote_id"])

    # =========================
    # sales_order + items
    # one order per accepted quote
    # =========================
    op.create_table(
        "sales_order",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("order_number", sa.String(length=40), nullable=False, unique=True),
        sa.Column("customer_id", sa.Integer(), sa.ForeignKey("customer.id", ondelete="SET NULL"), nullable=True),
        sa.Column("customer_name", sa.String(length=160), nullable=False),
        sa.Column("customer_phone", sa.String(length=30), nullable=True),
        sa.Column("customer_address", sa.String(length=255), nullable=True),
        sa.Column("source_quote_id", sa.Integer(), sa.ForeignKey("quote.id", ondelete="SET NULL"), nullable=True, unique=True),
        sa.Column("total_amount", sa.Float(), nullable=False, server_default="0"),
        sa.Column("discount_amount", sa.Float(), nullable=False, server_default="0"),
        sa.Column("deposit_amount", sa.Float(), nullable=False, server_default="0"),
        sa.Column("is_delivery", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("delivery_address", sa.String(length=255), nullable=True),
        sa.Column("delivery_phone", sa.String(length=30), nullable=True),
        sa.Column("ship_fee", sa.Float(), nullable=False, server_default="0"),
        sa.Column("status", sa.String(length=30), nullable=False, server_default="Mới"),
        sa.Column("note", sa.Text(), nullable=True),
        sa.Column("completed_at", sa.DateTime(), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint("deposit_amount >= 0 AND deposit_amount <= total_amount", name="ck_sales_order_deposit"),
        sa.CheckConstraint("discount_amount >= 0", name="ck_sales_order_discount"),
        sa.CheckConstraint(
            "NOT is_delivery OR (delivery_address IS NOT NULL AND delivery_phone IS NOT NULL)",
            name="ck_sales_order_delivery_contact",
        ),
    )
    op.create_index("ix_sales_order_customer_id", "sales_order", ["customer_id"])
    op.create_index("ix_sales_order_status", "sales_order", ["status"])
    op.create_index("ix_sales_order_created_at", "sales_order", ["created_at"])

    op.create_table(
        "sales_order_item",
        *_line_columns(),
        sa.Column("order_id", sa.Integer(), sa.ForeignKey("sales_order.id", ondelete="CASCADE"), nullable=False),
        sa.Column("cost_price", sa.Float(), nullable=False, server_default="0"),
        sa.CheckConstraint("quantity >= 1", name="ck_sales_order_item_quantity"),
        sa.CheckConstraint("price >= 0", name="ck_sales_order_item_price"),
    )
    op.create_index("ix_sales_order_item_order_id", "sales_order_item", ["order_id"])

    # =========================
    # invoice + items
    # exactly one per exported order
    # =========================
    op.create_table(
        "invoice",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("invoice_number", sa.String(length=40), nullable=False, unique=True),
        sa.Column("order_id", sa.Integer(), sa.ForeignKey("sales_order.id"), nullable=False, unique=True),
        sa.Column("customer_id", sa.Integer(), sa.ForeignKey("customer.id", ondelete="SET NULL"), nullable=True),
        sa.Column("customer_name", sa.String(length=160), nullable=False),
        sa.Column("issue_date", sa.Date(), nullable=False, server_default=sa.func.current_date()),
        sa.Column("subtotal", sa.Float(), nullable=False, server_default="0"),
        sa.Column("discount_amount", sa.Float(), nullable=False, server_default="0"),
        sa.Column("total_amount", sa.Float(), nullable=False, server_default="0"),
        sa.Column("paid_amount", sa.Float(), nullable=False, server_default="0"),
        sa.Column("is_delivery", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("delivery_address", sa.String(length=255), nullable=True),
        sa.Column("delivery_phone", sa.String(length=30), nullable=True),
        sa.Column("ship_fee", sa.Float(), nullable=False, server_default="0"),
        sa.Column("note", sa.Text(), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint("paid_amount >= 0 AND paid_amount <= total_amount", name="ck_invoice_paid_amount"),
        sa.CheckConstraint(
            "NOT is_delivery OR (delivery_address IS NOT NULL AND delivery_phone IS NOT NULL)",
            name="ck_invoice_delivery_contact",
        ),
    )
    op.create_index("ix_invoice_customer_id", "invoice", ["customer_id"])
    op.create_index("ix_invoice_issue_date", "invoice", ["issue_date"])
    op.create_index("ix_invoice_created_at", "invoice", ["created_at"])

    op.create_table(
        "invoice_item",
        *_line_columns(),
        sa.Column("invoice_id", sa.Integer(), sa.ForeignKey("invoice.id", ondelete="CASCADE"), nullable=False),
        sa.Column("cost_price", sa.Float(), nullable=False, server_default="0"),
        sa.CheckConstraint("quantity >= 1", name="ck_invoice_item_quantity"),
        sa.CheckConstraint("price >= 0", name="ck_invoice_item_price"),
    )
    op.create_index("ix_invoice_item_invoice_id", "invoice_item", ["invoice_id"])


def downgrade():
    op.drop_index("ix_invoice_item_invoice_id", table_name="invoice_item")
    op.drop_table("invoice_item")
    op.drop_index("ix_invoice_created_at", table_name="invoice")
    op.drop_index("ix_invoice_issue_date", table_name="invoice")
    op.drop_index("ix_invoice_customer_id", table_name="invoice")
    op.drop_table("invoice")

    op.drop_index("ix_sales_order_item_order_id", table_name="sales_order_item")
    op.drop_table("sales_order_item")
    op.drop_index("ix_sales_order_created_at", table_name="sales_order")
    op.drop_index("ix_sales_order_status", table_name="sales_order")
    op.drop_index("ix_sales_order_customer_id", table_name="sales_order")
    op.drop_table("sales_order")

    op.drop_index("ix_quote_item_quote_id", table_name="quote_item")
    op.drop_table("quote_item")
    op.drop_index("ix_quote_created_at", table_name="quote")
    op.drop_index("ix_quote_status", table_name="quote")
    op.drop_index("ix_quote_customer_id", table_name="quote")
    op.drop_table("quote")

    op.drop_index("ix_supplier_name", table_name="supplier")
    op.drop_table("supplier")
    op.drop_table("customer")

    op.drop_index("ix_stock_history_created_at", table_name="stock_history")
    op.drop_index("ix_stock_history_product_id", table_name="stock_history")
    op.drop_table("stock_history")
    op.drop_table("product")
