"""purchases_deliveries_cash_flow

Revision ID: 8d4e6b0a5c21
Revises: 3f9a1c2d7b10
Create Date: 2026-10-05 16:40:07.281934

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '8d4e6b0a5c21'
down_revision = '3f9a1c2d7b10'
branch_labels = None
depends_on = None


def upgrade():
    # =========================
    # purchase + items (receiving)
    # =========================
    op.create_table(
        "purchase",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("purchase_number", sa.String(length=40), nullable=False, unique=True),
        sa.Column("supplier_id", sa.Integer(), sa.ForeignKey("supplier.id"), nullable=False),
        sa.Column("supplier_name", sa.String(length=160), nullable=False),
        sa.Column("issue_date", sa.Date(), nullable=False, server_default=sa.func.current_date()),
        sa.Column("total_amount", sa.Float(), nullable=False, server_default="0"),
        sa.Column("paid_amount", sa.Float(), nullable=False, server_default="0"),
        sa.Column("note", sa.Text(), nullable=True),
        sa.Column("returned_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint("paid_amount >= 0 AND paid_amount <= total_amount", name="ck_purchase_paid_amount"),
    )
    op.create_index("ix_purchase_supplier_id", "purchase", ["supplier_id"])
    op.create_index("ix_purchase_issue_date", "purchase", ["issue_date"])
    op.create_index("ix_purchase_created_at", "purchase", ["created_at"])

    op.create_table(
        "purchase_item",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("purchase_id", sa.Integer(), sa.ForeignKey("purchase.id", ondelete="CASCADE"), nullable=False),
        sa.Column("product_id", sa.Integer(), sa.ForeignKey("product.id"), nullable=False),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("cost_price", sa.Float(), nullable=False),
        sa.Column("line_total", sa.Float(), nullable=False),
        sa.CheckConstraint("quantity >= 1", name="ck_purchase_item_quantity"),
        sa.CheckConstraint("cost_price >= 0", name="ck_purchase_item_cost_price"),
    )
    op.create_index("ix_purchase_item_purchase_id", "purchase_item", ["purchase_id"])

    # =========================
    # delivery
    # one per invoice with shipping
    # =========================
    op.create_table(
        "delivery",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("delivery_number", sa.String(length=40), nullable=False, unique=True),
        sa.Column("invoice_id", sa.Integer(), sa.ForeignKey("invoice.id"), nullable=False, unique=True),
        sa.Column("customer_name", sa.String(length=160), nullable=False),
        sa.Column("phone", sa.String(length=30), nullable=False),
        sa.Column("address", sa.String(length=255), nullable=False),
        sa.Column("ship_fee", sa.Float(), nullable=False, server_default="0"),
        sa.Column("cod_amount", sa.Float(), nullable=False, server_default="0"),
        sa.Column("status", sa.String(length=30), nullable=False, server_default="Chờ giao"),
        sa.Column("shipper_name", sa.String(length=120), nullable=True),
        sa.Column("note", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_delivery_status", "delivery", ["status"])
    op.create_index("ix_delivery_created_at", "delivery", ["created_at"])

    # =========================
    # cash_flow_transaction
    # =========================
    op.create_table(
        "cash_flow_transaction",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("transaction_number", sa.String(length=40), nullable=False, unique=True),
        sa.Column("kind", sa.String(length=10), nullable=False),
        sa.Column("amount", sa.Float(), nullable=False),
        sa.Column("category", sa.String(length=60), nullable=False),
        sa.Column("description", sa.String(length=255), nullable=False),
        sa.Column("payer_receiver_name", sa.String(length=160), nullable=True),
        sa.Column("payment_method", sa.String(length=30), nullable=False, server_default="Tiền mặt"),
        sa.Column("reference_type", sa.String(length=20), nullable=True),
        sa.Column("reference_id", sa.Integer(), nullable=True),
        sa.Column("transaction_date", sa.Date(), nullable=False, server_default=sa.func.current_date()),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint("kind in ('thu','chi')", name="ck_cash_flow_kind"),
        sa.CheckConstraint("amount > 0", name="ck_cash_flow_amount_positive"),
    )
    op.create_index("ix_cash_flow_transaction_kind", "cash_flow_transaction", ["kind"])
    op.create_index("ix_cash_flow_transaction_transaction_date", "cash_flow_transaction", ["transaction_date"])
    op.create_index("ix_cash_flow_reference", "cash_flow_transaction", ["reference_type", "reference_id"])

    # =========================
    # debt_adjustment
    # manual overrides of partner debt
    # =========================
    op.create_table(
        "debt_adjustment",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("partner_type", sa.String(length=20), nullable=False),
        sa.Column("partner_id", sa.Integer(), nullable=False),
        sa.Column("previous_debt", sa.Float(), nullable=False),
        sa.Column("new_debt", sa.Float(), nullable=False),
        sa.Column("delta", sa.Float(), nullable=False),
        sa.Column("reason", sa.String(length=255), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint("partner_type in ('customer','supplier')", name="ck_debt_adjustment_partner_type"),
    )
    op.create_index("ix_debt_adjustment_partner", "debt_adjustment", ["partner_type", "partner_id"])


def downgrade():
    op.drop_index("ix_debt_adjustment_partner", table_name="debt_adjustment")
    op.drop_table("debt_adjustment")

    op.drop_index("ix_cash_flow_reference", table_name="cash_flow_transaction")
    op.drop_index("ix_cash_flow_transaction_transaction_date", table_name="cash_flow_transaction")
    op.drop_index("ix_cash_flow_transaction_kind", table_name="cash_flow_transaction")
    op.drop_table("cash_flow_transaction")

    op.drop_index("ix_delivery_created_at", table_name="delivery")
    op.drop_index("ix_delivery_status", table_name="delivery")
    op.drop_table("delivery")

    op.drop_index("ix_purchase_item_purchase_id", table_name="purchase_item")
    op.drop_table("purchase_item")
    op.drop_index("ix_purchase_created_at", table_name="purchase")
    op.drop_index("ix_purchase_issue_date", table_name="purchase")
    op.drop_index("ix_purchase_supplier_id", table_name="purchase")
    op.drop_table("purchase")
