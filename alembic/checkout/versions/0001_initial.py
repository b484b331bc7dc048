"""initial checkout schema

Revision ID: 0001_checkout
Revises:
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa


revision = "0001_checkout"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "orders",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("phone", sa.String(length=12), nullable=False),
        sa.Column("amount", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False),
        sa.Column("checkout_request_id", sa.String(), nullable=False),
        sa.Column("merchant_request_id", sa.String(), nullable=True),
        sa.Column("receipt_code", sa.String(), nullable=True),
        sa.Column("failure_reason", sa.String(), nullable=True),
        sa.Column("failure_code", sa.Integer(), nullable=True),
        sa.Column("request_timestamp", sa.String(length=14), nullable=True),
        sa.Column("business_short_code", sa.String(), nullable=True),
        sa.Column("callback_received", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("callback_received_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("raw_callback", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_orders_status", "orders", ["status"])
    op.create_index("ix_orders_checkout_request_id", "orders", ["checkout_request_id"], unique=True)

    op.create_table(
        "order_timeline",
        sa.Column("timeline_id", sa.String(), nullable=False),
        sa.Column("order_id", sa.String(), nullable=False),
        sa.Column("from_state", sa.String(), nullable=True),
        sa.Column("to_state", sa.String(), nullable=False),
        sa.Column("reason", sa.String(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(["order_id"], ["orders.id"]),
        sa.PrimaryKeyConstraint("timeline_id"),
    )
    op.create_index("ix_order_timeline_order_id", "order_timeline", ["order_id"])

    op.create_table(
        "products",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("price", sa.Integer(), nullable=False),
        sa.Column("description", sa.String(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )


def downgrade() -> None:
    op.drop_table("products")
    op.drop_index("ix_order_timeline_order_id", table_name="order_timeline")
    op.drop_table("order_timeline")
    op.drop_index("ix_orders_checkout_request_id", table_name="orders")
    op.drop_index("ix_orders_status", table_name="orders")
    op.drop_table("orders")
