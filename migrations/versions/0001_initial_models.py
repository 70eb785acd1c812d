"""initial models

Payment orders, settlement transactions and the stored gateway settings row.

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
import sqlmodel  # noqa: F401


revision: str = "0001_initial_models"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "paymentorder",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("order_code", sa.String(length=16), nullable=False),
        sa.Column("amount", sa.Integer(), nullable=False),
        sa.Column("source_code", sa.String(length=4), nullable=False),
        sa.Column("status", sa.String(), nullable=False, server_default="pending"),
        sa.Column("checkout_url", sa.String(), nullable=False),
        sa.Column("customer_email", sa.String(), nullable=True),
        sa.Column("customer_name", sa.String(), nullable=True),
        sa.Column("merchant_reference", sa.String(), nullable=True),
        sa.Column("metadata", sa.JSON(), nullable=True),
        sa.Column("created_by", sa.String(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_paymentorder_order_code", "paymentorder", ["order_code"], unique=True)
    op.create_index("ix_paymentorder_status", "paymentorder", ["status"])
    op.create_index("ix_paymentorder_customer_email", "paymentorder", ["customer_email"])
    op.create_index("ix_paymentorder_merchant_reference", "paymentorder", ["merchant_reference"])

    op.create_table(
        "transaction",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("transaction_id", sa.String(), nullable=False),
        sa.Column("order_code", sa.String(), nullable=True),
        sa.Column("event_type_id", sa.Integer(), nullable=False),
        sa.Column("status_id", sa.String(length=1), nullable=False),
        sa.Column("amount", sa.Integer(), nullable=True),
        sa.Column("currency_code", sa.String(), nullable=True),
        sa.Column("card_last_four", sa.String(length=4), nullable=True),
        sa.Column("customer_email", sa.String(), nullable=True),
        sa.Column("customer_name", sa.String(), nullable=True),
        sa.Column("is_recurring", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("is_pre_auth", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("delivery_id", sa.String(), nullable=True),
        sa.Column("event_data", sa.JSON(), nullable=True),
        sa.Column("processed_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_transaction_transaction_id", "transaction", ["transaction_id"])
    op.create_index("ix_transaction_order_code", "transaction", ["order_code"])
    # Authoritative idempotency guard for redelivered webhooks
    op.create_index("ix_transaction_delivery_id", "transaction", ["delivery_id"], unique=True)

    op.create_table(
        "gatewaysettings",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("environment", sa.String(), nullable=False, server_default="demo"),
        sa.Column("client_id", sa.String(), nullable=False, server_default=""),
        sa.Column("client_secret", sa.String(), nullable=False, server_default=""),
        sa.Column("source_code", sa.String(), nullable=False, server_default=""),
        sa.Column("webhook_key", sa.String(), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    )


def downgrade() -> None:
    op.drop_table("gatewaysettings")
    op.drop_index("ix_transaction_delivery_id", table_name="transaction")
    op.drop_index("ix_transaction_order_code", table_name="transaction")
    op.drop_index("ix_transaction_transaction_id", table_name="transaction")
    op.drop_table("transaction")
    op.drop_index("ix_paymentorder_merchant_reference", table_name="paymentorder")
    op.drop_index("ix_paymentorder_customer_email", table_name="paymentorder")
    op.drop_index("ix_paymentorder_status", table_name="paymentorder")
    op.drop_index("ix_paymentorder_order_code", table_name="paymentorder")
    op.drop_table("paymentorder")
