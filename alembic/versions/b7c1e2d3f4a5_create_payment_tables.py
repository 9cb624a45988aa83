"""Create subscription, customer and webhook_event tables.

Revision ID: b7c1e2d3f4a5
Revises:
Create Date: 2026-10-18 00:00:00.000000

"""

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB, UUID

from alembic import op

# revision identifiers, used by Alembic.
revision = "b7c1e2d3f4a5"
down_revision = None
branch_labels = None
depends_on = None


def _audit_columns() -> list[sa.Column]:
    return [
        sa.Column("id", UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column(
            "created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()
        ),
        sa.Column(
            "modified_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()
        ),
    ]


def upgrade() -> None:
    """Create the three payment tables with their unique and lookup indexes."""
    op.create_table(
        "subscription",
        *_audit_columns(),
        sa.Column("user_id", sa.String(255), nullable=False),
        sa.Column("user_email", sa.String(320), nullable=True),
        sa.Column("gateway", sa.String(20), nullable=False),
        sa.Column("gateway_transaction_id", sa.String(255), nullable=True),
        sa.Column("gateway_customer_id", sa.String(255), nullable=True),
        sa.Column("plan", sa.String(20), nullable=False),
        sa.Column("billing_cycle", sa.String(10), nullable=False),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("current_period_start", sa.DateTime(timezone=True), nullable=True),
        sa.Column("current_period_end", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancel_at_period_end", sa.Boolean(), nullable=False),
        sa.Column("canceled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_payment_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_payment_amount", sa.BigInteger(), nullable=True),
        sa.Column("currency", sa.String(3), nullable=True),
        sa.Column("metadata", JSONB(), nullable=False, server_default=sa.text("'{}'::jsonb")),
    )
    op.create_index("ix_subscription_user_id", "subscription", ["user_id"])
    op.create_index("ix_subscription_user_email", "subscription", ["user_email"])
    op.create_index(
        "uq_subscription_gateway_transaction",
        "subscription",
        ["gateway", "gateway_transaction_id"],
        unique=True,
    )
    op.create_index(
        "uq_subscription_one_active_per_user",
        "subscription",
        ["user_id"],
        unique=True,
        postgresql_where=sa.text("status IN ('active', 'trialing')"),
    )
    op.create_index(
        "idx_subscription_status_period_end", "subscription", ["status", "current_period_end"]
    )

    op.create_table(
        "customer",
        *_audit_columns(),
        sa.Column("gateway_customer_id", sa.String(255), nullable=False),
        sa.Column("gateway", sa.String(20), nullable=False),
        sa.Column("user_id", sa.String(255), nullable=True),
        sa.Column("email", sa.String(320), nullable=False),
        sa.Column("name", sa.String(255), nullable=True),
        sa.Column("metadata", JSONB(), nullable=False, server_default=sa.text("'{}'::jsonb")),
    )
    op.create_index("ix_customer_email", "customer", ["email"])
    op.create_index(
        "uq_customer_gateway_customer",
        "customer",
        ["gateway", "gateway_customer_id"],
        unique=True,
    )

    op.create_table(
        "webhook_event",
        *_audit_columns(),
        sa.Column("gateway", sa.String(20), nullable=False),
        sa.Column("event_id", sa.String(255), nullable=False),
        sa.Column("event_type", sa.String(100), nullable=False),
        sa.Column("state", sa.String(20), nullable=False),
        sa.Column("payload_snapshot", JSONB(), nullable=False),
        sa.Column("result", JSONB(), nullable=True),
        sa.Column("error", sa.Text(), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index(
        "uq_webhook_event_gateway_event", "webhook_event", ["gateway", "event_id"], unique=True
    )
    op.create_index(
        "idx_webhook_event_gateway_created", "webhook_event", ["gateway", "created_at"]
    )
    op.create_index("idx_webhook_event_expires_at", "webhook_event", ["expires_at"])


def downgrade() -> None:
    """Drop the payment tables."""
    op.drop_table("webhook_event")
    op.drop_table("customer")
    op.drop_table("subscription")
