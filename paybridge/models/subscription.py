"""Subscription model."""

from datetime import datetime
from typing import Optional

from sqlalchemy import BigInteger, Boolean, DateTime, Index, String, text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from paybridge.models._base import Base


class Subscription(Base):
    """A user's subscription at one gateway.

    History is kept: superseded and expired rows stay in the table with a
    terminal status. At most one row per user is active or trialing.
    """

    __tablename__ = "subscription"

    user_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    user_email: Mapped[Optional[str]] = mapped_column(String(320), nullable=True, index=True)
    gateway: Mapped[str] = mapped_column(String(20), nullable=False)

    # Provider subscription id, or the last payment transaction id for regional gateways
    gateway_transaction_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    gateway_customer_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    plan: Mapped[str] = mapped_column(String(20), nullable=False, default="free")
    billing_cycle: Mapped[str] = mapped_column(String(10), nullable=False, default="monthly")
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="incomplete")

    current_period_start: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    current_period_end: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    cancel_at_period_end: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    canceled_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    last_payment_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    last_payment_amount: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)
    currency: Mapped[Optional[str]] = mapped_column(String(3), nullable=True)

    provider_metadata: Mapped[dict] = mapped_column(
        "metadata", JSONB, nullable=False, default=dict
    )

    __table_args__ = (
        Index(
            "uq_subscription_gateway_transaction",
            "gateway",
            "gateway_transaction_id",
            unique=True,
        ),
        Index(
            "uq_subscription_one_active_per_user",
            "user_id",
            unique=True,
            postgresql_where=text("status IN ('active', 'trialing')"),
        ),
        Index("idx_subscription_status_period_end", "status", "current_period_end"),
    )
