"""Webhook event ledger model."""

from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, Index, String, Text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from paybridge.models._base import Base


class WebhookEvent(Base):
    """One inbound webhook event, keyed by (gateway, event_id).

    Rows are claimed in ``processing`` and moved exactly once to
    ``processed``, ``failed`` or ``skipped``.
    """

    __tablename__ = "webhook_event"

    gateway: Mapped[str] = mapped_column(String(20), nullable=False)
    event_id: Mapped[str] = mapped_column(String(255), nullable=False)
    event_type: Mapped[str] = mapped_column(String(100), nullable=False)
    state: Mapped[str] = mapped_column(String(20), nullable=False, default="processing")

    # Bounded snapshot of the payload, never the raw body
    payload_snapshot: Mapped[dict] = mapped_column(JSONB, nullable=False, default=dict)
    result: Mapped[Optional[dict]] = mapped_column(JSONB, nullable=True)
    error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    completed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        Index("uq_webhook_event_gateway_event", "gateway", "event_id", unique=True),
        Index("idx_webhook_event_gateway_created", "gateway", "created_at"),
        Index("idx_webhook_event_expires_at", "expires_at"),
    )
