"""Webhook ledger schemas."""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field

from paybridge.schemas.payment import GatewayName


class WebhookEventState(str, Enum):
    """Lifecycle of an inbound webhook event in the idempotency ledger.

    ``processing`` is the only non-terminal state.
    """

    PROCESSING = "processing"
    PROCESSED = "processed"
    FAILED = "failed"
    SKIPPED = "skipped"

    @property
    def is_terminal(self) -> bool:
        """True for processed, failed and skipped."""
        return self is not WebhookEventState.PROCESSING


class WebhookEventRecord(BaseModel):
    """One row of the webhook idempotency ledger."""

    model_config = ConfigDict(from_attributes=True)

    gateway: GatewayName
    event_id: str
    event_type: str
    state: WebhookEventState
    payload_snapshot: Dict[str, Any] = Field(default_factory=dict)
    result: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    created_at: datetime
    completed_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None


class BeginResult(BaseModel):
    """Outcome of atomically claiming an event for processing."""

    is_new: bool
    existing_state: Optional[WebhookEventState] = None


class EventStats(BaseModel):
    """Aggregate ledger counts over a time window."""

    total: int = 0
    processing: int = 0
    processed: int = 0
    failed: int = 0
    skipped: int = 0
    by_type: Dict[str, int] = Field(default_factory=dict)


class WebhookAck(BaseModel):
    """Acknowledgement returned to the provider after a webhook is handled."""

    received: bool = True
    status: Optional[str] = Field(
        default=None, description="'duplicate' when the event was already claimed"
    )
    event_id: Optional[str] = None
    outcome: Optional[str] = None

    @property
    def is_duplicate(self) -> bool:
        """True when the event had already been claimed by an earlier delivery."""
        return self.status == "duplicate"
