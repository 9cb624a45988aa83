"""Webhooks domain protocols."""

from datetime import datetime
from typing import Any, Dict, Optional, Protocol, runtime_checkable

from paybridge.schemas.payment import GatewayName
from paybridge.schemas.webhook_event import (
    BeginResult,
    EventStats,
    WebhookAck,
    WebhookEventRecord,
)


@runtime_checkable
class IdempotencyStoreProtocol(Protocol):
    """Durable ledger that claims each (gateway, event_id) exactly once."""

    async def check_and_mark_processing(
        self,
        gateway: GatewayName,
        event_id: str,
        event_type: str,
        payload_snapshot: Optional[Dict[str, Any]] = None,
    ) -> BeginResult:
        """Atomically claim an event.

        Of any number of concurrent callers with the same key, exactly one
        observes ``is_new=True``.
        """
        ...

    async def mark_processed(
        self, gateway: GatewayName, event_id: str, result: Optional[Dict[str, Any]] = None
    ) -> None:
        """Move a processing event to processed. No-op on terminal events."""
        ...

    async def mark_failed(self, gateway: GatewayName, event_id: str, error: str) -> None:
        """Move a processing event to failed. No-op on terminal events."""
        ...

    async def mark_skipped(self, gateway: GatewayName, event_id: str, reason: str) -> None:
        """Move a processing event to skipped. No-op on terminal events."""
        ...

    async def get_recent_events(
        self, gateway: Optional[GatewayName] = None, limit: int = 100
    ) -> list[WebhookEventRecord]:
        """Newest ledger rows first."""
        ...

    async def get_event_stats(
        self, gateway: Optional[GatewayName] = None, hours: int = 24
    ) -> EventStats:
        """Counts by state and event type over the last ``hours``."""
        ...

    async def purge_expired(self, now: Optional[datetime] = None) -> int:
        """Delete rows past their expiry. Returns the number deleted."""
        ...


@runtime_checkable
class WebhookProcessorProtocol(Protocol):
    """Verifies, deduplicates and applies inbound gateway webhooks."""

    async def process_webhook(
        self, gateway_name: str, payload: bytes, signature: Optional[str]
    ) -> WebhookAck:
        """Handle one delivery.

        Raises UnknownGatewayError, GatewayNotConfiguredError,
        InvalidSignatureError or InvalidPayloadError before anything is
        recorded; any later failure is recorded as failed and re-raised.
        """
        ...

    async def drain_notifications(self) -> None:
        """Wait for in-flight notification tasks."""
        ...
