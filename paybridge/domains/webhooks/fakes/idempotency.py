"""Fake idempotency store for testing."""

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from paybridge.schemas.payment import GatewayName
from paybridge.schemas.webhook_event import (
    BeginResult,
    EventStats,
    WebhookEventRecord,
    WebhookEventState,
)


class FakeIdempotencyStore:
    """In-memory IdempotencyStoreProtocol.

    The claim is a dict membership test and insert with no ``await`` in
    between, so concurrent tasks on one event loop see the same atomicity
    the database's unique index gives.
    """

    def __init__(self, ttl_days: int = 30) -> None:
        """Initialize with an empty ledger."""
        self._events: dict[tuple[GatewayName, str], WebhookEventRecord] = {}
        self._calls: list[tuple] = []
        self._ttl = timedelta(days=ttl_days)
        self.should_raise: Optional[Exception] = None

    # ---- Test helpers ----

    def get(self, gateway: GatewayName, event_id: str) -> Optional[WebhookEventRecord]:
        """Ledger row for one event, if claimed."""
        return self._events.get((gateway, event_id))

    def seed(self, record: WebhookEventRecord) -> None:
        """Populate the ledger with an existing row."""
        self._events[(record.gateway, record.event_id)] = record

    def all(self) -> list[WebhookEventRecord]:
        return list(self._events.values())

    def call_count(self, method: str) -> int:
        """Number of times a method was called."""
        return sum(1 for c in self._calls if c[0] == method)

    def calls_for(self, method: str) -> list[tuple]:
        """Calls recorded for one method name."""
        return [c for c in self._calls if c[0] == method]

    def clear(self) -> None:
        """Reset ledger and call log."""
        self._events.clear()
        self._calls.clear()

    # ---- IdempotencyStoreProtocol ----

    async def check_and_mark_processing(
        self,
        gateway: GatewayName,
        event_id: str,
        event_type: str,
        payload_snapshot: Optional[Dict[str, Any]] = None,
    ) -> BeginResult:
        self._calls.append(("check_and_mark_processing", gateway, event_id, event_type))
        if self.should_raise:
            raise self.should_raise
        key = (gateway, event_id)
        existing = self._events.get(key)
        if existing is not None:
            return BeginResult(is_new=False, existing_state=existing.state)
        now = datetime.now(timezone.utc)
        self._events[key] = WebhookEventRecord(
            gateway=gateway,
            event_id=event_id,
            event_type=event_type,
            state=WebhookEventState.PROCESSING,
            payload_snapshot=payload_snapshot or {},
            created_at=now,
            expires_at=now + self._ttl,
        )
        return BeginResult(is_new=True)

    def _finish(
        self,
        gateway: GatewayName,
        event_id: str,
        state: WebhookEventState,
        result: Optional[Dict[str, Any]] = None,
        error: Optional[str] = None,
    ) -> None:
        record = self._events.get((gateway, event_id))
        if record is None or record.state.is_terminal:
            return
        record.state = state
        record.result = result
        record.error = error
        record.completed_at = datetime.now(timezone.utc)

    async def mark_processed(
        self, gateway: GatewayName, event_id: str, result: Optional[Dict[str, Any]] = None
    ) -> None:
        self._calls.append(("mark_processed", gateway, event_id, result))
        self._finish(gateway, event_id, WebhookEventState.PROCESSED, result=result)

    async def mark_failed(self, gateway: GatewayName, event_id: str, error: str) -> None:
        self._calls.append(("mark_failed", gateway, event_id, error))
        self._finish(gateway, event_id, WebhookEventState.FAILED, error=error)

    async def mark_skipped(self, gateway: GatewayName, event_id: str, reason: str) -> None:
        self._calls.append(("mark_skipped", gateway, event_id, reason))
        self._finish(gateway, event_id, WebhookEventState.SKIPPED, error=reason)

    async def get_recent_events(
        self, gateway: Optional[GatewayName] = None, limit: int = 100
    ) -> list[WebhookEventRecord]:
        self._calls.append(("get_recent_events", gateway, limit))
        events = [e for e in self._events.values() if gateway is None or e.gateway == gateway]
        events.sort(key=lambda e: e.created_at, reverse=True)
        return events[:limit]

    async def get_event_stats(
        self, gateway: Optional[GatewayName] = None, hours: int = 24
    ) -> EventStats:
        self._calls.append(("get_event_stats", gateway, hours))
        since = datetime.now(timezone.utc) - timedelta(hours=hours)
        stats = EventStats()
        for event in self._events.values():
            if event.created_at < since or (gateway is not None and event.gateway != gateway):
                continue
            stats.total += 1
            setattr(stats, event.state.value, getattr(stats, event.state.value) + 1)
            stats.by_type[event.event_type] = stats.by_type.get(event.event_type, 0) + 1
        return stats

    async def purge_expired(self, now: Optional[datetime] = None) -> int:
        self._calls.append(("purge_expired", now))
        now = now or datetime.now(timezone.utc)
        expired = [k for k, e in self._events.items() if e.expires_at and e.expires_at < now]
        for key in expired:
            del self._events[key]
        return len(expired)
