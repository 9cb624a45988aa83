"""Webhook idempotency ledger backed by Postgres.

Claiming an event is a single ``INSERT ... ON CONFLICT DO NOTHING
RETURNING``: the unique (gateway, event_id) index decides which of any
number of concurrent deliveries wins, with no read-then-write window.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from sqlalchemy import delete, func, select, update
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from paybridge.core.logging import logger
from paybridge.domains.payments.types import generate_event_id
from paybridge.domains.webhooks.protocols import IdempotencyStoreProtocol
from paybridge.models import WebhookEvent
from paybridge.schemas.payment import GatewayName
from paybridge.schemas.webhook_event import (
    BeginResult,
    EventStats,
    WebhookEventRecord,
    WebhookEventState,
)

__all__ = ["IdempotencyStore", "generate_event_id"]

DEFAULT_TTL_DAYS = 30

ledger_logger = logger.with_prefix("WebhookLedger: ").with_context(component="webhook_ledger")


class IdempotencyStore(IdempotencyStoreProtocol):
    """IdempotencyStoreProtocol on the ``webhook_event`` table."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        ttl_days: int = DEFAULT_TTL_DAYS,
    ) -> None:
        self._session_factory = session_factory
        self._ttl = timedelta(days=ttl_days)

    async def check_and_mark_processing(
        self,
        gateway: GatewayName,
        event_id: str,
        event_type: str,
        payload_snapshot: Optional[Dict[str, Any]] = None,
    ) -> BeginResult:
        now = datetime.now(timezone.utc)
        stmt = (
            insert(WebhookEvent)
            .values(
                gateway=gateway.value,
                event_id=event_id,
                event_type=event_type,
                state=WebhookEventState.PROCESSING.value,
                payload_snapshot=payload_snapshot or {},
                expires_at=now + self._ttl,
            )
            .on_conflict_do_nothing(index_elements=["gateway", "event_id"])
            .returning(WebhookEvent.id)
        )
        async with self._session_factory() as db:
            inserted = (await db.execute(stmt)).scalar_one_or_none()
            await db.commit()
            if inserted is not None:
                return BeginResult(is_new=True)

            state = (
                await db.execute(
                    select(WebhookEvent.state).where(
                        WebhookEvent.gateway == gateway.value,
                        WebhookEvent.event_id == event_id,
                    )
                )
            ).scalar_one_or_none()

        ledger_logger.with_context(gateway=gateway.value, event_id=event_id).info(
            f"Duplicate delivery of {event_type} (state={state})"
        )
        return BeginResult(
            is_new=False,
            existing_state=WebhookEventState(state) if state else None,
        )

    async def _finish(
        self,
        gateway: GatewayName,
        event_id: str,
        state: WebhookEventState,
        result: Optional[Dict[str, Any]] = None,
        error: Optional[str] = None,
    ) -> None:
        stmt = (
            update(WebhookEvent)
            .where(
                WebhookEvent.gateway == gateway.value,
                WebhookEvent.event_id == event_id,
                WebhookEvent.state == WebhookEventState.PROCESSING.value,
            )
            .values(
                state=state.value,
                result=result,
                error=error,
                completed_at=datetime.now(timezone.utc),
            )
        )
        async with self._session_factory() as db:
            updated = (await db.execute(stmt)).rowcount
            await db.commit()

        if not updated:
            ledger_logger.with_context(gateway=gateway.value, event_id=event_id).warning(
                f"Ignoring transition to {state.value}: event is not processing"
            )

    async def mark_processed(
        self, gateway: GatewayName, event_id: str, result: Optional[Dict[str, Any]] = None
    ) -> None:
        await self._finish(gateway, event_id, WebhookEventState.PROCESSED, result=result)

    async def mark_failed(self, gateway: GatewayName, event_id: str, error: str) -> None:
        await self._finish(gateway, event_id, WebhookEventState.FAILED, error=error)

    async def mark_skipped(self, gateway: GatewayName, event_id: str, reason: str) -> None:
        await self._finish(gateway, event_id, WebhookEventState.SKIPPED, error=reason)

    # -------------------------------------------------------------------------
    # Reporting and maintenance
    # -------------------------------------------------------------------------

    async def get_recent_events(
        self, gateway: Optional[GatewayName] = None, limit: int = 100
    ) -> list[WebhookEventRecord]:
        query = select(WebhookEvent).order_by(WebhookEvent.created_at.desc()).limit(limit)
        if gateway is not None:
            query = query.where(WebhookEvent.gateway == gateway.value)
        async with self._session_factory() as db:
            rows = (await db.execute(query)).scalars().all()
        return [WebhookEventRecord.model_validate(row) for row in rows]

    async def get_event_stats(
        self, gateway: Optional[GatewayName] = None, hours: int = 24
    ) -> EventStats:
        since = datetime.now(timezone.utc) - timedelta(hours=hours)
        query = (
            select(WebhookEvent.state, WebhookEvent.event_type, func.count())
            .where(WebhookEvent.created_at >= since)
            .group_by(WebhookEvent.state, WebhookEvent.event_type)
        )
        if gateway is not None:
            query = query.where(WebhookEvent.gateway == gateway.value)
        async with self._session_factory() as db:
            rows = (await db.execute(query)).all()

        stats = EventStats()
        for state, event_type, count in rows:
            stats.total += count
            setattr(stats, state, getattr(stats, state) + count)
            stats.by_type[event_type] = stats.by_type.get(event_type, 0) + count
        return stats

    async def purge_expired(self, now: Optional[datetime] = None) -> int:
        now = now or datetime.now(timezone.utc)
        async with self._session_factory() as db:
            deleted = (
                await db.execute(delete(WebhookEvent).where(WebhookEvent.expires_at < now))
            ).rowcount
            await db.commit()
        ledger_logger.info(f"Purged {deleted} expired webhook events")
        return deleted
