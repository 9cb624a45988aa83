"""Periodic housekeeping for the webhook ledger and local subscriptions.

Run from a scheduler with ``python -m paybridge.domains.webhooks.maintenance``.
"""

import asyncio
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from paybridge.core.logging import logger
from paybridge.domains.subscriptions.protocols import SubscriptionRepositoryProtocol
from paybridge.domains.webhooks.protocols import IdempotencyStoreProtocol

maintenance_logger = logger.with_prefix("Maintenance: ").with_context(component="maintenance")


@dataclass
class MaintenanceReport:
    """What one maintenance run changed."""

    purged_events: int
    expired_subscriptions: int


async def run_maintenance(
    idempotency: IdempotencyStoreProtocol,
    subscriptions: SubscriptionRepositoryProtocol,
    now: Optional[datetime] = None,
) -> MaintenanceReport:
    """Purge expired ledger rows, then expire subscriptions past their period end."""
    now = now or datetime.now(timezone.utc)
    purged = await idempotency.purge_expired(now)
    expired = await subscriptions.expire_overdue(now)
    maintenance_logger.info(f"Purged {purged} webhook events, expired {expired} subscriptions")
    return MaintenanceReport(purged_events=purged, expired_subscriptions=expired)


async def main() -> None:
    """Build the stores from settings and run once."""
    from paybridge.core.config import settings
    from paybridge.db.session import AsyncSessionLocal
    from paybridge.domains.subscriptions.repository import SubscriptionRepository
    from paybridge.domains.webhooks.idempotency import IdempotencyStore

    await run_maintenance(
        IdempotencyStore(AsyncSessionLocal, ttl_days=settings.WEBHOOK_EVENT_TTL_DAYS),
        SubscriptionRepository(AsyncSessionLocal),
    )


if __name__ == "__main__":
    asyncio.run(main())
