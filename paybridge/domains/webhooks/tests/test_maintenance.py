"""Tests for the periodic maintenance run."""

from datetime import datetime, timedelta, timezone

import pytest

from paybridge.domains.webhooks.maintenance import run_maintenance
from paybridge.schemas.payment import GatewayName, Plan, SubscriptionStatus
from paybridge.schemas.subscription import SubscriptionRecord


@pytest.mark.asyncio
async def test_purges_ledger_and_expires_subscriptions(
    fake_idempotency_store, fake_subscription_repo
):
    now = datetime.now(timezone.utc)
    await fake_idempotency_store.check_and_mark_processing(GatewayName.STRIPE, "old", "x")
    fake_idempotency_store.get(GatewayName.STRIPE, "old").expires_at = now - timedelta(days=1)
    fake_subscription_repo.seed(
        SubscriptionRecord(
            user_id="a@x.com",
            gateway=GatewayName.PAYTABS,
            gateway_transaction_id="TST1",
            plan=Plan.PRO,
            status=SubscriptionStatus.ACTIVE,
            current_period_end=now - timedelta(hours=1),
        )
    )

    report = await run_maintenance(fake_idempotency_store, fake_subscription_repo, now=now)

    assert report.purged_events == 1
    assert report.expired_subscriptions == 1
    assert fake_idempotency_store.calls_for("purge_expired") == [("purge_expired", now)]
    (record,) = fake_subscription_repo.all()
    assert record.status == SubscriptionStatus.EXPIRED
    assert record.plan == Plan.FREE


@pytest.mark.asyncio
async def test_nothing_to_do(fake_idempotency_store, fake_subscription_repo):
    report = await run_maintenance(fake_idempotency_store, fake_subscription_repo)

    assert report.purged_events == 0
    assert report.expired_subscriptions == 0
