"""Behavior of the in-memory subscription repository.

The webhook processor tests lean on these semantics, so they are pinned
here against the same contract the SQLAlchemy repository implements.
"""

from datetime import datetime, timedelta, timezone

import pytest

from paybridge.domains.payments.exceptions import SubscriptionNotFoundError
from paybridge.domains.subscriptions.fakes import FakeSubscriptionRepository
from paybridge.schemas.payment import BillingCycle, GatewayName, Plan, SubscriptionStatus
from paybridge.schemas.subscription import CustomerRecord, SubscriptionRecord

EMAIL = "a@x.com"


def _record(gateway=GatewayName.STRIPE, transaction_id="sub_1", **fields):
    values = {
        "user_id": EMAIL,
        "gateway": gateway,
        "gateway_transaction_id": transaction_id,
        "plan": Plan.PRO,
        "status": SubscriptionStatus.ACTIVE,
        **fields,
    }
    return SubscriptionRecord(**values)


@pytest.fixture
def repo():
    return FakeSubscriptionRepository()


class TestUpsert:
    @pytest.mark.asyncio
    async def test_insert_assigns_id_and_timestamps(self, repo):
        saved = await repo.upsert(_record())

        assert saved.id is not None
        assert saved.created_at is not None
        assert saved.modified_at is not None

    @pytest.mark.asyncio
    async def test_same_transaction_id_updates_in_place(self, repo):
        first = await repo.upsert(_record())
        second = await repo.upsert(_record(plan=Plan.TEAM))

        assert first.id == second.id
        assert [r.plan for r in repo.all()] == [Plan.TEAM]

    @pytest.mark.asyncio
    async def test_one_active_record_per_user(self, repo):
        await repo.upsert(_record(GatewayName.PADDLE, "sub_paddle"))
        await repo.upsert(_record(GatewayName.STRIPE, "sub_stripe"))

        active = [r for r in repo.all() if r.is_active]
        assert [r.gateway for r in active] == [GatewayName.STRIPE]

    @pytest.mark.asyncio
    async def test_inactive_write_does_not_supersede(self, repo):
        await repo.upsert(_record(GatewayName.PADDLE, "sub_paddle"))
        await repo.upsert(
            _record(GatewayName.STRIPE, "sub_stripe", status=SubscriptionStatus.INCOMPLETE)
        )

        paddle = await repo.find_active_by_user_id(EMAIL)
        assert paddle.gateway == GatewayName.PADDLE

    @pytest.mark.asyncio
    async def test_new_transaction_id_never_overwrites_active_record(self, repo):
        await repo.upsert(_record(transaction_id="sub_new", plan=Plan.TEAM))
        await repo.upsert(
            _record(transaction_id="sub_old", status=SubscriptionStatus.CANCELED, plan=Plan.FREE)
        )

        records = {r.gateway_transaction_id: r for r in repo.all()}
        assert records["sub_new"].status == SubscriptionStatus.ACTIVE
        assert records["sub_new"].plan == Plan.TEAM
        assert records["sub_old"].status == SubscriptionStatus.CANCELED

    @pytest.mark.asyncio
    async def test_record_without_transaction_id_updates_active_one(self, repo):
        first = await repo.upsert(_record())
        second = await repo.upsert(_record(transaction_id=None, plan=Plan.TEAM))

        assert second.id == first.id
        assert second.gateway_transaction_id is None
        assert len(repo.all()) == 1

    @pytest.mark.asyncio
    async def test_should_raise(self, repo):
        repo.should_raise = RuntimeError("db down")

        with pytest.raises(RuntimeError):
            await repo.upsert(_record())


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_cancel_immediately(self, repo):
        saved = await repo.upsert(_record())

        canceled = await repo.cancel(saved, immediate=True)

        assert canceled.status == SubscriptionStatus.CANCELED
        assert canceled.plan == Plan.FREE
        assert canceled.canceled_at is not None

    @pytest.mark.asyncio
    async def test_cancel_at_period_end(self, repo):
        saved = await repo.upsert(_record())

        flagged = await repo.cancel(saved, immediate=False)

        assert flagged.status == SubscriptionStatus.ACTIVE
        assert flagged.cancel_at_period_end is True

    @pytest.mark.asyncio
    async def test_cancel_unknown_record(self, repo):
        with pytest.raises(SubscriptionNotFoundError):
            await repo.cancel(_record(transaction_id="sub_missing"))

    @pytest.mark.asyncio
    async def test_renew_extends_one_period(self, repo):
        now = datetime(2024, 5, 1, tzinfo=timezone.utc)
        saved = await repo.upsert(
            _record(GatewayName.PAYMOB, "tx_1", billing_cycle=BillingCycle.YEARLY)
        )

        renewed = await repo.renew(saved, "tx_2", 49950, "EGP", now=now)

        assert renewed.gateway_transaction_id == "tx_2"
        assert renewed.current_period_end == now + timedelta(days=365)
        assert renewed.last_payment_amount == 49950

    @pytest.mark.asyncio
    async def test_update_plan_targets_latest_record(self, repo):
        await repo.upsert(_record())

        updated = await repo.update_plan(EMAIL, Plan.ENTERPRISE)

        assert updated.plan == Plan.ENTERPRISE
        assert await repo.update_plan("nobody@x.com", Plan.PRO) is None

    @pytest.mark.asyncio
    async def test_expire_overdue(self, repo):
        now = datetime.now(timezone.utc)
        past = now - timedelta(days=1)
        repo.seed(_record(GatewayName.PAYMOB, "tx_1", user_id="p@x.com", current_period_end=past))
        repo.seed(
            _record(
                GatewayName.STRIPE,
                "sub_1",
                user_id="s@x.com",
                current_period_end=past,
                cancel_at_period_end=True,
            )
        )
        # Renewed by the provider; a webhook will move it
        repo.seed(_record(GatewayName.STRIPE, "sub_2", user_id="r@x.com", current_period_end=past))
        future = now + timedelta(days=3)
        repo.seed(
            _record(GatewayName.PAYTABS, "TST1", user_id="f@x.com", current_period_end=future)
        )

        expired = await repo.expire_overdue(now + timedelta(seconds=1))

        assert expired == 2
        statuses = {r.user_id: r.status for r in repo.all()}
        assert statuses["p@x.com"] == SubscriptionStatus.EXPIRED
        assert statuses["s@x.com"] == SubscriptionStatus.EXPIRED
        assert statuses["r@x.com"] == SubscriptionStatus.ACTIVE


class TestCustomers:
    @pytest.mark.asyncio
    async def test_customer_round_trip(self, repo):
        customer = CustomerRecord(id="cus_1", gateway=GatewayName.STRIPE, email=EMAIL)

        await repo.upsert_customer(customer)

        assert await repo.get_customer(GatewayName.STRIPE, "cus_1") == customer
        assert await repo.find_customer_by_email(GatewayName.STRIPE, EMAIL) == customer
        assert await repo.find_customer_by_email(GatewayName.PADDLE, EMAIL) is None

    @pytest.mark.asyncio
    async def test_detach_customer_clears_records_at_that_gateway(self, repo):
        customer = CustomerRecord(id="cus_1", gateway=GatewayName.STRIPE, email=EMAIL)
        await repo.upsert_customer(customer)
        repo.seed(_record(gateway_customer_id="cus_1"))
        repo.seed(
            _record(
                GatewayName.PADDLE,
                "sub_paddle",
                status=SubscriptionStatus.CANCELED,
                gateway_customer_id="cus_1",
            )
        )

        changed = await repo.detach_customer(GatewayName.STRIPE, "cus_1")

        assert changed == 1
        by_gateway = {r.gateway: r for r in repo.all()}
        assert by_gateway[GatewayName.STRIPE].gateway_customer_id is None
        assert by_gateway[GatewayName.STRIPE].status == SubscriptionStatus.ACTIVE
        assert by_gateway[GatewayName.PADDLE].gateway_customer_id == "cus_1"
        assert await repo.get_customer(GatewayName.STRIPE, "cus_1") is None
        assert repo.write_count == 2
