"""Tests for the webhook idempotency ledger.

The in-memory store is exercised for the claim semantics the processor
relies on; the Postgres store is checked at the statement level against a
recording session.
"""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy.dialects import postgresql

from paybridge.domains.webhooks.fakes import FakeIdempotencyStore
from paybridge.domains.webhooks.idempotency import IdempotencyStore
from paybridge.schemas.payment import GatewayName
from paybridge.schemas.webhook_event import WebhookEventState

STRIPE = GatewayName.STRIPE


class TestFakeIdempotencyStore:
    @pytest.mark.asyncio
    async def test_first_claim_wins(self):
        store = FakeIdempotencyStore()

        first = await store.check_and_mark_processing(STRIPE, "evt_1", "invoice.paid")
        second = await store.check_and_mark_processing(STRIPE, "evt_1", "invoice.paid")

        assert first.is_new
        assert not second.is_new
        assert second.existing_state == WebhookEventState.PROCESSING

    @pytest.mark.asyncio
    async def test_concurrent_claims_have_one_winner(self):
        store = FakeIdempotencyStore()

        results = await asyncio.gather(
            *(store.check_and_mark_processing(STRIPE, "evt_1", "invoice.paid") for _ in range(10))
        )

        assert sum(r.is_new for r in results) == 1
        assert len(store.all()) == 1

    @pytest.mark.asyncio
    async def test_key_includes_gateway(self):
        store = FakeIdempotencyStore()

        stripe = await store.check_and_mark_processing(STRIPE, "evt_1", "x")
        paddle = await store.check_and_mark_processing(GatewayName.PADDLE, "evt_1", "x")

        assert stripe.is_new and paddle.is_new

    @pytest.mark.asyncio
    async def test_terminal_states_are_final(self):
        store = FakeIdempotencyStore()
        await store.check_and_mark_processing(STRIPE, "evt_1", "invoice.paid")

        await store.mark_processed(STRIPE, "evt_1", {"outcome": "payment_succeeded"})
        await store.mark_failed(STRIPE, "evt_1", "late failure")

        record = store.get(STRIPE, "evt_1")
        assert record.state == WebhookEventState.PROCESSED
        assert record.result == {"outcome": "payment_succeeded"}
        assert record.error is None

    @pytest.mark.asyncio
    async def test_marking_unclaimed_event_is_a_no_op(self):
        store = FakeIdempotencyStore()

        await store.mark_skipped(STRIPE, "evt_missing", "unhandled")

        assert store.all() == []

    @pytest.mark.asyncio
    async def test_duplicate_reports_terminal_state(self):
        store = FakeIdempotencyStore()
        await store.check_and_mark_processing(STRIPE, "evt_1", "invoice.paid")
        await store.mark_failed(STRIPE, "evt_1", "boom")

        again = await store.check_and_mark_processing(STRIPE, "evt_1", "invoice.paid")

        assert again.existing_state == WebhookEventState.FAILED

    @pytest.mark.asyncio
    async def test_stats_by_state_and_type(self):
        store = FakeIdempotencyStore()
        for event_id, event_type in [("e1", "invoice.paid"), ("e2", "invoice.paid"), ("e3", "x")]:
            await store.check_and_mark_processing(STRIPE, event_id, event_type)
        await store.mark_processed(STRIPE, "e1")
        await store.mark_skipped(STRIPE, "e3", "unhandled")
        await store.check_and_mark_processing(GatewayName.PAYMOB, "p1", "payment.success")

        stats = await store.get_event_stats(STRIPE)

        assert stats.total == 3
        assert stats.processed == 1
        assert stats.processing == 1
        assert stats.skipped == 1
        assert stats.by_type == {"invoice.paid": 2, "x": 1}

    @pytest.mark.asyncio
    async def test_recent_events_newest_first(self):
        store = FakeIdempotencyStore()
        for event_id in ("e1", "e2", "e3"):
            await store.check_and_mark_processing(STRIPE, event_id, "x")
        store.get(STRIPE, "e1").created_at -= timedelta(hours=2)
        store.get(STRIPE, "e3").created_at -= timedelta(hours=3)

        recent = await store.get_recent_events(limit=2)

        assert [e.event_id for e in recent] == ["e2", "e1"]

    @pytest.mark.asyncio
    async def test_purge_only_removes_expired(self):
        store = FakeIdempotencyStore(ttl_days=30)
        await store.check_and_mark_processing(STRIPE, "old", "x")
        await store.check_and_mark_processing(STRIPE, "new", "x")
        store.get(STRIPE, "old").expires_at = datetime.now(timezone.utc) - timedelta(days=1)

        purged = await store.purge_expired()

        assert purged == 1
        assert [e.event_id for e in store.all()] == ["new"]


# ---------------------------------------------------------------------------
# Postgres store against a recording session
# ---------------------------------------------------------------------------


class _Result:
    def __init__(self, value=None, rowcount=0, rows=()):
        self._value = value
        self.rowcount = rowcount
        self._rows = list(rows)

    def scalar_one_or_none(self):
        return self._value

    def all(self):
        return self._rows


class _RecordingSession:
    def __init__(self, results):
        self.statements = []
        self.commits = 0
        self._results = list(results)

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False

    async def execute(self, statement):
        self.statements.append(statement)
        return self._results.pop(0)

    async def commit(self):
        self.commits += 1


def _sql(statement) -> str:
    return str(statement.compile(dialect=postgresql.dialect()))


class TestIdempotencyStore:
    @pytest.mark.asyncio
    async def test_claim_is_a_single_conflict_free_insert(self):
        session = _RecordingSession([_Result(value=1)])
        store = IdempotencyStore(lambda: session)

        begin = await store.check_and_mark_processing(STRIPE, "evt_1", "invoice.paid", {"id": "in"})

        assert begin.is_new
        (insert,) = session.statements
        sql = _sql(insert)
        assert "ON CONFLICT (gateway, event_id) DO NOTHING" in sql
        assert "RETURNING" in sql
        assert session.commits == 1

    @pytest.mark.asyncio
    async def test_conflict_reads_existing_state(self):
        session = _RecordingSession([_Result(value=None), _Result(value="processed")])
        store = IdempotencyStore(lambda: session)

        begin = await store.check_and_mark_processing(STRIPE, "evt_1", "invoice.paid")

        assert not begin.is_new
        assert begin.existing_state == WebhookEventState.PROCESSED

    @pytest.mark.asyncio
    async def test_transition_only_from_processing(self):
        session = _RecordingSession([_Result(rowcount=1)])
        store = IdempotencyStore(lambda: session)

        await store.mark_failed(STRIPE, "evt_1", "boom")

        sql = _sql(session.statements[0])
        assert sql.startswith("UPDATE webhook_event")
        assert "webhook_event.state = " in sql

    @pytest.mark.asyncio
    async def test_purge_returns_deleted_count(self):
        session = _RecordingSession([_Result(rowcount=4)])
        store = IdempotencyStore(lambda: session)

        assert await store.purge_expired() == 4
        assert _sql(session.statements[0]).startswith("DELETE FROM webhook_event")

    @pytest.mark.asyncio
    async def test_stats_fold_grouped_rows(self):
        rows = [
            ("processed", "invoice.paid", 3),
            ("failed", "invoice.paid", 1),
            ("skipped", "x", 2),
        ]
        session = _RecordingSession([_Result(rows=rows)])
        store = IdempotencyStore(lambda: session)

        stats = await store.get_event_stats()

        assert stats.total == 6
        assert stats.processed == 3
        assert stats.failed == 1
        assert stats.by_type == {"invoice.paid": 4, "x": 2}
