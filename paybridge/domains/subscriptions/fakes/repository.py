"""Fake subscription repository for testing."""

from datetime import datetime, timedelta, timezone
from typing import Any, Optional
from uuid import uuid4

from paybridge.domains.payments.exceptions import SubscriptionNotFoundError
from paybridge.schemas.payment import GatewayName, Plan, SubscriptionStatus
from paybridge.schemas.subscription import CustomerRecord, SubscriptionRecord

_LOCALLY_RENEWED = (GatewayName.PAYMOB, GatewayName.PAYTABS)

_WRITES = (
    "upsert",
    "update_plan",
    "cancel",
    "renew",
    "expire_overdue",
    "upsert_customer",
    "detach_customer",
)


class FakeSubscriptionRepository:
    """In-memory fake for SubscriptionRepositoryProtocol.

    Records every call in ``_calls``. Set ``should_raise`` to make the next
    write raise that exception.
    """

    def __init__(self) -> None:
        """Initialize with empty stores and call log."""
        self._records: dict[Any, SubscriptionRecord] = {}
        self._customers: dict[tuple[GatewayName, str], CustomerRecord] = {}
        self._calls: list[tuple] = []
        self.should_raise: Optional[Exception] = None

    # -------------------------------------------------------------------------
    # Test helpers
    # -------------------------------------------------------------------------

    def seed(self, record: SubscriptionRecord) -> SubscriptionRecord:
        """Populate the store with a record, assigning an id if missing."""
        stored = record.model_copy(update={"id": record.id or uuid4()})
        now = datetime.now(timezone.utc)
        stored.created_at = stored.created_at or now
        stored.modified_at = stored.modified_at or now
        self._records[stored.id] = stored
        return stored

    def seed_customer(self, customer: CustomerRecord) -> None:
        """Populate the customer store."""
        self._customers[(customer.gateway, customer.id)] = customer

    def all(self) -> list[SubscriptionRecord]:
        """All stored records, oldest first."""
        return list(self._records.values())

    def calls_for(self, method: str) -> list[tuple]:
        """Calls recorded for one method name."""
        return [c for c in self._calls if c[0] == method]

    @property
    def write_count(self) -> int:
        """Number of write calls made so far."""
        return sum(1 for c in self._calls if c[0] in _WRITES)

    def clear(self) -> None:
        """Drop all records and calls."""
        self._records.clear()
        self._customers.clear()
        self._calls.clear()
        self.should_raise = None

    def _write(self, *call: Any) -> None:
        self._calls.append(call)
        if self.should_raise:
            raise self.should_raise

    def _store(self, record: SubscriptionRecord) -> SubscriptionRecord:
        record.modified_at = datetime.now(timezone.utc)
        self._records[record.id] = record
        return record.model_copy()

    def _find(self, record: SubscriptionRecord) -> SubscriptionRecord:
        stored = self._records.get(record.id) if record.id else None
        if stored is None and record.gateway_transaction_id:
            stored = self._by_transaction(record.gateway, record.gateway_transaction_id)
        if stored is None:
            raise SubscriptionNotFoundError()
        return stored

    def _by_transaction(
        self, gateway: GatewayName, transaction_id: str
    ) -> Optional[SubscriptionRecord]:
        for r in self._records.values():
            if r.gateway == gateway and r.gateway_transaction_id == transaction_id:
                return r
        return None

    def _latest(self, records: list[SubscriptionRecord]) -> Optional[SubscriptionRecord]:
        if not records:
            return None
        floor = datetime.min.replace(tzinfo=timezone.utc)
        return max(records, key=lambda r: r.modified_at or floor)

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    async def find_by_gateway_and_transaction_id(
        self, gateway: GatewayName, transaction_id: str
    ) -> Optional[SubscriptionRecord]:
        """Get the record for a provider subscription or transaction id."""
        self._calls.append(("find_by_gateway_and_transaction_id", gateway, transaction_id))
        found = self._by_transaction(gateway, transaction_id)
        return found.model_copy() if found else None

    async def find_active_by_user_id(
        self, user_id: str, gateway: Optional[GatewayName] = None
    ) -> Optional[SubscriptionRecord]:
        """Get the user's active record."""
        self._calls.append(("find_active_by_user_id", user_id, gateway))
        found = self._latest(
            [
                r
                for r in self._records.values()
                if r.user_id == user_id
                and r.is_active
                and (gateway is None or r.gateway == gateway)
            ]
        )
        return found.model_copy() if found else None

    async def find_latest_by_user_id(
        self, user_id: str, gateway: Optional[GatewayName] = None
    ) -> Optional[SubscriptionRecord]:
        """Get the user's most recently modified record."""
        self._calls.append(("find_latest_by_user_id", user_id, gateway))
        found = self._latest(
            [
                r
                for r in self._records.values()
                if r.user_id == user_id and (gateway is None or r.gateway == gateway)
            ]
        )
        return found.model_copy() if found else None

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    async def upsert(self, record: SubscriptionRecord) -> SubscriptionRecord:
        """Insert or update, superseding other active records of the user."""
        self._write("upsert", record)
        existing = self._records.get(record.id) if record.id else None
        if existing is None and record.gateway_transaction_id:
            existing = self._by_transaction(record.gateway, record.gateway_transaction_id)
        if existing is None and record.gateway_transaction_id is None:
            existing = self._latest(
                [
                    r
                    for r in self._records.values()
                    if r.user_id == record.user_id and r.gateway == record.gateway and r.is_active
                ]
            )

        if record.is_active:
            for other in self._records.values():
                if other.user_id == record.user_id and other.is_active:
                    if existing is None or other.id != existing.id:
                        other.status = SubscriptionStatus.CANCELED
                        other.canceled_at = datetime.now(timezone.utc)

        now = datetime.now(timezone.utc)
        stored = record.model_copy(
            update={
                "id": existing.id if existing else uuid4(),
                "created_at": existing.created_at if existing else now,
            }
        )
        return self._store(stored)

    async def update_plan(self, user_id: str, plan: Plan) -> Optional[SubscriptionRecord]:
        """Set the plan on the user's latest record."""
        self._write("update_plan", user_id, plan)
        latest = self._latest([r for r in self._records.values() if r.user_id == user_id])
        if latest is None:
            return None
        latest.plan = plan
        return self._store(latest)

    async def cancel(
        self, record: SubscriptionRecord, immediate: bool = True
    ) -> SubscriptionRecord:
        """Cancel now or at period end."""
        self._write("cancel", record, immediate)
        stored = self._find(record)
        if immediate:
            stored.status = SubscriptionStatus.CANCELED
            stored.plan = Plan.FREE
            stored.cancel_at_period_end = False
            stored.canceled_at = stored.canceled_at or datetime.now(timezone.utc)
        else:
            stored.cancel_at_period_end = True
        return self._store(stored)

    async def renew(
        self,
        record: SubscriptionRecord,
        transaction_id: str,
        amount: Optional[int],
        currency: Optional[str],
        now: Optional[datetime] = None,
    ) -> SubscriptionRecord:
        """Extend by one billing period."""
        self._write("renew", record, transaction_id, amount, currency)
        now = now or datetime.now(timezone.utc)
        stored = self._find(record)
        stored.gateway_transaction_id = transaction_id
        stored.status = SubscriptionStatus.ACTIVE
        stored.current_period_start = now
        stored.current_period_end = now + timedelta(days=stored.billing_cycle.period_days)
        stored.cancel_at_period_end = False
        stored.last_payment_at = now
        stored.last_payment_amount = amount
        stored.currency = currency
        return self._store(stored)

    async def expire_overdue(self, now: Optional[datetime] = None) -> int:
        """Expire active records whose period has ended."""
        self._write("expire_overdue", now)
        now = now or datetime.now(timezone.utc)
        count = 0
        for r in self._records.values():
            if not r.is_active or r.current_period_end is None or r.current_period_end >= now:
                continue
            if r.cancel_at_period_end or r.gateway in _LOCALLY_RENEWED:
                r.status = SubscriptionStatus.EXPIRED
                r.plan = Plan.FREE
                count += 1
        return count

    # -------------------------------------------------------------------------
    # Customers
    # -------------------------------------------------------------------------

    async def get_customer(
        self, gateway: GatewayName, customer_id: str
    ) -> Optional[CustomerRecord]:
        """Get a customer by provider id."""
        self._calls.append(("get_customer", gateway, customer_id))
        return self._customers.get((gateway, customer_id))

    async def find_customer_by_email(
        self, gateway: GatewayName, email: str
    ) -> Optional[CustomerRecord]:
        """Get a customer by email."""
        self._calls.append(("find_customer_by_email", gateway, email))
        for (gw, _), customer in self._customers.items():
            if gw == gateway and customer.email == email:
                return customer
        return None

    async def upsert_customer(self, customer: CustomerRecord) -> CustomerRecord:
        """Insert or replace a customer."""
        self._write("upsert_customer", customer)
        self._customers[(customer.gateway, customer.id)] = customer
        return customer

    async def detach_customer(self, gateway: GatewayName, customer_id: str) -> int:
        """Clear a deleted customer from its records and drop it."""
        self._write("detach_customer", gateway, customer_id)
        self._customers.pop((gateway, customer_id), None)
        changed = 0
        for record in self._records.values():
            if record.gateway == gateway and record.gateway_customer_id == customer_id:
                record.gateway_customer_id = None
                changed += 1
        return changed
