"""SQLAlchemy subscription and customer repository."""

from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy import and_, delete, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from paybridge.core.logging import logger
from paybridge.domains.subscriptions.protocols import SubscriptionRepositoryProtocol
from paybridge.models import Customer, Subscription
from paybridge.schemas.payment import GatewayName, Plan, SubscriptionStatus
from paybridge.schemas.subscription import CustomerRecord, SubscriptionRecord

ACTIVE_STATUSES = (SubscriptionStatus.ACTIVE.value, SubscriptionStatus.TRIALING.value)

# Gateways without provider-side subscriptions; nothing renews them but a new payment
LOCALLY_RENEWED_GATEWAYS = (GatewayName.PAYMOB.value, GatewayName.PAYTABS.value)

_WRITABLE_FIELDS = (
    "user_id",
    "user_email",
    "gateway_transaction_id",
    "gateway_customer_id",
    "current_period_start",
    "current_period_end",
    "cancel_at_period_end",
    "canceled_at",
    "last_payment_at",
    "last_payment_amount",
    "currency",
)


def _to_record(row: Subscription) -> SubscriptionRecord:
    return SubscriptionRecord.model_validate(row)


def _to_customer(row: Customer) -> CustomerRecord:
    return CustomerRecord(
        id=row.gateway_customer_id,
        gateway=row.gateway,
        email=row.email,
        user_id=row.user_id,
        name=row.name,
        provider_metadata=row.provider_metadata or {},
        created_at=row.created_at,
    )


def _apply(row: Subscription, record: SubscriptionRecord) -> None:
    for field in _WRITABLE_FIELDS:
        setattr(row, field, getattr(record, field))
    row.gateway = record.gateway.value
    row.plan = record.plan.value
    row.billing_cycle = record.billing_cycle.value
    row.status = record.status.value
    row.provider_metadata = dict(record.provider_metadata)


class SubscriptionRepository(SubscriptionRepositoryProtocol):
    """SubscriptionRepositoryProtocol backed by Postgres.

    Every public method opens its own session and commits before returning,
    so each call is one atomic unit.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    async def find_by_gateway_and_transaction_id(
        self, gateway: GatewayName, transaction_id: str
    ) -> Optional[SubscriptionRecord]:
        async with self._session_factory() as db:
            row = await self._get_by_transaction(db, gateway.value, transaction_id)
            return _to_record(row) if row else None

    async def find_active_by_user_id(
        self, user_id: str, gateway: Optional[GatewayName] = None
    ) -> Optional[SubscriptionRecord]:
        async with self._session_factory() as db:
            row = await self._get_active(db, user_id, gateway.value if gateway else None)
            return _to_record(row) if row else None

    async def find_latest_by_user_id(
        self, user_id: str, gateway: Optional[GatewayName] = None
    ) -> Optional[SubscriptionRecord]:
        stmt = select(Subscription).where(Subscription.user_id == user_id)
        if gateway:
            stmt = stmt.where(Subscription.gateway == gateway.value)
        stmt = stmt.order_by(Subscription.modified_at.desc()).limit(1)
        async with self._session_factory() as db:
            result = await db.execute(stmt)
            row = result.scalar_one_or_none()
            return _to_record(row) if row else None

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    async def upsert(self, record: SubscriptionRecord) -> SubscriptionRecord:
        async with self._session_factory() as db:
            row: Optional[Subscription] = None
            if record.id:
                row = await db.get(Subscription, record.id)
            if row is None and record.gateway_transaction_id:
                row = await self._get_by_transaction(
                    db, record.gateway.value, record.gateway_transaction_id
                )
            if row is None and record.gateway_transaction_id is None:
                row = await self._get_active(db, record.user_id, record.gateway.value)

            if record.is_active:
                # The partial unique index allows one active row per user
                await self._supersede_active(db, record.user_id, keep_id=row.id if row else None)

            if row is None:
                row = Subscription()
                db.add(row)
            _apply(row, record)
            await db.commit()
            await db.refresh(row)
            return _to_record(row)

    async def update_plan(self, user_id: str, plan: Plan) -> Optional[SubscriptionRecord]:
        async with self._session_factory() as db:
            stmt = (
                select(Subscription)
                .where(Subscription.user_id == user_id)
                .order_by(Subscription.modified_at.desc())
                .limit(1)
            )
            row = (await db.execute(stmt)).scalar_one_or_none()
            if row is None:
                return None
            row.plan = plan.value
            await db.commit()
            await db.refresh(row)
            return _to_record(row)

    async def cancel(
        self, record: SubscriptionRecord, immediate: bool = True
    ) -> SubscriptionRecord:
        async with self._session_factory() as db:
            row = await self._load(db, record)
            if immediate:
                row.status = SubscriptionStatus.CANCELED.value
                row.plan = Plan.FREE.value
                row.cancel_at_period_end = False
                row.canceled_at = row.canceled_at or datetime.now(timezone.utc)
            else:
                row.cancel_at_period_end = True
            await db.commit()
            await db.refresh(row)
            return _to_record(row)

    async def renew(
        self,
        record: SubscriptionRecord,
        transaction_id: str,
        amount: Optional[int],
        currency: Optional[str],
        now: Optional[datetime] = None,
    ) -> SubscriptionRecord:
        now = now or datetime.now(timezone.utc)
        async with self._session_factory() as db:
            row = await self._load(db, record)
            row.gateway_transaction_id = transaction_id
            row.status = SubscriptionStatus.ACTIVE.value
            row.current_period_start = now
            row.current_period_end = now + timedelta(days=record.billing_cycle.period_days)
            row.cancel_at_period_end = False
            row.last_payment_at = now
            row.last_payment_amount = amount
            row.currency = currency
            await db.commit()
            await db.refresh(row)
            return _to_record(row)

    async def expire_overdue(self, now: Optional[datetime] = None) -> int:
        now = now or datetime.now(timezone.utc)
        stmt = (
            update(Subscription)
            .where(
                Subscription.status.in_(ACTIVE_STATUSES),
                Subscription.current_period_end.is_not(None),
                Subscription.current_period_end < now,
                or_(
                    Subscription.cancel_at_period_end.is_(True),
                    Subscription.gateway.in_(LOCALLY_RENEWED_GATEWAYS),
                ),
            )
            .values(status=SubscriptionStatus.EXPIRED.value, plan=Plan.FREE.value)
        )
        async with self._session_factory() as db:
            result = await db.execute(stmt)
            await db.commit()
        count = result.rowcount or 0
        if count:
            logger.info(f"Expired {count} overdue subscriptions")
        return count

    # -------------------------------------------------------------------------
    # Customers
    # -------------------------------------------------------------------------

    async def get_customer(
        self, gateway: GatewayName, customer_id: str
    ) -> Optional[CustomerRecord]:
        stmt = select(Customer).where(
            Customer.gateway == gateway.value, Customer.gateway_customer_id == customer_id
        )
        async with self._session_factory() as db:
            row = (await db.execute(stmt)).scalar_one_or_none()
            return _to_customer(row) if row else None

    async def find_customer_by_email(
        self, gateway: GatewayName, email: str
    ) -> Optional[CustomerRecord]:
        stmt = (
            select(Customer)
            .where(Customer.gateway == gateway.value, Customer.email == email)
            .order_by(Customer.created_at.desc())
            .limit(1)
        )
        async with self._session_factory() as db:
            row = (await db.execute(stmt)).scalar_one_or_none()
            return _to_customer(row) if row else None

    async def upsert_customer(self, customer: CustomerRecord) -> CustomerRecord:
        from sqlalchemy.dialects.postgresql import insert

        stmt = insert(Customer).values(
            {
                Customer.gateway_customer_id: customer.id,
                Customer.gateway: customer.gateway.value,
                Customer.user_id: customer.user_id,
                Customer.email: customer.email,
                Customer.name: customer.name,
                Customer.provider_metadata: dict(customer.provider_metadata),
            }
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["gateway", "gateway_customer_id"],
            set_={
                "user_id": stmt.excluded.user_id,
                "email": stmt.excluded.email,
                "name": stmt.excluded.name,
                "metadata": stmt.excluded["metadata"],
            },
        ).returning(Customer)
        async with self._session_factory() as db:
            row = (await db.execute(stmt)).scalar_one()
            await db.commit()
            return _to_customer(row)

    async def detach_customer(self, gateway: GatewayName, customer_id: str) -> int:
        clear = (
            update(Subscription)
            .where(
                Subscription.gateway == gateway.value,
                Subscription.gateway_customer_id == customer_id,
            )
            .values(gateway_customer_id=None)
        )
        remove = delete(Customer).where(
            Customer.gateway == gateway.value,
            Customer.gateway_customer_id == customer_id,
        )
        async with self._session_factory() as db:
            result = await db.execute(clear)
            await db.execute(remove)
            await db.commit()
            return result.rowcount

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    async def _get_by_transaction(
        self, db: AsyncSession, gateway: str, transaction_id: str
    ) -> Optional[Subscription]:
        stmt = select(Subscription).where(
            Subscription.gateway == gateway,
            Subscription.gateway_transaction_id == transaction_id,
        )
        return (await db.execute(stmt)).scalar_one_or_none()

    async def _get_active(
        self, db: AsyncSession, user_id: str, gateway: Optional[str]
    ) -> Optional[Subscription]:
        conditions = [Subscription.user_id == user_id, Subscription.status.in_(ACTIVE_STATUSES)]
        if gateway:
            conditions.append(Subscription.gateway == gateway)
        stmt = (
            select(Subscription)
            .where(and_(*conditions))
            .order_by(Subscription.modified_at.desc())
            .limit(1)
        )
        return (await db.execute(stmt)).scalar_one_or_none()

    async def _load(self, db: AsyncSession, record: SubscriptionRecord) -> Subscription:
        row = await db.get(Subscription, record.id) if record.id else None
        if row is None and record.gateway_transaction_id:
            row = await self._get_by_transaction(
                db, record.gateway.value, record.gateway_transaction_id
            )
        if row is None:
            from paybridge.domains.payments.exceptions import SubscriptionNotFoundError

            raise SubscriptionNotFoundError(
                f"No subscription record for {record.gateway.value}:{record.gateway_transaction_id}"
            )
        return row

    async def _supersede_active(
        self, db: AsyncSession, user_id: str, keep_id: Optional[object]
    ) -> None:
        stmt = update(Subscription).where(
            Subscription.user_id == user_id,
            Subscription.status.in_(ACTIVE_STATUSES),
        )
        if keep_id is not None:
            stmt = stmt.where(Subscription.id != keep_id)
        stmt = stmt.values(
            status=SubscriptionStatus.CANCELED.value,
            canceled_at=datetime.now(timezone.utc),
        )
        result = await db.execute(stmt)
        if result.rowcount:
            logger.with_context(user_id=user_id).info(
                f"Superseded {result.rowcount} active subscription(s)"
            )
        await db.flush()
