"""Subscriptions domain protocols.

SubscriptionRepositoryProtocol is the only persistence surface the gateways
and the webhook processor touch. Each method is one atomic write or read.
"""

from datetime import datetime
from typing import Optional, Protocol, runtime_checkable

from paybridge.schemas.payment import GatewayName, Plan
from paybridge.schemas.subscription import CustomerRecord, SubscriptionRecord


@runtime_checkable
class SubscriptionRepositoryProtocol(Protocol):
    """Durable store of subscription and customer records."""

    async def find_by_gateway_and_transaction_id(
        self, gateway: GatewayName, transaction_id: str
    ) -> Optional[SubscriptionRecord]:
        """Get the record for a provider subscription or transaction id."""
        ...

    async def find_active_by_user_id(
        self, user_id: str, gateway: Optional[GatewayName] = None
    ) -> Optional[SubscriptionRecord]:
        """Get the user's active or trialing record, optionally at one gateway."""
        ...

    async def find_latest_by_user_id(
        self, user_id: str, gateway: Optional[GatewayName] = None
    ) -> Optional[SubscriptionRecord]:
        """Get the user's most recently modified record, whatever its status."""
        ...

    async def upsert(self, record: SubscriptionRecord) -> SubscriptionRecord:
        """Insert or update a record.

        Matched by record id, then (gateway, gateway_transaction_id), then
        the user's active record at that gateway. When the
        written record is active, any other active record of the same user
        is superseded (canceled) in the same transaction.
        """
        ...

    async def update_plan(self, user_id: str, plan: Plan) -> Optional[SubscriptionRecord]:
        """Set the plan on the user's latest record."""
        ...

    async def cancel(
        self, record: SubscriptionRecord, immediate: bool = True
    ) -> SubscriptionRecord:
        """Cancel now (status canceled, plan free) or flag cancel at period end."""
        ...

    async def renew(
        self,
        record: SubscriptionRecord,
        transaction_id: str,
        amount: Optional[int],
        currency: Optional[str],
        now: Optional[datetime] = None,
    ) -> SubscriptionRecord:
        """Extend a locally-tracked subscription by one billing period."""
        ...

    async def expire_overdue(self, now: Optional[datetime] = None) -> int:
        """Mark active records past their period end as expired. Returns the count."""
        ...

    async def get_customer(
        self, gateway: GatewayName, customer_id: str
    ) -> Optional[CustomerRecord]:
        """Get a customer by provider customer id."""
        ...

    async def find_customer_by_email(
        self, gateway: GatewayName, email: str
    ) -> Optional[CustomerRecord]:
        """Get a customer by email at one gateway."""
        ...

    async def upsert_customer(self, customer: CustomerRecord) -> CustomerRecord:
        """Insert or update a customer keyed by (gateway, id)."""
        ...

    async def detach_customer(self, gateway: GatewayName, customer_id: str) -> int:
        """Forget a provider customer that was deleted.

        Clears it from the user's subscription records without touching
        status or plan. Returns the number of records changed.
        """
        ...
