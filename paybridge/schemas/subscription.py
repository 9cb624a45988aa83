"""Subscription and customer schemas."""

from datetime import datetime
from typing import Dict, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from paybridge.schemas.payment import BillingCycle, GatewayName, Plan, SubscriptionStatus


class SubscriptionRecord(BaseModel):
    """Local record of a user's subscription at one gateway.

    ``gateway_transaction_id`` is the provider subscription id for
    subscription-native gateways and the payment transaction id for
    regional gateways that bill one transaction per period.
    """

    model_config = ConfigDict(from_attributes=True)

    id: Optional[UUID] = None
    user_id: str
    user_email: Optional[str] = None
    gateway: GatewayName
    gateway_transaction_id: Optional[str] = None
    gateway_customer_id: Optional[str] = None
    plan: Plan = Plan.FREE
    billing_cycle: BillingCycle = BillingCycle.MONTHLY
    status: SubscriptionStatus = SubscriptionStatus.INCOMPLETE
    current_period_start: Optional[datetime] = None
    current_period_end: Optional[datetime] = None
    cancel_at_period_end: bool = False
    canceled_at: Optional[datetime] = None
    last_payment_at: Optional[datetime] = None
    last_payment_amount: Optional[int] = None
    currency: Optional[str] = None
    provider_metadata: Dict[str, str] = Field(default_factory=dict)
    created_at: Optional[datetime] = None
    modified_at: Optional[datetime] = None

    @property
    def is_active(self) -> bool:
        """True while the subscription grants access to its plan."""
        return self.status in (SubscriptionStatus.ACTIVE, SubscriptionStatus.TRIALING)


class CustomerRecord(BaseModel):
    """A customer as known to one gateway.

    Regional gateways have no customer objects; their records use the email
    address as a synthetic id.
    """

    model_config = ConfigDict(from_attributes=True)

    id: str
    gateway: GatewayName
    email: str
    user_id: Optional[str] = None
    name: Optional[str] = None
    provider_metadata: Dict[str, str] = Field(default_factory=dict)
    created_at: Optional[datetime] = None
