"""Payment schemas shared by every gateway.

Canonical vocabularies (gateway names, plans, statuses) plus the checkout
DTOs and the normalized result of interpreting a webhook event.
"""

from datetime import datetime
from enum import Enum
from typing import Dict, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field


class GatewayName(str, Enum):
    """Supported payment gateways."""

    STRIPE = "stripe"
    PADDLE = "paddle"
    PAYMOB = "paymob"
    PAYTABS = "paytabs"

    @property
    def display_name(self) -> str:
        """Human-facing provider name used in error messages."""
        return _DISPLAY_NAMES[self]


_DISPLAY_NAMES = {
    GatewayName.STRIPE: "Stripe",
    GatewayName.PADDLE: "Paddle",
    GatewayName.PAYMOB: "Paymob",
    GatewayName.PAYTABS: "PayTabs",
}


class Plan(str, Enum):
    """Subscription plans."""

    FREE = "free"
    PRO = "pro"
    TEAM = "team"
    ENTERPRISE = "enterprise"


PAID_PLANS = frozenset({Plan.PRO, Plan.TEAM, Plan.ENTERPRISE})


class BillingCycle(str, Enum):
    """Billing cadence of a subscription."""

    MONTHLY = "monthly"
    YEARLY = "yearly"

    @property
    def period_days(self) -> int:
        """Length of one billing period for locally-tracked subscriptions."""
        return 365 if self is BillingCycle.YEARLY else 30


class SubscriptionStatus(str, Enum):
    """Canonical subscription status across all gateways."""

    ACTIVE = "active"
    TRIALING = "trialing"
    PAST_DUE = "past_due"
    PAUSED = "paused"
    CANCELED = "canceled"
    INCOMPLETE = "incomplete"
    INCOMPLETE_EXPIRED = "incomplete_expired"
    EXPIRED = "expired"


class PaymentStatus(str, Enum):
    """Canonical status of a single payment or transaction."""

    PENDING = "pending"
    PROCESSING = "processing"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELED = "canceled"
    REFUNDED = "refunded"


class WebhookOutcome(str, Enum):
    """What an interpreted webhook event means for local state."""

    CHECKOUT_COMPLETED = "checkout_completed"
    SUBSCRIPTION_UPDATED = "subscription_updated"
    SUBSCRIPTION_CANCELED = "subscription_canceled"
    PAYMENT_SUCCEEDED = "payment_succeeded"
    PAYMENT_FAILED = "payment_failed"
    PAYMENT_REFUNDED = "payment_refunded"
    PAYMENT_VOIDED = "payment_voided"
    CUSTOMER_DELETED = "customer_deleted"
    ACKNOWLEDGED = "acknowledged"
    ERROR = "error"


def coerce_plan(value: Optional[str], default: Optional[Plan] = None) -> Optional[Plan]:
    """Parse a plan string from provider metadata, falling back to ``default``."""
    if not value:
        return default
    try:
        return Plan(str(value).lower())
    except ValueError:
        return default


def coerce_billing_cycle(
    value: Optional[str], default: Optional[BillingCycle] = None
) -> Optional[BillingCycle]:
    """Parse a billing cycle string, accepting provider interval names too."""
    if not value:
        return default
    normalized = str(value).lower()
    if normalized in ("year", "annual", "yearly"):
        return BillingCycle.YEARLY
    if normalized in ("month", "monthly"):
        return BillingCycle.MONTHLY
    return default


class CheckoutRequest(BaseModel):
    """Request to start a hosted checkout for a paid plan."""

    plan: Plan
    billing_cycle: BillingCycle = BillingCycle.MONTHLY
    user_id: str
    user_email: EmailStr
    user_name: Optional[str] = None
    success_url: str
    cancel_url: str
    metadata: Dict[str, str] = Field(default_factory=dict)
    locale: Optional[str] = None
    quantity: int = Field(default=1, ge=1)
    region: Optional[str] = Field(
        default=None, description="Merchant region override for regional gateways"
    )


class CheckoutSession(BaseModel):
    """Hosted checkout created by a gateway."""

    url: str
    session_id: str
    gateway: GatewayName
    client_secret: Optional[str] = None
    expires_at: Optional[datetime] = None


class WebhookResult(BaseModel):
    """Normalized, gateway-independent interpretation of one webhook event.

    Never persisted. ``status`` holds a canonical subscription status for
    subscription events and a canonical payment status for payment events.
    """

    model_config = ConfigDict(use_enum_values=False)

    event: str
    success: bool
    outcome: WebhookOutcome = WebhookOutcome.ACKNOWLEDGED
    status: Optional[str] = None
    subscription_id: Optional[str] = None
    customer_id: Optional[str] = None
    user_id: Optional[str] = None
    user_email: Optional[str] = None
    plan: Optional[Plan] = None
    billing_cycle: Optional[BillingCycle] = None
    amount: Optional[int] = Field(default=None, description="Amount in minor currency units")
    currency: Optional[str] = None
    payment_id: Optional[str] = None
    current_period_start: Optional[datetime] = None
    current_period_end: Optional[datetime] = None
    cancel_at_period_end: Optional[bool] = None
    error: Optional[str] = None

    @classmethod
    def failure(cls, message: str) -> "WebhookResult":
        """Build the error result returned for unconfigured or unverifiable webhooks."""
        return cls(event="error", success=False, outcome=WebhookOutcome.ERROR, error=message)

    def summary(self) -> Dict[str, Optional[str]]:
        """Compact, JSON-safe summary stored on the idempotency record."""
        return {
            "outcome": self.outcome.value,
            "status": self.status,
            "subscription_id": self.subscription_id,
            "user_email": self.user_email,
            "plan": self.plan.value if self.plan else None,
        }
