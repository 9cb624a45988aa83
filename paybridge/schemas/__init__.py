"""Schemas for paybridge."""

from .payment import (
    PAID_PLANS,
    BillingCycle,
    CheckoutRequest,
    CheckoutSession,
    GatewayName,
    PaymentStatus,
    Plan,
    SubscriptionStatus,
    WebhookOutcome,
    WebhookResult,
    coerce_billing_cycle,
    coerce_plan,
)
from .subscription import CustomerRecord, SubscriptionRecord
from .webhook_event import (
    BeginResult,
    EventStats,
    WebhookAck,
    WebhookEventRecord,
    WebhookEventState,
)

__all__ = [
    "PAID_PLANS",
    "BeginResult",
    "BillingCycle",
    "CheckoutRequest",
    "CheckoutSession",
    "CustomerRecord",
    "EventStats",
    "GatewayName",
    "PaymentStatus",
    "Plan",
    "SubscriptionRecord",
    "SubscriptionStatus",
    "WebhookAck",
    "WebhookEventRecord",
    "WebhookEventState",
    "WebhookOutcome",
    "WebhookResult",
    "coerce_billing_cycle",
    "coerce_plan",
]
