"""Status mappers: provider vocabularies to canonical statuses.

Every mapper is a total function. Unknown, empty or ``None`` inputs map to
an explicit default instead of raising.
"""

from typing import Mapping, Optional

from paybridge.schemas.payment import GatewayName, PaymentStatus, Plan, SubscriptionStatus


class StatusMapper:
    """Table-driven mapping from one provider's status strings to SubscriptionStatus."""

    def __init__(
        self,
        table: Mapping[str, SubscriptionStatus],
        default: SubscriptionStatus = SubscriptionStatus.INCOMPLETE,
    ) -> None:
        self._table = dict(table)
        self._default = default

    @property
    def default(self) -> SubscriptionStatus:
        return self._default

    def map(self, native: Optional[str]) -> SubscriptionStatus:
        """Map a provider status; unknown values map to the default."""
        if native is None:
            return self._default
        return self._table.get(str(native).strip().lower(), self._default)

    def known_inputs(self) -> frozenset[str]:
        return frozenset(self._table)


_S = SubscriptionStatus

STRIPE_STATUS_MAPPER = StatusMapper(
    {
        "active": _S.ACTIVE,
        "trialing": _S.TRIALING,
        "past_due": _S.PAST_DUE,
        "paused": _S.PAUSED,
        "canceled": _S.CANCELED,
        "incomplete": _S.INCOMPLETE,
        "incomplete_expired": _S.INCOMPLETE_EXPIRED,
        "unpaid": _S.PAST_DUE,
    }
)

PADDLE_STATUS_MAPPER = StatusMapper(
    {
        "active": _S.ACTIVE,
        "canceled": _S.CANCELED,
        "past_due": _S.PAST_DUE,
        "paused": _S.PAUSED,
        "trialing": _S.TRIALING,
    }
)

# Regional gateways report transaction outcomes, not subscription states.
PAYMOB_STATUS_MAPPER = StatusMapper(
    {
        "success": _S.ACTIVE,
        "pending": _S.INCOMPLETE,
        "declined": _S.PAST_DUE,
        "error": _S.PAST_DUE,
        "voided": _S.CANCELED,
        "refunded": _S.CANCELED,
    }
)

# PayTabs payment_result.response_status codes (lower-cased by the mapper).
PAYTABS_STATUS_MAPPER = StatusMapper(
    {
        "a": _S.ACTIVE,  # authorised
        "h": _S.INCOMPLETE,  # hold
        "p": _S.INCOMPLETE,  # pending
        "v": _S.CANCELED,  # voided
        "e": _S.PAST_DUE,  # error
        "d": _S.PAST_DUE,  # declined
    }
)

STATUS_MAPPERS: dict[GatewayName, StatusMapper] = {
    GatewayName.STRIPE: STRIPE_STATUS_MAPPER,
    GatewayName.PADDLE: PADDLE_STATUS_MAPPER,
    GatewayName.PAYMOB: PAYMOB_STATUS_MAPPER,
    GatewayName.PAYTABS: PAYTABS_STATUS_MAPPER,
}


def map_status(gateway: GatewayName, native: Optional[str]) -> SubscriptionStatus:
    """Map a provider status for ``gateway`` onto the canonical vocabulary."""
    return STATUS_MAPPERS[gateway].map(native)


_STRIPE_PAYMENT_STATUS = {
    "succeeded": PaymentStatus.SUCCEEDED,
    "processing": PaymentStatus.PROCESSING,
    "requires_payment_method": PaymentStatus.PENDING,
    "requires_confirmation": PaymentStatus.PENDING,
    "requires_action": PaymentStatus.PENDING,
    "requires_capture": PaymentStatus.PROCESSING,
    "canceled": PaymentStatus.CANCELED,
}


def map_payment_status(native: Optional[str]) -> PaymentStatus:
    """Map a Stripe payment-intent status; unknown values are pending."""
    if not native:
        return PaymentStatus.PENDING
    return _STRIPE_PAYMENT_STATUS.get(native.lower(), PaymentStatus.PENDING)


def plan_for_status(status: SubscriptionStatus, requested_plan: Optional[Plan]) -> Plan:
    """Plan a user should hold given a subscription status.

    active/trialing grant the requested plan, past_due and any terminal
    status fall back to free. Other states keep the requested plan.
    """
    if status in (SubscriptionStatus.ACTIVE, SubscriptionStatus.TRIALING):
        return requested_plan or Plan.FREE
    if status in (
        SubscriptionStatus.PAST_DUE,
        SubscriptionStatus.CANCELED,
        SubscriptionStatus.INCOMPLETE_EXPIRED,
        SubscriptionStatus.EXPIRED,
    ):
        return Plan.FREE
    return requested_plan or Plan.FREE
