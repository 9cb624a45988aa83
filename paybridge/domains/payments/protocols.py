"""Payments domain protocols.

``PaymentGateway`` is the contract every provider implements. Optional
capabilities live in separate runtime-checkable protocols; callers check
``isinstance(gateway, SupportsPause)`` before using them.
"""

from typing import Any, Dict, Mapping, Optional, Protocol, runtime_checkable

from paybridge.domains.payments.types import GatewayEvent
from paybridge.schemas.payment import (
    BillingCycle,
    CheckoutRequest,
    CheckoutSession,
    GatewayName,
    Plan,
    SubscriptionStatus,
    WebhookResult,
)
from paybridge.schemas.subscription import CustomerRecord, SubscriptionRecord


@runtime_checkable
class SignatureVerifier(Protocol):
    """Verifies a raw webhook body against its signature. Never raises."""

    @property
    def has_secret(self) -> bool:
        """Whether a signing secret is configured."""
        ...

    def verify(self, payload: bytes, signature: Optional[str]) -> bool:
        """Return True only for an authentic payload."""
        ...


@runtime_checkable
class StatusMapperProtocol(Protocol):
    """Total mapping from provider status strings to SubscriptionStatus."""

    def map(self, native: Optional[str]) -> SubscriptionStatus:
        """Map a provider status; unknown values map to a default."""
        ...


@runtime_checkable
class PaymentGateway(Protocol):
    """Uniform contract over one payment provider."""

    @property
    def name(self) -> GatewayName:
        """Gateway identifier."""
        ...

    @property
    def renews_locally(self) -> bool:
        """True when the provider has no subscription objects.

        Each paid period then arrives as a standalone payment and the local
        record is created or renewed from it.
        """
        ...

    def is_configured(self) -> bool:
        """Whether all credentials this gateway needs are present."""
        ...

    # -------------------------------------------------------------------------
    # Checkout
    # -------------------------------------------------------------------------

    async def create_checkout_session(self, request: CheckoutRequest) -> CheckoutSession:
        """Create a hosted checkout for a paid plan."""
        ...

    # -------------------------------------------------------------------------
    # Webhooks
    # -------------------------------------------------------------------------

    def construct_event(self, payload: bytes, signature: Optional[str]) -> GatewayEvent:
        """Verify and parse a webhook.

        Raises GatewayNotConfiguredError, InvalidSignatureError or
        InvalidPayloadError.
        """
        ...

    def interpret_event(self, event: GatewayEvent) -> WebhookResult:
        """Translate a verified event into a WebhookResult. Pure."""
        ...

    async def handle_webhook(self, payload: bytes, signature: Optional[str]) -> WebhookResult:
        """Verify, parse and interpret. Bad or unconfigured input yields an error result."""
        ...

    # -------------------------------------------------------------------------
    # Subscriptions and customers
    # -------------------------------------------------------------------------

    async def get_subscription(self, subscription_or_user_id: str) -> Optional[SubscriptionRecord]:
        """Look up a subscription by native id or by user id. Errors return None."""
        ...

    async def cancel_subscription(self, subscription_id: str, immediate: bool = False) -> None:
        """Cancel now or at period end. Raises CancellationFailedError."""
        ...

    async def get_customer(self, customer_id: str) -> Optional[CustomerRecord]:
        """Look up a customer."""
        ...

    async def create_customer(
        self,
        email: str,
        name: Optional[str] = None,
        metadata: Optional[Dict[str, str]] = None,
    ) -> CustomerRecord:
        """Create (or reuse) a customer. Never fails on 'already exists'."""
        ...


@runtime_checkable
class SupportsPause(Protocol):
    """Gateways that can pause and resume collection."""

    async def pause_subscription(self, subscription_id: str) -> None:
        """Pause a subscription."""
        ...

    async def resume_subscription(self, subscription_id: str) -> None:
        """Resume a paused subscription."""
        ...


@runtime_checkable
class SupportsPlanUpdate(Protocol):
    """Gateways that can move a subscription to another plan in place."""

    async def update_subscription_plan(
        self, subscription_id: str, plan: Plan, billing_cycle: BillingCycle
    ) -> None:
        """Swap the subscription's price with proration."""
        ...


@runtime_checkable
class SupportsCustomerPortal(Protocol):
    """Gateways with a hosted customer self-service portal."""

    async def create_portal_session(self, customer_id: str, return_url: str) -> str:
        """Return the portal URL."""
        ...


class GatewayRegistryProtocol(Protocol):
    """Name -> gateway lookup."""

    def get(self, name: str) -> PaymentGateway:
        """Return the gateway or raise UnknownGatewayError."""
        ...

    def all(self) -> list[PaymentGateway]:
        """All registered gateways in registration order."""
        ...

    def configured(self) -> list[PaymentGateway]:
        """Registered gateways whose credentials are present."""
        ...


@runtime_checkable
class SupportsRedirectVerification(Protocol):
    """Gateways whose browser redirect back from checkout carries a signature."""

    def verify_redirect(self, params: Mapping[str, Any]) -> bool:
        """Verify the redirect's query parameters."""
        ...
