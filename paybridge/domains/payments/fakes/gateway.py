"""Fake payment gateway for testing.

Scripted implementation of PaymentGateway. Records all calls for
assertions; webhook verification and interpretation return whatever the
test configured. No external API calls.
"""

from typing import Any, Dict, Optional
from uuid import uuid4

from paybridge.domains.payments.exceptions import (
    GatewayNotConfiguredError,
    InvalidPayloadError,
    InvalidSignatureError,
)
from paybridge.domains.payments.gateways.support import interpret_webhook
from paybridge.domains.payments.types import GatewayEvent
from paybridge.schemas.payment import (
    CheckoutRequest,
    CheckoutSession,
    GatewayName,
    WebhookResult,
)
from paybridge.schemas.subscription import CustomerRecord, SubscriptionRecord


class FakePaymentGateway:
    """Test implementation of PaymentGateway.

    Usage::

        fake = FakePaymentGateway(GatewayName.STRIPE)
        fake.script(event, result)
        ack = await processor.process_webhook("stripe", b"{}", "sig")
        assert fake.call_count("construct_event") == 1
    """

    def __init__(
        self,
        name: GatewayName = GatewayName.STRIPE,
        configured: bool = True,
        renews_locally: bool = False,
        should_raise: Optional[Exception] = None,
    ) -> None:
        """Initialize with a gateway name and optional error injection."""
        self.name = name
        self.renews_locally = renews_locally
        self.configured = configured
        self.reject_signature = False
        self.reject_payload = False
        self._should_raise = should_raise
        self._event: Optional[GatewayEvent] = None
        self._result: Optional[WebhookResult] = None
        self._calls: list[tuple[str, tuple, dict]] = []
        self._subscriptions: dict[str, SubscriptionRecord] = {}
        self._customers: dict[str, CustomerRecord] = {}

    def _record(self, method: str, *args: Any, **kwargs: Any) -> None:
        self._calls.append((method, args, kwargs))
        if self._should_raise:
            raise self._should_raise

    # ---- Test helpers ----

    def script(self, event: GatewayEvent, result: WebhookResult) -> None:
        """Set the event construct_event returns and the result interpret_event returns."""
        self._event = event
        self._result = result

    def seed_subscription(self, record: SubscriptionRecord) -> None:
        """Make get_subscription return ``record`` for its transaction and user id."""
        if record.gateway_transaction_id:
            self._subscriptions[record.gateway_transaction_id] = record
        self._subscriptions[record.user_id] = record

    def call_count(self, method: str) -> int:
        """Number of times a method was called."""
        return sum(1 for name, _, _ in self._calls if name == method)

    def calls_for(self, method: str) -> list[tuple[tuple, dict]]:
        """Return (args, kwargs) for each call to *method*."""
        return [(a, k) for name, a, k in self._calls if name == method]

    def clear(self) -> None:
        """Reset all recorded state."""
        self._calls.clear()
        self._subscriptions.clear()
        self._customers.clear()

    # ---- PaymentGateway ----

    def is_configured(self) -> bool:
        return self.configured

    async def create_checkout_session(self, request: CheckoutRequest) -> CheckoutSession:
        self._record("create_checkout_session", request)
        if not self.configured:
            raise GatewayNotConfiguredError(self.name.display_name)
        session_id = f"cs_{uuid4().hex[:14]}"
        return CheckoutSession(
            url=f"https://checkout.example/{session_id}",
            session_id=session_id,
            gateway=self.name,
        )

    def construct_event(self, payload: bytes, signature: Optional[str]) -> GatewayEvent:
        self._record("construct_event", payload, signature)
        if not self.configured:
            raise GatewayNotConfiguredError(self.name.display_name)
        if self.reject_signature or not signature:
            raise InvalidSignatureError()
        if self.reject_payload or self._event is None:
            raise InvalidPayloadError()
        return self._event

    def interpret_event(self, event: GatewayEvent) -> WebhookResult:
        self._record("interpret_event", event)
        if self._result is None:
            return WebhookResult(event=event.event_type, success=True)
        return self._result

    async def handle_webhook(self, payload: bytes, signature: Optional[str]) -> WebhookResult:
        return interpret_webhook(self, payload, signature)

    async def get_subscription(self, subscription_or_user_id: str) -> Optional[SubscriptionRecord]:
        self._record("get_subscription", subscription_or_user_id)
        return self._subscriptions.get(subscription_or_user_id)

    async def cancel_subscription(self, subscription_id: str, immediate: bool = False) -> None:
        self._record("cancel_subscription", subscription_id, immediate=immediate)

    async def get_customer(self, customer_id: str) -> Optional[CustomerRecord]:
        self._record("get_customer", customer_id)
        return self._customers.get(customer_id)

    async def create_customer(
        self,
        email: str,
        name: Optional[str] = None,
        metadata: Optional[Dict[str, str]] = None,
    ) -> CustomerRecord:
        self._record("create_customer", email, name, metadata=metadata)
        for customer in self._customers.values():
            if customer.email == email:
                return customer
        customer = CustomerRecord(
            id=f"cus_{uuid4().hex[:14]}",
            gateway=self.name,
            email=email,
            name=name,
            provider_metadata=metadata or {},
        )
        self._customers[customer.id] = customer
        return customer
