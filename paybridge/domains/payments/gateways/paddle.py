"""Paddle Billing payment gateway.

Paddle is merchant of record: checkout is a transaction that Paddle.js opens
client-side, and subscriptions live at Paddle. ``custom_data`` on the
transaction carries userId, userEmail, plan and billing onto the
subscription it creates.
"""

from typing import Any, Callable, Dict, Optional

from paybridge.core.logging import logger
from paybridge.core.protocols.payment import PaddleClientProtocol
from paybridge.domains.payments.exceptions import (
    CancellationFailedError,
    InvalidPayloadError,
    InvalidSignatureError,
    wrap_gateway_errors,
)
from paybridge.domains.payments.gateways.support import (
    apply_local_cancellation,
    configured_client,
    find_local_subscription,
    from_isoformat,
    interpret_webhook,
    parse_json_object,
    require_configured,
    string_map,
)
from paybridge.domains.payments.prices import PriceConfigResolver
from paybridge.domains.payments.signatures import PaddleSignatureVerifier
from paybridge.domains.payments.status import PADDLE_STATUS_MAPPER, StatusMapper
from paybridge.domains.payments.types import GatewayEvent
from paybridge.domains.subscriptions.protocols import SubscriptionRepositoryProtocol
from paybridge.schemas.payment import (
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
from paybridge.schemas.subscription import CustomerRecord, SubscriptionRecord


def _first_price(data: Dict[str, Any]) -> Dict[str, Any]:
    items = data.get("items") or []
    return (items[0].get("price") or {}) if items else {}


def _minor_units(value: Any) -> Optional[int]:
    # Paddle sends amounts as strings of minor units
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


class PaddlePaymentGateway:
    """PaymentGateway for Paddle Billing. Also pauses and swaps plans."""

    name = GatewayName.PADDLE
    renews_locally = False

    def __init__(
        self,
        client: Optional[PaddleClientProtocol],
        verifier: PaddleSignatureVerifier,
        prices: PriceConfigResolver,
        subscriptions: SubscriptionRepositoryProtocol,
        status_mapper: StatusMapper = PADDLE_STATUS_MAPPER,
    ) -> None:
        self._client = client
        self._verifier = verifier
        self._prices = prices
        self._subscriptions = subscriptions
        self._status_mapper = status_mapper
        self._handlers: Dict[str, Callable[[GatewayEvent], WebhookResult]] = {
            "subscription.created": self._on_subscription_activated,
            "subscription.activated": self._on_subscription_activated,
            "subscription.updated": self._on_subscription_updated,
            "subscription.paused": self._on_subscription_updated,
            "subscription.resumed": self._on_subscription_updated,
            "subscription.past_due": self._on_subscription_updated,
            "subscription.canceled": self._on_subscription_canceled,
            "transaction.completed": self._on_transaction_completed,
            "transaction.payment_failed": self._on_transaction_failed,
        }

    def is_configured(self) -> bool:
        return self._client is not None and self._verifier.has_secret

    @property
    def client(self) -> PaddleClientProtocol:
        return configured_client(self, self._client)

    # -------------------------------------------------------------------------
    # Checkout
    # -------------------------------------------------------------------------

    @wrap_gateway_errors
    async def create_checkout_session(self, request: CheckoutRequest) -> CheckoutSession:
        """Create a Paddle transaction; the browser completes it with Paddle.js."""
        client = self.client
        price = self._prices.resolve(self.name, request.plan, request.billing_cycle)

        customer = await self.create_customer(
            request.user_email, request.user_name, {"userId": request.user_id}
        )
        transaction = await client.create_transaction(
            {
                "customer_id": customer.id,
                "items": [{"price_id": price.price_id, "quantity": request.quantity}],
                "custom_data": {
                    "userId": request.user_id,
                    "userEmail": request.user_email,
                    "plan": request.plan.value,
                    "billing": request.billing_cycle.value,
                    **request.metadata,
                },
                "checkout": {"url": request.success_url},
            }
        )
        transaction_id = transaction["id"]
        base_url = request.success_url.split("?")[0]
        logger.with_context(gateway=self.name.value, user_id=request.user_id).info(
            f"Created Paddle transaction {transaction_id} for {request.plan.value}"
        )
        return CheckoutSession(
            url=(
                f"{base_url}?paddle_checkout=true&transaction_id={transaction_id}"
                f"&plan={request.plan.value}"
            ),
            session_id=transaction_id,
            gateway=self.name,
            # Paddle.js opens the checkout from the transaction id
            client_secret=transaction_id,
        )

    # -------------------------------------------------------------------------
    # Webhooks
    # -------------------------------------------------------------------------

    def construct_event(self, payload: bytes, signature: Optional[str]) -> GatewayEvent:
        require_configured(self)
        if not self._verifier.verify(payload, signature):
            raise InvalidSignatureError()

        body = parse_json_object(payload)
        event_id = body.get("event_id")
        event_type = body.get("event_type")
        data = body.get("data")
        if not event_id or not event_type or not isinstance(data, dict):
            raise InvalidPayloadError("Paddle event is missing event_id, event_type or data")
        return GatewayEvent(
            gateway=self.name,
            event_id=event_id,
            event_type=event_type,
            data=data,
            native_id=data.get("id"),
        )

    def interpret_event(self, event: GatewayEvent) -> WebhookResult:
        handler = self._handlers.get(event.event_type)
        if handler is None:
            return WebhookResult(event=event.event_type, success=True)
        return handler(event)

    async def handle_webhook(self, payload: bytes, signature: Optional[str]) -> WebhookResult:
        return interpret_webhook(self, payload, signature)

    def _on_subscription_updated(self, event: GatewayEvent) -> WebhookResult:
        data = event.data
        custom = data.get("custom_data") or {}
        price = _first_price(data)
        period = data.get("current_billing_period") or {}
        scheduled = data.get("scheduled_change") or {}
        return WebhookResult(
            event=event.event_type,
            success=True,
            outcome=WebhookOutcome.SUBSCRIPTION_UPDATED,
            status=self._status_mapper.map(data.get("status")).value,
            subscription_id=data.get("id"),
            customer_id=data.get("customer_id"),
            user_id=custom.get("userId"),
            user_email=custom.get("userEmail"),
            plan=coerce_plan(custom.get("plan"))
            or self._prices.plan_for_price_id(self.name, price.get("id")),
            billing_cycle=coerce_billing_cycle(
                custom.get("billing") or (price.get("billing_cycle") or {}).get("interval")
            ),
            current_period_start=from_isoformat(period.get("starts_at")),
            current_period_end=from_isoformat(period.get("ends_at")),
            cancel_at_period_end=scheduled.get("action") == "cancel",
        )

    def _on_subscription_activated(self, event: GatewayEvent) -> WebhookResult:
        # Paddle has no checkout event; activation completes the checkout
        price = _first_price(event.data)
        return self._on_subscription_updated(event).model_copy(
            update={
                "outcome": WebhookOutcome.CHECKOUT_COMPLETED,
                "amount": _minor_units((price.get("unit_price") or {}).get("amount")),
                "currency": event.data.get("currency_code"),
            }
        )

    def _on_subscription_canceled(self, event: GatewayEvent) -> WebhookResult:
        data = event.data
        custom = data.get("custom_data") or {}
        return WebhookResult(
            event=event.event_type,
            success=True,
            outcome=WebhookOutcome.SUBSCRIPTION_CANCELED,
            status=SubscriptionStatus.CANCELED.value,
            subscription_id=data.get("id"),
            customer_id=data.get("customer_id"),
            user_id=custom.get("userId"),
            user_email=custom.get("userEmail"),
            plan=Plan.FREE,
        )

    def _on_transaction_completed(self, event: GatewayEvent) -> WebhookResult:
        data = event.data
        custom = data.get("custom_data") or {}
        totals = (data.get("details") or {}).get("totals") or {}
        return WebhookResult(
            event=event.event_type,
            success=True,
            outcome=WebhookOutcome.PAYMENT_SUCCEEDED,
            status=PaymentStatus.SUCCEEDED.value,
            subscription_id=data.get("subscription_id"),
            customer_id=data.get("customer_id"),
            user_id=custom.get("userId"),
            user_email=custom.get("userEmail"),
            payment_id=data.get("id"),
            amount=_minor_units(totals.get("total")),
            currency=totals.get("currency_code"),
        )

    def _on_transaction_failed(self, event: GatewayEvent) -> WebhookResult:
        data = event.data
        custom = data.get("custom_data") or {}
        return WebhookResult(
            event=event.event_type,
            success=True,
            outcome=WebhookOutcome.PAYMENT_FAILED,
            status=PaymentStatus.FAILED.value,
            subscription_id=data.get("subscription_id"),
            customer_id=data.get("customer_id"),
            user_id=custom.get("userId"),
            user_email=custom.get("userEmail"),
            payment_id=data.get("id"),
        )

    # -------------------------------------------------------------------------
    # Subscriptions
    # -------------------------------------------------------------------------

    def _to_record(self, subscription: Dict[str, Any]) -> SubscriptionRecord:
        custom = subscription.get("custom_data") or {}
        price = _first_price(subscription)
        period = subscription.get("current_billing_period") or {}
        scheduled = subscription.get("scheduled_change") or {}
        email = custom.get("userEmail")
        plan = coerce_plan(custom.get("plan")) or self._prices.plan_for_price_id(
            self.name, price.get("id")
        )
        return SubscriptionRecord(
            user_id=email or custom.get("userId") or subscription.get("customer_id") or "",
            user_email=email,
            gateway=self.name,
            gateway_transaction_id=subscription.get("id"),
            gateway_customer_id=subscription.get("customer_id"),
            plan=plan or Plan.FREE,
            billing_cycle=coerce_billing_cycle(
                (price.get("billing_cycle") or {}).get("interval"), BillingCycle.MONTHLY
            ),
            status=self._status_mapper.map(subscription.get("status")),
            current_period_start=from_isoformat(period.get("starts_at")),
            current_period_end=from_isoformat(period.get("ends_at")),
            cancel_at_period_end=scheduled.get("action") == "cancel",
            canceled_at=from_isoformat(subscription.get("canceled_at")),
            provider_metadata=string_map(custom),
            created_at=from_isoformat(subscription.get("created_at")),
        )

    async def get_subscription(self, subscription_or_user_id: str) -> Optional[SubscriptionRecord]:
        client = self.client
        log = logger.with_context(gateway=self.name.value, lookup_id=subscription_or_user_id)
        if subscription_or_user_id.startswith("sub_"):
            try:
                subscription = await client.get_subscription(subscription_or_user_id)
                if subscription:
                    return self._to_record(subscription)
            except Exception as e:
                log.warning(f"Paddle subscription lookup failed, trying local records: {e}")
        try:
            return await find_local_subscription(
                self._subscriptions, self.name, subscription_or_user_id
            )
        except Exception as e:
            log.error(f"Subscription lookup failed: {e}")
            return None

    async def cancel_subscription(self, subscription_id: str, immediate: bool = False) -> None:
        client = self.client
        try:
            await client.cancel_subscription(
                subscription_id, "immediately" if immediate else "next_billing_period"
            )
            await apply_local_cancellation(
                self._subscriptions, self.name, subscription_id, immediate
            )
        except Exception as e:
            logger.with_context(gateway=self.name.value, subscription_id=subscription_id).error(
                f"Failed to cancel Paddle subscription: {e}"
            )
            raise CancellationFailedError(subscription_id) from e

    @wrap_gateway_errors
    async def pause_subscription(self, subscription_id: str) -> None:
        await self.client.pause_subscription(subscription_id)

    @wrap_gateway_errors
    async def resume_subscription(self, subscription_id: str) -> None:
        await self.client.resume_subscription(subscription_id)

    @wrap_gateway_errors
    async def update_subscription_plan(
        self, subscription_id: str, plan: Plan, billing_cycle: BillingCycle
    ) -> None:
        client = self.client
        price = self._prices.resolve(self.name, plan, billing_cycle)
        subscription = await client.get_subscription(subscription_id) or {}
        custom = subscription.get("custom_data") or {}
        await client.update_subscription(
            subscription_id,
            {
                "items": [{"price_id": price.price_id, "quantity": 1}],
                "custom_data": {**custom, "plan": plan.value, "billing": billing_cycle.value},
                "proration_billing_mode": "prorated_immediately",
            },
        )

    # -------------------------------------------------------------------------
    # Customers
    # -------------------------------------------------------------------------

    def _to_customer(self, customer: Dict[str, Any], fallback_email: str = "") -> CustomerRecord:
        custom = string_map(customer.get("custom_data"))
        return CustomerRecord(
            id=customer["id"],
            gateway=self.name,
            email=customer.get("email") or fallback_email,
            user_id=custom.get("userId"),
            name=customer.get("name"),
            provider_metadata=custom,
            created_at=from_isoformat(customer.get("created_at")),
        )

    async def get_customer(self, customer_id: str) -> Optional[CustomerRecord]:
        client = self.client
        try:
            customer = await client.get_customer(customer_id)
        except Exception as e:
            logger.with_context(gateway=self.name.value).error(
                f"Paddle customer lookup failed for {customer_id}: {e}"
            )
            return None
        return self._to_customer(customer) if customer else None

    @wrap_gateway_errors
    async def create_customer(
        self,
        email: str,
        name: Optional[str] = None,
        metadata: Optional[Dict[str, str]] = None,
    ) -> CustomerRecord:
        client = self.client
        existing = await client.find_customer_by_email(email)
        if existing:
            customer = self._to_customer(existing, email)
        else:
            customer = self._to_customer(
                await client.create_customer(email, name, metadata or {}), email
            )
        return await self._subscriptions.upsert_customer(customer)
