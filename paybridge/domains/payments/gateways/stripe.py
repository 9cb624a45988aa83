"""Stripe payment gateway.

Subscriptions live at Stripe; local records mirror them from webhooks.
Checkout metadata carries userId, userEmail, plan and billing so every later
event can be tied back to a user.
"""

from typing import Any, Callable, Dict, Optional

from paybridge.core.logging import logger
from paybridge.core.protocols.payment import StripeClientProtocol
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
    from_timestamp,
    interpret_webhook,
    parse_json_object,
    require_configured,
    string_map,
)
from paybridge.domains.payments.prices import PriceConfigResolver
from paybridge.domains.payments.signatures import StripeSignatureVerifier
from paybridge.domains.payments.status import STRIPE_STATUS_MAPPER, StatusMapper
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


def _id_of(value: Any) -> Optional[str]:
    """Expanded Stripe objects arrive as dicts, collapsed ones as id strings."""
    if isinstance(value, dict):
        return value.get("id")
    return value or None


def _first_item(subscription: Dict[str, Any]) -> Dict[str, Any]:
    items = (subscription.get("items") or {}).get("data") or []
    return items[0] if items else {}


def _period(subscription: Dict[str, Any], key: str) -> Any:
    # Newer API versions moved the period onto the subscription items
    if subscription.get(key) is not None:
        return subscription.get(key)
    return _first_item(subscription).get(key)


class StripePaymentGateway:
    """PaymentGateway for Stripe. Also pauses, swaps plans and opens the billing portal."""

    name = GatewayName.STRIPE
    renews_locally = False

    def __init__(
        self,
        client: Optional[StripeClientProtocol],
        verifier: StripeSignatureVerifier,
        prices: PriceConfigResolver,
        subscriptions: SubscriptionRepositoryProtocol,
        status_mapper: StatusMapper = STRIPE_STATUS_MAPPER,
    ) -> None:
        self._client = client
        self._verifier = verifier
        self._prices = prices
        self._subscriptions = subscriptions
        self._status_mapper = status_mapper
        self._handlers: Dict[str, Callable[[GatewayEvent], WebhookResult]] = {
            "checkout.session.completed": self._on_checkout_completed,
            "customer.subscription.created": self._on_subscription_updated,
            "customer.subscription.updated": self._on_subscription_updated,
            "customer.subscription.deleted": self._on_subscription_deleted,
            "invoice.payment_succeeded": self._on_invoice_paid,
            "invoice.paid": self._on_invoice_paid,
            "invoice.payment_failed": self._on_invoice_failed,
            "invoice.payment_action_required": self._on_invoice_action_required,
            "charge.refunded": self._on_charge_refunded,
            "charge.failed": self._on_charge_failed,
            "customer.deleted": self._on_customer_deleted,
        }

    def is_configured(self) -> bool:
        return self._client is not None and self._verifier.has_secret

    @property
    def client(self) -> StripeClientProtocol:
        return configured_client(self, self._client)

    # -------------------------------------------------------------------------
    # Checkout
    # -------------------------------------------------------------------------

    @wrap_gateway_errors
    async def create_checkout_session(self, request: CheckoutRequest) -> CheckoutSession:
        """Create a subscription-mode Checkout Session for a paid plan."""
        client = self.client
        price = self._prices.resolve(self.name, request.plan, request.billing_cycle)

        customer = await self.create_customer(
            request.user_email,
            request.user_name,
            {"userId": request.user_id, **request.metadata},
        )

        session = await client.create_checkout_session(
            {
                "customer": customer.id,
                "payment_method_types": ["card"],
                "mode": "subscription",
                "line_items": [{"price": price.price_id, "quantity": request.quantity}],
                "success_url": request.success_url,
                "cancel_url": request.cancel_url,
                "locale": request.locale or "auto",
                "metadata": {
                    "userId": request.user_id,
                    "userEmail": request.user_email,
                    "plan": request.plan.value,
                    "billing": request.billing_cycle.value,
                    **request.metadata,
                },
                "subscription_data": {
                    "metadata": {
                        "userId": request.user_id,
                        "userEmail": request.user_email,
                        "plan": request.plan.value,
                    }
                },
            }
        )
        logger.with_context(gateway=self.name.value, user_id=request.user_id).info(
            f"Created Stripe checkout session {session.get('id')} for {request.plan.value}"
        )
        return CheckoutSession(
            url=session["url"],
            session_id=session["id"],
            gateway=self.name,
            client_secret=session.get("client_secret"),
            expires_at=from_timestamp(session.get("expires_at")),
        )

    # -------------------------------------------------------------------------
    # Webhooks
    # -------------------------------------------------------------------------

    def construct_event(self, payload: bytes, signature: Optional[str]) -> GatewayEvent:
        require_configured(self)
        if not self._verifier.verify(payload, signature):
            raise InvalidSignatureError()

        body = parse_json_object(payload)
        event_id = body.get("id")
        event_type = body.get("type")
        obj = (body.get("data") or {}).get("object")
        if not event_id or not event_type or not isinstance(obj, dict):
            raise InvalidPayloadError("Stripe event is missing id, type or data.object")
        return GatewayEvent(
            gateway=self.name,
            event_id=event_id,
            event_type=event_type,
            data=obj,
            native_id=obj.get("id"),
        )

    def interpret_event(self, event: GatewayEvent) -> WebhookResult:
        handler = self._handlers.get(event.event_type)
        if handler is None:
            return WebhookResult(event=event.event_type, success=True)
        return handler(event)

    async def handle_webhook(self, payload: bytes, signature: Optional[str]) -> WebhookResult:
        return interpret_webhook(self, payload, signature)

    def _on_checkout_completed(self, event: GatewayEvent) -> WebhookResult:
        session = event.data
        metadata = session.get("metadata") or {}
        details = session.get("customer_details") or {}
        return WebhookResult(
            event=event.event_type,
            success=True,
            outcome=WebhookOutcome.CHECKOUT_COMPLETED,
            status=SubscriptionStatus.ACTIVE.value,
            subscription_id=_id_of(session.get("subscription")),
            customer_id=_id_of(session.get("customer")),
            user_id=metadata.get("userId"),
            user_email=metadata.get("userEmail")
            or session.get("customer_email")
            or details.get("email"),
            plan=coerce_plan(metadata.get("plan")),
            billing_cycle=coerce_billing_cycle(metadata.get("billing")),
            amount=session.get("amount_total"),
            currency=(session.get("currency") or "").upper() or None,
        )

    def _on_subscription_updated(self, event: GatewayEvent) -> WebhookResult:
        subscription = event.data
        metadata = subscription.get("metadata") or {}
        price = _first_item(subscription).get("price") or {}
        plan = coerce_plan(metadata.get("plan")) or self._prices.plan_for_price_id(
            self.name, price.get("id")
        )
        return WebhookResult(
            event=event.event_type,
            success=True,
            outcome=WebhookOutcome.SUBSCRIPTION_UPDATED,
            status=self._status_mapper.map(subscription.get("status")).value,
            subscription_id=subscription.get("id"),
            customer_id=_id_of(subscription.get("customer")),
            user_id=metadata.get("userId"),
            user_email=metadata.get("userEmail"),
            plan=plan,
            billing_cycle=coerce_billing_cycle((price.get("recurring") or {}).get("interval")),
            current_period_start=from_timestamp(_period(subscription, "current_period_start")),
            current_period_end=from_timestamp(_period(subscription, "current_period_end")),
            cancel_at_period_end=bool(subscription.get("cancel_at_period_end")),
        )

    def _on_subscription_deleted(self, event: GatewayEvent) -> WebhookResult:
        subscription = event.data
        metadata = subscription.get("metadata") or {}
        return WebhookResult(
            event=event.event_type,
            success=True,
            outcome=WebhookOutcome.SUBSCRIPTION_CANCELED,
            status=SubscriptionStatus.CANCELED.value,
            subscription_id=subscription.get("id"),
            customer_id=_id_of(subscription.get("customer")),
            user_id=metadata.get("userId"),
            user_email=metadata.get("userEmail"),
            plan=Plan.FREE,
        )

    def _on_invoice_paid(self, event: GatewayEvent) -> WebhookResult:
        invoice = event.data
        return WebhookResult(
            event=event.event_type,
            success=True,
            outcome=WebhookOutcome.PAYMENT_SUCCEEDED,
            status=PaymentStatus.SUCCEEDED.value,
            subscription_id=_id_of(invoice.get("subscription")),
            customer_id=_id_of(invoice.get("customer")),
            user_email=invoice.get("customer_email"),
            payment_id=_id_of(invoice.get("payment_intent")),
            amount=invoice.get("amount_paid"),
            currency=(invoice.get("currency") or "").upper() or None,
        )

    def _on_invoice_failed(self, event: GatewayEvent) -> WebhookResult:
        invoice = event.data
        return WebhookResult(
            event=event.event_type,
            success=True,
            outcome=WebhookOutcome.PAYMENT_FAILED,
            status=PaymentStatus.FAILED.value,
            subscription_id=_id_of(invoice.get("subscription")),
            customer_id=_id_of(invoice.get("customer")),
            user_email=invoice.get("customer_email"),
            payment_id=_id_of(invoice.get("payment_intent")),
            amount=invoice.get("amount_due"),
            currency=(invoice.get("currency") or "").upper() or None,
        )

    def _on_invoice_action_required(self, event: GatewayEvent) -> WebhookResult:
        # 3-D Secure or similar; Stripe keeps retrying the invoice meanwhile
        return self._on_invoice_failed(event).model_copy(
            update={"status": PaymentStatus.PENDING.value, "error": "Payment requires action"}
        )

    def _on_charge_refunded(self, event: GatewayEvent) -> WebhookResult:
        charge = event.data
        billing = charge.get("billing_details") or {}
        return WebhookResult(
            event=event.event_type,
            success=True,
            outcome=WebhookOutcome.PAYMENT_REFUNDED,
            status=PaymentStatus.REFUNDED.value,
            customer_id=_id_of(charge.get("customer")),
            user_email=charge.get("receipt_email") or billing.get("email"),
            payment_id=_id_of(charge.get("payment_intent")) or charge.get("id"),
            amount=charge.get("amount_refunded"),
            currency=(charge.get("currency") or "").upper() or None,
        )

    def _on_charge_failed(self, event: GatewayEvent) -> WebhookResult:
        charge = event.data
        billing = charge.get("billing_details") or {}
        return WebhookResult(
            event=event.event_type,
            success=True,
            outcome=WebhookOutcome.PAYMENT_FAILED,
            status=PaymentStatus.FAILED.value,
            customer_id=_id_of(charge.get("customer")),
            user_email=charge.get("receipt_email") or billing.get("email"),
            payment_id=_id_of(charge.get("payment_intent")) or charge.get("id"),
            amount=charge.get("amount"),
            currency=(charge.get("currency") or "").upper() or None,
            error=charge.get("failure_message") or charge.get("failure_code"),
        )

    def _on_customer_deleted(self, event: GatewayEvent) -> WebhookResult:
        customer = event.data
        return WebhookResult(
            event=event.event_type,
            success=True,
            outcome=WebhookOutcome.CUSTOMER_DELETED,
            customer_id=customer.get("id"),
            user_email=customer.get("email"),
        )

    # -------------------------------------------------------------------------
    # Subscriptions
    # -------------------------------------------------------------------------

    def _to_record(self, subscription: Dict[str, Any]) -> SubscriptionRecord:
        metadata = subscription.get("metadata") or {}
        price = _first_item(subscription).get("price") or {}
        interval = (price.get("recurring") or {}).get("interval")
        status = self._status_mapper.map(subscription.get("status"))
        plan = coerce_plan(metadata.get("plan")) or self._prices.plan_for_price_id(
            self.name, price.get("id")
        )
        email = metadata.get("userEmail")
        return SubscriptionRecord(
            user_id=email or metadata.get("userId") or _id_of(subscription.get("customer")) or "",
            user_email=email,
            gateway=self.name,
            gateway_transaction_id=subscription.get("id"),
            gateway_customer_id=_id_of(subscription.get("customer")),
            plan=plan or Plan.FREE,
            billing_cycle=coerce_billing_cycle(interval, BillingCycle.MONTHLY),
            status=status,
            current_period_start=from_timestamp(_period(subscription, "current_period_start")),
            current_period_end=from_timestamp(_period(subscription, "current_period_end")),
            cancel_at_period_end=bool(subscription.get("cancel_at_period_end")),
            canceled_at=from_timestamp(subscription.get("canceled_at")),
            provider_metadata=string_map(metadata),
            created_at=from_timestamp(subscription.get("created")),
        )

    async def get_subscription(self, subscription_or_user_id: str) -> Optional[SubscriptionRecord]:
        client = self.client
        log = logger.with_context(gateway=self.name.value, lookup_id=subscription_or_user_id)
        if subscription_or_user_id.startswith("sub_"):
            try:
                return self._to_record(await client.retrieve_subscription(subscription_or_user_id))
            except Exception as e:
                log.warning(f"Stripe subscription lookup failed, trying local records: {e}")
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
            if immediate:
                await client.cancel_subscription(subscription_id)
            else:
                await client.update_subscription(subscription_id, {"cancel_at_period_end": True})
            await apply_local_cancellation(
                self._subscriptions, self.name, subscription_id, immediate
            )
        except Exception as e:
            logger.with_context(gateway=self.name.value, subscription_id=subscription_id).error(
                f"Failed to cancel Stripe subscription: {e}"
            )
            raise CancellationFailedError(subscription_id) from e

    @wrap_gateway_errors
    async def pause_subscription(self, subscription_id: str) -> None:
        await self.client.update_subscription(
            subscription_id, {"pause_collection": {"behavior": "mark_uncollectible"}}
        )

    @wrap_gateway_errors
    async def resume_subscription(self, subscription_id: str) -> None:
        # An empty string unsets pause_collection
        await self.client.update_subscription(subscription_id, {"pause_collection": ""})

    @wrap_gateway_errors
    async def update_subscription_plan(
        self, subscription_id: str, plan: Plan, billing_cycle: BillingCycle
    ) -> None:
        client = self.client
        price = self._prices.resolve(self.name, plan, billing_cycle)
        subscription = await client.retrieve_subscription(subscription_id)
        item = _first_item(subscription)
        await client.update_subscription(
            subscription_id,
            {
                "items": [{"id": item.get("id"), "price": price.price_id}],
                "metadata": {**(subscription.get("metadata") or {}), "plan": plan.value},
                "proration_behavior": "create_prorations",
            },
        )

    @wrap_gateway_errors
    async def create_portal_session(self, customer_id: str, return_url: str) -> str:
        session = await self.client.create_portal_session(customer_id, return_url)
        return session["url"]

    # -------------------------------------------------------------------------
    # Customers
    # -------------------------------------------------------------------------

    def _to_customer(self, customer: Dict[str, Any], fallback_email: str = "") -> CustomerRecord:
        metadata = string_map(customer.get("metadata"))
        return CustomerRecord(
            id=customer["id"],
            gateway=self.name,
            email=customer.get("email") or fallback_email,
            user_id=metadata.get("userId"),
            name=customer.get("name"),
            provider_metadata=metadata,
            created_at=from_timestamp(customer.get("created")),
        )

    async def get_customer(self, customer_id: str) -> Optional[CustomerRecord]:
        client = self.client
        try:
            customer = await client.retrieve_customer(customer_id)
        except Exception as e:
            logger.with_context(gateway=self.name.value).error(
                f"Stripe customer lookup failed for {customer_id}: {e}"
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
