"""Paymob payment gateway (Egypt).

Paymob has no subscription objects. Checkout creates a payment intention
for one billing period; each successful transaction callback creates or
renews the local subscription record.
"""

import time
from typing import Any, Dict, Mapping, Optional

from paybridge.core.logging import logger
from paybridge.core.protocols.payment import PaymobClientProtocol
from paybridge.domains.payments.exceptions import (
    CancellationFailedError,
    InvalidPayloadError,
    InvalidSignatureError,
    SubscriptionNotFoundError,
    wrap_gateway_errors,
)
from paybridge.domains.payments.gateways.support import (
    configured_client,
    find_local_subscription,
    interpret_webhook,
    parse_json_object,
    require_configured,
    split_name,
)
from paybridge.domains.payments.prices import PriceConfigResolver
from paybridge.domains.payments.signatures import PaymobSignatureVerifier
from paybridge.domains.payments.status import PAYMOB_STATUS_MAPPER, StatusMapper
from paybridge.domains.payments.types import GatewayEvent, generate_event_id
from paybridge.domains.subscriptions.protocols import SubscriptionRepositoryProtocol
from paybridge.schemas.payment import (
    BillingCycle,
    CheckoutRequest,
    CheckoutSession,
    GatewayName,
    PaymentStatus,
    Plan,
    WebhookOutcome,
    WebhookResult,
    coerce_billing_cycle,
    coerce_plan,
)
from paybridge.schemas.subscription import CustomerRecord, SubscriptionRecord

PLACEHOLDER_PHONE = "+201000000000"

# Derived event types; one Paymob transaction can be delivered in several states
PAYMENT_SUCCESS = "payment.success"
PAYMENT_REFUNDED = "payment.refunded"
PAYMENT_VOIDED = "payment.voided"
PAYMENT_FAILED = "payment.failed"
PAYMENT_PENDING = "payment.pending"


def paymob_event_type(obj: Mapping[str, Any]) -> str:
    """Classify a transaction callback object."""
    if obj.get("is_refunded"):
        return PAYMENT_REFUNDED
    if obj.get("is_voided"):
        return PAYMENT_VOIDED
    if obj.get("success") and not obj.get("error_occured"):
        return PAYMENT_SUCCESS
    if obj.get("error_occured") or (obj.get("success") is False and not obj.get("pending")):
        return PAYMENT_FAILED
    return PAYMENT_PENDING


def _native_status(event_type: str) -> str:
    return {
        PAYMENT_SUCCESS: "success",
        PAYMENT_REFUNDED: "refunded",
        PAYMENT_VOIDED: "voided",
        PAYMENT_FAILED: "error",
        PAYMENT_PENDING: "pending",
    }[event_type]


def _extras(obj: Mapping[str, Any]) -> Dict[str, Any]:
    """Intention extras; Paymob echoes them under ``data`` or the payment key claims."""
    data = obj.get("data")
    if isinstance(data, dict) and (data.get("plan") or data.get("userEmail")):
        return data
    claims = obj.get("payment_key_claims") or {}
    extra = claims.get("extra")
    return extra if isinstance(extra, dict) else {}


def _email(obj: Mapping[str, Any], extras: Mapping[str, Any]) -> Optional[str]:
    billing = obj.get("billing_data") or {}
    shipping = (obj.get("order") or {}).get("shipping_data") or {}
    return billing.get("email") or shipping.get("email") or extras.get("userEmail")


class PaymobPaymentGateway:
    """PaymentGateway for Paymob's Intention API with locally tracked subscriptions."""

    name = GatewayName.PAYMOB
    renews_locally = True

    def __init__(
        self,
        client: Optional[PaymobClientProtocol],
        verifier: PaymobSignatureVerifier,
        prices: PriceConfigResolver,
        subscriptions: SubscriptionRepositoryProtocol,
        integration_id: Optional[int] = None,
        notification_url: Optional[str] = None,
        status_mapper: StatusMapper = PAYMOB_STATUS_MAPPER,
    ) -> None:
        self._client = client
        self._verifier = verifier
        self._prices = prices
        self._subscriptions = subscriptions
        self._integration_id = integration_id
        self._notification_url = notification_url
        self._status_mapper = status_mapper

    def is_configured(self) -> bool:
        return (
            self._client is not None
            and self._integration_id is not None
            and self._verifier.has_secret
        )

    # -------------------------------------------------------------------------
    # Checkout
    # -------------------------------------------------------------------------

    @wrap_gateway_errors
    async def create_checkout_session(self, request: CheckoutRequest) -> CheckoutSession:
        """Create a payment intention for one billing period."""
        client = configured_client(self, self._client)
        price = self._prices.resolve(self.name, request.plan, request.billing_cycle)
        amount = price.amount_minor * request.quantity
        await self.create_customer(
            request.user_email, request.user_name, {"userId": request.user_id}
        )
        first_name, last_name = split_name(request.user_name or request.user_email.split("@")[0])
        plan, billing = request.plan.value, request.billing_cycle.value

        payload: Dict[str, Any] = {
            "amount": amount,
            "currency": price.currency,
            "payment_methods": [self._integration_id],
            "items": [
                {
                    "name": f"{plan.capitalize()} Plan ({billing})",
                    "amount": amount,
                    "description": f"{plan} subscription - {billing} billing",
                    "quantity": 1,
                }
            ],
            "billing_data": {
                "first_name": first_name,
                "last_name": last_name,
                "email": request.user_email,
                "phone_number": PLACEHOLDER_PHONE,
                "country": "EG",
            },
            "special_reference": f"{request.user_id}_{plan}_{billing}_{int(time.time() * 1000)}",
            "redirection_url": request.success_url,
            "extras": {
                "userId": request.user_id,
                "userEmail": request.user_email,
                "plan": plan,
                "billing": billing,
                **request.metadata,
            },
        }
        if self._notification_url:
            payload["notification_url"] = self._notification_url

        intention = await client.create_intention(payload)
        client_secret = intention["client_secret"]
        session_id = str(intention.get("id") or intention.get("intention_id") or client_secret)
        logger.with_context(gateway=self.name.value, user_id=request.user_id).info(
            f"Created Paymob intention {session_id} for {plan}"
        )
        return CheckoutSession(
            url=client.checkout_url(client_secret),
            session_id=session_id,
            gateway=self.name,
            client_secret=client_secret,
        )

    # -------------------------------------------------------------------------
    # Webhooks
    # -------------------------------------------------------------------------

    def construct_event(self, payload: bytes, signature: Optional[str]) -> GatewayEvent:
        require_configured(self)
        if not self._verifier.verify(payload, signature):
            raise InvalidSignatureError()

        body = parse_json_object(payload)
        obj = body.get("obj")
        if not isinstance(obj, dict) or obj.get("id") is None:
            raise InvalidPayloadError("Paymob callback is missing obj.id")
        transaction_id = str(obj["id"])
        event_type = paymob_event_type(obj)
        return GatewayEvent(
            gateway=self.name,
            event_id=generate_event_id(self.name, transaction_id, event_type),
            event_type=event_type,
            data=obj,
            native_id=transaction_id,
        )

    def verify_redirect(self, params: Mapping[str, Any]) -> bool:
        """Verify the browser redirect's query-string HMAC."""
        return self._verifier.verify_query(params)

    def interpret_event(self, event: GatewayEvent) -> WebhookResult:
        obj = event.data
        extras = _extras(obj)
        result = WebhookResult(
            event=event.event_type,
            success=True,
            status=self._status_mapper.map(_native_status(event.event_type)).value,
            user_id=extras.get("userId"),
            user_email=_email(obj, extras),
            payment_id=event.native_id,
            amount=obj.get("amount_cents"),
            currency=obj.get("currency"),
        )
        if event.event_type == PAYMENT_SUCCESS:
            result.outcome = WebhookOutcome.PAYMENT_SUCCEEDED
            result.status = PaymentStatus.SUCCEEDED.value
            result.plan = coerce_plan(extras.get("plan"), Plan.PRO)
            result.billing_cycle = coerce_billing_cycle(
                extras.get("billing"), BillingCycle.MONTHLY
            )
        elif event.event_type == PAYMENT_REFUNDED:
            result.outcome = WebhookOutcome.PAYMENT_REFUNDED
            result.status = PaymentStatus.REFUNDED.value
        elif event.event_type == PAYMENT_VOIDED:
            result.outcome = WebhookOutcome.PAYMENT_VOIDED
            result.status = PaymentStatus.CANCELED.value
        elif event.event_type == PAYMENT_FAILED:
            result.outcome = WebhookOutcome.PAYMENT_FAILED
            result.status = PaymentStatus.FAILED.value
            data = obj.get("data") or {}
            result.error = data.get("message") if isinstance(data, dict) else None
        return result

    async def handle_webhook(self, payload: bytes, signature: Optional[str]) -> WebhookResult:
        return interpret_webhook(self, payload, signature)

    # -------------------------------------------------------------------------
    # Subscriptions (local)
    # -------------------------------------------------------------------------

    async def get_subscription(self, subscription_or_user_id: str) -> Optional[SubscriptionRecord]:
        require_configured(self)
        try:
            return await find_local_subscription(
                self._subscriptions, self.name, subscription_or_user_id
            )
        except Exception as e:
            logger.with_context(gateway=self.name.value).error(
                f"Paymob subscription lookup failed for {subscription_or_user_id}: {e}"
            )
            return None

    async def cancel_subscription(self, subscription_id: str, immediate: bool = False) -> None:
        require_configured(self)
        try:
            record = await find_local_subscription(self._subscriptions, self.name, subscription_id)
            if record is None:
                raise SubscriptionNotFoundError()
            await self._subscriptions.cancel(record, immediate=immediate)
        except Exception as e:
            logger.with_context(gateway=self.name.value, subscription_id=subscription_id).error(
                f"Failed to cancel Paymob subscription: {e}"
            )
            raise CancellationFailedError(subscription_id) from e

    # -------------------------------------------------------------------------
    # Customers (synthesized, keyed by email)
    # -------------------------------------------------------------------------

    async def get_customer(self, customer_id: str) -> Optional[CustomerRecord]:
        require_configured(self)
        try:
            return await self._subscriptions.get_customer(self.name, customer_id)
        except Exception as e:
            logger.with_context(gateway=self.name.value).error(
                f"Paymob customer lookup failed for {customer_id}: {e}"
            )
            return None

    async def create_customer(
        self,
        email: str,
        name: Optional[str] = None,
        metadata: Optional[Dict[str, str]] = None,
    ) -> CustomerRecord:
        require_configured(self)
        existing = await self._subscriptions.get_customer(self.name, email)
        if existing:
            return existing
        return await self._subscriptions.upsert_customer(
            CustomerRecord(
                id=email,
                gateway=self.name,
                email=email,
                user_id=(metadata or {}).get("userId"),
                name=name,
                provider_metadata=metadata or {},
            )
        )
