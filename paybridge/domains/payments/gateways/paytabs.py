"""PayTabs payment gateway (MENA).

Like Paymob, PayTabs bills one hosted payment page per period and
subscriptions are tracked locally. User context rides in the
``user_defined`` udf1..udf4 fields: userId, plan, billing, email.
"""

import time
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Optional

from paybridge.core.config import PayTabsRegion
from paybridge.core.logging import logger
from paybridge.core.protocols.payment import PayTabsClientProtocol
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
)
from paybridge.domains.payments.prices import PriceConfigResolver
from paybridge.domains.payments.signatures import PayTabsSignatureVerifier
from paybridge.domains.payments.status import PAYTABS_STATUS_MAPPER, StatusMapper
from paybridge.domains.payments.types import GatewayEvent, generate_event_id
from paybridge.domains.subscriptions.protocols import SubscriptionRepositoryProtocol
from paybridge.schemas.payment import (
    BillingCycle,
    CheckoutRequest,
    CheckoutSession,
    GatewayName,
    PaymentStatus,
    WebhookOutcome,
    WebhookResult,
    coerce_billing_cycle,
    coerce_plan,
)
from paybridge.schemas.subscription import CustomerRecord, SubscriptionRecord

PAYMENT_SUCCESS = "payment.success"
PAYMENT_FAILED = "payment.failed"
PAYMENT_PENDING = "payment.pending"

PENDING_RESPONSE_STATUSES = ("H", "P")

# ISO country sent with the customer details for each merchant region
REGION_COUNTRIES = {
    PayTabsRegion.ARE: "AE",
    PayTabsRegion.SAU: "SA",
    PayTabsRegion.EGY: "EG",
    PayTabsRegion.OMN: "OM",
    PayTabsRegion.JOR: "JO",
    PayTabsRegion.BHR: "BH",
    PayTabsRegion.GLOBAL: "AE",
}


def _to_minor_units(amount: Any) -> Optional[int]:
    """PayTabs sends cart_amount in major units, e.g. ``"36.66"``."""
    if amount in (None, ""):
        return None
    try:
        return int((Decimal(str(amount)) * 100).quantize(Decimal("1")))
    except (InvalidOperation, ValueError):
        return None


class PayTabsPaymentGateway:
    """PaymentGateway for the PayTabs hosted payment page with locally tracked subscriptions."""

    name = GatewayName.PAYTABS
    renews_locally = True

    def __init__(
        self,
        client: Optional[PayTabsClientProtocol],
        verifier: PayTabsSignatureVerifier,
        prices: PriceConfigResolver,
        subscriptions: SubscriptionRepositoryProtocol,
        profile_id: Optional[str] = None,
        region: PayTabsRegion = PayTabsRegion.ARE,
        callback_url: Optional[str] = None,
        status_mapper: StatusMapper = PAYTABS_STATUS_MAPPER,
    ) -> None:
        self._client = client
        self._verifier = verifier
        self._prices = prices
        self._subscriptions = subscriptions
        self._profile_id = profile_id
        self._region = region
        self._callback_url = callback_url
        self._status_mapper = status_mapper

    def is_configured(self) -> bool:
        return self._client is not None and bool(self._profile_id) and self._verifier.has_secret

    def _resolve_region(self, requested: Optional[str]) -> PayTabsRegion:
        if requested:
            try:
                return PayTabsRegion(requested.upper())
            except ValueError:
                logger.warning(f"Unknown PayTabs region {requested}, using {self._region.value}")
        return self._region

    # -------------------------------------------------------------------------
    # Checkout
    # -------------------------------------------------------------------------

    @wrap_gateway_errors
    async def create_checkout_session(self, request: CheckoutRequest) -> CheckoutSession:
        """Create a hosted payment page in the region's currency."""
        client = configured_client(self, self._client)
        region = self._resolve_region(request.region)
        price = self._prices.resolve(
            self.name, request.plan, request.billing_cycle, region=region.value
        )
        await self.create_customer(
            request.user_email, request.user_name, {"userId": request.user_id}
        )
        plan, billing = request.plan.value, request.billing_cycle.value
        cart_amount = price.amount_major * request.quantity

        payload: Dict[str, Any] = {
            "profile_id": self._profile_id,
            "tran_type": "sale",
            "tran_class": "ecom",
            "cart_id": f"{request.user_id}_{plan}_{billing}_{int(time.time() * 1000)}",
            "cart_description": f"{plan} subscription - {billing} billing",
            "cart_currency": price.currency,
            "cart_amount": float(cart_amount),
            "return": request.success_url,
            "customer_details": {
                "name": request.user_name or request.user_email.split("@")[0],
                "email": request.user_email,
                "phone": "",
                "country": REGION_COUNTRIES[region],
            },
            "hide_shipping": True,
            # Save the card for the next period's payment
            "tokenise": 2,
            "user_defined": {
                "udf1": request.user_id,
                "udf2": plan,
                "udf3": billing,
                "udf4": request.user_email,
            },
        }
        if self._callback_url:
            payload["callback"] = self._callback_url
        if request.locale:
            payload["paypage_lang"] = request.locale

        page = await client.create_payment_page(payload)
        logger.with_context(gateway=self.name.value, user_id=request.user_id).info(
            f"Created PayTabs payment page {page.get('tran_ref')} for {plan} in {region.value}"
        )
        return CheckoutSession(
            url=page["redirect_url"],
            session_id=page["tran_ref"],
            gateway=self.name,
        )

    # -------------------------------------------------------------------------
    # Webhooks
    # -------------------------------------------------------------------------

    def construct_event(self, payload: bytes, signature: Optional[str]) -> GatewayEvent:
        require_configured(self)
        if not self._verifier.verify(payload, signature):
            raise InvalidSignatureError()

        body = parse_json_object(payload)
        tran_ref = body.get("tran_ref")
        if not tran_ref:
            raise InvalidPayloadError("PayTabs callback is missing tran_ref")
        response_status = (body.get("payment_result") or {}).get("response_status")
        if response_status == "A":
            event_type = PAYMENT_SUCCESS
        elif response_status in PENDING_RESPONSE_STATUSES:
            event_type = PAYMENT_PENDING
        else:
            event_type = PAYMENT_FAILED
        return GatewayEvent(
            gateway=self.name,
            event_id=generate_event_id(self.name, tran_ref, event_type),
            event_type=event_type,
            data=body,
            native_id=tran_ref,
        )

    def interpret_event(self, event: GatewayEvent) -> WebhookResult:
        body = event.data
        udf = body.get("user_defined") or {}
        customer = body.get("customer_details") or {}
        payment = body.get("payment_result") or {}
        result = WebhookResult(
            event=event.event_type,
            success=True,
            user_id=udf.get("udf1"),
            user_email=customer.get("email") or udf.get("udf4"),
            plan=coerce_plan(udf.get("udf2")),
            billing_cycle=coerce_billing_cycle(udf.get("udf3"), BillingCycle.MONTHLY),
            payment_id=event.native_id,
            amount=_to_minor_units(body.get("cart_amount")),
            currency=body.get("cart_currency"),
        )
        if event.event_type == PAYMENT_PENDING:
            # On hold or pending review; a final callback follows
            result.status = self._status_mapper.map(payment.get("response_status")).value
        elif event.event_type == PAYMENT_SUCCESS:
            result.outcome = WebhookOutcome.PAYMENT_SUCCEEDED
            result.status = PaymentStatus.SUCCEEDED.value
        else:
            result.outcome = WebhookOutcome.PAYMENT_FAILED
            result.status = PaymentStatus.FAILED.value
            result.error = payment.get("response_message")
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
                f"PayTabs subscription lookup failed for {subscription_or_user_id}: {e}"
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
                f"Failed to cancel PayTabs subscription: {e}"
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
                f"PayTabs customer lookup failed for {customer_id}: {e}"
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
