"""Tests for StripePaymentGateway with a mocked Stripe client."""

import hashlib
import hmac
import json
import time
from unittest.mock import AsyncMock

import pytest

from paybridge.core.exceptions import ExternalServiceError
from paybridge.domains.payments.exceptions import (
    CancellationFailedError,
    GatewayNotConfiguredError,
    InvalidPayloadError,
    InvalidSignatureError,
    PaymentGatewayError,
    PriceNotConfiguredError,
)
from paybridge.domains.payments.gateways.stripe import StripePaymentGateway
from paybridge.domains.payments.prices import PriceConfigResolver, PriceEntry
from paybridge.domains.payments.signatures import StripeSignatureVerifier
from paybridge.domains.payments.types import GatewayEvent
from paybridge.domains.subscriptions.fakes.repository import FakeSubscriptionRepository
from paybridge.schemas.payment import (
    BillingCycle,
    CheckoutRequest,
    GatewayName,
    PaymentStatus,
    Plan,
    SubscriptionStatus,
    WebhookOutcome,
)
from paybridge.schemas.subscription import SubscriptionRecord

SECRET = "whsec_gateway_test"


def _sign(body: bytes, secret: str = SECRET) -> str:
    ts = int(time.time())
    digest = hmac.new(secret.encode(), f"{ts}.".encode() + body, hashlib.sha256).hexdigest()
    return f"t={ts},v1={digest}"


def _event_body(event_type: str, obj: dict, event_id: str = "evt_1") -> bytes:
    return json.dumps({"id": event_id, "type": event_type, "data": {"object": obj}}).encode()


def _event(event_type: str, obj: dict) -> GatewayEvent:
    return GatewayEvent(
        gateway=GatewayName.STRIPE,
        event_id="evt_1",
        event_type=event_type,
        data=obj,
        native_id=obj.get("id"),
    )


@pytest.fixture
def prices():
    return PriceConfigResolver(
        lambda: {
            (GatewayName.STRIPE, Plan.PRO, BillingCycle.MONTHLY, None): PriceEntry(
                currency="USD", price_id="price_pro_m"
            ),
            (GatewayName.STRIPE, Plan.TEAM, BillingCycle.MONTHLY, None): PriceEntry(
                currency="USD", price_id="price_team_m"
            ),
        }
    )


@pytest.fixture
def client():
    return AsyncMock()


@pytest.fixture
def repo():
    return FakeSubscriptionRepository()


@pytest.fixture
def gateway(client, prices, repo):
    return StripePaymentGateway(client, StripeSignatureVerifier(SECRET), prices, repo)


@pytest.fixture
def checkout_request():
    return CheckoutRequest(
        plan=Plan.PRO,
        user_id="u_1",
        user_email="ada@example.com",
        user_name="Ada Lovelace",
        success_url="https://app.test/billing/success",
        cancel_url="https://app.test/billing/cancel",
    )


class TestConfiguration:
    def test_needs_client_and_secret(self, prices, repo, client):
        assert StripePaymentGateway(
            client, StripeSignatureVerifier(SECRET), prices, repo
        ).is_configured()
        assert not StripePaymentGateway(
            None, StripeSignatureVerifier(SECRET), prices, repo
        ).is_configured()
        assert not StripePaymentGateway(
            client, StripeSignatureVerifier(None), prices, repo
        ).is_configured()

    @pytest.mark.asyncio
    async def test_unconfigured_checkout_raises_without_calling_stripe(
        self, prices, repo, client, checkout_request
    ):
        gateway = StripePaymentGateway(client, StripeSignatureVerifier(None), prices, repo)

        with pytest.raises(GatewayNotConfiguredError, match="Stripe is not configured"):
            await gateway.create_checkout_session(checkout_request)

        client.find_customer_by_email.assert_not_called()
        client.create_checkout_session.assert_not_called()

    @pytest.mark.asyncio
    async def test_unconfigured_webhook_returns_error_result(self, prices, repo):
        gateway = StripePaymentGateway(None, StripeSignatureVerifier(SECRET), prices, repo)
        body = _event_body("invoice.paid", {"id": "in_1"})

        result = await gateway.handle_webhook(body, _sign(body))

        assert result.success is False
        assert result.outcome == WebhookOutcome.ERROR
        assert result.error == "Stripe is not configured"


class TestCheckout:
    @pytest.mark.asyncio
    async def test_creates_customer_then_subscription_session(
        self, gateway, client, repo, checkout_request
    ):
        client.find_customer_by_email.return_value = None
        client.create_customer.return_value = {"id": "cus_1", "email": "ada@example.com"}
        client.create_checkout_session.return_value = {
            "id": "cs_1",
            "url": "https://checkout.stripe.com/c/pay/cs_1",
            "expires_at": 1700000000,
        }

        session = await gateway.create_checkout_session(checkout_request)

        assert session.url == "https://checkout.stripe.com/c/pay/cs_1"
        assert session.session_id == "cs_1"
        assert session.gateway == GatewayName.STRIPE
        assert session.expires_at is not None

        params = client.create_checkout_session.call_args.args[0]
        assert params["customer"] == "cus_1"
        assert params["mode"] == "subscription"
        assert params["line_items"] == [{"price": "price_pro_m", "quantity": 1}]
        assert params["metadata"]["userEmail"] == "ada@example.com"
        assert params["metadata"]["plan"] == "pro"
        assert params["locale"] == "auto"

        assert len(repo.calls_for("upsert_customer")) == 1

    @pytest.mark.asyncio
    async def test_reuses_existing_customer(self, gateway, client, checkout_request):
        client.find_customer_by_email.return_value = {"id": "cus_old", "email": "ada@example.com"}
        client.create_checkout_session.return_value = {"id": "cs_2", "url": "https://x.test"}

        await gateway.create_checkout_session(checkout_request)

        client.create_customer.assert_not_called()
        assert client.create_checkout_session.call_args.args[0]["customer"] == "cus_old"

    @pytest.mark.asyncio
    async def test_client_failure_is_wrapped(self, gateway, client, checkout_request):
        client.find_customer_by_email.side_effect = ExternalServiceError("Stripe", "card_error")

        with pytest.raises(PaymentGatewayError, match="card_error"):
            await gateway.create_checkout_session(checkout_request)

    @pytest.mark.asyncio
    async def test_missing_price_is_not_a_gateway_error(self, gateway, client):
        request = CheckoutRequest(
            plan=Plan.ENTERPRISE,
            user_id="u_1",
            user_email="ada@example.com",
            success_url="https://app.test/s",
            cancel_url="https://app.test/c",
        )

        with pytest.raises(PriceNotConfiguredError, match="No stripe price configured"):
            await gateway.create_checkout_session(request)
        client.create_checkout_session.assert_not_called()


class TestConstructEvent:
    def test_valid_signature_parses_event(self, gateway):
        body = _event_body("invoice.paid", {"id": "in_1", "subscription": "sub_1"})

        event = gateway.construct_event(body, _sign(body))

        assert event.event_id == "evt_1"
        assert event.event_type == "invoice.paid"
        assert event.native_id == "in_1"
        assert event.data["subscription"] == "sub_1"

    def test_wrong_secret_is_rejected(self, gateway):
        body = _event_body("invoice.paid", {"id": "in_1"})
        with pytest.raises(InvalidSignatureError):
            gateway.construct_event(body, _sign(body, secret="whsec_other"))

    def test_tampered_body_is_rejected(self, gateway):
        body = _event_body("invoice.paid", {"id": "in_1", "amount_paid": 100})
        header = _sign(body)
        with pytest.raises(InvalidSignatureError):
            gateway.construct_event(body.replace(b"100", b"1"), header)

    def test_verified_but_malformed_event(self, gateway):
        body = json.dumps({"id": "evt_1", "type": "invoice.paid"}).encode()
        with pytest.raises(InvalidPayloadError):
            gateway.construct_event(body, _sign(body))


class TestInterpretEvent:
    def test_checkout_completed(self, gateway):
        result = gateway.interpret_event(
            _event(
                "checkout.session.completed",
                {
                    "id": "cs_1",
                    "subscription": "sub_1",
                    "customer": {"id": "cus_1"},
                    "metadata": {
                        "userId": "u_1",
                        "userEmail": "ada@example.com",
                        "plan": "pro",
                        "billing": "yearly",
                    },
                    "amount_total": 29900,
                    "currency": "usd",
                },
            )
        )

        assert result.outcome == WebhookOutcome.CHECKOUT_COMPLETED
        assert result.status == SubscriptionStatus.ACTIVE.value
        assert result.subscription_id == "sub_1"
        assert result.customer_id == "cus_1"
        assert result.user_email == "ada@example.com"
        assert result.plan == Plan.PRO
        assert result.billing_cycle == BillingCycle.YEARLY
        assert result.amount == 29900
        assert result.currency == "USD"

    def test_subscription_updated_falls_back_to_price_lookup(self, gateway):
        result = gateway.interpret_event(
            _event(
                "customer.subscription.updated",
                {
                    "id": "sub_1",
                    "customer": "cus_1",
                    "status": "unpaid",
                    "cancel_at_period_end": True,
                    "items": {
                        "data": [
                            {
                                "price": {"id": "price_team_m", "recurring": {"interval": "month"}},
                                "current_period_start": 1700000000,
                                "current_period_end": 1702592000,
                            }
                        ]
                    },
                },
            )
        )

        assert result.outcome == WebhookOutcome.SUBSCRIPTION_UPDATED
        assert result.status == SubscriptionStatus.PAST_DUE.value
        assert result.plan == Plan.TEAM
        assert result.billing_cycle == BillingCycle.MONTHLY
        assert result.cancel_at_period_end is True
        assert result.current_period_end is not None
        assert result.current_period_end.timestamp() == 1702592000

    def test_subscription_deleted(self, gateway):
        result = gateway.interpret_event(
            _event("customer.subscription.deleted", {"id": "sub_1", "metadata": {}})
        )

        assert result.outcome == WebhookOutcome.SUBSCRIPTION_CANCELED
        assert result.status == SubscriptionStatus.CANCELED.value
        assert result.plan == Plan.FREE

    @pytest.mark.parametrize(
        "event_type,outcome",
        [
            ("invoice.paid", WebhookOutcome.PAYMENT_SUCCEEDED),
            ("invoice.payment_succeeded", WebhookOutcome.PAYMENT_SUCCEEDED),
            ("invoice.payment_failed", WebhookOutcome.PAYMENT_FAILED),
        ],
    )
    def test_invoice_events(self, gateway, event_type, outcome):
        result = gateway.interpret_event(
            _event(
                event_type,
                {
                    "id": "in_1",
                    "subscription": "sub_1",
                    "payment_intent": "pi_1",
                    "customer_email": "ada@example.com",
                    "amount_paid": 2900,
                    "amount_due": 2900,
                    "currency": "usd",
                },
            )
        )

        assert result.outcome == outcome
        assert result.subscription_id == "sub_1"
        assert result.payment_id == "pi_1"
        assert result.amount == 2900

    def test_charge_refunded(self, gateway):
        result = gateway.interpret_event(
            _event(
                "charge.refunded",
                {"id": "ch_1", "payment_intent": "pi_1", "amount_refunded": 2900},
            )
        )

        assert result.outcome == WebhookOutcome.PAYMENT_REFUNDED
        assert result.payment_id == "pi_1"

    def test_invoice_action_required_is_pending_failure(self, gateway):
        result = gateway.interpret_event(
            _event(
                "invoice.payment_action_required",
                {
                    "id": "in_1",
                    "subscription": "sub_1",
                    "payment_intent": "pi_1",
                    "amount_due": 2900,
                    "currency": "usd",
                },
            )
        )

        assert result.outcome == WebhookOutcome.PAYMENT_FAILED
        assert result.status == PaymentStatus.PENDING.value
        assert result.error == "Payment requires action"
        assert result.subscription_id == "sub_1"
        assert result.currency == "USD"

    def test_charge_failed(self, gateway):
        result = gateway.interpret_event(
            _event(
                "charge.failed",
                {
                    "id": "ch_1",
                    "customer": "cus_1",
                    "payment_intent": None,
                    "amount": 2900,
                    "currency": "usd",
                    "billing_details": {"email": "ada@example.com"},
                    "failure_code": "card_declined",
                },
            )
        )

        assert result.outcome == WebhookOutcome.PAYMENT_FAILED
        assert result.payment_id == "ch_1"
        assert result.user_email == "ada@example.com"
        assert result.amount == 2900
        assert result.error == "card_declined"

    def test_customer_deleted(self, gateway):
        result = gateway.interpret_event(
            _event("customer.deleted", {"id": "cus_1", "email": "ada@example.com"})
        )

        assert result.outcome == WebhookOutcome.CUSTOMER_DELETED
        assert result.customer_id == "cus_1"
        assert result.user_email == "ada@example.com"
        assert result.subscription_id is None

    def test_unknown_type_is_acknowledged(self, gateway):
        result = gateway.interpret_event(_event("customer.created", {"id": "cus_1"}))

        assert result.success is True
        assert result.outcome == WebhookOutcome.ACKNOWLEDGED


class TestHandleWebhook:
    @pytest.mark.asyncio
    async def test_bad_signature_is_an_error_result(self, gateway):
        body = _event_body("invoice.paid", {"id": "in_1"})

        result = await gateway.handle_webhook(body, "t=1,v1=deadbeef")

        assert result.success is False
        assert result.error == "Invalid webhook signature"

    @pytest.mark.asyncio
    async def test_valid_delivery_is_interpreted(self, gateway):
        body = _event_body("customer.subscription.deleted", {"id": "sub_1"})

        result = await gateway.handle_webhook(body, _sign(body))

        assert result.success is True
        assert result.outcome == WebhookOutcome.SUBSCRIPTION_CANCELED


class TestSubscriptions:
    @pytest.mark.asyncio
    async def test_cancel_at_period_end_mirrors_locally(self, gateway, client, repo):
        repo.seed(
            SubscriptionRecord(
                user_id="ada@example.com",
                gateway=GatewayName.STRIPE,
                gateway_transaction_id="sub_1",
                plan=Plan.PRO,
                status=SubscriptionStatus.ACTIVE,
            )
        )

        await gateway.cancel_subscription("sub_1")

        client.update_subscription.assert_awaited_once_with("sub_1", {"cancel_at_period_end": True})
        client.cancel_subscription.assert_not_called()
        (stored,) = repo.all()
        assert stored.cancel_at_period_end is True
        assert stored.status == SubscriptionStatus.ACTIVE

    @pytest.mark.asyncio
    async def test_immediate_cancel(self, gateway, client, repo):
        repo.seed(
            SubscriptionRecord(
                user_id="ada@example.com",
                gateway=GatewayName.STRIPE,
                gateway_transaction_id="sub_1",
                plan=Plan.PRO,
                status=SubscriptionStatus.ACTIVE,
            )
        )

        await gateway.cancel_subscription("sub_1", immediate=True)

        client.cancel_subscription.assert_awaited_once_with("sub_1")
        (stored,) = repo.all()
        assert stored.status == SubscriptionStatus.CANCELED
        assert stored.plan == Plan.FREE

    @pytest.mark.asyncio
    async def test_cancel_failure_chains_cause(self, gateway, client):
        client.update_subscription.side_effect = RuntimeError("network down")

        with pytest.raises(CancellationFailedError) as exc_info:
            await gateway.cancel_subscription("sub_1")

        assert exc_info.value.subscription_id == "sub_1"
        assert isinstance(exc_info.value.__cause__, RuntimeError)

    @pytest.mark.asyncio
    async def test_lookup_falls_back_to_local_record(self, gateway, client, repo):
        client.retrieve_subscription.side_effect = RuntimeError("timeout")
        repo.seed(
            SubscriptionRecord(
                user_id="ada@example.com",
                gateway=GatewayName.STRIPE,
                gateway_transaction_id="sub_1",
                plan=Plan.PRO,
                status=SubscriptionStatus.ACTIVE,
            )
        )

        record = await gateway.get_subscription("sub_1")

        assert record is not None
        assert record.user_id == "ada@example.com"

    @pytest.mark.asyncio
    async def test_lookup_by_user_skips_provider(self, gateway, client):
        assert await gateway.get_subscription("nobody@example.com") is None
        client.retrieve_subscription.assert_not_called()

    @pytest.mark.asyncio
    async def test_pause_and_resume(self, gateway, client):
        await gateway.pause_subscription("sub_1")
        await gateway.resume_subscription("sub_1")

        pause, resume = client.update_subscription.await_args_list
        assert pause.args[1] == {"pause_collection": {"behavior": "mark_uncollectible"}}
        assert resume.args[1] == {"pause_collection": ""}

    @pytest.mark.asyncio
    async def test_portal_session_url(self, gateway, client):
        client.create_portal_session.return_value = {"url": "https://billing.stripe.com/p/1"}

        url = await gateway.create_portal_session("cus_1", "https://app.test/billing")

        assert url == "https://billing.stripe.com/p/1"
