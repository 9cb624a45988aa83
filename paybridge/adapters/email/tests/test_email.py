"""Tests for the email notifier adapters."""

import json

import httpx
import pytest

from paybridge.adapters.email import FakeEmailNotifier, NullEmailNotifier, ResendEmailNotifier
from paybridge.adapters.email import templates
from paybridge.core.exceptions import ExternalServiceError


def _resend(handler) -> ResendEmailNotifier:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return ResendEmailNotifier(
        api_key="re_test",
        from_email="Billing <billing@example.com>",
        app_url="https://app.example.com/",
        client=client,
    )


class TestTemplates:
    def test_confirmation_renders_amount_in_major_units(self):
        subject, html, text = templates.subscription_confirmation(
            "a@x.com",
            None,
            "pro",
            "monthly",
            app_url="https://app.example.com",
            product_name="Paybridge",
            amount=29900,
            currency="egp",
            gateway="paymob",
        )
        assert subject == "Your Pro plan is now active - Paybridge"
        assert "Hello a," in text
        assert "- Amount: EGP 299.00/month" in text
        assert "- Payment method: Paymob" in text
        assert html.startswith("<p>")

    def test_confirmation_without_amount_omits_line(self):
        _, _, text = templates.subscription_confirmation(
            "a@x.com", "Ann", "team", "yearly", app_url="u", product_name="P"
        )
        assert "Amount" not in text
        assert "Hello Ann," in text

    def test_canceled_immediate_and_scheduled_differ(self):
        now_subject, _, now_text = templates.subscription_canceled(
            "a@x.com", None, "pro", app_url="u", product_name="P", immediate=True
        )
        later_subject, _, later_text = templates.subscription_canceled(
            "a@x.com", None, "pro", app_url="u", product_name="P", immediate=False,
            end_date="2026-12-01",
        )
        assert "canceled" in now_subject
        assert "scheduled" in later_subject
        assert "Free plan" in now_text
        assert "2026-12-01" in later_text


class TestResendEmailNotifier:
    @pytest.mark.asyncio
    async def test_posts_to_resend_with_bearer_token(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["auth"] = request.headers.get("Authorization")
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"id": "email_1"})

        notifier = _resend(handler)

        sent = await notifier.send_subscription_confirmation(
            "a@x.com", None, plan="pro", billing_cycle="monthly", gateway="stripe"
        )

        assert sent is True
        assert seen["url"] == "https://api.resend.com/emails"
        assert seen["auth"] == "Bearer re_test"
        assert seen["body"]["to"] == ["a@x.com"]
        assert seen["body"]["from"] == "Billing <billing@example.com>"
        assert "https://app.example.com/settings/subscription" in seen["body"]["text"]

    @pytest.mark.asyncio
    async def test_rejected_email_returns_false(self):
        notifier = _resend(lambda request: httpx.Response(422, json={"message": "bad"}))
        assert await notifier.send_subscription_canceled("a@x.com", None, plan="pro") is False

    @pytest.mark.asyncio
    async def test_transport_error_raises_external_service_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("boom", request=request)

        notifier = _resend(handler)
        with pytest.raises(ExternalServiceError):
            await notifier.send_subscription_canceled("a@x.com", None, plan="pro")


class TestNullAndFake:
    @pytest.mark.asyncio
    async def test_null_notifier_sends_nothing(self):
        notifier = NullEmailNotifier()
        sent = await notifier.send_subscription_confirmation("a@x.com", None, "pro", "monthly")
        assert sent is False

    @pytest.mark.asyncio
    async def test_fake_records_and_raises(self):
        fake = FakeEmailNotifier()
        await fake.send_subscription_canceled("a@x.com", None, plan="team", immediate=False)
        assert fake.call_count("send_subscription_canceled") == 1
        assert fake.calls_for("send_subscription_canceled")[0]["immediate"] is False

        fake.should_raise = RuntimeError("smtp down")
        with pytest.raises(RuntimeError):
            await fake.send_subscription_confirmation("a@x.com", None, "pro", "monthly")
