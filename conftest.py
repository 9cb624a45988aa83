"""Root conftest for pytest configuration and shared fixtures.

Loaded before the colocated tests under paybridge/, so its fixtures are
available to every domain, adapter and API test.
"""

import os

import pytest

pytest_plugins = ("pytest_asyncio",)

# ---------------------------------------------------------------------------
# Environment variables, set before any paybridge module import.
# setdefault so real env vars (CI) are never overridden.
# ---------------------------------------------------------------------------
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("POSTGRES_HOST", "localhost")
os.environ.setdefault("POSTGRES_USER", "test_user")
os.environ.setdefault("POSTGRES_PASSWORD", "test_password")
os.environ.setdefault("POSTGRES_DB", "test_db")
os.environ.setdefault("APP_URL", "https://app.test")
os.environ.setdefault("API_URL", "https://api.test")


# ---------------------------------------------------------------------------
# Shared fake fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def fake_subscription_repo():
    """In-memory SubscriptionRepository."""
    from paybridge.domains.subscriptions.fakes import FakeSubscriptionRepository

    return FakeSubscriptionRepository()


@pytest.fixture
def fake_idempotency_store():
    """In-memory idempotency ledger."""
    from paybridge.domains.webhooks.fakes import FakeIdempotencyStore

    return FakeIdempotencyStore()


@pytest.fixture
def fake_email_notifier():
    """EmailNotifier that records every send."""
    from paybridge.adapters.email import FakeEmailNotifier

    return FakeEmailNotifier()


@pytest.fixture
def fake_webhook_metrics():
    """WebhookMetrics that records observations."""
    from paybridge.adapters.metrics import FakeWebhookMetrics

    return FakeWebhookMetrics()


@pytest.fixture
def fake_stripe_gateway():
    """Scripted gateway registered under the Stripe name."""
    from paybridge.domains.payments.fakes import FakePaymentGateway
    from paybridge.schemas.payment import GatewayName

    return FakePaymentGateway(GatewayName.STRIPE)


@pytest.fixture
def fake_paymob_gateway():
    """Scripted gateway that renews subscriptions locally, like Paymob."""
    from paybridge.domains.payments.fakes import FakePaymentGateway
    from paybridge.schemas.payment import GatewayName

    return FakePaymentGateway(GatewayName.PAYMOB, renews_locally=True)


@pytest.fixture
def gateway_registry(fake_stripe_gateway, fake_paymob_gateway):
    """Registry holding the two scripted gateways."""
    from paybridge.domains.payments.registry import GatewayRegistry

    return GatewayRegistry([fake_stripe_gateway, fake_paymob_gateway])


@pytest.fixture
def webhook_processor(
    gateway_registry,
    fake_idempotency_store,
    fake_subscription_repo,
    fake_email_notifier,
    fake_webhook_metrics,
):
    """WebhookProcessor wired entirely to fakes."""
    from paybridge.domains.webhooks.processor import WebhookProcessor

    return WebhookProcessor(
        registry=gateway_registry,
        idempotency=fake_idempotency_store,
        subscriptions=fake_subscription_repo,
        notifier=fake_email_notifier,
        metrics=fake_webhook_metrics,
    )


@pytest.fixture
def test_container(
    gateway_registry,
    fake_subscription_repo,
    fake_idempotency_store,
    webhook_processor,
    fake_email_notifier,
    fake_webhook_metrics,
):
    """A Container with all dependencies replaced by fakes.

    For partial overrides, use container.replace():
        c = test_container.replace(email_notifier=NullEmailNotifier())
    """
    from paybridge.core.container import Container
    from paybridge.domains.payments.selector import GatewaySelector

    return Container(
        gateway_registry=gateway_registry,
        gateway_selector=GatewaySelector(gateway_registry),
        subscription_repo=fake_subscription_repo,
        idempotency_store=fake_idempotency_store,
        webhook_processor=webhook_processor,
        email_notifier=fake_email_notifier,
        webhook_metrics=fake_webhook_metrics,
        metrics_renderer=fake_webhook_metrics,
    )
