"""Tests for container wiring from settings."""

import pytest

from paybridge.adapters.email import NullEmailNotifier
import paybridge.core.container as container_module
from paybridge.core.config import Settings
from paybridge.core.container import create_container, initialize_container, reset_container
from paybridge.schemas.payment import GatewayName

_UNSET = dict(
    STRIPE_SECRET_KEY=None,
    STRIPE_WEBHOOK_SECRET=None,
    PADDLE_API_KEY=None,
    PADDLE_WEBHOOK_SECRET=None,
    PAYMOB_SECRET_KEY=None,
    PAYMOB_PUBLIC_KEY=None,
    PAYMOB_HMAC_SECRET=None,
    PAYMOB_INTEGRATION_ID_CARD=None,
    PAYTABS_PROFILE_ID=None,
    PAYTABS_SERVER_KEY=None,
    RESEND_API_KEY=None,
)


def _settings(**overrides) -> Settings:
    return Settings(_env_file=None, **{**_UNSET, **overrides})


@pytest.fixture(autouse=True)
def _clean_global():
    reset_container()
    yield
    reset_container()


class TestCreateContainer:
    def test_no_credentials_means_no_configured_gateways(self):
        container = create_container(_settings())

        assert container.gateway_registry.configured() == []
        assert len(container.gateway_registry.all()) == 4
        assert isinstance(container.email_notifier, NullEmailNotifier)

    def test_stripe_configured_with_key_and_webhook_secret(self):
        container = create_container(
            _settings(STRIPE_SECRET_KEY="sk_test_123", STRIPE_WEBHOOK_SECRET="whsec_123")
        )

        assert container.gateway_registry.is_configured(GatewayName.STRIPE)
        assert not container.gateway_registry.is_configured(GatewayName.PADDLE)

    def test_processor_shares_the_container_dependencies(self):
        container = create_container(_settings())

        processor = container.webhook_processor
        assert processor._registry is container.gateway_registry
        assert processor._notifier is container.email_notifier


class TestGlobalContainer:
    def test_initialize_sets_global(self):
        initialize_container(_settings())

        assert container_module.container is not None

    def test_initialize_twice_raises(self):
        initialize_container(_settings())

        with pytest.raises(RuntimeError, match="already initialized"):
            initialize_container(_settings())

    def test_reset_clears_global(self):
        initialize_container(_settings())
        reset_container()

        assert container_module.container is None
