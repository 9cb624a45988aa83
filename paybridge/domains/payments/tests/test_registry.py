"""Tests for GatewayRegistry."""

import pytest

from paybridge.domains.payments.exceptions import UnknownGatewayError
from paybridge.domains.payments.fakes import FakePaymentGateway
from paybridge.domains.payments.registry import GatewayRegistry
from paybridge.schemas.payment import GatewayName


@pytest.fixture
def registry() -> GatewayRegistry:
    return GatewayRegistry(
        [
            FakePaymentGateway(GatewayName.STRIPE),
            FakePaymentGateway(GatewayName.PADDLE, configured=False),
        ]
    )


class TestGatewayRegistry:
    @pytest.mark.parametrize("name", ["stripe", "Stripe", GatewayName.STRIPE])
    def test_get_by_string_or_enum(self, registry, name):
        assert registry.get(name).name == GatewayName.STRIPE

    def test_get_unknown_raises(self, registry):
        with pytest.raises(UnknownGatewayError) as exc_info:
            registry.get("square")
        assert exc_info.value.name == "square"

    def test_configured_excludes_gateways_without_credentials(self, registry):
        assert [g.name for g in registry.configured()] == [GatewayName.STRIPE]
        assert [g.name for g in registry.all()] == [GatewayName.STRIPE, GatewayName.PADDLE]

    def test_is_configured(self, registry):
        assert registry.is_configured("stripe")
        assert not registry.is_configured("paddle")
        assert not registry.is_configured("paymob")

    def test_contains(self, registry):
        assert "paddle" in registry
        assert GatewayName.PAYMOB not in registry
        assert 42 not in registry

    def test_register_replaces_existing(self, registry):
        replacement = FakePaymentGateway(GatewayName.PADDLE)
        registry.register(replacement)
        assert registry.get("paddle") is replacement
        assert len(registry.all()) == 2
