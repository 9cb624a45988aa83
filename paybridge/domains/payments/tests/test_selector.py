"""Table-driven tests for gateway selection precedence."""

from dataclasses import dataclass, field
from typing import Optional, Sequence

import pytest

from paybridge.domains.payments.exceptions import NoGatewayConfiguredError
from paybridge.domains.payments.fakes import FakePaymentGateway
from paybridge.domains.payments.registry import GatewayRegistry
from paybridge.domains.payments.selector import GatewaySelector, currency_for_country
from paybridge.schemas.payment import GatewayName

ALL = tuple(GatewayName)


def _selector(configured: Sequence[GatewayName]) -> GatewaySelector:
    registry = GatewayRegistry(
        FakePaymentGateway(name, configured=name in configured) for name in GatewayName
    )
    return GatewaySelector(registry)


@dataclass
class SelectCase:
    label: str
    configured: Sequence[GatewayName]
    expected: GatewayName
    preferred: Optional[str] = None
    country: Optional[str] = None
    currency: Optional[str] = None
    fallback_order: Sequence[str] = field(default_factory=tuple)


CASES = [
    SelectCase("preferred_wins", ALL, GatewayName.PAYTABS, preferred="paytabs", country="EG"),
    SelectCase("preferred_case_insensitive", ALL, GatewayName.PADDLE, preferred="PADDLE"),
    SelectCase(
        "unconfigured_preferred_falls_through_to_country",
        (GatewayName.STRIPE, GatewayName.PAYMOB),
        GatewayName.PAYMOB,
        preferred="paddle",
        country="EG",
    ),
    SelectCase("egypt_routes_to_paymob", ALL, GatewayName.PAYMOB, country="eg"),
    SelectCase("gcc_routes_to_paytabs", ALL, GatewayName.PAYTABS, country="SA"),
    SelectCase("eu_routes_to_paddle", ALL, GatewayName.PADDLE, country="DE"),
    SelectCase("country_beats_currency", ALL, GatewayName.PAYMOB, country="EG", currency="USD"),
    SelectCase(
        "currency_when_country_unmapped", ALL, GatewayName.PAYTABS, country="US", currency="AED"
    ),
    SelectCase(
        "fallback_order_before_default",
        (GatewayName.PADDLE, GatewayName.PAYMOB),
        GatewayName.PAYMOB,
        fallback_order=("paymob", "paddle"),
    ),
    SelectCase("default_order_starts_with_stripe", ALL, GatewayName.STRIPE),
    SelectCase(
        "default_order_skips_unconfigured",
        (GatewayName.PAYTABS, GatewayName.PAYMOB),
        GatewayName.PAYTABS,
        country="US",
    ),
]


@pytest.mark.parametrize("case", CASES, ids=lambda c: c.label)
def test_select(case: SelectCase):
    gateway = _selector(case.configured).select(
        preferred=case.preferred,
        country=case.country,
        currency=case.currency,
        fallback_order=case.fallback_order,
    )
    assert gateway.name == case.expected


def test_select_never_returns_unconfigured_gateway():
    with pytest.raises(NoGatewayConfiguredError):
        _selector(()).select(preferred="stripe", country="EG", currency="EGP")


class TestRecommendations:
    @pytest.mark.parametrize(
        "country, expected",
        [
            ("EG", GatewayName.PAYMOB),
            ("AE", GatewayName.PAYTABS),
            ("FR", GatewayName.PADDLE),
            ("US", GatewayName.STRIPE),
        ],
    )
    def test_recommended_for_country(self, country, expected):
        assert _selector(ALL).recommended_for_country(country) == expected

    def test_recommendation_is_none_when_target_unconfigured(self):
        assert _selector((GatewayName.STRIPE,)).recommended_for_country("EG") is None

    @pytest.mark.parametrize(
        "country, currency",
        [("EG", "EGP"), ("sa", "SAR"), ("KW", "USD"), ("DE", "EUR"), ("GB", "GBP"), ("BR", "USD")],
    )
    def test_currency_for_country(self, country, currency):
        assert currency_for_country(country) == currency
