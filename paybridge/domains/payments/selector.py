"""Gateway selection by preference, country and currency.

Precedence: preferred gateway, then the country map (EU countries go to
Paddle), then the currency map, then the caller's fallback order, then
DEFAULT_ORDER. Only configured gateways are ever selected.
"""

from typing import Optional, Sequence

from paybridge.core.logging import logger
from paybridge.domains.payments.exceptions import NoGatewayConfiguredError
from paybridge.domains.payments.protocols import GatewayRegistryProtocol, PaymentGateway
from paybridge.schemas.payment import GatewayName

COUNTRY_GATEWAYS: dict[str, GatewayName] = {
    "EG": GatewayName.PAYMOB,
    # GCC
    "SA": GatewayName.PAYTABS,
    "AE": GatewayName.PAYTABS,
    "BH": GatewayName.PAYTABS,
    "OM": GatewayName.PAYTABS,
    "QA": GatewayName.PAYTABS,
    "KW": GatewayName.PAYTABS,
    # Rest of MENA
    "JO": GatewayName.PAYTABS,
    "LB": GatewayName.PAYTABS,
    "PS": GatewayName.PAYTABS,
    "IQ": GatewayName.PAYTABS,
}

EU_COUNTRIES = frozenset(
    {
        "AT", "BE", "BG", "HR", "CY", "CZ", "DK", "EE", "FI", "FR", "DE", "GR", "HU", "IE",
        "IT", "LV", "LT", "LU", "MT", "NL", "PL", "PT", "RO", "SK", "SI", "ES", "SE",
    }
)  # fmt: skip

CURRENCY_GATEWAYS: dict[str, GatewayName] = {
    "EGP": GatewayName.PAYMOB,
    "SAR": GatewayName.PAYTABS,
    "AED": GatewayName.PAYTABS,
    "JOD": GatewayName.PAYTABS,
    "OMR": GatewayName.PAYTABS,
    "BHD": GatewayName.PAYTABS,
    "USD": GatewayName.STRIPE,
    "EUR": GatewayName.STRIPE,
    "GBP": GatewayName.STRIPE,
}

COUNTRY_CURRENCIES: dict[str, str] = {
    "EG": "EGP",
    "SA": "SAR",
    "AE": "AED",
    "BH": "BHD",
    "OM": "OMR",
    # Kuwait and Qatar settle in USD
    "KW": "USD",
    "QA": "USD",
    "JO": "JOD",
    "DE": "EUR",
    "FR": "EUR",
    "IT": "EUR",
    "ES": "EUR",
    "NL": "EUR",
    "BE": "EUR",
    "AT": "EUR",
    "IE": "EUR",
    "PT": "EUR",
    "GR": "EUR",
    "FI": "EUR",
    "GB": "GBP",
}

DEFAULT_ORDER: tuple[GatewayName, ...] = (
    GatewayName.STRIPE,
    GatewayName.PADDLE,
    GatewayName.PAYTABS,
    GatewayName.PAYMOB,
)


def currency_for_country(country_code: str) -> str:
    """Settlement currency for a country; USD when unlisted."""
    return COUNTRY_CURRENCIES.get(country_code.upper(), "USD")


class GatewaySelector:
    """Chooses the gateway for a checkout."""

    def __init__(self, registry: GatewayRegistryProtocol) -> None:
        self._registry = registry

    def _configured(self, name: Optional[str]) -> Optional[PaymentGateway]:
        if not name:
            return None
        key = name.value if isinstance(name, GatewayName) else str(name).lower()
        for gateway in self._registry.configured():
            if gateway.name.value == key:
                return gateway
        return None

    def select(
        self,
        preferred: Optional[str] = None,
        country: Optional[str] = None,
        currency: Optional[str] = None,
        fallback_order: Optional[Sequence[str]] = None,
    ) -> PaymentGateway:
        """Pick a configured gateway.

        Raises:
            NoGatewayConfiguredError: If none of the candidates is configured.
        """
        candidates: list[Optional[str]] = [preferred]
        if country:
            code = country.upper()
            candidates.append(COUNTRY_GATEWAYS.get(code))
            if code in EU_COUNTRIES:
                candidates.append(GatewayName.PADDLE)
        if currency:
            candidates.append(CURRENCY_GATEWAYS.get(currency.upper()))
        candidates.extend(fallback_order or ())
        candidates.extend(DEFAULT_ORDER)

        for candidate in candidates:
            gateway = self._configured(candidate)
            if gateway is not None:
                logger.debug(
                    f"Selected {gateway.name.value} "
                    f"(preferred={preferred}, country={country}, currency={currency})"
                )
                return gateway
        raise NoGatewayConfiguredError()

    def recommended_for_country(self, country: str) -> Optional[GatewayName]:
        """The gateway this country is routed to, or None if that gateway is not configured."""
        code = country.upper()
        if code in COUNTRY_GATEWAYS:
            target = COUNTRY_GATEWAYS[code]
        elif code in EU_COUNTRIES:
            target = GatewayName.PADDLE
        else:
            target = GatewayName.STRIPE
        return target if self._configured(target) else None

    def currency_for_country(self, country: str) -> str:
        return currency_for_country(country)
