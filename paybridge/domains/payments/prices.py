"""Plan and price configuration.

``PriceConfigResolver`` owns the (gateway, plan, cycle[, region]) -> price
table. It is built once at startup and injected into every gateway, and it
reloads the table from its loader when the TTL has elapsed.
"""

import time
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Callable, Dict, Optional, Tuple

from paybridge.core.config import PayTabsRegion, Settings
from paybridge.core.logging import logger
from paybridge.domains.payments.exceptions import PriceNotConfiguredError
from paybridge.schemas.payment import BillingCycle, GatewayName, Plan


@dataclass(frozen=True)
class PriceEntry:
    """Either a provider price id (catalog gateways) or an amount (regional gateways)."""

    currency: str
    price_id: Optional[str] = None
    amount_minor: Optional[int] = None

    @property
    def amount_major(self) -> Optional[Decimal]:
        if self.amount_minor is None:
            return None
        return (Decimal(self.amount_minor) / 100).quantize(Decimal("0.01"))


@dataclass(frozen=True)
class RegionPricing:
    currency: str
    multiplier: Decimal


PriceKey = Tuple[GatewayName, Plan, BillingCycle, Optional[str]]
PriceTable = Dict[PriceKey, PriceEntry]
PriceLoader = Callable[[], PriceTable]


# Paymob amounts in piasters (EGP minor units)
PAYMOB_AMOUNTS: dict[Plan, dict[BillingCycle, int]] = {
    Plan.PRO: {BillingCycle.MONTHLY: 29900, BillingCycle.YEARLY: 299900},
    Plan.TEAM: {BillingCycle.MONTHLY: 79900, BillingCycle.YEARLY: 799900},
    Plan.ENTERPRISE: {BillingCycle.MONTHLY: 249900, BillingCycle.YEARLY: 2499900},
}

# PayTabs base amounts in USD cents, converted per region below
PAYTABS_BASE_AMOUNTS: dict[Plan, dict[BillingCycle, int]] = {
    Plan.PRO: {BillingCycle.MONTHLY: 999, BillingCycle.YEARLY: 9900},
    Plan.TEAM: {BillingCycle.MONTHLY: 2999, BillingCycle.YEARLY: 29900},
    Plan.ENTERPRISE: {BillingCycle.MONTHLY: 7999, BillingCycle.YEARLY: 79900},
}

PAYTABS_REGIONS: dict[PayTabsRegion, RegionPricing] = {
    PayTabsRegion.ARE: RegionPricing("AED", Decimal("3.67")),
    PayTabsRegion.SAU: RegionPricing("SAR", Decimal("3.75")),
    PayTabsRegion.EGY: RegionPricing("EGP", Decimal("50.0")),
    PayTabsRegion.OMN: RegionPricing("OMR", Decimal("0.385")),
    PayTabsRegion.JOR: RegionPricing("JOD", Decimal("0.71")),
    PayTabsRegion.BHR: RegionPricing("BHD", Decimal("0.376")),
    PayTabsRegion.GLOBAL: RegionPricing("USD", Decimal("1.0")),
}


def convert_regional_amount(base_usd_cents: int, region: PayTabsRegion) -> int:
    """Convert a USD-cent amount into the region's currency, in minor units."""
    multiplier = PAYTABS_REGIONS[region].multiplier
    converted = (Decimal(base_usd_cents) * multiplier).quantize(Decimal("1"), ROUND_HALF_UP)
    return int(converted)


def settings_price_loader(settings: Settings) -> PriceLoader:
    """Build a loader that reads the price table from settings and static tables."""

    def load() -> PriceTable:
        table: PriceTable = {}
        for gateway, prefix in ((GatewayName.STRIPE, "STRIPE"), (GatewayName.PADDLE, "PADDLE")):
            for plan in (Plan.PRO, Plan.TEAM, Plan.ENTERPRISE):
                for cycle in BillingCycle:
                    attr = f"{prefix}_PRICE_{plan.value.upper()}_{cycle.value.upper()}"
                    price_id = getattr(settings, attr, None)
                    if price_id:
                        table[(gateway, plan, cycle, None)] = PriceEntry(
                            currency="USD", price_id=price_id
                        )

        for plan, cycles in PAYMOB_AMOUNTS.items():
            for cycle, amount in cycles.items():
                table[(GatewayName.PAYMOB, plan, cycle, None)] = PriceEntry(
                    currency=settings.PAYMOB_CURRENCY, amount_minor=amount
                )

        for region, pricing in PAYTABS_REGIONS.items():
            for plan, cycles in PAYTABS_BASE_AMOUNTS.items():
                for cycle, base in cycles.items():
                    table[(GatewayName.PAYTABS, plan, cycle, region.value)] = PriceEntry(
                        currency=pricing.currency,
                        amount_minor=convert_regional_amount(base, region),
                    )
        return table

    return load


class PriceConfigResolver:
    """Resolves prices from a TTL-refreshed table."""

    def __init__(
        self,
        loader: PriceLoader,
        ttl_seconds: float = 300,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._loader = loader
        self._ttl = ttl_seconds
        self._clock = clock
        self._table: PriceTable = {}
        self._loaded_at: Optional[float] = None

    def refresh(self, force: bool = False) -> bool:
        """Reload the table if stale (or when forced). Returns True if reloaded."""
        now = self._clock()
        if not force and self._loaded_at is not None and now - self._loaded_at < self._ttl:
            return False
        self._table = self._loader()
        self._loaded_at = now
        logger.debug(f"Loaded price table with {len(self._table)} entries")
        return True

    def resolve(
        self,
        gateway: GatewayName,
        plan: Plan,
        cycle: BillingCycle,
        region: Optional[str] = None,
    ) -> PriceEntry:
        """Return the price for a checkout or raise PriceNotConfiguredError."""
        self.refresh()
        entry = self._table.get((gateway, plan, cycle, region))
        if entry is None:
            suffix = f" in region {region}" if region else ""
            raise PriceNotConfiguredError(
                f"No {gateway.value} price configured for {plan.value} ({cycle.value}){suffix}"
            )
        return entry

    def plan_for_price_id(self, gateway: GatewayName, price_id: Optional[str]) -> Optional[Plan]:
        """Reverse lookup used when provider metadata lacks the plan."""
        if not price_id:
            return None
        self.refresh()
        for (gw, plan, _cycle, _region), entry in self._table.items():
            if gw == gateway and entry.price_id == price_id:
                return plan
        return None
