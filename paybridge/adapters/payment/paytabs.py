"""PayTabs client adapter (Payment Page API over httpx)."""

from typing import Any, Dict, Optional

from paybridge.adapters.payment.http import GatewayHttpTransport
from paybridge.core.config import PayTabsRegion
from paybridge.core.protocols.payment import PayTabsClientProtocol

PAYTABS_ENDPOINTS = {
    PayTabsRegion.ARE: "https://secure.paytabs.com",
    PayTabsRegion.SAU: "https://secure.paytabs.sa",
    PayTabsRegion.EGY: "https://secure.paytabs.eg",
    PayTabsRegion.OMN: "https://secure.paytabs.om",
    PayTabsRegion.JOR: "https://secure.paytabs.jo",
    PayTabsRegion.BHR: "https://secure.paytabs.com",
    PayTabsRegion.GLOBAL: "https://secure-global.paytabs.com",
}


class PayTabsGatewayClient(PayTabsClientProtocol):
    """PayTabsClientProtocol backed by the PayTabs REST API."""

    def __init__(
        self,
        profile_id: str,
        server_key: str,
        region: PayTabsRegion = PayTabsRegion.ARE,
        timeout: float = 10.0,
        transport: Optional[GatewayHttpTransport] = None,
    ) -> None:
        self._profile_id = profile_id
        self._http = transport or GatewayHttpTransport(
            service_name="PayTabs",
            base_url=PAYTABS_ENDPOINTS[region],
            headers={"Authorization": server_key, "Content-Type": "application/json"},
            timeout=timeout,
        )

    async def create_payment_page(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        return await self._http.send("POST", "/payment/request", json=payload)
