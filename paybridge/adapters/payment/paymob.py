"""Paymob client adapter (Intention API over httpx)."""

from typing import Any, Dict, Optional
from urllib.parse import urlencode

from paybridge.adapters.payment.http import GatewayHttpTransport
from paybridge.core.protocols.payment import PaymobClientProtocol

PAYMOB_BASE_URL = "https://accept.paymob.com"


class PaymobGatewayClient(PaymobClientProtocol):
    """PaymobClientProtocol backed by the Paymob REST API."""

    def __init__(
        self,
        secret_key: str,
        public_key: str,
        timeout: float = 10.0,
        transport: Optional[GatewayHttpTransport] = None,
    ) -> None:
        self._public_key = public_key
        self._http = transport or GatewayHttpTransport(
            service_name="Paymob",
            base_url=PAYMOB_BASE_URL,
            headers={
                "Authorization": f"Token {secret_key}",
                "Content-Type": "application/json",
            },
            timeout=timeout,
        )

    async def create_intention(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        return await self._http.send("POST", "/v1/intention/", json=payload)

    def checkout_url(self, client_secret: str) -> str:
        query = urlencode({"publicKey": self._public_key, "clientSecret": client_secret})
        return f"{PAYMOB_BASE_URL}/unifiedcheckout/?{query}"
