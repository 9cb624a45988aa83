"""Paddle Billing client adapter (REST over httpx)."""

from typing import Any, Dict, Optional

from paybridge.adapters.payment.http import GatewayHttpTransport
from paybridge.core.config import PaddleEnvironment
from paybridge.core.protocols.payment import PaddleClientProtocol

PADDLE_API_URLS = {
    PaddleEnvironment.SANDBOX: "https://sandbox-api.paddle.com",
    PaddleEnvironment.PRODUCTION: "https://api.paddle.com",
}


def _unwrap(response: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    # Paddle wraps every resource in {"data": ..., "meta": ...}
    if response is None:
        return None
    data = response.get("data")
    return data if isinstance(data, dict) else response


class PaddleGatewayClient(PaddleClientProtocol):
    """PaddleClientProtocol backed by the Paddle Billing REST API."""

    def __init__(
        self,
        api_key: str,
        environment: PaddleEnvironment = PaddleEnvironment.SANDBOX,
        timeout: float = 10.0,
        transport: Optional[GatewayHttpTransport] = None,
    ) -> None:
        self._http = transport or GatewayHttpTransport(
            service_name="Paddle",
            base_url=PADDLE_API_URLS[environment],
            headers={
                "Authorization": f"Bearer {api_key}",
                "Content-Type": "application/json",
            },
            timeout=timeout,
        )

    async def find_customer_by_email(self, email: str) -> Optional[Dict[str, Any]]:
        response = await self._http.get("/customers", params={"email": email})
        customers = (response or {}).get("data") or []
        return customers[0] if customers else None

    async def create_customer(
        self, email: str, name: Optional[str], custom_data: Dict[str, str]
    ) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"email": email, "custom_data": custom_data}
        if name:
            payload["name"] = name
        return _unwrap(await self._http.send("POST", "/customers", json=payload)) or {}

    async def get_customer(self, customer_id: str) -> Optional[Dict[str, Any]]:
        return _unwrap(await self._http.get(f"/customers/{customer_id}", not_found_ok=True))

    async def create_transaction(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        return _unwrap(await self._http.send("POST", "/transactions", json=payload)) or {}

    async def get_subscription(self, subscription_id: str) -> Optional[Dict[str, Any]]:
        return _unwrap(
            await self._http.get(f"/subscriptions/{subscription_id}", not_found_ok=True)
        )

    async def cancel_subscription(
        self, subscription_id: str, effective_from: str
    ) -> Dict[str, Any]:
        response = await self._http.send(
            "POST",
            f"/subscriptions/{subscription_id}/cancel",
            json={"effective_from": effective_from},
        )
        return _unwrap(response) or {}

    async def pause_subscription(self, subscription_id: str) -> Dict[str, Any]:
        response = await self._http.send(
            "POST",
            f"/subscriptions/{subscription_id}/pause",
            json={"effective_from": "next_billing_period"},
        )
        return _unwrap(response) or {}

    async def resume_subscription(self, subscription_id: str) -> Dict[str, Any]:
        response = await self._http.send(
            "POST",
            f"/subscriptions/{subscription_id}/resume",
            json={"effective_from": "immediately"},
        )
        return _unwrap(response) or {}

    async def update_subscription(
        self, subscription_id: str, payload: Dict[str, Any]
    ) -> Dict[str, Any]:
        response = await self._http.send(
            "PATCH", f"/subscriptions/{subscription_id}", json=payload
        )
        return _unwrap(response) or {}
