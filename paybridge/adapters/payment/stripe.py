"""Stripe client adapter.

Uses the official SDK's ``StripeClient`` with its async methods and an httpx
transport. SDK-level retries are disabled: reads are retried once on
connection errors here, writes never. Errors surface as
``ExternalServiceError`` and the gateway decides what to do with them.
"""

from typing import Any, Awaitable, Callable, Dict, Optional

import stripe
from tenacity import retry, retry_if_exception_type, stop_after_attempt

from paybridge.core.exceptions import ExternalServiceError
from paybridge.core.logging import logger
from paybridge.core.protocols.payment import StripeClientProtocol

_SERVICE = "Stripe"

_retry_read = retry(
    stop=stop_after_attempt(2),
    retry=retry_if_exception_type(stripe.APIConnectionError),
    reraise=True,
)


def _to_dict(obj: Any) -> Dict[str, Any]:
    """Convert a StripeObject (or anything dict-like) into a plain dict."""
    if obj is None:
        return {}
    to_dict = getattr(obj, "to_dict", None)
    if callable(to_dict):
        return to_dict()
    return dict(obj)


class StripeGatewayClient(StripeClientProtocol):
    """StripeClientProtocol backed by the stripe SDK."""

    def __init__(
        self,
        api_key: str,
        timeout: float = 10.0,
        client: Optional[stripe.StripeClient] = None,
    ) -> None:
        self._client = client or stripe.StripeClient(
            api_key,
            http_client=stripe.HTTPXClient(timeout=timeout),
            max_network_retries=0,
        )

    @_retry_read
    async def _read(
        self, method: Callable[..., Awaitable[Any]], *args: Any, **kwargs: Any
    ) -> Any:
        return await method(*args, **kwargs)

    # -------------------------------------------------------------------------
    # Customers
    # -------------------------------------------------------------------------

    async def find_customer_by_email(self, email: str) -> Optional[Dict[str, Any]]:
        try:
            customers = await self._read(
                self._client.customers.list_async, params={"email": email, "limit": 1}
            )
        except stripe.StripeError as e:
            raise ExternalServiceError(_SERVICE, f"Customer lookup failed: {e}") from e
        if not customers.data:
            return None
        return _to_dict(customers.data[0])

    async def create_customer(
        self, email: str, name: Optional[str], metadata: Dict[str, str]
    ) -> Dict[str, Any]:
        params: Dict[str, Any] = {"email": email, "metadata": metadata}
        if name:
            params["name"] = name
        try:
            customer = await self._client.customers.create_async(params=params)
        except stripe.StripeError as e:
            raise ExternalServiceError(_SERVICE, f"Customer creation failed: {e}") from e
        return _to_dict(customer)

    async def retrieve_customer(self, customer_id: str) -> Optional[Dict[str, Any]]:
        try:
            customer = await self._read(self._client.customers.retrieve_async, customer_id)
        except stripe.InvalidRequestError as e:
            if e.http_status == 404:
                return None
            raise ExternalServiceError(_SERVICE, f"Customer retrieval failed: {e}") from e
        except stripe.StripeError as e:
            raise ExternalServiceError(_SERVICE, f"Customer retrieval failed: {e}") from e
        data = _to_dict(customer)
        if data.get("deleted"):
            return None
        return data

    # -------------------------------------------------------------------------
    # Checkout and portal
    # -------------------------------------------------------------------------

    async def create_checkout_session(self, params: Dict[str, Any]) -> Dict[str, Any]:
        try:
            session = await self._client.checkout.sessions.create_async(params=params)
        except stripe.StripeError as e:
            logger.error(f"Stripe checkout session creation failed: {e}")
            raise ExternalServiceError(_SERVICE, f"Checkout session creation failed: {e}") from e
        return _to_dict(session)

    async def create_portal_session(self, customer_id: str, return_url: str) -> Dict[str, Any]:
        try:
            session = await self._client.billing_portal.sessions.create_async(
                params={"customer": customer_id, "return_url": return_url}
            )
        except stripe.StripeError as e:
            raise ExternalServiceError(_SERVICE, f"Portal session creation failed: {e}") from e
        return _to_dict(session)

    # -------------------------------------------------------------------------
    # Subscriptions
    # -------------------------------------------------------------------------

    async def retrieve_subscription(self, subscription_id: str) -> Dict[str, Any]:
        try:
            subscription = await self._read(
                self._client.subscriptions.retrieve_async, subscription_id
            )
        except stripe.StripeError as e:
            raise ExternalServiceError(_SERVICE, f"Subscription retrieval failed: {e}") from e
        return _to_dict(subscription)

    async def update_subscription(
        self, subscription_id: str, params: Dict[str, Any]
    ) -> Dict[str, Any]:
        try:
            subscription = await self._client.subscriptions.update_async(
                subscription_id, params=params
            )
        except stripe.StripeError as e:
            raise ExternalServiceError(_SERVICE, f"Subscription update failed: {e}") from e
        return _to_dict(subscription)

    async def cancel_subscription(self, subscription_id: str) -> Dict[str, Any]:
        try:
            subscription = await self._client.subscriptions.cancel_async(subscription_id)
        except stripe.StripeError as e:
            raise ExternalServiceError(_SERVICE, f"Subscription cancellation failed: {e}") from e
        return _to_dict(subscription)
