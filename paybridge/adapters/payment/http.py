"""Shared HTTP transport for REST-based gateway clients.

Wraps an ``httpx.AsyncClient`` with the gateway timeout, a single retry for
idempotent reads on transport errors, and translation of every failure into
``ExternalServiceError``. Mutating requests are never retried.
"""

from typing import Any, Dict, Mapping, Optional

import httpx
from tenacity import retry, retry_if_exception_type, stop_after_attempt

from paybridge.core.exceptions import ExternalServiceError
from paybridge.core.logging import logger

_RETRYABLE = (httpx.TimeoutException, httpx.ConnectError)


class GatewayHttpTransport:
    """JSON-over-HTTP transport bound to one provider's base URL."""

    def __init__(
        self,
        service_name: str,
        base_url: str,
        headers: Optional[Mapping[str, str]] = None,
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.service_name = service_name
        self._client = client or httpx.AsyncClient(
            base_url=base_url,
            headers=dict(headers or {}),
            timeout=timeout,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    # -------------------------------------------------------------------------
    # Requests
    # -------------------------------------------------------------------------

    async def get(
        self,
        path: str,
        params: Optional[Mapping[str, Any]] = None,
        not_found_ok: bool = False,
    ) -> Optional[Dict[str, Any]]:
        """GET with one retry on timeouts and connection errors.

        Returns None for a 404 when ``not_found_ok`` is set.
        """
        try:
            response = await self._get_with_retry(path, params)
        except httpx.HTTPError as e:
            raise ExternalServiceError(self.service_name, f"GET {path} failed: {e}") from e
        if response.status_code == 404 and not_found_ok:
            return None
        return self._decode(response, "GET", path)

    async def send(
        self,
        method: str,
        path: str,
        json: Optional[Mapping[str, Any]] = None,
    ) -> Dict[str, Any]:
        """Send a mutating request. Never retried."""
        try:
            response = await self._client.request(method, path, json=json)
        except httpx.HTTPError as e:
            raise ExternalServiceError(self.service_name, f"{method} {path} failed: {e}") from e
        return self._decode(response, method, path)

    @retry(
        stop=stop_after_attempt(2),
        retry=retry_if_exception_type(_RETRYABLE),
        reraise=True,
    )
    async def _get_with_retry(
        self, path: str, params: Optional[Mapping[str, Any]]
    ) -> httpx.Response:
        return await self._client.get(path, params=params)

    def _decode(self, response: httpx.Response, method: str, path: str) -> Dict[str, Any]:
        if response.is_error:
            body = response.text[:500]
            logger.warning(
                f"{self.service_name} {method} {path} returned {response.status_code}: {body}"
            )
            raise ExternalServiceError(
                self.service_name, f"{method} {path} returned {response.status_code}: {body}"
            )
        if not response.content:
            return {}
        try:
            data = response.json()
        except ValueError as e:
            raise ExternalServiceError(
                self.service_name, f"{method} {path} returned a non-JSON body"
            ) from e
        if not isinstance(data, dict):
            return {"data": data}
        return data
