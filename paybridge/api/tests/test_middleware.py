"""Unit tests for exception handlers and middleware."""

import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from paybridge.api.middleware import (
    bad_request_exception_handler,
    exception_logging_middleware,
    external_service_exception_handler,
    invalid_state_exception_handler,
    not_found_exception_handler,
    paybridge_exception_handler,
    service_unavailable_exception_handler,
)
from paybridge.core.exceptions import ExternalServiceError, PaybridgeException
from paybridge.domains.payments.exceptions import (
    GatewayNotConfiguredError,
    InvalidSignatureError,
    PriceNotConfiguredError,
    UnknownGatewayError,
)


def _body(response) -> dict:
    return json.loads(response.body)


@pytest.mark.asyncio
async def test_not_found_handler_returns_404():
    response = await not_found_exception_handler(MagicMock(), UnknownGatewayError("square"))
    assert response.status_code == 404
    assert _body(response) == {"detail": "Unknown payment gateway: square"}


@pytest.mark.asyncio
async def test_bad_request_handler_returns_400():
    response = await bad_request_exception_handler(MagicMock(), InvalidSignatureError())
    assert response.status_code == 400
    assert _body(response)["detail"] == "Invalid webhook signature"


@pytest.mark.asyncio
async def test_service_unavailable_handler_returns_503():
    response = await service_unavailable_exception_handler(
        MagicMock(), GatewayNotConfiguredError("Paddle")
    )
    assert response.status_code == 503
    assert _body(response)["detail"] == "Paddle is not configured"


@pytest.mark.asyncio
async def test_invalid_state_handler_returns_400():
    response = await invalid_state_exception_handler(
        MagicMock(), PriceNotConfiguredError("No price for stripe/pro/yearly")
    )
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_external_service_handler_returns_502():
    response = await external_service_exception_handler(
        MagicMock(), ExternalServiceError("Paymob", "timeout")
    )
    assert response.status_code == 502
    assert _body(response)["detail"] == "Paymob: timeout"


@pytest.mark.asyncio
async def test_fallback_handler_returns_500():
    response = await paybridge_exception_handler(MagicMock(), PaybridgeException("boom"))
    assert response.status_code == 500


@pytest.mark.asyncio
async def test_exception_logging_middleware_converts_unhandled_errors():
    call_next = AsyncMock(side_effect=RuntimeError("kaput"))
    response = await exception_logging_middleware(MagicMock(), call_next)
    assert response.status_code == 500
    assert _body(response)["detail"] == "Internal Server Error: RuntimeError: kaput"


@pytest.mark.asyncio
async def test_exception_logging_middleware_passes_responses_through():
    sentinel = MagicMock(status_code=200)
    call_next = AsyncMock(return_value=sentinel)
    assert await exception_logging_middleware(MagicMock(), call_next) is sentinel
