"""Tests for StripeGatewayClient with a mocked SDK client."""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest
import stripe

from paybridge.adapters.payment.stripe import StripeGatewayClient
from paybridge.core.exceptions import ExternalServiceError


@pytest.fixture
def sdk():
    return MagicMock(spec_set=["customers", "subscriptions", "checkout", "billing_portal"])


def _client(sdk) -> StripeGatewayClient:
    return StripeGatewayClient("sk_test", client=sdk)


class TestReads:
    @pytest.mark.asyncio
    async def test_retrieve_customer_retries_once_on_connection_error(self, sdk):
        sdk.customers.retrieve_async = AsyncMock(
            side_effect=[stripe.APIConnectionError("reset"), {"id": "cus_1", "name": "Ada"}]
        )

        customer = await _client(sdk).retrieve_customer("cus_1")

        assert customer == {"id": "cus_1", "name": "Ada"}
        assert sdk.customers.retrieve_async.await_count == 2

    @pytest.mark.asyncio
    async def test_lookup_gives_up_after_second_connection_error(self, sdk):
        sdk.customers.list_async = AsyncMock(side_effect=stripe.APIConnectionError("reset"))

        with pytest.raises(ExternalServiceError):
            await _client(sdk).find_customer_by_email("a@x.com")

        assert sdk.customers.list_async.await_count == 2

    @pytest.mark.asyncio
    async def test_lookup_returns_first_match(self, sdk):
        sdk.customers.list_async = AsyncMock(
            return_value=SimpleNamespace(data=[{"id": "cus_1", "email": "a@x.com"}])
        )

        customer = await _client(sdk).find_customer_by_email("a@x.com")

        assert customer["id"] == "cus_1"
        sdk.customers.list_async.assert_awaited_once_with(
            params={"email": "a@x.com", "limit": 1}
        )

    @pytest.mark.asyncio
    async def test_missing_customer_is_none_without_retry(self, sdk):
        sdk.customers.retrieve_async = AsyncMock(
            side_effect=stripe.InvalidRequestError("No such customer", "id", http_status=404)
        )

        assert await _client(sdk).retrieve_customer("cus_gone") is None
        assert sdk.customers.retrieve_async.await_count == 1

    @pytest.mark.asyncio
    async def test_deleted_customer_is_none(self, sdk):
        sdk.customers.retrieve_async = AsyncMock(return_value={"id": "cus_1", "deleted": True})

        assert await _client(sdk).retrieve_customer("cus_1") is None

    @pytest.mark.asyncio
    async def test_retrieve_subscription_retries_once(self, sdk):
        sdk.subscriptions.retrieve_async = AsyncMock(
            side_effect=[stripe.APIConnectionError("reset"), {"id": "sub_1"}]
        )

        assert await _client(sdk).retrieve_subscription("sub_1") == {"id": "sub_1"}
        assert sdk.subscriptions.retrieve_async.await_count == 2


class TestWrites:
    @pytest.mark.asyncio
    async def test_cancel_is_not_retried(self, sdk):
        sdk.subscriptions.cancel_async = AsyncMock(side_effect=stripe.APIConnectionError("reset"))

        with pytest.raises(ExternalServiceError):
            await _client(sdk).cancel_subscription("sub_1")

        assert sdk.subscriptions.cancel_async.await_count == 1

    @pytest.mark.asyncio
    async def test_create_customer_is_not_retried(self, sdk):
        sdk.customers.create_async = AsyncMock(side_effect=stripe.APIConnectionError("reset"))

        with pytest.raises(ExternalServiceError):
            await _client(sdk).create_customer("a@x.com", None, {"user_email": "a@x.com"})

        assert sdk.customers.create_async.await_count == 1
