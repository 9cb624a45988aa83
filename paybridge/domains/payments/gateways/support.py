"""Helpers shared by the gateway implementations.

Gateways are composed, not subclassed; the pieces of behavior they share
live here as plain functions.
"""

import json
from datetime import datetime, timezone
from typing import Any, Dict, Mapping, Optional, TypeVar

from paybridge.core.logging import logger
from paybridge.domains.payments.exceptions import (
    GatewayNotConfiguredError,
    InvalidPayloadError,
    InvalidSignatureError,
)
from paybridge.domains.payments.protocols import PaymentGateway
from paybridge.domains.subscriptions.protocols import SubscriptionRepositoryProtocol
from paybridge.schemas.payment import GatewayName, WebhookResult
from paybridge.schemas.subscription import SubscriptionRecord

ClientT = TypeVar("ClientT")


def require_configured(gateway: PaymentGateway) -> None:
    """Raise GatewayNotConfiguredError unless the gateway has its credentials."""
    if not gateway.is_configured():
        raise GatewayNotConfiguredError(gateway.name.display_name)


def configured_client(gateway: PaymentGateway, client: Optional[ClientT]) -> ClientT:
    """The gateway's API client, or GatewayNotConfiguredError without one."""
    require_configured(gateway)
    if client is None:
        raise GatewayNotConfiguredError(gateway.name.display_name)
    return client


def parse_json_object(payload: bytes) -> Dict[str, Any]:
    """Parse a webhook body that must be a JSON object."""
    try:
        body = json.loads(payload)
    except (ValueError, UnicodeDecodeError) as e:
        raise InvalidPayloadError("Webhook body is not valid JSON") from e
    if not isinstance(body, dict):
        raise InvalidPayloadError("Webhook body is not a JSON object")
    return body


def interpret_webhook(
    gateway: PaymentGateway, payload: bytes, signature: Optional[str]
) -> WebhookResult:
    """Unconfigured -> signature check -> dispatch, returning error results instead of raising."""
    if not gateway.is_configured():
        return WebhookResult.failure(f"{gateway.name.display_name} is not configured")
    try:
        event = gateway.construct_event(payload, signature)
    except InvalidSignatureError:
        return WebhookResult.failure("Invalid webhook signature")
    except InvalidPayloadError as e:
        return WebhookResult.failure(e.message)
    return gateway.interpret_event(event)


def from_timestamp(value: Any) -> Optional[datetime]:
    """Unix seconds to an aware datetime; None for missing values."""
    if value in (None, ""):
        return None
    try:
        return datetime.fromtimestamp(int(value), tz=timezone.utc)
    except (TypeError, ValueError, OverflowError):
        return None


def from_isoformat(value: Any) -> Optional[datetime]:
    """ISO-8601 string (with ``Z`` or offset) to an aware datetime."""
    if not value or not isinstance(value, str):
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def string_map(data: Optional[Mapping[str, Any]]) -> Dict[str, str]:
    """Flatten provider metadata into the str -> str shape stored on records."""
    if not data:
        return {}
    return {str(k): str(v) for k, v in data.items() if v is not None and not isinstance(v, dict)}


def split_name(full_name: Optional[str]) -> tuple[str, str]:
    """Split a display name into (first, last) with placeholder defaults."""
    parts = (full_name or "").split()
    first = parts[0] if parts else "User"
    last = " ".join(parts[1:]) if len(parts) > 1 else "Customer"
    return first, last


async def find_local_subscription(
    repo: SubscriptionRepositoryProtocol,
    gateway: GatewayName,
    subscription_or_user_id: str,
) -> Optional[SubscriptionRecord]:
    """Local record by transaction id, else the user's active record at this gateway."""
    record = await repo.find_by_gateway_and_transaction_id(gateway, subscription_or_user_id)
    if record:
        return record
    return await repo.find_active_by_user_id(subscription_or_user_id, gateway=gateway)


async def apply_local_cancellation(
    repo: SubscriptionRepositoryProtocol,
    gateway: GatewayName,
    subscription_id: str,
    immediate: bool,
) -> Optional[SubscriptionRecord]:
    """Mirror a provider-side cancellation onto the local record, if there is one."""
    record = await repo.find_by_gateway_and_transaction_id(gateway, subscription_id)
    if record is None:
        logger.with_context(gateway=gateway.value, subscription_id=subscription_id).info(
            "No local subscription record to mirror cancellation onto"
        )
        return None
    return await repo.cancel(record, immediate=immediate)
