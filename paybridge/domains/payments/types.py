"""Payments domain types."""

from typing import Any, Dict, Mapping, Optional

from pydantic import BaseModel, Field

from paybridge.schemas.payment import GatewayName

SNAPSHOT_MAX_KEYS = 20
SNAPSHOT_MAX_STRING = 256


def bounded_snapshot(
    data: Optional[Mapping[str, Any]],
    max_keys: int = SNAPSHOT_MAX_KEYS,
    max_string: int = SNAPSHOT_MAX_STRING,
) -> Dict[str, Any]:
    """Scalar-only, size-bounded copy of a payload object for the webhook ledger."""
    snapshot: Dict[str, Any] = {}
    if not data:
        return snapshot
    for key, value in data.items():
        if len(snapshot) >= max_keys:
            break
        if value is None or isinstance(value, (bool, int, float)):
            snapshot[str(key)] = value
        elif isinstance(value, str):
            snapshot[str(key)] = value[:max_string]
    return snapshot


class GatewayEvent(BaseModel):
    """A verified, parsed webhook event in the provider's own shape.

    ``data`` is the provider's event object (Stripe ``data.object``, Paddle
    ``data``, Paymob ``obj``, the PayTabs callback body). Interpretation into
    a WebhookResult happens separately and is pure.
    """

    gateway: GatewayName
    event_id: str
    event_type: str
    data: Dict[str, Any] = Field(default_factory=dict)
    native_id: Optional[str] = None

    def snapshot(self) -> Dict[str, Any]:
        return bounded_snapshot(self.data)


def generate_event_id(gateway: GatewayName, native_id: str, event_type: str) -> str:
    """Deterministic ledger id for providers whose callbacks carry no event id."""
    return f"{gateway.value}:{native_id}:{event_type}"
