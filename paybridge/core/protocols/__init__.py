"""Core protocols for dependency injection."""

from paybridge.core.protocols.email import EmailNotifier
from paybridge.core.protocols.metrics import MetricsRenderer, WebhookMetrics
from paybridge.core.protocols.payment import (
    PaddleClientProtocol,
    PaymobClientProtocol,
    PayTabsClientProtocol,
    StripeClientProtocol,
)

__all__ = [
    "EmailNotifier",
    "MetricsRenderer",
    "PaddleClientProtocol",
    "PayTabsClientProtocol",
    "PaymobClientProtocol",
    "StripeClientProtocol",
    "WebhookMetrics",
]
