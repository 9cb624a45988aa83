"""Models for the application."""

from ._base import Base
from .customer import Customer
from .subscription import Subscription
from .webhook_event import WebhookEvent

__all__ = [
    "Base",
    "Customer",
    "Subscription",
    "WebhookEvent",
]
