"""Subscriptions domain fakes."""

from paybridge.domains.subscriptions.fakes.repository import FakeSubscriptionRepository

__all__ = ["FakeSubscriptionRepository"]
