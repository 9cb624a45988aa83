"""Webhooks domain fakes."""

from paybridge.domains.webhooks.fakes.idempotency import FakeIdempotencyStore

__all__ = ["FakeIdempotencyStore"]
