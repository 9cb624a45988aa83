"""Payments domain fakes."""

from paybridge.domains.payments.fakes.gateway import FakePaymentGateway

__all__ = ["FakePaymentGateway"]
