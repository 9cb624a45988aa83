"""Composed PaymentGateway implementations, one per provider."""

from paybridge.domains.payments.gateways.paddle import PaddlePaymentGateway
from paybridge.domains.payments.gateways.paymob import PaymobPaymentGateway
from paybridge.domains.payments.gateways.paytabs import PayTabsPaymentGateway
from paybridge.domains.payments.gateways.stripe import StripePaymentGateway

__all__ = [
    "PaddlePaymentGateway",
    "PaymobPaymentGateway",
    "PayTabsPaymentGateway",
    "StripePaymentGateway",
]
