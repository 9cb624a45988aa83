"""Payments domain exceptions."""

import functools

from paybridge.core.exceptions import (
    BadRequestError,
    ExternalServiceError,
    InvalidStateError,
    NotFoundException,
    ServiceUnavailableError,
)


class GatewayNotConfiguredError(ServiceUnavailableError):
    """Raised when a gateway is used without its credentials."""

    def __init__(self, gateway_display_name: str):
        """Initialize with the provider name, e.g. ``Stripe is not configured``."""
        self.gateway_display_name = gateway_display_name
        super().__init__(f"{gateway_display_name} is not configured")


class UnknownGatewayError(NotFoundException):
    """Raised when a gateway name does not match any registered gateway."""

    def __init__(self, name: str):
        """Initialize with the unknown gateway name."""
        self.name = name
        super().__init__(f"Unknown payment gateway: {name}")


class InvalidSignatureError(BadRequestError):
    """Raised when a webhook signature is missing or does not verify."""

    def __init__(self, message: str = "Invalid webhook signature"):
        """Initialize with default message."""
        super().__init__(message)


class InvalidPayloadError(BadRequestError):
    """Raised when a verified webhook body cannot be parsed."""

    def __init__(self, message: str = "Invalid webhook payload"):
        """Initialize with default message."""
        super().__init__(message)


class PriceNotConfiguredError(InvalidStateError):
    """Raised when no price is configured for a (gateway, plan, cycle)."""

    def __init__(self, message: str = "Price not configured"):
        """Initialize with default message."""
        super().__init__(message)


class NoGatewayConfiguredError(InvalidStateError):
    """Raised by the selector when no candidate gateway is configured."""

    def __init__(
        self,
        message: str = "No payment gateway is configured. Configure at least one gateway.",
    ):
        """Initialize with default message."""
        super().__init__(message)


class SubscriptionNotFoundError(NotFoundException):
    """Raised when a subscription cannot be found locally or at the provider."""

    def __init__(self, message: str = "Subscription not found"):
        """Initialize with default message."""
        super().__init__(message)


class PaymentGatewayError(ExternalServiceError):
    """Wraps ExternalServiceError from a gateway client at the domain boundary."""

    def __init__(self, message: str = "Payment gateway error"):
        """Initialize with default message."""
        super().__init__(service_name="PaymentGateway", message=message)


class CancellationFailedError(PaymentGatewayError):
    """Raised when a subscription cannot be canceled. The cause is chained."""

    def __init__(self, subscription_id: str, message: str = "Failed to cancel subscription"):
        """Initialize with the subscription id and default message."""
        self.subscription_id = subscription_id
        super().__init__(message=f"{message}: {subscription_id}")


def wrap_gateway_errors(fn):
    """Decorator: catch ExternalServiceError from a gateway client, wrap as PaymentGatewayError."""

    @functools.wraps(fn)
    async def wrapper(*args, **kwargs):
        try:
            return await fn(*args, **kwargs)
        except PaymentGatewayError:
            raise
        except ExternalServiceError as e:
            raise PaymentGatewayError(message=e.message) from e

    return wrapper
