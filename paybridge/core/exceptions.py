"""Shared exceptions module."""

from typing import Optional


class PaybridgeException(Exception):
    """Base exception for paybridge services."""

    pass


class NotFoundException(PaybridgeException):
    """Exception raised when an object is not found."""

    def __init__(self, message: Optional[str] = "Object not found"):
        """Create a new NotFoundException instance.

        Args:
        ----
            message (str, optional): The error message. Has default message.

        """
        self.message = message
        super().__init__(self.message)


class BadRequestError(PaybridgeException):
    """Exception raised when a request cannot be processed as sent."""

    def __init__(self, message: Optional[str] = "Bad request"):
        """Create a new BadRequestError instance.

        Args:
        ----
            message (str, optional): The error message. Has default message.

        """
        self.message = message
        super().__init__(self.message)


class ServiceUnavailableError(PaybridgeException):
    """Exception raised when a dependency required for the request is not configured."""

    def __init__(self, message: Optional[str] = "Service unavailable"):
        """Create a new ServiceUnavailableError instance.

        Args:
        ----
            message (str, optional): The error message. Has default message.

        """
        self.message = message
        super().__init__(self.message)


class ExternalServiceError(Exception):
    """Exception raised when an external service fails."""

    def __init__(self, service_name: str, message: Optional[str] = "External service failed"):
        """Create a new ExternalServiceError instance.

        Args:
        ----
            service_name (str): The name of the external service.
            message (str, optional): The error message. Has default message.

        """
        self.service_name = service_name
        self.message = message
        super().__init__(f"{service_name}: {message}")


class InvalidStateError(Exception):
    """Exception raised when an object is in an invalid state.

    Used when a gateway or a stored record is in a state that does not allow
    the requested operation.
    """

    def __init__(self, message: Optional[str] = "Object is in an invalid state"):
        """Create a new InvalidStateError instance.

        Args:
        ----
            message (str, optional): The error message. Has default message.

        """
        self.message = message
        super().__init__(self.message)
