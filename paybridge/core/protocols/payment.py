"""Payment gateway client protocols.

Thin transport contracts, one per provider. Each returns plain dicts in the
provider's own shape and raises ExternalServiceError on transport or API
failure. Gateways depend on these protocols so tests can inject fakes or
AsyncMocks instead of real HTTP clients.
"""

from typing import Any, Dict, Optional, Protocol, runtime_checkable


@runtime_checkable
class StripeClientProtocol(Protocol):
    """Stripe API operations used by the Stripe gateway."""

    # -------------------------------------------------------------------------
    # Customers
    # -------------------------------------------------------------------------

    async def find_customer_by_email(self, email: str) -> Optional[Dict[str, Any]]:
        """Return the first customer with this email, if any."""
        ...

    async def create_customer(
        self, email: str, name: Optional[str], metadata: Dict[str, str]
    ) -> Dict[str, Any]:
        """Create a customer."""
        ...

    async def retrieve_customer(self, customer_id: str) -> Optional[Dict[str, Any]]:
        """Retrieve a customer; None when it does not exist."""
        ...

    # -------------------------------------------------------------------------
    # Checkout and portal
    # -------------------------------------------------------------------------

    async def create_checkout_session(self, params: Dict[str, Any]) -> Dict[str, Any]:
        """Create a Checkout Session."""
        ...

    async def create_portal_session(self, customer_id: str, return_url: str) -> Dict[str, Any]:
        """Create a billing portal session."""
        ...

    # -------------------------------------------------------------------------
    # Subscriptions
    # -------------------------------------------------------------------------

    async def retrieve_subscription(self, subscription_id: str) -> Dict[str, Any]:
        """Retrieve a subscription."""
        ...

    async def update_subscription(
        self, subscription_id: str, params: Dict[str, Any]
    ) -> Dict[str, Any]:
        """Update a subscription."""
        ...

    async def cancel_subscription(self, subscription_id: str) -> Dict[str, Any]:
        """Cancel a subscription immediately."""
        ...


@runtime_checkable
class PaddleClientProtocol(Protocol):
    """Paddle Billing API operations used by the Paddle gateway."""

    async def find_customer_by_email(self, email: str) -> Optional[Dict[str, Any]]:
        """Return the customer with this email, if any."""
        ...

    async def create_customer(
        self, email: str, name: Optional[str], custom_data: Dict[str, str]
    ) -> Dict[str, Any]:
        """Create a customer."""
        ...

    async def get_customer(self, customer_id: str) -> Optional[Dict[str, Any]]:
        """Get a customer; None when it does not exist."""
        ...

    async def create_transaction(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """Create a checkout transaction."""
        ...

    async def get_subscription(self, subscription_id: str) -> Optional[Dict[str, Any]]:
        """Get a subscription; None when it does not exist."""
        ...

    async def cancel_subscription(
        self, subscription_id: str, effective_from: str
    ) -> Dict[str, Any]:
        """Cancel immediately or at the next billing period."""
        ...

    async def pause_subscription(self, subscription_id: str) -> Dict[str, Any]:
        """Pause at the next billing period."""
        ...

    async def resume_subscription(self, subscription_id: str) -> Dict[str, Any]:
        """Resume immediately."""
        ...

    async def update_subscription(
        self, subscription_id: str, payload: Dict[str, Any]
    ) -> Dict[str, Any]:
        """Patch a subscription."""
        ...


@runtime_checkable
class PaymobClientProtocol(Protocol):
    """Paymob Intention API operations."""

    async def create_intention(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """Create a payment intention; the response carries ``client_secret``."""
        ...

    def checkout_url(self, client_secret: str) -> str:
        """Unified checkout URL for an intention."""
        ...


@runtime_checkable
class PayTabsClientProtocol(Protocol):
    """PayTabs Payment Page API operations."""

    async def create_payment_page(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """Create a hosted payment page; response has ``redirect_url`` and ``tran_ref``."""
        ...
