"""Email notification protocol."""

from typing import Optional, Protocol, runtime_checkable


@runtime_checkable
class EmailNotifier(Protocol):
    """Sends subscription lifecycle emails.

    Implementations may raise; callers treat notification as best-effort and
    only log failures.
    """

    async def send_subscription_confirmation(
        self,
        email: str,
        name: Optional[str],
        plan: str,
        billing_cycle: str,
        amount: Optional[int] = None,
        currency: Optional[str] = None,
        gateway: Optional[str] = None,
    ) -> bool:
        """Send the 'subscription active' email. Returns True when accepted."""
        ...

    async def send_subscription_canceled(
        self,
        email: str,
        name: Optional[str],
        plan: str,
        immediate: bool = True,
        end_date: Optional[str] = None,
    ) -> bool:
        """Send the 'subscription canceled' email. Returns True when accepted."""
        ...
