"""Null email notifier, used when no email provider is configured."""

from typing import Optional

from paybridge.core.logging import logger
from paybridge.core.protocols.email import EmailNotifier


class NullEmailNotifier(EmailNotifier):
    """Drops every email and logs it at debug level."""

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
        logger.debug(f"Email disabled, not sending {plan} confirmation to {email}")
        return False

    async def send_subscription_canceled(
        self,
        email: str,
        name: Optional[str],
        plan: str,
        immediate: bool = True,
        end_date: Optional[str] = None,
    ) -> bool:
        logger.debug(f"Email disabled, not sending cancellation to {email}")
        return False
