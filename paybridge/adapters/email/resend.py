"""Resend email notifier (REST API over httpx)."""

from typing import Optional

import httpx

from paybridge.adapters.email import templates
from paybridge.core.exceptions import ExternalServiceError
from paybridge.core.logging import logger
from paybridge.core.protocols.email import EmailNotifier

RESEND_API_URL = "https://api.resend.com/emails"

email_logger = logger.with_prefix("Email: ").with_context(component="email")


class ResendEmailNotifier(EmailNotifier):
    """EmailNotifier that sends through the Resend API.

    A non-2xx response is logged and reported as ``False``; transport
    failures raise ExternalServiceError.
    """

    def __init__(
        self,
        api_key: str,
        from_email: str,
        app_url: str,
        product_name: str = "Paybridge",
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self._from_email = from_email
        self._app_url = app_url.rstrip("/")
        self._product_name = product_name
        self._headers = {"Authorization": f"Bearer {api_key}"}
        self._client = client or httpx.AsyncClient(timeout=timeout)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _send(self, to_email: str, subject: str, html: str, text: str) -> bool:
        try:
            response = await self._client.post(
                RESEND_API_URL,
                headers=self._headers,
                json={
                    "from": self._from_email,
                    "to": [to_email],
                    "subject": subject,
                    "html": html,
                    "text": text,
                },
            )
        except httpx.HTTPError as e:
            raise ExternalServiceError("Resend", f"Sending email failed: {e}") from e

        if response.is_error:
            email_logger.warning(
                f"Resend rejected email to {to_email}: "
                f"{response.status_code} {response.text[:200]}"
            )
            return False
        email_logger.info(f"Sent '{subject}' to {to_email}")
        return True

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
        subject, html, text = templates.subscription_confirmation(
            email,
            name,
            plan,
            billing_cycle,
            app_url=self._app_url,
            product_name=self._product_name,
            amount=amount,
            currency=currency,
            gateway=gateway,
        )
        return await self._send(email, subject, html, text)

    async def send_subscription_canceled(
        self,
        email: str,
        name: Optional[str],
        plan: str,
        immediate: bool = True,
        end_date: Optional[str] = None,
    ) -> bool:
        subject, html, text = templates.subscription_canceled(
            email,
            name,
            plan,
            app_url=self._app_url,
            product_name=self._product_name,
            immediate=immediate,
            end_date=end_date,
        )
        return await self._send(email, subject, html, text)
