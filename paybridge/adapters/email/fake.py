"""Fake email notifier for testing."""

from typing import Any, Optional

from paybridge.core.protocols.email import EmailNotifier


class FakeEmailNotifier(EmailNotifier):
    """Records every send. Set ``should_raise`` to make sends fail."""

    def __init__(self, should_raise: Optional[Exception] = None) -> None:
        self._calls: list[tuple[str, dict[str, Any]]] = []
        self.should_raise = should_raise

    def _record(self, method: str, **kwargs: Any) -> bool:
        self._calls.append((method, kwargs))
        if self.should_raise:
            raise self.should_raise
        return True

    def call_count(self, method: str) -> int:
        return sum(1 for name, _ in self._calls if name == method)

    def calls_for(self, method: str) -> list[dict[str, Any]]:
        """Keyword arguments of each call to *method*."""
        return [kwargs for name, kwargs in self._calls if name == method]

    def clear(self) -> None:
        self._calls.clear()

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
        return self._record(
            "send_subscription_confirmation",
            email=email,
            name=name,
            plan=plan,
            billing_cycle=billing_cycle,
            amount=amount,
            currency=currency,
            gateway=gateway,
        )

    async def send_subscription_canceled(
        self,
        email: str,
        name: Optional[str],
        plan: str,
        immediate: bool = True,
        end_date: Optional[str] = None,
    ) -> bool:
        return self._record(
            "send_subscription_canceled",
            email=email,
            name=name,
            plan=plan,
            immediate=immediate,
            end_date=end_date,
        )
