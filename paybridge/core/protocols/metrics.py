"""Metrics protocols for dependency injection.

Defines abstract interfaces for webhook metrics collection and metrics
rendering so that application code is decoupled from any concrete metrics
library (Prometheus, StatsD, etc.).
"""

from typing import Protocol, runtime_checkable


@runtime_checkable
class WebhookMetrics(Protocol):
    """Protocol for webhook processing metrics."""

    def observe_event(self, gateway: str, event_type: str, status: str) -> None:
        """Count one webhook delivery by its final status."""
        ...

    def observe_duration(self, gateway: str, duration: float) -> None:
        """Record how long handling one delivery took, in seconds."""
        ...

    def set_gateway_configured(self, gateway: str, configured: bool) -> None:
        """Report whether a gateway has the credentials it needs."""
        ...


@runtime_checkable
class MetricsRenderer(Protocol):
    """Protocol for rendering collected metrics."""

    @property
    def content_type(self) -> str:
        """Media type of the rendered output (without charset)."""
        ...

    @property
    def charset(self) -> str:
        """Character set of the rendered output."""
        ...

    def generate(self) -> bytes:
        """Serialize all collected metrics."""
        ...
