"""Webhook metrics adapters (Prometheus + Fake).

PrometheusWebhookMetrics owns one CollectorRegistry, kept out of the default
global registry, and is also the renderer behind ``/metrics``: whatever it
collects is exactly what the scraper sees.
"""

from dataclasses import dataclass

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)

from paybridge.core.protocols.metrics import MetricsRenderer, WebhookMetrics

_DURATION_BUCKETS = (0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0)

_MEDIA_TYPE, _, _CHARSET = CONTENT_TYPE_LATEST.partition("; charset=")


class PrometheusWebhookMetrics(WebhookMetrics, MetricsRenderer):
    """Prometheus-backed webhook metrics, rendered in the text exposition format."""

    def __init__(self, registry: CollectorRegistry | None = None) -> None:
        self._registry = registry or CollectorRegistry()

        self._events_total = Counter(
            "paybridge_webhook_events_total",
            "Webhook deliveries by gateway, event type and final status",
            ["gateway", "event_type", "status"],
            registry=self._registry,
        )
        self._processing_seconds = Histogram(
            "paybridge_webhook_processing_seconds",
            "Time spent handling one webhook delivery",
            ["gateway"],
            buckets=_DURATION_BUCKETS,
            registry=self._registry,
        )
        self._gateway_configured = Gauge(
            "paybridge_gateway_configured",
            "1 when the gateway has its API and webhook credentials",
            ["gateway"],
            registry=self._registry,
        )

    @property
    def registry(self) -> CollectorRegistry:
        return self._registry

    def observe_event(self, gateway: str, event_type: str, status: str) -> None:
        self._events_total.labels(gateway=gateway, event_type=event_type, status=status).inc()

    def observe_duration(self, gateway: str, duration: float) -> None:
        self._processing_seconds.labels(gateway=gateway).observe(duration)

    def set_gateway_configured(self, gateway: str, configured: bool) -> None:
        self._gateway_configured.labels(gateway=gateway).set(1 if configured else 0)

    # MetricsRenderer

    @property
    def content_type(self) -> str:
        return _MEDIA_TYPE

    @property
    def charset(self) -> str:
        return _CHARSET or "utf-8"

    def generate(self) -> bytes:
        return generate_latest(self._registry)


# ---------------------------------------------------------------------------
# Fake
# ---------------------------------------------------------------------------


@dataclass
class WebhookEventObservation:
    """Single observed webhook outcome."""

    gateway: str
    event_type: str
    status: str


class FakeWebhookMetrics(WebhookMetrics, MetricsRenderer):
    """In-memory spy for both metrics protocols."""

    content_type = "text/plain"
    charset = "utf-8"

    def __init__(self) -> None:
        self.events: list[WebhookEventObservation] = []
        self.durations: list[tuple[str, float]] = []
        self.configured: dict[str, bool] = {}
        self.generate_calls = 0

    def observe_event(self, gateway: str, event_type: str, status: str) -> None:
        self.events.append(WebhookEventObservation(gateway, event_type, status))

    def observe_duration(self, gateway: str, duration: float) -> None:
        self.durations.append((gateway, duration))

    def set_gateway_configured(self, gateway: str, configured: bool) -> None:
        self.configured[gateway] = configured

    def generate(self) -> bytes:
        self.generate_calls += 1
        return f"# {len(self.events)} webhook events\n".encode()

    def statuses(self) -> list[str]:
        """Observed statuses in order."""
        return [e.status for e in self.events]

    def clear(self) -> None:
        self.events.clear()
        self.durations.clear()
        self.configured.clear()
        self.generate_calls = 0
