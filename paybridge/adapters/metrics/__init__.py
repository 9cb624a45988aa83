"""Metrics adapters: Prometheus and Fake implementations."""

from paybridge.adapters.metrics.webhooks import (
    FakeWebhookMetrics,
    PrometheusWebhookMetrics,
    WebhookEventObservation,
)

__all__ = [
    "FakeWebhookMetrics",
    "PrometheusWebhookMetrics",
    "WebhookEventObservation",
]
