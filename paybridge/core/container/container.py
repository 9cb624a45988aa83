"""Dependency Injection Container.

The container is an immutable dataclass holding protocol implementations.
It has no construction logic; that belongs in the factory.
"""

from dataclasses import dataclass, replace
from typing import Any

from paybridge.core.protocols import EmailNotifier, MetricsRenderer, WebhookMetrics
from paybridge.domains.payments.protocols import GatewayRegistryProtocol
from paybridge.domains.payments.selector import GatewaySelector
from paybridge.domains.subscriptions.protocols import SubscriptionRepositoryProtocol
from paybridge.domains.webhooks.protocols import (
    IdempotencyStoreProtocol,
    WebhookProcessorProtocol,
)


@dataclass(frozen=True)
class Container:
    """Immutable container holding all protocol implementations.

    Usage:
        # Production: use the global container built by the factory
        from paybridge.core.container import container
        ack = await container.webhook_processor.process_webhook("stripe", body, sig)

        # Testing: construct directly with fakes
        test_container = Container(gateway_registry=GatewayRegistry([...]), ...)

        # FastAPI endpoints: use Inject() to pull individual protocols
        from paybridge.api.deps import Inject
        async def receive(processor: WebhookProcessorProtocol = Inject(WebhookProcessorProtocol)):
            ...
    """

    # Gateways
    gateway_registry: GatewayRegistryProtocol
    gateway_selector: GatewaySelector

    # Persistence
    subscription_repo: SubscriptionRepositoryProtocol
    idempotency_store: IdempotencyStoreProtocol

    # Webhook processing
    webhook_processor: WebhookProcessorProtocol

    # Notifications
    email_notifier: EmailNotifier

    # Metrics
    webhook_metrics: WebhookMetrics
    metrics_renderer: MetricsRenderer

    def replace(self, **changes: Any) -> "Container":
        """Create a new container with some dependencies replaced.

            modified = container.replace(email_notifier=FakeEmailNotifier())
        """
        return replace(self, **changes)
