"""Container Factory.

All construction logic lives here. The factory reads settings and builds
the container. A gateway whose credentials are missing is still registered,
with no client, so it reports itself as not configured instead of failing
at startup.
"""

from prometheus_client import CollectorRegistry

from paybridge.adapters.email import NullEmailNotifier, ResendEmailNotifier
from paybridge.adapters.metrics import PrometheusWebhookMetrics
from paybridge.adapters.payment.paddle import PaddleGatewayClient
from paybridge.adapters.payment.paymob import PaymobGatewayClient
from paybridge.adapters.payment.paytabs import PayTabsGatewayClient
from paybridge.adapters.payment.stripe import StripeGatewayClient
from paybridge.core.config import Settings
from paybridge.core.container.container import Container
from paybridge.core.logging import logger
from paybridge.core.protocols import EmailNotifier
from paybridge.db.session import AsyncSessionLocal
from paybridge.domains.payments.gateways import (
    PaddlePaymentGateway,
    PaymobPaymentGateway,
    PayTabsPaymentGateway,
    StripePaymentGateway,
)
from paybridge.domains.payments.prices import PriceConfigResolver, settings_price_loader
from paybridge.domains.payments.protocols import PaymentGateway
from paybridge.domains.payments.registry import GatewayRegistry
from paybridge.domains.payments.selector import GatewaySelector
from paybridge.domains.payments.signatures import (
    PaddleSignatureVerifier,
    PaymobSignatureVerifier,
    PayTabsSignatureVerifier,
    StripeSignatureVerifier,
)
from paybridge.domains.subscriptions.protocols import SubscriptionRepositoryProtocol
from paybridge.domains.subscriptions.repository import SubscriptionRepository
from paybridge.domains.webhooks.idempotency import IdempotencyStore
from paybridge.domains.webhooks.processor import WebhookProcessor

WEBHOOKS_PATH = "/api/v1/webhooks"


def create_container(settings: Settings) -> Container:
    """Build the container from settings.

    This is the single place where dependency wiring is decided.
    """
    subscription_repo = SubscriptionRepository(AsyncSessionLocal)
    idempotency_store = IdempotencyStore(
        AsyncSessionLocal, ttl_days=settings.WEBHOOK_EVENT_TTL_DAYS
    )

    registry = GatewayRegistry(_create_gateways(settings, subscription_repo))
    configured = [g.name.value for g in registry.configured()]
    logger.info(f"Payment gateways configured: {', '.join(configured) or 'none'}")

    # One registry for every collector, served by the metrics sidecar
    metrics_registry = CollectorRegistry()
    webhook_metrics = PrometheusWebhookMetrics(registry=metrics_registry)
    for gateway in registry.all():
        webhook_metrics.set_gateway_configured(gateway.name.value, gateway.is_configured())
    email_notifier = _create_email_notifier(settings)

    return Container(
        gateway_registry=registry,
        gateway_selector=GatewaySelector(registry),
        subscription_repo=subscription_repo,
        idempotency_store=idempotency_store,
        webhook_processor=WebhookProcessor(
            registry=registry,
            idempotency=idempotency_store,
            subscriptions=subscription_repo,
            notifier=email_notifier,
            metrics=webhook_metrics,
        ),
        email_notifier=email_notifier,
        webhook_metrics=webhook_metrics,
        metrics_renderer=webhook_metrics,
    )


def _create_gateways(
    settings: Settings, subscriptions: SubscriptionRepositoryProtocol
) -> list[PaymentGateway]:
    """Build all four gateways. Clients exist only when their API keys do."""
    timeout = settings.GATEWAY_HTTP_TIMEOUT_SECONDS
    prices = PriceConfigResolver(
        settings_price_loader(settings), ttl_seconds=settings.PRICE_CONFIG_TTL_SECONDS
    )
    api_url = settings.API_URL.rstrip("/")

    stripe_client = (
        StripeGatewayClient(settings.STRIPE_SECRET_KEY, timeout=timeout)
        if settings.STRIPE_SECRET_KEY
        else None
    )
    paddle_client = (
        PaddleGatewayClient(
            settings.PADDLE_API_KEY, environment=settings.PADDLE_ENVIRONMENT, timeout=timeout
        )
        if settings.PADDLE_API_KEY
        else None
    )
    paymob_client = (
        PaymobGatewayClient(settings.PAYMOB_SECRET_KEY, settings.PAYMOB_PUBLIC_KEY, timeout=timeout)
        if settings.PAYMOB_SECRET_KEY and settings.PAYMOB_PUBLIC_KEY
        else None
    )
    paytabs_client = (
        PayTabsGatewayClient(
            settings.PAYTABS_PROFILE_ID,
            settings.PAYTABS_SERVER_KEY,
            region=settings.PAYTABS_REGION,
            timeout=timeout,
        )
        if settings.PAYTABS_PROFILE_ID and settings.PAYTABS_SERVER_KEY
        else None
    )

    return [
        StripePaymentGateway(
            stripe_client,
            StripeSignatureVerifier(
                settings.STRIPE_WEBHOOK_SECRET,
                tolerance=settings.STRIPE_WEBHOOK_TOLERANCE_SECONDS,
            ),
            prices,
            subscriptions,
        ),
        PaddlePaymentGateway(
            paddle_client,
            PaddleSignatureVerifier(settings.PADDLE_WEBHOOK_SECRET),
            prices,
            subscriptions,
        ),
        PaymobPaymentGateway(
            paymob_client,
            PaymobSignatureVerifier(settings.PAYMOB_HMAC_SECRET),
            prices,
            subscriptions,
            integration_id=settings.PAYMOB_INTEGRATION_ID_CARD,
            notification_url=f"{api_url}{WEBHOOKS_PATH}/paymob",
        ),
        PayTabsPaymentGateway(
            paytabs_client,
            PayTabsSignatureVerifier(settings.PAYTABS_SERVER_KEY),
            prices,
            subscriptions,
            profile_id=settings.PAYTABS_PROFILE_ID,
            region=settings.PAYTABS_REGION,
            callback_url=f"{api_url}{WEBHOOKS_PATH}/paytabs",
        ),
    ]


def _create_email_notifier(settings: Settings) -> EmailNotifier:
    """Resend when an API key is set, otherwise email is disabled."""
    if settings.RESEND_API_KEY:
        return ResendEmailNotifier(
            api_key=settings.RESEND_API_KEY,
            from_email=settings.EMAIL_FROM,
            app_url=settings.APP_URL,
            product_name=settings.PROJECT_NAME,
            timeout=settings.GATEWAY_HTTP_TIMEOUT_SECONDS,
        )
    logger.warning("RESEND_API_KEY not set, subscription emails are disabled")
    return NullEmailNotifier()
