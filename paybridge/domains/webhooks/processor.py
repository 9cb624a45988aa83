"""Webhook processor for all payment gateways.

Verifies the delivery with the gateway, claims it in the idempotency
ledger, interprets it into a WebhookResult and applies that result to the
subscription store with exactly one repository write. Lifecycle emails are
sent afterwards as fire-and-forget tasks.
"""

import asyncio
import time
from datetime import datetime, timedelta, timezone
from typing import Awaitable, Callable, Optional

from paybridge.core.logging import ContextualLogger, logger
from paybridge.core.protocols.email import EmailNotifier
from paybridge.core.protocols.metrics import WebhookMetrics
from paybridge.domains.payments.exceptions import (
    GatewayNotConfiguredError,
    InvalidPayloadError,
    InvalidSignatureError,
)
from paybridge.domains.payments.protocols import GatewayRegistryProtocol, PaymentGateway
from paybridge.domains.payments.status import plan_for_status
from paybridge.domains.subscriptions.protocols import SubscriptionRepositoryProtocol
from paybridge.domains.webhooks.protocols import (
    IdempotencyStoreProtocol,
    WebhookProcessorProtocol,
)
from paybridge.schemas.payment import (
    BillingCycle,
    Plan,
    SubscriptionStatus,
    WebhookOutcome,
    WebhookResult,
)
from paybridge.schemas.subscription import SubscriptionRecord
from paybridge.schemas.webhook_event import WebhookAck

Handler = Callable[[PaymentGateway, WebhookResult, ContextualLogger], Awaitable[None]]

# Plan assumed for a completed checkout or payment that does not name one
DEFAULT_PAID_PLAN = Plan.PRO


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class WebhookProcessor(WebhookProcessorProtocol):
    """Process verified webhook events from any registered gateway."""

    def __init__(
        self,
        registry: GatewayRegistryProtocol,
        idempotency: IdempotencyStoreProtocol,
        subscriptions: SubscriptionRepositoryProtocol,
        notifier: EmailNotifier,
        metrics: WebhookMetrics,
    ) -> None:
        """Initialize with all required dependencies."""
        self._registry = registry
        self._idempotency = idempotency
        self._subscriptions = subscriptions
        self._notifier = notifier
        self._metrics = metrics
        self._notifications: set[asyncio.Task] = set()

        # Outcome handler mapping; outcomes not listed here are skipped
        self.handlers: dict[WebhookOutcome, Handler] = {
            WebhookOutcome.CHECKOUT_COMPLETED: self._handle_checkout_completed,
            WebhookOutcome.SUBSCRIPTION_UPDATED: self._handle_subscription_updated,
            WebhookOutcome.SUBSCRIPTION_CANCELED: self._handle_subscription_canceled,
            WebhookOutcome.PAYMENT_SUCCEEDED: self._handle_payment_succeeded,
            WebhookOutcome.PAYMENT_FAILED: self._handle_payment_failed,
            WebhookOutcome.PAYMENT_REFUNDED: self._handle_payment_refunded,
            WebhookOutcome.PAYMENT_VOIDED: self._handle_payment_voided,
            WebhookOutcome.CUSTOMER_DELETED: self._handle_customer_deleted,
        }

    async def process_webhook(
        self, gateway_name: str, payload: bytes, signature: Optional[str]
    ) -> WebhookAck:
        """Verify, claim and apply one webhook delivery.

        Raises UnknownGatewayError, GatewayNotConfiguredError,
        InvalidSignatureError or InvalidPayloadError before the ledger is
        touched. Failures after the claim are recorded and re-raised.
        """
        started = time.monotonic()
        gateway = self._registry.get(gateway_name)
        gateway_log = logger.with_context(gateway=gateway.name.value)

        try:
            event = gateway.construct_event(payload, signature)
        except (GatewayNotConfiguredError, InvalidSignatureError, InvalidPayloadError) as e:
            gateway_log.warning(f"Rejected webhook: {e}")
            self._observe(gateway, "unknown", "rejected", started)
            raise

        log = gateway_log.with_context(event_id=event.event_id, event_type=event.event_type)
        begin = await self._idempotency.check_and_mark_processing(
            gateway.name, event.event_id, event.event_type, event.snapshot()
        )
        if not begin.is_new:
            log.info(f"Duplicate webhook event (existing state: {begin.existing_state})")
            self._observe(gateway, event.event_type, "duplicate", started)
            return WebhookAck(status="duplicate", event_id=event.event_id)

        try:
            result = gateway.interpret_event(event)
            handler = self.handlers.get(result.outcome)
            if handler is None:
                reason = f"Unhandled event type: {event.event_type}"
                log.info(reason)
                await self._idempotency.mark_skipped(gateway.name, event.event_id, reason)
                status = "skipped"
            else:
                log.info(f"Processing webhook event: {event.event_type} ({result.outcome.value})")
                await handler(gateway, result, log)
                await self._idempotency.mark_processed(
                    gateway.name, event.event_id, result.summary()
                )
                status = "processed"
        except Exception as e:
            log.error(f"Error handling {event.event_type}: {e}", exc_info=True)
            await self._record_failure(gateway, event.event_id, e, log)
            self._observe(gateway, event.event_type, "failed", started)
            raise

        self._observe(gateway, event.event_type, status, started)
        return WebhookAck(event_id=event.event_id, outcome=result.outcome.value)

    async def drain_notifications(self) -> None:
        """Wait for every scheduled notification to finish."""
        while self._notifications:
            await asyncio.gather(*list(self._notifications), return_exceptions=True)

    # -------------------------------------------------------------------------
    # Outcome handlers
    # -------------------------------------------------------------------------

    async def _handle_checkout_completed(
        self, gateway: PaymentGateway, result: WebhookResult, log: ContextualLogger
    ) -> None:
        """A hosted checkout finished; the subscription is active on the requested plan."""
        existing = await self._find_existing(gateway, result)
        user_id = _user_id(result, existing)
        if not user_id:
            log.warning("Checkout completed without a user email or id, nothing to update")
            return

        requested = result.plan or (existing.plan if existing else DEFAULT_PAID_PLAN)
        status = (
            SubscriptionStatus.TRIALING
            if result.status == SubscriptionStatus.TRIALING.value
            else SubscriptionStatus.ACTIVE
        )
        already_confirmed = (
            existing is not None and existing.is_active and existing.plan == requested
        )
        now = _utcnow()
        record = _merge(
            gateway,
            result,
            existing,
            user_id,
            status=status,
            plan=plan_for_status(status, requested),
            canceled_at=None,
            last_payment_at=now if result.amount else None,
            last_payment_amount=result.amount,
        )
        saved = await self._subscriptions.upsert(record)
        log.info(f"Checkout completed for {user_id}: {saved.plan.value}")
        if not already_confirmed:
            self._notify_confirmation(saved, result, gateway, log)

    async def _handle_subscription_updated(
        self, gateway: PaymentGateway, result: WebhookResult, log: ContextualLogger
    ) -> None:
        """Provider-side status or plan change."""
        existing = await self._find_existing(gateway, result)
        user_id = _user_id(result, existing)
        if not user_id:
            log.warning(f"No local subscription for {result.subscription_id}, nothing to update")
            return

        status = SubscriptionStatus(result.status or SubscriptionStatus.INCOMPLETE.value)
        requested = result.plan or (existing.plan if existing else None)
        record = _merge(
            gateway,
            result,
            existing,
            user_id,
            status=status,
            plan=plan_for_status(status, requested),
            canceled_at=_utcnow() if status == SubscriptionStatus.CANCELED else None,
        )
        saved = await self._subscriptions.upsert(record)
        log.info(f"Subscription {result.subscription_id} is {status.value} on {saved.plan.value}")

    async def _handle_subscription_canceled(
        self, gateway: PaymentGateway, result: WebhookResult, log: ContextualLogger
    ) -> None:
        """Subscription ended at the provider; the user drops to free."""
        existing = await self._find_existing(gateway, result)
        if existing is None and result.subscription_id:
            log.warning(f"Cancel for unknown subscription {result.subscription_id}, ignoring")
            return
        user_id = _user_id(result, existing)
        if not user_id:
            log.warning(f"No local subscription for {result.subscription_id}, nothing to cancel")
            return

        previous_plan = existing.plan if existing else (result.plan or Plan.FREE)
        status = SubscriptionStatus.CANCELED
        record = _merge(
            gateway,
            result,
            existing,
            user_id,
            status=status,
            plan=plan_for_status(status, None),
            cancel_at_period_end=False,
            canceled_at=_utcnow(),
        )
        saved = await self._subscriptions.upsert(record)
        log.info(f"Subscription {result.subscription_id} canceled for {user_id}")
        self._notify_canceled(saved, previous_plan, log)

    async def _handle_payment_succeeded(
        self, gateway: PaymentGateway, result: WebhookResult, log: ContextualLogger
    ) -> None:
        """A payment cleared.

        For gateways without provider subscriptions the payment is the
        subscription: it renews the active record or starts a new one.
        Elsewhere it only records the payment on the known subscription.
        """
        if not gateway.renews_locally:
            existing = await self._find_existing(gateway, result)
            if existing is None:
                log.info(f"Payment for unknown subscription {result.subscription_id}, ignoring")
                return
            await self._subscriptions.upsert(
                existing.model_copy(
                    update={
                        "last_payment_at": _utcnow(),
                        "last_payment_amount": result.amount,
                        "currency": result.currency or existing.currency,
                    }
                )
            )
            log.info(f"Recorded payment {result.payment_id} on {existing.gateway_transaction_id}")
            return

        user_id = _user_id(result, None)
        if not user_id or not result.payment_id:
            log.warning("Payment succeeded without a user email or transaction id, ignoring")
            return

        plan = result.plan or DEFAULT_PAID_PLAN
        active = await self._subscriptions.find_active_by_user_id(user_id, gateway.name)
        if active is not None and active.plan == plan:
            saved = await self._subscriptions.renew(
                active, result.payment_id, result.amount, result.currency
            )
            log.info(f"Renewed {plan.value} for {user_id} until {saved.current_period_end}")
        else:
            billing_cycle = result.billing_cycle or BillingCycle.MONTHLY
            now = _utcnow()
            saved = await self._subscriptions.upsert(
                SubscriptionRecord(
                    user_id=user_id,
                    user_email=result.user_email,
                    gateway=gateway.name,
                    gateway_transaction_id=result.payment_id,
                    gateway_customer_id=result.customer_id or result.user_email,
                    plan=plan,
                    billing_cycle=billing_cycle,
                    status=SubscriptionStatus.ACTIVE,
                    current_period_start=now,
                    current_period_end=now + timedelta(days=billing_cycle.period_days),
                    last_payment_at=now,
                    last_payment_amount=result.amount,
                    currency=result.currency,
                )
            )
            log.info(f"Started {plan.value} for {user_id} until {saved.current_period_end}")
        self._notify_confirmation(saved, result, gateway, log)

    async def _handle_payment_failed(
        self, gateway: PaymentGateway, result: WebhookResult, log: ContextualLogger
    ) -> None:
        """A payment was declined.

        Provider subscriptions report their own past_due status through a
        subscription update, so only locally renewed records change here.
        """
        if not gateway.renews_locally:
            log.info(f"Payment failed for {result.subscription_id}: {result.error}")
            return

        user_id = _user_id(result, None)
        active = (
            await self._subscriptions.find_active_by_user_id(user_id, gateway.name)
            if user_id
            else None
        )
        if active is None:
            log.info(f"Payment {result.payment_id} failed with no active subscription")
            return

        status = SubscriptionStatus.PAST_DUE
        await self._subscriptions.upsert(
            active.model_copy(update={"status": status, "plan": plan_for_status(status, None)})
        )
        log.info(f"Payment {result.payment_id} failed, {user_id} is past due")

    async def _handle_payment_refunded(
        self, gateway: PaymentGateway, result: WebhookResult, log: ContextualLogger
    ) -> None:
        """A refunded payment ends the subscription it paid for."""
        existing = None
        for native_id in (result.payment_id, result.subscription_id):
            if native_id and existing is None:
                existing = await self._subscriptions.find_by_gateway_and_transaction_id(
                    gateway.name, native_id
                )
        if existing is None:
            log.info(f"Refund for {result.payment_id} matches no subscription")
            return

        previous_plan = existing.plan
        saved = await self._subscriptions.cancel(existing, immediate=True)
        log.info(f"Refund of {result.payment_id} canceled subscription for {saved.user_id}")
        self._notify_canceled(saved, previous_plan, log)

    async def _handle_payment_voided(
        self, gateway: PaymentGateway, result: WebhookResult, log: ContextualLogger
    ) -> None:
        """A voided authorization never moved money; nothing changes."""
        log.info(f"Payment {result.payment_id} voided")

    async def _handle_customer_deleted(
        self, gateway: PaymentGateway, result: WebhookResult, log: ContextualLogger
    ) -> None:
        """The provider customer is gone. Plans stay; users may have paid elsewhere."""
        if not result.customer_id:
            log.warning("Customer deleted without an id, nothing to clear")
            return
        changed = await self._subscriptions.detach_customer(gateway.name, result.customer_id)
        log.info(f"Customer {result.customer_id} deleted, cleared from {changed} subscription(s)")

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    async def _find_existing(
        self, gateway: PaymentGateway, result: WebhookResult
    ) -> Optional[SubscriptionRecord]:
        """Match by provider subscription id; only id-less events fall back to the user."""
        if result.subscription_id:
            return await self._subscriptions.find_by_gateway_and_transaction_id(
                gateway.name, result.subscription_id
            )
        user_id = _user_id(result, None)
        if user_id:
            return await self._subscriptions.find_active_by_user_id(user_id, gateway.name)
        return None

    async def _record_failure(
        self,
        gateway: PaymentGateway,
        event_id: str,
        error: Exception,
        log: ContextualLogger,
    ) -> None:
        try:
            await self._idempotency.mark_failed(
                gateway.name, event_id, str(error) or type(error).__name__
            )
        except Exception as e:
            log.error(f"Could not record failure for {event_id}: {e}")

    def _observe(
        self, gateway: PaymentGateway, event_type: str, status: str, started: float
    ) -> None:
        self._metrics.observe_event(gateway.name.value, event_type, status)
        self._metrics.observe_duration(gateway.name.value, time.monotonic() - started)

    # -------------------------------------------------------------------------
    # Notifications (best effort)
    # -------------------------------------------------------------------------

    def _schedule(self, coro: Awaitable[bool], description: str, log: ContextualLogger) -> None:
        task = asyncio.ensure_future(coro)
        self._notifications.add(task)

        def _done(t: asyncio.Task) -> None:
            self._notifications.discard(t)
            if t.cancelled():
                log.warning(f"{description} was cancelled")
            elif t.exception() is not None:
                log.error(f"Failed to send {description}: {t.exception()}")

        task.add_done_callback(_done)

    def _notify_confirmation(
        self,
        record: SubscriptionRecord,
        result: WebhookResult,
        gateway: PaymentGateway,
        log: ContextualLogger,
    ) -> None:
        email = record.user_email or result.user_email
        if not email:
            return

        async def send() -> bool:
            return await self._notifier.send_subscription_confirmation(
                email,
                await self._customer_name(record, email),
                plan=record.plan.value,
                billing_cycle=record.billing_cycle.value,
                amount=result.amount,
                currency=result.currency,
                gateway=gateway.name.value,
            )

        self._schedule(send(), "subscription confirmation email", log)

    def _notify_canceled(
        self, record: SubscriptionRecord, previous_plan: Plan, log: ContextualLogger
    ) -> None:
        email = record.user_email
        if not email:
            return

        async def send() -> bool:
            return await self._notifier.send_subscription_canceled(
                email,
                await self._customer_name(record, email),
                plan=previous_plan.value,
                immediate=True,
            )

        self._schedule(send(), "subscription canceled email", log)

    async def _customer_name(self, record: SubscriptionRecord, email: str) -> Optional[str]:
        customer = None
        if record.gateway_customer_id:
            customer = await self._subscriptions.get_customer(
                record.gateway, record.gateway_customer_id
            )
        if customer is None:
            customer = await self._subscriptions.find_customer_by_email(record.gateway, email)
        return customer.name if customer else None


def _user_id(result: WebhookResult, existing: Optional[SubscriptionRecord]) -> Optional[str]:
    """Users are keyed by email; fall back to the provider's user id, then the stored record."""
    return result.user_email or result.user_id or (existing.user_id if existing else None)


def _merge(
    gateway: PaymentGateway,
    result: WebhookResult,
    existing: Optional[SubscriptionRecord],
    user_id: str,
    **changes,
) -> SubscriptionRecord:
    """Overlay the fields an event carries onto the stored record (or a new one)."""
    base = existing or SubscriptionRecord(user_id=user_id, gateway=gateway.name)
    carried = {
        "user_email": result.user_email,
        "gateway_transaction_id": result.subscription_id,
        "gateway_customer_id": result.customer_id,
        "billing_cycle": result.billing_cycle,
        "current_period_start": result.current_period_start,
        "current_period_end": result.current_period_end,
        "cancel_at_period_end": result.cancel_at_period_end,
        "currency": result.currency,
    }
    update = {key: value for key, value in carried.items() if value is not None}
    # A stored record keeps the provider id it was created with
    if base.gateway_transaction_id:
        update.pop("gateway_transaction_id", None)
    update.update(changes)
    # last_payment_* are only overwritten when the event carries a payment
    if update.get("last_payment_at") is None:
        update.pop("last_payment_at", None)
        update.pop("last_payment_amount", None)
    return base.model_copy(update=update)
