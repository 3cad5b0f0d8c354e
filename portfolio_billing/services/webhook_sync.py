"""
Stripe webhook event handling.

Keeps the local subscriptions table in step with subscription and invoice
lifecycle events. Events are matched to users through the ``userId``
metadata written at checkout; events without it are logged and skipped.
"""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, Dict, Optional

from portfolio_billing.core.logger import get_logger
from portfolio_billing.integrations.stripe_billing import StripeBillingProvider
from portfolio_billing.services.subscription_details import field
from portfolio_billing.services.subscription_store import SubscriptionStore

logger = get_logger(__name__)


def from_timestamp(value: Optional[int]) -> Optional[datetime]:
    if value is None:
        return None
    return datetime.fromtimestamp(int(value), tz=timezone.utc)


def _now() -> datetime:
    return datetime.now(timezone.utc)


class WebhookSync:
    def __init__(
        self,
        provider: StripeBillingProvider,
        store: SubscriptionStore,
        grace_period_days: int = 3,
    ):
        self.provider = provider
        self.store = store
        self.grace_period_days = grace_period_days
        self._handlers: Dict[str, Callable[[Any], Awaitable[None]]] = {
            "customer.subscription.created": self.subscription_created,
            "customer.subscription.updated": self.subscription_updated,
            "customer.subscription.deleted": self.subscription_deleted,
            "customer.subscription.trial_will_end": self.trial_will_end,
            "invoice.payment_failed": self.payment_failed,
            "invoice.payment_succeeded": self.payment_succeeded,
            "setup_intent.succeeded": self.setup_intent_succeeded,
        }

    async def dispatch(self, event: Any) -> bool:
        """Route one verified event; returns False for unhandled types."""
        event_type = field(event, "type")
        logger.info("Processing Stripe webhook: %s", event_type)
        handler = self._handlers.get(event_type)
        if handler is None:
            logger.info("Unhandled event type: %s", event_type)
            return False
        await handler(field(event, "data", "object"))
        return True

    def _user_id(self, subscription: Any) -> Optional[str]:
        user_id = field(subscription, "metadata", "userId")
        if not user_id:
            logger.error("No userId in subscription metadata (subscription=%s)", field(subscription, "id"))
        return user_id

    async def subscription_created(self, subscription: Any) -> None:
        user_id = self._user_id(subscription)
        if not user_id:
            return
        trialing = field(subscription, "status") == "trialing"
        self.store.upsert(
            user_id,
            stripe_subscription_id=field(subscription, "id"),
            stripe_customer_id=field(subscription, "customer"),
            plan_type="premium",
            status="trialing" if trialing else "active",
            is_trialing=trialing,
            trial_ends_at=from_timestamp(field(subscription, "trial_end")),
            billing_interval=field(subscription, "metadata", "billingInterval") or "month",
            coupon_code=field(subscription, "metadata", "couponCode") or None,
        )

    async def subscription_updated(self, subscription: Any) -> None:
        user_id = self._user_id(subscription)
        if not user_id:
            return
        status = field(subscription, "status")
        updates: Dict[str, Any] = {
            "status": status,
            "is_trialing": status == "trialing",
            "trial_ends_at": from_timestamp(field(subscription, "trial_end")),
            "cancel_at_period_end": bool(field(subscription, "cancel_at_period_end")),
        }
        if status == "active":
            updates["grace_period_ends_at"] = None
        self.store.upsert(user_id, **updates)

    async def subscription_deleted(self, subscription: Any) -> None:
        user_id = self._user_id(subscription)
        if not user_id:
            return
        self.store.upsert(user_id, status="cancelled", cancel_at_period_end=True)

    async def trial_will_end(self, subscription: Any) -> None:
        trial_end = from_timestamp(field(subscription, "trial_end"))
        logger.info(
            "Trial will end soon: subscription=%s ends=%s",
            field(subscription, "id"),
            trial_end.isoformat() if trial_end else None,
        )

    async def _invoice_subscription(self, invoice: Any) -> Any:
        subscription_id = field(invoice, "subscription") or field(
            invoice, "parent", "subscription_details", "subscription"
        )
        if not subscription_id:
            logger.error("Invoice %s has no subscription", field(invoice, "id"))
            return None
        return await self.provider.retrieve_subscription(subscription_id)

    async def payment_failed(self, invoice: Any) -> None:
        logger.info("Payment failed for invoice: %s", field(invoice, "id"))
        subscription = await self._invoice_subscription(invoice)
        user_id = self._user_id(subscription) if subscription is not None else None
        if not user_id:
            return
        self.store.upsert(
            user_id,
            status="past_due",
            grace_period_ends_at=_now() + timedelta(days=self.grace_period_days),
        )

    async def payment_succeeded(self, invoice: Any) -> None:
        logger.info("Payment succeeded for invoice: %s", field(invoice, "id"))
        subscription = await self._invoice_subscription(invoice)
        user_id = self._user_id(subscription) if subscription is not None else None
        if not user_id:
            return
        self.store.upsert(user_id, status="active", grace_period_ends_at=None)

    async def setup_intent_succeeded(self, setup_intent: Any) -> None:
        subscription_id = field(setup_intent, "metadata", "subscription_id")
        user_id = field(setup_intent, "metadata", "user_id")
        if not subscription_id or not user_id:
            logger.error("Missing metadata in setup intent %s", field(setup_intent, "id"))
            return
        await self.provider.set_default_payment_method(
            subscription_id, field(setup_intent, "payment_method")
        )
        logger.info("Payment method attached to subscription: %s", subscription_id)
