"""
Manual reconciliation of one user's local subscription record with Stripe.
"""
from __future__ import annotations

from typing import Any, Dict, Optional

from portfolio_billing.core.logger import get_logger
from portfolio_billing.integrations.stripe_billing import StripeBillingProvider, list_data
from portfolio_billing.services.subscription_details import field, project_subscription
from portfolio_billing.services.subscription_store import SubscriptionStore
from portfolio_billing.services.webhook_sync import from_timestamp

logger = get_logger(__name__)

# Subscriptions in these states no longer grant premium access.
ENDED_STATUSES = frozenset({"canceled", "incomplete_expired"})


def current_subscription(subscriptions: Any) -> Optional[Any]:
    for subscription in list_data(subscriptions):
        if field(subscription, "status") not in ENDED_STATUSES:
            return subscription
    return None


async def reconcile_customer(
    provider: StripeBillingProvider,
    store: SubscriptionStore,
    user_id: str,
    customer_id: str,
) -> Dict[str, Any]:
    """Overwrite the local plan/status with what Stripe reports; returns the applied fields."""
    raw = current_subscription(await provider.list_subscriptions(customer_id))
    subscription = project_subscription(raw)

    fields: Dict[str, Any] = {"stripe_customer_id": customer_id}
    if subscription is None:
        fields.update(
            plan_type="basic",
            status="inactive",
            stripe_subscription_id=None,
            is_trialing=False,
            trial_ends_at=None,
            cancel_at_period_end=False,
        )
    else:
        is_trialing = subscription.status == "trialing"
        fields.update(
            plan_type="premium",
            status=subscription.status,
            stripe_subscription_id=subscription.id,
            is_trialing=is_trialing,
            trial_ends_at=from_timestamp(field(raw, "trial_end")) if is_trialing else None,
            billing_interval=subscription.interval,
            cancel_at_period_end=bool(subscription.cancel_at_period_end),
        )

    existing = store.get_by_user_id(user_id)
    if existing is not None:
        changed = {k: v for k, v in fields.items() if getattr(existing, k) != v}
        logger.info("Reconciling user %s: %d field(s) differ from Stripe", user_id, len(changed))
    else:
        logger.info("Reconciling user %s: no local record, creating one", user_id)

    store.upsert(user_id, **fields)
    return fields
