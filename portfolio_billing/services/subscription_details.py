"""
Subscription read model.

Fetches a customer's profile, active subscription, card payment methods and
recent invoices from the billing provider and projects them into one flat
payload. Projections never raise on missing nested fields; absent values
become ``None``.
"""
from __future__ import annotations

from typing import Any, Optional

from portfolio_billing.core.logger import get_logger
from portfolio_billing.integrations.stripe_billing import StripeBillingProvider, list_data
from portfolio_billing.schemas.billing import (
    CustomerSummary,
    InvoiceSummary,
    PaymentMethodSummary,
    SubscriptionDetails,
    SubscriptionSummary,
)

logger = get_logger(__name__)

SUBSCRIPTION_LIST_LIMIT = 10
INVOICE_LIST_LIMIT = 10


def field(obj: Any, *path: Any) -> Any:
    """Walk ``path`` through nested Stripe objects, dicts and lists; ``None`` on any gap."""
    current = obj
    for key in path:
        if current is None:
            return None
        try:
            current = current[key]
        except (KeyError, IndexError, TypeError):
            return None
    return current


def project_customer(customer: Any) -> CustomerSummary:
    return CustomerSummary(
        id=field(customer, "id"),
        email=field(customer, "email"),
        name=field(customer, "name"),
    )


def project_subscription(subscription: Any) -> Optional[SubscriptionSummary]:
    if subscription is None:
        return None

    item = field(subscription, "items", "data", 0)
    price = field(item, "price")
    # Newer API versions moved the billing period onto the subscription item.
    period_end = field(subscription, "current_period_end")
    if period_end is None:
        period_end = field(item, "current_period_end")
    period_start = field(subscription, "current_period_start")
    if period_start is None:
        period_start = field(item, "current_period_start")

    return SubscriptionSummary(
        id=field(subscription, "id"),
        status=field(subscription, "status"),
        current_period_end=period_end,
        current_period_start=period_start,
        cancel_at_period_end=field(subscription, "cancel_at_period_end"),
        price_id=field(price, "id"),
        amount=field(price, "unit_amount"),
        currency=field(price, "currency"),
        interval=field(price, "recurring", "interval"),
    )


def project_payment_method(payment_method: Any) -> PaymentMethodSummary:
    card = field(payment_method, "card")
    return PaymentMethodSummary(
        id=field(payment_method, "id"),
        brand=field(card, "brand"),
        last4=field(card, "last4"),
        exp_month=field(card, "exp_month"),
        exp_year=field(card, "exp_year"),
    )


def project_invoice(invoice: Any) -> InvoiceSummary:
    return InvoiceSummary(
        id=field(invoice, "id"),
        amount=field(invoice, "amount_paid"),
        currency=field(invoice, "currency"),
        status=field(invoice, "status"),
        created=field(invoice, "created"),
        hosted_invoice_url=field(invoice, "hosted_invoice_url"),
        invoice_pdf=field(invoice, "invoice_pdf"),
    )


async def get_subscription_details(
    provider: StripeBillingProvider, customer_id: str
) -> SubscriptionDetails:
    """
    Run the four provider reads in order and reshape them.

    A failure in any read propagates and no partial payload is produced.
    """
    customer = await provider.retrieve_customer(customer_id)
    subscriptions = await provider.list_active_subscriptions(
        customer_id, limit=SUBSCRIPTION_LIST_LIMIT
    )
    payment_methods = await provider.list_card_payment_methods(customer_id)
    invoices = await provider.list_invoices(customer_id, limit=INVOICE_LIST_LIMIT)

    active = list_data(subscriptions)
    if len(active) > 1:
        logger.info(
            "Customer %s has %d active subscriptions, using the first", customer_id, len(active)
        )

    return SubscriptionDetails(
        customer=project_customer(customer),
        subscription=project_subscription(active[0] if active else None),
        payment_methods=[project_payment_method(pm) for pm in list_data(payment_methods)],
        invoices=[project_invoice(invoice) for invoice in list_data(invoices)],
    )
