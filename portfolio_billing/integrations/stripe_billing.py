"""
Stripe implementation of the billing provider.

Every method forwards exactly one call to Stripe and translates SDK
failures into ``ProviderError``. Nothing is retried.
"""
from __future__ import annotations

from typing import Any, Dict, List, Optional

import stripe

from portfolio_billing.config import Settings
from portfolio_billing.core.exceptions import ConfigurationError, ProviderError
from portfolio_billing.core.logger import get_logger

logger = get_logger(__name__)


def _provider_error(exc: Exception) -> ProviderError:
    error = getattr(exc, "error", None)
    error_type = getattr(error, "type", None) or type(exc).__name__
    message = getattr(exc, "user_message", None) or str(exc)
    return ProviderError(message, error_type=error_type, code=getattr(exc, "code", None))


class StripeBillingProvider:
    """Stripe-backed billing operations bound to one explicit client handle."""

    def __init__(self, client: Any):
        self._client = client

    @classmethod
    def from_api_key(cls, api_key: str) -> "StripeBillingProvider":
        return cls(stripe.StripeClient(api_key))

    def _call(self, operation: str, fn, *args, **kwargs):
        try:
            return fn(*args, **kwargs)
        except stripe.StripeError as exc:
            translated = _provider_error(exc)
            logger.error(
                "Stripe %s failed: %s (type=%s code=%s)",
                operation,
                translated,
                translated.error_type,
                translated.code,
            )
            raise translated from exc

    async def retrieve_customer(self, customer_id: str) -> Any:
        return self._call("customers.retrieve", self._client.customers.retrieve, customer_id)

    async def list_active_subscriptions(self, customer_id: str, limit: int = 10) -> Any:
        return self._call(
            "subscriptions.list",
            self._client.subscriptions.list,
            params={"customer": customer_id, "status": "active", "limit": limit},
        )

    async def list_subscriptions(self, customer_id: str, limit: int = 10) -> Any:
        """Every subscription of the customer, trialing and past_due included."""
        return self._call(
            "subscriptions.list",
            self._client.subscriptions.list,
            params={"customer": customer_id, "status": "all", "limit": limit},
        )

    async def list_card_payment_methods(self, customer_id: str) -> Any:
        return self._call(
            "payment_methods.list",
            self._client.payment_methods.list,
            params={"customer": customer_id, "type": "card"},
        )

    async def list_invoices(self, customer_id: str, limit: int = 10) -> Any:
        return self._call(
            "invoices.list",
            self._client.invoices.list,
            params={"customer": customer_id, "limit": limit},
        )

    async def create_portal_session(self, customer_id: str, return_url: str) -> Any:
        session = self._call(
            "billing_portal.sessions.create",
            self._client.billing_portal.sessions.create,
            params={"customer": customer_id, "return_url": return_url},
        )
        logger.info("Created Stripe portal session for customer %s", customer_id)
        return session

    async def find_customer_by_email(self, email: str) -> Optional[Any]:
        listing = self._call(
            "customers.list",
            self._client.customers.list,
            params={"email": email, "limit": 1},
        )
        data = list_data(listing)
        return data[0] if data else None

    async def create_customer(self, email: str, user_id: str) -> Any:
        customer = self._call(
            "customers.create",
            self._client.customers.create,
            params={"email": email, "metadata": {"userId": user_id}},
        )
        logger.info("Created Stripe customer %s for user %s", customer["id"], user_id)
        return customer

    async def retrieve_coupon(self, code: str) -> Any:
        return self._call("coupons.retrieve", self._client.coupons.retrieve, code)

    async def create_trial_subscription(
        self,
        customer_id: str,
        price_id: str,
        trial_period_days: int,
        metadata: Dict[str, str],
        coupon: Optional[str] = None,
    ) -> Any:
        params: Dict[str, Any] = {
            "customer": customer_id,
            "items": [{"price": price_id}],
            "trial_period_days": trial_period_days,
            "payment_behavior": "default_incomplete",
            "payment_settings": {
                "payment_method_types": ["card"],
                "save_default_payment_method": "on_subscription",
            },
            "expand": ["latest_invoice.payment_intent"],
            "metadata": metadata,
        }
        if coupon:
            params["discounts"] = [{"coupon": coupon}]
        return self._call("subscriptions.create", self._client.subscriptions.create, params=params)

    async def create_setup_checkout_session(
        self,
        customer_id: str,
        success_url: str,
        cancel_url: str,
        metadata: Dict[str, str],
    ) -> Any:
        return self._call(
            "checkout.sessions.create",
            self._client.checkout.sessions.create,
            params={
                "customer": customer_id,
                "payment_method_types": ["card"],
                "mode": "setup",
                "setup_intent_data": {"metadata": metadata},
                "success_url": success_url,
                "cancel_url": cancel_url,
                "metadata": metadata,
            },
        )

    async def retrieve_subscription(self, subscription_id: str) -> Any:
        return self._call(
            "subscriptions.retrieve", self._client.subscriptions.retrieve, subscription_id
        )

    async def set_default_payment_method(self, subscription_id: str, payment_method_id: str) -> Any:
        return self._call(
            "subscriptions.update",
            self._client.subscriptions.update,
            subscription_id,
            params={"default_payment_method": payment_method_id},
        )

    def construct_event(self, payload: bytes, signature: str, secret: str) -> Any:
        """Verify a webhook signature and parse the event; raises the SDK's own errors."""
        return self._client.construct_event(payload, signature, secret)


def build_billing_provider(settings: Settings) -> StripeBillingProvider:
    if settings.stripe_secret_key is None:
        raise ConfigurationError("Stripe secret key not configured")
    return StripeBillingProvider.from_api_key(settings.stripe_secret_key.get_secret_value())


def list_data(listing: Any) -> List[Any]:
    """Items of a Stripe list object, empty when the listing is missing."""
    if listing is None:
        return []
    try:
        return list(listing["data"] or [])
    except (KeyError, TypeError):
        return []
