"""Shared API dependencies."""
from __future__ import annotations

from functools import partial
from typing import Callable

from fastapi import Depends

from portfolio_billing.config import Settings, get_settings
from portfolio_billing.integrations.stripe_billing import StripeBillingProvider, build_billing_provider

ProviderFactory = Callable[[], StripeBillingProvider]


def get_provider_factory(settings: Settings = Depends(get_settings)) -> ProviderFactory:
    """
    Defer building the Stripe client until a handler has validated its input.

    Calling the factory raises ``ConfigurationError`` when the secret key is unset.
    """
    return partial(build_billing_provider, settings)


__all__ = ["ProviderFactory", "get_provider_factory", "get_settings"]
