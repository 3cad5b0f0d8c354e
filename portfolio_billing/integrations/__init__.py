"""External integration adapters."""

from .stripe_billing import StripeBillingProvider, build_billing_provider, list_data

__all__ = [
    "StripeBillingProvider",
    "build_billing_provider",
    "list_data",
]
