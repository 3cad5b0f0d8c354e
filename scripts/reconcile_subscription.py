"""
Overwrite one user's local subscription record with the state Stripe reports.

Usage:
  python scripts/reconcile_subscription.py USER_ID STRIPE_CUSTOMER_ID
"""
from __future__ import annotations

import asyncio
import sys

from portfolio_billing.config import get_settings
from portfolio_billing.core.logger import configure_logging
from portfolio_billing.database import get_sessionmaker
from portfolio_billing.integrations.stripe_billing import build_billing_provider
from portfolio_billing.services.reconciliation import reconcile_customer
from portfolio_billing.services.subscription_store import SubscriptionStore


def main(argv: list[str]) -> int:
    if len(argv) != 2:
        print(__doc__.strip())
        return 2
    user_id, customer_id = argv

    settings = get_settings()
    configure_logging(settings.log_level)
    provider = build_billing_provider(settings)

    db = get_sessionmaker()()
    try:
        applied = asyncio.run(reconcile_customer(provider, SubscriptionStore(db), user_id, customer_id))
    finally:
        db.close()

    for key, value in applied.items():
        print(f"{key}={value}")
    return 0


if __name__ == "__main__":
    sys.exit(main(sys.argv[1:]))
