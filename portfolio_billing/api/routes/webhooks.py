"""
Stripe webhook endpoint.

Public (no auth); the Stripe signature is verified before anything is read.
"""
from __future__ import annotations

import stripe
from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from portfolio_billing.api.dependencies import ProviderFactory, get_provider_factory
from portfolio_billing.config import Settings, get_settings
from portfolio_billing.core.exceptions import AppError, ConfigurationError, WebhookError
from portfolio_billing.core.logger import get_logger
from portfolio_billing.database import get_db
from portfolio_billing.services.subscription_store import SubscriptionStore
from portfolio_billing.services.webhook_sync import WebhookSync

logger = get_logger(__name__)
router = APIRouter()


@router.post("/stripe-webhook")
async def stripe_webhook(
    request: Request,
    provider_factory: ProviderFactory = Depends(get_provider_factory),
    settings: Settings = Depends(get_settings),
    db: Session = Depends(get_db),
) -> JSONResponse:
    payload = await request.body()
    signature = request.headers.get("stripe-signature") or ""

    try:
        if not signature:
            raise WebhookError("Missing stripe-signature header")
        if settings.stripe_webhook_secret is None:
            raise ConfigurationError("Stripe webhook secret not configured")
        provider = provider_factory()
        event = provider.construct_event(
            payload, signature, settings.stripe_webhook_secret.get_secret_value()
        )
    except (AppError, ValueError, stripe.SignatureVerificationError) as exc:
        logger.error("Webhook signature verification failed: %s", exc)
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"error": f"Webhook Error: {exc}"},
        )

    sync = WebhookSync(provider, SubscriptionStore(db), grace_period_days=settings.grace_period_days)
    try:
        await sync.dispatch(event)
    except Exception as exc:
        logger.exception("Webhook handler error: %s", exc)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error": "Webhook handler failed"},
        )
    return JSONResponse(status_code=status.HTTP_200_OK, content={"received": True})
