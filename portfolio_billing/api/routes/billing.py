"""
Billing API Routes

Thin pass-throughs to Stripe: billing portal sessions, the subscription
read model and trial subscriptions.
"""
from __future__ import annotations

from fastapi import APIRouter, Depends, Request, status
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from portfolio_billing.api.cors import cors_json, preflight, read_json
from portfolio_billing.api.dependencies import ProviderFactory, get_provider_factory
from portfolio_billing.config import Settings, get_settings
from portfolio_billing.core.exceptions import ValidationError
from portfolio_billing.core.logger import get_logger
from portfolio_billing.integrations.stripe_billing import StripeBillingProvider
from portfolio_billing.schemas.billing import (
    PortalSessionRequest,
    PortalSessionResponse,
    TrialSubscriptionRequest,
    TrialSubscriptionResponse,
)
from portfolio_billing.services.subscription_details import field, get_subscription_details

logger = get_logger(__name__)
router = APIRouter()

POST_METHODS = ("POST",)
GET_METHODS = ("GET",)


def _error_message(exc: Exception, default: str) -> str:
    return str(exc) or default


def _parse_body(model: type[BaseModel], body: dict, message: str):
    try:
        return model.model_validate(body)
    except PydanticValidationError as exc:
        raise ValidationError(message) from exc


@router.api_route("/create-customer-portal", methods=["POST", "OPTIONS"])
async def create_customer_portal(
    request: Request,
    provider_factory: ProviderFactory = Depends(get_provider_factory),
    settings: Settings = Depends(get_settings),
):
    """Create a Stripe-hosted self-service billing portal session."""
    if request.method == "OPTIONS":
        return preflight(POST_METHODS)

    try:
        payload = _parse_body(
            PortalSessionRequest, await read_json(request), "Customer ID is required"
        )
        if not payload.customer_id:
            raise ValidationError("Customer ID is required")

        provider = provider_factory()
        return_url = request.headers.get("origin") or settings.site_url
        logger.info("Creating billing portal session for customer: %s", payload.customer_id)
        session = await provider.create_portal_session(payload.customer_id, return_url)
        return cors_json(PortalSessionResponse(url=field(session, "url")).to_json(), POST_METHODS)
    except Exception as exc:
        logger.error("Customer portal error: %s", exc)
        return cors_json(
            {
                "error": _error_message(exc, "Failed to create customer portal session"),
                "type": getattr(exc, "error_type", None) or "unknown",
                "code": getattr(exc, "code", None) or "unknown",
            },
            POST_METHODS,
            status_code=status.HTTP_400_BAD_REQUEST,
        )


@router.api_route("/get-subscription-details", methods=["GET", "OPTIONS"])
async def subscription_details(
    request: Request,
    provider_factory: ProviderFactory = Depends(get_provider_factory),
):
    """Customer, active subscription, card payment methods and recent invoices in one payload."""
    if request.method == "OPTIONS":
        return preflight(GET_METHODS)

    try:
        customer_id = request.query_params.get("customerId")
        if not customer_id:
            raise ValidationError("Customer ID is required")

        details = await get_subscription_details(provider_factory(), customer_id)
        return cors_json(details.to_json(), GET_METHODS)
    except Exception as exc:
        logger.error("Get subscription details error: %s", exc)
        return cors_json(
            {"error": _error_message(exc, "Failed to get subscription details")},
            GET_METHODS,
            status_code=status.HTTP_400_BAD_REQUEST,
        )


async def _resolve_customer(provider: StripeBillingProvider, email: str, user_id: str):
    customer = await provider.find_customer_by_email(email)
    if customer is not None:
        logger.info("Found existing customer: %s", field(customer, "id"))
        return customer
    return await provider.create_customer(email, user_id)


async def _valid_coupon(provider: StripeBillingProvider, code: str | None) -> str | None:
    if not code:
        return None
    try:
        coupon = await provider.retrieve_coupon(code)
    except Exception as exc:
        # Continue without the discount rather than failing the signup.
        logger.warning("Invalid coupon code %s: %s", code, exc)
        return None
    logger.info("Applying coupon: %s", field(coupon, "id"))
    return code


@router.api_route("/create-subscription-with-trial", methods=["POST", "OPTIONS"])
async def create_subscription_with_trial(
    request: Request,
    provider_factory: ProviderFactory = Depends(get_provider_factory),
    settings: Settings = Depends(get_settings),
):
    """Start a trial subscription and a setup-mode checkout to collect the card."""
    if request.method == "OPTIONS":
        return preflight(POST_METHODS)

    try:
        payload = _parse_body(
            TrialSubscriptionRequest,
            await read_json(request),
            "Missing required fields: priceId, customerEmail, userId",
        )
        if not (payload.price_id and payload.customer_email and payload.user_id):
            raise ValidationError("Missing required fields: priceId, customerEmail, userId")

        provider = provider_factory()
        logger.info(
            "Creating subscription with trial: price=%s user=%s interval=%s coupon=%s",
            payload.price_id,
            payload.user_id,
            payload.billing_interval,
            "provided" if payload.coupon_code else "none",
        )

        customer = await _resolve_customer(provider, payload.customer_email, payload.user_id)
        customer_id = field(customer, "id")
        coupon = await _valid_coupon(provider, payload.coupon_code)

        subscription = await provider.create_trial_subscription(
            customer_id=customer_id,
            price_id=payload.price_id,
            trial_period_days=settings.trial_period_days,
            metadata={
                "userId": payload.user_id,
                "billingInterval": payload.billing_interval,
                "couponCode": payload.coupon_code or "",
            },
            coupon=coupon,
        )
        subscription_id = field(subscription, "id")
        logger.info("Subscription created with trial: %s", subscription_id)

        base_url = payload.return_url or settings.site_url
        checkout = await provider.create_setup_checkout_session(
            customer_id=customer_id,
            success_url=f"{base_url}?session_id={{CHECKOUT_SESSION_ID}}&setup=success",
            cancel_url=f"{base_url}?setup=cancelled",
            metadata={"subscription_id": subscription_id, "user_id": payload.user_id},
        )

        response = TrialSubscriptionResponse(
            subscription_id=subscription_id,
            customer_id=customer_id,
            client_secret=field(subscription, "latest_invoice", "payment_intent", "client_secret"),
            checkout_url=field(checkout, "url"),
            trial_end=field(subscription, "trial_end"),
        )
        return cors_json(response.to_json(), POST_METHODS)
    except Exception as exc:
        logger.error("Subscription creation error: %s", exc)
        return cors_json(
            {
                "error": _error_message(exc, "Failed to create subscription"),
                "type": getattr(exc, "error_type", None) or "unknown",
            },
            POST_METHODS,
            status_code=status.HTTP_400_BAD_REQUEST,
        )
