"""
Deployment diagnostics.
"""
from __future__ import annotations

from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.engine import Engine

from portfolio_billing.api.cors import cors_json, preflight
from portfolio_billing.config import Settings, get_settings
from portfolio_billing.database import database_health, get_engine
from portfolio_billing.schemas.billing import StripeConfigResponse

router = APIRouter()

GET_METHODS = ("GET",)
KEY_PREFIX_LENGTH = 7


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def mask_secret(settings: Settings) -> str:
    if settings.stripe_secret_key is None:
        return "Not set"
    return settings.stripe_secret_key.get_secret_value()[:KEY_PREFIX_LENGTH] + "..."


@router.api_route("/test-stripe-config", methods=["GET", "OPTIONS"])
async def test_stripe_config(request: Request, settings: Settings = Depends(get_settings)):
    """Report whether the Stripe secret is present, with a masked prefix."""
    if request.method == "OPTIONS":
        return preflight(GET_METHODS)
    try:
        config = StripeConfigResponse(
            stripe_configured=settings.stripe_configured,
            key_prefix=mask_secret(settings),
            timestamp=_now_iso(),
            environment=settings.app_env,
        )
        return cors_json(config.to_json(), GET_METHODS)
    except Exception as exc:
        return cors_json(
            {"error": str(exc)}, GET_METHODS, status_code=status.HTTP_500_INTERNAL_SERVER_ERROR
        )


@router.api_route("/test-customer-portal", methods=["GET", "OPTIONS"])
async def test_customer_portal(request: Request, settings: Settings = Depends(get_settings)):
    if request.method == "OPTIONS":
        return preflight(GET_METHODS)
    try:
        return cors_json(
            {
                "message": "Customer portal function is deployed",
                "hasStripeKey": settings.stripe_configured,
                "timestamp": _now_iso(),
            },
            GET_METHODS,
        )
    except Exception as exc:
        return cors_json(
            {"error": str(exc)}, GET_METHODS, status_code=status.HTTP_500_INTERNAL_SERVER_ERROR
        )


@router.get("/health")
async def health_check(engine: Engine = Depends(get_engine)) -> JSONResponse:
    """Application and database health"""
    db = database_health(engine)
    ok = bool(db.get("ok"))
    return JSONResponse(
        status_code=status.HTTP_200_OK if ok else status.HTTP_503_SERVICE_UNAVAILABLE,
        content={
            "status": "healthy" if ok else "degraded",
            "database": db,
        },
    )
