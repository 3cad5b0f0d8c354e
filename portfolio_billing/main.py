"""
Portfolio Billing Gateway - FastAPI Application
Stripe billing pass-through handlers for the portfolio tracker
"""
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from uvicorn.middleware.proxy_headers import ProxyHeadersMiddleware

from portfolio_billing.api.cors import cors_headers
from portfolio_billing.api.routes import billing, diagnostics, webhooks
from portfolio_billing.config import get_settings
from portfolio_billing.core.logger import configure_logging, get_logger

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Handle startup and shutdown events."""
    settings = get_settings()
    configure_logging(settings.log_level)
    logger.info("Starting %s...", settings.app_name)
    logger.info("Stripe configured: %s", settings.stripe_configured)
    logger.info("API running on %s environment", settings.app_env)
    yield
    logger.info("Shutting down %s...", settings.app_name)


def create_app() -> FastAPI:
    settings = get_settings()
    app = FastAPI(
        title=settings.app_name,
        description="Billing gateway API for the portfolio tracker",
        version="1.0.0",
        lifespan=lifespan,
    )

    # Respect forwarded proto/host from the hosting proxy.
    app.add_middleware(ProxyHeadersMiddleware, trusted_hosts="*")

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        headers = dict(exc.headers or {})
        if exc.status_code == 405:
            allow = [m.strip() for m in headers.get("Allow", "").split(",") if m.strip()]
            headers.update(cors_headers(sorted(allow)))
            return JSONResponse(status_code=405, content={"error": "Method not allowed"}, headers=headers)
        return JSONResponse(status_code=exc.status_code, content={"error": exc.detail}, headers=headers)

    app.include_router(billing.router, tags=["Billing"])
    app.include_router(diagnostics.router, tags=["Diagnostics"])
    app.include_router(webhooks.router, tags=["Webhooks"])
    return app


app = create_app()
