"""Per-endpoint CORS headers and JSON responses for browser-facing handlers."""
from __future__ import annotations

from typing import Any, Iterable

from fastapi import Request, status
from fastapi.responses import JSONResponse, Response

from portfolio_billing.core.exceptions import ValidationError


def cors_headers(methods: Iterable[str]) -> dict[str, str]:
    allowed = [m.upper() for m in methods if m.upper() not in {"OPTIONS", "HEAD"}]
    allowed.append("OPTIONS")
    return {
        "Access-Control-Allow-Origin": "*",
        "Access-Control-Allow-Headers": "Content-Type",
        "Access-Control-Allow-Methods": ", ".join(allowed),
    }


def preflight(methods: Iterable[str]) -> Response:
    """200 with an empty body, as browsers expect for OPTIONS."""
    return Response(status_code=status.HTTP_200_OK, headers=cors_headers(methods))


def cors_json(
    content: Any,
    methods: Iterable[str],
    status_code: int = status.HTTP_200_OK,
) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=content, headers=cors_headers(methods))


async def read_json(request: Request) -> Any:
    body = await request.body()
    if not body:
        return {}
    try:
        return await request.json()
    except ValueError as exc:
        raise ValidationError("Request body must be valid JSON") from exc
