"""Custom exception types for domain and API layers."""
from __future__ import annotations

from typing import Optional


class AppError(Exception):
    """Base app exception."""


class ValidationError(AppError):
    """Missing or malformed request input."""


class ConfigurationError(AppError):
    """A required secret or setting is absent from the environment."""


class ProviderError(AppError):
    """Billing provider call failure."""

    def __init__(self, message: str, error_type: Optional[str] = None, code: Optional[str] = None):
        super().__init__(message)
        self.error_type = error_type
        self.code = code


class WebhookError(AppError):
    """Webhook payload or signature could not be verified."""
