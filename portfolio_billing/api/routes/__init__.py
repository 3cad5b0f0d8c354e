"""
API Routes Package
"""
from . import (
    billing,
    diagnostics,
    webhooks,
)
