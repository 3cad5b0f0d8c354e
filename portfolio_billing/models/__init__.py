"""
SQLAlchemy models for the local subscription store.
"""
from __future__ import annotations

import uuid

from sqlalchemy import Boolean, Column, DateTime, Text, Uuid, false
from sqlalchemy.ext.compiler import compiles
from sqlalchemy.orm import declarative_base
from sqlalchemy.sql import func
from sqlalchemy.sql.expression import FunctionElement

Base = declarative_base()

# Bump together with the Supabase migration that changes the subscriptions table.
SUBSCRIPTION_SCHEMA_VERSION = 2


class random_uuid(FunctionElement):
    """Database-side UUID default, so rows inserted outside the ORM still get an id."""

    type = Uuid()
    inherit_cache = True


@compiles(random_uuid)
def _random_uuid_postgres(element, compiler, **kw):
    return "gen_random_uuid()"


@compiles(random_uuid, "sqlite")
def _random_uuid_sqlite(element, compiler, **kw):
    # Matches the 32-char hex form Uuid uses on SQLite.
    return "(lower(hex(randomblob(16))))"


class LocalSubscription(Base):
    __tablename__ = "subscriptions"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4, server_default=random_uuid())
    user_id = Column(Uuid, nullable=False, unique=True, index=True)
    plan_type = Column(Text, nullable=False, default="basic")
    status = Column(Text, nullable=False, default="active")
    stripe_customer_id = Column(Text, index=True)
    stripe_subscription_id = Column(Text)
    is_trialing = Column(Boolean, default=False, server_default=false())
    trial_ends_at = Column(DateTime(timezone=True))
    billing_interval = Column(Text)
    coupon_code = Column(Text)
    cancel_at_period_end = Column(Boolean, default=False, server_default=false())
    grace_period_ends_at = Column(DateTime(timezone=True))
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


def declared_subscription_columns() -> dict[str, str]:
    """Column name -> declared SQL type name for the subscriptions table."""
    return {
        column.name: type(column.type).__name__.upper()
        for column in LocalSubscription.__table__.columns
    }


__all__ = [
    "Base",
    "LocalSubscription",
    "SUBSCRIPTION_SCHEMA_VERSION",
    "declared_subscription_columns",
]
