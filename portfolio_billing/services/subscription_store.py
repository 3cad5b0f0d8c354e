from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from portfolio_billing.core.exceptions import ValidationError
from portfolio_billing.core.logger import get_logger
from portfolio_billing.models import LocalSubscription

logger = get_logger(__name__)

_WRITABLE_COLUMNS = frozenset(
    column.key
    for column in LocalSubscription.__table__.columns
    if column.key not in {"id", "user_id", "created_at"}
)


def _as_uuid(user_id: str | uuid.UUID) -> uuid.UUID:
    if isinstance(user_id, uuid.UUID):
        return user_id
    try:
        return uuid.UUID(str(user_id))
    except ValueError as exc:
        raise ValidationError(f"Invalid user id: {user_id}") from exc


class SubscriptionStore:
    """Read/write access to the local ``subscriptions`` table, keyed by user."""

    def __init__(self, db: Session):
        self.db = db

    def get_by_user_id(self, user_id: str | uuid.UUID) -> Optional[LocalSubscription]:
        return self.db.execute(
            select(LocalSubscription).where(LocalSubscription.user_id == _as_uuid(user_id))
        ).scalar_one_or_none()

    def get_by_customer_id(self, customer_id: str) -> Optional[LocalSubscription]:
        return self.db.execute(
            select(LocalSubscription).where(LocalSubscription.stripe_customer_id == customer_id)
        ).scalars().first()

    def upsert(self, user_id: str | uuid.UUID, **fields: Any) -> LocalSubscription:
        """Insert or update the record for ``user_id``; unknown columns are rejected."""
        unknown = sorted(set(fields) - _WRITABLE_COLUMNS)
        if unknown:
            raise ValidationError(f"Unknown subscription columns: {', '.join(unknown)}")

        fields.setdefault("updated_at", datetime.now(timezone.utc))
        record = self.get_by_user_id(user_id)
        if record is None:
            record = LocalSubscription(user_id=_as_uuid(user_id))
            self.db.add(record)
        for key, value in fields.items():
            setattr(record, key, value)

        try:
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        self.db.refresh(record)
        logger.info("User subscription updated: user=%s fields=%s", user_id, sorted(fields))
        return record

    def delete(self, user_id: str | uuid.UUID) -> bool:
        record = self.get_by_user_id(user_id)
        if record is None:
            return False
        self.db.delete(record)
        self.db.commit()
        return True
