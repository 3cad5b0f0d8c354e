"""
Drift check between the declared subscriptions model and the live table.

The live table is inspected, a sample row is read, and a minimal insert is
attempted inside a transaction that is always rolled back, so the check
never leaves rows behind.
"""
from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from sqlalchemy import inspect, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from portfolio_billing.core.logger import get_logger
from portfolio_billing.models import (
    LocalSubscription,
    SUBSCRIPTION_SCHEMA_VERSION,
    declared_subscription_columns,
)

logger = get_logger(__name__)

TEST_INSERT_USER_ID = uuid.UUID("00000000-0000-0000-0000-000000000000")
PERMISSION_DENIED_SQLSTATE = "42501"


@dataclass
class SchemaReport:
    schema_version: int = SUBSCRIPTION_SCHEMA_VERSION
    table_accessible: bool = False
    access_error: Optional[str] = None
    sample_columns: Dict[str, str] = field(default_factory=dict)
    actual_columns: List[str] = field(default_factory=list)
    missing_columns: List[str] = field(default_factory=list)
    extra_columns: List[str] = field(default_factory=list)
    insert_ok: Optional[bool] = None
    insert_error: Optional[str] = None
    insert_error_kind: Optional[str] = None

    @property
    def has_drift(self) -> bool:
        return (
            not self.table_accessible
            or bool(self.missing_columns)
            or self.insert_ok is False
        )


def classify_insert_error(exc: SQLAlchemyError) -> str:
    """Bucket a failed test insert into missing_column, permission or other."""
    orig = getattr(exc, "orig", None)
    sqlstate = getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)
    if sqlstate == PERMISSION_DENIED_SQLSTATE:
        return "permission"

    message = str(orig or exc).lower()
    if "column" in message and ("does not exist" in message or "has no column" in message):
        return "missing_column"
    if "permission denied" in message:
        return "permission"
    return "other"


def check_subscription_schema(engine: Engine) -> SchemaReport:
    report = SchemaReport()
    table = LocalSubscription.__table__

    try:
        inspector = inspect(engine)
        if not inspector.has_table(table.name):
            report.access_error = f"table {table.name!r} does not exist"
            return report
        report.actual_columns = [column["name"] for column in inspector.get_columns(table.name)]

        with engine.connect() as connection:
            row = connection.execute(text(f"SELECT * FROM {table.name} LIMIT 1")).mappings().first()
    except SQLAlchemyError as exc:
        report.access_error = str(exc)
        logger.error("Cannot access %s table: %s", table.name, exc)
        return report

    report.table_accessible = True
    if row is not None:
        report.sample_columns = {key: type(value).__name__ for key, value in row.items()}

    declared = declared_subscription_columns()
    report.missing_columns = sorted(set(declared) - set(report.actual_columns))
    report.extra_columns = sorted(set(report.actual_columns) - set(declared))

    with engine.connect() as connection:
        transaction = connection.begin()
        try:
            connection.execute(
                text(
                    f"INSERT INTO {table.name} (user_id, plan_type, status) "
                    "VALUES (:user_id, :plan_type, :status)"
                ),
                {"user_id": str(TEST_INSERT_USER_ID), "plan_type": "basic", "status": "active"},
            )
            report.insert_ok = True
        except SQLAlchemyError as exc:
            report.insert_ok = False
            report.insert_error = str(getattr(exc, "orig", None) or exc)
            report.insert_error_kind = classify_insert_error(exc)
            logger.warning("Test insert failed (%s): %s", report.insert_error_kind, report.insert_error)
        finally:
            transaction.rollback()

    return report
