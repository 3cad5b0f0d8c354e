"""
Compare the live subscriptions table with the declared model.

Usage:
  python scripts/check_subscription_columns.py

Exits 1 when the table is unreachable, a declared column is missing, or the
minimal test insert fails. The test insert is always rolled back.
"""
from __future__ import annotations

import sys

from portfolio_billing.config import get_settings
from portfolio_billing.core.logger import configure_logging
from portfolio_billing.database import get_engine
from portfolio_billing.services.schema_check import check_subscription_schema


def main() -> int:
    configure_logging(get_settings().log_level)
    report = check_subscription_schema(get_engine())

    print(f"Declared schema version: {report.schema_version}")
    if not report.table_accessible:
        print(f"Cannot access subscriptions table: {report.access_error}")
        return 1

    print("Subscriptions table is accessible")
    if report.sample_columns:
        print("Sample record columns:")
        for name, type_name in report.sample_columns.items():
            print(f"  - {name}: {type_name}")
    else:
        print("No existing records found")

    if report.missing_columns:
        print(f"Missing declared columns: {', '.join(report.missing_columns)}")
    if report.extra_columns:
        print(f"Undeclared columns in database: {', '.join(report.extra_columns)}")

    if report.insert_ok:
        print("Test insert succeeded (rolled back)")
    else:
        print(f"Test insert failed: {report.insert_error}")
        if report.insert_error_kind == "missing_column":
            print("The subscriptions table needs additional columns; apply the pending migration.")
        elif report.insert_error_kind == "permission":
            print("Permission error - row level security policies may be blocking access.")

    return 1 if report.has_drift else 0


if __name__ == "__main__":
    sys.exit(main())
