"""Database migration runner for deploys.

- Prefer Alembic migrations for deterministic schema management.
- If the reminder tables already exist but Alembic history is not tracking them,
  verify the schema and `stamp head` instead of failing.
"""

from __future__ import annotations

import logging
import os
import sys
from typing import List, Tuple

from alembic import command
from alembic.config import Config
from sqlalchemy import inspect

from petreminders.database.database import DATABASE_URL, _is_sqlite_url, build_engine

logger = logging.getLogger(__name__)


def _alembic_cfg() -> Config:
    cfg = Config(os.getenv("ALEMBIC_INI", "alembic.ini"))
    cfg.set_main_option("sqlalchemy.url", DATABASE_URL)
    return cfg


def _required_schema_checks() -> List[Tuple[str, str]]:
    """Return (table, column) pairs required to safely stamp head."""
    return [
        ("reminders", "pet_id"),
        ("reminders", "schedule_type"),
        ("reminders", "times"),
        ("reminders", "timezone"),
        ("reminders", "notifications_enabled"),
        ("reminder_occurrences", "reminder_id"),
        ("reminder_occurrences", "occurs_at"),
        ("reminder_occurrences", "status"),
    ]


def missing_requirements(engine) -> List[str]:
    inspector = inspect(engine)
    tables = set(inspector.get_table_names())
    missing: List[str] = []
    columns: dict = {}
    for table, column in _required_schema_checks():
        if table not in tables:
            if f"missing table: {table}" not in missing:
                missing.append(f"missing table: {table}")
            continue
        if table not in columns:
            columns[table] = {c["name"] for c in inspector.get_columns(table)}
        if column not in columns[table]:
            missing.append(f"missing column: {table}.{column}")
    return missing


def main() -> int:
    if _is_sqlite_url(DATABASE_URL):
        command.upgrade(_alembic_cfg(), "head")
        return 0

    engine = build_engine(DATABASE_URL)

    try:
        command.upgrade(_alembic_cfg(), "head")
        return 0
    except Exception as e:
        msg = str(e).lower()
        if not any(s in msg for s in ["duplicate", "already exists", "exists"]):
            raise

        # Only stamp head if the expected schema is present.
        missing = missing_requirements(engine)
        if missing:
            raise RuntimeError(
                "Alembic upgrade failed and schema is not at expected baseline; refusing to stamp head. "
                + "; ".join(missing)
            ) from e

        logger.warning("Reminder tables already exist; stamping Alembic head")
        command.stamp(_alembic_cfg(), "head")
        return 0


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    sys.exit(main())
