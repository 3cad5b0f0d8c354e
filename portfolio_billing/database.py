"""
Database connection and session management.
"""
from __future__ import annotations

from functools import lru_cache
from typing import Any, Generator

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from portfolio_billing.config import get_settings


@lru_cache
def get_engine() -> Engine:
    """Engine for the Supabase Postgres database, created on first use."""
    settings = get_settings()
    options: dict[str, Any] = {"pool_pre_ping": True, "echo": False}
    if not settings.database_url.lower().startswith("sqlite"):
        options.update(pool_size=settings.db_pool_size, max_overflow=settings.db_max_overflow)
    return create_engine(settings.database_url, **options)


@lru_cache
def get_sessionmaker() -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, bind=get_engine())


def get_db() -> Generator[Session, None, None]:
    """
    Dependency for getting a database session.
    """
    db = get_sessionmaker()()
    try:
        yield db
    finally:
        db.close()


def database_health(engine: Engine | None = None) -> dict[str, Any]:
    """
    Return structured database health details.
    """
    try:
        with (engine or get_engine()).connect() as connection:
            connection.execute(text("SELECT 1"))
        return {"ok": True}
    except SQLAlchemyError as exc:
        return {
            "ok": False,
            "error": str(exc),
        }
