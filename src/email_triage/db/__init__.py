"""Database engine and schema helpers."""

from __future__ import annotations

import structlog
from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine

from email_triage.db.schema import ensure_schema

logger = structlog.get_logger()


def create_db_engine(database_url: str, echo: bool = False) -> Engine:
    """Create a SQLAlchemy engine for the given URL.

    SQLite connections are shared across the worker threads used for
    blocking calls, so same-thread checking is disabled for them.
    """

    connect_args: dict[str, object] = {}
    if database_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False

    engine = create_engine(database_url, echo=echo, connect_args=connect_args)
    logger.debug("db_engine_created", dialect=engine.dialect.name)
    return engine


def check_connection(engine: Engine) -> None:
    """Verify the database is reachable."""

    with engine.connect() as conn:
        conn.execute(text("SELECT 1"))


__all__ = ["create_db_engine", "ensure_schema", "check_connection"]
