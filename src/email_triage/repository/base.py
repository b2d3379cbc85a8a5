"""Shared repository plumbing."""

from __future__ import annotations

import json
import uuid
from contextlib import contextmanager
from typing import Any, Iterator

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from email_triage.exceptions import PersistenceError
from email_triage.utils import retry_on_failure

# Concurrent inserts can compute the same `MAX(seq) + 1`; the unique index on
# `seq` rejects the loser, which simply tries again.
SEQ_CONFLICT_RETRIES = 3


def new_id() -> str:
    return str(uuid.uuid4())


def dumps(value: Any) -> str:
    return json.dumps(value, default=str)


def loads(raw: str | None, default: Any = None) -> Any:
    if raw is None or raw == "":
        return default
    return json.loads(raw)


@contextmanager
def persistence_errors(operation: str) -> Iterator[None]:
    """Re-raise SQLAlchemy failures as PersistenceError naming the operation."""

    try:
        yield
    except SQLAlchemyError as e:
        raise PersistenceError(f"{operation} failed: {e}") from e


def insert_sequenced(engine, statement, params: dict[str, Any], operation: str) -> None:
    """Run an INSERT whose `seq` column is `MAX(seq) + 1`, retrying on a seq collision."""

    @retry_on_failure(max_retries=SEQ_CONFLICT_RETRIES, delay=0.01, exceptions=(IntegrityError,))
    def insert_row() -> None:
        with engine.begin() as conn:
            conn.execute(statement, params)

    with persistence_errors(operation):
        insert_row()


class Repository:
    """Base class holding the engine every repository queries through."""

    def __init__(self, engine) -> None:
        self.engine = engine
