"""Dialect-aware insert-if-missing used for per-key lock rows."""

from __future__ import annotations

from typing import Any, Type

from sqlalchemy import insert
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import UnboundExecutionError
from sqlalchemy.orm import Session


def _dialect_name(db: Session) -> str:
    try:
        return str(db.get_bind().dialect.name).lower()
    except UnboundExecutionError:
        return "postgresql"


def insert_if_missing(db: Session, model: Type[Any], key_column: str, values: dict[str, Any]) -> None:
    """Insert a row keyed by ``key_column`` unless one already exists."""
    dialect = _dialect_name(db)

    if dialect == "postgresql":
        db.execute(
            pg_insert(model).values(**values).on_conflict_do_nothing(index_elements=[key_column])
        )
        return

    if dialect == "sqlite":
        db.execute(
            sqlite_insert(model).values(**values).on_conflict_do_nothing(
                index_elements=[key_column]
            )
        )
        return

    # Generic fallback relies on the caller's keyed lock to avoid duplicate inserts
    if db.get(model, values[key_column]) is None:
        db.execute(insert(model).values(**values))
