"""Dialect-aware ``INSERT .. ON CONFLICT`` for the store.

The store's uniqueness constraints are the only concurrency guard the engine
relies on (deal key, row hash, payout idempotency key), so every bulk write
that may race goes through here instead of a read-then-write.
"""
from __future__ import annotations

from typing import Any, Sequence

from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session


def _dialect_insert(session: Session, model: Any):
    dialect = session.get_bind().dialect.name
    if dialect == "postgresql":
        return postgresql.insert(model)
    if dialect == "sqlite":
        return sqlite.insert(model)
    raise NotImplementedError(f"upsert not supported for dialect '{dialect}'")


def upsert_rows(
    session: Session,
    model: Any,
    rows: Sequence[dict[str, Any]],
    *,
    conflict_columns: Sequence[str],
    ignore_duplicates: bool = False,
    update_columns: Sequence[str] | None = None,
) -> int:
    """Insert ``rows``; on conflict overwrite (default) or skip.

    Returns the number of rows the database reports as affected. With
    ``ignore_duplicates`` this is the number actually inserted.
    """
    if not rows:
        return 0
    stmt = _dialect_insert(session, model).values(list(rows))
    if ignore_duplicates:
        stmt = stmt.on_conflict_do_nothing(index_elements=list(conflict_columns))
    else:
        columns = update_columns or [c for c in rows[0].keys() if c not in conflict_columns]
        stmt = stmt.on_conflict_do_update(
            index_elements=list(conflict_columns),
            set_={c: stmt.excluded[c] for c in columns},
        )
    result = session.execute(stmt)
    return int(result.rowcount or 0)


__all__ = ["upsert_rows"]
