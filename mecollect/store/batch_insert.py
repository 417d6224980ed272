from __future__ import annotations

import logging
import time
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from typing import Any

from psycopg2.extras import execute_values

"""Batched INSERT helper over psycopg2.extras.execute_values.

Table and column names are trusted identifiers from this package, never user
input. Driver errors are wrapped in BatchInsertError.
"""

__all__ = [
    "BatchInsertError",
    "InsertResult",
    "batch_insert",
]

logger = logging.getLogger(__name__)


class BatchInsertError(Exception):
    pass


@dataclass(frozen=True)
class InsertResult:
    inserted_rows: int
    returned_values: list[tuple[Any, ...]] | None = None
    elapsed_seconds: float = 0.0


def batch_insert(
    cursor: Any,
    table: str,
    columns: Sequence[str],
    rows: Iterable[Sequence[Any]],
    returning: str | None = None,
    on_conflict: str | None = None,
    page_size: int = 1000,
) -> InsertResult:
    """Insert ``rows`` into ``table`` in pages of ``page_size``.

    Parameters
    ----------
    cursor: psycopg2 cursor
    table: target table
    columns: insert columns, in row order
    rows: row sequences
    returning: column list for a RETURNING clause (e.g. ``"id"``)
    on_conflict: conflict target/action appended verbatim
        (e.g. ``"(idempotency_key) DO NOTHING"``)
    """
    rows_list = [tuple(r) for r in rows]
    if not rows_list:
        return InsertResult(inserted_rows=0, returned_values=[] if returning else None)

    cols_sql = ",".join(f'"{c}"' for c in columns)
    sql = f"INSERT INTO {table} ({cols_sql}) VALUES %s"
    if on_conflict:
        sql += f" ON CONFLICT {on_conflict}"
    if returning:
        sql += f" RETURNING {returning}"

    start_time = time.time()
    try:
        returned = execute_values(
            cursor, sql, rows_list, page_size=page_size, fetch=bool(returning)
        )
    except Exception as e:
        raise BatchInsertError(str(e)) from e
    elapsed = time.time() - start_time
    logger.debug(f"insert {table}: rows={len(rows_list)} elapsed={elapsed:.4f}s")

    return InsertResult(
        inserted_rows=len(rows_list),
        returned_values=list(returned) if returning else None,
        elapsed_seconds=elapsed,
    )
