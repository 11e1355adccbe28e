from __future__ import annotations

import itertools
import logging
import re
from collections.abc import Mapping, Sequence
from typing import Any

from psycopg2.extras import execute_values

from ..models.category import CATEGORY_COLUMNS, MAX_BATCH_SIZE, Category
from ..models.config_models import GuestRegistryConfig, ImportConfig
from ..models.import_row import GuestRecord, GuestRegistry

"""Store adapters for the chunked inserter.

PostgresCategoryStore issues one ``INSERT ... VALUES %s RETURNING *`` per
chunk through psycopg2.extras.execute_values. The connection is expected to
run in autocommit mode so that a failed chunk never rolls back earlier ones.

InMemoryCategoryStore backs dry runs and tests.
"""

__all__ = [
    "StoreError",
    "PostgresCategoryStore",
    "InMemoryCategoryStore",
    "build_postgres_stores",
    "build_memory_stores",
    "load_guest_registry",
]

logger = logging.getLogger(__name__)

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


class StoreError(Exception):
    """Driver failure wrapped by a store adapter."""


def _check_identifier(name: str) -> str:
    if not _IDENTIFIER.match(name):
        raise StoreError(f"invalid SQL identifier: {name!r}")
    return name


def _rows_to_dicts(cursor: Any, rows: Sequence[Sequence[Any]]) -> list[dict[str, Any]]:
    names = [d[0] for d in (cursor.description or [])]
    if not names:
        return [dict(enumerate(r)) for r in rows]
    return [dict(zip(names, r, strict=False)) for r in rows]


class PostgresCategoryStore:
    """One category table in PostgreSQL."""

    def __init__(
        self,
        cursor: Any,
        table: str,
        columns: Sequence[str],
        *,
        returning: bool = True,
        page_size: int = MAX_BATCH_SIZE,
        bulk_insert_available: bool = True,
    ) -> None:
        self.cursor = cursor
        self.table = _check_identifier(table)
        self.columns = [_check_identifier(c) for c in columns]
        self.returning = returning
        self.page_size = page_size
        self.bulk_insert_available = bulk_insert_available

    def _sql(self) -> str:
        cols_sql = ",".join(f'"{c}"' for c in self.columns)
        sql = f"INSERT INTO {self.table} ({cols_sql}) VALUES %s"
        if self.returning:
            sql += " RETURNING *"
        return sql

    def _values(self, row: Mapping[str, Any]) -> tuple[Any, ...]:
        return tuple(row.get(c) for c in self.columns)

    def insert_many(self, rows: Sequence[Mapping[str, Any]]) -> list[Any] | None:
        if not rows:
            return []
        try:
            fetched = execute_values(
                self.cursor,
                self._sql(),
                [self._values(r) for r in rows],
                page_size=self.page_size,
                fetch=self.returning,
            )
        except Exception as e:
            raise StoreError(f"{self.table}: {e}") from e
        if not self.returning:
            return None
        return _rows_to_dicts(self.cursor, fetched or [])

    def insert_one(self, row: Mapping[str, Any]) -> Any:
        returned = self.insert_many([row])
        if returned:
            return returned[0]
        return None


class InMemoryCategoryStore:
    """List-backed store. Assigns sequential ``id`` values like a serial column."""

    def __init__(self, *, bulk_insert_available: bool = True, id_prefix: str = "mem") -> None:
        self.bulk_insert_available = bulk_insert_available
        self.rows: list[dict[str, Any]] = []
        self._ids = itertools.count(1)
        self._id_prefix = id_prefix

    def _stored(self, row: Mapping[str, Any]) -> dict[str, Any]:
        stored = {"id": f"{self._id_prefix}-{next(self._ids)}", **row}
        self.rows.append(stored)
        return stored

    def insert_many(self, rows: Sequence[Mapping[str, Any]]) -> list[Any]:
        return [self._stored(r) for r in rows]

    def insert_one(self, row: Mapping[str, Any]) -> Any:
        return self._stored(row)


def build_postgres_stores(conn: Any, config: ImportConfig) -> dict[Category, PostgresCategoryStore]:
    """One store per category, table names from config.

    Each store gets its own cursor: categories may run on worker threads and
    psycopg2 cursors must not be shared between threads (the connection may).
    """
    return {
        category: PostgresCategoryStore(
            conn.cursor(),
            config.tables[category],
            CATEGORY_COLUMNS[category],
            page_size=config.batch_size,
        )
        for category in Category
    }


def build_memory_stores() -> dict[Category, InMemoryCategoryStore]:
    return {category: InMemoryCategoryStore(id_prefix=category.value) for category in Category}


def load_guest_registry(cursor: Any, source: GuestRegistryConfig) -> GuestRegistry:
    """Snapshot the guests table into a GuestRegistry."""
    cols = [
        _check_identifier(source.id_column),
        _check_identifier(source.code_column),
        _check_identifier(source.first_name_column),
        _check_identifier(source.last_name_column),
    ]
    table = _check_identifier(source.table)
    try:
        cursor.execute(f"SELECT {', '.join(cols)} FROM {table}")
        rows = cursor.fetchall()
    except Exception as e:
        raise StoreError(f"failed loading guest registry from {table}: {e}") from e
    guests = [
        GuestRecord(
            id=r[0],
            guest_code=str(r[1] or "").strip(),
            first_name=str(r[2] or "").strip(),
            last_name=str(r[3] or "").strip(),
        )
        for r in rows
    ]
    logger.info(f"guest registry loaded: {len(guests)} guests from {table}")
    return GuestRegistry(guests)
