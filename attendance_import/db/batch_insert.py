from __future__ import annotations

import logging
import time
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Protocol, TypeVar

from ..models.category import MAX_BATCH_SIZE, Category
from ..models.error_record import BatchError
from ..models.import_result import CategoryOutcome
from ..models.import_row import InsertRecord

"""Chunked bulk insert per category.

Each category's records are split into consecutive chunks of at most
MAX_BATCH_SIZE and every chunk gets exactly one insert_many() call. A failed
chunk becomes a BatchError and processing moves on; nothing is retried.

When a store has no bulk capability (decided once, up front, through
CategoryCapability) the category falls back to one insert_one() call per
record. That is the only path that issues per-record inserts.

Chunks of one category are inserted strictly in order so that chunk indices
in BatchError stay meaningful.
"""

__all__ = [
    "BatchInsertError",
    "BatchMetrics",
    "CategoryCapability",
    "CategoryStore",
    "chunk_records",
    "resolve_capabilities",
    "insert_category",
]

logger = logging.getLogger(__name__)

T = TypeVar("T")


class BatchInsertError(Exception):
    pass


class CategoryStore(Protocol):
    """Backing store for one category.

    insert_many: accepts an ordered list of <= MAX_BATCH_SIZE payloads and
        either succeeds for all of them or raises (no partial-chunk success).
    insert_one: single payload insert, used only on the fallback path.
    Both return the stored record(s); None means "use the payloads as-is".
    """
    bulk_insert_available: bool

    def insert_many(self, rows: Sequence[Mapping[str, Any]]) -> list[Any] | None: ...

    def insert_one(self, row: Mapping[str, Any]) -> Any: ...


@dataclass(frozen=True)
class BatchMetrics:
    """Timing data for a single insert call."""
    category: Category
    chunk_index: int
    batch_size: int  # Number of records in this call
    elapsed_seconds: float
    start_time: float  # time.time()
    end_time: float  # time.time()
    succeeded: bool


@dataclass(frozen=True)
class CategoryCapability:
    """Static insert strategy for one category, resolved before any chunk runs."""
    category: Category
    bulk_insert_available: bool


def chunk_records(records: Sequence[T], batch_size: int = MAX_BATCH_SIZE) -> list[list[T]]:
    """Split into consecutive slices of at most ``batch_size`` (empty input -> [])."""
    if batch_size < 1 or batch_size > MAX_BATCH_SIZE:
        raise BatchInsertError(f"batch_size must be between 1 and {MAX_BATCH_SIZE}, got {batch_size}")
    return [list(records[i:i + batch_size]) for i in range(0, len(records), batch_size)]


def resolve_capabilities(
    stores: Mapping[Category, Any],
    overrides: Mapping[Category, bool] | None = None,
) -> dict[Category, CategoryCapability]:
    """Decide bulk vs per-record once per category.

    A store advertises bulk support through its ``bulk_insert_available``
    attribute; config may switch it off per category but never on.
    """
    overrides = overrides or {}
    capabilities: dict[Category, CategoryCapability] = {}
    for category, store in stores.items():
        available = bool(getattr(store, "bulk_insert_available", False))
        available = available and overrides.get(category, True)
        capabilities[category] = CategoryCapability(category=category, bulk_insert_available=available)
    return capabilities


def _emit_metrics(
    callback: Callable[[BatchMetrics], None] | None,
    category: Category,
    chunk_index: int,
    size: int,
    start: float,
    succeeded: bool,
) -> None:
    if callback is None:
        return
    end = time.time()
    metrics = BatchMetrics(
        category=category,
        chunk_index=chunk_index,
        batch_size=size,
        elapsed_seconds=end - start,
        start_time=start,
        end_time=end,
        succeeded=succeeded,
    )
    # 計測側の失敗で挿入結果を失わない
    try:
        callback(metrics)
    except Exception as e:
        logger.warning(f"metrics callback failed ({category.value} chunk {chunk_index + 1}): {e}")


def insert_category(
    category: Category,
    records: Sequence[InsertRecord],
    store: CategoryStore,
    capability: CategoryCapability,
    *,
    batch_size: int = MAX_BATCH_SIZE,
    metrics_callback: Callable[[BatchMetrics], None] | None = None,
) -> CategoryOutcome:
    """Insert one category's records and return its isolated outcome.

    Parameters
    ----------
    category: category being inserted
    records: categorized records in source order
    store: backing store for this category
    capability: bulk / per-record decision made before processing
    batch_size: chunk upper bound (<= MAX_BATCH_SIZE)
    metrics_callback: Optional callback receiving BatchMetrics after every insert call.
        Not invoked when ``records`` is empty.
    """
    outcome = CategoryOutcome(category=category, attempted=len(records))
    if not records:
        return outcome

    if not capability.bulk_insert_available:
        logger.info(f"{category.value}: bulk insert unavailable, inserting {len(records)} records individually")
        outcome.used_fallback = True
        _insert_individually(outcome, records, store, metrics_callback)
        return outcome

    for chunk_index, chunk in enumerate(chunk_records(records, batch_size)):
        payloads = [r.values for r in chunk]
        outcome.chunk_sizes.append(len(chunk))
        start = time.time()
        try:
            returned = store.insert_many(payloads)
        except Exception as e:
            logger.error(f"Batch insert error ({category.value} chunk {chunk_index + 1}): {e}")
            outcome.errors.append(BatchError(category=category, chunk_index=chunk_index, error=e))
            _emit_metrics(metrics_callback, category, chunk_index, len(chunk), start, False)
            continue
        outcome.success_count += len(chunk)
        outcome.succeeded.extend(chunk)
        outcome.inserted.extend(returned if returned is not None else payloads)
        _emit_metrics(metrics_callback, category, chunk_index, len(chunk), start, True)

    return outcome


def _insert_individually(
    outcome: CategoryOutcome,
    records: Sequence[InsertRecord],
    store: CategoryStore,
    metrics_callback: Callable[[BatchMetrics], None] | None,
) -> None:
    category = outcome.category
    for index, record in enumerate(records):
        outcome.chunk_sizes.append(1)
        start = time.time()
        try:
            returned = store.insert_one(record.values)
        except Exception as e:
            logger.error(f"Insert error ({category.value} row {record.row_number}): {e}")
            outcome.errors.append(
                BatchError(category=category, chunk_index=index, error=e, row_number=record.row_number)
            )
            _emit_metrics(metrics_callback, category, index, 1, start, False)
            continue
        outcome.success_count += 1
        outcome.succeeded.append(record)
        outcome.inserted.append(returned if returned is not None else record.values)
        _emit_metrics(metrics_callback, category, index, 1, start, True)
