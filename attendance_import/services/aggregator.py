from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from datetime import UTC, datetime
from typing import Any, TypeVar

from ..models.category import CATEGORY_ORDER, Category
from ..models.error_record import BatchError, ValidationError
from ..models.import_result import CategoryOutcome, ImportResult

"""Result aggregation.

Folds the validation errors and the per-category outcomes into ImportResult
and describes how inserted records join existing in-memory collections:
new records are prepended (most recent first), existing ones keep their order.
"""

__all__ = [
    "aggregate",
    "prepend_records",
    "merge_inserted",
    "special_meal_totals",
]

T = TypeVar("T")


def special_meal_totals(outcome: CategoryOutcome | None) -> dict[str, int]:
    """Sum of Count per special meal label over successfully inserted records."""
    totals: dict[str, int] = {}
    if outcome is None:
        return totals
    for record in outcome.succeeded:
        label = record.label or record.values.get("meal_type") or "special"
        totals[label] = totals.get(label, 0) + record.count
    return totals


def aggregate(
    validation_errors: Iterable[ValidationError],
    outcomes: Mapping[Category, CategoryOutcome],
    *,
    total_rows: int = 0,
    start_time: datetime | None = None,
    end_time: datetime | None = None,
) -> ImportResult:
    """Merge everything into one ImportResult.

    errors = validation errors (row order) + batch errors (category, then chunk order).
    """
    ordered_validation = sorted(validation_errors, key=lambda e: e.row_number)  # stable

    per_category: dict[Category, int] = {c: 0 for c in CATEGORY_ORDER}
    batch_errors: list[BatchError] = []
    inserted: dict[Category, list[Any]] = {}
    for category in CATEGORY_ORDER:
        outcome = outcomes.get(category)
        if outcome is None:
            continue
        per_category[category] = outcome.success_count
        batch_errors.extend(outcome.errors)
        if outcome.inserted:
            inserted[category] = list(outcome.inserted)

    errors: list[ValidationError | BatchError] = [*ordered_validation, *batch_errors]

    end_time = end_time or datetime.now(UTC)
    elapsed = (end_time - start_time).total_seconds() if start_time else 0.0

    return ImportResult(
        success_count=sum(per_category.values()),
        per_category_counts=per_category,
        errors=errors,
        total_rows=total_rows,
        inserted=inserted,
        special_meal_counts=special_meal_totals(outcomes.get(Category.SPECIAL_MEALS)),
        start_time=start_time,
        end_time=end_time,
        elapsed_seconds=elapsed,
    )


def prepend_records(existing: Sequence[T], new: Sequence[T]) -> list[T]:
    """``[X, Y] + [A, B] -> [X, Y, A, B]``: new first, in insert order."""
    return [*new, *existing]


def merge_inserted(
    existing: Mapping[Category, Sequence[Any]],
    result: ImportResult,
) -> dict[Category, list[Any]]:
    """Per-category collections after applying the run's inserts.

    Categories without new records are returned unchanged (copied).
    """
    merged: dict[Category, list[Any]] = {c: list(v) for c, v in existing.items()}
    for category, new in result.inserted.items():
        merged[category] = prepend_records(existing.get(category, ()), new)
    return merged
