from __future__ import annotations

import statistics
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from .category import Category
from .error_record import BatchError, ValidationError
from .import_row import InsertRecord

"""Result models for attendance import.

CategoryOutcome is what the inserter produces for one category; the
aggregator folds all outcomes plus the validation errors into ImportResult.
"""

__all__ = [
    "CategoryOutcome",
    "ImportResult",
    "BatchStatsAccumulator",
]


@dataclass
class CategoryOutcome:
    """Per-category insert outcome. Owned by exactly one worker until aggregation."""
    category: Category
    attempted: int = 0
    success_count: int = 0
    errors: list[BatchError] = field(default_factory=list)
    inserted: list[Any] = field(default_factory=list)  # store が返したレコード (入力順)
    succeeded: list[InsertRecord] = field(default_factory=list)
    chunk_sizes: list[int] = field(default_factory=list)
    used_fallback: bool = False


@dataclass(frozen=True)
class ImportResult:
    """Consolidated report of one import run.

    ``errors`` holds every ValidationError in row order followed by every
    BatchError in category-then-chunk order.
    """
    success_count: int
    per_category_counts: dict[Category, int]
    errors: list[ValidationError | BatchError]
    total_rows: int = 0
    inserted: dict[Category, list[Any]] = field(default_factory=dict)
    special_meal_counts: dict[str, int] = field(default_factory=dict)  # label -> Count 合計
    start_time: datetime | None = None
    end_time: datetime | None = None
    elapsed_seconds: float = 0.0

    @property
    def validation_errors(self) -> list[ValidationError]:
        return [e for e in self.errors if isinstance(e, ValidationError)]

    @property
    def batch_errors(self) -> list[BatchError]:
        return [e for e in self.errors if isinstance(e, BatchError)]

    @property
    def error_count(self) -> int:
        return len(self.errors)

    @property
    def has_errors(self) -> bool:
        return bool(self.errors)

    @property
    def throughput_rows_per_sec(self) -> float:
        if self.elapsed_seconds > 0:
            return self.success_count / self.elapsed_seconds
        return 0.0


class BatchStatsAccumulator:
    """Helper class to accumulate chunk insert timing statistics.

    Collects individual chunk timing data and calculates summary statistics.
    """

    def __init__(self) -> None:
        self.batch_times: list[float] = []

    def add_batch_time(self, elapsed_seconds: float) -> None:
        """Add a batch timing measurement."""
        self.batch_times.append(elapsed_seconds)

    def get_stats(self) -> tuple[int, float, float]:
        """Calculate batch statistics.

        Returns:
            tuple: (total_batches, avg_batch_seconds, p95_batch_seconds)
        """
        if not self.batch_times:
            return (0, 0.0, 0.0)

        total_batches = len(self.batch_times)
        avg_batch_seconds = statistics.mean(self.batch_times)

        if total_batches == 1:
            p95_batch_seconds = self.batch_times[0]
        else:
            p95_batch_seconds = statistics.quantiles(
                self.batch_times, n=20, method='inclusive'
            )[18]  # 95th percentile (19th out of 20 quantiles, 0-indexed)

        return (total_batches, avg_batch_seconds, p95_batch_seconds)
