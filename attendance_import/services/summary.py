from __future__ import annotations

from ..models.category import CATEGORY_ORDER
from ..models.import_result import ImportResult

"""Summary rendering for import results.

render_summary_line produces the machine-readable SUMMARY line:
SUMMARY rows={n} imported={s} errors={e} meals={..} ... special_meals={..}
batches={b} elapsed_sec={x} throughput_rps={y}

render_result_message produces the sentence shown to the operator.
"""

__all__ = [
    "render_summary_line",
    "render_result_message",
]

MAX_LISTED_ERRORS = 3


def _format_number(value: float) -> str:
    if value == 0:
        return "0"
    if value == int(value):
        return str(int(value))
    if value < 0.01:
        # Format very small numbers to avoid scientific notation
        return f"{value:.6f}".rstrip('0').rstrip('.')
    return f"{value:.3f}".rstrip('0').rstrip('.')


def render_summary_line(result: ImportResult, total_batches: int = 0) -> str:
    """Render the SUMMARY line for one run.

    Examples:
        >>> from attendance_import.models.category import Category
        >>> result = ImportResult(
        ...     success_count=3, per_category_counts={Category.MEALS: 2, Category.SHOWERS: 1},
        ...     errors=[], total_rows=3, elapsed_seconds=2.0,
        ... )
        >>> render_summary_line(result, total_batches=2)  # doctest: +ELLIPSIS
        'SUMMARY rows=3 imported=3 errors=0 meals=2 showers=1 laundry=0 ... batches=2 elapsed_sec=2 throughput_rps=1.5'
    """
    per_category = " ".join(
        f"{c.value}={result.per_category_counts.get(c, 0)}" for c in CATEGORY_ORDER
    )
    return (
        f"SUMMARY rows={result.total_rows} "
        f"imported={result.success_count} "
        f"errors={result.error_count} "
        f"{per_category} "
        f"batches={total_batches} "
        f"elapsed_sec={_format_number(result.elapsed_seconds)} "
        f"throughput_rps={_format_number(result.throughput_rows_per_sec)}"
    )


def render_result_message(result: ImportResult) -> str:
    """Operator-facing sentence, listing at most three errors."""
    special = ""
    if result.special_meal_counts:
        details = ", ".join(f"{count} {label}" for label, count in result.special_meal_counts.items())
        special = f" (including {details})"

    if not result.errors:
        return f"Successfully imported {result.success_count} attendance records{special}"

    listed = "; ".join(str(e) for e in result.errors[:MAX_LISTED_ERRORS])
    more = "..." if result.error_count > MAX_LISTED_ERRORS else ""
    if result.success_count > 0:
        return (
            f"Imported {result.success_count} records{special} "
            f"with {result.error_count} errors: {listed}{more}"
        )
    return f"Failed to import records: {listed}{more}"
