from __future__ import annotations

from collections.abc import Callable, Iterable
from datetime import datetime
from typing import Any

from ..models.category import CATEGORY_COLUMNS, CATEGORY_ORDER, Category
from ..models.import_row import InsertRecord, ResolvedRecord
from .validator import declared_category, parse_count, parse_submitted_date

"""Categorizer: assigns each validated record to exactly one category.

Single pass, input order preserved inside each category. The generic row map
is turned into the fixed payload of its category here (see CATEGORY_COLUMNS).
Input must already have passed validation.
"""

__all__ = [
    "categorize",
    "build_insert_record",
]


def _meal_payload(record: ResolvedRecord, when: datetime, count: int) -> dict[str, Any]:
    return {
        "guest_id": record.guest_id,
        "meal_type": record.special.meal_type if record.special else "guest",
        "quantity": count,
        "served_on": when.date().isoformat(),
        "recorded_at": when.isoformat(),
    }


def _shower_payload(record: ResolvedRecord, when: datetime, count: int) -> dict[str, Any]:
    return {"guest_id": record.guest_id, "scheduled_for": when.date().isoformat(), "status": "done"}


def _laundry_payload(record: ResolvedRecord, when: datetime, count: int) -> dict[str, Any]:
    return {
        "guest_id": record.guest_id,
        "scheduled_for": when.date().isoformat(),
        "laundry_type": "onsite",
        "status": "done",
    }


def _bicycle_payload(record: ResolvedRecord, when: datetime, count: int) -> dict[str, Any]:
    return {
        "guest_id": record.guest_id,
        "requested_at": when.isoformat(),
        "repair_type": "Legacy Import",
        "notes": "Imported from legacy system",
        "status": "done",
    }


def _visit_payload(record: ResolvedRecord, when: datetime, count: int) -> dict[str, Any]:
    return {"guest_id": record.guest_id, "served_at": when.isoformat()}


_PAYLOAD_BUILDERS: dict[Category, Callable[[ResolvedRecord, datetime, int], dict[str, Any]]] = {
    Category.MEALS: _meal_payload,
    Category.SPECIAL_MEALS: _meal_payload,
    Category.SHOWERS: _shower_payload,
    Category.LAUNDRY: _laundry_payload,
    Category.BICYCLES: _bicycle_payload,
    Category.HAIRCUTS: _visit_payload,
    Category.HOLIDAYS: _visit_payload,
}


def build_insert_record(record: ResolvedRecord) -> InsertRecord:
    category = declared_category(record)
    when = parse_submitted_date(record.row.get("date_submitted"))
    count = parse_count(record.row.get("count"))
    if category is None or when is None:
        raise ValueError(f"row {record.row_number} reached categorization without passing validation")

    payload = _PAYLOAD_BUILDERS[category](record, when, count)
    # 列順は CATEGORY_COLUMNS に固定
    values = {col: payload[col] for col in CATEGORY_COLUMNS[category]}
    return InsertRecord(
        category=category,
        row_number=record.row_number,
        values=values,
        count=count,
        label=record.special.label if record.special else None,
    )


def categorize(records: Iterable[ResolvedRecord]) -> dict[Category, list[InsertRecord]]:
    """Partition records by category. Every category key is present (possibly empty)."""
    batches: dict[Category, list[InsertRecord]] = {c: [] for c in CATEGORY_ORDER}
    for record in records:
        insert_record = build_insert_record(record)
        batches[insert_record.category].append(insert_record)
    return batches
