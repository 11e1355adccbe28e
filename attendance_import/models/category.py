from __future__ import annotations

from enum import Enum

"""Service categories for attendance import.

Each valid import row lands in exactly one Category. The column tuples define
the fixed payload shape written to the backing store for that category.
"""

__all__ = [
    "Category",
    "CATEGORY_ORDER",
    "CATEGORY_COLUMNS",
    "DEFAULT_TABLES",
    "MAX_BATCH_SIZE",
    "PROGRAM_TYPES",
    "canonical_program",
    "program_to_category",
]

# 1 リクエストあたりの上限 (backend 側の制限 ~1000 行に対して保守的な値)
MAX_BATCH_SIZE = 500


class Category(Enum):
    """Mutually exclusive service types an import record can belong to."""
    MEALS = "meals"
    SHOWERS = "showers"
    LAUNDRY = "laundry"
    BICYCLES = "bicycles"
    HAIRCUTS = "haircuts"
    HOLIDAYS = "holidays"
    SPECIAL_MEALS = "special_meals"


# Processing / reporting order
CATEGORY_ORDER: tuple[Category, ...] = tuple(Category)

# Declared program label (CSV "Program" column) -> category
PROGRAM_TYPES: dict[str, Category] = {
    "Meal": Category.MEALS,
    "Shower": Category.SHOWERS,
    "Laundry": Category.LAUNDRY,
    "Bicycle": Category.BICYCLES,
    "Hair Cut": Category.HAIRCUTS,
    "Holiday": Category.HOLIDAYS,
}

CATEGORY_COLUMNS: dict[Category, tuple[str, ...]] = {
    Category.MEALS: ("guest_id", "meal_type", "quantity", "served_on", "recorded_at"),
    Category.SPECIAL_MEALS: ("guest_id", "meal_type", "quantity", "served_on", "recorded_at"),
    Category.SHOWERS: ("guest_id", "scheduled_for", "status"),
    Category.LAUNDRY: ("guest_id", "scheduled_for", "laundry_type", "status"),
    Category.BICYCLES: ("guest_id", "requested_at", "repair_type", "notes", "status"),
    Category.HAIRCUTS: ("guest_id", "served_at"),
    Category.HOLIDAYS: ("guest_id", "served_at"),
}

DEFAULT_TABLES: dict[Category, str] = {
    Category.MEALS: "meal_attendance",
    Category.SPECIAL_MEALS: "meal_attendance",
    Category.SHOWERS: "shower_reservations",
    Category.LAUNDRY: "laundry_bookings",
    Category.BICYCLES: "bicycle_repairs",
    Category.HAIRCUTS: "haircut_visits",
    Category.HOLIDAYS: "holiday_visits",
}


def canonical_program(program: str) -> str | None:
    needle = (program or "").strip().lower()
    for label in PROGRAM_TYPES:
        if label.lower() == needle:
            return label
    return None


def program_to_category(program: str) -> Category | None:
    """Resolve a declared program label case-insensitively (None if unknown)."""
    label = canonical_program(program)
    return PROGRAM_TYPES[label] if label else None
