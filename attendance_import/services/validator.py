from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from datetime import datetime

from ..models.category import PROGRAM_TYPES, Category, program_to_category
from ..models.error_record import ValidationError, record_identifier
from ..models.import_row import ImportRow, ResolvedRecord

"""Field validation for resolved import rows.

Validation is collect-all: every rule for a row is evaluated and each
violation becomes its own ValidationError. Nothing here raises for bad data.

Rules applied to every row:
- Program must be one of the PROGRAM_TYPES labels (skipped for special codes,
  which always land in special_meals)
- Date_Submitted must use a supported format

Guest profile rules (first/last name, Age, Gender) apply only to the
categories configured for them via ``required_fields``.
"""

__all__ = [
    "AGE_GROUPS",
    "GENDERS",
    "DATE_FORMATS_LABEL",
    "FieldRule",
    "GUEST_PROFILE_RULES",
    "build_rule_table",
    "parse_count",
    "parse_submitted_date",
    "declared_category",
    "validate_record",
    "validate_records",
]

logger = logging.getLogger(__name__)

AGE_GROUPS: tuple[str, ...] = ("Child 0-17", "Adult 18-59", "Senior 60+")
GENDERS: tuple[str, ...] = ("Male", "Female", "Unknown", "Non-binary")

DATE_FORMATS_LABEL = "YYYY-MM-DD, M/D/YYYY, M/D/YYYY H:MM:SS AM/PM"

# (strptime format, 日付のみか)
_DATE_FORMATS: tuple[tuple[str, bool], ...] = (
    ("%Y-%m-%d", True),
    ("%m/%d/%Y", True),
    ("%m/%d/%Y %I:%M:%S %p", False),
)

_LEADING_INT = re.compile(r"^\s*([+-]?\d+)")


@dataclass(frozen=True)
class FieldRule:
    """Required-field or enum rule over one row field.

    ``allowed`` is None for plain required rules; otherwise the value must match
    one of the allowed values case-insensitively.
    """
    field: str
    label: str
    allowed: tuple[str, ...] | None = None

    def check(self, row: ImportRow) -> str | None:
        """Return the violation description, or None when the row passes."""
        raw = row.get(self.field)
        if self.allowed is None:
            if not raw:
                return f"Missing {self.label}"
            return None
        if any(raw.lower() == a.lower() for a in self.allowed):
            return None
        qualifier = "Invalid or missing" if not raw else "Invalid"
        return f"{qualifier} {self.label} value '{raw}'. Valid values: {', '.join(self.allowed)}"


GUEST_PROFILE_RULES: dict[str, FieldRule] = {
    "first_name": FieldRule("first_name", "first name"),
    "last_name": FieldRule("last_name", "last name"),
    "age": FieldRule("age", "Age", AGE_GROUPS),
    "gender": FieldRule("gender", "Gender", GENDERS),
}

_PROGRAM_RULE = FieldRule("program", "Program", tuple(PROGRAM_TYPES))


def build_rule_table(
    required_fields: Mapping[Category, Iterable[str]],
) -> dict[Category, tuple[FieldRule, ...]]:
    """Translate configured rule names per category into FieldRule tuples."""
    table: dict[Category, tuple[FieldRule, ...]] = {}
    for category, names in required_fields.items():
        rules = []
        for name in names:
            if name not in GUEST_PROFILE_RULES:
                raise ValueError(
                    f"unknown field rule '{name}' for {category.value}; "
                    f"expected one of: {', '.join(GUEST_PROFILE_RULES)}"
                )
            rules.append(GUEST_PROFILE_RULES[name])
        table[category] = tuple(rules)
    return table


def parse_count(raw: str) -> int:
    """Count column -> int from its leading integer ("1.0" -> 1, "3 meals" -> 3).

    Empty, non-numeric, zero and negative values all fall back to 1.
    """
    m = _LEADING_INT.match(raw or "")
    if not m:
        return 1
    value = int(m.group(1))
    return value if value > 0 else 1


def parse_submitted_date(raw: str) -> datetime | None:
    """Parse Date_Submitted. Date-only values are pinned to 12:00."""
    raw = (raw or "").strip()
    if not raw:
        return None
    for fmt, date_only in _DATE_FORMATS:
        try:
            parsed = datetime.strptime(raw, fmt)
        except ValueError:
            continue
        if date_only:
            parsed = parsed.replace(hour=12)
        return parsed
    return None


def declared_category(record: ResolvedRecord) -> Category | None:
    """Category implied by the row alone (special codes always -> special_meals)."""
    if record.is_special:
        return Category.SPECIAL_MEALS
    return program_to_category(record.row.get("program"))


def validate_record(
    record: ResolvedRecord,
    rules: Mapping[Category, Sequence[FieldRule]] | None = None,
) -> list[ValidationError]:
    """Check every rule for one row; one ValidationError per violation."""
    row = record.row
    code = record.guest_code or None
    identifier = record_identifier(row.row_number, code)
    problems: list[tuple[str, str]] = []

    if not record.is_special:
        problem = _PROGRAM_RULE.check(row)
        if problem:
            problems.append(("INVALID_ENUM", problem))

    raw_date = row.get("date_submitted")
    if parse_submitted_date(raw_date) is None:
        qualifier = "Invalid or missing" if not raw_date else "Invalid"
        problems.append(
            (
                "INVALID_FIELD",
                f"{qualifier} Date_Submitted value '{raw_date}'. Supported formats: {DATE_FORMATS_LABEL}",
            )
        )

    category = declared_category(record)
    if category is not None and rules:
        for rule in rules.get(category, ()):
            problem = rule.check(row)
            if problem:
                error_type = "INVALID_ENUM" if rule.allowed is not None else "MISSING_FIELD"
                problems.append((error_type, problem))

    return [
        ValidationError(
            row_number=row.row_number,
            message=f"{identifier}: {text}",
            guest_code=code,
            error_type=error_type,
        )
        for error_type, text in problems
    ]


def validate_records(
    records: Iterable[ResolvedRecord],
    rules: Mapping[Category, Sequence[FieldRule]] | None = None,
) -> tuple[list[ResolvedRecord], list[ValidationError]]:
    """Split records into (valid, errors); a row with any violation is excluded."""
    valid: list[ResolvedRecord] = []
    errors: list[ValidationError] = []
    for record in records:
        found = validate_record(record, rules)
        if found:
            logger.debug(f"row {record.row_number}: {len(found)} validation error(s)")
            errors.extend(found)
        else:
            valid.append(record)
    return valid, errors
