from __future__ import annotations

from datetime import datetime

import pytest

from attendance_import.models.category import Category
from attendance_import.models.import_row import DEFAULT_SPECIAL_CODES, ResolvedRecord
from attendance_import.services.validator import (
    build_rule_table,
    parse_count,
    parse_submitted_date,
    validate_record,
    validate_records,
)


def _resolved(row, guest_id="uuid-1"):
    special = DEFAULT_SPECIAL_CODES.get(row.guest_code)
    if special is not None:
        return ResolvedRecord(row=row, special=special)
    return ResolvedRecord(row=row, guest_id=guest_id)


def test_valid_row_has_no_errors(make_row):
    assert validate_record(_resolved(make_row())) == []


def test_missing_age_and_gender_yield_two_errors(make_row):
    rules = build_rule_table({Category.MEALS: ("age", "gender")})
    row = make_row(row_number=5, guest_id="G001")
    errors = validate_record(_resolved(row), rules)
    assert len(errors) == 2
    assert all(e.row_number == 5 for e in errors)
    assert errors[0].message.startswith("Guest ID: G001, Row: 5: Invalid or missing Age value ''")
    assert "Valid values: Child 0-17, Adult 18-59, Senior 60+" in errors[0].message
    assert "Gender" in errors[1].message
    assert {e.error_type for e in errors} == {"INVALID_ENUM"}


def test_enum_match_is_case_insensitive(make_row):
    rules = build_rule_table({Category.MEALS: ("age", "gender")})
    row = make_row(age="adult 18-59", gender="NON-BINARY")
    assert validate_record(_resolved(row), rules) == []


def test_profile_rules_only_apply_to_configured_category(make_row):
    rules = build_rule_table({Category.SHOWERS: ("first_name",)})
    assert validate_record(_resolved(make_row(program="Meal")), rules) == []
    errors = validate_record(_resolved(make_row(program="Shower")), rules)
    assert len(errors) == 1
    assert errors[0].error_type == "MISSING_FIELD"
    assert errors[0].message.endswith("Missing first name")


def test_collects_every_violation(make_row):
    row = make_row(program="Yoga", date_submitted="yesterday")
    errors = validate_record(_resolved(row))
    assert len(errors) == 2
    assert "Invalid Program value 'Yoga'" in errors[0].message
    assert "Invalid Date_Submitted value 'yesterday'" in errors[1].message


@pytest.mark.parametrize("count", ["0", "-2", "abc", "1.0", "3 meals"])
def test_count_never_rejects_a_row(make_row, count):
    assert validate_record(_resolved(make_row(count=count))) == []


def test_special_code_skips_program_check(make_row):
    row = make_row(guest_id="M91834859", program="")
    assert validate_record(_resolved(row)) == []


def test_unknown_rule_name_rejected():
    with pytest.raises(ValueError, match="unknown field rule 'shoe_size'"):
        build_rule_table({Category.MEALS: ("shoe_size",)})


@pytest.mark.parametrize(
    "raw, expected",
    [("", 1), ("3", 3), (" 4 ", 4), ("1.0", 1), ("3 meals", 3), ("0", 1), ("-1", 1), ("abc", 1)],
)
def test_parse_count(raw, expected):
    assert parse_count(raw) == expected


def test_parse_submitted_date_formats():
    assert parse_submitted_date("2024-03-05") == datetime(2024, 3, 5, 12, 0)
    assert parse_submitted_date("3/5/2024") == datetime(2024, 3, 5, 12, 0)
    assert parse_submitted_date("3/5/2024 4:07:09 PM") == datetime(2024, 3, 5, 16, 7, 9)
    assert parse_submitted_date("2024.03.05") is None
    assert parse_submitted_date("") is None


def test_validate_records_excludes_bad_rows(make_row):
    good = _resolved(make_row())
    bad = _resolved(make_row(program="Yoga"))
    valid, errors = validate_records([good, bad])
    assert valid == [good]
    assert len(errors) == 1
