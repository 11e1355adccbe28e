from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from attendance_import.csvfile.reader import read_attendance_csv
from attendance_import.db.store import build_memory_stores
from attendance_import.models.category import Category
from attendance_import.models.config_models import ImportConfig
from attendance_import.services.aggregator import merge_inserted
from attendance_import.services.orchestrator import run_import

"""CSV -> pipeline runs with realistic volumes."""


@pytest.fixture
def big_csv(write_csv, registry):
    lines = []
    for i in range(2500):
        program = "Meal" if i % 2 == 0 else "Shower"
        lines.append(f"{i},G00{1 + i % 3},1,{program},2024-03-05")
    for i in range(40):
        lines.append(f"s{i},M91834859,2,Meal,2024-03-06")
    return write_csv(lines)


def test_large_file_chunks_per_category(big_csv, registry):
    rows = read_attendance_csv(big_csv)
    stores = build_memory_stores()
    meals = MagicMock(bulk_insert_available=True)
    meals.insert_many.side_effect = lambda rows: [dict(r) for r in rows]
    stores[Category.MEALS] = meals

    progress = []
    result = run_import(rows, registry, stores, progress=progress.append, max_workers=3)

    assert result.success_count == 2540
    assert result.errors == []
    assert [len(c.args[0]) for c in meals.insert_many.call_args_list] == [500, 500, 250]
    assert len(stores[Category.SHOWERS].rows) == 1250
    assert result.special_meal_counts == {"Extra meals": 80}
    assert progress[:2] == ["Parsing CSV file...", "Preparing to import 2540 records..."]
    assert progress[-1] is None
    assert set(progress[2:-1]) == {
        "Processing 1250 meals records...",
        "Processing 1250 showers records...",
        "Processing 40 special_meals records...",
    }


def test_middle_chunk_failure_keeps_other_chunks(big_csv, registry):
    rows = read_attendance_csv(big_csv)
    calls = {"n": 0}

    def flaky(rows):
        calls["n"] += 1
        if calls["n"] == 2:
            raise RuntimeError("statement timeout")
        return None

    meals = MagicMock(bulk_insert_available=True)
    meals.insert_many.side_effect = flaky
    stores = {**build_memory_stores(), Category.MEALS: meals}
    result = run_import(rows, registry, stores, config=ImportConfig(max_workers=1))

    assert meals.insert_many.call_count == 3
    assert result.per_category_counts[Category.MEALS] == 750
    assert result.success_count == 750 + 1250 + 40
    assert len(result.batch_errors) == 1
    assert result.batch_errors[0].chunk_index == 1


def test_merge_after_import(write_csv, registry):
    rows = read_attendance_csv(write_csv(["1,G001,1,Meal,2024-03-05", "2,G002,1,Meal,2024-03-06"]))
    result = run_import(rows, registry, build_memory_stores())
    existing = {Category.MEALS: [{"id": "old-1"}, {"id": "old-2"}]}
    merged = merge_inserted(existing, result)
    assert [r["id"] for r in merged[Category.MEALS]] == ["meals-1", "meals-2", "old-1", "old-2"]
