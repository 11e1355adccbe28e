from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from attendance_import.db.batch_insert import (
    BatchInsertError,
    CategoryCapability,
    chunk_records,
    insert_category,
    resolve_capabilities,
)
from attendance_import.models.category import MAX_BATCH_SIZE, Category
from attendance_import.models.import_row import InsertRecord


def _records(n: int, category: Category = Category.MEALS) -> list[InsertRecord]:
    return [
        InsertRecord(category=category, row_number=i + 2, values={"guest_id": f"g{i}", "quantity": 1})
        for i in range(n)
    ]


def _bulk_store(fail_on: set[int] | None = None) -> MagicMock:
    """insert_many echoes payloads; raises on the given 0-based call indices."""
    fail_on = fail_on or set()
    store = MagicMock()
    store.bulk_insert_available = True
    calls = {"n": 0}

    def insert_many(rows):
        index = calls["n"]
        calls["n"] += 1
        if index in fail_on:
            raise RuntimeError(f"boom {index}")
        return [dict(r, id=f"r{index}-{i}") for i, r in enumerate(rows)]

    store.insert_many.side_effect = insert_many
    return store


BULK = CategoryCapability(Category.MEALS, True)
PER_RECORD = CategoryCapability(Category.MEALS, False)


@pytest.mark.parametrize(
    "total, sizes",
    [
        (2000, [500, 500, 500, 500]),
        (1250, [500, 500, 250]),
        (2500, [500] * 5),
        (500, [500]),
        (1, [1]),
    ],
)
def test_chunk_sizes(total, sizes):
    assert [len(c) for c in chunk_records(list(range(total)))] == sizes


def test_chunk_records_keeps_order_and_empty_input():
    chunks = chunk_records(list(range(7)), batch_size=3)
    assert chunks == [[0, 1, 2], [3, 4, 5], [6]]
    assert chunk_records([], batch_size=3) == []


@pytest.mark.parametrize("size", [0, MAX_BATCH_SIZE + 1])
def test_chunk_records_rejects_bad_size(size):
    with pytest.raises(BatchInsertError):
        chunk_records([1, 2], batch_size=size)


def test_one_bulk_call_per_chunk():
    store = _bulk_store()
    outcome = insert_category(Category.MEALS, _records(1250), store, BULK)
    assert store.insert_many.call_count == 3
    assert [len(c.args[0]) for c in store.insert_many.call_args_list] == [500, 500, 250]
    store.insert_one.assert_not_called()
    assert outcome.success_count == 1250
    assert outcome.chunk_sizes == [500, 500, 250]
    assert outcome.errors == []
    assert len(outcome.inserted) == 1250


def test_failed_chunk_is_isolated_and_not_retried():
    store = _bulk_store(fail_on={1})
    outcome = insert_category(Category.MEALS, _records(1250), store, BULK)
    assert store.insert_many.call_count == 3
    assert outcome.success_count == 750
    assert len(outcome.errors) == 1
    err = outcome.errors[0]
    assert err.category is Category.MEALS
    assert err.chunk_index == 1
    assert err.error_type == "BATCH_INSERT_ERROR"
    assert "boom 1" in str(err)
    # 成功 chunk のみ inserted に残る
    assert [r.row_number for r in outcome.succeeded][:2] == [2, 3]
    assert outcome.succeeded[500].row_number == 1002


def test_store_returning_none_uses_payloads():
    store = MagicMock()
    store.insert_many.return_value = None
    records = _records(2)
    outcome = insert_category(Category.MEALS, records, store, BULK)
    assert outcome.inserted == [r.values for r in records]


def test_fallback_inserts_individually():
    store = MagicMock()
    store.insert_one.side_effect = [{"id": 1}, RuntimeError("dup"), {"id": 3}]
    outcome = insert_category(Category.MEALS, _records(3), store, PER_RECORD)
    store.insert_many.assert_not_called()
    assert store.insert_one.call_count == 3
    assert outcome.used_fallback
    assert outcome.success_count == 2
    assert outcome.inserted == [{"id": 1}, {"id": 3}]
    assert len(outcome.errors) == 1
    err = outcome.errors[0]
    assert err.chunk_index == 1
    assert err.row_number == 3
    assert err.error_type == "RECORD_INSERT_ERROR"


def test_empty_category_makes_no_calls():
    store = _bulk_store()
    callback = MagicMock()
    outcome = insert_category(Category.MEALS, [], store, BULK, metrics_callback=callback)
    store.insert_many.assert_not_called()
    callback.assert_not_called()
    assert outcome.success_count == 0


def test_metrics_callback_per_call():
    store = _bulk_store(fail_on={0})
    captured = []
    insert_category(Category.MEALS, _records(600), store, BULK, metrics_callback=captured.append)
    assert [(m.chunk_index, m.batch_size, m.succeeded) for m in captured] == [(0, 500, False), (1, 100, True)]
    assert all(m.end_time >= m.start_time for m in captured)


def test_raising_metrics_callback_keeps_outcome(caplog):
    store = _bulk_store()
    callback = MagicMock(side_effect=RuntimeError("bar broke"))
    with caplog.at_level("WARNING", logger="attendance_import.db.batch_insert"):
        outcome = insert_category(Category.MEALS, _records(600), store, BULK, metrics_callback=callback)
    assert callback.call_count == 2
    assert outcome.success_count == 600
    assert outcome.errors == []
    assert "metrics callback failed (meals chunk 1): bar broke" in caplog.text


def test_resolve_capabilities_override_can_only_disable():
    bulk = MagicMock(bulk_insert_available=True)
    no_bulk = MagicMock(bulk_insert_available=False)
    caps = resolve_capabilities(
        {Category.MEALS: bulk, Category.SHOWERS: no_bulk, Category.LAUNDRY: bulk},
        {Category.MEALS: False, Category.SHOWERS: True},
    )
    assert caps[Category.MEALS].bulk_insert_available is False
    assert caps[Category.SHOWERS].bulk_insert_available is False
    assert caps[Category.LAUNDRY].bulk_insert_available is True


def test_resolve_capabilities_missing_attribute_means_no_bulk():
    class PlainStore:
        def insert_one(self, row):
            return row

    caps = resolve_capabilities({Category.HOLIDAYS: PlainStore()})
    assert caps[Category.HOLIDAYS].bulk_insert_available is False
