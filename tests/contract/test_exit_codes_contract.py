from __future__ import annotations

from pathlib import Path
from unittest.mock import MagicMock, patch

from attendance_import.cli.__main__ import EXIT_FATAL, EXIT_PARTIAL_FAILURE, EXIT_SUCCESS_ALL, main as cli_main

"""Exit code contract: 0 all imported, 2 any error in the result, 1 fatal."""


def test_exit_code_constants():
    assert (EXIT_SUCCESS_ALL, EXIT_FATAL, EXIT_PARTIAL_FAILURE) == (0, 1, 2)


def test_exit_code_all_success(temp_workdir: Path, write_csv, guests_csv):
    csv_path = write_csv(["1,G001,1,Meal,2024-03-05"])
    assert cli_main([str(csv_path), "--guests", str(guests_csv), "--dry-run"]) == 0


def test_exit_code_partial(temp_workdir: Path, write_csv, guests_csv):
    csv_path = write_csv(["1,G001,1,Meal,2024-03-05", "2,G404,1,Meal,2024-03-05"])
    assert cli_main([str(csv_path), "--guests", str(guests_csv), "--dry-run"]) == 2


def test_exit_code_every_row_failed_is_still_2(temp_workdir: Path, write_csv, guests_csv):
    csv_path = write_csv(["1,G404,1,Meal,2024-03-05"])
    assert cli_main([str(csv_path), "--guests", str(guests_csv), "--dry-run"]) == 2


def test_exit_code_chunk_failure(temp_workdir: Path, write_csv, guests_csv):
    csv_path = write_csv(["1,G001,1,Meal,2024-03-05", "2,G002,1,Shower,2024-03-05"])
    broken = MagicMock(bulk_insert_available=True)
    broken.insert_many.side_effect = RuntimeError("disk full")

    def stores():
        from attendance_import.db.store import InMemoryCategoryStore
        from attendance_import.models.category import Category

        built = {c: InMemoryCategoryStore() for c in Category}
        built[Category.SHOWERS] = broken
        return built

    with patch("attendance_import.cli.__main__.build_memory_stores", side_effect=stores):
        assert cli_main([str(csv_path), "--guests", str(guests_csv), "--dry-run"]) == 2


def test_exit_code_fatal_missing_columns(temp_workdir: Path, write_csv, capsys):
    csv_path = write_csv(["G001"], header="Guest_ID")
    assert cli_main([str(csv_path), "--dry-run"]) == 1
    assert "ERROR csv: Missing required column(s)" in capsys.readouterr().out


def test_exit_code_fatal_missing_config(temp_workdir: Path, write_csv, capsys):
    csv_path = write_csv(["1,G001,1,Meal,2024-03-05"])
    assert cli_main([str(csv_path), "--config", "config/nope.yml"]) == 1
    assert "ERROR config: config file not found" in capsys.readouterr().out


def test_exit_code_fatal_bad_guest_file(temp_workdir: Path, write_csv, capsys):
    csv_path = write_csv(["1,G001,1,Meal,2024-03-05"])
    guests = temp_workdir / "data" / "guests.csv"
    guests.write_text("code\nG001\n", encoding="utf-8")
    assert cli_main([str(csv_path), "--guests", str(guests), "--dry-run"]) == 1
    assert "ERROR guests:" in capsys.readouterr().out
