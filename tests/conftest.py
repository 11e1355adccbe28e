# Shared pytest fixtures
from __future__ import annotations

import tempfile
from collections.abc import Callable
from pathlib import Path

import pytest

from attendance_import.logging.init import reset_logging
from attendance_import.models.import_row import GuestRecord, GuestRegistry, ImportRow

ATTENDANCE_HEADER = "Attendance_ID,Guest_ID,Count,Program,Date_Submitted"


@pytest.fixture()
def temp_workdir(monkeypatch) -> Path:
    with tempfile.TemporaryDirectory() as d:
        p = Path(d)
        (p / "config").mkdir()
        (p / "data").mkdir()
        monkeypatch.chdir(p)
        monkeypatch.setenv("DISABLE_DB_CONNECT", "1")
        yield p


@pytest.fixture(autouse=True)
def clean_logging():
    reset_logging()
    yield
    reset_logging()


@pytest.fixture()
def registry() -> GuestRegistry:
    return GuestRegistry(
        [
            GuestRecord(id="uuid-1", guest_code="G001", first_name="Ada", last_name="Lovelace"),
            GuestRecord(id="uuid-2", guest_code="G002", first_name="Alan", last_name="Turing"),
            GuestRecord(id="uuid-3", guest_code="G003", first_name="Grace", last_name="Hopper"),
            GuestRecord(id="local-77", guest_code="G077", first_name="Offline", last_name="Guest"),
        ]
    )


@pytest.fixture()
def make_row() -> Callable[..., ImportRow]:
    """Row factory with valid defaults; keyword overrides replace single fields."""
    counter = {"n": 1}

    def _make(**overrides: str) -> ImportRow:
        counter["n"] += 1
        row_number = int(overrides.pop("row_number", counter["n"]))
        fields = {
            "attendance_id": f"A{row_number}",
            "guest_id": "G001",
            "count": "1",
            "program": "Meal",
            "date_submitted": "2024-03-05",
        }
        fields.update(overrides)
        return ImportRow(row_number=row_number, fields=fields)

    return _make


@pytest.fixture()
def sample_config_yaml() -> str:
    return """batch_size: 500
require_server_ids: true
placeholder_prefix: "local-"
max_workers: 2
special_codes:
  M94816825:
    type: rv
    label: RV meals
tables:
  showers: showers_v2
bulk_insert:
  haircuts: false
required_fields:
  meals: [age, gender]
guest_registry:
  table: guests
  id_column: id
  code_column: external_id
database:
  host: localhost
  port: 5432
  user: appuser
  password: secret
  database: appdb
"""


@pytest.fixture()
def write_config(temp_workdir: Path, sample_config_yaml: str) -> Path:
    cfg = temp_workdir / "config" / "import.yml"
    cfg.write_text(sample_config_yaml, encoding="utf-8")
    return cfg


@pytest.fixture()
def write_csv(temp_workdir: Path) -> Callable[..., Path]:
    def _write(lines: list[str], name: str = "attendance.csv", header: str = ATTENDANCE_HEADER) -> Path:
        path = temp_workdir / "data" / name
        path.write_text("\n".join([header, *lines]) + "\n", encoding="utf-8")
        return path

    return _write


@pytest.fixture()
def guests_csv(temp_workdir: Path) -> Path:
    path = temp_workdir / "data" / "guests.csv"
    path.write_text(
        "id,guest_id,first_name,last_name\n"
        "uuid-1,G001,Ada,Lovelace\n"
        "uuid-2,G002,Alan,Turing\n"
        "local-77,G077,Offline,Guest\n",
        encoding="utf-8",
    )
    return path
