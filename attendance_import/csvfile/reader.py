from __future__ import annotations

import re
from collections.abc import Iterable
from pathlib import Path

import pandas as pd

from ..models.import_row import FIRST_DATA_ROW, GuestRegistry, ImportRow

"""CSV reader for attendance and guest files.

Header names are normalized to lower snake case (a leading BOM is dropped), so
"Date Submitted", "Date_Submitted" and "date_submitted" are the same column.
Blank lines (empty, whitespace-only or all-comma) are dropped before numbering,
so the first kept data row is row 2 and kept rows are numbered consecutively.
All values are kept as strings; no NaN conversion happens (pandas NA detection is disabled).
"""

__all__ = [
    "CsvFormatError",
    "REQUIRED_ATTENDANCE_COLUMNS",
    "normalize_header",
    "rows_from_frame",
    "read_attendance_csv",
    "read_guest_registry_csv",
]

REQUIRED_ATTENDANCE_COLUMNS: tuple[str, ...] = ("attendance_id", "count", "program", "date_submitted")


class CsvFormatError(Exception):
    """Raised when the file cannot be read or lacks required columns."""


def normalize_header(name: object) -> str:
    text = str(name).replace("\ufeff", "").strip().lower()
    return re.sub(r"\s+", "_", text)


def _read_frame(path: Path) -> pd.DataFrame:
    if not path.exists():
        raise CsvFormatError(f"file not found: {path}")
    try:
        df = pd.read_csv(
            path,
            dtype=str,
            keep_default_na=False,
            skip_blank_lines=True,
            encoding="utf-8-sig",
        )
    except pd.errors.EmptyDataError as e:
        raise CsvFormatError(f"{path.name}: CSV needs header + at least one data row") from e
    except (pd.errors.ParserError, UnicodeDecodeError) as e:
        raise CsvFormatError(f"{path.name}: unreadable CSV: {e}") from e
    df.columns = [normalize_header(c) for c in df.columns]
    return df


def rows_from_frame(
    df: pd.DataFrame, required_columns: Iterable[str] = REQUIRED_ATTENDANCE_COLUMNS
) -> list[ImportRow]:
    """Turn a string-typed DataFrame into ImportRows numbered from 2, skipping blank rows."""
    missing = [c for c in required_columns if c not in df.columns]
    if missing:
        raise CsvFormatError(
            f"Missing required column(s): {', '.join(m.replace('_', ' ') for m in missing)}"
        )
    rows: list[ImportRow] = []
    for values in df.itertuples(index=False, name=None):
        fields = {col: ("" if pd.isna(v) else str(v).strip()) for col, v in zip(df.columns, values, strict=False)}
        # 全列空の行は取り込み対象外 (番号も振らない)
        if not any(fields.values()):
            continue
        rows.append(ImportRow(row_number=len(rows) + FIRST_DATA_ROW, fields=fields))
    return rows


def read_attendance_csv(path: Path) -> list[ImportRow]:
    """Read an attendance CSV (Attendance_ID, Guest_ID, Count, Program, Date_Submitted)."""
    df = _read_frame(path)
    rows = rows_from_frame(df, REQUIRED_ATTENDANCE_COLUMNS)
    if not rows:
        raise CsvFormatError(f"{path.name}: CSV needs header + at least one data row")
    return rows


def read_guest_registry_csv(path: Path) -> GuestRegistry:
    """Guest directory snapshot from CSV (id, guest_id, first_name, last_name)."""
    df = _read_frame(path)
    if "id" not in df.columns:
        raise CsvFormatError(f"{path.name}: guest file needs an 'id' column")
    return GuestRegistry.from_rows(df.to_dict(orient="records"))
