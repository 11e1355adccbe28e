from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from datetime import UTC, datetime

from .category import Category

"""Error models for attendance import.

ValidationError and BatchError are the values returned to the caller inside
ImportResult. ErrorRecord is their JSON Lines form for the diagnostics log.

ErrorRecord uses row=-1 as a sentinel for chunk-level failures where no single
row can be blamed.
"""

__all__ = [
    "ValidationError",
    "BatchError",
    "ErrorRecord",
    "record_identifier",
]


def record_identifier(row_number: int, guest_code: str | None) -> str:
    """``Guest ID: {code}, Row: {n}`` when a code is present, else ``Row: {n}``."""
    if guest_code:
        return f"Guest ID: {guest_code}, Row: {row_number}"
    return f"Row: {row_number}"


@dataclass(frozen=True)
class ValidationError:
    """Bad/missing field data or an unresolvable guest. The row is excluded."""
    row_number: int
    message: str
    guest_code: str | None = None
    error_type: str = "VALIDATION_ERROR"  # UPPER_SNAKE

    def __str__(self) -> str:
        return self.message


@dataclass(frozen=True)
class BatchError:
    """A failed insert call for one chunk (or one record on the fallback path)."""
    category: Category
    chunk_index: int  # 0-based, category 内の順序
    error: BaseException
    row_number: int | None = None  # per-record fallback のみ設定

    @property
    def error_type(self) -> str:
        return "RECORD_INSERT_ERROR" if self.row_number is not None else "BATCH_INSERT_ERROR"

    @property
    def message(self) -> str:
        return str(self.error) or type(self.error).__name__

    def __str__(self) -> str:
        if self.row_number is not None:
            return f"{self.category.value} row {self.row_number}: {self.message}"
        return f"{self.category.value} chunk {self.chunk_index + 1}: {self.message}"


@dataclass(frozen=True)
class ErrorRecord:
    """Structured error record for JSON Lines logging.

    Attributes:
        timestamp: ISO8601 UTC timestamp with 'Z' suffix
        file: source filename being imported
        row: row number (first data row = 2). -1 for chunk-level errors
        guest_code: guest code from the row, if any
        category: category value for insert errors, None for validation errors
        chunk_index: chunk index for insert errors, None otherwise
        error_type: classification in UPPER_SNAKE_CASE
        message: human readable description
    """
    timestamp: str  # ISO8601 UTC
    file: str
    row: int
    guest_code: str | None
    category: str | None
    chunk_index: int | None
    error_type: str
    message: str

    @staticmethod
    def create(
        file: str,
        row: int,
        error_type: str,
        message: str,
        *,
        guest_code: str | None = None,
        category: str | None = None,
        chunk_index: int | None = None,
    ) -> ErrorRecord:
        ts = datetime.now(UTC).isoformat().replace("+00:00", "Z")
        return ErrorRecord(
            timestamp=ts,
            file=file,
            row=row,
            guest_code=guest_code,
            category=category,
            chunk_index=chunk_index,
            error_type=error_type,
            message=message,
        )

    @staticmethod
    def from_error(file: str, error: ValidationError | BatchError) -> ErrorRecord:
        if isinstance(error, ValidationError):
            return ErrorRecord.create(
                file,
                error.row_number,
                error.error_type,
                error.message,
                guest_code=error.guest_code,
            )
        return ErrorRecord.create(
            file,
            error.row_number if error.row_number is not None else -1,
            error.error_type,
            error.message,
            category=error.category.value,
            chunk_index=error.chunk_index,
        )

    def to_json_line(self) -> str:
        # 追加キー阻止: dataclass -> dict して json.dumps
        return json.dumps(asdict(self), ensure_ascii=False)
