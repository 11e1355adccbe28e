"""Domain models for the attendance import pipeline.

Rows flow ImportRow -> ResolvedRecord -> InsertRecord; errors are returned as
ValidationError / BatchError values inside ImportResult.
"""

from .category import MAX_BATCH_SIZE, Category
from .config_models import DatabaseConfig, GuestRegistryConfig, ImportConfig
from .error_record import BatchError, ErrorRecord, ValidationError
from .import_result import CategoryOutcome, ImportResult
from .import_row import (
    GuestRecord,
    GuestRegistry,
    ImportRow,
    InsertRecord,
    ResolvedRecord,
    SpecialCode,
)

__all__ = [
    # Categories
    "Category",
    "MAX_BATCH_SIZE",
    # Configuration models
    "DatabaseConfig",
    "GuestRegistryConfig",
    "ImportConfig",
    # Row models
    "ImportRow",
    "GuestRecord",
    "GuestRegistry",
    "SpecialCode",
    "ResolvedRecord",
    "InsertRecord",
    # Results
    "ValidationError",
    "BatchError",
    "ErrorRecord",
    "CategoryOutcome",
    "ImportResult",
]
