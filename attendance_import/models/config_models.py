from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field

from .category import DEFAULT_TABLES, MAX_BATCH_SIZE, Category
from .import_row import DEFAULT_SPECIAL_CODES, SpecialCode

"""Config dataclasses for the attendance import tool.

Loaded from YAML by attendance_import.config.loader; defaults here apply when
a key is absent.
"""


@dataclass(frozen=True)
class DatabaseConfig:
    """Database connection configuration.

    Used as fallback when environment variables are not set.
    Environment variables take precedence over these values.
    """
    host: str | None = None
    port: int | None = None
    user: str | None = None
    password: str | None = None
    database: str | None = None
    dsn: str | None = None


@dataclass(frozen=True)
class GuestRegistryConfig:
    """Where the guest directory snapshot is read from."""
    table: str = "guests"
    id_column: str = "id"
    code_column: str = "external_id"
    first_name_column: str = "first_name"
    last_name_column: str = "last_name"


@dataclass(frozen=True)
class ImportConfig:
    """Root configuration object for an import run."""
    batch_size: int = MAX_BATCH_SIZE
    require_server_ids: bool = True
    placeholder_prefix: str = "local-"
    max_workers: int = 1  # 1 = カテゴリ逐次処理
    special_codes: Mapping[str, SpecialCode] = field(default_factory=lambda: dict(DEFAULT_SPECIAL_CODES))
    tables: Mapping[Category, str] = field(default_factory=lambda: dict(DEFAULT_TABLES))
    bulk_insert: Mapping[Category, bool] = field(default_factory=dict)  # 未指定 = bulk 可
    required_fields: Mapping[Category, tuple[str, ...]] = field(default_factory=dict)
    guest_registry: GuestRegistryConfig = field(default_factory=GuestRegistryConfig)
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
