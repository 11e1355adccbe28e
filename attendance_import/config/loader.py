from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import jsonschema
import yaml
from jsonschema.exceptions import ValidationError

from ..models.category import DEFAULT_TABLES, MAX_BATCH_SIZE, Category
from ..models.config_models import DatabaseConfig, GuestRegistryConfig, ImportConfig
from ..models.import_row import DEFAULT_SPECIAL_CODES, SpecialCode

"""Config loader.

Responsibilities:
- Load YAML config (default config/import.yml)
- Validate against config_schema.json (shipped next to this module)
- Apply defaults for absent keys
- Turn category keys into Category members

special_codes, when present, replaces the built-in set entirely.
tables are merged over the defaults.
"""

SCHEMA_PATH = Path(__file__).with_name("config_schema.json")


class ConfigError(Exception):
    pass


def _validate_config_schema(data: dict[str, Any]) -> None:
    """Validate config data against JSON schema.

    Raises:
        ConfigError: schema file missing or broken, or the data does not match it
    """
    if not SCHEMA_PATH.exists():
        raise ConfigError(f"config schema not found: {SCHEMA_PATH}")

    try:
        schema = json.loads(SCHEMA_PATH.read_text(encoding="utf-8"))
        jsonschema.validate(data, schema)
    except json.JSONDecodeError as e:
        raise ConfigError(f"invalid schema file: {e}") from e
    except ValidationError as e:
        location = ".".join(str(p) for p in e.absolute_path)
        prefix = f"{location}: " if location else ""
        raise ConfigError(f"config validation failed: {prefix}{e.message}") from e


def _by_category(raw: dict[str, Any] | None) -> dict[Category, Any]:
    return {Category(key): value for key, value in (raw or {}).items()}


def _special_codes(raw: dict[str, Any] | None) -> dict[str, SpecialCode]:
    if raw is None:
        return dict(DEFAULT_SPECIAL_CODES)
    return {
        str(code).strip(): SpecialCode(code=str(code).strip(), meal_type=spec["type"], label=spec["label"])
        for code, spec in raw.items()
    }


def config_from_mapping(data: dict[str, Any]) -> ImportConfig:
    """Build ImportConfig from already-validated data."""
    db_raw = data.get("database") or {}
    db = DatabaseConfig(
        host=db_raw.get("host"),
        port=db_raw.get("port"),
        user=db_raw.get("user"),
        password=db_raw.get("password"),
        database=db_raw.get("database"),
        dsn=db_raw.get("dsn"),
    )
    registry_raw = data.get("guest_registry") or {}
    registry = GuestRegistryConfig(**registry_raw)

    tables = dict(DEFAULT_TABLES)
    tables.update(_by_category(data.get("tables")))

    return ImportConfig(
        batch_size=data.get("batch_size", MAX_BATCH_SIZE),
        require_server_ids=data.get("require_server_ids", True),
        placeholder_prefix=data.get("placeholder_prefix", "local-"),
        max_workers=data.get("max_workers", 1),
        special_codes=_special_codes(data.get("special_codes")),
        tables=tables,
        bulk_insert=_by_category(data.get("bulk_insert")),
        required_fields={c: tuple(v) for c, v in _by_category(data.get("required_fields")).items()},
        guest_registry=registry,
        database=db,
    )


def load_config(path: Path) -> ImportConfig:
    if not path.exists():
        raise ConfigError(f"config file not found: {path}")
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"invalid yaml: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"config root must be a mapping, got {type(data).__name__}")

    _validate_config_schema(data)
    return config_from_mapping(data)
