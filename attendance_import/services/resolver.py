from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from typing import Any

from ..models.error_record import ValidationError, record_identifier
from ..models.import_row import GuestRegistry, ImportRow, ResolvedRecord, SpecialCode

"""Guest identity resolution.

Resolution order for a row's guest code:
1. special code -> ResolvedRecord(special=...), registry is not consulted
2. registry miss -> ValidationError "Guest {code} not found"
3. registry entry without an id -> ValidationError "Guest {code} has no assigned id"
4. placeholder id while server ids are required
   -> ValidationError "Guest {code} was created locally and cannot be synced"
5. otherwise -> ResolvedRecord(guest_id=<internal id>)

Pure functions: the registry snapshot and special-code map are only read.
"""

__all__ = [
    "DEFAULT_PLACEHOLDER_PREFIX",
    "is_placeholder_id",
    "resolve_row",
    "resolve_rows",
]

logger = logging.getLogger(__name__)

DEFAULT_PLACEHOLDER_PREFIX = "local-"


def is_placeholder_id(guest_id: Any, prefix: str = DEFAULT_PLACEHOLDER_PREFIX) -> bool:
    """True when the id is a client-only placeholder, not a server-issued identity."""
    if guest_id is None:
        return True
    return bool(prefix) and str(guest_id).startswith(prefix)


def resolve_row(
    row: ImportRow,
    registry: GuestRegistry,
    special_codes: Mapping[str, SpecialCode],
    *,
    require_server_ids: bool = True,
    placeholder_prefix: str = DEFAULT_PLACEHOLDER_PREFIX,
) -> ResolvedRecord | ValidationError:
    code = row.guest_code
    if not code:
        return ValidationError(
            row_number=row.row_number,
            message=f"Guest ID is required ({record_identifier(row.row_number, None)})",
            guest_code=None,
            error_type="GUEST_ID_MISSING",
        )

    special = special_codes.get(code)
    if special is not None:
        return ResolvedRecord(row=row, special=special)

    guest = registry.lookup(code)
    if guest is None:
        return ValidationError(
            row_number=row.row_number,
            message=f"Guest {code} not found",
            guest_code=code,
            error_type="GUEST_NOT_FOUND",
        )

    # require_server_ids に関係なく id なしでは挿入できない
    if guest.id is None:
        return ValidationError(
            row_number=row.row_number,
            message=f"Guest {code} has no assigned id",
            guest_code=code,
            error_type="GUEST_ID_UNASSIGNED",
        )

    if require_server_ids and is_placeholder_id(guest.id, placeholder_prefix):
        return ValidationError(
            row_number=row.row_number,
            message=f"Guest {code} was created locally and cannot be synced",
            guest_code=code,
            error_type="GUEST_NOT_SYNCED",
        )

    return ResolvedRecord(row=row, guest_id=guest.id, guest=guest)


def resolve_rows(
    rows: Iterable[ImportRow],
    registry: GuestRegistry,
    special_codes: Mapping[str, SpecialCode],
    *,
    require_server_ids: bool = True,
    placeholder_prefix: str = DEFAULT_PLACEHOLDER_PREFIX,
) -> tuple[list[ResolvedRecord], list[ValidationError]]:
    """Resolve every row, splitting into (resolved, errors). Both keep input order."""
    resolved: list[ResolvedRecord] = []
    errors: list[ValidationError] = []
    for row in rows:
        outcome = resolve_row(
            row,
            registry,
            special_codes,
            require_server_ids=require_server_ids,
            placeholder_prefix=placeholder_prefix,
        )
        if isinstance(outcome, ValidationError):
            logger.debug(f"row {row.row_number}: {outcome.message}")
            errors.append(outcome)
        else:
            resolved.append(outcome)
    return resolved, errors
