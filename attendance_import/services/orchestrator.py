from __future__ import annotations

import logging
from collections.abc import Callable, Mapping, Sequence
from concurrent.futures import ThreadPoolExecutor
from datetime import UTC, datetime
from typing import Any

from ..db.batch_insert import (
    BatchMetrics,
    CategoryCapability,
    insert_category,
    resolve_capabilities,
)
from ..models.category import CATEGORY_ORDER, MAX_BATCH_SIZE, Category
from ..models.config_models import ImportConfig
from ..models.error_record import BatchError, ValidationError
from ..models.import_result import CategoryOutcome, ImportResult
from ..models.import_row import GuestRegistry, ImportRow, InsertRecord, ResolvedRecord, SpecialCode
from .aggregator import aggregate
from .categorizer import categorize
from .progress import ProgressReporter, ProgressSink
from .resolver import resolve_row
from .validator import FieldRule, build_rule_table, validate_record

logger = logging.getLogger(__name__)

"""Import pipeline orchestration.

rows -> resolve -> validate -> categorize -> (per category) chunked insert -> aggregate

Each category's insert runs in isolation with its own CategoryOutcome; the
outcomes are merged only by the aggregator. With ``max_workers > 1`` the
categories run on a thread pool, chunks inside a category stay sequential.

One call is one run: nothing is persisted between runs, and two runs that touch
the same categories must be serialized by the caller.
"""


class ImportPipelineError(Exception):
    """Invalid invocation (bad batch size, unknown field rule, ...)."""
    pass


class MissingStoreError(Exception):
    """A category has records but no store was supplied for it."""
    pass


def screen_rows(
    rows: Sequence[ImportRow],
    registry: GuestRegistry,
    special_codes: Mapping[str, SpecialCode],
    rules: Mapping[Category, Sequence[FieldRule]] | None = None,
    *,
    require_server_ids: bool = True,
    placeholder_prefix: str = "local-",
) -> tuple[list[ResolvedRecord], list[ValidationError]]:
    """Resolve and validate row by row so errors come out in row order."""
    valid: list[ResolvedRecord] = []
    errors: list[ValidationError] = []
    for row in rows:
        resolved = resolve_row(
            row,
            registry,
            special_codes,
            require_server_ids=require_server_ids,
            placeholder_prefix=placeholder_prefix,
        )
        if isinstance(resolved, ValidationError):
            logger.debug(f"row {row.row_number}: {resolved.message}")
            errors.append(resolved)
            continue
        problems = validate_record(resolved, rules)
        if problems:
            logger.debug(f"row {row.row_number}: {len(problems)} validation error(s)")
            errors.extend(problems)
            continue
        valid.append(resolved)
    return valid, errors


def _process_category(
    category: Category,
    records: list[InsertRecord],
    stores: Mapping[Category, Any],
    capabilities: Mapping[Category, CategoryCapability],
    reporter: ProgressReporter,
    batch_size: int,
    metrics_callback: Callable[[BatchMetrics], None] | None,
) -> CategoryOutcome:
    reporter.category_started(category, len(records))
    store = stores.get(category)
    if store is None:
        logger.error(f"no store configured for {category.value}; {len(records)} records not inserted")
        return CategoryOutcome(
            category=category,
            attempted=len(records),
            errors=[
                BatchError(
                    category=category,
                    chunk_index=0,
                    error=MissingStoreError(f"no store configured for {category.value}"),
                )
            ],
        )
    return insert_category(
        category,
        records,
        store,
        capabilities[category],
        batch_size=batch_size,
        metrics_callback=metrics_callback,
    )


def run_import(
    rows: Sequence[ImportRow],
    registry: GuestRegistry,
    stores: Mapping[Category, Any],
    *,
    config: ImportConfig | None = None,
    progress: ProgressSink | None = None,
    metrics_callback: Callable[[BatchMetrics], None] | None = None,
    max_workers: int | None = None,
) -> ImportResult:
    """Run one import over already-parsed rows.

    Args:
        rows: parsed rows in source order
        registry: guest directory snapshot (read-only during the run)
        stores: category -> store; capabilities are read once before inserting
        config: batch size, special codes, field rules, placeholder policy
        progress: optional sink for phase messages (None = no-op)
        metrics_callback: optional BatchMetrics receiver, called per insert call
        max_workers: overrides config.max_workers; 1 = sequential categories

    Returns:
        ImportResult. Bad data and failed inserts are reported inside it, never raised.

    Raises:
        ImportPipelineError: invalid batch size, worker count or field rule names
    """
    config = config or ImportConfig()
    if not 1 <= config.batch_size <= MAX_BATCH_SIZE:
        raise ImportPipelineError(f"batch_size must be between 1 and {MAX_BATCH_SIZE}, got {config.batch_size}")
    workers = max_workers if max_workers is not None else config.max_workers
    if workers < 1:
        raise ImportPipelineError(f"max_workers must be >= 1, got {workers}")
    try:
        rules = build_rule_table(config.required_fields)
    except ValueError as e:
        raise ImportPipelineError(str(e)) from e

    start_time = datetime.now(UTC)
    reporter = ProgressReporter(progress)
    reporter.parse_started()
    reporter.rows_received(len(rows))

    valid, validation_errors = screen_rows(
        rows,
        registry,
        config.special_codes,
        rules,
        require_server_ids=config.require_server_ids,
        placeholder_prefix=config.placeholder_prefix,
    )
    if validation_errors:
        logger.info(f"{len(validation_errors)} validation errors across {len(rows)} rows")

    batches = categorize(valid)
    # 処理開始前に一度だけ決定 (bulk / per-record)
    capabilities = resolve_capabilities(stores, config.bulk_insert)
    pending = [c for c in CATEGORY_ORDER if batches[c]]

    outcomes: dict[Category, CategoryOutcome] = {}
    if workers == 1 or len(pending) <= 1:
        for category in pending:
            outcomes[category] = _process_category(
                category, batches[category], stores, capabilities, reporter, config.batch_size, metrics_callback
            )
    else:
        with ThreadPoolExecutor(max_workers=min(workers, len(pending))) as pool:
            futures = {
                category: pool.submit(
                    _process_category,
                    category,
                    batches[category],
                    stores,
                    capabilities,
                    reporter,
                    config.batch_size,
                    metrics_callback,
                )
                for category in pending
            }
            for category, future in futures.items():
                outcomes[category] = future.result()

    reporter.finished()

    result = aggregate(
        validation_errors,
        outcomes,
        total_rows=len(rows),
        start_time=start_time,
        end_time=datetime.now(UTC),
    )
    logger.info(
        f"import finished: {result.success_count}/{len(rows)} records imported, {result.error_count} errors"
    )
    return result
