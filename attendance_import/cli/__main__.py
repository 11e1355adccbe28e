from __future__ import annotations

import argparse
import os
import sys
from collections.abc import Iterator
from contextlib import closing, contextmanager
from pathlib import Path
from typing import Any

import psycopg2
from dotenv import load_dotenv

from attendance_import.config.loader import ConfigError, load_config
from attendance_import.csvfile.reader import CsvFormatError, read_attendance_csv, read_guest_registry_csv
from attendance_import.db.batch_insert import BatchMetrics
from attendance_import.db.store import StoreError, build_memory_stores, build_postgres_stores, load_guest_registry
from attendance_import.logging.error_log import ErrorLogBuffer
from attendance_import.logging.init import log_summary, setup_logging
from attendance_import.models.config_models import ImportConfig
from attendance_import.models.import_result import BatchStatsAccumulator, ImportResult
from attendance_import.models.import_row import GuestRegistry, ImportRow
from attendance_import.services.orchestrator import ImportPipelineError, run_import
from attendance_import.services.progress import ImportProgressTracker
from attendance_import.services.summary import render_result_message, render_summary_line

"""CLI entrypoint.

python -m attendance_import.cli CSV_PATH [--config PATH] [--guests PATH] [--dry-run] [--debug]

Flow: load .env + config -> read CSV -> guest registry -> run_import ->
error log flush -> result message + SUMMARY line -> exit code.

Exit codes: 0 every row imported, 2 any row/chunk error, 1 fatal.
"""

EXIT_SUCCESS_ALL = 0
EXIT_PARTIAL_FAILURE = 2
EXIT_FATAL = 1

DEFAULT_CONFIG_PATH = Path("config/import.yml")


def _resolve_dsn(cfg: ImportConfig) -> str:
    """Connection string, resolved in this order:

        1. DATABASE_URL / PGDSN (``.env`` already loaded with override)
        2. PGHOST / PGPORT / PGUSER / PGPASSWORD / PGDATABASE
        3. the ``database`` section of the config file
    """
    db_cfg = cfg.database
    dsn = os.getenv("DATABASE_URL") or os.getenv("PGDSN") or db_cfg.dsn
    if dsn:
        return dsn
    host = os.getenv("PGHOST", db_cfg.host or "localhost")
    port = os.getenv("PGPORT", str(db_cfg.port) if db_cfg.port else "5432")
    user = os.getenv("PGUSER", db_cfg.user or "postgres")
    password = os.getenv("PGPASSWORD", db_cfg.password or "")
    database = os.getenv("PGDATABASE", db_cfg.database or "postgres")
    dsn = f"host={host} port={port} user={user} dbname={database}"
    if password:
        dsn += f" password={password}"
    return dsn


@contextmanager
def _db_cursor(conn: Any) -> Iterator[Any]:  # pragma: no cover (thin wrapper)
    # chunk ごとに独立コミット (失敗 chunk が他を巻き戻さない)
    conn.autocommit = True
    with closing(conn), conn.cursor() as cur:
        yield cur


def _load_env_file(path: Path, override: bool = True) -> None:
    """Load .env using python-dotenv; override=True so .env wins over the process env."""
    if path.exists():
        load_dotenv(dotenv_path=path, override=override)


def _parse_args(argv: list[str]) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Bulk attendance CSV importer")
    p.add_argument("csv_path", type=Path, help="Attendance CSV file")
    p.add_argument("--config", type=Path, default=None, help=f"YAML config (default: {DEFAULT_CONFIG_PATH} if present)")
    p.add_argument("--guests", type=Path, default=None, help="Guest directory CSV instead of the database guests table")
    p.add_argument("--dry-run", action="store_true", help="Insert into in-memory stores only")
    p.add_argument("--debug", action="store_true", help="Enable debug logging")
    return p.parse_args(argv)


def _load_cfg(path: Path | None) -> ImportConfig:
    if path is not None:
        return load_config(path)
    if DEFAULT_CONFIG_PATH.exists():
        return load_config(DEFAULT_CONFIG_PATH)
    return ImportConfig()


def _execute(
    rows: list[ImportRow],
    registry: GuestRegistry,
    stores: dict[Any, Any],
    cfg: ImportConfig,
    stats: BatchStatsAccumulator,
) -> ImportResult:
    with ImportProgressTracker(total_records=len(rows)) as tracker:

        def on_batch(metrics: BatchMetrics) -> None:
            tracker.on_batch(metrics)
            stats.add_batch_time(metrics.elapsed_seconds)

        return run_import(
            rows,
            registry,
            stores,
            config=cfg,
            progress=tracker,
            metrics_callback=on_batch,
        )


def main(argv: list[str] | None = None) -> int:
    logger = setup_logging()

    # [] が渡された場合に sys.argv が混入しないよう None のときだけ読む
    if argv is None:
        argv = sys.argv[1:]
    args = _parse_args(argv)
    if args.debug:
        setup_logging(debug=True)

    _load_env_file(Path(".env"), override=True)

    try:
        cfg = _load_cfg(args.config)
    except ConfigError as e:
        logger.error(f"config: {e}")
        return EXIT_FATAL

    try:
        rows = read_attendance_csv(args.csv_path)
    except CsvFormatError as e:
        logger.error(f"csv: {e}")
        return EXIT_FATAL
    logger.info(f"{len(rows)} rows read from {args.csv_path.name}")

    guests_from_file: GuestRegistry | None = None
    if args.guests is not None:
        try:
            guests_from_file = read_guest_registry_csv(args.guests)
        except CsvFormatError as e:
            logger.error(f"guests: {e}")
            return EXIT_FATAL

    stats = BatchStatsAccumulator()
    # DISABLE_DB_CONNECT=1 でテスト等から DB 接続を完全に無効化
    use_mock = args.dry_run or os.getenv("DISABLE_DB_CONNECT") == "1"
    conn = None
    if not use_mock:
        try:
            conn = psycopg2.connect(_resolve_dsn(cfg))
        except psycopg2.Error as e:
            logger.info(f"DB connection failed -> fallback to mock mode: {e}")
            use_mock = True

    try:
        if use_mock:
            db_mode = "mock"
            registry = guests_from_file if guests_from_file is not None else GuestRegistry()
            if guests_from_file is None:
                logger.warning("mock mode without --guests: every regular guest code will be unresolved")
            result = _execute(rows, registry, build_memory_stores(), cfg, stats)
        else:
            db_mode = "live"
            with _db_cursor(conn) as cur:
                if guests_from_file is not None:
                    registry = guests_from_file
                else:
                    registry = load_guest_registry(cur, cfg.guest_registry)
                result = _execute(rows, registry, build_postgres_stores(conn, cfg), cfg, stats)
    except (ImportPipelineError, StoreError) as e:
        logger.error(f"processing: {e}")
        return EXIT_FATAL

    error_log = ErrorLogBuffer()
    if error_log.extend_from_errors(args.csv_path.name, result.errors):
        logger.info(f"error log written: {error_log.flush()}")

    total_batches, avg_batch, p95_batch = stats.get_stats()
    logger.debug(f"batches={total_batches} avg_batch_sec={avg_batch:.4f} p95_batch_sec={p95_batch:.4f}")
    logger.info(f"mode={db_mode} imported={result.success_count}/{result.total_rows}")

    message = render_result_message(result)
    if result.has_errors:
        logger.warning(message)
    else:
        logger.info(message)

    # log_summary が "SUMMARY " ラベルを付けるため先頭を除去
    summary_line = render_summary_line(result, total_batches=total_batches)
    log_summary(summary_line[len("SUMMARY "):])

    if result.has_errors:
        return EXIT_PARTIAL_FAILURE
    return EXIT_SUCCESS_ALL


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
