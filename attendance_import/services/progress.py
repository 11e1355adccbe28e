from __future__ import annotations

import logging
import sys
import threading
from collections.abc import Callable
from typing import Any

from tqdm import tqdm
from tqdm.std import tqdm as TqdmType

from ..db.batch_insert import BatchMetrics
from ..models.category import Category

"""Progress reporting for import runs.

The pipeline writes short status strings to a caller-supplied sink at phase
boundaries and a final ``None`` to clear. The sink is write-only from the
pipeline's point of view and never affects results.

ImportProgressTracker is the interactive sink: a single tqdm bar (TTY only)
whose description follows the status strings and whose counter follows chunk
completions.
"""

__all__ = [
    "ProgressSink",
    "ProgressReporter",
    "ImportProgressTracker",
    "is_tty_enabled",
    "null_sink",
]

ProgressSink = Callable[[str | None], None]

logger = logging.getLogger(__name__)


def is_tty_enabled() -> bool:
    """Check if TTY output is enabled.

    Returns:
        True if stdout is a TTY and progress should be displayed, False otherwise
    """
    return sys.stdout.isatty()


def null_sink(message: str | None) -> None:
    """No-op sink for non-interactive contexts."""


class ProgressReporter:
    """Formats phase messages and forwards them to the sink.

    Calls are serialized with a lock because categories may start from worker
    threads.
    """

    def __init__(self, sink: ProgressSink | None = None) -> None:
        self._sink = sink or null_sink
        self._lock = threading.Lock()

    def _emit(self, message: str | None) -> None:
        with self._lock:
            try:
                self._sink(message)
            except Exception as e:
                logger.warning(f"progress sink failed: {e}")

    def parse_started(self) -> None:
        self._emit("Parsing CSV file...")

    def rows_received(self, total_rows: int) -> None:
        self._emit(f"Preparing to import {total_rows} records...")

    def category_started(self, category: Category, count: int) -> None:
        if count > 0:
            self._emit(f"Processing {count} {category.value} records...")

    def finished(self) -> None:
        self._emit(None)


class ImportProgressTracker:
    """tqdm progress bar over records inserted.

    In non-TTY environments (CI) the bar is disabled to avoid ANSI control
    sequence spam; the tracker then only swallows messages.
    """

    def __init__(self, total_records: int = 0, *, description: str = "Importing records") -> None:
        self.total_records = total_records
        self.description = description
        self.processed = 0
        self.last_message: str | None = None
        self._lock = threading.Lock()

        self.enabled = is_tty_enabled()
        self.pbar: TqdmType[Any] | None
        if self.enabled:
            self.pbar = tqdm(
                total=total_records,
                desc=description,
                unit="rec",
                disable=False,
                leave=True,
                position=0,
                ncols=80,
                ascii=True,
            )
        else:
            self.pbar = None

    def __call__(self, message: str | None) -> None:
        """Progress sink: status text becomes the bar description."""
        with self._lock:
            self.last_message = message
            if self.pbar is not None:
                self.pbar.set_description(message.rstrip(".") if message else self.description)

    def on_batch(self, metrics: BatchMetrics) -> None:
        """BatchMetrics callback: advance by the chunk size whatever the outcome."""
        with self._lock:
            self.processed += metrics.batch_size
            if self.pbar is not None:
                self.pbar.update(metrics.batch_size)

    def close(self) -> None:
        """Close the progress bar."""
        if self.pbar is not None:
            self.pbar.close()
            self.pbar = None

    def __enter__(self) -> ImportProgressTracker:
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()
