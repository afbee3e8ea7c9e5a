# Overview: Drives external order/expense imports: chunking, per-row transactions, stats, checkpoints.

"""
Import Orchestrator

MODES:
- run_date_range(kind, from, to): day-windowed stream over [from, to]
- run_incremental(kind): keyset stream strictly after the stored checkpoint
- run_last_n(kind, n): newest n rows; never moves the checkpoint

Every run takes a ReferenceHandlingPolicy: SKIP_ON_MISSING counts rows with
an unknown product/expense type as skipped, AUTO_CREATE creates the
reference through reference_sync.

PER ROW: the row's writes commit in their own transaction. A failing row is
rolled back, logged and counted in errors; the run continues. Rows whose
stored values already match count as skipped.

CHECKPOINTS: every IMPORT_CHECKPOINT_EVERY rows and once at the end (also
on cancellation or failure), through sync_state_service, which never moves
backward. Date-range runs only checkpoint when their window starts at or
before the day after the stored checkpoint, so a run over a later window
cannot jump the cursor over rows that were never imported.

RUNS are serialized per import kind by a lease on the SyncState row.
Cancellation is cooperative: cancel_event is checked before each chunk.
Connectivity loss mid-stream is retried with backoff, resuming after the
last processed row; when retries run out the ConnectivityError propagates.
"""

from __future__ import annotations

import os
import socket
import threading
import time
import uuid
from dataclasses import asdict, dataclass
from datetime import date, timedelta
from itertools import islice
from typing import Callable, Iterable, Iterator, Optional

from flask import current_app

from ..entities import ImportKind, ReferenceHandlingPolicy
from ..errors import ConnectivityError, ImportAlreadyRunning, ReferentialSkip
from ..extensions import access_cache, db
from . import sync_state_service
from .concurrency import run_with_retry
from .expense_import import import_expense
from .external_source import ExternalSource, cursor_of
from .order_import import import_order


CHUNK_SIZE_DEFAULT = 100
CHECKPOINT_EVERY_DEFAULT = 100
CONNECTIVITY_RETRIES_DEFAULT = 3
LOCK_TIMEOUT_DEFAULT = 3600

Cursor = tuple[date, int]

# expense rows create the products and expense types orders point at
SYNC_ORDER = [ImportKind.EXPENSES, ImportKind.ORDERS]


def parse_only(value: str | Iterable[str] | None) -> list[ImportKind]:
    """Accepts orders, expenses, a comma list of both, or None for both."""
    if not value:
        return list(SYNC_ORDER)
    if isinstance(value, str):
        value = value.split(",")
    kinds = []
    for part in value:
        part = part.strip().lower()
        if not part:
            continue
        try:
            kinds.append(ImportKind(part))
        except ValueError:
            raise ValueError(f"Unknown import kind: {part}") from None
    return kinds or list(SYNC_ORDER)


@dataclass
class ImportStats:
    created: int = 0
    updated: int = 0
    skipped: int = 0
    errors: int = 0
    processed: int = 0
    cancelled: bool = False

    def record(self, outcome: str) -> None:
        if outcome == "unchanged":
            outcome = "skipped"
        setattr(self, outcome, getattr(self, outcome) + 1)

    def to_dict(self) -> dict[str, int]:
        return {
            "created": self.created,
            "updated": self.updated,
            "skipped": self.skipped,
            "errors": self.errors,
        }

    def summary(self) -> dict:
        return asdict(self)


def _sort_key(cursor: tuple[Optional[date], int]) -> Cursor:
    row_date, row_id = cursor
    return (row_date or date.min, row_id)


class ImportOrchestrator:
    def __init__(
        self,
        source: ExternalSource,
        *,
        chunk_size: int = CHUNK_SIZE_DEFAULT,
        checkpoint_every: int = CHECKPOINT_EVERY_DEFAULT,
        connectivity_retries: int = CONNECTIVITY_RETRIES_DEFAULT,
        retry_backoff_seconds: float = 1.0,
        lock_timeout_seconds: int = LOCK_TIMEOUT_DEFAULT,
        cancel_event: threading.Event | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.source = source
        self.chunk_size = max(1, int(chunk_size))
        self.checkpoint_every = max(1, int(checkpoint_every))
        self.connectivity_retries = max(0, int(connectivity_retries))
        self.retry_backoff_seconds = retry_backoff_seconds
        self.lock_timeout_seconds = lock_timeout_seconds
        self.cancel_event = cancel_event or threading.Event()
        self._sleep = sleep

    @classmethod
    def from_app(cls, source: ExternalSource | None = None, app=None, **overrides) -> "ImportOrchestrator":
        app = app or current_app
        options = {
            "chunk_size": app.config.get("IMPORT_CHUNK_SIZE", CHUNK_SIZE_DEFAULT),
            "checkpoint_every": app.config.get("IMPORT_CHECKPOINT_EVERY", CHECKPOINT_EVERY_DEFAULT),
            "connectivity_retries": app.config.get("IMPORT_CONNECTIVITY_RETRIES", CONNECTIVITY_RETRIES_DEFAULT),
            "retry_backoff_seconds": app.config.get("IMPORT_RETRY_BACKOFF_SECONDS", 1.0),
            "lock_timeout_seconds": app.config.get("IMPORT_LOCK_TIMEOUT_SECONDS", LOCK_TIMEOUT_DEFAULT),
        }
        options.update({k: v for k, v in overrides.items() if v is not None})
        return cls(source or ExternalSource.from_app(app), **options)

    def cancel(self) -> None:
        self.cancel_event.set()

    # -------------------------------------------------------------------------
    # Public modes
    # -------------------------------------------------------------------------

    def run_date_range(
        self,
        kind: ImportKind | str,
        from_date: date,
        to_date: date,
        *,
        policy: ReferenceHandlingPolicy | str,
    ) -> ImportStats:
        kind = ImportKind(kind)

        def open_stream(cursor: Cursor | None) -> Iterable[dict]:
            start = from_date
            if cursor is not None and cursor[0] > start:
                start = cursor[0]
            return self.source.stream_by_date_range(kind, start, to_date)

        state = sync_state_service.get_or_create_state(kind)
        contiguous = (
            state.last_imported_date is not None
            and from_date <= state.last_imported_date + timedelta(days=1)
        )
        current_app.logger.info(
            "Importing %s from %s to %s (%s)", kind.value, from_date, to_date, ReferenceHandlingPolicy(policy).value,
        )
        return self._run(kind, policy, open_stream, checkpoint=contiguous)

    def run_incremental(self, kind: ImportKind | str, *, policy: ReferenceHandlingPolicy | str) -> ImportStats:
        kind = ImportKind(kind)
        state = sync_state_service.get_or_create_state(kind)
        start = state.cursor

        def open_stream(cursor: Cursor | None) -> Iterable[dict]:
            resume = cursor or start
            if resume is None:
                return self.source.stream_incremental(kind)
            return self.source.stream_incremental(kind, resume[0], resume[1])

        current_app.logger.info(
            "Incremental %s import after %s (%s)", kind.value, start, ReferenceHandlingPolicy(policy).value,
        )
        return self._run(kind, policy, open_stream, checkpoint=True, initial_cursor=start)

    def run_last_n(self, kind: ImportKind | str, n: int, *, policy: ReferenceHandlingPolicy | str) -> ImportStats:
        kind = ImportKind(kind)

        def open_stream(cursor: Cursor | None) -> Iterable[dict]:
            return self.source.get_last(kind, n)

        current_app.logger.info("Importing last %s %s (%s)", n, kind.value, ReferenceHandlingPolicy(policy).value)
        return self._run(kind, policy, open_stream, checkpoint=False)

    # -------------------------------------------------------------------------
    # Multi-kind sync (CLI and HTTP entry point)
    # -------------------------------------------------------------------------

    def sync(
        self,
        kinds: Iterable[ImportKind | str],
        *,
        policy: ReferenceHandlingPolicy | str,
        from_date: date | None = None,
        to_date: date | None = None,
        limit: int | None = None,
        incremental: bool = False,
    ) -> dict[str, ImportStats]:
        """
        Run one mode for each kind, expenses before orders.

        incremental wins over limit, limit wins over the date window.
        """
        results: dict[str, ImportStats] = {}
        for kind in sorted({ImportKind(k) for k in kinds}, key=SYNC_ORDER.index):
            if incremental:
                stats = self.run_incremental(kind, policy=policy)
            elif limit:
                stats = self.run_last_n(kind, limit, policy=policy)
            else:
                if from_date is None or to_date is None:
                    raise ValueError("from_date and to_date are required for a date-range sync")
                stats = self.run_date_range(kind, from_date, to_date, policy=policy)
            results[kind.value] = stats
            if stats.cancelled:
                break
        return results

    # -------------------------------------------------------------------------
    # Core loop
    # -------------------------------------------------------------------------

    def _run(
        self,
        kind: ImportKind,
        policy: ReferenceHandlingPolicy | str,
        open_stream: Callable[[Cursor | None], Iterable[dict]],
        *,
        checkpoint: bool,
        initial_cursor: Cursor | None = None,
    ) -> ImportStats:
        policy = ReferenceHandlingPolicy(policy)

        if not self.source.test_connection():
            raise ConnectivityError("External database is unreachable")

        owner = f"{socket.gethostname()}:{os.getpid()}:{uuid.uuid4().hex[:8]}"
        if not sync_state_service.acquire_lease(kind, owner, self.lock_timeout_seconds):
            raise ImportAlreadyRunning(f"Another {kind.value} import is running")

        stats = ImportStats()
        progress = {"cursor": initial_cursor, "pending": 0}
        failures = 0

        try:
            while True:
                try:
                    self._consume(kind, policy, open_stream(progress["cursor"]), stats, progress, checkpoint)
                    break
                except ConnectivityError as exc:
                    failures += 1
                    if failures > self.connectivity_retries:
                        current_app.logger.error(
                            "Import %s aborted after %s connection failures: %s", kind.value, failures, exc,
                        )
                        raise
                    delay = self.retry_backoff_seconds * (2 ** (failures - 1))
                    current_app.logger.warning(
                        "Lost external connection during %s import (attempt %s/%s), resuming after %s in %.1fs",
                        kind.value, failures, self.connectivity_retries, progress["cursor"], delay,
                    )
                    db.session.rollback()
                    self._sleep(delay)
        finally:
            db.session.rollback()
            if checkpoint and progress["pending"] and progress["cursor"] is not None:
                sync_state_service.advance_checkpoint(kind, *progress["cursor"])
            sync_state_service.release_lease(kind, owner)
            if stats.created or stats.updated:
                # new rows may fall under existing grants
                access_cache.invalidate_all()

        current_app.logger.info("Import %s finished: %s", kind.value, stats.summary())
        return stats

    def _consume(
        self,
        kind: ImportKind,
        policy: ReferenceHandlingPolicy,
        rows: Iterable[dict],
        stats: ImportStats,
        progress: dict,
        checkpoint: bool,
    ) -> None:
        iterator: Iterator[dict] = iter(rows)
        while True:
            if self.cancel_event.is_set():
                stats.cancelled = True
                current_app.logger.info("Import %s cancelled after %s rows", kind.value, stats.processed)
                return

            chunk = list(islice(iterator, self.chunk_size))
            if not chunk:
                return

            for row in chunk:
                row_cursor = _sort_key(cursor_of(kind, row))
                if progress["cursor"] is not None and row_cursor <= progress["cursor"]:
                    continue

                self._import_row(kind, policy, row, stats)
                stats.processed += 1
                progress["cursor"] = row_cursor
                progress["pending"] += 1

                if checkpoint and progress["pending"] >= self.checkpoint_every:
                    sync_state_service.advance_checkpoint(kind, *row_cursor)
                    progress["pending"] = 0

    def _import_row(self, kind: ImportKind, policy: ReferenceHandlingPolicy, row: dict, stats: ImportStats) -> None:
        handler = import_order if kind == ImportKind.ORDERS else import_expense

        def apply():
            outcome = handler(row, policy)
            db.session.commit()
            return outcome

        try:
            outcome = run_with_retry(apply)
        except ReferentialSkip as skip:
            db.session.rollback()
            stats.skipped += 1
            current_app.logger.warning("Skipped %s row: %s", kind.value, skip)
            return
        except Exception:  # noqa: BLE001
            db.session.rollback()
            stats.errors += 1
            current_app.logger.exception("Failed to import %s row %s", kind.value, cursor_of_safe(kind, row))
            return

        stats.record(outcome)


def cursor_of_safe(kind: ImportKind, row: dict):
    try:
        return cursor_of(kind, row)
    except (KeyError, TypeError, ValueError):
        return row.get("OrderID") or row.get("id")
