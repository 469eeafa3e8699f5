"""Batch lifecycle: create → processing → completed | failed.

The coordinator owns batch tokens and the progress row. The scheduler does
the work; the coordinator only moves the row between states and answers
pollers.
"""

from __future__ import annotations

import logging
import secrets
import threading
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from prdigest_core.errors import BatchNotFoundError, BatchStateError, InvalidBatchError, StoreUnavailableError
from prdigest_core.models import BatchJob, BatchStatus, ItemResult, PullRequestRef
from prdigest_core.refs import parse_refs

if TYPE_CHECKING:
    from prdigest_core.scheduler import BoundedScheduler, WaveCallback
    from prdigest_store.base import BaseProgressStore

logger = logging.getLogger(__name__)

MAX_BATCH_SIZE = 100


def generate_batch_token() -> str:
    return f"batch_{secrets.token_hex(16)}"


@dataclass
class BatchCreated:
    token: str
    accepted: list[PullRequestRef]
    rejected: list[str] = field(default_factory=list)


@dataclass
class BatchStatusView:
    """What a poller sees. Safe to build at any point of the batch lifecycle."""

    token: str
    status: BatchStatus
    total: int
    completed: int
    progress_percentage: int
    results: list[ItemResult]
    error_message: str | None = None
    created_at: str | None = None
    completed_at: str | None = None

    @property
    def succeeded(self) -> int:
        return sum(1 for r in self.results if r.ok)

    @property
    def failed(self) -> int:
        return sum(1 for r in self.results if not r.ok)


def progress_percentage(completed: int, total: int) -> int:
    if total <= 0:
        return 0
    return round(completed / total * 100)


class BatchCoordinator:
    def __init__(
        self,
        store: BaseProgressStore,
        scheduler: BoundedScheduler,
        max_batch_size: int = MAX_BATCH_SIZE,
    ):
        self._store = store
        self._scheduler = scheduler
        self.max_batch_size = max_batch_size
        self._claim_lock = threading.Lock()

    def create(self, inputs: list[str]) -> BatchCreated:
        """Parse inputs and persist a pending batch.

        Raises InvalidBatchError for empty or oversized input or when no
        entry parses, and StoreUnavailableError when the store rejects the
        new row — in both cases no batch exists afterwards.
        """
        if not inputs:
            raise InvalidBatchError("Invalid input: pr_list must be a non-empty list")
        if len(inputs) > self.max_batch_size:
            raise InvalidBatchError(f"Too many PRs: maximum {self.max_batch_size} PRs per batch")

        accepted, rejected = parse_refs(inputs)
        if not accepted:
            raise InvalidBatchError("No valid PRs found", details=rejected)

        token = generate_batch_token()
        job = BatchJob(token=token, refs=accepted, status=BatchStatus.PENDING, total_count=len(accepted))
        try:
            ping = getattr(self._store, "ping", None)
            if ping is not None:
                ping()
            self._store.create_batch(job)
        except Exception as e:
            raise StoreUnavailableError(f"Could not create batch: {e}") from e

        logger.info("Created batch %s with %d PR(s), %d rejected", token, len(accepted), len(rejected))
        return BatchCreated(token=token, accepted=accepted, rejected=rejected)

    def run(self, token: str, on_wave: WaveCallback | None = None) -> BatchStatusView:
        """Drive one pending batch to a terminal state and return its final status.

        Raises BatchStateError when the batch is already processing or has
        finished; a token is run at most once.
        """
        with self._claim_lock:
            job = self._store.get_batch(token)
            if job is None:
                raise BatchNotFoundError(token)
            status = BatchStatus(job.status)
            if status != BatchStatus.PENDING:
                logger.warning(
                    "Refusing to run batch %s: %s",
                    token,
                    "already finished" if status.is_terminal else "already running",
                )
                raise BatchStateError(token, status.value)
            try:
                self._store.start_batch(token)
            except Exception as e:
                return self._abort(token, e)

        try:
            outcome = self._scheduler.run(token, job.refs, on_wave=on_wave)
        except Exception as e:
            return self._abort(token, e)

        if outcome.status == BatchStatus.COMPLETED:
            self._store.complete_batch(token, outcome.results)
        else:
            self._store.fail_batch(token, outcome.error_message or "Batch failed", outcome.results)
        return self.status(token)

    def _abort(self, token: str, error: Exception) -> BatchStatusView:
        # Pollers must reach a terminal state whatever went wrong.
        logger.error("Batch %s failed: %s", token, error)
        self._store.fail_batch(token, str(error) or type(error).__name__)
        return self.status(token)

    def start(self, token: str) -> threading.Thread:
        """Run the batch on a background thread and return that thread."""
        thread = threading.Thread(target=self.run, args=(token,), name=f"prdigest-{token}")
        thread.start()
        return thread

    def submit(self, inputs: list[str]) -> tuple[BatchCreated, threading.Thread]:
        created = self.create(inputs)
        return created, self.start(created.token)

    def status(self, token: str) -> BatchStatusView:
        return batch_status(self._store, token)


def batch_status(store: BaseProgressStore, token: str) -> BatchStatusView:
    """Build the poller view for ``token``; raises BatchNotFoundError if it is unknown."""
    job = store.get_batch(token)
    if job is None:
        raise BatchNotFoundError(token)
    return BatchStatusView(
        token=job.token,
        status=BatchStatus(job.status),
        total=job.total_count,
        completed=job.completed_count,
        progress_percentage=progress_percentage(job.completed_count, job.total_count),
        results=list(job.results),
        error_message=job.error_message,
        created_at=job.created_at,
        completed_at=job.completed_at,
    )
