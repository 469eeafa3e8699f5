"""In-memory store — the zero-configuration option.

Everything lives in dicts for the lifetime of the process: good for one-off
CLI runs and for tests. Pollers in another process see nothing, and the
report cache is lost on exit. Teams that want the cache to survive runs use
SQLiteStore (.prdigest.yml: store: sqlite).
"""

from __future__ import annotations

import copy
import threading
from typing import TYPE_CHECKING

from prdigest_core.models import BatchStatus, utc_now
from prdigest_store.base import BaseProgressStore, BaseStore

if TYPE_CHECKING:
    from prdigest_core.models import (
        BatchJob,
        CommentRecord,
        CommitRecord,
        DiffSummary,
        ItemResult,
        PullRequestRecord,
        PullRequestRef,
        ReportRecord,
        ReviewDrivenChangeSet,
        ReviewRecord,
    )


class MemoryStore(BaseStore, BaseProgressStore):
    """Dict-backed implementation of both store contracts.

    Reads hand out deep copies so callers can never mutate stored state
    behind the lock.
    """

    def __init__(self):
        self._lock = threading.RLock()
        self._next_id = 1
        self._pulls: dict[PullRequestRef, PullRequestRecord] = {}
        self._comments: dict[int, CommentRecord] = {}
        self._reviews: dict[int, ReviewRecord] = {}
        self._commits: dict[int, list[CommitRecord]] = {}
        self._diffs: dict[int, DiffSummary] = {}
        self._changes: dict[int, ReviewDrivenChangeSet] = {}
        self._reports: dict[int, ReportRecord] = {}
        self._batches: dict[str, BatchJob] = {}

    # ------------------------------------------------------------------ #
    # Pull-request data                                                    #
    # ------------------------------------------------------------------ #

    def get_pull_request(self, ref: PullRequestRef) -> PullRequestRecord | None:
        with self._lock:
            return copy.deepcopy(self._pulls.get(ref))

    def upsert_pull_request(self, pull: PullRequestRecord) -> int:
        key = pull.ref
        with self._lock:
            existing = self._pulls.get(key)
            if existing is not None:
                pr_id = existing.id
            else:
                pr_id = self._next_id
                self._next_id += 1
            stored = copy.deepcopy(pull)
            stored.id = pr_id
            self._pulls[key] = stored
            return pr_id

    def save_comments(self, pr_id: int, comments: list[CommentRecord]) -> None:
        with self._lock:
            for c in comments:
                self._comments.setdefault(c.comment_id, copy.deepcopy(c))

    def save_reviews(self, pr_id: int, reviews: list[ReviewRecord]) -> None:
        with self._lock:
            for r in reviews:
                self._reviews.setdefault(r.review_id, copy.deepcopy(r))

    def save_commits(self, pr_id: int, commits: list[CommitRecord]) -> None:
        with self._lock:
            existing = {c.sha: c for c in self._commits.get(pr_id, [])}
            for c in commits:
                existing[c.sha] = copy.deepcopy(c)
            order = [c.sha for c in commits] + [sha for sha in existing if sha not in {c.sha for c in commits}]
            self._commits[pr_id] = [existing[sha] for sha in order]

    def get_commits(self, pr_id: int) -> list[CommitRecord]:
        with self._lock:
            return copy.deepcopy(self._commits.get(pr_id, []))

    def upsert_diff_summary(self, pr_id: int, summary: DiffSummary) -> None:
        with self._lock:
            self._diffs[pr_id] = copy.deepcopy(summary)

    def get_diff_summary(self, pr_id: int) -> DiffSummary | None:
        with self._lock:
            return copy.deepcopy(self._diffs.get(pr_id))

    def upsert_review_driven_changes(self, pr_id: int, changes: ReviewDrivenChangeSet) -> None:
        with self._lock:
            self._changes[pr_id] = copy.deepcopy(changes)

    def get_review_driven_changes(self, pr_id: int) -> ReviewDrivenChangeSet | None:
        with self._lock:
            return copy.deepcopy(self._changes.get(pr_id))

    def upsert_report(self, report: ReportRecord) -> ReportRecord:
        with self._lock:
            stored = self._reports.setdefault(report.pr_id, copy.deepcopy(report))
            return copy.deepcopy(stored)

    def get_report(self, pr_id: int) -> ReportRecord | None:
        with self._lock:
            return copy.deepcopy(self._reports.get(pr_id))

    # ------------------------------------------------------------------ #
    # Batch progress                                                       #
    # ------------------------------------------------------------------ #

    def create_batch(self, job: BatchJob) -> None:
        with self._lock:
            if job.token in self._batches:
                raise ValueError(f"Batch already exists: {job.token}")
            self._batches[job.token] = copy.deepcopy(job)

    def _batch(self, token: str) -> BatchJob:
        job = self._batches.get(token)
        if job is None:
            raise KeyError(token)
        return job

    def start_batch(self, token: str) -> None:
        with self._lock:
            job = self._batch(token)
            job.status = BatchStatus.PROCESSING
            job.started_at = utc_now()

    def update_batch_progress(self, token: str, results: list[ItemResult]) -> None:
        with self._lock:
            job = self._batch(token)
            job.results = list(results)
            job.completed_count = len(results)

    def complete_batch(self, token: str, results: list[ItemResult]) -> None:
        with self._lock:
            job = self._batch(token)
            job.results = list(results)
            job.completed_count = len(results)
            job.status = BatchStatus.COMPLETED
            job.completed_at = utc_now()

    def fail_batch(self, token: str, error_message: str, results: list[ItemResult] | None = None) -> None:
        with self._lock:
            job = self._batch(token)
            if results is not None:
                job.results = list(results)
                job.completed_count = len(results)
            job.status = BatchStatus.FAILED
            job.error_message = error_message
            job.completed_at = utc_now()

    def get_batch(self, token: str) -> BatchJob | None:
        with self._lock:
            return copy.deepcopy(self._batches.get(token))
