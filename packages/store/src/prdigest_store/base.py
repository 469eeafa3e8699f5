"""Abstract store interfaces.

Two contracts, usually implemented by the same backend:

- BaseStore: pull-request records, diff summaries and generated reports.
  The item pipeline reads its cache from here and writes everything it
  produces back.
- BaseProgressStore: one mutable row per batch, written by the coordinator
  and scheduler, read by pollers.

The core depends on these interfaces — not on a concrete backend — so
backends are swappable and tests can substitute fakes.

Concurrency: the scheduler calls a store from several worker threads at
once. Implementations must serialize their own writes. Upserts are the only
guard against two pipelines racing on the same pull request: metadata is
last-write-wins, the report is first-insert-wins.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

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


class BaseStore(ABC):
    """Pluggable persistence layer for pull-request data and reports."""

    def ping(self) -> None:
        """Raise if the backend is unreachable. Default: always reachable."""

    def get_cached(self, ref: PullRequestRef) -> tuple[PullRequestRecord, ReportRecord] | None:
        """Return the stored pull request and its report, or None if either is missing."""
        pull = self.get_pull_request(ref)
        if pull is None or pull.id is None:
            return None
        report = self.get_report(pull.id)
        if report is None:
            return None
        return pull, report

    @abstractmethod
    def get_pull_request(self, ref: PullRequestRef) -> PullRequestRecord | None:
        """Return the stored pull request row, or None."""

    @abstractmethod
    def upsert_pull_request(self, pull: PullRequestRecord) -> int:
        """Insert or update by (org, repo, pr_number) and return the internal id."""

    @abstractmethod
    def save_comments(self, pr_id: int, comments: list[CommentRecord]) -> None:
        """Insert comments; existing comment ids are left untouched."""

    @abstractmethod
    def save_reviews(self, pr_id: int, reviews: list[ReviewRecord]) -> None:
        """Insert reviews; existing review ids are left untouched."""

    @abstractmethod
    def save_commits(self, pr_id: int, commits: list[CommitRecord]) -> None:
        """Insert or update commits by (pr_id, sha)."""

    @abstractmethod
    def get_commits(self, pr_id: int) -> list[CommitRecord]:
        """Return stored commits in commit order."""

    @abstractmethod
    def upsert_diff_summary(self, pr_id: int, summary: DiffSummary) -> None:
        """Replace the pull request's full-range diff summary."""

    @abstractmethod
    def get_diff_summary(self, pr_id: int) -> DiffSummary | None:
        """Return the full-range diff summary, or None."""

    @abstractmethod
    def upsert_review_driven_changes(self, pr_id: int, changes: ReviewDrivenChangeSet) -> None:
        """Replace the pull request's review-driven change set."""

    @abstractmethod
    def get_review_driven_changes(self, pr_id: int) -> ReviewDrivenChangeSet | None:
        """Return the review-driven change set, or None."""

    @abstractmethod
    def upsert_report(self, report: ReportRecord) -> ReportRecord:
        """Insert the report unless one already exists; return the stored report."""

    @abstractmethod
    def get_report(self, pr_id: int) -> ReportRecord | None:
        """Return the stored report, or None."""

    def close(self) -> None:
        """Release any resources held by the store (connections, file handles).

        Optional — subclasses that need cleanup should override this.
        Default is a no-op so callers can always call close() safely.
        """


class BaseProgressStore(ABC):
    """One mutable row per batch token."""

    @abstractmethod
    def create_batch(self, job: BatchJob) -> None:
        """Persist a new pending batch. Raises if the token already exists."""

    @abstractmethod
    def start_batch(self, token: str) -> None:
        """Mark the batch as processing."""

    @abstractmethod
    def update_batch_progress(self, token: str, results: list[ItemResult]) -> None:
        """Overwrite the result list; the completed count becomes len(results)."""

    @abstractmethod
    def complete_batch(self, token: str, results: list[ItemResult]) -> None:
        """Store the final results and mark the batch completed."""

    @abstractmethod
    def fail_batch(self, token: str, error_message: str, results: list[ItemResult] | None = None) -> None:
        """Mark the batch failed, keeping any results collected so far."""

    @abstractmethod
    def get_batch(self, token: str) -> BatchJob | None:
        """Return the batch row, or None for an unknown token."""
