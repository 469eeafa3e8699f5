"""Domain records shared by the pipeline, the reconciler and the stores.

Plain dataclasses rather than dicts so every stage of the batch engine —
fetch, reconcile, persist, report — agrees on field names, and so the
reconciler can stay a set of pure functions over typed values.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Union

FILE_STATUSES = ("added", "removed", "modified", "renamed")


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass(frozen=True)
class PullRequestRef:
    """Identity of one pull request — the cache key for the whole pipeline."""

    org: str
    repo: str
    pr_number: int

    @property
    def key(self) -> str:
        return f"{self.org}/{self.repo}#{self.pr_number}"

    @property
    def full_name(self) -> str:
        return f"{self.org}/{self.repo}"

    def __str__(self) -> str:
        return self.key


@dataclass
class PullRequestRecord:
    """Normalized pull-request row. ``id`` is assigned by the store on upsert."""

    org: str
    repo: str
    pr_number: int
    title: str
    description: str | None
    author: str
    state: str
    created_at: str
    updated_at: str
    base_ref: str = ""
    head_ref: str = ""
    base_sha: str = ""
    head_sha: str = ""
    id: int | None = None

    @property
    def ref(self) -> PullRequestRef:
        return PullRequestRef(self.org, self.repo, self.pr_number)


@dataclass
class CommentRecord:
    comment_id: int
    author: str
    body: str
    created_at: str


@dataclass
class ReviewRecord:
    review_id: int
    author: str
    state: str  # "APPROVED" | "CHANGES_REQUESTED" | "COMMENTED" | ...
    body: str | None
    submitted_at: str


@dataclass
class FileChange:
    """Change to one file. Keyed by filename inside a DiffSummary."""

    filename: str
    additions: int = 0
    deletions: int = 0
    status: str = "modified"  # one of FILE_STATUSES
    patch_excerpt: str = ""

    @property
    def changes(self) -> int:
        return self.additions + self.deletions


@dataclass
class CommitRecord:
    """One commit of a pull request, in commit-time order."""

    sha: str
    message: str
    author: str
    timestamp: str
    additions: int = 0
    deletions: int = 0
    changed_file_count: int = 0
    parent_count: int = 1
    author_email: str = ""
    files: list[FileChange] = field(default_factory=list)


@dataclass
class Comparison:
    """Result of the upstream base...head compare endpoint."""

    base_sha: str | None
    head_sha: str | None
    files: list[FileChange] = field(default_factory=list)


@dataclass
class DiffSummary:
    first_commit_sha: str | None = None
    last_commit_sha: str | None = None
    total_additions: int = 0
    total_deletions: int = 0
    total_changed_files: int = 0
    files: list[FileChange] = field(default_factory=list)
    source: str = "none"  # "comparison" | "pull_files" | "commits" | "none"


@dataclass
class ReviewDrivenChangeSet:
    has_changes: bool = False
    total_commits: int = 0
    review_commit_count: int = 0
    diff: DiffSummary = field(default_factory=DiffSummary)


@dataclass
class PullRequestBundle:
    """Everything the fetcher returns for one pull request."""

    pull: PullRequestRecord
    comments: list[CommentRecord] = field(default_factory=list)
    reviews: list[ReviewRecord] = field(default_factory=list)
    commits: list[CommitRecord] = field(default_factory=list)
    files: list[FileChange] = field(default_factory=list)


@dataclass
class ReportRecord:
    pr_id: int
    content: str
    generated_at: str = field(default_factory=utc_now)
    model: str = ""


@dataclass(frozen=True)
class Success:
    ref: PullRequestRef
    pr: PullRequestRecord | None = None
    report: ReportRecord | None = None
    cached: bool = False

    ok = True


@dataclass(frozen=True)
class Failure:
    ref: PullRequestRef
    reason: str

    ok = False


ItemResult = Union[Success, Failure]


class BatchStatus(str, enum.Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (BatchStatus.COMPLETED, BatchStatus.FAILED)


@dataclass
class BatchJob:
    """One batch row as held by the progress store."""

    token: str
    refs: list[PullRequestRef]
    status: BatchStatus = BatchStatus.PENDING
    total_count: int = 0
    completed_count: int = 0
    results: list[ItemResult] = field(default_factory=list)
    error_message: str | None = None
    created_at: str = field(default_factory=utc_now)
    started_at: str | None = None
    completed_at: str | None = None
