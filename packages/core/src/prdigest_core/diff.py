"""Commit-diff reconciliation.

Derives two summaries for a pull request from up to three incomplete sources:

- the compare endpoint (base...head), authoritative when it returns files
- the pull-request file listing, authoritative per-file stats for the final diff
- the per-commit file lists, aggregated when nothing better is available

Everything here is pure: same inputs, same output, no I/O. The pipeline does
the fetching and hands the results in.
"""

from __future__ import annotations

from typing import Iterable

from prdigest_core.models import (
    FILE_STATUSES,
    CommitRecord,
    Comparison,
    DiffSummary,
    FileChange,
    ReviewDrivenChangeSet,
)

PATCH_EXCERPT_LIMIT = 2000

# Higher wins when the same file shows up with different statuses across commits.
# A file created inside the PR stays "added" however often it is touched later.
_STATUS_PRECEDENCE = {"added": 3, "removed": 2, "renamed": 1, "modified": 0}

_STATUS_ALIASES = {
    "copied": "added",
    "changed": "modified",
    "unchanged": "modified",
}

_MERGE_MARKERS = ("merge branch", "merge pull request")


def normalize_status(raw: str | None) -> str:
    status = (raw or "modified").lower()
    status = _STATUS_ALIASES.get(status, status)
    return status if status in FILE_STATUSES else "modified"


def excerpt(patch: str | None) -> str:
    return (patch or "")[:PATCH_EXCERPT_LIMIT]


def merge_file_changes(changes: Iterable[FileChange]) -> list[FileChange]:
    """Merge changes to the same filename into one FileChange per file.

    Additions and deletions are summed, the longest patch excerpt is kept and
    the status with the highest precedence wins. The result is sorted by
    filename and does not depend on the order of ``changes``.
    """
    merged: dict[str, FileChange] = {}
    for change in changes:
        status = normalize_status(change.status)
        patch = excerpt(change.patch_excerpt)
        current = merged.get(change.filename)
        if current is None:
            merged[change.filename] = FileChange(
                filename=change.filename,
                additions=change.additions or 0,
                deletions=change.deletions or 0,
                status=status,
                patch_excerpt=patch,
            )
            continue
        current.additions += change.additions or 0
        current.deletions += change.deletions or 0
        if _STATUS_PRECEDENCE[status] > _STATUS_PRECEDENCE[current.status]:
            current.status = status
        # Equal lengths fall back to string order so the pick is order-independent.
        if (len(patch), patch) > (len(current.patch_excerpt), current.patch_excerpt):
            current.patch_excerpt = patch
    return [merged[name] for name in sorted(merged)]


def summarize(
    files: list[FileChange],
    first_commit_sha: str | None,
    last_commit_sha: str | None,
    source: str,
) -> DiffSummary:
    """Build a DiffSummary whose totals are always the sum over ``files``."""
    return DiffSummary(
        first_commit_sha=first_commit_sha,
        last_commit_sha=last_commit_sha,
        total_additions=sum(f.additions for f in files),
        total_deletions=sum(f.deletions for f in files),
        total_changed_files=len(files),
        files=files,
        source=source,
    )


def aggregate_commit_files(commits: Iterable[CommitRecord]) -> list[FileChange]:
    return merge_file_changes(f for commit in commits for f in commit.files)


def _bounds(commits: list[CommitRecord], comparison: Comparison | None) -> tuple[str | None, str | None]:
    if commits:
        return commits[0].sha, commits[-1].sha
    if comparison is not None:
        return comparison.base_sha, comparison.head_sha
    return None, None


def build_full_range_diff(
    commits: list[CommitRecord],
    comparison: Comparison | None = None,
    pull_files: list[FileChange] | None = None,
) -> DiffSummary:
    """Summarize everything the pull request changed, first commit to last.

    Source order: compare endpoint (only when it lists files), then the
    pull-request file listing, then aggregation over every commit's files.
    """
    first_sha, last_sha = _bounds(commits, comparison)

    if comparison is not None and comparison.files:
        return summarize(merge_file_changes(comparison.files), first_sha, last_sha, "comparison")

    if pull_files:
        files = merge_file_changes(pull_files)
        # The listing sometimes omits patches (binary or very large files);
        # borrow the excerpt from the commit aggregation when it has one.
        aggregated = {f.filename: f for f in aggregate_commit_files(commits)}
        for f in files:
            if not f.patch_excerpt and f.filename in aggregated:
                f.patch_excerpt = aggregated[f.filename].patch_excerpt
        return summarize(files, first_sha, last_sha, "pull_files")

    files = aggregate_commit_files(commits)
    if files:
        return summarize(files, first_sha, last_sha, "commits")

    return summarize([], first_sha, last_sha, "none")


def is_merge_commit(commit: CommitRecord) -> bool:
    message = (commit.message or "").lower()
    if message.startswith("merge "):
        return True
    if any(marker in message for marker in _MERGE_MARKERS):
        return True
    return commit.parent_count > 1


def effective_commits(commits: list[CommitRecord]) -> list[CommitRecord]:
    """Commits that are not merge commits, in their original order."""
    return [c for c in commits if not is_merge_commit(c)]


def build_review_driven_changes(
    commits: list[CommitRecord],
    comparison: Comparison | None = None,
    pull_files: list[FileChange] | None = None,
) -> ReviewDrivenChangeSet:
    """Summarize what changed between the first and the last effective commit.

    ``comparison`` must be the compare result for exactly those two commits.
    Without it, the files of every effective commit after the first are
    aggregated. When ``pull_files`` is given the result only keeps files that
    are part of the pull request's final diff.

    Totals can exceed the full-range totals: code added and removed again
    during review nets to zero in the full diff but still counts here.
    """
    effective = effective_commits(commits)
    if len(effective) <= 1:
        return ReviewDrivenChangeSet(
            has_changes=False,
            total_commits=len(commits),
            review_commit_count=0,
            diff=DiffSummary(),
        )

    first_sha, last_sha = effective[0].sha, effective[-1].sha
    if comparison is not None and comparison.files:
        files = merge_file_changes(comparison.files)
        source = "comparison"
    else:
        files = aggregate_commit_files(effective[1:])
        source = "commits" if files else "none"

    if pull_files:
        in_pull = {f.filename for f in pull_files}
        files = [f for f in files if f.filename in in_pull]

    return ReviewDrivenChangeSet(
        has_changes=True,
        total_commits=len(commits),
        review_commit_count=len(effective) - 1,
        diff=summarize(files, first_sha, last_sha, source),
    )
