"""JSON-friendly conversion for records stored in text columns.

Kept out of the record classes so prdigest_core stays free of persistence
concerns; only backends that need a wire format import this module.
"""

from __future__ import annotations

from dataclasses import asdict

from prdigest_core.models import (
    CommitRecord,
    DiffSummary,
    Failure,
    FileChange,
    ItemResult,
    PullRequestRecord,
    PullRequestRef,
    ReportRecord,
    ReviewDrivenChangeSet,
    Success,
)


def file_to_dict(f: FileChange) -> dict:
    return {
        "filename": f.filename,
        "additions": f.additions,
        "deletions": f.deletions,
        "changes": f.changes,
        "status": f.status,
        "patch": f.patch_excerpt,
    }


def file_from_dict(d: dict) -> FileChange:
    return FileChange(
        filename=d.get("filename", ""),
        additions=d.get("additions", 0),
        deletions=d.get("deletions", 0),
        status=d.get("status", "modified"),
        patch_excerpt=d.get("patch") or "",
    )


def diff_to_dict(summary: DiffSummary) -> dict:
    return {
        "first_commit_sha": summary.first_commit_sha,
        "last_commit_sha": summary.last_commit_sha,
        "total_additions": summary.total_additions,
        "total_deletions": summary.total_deletions,
        "total_changed_files": summary.total_changed_files,
        "files_changed": [file_to_dict(f) for f in summary.files],
        "source": summary.source,
    }


def diff_from_dict(d: dict) -> DiffSummary:
    return DiffSummary(
        first_commit_sha=d.get("first_commit_sha"),
        last_commit_sha=d.get("last_commit_sha"),
        total_additions=d.get("total_additions", 0),
        total_deletions=d.get("total_deletions", 0),
        total_changed_files=d.get("total_changed_files", 0),
        files=[file_from_dict(f) for f in d.get("files_changed", [])],
        source=d.get("source", "none"),
    )


def changes_to_dict(changes: ReviewDrivenChangeSet) -> dict:
    return {
        "has_changes": changes.has_changes,
        "total_commits": changes.total_commits,
        "review_commit_count": changes.review_commit_count,
        "diff": diff_to_dict(changes.diff),
    }


def changes_from_dict(d: dict) -> ReviewDrivenChangeSet:
    return ReviewDrivenChangeSet(
        has_changes=bool(d.get("has_changes", False)),
        total_commits=d.get("total_commits", 0),
        review_commit_count=d.get("review_commit_count", 0),
        diff=diff_from_dict(d.get("diff") or {}),
    )


def commit_files_to_list(commit: CommitRecord) -> list[dict]:
    return [file_to_dict(f) for f in commit.files]


def pull_to_dict(pull: PullRequestRecord) -> dict:
    return asdict(pull)


def pull_from_dict(d: dict) -> PullRequestRecord:
    return PullRequestRecord(**d)


def report_to_dict(report: ReportRecord) -> dict:
    return asdict(report)


def report_from_dict(d: dict) -> ReportRecord:
    return ReportRecord(**d)


def ref_to_dict(ref: PullRequestRef) -> dict:
    return {"org": ref.org, "repo": ref.repo, "pr_number": ref.pr_number}


def ref_from_dict(d: dict) -> PullRequestRef:
    return PullRequestRef(org=d["org"], repo=d["repo"], pr_number=int(d["pr_number"]))


def result_to_dict(result: ItemResult) -> dict:
    data = ref_to_dict(result.ref)
    if isinstance(result, Success):
        data["success"] = True
        data["cached"] = result.cached
        data["pr"] = pull_to_dict(result.pr) if result.pr is not None else None
        data["report"] = report_to_dict(result.report) if result.report is not None else None
    else:
        data["success"] = False
        data["error"] = result.reason
    return data


def result_from_dict(d: dict) -> ItemResult:
    ref = ref_from_dict(d)
    if d.get("success"):
        pr = d.get("pr")
        report = d.get("report")
        return Success(
            ref=ref,
            pr=pull_from_dict(pr) if pr else None,
            report=report_from_dict(report) if report else None,
            cached=bool(d.get("cached", False)),
        )
    return Failure(ref=ref, reason=d.get("error") or "Failed to process PR")
