"""GitHub fetch collaborator.

Wraps PyGithub and normalizes its lazy objects into prdigest records at the
boundary, so nothing past this module ever touches a PyGithub type. Every
method checks the cancel token between API calls; a call already sent to
GitHub is not interrupted.
"""

from __future__ import annotations

import logging
from datetime import datetime

from github import Github, GithubException
from requests.exceptions import RequestException

from prdigest_core.cancel import CancelToken
from prdigest_core.diff import excerpt, normalize_status
from prdigest_core.models import (
    CommentRecord,
    CommitRecord,
    Comparison,
    FileChange,
    PullRequestBundle,
    PullRequestRecord,
    PullRequestRef,
    ReviewRecord,
)

logger = logging.getLogger(__name__)


def _iso(value) -> str:
    if value is None:
        return ""
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value)


def _login(user) -> str:
    # Deleted accounts come back as None; GitHub shows them as "ghost".
    return getattr(user, "login", None) or "ghost"


def to_file_change(raw) -> FileChange:
    return FileChange(
        filename=raw.filename,
        additions=raw.additions or 0,
        deletions=raw.deletions or 0,
        status=normalize_status(raw.status),
        patch_excerpt=excerpt(raw.patch),
    )


def to_pull_request(ref: PullRequestRef, pr) -> PullRequestRecord:
    return PullRequestRecord(
        org=ref.org,
        repo=ref.repo,
        pr_number=pr.number,
        title=pr.title or "",
        description=pr.body or None,
        author=_login(pr.user),
        state=pr.state,
        created_at=_iso(pr.created_at),
        updated_at=_iso(pr.updated_at),
        base_ref=pr.base.ref,
        head_ref=pr.head.ref,
        base_sha=pr.base.sha,
        head_sha=pr.head.sha,
    )


def to_comment(comment) -> CommentRecord:
    return CommentRecord(
        comment_id=comment.id,
        author=_login(comment.user),
        body=comment.body or "",
        created_at=_iso(comment.created_at),
    )


def to_review(review) -> ReviewRecord:
    return ReviewRecord(
        review_id=review.id,
        author=_login(review.user),
        state=review.state,
        body=review.body or None,
        submitted_at=_iso(review.submitted_at),
    )


def to_commit(commit) -> CommitRecord:
    git_commit = commit.commit
    author = git_commit.author
    files = [to_file_change(f) for f in (commit.files or [])]
    stats = commit.stats
    return CommitRecord(
        sha=commit.sha,
        message=git_commit.message or "",
        author=getattr(author, "name", None) or "Unknown",
        author_email=getattr(author, "email", None) or "",
        timestamp=_iso(getattr(author, "date", None)),
        additions=getattr(stats, "additions", 0) or 0,
        deletions=getattr(stats, "deletions", 0) or 0,
        changed_file_count=len(files),
        parent_count=len(commit.parents or []) or 1,
        files=files,
    )


class GitHubFetcher:
    """Fetches raw pull-request data through the GitHub REST API."""

    def __init__(self, token: str | None, client: Github | None = None):
        self._gh = client if client is not None else Github(token)

    def _repo(self, ref: PullRequestRef):
        return self._gh.get_repo(ref.full_name)

    def fetch(self, ref: PullRequestRef, cancel: CancelToken | None = None) -> PullRequestBundle:
        """Fetch metadata, issue comments, reviews, commits and the file listing.

        Raises GithubException on upstream errors — the pipeline turns that
        into this item's Failure.
        """
        cancel = cancel or CancelToken.never()
        repo = self._repo(ref)
        cancel.raise_if_cancelled()
        pr = repo.get_pull(ref.pr_number)
        pull = to_pull_request(ref, pr)

        cancel.raise_if_cancelled()
        comments = [to_comment(c) for c in pr.get_issue_comments()]
        cancel.raise_if_cancelled()
        reviews = [to_review(r) for r in pr.get_reviews()]

        commits = []
        for commit in pr.get_commits():
            # Each commit lazily loads its own file list, one request apiece.
            cancel.raise_if_cancelled()
            commits.append(to_commit(commit))

        cancel.raise_if_cancelled()
        files = [to_file_change(f) for f in pr.get_files()]

        logger.debug(
            "Fetched %s: %d comment(s), %d review(s), %d commit(s), %d file(s)",
            ref,
            len(comments),
            len(reviews),
            len(commits),
            len(files),
        )
        return PullRequestBundle(pull=pull, comments=comments, reviews=reviews, commits=commits, files=files)

    def compare(
        self,
        ref: PullRequestRef,
        base: str,
        head: str,
        cancel: CancelToken | None = None,
    ) -> Comparison | None:
        """Return files changed between two refs, or None when the compare API fails.

        Optional data: a force-pushed or deleted branch makes the comparison
        unavailable, and the reconciler falls back to the other sources.
        """
        if cancel is not None:
            cancel.raise_if_cancelled()
        try:
            comparison = self._repo(ref).compare(base, head)
            files = [to_file_change(f) for f in comparison.files]
        except (GithubException, RequestException) as e:
            logger.warning("Could not compare %s...%s for %s; falling back: %s", base, head, ref, e)
            return None
        return Comparison(
            base_sha=getattr(comparison.base_commit, "sha", None),
            head_sha=head,
            files=files,
        )
