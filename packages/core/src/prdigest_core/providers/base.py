"""Base report generator implementing the Template Method pattern.

All providers share the same report algorithm:
    generate() → _build_system_prompt() + _build_user_prompt()
               → _call_with_retry() → _call_api()   (provider-specific)
               → _clean()

A provider supplies an SDK client in __init__ and one raw completion in
_call_api; nothing else varies between providers.

Prompt construction, retry/back-off and cancellation handling live here so
they are defined once for every provider.
"""

from __future__ import annotations

import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from prdigest_core.cancel import CancelToken

if TYPE_CHECKING:
    from prdigest_core.models import (
        CommentRecord,
        CommitRecord,
        DiffSummary,
        PullRequestRecord,
        ReviewDrivenChangeSet,
        ReviewRecord,
    )

logger = logging.getLogger(__name__)

# Providers may override these as class attributes.
_MAX_RETRIES = 3
_MAX_TOKENS = 2000

# Caps on how much of the diff context is rendered into the prompt.
_MAX_PROMPT_FILES = 30
_PROMPT_PATCH_CHARS = 500
_MAX_PROMPT_COMMITS = 50

_REPORT_FORMAT = """You are an expert software engineer and code-review summarizer. Generate a concise,
developer-friendly Pull Request report based only on the PR details, reviews, comments and
commit history provided. Be factual, avoid speculation, keep the report actionable.

Hard rules:
- Do not invent details. If something is unclear or missing, write "Unknown / not stated in the PR discussion."
- Prefer bullets over paragraphs. Neutral, professional tone.

Return markdown with exactly these sections, in this order:

# PR Report
## PR Snapshot
  Repo/PR, title, author, state, created / updated, counts of APPROVED / CHANGES_REQUESTED / COMMENTED reviews
## Summary (1–3 bullets)
## Requested Changes vs What Changed
  A table: | Reviewer | Request / Concern | Evidence | Author Response / Change Made | Status |
  Status is one of: Addressed, Partially addressed, Open, Unclear (not stated).
  Use the review-driven changes section to judge whether a request was addressed in code.
## Key Review Themes (2–6 bullets)
## Remaining Risks / Open Questions (0–5 bullets)
## Learnings & Feedback
### What went well (1–4 bullets)
### What to improve next time (1–4 bullets)

Treat CHANGES_REQUESTED reviews as strong signals of required work. If a later review is
APPROVED or says "LGTM", mark related items as Addressed. Keep it to roughly 250–600 words
excluding the table."""


@dataclass
class ReportContext:
    """Everything a provider needs to write one pull-request report."""

    pull: PullRequestRecord
    comments: list[CommentRecord] = field(default_factory=list)
    reviews: list[ReviewRecord] = field(default_factory=list)
    commits: list[CommitRecord] = field(default_factory=list)
    diff_summary: DiffSummary | None = None
    review_changes: ReviewDrivenChangeSet | None = None


def _render_diff(diff: DiffSummary) -> list[str]:
    lines = [
        f"Range: {(diff.first_commit_sha or '?')[:7]} → {(diff.last_commit_sha or '?')[:7]}",
        f"Totals: +{diff.total_additions}/-{diff.total_deletions} across {diff.total_changed_files} file(s)",
    ]
    for f in diff.files[:_MAX_PROMPT_FILES]:
        lines.append(f"- `{f.filename}` ({f.status}) +{f.additions}/-{f.deletions}")
        if f.patch_excerpt:
            lines.append("```diff")
            lines.append(f.patch_excerpt[:_PROMPT_PATCH_CHARS])
            lines.append("```")
    hidden = len(diff.files) - _MAX_PROMPT_FILES
    if hidden > 0:
        lines.append(f"... and {hidden} more file(s)")
    return lines


class BaseReportGenerator(ABC):
    MAX_RETRIES: int = _MAX_RETRIES
    MAX_TOKENS: int = _MAX_TOKENS
    MODEL: str = ""

    # ------------------------------------------------------------------ #
    # Entry point                                                          #
    # ------------------------------------------------------------------ #

    def generate(self, context: ReportContext, cancel: CancelToken | None = None) -> str | None:
        """Produce the markdown report for one pull request.

        Returns None when every attempt failed or the token was cancelled;
        the pipeline records that as the item's failure.
        """
        cancel = cancel or CancelToken.never()
        system = self._build_system_prompt()
        user = self._build_user_prompt(context)
        raw = self._call_with_retry(system, user, cancel)
        if raw is None:
            return None
        return self._clean(raw)

    # ------------------------------------------------------------------ #
    # Provider hook                                                        #
    # ------------------------------------------------------------------ #

    @abstractmethod
    def _call_api(self, system_prompt: str, user_prompt: str) -> str:
        """Return the model's raw text for one request.

        Should raise on failure — _call_with_retry handles retries and logging.
        """

    # ------------------------------------------------------------------ #
    # Shared machinery                                                     #
    # ------------------------------------------------------------------ #

    def _call_with_retry(self, system_prompt: str, user_prompt: str, cancel: CancelToken) -> str | None:
        """Call _call_api at most MAX_RETRIES times, backing off 1s, 2s, 4s...

        Back-off waits on the cancel token, so a timed-out item stops
        retrying instead of sleeping on in a worker thread.
        """
        for attempt in range(self.MAX_RETRIES):
            if cancel.cancelled:
                logger.info("%s: item cancelled before attempt %d", self.__class__.__name__, attempt + 1)
                return None
            try:
                return self._call_api(system_prompt, user_prompt)
            except Exception as e:
                if attempt == self.MAX_RETRIES - 1:
                    logger.error(
                        "%s gave up after %d attempts: %s",
                        self.__class__.__name__,
                        self.MAX_RETRIES,
                        e,
                    )
                    return None
                delay = 2**attempt
                logger.warning(
                    "%s call failed (attempt %d of %d): %s; next try in %ds",
                    self.__class__.__name__,
                    attempt + 1,
                    self.MAX_RETRIES,
                    e,
                    delay,
                )
                if cancel.wait(delay):
                    return None
        return None

    def _build_system_prompt(self) -> str:
        return _REPORT_FORMAT

    def _build_user_prompt(self, context: ReportContext) -> str:
        """Render PR details, discussion, commits and both diff summaries."""
        pr = context.pull
        lines = [
            "Analyze this Pull Request and generate a structured report.",
            "",
            "## PR Details",
            f"Repo/PR: {pr.org}/{pr.repo}#{pr.pr_number}",
            f"Title: {pr.title}",
            f"Author: @{pr.author}",
            f"State: {pr.state}",
            f"Created: {pr.created_at} / Updated: {pr.updated_at}",
        ]
        if pr.description:
            lines += ["", "Description:", pr.description]

        if context.reviews:
            lines += ["", f"## Reviews ({len(context.reviews)})"]
            for i, review in enumerate(context.reviews, 1):
                lines += ["", f"### Review {i} by @{review.author}", f"State: {review.state}"]
                if review.body:
                    lines.append(f"Comment: {review.body}")

        if context.comments:
            lines += ["", f"## Comments ({len(context.comments)})"]
            for i, comment in enumerate(context.comments, 1):
                lines += ["", f"### Comment {i} by @{comment.author}", comment.body]

        if context.commits:
            lines += ["", f"## Commits ({len(context.commits)})"]
            for commit in context.commits[:_MAX_PROMPT_COMMITS]:
                subject = commit.message.splitlines()[0] if commit.message else ""
                lines.append(f"- {commit.sha[:7]} {subject} (+{commit.additions}/-{commit.deletions})")

        if context.diff_summary is not None and context.diff_summary.total_changed_files:
            lines += ["", "## Overall Changes (first → last commit)"]
            lines += _render_diff(context.diff_summary)

        changes = context.review_changes
        if changes is not None:
            lines += ["", "## Review-Driven Changes"]
            if changes.has_changes:
                lines.append(
                    f"{changes.review_commit_count} commit(s) after the first of {changes.total_commits} total."
                )
                lines += _render_diff(changes.diff)
            else:
                lines.append("No follow-up commits after the first one — no code changed in response to review.")

        lines += [
            "",
            "## Instructions",
            "Generate a markdown report following the exact format in your system prompt.",
            '- Start with "# PR Report"',
            "- Use the table format for Requested Changes vs What Changed",
            '- Use "Unknown / not stated in the PR discussion" for missing information',
        ]
        return "\n".join(lines)

    def _clean(self, raw: str) -> str:
        """Strip an outer ```markdown fence if the model wrapped the whole report in one."""
        cleaned = re.sub(r"^```(?:markdown|md)?\s*\n", "", raw.strip())
        cleaned = re.sub(r"\n```$", "", cleaned)
        return cleaned.strip()
