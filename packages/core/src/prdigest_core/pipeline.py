"""Per-item pipeline: one pull-request reference in, one ItemResult out.

    cache lookup → fetch → persist → reconcile diffs → generate report → persist report

Every collaborator call goes through ``_step``, which turns whatever the
collaborator raises into a Failure value naming the step. ``process`` hands
that value straight back, so the first failing step ends this item and
nothing escapes to the scheduler.
"""

from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING, Any, Callable

from prdigest_core.cancel import CancelToken
from prdigest_core.diff import build_full_range_diff, build_review_driven_changes, effective_commits
from prdigest_core.errors import ItemCancelled
from prdigest_core.models import (
    DiffSummary,
    Failure,
    ItemResult,
    PullRequestBundle,
    PullRequestRef,
    ReportRecord,
    ReviewDrivenChangeSet,
    Success,
)
from prdigest_core.providers.base import ReportContext

if TYPE_CHECKING:
    from prdigest_core.gh.pull_request import GitHubFetcher
    from prdigest_core.providers.base import BaseReportGenerator
    from prdigest_store.base import BaseStore

logger = logging.getLogger(__name__)

TIMEOUT_REASON = "timeout"


class ItemPipeline:
    """Runs one pull request through fetch, reconcile and report.

    Collaborators are injected so tests can substitute fakes:
      fetcher   — ``fetch(ref, cancel)`` and ``compare(ref, base, head, cancel)``
      generator — ``generate(context, cancel) -> str | None``
      store     — a BaseStore
    """

    def __init__(self, fetcher: GitHubFetcher, generator: BaseReportGenerator, store: BaseStore):
        self._fetcher = fetcher
        self._generator = generator
        self._store = store

    def process(self, ref: PullRequestRef, cancel: CancelToken | None = None) -> ItemResult:
        cancel = cancel or CancelToken.never()
        started = time.monotonic()

        cached = self._step("cache lookup", ref, cancel, self._store.get_cached, ref)
        if isinstance(cached, Failure):
            return cached
        if cached is not None:
            pull, report = cached
            logger.info("%s: cache hit, reusing report from %s", ref, report.generated_at)
            return Success(ref=ref, pr=pull, report=report, cached=True)

        bundle = self._step("fetch", ref, cancel, self._fetcher.fetch, ref, cancel)
        if isinstance(bundle, Failure):
            return bundle

        pr_id = self._step("persist", ref, cancel, self._persist, bundle)
        if isinstance(pr_id, Failure):
            return pr_id
        bundle.pull.id = pr_id

        diffs = self._step("diff reconciliation", ref, cancel, self._reconcile, ref, bundle, cancel)
        if isinstance(diffs, Failure):
            return diffs
        summary, changes = diffs

        context = ReportContext(
            pull=bundle.pull,
            comments=bundle.comments,
            reviews=bundle.reviews,
            commits=bundle.commits,
            diff_summary=summary,
            review_changes=changes,
        )
        content = self._step("report generation", ref, cancel, self._generator.generate, context, cancel)
        if isinstance(content, Failure):
            return content
        if content is None:
            if cancel.cancelled:
                return Failure(ref=ref, reason=TIMEOUT_REASON)
            return Failure(ref=ref, reason="report generation failed: no response from model")

        report = ReportRecord(pr_id=pr_id, content=content, model=getattr(self._generator, "MODEL", ""))
        stored = self._step("report persistence", ref, cancel, self._store.upsert_report, report)
        if isinstance(stored, Failure):
            return stored

        logger.info("%s: report generated in %.1fs", ref, time.monotonic() - started)
        return Success(ref=ref, pr=bundle.pull, report=stored)

    def _step(self, name: str, ref: PullRequestRef, cancel: CancelToken, fn: Callable[..., Any], *args) -> Any:
        """Run one collaborator call; return its value or a Failure naming the step."""
        if cancel.cancelled:
            return Failure(ref=ref, reason=TIMEOUT_REASON)
        try:
            return fn(*args)
        except ItemCancelled:
            return Failure(ref=ref, reason=TIMEOUT_REASON)
        except Exception as e:
            logger.warning("%s: %s failed (%s): %s", ref, name, type(e).__name__, e)
            return Failure(ref=ref, reason=f"{name} failed: {e}")

    def _persist(self, bundle: PullRequestBundle) -> int:
        pr_id = self._store.upsert_pull_request(bundle.pull)
        self._store.save_comments(pr_id, bundle.comments)
        self._store.save_reviews(pr_id, bundle.reviews)
        self._store.save_commits(pr_id, bundle.commits)
        return pr_id

    def _reconcile(
        self,
        ref: PullRequestRef,
        bundle: PullRequestBundle,
        cancel: CancelToken,
    ) -> tuple[DiffSummary, ReviewDrivenChangeSet]:
        pull = bundle.pull
        commits = bundle.commits

        # Pin the comparison to SHAs rather than branch names: branches move,
        # and a deleted head branch would break the name-based compare.
        base = pull.base_sha or pull.base_ref
        head = pull.head_sha or pull.head_ref
        comparison = self._fetcher.compare(ref, base, head, cancel) if base and head else None

        effective = effective_commits(commits)
        review_comparison = None
        if len(effective) > 1:
            review_comparison = self._fetcher.compare(ref, effective[0].sha, effective[-1].sha, cancel)

        summary = build_full_range_diff(commits, comparison, bundle.files)
        changes = build_review_driven_changes(commits, review_comparison, bundle.files)
        logger.debug(
            "%s: diff from %s (+%d/-%d, %d file(s)); review-driven changes: %s",
            ref,
            summary.source,
            summary.total_additions,
            summary.total_deletions,
            summary.total_changed_files,
            changes.has_changes,
        )

        self._store.upsert_diff_summary(pull.id, summary)
        self._store.upsert_review_driven_changes(pull.id, changes)
        return summary, changes
