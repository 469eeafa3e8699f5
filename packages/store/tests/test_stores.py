"""Tests for prdigest-store implementations.

Behaviour shared by both backends runs against each of them through the
``store`` fixture; backend-specific tests follow.
"""

from __future__ import annotations

import sqlite3

import pytest

from prdigest_core.models import (
    BatchJob,
    BatchStatus,
    CommentRecord,
    CommitRecord,
    DiffSummary,
    Failure,
    FileChange,
    PullRequestRecord,
    PullRequestRef,
    ReportRecord,
    ReviewDrivenChangeSet,
    ReviewRecord,
    Success,
)
from prdigest_store.memory import MemoryStore
from prdigest_store.serialization import result_from_dict, result_to_dict
from prdigest_store.sqlite import SQLiteStore

REF = PullRequestRef("octo", "widgets", 7)


def _make_pull(ref=REF, title="Add widget cache", state="open"):
    return PullRequestRecord(
        org=ref.org,
        repo=ref.repo,
        pr_number=ref.pr_number,
        title=title,
        description="Caches widgets.",
        author="alice",
        state=state,
        created_at="2024-05-01T10:00:00+00:00",
        updated_at="2024-05-02T10:00:00+00:00",
        base_ref="main",
        head_ref="feature",
        base_sha="b" * 40,
        head_sha="h" * 40,
    )


def _make_commit(sha, message="Change", files=None):
    return CommitRecord(
        sha=sha,
        message=message,
        author="alice",
        timestamp="2024-05-01T10:00:00+00:00",
        additions=3,
        deletions=1,
        changed_file_count=len(files or []),
        files=files or [],
    )


def _make_job(token="batch_abc", refs=None):
    refs = refs or [REF, PullRequestRef("octo", "gears", 2)]
    return BatchJob(token=token, refs=refs, total_count=len(refs))


@pytest.fixture(params=["sqlite", "memory"])
def store(request, tmp_path):
    if request.param == "sqlite":
        s = SQLiteStore(db_path=str(tmp_path / "test.db"))
    else:
        s = MemoryStore()
    yield s
    s.close()


# ---------------------------------------------------------------------------
# Pull-request data (both backends)
# ---------------------------------------------------------------------------


class TestPullRequestData:
    def test_get_missing_returns_none(self, store):
        assert store.get_pull_request(REF) is None
        assert store.get_cached(REF) is None

    def test_upsert_assigns_stable_id(self, store):
        first = store.upsert_pull_request(_make_pull())
        second = store.upsert_pull_request(_make_pull(title="Renamed"))
        assert first == second
        assert store.get_pull_request(REF).id == first

    def test_upsert_is_last_write_wins(self, store):
        store.upsert_pull_request(_make_pull(title="Old", state="open"))
        store.upsert_pull_request(_make_pull(title="New", state="closed"))
        stored = store.get_pull_request(REF)
        assert (stored.title, stored.state) == ("New", "closed")

    def test_distinct_refs_get_distinct_ids(self, store):
        a = store.upsert_pull_request(_make_pull(PullRequestRef("octo", "widgets", 1)))
        b = store.upsert_pull_request(_make_pull(PullRequestRef("octo", "widgets", 2)))
        assert a != b

    def test_comments_and_reviews_are_idempotent(self, store):
        pr_id = store.upsert_pull_request(_make_pull())
        comments = [CommentRecord(1, "carol", "Nice", "t")]
        reviews = [ReviewRecord(2, "bob", "APPROVED", None, "t")]
        store.save_comments(pr_id, comments)
        store.save_comments(pr_id, comments)
        store.save_reviews(pr_id, reviews)
        store.save_reviews(pr_id, reviews)  # must not raise

    def test_commits_roundtrip_in_order(self, store):
        pr_id = store.upsert_pull_request(_make_pull())
        commits = [
            _make_commit("c1", files=[FileChange("a.py", 3, 1, "added", "+x")]),
            _make_commit("c2", message="Merge branch 'main'"),
        ]
        store.save_commits(pr_id, commits)
        store.save_commits(pr_id, commits)

        stored = store.get_commits(pr_id)
        assert [c.sha for c in stored] == ["c1", "c2"]
        assert stored[0].files == [FileChange("a.py", 3, 1, "added", "+x")]
        assert stored[1].message == "Merge branch 'main'"

    def test_diff_summary_upsert_replaces(self, store):
        pr_id = store.upsert_pull_request(_make_pull())
        store.upsert_diff_summary(pr_id, DiffSummary(total_additions=1, source="commits"))
        store.upsert_diff_summary(
            pr_id,
            DiffSummary(
                first_commit_sha="c1",
                last_commit_sha="c2",
                total_additions=5,
                total_deletions=2,
                total_changed_files=1,
                files=[FileChange("a.py", 5, 2, "modified", "+y")],
                source="comparison",
            ),
        )
        summary = store.get_diff_summary(pr_id)
        assert summary.source == "comparison"
        assert summary.total_additions == 5
        assert summary.files[0].patch_excerpt == "+y"

    def test_review_driven_changes_roundtrip(self, store):
        pr_id = store.upsert_pull_request(_make_pull())
        changes = ReviewDrivenChangeSet(
            has_changes=True,
            total_commits=3,
            review_commit_count=2,
            diff=DiffSummary(first_commit_sha="c1", last_commit_sha="c3", files=[FileChange("a.py", 1)]),
        )
        store.upsert_review_driven_changes(pr_id, changes)
        assert store.get_review_driven_changes(pr_id) == changes

    def test_missing_diffs_return_none(self, store):
        pr_id = store.upsert_pull_request(_make_pull())
        assert store.get_diff_summary(pr_id) is None
        assert store.get_review_driven_changes(pr_id) is None


class TestReports:
    def test_cache_hit_after_report(self, store):
        pr_id = store.upsert_pull_request(_make_pull())
        store.upsert_report(ReportRecord(pr_id=pr_id, content="# PR Report", model="gpt-4o-mini"))

        cached = store.get_cached(REF)
        assert cached is not None
        pull, report = cached
        assert pull.id == pr_id
        assert report.content == "# PR Report"
        assert report.model == "gpt-4o-mini"

    def test_no_cache_without_report(self, store):
        store.upsert_pull_request(_make_pull())
        assert store.get_cached(REF) is None

    def test_first_insert_wins(self, store):
        pr_id = store.upsert_pull_request(_make_pull())
        first = store.upsert_report(ReportRecord(pr_id=pr_id, content="first"))
        second = store.upsert_report(ReportRecord(pr_id=pr_id, content="second"))

        assert first.content == "first"
        assert second.content == "first"
        assert store.get_report(pr_id).content == "first"


# ---------------------------------------------------------------------------
# Batch progress (both backends)
# ---------------------------------------------------------------------------


class TestBatchProgress:
    def test_unknown_token_returns_none(self, store):
        assert store.get_batch("batch_missing") is None

    def test_create_and_get(self, store):
        store.create_batch(_make_job())
        job = store.get_batch("batch_abc")
        assert job.status == BatchStatus.PENDING
        assert job.total_count == 2
        assert job.completed_count == 0
        assert job.refs[0] == REF
        assert job.results == []

    def test_duplicate_token_rejected(self, store):
        store.create_batch(_make_job())
        with pytest.raises((ValueError, sqlite3.IntegrityError)):
            store.create_batch(_make_job())

    def test_lifecycle_to_completed(self, store):
        store.create_batch(_make_job())
        store.start_batch("batch_abc")
        assert store.get_batch("batch_abc").status == BatchStatus.PROCESSING
        assert store.get_batch("batch_abc").started_at is not None

        partial = [Success(ref=REF)]
        store.update_batch_progress("batch_abc", partial)
        job = store.get_batch("batch_abc")
        assert job.completed_count == 1
        assert job.status == BatchStatus.PROCESSING

        final = partial + [Failure(ref=PullRequestRef("octo", "gears", 2), reason="fetch failed: 404")]
        store.complete_batch("batch_abc", final)
        job = store.get_batch("batch_abc")
        assert job.status == BatchStatus.COMPLETED
        assert job.completed_count == 2
        assert job.results == final
        assert job.completed_at is not None

    def test_fail_keeps_partial_results(self, store):
        store.create_batch(_make_job())
        store.start_batch("batch_abc")
        store.update_batch_progress("batch_abc", [Success(ref=REF)])

        store.fail_batch("batch_abc", "Batch processing timeout exceeded")

        job = store.get_batch("batch_abc")
        assert job.status == BatchStatus.FAILED
        assert job.error_message == "Batch processing timeout exceeded"
        assert job.completed_count == 1
        assert len(job.results) == 1

    def test_success_results_keep_pr_and_report(self, store):
        pull = _make_pull()
        pull.id = 1
        report = ReportRecord(pr_id=1, content="# PR Report", generated_at="2024-05-03T00:00:00+00:00", model="m")
        store.create_batch(_make_job())
        store.complete_batch("batch_abc", [Success(ref=REF, pr=pull, report=report, cached=True)])

        result = store.get_batch("batch_abc").results[0]
        assert result.cached is True
        assert result.pr.title == "Add widget cache"
        assert result.report == report


# ---------------------------------------------------------------------------
# Backend specifics
# ---------------------------------------------------------------------------


class TestSQLiteStore:
    def test_persists_across_connections(self, tmp_path):
        """Data written by one SQLiteStore instance must be readable by another."""
        db = str(tmp_path / "test.db")
        s1 = SQLiteStore(db_path=db)
        pr_id = s1.upsert_pull_request(_make_pull())
        s1.upsert_report(ReportRecord(pr_id=pr_id, content="# PR Report"))
        s1.create_batch(_make_job())
        s1.close()

        s2 = SQLiteStore(db_path=db)
        assert s2.get_cached(REF)[1].content == "# PR Report"
        assert s2.get_batch("batch_abc").total_count == 2
        s2.close()

    def test_report_requires_pull_request_row(self, tmp_path):
        store = SQLiteStore(db_path=str(tmp_path / "test.db"))
        with pytest.raises(sqlite3.IntegrityError):
            store.upsert_report(ReportRecord(pr_id=999, content="orphan"))
        store.close()

    def test_ping(self, tmp_path):
        store = SQLiteStore(db_path=str(tmp_path / "test.db"))
        store.ping()  # must not raise
        store.close()


class TestMemoryStore:
    def test_reads_are_copies(self):
        store = MemoryStore()
        store.upsert_pull_request(_make_pull())
        store.get_pull_request(REF).title = "mutated"
        assert store.get_pull_request(REF).title == "Add widget cache"

    def test_unknown_token_update_raises(self):
        with pytest.raises(KeyError):
            MemoryStore().start_batch("batch_missing")


class TestSerialization:
    def test_failure_dict_shape(self):
        data = result_to_dict(Failure(ref=REF, reason="timeout"))
        assert data == {"org": "octo", "repo": "widgets", "pr_number": 7, "success": False, "error": "timeout"}

    def test_failure_without_error_gets_default_reason(self):
        result = result_from_dict({"org": "o", "repo": "r", "pr_number": 1, "success": False})
        assert result.reason == "Failed to process PR"
