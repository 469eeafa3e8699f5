"""SQLiteStore — local file-based store for pull-request data and batch progress.

The default backend. Natural-key uniqueness constraints back the pipeline's
upserts (ON CONFLICT clauses, no read-then-write). One file holds the report
cache and the batch progress rows, so a poller in another process sees what
the scheduler writes.

Schema:
  pull_requests, pr_comments, pr_reviews, pr_commits — normalized PR data
  commit_diffs, review_driven_changes              — one row per PR (upsert)
  pr_reports                                       — one row per PR, first insert wins
  batch_analyses                                   — one mutable row per batch token

File lists and batch results are JSON text columns.
"""

from __future__ import annotations

import json
import logging
import sqlite3
import threading
from datetime import datetime, timezone
from typing import TYPE_CHECKING

from prdigest_core.models import (
    BatchJob,
    BatchStatus,
    CommitRecord,
    PullRequestRecord,
    ReportRecord,
)
from prdigest_store.base import BaseProgressStore, BaseStore
from prdigest_store.serialization import (
    changes_from_dict,
    changes_to_dict,
    commit_files_to_list,
    diff_from_dict,
    diff_to_dict,
    file_from_dict,
    ref_from_dict,
    ref_to_dict,
    result_from_dict,
    result_to_dict,
)

if TYPE_CHECKING:
    from prdigest_core.models import (
        CommentRecord,
        DiffSummary,
        ItemResult,
        PullRequestRef,
        ReviewDrivenChangeSet,
        ReviewRecord,
    )

logger = logging.getLogger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS pull_requests (
    id          INTEGER PRIMARY KEY AUTOINCREMENT,
    org         TEXT NOT NULL,
    repo        TEXT NOT NULL,
    pr_number   INTEGER NOT NULL,
    title       TEXT NOT NULL,
    description TEXT,
    author      TEXT NOT NULL,
    state       TEXT NOT NULL,
    created_at  TEXT,
    updated_at  TEXT,
    base_ref    TEXT,
    head_ref    TEXT,
    base_sha    TEXT,
    head_sha    TEXT,
    UNIQUE (org, repo, pr_number)
);
CREATE TABLE IF NOT EXISTS pr_comments (
    id          INTEGER PRIMARY KEY AUTOINCREMENT,
    pr_id       INTEGER NOT NULL REFERENCES pull_requests(id) ON DELETE CASCADE,
    comment_id  INTEGER NOT NULL UNIQUE,
    author      TEXT NOT NULL,
    body        TEXT NOT NULL,
    created_at  TEXT
);
CREATE TABLE IF NOT EXISTS pr_reviews (
    id           INTEGER PRIMARY KEY AUTOINCREMENT,
    pr_id        INTEGER NOT NULL REFERENCES pull_requests(id) ON DELETE CASCADE,
    review_id    INTEGER NOT NULL UNIQUE,
    author       TEXT NOT NULL,
    state        TEXT NOT NULL,
    body         TEXT,
    submitted_at TEXT
);
CREATE TABLE IF NOT EXISTS pr_commits (
    id            INTEGER PRIMARY KEY AUTOINCREMENT,
    pr_id         INTEGER NOT NULL REFERENCES pull_requests(id) ON DELETE CASCADE,
    position      INTEGER NOT NULL,
    commit_sha    TEXT NOT NULL,
    message       TEXT NOT NULL,
    author_name   TEXT,
    author_email  TEXT,
    committed_at  TEXT,
    additions     INTEGER DEFAULT 0,
    deletions     INTEGER DEFAULT 0,
    changed_files INTEGER DEFAULT 0,
    parent_count  INTEGER DEFAULT 1,
    files_json    TEXT DEFAULT '[]',
    UNIQUE (pr_id, commit_sha)
);
CREATE TABLE IF NOT EXISTS commit_diffs (
    pr_id        INTEGER PRIMARY KEY REFERENCES pull_requests(id) ON DELETE CASCADE,
    summary_json TEXT NOT NULL,
    analyzed_at  TEXT
);
CREATE TABLE IF NOT EXISTS review_driven_changes (
    pr_id        INTEGER PRIMARY KEY REFERENCES pull_requests(id) ON DELETE CASCADE,
    changes_json TEXT NOT NULL,
    analyzed_at  TEXT
);
CREATE TABLE IF NOT EXISTS pr_reports (
    pr_id          INTEGER PRIMARY KEY REFERENCES pull_requests(id) ON DELETE CASCADE,
    report_content TEXT NOT NULL,
    model          TEXT,
    generated_at   TEXT
);
CREATE TABLE IF NOT EXISTS batch_analyses (
    batch_token     TEXT PRIMARY KEY,
    pr_list         TEXT NOT NULL,
    status          TEXT NOT NULL DEFAULT 'pending',
    completed_count INTEGER DEFAULT 0,
    total_count     INTEGER DEFAULT 0,
    results         TEXT DEFAULT '[]',
    created_at      TEXT,
    started_at      TEXT,
    completed_at    TEXT,
    error_message   TEXT
);
CREATE INDEX IF NOT EXISTS idx_pr_org_repo ON pull_requests (org, repo);
CREATE INDEX IF NOT EXISTS idx_pr_commits_pr ON pr_commits (pr_id, position);
CREATE INDEX IF NOT EXISTS idx_batch_status ON batch_analyses (status);
"""


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class SQLiteStore(BaseStore, BaseProgressStore):
    """Stores pull-request data, reports and batch progress in one SQLite file.

    The database file path defaults to `.prdigest.db` in the current working
    directory. Configure via .prdigest.yml: `store_path: /path/to/prdigest.db`.
    A single connection is shared across scheduler threads behind a lock.
    """

    def __init__(self, db_path: str = ".prdigest.db"):
        self._lock = threading.RLock()
        self._conn = sqlite3.connect(db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA foreign_keys = ON")
        self._conn.executescript(_SCHEMA)
        self._conn.commit()

    def _write(self, sql: str, params: tuple = ()) -> sqlite3.Cursor:
        with self._lock:
            cursor = self._conn.execute(sql, params)
            self._conn.commit()
            return cursor

    def _read_one(self, sql: str, params: tuple = ()) -> sqlite3.Row | None:
        with self._lock:
            return self._conn.execute(sql, params).fetchone()

    def _read_all(self, sql: str, params: tuple = ()) -> list[sqlite3.Row]:
        with self._lock:
            return self._conn.execute(sql, params).fetchall()

    def ping(self) -> None:
        self._read_one("SELECT 1")

    # ------------------------------------------------------------------ #
    # Pull-request data                                                    #
    # ------------------------------------------------------------------ #

    def get_pull_request(self, ref: PullRequestRef) -> PullRequestRecord | None:
        row = self._read_one(
            "SELECT * FROM pull_requests WHERE org=? AND repo=? AND pr_number=?",
            (ref.org, ref.repo, ref.pr_number),
        )
        return self._row_to_pull(row) if row is not None else None

    def upsert_pull_request(self, pull: PullRequestRecord) -> int:
        with self._lock:
            self._conn.execute(
                """
                INSERT INTO pull_requests
                  (org, repo, pr_number, title, description, author, state,
                   created_at, updated_at, base_ref, head_ref, base_sha, head_sha)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT (org, repo, pr_number) DO UPDATE SET
                  title=excluded.title,
                  description=excluded.description,
                  author=excluded.author,
                  state=excluded.state,
                  created_at=excluded.created_at,
                  updated_at=excluded.updated_at,
                  base_ref=excluded.base_ref,
                  head_ref=excluded.head_ref,
                  base_sha=excluded.base_sha,
                  head_sha=excluded.head_sha
                """,
                (
                    pull.org,
                    pull.repo,
                    pull.pr_number,
                    pull.title,
                    pull.description,
                    pull.author,
                    pull.state,
                    pull.created_at,
                    pull.updated_at,
                    pull.base_ref,
                    pull.head_ref,
                    pull.base_sha,
                    pull.head_sha,
                ),
            )
            self._conn.commit()
            row = self._conn.execute(
                "SELECT id FROM pull_requests WHERE org=? AND repo=? AND pr_number=?",
                (pull.org, pull.repo, pull.pr_number),
            ).fetchone()
        return row["id"]

    def save_comments(self, pr_id: int, comments: list[CommentRecord]) -> None:
        with self._lock:
            self._conn.executemany(
                """
                INSERT INTO pr_comments (pr_id, comment_id, author, body, created_at)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT (comment_id) DO NOTHING
                """,
                [(pr_id, c.comment_id, c.author, c.body, c.created_at) for c in comments],
            )
            self._conn.commit()

    def save_reviews(self, pr_id: int, reviews: list[ReviewRecord]) -> None:
        with self._lock:
            self._conn.executemany(
                """
                INSERT INTO pr_reviews (pr_id, review_id, author, state, body, submitted_at)
                VALUES (?, ?, ?, ?, ?, ?)
                ON CONFLICT (review_id) DO NOTHING
                """,
                [(pr_id, r.review_id, r.author, r.state, r.body, r.submitted_at) for r in reviews],
            )
            self._conn.commit()

    def save_commits(self, pr_id: int, commits: list[CommitRecord]) -> None:
        with self._lock:
            self._conn.executemany(
                """
                INSERT INTO pr_commits
                  (pr_id, position, commit_sha, message, author_name, author_email, committed_at,
                   additions, deletions, changed_files, parent_count, files_json)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT (pr_id, commit_sha) DO UPDATE SET
                  position=excluded.position,
                  message=excluded.message,
                  additions=excluded.additions,
                  deletions=excluded.deletions,
                  changed_files=excluded.changed_files,
                  parent_count=excluded.parent_count,
                  files_json=excluded.files_json
                """,
                [
                    (
                        pr_id,
                        position,
                        c.sha,
                        c.message,
                        c.author,
                        c.author_email,
                        c.timestamp,
                        c.additions,
                        c.deletions,
                        c.changed_file_count,
                        c.parent_count,
                        json.dumps(commit_files_to_list(c)),
                    )
                    for position, c in enumerate(commits)
                ],
            )
            self._conn.commit()

    def get_commits(self, pr_id: int) -> list[CommitRecord]:
        rows = self._read_all("SELECT * FROM pr_commits WHERE pr_id=? ORDER BY position", (pr_id,))
        return [
            CommitRecord(
                sha=r["commit_sha"],
                message=r["message"],
                author=r["author_name"] or "",
                author_email=r["author_email"] or "",
                timestamp=r["committed_at"] or "",
                additions=r["additions"],
                deletions=r["deletions"],
                changed_file_count=r["changed_files"],
                parent_count=r["parent_count"],
                files=[file_from_dict(f) for f in json.loads(r["files_json"] or "[]")],
            )
            for r in rows
        ]

    def upsert_diff_summary(self, pr_id: int, summary: DiffSummary) -> None:
        self._write(
            """
            INSERT INTO commit_diffs (pr_id, summary_json, analyzed_at) VALUES (?, ?, ?)
            ON CONFLICT (pr_id) DO UPDATE SET
              summary_json=excluded.summary_json, analyzed_at=excluded.analyzed_at
            """,
            (pr_id, json.dumps(diff_to_dict(summary)), _now()),
        )

    def get_diff_summary(self, pr_id: int) -> DiffSummary | None:
        row = self._read_one("SELECT summary_json FROM commit_diffs WHERE pr_id=?", (pr_id,))
        return diff_from_dict(json.loads(row["summary_json"])) if row is not None else None

    def upsert_review_driven_changes(self, pr_id: int, changes: ReviewDrivenChangeSet) -> None:
        self._write(
            """
            INSERT INTO review_driven_changes (pr_id, changes_json, analyzed_at) VALUES (?, ?, ?)
            ON CONFLICT (pr_id) DO UPDATE SET
              changes_json=excluded.changes_json, analyzed_at=excluded.analyzed_at
            """,
            (pr_id, json.dumps(changes_to_dict(changes)), _now()),
        )

    def get_review_driven_changes(self, pr_id: int) -> ReviewDrivenChangeSet | None:
        row = self._read_one("SELECT changes_json FROM review_driven_changes WHERE pr_id=?", (pr_id,))
        return changes_from_dict(json.loads(row["changes_json"])) if row is not None else None

    def upsert_report(self, report: ReportRecord) -> ReportRecord:
        with self._lock:
            self._conn.execute(
                """
                INSERT INTO pr_reports (pr_id, report_content, model, generated_at)
                VALUES (?, ?, ?, ?)
                ON CONFLICT (pr_id) DO NOTHING
                """,
                (report.pr_id, report.content, report.model, report.generated_at),
            )
            self._conn.commit()
        stored = self.get_report(report.pr_id)
        return stored if stored is not None else report

    def get_report(self, pr_id: int) -> ReportRecord | None:
        row = self._read_one("SELECT * FROM pr_reports WHERE pr_id=?", (pr_id,))
        if row is None:
            return None
        return ReportRecord(
            pr_id=row["pr_id"],
            content=row["report_content"],
            generated_at=row["generated_at"] or "",
            model=row["model"] or "",
        )

    # ------------------------------------------------------------------ #
    # Batch progress                                                       #
    # ------------------------------------------------------------------ #

    def create_batch(self, job: BatchJob) -> None:
        self._write(
            """
            INSERT INTO batch_analyses
              (batch_token, pr_list, status, completed_count, total_count, results, created_at)
            VALUES (?, ?, ?, 0, ?, '[]', ?)
            """,
            (
                job.token,
                json.dumps([ref_to_dict(r) for r in job.refs]),
                BatchStatus(job.status).value,
                job.total_count,
                job.created_at,
            ),
        )

    def start_batch(self, token: str) -> None:
        self._write(
            "UPDATE batch_analyses SET status=?, started_at=? WHERE batch_token=?",
            (BatchStatus.PROCESSING.value, _now(), token),
        )

    def update_batch_progress(self, token: str, results: list[ItemResult]) -> None:
        self._write(
            "UPDATE batch_analyses SET completed_count=?, results=? WHERE batch_token=?",
            (len(results), self._results_json(results), token),
        )

    def complete_batch(self, token: str, results: list[ItemResult]) -> None:
        self._write(
            """
            UPDATE batch_analyses
            SET status=?, completed_count=?, results=?, completed_at=?
            WHERE batch_token=?
            """,
            (BatchStatus.COMPLETED.value, len(results), self._results_json(results), _now(), token),
        )

    def fail_batch(self, token: str, error_message: str, results: list[ItemResult] | None = None) -> None:
        if results is None:
            self._write(
                "UPDATE batch_analyses SET status=?, error_message=?, completed_at=? WHERE batch_token=?",
                (BatchStatus.FAILED.value, error_message, _now(), token),
            )
            return
        self._write(
            """
            UPDATE batch_analyses
            SET status=?, error_message=?, completed_count=?, results=?, completed_at=?
            WHERE batch_token=?
            """,
            (BatchStatus.FAILED.value, error_message, len(results), self._results_json(results), _now(), token),
        )

    def get_batch(self, token: str) -> BatchJob | None:
        row = self._read_one("SELECT * FROM batch_analyses WHERE batch_token=?", (token,))
        if row is None:
            return None
        return BatchJob(
            token=row["batch_token"],
            refs=[ref_from_dict(r) for r in json.loads(row["pr_list"] or "[]")],
            status=BatchStatus(row["status"]),
            total_count=row["total_count"],
            completed_count=row["completed_count"],
            results=[result_from_dict(r) for r in json.loads(row["results"] or "[]")],
            error_message=row["error_message"],
            created_at=row["created_at"] or "",
            started_at=row["started_at"],
            completed_at=row["completed_at"],
        )

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    @staticmethod
    def _results_json(results: list[ItemResult]) -> str:
        return json.dumps([result_to_dict(r) for r in results])

    @staticmethod
    def _row_to_pull(row: sqlite3.Row) -> PullRequestRecord:
        return PullRequestRecord(
            id=row["id"],
            org=row["org"],
            repo=row["repo"],
            pr_number=row["pr_number"],
            title=row["title"],
            description=row["description"],
            author=row["author"],
            state=row["state"],
            created_at=row["created_at"] or "",
            updated_at=row["updated_at"] or "",
            base_ref=row["base_ref"] or "",
            head_ref=row["head_ref"] or "",
            base_sha=row["base_sha"] or "",
            head_sha=row["head_sha"] or "",
        )
