# src/testsmith/tasks/task_store.py

from __future__ import annotations

import contextlib
import logging
import sqlite3
import time
from pathlib import Path

from .errors import InvalidTransition
from .task_models import Repo, Task, TaskStatus

logger = logging.getLogger(__name__)


class TaskStore:
    """
    SQLite store for repositories and enhancement tasks.

    The schema is intentionally simple and migration-safe:
    - create tables if missing
    - use PRAGMA table_info to detect missing columns
    - add columns with ALTER TABLE only when needed

    Thread-safety:
    - each method opens its own SQLite connection
    """

    def __init__(self, db_path: str | Path = "testsmith.sqlite3") -> None:
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._ensure_schema()
        logger.info("TaskStore ready db=%s total=%s", self._db_path, self.count_tasks())

    def close(self) -> None:
        """Compatibility hook for shutdown (no persistent connections to close)."""
        return

    # ---- low-level helpers ----

    def _get_conn(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self._db_path), timeout=30.0)
        conn.row_factory = sqlite3.Row
        with contextlib.suppress(sqlite3.Error):
            conn.execute("PRAGMA journal_mode=WAL")
        return conn

    def _ensure_schema(self) -> None:
        conn = self._get_conn()
        try:
            cur = conn.cursor()
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS repos (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    url TEXT NOT NULL,
                    created_at REAL NOT NULL
                )
                """
            )
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS tasks (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    repo_id INTEGER NOT NULL,
                    path TEXT NOT NULL,
                    status TEXT NOT NULL DEFAULT 'queued',
                    created_at REAL NOT NULL,
                    updated_at REAL NOT NULL
                )
                """
            )

            # Migrations (safe): add missing columns.
            cur.execute("PRAGMA table_info(tasks)")
            cols = {row["name"] for row in cur.fetchall()}
            if "last_error" not in cols:
                cur.execute("ALTER TABLE tasks ADD COLUMN last_error TEXT")
                logger.info("TaskStore migration: added column last_error")

            cur.execute("CREATE INDEX IF NOT EXISTS idx_tasks_status ON tasks(status, id)")
            conn.commit()
        finally:
            conn.close()

    @staticmethod
    def _row_to_task(row: sqlite3.Row) -> Task:
        return Task(
            id=int(row["id"]),
            repo_id=int(row["repo_id"]),
            path=str(row["path"]),
            status=TaskStatus.from_db(row["status"]),
            created_at=float(row["created_at"] or 0.0),
            updated_at=float(row["updated_at"] or 0.0),
            last_error=row["last_error"],
        )

    @staticmethod
    def _row_to_repo(row: sqlite3.Row) -> Repo:
        return Repo(id=int(row["id"]), url=str(row["url"]), created_at=float(row["created_at"] or 0.0))

    # ---- repositories ----

    def add_repo(self, url: str) -> int:
        if not url or not url.strip():
            raise ValueError("url is required")

        conn = self._get_conn()
        try:
            cur = conn.cursor()
            cur.execute("INSERT INTO repos(url, created_at) VALUES (?, ?)", (url.strip(), time.time()))
            conn.commit()
            rowid = cur.lastrowid
            if rowid is None:
                raise RuntimeError("SQLite did not return lastrowid for repos insert")
            logger.debug("Repo added id=%s url=%s", rowid, url)
            return int(rowid)
        finally:
            conn.close()

    def get_repo(self, repo_id: int) -> Repo | None:
        conn = self._get_conn()
        try:
            row = conn.execute("SELECT * FROM repos WHERE id = ?", (int(repo_id),)).fetchone()
            return self._row_to_repo(row) if row else None
        finally:
            conn.close()

    # ---- tasks ----

    def count_tasks(self, status: TaskStatus | None = None) -> int:
        conn = self._get_conn()
        try:
            if status is None:
                (n,) = conn.execute("SELECT COUNT(*) FROM tasks").fetchone()
            else:
                (n,) = conn.execute("SELECT COUNT(*) FROM tasks WHERE status = ?", (status.value,)).fetchone()
            return int(n)
        finally:
            conn.close()

    def add_task(self, *, repo_id: int, path: str) -> int:
        if not path or not path.strip():
            raise ValueError("path is required")

        now = time.time()
        conn = self._get_conn()
        try:
            cur = conn.cursor()
            cur.execute(
                """
                INSERT INTO tasks(repo_id, path, status, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (int(repo_id), path.strip(), TaskStatus.QUEUED.value, now, now),
            )
            conn.commit()
            rowid = cur.lastrowid
            if rowid is None:
                raise RuntimeError("SQLite did not return lastrowid for tasks insert")
            logger.debug("Task added id=%s repo_id=%s path=%s", rowid, repo_id, path)
            return int(rowid)
        finally:
            conn.close()

    def get_task(self, task_id: int) -> Task | None:
        conn = self._get_conn()
        try:
            row = conn.execute("SELECT * FROM tasks WHERE id = ?", (int(task_id),)).fetchone()
            return self._row_to_task(row) if row else None
        finally:
            conn.close()

    def find_first_queued(self) -> Task | None:
        """Oldest queued task by insertion order, or None."""
        conn = self._get_conn()
        try:
            row = conn.execute(
                "SELECT * FROM tasks WHERE status = ? ORDER BY id ASC LIMIT 1",
                (TaskStatus.QUEUED.value,),
            ).fetchone()
            return self._row_to_task(row) if row else None
        finally:
            conn.close()

    def try_claim_task(self, task_id: int) -> bool:
        """
        Atomically transitions:
          status = queued -> status = processing

        Returns True if the row was claimed by this caller.
        """
        conn = self._get_conn()
        try:
            cur = conn.execute(
                "UPDATE tasks SET status = ?, updated_at = ? WHERE id = ? AND status = ?",
                (TaskStatus.PROCESSING.value, time.time(), int(task_id), TaskStatus.QUEUED.value),
            )
            conn.commit()
            return cur.rowcount == 1
        finally:
            conn.close()

    def update_task_status(self, task_id: int, new_status: TaskStatus, *, error: str | None = None) -> None:
        """
        Move a task forward. The update is conditional on the current status so a
        concurrent writer can never push a task backwards.
        """
        allowed_from = [old.value for old in TaskStatus if TaskStatus.can_transition(old, new_status)]
        if not allowed_from:
            raise InvalidTransition(f"no status can transition to {new_status.value}")

        placeholders = ",".join("?" for _ in allowed_from)
        conn = self._get_conn()
        try:
            cur = conn.execute(
                f"""
                UPDATE tasks
                SET status = ?, last_error = ?, updated_at = ?
                WHERE id = ?
                  AND status IN ({placeholders})
                """,
                (new_status.value, error, time.time(), int(task_id), *allowed_from),
            )
            conn.commit()
            if cur.rowcount != 1:
                row = conn.execute("SELECT status FROM tasks WHERE id = ?", (int(task_id),)).fetchone()
                if row is None:
                    raise InvalidTransition(f"task {task_id} does not exist")
                current = TaskStatus.from_db(row["status"])
                if current.is_terminal:
                    raise InvalidTransition(f"task {task_id} is already {current.value}")
                raise InvalidTransition(f"task {task_id}: cannot move {current.value!r} -> {new_status.value!r}")
        finally:
            conn.close()
