"""SQLite-backed task store with automatic table migration."""

from __future__ import annotations

import logging
import sqlite3
import threading
import uuid
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from md2slack.errors import StoreError
from md2slack.storage.models import HistoryRecord, Task

logger = logging.getLogger(__name__)

_EDITABLE_FIELDS = {
    "intent",
    "title",
    "details",
    "scope",
    "type",
    "status",
    "estimated_hours",
    "commits",
    "usernames",
    "is_manual",
    "is_historical",
}


class SQLiteTaskStore:
    """Persist tasks and report history per (repo, date) in one SQLite file."""

    def __init__(self, db_path: str | Path) -> None:
        self.db_path = Path(db_path)
        self._lock = threading.Lock()

    def migrate(self) -> None:
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        with self._lock, self._connect() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS history (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    repo_name TEXT NOT NULL,
                    date TEXT NOT NULL,
                    message TEXT NOT NULL DEFAULT '',
                    role TEXT NOT NULL DEFAULT 'assistant',
                    created_at TEXT NOT NULL,
                    UNIQUE(repo_name, date)
                )
                """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS tasks (
                    id TEXT PRIMARY KEY,
                    repo_name TEXT NOT NULL,
                    date TEXT NOT NULL,
                    title TEXT NOT NULL DEFAULT '',
                    details TEXT NOT NULL DEFAULT '',
                    status TEXT NOT NULL DEFAULT 'done',
                    intents TEXT NOT NULL DEFAULT '',
                    usernames TEXT NOT NULL DEFAULT '',
                    commits TEXT NOT NULL DEFAULT '',
                    scope TEXT NOT NULL DEFAULT '',
                    estimated_time INTEGER NOT NULL DEFAULT 0,
                    type TEXT NOT NULL DEFAULT 'delivery',
                    is_manual INTEGER NOT NULL DEFAULT 0,
                    is_historical INTEGER NOT NULL DEFAULT 0,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
                """)
            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_tasks_repo_date
                ON tasks(repo_name, date)
                """)
        logger.info("store event=migrated path=%s", self.db_path)

    def load_tasks(self, repo: str, date: str) -> list[Task]:
        with self._lock, self._connect() as conn:
            return self._select_partition(conn, repo, date)

    def create_task(self, repo: str, date: str, task: Task) -> tuple[str, list[Task]]:
        task_id = _new_id()
        now = _utc_now_iso()
        with self._lock, self._connect() as conn:
            self._insert_task(conn, repo, date, task.model_copy(update={"id": task_id}), now)
            conn.commit()
            tasks = self._select_partition(conn, repo, date)
        return task_id, tasks

    def update_task(self, repo: str, date: str, task_id: str, patch: dict[str, Any]) -> list[Task]:
        with self._lock, self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM tasks WHERE repo_name = ? AND date = ? AND id = ?",
                (repo, date, task_id),
            ).fetchone()
            if row is None:
                raise StoreError(f"task_id {task_id} not found")

            current = _row_to_task(row).model_dump()
            current.update({key: value for key, value in patch.items() if key in _EDITABLE_FIELDS})
            updated = Task.model_validate(current)
            conn.execute(
                """
                UPDATE tasks
                SET title = ?,
                    details = ?,
                    status = ?,
                    intents = ?,
                    usernames = ?,
                    commits = ?,
                    scope = ?,
                    estimated_time = ?,
                    type = ?,
                    is_manual = ?,
                    is_historical = ?,
                    updated_at = ?
                WHERE id = ?
                """,
                (
                    updated.title,
                    updated.details,
                    updated.status,
                    updated.intent,
                    ",".join(updated.usernames),
                    ",".join(updated.commits),
                    updated.scope,
                    updated.estimated_hours,
                    updated.type,
                    int(updated.is_manual),
                    int(updated.is_historical),
                    _utc_now_iso(),
                    task_id,
                ),
            )
            conn.commit()
            return self._select_partition(conn, repo, date)

    def delete_tasks(self, repo: str, date: str, ids: list[str]) -> list[Task]:
        with self._lock, self._connect() as conn:
            conn.executemany(
                "DELETE FROM tasks WHERE repo_name = ? AND date = ? AND id = ?",
                [(repo, date, task_id) for task_id in ids],
            )
            conn.commit()
            return self._select_partition(conn, repo, date)

    def delete_all_tasks(self, repo: str, date: str) -> None:
        with self._lock, self._connect() as conn:
            conn.execute("DELETE FROM tasks WHERE repo_name = ? AND date = ?", (repo, date))
            conn.commit()

    def replace_tasks(self, repo: str, date: str, tasks: list[Task]) -> list[Task]:
        """Swap the whole partition for ``tasks`` in one transaction.

        Existing identifiers are kept so callers can match tasks by id after
        a save; tasks without one (or with a duplicate) get a fresh id.
        A task's ``created_at`` survives the swap; ``updated_at`` is stamped now.
        """
        now = _utc_now_iso()
        with self._lock, self._connect() as conn:
            try:
                conn.execute("BEGIN")
                conn.execute("DELETE FROM tasks WHERE repo_name = ? AND date = ?", (repo, date))
                seen: set[str] = set()
                for task in tasks:
                    task_id = task.id if task.id and task.id not in seen else _new_id()
                    seen.add(task_id)
                    self._insert_task(conn, repo, date, task.model_copy(update={"id": task_id}), now)
                conn.commit()
            except sqlite3.Error as exc:
                conn.rollback()
                logger.exception("store event=replace_failed repo=%s date=%s", repo, date)
                raise StoreError(f"replace tasks failed for {repo}/{date}: {exc}") from exc
            return self._select_partition(conn, repo, date)

    def save_history(self, repo: str, date: str, text: str, role: str = "assistant") -> None:
        with self._lock, self._connect() as conn:
            conn.execute(
                """
                INSERT INTO history (repo_name, date, message, role, created_at)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(repo_name, date) DO UPDATE SET
                    message = excluded.message,
                    role = excluded.role,
                    created_at = excluded.created_at
                """,
                (repo, date, text, role, _utc_now_iso()),
            )
            conn.commit()

    def load_history(self, repo: str, date: str) -> HistoryRecord | None:
        with self._lock, self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM history WHERE repo_name = ? AND date = ?",
                (repo, date),
            ).fetchone()
        if row is None:
            return None
        return HistoryRecord(
            repo_name=row["repo_name"],
            date=row["date"],
            message=row["message"],
            role=row["role"],
            created_at=datetime.fromisoformat(row["created_at"]),
        )

    def delete_history(self, repo: str, date: str) -> None:
        with self._lock, self._connect() as conn:
            conn.execute("DELETE FROM history WHERE repo_name = ? AND date = ?", (repo, date))
            conn.commit()

    def _insert_task(
        self, conn: sqlite3.Connection, repo: str, date: str, task: Task, now: str
    ) -> None:
        conn.execute(
            """
            INSERT INTO tasks (
                id,
                repo_name,
                date,
                title,
                details,
                status,
                intents,
                usernames,
                commits,
                scope,
                estimated_time,
                type,
                is_manual,
                is_historical,
                created_at,
                updated_at
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                task.id,
                repo,
                date,
                task.title,
                task.details,
                task.status,
                task.intent,
                ",".join(task.usernames),
                ",".join(task.commits),
                task.scope,
                task.estimated_hours,
                task.type,
                int(task.is_manual),
                int(task.is_historical),
                _utc_iso(task.created_at) if task.created_at else now,
                now,
            ),
        )

    def _select_partition(self, conn: sqlite3.Connection, repo: str, date: str) -> list[Task]:
        rows = conn.execute(
            """
            SELECT *
            FROM tasks
            WHERE repo_name = ? AND date = ?
            ORDER BY created_at ASC, rowid ASC
            """,
            (repo, date),
        ).fetchall()
        return [_row_to_task(row) for row in rows]

    def _connect(self) -> "_ClosingConnection":
        conn = sqlite3.connect(self.db_path, timeout=10.0, isolation_level=None)
        conn.row_factory = sqlite3.Row
        return _ClosingConnection(conn)


class _ClosingConnection:
    """Close the connection on exit; sqlite3 only ends the transaction."""

    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn

    def __enter__(self) -> sqlite3.Connection:
        return self._conn

    def __exit__(self, exc_type: Any, exc: Any, tb: Any) -> None:
        self._conn.close()


def _row_to_task(row: sqlite3.Row) -> Task:
    return Task(
        id=row["id"],
        intent=row["intents"],
        title=row["title"],
        details=row["details"],
        scope=row["scope"],
        type=row["type"],
        status=row["status"],
        estimated_hours=row["estimated_time"],
        commits=[item for item in row["commits"].split(",") if item],
        usernames=[item for item in row["usernames"].split(",") if item],
        is_manual=bool(row["is_manual"]),
        is_historical=bool(row["is_historical"]),
        created_at=datetime.fromisoformat(row["created_at"]),
        updated_at=datetime.fromisoformat(row["updated_at"]),
    )


def _new_id() -> str:
    return str(uuid.uuid4())


def _utc_now_iso() -> str:
    return _utc_iso(datetime.now(tz=UTC))


def _utc_iso(value: datetime) -> str:
    return value.astimezone(UTC).strftime("%Y-%m-%dT%H:%M:%S.%f+00:00")
