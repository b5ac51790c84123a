"""In-memory task store for tests and throwaway sessions."""

from __future__ import annotations

import threading
from datetime import UTC, datetime
from typing import Any
from uuid import uuid4

from md2slack.errors import StoreError
from md2slack.storage.models import HistoryRecord, Task, clone_tasks


class InMemoryTaskStore:
    """Same contract as SQLiteTaskStore without touching disk."""

    def __init__(self) -> None:
        self._tasks: dict[tuple[str, str], list[Task]] = {}
        self._history: dict[tuple[str, str], HistoryRecord] = {}
        self._lock = threading.Lock()

    def migrate(self) -> None:
        return None

    def load_tasks(self, repo: str, date: str) -> list[Task]:
        with self._lock:
            return clone_tasks(self._tasks.get((repo, date), []))

    def create_task(self, repo: str, date: str, task: Task) -> tuple[str, list[Task]]:
        now = datetime.now(UTC)
        task_id = str(uuid4())
        record = task.model_copy(
            deep=True, update={"id": task_id, "created_at": task.created_at or now, "updated_at": now}
        )
        with self._lock:
            partition = self._tasks.setdefault((repo, date), [])
            partition.append(record)
            _sort_by_creation(partition)
            return task_id, clone_tasks(self._tasks[(repo, date)])

    def update_task(self, repo: str, date: str, task_id: str, patch: dict[str, Any]) -> list[Task]:
        with self._lock:
            partition = self._tasks.get((repo, date), [])
            for position, current in enumerate(partition):
                if current.id != task_id:
                    continue
                merged = current.model_dump()
                merged.update({k: v for k, v in patch.items() if k not in {"id", "created_at"}})
                merged["updated_at"] = datetime.now(UTC)
                partition[position] = Task.model_validate(merged)
                return clone_tasks(partition)
        raise StoreError(f"task_id {task_id} not found")

    def delete_tasks(self, repo: str, date: str, ids: list[str]) -> list[Task]:
        doomed = set(ids)
        with self._lock:
            kept = [task for task in self._tasks.get((repo, date), []) if task.id not in doomed]
            self._tasks[(repo, date)] = kept
            return clone_tasks(kept)

    def delete_all_tasks(self, repo: str, date: str) -> None:
        with self._lock:
            self._tasks.pop((repo, date), None)

    def replace_tasks(self, repo: str, date: str, tasks: list[Task]) -> list[Task]:
        now = datetime.now(UTC)
        fresh: list[Task] = []
        seen: set[str] = set()
        for task in tasks:
            task_id = task.id if task.id and task.id not in seen else str(uuid4())
            seen.add(task_id)
            stamps = {"id": task_id, "created_at": task.created_at or now, "updated_at": now}
            fresh.append(task.model_copy(deep=True, update=stamps))
        _sort_by_creation(fresh)
        with self._lock:
            self._tasks[(repo, date)] = fresh
            return clone_tasks(fresh)

    def save_history(self, repo: str, date: str, text: str, role: str = "assistant") -> None:
        with self._lock:
            self._history[(repo, date)] = HistoryRecord(
                repo_name=repo,
                date=date,
                message=text,
                role=role,
                created_at=datetime.now(UTC),
            )

    def load_history(self, repo: str, date: str) -> HistoryRecord | None:
        with self._lock:
            record = self._history.get((repo, date))
            return record.model_copy() if record else None

    def delete_history(self, repo: str, date: str) -> None:
        with self._lock:
            self._history.pop((repo, date), None)


def _sort_by_creation(tasks: list[Task]) -> None:
    # stable sort: equal timestamps keep insertion order
    tasks.sort(key=lambda task: task.created_at)
