"""Task store interface keyed by (repo, date) partitions."""

from __future__ import annotations

from typing import Any, Protocol

from md2slack.storage.models import HistoryRecord, Task


class TaskStore(Protocol):
    def migrate(self) -> None: ...

    def load_tasks(self, repo: str, date: str) -> list[Task]: ...

    def create_task(self, repo: str, date: str, task: Task) -> tuple[str, list[Task]]: ...

    def update_task(
        self, repo: str, date: str, task_id: str, patch: dict[str, Any]
    ) -> list[Task]: ...

    def delete_tasks(self, repo: str, date: str, ids: list[str]) -> list[Task]: ...

    def delete_all_tasks(self, repo: str, date: str) -> None: ...

    def replace_tasks(self, repo: str, date: str, tasks: list[Task]) -> list[Task]: ...

    def save_history(self, repo: str, date: str, text: str, role: str = "assistant") -> None: ...

    def load_history(self, repo: str, date: str) -> HistoryRecord | None: ...

    def delete_history(self, repo: str, date: str) -> None: ...
