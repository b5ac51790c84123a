"""Task store backends and records."""

from __future__ import annotations

from md2slack.config.settings import Settings, get_settings
from md2slack.storage.base import TaskStore
from md2slack.storage.memory import InMemoryTaskStore
from md2slack.storage.models import HistoryRecord, Task
from md2slack.storage.sqlite import SQLiteTaskStore


def open_store(settings: Settings | None = None) -> SQLiteTaskStore:
    settings = settings or get_settings()
    store = SQLiteTaskStore(settings.resolved_db_path())
    store.migrate()
    return store


__all__ = [
    "HistoryRecord",
    "InMemoryTaskStore",
    "SQLiteTaskStore",
    "Task",
    "TaskStore",
    "open_store",
]
