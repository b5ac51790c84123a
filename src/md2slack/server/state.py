"""Observable session state shared by the HTTP handlers and the run worker."""

from __future__ import annotations

import threading
import time
from typing import Any

from pydantic import BaseModel, Field

from md2slack.pipeline.state import STAGE_NAMES
from md2slack.renderer import markdown_to_html, render_report
from md2slack.storage.models import Task, clone_tasks

LOG_LIMIT = 300
ERROR_LIMIT = 20
LOADED_NOTE = "Loaded from history"


class Stage(BaseModel):
    name: str
    status: str = "pending"
    note: str = ""
    started_at: float | None = None
    duration_ms: float | None = None


class SessionSnapshot(BaseModel):
    repo: str = ""
    repo_path: str = ""
    date: str = ""
    running: bool = False
    stages: list[Stage] = Field(default_factory=list)
    logs: list[str] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)
    status_line: str = ""
    report: str = ""
    report_html: str = ""
    tasks: list[Task] = Field(default_factory=list)
    next_actions: list[str] = Field(default_factory=list)


class Session:
    """Lock-guarded session state; also the progress sink for web runs.

    Every public method takes the lock for the duration of the update only.
    Task edits re-render the report so ``report`` always matches ``tasks``.
    """

    def __init__(self, stage_names: tuple[str, ...] = STAGE_NAMES) -> None:
        self._lock = threading.Lock()
        self._stage_names = stage_names
        self._state = SessionSnapshot(stages=[Stage(name=name) for name in stage_names])
        self._allowed_commits: frozenset[str] = frozenset()
        self._started: dict[int, float] = {}

    def snapshot(self) -> SessionSnapshot:
        with self._lock:
            return self._state.model_copy(deep=True)

    def context(self) -> tuple[str, str, list[Task], list[str]]:
        """Return (repo, date, tasks, next_actions) read under one lock."""
        with self._lock:
            state = self._state
            return state.repo, state.date, clone_tasks(state.tasks), list(state.next_actions)

    @property
    def allowed_commits(self) -> frozenset[str]:
        with self._lock:
            return self._allowed_commits

    def reset(self, date: str, repo: str = "", repo_path: str = "") -> None:
        with self._lock:
            self._state.repo = repo
            self._state.repo_path = repo_path
            self._state.date = date
            self._state.stages = [Stage(name=name) for name in self._stage_names]
            self._state.logs = []
            self._state.errors = []
            self._state.status_line = ""
            self._started = {}

    def set_running(self, running: bool) -> None:
        with self._lock:
            self._state.running = running

    def set_allowed_commits(self, commits: list[str] | frozenset[str]) -> None:
        with self._lock:
            self._allowed_commits = frozenset(commits)

    def stage_start(self, index: int) -> None:
        with self._lock:
            stage = self._stage(index)
            if stage is None:
                return
            stage.status = "running"
            stage.started_at = time.time()
            stage.duration_ms = None
            self._started[index] = time.perf_counter()

    def stage_done(self, index: int, note: str) -> None:
        self._finish(index, "done", note)

    def stage_failed(self, index: int, note: str) -> None:
        self._finish(index, "failed", note)

    def log(self, message: str) -> None:
        with self._lock:
            self._state.logs = _append(self._state.logs, message, LOG_LIMIT)

    def error(self, message: str) -> None:
        with self._lock:
            self._state.errors = _append(self._state.errors, message, ERROR_LIMIT)
            if message:
                self._state.logs = _append(self._state.logs, f"ERROR: {message}", LOG_LIMIT)

    def status(self, message: str) -> None:
        with self._lock:
            self._state.status_line = message

    def set_tasks(self, tasks: list[Task], next_actions: list[str] | None = None) -> None:
        with self._lock:
            self._state.tasks = clone_tasks(tasks)
            if next_actions is not None:
                self._state.next_actions = list(next_actions)
            report = render_report(self._state.date, self._state.tasks, self._state.next_actions)
            self._set_report(report)

    def set_report(self, report: str) -> None:
        with self._lock:
            self._set_report(report)

    def load(self, repo: str, repo_path: str, date: str, tasks: list[Task], report: str) -> None:
        """Install a stored partition; stages read as done only when a report exists."""
        with self._lock:
            self._state.repo = repo
            self._state.repo_path = repo_path
            self._state.date = date
            self._state.tasks = clone_tasks(tasks)
            if report:
                self._set_report(report)
            else:
                self._clear_report()
            self._allowed_commits = frozenset(c for task in tasks for c in task.commits)
            for stage in self._state.stages:
                stage.status = "done" if report else "pending"
                stage.note = LOADED_NOTE if report else ""

    def clear(self) -> None:
        with self._lock:
            self._state.tasks = []
            self._clear_report()
            for stage in self._state.stages:
                stage.status = "pending"
                stage.note = ""

    def payload(self) -> dict[str, Any]:
        return self.snapshot().model_dump(mode="json")

    def _finish(self, index: int, status: str, note: str) -> None:
        with self._lock:
            stage = self._stage(index)
            if stage is None:
                return
            stage.status = status
            stage.note = note
            started = self._started.pop(index, None)
            if started is not None:
                stage.duration_ms = round((time.perf_counter() - started) * 1000.0, 2)

    def _stage(self, index: int) -> Stage | None:
        if 0 <= index < len(self._state.stages):
            return self._state.stages[index]
        return None

    def _set_report(self, report: str) -> None:
        self._state.report = report
        self._state.report_html = markdown_to_html(report)

    def _clear_report(self) -> None:
        self._state.report = ""
        self._state.report_html = ""


def _append(items: list[str], line: str, limit: int) -> list[str]:
    if not line:
        return items
    items = [*items, line]
    return items[-limit:]
