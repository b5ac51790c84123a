"""FastAPI session server for the md2slack web UI."""

from __future__ import annotations

import logging
import queue
import threading
from collections.abc import Callable
from pathlib import Path
from typing import Any

from fastapi import FastAPI, HTTPException, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.responses import HTMLResponse, JSONResponse
from pydantic import BaseModel, Field

from md2slack.config.settings import Settings, get_settings
from md2slack.errors import ConfigError, FactsError, LLMError, Md2SlackError, SlackError, StoreError
from md2slack.facts.models import GraphCommit
from md2slack.facts.provider import REPORT_DATE_FORMAT, GitFactsProvider, parse_report_date
from md2slack.llm.base import Message
from md2slack.pipeline.operations import EDIT_ACTIONS
from md2slack.processor import ReportProcessor
from md2slack.server.state import Session, SessionSnapshot
from md2slack.server.ui import render_homepage
from md2slack.server.workspace import WorkspaceSettings, WorkspaceView, workspace_view
from md2slack.storage.models import Task

logger = logging.getLogger(__name__)


class RunRequest(BaseModel):
    date: str = ""
    repo_path: str = ""
    author: str = ""
    extra_context: str = ""


class TasksRequest(BaseModel):
    tasks: list[Task] = Field(default_factory=list)


class RefineRequest(BaseModel):
    prompt: str = ""


class ActionRequest(BaseModel):
    action: str = ""
    selected: list[int] = Field(default_factory=list)


class ChatMessage(BaseModel):
    role: str = "user"
    content: str = ""


class ChatRequest(BaseModel):
    history: list[ChatMessage] = Field(default_factory=list)
    message: str = ""


class ChatResponse(BaseModel):
    message: ChatMessage
    tasks: list[Task]


class UpdateTaskRequest(BaseModel):
    index: int
    task: Task


class ScanUsersRequest(BaseModel):
    path: str = ""


class RunWorker:
    """Single background worker fed by a one-slot queue.

    ``submit`` refuses new work while a run is queued or executing.
    """

    def __init__(self, handler: Callable[[RunRequest], Any]) -> None:
        self._handler = handler
        self._queue: queue.Queue[RunRequest] = queue.Queue(maxsize=1)
        self._busy = threading.BoundedSemaphore(1)
        self._thread: threading.Thread | None = None
        self._start_lock = threading.Lock()

    def submit(self, run: RunRequest) -> bool:
        if not self._busy.acquire(blocking=False):
            return False
        self._ensure_started()
        self._queue.put_nowait(run)
        return True

    def _ensure_started(self) -> None:
        with self._start_lock:
            if self._thread is None or not self._thread.is_alive():
                self._thread = threading.Thread(target=self._loop, name="md2slack-run", daemon=True)
                self._thread.start()

    def _loop(self) -> None:
        while True:
            run = self._queue.get()
            try:
                self._handler(run)
            except Exception:  # noqa: BLE001
                logger.exception("server event=run_crashed date=%s", run.date)
            finally:
                self._busy.release()
                self._queue.task_done()


def create_app(
    *,
    processor: ReportProcessor | None = None,
    session: Session | None = None,
    settings_override: Settings | None = None,
    facts: GitFactsProvider | None = None,
    run_handler: Callable[[RunRequest], Any] | None = None,
) -> FastAPI:
    settings = settings_override or get_settings()
    session = session or (processor.session if processor and processor.session else Session())
    git = facts or GitFactsProvider()

    def _default_run(run: RunRequest) -> None:
        assert processor is not None
        processor.process_date(run.date, run.repo_path, run.author, run.extra_context)

    handler = run_handler or (_default_run if processor is not None else None)

    app = FastAPI(title=settings.app_name)
    app.state.session = session
    app.state.processor = processor
    app.state.settings = settings
    app.state.worker = RunWorker(handler) if handler is not None else None

    def _require_processor(feature: str) -> ReportProcessor:
        if processor is None:
            raise HTTPException(status_code=400, detail=f"{feature} not configured")
        return processor

    def _persist(tasks: list[Task], next_actions: list[str]) -> list[Task]:
        repo, date, _, _ = session.context()
        if processor is None:
            return tasks
        try:
            return processor.save(repo, date, tasks, next_actions)
        except StoreError as exc:
            logger.warning("server event=persist_failed repo=%s date=%s reason=%s", repo, date, exc)
            session.error(f"Failed to save tasks: {exc}")
            return tasks

    def _commit(tasks: list[Task], next_actions: list[str]) -> list[Task]:
        stored = _persist(tasks, next_actions)
        session.set_tasks(stored, next_actions)
        return stored

    def _report_date(value: str) -> str:
        text = value.strip()
        if not text:
            raise HTTPException(status_code=400, detail="date is required")
        try:
            return parse_report_date(text).strftime(REPORT_DATE_FORMAT)
        except FactsError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc

    @app.get("/", response_class=HTMLResponse)
    def home() -> str:
        return render_homepage(app_name=settings.app_name)

    @app.get("/health")
    def health() -> dict[str, str]:
        return {"status": "ok", "service": settings.app_name}

    @app.get("/state", response_model=SessionSnapshot)
    def state() -> SessionSnapshot:
        return session.snapshot()

    @app.post("/run", status_code=202)
    def run(payload: RunRequest, request: Request) -> dict[str, str]:
        worker: RunWorker | None = request.app.state.worker
        if worker is None:
            raise HTTPException(status_code=400, detail="run not configured")
        job = RunRequest(
            date=_report_date(payload.date),
            repo_path=payload.repo_path.strip(),
            author=payload.author.strip(),
            extra_context=payload.extra_context.strip(),
        )
        if not worker.submit(job):
            raise HTTPException(status_code=409, detail="run already in progress")
        logger.info("server event=run_queued date=%s repo_path=%s", job.date, job.repo_path or ".")
        return {"status": "queued", "date": job.date}

    @app.post("/tasks", status_code=204)
    def replace_tasks(payload: TasksRequest) -> Response:
        _, _, _, next_actions = session.context()
        _commit(payload.tasks, next_actions)
        return Response(status_code=204)

    @app.post("/refine", status_code=204)
    def refine(payload: RefineRequest) -> Response:
        active = _require_processor("refine")
        _, _, tasks, next_actions = session.context()
        try:
            refined = active.refine(payload.prompt, tasks)
        except LLMError as exc:
            raise HTTPException(status_code=500, detail=str(exc)) from exc
        _commit(refined, next_actions)
        return Response(status_code=204)

    @app.post("/action", response_model=list[Task])
    def action(payload: ActionRequest) -> list[Task]:
        active = _require_processor("action")
        name = payload.action.strip()
        if not name or not payload.selected:
            raise HTTPException(status_code=400, detail="action and selected are required")
        if name not in EDIT_ACTIONS:
            raise HTTPException(status_code=400, detail=f"unknown action: {name}")
        _, _, tasks, next_actions = session.context()
        if any(index < 0 or index >= len(tasks) for index in payload.selected):
            raise HTTPException(status_code=400, detail="selected index out of range")
        try:
            updated = active.apply_action(name, payload.selected, tasks)
        except LLMError as exc:
            raise HTTPException(status_code=500, detail=str(exc)) from exc
        return _commit(updated, next_actions)

    @app.post("/send", status_code=204)
    def send() -> Response:
        active = _require_processor("send")
        report = session.snapshot().report
        if not report.strip():
            raise HTTPException(status_code=400, detail="no report to send")
        try:
            active.send(report)
        except SlackError as exc:
            session.error(str(exc))
            raise HTTPException(status_code=500, detail=str(exc)) from exc
        session.log("Report sent to Slack")
        return Response(status_code=204)

    @app.post("/chat", response_model=ChatResponse)
    def chat(payload: ChatRequest) -> ChatResponse:
        active = _require_processor("chat")
        history = [Message(role=item.role, content=item.content) for item in payload.history]
        if payload.message.strip():
            history.append(Message(role="user", content=payload.message.strip()))
        if not history:
            raise HTTPException(status_code=400, detail="history or message is required")

        repo, date, tasks, next_actions = session.context()
        updated, text = active.chat(
            history,
            tasks,
            repo=repo,
            date=date,
            allowed_commits=session.allowed_commits,
        )
        stored = _commit(updated, next_actions)
        return ChatResponse(message=ChatMessage(role="assistant", content=text), tasks=stored)

    @app.post("/update-task", response_model=list[Task])
    def update_task(payload: UpdateTaskRequest) -> list[Task]:
        _, _, tasks, next_actions = session.context()
        if payload.index < 0 or payload.index >= len(tasks):
            raise HTTPException(status_code=400, detail="index out of bounds")
        replacement = payload.task
        if not replacement.id:
            replacement = replacement.model_copy(update={"id": tasks[payload.index].id})
        tasks[payload.index] = replacement
        return _commit(tasks, next_actions)

    @app.get("/load-history", response_model=list[Task])
    def load_history(repo: str = "", date: str = "") -> list[Task]:
        active = _require_processor("load history")
        if not repo.strip() or not date.strip():
            raise HTTPException(status_code=400, detail="repo and date are required")
        day = _report_date(date)
        try:
            name, tasks, report = active.load_history(repo.strip(), day)
        except StoreError as exc:
            raise HTTPException(status_code=500, detail=str(exc)) from exc
        session.load(name, repo.strip(), day, tasks, report)
        logger.info("server event=history_loaded repo=%s date=%s tasks=%d", name, day, len(tasks))
        return tasks

    @app.post("/clear-tasks", status_code=204)
    def clear_tasks(repo: str = "", date: str = "") -> Response:
        active = _require_processor("clear tasks")
        if not repo.strip() or not date.strip():
            raise HTTPException(status_code=400, detail="repo and date are required")
        try:
            active.clear(repo.strip(), _report_date(date))
        except StoreError as exc:
            raise HTTPException(status_code=500, detail=str(exc)) from exc
        session.clear()
        return Response(status_code=204)

    @app.get("/settings", response_model=WorkspaceView)
    def get_workspace() -> WorkspaceView:
        try:
            return workspace_view(settings.webui_settings_path())
        except (ConfigError, OSError) as exc:
            raise HTTPException(status_code=500, detail=str(exc)) from exc

    @app.post("/settings", response_model=WorkspaceView)
    def save_workspace_settings(payload: WorkspaceSettings) -> WorkspaceView:
        try:
            return workspace_view(settings.webui_settings_path(), payload)
        except (ConfigError, OSError) as exc:
            raise HTTPException(status_code=500, detail=str(exc)) from exc

    @app.post("/scan-users")
    def scan_users(payload: ScanUsersRequest) -> dict[str, list[str]]:
        path = payload.path.strip()
        if not path:
            raise HTTPException(status_code=400, detail="path is required")
        if not Path(path).is_dir():
            raise HTTPException(status_code=400, detail=f"not a directory: {path}")
        return {"usernames": git.scan_users(path)}

    @app.get("/recent-activity")
    def recent_activity(path: str = "") -> dict[str, list[str]]:
        if not path.strip():
            raise HTTPException(status_code=400, detail="path is required")
        try:
            return {"dates": git.recent_commit_days(path.strip(), 30)}
        except FactsError as exc:
            raise HTTPException(status_code=500, detail=str(exc)) from exc

    @app.get("/git-graph")
    def git_graph(path: str = "") -> dict[str, list[GraphCommit]]:
        if not path.strip():
            raise HTTPException(status_code=400, detail="path is required")
        try:
            return {"commits": git.git_graph(path.strip())}
        except FactsError as exc:
            raise HTTPException(status_code=500, detail=str(exc)) from exc

    @app.exception_handler(RequestValidationError)
    async def _invalid_request(_: Request, exc: RequestValidationError) -> JSONResponse:
        return JSONResponse(status_code=400, content={"detail": _validation_detail(exc)})

    @app.exception_handler(Md2SlackError)
    async def _md2slack_error(_: Request, exc: Md2SlackError) -> JSONResponse:
        logger.error("server event=request_failed error=%s", exc)
        return JSONResponse(status_code=500, content={"detail": str(exc)})

    return app


def _validation_detail(exc: RequestValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return "invalid request"
    first = errors[0]
    if first.get("type") == "json_invalid":
        return "invalid json"
    location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    message = str(first.get("msg", "invalid value"))
    return f"{location}: {message}" if location else message
