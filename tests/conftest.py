from __future__ import annotations

from collections import deque
from pathlib import Path
from typing import Any

import pytest
from fastapi.testclient import TestClient

from md2slack.config.ini import AppConfig
from md2slack.config.settings import Settings, get_settings
from md2slack.facts.models import Commit, CommitSummary, Facts, FileChange
from md2slack.llm.agent import Agent
from md2slack.llm.base import LLMOptions, LLMResponse, Message
from md2slack.processor import ReportProcessor
from md2slack.server.app import create_app
from md2slack.server.state import Session
from md2slack.storage.memory import InMemoryTaskStore
from md2slack.storage.models import Task
from md2slack.storage.sqlite import SQLiteTaskStore

REPORT_DATE = "01-02-2026"


class FakeAdapter:
    """Replays queued replies; an empty queue answers ``[]``."""

    def __init__(self, responses: list[Any] | None = None) -> None:
        self.responses: deque[Any] = deque(responses or [])
        self.requests: list[list[Message]] = []

    def queue(self, *responses: Any) -> None:
        self.responses.extend(responses)

    def generate(self, messages: list[Message], options: LLMOptions) -> LLMResponse:
        self.requests.append(list(messages))
        if not self.responses:
            return LLMResponse(content="[]")
        item = self.responses.popleft()
        if isinstance(item, Exception):
            raise item
        if isinstance(item, str):
            return LLMResponse(content=item)
        return item


class FakeFacts:
    def __init__(self, commits: list[Commit] | None = None, repo_name: str = "demo") -> None:
        self.commits = commits or []
        self.repo_name = repo_name
        self.calls: list[tuple[str, Any, str]] = []

    def facts_for(
        self,
        date: str,
        repo_path: str | Path | None = None,
        author: str = "",
        extra_context: str = "",
    ) -> Facts:
        self.calls.append((date, repo_path, author))
        return Facts(
            date=date,
            repo_name=self.repo_name,
            author=author or "dev",
            extra=extra_context,
            commits=self.commits,
            summaries=[
                CommitSummary(commit=commit.hash, summary=commit.message, area="app")
                for commit in self.commits
            ],
        )


def logging_commit() -> Commit:
    return Commit(
        hash="abc1234",
        message="add logging",
        files=[FileChange(path="src/app/log.py", is_new=True, additions=["import logging"])],
    )


@pytest.fixture(autouse=True)
def isolated_home(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    home = tmp_path / "home"
    monkeypatch.setenv("MD2SLACK_HOME_DIR", str(home))
    get_settings.cache_clear()
    yield home
    get_settings.cache_clear()


@pytest.fixture
def settings(isolated_home: Path) -> Settings:
    return Settings(home_dir=isolated_home, llm_timeout_s=30.0, summarize_workers=2)


@pytest.fixture
def adapter() -> FakeAdapter:
    return FakeAdapter()


@pytest.fixture
def agent(adapter: FakeAdapter) -> Agent:
    return Agent(adapter, LLMOptions())


@pytest.fixture
def sqlite_store(tmp_path: Path) -> SQLiteTaskStore:
    store = SQLiteTaskStore(tmp_path / "tasks.db")
    store.migrate()
    return store


@pytest.fixture
def memory_store() -> InMemoryTaskStore:
    return InMemoryTaskStore()


@pytest.fixture
def session() -> Session:
    return Session()


@pytest.fixture
def processor(
    adapter: FakeAdapter, memory_store: InMemoryTaskStore, settings: Settings, session: Session
) -> ReportProcessor:
    return ReportProcessor(
        AppConfig(),
        memory_store,
        facts=FakeFacts([logging_commit()]),
        adapter=adapter,
        options=LLMOptions(),
        settings=settings,
        session=session,
    )


@pytest.fixture
def client(processor: ReportProcessor, settings: Settings) -> TestClient:
    app = create_app(processor=processor, settings_override=settings)
    with TestClient(app) as test_client:
        yield test_client


def sample_tasks() -> list[Task]:
    return [
        Task(intent="add logging", scope="app", details="- wired logger", commits=["abc1234"]),
        Task(intent="review PR 12", type="review", estimated_hours=2, is_manual=True),
    ]
