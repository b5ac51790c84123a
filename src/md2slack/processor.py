"""Glue between config, the pipeline, the store, Slack and the web session."""

from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING

from md2slack.config.ini import AppConfig
from md2slack.config.settings import Settings, get_settings
from md2slack.errors import StoreError
from md2slack.facts.provider import GitFactsProvider, repo_name_at
from md2slack.llm.agent import Agent, AgentCallbacks
from md2slack.llm.base import LLMAdapter, LLMOptions, Message
from md2slack.llm.factory import build_adapter, options_from_config
from md2slack.pipeline import operations
from md2slack.pipeline.context import FactsSource, LoggingProgress, PipelineContext, ProgressSink
from md2slack.pipeline.runner import ReportPipeline
from md2slack.pipeline.state import ReportState
from md2slack.renderer import render_report
from md2slack.slack import send_markdown
from md2slack.storage.base import TaskStore
from md2slack.storage.models import Task

if TYPE_CHECKING:
    from md2slack.server.state import Session

logger = logging.getLogger(__name__)


class ReportProcessor:
    """Runs reports and backs every session callback (send, refine, action, chat, save)."""

    def __init__(
        self,
        config: AppConfig,
        store: TaskStore,
        *,
        facts: FactsSource | None = None,
        adapter: LLMAdapter | None = None,
        options: LLMOptions | None = None,
        settings: Settings | None = None,
        session: Session | None = None,
        debug: bool = False,
    ) -> None:
        self.config = config
        self.store = store
        self.settings = settings or get_settings()
        self.facts = facts or GitFactsProvider()
        self.adapter = adapter or build_adapter(config.llm, self.settings)
        self.options = options or options_from_config(config.llm, self.settings)
        self.session = session
        self.debug = debug

    def agent(self, callbacks: AgentCallbacks | None = None) -> Agent:
        if callbacks is None and self.session is not None:
            callbacks = AgentCallbacks(
                on_tool_log=self.session.log,
                on_tool_status=self.session.status,
                on_llm_log=self.session.log if self.debug else None,
            )
        return Agent(self.adapter, self.options, callbacks=callbacks)

    def process_date(
        self,
        date: str,
        repo_path: str = "",
        author: str = "",
        extra_context: str = "",
    ) -> ReportState:
        repo_name = repo_name_at(repo_path or None)
        progress: ProgressSink = LoggingProgress()
        seed: list[Task] = []
        if self.session is not None:
            seed = self._session_seed(repo_name, date)
            self.session.reset(date, repo_name, repo_path)
            self._restore(repo_name, repo_path, date)
            progress = self.session
            self.session.set_running(True)

        ctx = PipelineContext(
            facts=self.facts,
            agent=self.agent(),
            store=self.store,
            progress=progress,
            settings=self.settings,
        )
        started = time.perf_counter()
        try:
            state = ReportPipeline(ctx).run(
                date,
                repo_path=repo_path,
                repo_name=repo_name,
                author=author,
                extra_context=extra_context,
                seed_tasks=seed,
            )
        finally:
            if self.session is not None:
                self.session.set_running(False)

        if self.session is not None:
            self.session.set_allowed_commits(state.get("allowed_commits", []))
        progress.log(f"Total elapsed: {(time.perf_counter() - started):.1f}s")
        return state

    def send(self, report: str) -> None:
        if self.debug:
            logger.info("slack event=skipped reason=debug chars=%d", len(report))
            return
        send_markdown(self.config.slack, report, timeout_s=self.settings.llm_timeout_s)

    def refine(self, prompt: str, tasks: list[Task]) -> list[Task]:
        return operations.refine_tasks_with_prompt(self.agent(), tasks, prompt)

    def apply_action(self, action: str, selected: list[int], tasks: list[Task]) -> list[Task]:
        return operations.edit_tasks_with_action(self.agent(), tasks, action, selected)

    def chat(
        self,
        history: list[Message],
        tasks: list[Task],
        *,
        repo: str,
        date: str,
        allowed_commits: frozenset[str],
        callbacks: AgentCallbacks | None = None,
    ) -> tuple[list[Task], str]:
        deadline = time.monotonic() + self.settings.llm_timeout_s
        return operations.chat_with_requests(
            self.agent(callbacks or AgentCallbacks()),
            history,
            tasks,
            allowed_commits,
            store=self.store if date else None,
            repo=repo or "unknown",
            date=date,
            deadline=deadline,
        )

    def save(self, repo: str, date: str, tasks: list[Task], next_actions: list[str]) -> list[Task]:
        """Persist an edited list and its re-rendered report; returns tasks with store ids."""
        repo = repo or "unknown"
        stored = self.store.replace_tasks(repo, date, operations.prune_tasks(tasks))
        self.store.save_history(repo, date, render_report(date, stored, next_actions), "assistant")
        return stored

    def load_history(self, repo_path: str, date: str) -> tuple[str, list[Task], str]:
        repo = repo_name_at(repo_path or None)
        record = self.store.load_history(repo, date)
        if record is None:
            return repo, [], ""
        try:
            tasks = self.store.load_tasks(repo, date)
        except StoreError as exc:
            logger.warning("history event=tasks_unreadable repo=%s date=%s reason=%s", repo, date, exc)
            tasks = []
        return repo, tasks, record.message

    def clear(self, repo_path: str, date: str) -> str:
        repo = repo_name_at(repo_path or None)
        self.store.delete_all_tasks(repo, date)
        self.store.delete_history(repo, date)
        logger.info("history event=cleared repo=%s date=%s", repo, date)
        return repo

    def _session_seed(self, repo: str, date: str) -> list[Task]:
        assert self.session is not None
        current_repo, current_date, tasks, _ = self.session.context()
        if current_repo != repo or current_date != date:
            return []
        return [task for task in tasks if task.is_manual]

    def _restore(self, repo: str, repo_path: str, date: str) -> None:
        assert self.session is not None
        record = self.store.load_history(repo, date)
        if record is None:
            return
        tasks = self.store.load_tasks(repo, date)
        self.session.load(repo, repo_path, date, tasks, record.message)
