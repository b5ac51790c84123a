"""Collaborators shared by the pipeline stages."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol

from md2slack.config.settings import Settings, get_settings
from md2slack.facts.models import Facts
from md2slack.llm.agent import Agent
from md2slack.storage.base import TaskStore
from md2slack.storage.models import Task

logger = logging.getLogger(__name__)


class FactsSource(Protocol):
    def facts_for(
        self,
        date: str,
        repo_path: str | Path | None = None,
        author: str = "",
        extra_context: str = "",
    ) -> Facts: ...


class ProgressSink(Protocol):
    """Receives stage progress; the session server implements this."""

    def stage_start(self, index: int) -> None: ...

    def stage_done(self, index: int, note: str) -> None: ...

    def stage_failed(self, index: int, note: str) -> None: ...

    def log(self, message: str) -> None: ...

    def error(self, message: str) -> None: ...

    def status(self, message: str) -> None: ...

    def set_tasks(self, tasks: list[Task], next_actions: list[str] | None = None) -> None: ...

    def set_report(self, report: str) -> None: ...


class LoggingProgress:
    """Progress sink for headless runs: everything goes to the module logger."""

    def stage_start(self, index: int) -> None:
        logger.info("pipeline event=stage_start stage=%d", index + 1)

    def stage_done(self, index: int, note: str) -> None:
        logger.info("pipeline event=stage_note stage=%d note=%s", index + 1, note)

    def stage_failed(self, index: int, note: str) -> None:
        logger.error("pipeline event=stage_failed stage=%d note=%s", index + 1, note)

    def log(self, message: str) -> None:
        logger.info("%s", message)

    def error(self, message: str) -> None:
        logger.error("%s", message)

    def status(self, message: str) -> None:
        logger.info("status %s", message)

    def set_tasks(self, tasks: list[Task], next_actions: list[str] | None = None) -> None:
        logger.debug("pipeline event=tasks count=%d", len(tasks))

    def set_report(self, report: str) -> None:
        logger.debug("pipeline event=report chars=%d", len(report))


@dataclass
class PipelineContext:
    facts: FactsSource
    agent: Agent
    store: TaskStore
    progress: ProgressSink = field(default_factory=LoggingProgress)
    settings: Settings = field(default_factory=get_settings)
