"""Entry point that runs one report through the compiled stage graph."""

from __future__ import annotations

import logging
import time

from md2slack.pipeline.context import PipelineContext
from md2slack.pipeline.state import ReportState, initial_state
from md2slack.pipeline.workflow import build_graph
from md2slack.storage.models import Task

logger = logging.getLogger(__name__)


class ReportPipeline:
    def __init__(self, ctx: PipelineContext) -> None:
        self.ctx = ctx
        self._graph = build_graph(ctx)

    def run(
        self,
        date: str,
        *,
        repo_path: str = "",
        repo_name: str = "",
        author: str = "",
        extra_context: str = "",
        seed_tasks: list[Task] | None = None,
    ) -> ReportState:
        state = initial_state(
            date,
            repo_path=repo_path,
            repo_name=repo_name,
            author=author,
            extra_context=extra_context,
            seed_tasks=seed_tasks,
        )
        started = time.perf_counter()
        logger.info("pipeline event=run_start date=%s repo_path=%s", date, repo_path or ".")
        final: ReportState = self._graph.invoke(state)
        logger.info(
            "pipeline event=run_done date=%s repo=%s tasks=%d failed_stage=%s duration_ms=%.2f",
            date,
            final.get("repo_name", ""),
            len(final.get("tasks", [])),
            final.get("failed_stage"),
            (time.perf_counter() - started) * 1000.0,
        )
        return final
