"""Stage 5: ask for a short list of follow-ups."""

from __future__ import annotations

import logging

from md2slack.errors import LLMError
from md2slack.pipeline import operations
from md2slack.pipeline.context import PipelineContext
from md2slack.pipeline.state import ReportState

logger = logging.getLogger(__name__)


def run(state: ReportState, ctx: PipelineContext) -> ReportState:
    tasks = state.get("tasks", [])
    try:
        actions = operations.suggest_next_actions(ctx.agent, tasks)
    except LLMError as exc:
        logger.warning("pipeline event=next_actions_failed reason=%s", exc)
        ctx.progress.error(f"Warning: next actions failed: {exc}")
        actions = []
    ctx.progress.set_tasks(tasks, actions)
    return {"next_actions": actions, "note": f"{len(actions)} actions"}
