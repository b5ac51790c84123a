"""Stage 4: one tool-using pass that reconciles tasks against the commits."""

from __future__ import annotations

import logging

from md2slack.errors import LLMError
from md2slack.pipeline import operations
from md2slack.pipeline.context import PipelineContext
from md2slack.pipeline.state import ReportState

logger = logging.getLogger(__name__)


def run(state: ReportState, ctx: PipelineContext) -> ReportState:
    tasks = state.get("tasks", [])
    facts = state.get("facts")
    if not tasks or facts is None or not facts.commits:
        return {"tasks": tasks, "note": "Refined"}

    try:
        reviewed = operations.review_tasks(
            ctx.agent,
            tasks,
            facts,
            state.get("extra_context", ""),
            state.get("allowed_commits", []),
        )
    except LLMError as exc:
        logger.warning("pipeline event=review_failed reason=%s", exc)
        ctx.progress.error(f"Warning: review failed, keeping generated tasks: {exc}")
        return {"tasks": tasks, "note": "Refined"}

    reviewed = operations.prune_tasks(reviewed)
    if not reviewed:
        ctx.progress.log("Review removed every task; keeping generated tasks")
        reviewed = tasks
    ctx.progress.set_tasks(reviewed)
    return {"tasks": reviewed, "note": "Refined"}
