"""Stage 3: build the task list from extra context, then commit by commit."""

from __future__ import annotations

import logging

from md2slack.errors import LLMError
from md2slack.facts.models import CommitChange
from md2slack.pipeline import operations
from md2slack.pipeline.context import PipelineContext
from md2slack.pipeline.state import ReportState

logger = logging.getLogger(__name__)


def run(state: ReportState, ctx: PipelineContext) -> ReportState:
    seed = state.get("seed_tasks", [])
    manual = [task for task in seed if task.is_manual]
    tasks = [task for task in seed if not task.is_manual]
    extra = state.get("extra_context", "")
    allowed = state.get("allowed_commits", [])

    if not manual and extra.strip():
        try:
            manual = operations.incorporate_extra_context(ctx.agent, extra)
        except LLMError as exc:
            logger.warning("pipeline event=extra_context_failed reason=%s", exc)
            ctx.progress.error(f"Error incorporating extra context: {exc}")
        ctx.progress.set_tasks(manual + tasks)

    commits = state.get("commits", [])
    changes = state.get("commit_changes", [])
    for index, commit in enumerate(commits):
        change = changes[index] if index < len(changes) else None
        if change is None:
            change = CommitChange(commit=commit.hash, intent=commit.message)
        try:
            tasks = operations.incorporate_commit(ctx.agent, change, tasks, manual, extra, allowed)
        except LLMError as exc:
            logger.warning("pipeline event=incorporate_failed commit=%s reason=%s", commit.hash, exc)
            ctx.progress.error(f"Error incorporating commit {commit.hash}: {exc}")
            continue
        ctx.progress.log(f"Incorporated {commit.hash} ({len(tasks)} commit tasks)")
        ctx.progress.set_tasks(manual + tasks)

    combined = operations.prune_tasks(manual + tasks)
    if not combined:
        facts = state.get("facts")
        combined = operations.fallback_tasks_from_summaries(facts.summaries if facts else [])
        if combined:
            ctx.progress.log("No tasks generated; using commit summaries")
    if not combined:
        combined = [operations.no_commits_task()]

    ctx.progress.set_tasks(combined)
    return {"manual_tasks": manual, "tasks": combined, "note": f"{len(combined)} tasks"}

