"""Stage 6: render the report and commit the final task list."""

from __future__ import annotations

from md2slack.pipeline import operations
from md2slack.pipeline.context import PipelineContext
from md2slack.pipeline.state import ReportState
from md2slack.renderer import render_report
from md2slack.storage.models import Task


def run(state: ReportState, ctx: PipelineContext) -> ReportState:
    allowed = set(state.get("allowed_commits", []))
    tasks = operations.prune_tasks(restrict_to_allowed(state.get("tasks", []), allowed))
    actions = state.get("next_actions", [])
    repo = state.get("repo_name", "")
    date = state["date"]

    report = render_report(date, tasks, actions)
    tasks = ctx.store.replace_tasks(repo, date, tasks)
    ctx.store.save_history(repo, date, report, "assistant")

    ctx.progress.set_tasks(tasks, actions)
    ctx.progress.set_report(report)
    return {"tasks": tasks, "report": report, "note": "ready"}


def restrict_to_allowed(tasks: list[Task], allowed: set[str]) -> list[Task]:
    """Drop commit references outside today's commits, historical tasks included."""
    kept: list[Task] = []
    for task in tasks:
        commits = [commit for commit in task.commits if commit in allowed]
        kept.append(task if commits == task.commits else task.model_copy(update={"commits": commits}))
    return kept
