"""Stage 1: collect the day's commits and derive the allowed-commit set."""

from __future__ import annotations

from md2slack.pipeline.context import PipelineContext
from md2slack.pipeline.state import ReportState


def run(state: ReportState, ctx: PipelineContext) -> ReportState:
    facts = ctx.facts.facts_for(
        state["date"],
        state.get("repo_path") or None,
        state.get("author", ""),
        state.get("extra_context", ""),
    )
    commits = list(facts.commits)
    ctx.progress.log(f"Found {len(commits)} commits for {facts.repo_name} on {state['date']}")
    return {
        "facts": facts,
        "repo_name": state.get("repo_name") or facts.repo_name,
        "author": facts.author or state.get("author", ""),
        "commits": commits,
        "allowed_commits": [commit.hash for commit in commits],
        "note": f"{len(commits)} commits found",
    }
