"""Stage 2: extract one intent per commit, in parallel, keeping commit order."""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor

from md2slack.errors import LLMError
from md2slack.facts.models import Commit, CommitChange, Facts
from md2slack.pipeline import operations
from md2slack.pipeline.context import PipelineContext
from md2slack.pipeline.state import ReportState

logger = logging.getLogger(__name__)


def run(state: ReportState, ctx: PipelineContext) -> ReportState:
    commits = state.get("commits", [])
    facts = state.get("facts")
    if not commits or facts is None:
        return {"commit_changes": [], "note": "0 analyzed"}

    changes: list[CommitChange | None] = [None] * len(commits)
    workers = min(ctx.settings.summarize_workers, len(commits))
    with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="summarize") as pool:
        futures = {
            pool.submit(_analyze, ctx, facts, commit): index for index, commit in enumerate(commits)
        }
        for future, index in futures.items():
            changes[index] = future.result()

    analyzed = sum(1 for change in changes if change is not None)
    return {"commit_changes": changes, "note": f"{analyzed} analyzed"}


def _analyze(ctx: PipelineContext, facts: Facts, commit: Commit) -> CommitChange | None:
    try:
        change = operations.extract_commit_intent(ctx.agent, commit, facts.semantic_for(commit.hash))
    except LLMError as exc:
        logger.warning("pipeline event=commit_intent_failed commit=%s reason=%s", commit.hash, exc)
        ctx.progress.error(f"Error analyzing commit {commit.hash}: {exc}")
        return None
    ctx.progress.log(f"Analyzed {commit.hash}: {change.intent}")
    return change
