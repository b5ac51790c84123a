"""Typed state carried through one report run."""

from __future__ import annotations

from typing import TypedDict

from md2slack.facts.models import Commit, CommitChange, Facts
from md2slack.storage.models import Task, clone_tasks

STAGE_NAMES = (
    "Preparing commit context",
    "Summarizing commits",
    "Generating tasks",
    "Reviewing tasks",
    "Suggesting next actions",
    "Rendering report",
)


class ReportState(TypedDict, total=False):
    date: str
    repo_path: str
    repo_name: str
    author: str
    extra_context: str
    seed_tasks: list[Task]
    facts: Facts | None
    commits: list[Commit]
    allowed_commits: list[str]
    commit_changes: list[CommitChange | None]
    manual_tasks: list[Task]
    tasks: list[Task]
    next_actions: list[str]
    report: str
    note: str
    failed_stage: int | None
    error: str | None
    durations_ms: dict[str, float]


def initial_state(
    date: str,
    repo_path: str = "",
    repo_name: str = "",
    author: str = "",
    extra_context: str = "",
    seed_tasks: list[Task] | None = None,
) -> ReportState:
    return {
        "date": date,
        "repo_path": repo_path,
        "repo_name": repo_name,
        "author": author,
        "extra_context": extra_context,
        "seed_tasks": clone_tasks(seed_tasks or []),
        "facts": None,
        "commits": [],
        "allowed_commits": [],
        "commit_changes": [],
        "manual_tasks": [],
        "tasks": [],
        "next_actions": [],
        "report": "",
        "note": "",
        "failed_stage": None,
        "error": None,
        "durations_ms": {},
    }
