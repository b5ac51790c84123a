"""LLM-backed steps of the report pipeline and of the interactive editor.

The tool-loop helpers (``incorporate_*``, ``review_tasks``) run several
request/apply/feedback turns against a :class:`TaskToolRegistry`. The JSON
helpers (``refine_tasks_with_prompt``, ``edit_tasks_with_action``,
``suggest_next_actions``) make a single request and decode the reply.
"""

from __future__ import annotations

import json
import logging
import time
from collections.abc import Callable, Iterable
from typing import Any

from md2slack.coerce import cast_str
from md2slack.errors import LLMError, LLMJSONError
from md2slack.facts.models import Commit, CommitChange, CommitSemantic, CommitSummary, Facts
from md2slack.llm.agent import Agent
from md2slack.llm.base import Message, ToolCall
from md2slack.llm.prompts import load_prompt
from md2slack.storage.base import TaskStore
from md2slack.storage.models import Task, clone_tasks
from md2slack.tools.registry import TaskToolRegistry, ToolBatch, tool_error_summary

logger = logging.getLogger(__name__)

MANUAL_TURNS = 5
COMMIT_TURNS = 8
REVIEW_TURNS = 8
NO_COMMITS_INTENT = "No qualifying commits for the day"
EDIT_ACTIONS = ("make_longer", "make_shorter", "improve_text", "split_task", "merge_tasks")
CHAT_LLM_ERROR = "I'm sorry, I couldn't process that request. (LLM Error)"

# Returns (extra log lines, finished) after a turn's calls were applied.
TurnCheck = Callable[[TaskToolRegistry, list[ToolCall], str], tuple[str, bool]]


def extract_commit_intent(agent: Agent, commit: Commit, semantic: CommitSemantic) -> CommitChange:
    system = load_prompt("commit_intent_extractor.txt")
    signals = sorted({kind for signal in semantic.signals for kind in signal.types})
    prompt = f"Commit: {commit.hash}\nMessage: {commit.message}\nSignals: {signals}"
    decoded = agent.call_json([Message(role="user", content=prompt)], system)
    if isinstance(decoded, list):
        decoded = decoded[0] if decoded else {}
    if not isinstance(decoded, dict):
        raise LLMJSONError("unmarshal error: commit intent is not an object")
    change = CommitChange.model_validate(decoded)
    # The model sometimes abbreviates or drops the hash.
    change.commit = commit.hash
    if not change.intent:
        change.intent = commit.message
    return change


def incorporate_extra_context(
    agent: Agent, extra_context: str, *, deadline: float | None = None
) -> list[Task]:
    if not extra_context.strip():
        return []
    system = load_prompt("task_tools_manual.txt")
    prompt = (
        f"USER EXTRA CONTEXT:\n{extra_context}\n\n"
        "Please create initial tasks based ON THIS CONTEXT. Use the tools provided."
    )
    registry = TaskToolRegistry([])

    def closing(_: TaskToolRegistry) -> str:
        return "\n\nContinue if more tasks need to be created from the extra context, otherwise return []."

    tasks = _tool_loop(
        agent,
        system=system,
        prompt=prompt,
        registry=registry,
        max_turns=MANUAL_TURNS,
        closing=closing,
        deadline=deadline,
        show_state=False,
    )
    for task in tasks:
        task.is_manual = True
        task.commits = []
    return tasks


def incorporate_commit(
    agent: Agent,
    change: CommitChange,
    tasks: list[Task],
    manual_tasks: list[Task],
    extra_context: str,
    allowed_commits: Iterable[str],
    *,
    deadline: float | None = None,
) -> list[Task]:
    system = load_prompt("task_tools.txt")
    allowed = sorted(set(allowed_commits))
    allowed_text = ", ".join(allowed) or "(none)"
    manual_text = "".join(f"- {task.intent} ({task.scope})\n" for task in manual_tasks) or "(none)"
    state_text = _format_prompt_state(tasks) or "(no commit tasks yet)"
    prompt = (
        f"Extra Context: {extra_context}\n"
        f"Manual Tasks (Read-Only Context):\n{manual_text}\n"
        f"Current Commit-Based Tasks (State):\n{state_text}\n"
        f"Valid Phase 1 Commits: {allowed_text}\n"
        f"New Commit to Incorporate: {json.dumps(change.model_dump(), indent=2)}"
    )
    registry = TaskToolRegistry(tasks, allowed_commits=allowed)

    def check(current: TaskToolRegistry, calls: list[ToolCall], log: str) -> tuple[str, bool]:
        linked = any(change.commit in task.commits for task in current.tasks)
        extra: list[str] = []
        missing_details = False
        for index, task in enumerate(current.tasks):
            if not task.details.strip() or "no details" in task.details.lower():
                missing_details = True
                extra.append(f"Error: Task {index} is missing technical details.")
        if not calls:
            if not linked:
                extra.append(
                    f"CRITICAL: Commit {change.commit} is NOT linked to any task. "
                    "You MUST call add_commit_reference."
                )
            elif not missing_details:
                return "", True
        return "\n".join(extra), False

    def closing(current: TaskToolRegistry) -> str:
        parts = [f"\n\nExtra Context (Instructions):\n{extra_context}"]
        parts.append(f"\n\nCurrent Tasks (State):\n{format_task_state(current.tasks)}")
        parts.append(f"\nValid Phase 1 Commits:\n{allowed_text}\n")
        if not any(change.commit in task.commits for task in current.tasks):
            parts.append(
                f"\nWARNING: Current commit {change.commit} is NOT yet linked to any task. "
                "Use add_commit_reference to fix this."
            )
        parts.append(
            "\nContinue until all rules are met. Return [] ONLY when done and commit is fully integrated."
        )
        return "".join(parts)

    return _tool_loop(
        agent,
        system=system,
        prompt=prompt,
        registry=registry,
        max_turns=COMMIT_TURNS,
        closing=closing,
        check=check,
        deadline=deadline,
        show_state=False,
    )


def review_tasks(
    agent: Agent,
    tasks: list[Task],
    facts: Facts,
    extra_context: str,
    allowed_commits: Iterable[str],
    *,
    deadline: float | None = None,
) -> list[Task]:
    system = load_prompt("task_tools_review.txt")
    allowed = sorted(set(allowed_commits))
    commits = [
        {"hash": commit.hash, "message": commit.message, "files": [item.path for item in commit.files]}
        for commit in facts.commits
    ]
    prompt = (
        f"Extra Context: {extra_context}\n"
        f"Valid Phase 1 Commits: {', '.join(allowed) or '(none)'}\n"
        f"Commits (JSON): {json.dumps(commits, indent=2)}\n"
        f"Commit Summaries (JSON): {_dump_models(facts.summaries)}\n"
        f"Semantic (JSON): {_dump_models(facts.semantic)}\n"
        f"Current Tasks (JSON): {json.dumps(task_payload(tasks), indent=2)}"
    )
    registry = TaskToolRegistry(tasks, allowed_commits=allowed)

    def closing(_: TaskToolRegistry) -> str:
        return "\nContinue reviewing until duplicates and discrepancies are resolved; return [] only when done."

    return _tool_loop(
        agent,
        system=system,
        prompt=prompt,
        registry=registry,
        max_turns=REVIEW_TURNS,
        closing=closing,
        deadline=deadline,
    )


def suggest_next_actions(agent: Agent, tasks: list[Task]) -> list[str]:
    system = load_prompt("next_actions.txt")
    clean = [{"intent": task.intent, "scope": task.scope, "type": task.type} for task in tasks]
    prompt = f"Tasks synthesized for today:\n{json.dumps(clean, indent=2)}"
    decoded = agent.call_json([Message(role="user", content=prompt)], system, expect_list=True)
    actions = [cast_str(item) for item in decoded]
    actions = [action for action in actions if action]
    if not actions:
        logger.debug("pipeline event=next_actions_empty tasks=%d", len(tasks))
    return actions


def refine_tasks_with_prompt(agent: Agent, tasks: list[Task], user_prompt: str) -> list[Task]:
    """Rewrite the list per a free-form request; the input list survives any failure."""
    system = load_prompt("task_refiner.txt")
    listing = json.dumps(task_payload(tasks), indent=2)
    if user_prompt.strip():
        prompt = f"User request:\n{user_prompt.strip()}\n\nCurrent Task List:\n{listing}"
    else:
        prompt = f"Current Task List:\n{listing}"
    try:
        decoded = agent.call_json([Message(role="user", content=prompt)], system, expect_list=True)
    except LLMJSONError as exc:
        logger.warning("refine event=decode_failed reason=%s", exc)
        return clone_tasks(tasks)
    refined = prune_tasks(_restrict_commits(decode_tasks(decoded), tasks))
    if not refined and tasks:
        return clone_tasks(tasks)
    return refined


def edit_tasks_with_action(
    agent: Agent, tasks: list[Task], action: str, selected: list[int]
) -> list[Task]:
    system = load_prompt("task_editor.txt")
    prompt = (
        f"Action: {action}\n"
        f"Selected Indices: {json.dumps(selected)}\n"
        f"Tasks: {json.dumps(task_payload(tasks), indent=2)}"
    )
    decoded = agent.call_json([Message(role="user", content=prompt)], system, expect_list=True)
    out = _restrict_commits(decode_tasks(decoded), tasks)
    return merge_action_result(tasks, action, selected, out)


def merge_action_result(
    tasks: list[Task], action: str, selected: list[int], out: list[Task]
) -> list[Task]:
    """Splice the model's edited tasks back into the full list."""
    normalized = normalize_selected(selected, len(tasks))
    if not normalized:
        return clone_tasks(tasks)
    if len(out) == len(tasks):
        return out

    merged = clone_tasks(tasks)
    if action in ("make_longer", "make_shorter", "improve_text"):
        if len(out) == len(normalized):
            for index, replacement in zip(normalized, out, strict=True):
                merged[index] = _keep_identity(tasks[index], replacement)
            return merged
    elif action == "split_task":
        if len(normalized) == 1 and len(out) >= 2:
            index = normalized[0]
            return merged[:index] + out + merged[index + 1 :]
    elif action == "merge_tasks":
        if len(normalized) >= 2 and len(out) == 1:
            first = normalized[0]
            combined = _keep_identity(tasks[first], out[0])
            return [
                combined if position == first else task
                for position, task in enumerate(merged)
                if position == first or position not in normalized
            ]
    logger.info(
        "edit event=unexpected_shape action=%s selected=%d returned=%d",
        action,
        len(normalized),
        len(out),
    )
    return clone_tasks(tasks)


def chat_with_requests(
    agent: Agent,
    history: list[Message],
    tasks: list[Task],
    allowed_commits: Iterable[str],
    *,
    store: TaskStore | None = None,
    repo: str = "",
    date: str = "",
    deadline: float | None = None,
) -> tuple[list[Task], str]:
    system = load_prompt("task_chat.txt").replace(
        "{{TASKS_JSON}}", json.dumps(task_payload(tasks), indent=2), 1
    )
    registry = TaskToolRegistry(
        tasks, allowed_commits=allowed_commits, store=store, repo=repo, date=date
    )
    statuses: list[str] = []
    original = agent.callbacks.on_tool_end

    def on_tool_end(name: str, result: str) -> None:
        for line in result.splitlines():
            if line.startswith("Success:"):
                statuses.append(line.removeprefix("Success:").strip())
        if original is not None:
            original(name, result)

    agent.callbacks.on_tool_end = on_tool_end
    try:
        result = agent.stream_chat(history, system, registry, deadline=deadline)
    except LLMError as exc:
        logger.warning("chat event=llm_failed reason=%s", exc)
        return clone_tasks(tasks), CHAT_LLM_ERROR
    finally:
        agent.callbacks.on_tool_end = original

    if not result.tool_used:
        return clone_tasks(tasks), result.text
    status = "; ".join(statuses)
    text = result.text.strip()
    if not text:
        text = f"Executed actions: {status}"
    elif status:
        text = f"{text}\n\n(Action: {status})"
    return registry.updated_tasks(), text


def prune_tasks(tasks: Iterable[Task]) -> list[Task]:
    return [task for task in tasks if task.is_historical or task.intent.strip()]


def fallback_tasks_from_summaries(summaries: Iterable[CommitSummary]) -> list[Task]:
    tasks: list[Task] = []
    for summary in summaries:
        intent = summary.summary.strip()
        if not intent:
            continue
        tasks.append(
            Task(
                intent=intent,
                scope=summary.area,
                type="delivery",
                details=summary.impact,
                commits=[summary.commit],
            )
        )
    return tasks


def no_commits_task() -> Task:
    return Task(
        intent=NO_COMMITS_INTENT,
        scope="daily-report",
        type="chore",
        details="No commit summaries or tasks could be synthesized for the selected date.",
        is_manual=True,
    )


def normalize_selected(selected: Iterable[int], size: int) -> list[int]:
    return sorted({index for index in selected if 0 <= index < size})


def task_payload(tasks: Iterable[Task]) -> list[dict[str, Any]]:
    return [
        task.model_dump(
            mode="json",
            include={
                "id",
                "intent",
                "title",
                "details",
                "scope",
                "type",
                "status",
                "estimated_hours",
                "commits",
                "is_manual",
            },
        )
        for task in tasks
    ]


def decode_tasks(decoded: Any) -> list[Task]:
    items = decoded if isinstance(decoded, list) else [decoded]
    tasks: list[Task] = []
    for item in items:
        if isinstance(item, str) and item.strip():
            tasks.append(Task(intent=item))
        elif isinstance(item, dict):
            tasks.append(Task.model_validate(item))
    return tasks


def format_task_state(tasks: Iterable[Task]) -> str:
    lines: list[str] = []
    for index, task in enumerate(tasks):
        lines.append(f"[{index}] {task.intent} ({task.scope}) [{task.type}]")
        if task.details:
            lines.append(f"    Details: {task.details}")
        lines.append(f"    Commits: [{', '.join(task.commits)}]")
    return "\n".join(lines) + ("\n" if lines else "")


def _format_prompt_state(tasks: Iterable[Task]) -> str:
    lines: list[str] = []
    for index, task in enumerate(tasks):
        lines.append(f"[{index}] {task.intent} ({task.scope}) [{task.type}]")
        lines.extend(f"    - {part}" for part in task.details.splitlines() if part.strip())
    return "\n".join(lines) + ("\n" if lines else "")


def _tool_loop(
    agent: Agent,
    *,
    system: str,
    prompt: str,
    registry: TaskToolRegistry,
    max_turns: int,
    closing: Callable[[TaskToolRegistry], str],
    check: TurnCheck | None = None,
    deadline: float | None = None,
    show_state: bool = True,
) -> list[Task]:
    history = [Message(role="user", content=prompt)]
    for turn in range(max_turns):
        if deadline is not None and time.monotonic() >= deadline:
            logger.warning("tool_loop event=deadline turn=%d", turn + 1)
            break
        calls, text = agent.tool_turn(history, system, registry, deadline=deadline)
        if not calls and turn == 0 and _is_prose(text):
            calls, text = agent.force_tool_calls(history, system, registry, deadline=deadline)

        batch = registry.apply(calls) if calls else ToolBatch(log="", status="")
        agent.emit_tool_updates(batch.log, batch.status)
        if agent.callbacks.on_tasks_update is not None and calls:
            agent.callbacks.on_tasks_update(registry.updated_tasks())
        log = batch.log
        if check is not None:
            extra, finished = check(registry, calls, log)
            if finished:
                break
            if extra:
                log = f"{log}\n{extra}" if log else extra
        elif not calls:
            break

        logger.info(
            "tool_loop event=turn turn=%d calls=%d tasks=%d", turn + 1, len(calls), len(registry.tasks)
        )
        feedback = [f"Tool Execution Log:\n{log}"]
        errors = tool_error_summary(log)
        if errors:
            feedback.append(f"\n\nTool Errors:\n{errors}")
        if show_state:
            feedback.append(f"\n\nCurrent Tasks (State):\n{format_task_state(registry.tasks)}")
        feedback.append(closing(registry))
        history.append(
            Message(
                role="assistant",
                content=json.dumps([call.as_dict() for call in calls]) if calls else "[]",
            )
        )
        history.append(Message(role="user", content="".join(feedback)))
    return registry.updated_tasks()


def _is_prose(text: str) -> bool:
    stripped = text.strip()
    return bool(stripped) and stripped not in ("[]", "{}") and not stripped.startswith("```")


def _restrict_commits(candidates: list[Task], source: list[Task]) -> list[Task]:
    known = {commit for task in source for commit in task.commits}
    for task in candidates:
        task.commits = [commit for commit in task.commits if commit in known]
    return candidates


def _keep_identity(original: Task, replacement: Task) -> Task:
    if replacement.id:
        return replacement
    return replacement.model_copy(update={"id": original.id, "created_at": original.created_at})


def _dump_models(items: Iterable[Any]) -> str:
    return json.dumps([item.model_dump(mode="json") for item in items], indent=2)
