"""Task-mutation tools exposed to the model.

The set of tools is closed and dispatched through a table. Tool failures
never raise: each call yields a result line starting with ``Success:``,
``Info:``, ``Context`` or ``Error:`` so the model can read the outcome and
correct itself on the next turn.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ValidationError

from md2slack.coerce import unique
from md2slack.errors import CodebaseSearchError, StoreError
from md2slack.llm.base import ToolCall, ToolDefinition
from md2slack.storage.base import TaskStore
from md2slack.storage.models import Task, clone_tasks
from md2slack.tools.codebase import search_codebase
from md2slack.tools.schemas import (
    AddCommitReferenceInput,
    AddDetailsInput,
    AddTimeInput,
    CodebaseContextInput,
    CreateTaskInput,
    EditTaskInput,
    MergeTasksInput,
    RemoveTaskInput,
    Selector,
    SplitTaskInput,
)

logger = logging.getLogger(__name__)

CONTEXT_OUTPUT_LIMIT = 4000
MIN_HASH_PREFIX = 7


@dataclass(frozen=True)
class ToolOutcome:
    log: str
    status: str = ""
    mutated: bool = False


ToolFn = Callable[["TaskToolRegistry", Any], ToolOutcome]


@dataclass(frozen=True)
class ToolSpec:
    input_model: type[BaseModel]
    fn: ToolFn
    description: str
    mutates: bool = True


@dataclass(frozen=True)
class ToolBatch:
    log: str
    status: str

    @property
    def errors(self) -> str:
        return tool_error_summary(self.log)


def build_registry() -> dict[str, ToolSpec]:
    return {
        "create_task": ToolSpec(
            input_model=CreateTaskInput,
            fn=lambda registry, args: registry.create_task(args),
            description="Create a new task summarized from commits or provided context.",
        ),
        "edit_task": ToolSpec(
            input_model=EditTaskInput,
            fn=lambda registry, args: registry.edit_task(args),
            description="Modify an existing task's properties by index.",
        ),
        "update_task": ToolSpec(
            input_model=EditTaskInput,
            fn=lambda registry, args: registry.edit_task(args),
            description="Alias of edit_task.",
        ),
        "add_details": ToolSpec(
            input_model=AddDetailsInput,
            fn=lambda registry, args: registry.add_details(args),
            description="Append technical details (markdown bullets preferred) to a task.",
        ),
        "add_time": ToolSpec(
            input_model=AddTimeInput,
            fn=lambda registry, args: registry.add_time(args),
            description="Add hours to a task's estimate.",
        ),
        "add_commit_reference": ToolSpec(
            input_model=AddCommitReferenceInput,
            fn=lambda registry, args: registry.add_commit_reference(args),
            description="Link one of today's commit hashes to a task.",
        ),
        "remove_task": ToolSpec(
            input_model=RemoveTaskInput,
            fn=lambda registry, args: registry.remove_tasks(args),
            description="Delete a task by index (or several via indices).",
        ),
        "delete_task": ToolSpec(
            input_model=RemoveTaskInput,
            fn=lambda registry, args: registry.remove_tasks(args),
            description="Alias of remove_task.",
        ),
        "merge_tasks": ToolSpec(
            input_model=MergeTasksInput,
            fn=lambda registry, args: registry.merge_tasks(args),
            description="Combine several tasks into one with a new intent and scope.",
        ),
        "split_task": ToolSpec(
            input_model=SplitTaskInput,
            fn=lambda registry, args: registry.split_task(args),
            description="Replace one task with several new tasks.",
        ),
        "get_codebase_context": ToolSpec(
            input_model=CodebaseContextInput,
            fn=lambda registry, args: registry.codebase_context(args),
            description="Search the repository for lines matching a query (ripgrep style).",
            mutates=False,
        ),
    }


def tool_definitions(specs: dict[str, ToolSpec]) -> list[ToolDefinition]:
    definitions: list[ToolDefinition] = []
    for name, spec in specs.items():
        schema = spec.input_model.model_json_schema()
        schema.pop("title", None)
        schema.pop("description", None)
        definitions.append(ToolDefinition(name=name, description=spec.description, parameters=schema))
    return definitions


def tool_error_summary(log: str) -> str:
    return "\n".join(line for line in log.splitlines() if "Error:" in line or "CRITICAL:" in line)


class TaskToolRegistry:
    """A per-run copy of the task list plus the tools that mutate it.

    When a store is attached, every mutating call is written through with
    ``replace_tasks`` for the registry's (repo, date) partition.
    """

    def __init__(
        self,
        tasks: Iterable[Task] = (),
        *,
        allowed_commits: Iterable[str] = (),
        store: TaskStore | None = None,
        repo: str = "",
        date: str = "",
        codebase_root: str | Path = ".",
        specs: dict[str, ToolSpec] | None = None,
    ) -> None:
        self.tasks: list[Task] = clone_tasks(list(tasks))
        self.allowed_commits = frozenset(allowed_commits)
        self.store = store
        self.repo = repo
        self.date = date
        self.codebase_root = Path(codebase_root)
        self.specs = specs or build_registry()

    @property
    def names(self) -> set[str]:
        return set(self.specs)

    def definitions(self) -> list[ToolDefinition]:
        return tool_definitions(self.specs)

    def updated_tasks(self) -> list[Task]:
        return clone_tasks(self.tasks)

    def execute(self, call: ToolCall) -> str:
        return self._run(call).log

    def apply(self, calls: Iterable[ToolCall]) -> ToolBatch:
        logs: list[str] = []
        status = ""
        for call in calls:
            outcome = self._run(call)
            if outcome.log:
                logs.append(outcome.log)
            if outcome.status:
                status = outcome.status
        return ToolBatch(log="\n".join(logs), status=status)

    def _run(self, call: ToolCall) -> ToolOutcome:
        spec = self.specs.get(call.name)
        if spec is None:
            return ToolOutcome(log=f"Error: unknown tool {call.name}")
        try:
            args = spec.input_model.model_validate(call.arguments)
        except ValidationError as exc:
            first = exc.errors()[0] if exc.errors() else {}
            reason = first.get("msg", str(exc))
            return ToolOutcome(log=f"Error: invalid arguments for {call.name}: {reason}")

        outcome = spec.fn(self, args)
        logger.debug("tool event=call name=%s result=%s", call.name, outcome.log.splitlines()[:1])
        if outcome.mutated and spec.mutates:
            persist_error = self._persist()
            if persist_error:
                return ToolOutcome(log=f"{outcome.log}\n{persist_error}", status=outcome.status)
        return outcome

    def _persist(self) -> str:
        if self.store is None:
            return ""
        try:
            self.tasks = self.store.replace_tasks(self.repo, self.date, self.tasks)
        except StoreError as exc:
            logger.warning("tool event=persist_failed repo=%s date=%s reason=%s", self.repo, self.date, exc)
            return f"Error: failed to persist tasks: {exc}"
        return ""

    def _resolve(self, selector: Selector | None) -> int | None:
        if selector is None:
            return None
        if isinstance(selector, int):
            return selector if 0 <= selector < len(self.tasks) else None
        for position, task in enumerate(self.tasks):
            if task.id and task.id == selector:
                return position
        return None

    def _out_of_bounds(self, selector: Selector | None) -> ToolOutcome:
        shown = "null" if selector is None else selector
        return ToolOutcome(
            log=f"Error: index {shown} is out of bounds (current max: {len(self.tasks) - 1})"
        )

    def _canonical_hash(self, value: str) -> str | None:
        if value in self.allowed_commits:
            return value
        if len(value) < MIN_HASH_PREFIX:
            return None
        matches = [
            allowed
            for allowed in self.allowed_commits
            if allowed.startswith(value) or value.startswith(allowed)
        ]
        return matches[0] if len(matches) == 1 else None

    def create_task(self, args: CreateTaskInput) -> ToolOutcome:
        intent = (args.intent or "").strip()
        if not intent:
            return ToolOutcome(log="Error: attempt to create task with empty intent")
        task = Task(
            intent=intent,
            title=args.title or "",
            details=args.details or "",
            scope=args.scope or "",
            type=args.type or "delivery",
            status=args.status or "done",
            estimated_hours=args.estimated_hours or 0,
        )
        self.tasks.append(task)
        index = len(self.tasks) - 1
        return ToolOutcome(
            log=f"Success: created task with index {index}",
            status=f"Created task #{index}: {intent}",
            mutated=True,
        )

    def edit_task(self, args: EditTaskInput) -> ToolOutcome:
        index = self._resolve(args.index)
        if index is None:
            return self._out_of_bounds(args.index)
        changes = args.model_dump(exclude={"index"}, exclude_none=True)
        if "intent" in changes and not changes["intent"].strip():
            changes.pop("intent")
        if not changes:
            return ToolOutcome(log=f"Info: no changes for task {index}")
        merged = self.tasks[index].model_dump()
        merged.update(changes)
        self.tasks[index] = Task.model_validate(merged)
        return ToolOutcome(
            log=f"Success: updated task {index}",
            status=f"Updated task #{index}",
            mutated=True,
        )

    def add_details(self, args: AddDetailsInput) -> ToolOutcome:
        index = self._resolve(args.index)
        if index is None:
            return self._out_of_bounds(args.index)
        detail = args.details.strip()
        if not detail or "..." in detail:
            return ToolOutcome(log=f"Info: no usable details for task {index}")
        task = self.tasks[index]
        if detail in task.details:
            return ToolOutcome(log=f"Info: details already present on task {index}")
        task.details = f"{task.details}\n{detail}" if task.details else detail
        return ToolOutcome(
            log=f"Success: added details to task {index}",
            status=f"Updated details for task #{index}",
            mutated=True,
        )

    def add_time(self, args: AddTimeInput) -> ToolOutcome:
        index = self._resolve(args.index)
        if index is None:
            return self._out_of_bounds(args.index)
        if args.hours is None:
            return ToolOutcome(log="Error: add_time requires integer hours")
        task = self.tasks[index]
        task.estimated_hours = max(task.estimated_hours + args.hours, 0)
        return ToolOutcome(
            log=f"Success: added {args.hours} hours to task {index}",
            status=f"Updated time for task #{index}",
            mutated=True,
        )

    def add_commit_reference(self, args: AddCommitReferenceInput) -> ToolOutcome:
        index = self._resolve(args.index)
        if index is None:
            return self._out_of_bounds(args.index)
        if not args.hash:
            return ToolOutcome(log="Error: empty commit hash")
        commit = self._canonical_hash(args.hash)
        if commit is None:
            return ToolOutcome(log=f"Error: commit {args.hash} is not allowed for this day/repo")
        task = self.tasks[index]
        if commit in task.commits:
            return ToolOutcome(log=f"Info: commit {commit} already linked to task {index}")
        task.commits.append(commit)
        return ToolOutcome(
            log=f"Success: linked commit {commit} to task {index}",
            status=f"Linked commit {commit} to task #{index}",
            mutated=True,
        )

    def remove_tasks(self, args: RemoveTaskInput) -> ToolOutcome:
        selectors = args.selectors()
        if not selectors:
            return self._out_of_bounds(None)
        logs: list[str] = []
        doomed: list[int] = []
        for selector in selectors:
            index = self._resolve(selector)
            if index is None:
                logs.append(self._out_of_bounds(selector).log)
            elif index not in doomed:
                doomed.append(index)
        for index in sorted(doomed, reverse=True):
            del self.tasks[index]
        logs.extend(f"Success: deleted task {index}" for index in sorted(doomed))
        status = f"Deleted task #{', #'.join(str(i) for i in sorted(doomed))}" if doomed else ""
        return ToolOutcome(log="\n".join(logs), status=status, mutated=bool(doomed))

    def merge_tasks(self, args: MergeTasksInput) -> ToolOutcome:
        indices = sorted(set(args.indices))
        if len(indices) < 2:
            return ToolOutcome(log="Error: merge_tasks requires at least two indices")
        invalid = [index for index in indices if self._resolve(index) is None]
        if invalid:
            return self._out_of_bounds(invalid[0])

        parts = [self.tasks[index] for index in indices]
        first = parts[0]
        detail_lines = unique(
            [line for part in parts for line in part.details.splitlines() if line.strip()]
            + [line for line in args.new_details.splitlines() if line.strip()]
        )
        merged = first.model_copy(
            deep=True,
            update={
                "intent": args.new_intent.strip() or first.intent,
                "scope": args.new_scope.strip() or first.scope,
                "details": "\n".join(detail_lines),
                "commits": unique([commit for part in parts for commit in part.commits]),
                "estimated_hours": sum(part.estimated_hours for part in parts),
                "is_manual": all(part.is_manual for part in parts),
            },
        )
        target = indices[0]
        self.tasks = [
            merged if position == target else task
            for position, task in enumerate(self.tasks)
            if position == target or position not in indices
        ]
        return ToolOutcome(
            log=f"Success: merged tasks {indices} into task {target}",
            status=f"Merged {len(indices)} tasks into #{target}",
            mutated=True,
        )

    def split_task(self, args: SplitTaskInput) -> ToolOutcome:
        index = self._resolve(args.index)
        if index is None:
            return self._out_of_bounds(args.index)
        pieces = [item for item in args.new_tasks if (item.intent or "").strip()]
        if not pieces:
            return ToolOutcome(log="Error: split_task requires new_tasks with non-empty intents")

        original = self.tasks[index]
        replacements: list[Task] = []
        for position, piece in enumerate(pieces):
            replacements.append(
                Task(
                    intent=(piece.intent or "").strip(),
                    title=piece.title or "",
                    details=piece.details or "",
                    scope=piece.scope or original.scope,
                    type=piece.type or original.type,
                    status=piece.status or original.status,
                    estimated_hours=piece.estimated_hours or 0,
                    commits=list(original.commits) if position == 0 else [],
                    is_manual=original.is_manual,
                )
            )
        self.tasks[index : index + 1] = replacements
        return ToolOutcome(
            log=f"Success: split task {index} into {len(replacements)} tasks",
            status=f"Split task #{index} into {len(replacements)}",
            mutated=True,
        )

    def codebase_context(self, args: CodebaseContextInput) -> ToolOutcome:
        if not args.query:
            return ToolOutcome(log="Error: get_codebase_context requires non-empty query")
        try:
            output = search_codebase(
                args.query, args.path, args.max_results, root=self.codebase_root
            )
        except CodebaseSearchError as exc:
            return ToolOutcome(log=f"Error: get_codebase_context failed: {exc}")
        quoted = json.dumps(args.query)
        if not output:
            return ToolOutcome(log=f"Context: no matches for query {quoted}")
        if len(output) > CONTEXT_OUTPUT_LIMIT:
            output = output[:CONTEXT_OUTPUT_LIMIT] + "\n...(truncated)"
        return ToolOutcome(log=f"Context (query {quoted}):\n{output}")
