"""Argument schemas for the task tools.

Models emit loosely typed arguments, so the schemas coerce instead of
rejecting: numbers arrive as strings, lists as comma strings, selectors
as either a position or a task id. Fields left as ``None`` mean "not
provided" and leave the task untouched.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from md2slack.coerce import cast_int, cast_int_list, cast_str

Selector = int | str


class ToolArgs(BaseModel):
    """Base model for tool arguments: unknown keys are ignored."""

    model_config = ConfigDict(extra="ignore")


def _selector(value: Any) -> Selector | None:
    if value is None or isinstance(value, bool):
        return None
    number = cast_int(value)
    if number is not None:
        return number
    text = cast_str(value)
    return text or None


def _optional_text(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, list):
        return "\n".join(cast_str(item) for item in value if cast_str(item))
    return cast_str(value)


def _move_alias(data: Any, canonical: str, *aliases: str) -> Any:
    if not isinstance(data, dict):
        return data
    payload = dict(data)
    for alias in aliases:
        if alias in payload:
            value = payload.pop(alias)
            payload.setdefault(canonical, value)
    return payload


class TaskFields(ToolArgs):
    intent: str | None = Field(default=None, description="What was done, one line")
    title: str | None = None
    details: str | None = Field(default=None, description="Technical details, markdown bullets")
    scope: str | None = Field(default=None, description="Component or area")
    type: str | None = Field(default=None, description="delivery, fix, meeting, chore or review")
    status: str | None = Field(default=None, description="done, inprogress or onhold")
    estimated_hours: int | None = Field(default=None, ge=0)

    @model_validator(mode="before")
    @classmethod
    def _aliases(cls, data: Any) -> Any:
        data = _move_alias(data, "estimated_hours", "hours", "time_estimate", "estimated_time")
        data = _move_alias(data, "details", "description", "technical_why")
        return _move_alias(data, "type", "task_type", "kind")

    @field_validator("intent", "title", "details", "scope", "type", "status", mode="before")
    @classmethod
    def _as_text(cls, value: Any) -> str | None:
        return _optional_text(value)

    @field_validator("estimated_hours", mode="before")
    @classmethod
    def _as_hours(cls, value: Any) -> int | None:
        if isinstance(value, str):
            value = value.strip().lower().rstrip("h").strip()
        hours = cast_int(value)
        return max(hours, 0) if hours is not None else None


class CreateTaskInput(TaskFields):
    model_config = ConfigDict(extra="ignore", json_schema_extra={"required": ["intent"]})


class EditTaskInput(TaskFields):
    index: Selector | None = Field(default=None, description="0-based task index or task id")

    model_config = ConfigDict(extra="ignore", json_schema_extra={"required": ["index"]})

    @field_validator("index", mode="before")
    @classmethod
    def _as_selector(cls, value: Any) -> Selector | None:
        return _selector(value)


class AddDetailsInput(ToolArgs):
    index: Selector | None = None
    details: str = Field(default="", description="Technical details to append")

    model_config = ConfigDict(extra="ignore", json_schema_extra={"required": ["index", "details"]})

    @model_validator(mode="before")
    @classmethod
    def _aliases(cls, data: Any) -> Any:
        return _move_alias(data, "details", "detail", "technical_why", "text")

    @field_validator("index", mode="before")
    @classmethod
    def _as_selector(cls, value: Any) -> Selector | None:
        return _selector(value)

    @field_validator("details", mode="before")
    @classmethod
    def _as_text(cls, value: Any) -> str:
        return _optional_text(value) or ""


class AddTimeInput(ToolArgs):
    index: Selector | None = None
    hours: int | None = None

    model_config = ConfigDict(extra="ignore", json_schema_extra={"required": ["index", "hours"]})

    @model_validator(mode="before")
    @classmethod
    def _aliases(cls, data: Any) -> Any:
        return _move_alias(data, "hours", "estimated_hours", "time")

    @field_validator("index", mode="before")
    @classmethod
    def _as_selector(cls, value: Any) -> Selector | None:
        return _selector(value)

    @field_validator("hours", mode="before")
    @classmethod
    def _as_hours(cls, value: Any) -> int | None:
        return cast_int(value)


class AddCommitReferenceInput(ToolArgs):
    index: Selector | None = None
    hash: str = Field(default="", description="Commit hash from the allowed list")

    model_config = ConfigDict(extra="ignore", json_schema_extra={"required": ["index", "hash"]})

    @model_validator(mode="before")
    @classmethod
    def _aliases(cls, data: Any) -> Any:
        return _move_alias(data, "hash", "commit", "commit_hash", "sha")

    @field_validator("index", mode="before")
    @classmethod
    def _as_selector(cls, value: Any) -> Selector | None:
        return _selector(value)

    @field_validator("hash", mode="before")
    @classmethod
    def _as_hash(cls, value: Any) -> str:
        return cast_str(value).strip("`")


class RemoveTaskInput(ToolArgs):
    index: Selector | None = None
    indices: list[Selector] = Field(default_factory=list)

    @field_validator("index", mode="before")
    @classmethod
    def _as_selector(cls, value: Any) -> Selector | None:
        return _selector(value)

    @field_validator("indices", mode="before")
    @classmethod
    def _as_selectors(cls, value: Any) -> list[Selector]:
        if value is None:
            return []
        items = value if isinstance(value, list) else cast_int_list(value) or [value]
        return [item for item in (_selector(raw) for raw in items) if item is not None]

    def selectors(self) -> list[Selector]:
        chosen = list(self.indices)
        if self.index is not None and self.index not in chosen:
            chosen.insert(0, self.index)
        return chosen


class MergeTasksInput(ToolArgs):
    indices: list[int] = Field(default_factory=list, description="Indices of tasks to merge")
    new_intent: str = ""
    new_scope: str = ""
    new_details: str = ""

    model_config = ConfigDict(extra="ignore", json_schema_extra={"required": ["indices"]})

    @model_validator(mode="before")
    @classmethod
    def _aliases(cls, data: Any) -> Any:
        data = _move_alias(data, "new_intent", "intent")
        data = _move_alias(data, "new_scope", "scope")
        return _move_alias(data, "new_details", "details")

    @field_validator("indices", mode="before")
    @classmethod
    def _as_indices(cls, value: Any) -> list[int]:
        return cast_int_list(value)

    @field_validator("new_intent", "new_scope", "new_details", mode="before")
    @classmethod
    def _as_text(cls, value: Any) -> str:
        return _optional_text(value) or ""


class SplitTaskInput(ToolArgs):
    index: Selector | None = None
    new_tasks: list[CreateTaskInput] = Field(default_factory=list)

    model_config = ConfigDict(extra="ignore", json_schema_extra={"required": ["index", "new_tasks"]})

    @model_validator(mode="before")
    @classmethod
    def _aliases(cls, data: Any) -> Any:
        return _move_alias(data, "new_tasks", "tasks", "parts")

    @field_validator("index", mode="before")
    @classmethod
    def _as_selector(cls, value: Any) -> Selector | None:
        return _selector(value)

    @field_validator("new_tasks", mode="before")
    @classmethod
    def _as_items(cls, value: Any) -> list[Any]:
        if value is None:
            return []
        items = value if isinstance(value, list) else [value]
        return [{"intent": item} if isinstance(item, str) else item for item in items]


class CodebaseContextInput(ToolArgs):
    query: str = ""
    path: str = ""
    max_results: int = Field(default=20, ge=1, le=200)

    model_config = ConfigDict(extra="ignore", json_schema_extra={"required": ["query"]})

    @field_validator("query", "path", mode="before")
    @classmethod
    def _as_text(cls, value: Any) -> str:
        return cast_str(value)

    @field_validator("max_results", mode="before")
    @classmethod
    def _as_limit(cls, value: Any) -> int:
        number = cast_int(value)
        if number is None or number <= 0:
            return 20
        return min(number, 200)
