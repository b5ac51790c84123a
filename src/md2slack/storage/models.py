"""Task and history records shared by the store, the tools and the HTTP API."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, Field, field_validator, model_validator

from md2slack.coerce import cast_int, cast_str, cast_str_list, unique

TASK_KINDS = ("delivery", "fix", "meeting", "chore", "review")
DEFAULT_KIND = "delivery"
DEFAULT_STATUS = "done"

# Older prompt files and model replies still use these field names.
_LEGACY_FIELDS = {
    "task_intent": "intent",
    "task_type": "type",
    "technical_why": "details",
    "hours": "estimated_hours",
    "estimated_time": "estimated_hours",
}


class Task(BaseModel):
    """One unit of work inferred from commits or typed by the user."""

    id: str = ""
    intent: str = ""
    title: str = ""
    details: str = ""
    scope: str = ""
    type: str = DEFAULT_KIND
    status: str = DEFAULT_STATUS
    estimated_hours: int = 0
    commits: list[str] = Field(default_factory=list)
    usernames: list[str] = Field(default_factory=list)
    is_manual: bool = False
    is_historical: bool = False
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @model_validator(mode="before")
    @classmethod
    def _accept_legacy_names(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        payload = dict(data)
        for legacy, canonical in _LEGACY_FIELDS.items():
            if legacy in payload:
                value = payload.pop(legacy)
                if canonical == "details" and isinstance(value, list):
                    value = "\n".join(cast_str_list(value))
                payload.setdefault(canonical, value)
        return payload

    @field_validator("id", "intent", "title", "details", "scope", mode="before")
    @classmethod
    def _as_text(cls, value: Any) -> str:
        return cast_str(value)

    @field_validator("type", mode="before")
    @classmethod
    def _as_kind(cls, value: Any) -> str:
        kind = cast_str(value).lower()
        return kind if kind in TASK_KINDS else DEFAULT_KIND

    @field_validator("status", mode="before")
    @classmethod
    def _as_status(cls, value: Any) -> str:
        return cast_str(value).lower() or DEFAULT_STATUS

    @field_validator("estimated_hours", mode="before")
    @classmethod
    def _as_hours(cls, value: Any) -> int:
        hours = cast_int(value)
        return max(hours, 0) if hours is not None else 0

    @field_validator("commits", "usernames", mode="before")
    @classmethod
    def _as_unique_list(cls, value: Any) -> list[str]:
        if isinstance(value, str) and "," in value:
            value = value.split(",")
        return unique(cast_str_list(value))

    @field_validator("created_at", "updated_at")
    @classmethod
    def _as_utc(cls, value: datetime | None) -> datetime | None:
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value


class HistoryRecord(BaseModel):
    """Rendered report snapshot for one (repo, date) partition."""

    repo_name: str
    date: str
    message: str
    role: str = "assistant"
    created_at: datetime | None = None


def clone_tasks(tasks: list[Task]) -> list[Task]:
    return [task.model_copy(deep=True) for task in tasks]
