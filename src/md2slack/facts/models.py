"""Commit facts handed from the git layer to the pipeline."""

from __future__ import annotations

from pydantic import BaseModel, Field, field_validator

from md2slack.coerce import cast_str, cast_str_list


class FileChange(BaseModel):
    path: str
    is_new: bool = False
    is_deleted: bool = False
    is_test: bool = False
    additions: list[str] = Field(default_factory=list)
    deletions: list[str] = Field(default_factory=list)


class Commit(BaseModel):
    hash: str
    message: str = ""
    files: list[FileChange] = Field(default_factory=list)

    @property
    def additions(self) -> int:
        return sum(len(item.additions) for item in self.files)

    @property
    def deletions(self) -> int:
        return sum(len(item.deletions) for item in self.files)


class GraphCommit(BaseModel):
    """One node of the branch graph: parents link it to earlier nodes."""

    hash: str
    parents: list[str] = Field(default_factory=list)
    author: str = ""
    date: str = ""
    refs: list[str] = Field(default_factory=list)
    subject: str = ""


class Signal(BaseModel):
    file: str
    types: list[str] = Field(default_factory=list)
    hints: list[str] = Field(default_factory=list)


class CommitSemantic(BaseModel):
    commit: str
    signals: list[Signal] = Field(default_factory=list)
    files_touched: int = 0
    touches_tests: bool = False


class CommitSummary(BaseModel):
    commit: str
    summary: str = ""
    area: str = ""
    impact: str = ""


class CommitChange(BaseModel):
    """Intent the model extracted for one commit."""

    commit: str = ""
    change_type: str = ""
    intent: str = ""
    scope: str = ""
    signals: list[str] = Field(default_factory=list)
    confidence: float = 0.0

    @field_validator("commit", "change_type", "intent", "scope", mode="before")
    @classmethod
    def _as_text(cls, value: object) -> str:
        return cast_str(value)

    @field_validator("signals", mode="before")
    @classmethod
    def _as_list(cls, value: object) -> list[str]:
        return cast_str_list(value)

    @field_validator("confidence", mode="before")
    @classmethod
    def _as_float(cls, value: object) -> float:
        try:
            return float(value)  # type: ignore[arg-type]
        except (TypeError, ValueError):
            return 0.0


class Facts(BaseModel):
    date: str
    repo_name: str
    author: str = ""
    extra: str = ""
    commits: list[Commit] = Field(default_factory=list)
    semantic: list[CommitSemantic] = Field(default_factory=list)
    summaries: list[CommitSummary] = Field(default_factory=list)

    def semantic_for(self, commit_hash: str) -> CommitSemantic:
        for item in self.semantic:
            if item.commit == commit_hash:
                return item
        return CommitSemantic(commit=commit_hash)
