"""Web UI workspace settings persisted to ``~/.md2slack/webui.json``."""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path

from pydantic import BaseModel, Field, ValidationError, field_validator

from md2slack.errors import ConfigError
from md2slack.facts.provider import UNKNOWN_REPO, normalize_names, repo_name_at

logger = logging.getLogger(__name__)


class WorkspaceSettings(BaseModel):
    project_paths: list[str] = Field(default_factory=list)
    usernames: list[str] = Field(default_factory=list)

    @field_validator("project_paths", "usernames", mode="before")
    @classmethod
    def _normalize(cls, value: object) -> list[str]:
        if not isinstance(value, list):
            return []
        return sorted(normalize_names([str(item) for item in value if item is not None]))


class ProjectInfo(BaseModel):
    name: str
    path: str


class WorkspaceView(BaseModel):
    settings: WorkspaceSettings
    projects: list[ProjectInfo]
    current_project: str = ""


def load_workspace(path: Path) -> WorkspaceSettings:
    try:
        raw = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return WorkspaceSettings()
    except OSError as exc:
        raise ConfigError(f"cannot read {path}: {exc}") from exc
    try:
        return WorkspaceSettings.model_validate(json.loads(raw))
    except (ValueError, ValidationError) as exc:
        raise ConfigError(f"invalid workspace settings in {path}: {exc}") from exc


def save_workspace(path: Path, settings: WorkspaceSettings) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(settings.model_dump(), indent=2), encoding="utf-8")
    os.chmod(path, 0o600)
    logger.info("workspace event=saved path=%s projects=%d", path, len(settings.project_paths))


def workspace_view(path: Path, settings: WorkspaceSettings | None = None, cwd: Path | None = None) -> WorkspaceView:
    """Load (or take) settings, add the current repo as a default project, persist if that changed."""
    current = cwd or Path.cwd()
    is_repo = repo_name_at(current) != UNKNOWN_REPO
    stored = settings if settings is not None else load_workspace(path)
    paths = list(stored.project_paths)
    if is_repo and str(current) not in paths:
        paths.append(str(current))
    updated = WorkspaceSettings(project_paths=paths, usernames=stored.usernames)
    if settings is not None or updated.project_paths != stored.project_paths:
        save_workspace(path, updated)
    return WorkspaceView(
        settings=updated,
        projects=[ProjectInfo(name=repo_name_at(item), path=item) for item in updated.project_paths],
        current_project=str(current) if is_repo else "",
    )
