"""Prompt template lookup."""

from __future__ import annotations

import logging
from importlib import resources
from pathlib import Path

from md2slack.config.settings import Settings, get_settings
from md2slack.errors import PromptNotFound

logger = logging.getLogger(__name__)

PROMPT_PACKAGE = "md2slack"


def prompt_dirs(settings: Settings | None = None) -> list[Path]:
    settings = settings or get_settings()
    dirs: list[Path] = []
    if settings.prompts_dir is not None:
        dirs.append(settings.prompts_dir)
    dirs.append(Path("prompts"))
    dirs.append(settings.home_dir / "prompts")
    return dirs


def load_prompt(name: str, settings: Settings | None = None) -> str:
    """Read a prompt template, preferring user overrides over the packaged copy."""
    for directory in prompt_dirs(settings):
        candidate = directory / name
        if candidate.is_file():
            logger.debug("prompt event=loaded name=%s path=%s", name, candidate)
            return candidate.read_text(encoding="utf-8")

    packaged = resources.files(PROMPT_PACKAGE).joinpath("prompts").joinpath(name)
    if packaged.is_file():
        return packaged.read_text(encoding="utf-8")
    raise PromptNotFound(name)
