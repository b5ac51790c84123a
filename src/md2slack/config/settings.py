"""Process-level settings loaded from environment variables."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def default_home_dir() -> Path:
    return Path.home() / ".md2slack"


class Settings(BaseSettings):
    """Runtime knobs that do not belong in config.ini."""

    app_name: str = "md2slack"
    home_dir: Path = Field(default_factory=default_home_dir)
    db_path: Path | None = None
    prompts_dir: Path | None = None
    config_path: Path | None = None
    llm_timeout_s: float = Field(default=120.0, ge=1.0)
    llm_max_retries: int = Field(default=1, ge=0)
    llm_backoff_s: float = Field(default=0.5, ge=0.0)
    summarize_workers: int = Field(default=8, ge=1)

    model_config = SettingsConfigDict(
        env_prefix="MD2SLACK_",
        extra="ignore",
    )

    def resolved_db_path(self) -> Path:
        return self.db_path or self.home_dir / "md2slack.db"

    def webui_settings_path(self) -> Path:
        return self.home_dir / "webui.json"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
