"""config.ini loading.

The file has three sections, ``[server]``, ``[llm]`` and ``[slack]``. Keys are
matched case-insensitively and a few CamelCase spellings from older
installs (``BotToken``, ``ClientID``, ``AutoIncrementPort``) are accepted
as aliases of the snake_case names.
"""

from __future__ import annotations

import configparser
import logging
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, ValidationError, model_validator

from md2slack.config.settings import Settings, get_settings
from md2slack.errors import ConfigError

logger = logging.getLogger(__name__)

DEFAULT_BASE_URLS = {
    "ollama": "http://127.0.0.1:11434",
    "openai": "https://api.openai.com/v1",
    "anthropic": "https://api.anthropic.com/v1/messages",
}

_KEY_ALIASES = {
    "autoincrementport": "auto_increment_port",
    "auto_increment": "auto_increment_port",
    "modelname": "model",
    "model_name": "model",
    "topp": "top_p",
    "repeatpenalty": "repeat_penalty",
    "contextsize": "context_size",
    "baseurl": "base_url",
    "apikey": "token",
    "api_key": "token",
    "bottoken": "bot_token",
    "channelid": "channel_id",
    "clientid": "client_id",
}


class ServerConfig(BaseModel):
    host: str = "127.0.0.1"
    port: int = Field(default=8080, ge=1, le=65535)
    auto_increment_port: bool = True


class LLMConfig(BaseModel):
    provider: str = "ollama"
    model: str = "llama3.2"
    temperature: float = Field(default=0.7, ge=0.0)
    top_p: float = Field(default=0.9, ge=0.0, le=1.0)
    repeat_penalty: float = Field(default=1.1, ge=0.0)
    context_size: int = Field(default=8192, ge=0)
    base_url: str = ""
    token: str = ""

    @model_validator(mode="after")
    def _normalize_provider(self) -> "LLMConfig":
        self.provider = self.provider.strip().lower() or "ollama"
        if self.provider == "codex":
            self.provider = "openai"
        if self.provider not in DEFAULT_BASE_URLS:
            raise ValueError(f"unknown provider: {self.provider}")
        if not self.base_url:
            self.base_url = DEFAULT_BASE_URLS[self.provider]
        return self


class SlackConfig(BaseModel):
    bot_token: str = ""
    channel_id: str = ""
    client_id: str = ""


class AppConfig(BaseModel):
    server: ServerConfig = Field(default_factory=ServerConfig)
    llm: LLMConfig = Field(default_factory=LLMConfig)
    slack: SlackConfig = Field(default_factory=SlackConfig)


def candidate_paths(settings: Settings | None = None) -> list[Path]:
    settings = settings or get_settings()
    if settings.config_path is not None:
        return [settings.config_path]
    return [Path("config.ini"), settings.home_dir / "config.ini"]


def find_config_path(explicit: Path | None = None, settings: Settings | None = None) -> Path:
    if explicit is not None:
        if not explicit.is_file():
            raise ConfigError(f"config file not found: {explicit}")
        return explicit
    paths = candidate_paths(settings)
    for path in paths:
        if path.is_file():
            return path
    searched = ", ".join(str(p) for p in paths)
    raise ConfigError(f"config.ini not found (searched: {searched})")


def load_config(path: Path | None = None, settings: Settings | None = None) -> AppConfig:
    config_path = find_config_path(path, settings)
    parser = configparser.ConfigParser(interpolation=None)
    try:
        with config_path.open(encoding="utf-8") as handle:
            parser.read_file(handle)
    except (OSError, configparser.Error) as exc:
        raise ConfigError(f"cannot read {config_path}: {exc}") from exc

    logger.info("config event=loaded path=%s", config_path)
    return parse_config(parser)


def parse_config(parser: configparser.ConfigParser) -> AppConfig:
    payload: dict[str, dict[str, Any]] = {}
    for section in ("server", "llm", "slack"):
        payload[section] = _section_values(parser, section)
    try:
        return AppConfig.model_validate(payload)
    except ValidationError as exc:
        raise ConfigError(f"invalid config.ini: {exc}") from exc


def parse_config_text(text: str) -> AppConfig:
    parser = configparser.ConfigParser(interpolation=None)
    try:
        parser.read_string(text)
    except configparser.Error as exc:
        raise ConfigError(f"invalid config.ini: {exc}") from exc
    return parse_config(parser)


def _section_values(parser: configparser.ConfigParser, section: str) -> dict[str, Any]:
    # configparser lowercases keys already; sections are matched loosely too.
    match = next((name for name in parser.sections() if name.lower() == section), None)
    if match is None:
        return {}
    values: dict[str, Any] = {}
    for key, raw in parser.items(match):
        name = _KEY_ALIASES.get(key.replace("-", "_"), key.replace("-", "_"))
        value = raw.strip().strip('"').strip("'")
        if value == "":
            continue
        values[name] = value
    return values
