from __future__ import annotations

from pathlib import Path

import pytest

from md2slack.config.ini import DEFAULT_BASE_URLS, find_config_path, load_config, parse_config_text
from md2slack.config.settings import Settings, get_settings
from md2slack.errors import ConfigError, PromptNotFound
from md2slack.llm.prompts import load_prompt

LEGACY_CONFIG = """
[Server]
Port = 9000
AutoIncrementPort = false

[LLM]
provider = codex
ModelName = "gpt-4o"
temperature = 0.2

[slack]
BotToken = xoxb-123
ChannelID = C42
"""


def test_parse_config_accepts_legacy_keys() -> None:
    config = parse_config_text(LEGACY_CONFIG)
    assert config.server.port == 9000
    assert config.server.auto_increment_port is False
    assert config.server.host == "127.0.0.1"
    assert config.llm.provider == "openai"
    assert config.llm.base_url == DEFAULT_BASE_URLS["openai"]
    assert config.llm.model == "gpt-4o"
    assert config.llm.temperature == 0.2
    assert config.slack.bot_token == "xoxb-123"
    assert config.slack.channel_id == "C42"


def test_missing_sections_use_defaults() -> None:
    config = parse_config_text("")
    assert config.llm.provider == "ollama"
    assert config.llm.base_url == DEFAULT_BASE_URLS["ollama"]
    assert config.server.port == 8080
    assert config.slack.bot_token == ""


@pytest.mark.parametrize(
    "text",
    [
        "[llm]\nprovider = mystery\n",
        "[server]\nport = 0\n",
        "[llm]\ntop_p = 3\n",
        "not an ini file",
    ],
)
def test_invalid_config_raises(text: str) -> None:
    with pytest.raises(ConfigError):
        parse_config_text(text)


def test_explicit_missing_path_raises(tmp_path: Path) -> None:
    with pytest.raises(ConfigError, match="config file not found"):
        load_config(tmp_path / "nope.ini")


def test_config_found_in_home_dir(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch, settings: Settings
) -> None:
    monkeypatch.chdir(tmp_path)
    settings.home_dir.mkdir(parents=True, exist_ok=True)
    (settings.home_dir / "config.ini").write_text("[llm]\nmodel = qwen2.5\n", encoding="utf-8")

    assert find_config_path(settings=settings) == settings.home_dir / "config.ini"
    assert load_config(settings=settings).llm.model == "qwen2.5"


def test_working_directory_config_wins(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch, settings: Settings
) -> None:
    monkeypatch.chdir(tmp_path)
    settings.home_dir.mkdir(parents=True, exist_ok=True)
    (settings.home_dir / "config.ini").write_text("[llm]\nmodel = home\n", encoding="utf-8")
    (tmp_path / "config.ini").write_text("[llm]\nmodel = local\n", encoding="utf-8")

    assert load_config(settings=settings).llm.model == "local"


def test_no_config_anywhere(tmp_path: Path, monkeypatch: pytest.MonkeyPatch, settings: Settings) -> None:
    monkeypatch.chdir(tmp_path)
    with pytest.raises(ConfigError, match="config.ini not found"):
        find_config_path(settings=settings)


def test_settings_read_environment(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("MD2SLACK_SUMMARIZE_WORKERS", "3")
    monkeypatch.setenv("MD2SLACK_DB_PATH", str(tmp_path / "custom.db"))
    get_settings.cache_clear()
    settings = get_settings()
    assert settings.summarize_workers == 3
    assert settings.resolved_db_path() == tmp_path / "custom.db"
    assert settings.webui_settings_path() == settings.home_dir / "webui.json"


def test_prompt_override_beats_packaged_copy(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.chdir(tmp_path)
    overrides = tmp_path / "custom-prompts"
    overrides.mkdir()
    (overrides / "next_actions.txt").write_text("custom next actions", encoding="utf-8")
    settings = Settings(home_dir=tmp_path / "home", prompts_dir=overrides)

    assert load_prompt("next_actions.txt", settings) == "custom next actions"
    assert "{{TASKS_JSON}}" in load_prompt("task_chat.txt", settings)
    with pytest.raises(PromptNotFound):
        load_prompt("missing_prompt.txt", settings)
