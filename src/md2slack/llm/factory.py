"""Build an adapter and default options from config.ini values."""

from __future__ import annotations

import logging

from md2slack.config.ini import LLMConfig
from md2slack.config.settings import Settings, get_settings
from md2slack.errors import ConfigError
from md2slack.llm.anthropic import AnthropicAdapter
from md2slack.llm.base import LLMAdapter, LLMOptions
from md2slack.llm.ollama import OllamaAdapter
from md2slack.llm.openai_chat import OpenAIChatAdapter

logger = logging.getLogger(__name__)


def build_adapter(config: LLMConfig, settings: Settings | None = None) -> LLMAdapter:
    settings = settings or get_settings()
    provider = config.provider
    if provider == "ollama":
        adapter: LLMAdapter = OllamaAdapter(
            base_url=config.base_url,
            max_retries=settings.llm_max_retries,
            backoff_s=settings.llm_backoff_s,
        )
    elif provider == "openai":
        adapter = OpenAIChatAdapter(
            api_key=config.token,
            base_url=config.base_url,
            max_retries=settings.llm_max_retries,
            backoff_s=settings.llm_backoff_s,
        )
    elif provider == "anthropic":
        if not config.token:
            raise ConfigError("anthropic provider requires llm.token")
        adapter = AnthropicAdapter(
            api_key=config.token,
            base_url=config.base_url,
            max_retries=settings.llm_max_retries,
            backoff_s=settings.llm_backoff_s,
        )
    else:
        raise ConfigError(f"unknown provider: {provider}")
    logger.info("llm event=adapter_ready provider=%s model=%s", provider, config.model)
    return adapter


def options_from_config(config: LLMConfig, settings: Settings | None = None) -> LLMOptions:
    settings = settings or get_settings()
    return LLMOptions(
        provider=config.provider,
        model=config.model,
        temperature=config.temperature,
        top_p=config.top_p,
        repeat_penalty=config.repeat_penalty,
        context_size=config.context_size,
        base_url=config.base_url,
        token=config.token,
        timeout_s=settings.llm_timeout_s,
    )
