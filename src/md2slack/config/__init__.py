from md2slack.config.ini import AppConfig, LLMConfig, ServerConfig, SlackConfig, load_config
from md2slack.config.settings import Settings, get_settings

__all__ = [
    "AppConfig",
    "LLMConfig",
    "ServerConfig",
    "Settings",
    "SlackConfig",
    "get_settings",
    "load_config",
]
