"""Exception types shared across md2slack."""

from __future__ import annotations


class Md2SlackError(Exception):
    """Base class for md2slack failures."""


class ConfigError(Md2SlackError):
    """Invalid or missing configuration. Fatal at startup."""


class PromptNotFound(ConfigError):
    def __init__(self, name: str) -> None:
        super().__init__(f"prompt file {name} not found")
        self.name = name


class FactsError(Md2SlackError):
    """The VCS command failed or produced nothing usable."""


class LLMError(Md2SlackError):
    """Transport or protocol failure talking to a model provider."""


class LLMJSONError(LLMError):
    """The model reply could not be decoded into the expected JSON shape."""


class StoreError(Md2SlackError):
    pass


class SlackError(Md2SlackError):
    pass


class PortUnavailable(Md2SlackError):
    pass


class CodebaseSearchError(Md2SlackError):
    """The code search command failed for a reason other than "no matches"."""
