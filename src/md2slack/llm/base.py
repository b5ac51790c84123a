"""Provider-neutral chat types and the adapter interface."""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass, field, replace
from typing import Any, Protocol

StreamCallback = Callable[[str], None]


@dataclass
class ToolCall:
    name: str
    arguments: dict[str, Any] = field(default_factory=dict)
    id: str = ""

    def as_dict(self) -> dict[str, Any]:
        return {"tool": self.name, "parameters": dict(self.arguments)}


@dataclass
class Message:
    role: str
    content: str = ""
    tool_calls: list[ToolCall] = field(default_factory=list)
    tool_call_id: str = ""
    name: str = ""


@dataclass(frozen=True)
class ToolDefinition:
    name: str
    description: str
    parameters: dict[str, Any]


@dataclass
class LLMResponse:
    content: str = ""
    tool_calls: list[ToolCall] = field(default_factory=list)


@dataclass
class LLMOptions:
    provider: str = "ollama"
    model: str = "llama3.2"
    temperature: float = 0.7
    top_p: float = 0.9
    repeat_penalty: float = 1.1
    context_size: int = 8192
    base_url: str = ""
    token: str = ""
    timeout_s: float = 120.0
    deadline: float | None = None
    stream: StreamCallback | None = None
    tools: list[ToolDefinition] = field(default_factory=list)

    def with_tools(self, tools: list[ToolDefinition]) -> LLMOptions:
        return replace(self, tools=list(tools))

    def without_tools(self) -> LLMOptions:
        return replace(self, tools=[], stream=None)

    def with_deadline(self, deadline: float | None) -> LLMOptions:
        return replace(self, deadline=deadline)

    def request_timeout(self) -> float:
        """Per-request timeout, clipped to whatever is left before the deadline."""
        if self.deadline is None:
            return self.timeout_s
        remaining = self.deadline - time.monotonic()
        return max(0.1, min(self.timeout_s, remaining))

    def expired(self) -> bool:
        return self.deadline is not None and time.monotonic() >= self.deadline


class LLMAdapter(Protocol):
    """Chat completion with optional streaming and native tool calls."""

    def generate(self, messages: list[Message], options: LLMOptions) -> LLMResponse: ...
