"""Adapter for a local Ollama server (``/api/chat``)."""

from __future__ import annotations

import json
import logging
from typing import Any

from md2slack.errors import LLMError
from md2slack.llm.base import LLMOptions, LLMResponse, Message, ToolCall, ToolDefinition
from md2slack.llm.transport import JSONTransport

logger = logging.getLogger(__name__)


class OllamaAdapter:
    def __init__(
        self,
        *,
        base_url: str = "http://127.0.0.1:11434",
        max_retries: int = 1,
        backoff_s: float = 0.5,
        transport: JSONTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.transport = transport or JSONTransport(
            provider="ollama", max_retries=max_retries, backoff_s=backoff_s
        )

    def generate(self, messages: list[Message], options: LLMOptions) -> LLMResponse:
        payload: dict[str, Any] = {
            "model": options.model,
            "messages": [_to_wire(message) for message in messages],
            "stream": options.stream is not None,
            "options": {
                "temperature": options.temperature,
                "top_p": options.top_p,
                "repeat_penalty": options.repeat_penalty,
                "num_ctx": options.context_size,
            },
        }
        if options.tools:
            payload["tools"] = [_tool_to_wire(tool) for tool in options.tools]

        url = f"{self.base_url}/api/chat"
        logger.debug("llm event=request provider=ollama model=%s", options.model)
        if options.stream is None:
            body = self.transport.post_json(url, payload, {}, options.request_timeout())
            if body.get("error"):
                raise LLMError(f"ollama error: {body['error']}")
            return _parse_message(body.get("message") or {})

        content: list[str] = []
        calls: list[ToolCall] = []
        for line in self.transport.post_lines(url, payload, {}, options.request_timeout()):
            try:
                chunk = json.loads(line)
            except ValueError:
                continue
            if chunk.get("error"):
                raise LLMError(f"ollama error: {chunk['error']}")
            partial = _parse_message(chunk.get("message") or {})
            if partial.content:
                content.append(partial.content)
                options.stream(partial.content)
            calls.extend(partial.tool_calls)
            if chunk.get("done"):
                break
        return LLMResponse(content="".join(content), tool_calls=calls)


def _to_wire(message: Message) -> dict[str, Any]:
    wire: dict[str, Any] = {"role": message.role, "content": message.content}
    if message.tool_calls:
        wire["tool_calls"] = [
            {"function": {"name": call.name, "arguments": call.arguments}}
            for call in message.tool_calls
        ]
    return wire


def _tool_to_wire(tool: ToolDefinition) -> dict[str, Any]:
    return {
        "type": "function",
        "function": {
            "name": tool.name,
            "description": tool.description,
            "parameters": tool.parameters,
        },
    }


def _parse_message(message: dict[str, Any]) -> LLMResponse:
    calls: list[ToolCall] = []
    for raw in message.get("tool_calls") or []:
        function = raw.get("function") or {}
        name = function.get("name")
        if not name:
            continue
        arguments = function.get("arguments") or {}
        if isinstance(arguments, str):
            try:
                arguments = json.loads(arguments)
            except ValueError:
                arguments = {}
        calls.append(ToolCall(name=name, arguments=arguments if isinstance(arguments, dict) else {}))
    content = message.get("content")
    return LLMResponse(content=content if isinstance(content, str) else "", tool_calls=calls)
