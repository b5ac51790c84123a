"""Adapter for OpenAI-compatible ``/chat/completions`` endpoints."""

from __future__ import annotations

import json
import logging
from typing import Any

from md2slack.errors import LLMError
from md2slack.llm.base import LLMOptions, LLMResponse, Message, ToolCall, ToolDefinition
from md2slack.llm.transport import JSONTransport

logger = logging.getLogger(__name__)


class OpenAIChatAdapter:
    """Chat completions with native tools and optional SSE streaming."""

    def __init__(
        self,
        *,
        api_key: str,
        base_url: str = "https://api.openai.com/v1",
        max_retries: int = 1,
        backoff_s: float = 0.5,
        transport: JSONTransport | None = None,
    ) -> None:
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.transport = transport or JSONTransport(
            provider="openai", max_retries=max_retries, backoff_s=backoff_s
        )

    def generate(self, messages: list[Message], options: LLMOptions) -> LLMResponse:
        payload: dict[str, Any] = {
            "model": options.model,
            "messages": [_to_wire(message) for message in messages],
            "temperature": options.temperature,
        }
        if 0 < options.top_p < 1:
            payload["top_p"] = options.top_p
        if options.tools:
            payload["tools"] = [_tool_to_wire(tool) for tool in options.tools]
        if options.stream is not None:
            payload["stream"] = True

        url = f"{self.base_url}/chat/completions"
        headers = {"Authorization": f"Bearer {self.api_key}"} if self.api_key else {}
        logger.debug("llm event=request provider=openai model=%s", options.model)
        if options.stream is None:
            body = self.transport.post_json(url, payload, headers, options.request_timeout())
            return _extract_response(body)
        return self._stream(url, payload, headers, options)

    def _stream(
        self,
        url: str,
        payload: dict[str, Any],
        headers: dict[str, str],
        options: LLMOptions,
    ) -> LLMResponse:
        content: list[str] = []
        pending: dict[int, dict[str, str]] = {}
        for line in self.transport.post_lines(url, payload, headers, options.request_timeout()):
            if not line.startswith("data:"):
                continue
            data = line[len("data:") :].strip()
            if data == "[DONE]":
                break
            try:
                chunk = json.loads(data)
            except ValueError:
                continue
            choices = chunk.get("choices") or []
            if not choices:
                continue
            delta = choices[0].get("delta") or {}
            text = delta.get("content")
            if isinstance(text, str) and text:
                content.append(text)
                if options.stream is not None:
                    options.stream(text)
            for fragment in delta.get("tool_calls") or []:
                slot = pending.setdefault(
                    int(fragment.get("index", 0)), {"id": "", "name": "", "arguments": ""}
                )
                slot["id"] = fragment.get("id") or slot["id"]
                function = fragment.get("function") or {}
                slot["name"] = function.get("name") or slot["name"]
                slot["arguments"] += function.get("arguments") or ""

        calls = [
            ToolCall(name=slot["name"], arguments=_decode_arguments(slot["arguments"]), id=slot["id"])
            for _, slot in sorted(pending.items())
            if slot["name"]
        ]
        return LLMResponse(content="".join(content), tool_calls=calls)


def _to_wire(message: Message) -> dict[str, Any]:
    if message.role == "tool":
        return {
            "role": "tool",
            "tool_call_id": message.tool_call_id,
            "content": message.content,
        }
    wire: dict[str, Any] = {"role": message.role, "content": message.content}
    if message.tool_calls:
        wire["tool_calls"] = [
            {
                "id": call.id,
                "type": "function",
                "function": {"name": call.name, "arguments": json.dumps(call.arguments)},
            }
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


def _decode_arguments(raw: Any) -> dict[str, Any]:
    if isinstance(raw, dict):
        return raw
    if not isinstance(raw, str) or not raw.strip():
        return {}
    try:
        decoded = json.loads(raw)
    except ValueError:
        return {}
    return decoded if isinstance(decoded, dict) else {}


def _extract_response(body: dict[str, Any]) -> LLMResponse:
    if body.get("error"):
        raise LLMError(f"openai error: {body['error']}")
    choices = body.get("choices", [])
    if not choices:
        raise LLMError("OpenAI response did not contain choices")

    message = choices[0].get("message", {})
    content = message.get("content") or ""
    if isinstance(content, list):
        content = "".join(
            item.get("text", "") for item in content if isinstance(item, dict)
        ).strip()

    calls = []
    for raw in message.get("tool_calls") or []:
        function = raw.get("function") or {}
        if not function.get("name"):
            continue
        calls.append(
            ToolCall(
                name=function["name"],
                arguments=_decode_arguments(function.get("arguments")),
                id=raw.get("id", ""),
            )
        )
    return LLMResponse(content=content if isinstance(content, str) else "", tool_calls=calls)
