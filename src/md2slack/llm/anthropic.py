"""Adapter for the Anthropic Messages API."""

from __future__ import annotations

import logging
from typing import Any

from md2slack.errors import LLMError
from md2slack.llm.base import LLMOptions, LLMResponse, Message, ToolCall
from md2slack.llm.transport import JSONTransport

logger = logging.getLogger(__name__)

ANTHROPIC_VERSION = "2023-06-01"
DEFAULT_MAX_TOKENS = 4096


class AnthropicAdapter:
    """Messages API client. Streaming callbacks receive the whole reply at once."""

    def __init__(
        self,
        *,
        api_key: str,
        base_url: str = "https://api.anthropic.com/v1/messages",
        max_retries: int = 1,
        backoff_s: float = 0.5,
        transport: JSONTransport | None = None,
    ) -> None:
        self.api_key = api_key
        self.url = base_url.rstrip("/")
        if not self.url.endswith("/messages"):
            self.url = f"{self.url}/messages"
        self.transport = transport or JSONTransport(
            provider="anthropic", max_retries=max_retries, backoff_s=backoff_s
        )

    def generate(self, messages: list[Message], options: LLMOptions) -> LLMResponse:
        system, turns = _split_system(messages)
        payload: dict[str, Any] = {
            "model": options.model,
            "max_tokens": DEFAULT_MAX_TOKENS,
            "messages": turns,
        }
        if system:
            payload["system"] = system
        # The API rejects requests that set both.
        if options.temperature > 0:
            payload["temperature"] = options.temperature
        elif 0 < options.top_p < 1:
            payload["top_p"] = options.top_p
        if options.tools:
            payload["tools"] = [
                {"name": tool.name, "description": tool.description, "input_schema": tool.parameters}
                for tool in options.tools
            ]
            payload["tool_choice"] = {"type": "auto"}

        headers = {"x-api-key": self.api_key, "anthropic-version": ANTHROPIC_VERSION}
        logger.debug("llm event=request provider=anthropic model=%s", options.model)
        body = self.transport.post_json(self.url, payload, headers, options.request_timeout())
        response = _extract_response(body)
        if options.stream is not None and response.content:
            options.stream(response.content)
        return response


def _split_system(messages: list[Message]) -> tuple[str, list[dict[str, Any]]]:
    """Hoist leading system prompts; later system notes travel as user text."""
    system_parts: list[str] = []
    turns: list[dict[str, Any]] = []
    leading = True
    for message in messages:
        if message.role == "system" and leading:
            system_parts.append(message.content)
            continue
        leading = False
        role, blocks = _to_blocks(message)
        if turns and turns[-1]["role"] == role:
            turns[-1]["content"].extend(blocks)
        else:
            turns.append({"role": role, "content": blocks})
    return "\n\n".join(part for part in system_parts if part), turns


def _to_blocks(message: Message) -> tuple[str, list[dict[str, Any]]]:
    if message.role == "tool":
        return "user", [
            {
                "type": "tool_result",
                "tool_use_id": message.tool_call_id,
                "content": message.content,
            }
        ]
    if message.role == "assistant":
        blocks: list[dict[str, Any]] = []
        if message.content:
            blocks.append({"type": "text", "text": message.content})
        for call in message.tool_calls:
            blocks.append(
                {"type": "tool_use", "id": call.id, "name": call.name, "input": call.arguments}
            )
        return "assistant", blocks or [{"type": "text", "text": "(no content)"}]
    return "user", [{"type": "text", "text": message.content or "(empty)"}]


def _extract_response(body: dict[str, Any]) -> LLMResponse:
    if body.get("type") == "error" or body.get("error"):
        raise LLMError(f"anthropic error: {body.get('error')}")
    texts: list[str] = []
    calls: list[ToolCall] = []
    for block in body.get("content") or []:
        if not isinstance(block, dict):
            continue
        if block.get("type") == "text":
            texts.append(str(block.get("text", "")))
        elif block.get("type") == "tool_use" and block.get("name"):
            arguments = block.get("input")
            calls.append(
                ToolCall(
                    name=block["name"],
                    arguments=arguments if isinstance(arguments, dict) else {},
                    id=str(block.get("id", "")),
                )
            )
    return LLMResponse(content="".join(texts), tool_calls=calls)
