"""Bounded tool-use loop around an LLM adapter."""

from __future__ import annotations

import http.client
import json
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, replace
from typing import TYPE_CHECKING, Any

from md2slack.errors import LLMError, LLMJSONError
from md2slack.llm.base import LLMAdapter, LLMOptions, LLMResponse, Message, ToolCall
from md2slack.llm.parser import calls_from_response, extract_json_payload, strip_code_fences

if TYPE_CHECKING:
    from md2slack.storage.models import Task
    from md2slack.tools.registry import TaskToolRegistry

logger = logging.getLogger(__name__)

DEFAULT_MAX_TURNS = 5
MAX_TURNS_REACHED = "Max turns reached"
DEADLINE_EXCEEDED = "Deadline exceeded"
FORCE_TOOLS_SUFFIX = "\n\nIMPORTANT: Respond ONLY with tool calls. Do not include any prose."
LLM_LOG_LIMIT = 4000


@dataclass
class AgentCallbacks:
    on_tool_start: Callable[[str, dict[str, Any]], None] | None = None
    on_tool_end: Callable[[str, str], None] | None = None
    on_tasks_update: Callable[[list[Task]], None] | None = None
    on_stream_chunk: Callable[[str], None] | None = None
    on_tool_log: Callable[[str], None] | None = None
    on_tool_status: Callable[[str], None] | None = None
    on_llm_log: Callable[[str], None] | None = None


@dataclass
class AgentResult:
    text: str
    tool_used: bool = False
    timed_out: bool = False


class Agent:
    """Drive one conversation: request, execute tool calls, feed results back, repeat."""

    def __init__(
        self,
        adapter: LLMAdapter,
        options: LLMOptions,
        *,
        callbacks: AgentCallbacks | None = None,
        max_turns: int = DEFAULT_MAX_TURNS,
    ) -> None:
        self.adapter = adapter
        self.options = options
        self.callbacks = callbacks or AgentCallbacks()
        self.max_turns = max_turns

    def stream_chat(
        self,
        history: list[Message],
        system_prompt: str,
        registry: TaskToolRegistry | None = None,
        *,
        deadline: float | None = None,
    ) -> AgentResult:
        messages = _with_system(history, system_prompt)
        options = self.options.with_deadline(deadline)
        if registry is not None:
            options = options.with_tools(registry.definitions())
        if self.callbacks.on_stream_chunk is not None:
            options = replace(options, stream=self.callbacks.on_stream_chunk)

        tool_used = False
        for turn in range(self.max_turns):
            if options.expired():
                logger.warning("agent event=deadline turn=%d", turn + 1)
                return AgentResult(text=DEADLINE_EXCEEDED, tool_used=tool_used, timed_out=True)

            response = self._generate(messages, options)
            calls = calls_from_response(response, registry.names) if registry is not None else []
            logger.info(
                "agent event=turn turn=%d tool_calls=%d content_len=%d",
                turn + 1,
                len(calls),
                len(response.content),
            )
            if not calls:
                return AgentResult(text=response.content, tool_used=tool_used)

            assert registry is not None
            tool_used = True
            calls = [
                call if call.id else replace(call, id=f"call_{turn}_{index}")
                for index, call in enumerate(calls)
            ]
            messages.append(Message(role="assistant", content=response.content, tool_calls=calls))
            for call in calls:
                self._notify(self.callbacks.on_tool_start, call.name, call.arguments)
                result = registry.execute(call)
                self._notify(self.callbacks.on_tool_end, call.name, result)
                self._notify(self.callbacks.on_tasks_update, registry.updated_tasks())
                messages.append(
                    Message(role="tool", content=result, tool_call_id=call.id, name=call.name)
                )

        return AgentResult(text=MAX_TURNS_REACHED, tool_used=tool_used)

    def tool_turn(
        self,
        history: list[Message],
        system_prompt: str,
        registry: TaskToolRegistry,
        *,
        deadline: float | None = None,
    ) -> tuple[list[ToolCall], str]:
        """Single request with native tool definitions; returns recovered calls and raw text."""
        messages = _with_system(history, system_prompt)
        options = self.options.with_deadline(deadline).with_tools(registry.definitions())
        options = replace(options, stream=None)
        self._log_llm("LLM INPUT", format_messages(messages))
        started = time.perf_counter()
        response = self._generate(messages, options)
        self._log_llm("LLM OUTPUT", response.content)
        calls = calls_from_response(response, registry.names)
        logger.debug(
            "agent event=tool_turn calls=%d duration_ms=%.2f",
            len(calls),
            (time.perf_counter() - started) * 1000.0,
        )
        return calls, response.content

    def force_tool_calls(
        self,
        history: list[Message],
        system_prompt: str,
        registry: TaskToolRegistry,
        *,
        deadline: float | None = None,
    ) -> tuple[list[ToolCall], str]:
        return self.tool_turn(
            history, system_prompt + FORCE_TOOLS_SUFFIX, registry, deadline=deadline
        )

    def call_json(
        self,
        history: list[Message],
        system_prompt: str,
        *,
        expect_list: bool = False,
        deadline: float | None = None,
    ) -> Any:
        """Ask without tools and decode the first JSON payload in the reply."""
        messages = _with_system(history, system_prompt)
        options = self.options.with_deadline(deadline).without_tools()
        self._log_llm("LLM INPUT", format_messages(messages))
        self._log_llm(
            "LLM STATUS",
            f"request queued (provider={options.provider} model={options.model})",
        )
        response = self._generate(messages, options)
        self._log_llm("LLM OUTPUT", response.content)
        return decode_json_reply(response.content, expect_list=expect_list)

    def _generate(self, messages: list[Message], options: LLMOptions) -> LLMResponse:
        try:
            return self.adapter.generate(messages, options)
        except (TimeoutError, OSError, http.client.HTTPException) as exc:
            raise LLMError(f"{options.provider} request failed: {exc}") from exc

    def emit_tool_updates(self, log: str, status: str) -> None:
        if self.callbacks.on_tool_log is not None:
            for line in log.splitlines():
                if line.strip():
                    self.callbacks.on_tool_log(line.strip())
        if self.callbacks.on_tool_status is not None and status.strip():
            self.callbacks.on_tool_status(status)

    def _log_llm(self, label: str, content: str) -> None:
        if self.callbacks.on_llm_log is None:
            return
        for line in f"{label}:\n{_truncate(content, LLM_LOG_LIMIT)}".splitlines():
            self.callbacks.on_llm_log(line)

    @staticmethod
    def _notify(callback: Callable[..., None] | None, *args: Any) -> None:
        if callback is not None:
            callback(*args)


def decode_json_reply(text: str, *, expect_list: bool = False) -> Any:
    clean = extract_json_payload(strip_code_fences(text.strip())).strip()
    if expect_list and clean.replace(" ", "") == "{}":
        return []
    try:
        decoded = json.loads(clean)
    except ValueError as exc:
        decoded = _decode_outer_object(clean)
        if decoded is None:
            raise LLMJSONError(f"unmarshal error: {exc} (response: {_truncate(text, 500)})") from exc

    if not expect_list:
        return decoded
    if isinstance(decoded, list):
        return decoded
    if isinstance(decoded, dict):
        for value in decoded.values():
            if isinstance(value, list):
                return value
        return [decoded]
    raise LLMJSONError(f"unmarshal error: expected a list (response: {_truncate(text, 500)})")


def format_messages(messages: list[Message]) -> str:
    return "".join(
        f"[{index}] {message.role.upper()}:\n{message.content}\n"
        for index, message in enumerate(messages)
    )


def _decode_outer_object(text: str) -> Any | None:
    start = text.find("{")
    end = text.rfind("}")
    if start < 0 or end <= start:
        return None
    try:
        return json.loads(text[start : end + 1])
    except ValueError:
        return None


def _with_system(history: list[Message], system_prompt: str) -> list[Message]:
    messages = [Message(role="system", content=system_prompt)] if system_prompt else []
    messages.extend(history)
    return messages


def _truncate(text: str, limit: int) -> str:
    if len(text) <= limit:
        return text
    return text[:limit] + "...(truncated)"
