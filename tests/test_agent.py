from __future__ import annotations

import time

import pytest
from conftest import FakeAdapter

from md2slack.errors import LLMJSONError
from md2slack.llm.agent import (
    DEADLINE_EXCEEDED,
    FORCE_TOOLS_SUFFIX,
    MAX_TURNS_REACHED,
    Agent,
    AgentCallbacks,
    decode_json_reply,
)
from md2slack.llm.base import LLMOptions, LLMResponse, Message, ToolCall
from md2slack.storage.models import Task
from md2slack.tools.registry import TaskToolRegistry


def test_stream_chat_runs_tools_then_returns_text() -> None:
    adapter = FakeAdapter(
        [
            LLMResponse(tool_calls=[ToolCall(name="create_task", arguments={"intent": "ship"})]),
            "Created the task.",
        ]
    )
    seen: list[tuple[str, str]] = []
    agent = Agent(adapter, LLMOptions(), callbacks=AgentCallbacks(on_tool_end=lambda n, r: seen.append((n, r))))
    registry = TaskToolRegistry([])

    result = agent.stream_chat([Message(role="user", content="add a task")], "system", registry)

    assert result.text == "Created the task."
    assert result.tool_used is True
    assert seen == [("create_task", "Success: created task with index 0")]
    second_request = adapter.requests[1]
    assert second_request[0].role == "system"
    assert second_request[-1].role == "tool"
    assert second_request[-1].tool_call_id == "call_0_0"


def test_stream_chat_stops_at_max_turns() -> None:
    adapter = FakeAdapter(
        [LLMResponse(tool_calls=[ToolCall(name="add_time", arguments={"index": 0, "hours": 1})])] * 3
    )
    agent = Agent(adapter, LLMOptions(), max_turns=3)
    registry = TaskToolRegistry([Task(intent="x")])

    result = agent.stream_chat([Message(role="user", content="go")], "", registry)

    assert result.text == MAX_TURNS_REACHED
    assert registry.tasks[0].estimated_hours == 3


def test_stream_chat_honours_deadline() -> None:
    adapter = FakeAdapter()
    agent = Agent(adapter, LLMOptions())
    result = agent.stream_chat([], "", None, deadline=time.monotonic() - 1)
    assert result.text == DEADLINE_EXCEEDED
    assert result.timed_out is True
    assert adapter.requests == []


def test_stream_chat_without_registry_returns_prose() -> None:
    adapter = FakeAdapter(["create_task(intent='not parsed without tools')"])
    result = Agent(adapter, LLMOptions()).stream_chat([Message(role="user", content="hi")], "sys")
    assert result.tool_used is False
    assert result.text.startswith("create_task")


def test_force_tool_calls_appends_instruction() -> None:
    adapter = FakeAdapter(['create_task(intent="ship")'])
    agent = Agent(adapter, LLMOptions())
    calls, _ = agent.force_tool_calls([Message(role="user", content="x")], "base", TaskToolRegistry([]))
    assert calls[0].arguments == {"intent": "ship"}
    assert adapter.requests[0][0].content == "base" + FORCE_TOOLS_SUFFIX


def test_call_json_decodes_fenced_reply() -> None:
    adapter = FakeAdapter(['```json\n{"intent": "add logging"}\n```'])
    decoded = Agent(adapter, LLMOptions()).call_json([Message(role="user", content="x")], "sys")
    assert decoded == {"intent": "add logging"}


def test_llm_log_callback_receives_input_and_output() -> None:
    lines: list[str] = []
    adapter = FakeAdapter(['["a"]'])
    agent = Agent(adapter, LLMOptions(), callbacks=AgentCallbacks(on_llm_log=lines.append))
    agent.call_json([Message(role="user", content="question")], "sys", expect_list=True)
    assert "LLM INPUT:" in lines
    assert "LLM OUTPUT:" in lines
    assert any("question" in line for line in lines)


def test_emit_tool_updates_splits_lines() -> None:
    logs: list[str] = []
    statuses: list[str] = []
    agent = Agent(FakeAdapter(), LLMOptions(), callbacks=AgentCallbacks(on_tool_log=logs.append, on_tool_status=statuses.append))
    agent.emit_tool_updates("Success: a\n\n  Error: b  ", "Created task #0")
    assert logs == ["Success: a", "Error: b"]
    assert statuses == ["Created task #0"]


@pytest.mark.parametrize(
    ("reply", "expected"),
    [
        ('[{"intent": "a"}]', [{"intent": "a"}]),
        ("{}", []),
        ('{"tasks": [{"intent": "a"}]}', [{"intent": "a"}]),
        ('{"intent": "a"}', [{"intent": "a"}]),
        ('Here you go: ["x", "y"] hope it helps', ["x", "y"]),
    ],
)
def test_decode_json_reply_list_shapes(reply: str, expected: list) -> None:
    assert decode_json_reply(reply, expect_list=True) == expected


def test_decode_json_reply_rejects_garbage() -> None:
    with pytest.raises(LLMJSONError):
        decode_json_reply("no json here at all")
