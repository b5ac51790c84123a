from __future__ import annotations

import json

from conftest import FakeAdapter

from md2slack.errors import LLMError
from md2slack.facts.models import Commit, CommitChange, CommitSemantic, CommitSummary, Signal
from md2slack.llm.agent import Agent
from md2slack.llm.base import LLMOptions, LLMResponse, Message, ToolCall
from md2slack.pipeline import operations
from md2slack.storage.memory import InMemoryTaskStore
from md2slack.storage.models import Task


def _tasks() -> list[Task]:
    return [
        Task(id="a", intent="first", commits=["abc1234"]),
        Task(id="b", intent="second"),
        Task(id="c", intent="third"),
    ]


def test_merge_action_result_replaces_selected_in_place() -> None:
    out = [Task(intent="FIRST"), Task(intent="THIRD")]
    merged = operations.merge_action_result(_tasks(), "improve_text", [2, 0], out)
    assert [task.intent for task in merged] == ["FIRST", "second", "THIRD"]
    assert [task.id for task in merged] == ["a", "b", "c"]


def test_merge_action_result_full_list_wins() -> None:
    out = [Task(intent="x"), Task(intent="y"), Task(intent="z")]
    assert operations.merge_action_result(_tasks(), "make_shorter", [1], out) == out


def test_merge_action_result_split_and_merge() -> None:
    split = operations.merge_action_result(
        _tasks(), "split_task", [1], [Task(intent="2a"), Task(intent="2b")]
    )
    assert [task.intent for task in split] == ["first", "2a", "2b", "third"]

    merged = operations.merge_action_result(_tasks(), "merge_tasks", [0, 2], [Task(intent="1+3")])
    assert [task.intent for task in merged] == ["1+3", "second"]
    assert merged[0].id == "a"


def test_merge_action_result_unexpected_shape_keeps_input() -> None:
    original = _tasks()
    assert operations.merge_action_result(original, "split_task", [0, 1], [Task(intent="x")]) == original
    assert operations.merge_action_result(original, "make_longer", [9], [Task(intent="x")]) == original


def test_normalize_selected_drops_out_of_range_and_duplicates() -> None:
    assert operations.normalize_selected([3, -1, 1, 1, 0], 3) == [0, 1]


def test_prune_keeps_historical_tasks_without_intent() -> None:
    tasks = [Task(intent=""), Task(intent="  "), Task(intent="", is_historical=True), Task(intent="ok")]
    pruned = operations.prune_tasks(tasks)
    assert len(pruned) == 2
    assert pruned[0].is_historical
    assert pruned[1].intent == "ok"


def test_fallback_tasks_from_summaries() -> None:
    tasks = operations.fallback_tasks_from_summaries(
        [
            CommitSummary(commit="abc1234", summary="add logging", area="app", impact="new file"),
            CommitSummary(commit="def5678", summary=""),
        ]
    )
    assert len(tasks) == 1
    assert tasks[0].commits == ["abc1234"]
    assert tasks[0].scope == "app"
    assert tasks[0].details == "new file"


def test_no_commits_task_shape() -> None:
    task = operations.no_commits_task()
    assert task.intent == operations.NO_COMMITS_INTENT
    assert task.type == "chore"
    assert task.is_manual is True


def test_extract_commit_intent_pins_hash() -> None:
    adapter = FakeAdapter(['{"commit": "abc", "intent": "", "change_type": "feature", "confidence": "0.8"}'])
    semantic = CommitSemantic(commit="abc1234", signals=[Signal(file="a.py", types=["new_file"])])
    change = operations.extract_commit_intent(
        Agent(adapter, LLMOptions()), Commit(hash="abc1234", message="add logging"), semantic
    )
    assert change.commit == "abc1234"
    assert change.intent == "add logging"
    assert change.confidence == 0.8
    assert "['new_file']" in adapter.requests[0][-1].content


def test_incorporate_extra_context_marks_tasks_manual(agent: Agent, adapter: FakeAdapter) -> None:
    adapter.queue('create_task(intent="sprint planning", type="meeting", estimated_hours=1)', "[]")
    tasks = operations.incorporate_extra_context(agent, "sprint planning for an hour")
    assert [task.intent for task in tasks] == ["sprint planning"]
    assert tasks[0].is_manual is True
    assert tasks[0].type == "meeting"
    assert operations.incorporate_extra_context(agent, "   ") == []


def test_incorporate_commit_nudges_until_commit_is_linked(agent: Agent, adapter: FakeAdapter) -> None:
    adapter.queue(
        'create_task(intent="add logging", details="- wired logger")',
        "[]",
        'add_commit_reference(index=0, hash="abc1234")',
        "[]",
    )
    change = CommitChange(commit="abc1234", intent="add logging")

    tasks = operations.incorporate_commit(agent, change, [], [], "", ["abc1234"])

    assert tasks[0].commits == ["abc1234"]
    assert len(adapter.requests) == 4
    nudge = adapter.requests[2][-1].content
    assert "CRITICAL: Commit abc1234 is NOT linked to any task" in nudge


def test_incorporate_commit_forces_tools_after_prose(agent: Agent, adapter: FakeAdapter) -> None:
    adapter.queue(
        "I think we should create a task for this.",
        LLMResponse(
            tool_calls=[
                ToolCall(name="create_task", arguments={"intent": "add logging", "details": "- x"}),
                ToolCall(name="add_commit_reference", arguments={"index": 0, "hash": "abc1234"}),
            ]
        ),
        "[]",
    )
    tasks = operations.incorporate_commit(
        agent, CommitChange(commit="abc1234"), [], [], "", ["abc1234"]
    )
    assert [task.commits for task in tasks] == [["abc1234"]]
    assert adapter.requests[1][0].content.endswith("Respond ONLY with tool calls. Do not include any prose.")


def test_suggest_next_actions_filters_blanks(agent: Agent, adapter: FakeAdapter) -> None:
    adapter.queue('["Ship log rotation", "", "Write docs"]')
    assert operations.suggest_next_actions(agent, [Task(intent="x")]) == ["Ship log rotation", "Write docs"]


def test_refine_keeps_input_on_bad_reply(agent: Agent, adapter: FakeAdapter) -> None:
    adapter.queue("not json at all", "[]")
    original = _tasks()
    assert operations.refine_tasks_with_prompt(agent, original, "tidy up") == original
    assert operations.refine_tasks_with_prompt(agent, original, "") == original


def test_refine_drops_unknown_commits(agent: Agent, adapter: FakeAdapter) -> None:
    adapter.queue(json.dumps([{"intent": "first, reworded", "commits": ["abc1234", "fffffff"]}]))
    refined = operations.refine_tasks_with_prompt(agent, _tasks(), "merge all")
    assert [task.intent for task in refined] == ["first, reworded"]
    assert refined[0].commits == ["abc1234"]


def test_edit_with_action_round(agent: Agent, adapter: FakeAdapter) -> None:
    adapter.queue(json.dumps([{"intent": "second, shorter"}]))
    edited = operations.edit_tasks_with_action(agent, _tasks(), "make_shorter", [1])
    assert [task.intent for task in edited] == ["first", "second, shorter", "third"]
    assert edited[1].id == "b"
    assert "Selected Indices: [1]" in adapter.requests[0][-1].content
    assert "Action: make_shorter" in adapter.requests[0][-1].content


def test_chat_reports_executed_actions(memory_store: InMemoryTaskStore) -> None:
    adapter = FakeAdapter(
        [
            LLMResponse(tool_calls=[ToolCall(name="edit_task", arguments={"index": 0, "status": "inprogress"})]),
            "Marked it in progress.",
        ]
    )
    tasks, text = operations.chat_with_requests(
        Agent(adapter, LLMOptions()),
        [Message(role="user", content="first one is still in progress")],
        _tasks(),
        ["abc1234"],
        store=memory_store,
        repo="demo",
        date="01-02-2026",
    )
    assert tasks[0].status == "inprogress"
    assert text == "Marked it in progress.\n\n(Action: updated task 0)"
    assert memory_store.load_tasks("demo", "01-02-2026")[0].status == "inprogress"


def test_chat_without_tools_and_on_llm_error() -> None:
    adapter = FakeAdapter(["Nothing to change.", LLMError("connection refused")])
    agent = Agent(adapter, LLMOptions())
    history = [Message(role="user", content="hello")]

    tasks, text = operations.chat_with_requests(agent, history, _tasks(), [])
    assert text == "Nothing to change."
    assert tasks == _tasks()

    tasks, text = operations.chat_with_requests(agent, history, _tasks(), [])
    assert text == operations.CHAT_LLM_ERROR
    assert tasks == _tasks()
    assert agent.callbacks.on_tool_end is None


def test_task_chat_prompt_embeds_task_json() -> None:
    adapter = FakeAdapter(["ok"])
    operations.chat_with_requests(Agent(adapter, LLMOptions()), [Message(role="user", content="hi")], _tasks(), [])
    system = adapter.requests[0][0].content
    assert "{{TASKS_JSON}}" not in system
    assert '"intent": "first"' in system
