from __future__ import annotations

from md2slack.pipeline.state import STAGE_NAMES
from md2slack.server.state import LOADED_NOTE, LOG_LIMIT, Session
from md2slack.storage.models import Task


def test_set_tasks_rerenders_report() -> None:
    session = Session()
    session.reset("01-02-2026", "demo")
    session.set_tasks([Task(intent="add logging")], ["Ship it"])

    snapshot = session.snapshot()
    assert "Daily Status Report 01-02-2026" in snapshot.report
    assert "- Add logging — **1h Done** ✅" in snapshot.report
    assert "<li>Ship it</li>" in snapshot.report_html

    session.set_tasks([Task(intent="other work")])
    snapshot = session.snapshot()
    assert "- Other work" in snapshot.report
    assert snapshot.next_actions == ["Ship it"]


def test_snapshot_and_context_are_copies() -> None:
    session = Session()
    session.set_tasks([Task(intent="a")])
    _, _, tasks, _ = session.context()
    tasks[0].intent = "mutated"
    session.snapshot().tasks[0].intent = "mutated too"
    assert session.snapshot().tasks[0].intent == "a"


def test_errors_mirror_into_logs() -> None:
    session = Session()
    session.error("llm down")
    snapshot = session.snapshot()
    assert snapshot.errors == ["llm down"]
    assert snapshot.logs == ["ERROR: llm down"]


def test_log_is_bounded() -> None:
    session = Session()
    for index in range(LOG_LIMIT + 25):
        session.log(f"line {index}")
    logs = session.snapshot().logs
    assert len(logs) == LOG_LIMIT
    assert logs[0] == "line 25"
    assert logs[-1] == f"line {LOG_LIMIT + 24}"


def test_stage_lifecycle() -> None:
    session = Session()
    session.stage_start(1)
    assert session.snapshot().stages[1].status == "running"
    session.stage_done(1, "3 analyzed")
    stage = session.snapshot().stages[1]
    assert (stage.status, stage.note) == ("done", "3 analyzed")
    assert stage.duration_ms is not None
    session.stage_failed(2, "boom")
    assert session.snapshot().stages[2].status == "failed"
    # out-of-range indices are ignored
    session.stage_start(len(STAGE_NAMES))


def test_reset_keeps_tasks_but_clears_progress() -> None:
    session = Session()
    session.set_tasks([Task(intent="manual", is_manual=True)])
    session.log("old")
    session.stage_done(0, "x")
    session.reset("01-03-2026", "demo", "/work/demo")

    snapshot = session.snapshot()
    assert snapshot.logs == []
    assert [stage.status for stage in snapshot.stages] == ["pending"] * len(STAGE_NAMES)
    assert (snapshot.date, snapshot.repo, snapshot.repo_path) == ("01-03-2026", "demo", "/work/demo")
    assert [task.intent for task in snapshot.tasks] == ["manual"]


def test_load_history_marks_stages() -> None:
    session = Session()
    tasks = [Task(intent="a", commits=["abc1234"])]
    session.load("demo", "/work/demo", "01-02-2026", tasks, "stored report")

    snapshot = session.snapshot()
    assert snapshot.report == "stored report"
    assert {stage.status for stage in snapshot.stages} == {"done"}
    assert {stage.note for stage in snapshot.stages} == {LOADED_NOTE}
    assert session.allowed_commits == frozenset({"abc1234"})

    session.load("demo", "/work/demo", "01-03-2026", [], "")
    snapshot = session.snapshot()
    assert snapshot.report == ""
    assert {stage.status for stage in snapshot.stages} == {"pending"}


def test_clear_drops_tasks_and_report() -> None:
    session = Session()
    session.set_tasks([Task(intent="a")])
    session.clear()
    snapshot = session.snapshot()
    assert snapshot.tasks == []
    assert snapshot.report == ""
    assert snapshot.report_html == ""
