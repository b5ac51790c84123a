from __future__ import annotations

from md2slack.renderer import DEFAULT_NEXT_ACTION, markdown_to_html, render_report, render_task, status_label
from md2slack.storage.models import Task


def test_single_task_report_layout() -> None:
    report = render_report(
        "01-02-2026",
        [Task(intent="add logging", commits=["abc1234"], details="- wired logger\nrotation")],
        ["Ship log rotation"],
    )
    assert report == (
        "```\n"
        "Daily Status Report 01-02-2026\n"
        "```\n"
        "\n"
        "**Tasks**\n"
        "- Add logging — **1h Done** ✅\n"
        "  - wired logger\n"
        "  - rotation\n"
        "  - commits: `abc1234`\n"
        "\n"
        "**Any Blockers?**\n"
        "No\n"
        "\n"
        "**What do you plan to do next?**\n"
        "- Ship log rotation\n"
    )


def test_manual_tasks_come_first_with_separator() -> None:
    report = render_report(
        "01-02-2026",
        [Task(intent="inferred"), Task(intent="standup", is_manual=True, type="meeting")],
        [],
    )
    lines = report.splitlines()
    start = lines.index("**Tasks**")
    assert lines[start + 1].startswith("- Standup")
    assert lines[start + 2] == ""
    assert lines[start + 3].startswith("- Inferred")
    assert lines[-1] == f"- {DEFAULT_NEXT_ACTION}"


def test_no_separator_with_only_one_kind() -> None:
    report = render_report("01-02-2026", [Task(intent="a"), Task(intent="b")], ["next"])
    lines = report.splitlines()
    start = lines.index("**Tasks**")
    assert lines[start + 1 : start + 3] == ["- A — **1h Done** ✅", "- B — **1h Done** ✅"]


def test_render_is_deterministic() -> None:
    tasks = [Task(intent="a", estimated_hours=3, status="inprogress"), Task(intent="b", is_manual=True)]
    assert render_report("d", tasks, ["x"]) == render_report("d", tasks, ["x"])


def test_status_labels() -> None:
    assert status_label("inprogress") == ("In progress", "🕒")
    assert status_label("ON_HOLD") == ("On hold", "⏸")
    assert status_label("blocked_on_review") == ("Blocked on review", "")
    assert render_task(Task(intent="x", status="blocked", estimated_hours=4)) == "- X — **4h Blocked**"


def test_markdown_to_html_escapes_and_nests() -> None:
    rendered = markdown_to_html("**Tasks**\n- a <b>\n  - `code`\n\n```\nraw <x>\n```")
    assert "<p><strong>Tasks</strong></p>" in rendered
    assert "<li>a &lt;b&gt;</li>" in rendered
    assert "<ul>\n<li><code>code</code></li>\n</ul>" in rendered
    assert "<pre><code>raw &lt;x&gt;</code></pre>" in rendered
    assert markdown_to_html("   ") == "<em>(empty)</em>"
