"""Markdown report layout plus a small markdown to HTML converter for the web UI."""

from __future__ import annotations

import html
import re

from md2slack.storage.models import Task

DEFAULT_NEXT_ACTION = "Continue ongoing deliveries"

_STATUS_LABELS = {
    "": ("Done", "✅"),
    "done": ("Done", "✅"),
    "inprogress": ("In progress", "🕒"),
    "in_progress": ("In progress", "🕒"),
    "onhold": ("On hold", "⏸"),
    "on_hold": ("On hold", "⏸"),
}

_BOLD = re.compile(r"\*\*(.+?)\*\*")
_CODE = re.compile(r"`([^`]+)`")
_ITALIC = re.compile(r"(?<![\w*])\*(?!\s)(.+?)(?<!\s)\*(?![\w*])")


def render_report(date: str, tasks: list[Task], next_actions: list[str]) -> str:
    manual = [task for task in tasks if task.is_manual]
    inferred = [task for task in tasks if not task.is_manual]

    lines = ["```", f"Daily Status Report {date}", "```", "", "**Tasks**"]
    lines.extend(render_task(task) for task in manual)
    if manual and inferred:
        lines.append("")
    lines.extend(render_task(task) for task in inferred)

    lines.extend(["", "**Any Blockers?**", "No", "", "**What do you plan to do next?**"])
    actions = [action.strip() for action in next_actions if action.strip()] or [DEFAULT_NEXT_ACTION]
    lines.extend(f"- {action}" for action in actions)
    return "\n".join(lines) + "\n"


def render_task(task: Task) -> str:
    hours = task.estimated_hours if task.estimated_hours > 0 else 1
    label, icon = status_label(task.status)
    intent = task.intent.strip()
    intent = intent[:1].upper() + intent[1:]
    head = f"- {intent} — **{hours}h {label}**"
    parts = [f"{head} {icon}" if icon else head]
    for line in task.details.splitlines():
        text = line.strip()
        if text.startswith(("- ", "* ")):
            text = text[2:].strip()
        if text:
            parts.append(f"  - {text}")
    if task.commits:
        joined = "`, `".join(task.commits)
        parts.append(f"  - commits: `{joined}`")
    return "\n".join(parts)


def status_label(status: str) -> tuple[str, str]:
    key = status.strip().lower()
    if key in _STATUS_LABELS:
        return _STATUS_LABELS[key]
    return key.replace("_", " ").capitalize(), ""


def markdown_to_html(markdown: str) -> str:
    """Convert the report subset of markdown (fences, headings, bullets, emphasis) to HTML."""
    if not markdown.strip():
        return "<em>(empty)</em>"

    out: list[str] = []
    list_depth = 0
    in_fence = False
    fence: list[str] = []

    def close_lists(depth: int = 0) -> None:
        nonlocal list_depth
        while list_depth > depth:
            out.append("</ul>")
            list_depth -= 1

    for raw in markdown.splitlines():
        if raw.strip().startswith("```"):
            if in_fence:
                out.append(f"<pre><code>{html.escape(chr(10).join(fence))}</code></pre>")
                fence = []
            else:
                close_lists()
            in_fence = not in_fence
            continue
        if in_fence:
            fence.append(raw)
            continue

        stripped = raw.strip()
        bullet = re.match(r"^(\s*)[-*]\s+(.*)$", raw)
        if bullet:
            depth = len(bullet.group(1).expandtabs(2)) // 2 + 1
            while list_depth < depth:
                out.append("<ul>")
                list_depth += 1
            close_lists(depth)
            out.append(f"<li>{_inline(bullet.group(2))}</li>")
            continue

        close_lists()
        if not stripped:
            continue
        heading = re.match(r"^(#{1,6})\s+(.*)$", stripped)
        if heading:
            level = len(heading.group(1))
            out.append(f"<h{level}>{_inline(heading.group(2))}</h{level}>")
        else:
            out.append(f"<p>{_inline(stripped)}</p>")

    if in_fence:
        out.append(f"<pre><code>{html.escape(chr(10).join(fence))}</code></pre>")
    close_lists()
    return "\n".join(out)


def _inline(text: str) -> str:
    escaped = html.escape(text, quote=False)
    escaped = _CODE.sub(r"<code>\1</code>", escaped)
    escaped = _BOLD.sub(r"<strong>\1</strong>", escaped)
    return _ITALIC.sub(r"<em>\1</em>", escaped)
