from __future__ import annotations

import json
from typing import Any
from urllib import error

import pytest

from md2slack import slack
from md2slack.config.ini import SlackConfig
from md2slack.errors import SlackError
from md2slack.renderer import render_report
from md2slack.slack import inline_elements, markdown_to_blocks, send_markdown
from md2slack.storage.models import Task

CONFIG = SlackConfig(bot_token="xoxb-test", channel_id="C42")


def test_report_converts_to_rich_text() -> None:
    report = render_report("01-02-2026", [Task(intent="add logging", commits=["abc1234"])], ["Ship it"])
    blocks = markdown_to_blocks(report)

    assert blocks[0] == {
        "type": "rich_text_preformatted",
        "elements": [{"type": "text", "text": "Daily Status Report 01-02-2026\n"}],
    }
    assert blocks[1] == {
        "type": "rich_text_section",
        "elements": [
            {"type": "text", "text": "Tasks", "style": {"bold": True}},
            {"type": "text", "text": "\n"},
        ],
    }
    task_list = blocks[2]
    assert (task_list["type"], task_list["style"], task_list["indent"]) == ("rich_text_list", "bullet", 0)
    assert task_list["elements"][0]["elements"] == [
        {"type": "text", "text": "Add logging — "},
        {"type": "text", "text": "1h Done", "style": {"bold": True}},
        {"type": "text", "text": " ✅"},
    ]
    commits = blocks[3]
    assert commits["indent"] == 1
    assert commits["elements"][0]["elements"][1] == {
        "type": "text",
        "text": "abc1234",
        "style": {"code": True},
    }
    blockers = blocks[4]["elements"]
    assert [item["text"] for item in blockers] == ["Any Blockers?", "\n", "No", "\n"]
    assert blocks[-1]["elements"][0]["elements"] == [{"type": "text", "text": "Ship it"}]


def test_headings_and_ordered_lists() -> None:
    blocks = markdown_to_blocks("## Summary\n1. first\n2. second\n- other")
    assert blocks[0]["elements"][0] == {"type": "text", "text": "Summary", "style": {"bold": True}}
    assert blocks[1]["style"] == "ordered"
    assert len(blocks[1]["elements"]) == 2
    assert blocks[2]["style"] == "bullet"


def test_unterminated_fence_still_emitted() -> None:
    blocks = markdown_to_blocks("```\nraw text")
    assert blocks == [{"type": "rich_text_preformatted", "elements": [{"type": "text", "text": "raw text\n"}]}]


def test_inline_elements() -> None:
    elements = inline_elements("see [docs](https://example.com) and *now* :tada:")
    assert elements == [
        {"type": "text", "text": "see "},
        {"type": "link", "url": "https://example.com", "text": "docs"},
        {"type": "text", "text": " and "},
        {"type": "text", "text": "now", "style": {"italic": True}},
        {"type": "text", "text": " "},
        {"type": "emoji", "name": "tada"},
    ]


@pytest.mark.parametrize(
    "config",
    [
        SlackConfig(),
        SlackConfig(bot_token="xoxb-test"),
        SlackConfig(bot_token=slack.PLACEHOLDER_TOKEN, channel_id="C42"),
        SlackConfig(bot_token="xoxb-test", channel_id=slack.PLACEHOLDER_CHANNEL),
    ],
)
def test_send_requires_real_credentials(config: SlackConfig) -> None:
    with pytest.raises(SlackError, match="please configure"):
        send_markdown(config, "hello")


class FakeResponse:
    def __init__(self, payload: dict[str, Any]) -> None:
        self._body = json.dumps(payload).encode("utf-8")

    def read(self) -> bytes:
        return self._body

    def __enter__(self) -> FakeResponse:
        return self

    def __exit__(self, *exc: object) -> None:
        return None


def test_send_posts_rich_text_block(monkeypatch: pytest.MonkeyPatch) -> None:
    captured: list[Any] = []

    def fake_urlopen(req, timeout):
        captured.append((req, timeout))
        return FakeResponse({"ok": True})

    monkeypatch.setattr(slack.request, "urlopen", fake_urlopen)
    send_markdown(CONFIG, "**Tasks**\n- one", timeout_s=5)

    req, timeout = captured[0]
    assert timeout == 5
    assert req.full_url == slack.POST_MESSAGE_URL
    assert req.get_header("Authorization") == "Bearer xoxb-test"
    body = json.loads(req.data.decode("utf-8"))
    assert body["channel"] == "C42"
    assert body["blocks"][0]["type"] == "rich_text"
    assert body["blocks"][0]["elements"] == markdown_to_blocks("**Tasks**\n- one")


def test_send_surfaces_slack_error(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(
        slack.request, "urlopen", lambda req, timeout: FakeResponse({"ok": False, "error": "channel_not_found"})
    )
    with pytest.raises(SlackError, match="channel_not_found"):
        send_markdown(CONFIG, "hello")


def test_send_wraps_network_failures(monkeypatch: pytest.MonkeyPatch) -> None:
    def unreachable(req, timeout):
        raise error.URLError("connection refused")

    monkeypatch.setattr(slack.request, "urlopen", unreachable)
    with pytest.raises(SlackError, match="slack request failed"):
        send_markdown(CONFIG, "hello")
