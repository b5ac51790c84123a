"""Post a rendered report to Slack as a single ``rich_text`` block."""

from __future__ import annotations

import json
import logging
import re
from typing import Any
from urllib import error, request

from md2slack.config.ini import SlackConfig
from md2slack.errors import SlackError

logger = logging.getLogger(__name__)

POST_MESSAGE_URL = "https://slack.com/api/chat.postMessage"
PLACEHOLDER_TOKEN = "YOUR_BOT_TOKEN_HERE"
PLACEHOLDER_CHANNEL = "YOUR_CHANNEL_ID_HERE"

_BULLET = re.compile(r"^(\s*)(?:[-*+]|(\d+)[.)])\s+(.*)$")
_HEADING = re.compile(r"^#{1,6}\s+(.*)$")
_INLINE = re.compile(
    r"\*\*(?P<bold>.+?)\*\*"
    r"|`(?P<code>[^`]+)`"
    r"|\[(?P<label>[^\]]+)\]\((?P<url>[^)\s]+)\)"
    r"|(?<![\w*])\*(?P<italic>[^*\s][^*]*?)\*(?![\w*])"
    r"|:(?P<emoji>[a-z0-9_+-]+):"
)


def send_markdown(
    config: SlackConfig, markdown: str, *, timeout_s: float = 30.0, url: str = POST_MESSAGE_URL
) -> None:
    if not config.bot_token or not config.channel_id:
        raise SlackError("please configure bot_token and channel_id in config.ini")
    if config.bot_token == PLACEHOLDER_TOKEN or config.channel_id == PLACEHOLDER_CHANNEL:
        raise SlackError("please configure bot_token and channel_id in config.ini")

    payload = {
        "channel": config.channel_id,
        "blocks": [{"type": "rich_text", "elements": markdown_to_blocks(markdown)}],
    }
    body = json.dumps(payload).encode("utf-8")
    req = request.Request(url=url, data=body, method="POST")
    req.add_header("Content-Type", "application/json; charset=utf-8")
    req.add_header("Authorization", f"Bearer {config.bot_token}")

    try:
        with request.urlopen(req, timeout=timeout_s) as response:  # noqa: S310
            raw = response.read().decode("utf-8")
    except error.HTTPError as exc:
        raise SlackError(f"slack http error: {exc.code}") from exc
    except (error.URLError, TimeoutError) as exc:
        raise SlackError(f"slack request failed: {exc}") from exc

    try:
        decoded = json.loads(raw)
    except ValueError as exc:
        raise SlackError(f"slack returned invalid JSON: {raw[:200]}") from exc
    if not decoded.get("ok"):
        reason = decoded.get("error", "unknown_error")
        logger.error("slack event=rejected channel=%s error=%s", config.channel_id, reason)
        raise SlackError(f"slack error: {reason}")
    logger.info("slack event=sent channel=%s chars=%d", config.channel_id, len(markdown))


def markdown_to_blocks(markdown: str) -> list[dict[str, Any]]:
    """Convert report markdown to ``rich_text`` elements.

    Supports headings (rendered bold), paragraphs, bullet and ordered lists
    with two-space nesting, fenced code, and inline bold, italic, code,
    links and ``:emoji:`` shortcodes.
    """
    blocks: list[dict[str, Any]] = []
    fence: list[str] | None = None
    section: dict[str, Any] | None = None

    for line in markdown.splitlines():
        if line.strip().startswith("```"):
            if fence is None:
                fence = []
            else:
                blocks.append(_preformatted(fence))
                fence = None
            section = None
            continue
        if fence is not None:
            fence.append(line)
            continue

        if not line.strip():
            section = None
            continue

        bullet = _BULLET.match(line)
        if bullet:
            indent = len(bullet.group(1).expandtabs(2)) // 2
            style = "ordered" if bullet.group(2) else "bullet"
            target = _list_block(blocks, style, indent)
            target["elements"].append(
                {"type": "rich_text_section", "elements": inline_elements(bullet.group(3))}
            )
            section = None
            continue

        heading = _HEADING.match(line.strip())
        if heading:
            blocks.append(
                {
                    "type": "rich_text_section",
                    "elements": inline_elements(heading.group(1), bold=True)
                    + [{"type": "text", "text": "\n"}],
                }
            )
            section = None
            continue

        if section is None:
            section = {"type": "rich_text_section", "elements": []}
            blocks.append(section)
        section["elements"].extend(inline_elements(line.strip()))
        section["elements"].append({"type": "text", "text": "\n"})

    if fence is not None:
        blocks.append(_preformatted(fence))
    return blocks


def inline_elements(text: str, *, bold: bool = False) -> list[dict[str, Any]]:
    elements: list[dict[str, Any]] = []
    position = 0
    for match in _INLINE.finditer(text):
        if match.start() > position:
            elements.append(_text(text[position : match.start()], bold=bold))
        if match.group("bold") is not None:
            elements.append(_text(match.group("bold"), bold=True))
        elif match.group("code") is not None:
            elements.append(_text(match.group("code"), bold=bold, code=True))
        elif match.group("label") is not None:
            link = {"type": "link", "url": match.group("url"), "text": match.group("label")}
            if bold:
                link["style"] = {"bold": True}
            elements.append(link)
        elif match.group("italic") is not None:
            elements.append(_text(match.group("italic"), bold=bold, italic=True))
        else:
            elements.append({"type": "emoji", "name": match.group("emoji")})
        position = match.end()
    if position < len(text):
        elements.append(_text(text[position:], bold=bold))
    return elements


def _text(text: str, *, bold: bool = False, italic: bool = False, code: bool = False) -> dict[str, Any]:
    element: dict[str, Any] = {"type": "text", "text": text}
    style = {key: True for key, on in (("bold", bold), ("italic", italic), ("code", code)) if on}
    if style:
        element["style"] = style
    return element


def _list_block(blocks: list[dict[str, Any]], style: str, indent: int) -> dict[str, Any]:
    if blocks:
        last = blocks[-1]
        if last["type"] == "rich_text_list" and last["style"] == style and last["indent"] == indent:
            return last
    block = {"type": "rich_text_list", "style": style, "indent": indent, "elements": []}
    blocks.append(block)
    return block


def _preformatted(lines: list[str]) -> dict[str, Any]:
    return {
        "type": "rich_text_preformatted",
        "elements": [{"type": "text", "text": "\n".join(lines) + "\n"}],
    }
