"""Recover tool calls from model output.

Native tool calls are used as-is. When a model writes its calls as text
instead, three recovery passes run in order until one yields calls:

1. one call per line, e.g. ``create_task(intent="ship", estimated_hours=3)``
2. a JSON payload, e.g. ``[{"tool": "create_task", "parameters": {...}}]``
3. any ``name(...)`` occurrence anywhere in the text, spanning lines

Every recovered call goes through :func:`normalize_arguments`, so flat and
nested argument shapes end up with the same canonical parameters.
"""

from __future__ import annotations

import json
import re
from collections.abc import Iterable
from typing import Any

from md2slack.llm.base import LLMResponse, ToolCall

_CALL_START = re.compile(r"([A-Za-z_][A-Za-z0-9_]*)\s*\(")
_INT_LITERAL = re.compile(r"^[+-]?\d+$")
_FLOAT_LITERAL = re.compile(r"^[+-]?(\d+\.\d*|\.\d+|\d+)([eE][+-]?\d+)?$")
_LINE_PREFIXES = ("$ ", "> ", "$")
_NULLS = {"null", "nil", "none"}
_NESTED_KEYS = ("parameters", "arguments", "params", "args", "input")
_CALL_NAME_KEYS = ("tool", "name", "function", "tool_name")

LEGACY_ARGUMENTS = {
    "task_intent": "intent",
    "task_type": "type",
    "task_id": "index",
    "task_index": "index",
    "id": "index",
    "task_ids": "indices",
    "technical_why": "details",
}

# Argument names filled by bare positional values, in order.
POSITIONAL_ARGUMENTS = {
    "create_task": ("intent",),
    "edit_task": ("index",),
    "update_task": ("index",),
    "add_details": ("index", "details"),
    "add_time": ("index", "hours"),
    "add_commit_reference": ("index", "hash"),
    "remove_task": ("index",),
    "delete_task": ("index",),
    "merge_tasks": ("indices", "new_intent", "new_scope"),
    "split_task": ("index", "new_tasks"),
    "get_codebase_context": ("query", "path", "max_results"),
}


def calls_from_response(response: LLMResponse, allowed: Iterable[str]) -> list[ToolCall]:
    names = set(allowed)
    if response.tool_calls:
        return [normalize_call(call) for call in response.tool_calls]
    return parse_tool_calls(response.content, names)


def parse_tool_calls(text: str, allowed: Iterable[str]) -> list[ToolCall]:
    names = set(allowed)
    if not text or not text.strip():
        return []
    calls = _calls_from_lines(text, names)
    if calls:
        return calls
    calls = calls_from_json_text(text, names)
    if calls:
        return calls
    return _scan_calls(text, names)


def normalize_call(call: ToolCall) -> ToolCall:
    return ToolCall(
        name=call.name.strip(),
        arguments=normalize_arguments(call.name.strip(), call.arguments),
        id=call.id,
    )


def normalize_arguments(name: str, arguments: Any) -> dict[str, Any]:
    """Flatten nested argument wrappers and map legacy names onto canonical ones."""
    if isinstance(arguments, str):
        arguments = _decode_json_object(arguments) or {}
    if not isinstance(arguments, dict):
        return {}

    params = dict(arguments)
    for key in _NESTED_KEYS:
        nested = params.get(key)
        if isinstance(nested, str):
            nested = _decode_json_object(nested)
        if isinstance(nested, dict):
            params.pop(key)
            params = {**params, **nested}
    for key in _CALL_NAME_KEYS:
        if params.get(key) == name:
            params.pop(key)

    for legacy, canonical in LEGACY_ARGUMENTS.items():
        if legacy not in params:
            continue
        value = params.pop(legacy)
        params.setdefault(canonical, value)
    return {key: value for key, value in params.items() if value is not None}


def calls_from_json_text(text: str, allowed: set[str]) -> list[ToolCall]:
    payload = extract_json_payload(strip_code_fences(text.strip()))
    if not payload or payload[0] not in "[{":
        return []
    try:
        decoded = json.loads(payload)
    except ValueError:
        return []
    return calls_from_json(decoded, allowed)


def calls_from_json(decoded: Any, allowed: set[str]) -> list[ToolCall]:
    if isinstance(decoded, dict):
        items = decoded.get("tools") if isinstance(decoded.get("tools"), list) else [decoded]
    elif isinstance(decoded, list):
        items = decoded
    else:
        return []

    calls: list[ToolCall] = []
    for item in items:
        if not isinstance(item, dict):
            continue
        name = _call_name(item)
        if not name or (allowed and name not in allowed):
            continue
        function = item.get("function")
        if isinstance(function, dict):
            body = {key: value for key, value in function.items() if key != "name"}
        else:
            body = {key: value for key, value in item.items() if key not in _CALL_NAME_KEYS}
        calls.append(ToolCall(name=name, arguments=normalize_arguments(name, body)))
    return calls


def strip_code_fences(text: str) -> str:
    if text.startswith("```"):
        _, _, rest = text.partition("\n")
        text = rest
        end = text.rfind("```")
        if end >= 0:
            text = text[:end]
    return text.strip()


def extract_json_payload(text: str) -> str:
    """Return the first balanced ``[...]`` or ``{...}`` block, whichever starts first."""
    if not text:
        return text
    first_obj = text.find("{")
    first_arr = text.find("[")
    if first_arr >= 0 and (first_obj == -1 or first_arr < first_obj):
        start, opener, closer = first_arr, "[", "]"
    elif first_obj >= 0:
        start, opener, closer = first_obj, "{", "}"
    else:
        return text
    end = _matching_bracket(text, start, opener, closer)
    if end is None:
        return text
    return text[start : end + 1]


def find_matching_paren(text: str, start: int) -> int | None:
    """Index of the ``)`` closing the ``(`` at ``start``, honouring quotes and escapes."""
    depth = 0
    in_single = in_double = escaped = False
    for index in range(start, len(text)):
        char = text[index]
        if escaped:
            escaped = False
            continue
        if char == "\\" and (in_single or in_double):
            escaped = True
            continue
        if char == "'" and not in_double:
            in_single = not in_single
        elif char == '"' and not in_single:
            in_double = not in_double
        if in_single or in_double:
            continue
        if char == "(":
            depth += 1
        elif char == ")":
            depth -= 1
            if depth == 0:
                return index
    return None


def split_arguments(text: str) -> list[str]:
    """Split on commas that are outside quotes and brackets."""
    parts: list[str] = []
    buf: list[str] = []
    depth = 0
    in_single = in_double = escaped = False
    for char in text:
        if escaped:
            buf.append(char)
            escaped = False
            continue
        if char == "\\" and (in_single or in_double):
            buf.append(char)
            escaped = True
            continue
        if char == "'" and not in_double:
            in_single = not in_single
        elif char == '"' and not in_single:
            in_double = not in_double
        elif not in_single and not in_double:
            if char in "([{":
                depth += 1
            elif char in ")]}" and depth > 0:
                depth -= 1
            elif char == "," and depth == 0:
                parts.append("".join(buf))
                buf = []
                continue
        buf.append(char)
    if buf:
        parts.append("".join(buf))
    return parts


def parse_arguments(name: str, inner: str) -> dict[str, Any]:
    stripped = inner.strip()
    if stripped.startswith("{") and stripped.endswith("}"):
        decoded = _decode_json_object(stripped)
        if decoded is not None:
            return normalize_arguments(name, decoded)

    params: dict[str, Any] = {}
    positional: list[Any] = []
    for part in split_arguments(inner):
        part = part.strip()
        if not part:
            continue
        split = _split_key_value(part)
        if split is None:
            positional.append(parse_value(part))
            continue
        key, raw_value = split
        params[key] = parse_value(raw_value)

    for key, value in zip(POSITIONAL_ARGUMENTS.get(name, ()), positional):
        params.setdefault(key, value)
    return normalize_arguments(name, params)


def parse_value(raw: str) -> Any:
    value = raw.strip()
    if not value:
        return ""
    if len(value) >= 2 and value[0] == value[-1] and value[0] in "\"'":
        return _unescape(value[1:-1])
    lowered = value.lower()
    if lowered in _NULLS:
        return None
    if lowered == "true":
        return True
    if lowered == "false":
        return False
    if _INT_LITERAL.match(value):
        return int(value)
    if _FLOAT_LITERAL.match(value):
        return float(value)
    if value[0] in "[{":
        try:
            return json.loads(value)
        except ValueError:
            pass
        if value[0] == "[" and value[-1] == "]":
            return [parse_value(item) for item in split_arguments(value[1:-1]) if item.strip()]
    return value


def _calls_from_lines(text: str, allowed: set[str]) -> list[ToolCall]:
    calls: list[ToolCall] = []
    for line in text.splitlines():
        line = line.strip().strip("`").strip()
        if not line:
            continue
        for prefix in _LINE_PREFIXES:
            if line.startswith(prefix):
                line = line[len(prefix) :].lstrip()
                break
        calls.extend(_scan_calls(line, allowed))
    return calls


def _scan_calls(text: str, allowed: set[str]) -> list[ToolCall]:
    calls: list[ToolCall] = []
    position = 0
    while True:
        match = _CALL_START.search(text, position)
        if match is None:
            return calls
        name = match.group(1)
        open_index = match.end() - 1
        if name not in allowed:
            position = match.end()
            continue
        close_index = find_matching_paren(text, open_index)
        if close_index is None:
            position = match.end()
            continue
        calls.append(
            ToolCall(name=name, arguments=parse_arguments(name, text[open_index + 1 : close_index]))
        )
        position = close_index + 1


def _split_key_value(part: str) -> tuple[str, str] | None:
    in_single = in_double = False
    for index, char in enumerate(part):
        if char == "'" and not in_double:
            in_single = not in_single
        elif char == '"' and not in_single:
            in_double = not in_double
        elif char in "=:" and not in_single and not in_double:
            key = part[:index].strip().strip("\"'")
            if not key or not re.fullmatch(r"[A-Za-z_][A-Za-z0-9_]*", key):
                return None
            return key, part[index + 1 :]
        elif char in "[{(" and not in_single and not in_double:
            return None
    return None


def _unescape(text: str) -> str:
    out: list[str] = []
    chars = iter(text)
    for char in chars:
        if char != "\\":
            out.append(char)
            continue
        following = next(chars, "")
        out.append({"n": "\n", "t": "\t"}.get(following, following))
    return "".join(out)


def _call_name(item: dict[str, Any]) -> str:
    for key in _CALL_NAME_KEYS:
        value = item.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
        if isinstance(value, dict) and isinstance(value.get("name"), str):
            return value["name"].strip()
    return ""


def _decode_json_object(text: str) -> dict[str, Any] | None:
    try:
        decoded = json.loads(text)
    except ValueError:
        return None
    return decoded if isinstance(decoded, dict) else None


def _matching_bracket(text: str, start: int, opener: str, closer: str) -> int | None:
    depth = 0
    in_string = escaped = False
    for index in range(start, len(text)):
        char = text[index]
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue
        if char == '"':
            in_string = True
        elif char == opener:
            depth += 1
        elif char == closer:
            depth -= 1
            if depth == 0:
                return index
    return None
