"""Lenient casts for values that arrive from model output."""

from __future__ import annotations

from typing import Any


def cast_str(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value.strip()
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, list):
        return cast_str(value[0]) if value else ""
    if isinstance(value, dict):
        for item in value.values():
            text = cast_str(item)
            if text:
                return text
    return ""


def cast_int(value: Any) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value)
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            return int(text)
        except ValueError:
            pass
        try:
            return int(float(text))
        except ValueError:
            return None
    if isinstance(value, list):
        return cast_int(value[0]) if value else None
    if isinstance(value, dict):
        for item in value.values():
            number = cast_int(item)
            if number is not None:
                return number
    return None


def cast_int_list(value: Any) -> list[int]:
    if isinstance(value, list):
        items = value
    elif isinstance(value, dict):
        items = list(value.values())
    elif isinstance(value, str) and "," in value:
        items = value.split(",")
    else:
        items = [value]
    out: list[int] = []
    for item in items:
        number = cast_int(item)
        if number is not None:
            out.append(number)
    return out


def cast_str_list(value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        text = value.strip()
        return [text] if text else []
    items = list(value.values()) if isinstance(value, dict) else value
    if not isinstance(items, list):
        return []
    out: list[str] = []
    for item in items:
        text = cast_str(item)
        if text:
            out.append(text)
    return out


def unique(items: list[str]) -> list[str]:
    seen: set[str] = set()
    out: list[str] = []
    for item in items:
        if item and item not in seen:
            seen.add(item)
            out.append(item)
    return out
