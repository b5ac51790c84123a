"""Grep-style code search backing the ``get_codebase_context`` tool."""

from __future__ import annotations

import logging
import os
import re
import shutil
import subprocess
from pathlib import Path

from md2slack.errors import CodebaseSearchError

logger = logging.getLogger(__name__)

SKIP_DIRS = {".git", "node_modules", ".venv", "venv", "__pycache__", "dist", "build", ".next"}
MAX_TOTAL_LINES = 200
MAX_FILE_BYTES = 1_000_000


def search_codebase(query: str, path: str = "", max_results: int = 20, *, root: str | Path = ".") -> str:
    """Return ``path:line:text`` matches, at most ``max_results`` per file.

    Uses ripgrep when it is installed; otherwise walks the tree in Python.
    An empty string means no matches.
    """
    target = _resolve_target(path, Path(root))
    rg = shutil.which("rg")
    if rg is not None:
        return _ripgrep(rg, query, target, max_results)
    return _scan(query, target, max_results)


def _resolve_target(path: str, root: Path) -> Path:
    target = Path(path) if path and Path(path).is_absolute() else root / (path or ".")
    if not target.exists():
        raise CodebaseSearchError(f"invalid path {path or '.'!r}: no such file or directory")
    return target


def _ripgrep(rg: str, query: str, target: Path, max_results: int) -> str:
    args = [rg, "--no-heading", "--line-number", "--max-count", str(max_results), query, str(target)]
    try:
        completed = subprocess.run(args, capture_output=True, text=True, check=False)  # noqa: S603
    except OSError as exc:
        raise CodebaseSearchError(f"rg failed to start: {exc}") from exc
    if completed.returncode == 1:
        return ""
    if completed.returncode != 0:
        output = (completed.stderr or completed.stdout).strip()
        raise CodebaseSearchError(f"rg error (exit {completed.returncode}): {output}")
    lines = completed.stdout.strip().splitlines()
    return "\n".join(lines[:MAX_TOTAL_LINES])


def _scan(query: str, target: Path, max_results: int) -> str:
    try:
        pattern = re.compile(query)
    except re.error:
        pattern = re.compile(re.escape(query))

    found: list[str] = []
    for file_path in _iter_files(target):
        per_file = 0
        try:
            with file_path.open(encoding="utf-8") as handle:
                for number, line in enumerate(handle, start=1):
                    if not pattern.search(line):
                        continue
                    found.append(f"{file_path}:{number}:{line.rstrip()}")
                    per_file += 1
                    if per_file >= max_results or len(found) >= MAX_TOTAL_LINES:
                        break
        except (OSError, UnicodeDecodeError):
            continue
        if len(found) >= MAX_TOTAL_LINES:
            break
    logger.debug("codebase event=scan query=%s matches=%d", query, len(found))
    return "\n".join(found)


def _iter_files(target: Path):
    if target.is_file():
        yield target
        return
    for current, dirs, files in os.walk(target):
        dirs[:] = sorted(d for d in dirs if d not in SKIP_DIRS)
        for name in sorted(files):
            file_path = Path(current) / name
            try:
                if file_path.stat().st_size > MAX_FILE_BYTES:
                    continue
            except OSError:
                continue
            yield file_path
