"""Parse ``git log -p`` output into commits and file changes."""

from __future__ import annotations

import re

from md2slack.facts.models import Commit, FileChange
from md2slack.facts.signals import is_test_path

LOG_FORMAT = "commit %h%x09%s"

_DIFF_HEADER = re.compile(r"^diff --git a/(.*) b/(.*)$")


def parse_git_log(raw: str) -> list[Commit]:
    raw = raw.strip()
    if not raw:
        return []

    commits: list[Commit] = []
    for chunk in ("\n" + raw).split("\ncommit "):
        chunk = chunk.strip()
        if not chunk:
            continue
        lines = chunk.split("\n")
        header = lines[0]
        commit_hash, _, message = header.partition("\t")
        commit_hash = commit_hash.split()[0] if commit_hash.split() else ""
        if not commit_hash:
            continue
        commits.append(
            Commit(hash=commit_hash, message=message.strip(), files=parse_files(lines[1:]))
        )
    return commits


def parse_files(lines: list[str]) -> list[FileChange]:
    files: list[FileChange] = []
    current: FileChange | None = None

    for line in lines:
        if line.startswith("diff --git"):
            if current is not None:
                files.append(current)
            match = _DIFF_HEADER.match(line)
            if match:
                path = match.group(2)
            else:
                parts = line.split()
                path = parts[3].removeprefix("b/") if len(parts) >= 4 else ""
            current = FileChange(path=path, is_test=is_test_path(path))
            continue

        if current is None:
            continue
        if line.startswith("new file mode"):
            current.is_new = True
        elif line.startswith("deleted file mode"):
            current.is_deleted = True
        elif line.startswith("+") and not line.startswith("+++"):
            current.additions.append(line[1:])
        elif line.startswith("-") and not line.startswith("---"):
            current.deletions.append(line[1:])

    if current is not None:
        files.append(current)
    return files
