"""Commit facts from the local git CLI."""

from __future__ import annotations

import logging
import subprocess
from collections import Counter
from datetime import date as date_type
from datetime import datetime, timedelta
from pathlib import Path

from md2slack.errors import FactsError
from md2slack.facts.gitlog import LOG_FORMAT, parse_git_log
from md2slack.facts.models import Commit, CommitSemantic, CommitSummary, Facts, GraphCommit
from md2slack.facts.signals import commit_semantic, domain_key

logger = logging.getLogger(__name__)

REPORT_DATE_FORMAT = "%m-%d-%Y"
UNKNOWN_REPO = "unknown"
GRAPH_LIMIT = 150
GRAPH_FORMAT = "%h%x09%p%x09%an%x09%ad%x09%D%x09%s"


def today() -> str:
    return date_type.today().strftime(REPORT_DATE_FORMAT)


def parse_report_date(value: str) -> date_type:
    """Accept ``MM-DD-YYYY`` (the CLI/UI format) or ISO ``YYYY-MM-DD``."""
    text = value.strip()
    for fmt in (REPORT_DATE_FORMAT, "%Y-%m-%d"):
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    raise FactsError(f"invalid date {value!r}; expected MM-DD-YYYY")


def run_git(args: list[str], cwd: str | Path | None = None) -> str:
    cmd = ["git", *args]
    try:
        completed = subprocess.run(  # noqa: S603
            cmd,
            cwd=str(cwd) if cwd else None,
            capture_output=True,
            text=True,
            encoding="utf-8",
            errors="replace",
            check=False,
        )
    except OSError as exc:
        raise FactsError(f"git not available: {exc}") from exc
    if completed.returncode != 0:
        detail = completed.stderr.strip() or f"exit status {completed.returncode}"
        raise FactsError(f"git {args[0]} failed: {detail}")
    return completed.stdout


def repo_name_at(path: str | Path | None) -> str:
    try:
        top = run_git(["rev-parse", "--show-toplevel"], cwd=path or None).strip()
    except FactsError:
        return UNKNOWN_REPO
    return Path(top).name if top else UNKNOWN_REPO


def resolve_author(repo_path: str | Path | None, override: str = "") -> str:
    if override.strip():
        return override.strip()
    try:
        return run_git(["config", "user.name"], cwd=repo_path or None).strip()
    except FactsError:
        return ""


def summarize_commit(commit: Commit, semantic: CommitSemantic) -> CommitSummary:
    areas = Counter(domain_key(item.path) for item in commit.files if item.path)
    hints: list[str] = []
    for signal in semantic.signals:
        for hint in signal.hints:
            if hint not in hints:
                hints.append(hint)
    return CommitSummary(
        commit=commit.hash,
        summary=commit.message,
        area=areas.most_common(1)[0][0] if areas else "",
        impact=", ".join(hints[:4]),
    )


class GitFactsProvider:
    """Collect one author's commits for one day and derive signals from the diffs."""

    def facts_for(
        self,
        date: str,
        repo_path: str | Path | None = None,
        author: str = "",
        extra_context: str = "",
    ) -> Facts:
        day = parse_report_date(date) if date else date_type.today()
        iso_day = day.isoformat()
        repo = repo_path or None
        who = resolve_author(repo, author)

        args = [
            "log",
            f"--since={iso_day} 00:00:00",
            f"--until={iso_day} 23:59:59",
            "--no-merges",
            f"--pretty=format:{LOG_FORMAT}",
            "-p",
            "-U1",
            "--all",
        ]
        if who:
            args.insert(1, f"--author={who}")
        raw = run_git(args, cwd=repo)
        commits = parse_git_log(raw)
        if raw.strip() and not commits:
            raise FactsError("git log produced output that could not be parsed into commits")

        semantic = [commit_semantic(commit.hash, commit.files) for commit in commits]
        summaries = [summarize_commit(c, s) for c, s in zip(commits, semantic, strict=True)]
        logger.info(
            "facts event=collected date=%s author=%s commits=%d",
            iso_day,
            who or "-",
            len(commits),
        )
        return Facts(
            date=date or today(),
            repo_name=repo_name_at(repo),
            author=who,
            extra=extra_context,
            commits=commits,
            semantic=semantic,
            summaries=summaries,
        )

    def recent_commit_days(self, repo_path: str | Path, days: int = 30) -> list[str]:
        since = (date_type.today() - timedelta(days=days)).isoformat()
        raw = run_git(
            ["log", f"--since={since}", "--all", "--pretty=format:%ad", "--date=short"],
            cwd=repo_path,
        )
        seen: list[str] = []
        for line in raw.splitlines():
            line = line.strip()
            if not line:
                continue
            label = datetime.strptime(line, "%Y-%m-%d").strftime(REPORT_DATE_FORMAT)
            if label not in seen:
                seen.append(label)
        return seen

    def scan_users(self, repo_path: str | Path) -> list[str]:
        users: list[str] = []
        name = resolve_author(repo_path)
        if name:
            users.append(name)
        try:
            log = run_git(["log", "--format=%an", "-n", "200"], cwd=repo_path)
        except FactsError:
            log = ""
        users.extend(line.strip() for line in log.splitlines() if line.strip())
        return normalize_names(users)

    def git_graph(self, repo_path: str | Path, limit: int = GRAPH_LIMIT) -> list[GraphCommit]:
        """Most recent commits across all refs, newest first, with parent links."""
        raw = run_git(
            [
                "log",
                "--all",
                "--date-order",
                "--date=short",
                f"--max-count={max(1, limit)}",
                f"--pretty=format:{GRAPH_FORMAT}",
            ],
            cwd=repo_path,
        )
        return [parse_graph_line(line) for line in raw.splitlines() if line.strip()]


def normalize_names(values: list[str]) -> list[str]:
    seen: set[str] = set()
    out: list[str] = []
    for value in values:
        clean = value.strip()
        if not clean or clean.lower() in seen:
            continue
        seen.add(clean.lower())
        out.append(clean)
    return sorted(out)


def parse_graph_line(line: str) -> GraphCommit:
    fields = line.split("\t", 5)
    fields += [""] * (6 - len(fields))
    commit_hash, parents, author, day, refs, subject = fields
    return GraphCommit(
        hash=commit_hash.strip(),
        parents=parents.split(),
        author=author,
        date=day,
        refs=[ref.strip() for ref in refs.split(",") if ref.strip()],
        subject=subject,
    )
