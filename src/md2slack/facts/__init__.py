"""Commit facts: git log parsing, diff signals and the provider."""

from md2slack.facts.models import (
    Commit,
    CommitChange,
    CommitSemantic,
    CommitSummary,
    Facts,
    FileChange,
    Signal,
)
from md2slack.facts.provider import GitFactsProvider, parse_report_date, repo_name_at, today

__all__ = [
    "Commit",
    "CommitChange",
    "CommitSemantic",
    "CommitSummary",
    "Facts",
    "FileChange",
    "GitFactsProvider",
    "Signal",
    "parse_report_date",
    "repo_name_at",
    "today",
]
