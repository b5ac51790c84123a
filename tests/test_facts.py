from __future__ import annotations

import shutil
import subprocess
from pathlib import Path

import pytest

from md2slack.errors import FactsError
from md2slack.facts import provider
from md2slack.facts.gitlog import parse_git_log
from md2slack.facts.provider import GitFactsProvider, normalize_names, parse_report_date, summarize_commit
from md2slack.facts.signals import commit_semantic, domain_key, is_test_path

SAMPLE_LOG = "\n".join(
    [
        "commit abc1234\tadd retry to client",
        "diff --git a/src/net/client.py b/src/net/client.py",
        "--- a/src/net/client.py",
        "+++ b/src/net/client.py",
        "@@ -1,2 +1,3 @@",
        "-old = 1",
        "+for attempt in range(3):",
        "diff --git a/tests/test_client.py b/tests/test_client.py",
        "new file mode 100644",
        "--- /dev/null",
        "+++ b/tests/test_client.py",
        "+    assert client.ok",
        "commit def5678\tfix typo",
        "diff --git a/README.md b/README.md",
        "-teh",
        "+the",
    ]
)


def test_parse_git_log_splits_commits_and_files() -> None:
    commits = parse_git_log(SAMPLE_LOG)
    assert [(c.hash, c.message) for c in commits] == [
        ("abc1234", "add retry to client"),
        ("def5678", "fix typo"),
    ]
    client, test_file = commits[0].files
    assert client.path == "src/net/client.py"
    assert client.additions == ["for attempt in range(3):"]
    assert client.deletions == ["old = 1"]
    assert test_file.is_new is True
    assert test_file.is_test is True
    assert parse_git_log("   \n") == []


def test_commit_semantic_tags_signals() -> None:
    commit = parse_git_log(SAMPLE_LOG)[0]
    semantic = commit_semantic(commit.hash, commit.files)

    assert semantic.files_touched == 2
    assert semantic.touches_tests is True
    by_file = {signal.file: signal.types for signal in semantic.signals}
    assert by_file["src/net/client.py"] == ["logic_change", "retry_logic"]
    assert by_file["tests/test_client.py"] == ["new_file", "test_added", "regression_test"]


def test_commit_without_signals_has_no_entries() -> None:
    commit = parse_git_log(SAMPLE_LOG)[1]
    semantic = commit_semantic(commit.hash, commit.files)
    assert semantic.signals == []
    assert semantic.touches_tests is False


def test_summarize_commit_picks_area_and_hints() -> None:
    commit = parse_git_log(SAMPLE_LOG)[0]
    summary = summarize_commit(commit, commit_semantic(commit.hash, commit.files))
    assert summary.commit == "abc1234"
    assert summary.summary == "add retry to client"
    assert summary.area == "net"
    assert summary.impact == "flow control logic, added retry mechanism, added regression coverage"


@pytest.mark.parametrize(
    ("path", "expected"),
    [
        ("tests/test_client.py", True),
        ("web/button.spec.ts", True),
        ("pkg/server_test.go", True),
        ("src/contest.py", False),
        ("src/app.py", False),
    ],
)
def test_is_test_path(path: str, expected: bool) -> None:
    assert is_test_path(path) is expected


def test_domain_key() -> None:
    assert domain_key("src/net/client.py") == "net"
    assert domain_key("README.md") == "README.md"


def test_parse_report_date_formats() -> None:
    assert parse_report_date("01-02-2026").isoformat() == "2026-01-02"
    assert parse_report_date(" 2026-01-02 ").isoformat() == "2026-01-02"
    with pytest.raises(FactsError):
        parse_report_date("02/01/2026")


def test_normalize_names_dedupes_case_insensitively() -> None:
    assert normalize_names(["bob", " Alice ", "BOB", "", "alice"]) == ["Alice", "bob"]


class FakeGit:
    def __init__(self, log: str = SAMPLE_LOG) -> None:
        self.log = log
        self.calls: list[list[str]] = []

    def __call__(self, args: list[str], cwd=None) -> str:
        self.calls.append(list(args))
        if args[0] == "rev-parse":
            return "/work/demo\n"
        if args[0] == "config":
            return "Dev\n"
        return self.log


def test_facts_for_builds_log_query(monkeypatch: pytest.MonkeyPatch) -> None:
    git = FakeGit()
    monkeypatch.setattr(provider, "run_git", git)

    facts = GitFactsProvider().facts_for("01-02-2026", "/work/demo", extra_context="standup")

    assert facts.repo_name == "demo"
    assert facts.author == "Dev"
    assert facts.extra == "standup"
    assert [c.hash for c in facts.commits] == ["abc1234", "def5678"]
    assert [s.commit for s in facts.summaries] == ["abc1234", "def5678"]
    log_args = next(call for call in git.calls if call[0] == "log")
    assert "--author=Dev" in log_args
    assert "--since=2026-01-02 00:00:00" in log_args
    assert "--until=2026-01-02 23:59:59" in log_args
    assert "--no-merges" in log_args


def test_facts_for_author_override_skips_git_config(monkeypatch: pytest.MonkeyPatch) -> None:
    git = FakeGit(log="")
    monkeypatch.setattr(provider, "run_git", git)

    facts = GitFactsProvider().facts_for("01-02-2026", "/work/demo", author="Someone")

    assert facts.commits == []
    assert facts.author == "Someone"
    assert all(call[0] != "config" for call in git.calls)


def test_recent_days_and_users(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(provider, "run_git", FakeGit(log="2026-01-02\n2026-01-02\n2026-01-01\n"))
    assert GitFactsProvider().recent_commit_days("/work/demo") == ["01-02-2026", "01-01-2026"]

    monkeypatch.setattr(provider, "run_git", FakeGit(log="dev\nAlice\n\n"))
    assert GitFactsProvider().scan_users("/work/demo") == ["Alice", "Dev"]


def test_repo_name_falls_back_when_git_fails(monkeypatch: pytest.MonkeyPatch) -> None:
    def broken(args, cwd=None):
        raise FactsError("git rev-parse failed: not a git repository")

    monkeypatch.setattr(provider, "run_git", broken)
    assert provider.repo_name_at("/tmp/nowhere") == provider.UNKNOWN_REPO
    assert provider.resolve_author("/tmp/nowhere") == ""


requires_git = pytest.mark.skipif(shutil.which("git") is None, reason="git CLI not installed")


def _git(repo: Path, *args: str) -> None:
    subprocess.run(
        ["git", "-c", "user.name=Dev", "-c", "user.email=dev@example.com", "-c", "commit.gpgsign=false", *args],
        cwd=repo,
        check=True,
        capture_output=True,
    )


@pytest.fixture
def latin1_repo(tmp_path: Path) -> Path:
    repo = tmp_path / "legacy"
    repo.mkdir()
    _git(repo, "init", "-q")
    (repo / "legacy.txt").write_bytes(b"caf\xe9 cr\xe8me\n")
    _git(repo, "add", "legacy.txt")
    _git(repo, "commit", "-q", "-m", "import legacy notes")
    return repo


@requires_git
def test_facts_for_tolerates_non_utf8_diff(latin1_repo: Path) -> None:
    facts = GitFactsProvider().facts_for(provider.today(), latin1_repo, author="Dev")

    assert facts.repo_name == "legacy"
    assert len(facts.commits) == 1
    commit = facts.commits[0]
    assert commit.message == "import legacy notes"
    assert [change.path for change in commit.files] == ["legacy.txt"]
    assert commit.files[0].additions == ["caf\ufffd cr\ufffdme"]


@requires_git
def test_git_graph_links_parents(latin1_repo: Path) -> None:
    (latin1_repo / "notes.txt").write_text("second\n")
    _git(latin1_repo, "add", "notes.txt")
    _git(latin1_repo, "commit", "-q", "-m", "add notes")

    graph = GitFactsProvider().git_graph(latin1_repo, limit=5)

    assert [node.subject for node in graph] == ["add notes", "import legacy notes"]
    assert graph[0].parents == [graph[1].hash]
    assert graph[1].parents == []
    assert graph[0].author == "Dev"
    assert any(ref.startswith("HEAD") for ref in graph[0].refs)

    assert len(GitFactsProvider().git_graph(latin1_repo, limit=1)) == 1


def test_parse_graph_line_splits_refs_and_parents() -> None:
    node = provider.parse_graph_line("abc1234\tdef5678 0123abc\tDev\t2026-01-02\tHEAD -> main, tag: v1\tmerge: a\tb")

    assert node.hash == "abc1234"
    assert node.parents == ["def5678", "0123abc"]
    assert node.refs == ["HEAD -> main", "tag: v1"]
    assert node.subject == "merge: a\tb"

    bare = provider.parse_graph_line("abc1234")
    assert (bare.parents, bare.refs, bare.subject) == ([], [], "")
