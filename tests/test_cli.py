from __future__ import annotations

from pathlib import Path
from typing import Any

import pytest

from md2slack import main as cli
from md2slack.errors import FactsError, SlackError
from md2slack.install import install


class FakeProcessor:
    instances: list[FakeProcessor] = []
    fail_send = False

    def __init__(self, config, store, *, settings=None, session=None, debug=False) -> None:
        self.config = config
        self.debug = debug
        self.session = session
        self.calls: list[tuple[str, str, str, str]] = []
        self.sent: list[str] = []
        FakeProcessor.instances.append(self)

    def process_date(self, date: str, repo_path: str = "", author: str = "", extra: str = "") -> dict[str, Any]:
        self.calls.append((date, repo_path, author, extra))
        return {"error": None, "report": f"report for {date}"}

    def send(self, report: str) -> None:
        if FakeProcessor.fail_send:
            raise SlackError("slack error: invalid_auth")
        self.sent.append(report)


@pytest.fixture
def config_file(tmp_path: Path) -> Path:
    path = tmp_path / "config.ini"
    path.write_text("[llm]\nprovider = ollama\n", encoding="utf-8")
    return path


@pytest.fixture
def fake_processor(monkeypatch: pytest.MonkeyPatch) -> type[FakeProcessor]:
    FakeProcessor.instances = []
    FakeProcessor.fail_send = False
    monkeypatch.setattr(cli, "ReportProcessor", FakeProcessor)
    return FakeProcessor


def test_missing_config_exits_nonzero(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    assert cli.main(["--no-web", "--config", str(tmp_path / "absent.ini")]) == 1
    assert "config file not found" in capsys.readouterr().err


def test_dates_parse_and_normalize() -> None:
    assert cli._dates("") == []
    assert cli._dates("01-02-2026, 2026-01-03,") == ["01-02-2026", "01-03-2026"]
    with pytest.raises(FactsError):
        cli._dates("01-02-2026,tomorrow")


def test_bad_date_exits_nonzero(config_file: Path, capsys: pytest.CaptureFixture[str]) -> None:
    assert cli.main(["--no-web", "--config", str(config_file), "13-45-2026"]) == 1
    assert "invalid date" in capsys.readouterr().err


def test_headless_run_processes_each_date(
    config_file: Path, fake_processor: type[FakeProcessor], capsys: pytest.CaptureFixture[str]
) -> None:
    code = cli.main(
        ["--no-web", "--config", str(config_file), "--repo", "/work/demo", "01-02-2026,01-03-2026", "met", "team"]
    )

    assert code == 0
    processor = fake_processor.instances[0]
    assert processor.calls == [
        ("01-02-2026", "/work/demo", "", "met team"),
        ("01-03-2026", "/work/demo", "", "met team"),
    ]
    assert processor.sent == ["report for 01-02-2026", "report for 01-03-2026"]
    out = capsys.readouterr().out
    assert "--- FINAL REPORT ---" in out
    assert "sent successfully" in out


def test_headless_debug_prints_blocks_without_sending(
    config_file: Path, fake_processor: type[FakeProcessor], capsys: pytest.CaptureFixture[str]
) -> None:
    code = cli.main(["--no-web", "--debug", "--config", str(config_file), "01-02-2026", "\x1b[200~standup\x1b[201~"])

    assert code == 0
    processor = fake_processor.instances[0]
    assert processor.debug is True
    assert processor.calls[0][3] == "standup"
    assert processor.sent == []
    assert "--- Slack Blocks ---" in capsys.readouterr().out


def test_context_flag_overrides_positional_text(config_file: Path, fake_processor: type[FakeProcessor]) -> None:
    cli.main(["--no-web", "--config", str(config_file), "--context", "pairing", "01-02-2026", "ignored"])
    assert fake_processor.instances[0].calls[0][3] == "pairing"


def test_slack_failure_sets_exit_status(
    config_file: Path, fake_processor: type[FakeProcessor], capsys: pytest.CaptureFixture[str]
) -> None:
    fake_processor.fail_send = True
    assert cli.main(["--no-web", "--config", str(config_file), "01-02-2026"]) == 1
    assert "invalid_auth" in capsys.readouterr().err


def test_install_links_and_backs_up(tmp_path: Path) -> None:
    source = tmp_path / "checkout"
    source.mkdir()
    target = tmp_path / "home" / ".md2slack"
    target.mkdir(parents=True)
    (target / "config.ini").write_text("[llm]\n", encoding="utf-8")

    linked = install(source=source, target=target)

    assert linked.is_symlink()
    assert linked.resolve() == source.resolve()
    assert (tmp_path / "home" / ".md2slack.bak" / "config.ini").is_file()

    other = tmp_path / "other"
    other.mkdir()
    install(source=other, target=target)
    assert target.resolve() == other.resolve()
