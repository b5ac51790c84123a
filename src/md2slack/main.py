"""Command-line entry point."""

from __future__ import annotations

import argparse
import json
import logging
import re
import sys
from pathlib import Path

import uvicorn

from md2slack.config.ini import AppConfig, load_config
from md2slack.config.settings import get_settings
from md2slack.errors import ConfigError, FactsError, Md2SlackError, PortUnavailable, SlackError
from md2slack.facts.provider import REPORT_DATE_FORMAT, parse_report_date, today
from md2slack.install import install
from md2slack.processor import ReportProcessor
from md2slack.server.app import RunRequest, create_app
from md2slack.server.ports import resolve_port
from md2slack.server.state import Session
from md2slack.slack import markdown_to_blocks
from md2slack.storage import open_store

logger = logging.getLogger(__name__)

# Bracketed-paste markers some terminals leave in pasted arguments.
_PASTE_MARKERS = re.compile(r"\x1b\[\d+~", re.IGNORECASE)


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="md2slack",
        description="Turn the day's git commits into a daily status report and post it to Slack.",
    )
    parser.add_argument(
        "date",
        nargs="?",
        default="",
        help="Report date as MM-DD-YYYY; several dates may be comma-separated (default: today).",
    )
    parser.add_argument("extra", nargs="*", help="Extra context for the report (meetings, reviews, ...).")
    parser.add_argument("--repo", default="", help="Repository path (default: current directory).")
    parser.add_argument("--author", default="", help="Author override (default: git config user.name).")
    parser.add_argument("--context", default="", help="Extra context; overrides positional text.")
    parser.add_argument("--config", type=Path, default=None, help="Path to config.ini.")
    parser.add_argument("--host", default="", help="Web UI host (default: [server] host).")
    parser.add_argument("--port", type=int, default=0, help="Web UI port (default: [server] port).")
    parser.add_argument("--no-web", action="store_true", help="Run once headless and print the report.")
    parser.add_argument("--debug", action="store_true", help="Verbose logging; never send to Slack.")
    parser.add_argument("--install", action="store_true", help="Link this directory to ~/.md2slack.")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    if args.install:
        return _run_install()

    settings = get_settings()
    try:
        config = load_config(args.config, settings)
        dates = _dates(args.date)
    except (ConfigError, FactsError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    extra = args.context or _PASTE_MARKERS.sub("", " ".join(args.extra)).strip()
    try:
        store = open_store(settings)
        if args.no_web:
            processor = ReportProcessor(config, store, settings=settings, debug=args.debug)
            return _run_headless(processor, dates, args, extra)
        session = Session()
        processor = ReportProcessor(config, store, settings=settings, session=session, debug=args.debug)
        return _serve(processor, config, args, dates, extra)
    except ConfigError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    except Md2SlackError as exc:
        logger.error("cli event=failed error=%s", exc)
        print(f"Error: {exc}", file=sys.stderr)
        return 1


def _dates(raw: str) -> list[str]:
    if not raw.strip():
        return []
    return [
        parse_report_date(item).strftime(REPORT_DATE_FORMAT) for item in raw.split(",") if item.strip()
    ]


def _run_headless(processor: ReportProcessor, dates: list[str], args: argparse.Namespace, extra: str) -> int:
    status = 0
    for date in dates or [today()]:
        print(f"\n--- Processing Date: {date} ---")
        state = processor.process_date(date, args.repo, args.author, extra)
        if state.get("error"):
            print(f"Error generating report for {date}: {state['error']}", file=sys.stderr)
            status = 1
            continue

        report = state.get("report", "")
        print("\n--- FINAL REPORT ---")
        print(report)
        if args.debug:
            print("--- Slack Blocks ---")
            print(json.dumps(markdown_to_blocks(report), indent=2, ensure_ascii=False))
            continue
        try:
            processor.send(report)
        except SlackError as exc:
            print(f"Error sending to Slack for {date}: {exc}", file=sys.stderr)
            status = 1
            continue
        print(f"Daily Status Report for {date} sent successfully!")
    return status


def _serve(
    processor: ReportProcessor,
    config: AppConfig,
    args: argparse.Namespace,
    dates: list[str],
    extra: str,
) -> int:
    host = args.host or config.server.host
    try:
        port = resolve_port(host, args.port or config.server.port, config.server.auto_increment_port)
    except PortUnavailable as exc:
        print(f"Error resolving web address: {exc}", file=sys.stderr)
        return 1

    app = create_app(processor=processor, settings_override=processor.settings)
    if dates:
        app.state.worker.submit(
            RunRequest(date=dates[0], repo_path=args.repo, author=args.author, extra_context=extra)
        )
    logger.info("server event=listening url=http://%s:%d", host, port)
    print(f"Web UI: http://{host}:{port}")
    uvicorn.run(app, host=host, port=port, log_level="debug" if args.debug else "info")
    return 0


def _run_install() -> int:
    try:
        target = install()
    except OSError as exc:
        print(f"Error linking ~/.md2slack: {exc}", file=sys.stderr)
        return 1
    print(f"Linked {target} -> {Path.cwd().resolve()}")
    print("\nInstallation successful!")
    print("Please add the following to your ~/.bashrc or ~/.zshrc:\n")
    print("export PATH=$PATH:$HOME/.md2slack\n")
    print("Then run: source ~/.bashrc")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
