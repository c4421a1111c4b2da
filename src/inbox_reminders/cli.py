"""Command-line entry point for Inbox Reminders."""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import signal
from collections.abc import Sequence
from pathlib import Path
from zoneinfo import ZoneInfo

import uvicorn

from inbox_reminders.bootstrap import build_container, build_daemon
from inbox_reminders.core import AppSettings, configure_logging, load_app_settings
from inbox_reminders.core.container import FIELD_EXTRACTOR
from inbox_reminders.core.interfaces import DaemonStartupError, RuleStoreError
from inbox_reminders.core.models import DaemonStats
from inbox_reminders.daemon import ProcessingDaemon, StateStore
from inbox_reminders.rules import MarkdownRuleStore
from inbox_reminders.sample import build_sample_email, preview_sample
from inbox_reminders.web import create_app

STATUS_ICONS = {"active": "✅", "paused": "⏸️", "disabled": "❌"}


def build_parser() -> argparse.ArgumentParser:
    """Create and configure the CLI argument parser."""
    parser = argparse.ArgumentParser(description="Turn rule-matched emails into reminders")
    parser.add_argument(
        "--env-file",
        type=Path,
        default=None,
        help="Path to a .env file containing configuration overrides.",
    )
    commands = parser.add_subparsers(dest="command", metavar="command")
    commands.add_parser("info", help="Show the effective configuration.")
    commands.add_parser("run", help="Run the daemon until interrupted.")
    commands.add_parser("once", help="Start the daemon, run one cycle and stop.")
    commands.add_parser("status", help="Show counters from the persisted state.")
    commands.add_parser("rules", help="List rules from the rules document.")

    rule_status = commands.add_parser("rule-status", help="Change a rule's status.")
    rule_status.add_argument("name", help="Rule name as written after '### Rule:'.")
    rule_status.add_argument("status", choices=["active", "paused", "disabled"])

    sample = commands.add_parser(
        "sample", help="Preview how a sample email would be processed."
    )
    sample.add_argument("--subject", default=None)
    sample.add_argument("--sender", default=None)
    sample.add_argument("--body", default=None)
    sample.add_argument("--provider", choices=["gmail", "icloud"], default="gmail")

    commands.add_parser("serve", help="Serve the control API.")
    return parser


def execute(args: argparse.Namespace, settings: AppSettings) -> int:
    """Execute the requested CLI command and return an exit code."""
    command = args.command or "info"
    if command == "info":
        _print_info(settings)
        return 0
    if command == "run":
        return asyncio.run(_run_forever(build_daemon(settings)))
    if command == "once":
        return asyncio.run(_run_once(build_daemon(settings)))
    if command == "status":
        _print_status(settings)
        return 0
    if command == "rules":
        return _print_rules(settings)
    if command == "rule-status":
        return _update_rule_status(settings, args.name, args.status)
    if command == "sample":
        _print_sample(settings, args)
        return 0
    if command == "serve":
        _serve(settings)
        return 0
    raise ValueError(f"Unknown command {command!r}")


def main(argv: Sequence[str] | None = None) -> None:
    """CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    settings = load_app_settings(env_file=args.env_file)
    configure_logging(settings.logging)
    raise SystemExit(execute(args, settings))


async def _run_forever(daemon: ProcessingDaemon) -> int:
    try:
        await daemon.start()
    except DaemonStartupError as exc:
        print(f"Daemon failed to start: {exc}")
        return 1

    stop_requested = asyncio.Event()
    loop = asyncio.get_running_loop()
    for signum in (signal.SIGINT, signal.SIGTERM):
        # add_signal_handler is unavailable on Windows event loops.
        with contextlib.suppress(NotImplementedError):
            loop.add_signal_handler(signum, stop_requested.set)

    print("Daemon running. Press Ctrl+C to stop.")
    try:
        await stop_requested.wait()
    finally:
        await daemon.stop()
    _print_stats(daemon.get_stats())
    return 0


async def _run_once(daemon: ProcessingDaemon) -> int:
    try:
        await daemon.start()
    except DaemonStartupError as exc:
        print(f"Daemon failed to start: {exc}")
        return 1
    await daemon.stop()
    _print_stats(daemon.get_stats())
    return 0


def _print_info(settings: AppSettings) -> None:
    providers = settings.enabled_providers()
    print("Inbox Reminders configuration:")
    print(f"Providers: {', '.join(providers) if providers else '(none configured)'}")
    print(f"Rules document: {settings.rules.path}")
    print(f"State file: {settings.daemon.state_file}")
    print(f"Interval: {settings.daemon.interval_minutes} minutes")
    print(f"Max emails per scan: {settings.daemon.max_emails_per_scan}")
    print(f"Reminders list: {settings.reminders.default_list}")
    llm = f"{settings.llm.model} at {settings.llm.base_url}" if settings.llm.enabled else "disabled"
    print(f"LLM extraction: {llm}")


def _print_status(settings: AppSettings) -> None:
    state = StateStore(settings.daemon.state_file).load()
    print(f"Last processed: {state.last_processed_timestamp.isoformat()}")
    print(f"Emails processed: {state.total_messages_processed}")
    print(f"Reminders created: {state.total_reminders_created}")
    print(f"Known message ids: {len(state.processed_message_ids)}")
    if state.last_error_message:
        when = state.last_error_timestamp.isoformat() if state.last_error_timestamp else "-"
        print(f"Last error ({when}): {state.last_error_message}")


def _print_stats(stats: DaemonStats) -> None:
    print(
        f"Status: {stats.status.value}; emails processed: "
        f"{stats.total_messages_processed}; reminders created: "
        f"{stats.total_reminders_created}; queued: {stats.queue_size}"
    )
    if stats.last_error_message:
        print(f"Last error: {stats.last_error_message}")


def _print_rules(settings: AppSettings) -> int:
    try:
        rules = MarkdownRuleStore(settings.rules.path).load_rules()
    except RuleStoreError as exc:
        print(f"Unable to read rules: {exc}")
        return 1
    if not rules:
        print(f"No rules found in {settings.rules.path}")
        return 0

    header = f"{'Status':<10}  {'Providers':<14}  {'List':<12}  Name"
    print(header)
    print("-" * len(header))
    for rule in rules:
        status = f"{STATUS_ICONS[rule.status]} {rule.status}"
        print(
            f"{status:<10}  {','.join(rule.providers):<14}  "
            f"{rule.reminder_template.list_name:<12}  {rule.name}"
        )
    return 0


def _update_rule_status(settings: AppSettings, name: str, status: str) -> int:
    try:
        MarkdownRuleStore(settings.rules.path).update_rule_status(name, status)  # type: ignore[arg-type]
    except RuleStoreError as exc:
        print(f"Unable to update rule: {exc}")
        return 1
    print(f"Rule '{name}' is now {status}.")
    return 0


def _print_sample(settings: AppSettings, args: argparse.Namespace) -> None:
    container = build_container(settings)
    message = build_sample_email(
        subject=args.subject, sender=args.sender, body=args.body, provider=args.provider
    )
    rules = MarkdownRuleStore(settings.rules.path).get_active_rules()
    previews = preview_sample(
        message,
        rules,
        extractor=container.resolve(FIELD_EXTRACTOR),
        tz=ZoneInfo(settings.reminders.timezone),
    )

    print(f"From: {message.sender}")
    print(f"Subject: {message.subject}")
    if not previews:
        print("No active rules to evaluate.")
        return
    for preview in previews:
        if not preview.matched:
            failed = ", ".join(name for name, ok in preview.criteria.items() if not ok)
            print(f"- {preview.rule_name}: no match ({failed})")
            continue
        print(f"- {preview.rule_name}: match, confidence {preview.confidence}%")
        for key, value in preview.fields.items():
            print(f"    {key}: {value}")
        if preview.would_create:
            due = preview.due.isoformat(timespec="minutes") if preview.due else "no due date"
            print(f"    reminder: {preview.title!r} in {preview.list_name} ({due})")
        else:
            print("    reminder: skipped, confidence below threshold")


def _serve(settings: AppSettings) -> None:
    uvicorn.run(
        create_app(settings),
        host=settings.web.host,
        port=settings.web.port,
        log_config=None,
    )


if __name__ == "__main__":
    main()
