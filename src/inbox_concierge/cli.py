"""Command-line entry point for Inbox Concierge."""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path

from inbox_concierge.core import AppSettings, configure_logging, load_app_settings
from inbox_concierge.core.container import ServiceContainer
from inbox_concierge.core.interfaces import CollaboratorUnavailable, RuleNotFoundError
from inbox_concierge.orchestrator import render_report
from inbox_concierge.wiring import build_container

CLI_INITIATOR = "cli"


def build_parser() -> argparse.ArgumentParser:
    """Create and configure the CLI argument parser."""
    parser = argparse.ArgumentParser(description="Inbox Concierge chat assistant")
    parser.add_argument(
        "--env-file",
        type=Path,
        default=None,
        help="Path to a .env file containing configuration overrides.",
    )
    parser.add_argument(
        "command",
        nargs="?",
        default="info",
        choices=["info", "rules", "reconcile", "chat", "serve"],
        help="Operation to execute.",
    )
    parser.add_argument(
        "--add",
        nargs=2,
        metavar=("PATTERN", "FOLDER"),
        default=None,
        help="Add a rule before listing rules.",
    )
    parser.add_argument(
        "--match-type",
        dest="match_type",
        choices=["sender", "subject", "contains"],
        default="sender",
        help="Field tested by a rule added with --add (default: sender).",
    )
    parser.add_argument(
        "--remove",
        default=None,
        help="Remove rules by pattern, or by 1-based position, before listing.",
    )
    parser.add_argument(
        "--clear",
        action="store_true",
        help="Remove every rule before listing.",
    )
    parser.add_argument(
        "--bucket",
        default=None,
        help="Folder to reconcile; every folder when omitted.",
    )
    parser.add_argument(
        "--limit",
        type=int,
        default=None,
        help="Messages listed per folder by the reconcile command.",
    )
    parser.add_argument(
        "--message",
        "-m",
        default=None,
        help="Single chat message for the chat command; interactive when omitted.",
    )
    parser.add_argument("--host", default="127.0.0.1", help="Bind address for serve.")
    parser.add_argument("--port", type=int, default=8000, help="Port for serve.")
    return parser


def execute(args: argparse.Namespace, settings: AppSettings) -> int:
    """Execute the requested CLI command and return the exit status."""
    command = args.command
    if command == "info":
        print("Inbox Concierge is ready. Configure IMAP, SMTP and LLM settings to start.")
        print(f"IMAP host: {settings.imap.host}")
        print(f"LLM model: {settings.llm.model}")
        print(f"Database path: {settings.storage.db_path}")
        return 0
    if command == "serve":
        return _serve(args, settings)

    container = build_container(settings)
    try:
        if command == "rules":
            return asyncio.run(_run_rules(container, args))
        if command == "reconcile":
            return asyncio.run(_run_reconcile(container, args, settings))
        return asyncio.run(_run_chat(container, args.message))
    finally:
        container.close()


def main(argv: list[str] | None = None) -> int:
    """CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    settings = load_app_settings(env_file=args.env_file)
    configure_logging(settings.logging)
    return execute(args, settings)


async def _run_rules(container: ServiceContainer, args: argparse.Namespace) -> int:
    """Apply the requested rule changes and print the rule list."""
    rule_store = container.resolve("rule_store")
    if not await _reload_rules(container):
        return 1
    try:
        if args.clear:
            change = await rule_store.clear_all()
            print(f"Removed {len(change.rules)} rule(s).")
        if args.remove:
            target = args.remove.lstrip("#")
            if target.isdigit():
                change = await rule_store.remove_rule_at(int(target))
            else:
                change = await rule_store.remove_rule(args.remove)
            print(f"Removed {len(change.rules)} rule(s).")
        if args.add:
            pattern, folder = args.add
            await rule_store.add_rule(pattern, folder, args.match_type)
    except (RuleNotFoundError, ValueError) as exc:
        print(f"Rule update failed: {exc}")
        return 1

    rules = rule_store.list_rules()
    if not rules:
        print("No classification rules.")
    for position, rule in enumerate(rules, start=1):
        print(f"{position}. [{rule.match_type.value}] {rule.pattern} -> {rule.folder}")
    return 0


async def _run_reconcile(
    container: ServiceContainer, args: argparse.Namespace, settings: AppSettings
) -> int:
    """Reclassify filed messages once and print the report."""
    if not await _reload_rules(container):
        return 1
    limit = args.limit or settings.classification.reconcile_limit
    try:
        report = await container.resolve("reconciler").reconcile_bucket(args.bucket, limit)
    except (CollaboratorUnavailable, ValueError) as exc:
        print(f"Reconcile failed: {exc}")
        return 1
    print(render_report(report))
    for failure in report.failures:
        print(f"! {failure.subject}: {failure.reason}")
    return 0


async def _run_chat(container: ServiceContainer, message: str | None) -> int:
    """Talk to the concierge from the terminal."""
    concierge = container.resolve("concierge")
    if not await _reload_rules(container):
        return 1
    if message is not None:
        print(await concierge.handle(CLI_INITIATOR, message))
        return 0

    print('Type a message, or "quit" to leave.')
    while True:
        line = await asyncio.to_thread(sys.stdin.readline)
        if not line or line.strip().lower() in {"quit", "exit"}:
            return 0
        print(await concierge.handle(CLI_INITIATOR, line))


async def _reload_rules(container: ServiceContainer) -> bool:
    """Load stored rules, reporting storage failures instead of raising."""
    try:
        await container.resolve("rule_store").reload()
    except CollaboratorUnavailable as exc:
        print(f"Could not load classification rules: {exc}")
        return False
    return True


def _serve(args: argparse.Namespace, settings: AppSettings) -> int:
    """Run the webhook application with uvicorn."""
    import uvicorn  # pylint: disable=import-outside-toplevel

    from inbox_concierge.web import create_app  # pylint: disable=import-outside-toplevel

    uvicorn.run(create_app(settings), host=args.host, port=args.port, log_config=None)
    return 0


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
