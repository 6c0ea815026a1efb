"""
Command line interface for bytesize-digest.

Subcommands:

- run: Execute one digest cycle for every active subscriber
- validate: Validate configuration and report which credentials are present

The CLI handles argument parsing, config discovery, .env loading and exit
codes; the pipeline itself lives in bytesize_digest.pipeline.
"""

import argparse
import os
import sys
from typing import Optional

from . import __version__
from .config import (
    find_config_file, load_config, load_env, required_env_vars, resolve_credentials
)
from .errors import ConfigError, DigestError, StoreError
from .logging import get_logger, setup_logging
from .models import DeliveryStatus, RunReport
from .status import load_status


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        prog="bytesize-digest",
        description="Personalized daily digests of the Twitter accounts each subscriber follows."
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"bytesize-digest {__version__}"
    )

    parser.add_argument(
        "--config",
        help="Path to configuration file",
        default=None
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    run_parser = subparsers.add_parser(
        "run",
        help="Run one digest cycle for every active subscriber"
    )
    run_parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Fetch and summarize, print each digest instead of sending"
    )
    run_parser.add_argument(
        "--timeout",
        type=float,
        default=None,
        help="Abort subscribers still running after this many seconds"
    )

    validate_parser = subparsers.add_parser(
        "validate",
        help="Validate configuration file and credentials"
    )
    validate_parser.add_argument(
        "--config",
        help="Path to configuration file",
        default=argparse.SUPPRESS
    )

    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        sys.exit(0)

    return args


def print_report(report: RunReport) -> None:
    """Print a run report to stdout."""
    if not report.outcomes:
        print(f"📭 {report.message}")
        return

    icons = {
        DeliveryStatus.SENT: "✅",
        DeliveryStatus.DRY_RUN: "📝",
        DeliveryStatus.FAILED: "❌",
    }

    print(f"\n📬 Digest run: {report.processed} subscribers")
    for outcome in report.outcomes:
        icon = icons[outcome.status]
        detail = outcome.message_id or outcome.error or ""
        handles = ", ".join(f"@{h}" for h in outcome.handles)
        print(f"   {icon} {outcome.email} [{handles}] {outcome.status.value} {detail}".rstrip())

    if report.dry_run:
        for email, html in report.previews.items():
            print(f"\n--- Digest for {email} (dry-run) ---\n{html}\n---")

    print(f"\n{report.message}")


def print_last_run(status_path: Optional[str]) -> None:
    """Print when the file store last recorded an outcome."""
    try:
        subscribers = load_status(status_path)["subscribers"]
    except StoreError as e:
        print(f"   ⚠️  Status file unreadable: {e}")
        return

    last_runs = [entry["last_run"] for entry in subscribers.values() if entry.get("last_run")]
    if not last_runs:
        print("   Last recorded run: none")
        return
    sent = sum(1 for entry in subscribers.values() if entry.get("status") == DeliveryStatus.SENT.value)
    print(f"   Last recorded run: {max(last_runs)} ({sent}/{len(subscribers)} subscribers sent)")


def cmd_run(args: argparse.Namespace) -> int:
    """
    Handle the 'run' subcommand.

    Returns:
        Exit code (0 if every subscriber succeeded, 1 otherwise)
    """
    from .pipeline import build_pipeline

    load_env()

    try:
        config = load_config(args.config)
        credentials = resolve_credentials(config)
        pipeline = build_pipeline(config, credentials)
    except ConfigError as e:
        print(f"❌ Configuration error: {e}", file=sys.stderr)
        return 1

    try:
        report = pipeline.run_digest_cycle(dry_run=args.dry_run, timeout=args.timeout)
    except ConfigError as e:
        print(f"\n❌ Configuration error: {e}", file=sys.stderr)
        return 1
    except StoreError as e:
        print(f"\n❌ Subscription store error: {e}", file=sys.stderr)
        return 1
    except DigestError as e:
        print(f"\n❌ Error: {e}", file=sys.stderr)
        return 1

    print_report(report)
    return 0 if report.ok else 1


def cmd_validate(args: argparse.Namespace) -> int:
    """
    Handle the 'validate' subcommand.

    Returns:
        Exit code (0 for success, 1 for failure)
    """
    load_env()

    try:
        config_path = find_config_file(args.config)
        config = load_config(config_path)
    except ConfigError as e:
        print(f"❌ Configuration error: {e}", file=sys.stderr)
        return 1

    print(f"✅ Configuration valid: {config_path}")

    store = config["store"]
    fetch = config["fetch"]
    llm = config["llm"]
    delivery = config["delivery"]

    print(f"\n   Store: {store['provider']}")
    if store["provider"] == "file":
        print_last_run(store.get("status_path"))
    print(f"   Source: {config['source']['provider']} "
          f"({fetch['max_pages']} pages × {fetch['page_size']} posts, "
          f"{fetch['page_timeout_seconds']}s page timeout)")
    print(f"   LLM: {llm['provider']} ({llm.get('model') or 'default model'})")
    print(f"   Delivery: {delivery['provider']} from {delivery['from']}")
    print(f"   Timezone: {config['timezone']}")

    print("\n   Credentials:")
    for name in required_env_vars(config):
        mark = "✓" if os.environ.get(name) else "✗ missing"
        print(f"   {mark} {name}")

    try:
        resolve_credentials(config)
    except ConfigError as e:
        print(f"\n❌ {e}", file=sys.stderr)
        return 1

    return 0


def main():
    """Main CLI entry point."""
    try:
        args = parse_args()

        try:
            config_for_logging = load_config(getattr(args, 'config', None))
        except ConfigError:
            config_for_logging = None

        setup_logging(config=config_for_logging)
        logger = get_logger("cli")
        logger.info("bytesize-digest %s, command: %s", __version__, args.command)

        if args.command == "run":
            exit_code = cmd_run(args)
        elif args.command == "validate":
            exit_code = cmd_validate(args)
        else:
            print(f"Unknown command: {args.command}", file=sys.stderr)
            exit_code = 1

        sys.exit(exit_code)

    except KeyboardInterrupt:
        print("\n\nInterrupted.", file=sys.stderr)
        sys.exit(130)
    except Exception as e:
        print(f"❌ Unexpected error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
