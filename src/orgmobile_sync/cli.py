"""Command-line entry point: ``orgmobile-sync``.

Subcommands:
    push         Export canonical documents to the staging directory
    pull         Ingest captures and apply change requests
    apply        Re-apply requests in an inbox range
    status       Show manifest and inbox state
    init-config  Write a starter .orgmobile/config.yml
"""

import argparse
import json
import logging
import sys

from pydantic import ValidationError

from . import __version__
from .config import load_runtime_config
from .config_loader import ensure_config
from .errors import OrgMobileError
from .logger import setup_logging
from .sync.engine import MobileSync
from .sync.reporter import (
    format_apply_report,
    format_pull_report,
    format_push_report,
    format_status,
    report_to_json,
)

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="orgmobile-sync",
        description="Synchronise an Org directory with a MobileOrg staging area",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Export ~/org for the mobile client
  orgmobile-sync --org-directory ~/org --mobile-directory ~/Dropbox/MobileOrg push

  # Apply what the client left behind
  orgmobile-sync pull

  # Retry the inbox after fixing a retained request
  orgmobile-sync apply --start 0
        """,
    )
    parser.add_argument("--org-directory", help="Canonical Org directory (ORG_DIRECTORY)")
    parser.add_argument(
        "--mobile-directory", help="Staging directory (ORGMOBILE_DIRECTORY)"
    )
    parser.add_argument("--inbox", help="Inbox file for pulled captures (ORGMOBILE_INBOX)")
    parser.add_argument(
        "--json", action="store_true", help="Print the report as JSON"
    )
    parser.add_argument(
        "--debug", action="store_true", help="Enable debug logging"
    )
    parser.add_argument(
        "--log-format",
        choices=["text", "json"],
        default="text",
        help="Log line format (default: text)",
    )
    parser.add_argument("--log-file", help="Also write logs to this file")
    parser.add_argument(
        "--version",
        action="version",
        version=f"orgmobile-sync version {__version__}",
    )

    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("push", help="Export canonical documents to the staging area")
    sub.add_parser("pull", help="Ingest captures and apply change requests")
    apply_p = sub.add_parser("apply", help="Apply the requests in an inbox range")
    apply_p.add_argument("--start", type=int, default=0, help="First offset (default: 0)")
    apply_p.add_argument("--end", type=int, default=None, help="End offset (default: end of inbox)")
    sub.add_parser("status", help="Show manifest and inbox state")
    sub.add_parser("init-config", help="Create a starter config file")
    return parser


def _emit(report, text: str, as_json: bool) -> None:
    if as_json:
        print(json.dumps(report_to_json(report), indent=2))
    else:
        print(text)


def main(argv: list[str] | None = None) -> int:
    """Run one subcommand and return the process exit code."""
    args = build_parser().parse_args(argv)

    if args.command == "init-config":
        setup_logging(mode="cli", debug=args.debug, log_file=args.log_file)
        path = ensure_config()
        print(f"Config file: {path}")
        return 0

    try:
        config, unified, _ = load_runtime_config(
            {
                "org_directory": args.org_directory,
                "mobile_directory": args.mobile_directory,
                "inbox": args.inbox,
            }
        )
    except (OrgMobileError, ValidationError) as e:
        setup_logging(mode="cli", debug=args.debug, log_file=args.log_file)
        print(f"Error: {e}", file=sys.stderr)
        return 1

    setup_logging(
        mode="cli",
        debug=args.debug,
        log_file=args.log_file or unified.logging.file,
        debug_format=args.log_format,
        level=unified.logging.level,
    )

    try:
        sync = MobileSync(config)
        match args.command:
            case "push":
                report = sync.push()
                _emit(report, format_push_report(report), args.json)
            case "pull":
                report = sync.pull()
                _emit(report, format_pull_report(report), args.json)
            case "apply":
                if args.start < 0 or (args.end is not None and args.end < args.start):
                    print("Error: invalid --start/--end range", file=sys.stderr)
                    return 2
                report = sync.apply(args.start, args.end)
                _emit(report, format_apply_report(report), args.json)
            case "status":
                report = sync.status()
                _emit(report, format_status(report), args.json)
    except OrgMobileError as e:
        logger.error("%s failed: %s", args.command, e)
        print(f"Error: {e}", file=sys.stderr)
        return 1
    return 0


def run() -> None:
    """Console-script entry point."""
    try:
        sys.exit(main())
    except KeyboardInterrupt:
        print("\nInterrupted.", file=sys.stderr)
        sys.exit(130)


if __name__ == "__main__":
    run()
