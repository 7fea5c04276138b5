#!/usr/bin/env python3
"""
Comms Inbox CLI Entry Point

Run with: python -m comms_inbox <command> [args]
"""

import argparse
import json
import sys

from .core import get_utc_timestamp


def output_json(data: dict, indent: int = 2) -> None:
    """Print JSON output to stdout."""
    print(json.dumps(data, indent=indent))


def output_error(message: str, exit_code: int = 1, **kwargs) -> None:
    """Print error JSON and exit."""
    error_data = {
        "error": kwargs.pop("error_type", "error"),
        "message": message,
        "query_timestamp": get_utc_timestamp(),
    }
    error_data.update(kwargs)
    output_json(error_data)
    sys.exit(exit_code)


def cmd_help(args: argparse.Namespace) -> dict:
    """Show help message."""
    help_text = """
Comms Inbox Engine
-------------------------------------------------------------------

Store Commands:
  seed <file>                Load users and posts from a JSON file

Dispatch Commands:
  dispatch <before> <after>  Feed a post update through the dispatcher

Triage Commands:
  sweep [--now MS]           Clear elapsed triage deadlines once
  run-sweeper [--interval S] Sweep periodically until interrupted

Inspection Commands:
  inbox <user_id>            List a user's inbox entries
  classify <user> <post>     Explain priority and notification decision

Environment:
  COMMS_DB_PATH              SQLite database path
  COMMS_LOG_LEVEL            DEBUG, INFO, WARNING (default), ERROR
  COMMS_LOG_JSON             Emit JSON log lines
"""
    print(help_text)
    return {}


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser with all subcommands."""
    parser = argparse.ArgumentParser(
        prog="comms-inbox",
        description="Comms Inbox - notification dispatch and inbox triage",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    help_parser = subparsers.add_parser("help", help="Show help message")
    help_parser.set_defaults(func=cmd_help)

    from .commands import inbox

    inbox.register_parsers(subparsers)

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    # Default to help if no command
    if not args.command:
        cmd_help(args)
        return 0

    if not hasattr(args, "func"):
        output_error(
            f"Unknown command: {args.command}",
            error_type="unknown_command",
            hint="Run 'comms-inbox help' for usage",
        )

    try:
        result = args.func(args)

        if isinstance(result, dict) and result:
            output_json(result)

            if "error" in result:
                return 1

        return 0

    except KeyboardInterrupt:
        print("\nInterrupted", file=sys.stderr)
        return 130
    except Exception as e:
        output_error(str(e), error_type="command_error", command=args.command)
        return 1


if __name__ == "__main__":
    sys.exit(main())
