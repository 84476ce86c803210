#!/usr/bin/env python3
"""
CBX Terminal - Entry Point

Runs a batch of commands through the terminal service and prints the
formatted results. Each positional argument is one command; splitting a
single delimited string into commands is left to the caller.
"""

import argparse
import asyncio
import sys
from pathlib import Path

# Add app directory to path for imports when running directly
APP_DIR = Path(__file__).parent
if str(APP_DIR) not in sys.path:
    sys.path.insert(0, str(APP_DIR))

from cbx_terminal import __version__
from cbx_terminal.config import load_config
from cbx_terminal.executor import ExecutionOptions
from cbx_terminal.service import create_service
from cbx_terminal.utils.logging import setup_logging


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Run shell commands through the CBX terminal safety gate",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Run two commands, stopping at the first failure
  python main.py "git status" "git log --oneline -5"

  # Search the project and keep going past failures
  python main.py --continue-on-error "ai-search TODO" "ls"

  # Use custom config directory
  python main.py --config-dir /path/to/config "pwd"
        """,
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"cbx-terminal {__version__}",
    )
    parser.add_argument(
        "commands",
        nargs="+",
        help="Commands to run, in order",
    )
    parser.add_argument(
        "--config-dir",
        type=str,
        help="Configuration directory path (default: ~/.cbx-terminal/)",
    )
    parser.add_argument(
        "--cwd",
        type=str,
        help="Working directory (overrides config)",
    )
    parser.add_argument(
        "--timeout-ms",
        type=int,
        help="Per-command timeout in milliseconds (overrides config)",
    )
    parser.add_argument(
        "--continue-on-error",
        action="store_true",
        help="Run remaining commands after a failure",
    )
    parser.add_argument(
        "--log-level",
        choices=["debug", "info", "warning", "error"],
        help="Logging level (overrides config)",
    )
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    args = parse_args(argv)

    try:
        config = load_config(args.config_dir)
    except Exception as e:
        print(f"Error loading configuration: {e}", file=sys.stderr)
        return 1

    if args.log_level:
        config.logging.level = args.log_level
    if args.cwd:
        config.command.project_root = args.cwd

    setup_logging(config.logging.level, config.logging.log_file)

    try:
        service = create_service(config)
    except Exception as e:
        print(f"Error creating terminal service: {e}", file=sys.stderr)
        return 1

    options = ExecutionOptions(
        timeout_ms=args.timeout_ms,
        continue_on_error=args.continue_on_error or config.command.continue_on_error,
    )

    try:
        results = asyncio.run(service.execute_for_display(args.commands, options))
    except KeyboardInterrupt:
        print("\nInterrupted", file=sys.stderr)
        return 130

    print(service.format_results(results))

    attempted_all = len(results) == len(args.commands)
    return 0 if attempted_all and all(r.exit_code == 0 for r in results) else 1


if __name__ == "__main__":
    sys.exit(main())
