"""CLI entry point for triagebot.

This module provides the main command-line interface for triagebot.
On first run, it creates a .triagebot/ directory with a sample config.
On subsequent runs, it loads the config and starts the daemon.

Subcommands:
    triagebot                          - Run the daemon (default behavior)
    triagebot state [ISSUE_ID]         - Show automation records
    triagebot confirm ISSUE_ID COLUMN  - Confirm a pending project link
    triagebot deny ISSUE_ID COLUMN     - Deny a pending project link
"""

from __future__ import annotations

import argparse
import os
import sys
from pathlib import Path
from typing import TYPE_CHECKING

from src.config import CONFIG_FILE, TRIAGEBOT_DIR

if TYPE_CHECKING:
    from src.config import Config
    from src.database import IssueAutomationState
    from src.triage import IssueTriager

__version__ = "0.1.0"

SAMPLE_CONFIG = """\
# triagebot configuration (KEY=value)

# Required
GITHUB_ORGANIZATION=
MATRIX_ACCESS_TOKEN=
MATRIX_DEFAULT_ROOM_ID=
TRIAGE_REPO_NAME=

# Optional; gh auth login credentials are used when unset
# GITHUB_TOKEN=
# MATRIX_HOMESERVER=https://matrix.org
# CORE_TEAM_SLUG=core-devs
# CORE_USERS=alice,bob
# CHAT_IDS_FILE=.triagebot/chat_ids.yaml
# PROCESS_FILE_NAME=Process.yaml
# PROJECT_BACKLOG_COLUMN_NAME=Backlog

# Durations in seconds
# PROJECT_CONFIRMATION_TIMEOUT=28800
# NO_PROJECT_AUTHOR_IS_CORE_PING=28800
# NO_PROJECT_AUTHOR_IS_CORE_CLOSE_PR=259200
# NO_PROJECT_AUTHOR_NOT_CORE_CLOSE_PR=28800
# POLL_INTERVAL=300
# MAX_CONCURRENT_PASSES=4

# DATABASE_PATH=.triagebot/triagebot.db
# LOG_FILE=.triagebot/logs/triagebot.log
# LOG_LEVEL=INFO
"""


def get_triagebot_dir() -> Path:
    """Get the .triagebot directory path in the current working directory."""
    return Path.cwd() / TRIAGEBOT_DIR


def init_triagebot() -> None:
    """Initialize a new .triagebot directory with sample config."""
    triagebot_dir = get_triagebot_dir()
    triagebot_dir.mkdir(exist_ok=True)
    (triagebot_dir / "logs").mkdir(exist_ok=True)
    (triagebot_dir / CONFIG_FILE).write_text(SAMPLE_CONFIG)

    print("Created:")
    print(f"  {TRIAGEBOT_DIR}/")
    print(f"  {TRIAGEBOT_DIR}/{CONFIG_FILE}")
    print(f"  {TRIAGEBOT_DIR}/logs/")
    print()
    print("Next steps:")
    print(f"  1. Edit {TRIAGEBOT_DIR}/{CONFIG_FILE}")
    print("  2. Run `triagebot` again")


def run_daemon(daemon_mode: bool = False) -> None:
    """Load config and run the daemon.

    Args:
        daemon_mode: If True, log to file only (background mode).
                     If False, log to both stdout and file.
    """
    from src.config import load_config
    from src.daemon import Daemon
    from src.logger import get_logger, setup_logging

    try:
        config = load_config()

        # Always log to file; stdout/stderr only in non-daemon mode
        setup_logging(
            log_file=config.log_file,
            log_size=config.log_size,
            log_backups=config.log_backups,
            daemon_mode=daemon_mode,
        )

        logger = get_logger(__name__)
        logger.info(f"=== Triagebot Starting (v{__version__}) ===")
        logger.info(f"Logging to {config.log_file}")
        logger.info(f"Organization: {config.github_organization}")

        daemon = Daemon(config)
        daemon.install_signal_handlers()
        daemon.run()

    except ValueError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(1)
    except RuntimeError as e:
        print(f"\n{e}", file=sys.stderr)
        sys.exit(1)
    except KeyboardInterrupt:
        print("\nShutting down...")
        sys.exit(0)


def format_state(state: IssueAutomationState) -> str:
    """Render an automation record as a single table row."""
    link = state.project_link
    link_display = (
        f"{link.state.value}@{link.project_column_id} by {link.actor_login}" if link else "-"
    )
    last = state.last_confirmed_link
    last_display = str(last.project_column_id) if last else "-"
    ping = (
        state.confirmation_deadline_ping.isoformat(timespec="seconds")
        if state.confirmation_deadline_ping
        else "-"
    )
    first = (
        state.no_project_first_ping.isoformat(timespec="seconds")
        if state.no_project_first_ping
        else "-"
    )
    return (
        f"{state.issue_id:<12} {link_display:<40} {last_display:<12} {ping:<26} "
        f"{first:<26} {state.no_project_escalation_count}"
    )


def cmd_state(args: argparse.Namespace) -> None:
    """Handle the 'state' subcommand."""
    from src.config import load_config
    from src.database import Database

    try:
        config = load_config()
    except ValueError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(1)

    with Database(config.database_path) as db:
        if args.issue_id is not None:
            state = db.get_automation_state(args.issue_id)
            states = [state] if state else []
        else:
            states = db.get_all_automation_states(limit=args.limit)

    if not states:
        print("No tracked issues found.")
        return

    print(
        f"\n{'Issue id':<12} {'Project link':<40} {'Last conf.':<12} "
        f"{'Confirmation ping':<26} {'No-project ping':<26} Reminders"
    )
    print("-" * 130)
    for state in states:
        print(format_state(state))


def build_triager(config: Config) -> IssueTriager:
    """Build a triager wired to the configured GitHub, Matrix and database."""
    from src.database import Database
    from src.matrix import ChatNotifier, MatrixClient
    from src.ticket_clients import GitHubClient
    from src.triage import IssueTriager

    database = Database(config.database_path)
    notifier = ChatNotifier(
        MatrixClient(config.matrix_homeserver, config.matrix_access_token),
        database,
        config.matrix_default_room_id,
    )
    client = GitHubClient(config.github_organization, config.github_token)
    return IssueTriager(client, notifier, database, config)


def cmd_decision(args: argparse.Namespace) -> None:
    """Handle the 'confirm' and 'deny' subcommands."""
    from src.config import load_config
    from src.database import StaleStateError

    approve = args.command == "confirm"
    try:
        config = load_config()
    except ValueError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(1)

    triager = build_triager(config)
    try:
        applied = triager.record_decision(args.issue_id, args.column_id, approve)
    except StaleStateError:
        print(
            f"Issue id {args.issue_id} was updated by a triage pass; check "
            f"`triagebot state {args.issue_id}` and try again",
            file=sys.stderr,
        )
        sys.exit(1)
    finally:
        triager.database.close()

    if not applied:
        print(
            f"No unconfirmed link at column {args.column_id} for issue id {args.issue_id}",
            file=sys.stderr,
        )
        sys.exit(1)
    verb = "Confirmed" if approve else "Denied"
    print(f"{verb} column {args.column_id} for issue id {args.issue_id}")


def cmd_run(args: argparse.Namespace) -> None:
    """Handle the 'run' subcommand (default daemon behavior)."""
    config_path = get_triagebot_dir() / CONFIG_FILE

    if not config_path.exists() and not os.environ.get("GITHUB_ORGANIZATION"):
        # First run: initialize
        init_triagebot()
    else:
        run_daemon(daemon_mode=args.daemon)


def main() -> None:
    """Main entry point for the triagebot CLI."""
    parser = argparse.ArgumentParser(
        prog="triagebot",
        description="GitHub issue triage daemon with Matrix notifications",
    )
    parser.add_argument(
        "--version",
        "-v",
        action="version",
        version=f"triagebot {__version__}",
    )
    parser.add_argument(
        "--daemon",
        "-d",
        action="store_true",
        help="Run in daemon mode (log to file only, no stdout)",
    )

    subparsers = parser.add_subparsers(dest="command")

    run_parser = subparsers.add_parser(
        "run",
        help="Start the triage daemon (default if no subcommand given)",
    )
    run_parser.add_argument(
        "--daemon",
        "-d",
        action="store_true",
        help="Run in daemon mode (log to file only, no stdout)",
    )

    state_parser = subparsers.add_parser(
        "state",
        help="Show automation records of tracked issues",
    )
    state_parser.add_argument(
        "issue_id",
        nargs="?",
        type=int,
        default=None,
        help="Global GitHub issue id. If omitted, shows all tracked issues.",
    )
    state_parser.add_argument(
        "--limit",
        type=int,
        default=100,
        help="Maximum number of records to show",
    )

    for name, help_text in (
        ("confirm", "Confirm a pending project link"),
        ("deny", "Deny a pending project link"),
    ):
        decision_parser = subparsers.add_parser(name, help=help_text)
        decision_parser.add_argument("issue_id", type=int, help="Global GitHub issue id")
        decision_parser.add_argument("column_id", type=int, help="Project column id")

    args = parser.parse_args()

    if args.command == "state":
        cmd_state(args)
    elif args.command in ("confirm", "deny"):
        cmd_decision(args)
    elif args.command == "run":
        cmd_run(args)
    else:
        # No subcommand given - default to 'run' behavior
        args.command = "run"
        cmd_run(args)


if __name__ == "__main__":
    main()
