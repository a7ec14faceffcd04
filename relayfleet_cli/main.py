"""Main entry point for relayfleet CLI"""

import argparse
import logging
import sys

from . import __version__
from .config import FleetConfig
from .errors import BatchResult, ConfigError, OpResult
from .logs import DEFAULT_LINES, cmd_logs, show_failure_journal
from .orchestrator import Orchestrator
from .output import (
    print_batch,
    print_error,
    print_info,
    print_json,
    print_registry,
    print_result,
    print_tls_status,
    print_unit_states,
    print_warning,
)
from .platform import is_admin
from .structured_logging import setup_logging

logger = logging.getLogger("relayfleet.main")

# Commands that only read state
READ_ONLY_COMMANDS = {"list", "status", "logs"}
READ_ONLY_TLS_ACTIONS = {"status"}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="relayfleet",
        description="relayfleet - manage a fleet of supervised relay ports and a TLS overlay",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    parser.add_argument("--version", action="version", version=f"relayfleet {__version__}")
    parser.add_argument("--config", help="Path to config.yml (default: $RELAYFLEET_CONFIG or /etc/relayfleet/config.yml)")
    parser.add_argument("--no-root-check", action="store_true", help="Skip the root privilege check")

    subparsers = parser.add_subparsers(dest="command", help="Command to execute")

    add_parser = subparsers.add_parser("add", help="Open a relay port")
    add_parser.add_argument("port", help="Port number (1-65535)")
    add_parser.add_argument("--label", help="Status label reported by the relay")

    remove_parser = subparsers.add_parser("remove", help="Close a relay port")
    remove_parser.add_argument("port", help="Port number")

    update_parser = subparsers.add_parser("update", help="Change the status label of an open port")
    update_parser.add_argument("port", help="Port number")
    update_parser.add_argument("--label", required=True, help="New status label")

    restart_parser = subparsers.add_parser("restart", help="Restart one relay, or all of them")
    restart_parser.add_argument("port", nargs="?", help="Port number (default: all registered ports)")

    list_parser = subparsers.add_parser("list", help="List registered ports")
    list_parser.add_argument("--json", action="store_true", help="Output JSON")

    status_parser = subparsers.add_parser("status", help="Show supervisor state per port")
    status_parser.add_argument("--json", action="store_true", help="Output JSON")

    logs_parser = subparsers.add_parser("logs", help="Show the journal of a relay or the TLS overlay")
    logs_parser.add_argument("port", nargs="?", help="Port number")
    logs_parser.add_argument("--tls", action="store_true", help="Show the TLS overlay journal")
    logs_parser.add_argument("-n", "--lines", type=int, default=DEFAULT_LINES, help="Number of lines")

    tls_parser = subparsers.add_parser("tls", help="Manage the TLS overlay")
    tls_sub = tls_parser.add_subparsers(dest="tls_action")
    tls_start = tls_sub.add_parser("start", help="Start or reconfigure the overlay")
    tls_start.add_argument("listen_port", help="Port to accept TLS connections on")
    tls_start.add_argument("connect_host", help="Backend host")
    tls_start.add_argument("connect_port", help="Backend port")
    tls_sub.add_parser("stop", help="Stop the overlay")
    tls_status = tls_sub.add_parser("status", help="Show overlay state")
    tls_status.add_argument("--json", action="store_true", help="Output JSON")
    tls_sub.add_parser("restart", help="Restart the overlay with its recorded configuration")

    uninstall_parser = subparsers.add_parser("uninstall", help="Remove every relay, the overlay and all state")
    uninstall_parser.add_argument("--yes", "-y", action="store_true", help="Do not ask for confirmation")

    return parser


def load_config(path: str | None) -> FleetConfig:
    """Load config, falling back to defaults when the file is unreadable"""
    try:
        return FleetConfig.load(path)
    except ConfigError as e:
        print_warning(f"{e}; using built-in defaults")
        return FleetConfig()


def needs_root(args) -> bool:
    if args.command in READ_ONLY_COMMANDS:
        return False
    if args.command == "tls" and args.tls_action in READ_ONLY_TLS_ACTIONS:
        return False
    return True


def confirm(prompt: str) -> bool:
    response = input(f"{prompt} [y/N]: ").strip().lower()
    return response in ("y", "yes")


def report(orchestrator: Orchestrator, result: OpResult | BatchResult, title: str = "") -> int:
    """Print a result and return its exit code"""
    journal = orchestrator.relays.supervisor.journal_tail
    if isinstance(result, BatchResult):
        print_batch(result, title)
        for failure in result.failures:
            show_failure_journal(failure, journal)
        return result.exit_code
    print_result(result)
    show_failure_journal(result, journal)
    return result.exit_code


def run_command(args, orchestrator: Orchestrator) -> int:
    if args.command == "add":
        return report(orchestrator, orchestrator.add(args.port, args.label))
    if args.command == "remove":
        return report(orchestrator, orchestrator.remove(args.port))
    if args.command == "update":
        return report(orchestrator, orchestrator.update(args.port, args.label))
    if args.command == "restart":
        return report(orchestrator, orchestrator.restart(args.port), "Restart")
    if args.command == "list":
        entries = orchestrator.list()
        if args.json:
            print_json([{"port": e.port, "label": e.label} for e in entries])
        else:
            print_registry(entries)
        return 0
    if args.command == "status":
        states = orchestrator.status()
        if args.json:
            print_json(states)
        else:
            print_unit_states(states)
        return 0
    if args.command == "logs":
        return cmd_logs(orchestrator, args.port, tls=args.tls, lines=args.lines).exit_code
    if args.command == "tls":
        if args.tls_action == "start":
            return report(orchestrator, orchestrator.tls_start(args.listen_port, args.connect_host, args.connect_port))
        if args.tls_action == "stop":
            return report(orchestrator, orchestrator.tls_stop())
        if args.tls_action == "restart":
            return report(orchestrator, orchestrator.tls_restart())
        if args.tls_action == "status":
            status = orchestrator.tls_status()
            if args.json:
                print_json(status.to_dict())
            else:
                print_tls_status(status)
                for warning in orchestrator.tls_warnings():
                    print_warning(warning)
            return 0
        print_info("Usage: relayfleet tls {start|stop|status|restart}")
        return 1
    if args.command == "uninstall":
        if not args.yes and not confirm("Remove every relay, the TLS overlay and all relayfleet state?"):
            print_info("Cancelled.")
            return 1
        return report(orchestrator, orchestrator.uninstall(), "Uninstall")
    return 1


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point"""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    setup_logging()

    if not args.no_root_check and needs_root(args) and not is_admin():
        print_error("This command must be run as root (use sudo)")
        return 1

    try:
        orchestrator = Orchestrator.from_config(load_config(args.config))
        return run_command(args, orchestrator)
    except KeyboardInterrupt:
        print("\nInterrupted")
        return 130
    except Exception as e:
        logger.exception("Unexpected error")
        print_error(f"Unexpected error: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
