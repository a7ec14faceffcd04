"""
Rich-powered console output for relayfleet

Provides styled tables, status panels, and consistent formatting.
"""

import json
import sys

from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from .errors import BatchResult, OpResult
from .registry import RegistryEntry
from .tls_overlay import OverlayState, TlsOverlayStatus

# Global console instance; force_terminal=None respects TTY detection
console = Console(force_terminal=None)
err_console = Console(stderr=True, force_terminal=None)

# ASCII-safe icons when output is not a terminal
_USE_ASCII = not sys.stdout.isatty()

STATUS_STYLES = {
    "ok": ("+" if _USE_ASCII else "✓", "green"),
    "error": ("x" if _USE_ASCII else "✗", "red"),
    "warning": ("!", "yellow"),
    "info": ("i" if _USE_ASCII else "ℹ", "blue"),
    "running": ("+" if _USE_ASCII else "●", "green"),
    "stopped": ("-" if _USE_ASCII else "○", "dim"),
}

OVERLAY_STYLES = {
    OverlayState.ACTIVE: ("running", "active"),
    OverlayState.ACTIVE_UNKNOWN: ("warning", "active (configuration unknown)"),
    OverlayState.INACTIVE: ("stopped", "inactive"),
    OverlayState.ABSENT: ("stopped", "not configured"),
}


def print_success(message: str):
    """Print a success message"""
    icon = "+" if _USE_ASCII else "✓"
    console.print(f"[green]{icon}[/green] {message}")


def print_error(message: str):
    """Print an error message"""
    icon = "x" if _USE_ASCII else "✗"
    err_console.print(f"[red]{icon}[/red] {message}", style="red")


def print_warning(message: str):
    """Print a warning message"""
    err_console.print(f"[yellow]![/yellow] {message}")


def print_info(message: str):
    """Print an info message"""
    icon = "i" if _USE_ASCII else "ℹ"
    console.print(f"[blue]{icon}[/blue] {message}")


def print_json(data) -> None:
    """Print machine-readable output without Rich markup"""
    print(json.dumps(data, indent=2))


def status_icon(status: str) -> Text:
    """Create a styled status icon"""
    icon, style = STATUS_STYLES.get(status, ("?", "dim"))
    return Text(icon, style=style)


def print_result(result: OpResult) -> None:
    """Print one operation outcome, with the failure detail dimmed underneath"""
    if result.ok:
        print_success(result.message)
        return
    print_error(result.message)
    if result.detail:
        err_console.print(Text(result.detail, style="dim"))


def print_batch(batch: BatchResult, title: str) -> None:
    """Print each item of a batch followed by a one-line summary"""
    for result in batch.results:
        print_result(result)
    if batch.ok:
        print_info(f"{title}: {batch.summary()}")
    else:
        print_warning(f"{title}: {batch.summary()}")


def registry_table(entries: list[RegistryEntry]) -> Table:
    """Create a table of registered relay ports"""
    table = Table(title="Relay Ports", show_header=True, header_style="bold cyan")
    table.add_column("Port", style="bold", justify="right")
    table.add_column("Status label", style="cyan")

    for entry in entries:
        table.add_row(str(entry.port), entry.label)
    return table


def unit_state_table(states: list[dict]) -> Table:
    """
    Create a table of supervisor state per relay.

    Args:
        states: Dicts with port, label, unit, active, enabled
    """
    table = Table(title="Relay Units", show_header=True, header_style="bold cyan")
    table.add_column("Port", style="bold", justify="right")
    table.add_column("Label", style="cyan")
    table.add_column("Unit", style="dim")
    table.add_column("Active", justify="center")
    table.add_column("Enabled", justify="center")

    for state in states:
        table.add_row(
            str(state["port"]),
            state["label"],
            state["unit"],
            status_icon("running" if state["active"] else "stopped"),
            status_icon("ok" if state["enabled"] else "stopped"),
        )
    return table


def tls_status_panel(status: TlsOverlayStatus) -> Panel:
    """Create a panel describing the TLS overlay"""
    icon_key, description = OVERLAY_STYLES[status.state]
    lines = [Text.assemble(status_icon(icon_key), f" {description}")]

    if status.config:
        lines.append(Text(f"Listen: {status.config.listen_port}"))
        lines.append(Text(f"Connect: {status.config.connect_address}"))
    lines.append(Text(f"Unit: {status.unit}", style="dim"))

    content = Text("\n").join(lines)
    return Panel(content, title="TLS Overlay", border_style="cyan")


def print_registry(entries: list[RegistryEntry]):
    """Print the registry table"""
    if not entries:
        print_info("No relay ports registered")
        return
    console.print(registry_table(entries))


def print_unit_states(states: list[dict]):
    """Print the unit state table"""
    if not states:
        print_info("No relay ports registered")
        return
    console.print(unit_state_table(states))


def print_tls_status(status: TlsOverlayStatus):
    """Print the TLS overlay panel"""
    console.print(tls_status_panel(status))
