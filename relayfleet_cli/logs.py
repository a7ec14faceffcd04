"""Journal tails for relay and TLS overlay units."""

from .errors import ErrorKind, OpResult
from .output import console, print_info, print_result, print_warning

DEFAULT_LINES = 200


def print_journal(text: str, unit: str | None = None) -> None:
    """Print journal lines verbatim, or a note when there are none"""
    if not text.strip():
        print_warning(f"No journal entries for {unit}" if unit else "No journal entries")
        return
    console.print(text, markup=False, highlight=False)


def show_failure_journal(result: OpResult, journal, lines: int = 20) -> None:
    """
    After a supervisor failure, show the last journal lines of the unit.

    Args:
        result: Failed operation result
        journal: Callable(unit_name, lines) -> str
        lines: Number of lines to show
    """
    if result.ok or result.kind != ErrorKind.SUPERVISOR_FAILURE or not result.unit:
        return
    text = journal(result.unit, lines)
    if text.strip():
        print_info(f"Last {lines} journal lines for {result.unit}:")
        print_journal(text)


def cmd_logs(orchestrator, port=None, tls: bool = False, lines: int = DEFAULT_LINES) -> OpResult:
    """Tail the journal of one relay unit, or of the TLS overlay.

    Returns:
        The operation result (failure only for invalid input)
    """
    result, text = orchestrator.logs(port, tls=tls, lines=lines)
    if not result.ok:
        print_result(result)
        return result
    unit = orchestrator.tls.unit_name if tls else orchestrator.relays.unit_name(result.port)
    print_journal(text, unit)
    return result
