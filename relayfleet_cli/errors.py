"""Error kinds, operation results and adapter exceptions for relayfleet"""

from dataclasses import dataclass, field
from enum import Enum


class ErrorKind(str, Enum):
    """Closed set of failure kinds surfaced to the operator."""

    INVALID_PORT = "invalid_port"
    INVALID_HOST = "invalid_host"
    INVALID_LABEL = "invalid_label"
    DUPLICATE_ENTRY = "duplicate_entry"
    PORT_UNAVAILABLE = "port_unavailable"
    PORT_IN_USE = "port_in_use"
    NOT_FOUND = "not_found"
    NOT_ACTIVE = "not_active"
    NOT_CONFIGURED = "not_configured"
    SUPERVISOR_FAILURE = "supervisor_failure"
    EXTERNAL_TOOL_FAILURE = "external_tool_failure"


# CLI exit codes per error kind
EXIT_CODES: dict[ErrorKind, int] = {
    ErrorKind.INVALID_PORT: 2,
    ErrorKind.INVALID_HOST: 2,
    ErrorKind.INVALID_LABEL: 2,
    ErrorKind.DUPLICATE_ENTRY: 3,
    ErrorKind.PORT_UNAVAILABLE: 3,
    ErrorKind.PORT_IN_USE: 3,
    ErrorKind.NOT_FOUND: 4,
    ErrorKind.NOT_ACTIVE: 4,
    ErrorKind.NOT_CONFIGURED: 4,
    ErrorKind.SUPERVISOR_FAILURE: 5,
    ErrorKind.EXTERNAL_TOOL_FAILURE: 6,
}


@dataclass
class OpResult:
    """Outcome of a single operation."""

    ok: bool
    message: str
    kind: ErrorKind | None = None
    detail: str = ""
    port: int | None = None
    unit: str | None = None

    @classmethod
    def success(cls, message: str, **kwargs) -> "OpResult":
        return cls(ok=True, message=message, **kwargs)

    @classmethod
    def failure(cls, kind: ErrorKind, message: str, **kwargs) -> "OpResult":
        return cls(ok=False, message=message, kind=kind, **kwargs)

    @property
    def exit_code(self) -> int:
        if self.ok:
            return 0
        return EXIT_CODES.get(self.kind, 1) if self.kind else 1

    def to_dict(self) -> dict:
        return {
            "ok": self.ok,
            "kind": self.kind.value if self.kind else None,
            "message": self.message,
            "detail": self.detail,
            "port": self.port,
            "unit": self.unit,
        }


@dataclass
class BatchResult:
    """Per-item outcomes of a batch operation; failures never abort the batch."""

    results: list[OpResult] = field(default_factory=list)

    def add(self, result: OpResult) -> None:
        self.results.append(result)

    @property
    def ok(self) -> bool:
        return all(r.ok for r in self.results)

    @property
    def failures(self) -> list[OpResult]:
        return [r for r in self.results if not r.ok]

    @property
    def exit_code(self) -> int:
        failed = self.failures
        return failed[0].exit_code if failed else 0

    def summary(self) -> str:
        total = len(self.results)
        failed = len(self.failures)
        if failed == 0:
            return f"{total} item(s) succeeded"
        return f"{total - failed} of {total} item(s) succeeded, {failed} failed"


class RelayFleetError(Exception):
    """Base class for adapter errors."""


class SupervisorError(RelayFleetError):
    """A service manager command failed or timed out."""

    def __init__(self, command: list[str], returncode: int | None, output: str = "", timed_out: bool = False):
        self.command = command
        self.returncode = returncode
        self.timed_out = timed_out
        self.output = output.strip()
        if timed_out:
            reason = "timed out"
        elif returncode is None:
            reason = "failed"
        else:
            reason = f"exited with status {returncode}"
        message = f"'{' '.join(command)}' {reason}"
        if self.output:
            message = f"{message}: {self.output}"
        super().__init__(message)


class ToolError(RelayFleetError):
    """An external tool (package manager, certificate writer) failed."""

    def __init__(self, message: str, output: str = ""):
        self.output = output.strip()
        super().__init__(message)


class ConfigError(RelayFleetError):
    """The configuration file could not be read."""
