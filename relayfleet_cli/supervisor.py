"""
systemd adapter.

Writes unit files and drives systemctl. Every command is synchronous;
failures raise SupervisorError with the captured output.
"""

import logging
import subprocess
from pathlib import Path

from .errors import SupervisorError
from .subprocess_timeouts import get_timeout
from .units import UnitDefinition, render_unit

logger = logging.getLogger("relayfleet.supervisor")


def _unit(name: str) -> str:
    return name if name.endswith(".service") else f"{name}.service"


class SystemdSupervisor:
    """Defines, controls and queries systemd service units."""

    def __init__(self, unit_dir: Path, systemctl: str = "systemctl", journalctl: str = "journalctl"):
        self.unit_dir = Path(unit_dir)
        self.systemctl = systemctl
        self.journalctl = journalctl

    def _run(self, args: list[str], operation: str = "systemctl") -> subprocess.CompletedProcess:
        timeout = get_timeout(operation)
        logger.debug("Running: %s", " ".join(args))
        try:
            return subprocess.run(
                args,
                capture_output=True,
                text=True,
                check=False,
                timeout=timeout,
            )
        except subprocess.TimeoutExpired as e:
            raise SupervisorError(args, None, f"no response after {timeout}s", timed_out=True) from e
        except OSError as e:
            raise SupervisorError(args, None, str(e)) from e

    def _control(self, verb: str, name: str, operation: str = "systemctl") -> None:
        args = [self.systemctl, verb, _unit(name)]
        result = self._run(args, operation)
        if result.returncode != 0:
            raise SupervisorError(args, result.returncode, result.stderr or result.stdout)

    # ─────────────────────────────────────────────────────────────
    # Definitions
    # ─────────────────────────────────────────────────────────────

    def unit_path(self, name: str) -> Path:
        return self.unit_dir / _unit(name)

    def define(self, definition: UnitDefinition) -> str:
        """Write the unit file for definition, replacing any previous one"""
        path = self.unit_path(definition.name)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(render_unit(definition), encoding="utf-8")
            path.chmod(0o644)
        except OSError as e:
            raise SupervisorError(["write", str(path)], None, str(e)) from e
        logger.info("Wrote unit %s", path)
        return definition.name

    def undefine(self, name: str) -> bool:
        """Delete a unit file; an absent file is not an error"""
        path = self.unit_path(name)
        if not path.exists():
            return False
        path.unlink(missing_ok=True)
        logger.info("Removed unit %s", path)
        return True

    def is_defined(self, name: str) -> bool:
        return self.unit_path(name).exists()

    def definitions(self, prefix: str) -> list[str]:
        """Names of defined units whose name starts with prefix"""
        if not self.unit_dir.exists():
            return []
        return sorted(p.name.removesuffix(".service") for p in self.unit_dir.glob(f"{prefix}*.service"))

    # ─────────────────────────────────────────────────────────────
    # Control
    # ─────────────────────────────────────────────────────────────

    def reload(self) -> None:
        args = [self.systemctl, "daemon-reload"]
        result = self._run(args)
        if result.returncode != 0:
            raise SupervisorError(args, result.returncode, result.stderr or result.stdout)

    def enable(self, name: str) -> None:
        self._control("enable", name)

    def disable(self, name: str) -> None:
        self._control("disable", name)

    def start(self, name: str) -> None:
        self._control("start", name)

    def stop(self, name: str) -> None:
        self._control("stop", name)

    def restart(self, name: str) -> None:
        self._control("restart", name, "systemctl_restart")

    # ─────────────────────────────────────────────────────────────
    # Queries
    # ─────────────────────────────────────────────────────────────

    def is_active(self, name: str) -> bool:
        result = self._run([self.systemctl, "is-active", "--quiet", _unit(name)], "systemctl_query")
        return result.returncode == 0

    def is_enabled(self, name: str) -> bool:
        result = self._run([self.systemctl, "is-enabled", "--quiet", _unit(name)], "systemctl_query")
        return result.returncode == 0

    def journal_tail(self, name: str, lines: int = 200) -> str:
        """Last lines of the unit's journal, or an empty string if unavailable"""
        args = [self.journalctl, "-u", _unit(name), "-n", str(lines), "--no-pager"]
        try:
            result = self._run(args, "journalctl")
        except SupervisorError as e:
            logger.warning("Could not read journal for %s: %s", name, e)
            return ""
        return result.stdout
