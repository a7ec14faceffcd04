"""
Relay unit lifecycle.

Turns registry entries into supervised relay processes:
- activate: define, enable, start, confirm once, register (rollback on failure)
- deactivate: repeatable teardown; missing units are not errors
- update_label: rewrite the invocation of a running relay
- restart_all: per-entry deactivate + activate, failures isolated
"""

import logging

from .config import FleetConfig
from .errors import BatchResult, ErrorKind, OpResult, SupervisorError
from .registry import PortRegistry
from .subprocess_timeouts import get_timeout
from .units import port_from_unit_name, relay_definition, relay_unit_name

logger = logging.getLogger("relayfleet.relay")


class RelayUnitManager:
    """Creates, replaces and destroys relay units for registry entries."""

    def __init__(self, config: FleetConfig, registry: PortRegistry, supervisor, probe):
        self.config = config
        self.registry = registry
        self.supervisor = supervisor
        self.probe = probe

    def unit_name(self, port: int) -> str:
        return relay_unit_name(self.config, port)

    def _best_effort(self, action, name: str) -> None:
        """Run a teardown step; an already-stopped or absent unit is fine"""
        try:
            action(name)
        except SupervisorError as e:
            logger.debug("Ignoring teardown failure for %s: %s", name, e)

    def _rollback(self, name: str) -> None:
        self._best_effort(self.supervisor.stop, name)
        self._best_effort(self.supervisor.disable, name)
        self.supervisor.undefine(name)
        try:
            self.supervisor.reload()
        except SupervisorError as e:
            logger.warning("daemon-reload failed during rollback of %s: %s", name, e)
        logger.info("Rolled back unit %s", name)

    # ─────────────────────────────────────────────────────────────
    # Operations
    # ─────────────────────────────────────────────────────────────

    def activate(self, port: int, label: str | None = None) -> OpResult:
        """Start a relay on port and register it once it is confirmed active."""
        name = self.unit_name(port)
        label = self.registry.normalize_label(label)

        if self.registry.contains(port):
            return OpResult.failure(ErrorKind.DUPLICATE_ENTRY, f"Port {port} is already registered", port=port)
        if self.probe.is_listening(port):
            return OpResult.failure(ErrorKind.PORT_IN_USE, f"Port {port} is already in use", port=port)

        try:
            self.supervisor.define(relay_definition(self.config, port, label))
            self.supervisor.reload()
            self.supervisor.enable(name)
            self.supervisor.start(name)
        except SupervisorError as e:
            logger.error("Failed to start %s: %s", name, e, extra={"port": port, "unit": name})
            self._rollback(name)
            return OpResult.failure(
                ErrorKind.SUPERVISOR_FAILURE,
                f"Failed to start relay on port {port}",
                detail=str(e),
                port=port,
                unit=name,
            )

        try:
            active = self.supervisor.is_active(name)
        except SupervisorError as e:
            logger.error("Could not confirm %s: %s", name, e, extra={"port": port, "unit": name})
            active = False
        if not active:
            logger.error("Unit %s did not become active", name, extra={"port": port, "unit": name})
            self._rollback(name)
            return OpResult.failure(
                ErrorKind.SUPERVISOR_FAILURE,
                f"Relay on port {port} did not become active; check the service logs",
                port=port,
                unit=name,
            )

        try:
            registered = self.registry.add(port, label, expect_listener=True)
        except RuntimeError as e:
            logger.error("Failed to register port %s: %s", port, e, extra={"port": port, "unit": name})
            self._rollback(name)
            return OpResult.failure(
                ErrorKind.SUPERVISOR_FAILURE,
                f"Failed to register port {port}",
                detail=str(e),
                port=port,
                unit=name,
            )
        if not registered.ok:
            self._rollback(name)
            return registered

        logger.info("Relay active on port %s", port, extra={"port": port, "unit": name})
        return OpResult.success(f"Port {port} opened ({label})", port=port, unit=name)

    def deactivate(self, port: int) -> OpResult:
        """
        Tear down the relay on port and drop its registry entry.

        Safe to repeat: a missing unit, a stopped process or a missing
        registry entry are all treated as already done.
        """
        name = self.unit_name(port)
        registered = self.registry.contains(port)
        defined = self.supervisor.is_defined(name)

        self._best_effort(self.supervisor.disable, name)
        self._best_effort(self.supervisor.stop, name)
        self.supervisor.undefine(name)

        if registered or defined:
            # Only listeners of a relay we managed are killed
            killed = self.probe.terminate_listeners(port, timeout=get_timeout("listener_terminate"))
            if killed:
                logger.warning("Killed %d lingering process(es) on port %s", killed, port, extra={"port": port})

        try:
            self.supervisor.reload()
        except SupervisorError as e:
            logger.warning("daemon-reload failed after removing %s: %s", name, e)

        if registered:
            self.registry.remove(port)
            return OpResult.success(f"Port {port} closed", port=port, unit=name)
        if defined:
            return OpResult.success(f"Removed orphaned unit for port {port}", port=port, unit=name)
        return OpResult.success(f"Port {port} was not open", port=port, unit=name)

    def update_label(self, port: int, label: str | None) -> OpResult:
        """Change the status label of a running relay and restart it."""
        name = self.unit_name(port)
        entry = self.registry.get(port)
        if entry is None:
            return OpResult.failure(ErrorKind.NOT_FOUND, f"Port {port} is not registered", port=port)
        if not self.probe.is_listening(port):
            return OpResult.failure(ErrorKind.NOT_ACTIVE, f"Port {port} is not active", port=port, unit=name)

        label = self.registry.normalize_label(label)
        try:
            self.supervisor.define(relay_definition(self.config, port, label))
            self.supervisor.reload()
            self.supervisor.restart(name)
        except SupervisorError as e:
            # Put the old invocation back so the file matches the registry
            try:
                self.supervisor.define(relay_definition(self.config, port, entry.label))
                self.supervisor.reload()
            except SupervisorError as restore_error:
                logger.warning("Could not restore previous unit for port %s: %s", port, restore_error)
            return OpResult.failure(
                ErrorKind.SUPERVISOR_FAILURE,
                f"Failed to restart relay on port {port}",
                detail=str(e),
                port=port,
                unit=name,
            )

        self.registry.update(port, label)
        return OpResult.success(f"Port {port} status updated to {label}", port=port, unit=name)

    def restart(self, port: int) -> OpResult:
        """Deactivate then activate one registered relay with its stored label."""
        entry = self.registry.get(port)
        if entry is None:
            return OpResult.failure(ErrorKind.NOT_FOUND, f"Port {port} is not registered", port=port)
        self.deactivate(port)
        result = self.activate(port, entry.label)
        if result.ok:
            result.message = f"Port {port} restarted"
        return result

    def restart_all(self) -> BatchResult:
        """Restart every registered relay in registry order."""
        batch = BatchResult()
        try:
            for result in self.sweep_orphans().results:
                batch.add(result)
        except Exception as e:
            logger.exception("Orphan sweep failed")
            batch.add(OpResult.failure(ErrorKind.SUPERVISOR_FAILURE, f"Orphan sweep failed: {e}"))
        for entry in self.registry.list():
            try:
                batch.add(self.restart(entry.port))
            except Exception as e:
                logger.exception("Restart of port %s failed", entry.port)
                batch.add(
                    OpResult.failure(
                        ErrorKind.SUPERVISOR_FAILURE,
                        f"Restart of port {entry.port} failed: {e}",
                        port=entry.port,
                    )
                )
        return batch

    def orphaned_units(self) -> list[str]:
        """Relay unit definitions with no registry entry"""
        registered = {e.port for e in self.registry.list()}
        orphans = []
        for name in self.supervisor.definitions(self.config.unit_prefix):
            port = port_from_unit_name(self.config, name)
            if port is not None and port not in registered:
                orphans.append(name)
        return orphans

    def sweep_orphans(self) -> BatchResult:
        """Tear down definitions that have no registry entry."""
        batch = BatchResult()
        for name in self.orphaned_units():
            port = port_from_unit_name(self.config, name)
            try:
                batch.add(self.deactivate(port))
            except Exception as e:
                logger.exception("Teardown of orphaned unit %s failed", name)
                batch.add(
                    OpResult.failure(
                        ErrorKind.SUPERVISOR_FAILURE,
                        f"Teardown of orphaned unit {name} failed: {e}",
                        port=port,
                        unit=name,
                    )
                )
        return batch

    def unit_states(self) -> list[dict]:
        """Supervisor state for every registered relay"""
        states = []
        for entry in self.registry.list():
            name = self.unit_name(entry.port)
            states.append(
                {
                    "port": entry.port,
                    "label": entry.label,
                    "unit": name,
                    "active": self.supervisor.is_active(name),
                    "enabled": self.supervisor.is_enabled(name),
                }
            )
        return states

    def journal(self, port: int, lines: int = 200) -> str:
        return self.supervisor.journal_tail(self.unit_name(port), lines)
