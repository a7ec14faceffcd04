"""
Operator command set.

Validates raw input, then delegates to the registry, the relay unit manager
and the TLS overlay manager. Nothing here touches files or systemd directly.
"""

from __future__ import annotations

import logging

from .config import FleetConfig
from .errors import BatchResult, ErrorKind, OpResult
from .probe import PortProbe
from .registry import PortRegistry, RegistryEntry
from .relay import RelayUnitManager
from .store import FileRecordStore
from .supervisor import SystemdSupervisor
from .tls_overlay import TlsOverlayManager, TlsOverlayStatus
from .validation import InputError, parse_host, parse_port, sanitize_label

logger = logging.getLogger("relayfleet.orchestrator")


def _rejected(error: InputError) -> OpResult:
    return OpResult.failure(error.kind, str(error))


class Orchestrator:
    """Entry point for every operator command."""

    def __init__(self, registry: PortRegistry, relays: RelayUnitManager, tls: TlsOverlayManager):
        self.registry = registry
        self.relays = relays
        self.tls = tls

    @classmethod
    def from_config(cls, config: FleetConfig) -> "Orchestrator":
        """Wire the real collaborators (systemd, psutil, files) for config"""
        probe = PortProbe()
        supervisor = SystemdSupervisor(config.unit_dir, config.systemctl, config.journalctl)
        registry = PortRegistry(FileRecordStore(config.registry_path), config.default_label, probe=probe)
        relays = RelayUnitManager(config, registry, supervisor, probe)
        tls = TlsOverlayManager(config, supervisor, probe, FileRecordStore(config.tls_status_path))
        return cls(registry, relays, tls)

    # ─────────────────────────────────────────────────────────────
    # Relays
    # ─────────────────────────────────────────────────────────────

    def add(self, port, label=None) -> OpResult:
        try:
            port = parse_port(port)
            label = sanitize_label(label)
        except InputError as e:
            return _rejected(e)
        logger.info("Opening port %s", port, extra={"port": port})
        return self.relays.activate(port, label)

    def remove(self, port) -> OpResult:
        try:
            port = parse_port(port)
        except InputError as e:
            return _rejected(e)
        logger.info("Closing port %s", port, extra={"port": port})
        return self.relays.deactivate(port)

    def update(self, port, label) -> OpResult:
        try:
            port = parse_port(port)
            label = sanitize_label(label)
        except InputError as e:
            return _rejected(e)
        return self.relays.update_label(port, label)

    def restart(self, port=None) -> OpResult | BatchResult:
        """Restart one relay, or every registered relay when port is None"""
        if port is None:
            return self.relays.restart_all()
        try:
            port = parse_port(port)
        except InputError as e:
            return _rejected(e)
        return self.relays.restart(port)

    def list(self) -> list[RegistryEntry]:
        return self.registry.list()

    def status(self) -> list[dict]:
        return self.relays.unit_states()

    def logs(self, port=None, tls: bool = False, lines: int = 200) -> tuple[OpResult, str]:
        if tls:
            return OpResult.success("TLS overlay journal"), self.tls.journal(lines)
        try:
            port = parse_port(port)
        except InputError as e:
            return _rejected(e), ""
        return OpResult.success(f"Journal for port {port}", port=port), self.relays.journal(port, lines)

    # ─────────────────────────────────────────────────────────────
    # TLS overlay
    # ─────────────────────────────────────────────────────────────

    def tls_start(self, listen_port, connect_host, connect_port) -> OpResult:
        try:
            listen_port = parse_port(listen_port, "Listen port")
            connect_host = parse_host(connect_host)
            connect_port = parse_port(connect_port, "Connect port")
        except InputError as e:
            return _rejected(e)
        return self.tls.activate(listen_port, connect_host, connect_port)

    def tls_stop(self) -> OpResult:
        return self.tls.deactivate()

    def tls_restart(self) -> OpResult:
        return self.tls.restart()

    def tls_status(self) -> TlsOverlayStatus:
        return self.tls.status()

    def tls_warnings(self) -> list[str]:
        return self.tls.certificate_warnings()

    # ─────────────────────────────────────────────────────────────
    # Uninstall
    # ─────────────────────────────────────────────────────────────

    def uninstall(self) -> BatchResult:
        """
        Remove every relay, the TLS overlay and all generated artifacts.

        Individual failures are recorded and the teardown continues, so the
        command can be re-run against a partially removed installation.
        """
        batch = BatchResult()
        for entry in self.registry.list():
            try:
                batch.add(self.relays.deactivate(entry.port))
            except Exception as e:
                logger.exception("Teardown of port %s failed", entry.port)
                batch.add(
                    OpResult.failure(
                        ErrorKind.SUPERVISOR_FAILURE, f"Teardown of port {entry.port} failed: {e}", port=entry.port
                    )
                )

        try:
            for result in self.relays.sweep_orphans().results:
                batch.add(result)
        except Exception as e:
            logger.exception("Orphan sweep failed")
            batch.add(OpResult.failure(ErrorKind.SUPERVISOR_FAILURE, f"Orphan sweep failed: {e}"))

        try:
            batch.add(self.tls.purge())
        except Exception as e:
            logger.exception("TLS overlay removal failed")
            batch.add(
                OpResult.failure(
                    ErrorKind.SUPERVISOR_FAILURE, f"TLS overlay removal failed: {e}", unit=self.tls.unit_name
                )
            )

        try:
            if self.registry.clear():
                batch.add(OpResult.success("Registry removed"))
        except Exception as e:
            logger.exception("Registry removal failed")
            batch.add(OpResult.failure(ErrorKind.SUPERVISOR_FAILURE, f"Registry removal failed: {e}"))
        return batch
