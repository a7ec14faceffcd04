"""
TLS overlay lifecycle (stunnel in front of one backend endpoint).

Implements the singleton ownership model:
- At most one overlay; activating again replaces its configuration
- Certificate material is generated once and reused
- The status record (listen|host|port) is what `restart` recovers from
- Reconfiguring on the overlay's own listen port is allowed
"""

import logging
import shutil
from dataclasses import dataclass
from enum import Enum

from .certificates import (
    CertificateMaterial,
    check_certificate_expiration,
    check_key_permissions,
    ensure_certificate,
)
from .config import FleetConfig
from .errors import ErrorKind, OpResult, SupervisorError, ToolError
from .installer import ensure_package
from .store import RecordStore
from .units import tls_definition

logger = logging.getLogger("relayfleet.tls")

SEPARATOR = "|"


@dataclass(frozen=True)
class TlsOverlayConfig:
    listen_port: int
    connect_host: str
    connect_port: int

    def to_record(self) -> str:
        return f"{self.listen_port}{SEPARATOR}{self.connect_host}{SEPARATOR}{self.connect_port}"

    @classmethod
    def from_record(cls, record: str) -> "TlsOverlayConfig | None":
        parts = record.strip().split(SEPARATOR)
        if len(parts) != 3:
            return None
        listen, host, connect = (p.strip() for p in parts)
        if not (listen.isdigit() and connect.isdigit() and host):
            return None
        return cls(listen_port=int(listen), connect_host=host, connect_port=int(connect))

    @property
    def connect_address(self) -> str:
        return f"{self.connect_host}:{self.connect_port}"


class OverlayState(str, Enum):
    ABSENT = "absent"
    ACTIVE = "active"
    ACTIVE_UNKNOWN = "active_unknown"  # running, but no status record
    INACTIVE = "inactive"  # status record present, process not running


@dataclass
class TlsOverlayStatus:
    state: OverlayState
    config: TlsOverlayConfig | None
    unit: str

    @property
    def active(self) -> bool:
        return self.state in (OverlayState.ACTIVE, OverlayState.ACTIVE_UNKNOWN)

    def to_dict(self) -> dict:
        return {
            "state": self.state.value,
            "active": self.active,
            "unit": self.unit,
            "listen_port": self.config.listen_port if self.config else None,
            "connect_host": self.config.connect_host if self.config else None,
            "connect_port": self.config.connect_port if self.config else None,
        }


def render_engine_config(overlay: TlsOverlayConfig, material: CertificateMaterial) -> str:
    """Render the stunnel configuration for one overlay"""
    return "\n".join(
        [
            "; Managed by relayfleet - changes will be overwritten",
            "foreground = yes",
            "pid =",
            "",
            "[relayfleet]",
            "client = no",
            f"cert = {material.cert_path}",
            f"key = {material.key_path}",
            f"accept = {overlay.listen_port}",
            f"connect = {overlay.connect_address}",
            "",
        ]
    )


class TlsOverlayManager:
    """Owns the single TLS overlay process, its config file and status record."""

    def __init__(
        self,
        config: FleetConfig,
        supervisor,
        probe,
        status_store: RecordStore,
        ensure_engine=ensure_package,
        ensure_cert=ensure_certificate,
    ):
        self.config = config
        self.supervisor = supervisor
        self.probe = probe
        self.status_store = status_store
        self.ensure_engine = ensure_engine
        self.ensure_cert = ensure_cert

    @property
    def unit_name(self) -> str:
        return self.config.tls_unit_name

    def read_record(self) -> TlsOverlayConfig | None:
        records = self.status_store.load()
        if not records:
            return None
        overlay = TlsOverlayConfig.from_record(records[0])
        if overlay is None:
            logger.warning("Ignoring malformed TLS status record: %r", records[0])
        return overlay

    def status(self) -> TlsOverlayStatus:
        active = self.supervisor.is_active(self.unit_name)
        overlay = self.read_record()
        if active:
            state = OverlayState.ACTIVE if overlay else OverlayState.ACTIVE_UNKNOWN
        else:
            state = OverlayState.INACTIVE if overlay else OverlayState.ABSENT
        return TlsOverlayStatus(state=state, config=overlay, unit=self.unit_name)

    def _best_effort(self, action) -> None:
        try:
            action(self.unit_name)
        except SupervisorError as e:
            logger.debug("Ignoring teardown failure for %s: %s", self.unit_name, e)

    def _discard(self, previous: TlsOverlayConfig | None = None) -> None:
        """
        Remove everything an unsuccessful activation may have left behind.

        previous: the record of the overlay being replaced; it is kept so
        a later restart can bring the last working configuration back.
        """
        self._best_effort(self.supervisor.stop)
        self._best_effort(self.supervisor.disable)
        self.supervisor.undefine(self.unit_name)
        self.config.tls_config_path.unlink(missing_ok=True)
        if previous is None:
            self.status_store.delete()
        else:
            self.status_store.save([previous.to_record()])
        try:
            self.supervisor.reload()
        except SupervisorError as e:
            logger.warning("daemon-reload failed while discarding TLS overlay: %s", e)

    # ─────────────────────────────────────────────────────────────
    # Operations
    # ─────────────────────────────────────────────────────────────

    def activate(self, listen_port: int, connect_host: str, connect_port: int) -> OpResult:
        """Install, configure and start the overlay, replacing any previous one."""
        overlay = TlsOverlayConfig(listen_port, connect_host, connect_port)
        name = self.unit_name

        try:
            engine = self.ensure_engine(self.config.tls_engine, self.config.tls_package)
            material, created = self.ensure_cert(
                self.config.cert_dir, self.config.cert_common_name, self.config.cert_days
            )
        except ToolError as e:
            logger.error("TLS prerequisites failed: %s", e)
            return OpResult.failure(
                ErrorKind.EXTERNAL_TOOL_FAILURE, str(e), detail=e.output, port=listen_port, unit=name
            )
        if created:
            logger.info("Created certificate material in %s", self.config.cert_dir)

        current = self.status()
        if self.probe.is_listening(listen_port):
            owned = current.active and current.config is not None and current.config.listen_port == listen_port
            if not owned:
                return OpResult.failure(
                    ErrorKind.PORT_IN_USE, f"Port {listen_port} is already in use", port=listen_port, unit=name
                )
            logger.info("Reconfiguring TLS overlay in place on port %s", listen_port)

        try:
            self.config.tls_config_path.parent.mkdir(parents=True, exist_ok=True)
            self.config.tls_config_path.write_text(render_engine_config(overlay, material), encoding="utf-8")
        except OSError as e:
            return OpResult.failure(
                ErrorKind.EXTERNAL_TOOL_FAILURE,
                f"Failed to write {self.config.tls_config_path}",
                detail=str(e),
                port=listen_port,
                unit=name,
            )

        try:
            self.supervisor.define(tls_definition(self.config, engine))
            self.supervisor.reload()
            self.supervisor.enable(name)
            self.supervisor.restart(name)
        except SupervisorError as e:
            logger.error("Failed to start TLS overlay: %s", e, extra={"unit": name})
            self._discard(current.config)
            return OpResult.failure(
                ErrorKind.SUPERVISOR_FAILURE, "Failed to start TLS overlay", detail=str(e), port=listen_port, unit=name
            )

        if not self.supervisor.is_active(name):
            self._discard(current.config)
            return OpResult.failure(
                ErrorKind.SUPERVISOR_FAILURE,
                "TLS overlay did not become active; check the service logs",
                port=listen_port,
                unit=name,
            )

        self.status_store.save([overlay.to_record()])
        verb = "reconfigured" if current.active else "active"
        return OpResult.success(
            f"TLS overlay {verb}: port {listen_port} -> {overlay.connect_address}", port=listen_port, unit=name
        )

    def deactivate(self) -> OpResult:
        """Stop the overlay and forget its configuration; certificates are kept."""
        name = self.unit_name
        if self.supervisor.is_active(name):
            try:
                self.supervisor.stop(name)
            except SupervisorError as e:
                return OpResult.failure(
                    ErrorKind.SUPERVISOR_FAILURE, "Failed to stop TLS overlay", detail=str(e), unit=name
                )
        self._best_effort(self.supervisor.disable)
        self.status_store.delete()
        return OpResult.success("TLS overlay stopped", unit=name)

    def restart(self) -> OpResult:
        """Deactivate and re-activate with the recorded parameters."""
        overlay = self.read_record()
        if overlay is None:
            return OpResult.failure(
                ErrorKind.NOT_CONFIGURED, "TLS overlay has no recorded configuration", unit=self.unit_name
            )
        stopped = self.deactivate()
        if not stopped.ok:
            return stopped
        result = self.activate(overlay.listen_port, overlay.connect_host, overlay.connect_port)
        if not result.ok and self.read_record() is None:
            self.status_store.save([overlay.to_record()])
        return result

    def purge(self) -> OpResult:
        """Deactivate and delete every overlay artifact, certificates included."""
        try:
            result = self.deactivate()
        except SupervisorError as e:
            logger.error("Failed to stop TLS overlay: %s", e, extra={"unit": self.unit_name})
            result = OpResult.failure(
                ErrorKind.SUPERVISOR_FAILURE, "Failed to stop TLS overlay", detail=str(e), unit=self.unit_name
            )
        self.supervisor.undefine(self.unit_name)
        self.config.tls_config_path.unlink(missing_ok=True)
        shutil.rmtree(self.config.cert_dir, ignore_errors=True)
        try:
            self.supervisor.reload()
        except SupervisorError as e:
            logger.warning("daemon-reload failed after removing TLS overlay: %s", e)
        if not result.ok:
            return result
        return OpResult.success("TLS overlay removed", unit=self.unit_name)

    def journal(self, lines: int = 200) -> str:
        return self.supervisor.journal_tail(self.unit_name, lines)

    def certificate_warnings(self) -> list[str]:
        """Expiry and key permission problems of the existing material"""
        material = CertificateMaterial.in_dir(self.config.cert_dir)
        if not material.exists():
            return []
        warnings = []
        expiring, _, message = check_certificate_expiration(material.cert_path)
        if expiring:
            warnings.append(message)
        secure, message = check_key_permissions(material.key_path)
        if not secure:
            warnings.append(message)
        return warnings
