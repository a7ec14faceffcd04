"""
systemd unit definitions for relays and the TLS overlay.

A definition is derived entirely from its inputs; changing a relay label
produces a new definition that replaces the old file.
"""

from dataclasses import dataclass, field

from .config import FleetConfig


@dataclass(frozen=True)
class UnitDefinition:
    """A supervised long-running process."""

    name: str  # without the .service suffix
    description: str
    exec_args: tuple[str, ...]
    restart: str = "always"
    restart_sec: int = 2
    limits: dict = field(default_factory=dict)

    @property
    def filename(self) -> str:
        return f"{self.name}.service"


def quote_exec_arg(arg: str) -> str:
    """Quote one argument for an ExecStart= line"""
    # systemd expands % specifiers and $VAR references inside ExecStart
    escaped = arg.replace("%", "%%").replace("$", "$$")
    if escaped and not any(c in escaped for c in ' \t"\'\\;'):
        return escaped
    escaped = escaped.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def render_unit(definition: UnitDefinition) -> str:
    """Render a definition as systemd unit file text."""
    exec_start = " ".join(quote_exec_arg(a) for a in definition.exec_args)
    lines = [
        "# Managed by relayfleet - changes will be overwritten",
        "[Unit]",
        f"Description={definition.description}",
        "After=network-online.target",
        "Wants=network-online.target",
        "",
        "[Service]",
        "Type=simple",
        f"ExecStart={exec_start}",
        f"Restart={definition.restart}",
        f"RestartSec={definition.restart_sec}",
    ]
    for key, value in definition.limits.items():
        lines.append(f"Limit{str(key).upper()}={value}")
    lines.extend(
        [
            f"SyslogIdentifier={definition.name}",
            "",
            "[Install]",
            "WantedBy=multi-user.target",
            "",
        ]
    )
    return "\n".join(lines)


def relay_unit_name(config: FleetConfig, port: int) -> str:
    return f"{config.unit_prefix}{port}"


def relay_definition(config: FleetConfig, port: int, label: str) -> UnitDefinition:
    """Build the relay definition for one registry entry"""
    return UnitDefinition(
        name=relay_unit_name(config, port),
        description=f"relayfleet relay on port {port}",
        exec_args=(config.relay_binary, "--port", str(port), "--status", label),
        restart=config.restart_policy,
        restart_sec=config.restart_sec,
        limits=config.limits,
    )


def port_from_unit_name(config: FleetConfig, name: str) -> int | None:
    """Recover the port from a relay unit name, or None if it is not one"""
    stem = name.removesuffix(".service")
    if not stem.startswith(config.unit_prefix):
        return None
    suffix = stem[len(config.unit_prefix) :]
    return int(suffix) if suffix.isdigit() else None


def tls_definition(config: FleetConfig, engine_path: str) -> UnitDefinition:
    """Build the TLS overlay definition (engine runs in the foreground)"""
    return UnitDefinition(
        name=config.tls_unit_name,
        description="relayfleet TLS overlay",
        exec_args=(engine_path, str(config.tls_config_path)),
        restart="on-failure",
        restart_sec=config.restart_sec,
        limits={},
    )
