"""
Configuration for relayfleet.

Reads /etc/relayfleet/config.yml (or $RELAYFLEET_CONFIG) with:
- Filesystem locations (registry, TLS status record, unit directory)
- Relay invocation defaults (binary, default label, restart policy, limits)
- TLS overlay settings (engine, config and certificate paths)
"""

import copy
import logging
import os
from pathlib import Path
from typing import Any

import yaml

from .errors import ConfigError

logger = logging.getLogger("relayfleet.config")

CONFIG_ENV = "RELAYFLEET_CONFIG"
DEFAULT_CONFIG_FILE = Path("/etc/relayfleet/config.yml")

DEFAULT_CONFIG: dict[str, Any] = {
    "paths": {
        "base_dir": "/opt/relayfleet",
        "registry": None,  # <base_dir>/ports
        "tls_status": None,  # <base_dir>/tls_status
        "unit_dir": "/etc/systemd/system",
    },
    "relay": {
        "binary": "/opt/relayfleet/proxy",
        "default_label": "@RustyProxy",
        "unit_prefix": "relayfleet-proxy",
        "restart": "always",
        "restart_sec": 2,
        "limits": {"NOFILE": 1048576},
    },
    "tls": {
        "engine": "stunnel",
        "package": "stunnel4",
        "unit_name": "relayfleet-tls",
        "config_path": "/etc/stunnel/relayfleet.conf",
        "cert_dir": "/etc/stunnel/relayfleet",
        "common_name": "relayfleet",
        "cert_days": 3650,
    },
    "supervisor": {
        "systemctl": "systemctl",
        "journalctl": "journalctl",
    },
}


def get_config_file() -> Path:
    """Get the config file path, honouring $RELAYFLEET_CONFIG"""
    env_path = os.getenv(CONFIG_ENV)
    if env_path:
        return Path(env_path)
    return DEFAULT_CONFIG_FILE


def deep_merge(base: dict, overlay: dict) -> dict:
    """Recursively merge overlay into a copy of base"""
    merged = copy.deepcopy(base)
    for key, value in overlay.items():
        if key in merged and isinstance(merged[key], dict) and isinstance(value, dict):
            merged[key] = deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


class FleetConfig:
    """
    Read-only view over the merged relayfleet configuration.

    Values missing from the file fall back to DEFAULT_CONFIG.
    """

    def __init__(self, data: dict | None = None, source: Path | None = None):
        self.source = source
        self._data = deep_merge(DEFAULT_CONFIG, data or {})

    @classmethod
    def load(cls, path: Path | None = None) -> "FleetConfig":
        """Load configuration from disk; a missing file yields defaults."""
        config_file = Path(path) if path else get_config_file()
        if not config_file.exists():
            logger.debug("No config file at %s, using defaults", config_file)
            return cls(source=None)

        try:
            with open(config_file, encoding="utf-8") as f:
                loaded = yaml.safe_load(f)
        except (OSError, yaml.YAMLError) as e:
            raise ConfigError(f"Failed to read {config_file}: {e}") from e

        if loaded is None:
            loaded = {}
        if not isinstance(loaded, dict):
            raise ConfigError(f"{config_file} must contain a mapping at the top level")
        return cls(loaded, source=config_file)

    # ─────────────────────────────────────────────────────────────
    # Paths
    # ─────────────────────────────────────────────────────────────

    @property
    def base_dir(self) -> Path:
        return Path(self._data["paths"]["base_dir"])

    @property
    def registry_path(self) -> Path:
        custom = self._data["paths"].get("registry")
        return Path(custom) if custom else self.base_dir / "ports"

    @property
    def tls_status_path(self) -> Path:
        custom = self._data["paths"].get("tls_status")
        return Path(custom) if custom else self.base_dir / "tls_status"

    @property
    def unit_dir(self) -> Path:
        return Path(self._data["paths"]["unit_dir"])

    # ─────────────────────────────────────────────────────────────
    # Relay
    # ─────────────────────────────────────────────────────────────

    @property
    def relay_binary(self) -> str:
        return str(self._data["relay"]["binary"])

    @property
    def default_label(self) -> str:
        return str(self._data["relay"]["default_label"])

    @property
    def unit_prefix(self) -> str:
        return str(self._data["relay"]["unit_prefix"])

    @property
    def restart_policy(self) -> str:
        return str(self._data["relay"]["restart"])

    @property
    def restart_sec(self) -> int:
        return int(self._data["relay"]["restart_sec"])

    @property
    def limits(self) -> dict[str, Any]:
        return dict(self._data["relay"].get("limits") or {})

    # ─────────────────────────────────────────────────────────────
    # TLS overlay
    # ─────────────────────────────────────────────────────────────

    @property
    def tls_engine(self) -> str:
        return str(self._data["tls"]["engine"])

    @property
    def tls_package(self) -> str:
        return str(self._data["tls"]["package"])

    @property
    def tls_unit_name(self) -> str:
        return str(self._data["tls"]["unit_name"])

    @property
    def tls_config_path(self) -> Path:
        return Path(self._data["tls"]["config_path"])

    @property
    def cert_dir(self) -> Path:
        return Path(self._data["tls"]["cert_dir"])

    @property
    def cert_common_name(self) -> str:
        return str(self._data["tls"]["common_name"])

    @property
    def cert_days(self) -> int:
        return int(self._data["tls"]["cert_days"])

    # ─────────────────────────────────────────────────────────────
    # Supervisor
    # ─────────────────────────────────────────────────────────────

    @property
    def systemctl(self) -> str:
        return str(self._data["supervisor"]["systemctl"])

    @property
    def journalctl(self) -> str:
        return str(self._data["supervisor"]["journalctl"])

    @property
    def raw(self) -> dict:
        """Get a copy of the merged configuration"""
        return copy.deepcopy(self._data)
