"""
relayfleet - port registry and systemd lifecycle manager for a fleet of
TCP relays, with a single stunnel TLS overlay
"""

__version__ = "1.0.0"

from .config import FleetConfig
from .errors import BatchResult, ErrorKind, OpResult
from .orchestrator import Orchestrator
from .registry import PortRegistry, RegistryEntry
from .tls_overlay import TlsOverlayConfig, TlsOverlayStatus

__all__ = [
    "FleetConfig",
    "Orchestrator",
    "PortRegistry",
    "RegistryEntry",
    "OpResult",
    "BatchResult",
    "ErrorKind",
    "TlsOverlayConfig",
    "TlsOverlayStatus",
    "__version__",
]
