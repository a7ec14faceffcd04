"""
Port registry - the durable list of ports that should have a relay running.

Records are stored as ``port|label``, one per line, in insertion order.
A bare ``port`` line is read with the default label.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from .errors import ErrorKind, OpResult
from .store import RecordStore
from .validation import is_valid_port

logger = logging.getLogger("relayfleet.registry")

SEPARATOR = "|"


@dataclass(frozen=True)
class RegistryEntry:
    port: int
    label: str

    def to_record(self) -> str:
        return f"{self.port}{SEPARATOR}{self.label}"


def parse_record(record: str, default_label: str) -> RegistryEntry | None:
    """Parse one stored line; returns None for lines that do not parse"""
    port_text, sep, label = record.strip().partition(SEPARATOR)
    port_text = port_text.strip()
    if not port_text.isdigit():
        return None
    port = int(port_text)
    if not is_valid_port(port):
        return None
    label = label.strip() if sep else ""
    return RegistryEntry(port=port, label=label or default_label)


def _record_port(record: str) -> int | None:
    port_text = record.strip().partition(SEPARATOR)[0].strip()
    return int(port_text) if port_text.isdigit() else None


class PortRegistry:
    """
    Desired-state registry of relay ports.

    Every read goes to the store, so the registry always reflects what is
    on disk at call time.
    """

    def __init__(self, store: RecordStore, default_label: str, probe=None):
        self.store = store
        self.default_label = default_label
        self.probe = probe

    def normalize_label(self, label: str | None) -> str:
        label = (label or "").strip()
        return label or self.default_label

    def restore(self) -> list[RegistryEntry]:
        """Reload entries from the store; a missing store is an empty registry"""
        entries = self.list()
        logger.debug("Restored %d registry entr(ies)", len(entries))
        return entries

    def list(self) -> list[RegistryEntry]:
        entries = []
        seen = set()
        for record in self.store.load():
            entry = parse_record(record, self.default_label)
            if entry is None:
                logger.warning("Skipping unparseable registry record: %r", record)
                continue
            if entry.port in seen:
                logger.warning("Skipping duplicate registry record for port %s", entry.port)
                continue
            seen.add(entry.port)
            entries.append(entry)
        return entries

    def get(self, port: int) -> RegistryEntry | None:
        for entry in self.list():
            if entry.port == port:
                return entry
        return None

    def contains(self, port: int) -> bool:
        return self.get(port) is not None

    def add(self, port: int, label: str | None = None, expect_listener: bool = False) -> OpResult:
        """
        Append an entry.

        expect_listener: the caller has just started the relay for this
        port, so a listener on it is the relay itself and not a conflict.
        """
        if not is_valid_port(port):
            return OpResult.failure(ErrorKind.INVALID_PORT, f"Port must be between 1 and 65535 (got {port})", port=port)
        if self.contains(port):
            return OpResult.failure(ErrorKind.DUPLICATE_ENTRY, f"Port {port} is already registered", port=port)
        if not expect_listener and self.probe is not None and self.probe.is_listening(port):
            return OpResult.failure(
                ErrorKind.PORT_UNAVAILABLE, f"Port {port} is already bound by another process", port=port
            )

        entry = RegistryEntry(port=port, label=self.normalize_label(label))
        self.store.append(entry.to_record())
        logger.info("Registered port %s", port, extra={"port": port})
        return OpResult.success(f"Port {port} registered", port=port)

    def remove(self, port: int) -> OpResult:
        if not self.contains(port):
            return OpResult.failure(ErrorKind.NOT_FOUND, f"Port {port} is not registered", port=port)
        self.store.remove_matching(lambda record: _record_port(record) == port)
        logger.info("Unregistered port %s", port, extra={"port": port})
        return OpResult.success(f"Port {port} unregistered", port=port)

    def update(self, port: int, label: str | None) -> OpResult:
        """Replace the label of an entry, keeping its position"""
        entries = self.list()
        if not any(e.port == port for e in entries):
            return OpResult.failure(ErrorKind.NOT_FOUND, f"Port {port} is not registered", port=port)
        new_label = self.normalize_label(label)
        updated = [RegistryEntry(e.port, new_label) if e.port == port else e for e in entries]
        self.store.save(e.to_record() for e in updated)
        logger.info("Updated label for port %s", port, extra={"port": port})
        return OpResult.success(f"Port {port} label set to {new_label}", port=port)

    def clear(self) -> bool:
        """Delete the backing store; returns False if it was already absent"""
        removed = self.store.delete()
        if removed:
            logger.info("Registry store removed")
        return removed
