"""
Line-oriented record stores.

The port registry and the TLS status record are both small lists of text
records. Managers receive a store instead of a file path so tests can use
MemoryRecordStore.
"""

import logging
import sys
from collections.abc import Callable, Iterable
from pathlib import Path
from typing import Protocol

logger = logging.getLogger("relayfleet.store")


class RecordStore(Protocol):
    """Durable ordered list of one-line records."""

    def load(self) -> list[str]: ...

    def save(self, records: Iterable[str]) -> None: ...

    def append(self, record: str) -> None: ...

    def remove_matching(self, predicate: Callable[[str], bool]) -> int: ...

    def delete(self) -> bool: ...


class FileRecordStore:
    """Records stored one per line in a text file."""

    def __init__(self, path: Path):
        self.path = Path(path)

    def exists(self) -> bool:
        return self.path.exists()

    def load(self) -> list[str]:
        """Read all non-blank records; a missing file is an empty store"""
        if not self.path.exists():
            return []
        text = self.path.read_text(encoding="utf-8")
        return [line.strip() for line in text.splitlines() if line.strip()]

    def save(self, records: Iterable[str]) -> None:
        """Replace the file contents atomically with owner-only permissions"""
        lines = [r for r in records]
        tmp = self.path.with_name(self.path.name + ".tmp")
        content = "".join(f"{line}\n" for line in lines)
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp.write_text(content, encoding="utf-8")
            if sys.platform != "win32":
                tmp.chmod(0o600)
            tmp.replace(self.path)
        except OSError as e:
            tmp.unlink(missing_ok=True)
            raise RuntimeError(f"Failed to save {self.path}: {e}") from e
        logger.debug("Saved %d record(s) to %s", len(lines), self.path)

    def append(self, record: str) -> None:
        records = self.load()
        records.append(record)
        self.save(records)

    def remove_matching(self, predicate: Callable[[str], bool]) -> int:
        records = self.load()
        kept = [r for r in records if not predicate(r)]
        removed = len(records) - len(kept)
        if removed:
            self.save(kept)
        return removed

    def delete(self) -> bool:
        """Remove the backing file; returns False if it was already absent"""
        if not self.path.exists():
            return False
        self.path.unlink(missing_ok=True)
        return True


class MemoryRecordStore:
    """In-memory store with the same contract as FileRecordStore."""

    def __init__(self, records: Iterable[str] | None = None):
        self._records: list[str] | None = list(records) if records is not None else None

    def exists(self) -> bool:
        return self._records is not None

    def load(self) -> list[str]:
        return list(self._records or [])

    def save(self, records: Iterable[str]) -> None:
        self._records = list(records)

    def append(self, record: str) -> None:
        self._records = self.load() + [record]

    def remove_matching(self, predicate: Callable[[str], bool]) -> int:
        records = self.load()
        kept = [r for r in records if not predicate(r)]
        if len(kept) != len(records):
            self._records = kept
        return len(records) - len(kept)

    def delete(self) -> bool:
        existed = self._records is not None
        self._records = None
        return existed
