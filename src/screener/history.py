"""Bounded history of screener runs.

The store keeps at most ``max_history`` entries and evicts the oldest first.
Persistence is delegated to a :class:`HistoryBackend` so the eviction rule is
independent of the storage medium.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
import uuid
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable

from pydantic import TypeAdapter, ValidationError

from screener.exceptions import NotFoundError, StorageError
from screener.types import (
    HISTORY_CANDLES,
    MAX_HISTORY,
    EntryId,
    HistoryEntry,
    ScanParams,
    ScanResult,
)

logger = logging.getLogger(__name__)

_ENTRIES = TypeAdapter(list[HistoryEntry])

# Append locks shared by every store writing to the same medium
_APPEND_LOCKS: dict[tuple[str, object], threading.Lock] = {}
_APPEND_LOCKS_GUARD = threading.Lock()


class HistoryBackend(ABC):
    """Abstract persistence medium for history entries."""

    @abstractmethod
    def load(self) -> list[HistoryEntry]:
        """Return all stored entries, oldest first.

        :raises StorageError: If stored data cannot be read.
        """
        ...

    @abstractmethod
    def save(self, entries: list[HistoryEntry]) -> None:
        """Replace the stored entries.

        :raises StorageError: If the entries cannot be written.
        """
        ...

    def lock_key(self) -> tuple[str, object]:
        """Identity of the storage medium; stores sharing a key share one append lock."""
        return (type(self).__name__, id(self))


class MemoryHistoryBackend(HistoryBackend):
    """Keeps entries in process memory.

    Entries are deep-copied in both directions, so stored results never change
    through objects handed to or returned from the backend.
    """

    def __init__(self, entries: Iterable[HistoryEntry] | None = None) -> None:
        self._entries: list[HistoryEntry] = _copy_entries(entries or [])

    def load(self) -> list[HistoryEntry]:
        return _copy_entries(self._entries)

    def save(self, entries: list[HistoryEntry]) -> None:
        self._entries = _copy_entries(entries)


class JsonFileHistoryBackend(HistoryBackend):
    """Stores entries as a JSON array in a single file.

    A missing file reads as an empty history. Writes go to a temporary file
    in the same directory which then replaces the target.

    :param path: Location of the history file.
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path).expanduser()

    def load(self) -> list[HistoryEntry]:
        if not self.path.exists():
            return []
        try:
            raw = self.path.read_text(encoding="utf-8")
        except OSError as e:
            raise StorageError(f"Failed to read history file {self.path}: {e}") from e
        if not raw.strip():
            return []
        try:
            return _ENTRIES.validate_json(raw)
        except ValidationError as e:
            raise StorageError(f"Invalid history file {self.path}: {e}") from e

    def save(self, entries: list[HistoryEntry]) -> None:
        payload = _ENTRIES.dump_json(entries, indent=2)
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                dir=self.path.parent, prefix=f".{self.path.name}.", suffix=".tmp"
            )
            try:
                with os.fdopen(fd, "wb") as f:
                    f.write(payload)
                os.replace(tmp_name, self.path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as e:
            raise StorageError(f"Failed to write history file {self.path}: {e}") from e

    def lock_key(self) -> tuple[str, object]:
        return ("file", str(self.path.resolve()))


class HistoryStore:
    """Append-only, size-bounded log of screener runs.

    ``append`` is the only mutator and performs its read-modify-write under a
    process-wide lock shared by every store over the same medium, so
    concurrent appends never lose entries.

    :param backend: Persistence medium.
    :param max_history: Maximum number of retained entries.
    """

    def __init__(
        self,
        backend: HistoryBackend | None = None,
        max_history: int = MAX_HISTORY,
    ) -> None:
        if max_history < 1:
            raise ValueError("max_history must be positive")
        self.backend = backend or MemoryHistoryBackend()
        self.max_history = max_history
        self._lock = _append_lock(self.backend)

    def append(self, entry: HistoryEntry) -> list[HistoryEntry]:
        """Append ``entry`` and evict the oldest entries beyond the bound.

        :returns: The stored list after eviction, oldest first.
        """
        with self._lock:
            entries = self.backend.load()
            entries.append(entry)
            dropped = max(0, len(entries) - self.max_history)
            if dropped:
                entries = entries[dropped:]
                logger.debug("Evicted %d history entries", dropped)
            self.backend.save(entries)
        logger.info("Stored history entry %s (%d results)", entry.id, len(entry.results))
        return entries

    def list(self) -> list[HistoryEntry]:
        """All stored entries, oldest first."""
        return self.backend.load()

    def latest_first(self) -> list[HistoryEntry]:
        """All stored entries, most recent first."""
        return list(reversed(self.backend.load()))

    def get(self, entry_id: str) -> HistoryEntry:
        """Look up an entry by id.

        :raises NotFoundError: If no entry has this id.
        """
        for entry in self.backend.load():
            if str(entry.id) == str(entry_id):
                return entry
        raise NotFoundError(f"History entry not found: {entry_id}")


def _copy_entries(entries: Iterable[HistoryEntry]) -> list[HistoryEntry]:
    return [entry.model_copy(deep=True) for entry in entries]


def _append_lock(backend: HistoryBackend) -> threading.Lock:
    key = backend.lock_key()
    with _APPEND_LOCKS_GUARD:
        return _APPEND_LOCKS.setdefault(key, threading.Lock())


def new_entry_id(now: datetime) -> EntryId:
    """Time-sortable id: epoch milliseconds plus a random suffix."""
    millis = int(now.timestamp() * 1000)
    return EntryId(f"{millis:013d}-{uuid.uuid4().hex[:8]}")


def build_history_entry(
    params: ScanParams,
    results: Iterable[ScanResult],
    now: datetime | None = None,
) -> HistoryEntry:
    """Summarize a run for storage.

    Only matched results are kept, each with its trailing 300 candles.
    """
    now = now or datetime.now(timezone.utc)
    kept = [
        r.model_copy(update={"candles": r.candles[-HISTORY_CANDLES:]}, deep=True)
        for r in results
        if r.matched
    ]
    return HistoryEntry(id=new_entry_id(now), timestamp=now, params=params, results=kept)


def dump_entry(entry: HistoryEntry) -> str:
    """Pretty JSON rendering of one entry."""
    return json.dumps(entry.model_dump(mode="json"), indent=2)
