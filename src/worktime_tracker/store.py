"""Durable key-value storage for tracker records.

This module provides the SessionStore ABC that the tracking engine persists
its active-session marker and pending queues through, plus two backends:

- MemoryStore: dict-backed, for tests and for hosts that persist elsewhere
- JsonFileStore: one file per key in a directory, survives restarts

Every single-key write must be crash-atomic: after a kill, a reader sees
either the old value or the new value, never a torn one.
"""

import os
from abc import ABC, abstractmethod
from pathlib import Path
from urllib.parse import quote, unquote

from .models import WorktimeError


class StoreError(WorktimeError):
    """Raised when the underlying storage cannot be read or written."""

    pass


class SessionStore(ABC):
    """Abstract base class for key-value storage backends."""

    @abstractmethod
    def get(self, key: str) -> str | None:
        """Get the value stored under a key.

        Args:
            key: Record key

        Returns:
            The stored string, or None if the key is absent

        Raises:
            StoreError: If the backend cannot be read
        """
        pass

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        """Store a value, replacing any previous value atomically.

        Args:
            key: Record key
            value: Serialized record

        Raises:
            StoreError: If the backend cannot be written
        """
        pass

    @abstractmethod
    def remove(self, key: str) -> None:
        """Remove a key. Removing an absent key is not an error.

        Args:
            key: Record key

        Raises:
            StoreError: If the backend cannot be written
        """
        pass

    @abstractmethod
    def keys(self, prefix: str = "") -> list[str]:
        """List stored keys starting with ``prefix``, sorted."""
        pass


class MemoryStore(SessionStore):
    """In-process store backed by a dict.

    Does not survive a restart on its own; tests share one instance between
    tracker instances to simulate a process restart.
    """

    def __init__(self, data: dict[str, str] | None = None) -> None:
        self.data: dict[str, str] = dict(data) if data else {}

    def get(self, key: str) -> str | None:
        return self.data.get(key)

    def set(self, key: str, value: str) -> None:
        self.data[key] = value

    def remove(self, key: str) -> None:
        self.data.pop(key, None)

    def keys(self, prefix: str = "") -> list[str]:
        return sorted(k for k in self.data if k.startswith(prefix))


class JsonFileStore(SessionStore):
    """Directory-backed store, one file per key.

    Values are written to a temporary file next to the target and moved into
    place with ``os.replace``, which is atomic on POSIX and Windows.
    """

    SUFFIX = ".json"

    def __init__(self, directory: str | Path) -> None:
        self.directory = Path(directory)

    def _path(self, key: str) -> Path:
        return self.directory / (quote(key, safe="") + self.SUFFIX)

    def get(self, key: str) -> str | None:
        path = self._path(key)
        try:
            return path.read_text("utf-8")
        except FileNotFoundError:
            return None
        except OSError as e:
            raise StoreError(f"Cannot read {path}: {e}") from e

    def set(self, key: str, value: str) -> None:
        path = self._path(key)
        tmp_path = path.with_name(path.name + ".tmp")
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            with open(tmp_path, "w", encoding="utf-8") as f:
                f.write(value)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, path)
        except OSError as e:
            raise StoreError(f"Cannot write {path}: {e}") from e

    def remove(self, key: str) -> None:
        path = self._path(key)
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            raise StoreError(f"Cannot remove {path}: {e}") from e

    def keys(self, prefix: str = "") -> list[str]:
        if not self.directory.is_dir():
            return []
        found = []
        for path in self.directory.glob("*" + self.SUFFIX):
            key = unquote(path.name[: -len(self.SUFFIX)])
            if key.startswith(prefix):
                found.append(key)
        return sorted(found)
