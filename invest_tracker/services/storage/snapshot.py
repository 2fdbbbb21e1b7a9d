"""
Local snapshot stores.

The JSON file store is the default persistence for a single user on one
machine. The in-memory store is used by tests and by the UI when the data
directory is not writable.
"""

import copy
import json
import os
import tempfile
from pathlib import Path
from typing import Optional, Union

from invest_tracker.services.storage.interface import (
    SnapshotStoreInterface,
    StorageError,
)


class JsonFileSnapshotStore(SnapshotStoreInterface):
    """
    Stores the snapshot as a JSON document on disk.

    Writes go to a temporary file in the same directory which then
    replaces the target, so a crash never leaves half a snapshot behind.
    """

    def __init__(self, path: Union[str, Path]):
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> Optional[dict]:
        if not self._path.exists():
            return None
        try:
            with self._path.open("r", encoding="utf-8") as fh:
                data = json.load(fh)
        except (OSError, ValueError) as e:
            raise StorageError(f"Failed to read snapshot {self._path}: {e}")

        if not isinstance(data, dict):
            raise StorageError(f"Snapshot {self._path} is not a JSON object")
        return data

    def save(self, snapshot: dict) -> None:
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                dir=self._path.parent,
                prefix=f".{self._path.name}.",
                suffix=".tmp",
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as fh:
                    json.dump(snapshot, fh, ensure_ascii=False, indent=2)
                os.replace(tmp_name, self._path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as e:
            raise StorageError(f"Failed to write snapshot {self._path}: {e}")

    def clear(self) -> None:
        try:
            self._path.unlink(missing_ok=True)
        except OSError as e:
            raise StorageError(f"Failed to remove snapshot {self._path}: {e}")


class InMemorySnapshotStore(SnapshotStoreInterface):
    """Keeps a deep copy of the last saved snapshot."""

    def __init__(self, snapshot: Optional[dict] = None):
        self._snapshot = copy.deepcopy(snapshot) if snapshot else None
        self.save_count = 0

    def load(self) -> Optional[dict]:
        return copy.deepcopy(self._snapshot) if self._snapshot else None

    def save(self, snapshot: dict) -> None:
        self._snapshot = copy.deepcopy(snapshot)
        self.save_count += 1

    def clear(self) -> None:
        self._snapshot = None
