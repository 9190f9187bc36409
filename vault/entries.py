"""Write-once, day-keyed memory entry store.

One JSON record per calendar day under vault/entries/, the photo bytes in
their own file under vault/photos/. Records are created exactly once and
never rewritten; there is no update or delete.
"""

from __future__ import annotations

import json
import logging
import mimetypes
import os
import secrets
from pathlib import Path

from vault.errors import DuplicateDate, StorageFailure
from vault.fileio import read_json, write_bytes_atomic, write_json_exclusive
from vault.models import MemoryEntry
from vault.workspace import entries_dir, photos_dir, workspace_root

logger = logging.getLogger(__name__)


def _photo_suffix(content_type: str) -> str:
    return mimetypes.guess_extension(content_type or "") or ".bin"


class EntryStore:
    """Entry records keyed by dayKey (YYYY-MM-DD)."""

    def __init__(self, root: Path | None = None) -> None:
        self.root = root if root is not None else workspace_root()

    def _record_path(self, day_key: str) -> Path:
        return entries_dir(self.root) / f"{day_key}.json"

    def get(self, day_key: str) -> MemoryEntry | None:
        """Point lookup. A miss (or an unreadable record) returns None."""
        path = self._record_path(day_key)
        try:
            data = read_json(path)
        except (OSError, ValueError):
            logger.warning("Unreadable entry record %s", path)
            return None
        if not data or not isinstance(data, dict):
            return None
        return MemoryEntry.from_dict(data)

    def exists(self, day_key: str) -> bool:
        return self._record_path(day_key).exists()

    def insert(self, entry: MemoryEntry, photo: bytes) -> MemoryEntry:
        """Persist *entry* and its photo if no record exists for its day.

        Raises DuplicateDate when the day is taken (the existing record is
        left untouched) and StorageFailure for any other persistence error.
        """
        if self.exists(entry.day_key):
            raise DuplicateDate(entry.day_key)

        token = secrets.token_hex(4)
        photo_name = f"{entry.day_key}-{token}{_photo_suffix(entry.photo_type)}"
        photo_path = photos_dir(self.root) / photo_name
        entry.photo_file = photo_name

        try:
            write_bytes_atomic(photo_path, photo)
            write_json_exclusive(self._record_path(entry.day_key), entry.to_dict())
        except FileExistsError:
            # Another writer committed the same day between the check and the link.
            _discard(photo_path)
            raise DuplicateDate(entry.day_key) from None
        except OSError as e:
            _discard(photo_path)
            raise StorageFailure(f"Could not save entry for {entry.day_key}: {e}") from e

        logger.debug("Stored entry %s (photo %s)", entry.day_key, photo_name)
        return entry

    def list_all(self) -> list[MemoryEntry]:
        """Full scan in directory order. Callers sort."""
        directory = entries_dir(self.root)
        if not directory.exists():
            return []
        entries = []
        for path in directory.glob("*.json"):
            try:
                data = json.loads(path.read_text(encoding="utf-8"))
            except (OSError, ValueError):
                logger.warning("Skipping unreadable entry record %s", path)
                continue
            entry = MemoryEntry.from_dict(data)
            if entry.day_key:
                entries.append(entry)
        return entries

    def read_photo(self, entry: MemoryEntry) -> bytes:
        path = photos_dir(self.root) / entry.photo_file
        try:
            return path.read_bytes()
        except OSError as e:
            raise StorageFailure(f"Photo for {entry.day_key} is unavailable: {e}") from e


def _discard(path: Path) -> None:
    try:
        if path.exists():
            os.unlink(path)
    except OSError:
        logger.warning("Could not remove orphan photo %s", path)
