"""Atomic file I/O utilities for DayVault."""

from __future__ import annotations

import fcntl
import json
import os
import tempfile
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

import yaml


def read_text(path: Path) -> str:
    """Read a text file, returning empty string if missing."""
    if not path.exists():
        return ""
    return path.read_text(encoding="utf-8")


def read_json(path: Path) -> dict[str, Any]:
    """Read a JSON file, returning empty dict if missing."""
    if not path.exists():
        return {}
    text = path.read_text(encoding="utf-8")
    if not text.strip():
        return {}
    return json.loads(text)


def read_yaml(path: Path) -> dict[str, Any]:
    """Read a YAML file, returning empty dict if missing or empty."""
    text = read_text(path)
    if not text.strip():
        return {}
    result = yaml.safe_load(text)
    return result if isinstance(result, dict) else {}


def _dump_json(data: dict[str, Any]) -> str:
    return json.dumps(data, indent=2, ensure_ascii=False) + "\n"


def _write_locked_temp(path: Path, content: bytes, suffix: str) -> str:
    """Write *content* to a flocked, fsynced temp file next to *path*."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, temp_path = tempfile.mkstemp(dir=path.parent, prefix=".tmp_", suffix=suffix)
    try:
        with os.fdopen(fd, "wb") as f:
            fcntl.flock(f.fileno(), fcntl.LOCK_EX)
            try:
                f.write(content)
                f.flush()
                os.fsync(f.fileno())
            finally:
                fcntl.flock(f.fileno(), fcntl.LOCK_UN)
    except Exception:
        if os.path.exists(temp_path):
            os.unlink(temp_path)
        raise
    return temp_path


def _atomic_write(path: Path, content: bytes, suffix: str = ".tmp") -> None:
    """Atomic write with file locking: temp file + flock + rename."""
    temp_path = _write_locked_temp(path, content, suffix)
    try:
        os.rename(temp_path, path)
    except Exception:
        if os.path.exists(temp_path):
            os.unlink(temp_path)
        raise


def write_json_atomic(path: Path, data: dict[str, Any]) -> None:
    """Atomic JSON write."""
    _atomic_write(path, _dump_json(data).encode("utf-8"), suffix=".json")


def write_bytes_atomic(path: Path, content: bytes) -> None:
    """Atomic binary write."""
    _atomic_write(path, content, suffix=".bin")


def write_json_exclusive(path: Path, data: dict[str, Any]) -> None:
    """Create *path* with JSON content only if it does not exist yet.

    The content is fully written to a temp file first and then hard-linked
    into place, so readers never observe a partial record and a concurrent
    writer for the same path gets FileExistsError.
    """
    temp_path = _write_locked_temp(path, _dump_json(data).encode("utf-8"), ".json")
    try:
        os.link(temp_path, path)
    finally:
        os.unlink(temp_path)


@contextmanager
def file_lock(path: Path) -> Iterator[None]:
    """Hold an exclusive flock on *path* (created if missing) for the block.

    flock locks belong to the open file, so separate opens block each other
    across threads as well as across processes.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "a", encoding="utf-8") as f:
        fcntl.flock(f.fileno(), fcntl.LOCK_EX)
        try:
            yield
        finally:
            fcntl.flock(f.fileno(), fcntl.LOCK_UN)
