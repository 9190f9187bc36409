"""Workspace root, timezone, path helpers for DayVault."""

from __future__ import annotations

import os
from datetime import datetime
from pathlib import Path
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import yaml

from vault.fileio import read_yaml
from vault.models import Policy


def workspace_root() -> Path:
    """Get the workspace root directory (contains vault/)."""
    return Path(
        os.environ.get("VAULT_ROOT", str(Path.home() / "dayvault"))
    ).expanduser().resolve()


def get_user_timezone(root: Path | None = None) -> ZoneInfo:
    """Get user's timezone from profile.yaml, defaulting to UTC."""
    if root is None:
        root = workspace_root()
    try:
        profile = read_yaml(profile_path(root))
        if profile and "timezone" in profile:
            return ZoneInfo(str(profile["timezone"]))
    except (OSError, ValueError, yaml.YAMLError, ZoneInfoNotFoundError):
        pass
    return ZoneInfo("UTC")


def today_str(root: Path | None = None) -> str:
    """Get today's date string (YYYY-MM-DD) in user's timezone."""
    tz = get_user_timezone(root)
    return datetime.now(tz).date().isoformat()


def now_local(root: Path | None = None) -> datetime:
    """Get current datetime in user's timezone."""
    tz = get_user_timezone(root)
    return datetime.now(tz)


# ── Path helpers ──────────────────────────────────────────────

def vault_dir(root: Path | None = None) -> Path:
    if root is None:
        root = workspace_root()
    return root / "vault"


def entries_dir(root: Path | None = None) -> Path:
    return vault_dir(root) / "entries"


def photos_dir(root: Path | None = None) -> Path:
    return vault_dir(root) / "photos"


def cards_dir(root: Path | None = None) -> Path:
    return vault_dir(root) / "cards"


def meta_path(root: Path | None = None) -> Path:
    return vault_dir(root) / "meta.json"


def profile_path(root: Path | None = None) -> Path:
    return vault_dir(root) / "profile.yaml"


def hooks_config_path(root: Path | None = None) -> Path:
    return vault_dir(root) / "hooks.yaml"


def lock_path(root: Path | None = None) -> Path:
    return vault_dir(root) / ".lock"


def load_policy(root: Path | None = None) -> Policy:
    """Gating knobs and timezone from profile.yaml; defaults when missing or broken."""
    try:
        return Policy.from_dict(read_yaml(profile_path(root)))
    except (OSError, ValueError, yaml.YAMLError):
        return Policy()
