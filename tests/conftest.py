"""Shared test fixtures for DayVault tests."""

from __future__ import annotations

import os
from datetime import datetime
from io import BytesIO
from pathlib import Path
from zoneinfo import ZoneInfo

import pytest
import yaml
from PIL import Image

UTC = ZoneInfo("UTC")


def at(day: str, hour: int = 9, minute: int = 0) -> datetime:
    """Aware UTC instant on *day* (YYYY-MM-DD)."""
    y, m, d = (int(p) for p in day.split("-"))
    return datetime(y, m, d, hour, minute, tzinfo=UTC)


@pytest.fixture
def workspace(tmp_path: Path) -> Path:
    """Create a temporary workspace with standard structure."""
    root = tmp_path / "workspace"
    (root / "vault").mkdir(parents=True)

    profile = {
        "timezone": "UTC",
        "cooldown_hours": 24,
        "backfill_credit_limit": 3,
        "free_credits_on_update": 1,
    }
    (root / "vault" / "profile.yaml").write_text(
        yaml.dump(profile, default_flow_style=False), encoding="utf-8"
    )

    # Set env var
    os.environ["VAULT_ROOT"] = str(root)
    yield root
    # Cleanup
    if "VAULT_ROOT" in os.environ:
        del os.environ["VAULT_ROOT"]


@pytest.fixture
def photo_png() -> bytes:
    """A small real PNG."""
    buf = BytesIO()
    Image.new("RGB", (64, 48), (210, 120, 90)).save(buf, format="PNG")
    return buf.getvalue()


@pytest.fixture
def journal(workspace):
    from vault.journal import Journal

    return Journal(workspace).load()
