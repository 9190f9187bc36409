"""Scalar counter store (meta.json) and the GatingState mirror."""

from __future__ import annotations

import logging
from datetime import tzinfo
from pathlib import Path
from typing import Any

from vault.errors import StorageFailure
from vault.fileio import read_json, write_json_atomic
from vault.models import GatingState, format_instant, parse_instant
from vault.workspace import meta_path, workspace_root

logger = logging.getLogger(__name__)

# ── Keys ──────────────────────────────────────────────────────

LAST_SAVE_AT = "lastSaveAt"
FREE_CREDITS = "freeCredits"
STREAK_COUNT = "streakCount"
STREAK_LAST_AT = "streakLastAt"
STREAK_LAST_DAY = "streakLastDay"
BEST_STREAK = "bestStreak"
LAST_RUN_STREAK = "lastRunStreak"
BACKFILL_USED = "backfillUsed"
APP_VERSION = "appVersion"


class MetaStore:
    """Named scalars, last-write-wins, no cross-key transactions."""

    def __init__(self, root: Path | None = None) -> None:
        self.root = root if root is not None else workspace_root()
        self.path = meta_path(self.root)

    def _load(self) -> dict[str, Any]:
        try:
            data = read_json(self.path)
        except (OSError, ValueError):
            logger.warning("Meta store %s is unreadable; treating every key as absent", self.path)
            return {}
        if not isinstance(data, dict):
            logger.warning("Meta store %s is not a JSON object; treating every key as absent", self.path)
            return {}
        return data

    def get(self, key: str) -> Any:
        return self._load().get(key)

    def set(self, key: str, value: Any) -> None:
        self.update({key: value})

    def update(self, values: dict[str, Any]) -> None:
        """Write several keys in one atomic replace of meta.json."""
        data = self._load()
        data.update(values)
        try:
            write_json_atomic(self.path, data)
        except OSError as e:
            names = ", ".join(values)
            raise StorageFailure(f"Could not write {names}: {e}") from e


def _int_or_none(value: Any) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        result = int(value)
    except (TypeError, ValueError):
        return None
    return result if result >= 0 else None


def load_gating_state(meta: MetaStore, tz: tzinfo) -> GatingState:
    """Read every counter; malformed values come back as absent."""
    day = meta.get(STREAK_LAST_DAY)
    return GatingState(
        last_save_at=parse_instant(meta.get(LAST_SAVE_AT), tz),
        free_credits=_int_or_none(meta.get(FREE_CREDITS)),
        streak_count=_int_or_none(meta.get(STREAK_COUNT)),
        streak_last_at=parse_instant(meta.get(STREAK_LAST_AT), tz),
        streak_last_day=day if isinstance(day, str) and day else None,
        best_streak=_int_or_none(meta.get(BEST_STREAK)),
        last_run_streak=_int_or_none(meta.get(LAST_RUN_STREAK)),
        backfill_used=_int_or_none(meta.get(BACKFILL_USED)),
    )


def qualifying_values(state: GatingState) -> dict[str, Any]:
    """Counters touched by a save for today, keyed for the meta store."""
    values = {
        LAST_SAVE_AT: format_instant(state.last_save_at) if state.last_save_at else None,
        STREAK_COUNT: state.streak_count,
        BEST_STREAK: state.best_streak,
        LAST_RUN_STREAK: state.last_run_streak,
        STREAK_LAST_DAY: state.streak_last_day,
        STREAK_LAST_AT: format_instant(state.streak_last_at) if state.streak_last_at else None,
    }
    if state.free_credits is not None:
        values[FREE_CREDITS] = state.free_credits
    return values
