"""Typed dataclasses for the DayVault data model.

All persisted models use from_dict/to_dict for JSON/YAML serialization.
camelCase in JSON is mapped to snake_case in Python.
Unknown keys are ignored; missing keys use defaults.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, tzinfo
from typing import Any


# ── Primitives ────────────────────────────────────────────────


def parse_instant(value: Any, tz: tzinfo) -> datetime | None:
    """Parse an ISO instant; naive values are read in *tz*. Bad input -> None."""
    if not value or not isinstance(value, str):
        return None
    try:
        dt = datetime.fromisoformat(value)
    except ValueError:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=tz)
    return dt


def format_instant(dt: datetime) -> str:
    return dt.isoformat(timespec="seconds")


def parse_day_key(value: str) -> date | None:
    try:
        return date.fromisoformat(value)
    except (TypeError, ValueError):
        return None


# ── Moods ─────────────────────────────────────────────────────


@dataclass(frozen=True)
class Mood:
    key: str
    glyph: str

    @property
    def label(self) -> str:
        return f"{self.glyph} {self.key}"


MOODS: tuple[Mood, ...] = (
    Mood("Loved", "\U0001f497"),
    Mood("Grateful", "\U0001f64f"),
    Mood("Joyful", "\U0001f60a"),
    Mood("Peaceful", "\U0001f343"),
    Mood("Excited", "✨"),
    Mood("Nostalgic", "\U0001f570️"),
    Mood("Missing", "\U0001f319"),
    Mood("Proud", "⭐"),
)

DEFAULT_MOOD = MOODS[0]


def find_mood(key: str | None) -> Mood | None:
    """Case-insensitive mood lookup; None/blank means the default mood."""
    if key is None or not key.strip():
        return DEFAULT_MOOD
    wanted = key.strip().lower()
    for mood in MOODS:
        if mood.key.lower() == wanted:
            return mood
    return None


# ── Policy ────────────────────────────────────────────────────

# keeps now + cooldown inside datetime range
MAX_COOLDOWN_HOURS = 24 * 365 * 100


@dataclass
class Policy:
    """User timezone plus the gating knobs from profile.yaml."""

    timezone: str = "UTC"
    cooldown_hours: float = 24.0
    backfill_credit_limit: int = 3
    free_credits_on_update: int = 1

    @property
    def cooldown_window(self) -> timedelta:
        return timedelta(hours=self.cooldown_hours)

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> Policy:
        if not d or not isinstance(d, dict):
            return cls()
        defaults = cls()
        return cls(
            timezone=str(d.get("timezone", defaults.timezone)),
            cooldown_hours=_non_negative(
                d.get("cooldown_hours"), defaults.cooldown_hours, float, MAX_COOLDOWN_HOURS
            ),
            backfill_credit_limit=_non_negative(
                d.get("backfill_credit_limit"), defaults.backfill_credit_limit, int
            ),
            free_credits_on_update=_non_negative(
                d.get("free_credits_on_update"), defaults.free_credits_on_update, int
            ),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "timezone": self.timezone,
            "cooldown_hours": self.cooldown_hours,
            "backfill_credit_limit": self.backfill_credit_limit,
            "free_credits_on_update": self.free_credits_on_update,
        }


def _non_negative(value: Any, default: Any, cast: type, ceiling: float = math.inf) -> Any:
    if value is None:
        return default
    try:
        result = cast(value)
    except (TypeError, ValueError, OverflowError):
        return default
    if not math.isfinite(result) or not 0 <= result <= ceiling:
        return default
    return result


# ── Entries ───────────────────────────────────────────────────


@dataclass
class MemoryEntry:
    day_key: str = ""
    moment_at: str = ""
    mood: str = DEFAULT_MOOD.key
    mood_glyph: str = DEFAULT_MOOD.glyph
    reflection: str = ""
    category: str | None = None
    created_at: str = ""
    photo_file: str = ""
    photo_type: str = "application/octet-stream"

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> MemoryEntry:
        if not d or not isinstance(d, dict):
            return cls()
        return cls(
            day_key=str(d.get("dayKey", "")),
            moment_at=str(d.get("momentAt", "")),
            mood=str(d.get("mood", DEFAULT_MOOD.key)),
            mood_glyph=str(d.get("moodGlyph", "")),
            reflection=str(d.get("reflection", "")),
            category=d.get("category") or None,
            created_at=str(d.get("createdAt", "")),
            photo_file=str(d.get("photoFile", "")),
            photo_type=str(d.get("photoType", "application/octet-stream")),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "dayKey": self.day_key,
            "momentAt": self.moment_at,
            "mood": self.mood,
            "moodGlyph": self.mood_glyph,
            "reflection": self.reflection,
            "category": self.category,
            "createdAt": self.created_at,
            "photoFile": self.photo_file,
            "photoType": self.photo_type,
        }


# ── Gating state ──────────────────────────────────────────────


@dataclass
class GatingState:
    """Counters mirrored in the meta store. None means absent, not zero."""

    last_save_at: datetime | None = None
    free_credits: int | None = None
    streak_count: int | None = None
    streak_last_at: datetime | None = None
    streak_last_day: str | None = None
    best_streak: int | None = None
    last_run_streak: int | None = None
    backfill_used: int | None = None


@dataclass
class GateStatus:
    """Display projection of the gate at one instant."""

    kind: str = "open"  # open, cooldown, credits, backfill
    remaining: timedelta = field(default_factory=timedelta)
    free_credits: int = 0
    backfill_left: int = 0
    next_open_at: datetime | None = None

    @property
    def can_save_today(self) -> bool:
        return self.kind in ("open", "credits")

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind,
            "canSaveToday": self.can_save_today,
            "remainingSeconds": int(self.remaining.total_seconds()),
            "freeCredits": self.free_credits,
            "backfillLeft": self.backfill_left,
            "nextOpenAt": format_instant(self.next_open_at) if self.next_open_at else None,
        }


@dataclass
class StreakSummary:
    current: int = 0
    best: int = 0
    last_run: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {"current": self.current, "best": self.best, "lastRun": self.last_run}


@dataclass
class SaveResult:
    entry: MemoryEntry
    backfill: bool = False
    used_free_credit: bool = False
    streak: StreakSummary = field(default_factory=StreakSummary)
    streak_broken: bool = False
    card_path: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "ok": True,
            "day": self.entry.day_key,
            "backfill": self.backfill,
            "usedFreeCredit": self.used_free_credit,
            "streak": self.streak.to_dict(),
            "streakBroken": self.streak_broken,
            "card": self.card_path,
        }
