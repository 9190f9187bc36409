"""Timeline view of saved memories: newest first, grouped by month."""

from __future__ import annotations

import math
from collections import Counter
from datetime import timedelta
from typing import Any

from vault.models import GateStatus, MemoryEntry, parse_day_key

MONTH_NAMES = [
    "January", "February", "March", "April", "May", "June",
    "July", "August", "September", "October", "November", "December",
]


def pretty_date(day_key: str) -> str:
    """'2024-01-05' -> 'Jan 5, 2024'. Unparseable keys are returned as-is."""
    d = parse_day_key(day_key)
    if d is None:
        return day_key
    return f"{MONTH_NAMES[d.month - 1][:3]} {d.day}, {d.year}"


def month_label(day_key: str) -> str:
    d = parse_day_key(day_key)
    if d is None:
        return "Undated"
    return f"{MONTH_NAMES[d.month - 1]} {d.year}"


def sort_newest_first(entries: list[MemoryEntry]) -> list[MemoryEntry]:
    return sorted(entries, key=lambda e: e.day_key, reverse=True)


def build_timeline(entries: list[MemoryEntry]) -> list[dict[str, Any]]:
    """Group entries under month headers, newest month and day first."""
    groups: list[dict[str, Any]] = []
    for entry in sort_newest_first(entries):
        label = month_label(entry.day_key)
        if not groups or groups[-1]["month"] != label:
            groups.append({"month": label, "entries": []})
        groups[-1]["entries"].append(entry)
    return groups


def mood_counts(entries: list[MemoryEntry]) -> dict[str, int]:
    counts = Counter(e.mood for e in entries)
    return dict(counts.most_common())


# ── Status text ───────────────────────────────────────────────


def format_countdown(remaining: timedelta) -> str:
    """Remaining time as HH:MM:SS, rounding partial seconds up."""
    total = max(0, math.ceil(remaining.total_seconds()))
    hours, rest = divmod(total, 3600)
    minutes, seconds = divmod(rest, 60)
    return f"{hours:02d}:{minutes:02d}:{seconds:02d}"


def streak_line(days: int) -> str:
    return f"\U0001f525 Streak: {days} day{'' if days == 1 else 's'}"


def status_hint(status: GateStatus) -> str:
    """One-line home screen hint for a gate status."""
    if status.kind == "open":
        return "One memory per day. Permanent once saved."
    countdown = format_countdown(status.remaining)
    if status.kind == "credits":
        passes = "1 free pass" if status.free_credits == 1 else f"{status.free_credits} free passes"
        return f"Next memory in {countdown}, or use {passes} now."
    if status.kind == "backfill":
        return f"Next memory in {countdown}. You can still fill in {status.backfill_left} past day(s)."
    return f"Next memory in {countdown}."
