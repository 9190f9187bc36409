"""Streak calculation for DayVault.

Two sources feed the streak: the set of dayKeys in the entry store (always
available, authoritative for history) and the cached counters in the meta
store (cheap, but may be absent or stale). heal() merges the two so the
rest of the engine only ever sees a fully populated GatingState.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import replace
from datetime import date, datetime, timedelta, tzinfo

from vault.models import GatingState, MemoryEntry, StreakSummary, parse_day_key, parse_instant


def day_set(entries: Iterable[MemoryEntry]) -> set[str]:
    """Distinct well-formed dayKeys."""
    return {e.day_key for e in entries if parse_day_key(e.day_key) is not None}


def chain(days: set[str], start: str) -> int:
    """Count consecutive days present walking backward from *start*."""
    current = parse_day_key(start)
    if current is None:
        return 0
    length = 0
    while current.isoformat() in days:
        length += 1
        current -= timedelta(days=1)
    return length


def active_streak(days: set[str], today: date) -> int:
    """Chain ending at the newest entry, but only if that entry is today or yesterday."""
    if not days:
        return 0
    # dayKeys are fixed-width YYYY-MM-DD, so max() is the newest date
    newest = max(days)
    if newest not in (today.isoformat(), (today - timedelta(days=1)).isoformat()):
        return 0
    return chain(days, newest)


def longest_run(days: set[str]) -> int:
    """Longest chain anywhere in the history."""
    best = 0
    for key in days:
        d = parse_day_key(key)
        # only count from the last day of each run
        if d is None or (d + timedelta(days=1)).isoformat() in days:
            continue
        best = max(best, chain(days, key))
    return best


def latest_qualifying(entries: Iterable[MemoryEntry], tz: tzinfo) -> tuple[datetime, str] | None:
    """(createdAt, dayKey) of the newest entry saved on (or before) its own day.

    Backfilled entries are created after their dayKey and never anchored the
    cooldown or the streak, so they are left out.
    """
    found = []
    for entry in entries:
        created = parse_instant(entry.created_at, tz)
        if created is None or parse_day_key(entry.day_key) is None:
            continue
        if created.astimezone(tz).date().isoformat() <= entry.day_key:
            found.append((created, entry.day_key))
    return max(found) if found else None


def latest_created_at(entries: Iterable[MemoryEntry], tz: tzinfo) -> datetime | None:
    newest = latest_qualifying(entries, tz)
    return newest[0] if newest else None


def heal(
    state: GatingState,
    entries: list[MemoryEntry],
    today: date,
    tz: tzinfo,
) -> GatingState:
    """Return a copy of *state* with every absent counter filled in.

    Streak counters come from the entry dates. The cooldown anchor is the
    later of the stored value and the newest same-day createdAt. Stored
    streak counters that predate the newest same-day entry get that save
    replayed through advance(). Bonus pools default to 0 (no free credits,
    nothing of the backfill pool spent). Never writes back to the meta store.
    """
    days = day_set(entries)
    healed = replace(state)

    newest = latest_qualifying(entries, tz)
    # a stored anchor older than the newest same-day entry is stale
    anchors = [t for t in (healed.last_save_at, newest[0] if newest else None) if t is not None]
    healed.last_save_at = max(anchors) if anchors else None

    if healed.streak_count is None:
        healed.streak_count = active_streak(days, today)
        healed.streak_last_day = max(days) if healed.streak_count else None
    elif healed.streak_last_day is None:
        if healed.streak_last_at is not None:
            healed.streak_last_day = healed.streak_last_at.astimezone(tz).date().isoformat()
        elif healed.streak_count and days:
            healed.streak_last_day = max(days)

    if healed.best_streak is None:
        healed.best_streak = longest_run(days)
    healed.best_streak = max(healed.best_streak, healed.streak_count)

    if healed.last_run_streak is None:
        healed.last_run_streak = 0
    if healed.free_credits is None:
        healed.free_credits = 0
    if healed.backfill_used is None:
        healed.backfill_used = 0

    if newest is not None and healed.streak_last_day and newest[1] > healed.streak_last_day:
        advance(healed, date.fromisoformat(newest[1]), newest[0])
    return healed


def advance(state: GatingState, today: date, now: datetime) -> bool:
    """Apply a qualifying save landing on *today* to a healed state.

    Returns True when the save broke a previous run.
    """
    today_key = today.isoformat()
    if state.streak_last_day == today_key:
        return False

    previous = parse_day_key(state.streak_last_day) if state.streak_last_day else None
    broken = False
    if previous is not None and (today - previous).days == 1:
        state.streak_count = (state.streak_count or 0) + 1
    else:
        if state.streak_count:
            state.last_run_streak = state.streak_count
            broken = True
        state.streak_count = 1

    state.best_streak = max(state.best_streak or 0, state.streak_count)
    state.streak_last_day = today_key
    state.streak_last_at = now
    return broken


def summarize(healed: GatingState, today: date) -> StreakSummary:
    """Streak numbers for display. A cached run older than yesterday shows 0."""
    current = 0
    last_day = parse_day_key(healed.streak_last_day) if healed.streak_last_day else None
    if last_day is not None and 0 <= (today - last_day).days <= 1:
        current = healed.streak_count or 0
    return StreakSummary(
        current=current,
        best=max(healed.best_streak or 0, current),
        last_run=healed.last_run_streak or 0,
    )
