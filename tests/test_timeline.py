"""Tests for vault/timeline.py — grouping and status text."""

from datetime import timedelta

from vault.models import GateStatus, MemoryEntry
from vault.timeline import (
    build_timeline,
    format_countdown,
    mood_counts,
    month_label,
    pretty_date,
    status_hint,
    streak_line,
)


def test_pretty_date():
    assert pretty_date("2024-01-05") == "Jan 5, 2024"
    assert pretty_date("2023-12-31") == "Dec 31, 2023"
    assert pretty_date("garbage") == "garbage"


def test_month_label():
    assert month_label("2024-02-29") == "February 2024"


def test_build_timeline_newest_first():
    entries = [
        MemoryEntry(day_key="2023-12-30"),
        MemoryEntry(day_key="2024-01-02"),
        MemoryEntry(day_key="2024-01-15"),
    ]
    groups = build_timeline(entries)
    assert [g["month"] for g in groups] == ["January 2024", "December 2023"]
    assert [e.day_key for e in groups[0]["entries"]] == ["2024-01-15", "2024-01-02"]


def test_build_timeline_empty():
    assert build_timeline([]) == []


def test_mood_counts():
    entries = [MemoryEntry(mood="Proud"), MemoryEntry(mood="Loved"), MemoryEntry(mood="Proud")]
    assert mood_counts(entries) == {"Proud": 2, "Loved": 1}


def test_format_countdown():
    assert format_countdown(timedelta(hours=3, minutes=4, seconds=5)) == "03:04:05"
    assert format_countdown(timedelta(seconds=59.2)) == "00:01:00"
    assert format_countdown(timedelta(seconds=-3)) == "00:00:00"


def test_streak_line_plural():
    assert streak_line(1) == "\U0001f525 Streak: 1 day"
    assert streak_line(0) == "\U0001f525 Streak: 0 days"


def test_status_hints():
    assert "One memory per day" in status_hint(GateStatus())
    credits = GateStatus(kind="credits", remaining=timedelta(hours=2), free_credits=1)
    assert "1 free pass" in status_hint(credits)
    backfill = GateStatus(kind="backfill", remaining=timedelta(minutes=30), backfill_left=2)
    assert "00:30:00" in status_hint(backfill)
    assert "2 past day" in status_hint(backfill)
    assert status_hint(GateStatus(kind="cooldown", remaining=timedelta(seconds=1))) == "Next memory in 00:00:01."
