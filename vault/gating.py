"""Temporal gate: may a memory be recorded for a given day right now?

Today's entry is paced by the cooldown window (with free credits as an
override); past days skip the cooldown and draw on the capped backfill pool
instead. All functions here are pure: they take an already healed
GatingState and never touch storage.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timedelta

from vault.errors import BackfillExhausted, CooldownActive, DuplicateDate
from vault.models import GateStatus, GatingState, Policy


@dataclass
class Admission:
    day_key: str
    backfill: bool = False
    uses_free_credit: bool = False


def is_backfill(day: date, today: date) -> bool:
    return day < today


def cooldown_remaining(state: GatingState, now: datetime, policy: Policy) -> timedelta:
    """Time left in the cooldown window, or zero when it is not active."""
    if state.last_save_at is None:
        return timedelta(0)
    elapsed = now - state.last_save_at
    if elapsed >= policy.cooldown_window:
        return timedelta(0)
    return policy.cooldown_window - elapsed


def cooldown_active(state: GatingState, now: datetime, policy: Policy) -> bool:
    return cooldown_remaining(state, now, policy) > timedelta(0)


def backfill_left(state: GatingState, policy: Policy) -> int:
    return max(0, policy.backfill_credit_limit - (state.backfill_used or 0))


def evaluate(
    day: date,
    now: datetime,
    state: GatingState,
    policy: Policy,
    entry_exists: bool,
) -> Admission:
    """Admit a save for *day* or raise the reason it is denied."""
    day_key = day.isoformat()
    if entry_exists:
        raise DuplicateDate(day_key)

    if is_backfill(day, now.date()):
        if backfill_left(state, policy) <= 0:
            raise BackfillExhausted(policy.backfill_credit_limit)
        return Admission(day_key, backfill=True)

    remaining = cooldown_remaining(state, now, policy)
    if remaining > timedelta(0):
        if (state.free_credits or 0) > 0:
            return Admission(day_key, uses_free_credit=True)
        raise CooldownActive(remaining)
    return Admission(day_key)


def project_status(state: GatingState, now: datetime, policy: Policy) -> GateStatus:
    """What the home screen should show at *now*. Safe to call every second."""
    remaining = cooldown_remaining(state, now, policy)
    left = backfill_left(state, policy)
    credits = state.free_credits or 0
    status = GateStatus(free_credits=credits, backfill_left=left)
    if remaining <= timedelta(0):
        return status

    status.remaining = remaining
    status.next_open_at = now + remaining
    if credits > 0:
        status.kind = "credits"
    elif left > 0:
        status.kind = "backfill"
    else:
        status.kind = "cooldown"
    return status
