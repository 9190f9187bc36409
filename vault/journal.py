"""Save orchestration for DayVault.

The Journal is the only writer. It keeps the gating counters in an explicit
GatingState and runs the one read-modify-write sequence of the app:

1. Validate input (photo, reflection, date, mood)
2. Take the vault lock and re-read entries and counters from storage
3. Ask the gate for admission (duplicate day, cooldown, backfill pool)
4. Insert the entry (conditional create; the commit point)
5. Update counters: backfill pool, or streak + cooldown + free credit
6. Release the lock, render the card and run hooks (best-effort)

The lock is a flock on vault/.lock, shared by every Journal on the
workspace (web requests, the TUI, other processes). Counters are only
written after step 4 succeeds, so a failed insert leaves the meta store
exactly as it was.
"""

from __future__ import annotations

import logging
import re
import threading
from contextlib import ExitStack
from datetime import date, datetime
from pathlib import Path
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from vault import meta as keys
from vault.card import render_card, write_card
from vault.entries import EntryStore
from vault.errors import StorageFailure, ValidationError
from vault.fileio import file_lock
from vault.gating import evaluate, project_status
from vault.hooks import fire_save_hooks
from vault.meta import MetaStore, load_gating_state, qualifying_values
from vault.models import (
    GateStatus,
    GatingState,
    MemoryEntry,
    Mood,
    Policy,
    SaveResult,
    StreakSummary,
    find_mood,
    format_instant,
)
from vault.streak import advance, heal, summarize
from vault.workspace import cards_dir, load_policy, lock_path, workspace_root

logger = logging.getLogger(__name__)

APP_VERSION = "0.4.0"

DAY_KEY_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def _policy_tz(policy: Policy) -> ZoneInfo:
    try:
        return ZoneInfo(policy.timezone)
    except (ValueError, ZoneInfoNotFoundError):
        logger.warning("Unknown timezone %r in profile; using UTC", policy.timezone)
        return ZoneInfo("UTC")


class Journal:
    """Session object: stores, policy, and the in-memory gating state."""

    def __init__(self, root: Path | None = None, policy: Policy | None = None) -> None:
        self.root = root if root is not None else workspace_root()
        self.policy = policy if policy is not None else load_policy(self.root)
        self.tz = _policy_tz(self.policy)
        self.entries = EntryStore(self.root)
        self.meta = MetaStore(self.root)
        self.state = GatingState()
        self._entries: list[MemoryEntry] = []
        self._lock = threading.Lock()

    # ── Session ────────────────────────────────────────────────

    def load(self, app_version: str = APP_VERSION) -> Journal:
        """(Re)load entries and counters. Call at session start and on refresh."""
        self._entries = self.entries.list_all()
        self._grant_update_credits(app_version)
        self.state = load_gating_state(self.meta, self.tz)
        return self

    def _refresh(self) -> None:
        self._entries = self.entries.list_all()
        self.state = load_gating_state(self.meta, self.tz)

    def _grant_update_credits(self, app_version: str) -> None:
        """Top up free credits once per app version change (not on a fresh install)."""
        try:
            stored = self.meta.get(keys.APP_VERSION)
            if stored == app_version:
                return
            grant = self.policy.free_credits_on_update
            if (stored is not None or self._entries) and grant > 0:
                self.meta.set(keys.FREE_CREDITS, grant)
                logger.info("App updated %s -> %s; granted %d free credits", stored, app_version, grant)
            self.meta.set(keys.APP_VERSION, app_version)
        except StorageFailure as e:
            logger.warning("Could not record app version: %s", e)

    def _local(self, now: datetime | None) -> datetime:
        if now is None:
            return datetime.now(self.tz)
        if now.tzinfo is None:
            return now.replace(tzinfo=self.tz)
        return now.astimezone(self.tz)

    # ── Read side (no storage I/O) ─────────────────────────────

    def all_entries(self) -> list[MemoryEntry]:
        return list(self._entries)

    def healed(self, now: datetime | None = None) -> GatingState:
        """Loaded counters with absent values derived from the entries."""
        return heal(self.state, self._entries, self._local(now).date(), self.tz)

    def status(self, now: datetime | None = None) -> GateStatus:
        now = self._local(now)
        return project_status(self.healed(now), now, self.policy)

    def streaks(self, now: datetime | None = None) -> StreakSummary:
        now = self._local(now)
        return summarize(self.healed(now), now.date())

    def now_key(self, now: datetime | None = None) -> str:
        """Today's dayKey in the user's timezone."""
        return self._local(now).date().isoformat()

    def photo(self, entry: MemoryEntry) -> bytes:
        return self.entries.read_photo(entry)

    def card(self, entry: MemoryEntry) -> bytes:
        """Stored card PNG, or a fresh render when it was never written."""
        path = cards_dir(self.root) / f"{entry.day_key}.png"
        try:
            return path.read_bytes()
        except OSError:
            return render_card(entry, self.photo(entry))

    # ── Write side ─────────────────────────────────────────────

    def _validate(
        self,
        day_key: str,
        photo: bytes | None,
        reflection: str | None,
        mood: str | None,
        today: date,
    ) -> tuple[date, Mood, str]:
        if not photo:
            raise ValidationError("Please choose a photo.")
        text = (reflection or "").strip()
        if not text:
            raise ValidationError("Please write a short reflection.")
        if not isinstance(day_key, str) or not DAY_KEY_RE.match(day_key):
            raise ValidationError("Invalid date.")
        try:
            day = date.fromisoformat(day_key)
        except ValueError:
            raise ValidationError("Invalid date.") from None
        if day > today:
            raise ValidationError("Cannot save a memory for a future date.")
        found = find_mood(mood)
        if found is None:
            raise ValidationError(f"Unknown mood: {mood}")
        return day, found, text

    def save(
        self,
        *,
        day_key: str,
        photo: bytes | None,
        reflection: str | None,
        mood: str | None = None,
        category: str | None = None,
        photo_type: str = "image/jpeg",
        moment_at: datetime | None = None,
        now: datetime | None = None,
    ) -> SaveResult:
        """Gate and persist one memory.

        Raises ValidationError or a GateDenied subclass with nothing written,
        StorageFailure when the entry could not be persisted (counters
        untouched). Returns the SaveResult once the entry is durable.
        """
        with self._lock, ExitStack() as stack:
            now = self._local(now)
            today = now.date()
            day, found_mood, text = self._validate(day_key, photo, reflection, mood, today)

            try:
                stack.enter_context(file_lock(lock_path(self.root)))
            except OSError as e:
                raise StorageFailure(f"Could not lock the vault: {e}") from e
            # other sessions sharing the workspace may have saved since load()
            self._refresh()
            healed = self.healed(now)
            admission = evaluate(day, now, healed, self.policy, self.entries.exists(day_key))

            entry = MemoryEntry(
                day_key=day_key,
                moment_at=format_instant(self._local(moment_at) if moment_at else now),
                mood=found_mood.key,
                mood_glyph=found_mood.glyph,
                reflection=text,
                category=(category or "").strip() or None,
                created_at=format_instant(now),
                photo_type=photo_type or "application/octet-stream",
            )
            self.entries.insert(entry, photo)
            self._entries.append(entry)
            kind = "backfill" if admission.backfill else "today"
            if admission.uses_free_credit:
                kind = "today, free credit"
            logger.info("Saved memory for %s (%s)", day_key, kind)

            result = SaveResult(
                entry=entry,
                backfill=admission.backfill,
                used_free_credit=admission.uses_free_credit,
            )
            if admission.backfill:
                self.state.backfill_used = (healed.backfill_used or 0) + 1
                self._write_counters(lambda: self.meta.set(keys.BACKFILL_USED, self.state.backfill_used))
            else:
                result.streak_broken = advance(healed, today, now)
                self.state.streak_count = healed.streak_count
                self.state.best_streak = healed.best_streak
                self.state.last_run_streak = healed.last_run_streak
                self.state.streak_last_day = healed.streak_last_day
                self.state.streak_last_at = healed.streak_last_at
                self.state.last_save_at = now
                if admission.uses_free_credit:
                    self.state.free_credits = (healed.free_credits or 0) - 1
                self._write_counters(lambda: self.meta.update(qualifying_values(self.state)))

            result.streak = self.streaks(now)

        self._after_save(result, photo)
        return result

    def _write_counters(self, write) -> None:
        try:
            write()
        except StorageFailure as e:
            # The entry is durable; absent or stale counters self-heal from entries.
            logger.warning("Counter update failed after save: %s", e)

    def _after_save(self, result: SaveResult, photo: bytes) -> None:
        entry = result.entry
        try:
            result.card_path = str(write_card(entry, photo, self.root))
        except Exception:
            logger.exception("Card rendering failed for %s", entry.day_key)

        try:
            fire_save_hooks(result, self.root)
        except Exception:
            logger.exception("Hooks failed for %s", entry.day_key)
