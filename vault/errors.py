"""Error taxonomy for DayVault saves."""

from __future__ import annotations

from datetime import timedelta


class VaultError(Exception):
    """Base class for every error a save attempt can surface."""


class ValidationError(VaultError, ValueError):
    """Input must be corrected by the user; nothing was written."""


class GateDenied(VaultError):
    """The gate refused the save. Recoverable, no state changed."""

    reason = "denied"


class DuplicateDate(GateDenied):
    reason = "duplicate-date"

    def __init__(self, day_key: str) -> None:
        super().__init__(f"A memory already exists for {day_key}.")
        self.day_key = day_key


class CooldownActive(GateDenied):
    reason = "cooldown-active"

    def __init__(self, remaining: timedelta) -> None:
        super().__init__("One memory per cooldown window; try again later.")
        self.remaining = remaining


class BackfillExhausted(GateDenied):
    reason = "backfill-exhausted"

    def __init__(self, limit: int) -> None:
        super().__init__(f"All {limit} backfill credits have been used.")
        self.limit = limit


class StorageFailure(VaultError):
    """Persistence unavailable or blocked. Retryable; counters untouched."""
