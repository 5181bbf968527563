"""Brute-force lockout state machine.

States
------
``Unlocked``
    ``locked_until`` is empty or already in the past.
``Locked``
    ``locked_until`` lies in the future; every attempt is refused.

The machine keeps no state of its own. Each transition is computed from the
counters stored on an :class:`~secure_login.domain.account.Account` and returned
as the set of columns to persist. Failures are evaluated by the repository
against the row it holds locked for the write (``apply_failure``), so
concurrent failures are counted one by one and an expired-lock reset never
sees a lock another request has just written.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any

from .account import Account

DEFAULT_THRESHOLD = 5
DEFAULT_LOCK_DURATION = timedelta(hours=2)


def is_locked(locked_until: datetime | None, now: datetime) -> bool:
    """Return ``True`` while a lock timestamp is set and still in the future."""
    return locked_until is not None and locked_until > now


@dataclass(slots=True, frozen=True)
class LockoutTransition:
    """Outcome of one state-machine step.

    ``locked`` is set only by the step that creates a lock; ``locked_until``
    also reports a lock that was already active.
    """

    changes: dict[str, Any] = field(default_factory=dict)
    locked: bool = False
    locked_until: datetime | None = None


class LockoutPolicy:
    """Consecutive-failure lockout with a fixed lock window."""

    def __init__(
        self,
        threshold: int = DEFAULT_THRESHOLD,
        lock_duration: timedelta = DEFAULT_LOCK_DURATION,
    ) -> None:
        if threshold < 1:
            raise ValueError("lockout threshold must be at least 1")
        self._threshold = threshold
        self._lock_duration = lock_duration

    @property
    def threshold(self) -> int:
        return self._threshold

    @property
    def lock_duration(self) -> timedelta:
        return self._lock_duration

    def is_locked(self, account: Account, now: datetime) -> bool:
        return is_locked(account.locked_until, now)

    def record_failure(self, account: Account, now: datetime) -> LockoutTransition:
        """Count a failed attempt and lock the account once the threshold is reached."""
        changes: dict[str, Any] = {}
        if account.locked_until is not None and not is_locked(account.locked_until, now):
            # expired lock: restart the count at this attempt
            attempts = 1
            changes["locked_until"] = None
            already_locked = False
        else:
            attempts = account.failed_attempts + 1
            already_locked = is_locked(account.locked_until, now)
        changes["failed_attempts"] = attempts

        if attempts >= self._threshold and not already_locked:
            locked_until = now + self._lock_duration
            changes["locked_until"] = locked_until
            return LockoutTransition(changes=changes, locked=True, locked_until=locked_until)
        if already_locked:
            # counted, but the existing lock is left untouched
            return LockoutTransition(changes=changes, locked_until=account.locked_until)
        return LockoutTransition(changes=changes)

    def record_success(self, now: datetime) -> LockoutTransition:
        """Return to ``Unlocked`` and stamp the login time."""
        return LockoutTransition(
            changes={"failed_attempts": 0, "locked_until": None, "last_login_at": now},
        )
