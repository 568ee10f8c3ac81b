"""
Progressive login lockout.

Pure state transitions over a per-account LoginAttemptState. Nothing here
touches the database or the clock: callers pass ``now`` in, and persist the
returned state atomically (see security.bruteforce).

Tiers are read against the cumulative failure counter:
    3 failures -> 30 seconds, 5 -> 3 minutes, 8+ -> 10 minutes.
Locks expire lazily, by comparing ``locked_until`` with ``now``.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

LOCKOUT_THRESHOLD = 3

# Highest threshold first
LOCKOUT_TIERS = (
    (8, timedelta(minutes=10)),
    (5, timedelta(minutes=3)),
    (LOCKOUT_THRESHOLD, timedelta(seconds=30)),
)

NO_LOCKOUT = timedelta(0)


@dataclass(frozen=True)
class LoginAttemptState:
    attempts: int = 0
    locked_until: Optional[datetime] = None
    last_failed_at: Optional[datetime] = None

    def is_locked(self, now: datetime) -> bool:
        return self.locked_until is not None and self.locked_until > now


@dataclass(frozen=True)
class Evaluation:
    allowed: bool
    remaining_seconds: int = 0
    attempts: int = 0
    locked_until: Optional[datetime] = None


@dataclass(frozen=True)
class FailureOutcome:
    locked: bool
    attempts: int
    remaining_seconds: int = 0
    attempts_remaining: int = 0
    locked_until: Optional[datetime] = None


def _ceil_seconds(delta: timedelta) -> int:
    return max(math.ceil(delta.total_seconds()), 0)


def lockout_duration(attempts: int) -> timedelta:
    if attempts < 0:
        raise ValueError("attempts must be >= 0")
    for threshold, duration in LOCKOUT_TIERS:
        if attempts >= threshold:
            return duration
    return NO_LOCKOUT


def evaluate(state: LoginAttemptState, now: datetime) -> Evaluation:
    """
    Gate run before the password is checked. A rejected evaluation must not
    lead to a state change.
    """
    if state.is_locked(now):
        return Evaluation(
            allowed=False,
            remaining_seconds=max(_ceil_seconds(state.locked_until - now), 1),
            attempts=state.attempts,
            locked_until=state.locked_until,
        )
    return Evaluation(allowed=True, attempts=state.attempts)


def record_failure(state: LoginAttemptState, now: datetime) -> tuple[LoginAttemptState, FailureOutcome]:
    """
    Count a failed password check made after an allowed evaluation.
    """
    if state.is_locked(now):
        # Caller skipped evaluate(); refuse to extend the running lock.
        raise ValueError("record_failure called while a lockout is active")

    attempts = state.attempts + 1
    duration = lockout_duration(attempts)

    if duration > NO_LOCKOUT:
        locked_until = now + duration
        outcome = FailureOutcome(
            locked=True,
            attempts=attempts,
            remaining_seconds=_ceil_seconds(duration),
            locked_until=locked_until,
        )
    else:
        locked_until = None
        outcome = FailureOutcome(
            locked=False,
            attempts=attempts,
            attempts_remaining=max(0, LOCKOUT_THRESHOLD - attempts),
        )

    new_state = LoginAttemptState(attempts=attempts, locked_until=locked_until, last_failed_at=now)
    return new_state, outcome


def record_success(state: LoginAttemptState) -> tuple[LoginAttemptState, int]:
    """
    Returns the cleared state and the failure count worth reporting to the
    user (0 below the first lockout tier).
    """
    previous = state.attempts if state.attempts >= LOCKOUT_THRESHOLD else 0
    return LoginAttemptState(), previous


def describe_duration(duration: timedelta) -> str:
    """'30 seconds', '3 minutes', '10 minutes' for lockout messages."""
    seconds = _ceil_seconds(duration)
    if seconds >= 60 and seconds % 60 == 0:
        minutes = seconds // 60
        return f"{minutes} minute" if minutes == 1 else f"{minutes} minutes"
    return f"{seconds} second" if seconds == 1 else f"{seconds} seconds"
