import logging
from datetime import datetime
from typing import Optional

from flask import current_app
from sqlalchemy import select, update

from models import db
from models.user import User
from security.lockout import (
    Evaluation,
    FailureOutcome,
    LoginAttemptState,
    evaluate,
    record_failure,
    record_success,
)

logger = logging.getLogger(__name__)


class ConcurrentStateRace(Exception):
    """Login state kept changing under us; no write was made."""


def load_state(user_id: int) -> Optional[LoginAttemptState]:
    """
    Reads the committed state straight from the table, bypassing any
    cached User instance in the session.
    """
    row = db.session.execute(
        select(User.login_attempts, User.locked_until, User.last_failed_login)
        .where(User.id == user_id)
    ).one_or_none()
    if row is None:
        return None
    return LoginAttemptState(attempts=row[0] or 0, locked_until=row[1], last_failed_at=row[2])


def _swap(user_id: int, seen: LoginAttemptState, new: LoginAttemptState) -> bool:
    """
    Writes ``new`` only if the row still holds ``seen``.
    """
    if seen.locked_until is None:
        lock_matches = User.locked_until.is_(None)
    else:
        lock_matches = User.locked_until == seen.locked_until

    result = db.session.execute(
        update(User)
        .where(User.id == user_id, User.login_attempts == seen.attempts, lock_matches)
        .values(
            login_attempts=new.attempts,
            locked_until=new.locked_until,
            last_failed_login=new.last_failed_at,
        )
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 1:
        db.session.commit()
        return True

    db.session.rollback()
    return False


def _max_retries() -> int:
    return current_app.config.get("LOGIN_STATE_MAX_RETRIES", 5)


def is_locked(user: User, now: datetime) -> Evaluation:
    """
    Returns the evaluate() result for the account. Never writes.
    """
    state = load_state(user.id) or LoginAttemptState()
    return evaluate(state, now)


def register_failure(user: User, now: datetime) -> FailureOutcome:
    """
    Counts one failed password check. If another request locked the
    account in the meantime, nothing is counted and the running lock is
    reported as is.
    """
    for _ in range(_max_retries()):
        state = load_state(user.id)
        if state is None:
            raise LookupError(f"User {user.id} does not exist")

        gate = evaluate(state, now)
        if not gate.allowed:
            return FailureOutcome(
                locked=True,
                attempts=gate.attempts,
                remaining_seconds=gate.remaining_seconds,
                locked_until=gate.locked_until,
            )

        new_state, outcome = record_failure(state, now)
        if _swap(user.id, state, new_state):
            db.session.expire(user)
            return outcome

        logger.info("Login state for user %s changed concurrently, retrying", user.id)

    raise ConcurrentStateRace(f"Could not record failure for user {user.id}")


def reset_attempts(user: User) -> int:
    """
    Clears failure counter after successful login. Returns the number of
    earlier failures worth telling the user about.
    """
    for _ in range(_max_retries()):
        state = load_state(user.id)
        if state is None:
            raise LookupError(f"User {user.id} does not exist")

        new_state, previous = record_success(state)
        if state == new_state or _swap(user.id, state, new_state):
            db.session.expire(user)
            return previous

        logger.info("Login state for user %s changed concurrently, retrying", user.id)

    raise ConcurrentStateRace(f"Could not reset login state for user {user.id}")
