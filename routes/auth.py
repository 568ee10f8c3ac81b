from datetime import datetime

from flask import Blueprint, request, jsonify

from models import db
from models.user import User
from security.password import hash_password, check_credentials
from security.bruteforce import is_locked, register_failure, reset_attempts
from security.lockout import describe_duration, lockout_duration
from utils.audit import log_event


auth_bp = Blueprint("auth", __name__, url_prefix="/auth")

NAME_MAX_LENGTH = 100
PASSWORD_MIN_LENGTH = 6


def _now() -> datetime:
    # Single trusted clock for lockout decisions
    return datetime.utcnow()


def _read_credentials():
    data = request.get_json(silent=True) or {}
    name = data.get("name")
    password = data.get("password")
    name = name.strip() if isinstance(name, str) else ""
    password = password if isinstance(password, str) else ""
    return name, password


def _locked_response(remaining_seconds: int, locked_until: datetime, attempts: int, error: str):
    return jsonify(
        error=error,
        locked_until=locked_until.isoformat() if locked_until else None,
        remaining_seconds=remaining_seconds,
        attempts=attempts,
    ), 423


@auth_bp.post("/register")
def register():
    name, password = _read_credentials()

    if not name or len(name) > NAME_MAX_LENGTH:
        return jsonify(error="Validation failed", details=["Name is required (max 100 characters)"]), 400
    if len(password) < PASSWORD_MIN_LENGTH:
        return jsonify(error="Validation failed", details=["Password must be at least 6 characters"]), 400

    if User.query.filter_by(name=name).first():
        log_event("REGISTER_FAIL_NAME_EXISTS", subject=name)
        return jsonify(error="User already exists"), 409

    user = User(name=name, password_hash=hash_password(password))
    db.session.add(user)
    db.session.commit()
    log_event("REGISTER_SUCCESS", user_id=user.id, subject=name)

    return jsonify(user=user.to_public_dict()), 201


@auth_bp.post("/login")
def login():
    name, password = _read_credentials()
    if not name or not password:
        return jsonify(error="Validation failed", details=["Name and password are required"]), 400

    user = User.query.filter_by(name=name).first()
    if not user:
        check_credentials(None, password)
        log_event("LOGIN_FAIL_UNKNOWN_USER", subject=name)
        return jsonify(error="Invalid credentials"), 401

    now = _now()

    # Locked accounts are refused before the password is looked at
    gate = is_locked(user, now)
    if not gate.allowed:
        log_event(
            "LOGIN_LOCKED",
            user_id=user.id,
            subject=name,
            metadata={"remaining_seconds": gate.remaining_seconds, "attempts": gate.attempts},
        )
        return _locked_response(
            gate.remaining_seconds,
            gate.locked_until,
            gate.attempts,
            "Account temporarily locked due to multiple failed login attempts",
        )

    if not check_credentials(user, password):
        outcome = register_failure(user, now)
        log_event(
            "LOGIN_LOCKOUT_START" if outcome.locked else "LOGIN_FAIL",
            user_id=user.id,
            subject=name,
            metadata={"attempts": outcome.attempts, "locked": outcome.locked},
        )
        if outcome.locked:
            return _locked_response(
                outcome.remaining_seconds,
                outcome.locked_until,
                outcome.attempts,
                f"Account locked for {describe_duration(lockout_duration(outcome.attempts))} "
                f"due to {outcome.attempts} failed login attempts",
            )
        return jsonify(
            error="Invalid credentials",
            attempts=outcome.attempts,
            attempts_remaining=outcome.attempts_remaining,
        ), 401

    previous_failed = reset_attempts(user)
    log_event("LOGIN_SUCCESS", user_id=user.id, subject=name, metadata={"previous_failed_attempts": previous_failed})

    body = {"user": user.to_public_dict()}
    if previous_failed:
        body["previous_failed_attempts"] = previous_failed
    return jsonify(body), 200
