"""
Tests for the login handler: throttling, status codes and audit trail
"""
from datetime import timedelta

import pytest
from sqlalchemy import update

import security.bruteforce as bruteforce
from models import db
from models.audit_log import AuditLog
from models.user import User
from security.bruteforce import load_state


def login(client, name="alice", password="correct-horse"):
    return client.post("/auth/login", json={"name": name, "password": password})


@pytest.fixture
def alice(make_user):
    return make_user(name="alice", password="correct-horse")


class TestLoginBasics:

    def test_success_returns_user(self, client, alice, clock):
        resp = login(client)
        assert resp.status_code == 200
        body = resp.get_json()
        assert body["user"]["name"] == "alice"
        assert "password_hash" not in body["user"]
        assert "previous_failed_attempts" not in body

    def test_missing_fields_are_rejected(self, client, clock):
        resp = client.post("/auth/login", json={"name": "alice"})
        assert resp.status_code == 400

    def test_unknown_user_is_invalid_credentials(self, client, clock):
        resp = login(client, name="nobody")
        assert resp.status_code == 401
        assert resp.get_json() == {"error": "Invalid credentials"}

    def test_wrong_password_reports_attempts_remaining(self, client, alice, clock):
        first = login(client, password="nope")
        clock.advance(1)
        second = login(client, password="nope")

        assert first.status_code == 401
        assert first.get_json()["attempts"] == 1
        assert first.get_json()["attempts_remaining"] == 2
        assert second.get_json()["attempts_remaining"] == 1

    def test_security_headers(self, client, clock):
        resp = client.get("/health")
        assert resp.headers["X-Content-Type-Options"] == "nosniff"
        assert resp.headers["Cache-Control"] == "no-store"


class TestLockoutFlow:

    def test_third_failure_locks_account(self, client, alice, clock):
        login(client, password="bad")
        clock.advance(1)
        login(client, password="bad")
        clock.advance(1)
        resp = login(client, password="bad")

        assert resp.status_code == 423
        body = resp.get_json()
        assert body["attempts"] == 3
        assert 0 < body["remaining_seconds"] <= 30
        assert "30 seconds" in body["error"]

    def test_lockout_scenario(self, client, alice, clock):
        for _ in range(3):
            login(client, password="bad")
            clock.advance(1)
        clock.advance(-1)
        locked_until = load_state(alice.id).locked_until

        # Correct password during the lock is refused without being checked
        clock.advance(15)
        resp = login(client)
        assert resp.status_code == 423
        assert resp.get_json()["remaining_seconds"] == 15
        assert load_state(alice.id).locked_until == locked_until
        assert load_state(alice.id).attempts == 3

        clock.advance(16)
        resp = login(client)
        assert resp.status_code == 200
        assert resp.get_json()["previous_failed_attempts"] == 3
        assert load_state(alice.id).attempts == 0
        assert load_state(alice.id).locked_until is None

    def test_hammering_during_lock_does_not_extend_it(self, client, alice, clock):
        for _ in range(3):
            login(client, password="bad")
        locked_until = load_state(alice.id).locked_until

        for _ in range(10):
            clock.advance(2)
            resp = login(client, password="bad")
            assert resp.status_code == 423

        state = load_state(alice.id)
        assert state.attempts == 3
        assert state.locked_until == locked_until

    def test_escalates_to_three_minutes_on_fifth_failure(self, client, alice, clock):
        for _ in range(3):
            login(client, password="bad")
        clock.advance(31)
        resp = login(client, password="bad")
        assert resp.status_code == 423
        assert resp.get_json()["remaining_seconds"] == 30

        clock.advance(31)
        resp = login(client, password="bad")
        body = resp.get_json()
        assert body["attempts"] == 5
        assert body["remaining_seconds"] == 180
        assert "3 minutes" in body["error"]

    def test_escalates_to_ten_minutes(self, client, make_user, clock):
        make_user(name="bob", password="bob-password", login_attempts=7)
        resp = login(client, name="bob", password="bad")
        body = resp.get_json()
        assert resp.status_code == 423
        assert body["remaining_seconds"] == 600
        assert "10 minutes" in body["error"]

    def test_concurrent_lock_message_names_the_tier(self, client, make_user, clock, monkeypatch):
        user = make_user(name="erin", password="erin-password", login_attempts=2)
        real_swap = bruteforce._swap
        lock_end = clock.now + timedelta(seconds=25)

        def racing_swap(user_id, seen, new):
            # Another request locks the account first
            db.session.execute(
                update(User).where(User.id == user_id).values(login_attempts=3, locked_until=lock_end)
            )
            db.session.commit()
            return real_swap(user_id, seen, new)

        monkeypatch.setattr(bruteforce, "_swap", racing_swap)

        resp = login(client, name="erin", password="bad")
        body = resp.get_json()

        assert resp.status_code == 423
        assert body["remaining_seconds"] == 25
        assert "locked for 30 seconds" in body["error"]
        assert load_state(user.id).locked_until == lock_end

    def test_success_below_threshold_has_no_notice(self, client, alice, clock):
        login(client, password="bad")
        clock.advance(1)
        resp = login(client)
        assert resp.status_code == 200
        assert "previous_failed_attempts" not in resp.get_json()


class TestAuditTrail:

    def test_login_events_are_recorded(self, client, alice, clock):
        for _ in range(3):
            login(client, password="bad")
        login(client)
        clock.advance(31)
        login(client)

        actions = [row.action for row in AuditLog.query.order_by(AuditLog.id).all()]
        assert actions == [
            "LOGIN_FAIL",
            "LOGIN_FAIL",
            "LOGIN_LOCKOUT_START",
            "LOGIN_LOCKED",
            "LOGIN_SUCCESS",
        ]


class TestRegister:

    def test_register_then_login(self, client, clock):
        resp = client.post("/auth/register", json={"name": "carol", "password": "secret-pass"})
        assert resp.status_code == 201
        assert login(client, name="carol", password="secret-pass").status_code == 200

    def test_duplicate_name(self, client, alice):
        resp = client.post("/auth/register", json={"name": "alice", "password": "another-pass"})
        assert resp.status_code == 409

    def test_short_password(self, client):
        resp = client.post("/auth/register", json={"name": "dave", "password": "123"})
        assert resp.status_code == 400
