"""
Pytest configuration: app on in-memory SQLite with a fast bcrypt/KDF setup
"""
from datetime import datetime, timedelta

import pytest

from app import create_app
from config import Config
from models import db
from models.user import User
from security.password import hash_password

T0 = datetime(2026, 1, 1, 12, 0, 0)


class TestingConfig(Config):
    TESTING = True
    APP_ENV = "testing"
    SQLALCHEMY_DATABASE_URI = "sqlite://"
    PWD_SECRET_KEY = "test-secret-not-for-production"
    PWD_KDF_ITERATIONS = 1000
    PWD_STRICT_DECRYPT = True
    BCRYPT_ROUNDS = 4


@pytest.fixture
def app():
    app = create_app(TestingConfig)
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def make_user(app):
    def _make(name="alice", password="correct-horse", **fields):
        user = User(name=name, password_hash=hash_password(password), **fields)
        db.session.add(user)
        db.session.commit()
        return user
    return _make


class FakeClock:
    """Settable stand-in for the login handler's clock"""

    def __init__(self, start=T0):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now = self.now + timedelta(seconds=seconds)
        return self.now


@pytest.fixture
def clock(monkeypatch):
    fake = FakeClock()
    monkeypatch.setattr("routes.auth._now", fake)
    return fake
