from datetime import datetime
from models.db import db
from security.lockout import LoginAttemptState

class User(db.Model):
    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)

    name = db.Column(db.String(255), unique=True, nullable=False, index=True)
    password_hash = db.Column(db.String(255), nullable=False)
    is_admin = db.Column(db.Boolean, default=False, nullable=False)

    # Brute-force state; only written through security.bruteforce
    login_attempts = db.Column(db.Integer, default=0, nullable=False)
    locked_until = db.Column(db.DateTime, nullable=True)
    last_failed_login = db.Column(db.DateTime, nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    entries = db.relationship(
        "PasswordEntry",
        back_populates="user",
        cascade="all, delete-orphan",
        lazy=True,
    )

    @property
    def login_state(self) -> LoginAttemptState:
        return LoginAttemptState(
            attempts=self.login_attempts or 0,
            locked_until=self.locked_until,
            last_failed_at=self.last_failed_login,
        )

    def to_public_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "is_admin": self.is_admin,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
