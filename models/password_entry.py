from datetime import datetime
from sqlalchemy.orm import validates

from models.db import db
from security.crypto import generate_salt

# Marker for "leave this field as it is" in partial updates
UNSET = object()

class PasswordEntry(db.Model):
    __tablename__ = "password_entries"
    __table_args__ = (
        db.UniqueConstraint("site", "username", "user_id", name="uq_password_entries_site_username_user"),
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    site = db.Column(db.String(255), nullable=False)
    username = db.Column(db.String(255), nullable=False)

    # Ciphertext ("iv:data" hex) or NULL when no secret is set
    password = db.Column(db.Text, nullable=True)
    notes = db.Column(db.Text, nullable=True)

    # Per-record KDF salt, never sent to clients
    salt = db.Column(db.String(64), nullable=False)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    user = db.relationship("User", back_populates="entries")

    def __init__(self, **kwargs):
        kwargs.setdefault("salt", generate_salt())
        super().__init__(**kwargs)

    @validates("salt")
    def _validate_salt(self, key, value):
        if not value:
            raise ValueError("salt must be a non-empty string")
        if self.salt is not None and value != self.salt:
            raise ValueError("salt cannot change once set; existing ciphertext depends on it")
        return value

    def set_secrets(self, engine, password=UNSET, notes=UNSET) -> None:
        """Encrypt the given fields under this entry's salt. Empty or None clears."""
        if password is not UNSET:
            self.password = engine.encrypt(password, self.salt) if password else None
        if notes is not UNSET:
            self.notes = engine.encrypt(notes, self.salt) if notes else None

    def reveal(self, engine) -> tuple:
        """Decrypted (password, notes); None where nothing is stored."""
        password = engine.decrypt(self.password, self.salt) if self.password else None
        notes = engine.decrypt(self.notes, self.salt) if self.notes else None
        return password, notes

    def to_dict(self, engine) -> dict:
        password, notes = self.reveal(engine)
        return {
            "id": self.id,
            "user_id": self.user_id,
            "site": self.site,
            "username": self.username,
            "password": password,
            "notes": notes,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
