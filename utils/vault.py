from flask import current_app

from models import db
from models.password_entry import PasswordEntry, UNSET
from security.crypto import get_engine


def password_warnings(password) -> list[str]:
    min_len = current_app.config.get("PASSWORD_WARN_LENGTH", 12)
    if password and len(password) < min_len:
        return [f"Password is less than {min_len} characters - consider using a stronger password"]
    return []


def new_entry(user_id: int, site: str, username: str, password=None, notes=None):
    """
    Creates an entry with a fresh salt and encrypted secrets.
    Returns (entry, warnings); the caller commits.
    """
    entry = PasswordEntry(user_id=user_id, site=site, username=username)
    entry.set_secrets(get_engine(), password=password, notes=notes)
    db.session.add(entry)
    return entry, password_warnings(password)


def update_secrets(entry: PasswordEntry, password=UNSET, notes=UNSET) -> list[str]:
    """Re-encrypts changed fields under the entry's existing salt."""
    entry.set_secrets(get_engine(), password=password, notes=notes)
    if password is UNSET:
        return []
    return password_warnings(password)


def reveal_entry(entry: PasswordEntry) -> dict:
    # Write pending changes first so the reload sees them; salt and
    # ciphertext then come from the same row snapshot
    db.session.flush()
    db.session.refresh(entry)
    return entry.to_dict(get_engine())
