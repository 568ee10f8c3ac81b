from .db import db
from .user import User
from .password_entry import PasswordEntry, UNSET
from .audit_log import AuditLog
