import secrets
import string
from datetime import datetime, timezone

from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import relationship

from shapeflow.database import Base

ROLE_USER = "user"
ROLE_ADMIN = "admin"
ROLES = (ROLE_USER, ROLE_ADMIN)

THEMES = ("light", "dark")
DEFAULT_THEME = "dark"

_ID_ALPHABET = string.ascii_lowercase + string.digits


def generate_id(length: int = 15) -> str:
    """Random lowercase alphanumeric id, used for user ids."""
    return "".join(secrets.choice(_ID_ALPHABET) for _ in range(length))


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """SQLite hands back naive datetimes; every stored timestamp is UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class User(Base):
    """
    Core user model. Stores credentials, role and UI preferences.

    Design notes:
    - id is an opaque 15 character string, never a sequence
    - email is unique, lower-cased and indexed for fast lookup
    - password_hash never leaves the database layer
    - role is re-read on every authorization check, never copied into the session
    """
    __tablename__ = "users"

    id = Column(String(15), primary_key=True)
    email = Column(String(255), unique=True, nullable=False, index=True)
    password_hash = Column(String(255), nullable=False)
    role = Column(String(16), nullable=False, default=ROLE_USER)
    theme = Column(String(16), nullable=True, default=DEFAULT_THEME)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    sessions = relationship(
        "Session",
        back_populates="user",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    __table_args__ = (
        CheckConstraint("role IN ('user', 'admin')", name="ck_users_role"),
    )

    def __repr__(self):
        return f"<User(id={self.id}, email={self.email}, role={self.role})>"


class Session(Base):
    """
    Server-side session storage.

    Design notes:
    - id is the token stored in the cookie (32 random bytes, hex encoded)
    - user_id cascades so deleting a user drops every session it owns
    - expires_at is absolute and indexed for the purge query

    Session lifecycle:
    1. Created on login/registration with a random id
    2. Validated on each request against expires_at
    3. Extended when close to expiry
    4. Deleted on logout, expiration or user deletion
    """
    __tablename__ = "sessions"

    id = Column(String(64), primary_key=True)
    user_id = Column(String(15), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    expires_at = Column(DateTime(timezone=True), nullable=False, index=True)

    user = relationship("User", back_populates="sessions")

    def __repr__(self):
        return f"<Session(user_id={self.user_id}, expires_at={self.expires_at})>"


class AuditLog(Base):
    """
    Append-only record of privileged actions.

    user_id is the acting user. Entries outlive the actor, so there is no
    foreign key to users.
    """
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(15), nullable=False, index=True)
    action = Column(String(16), nullable=False)
    entity_type = Column(String(64), nullable=False)
    entity_id = Column(String(64), nullable=True)
    details = Column(Text, nullable=True)
    ip_address = Column(String(64), nullable=True)
    user_agent = Column(String(512), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False, index=True)

    __table_args__ = (
        Index("ix_audit_user_created", "user_id", "created_at"),
    )

    def __repr__(self):
        return f"<AuditLog(action={self.action}, entity={self.entity_type}:{self.entity_id})>"
