"""Server-side session handling: mint, validate, refresh and revoke."""

import logging
import secrets
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from shapeflow.config import Settings
from shapeflow.models import User, as_utc, utcnow
from shapeflow.stores import CredentialStore, SessionStore

logger = logging.getLogger(__name__)


def generate_session_id() -> str:
    """
    Generate cryptographically secure session identifier.

    Uses 32 bytes (256 bits) of randomness.
    Hex encoded = 64 character string.
    """
    return secrets.token_hex(32)


@dataclass(frozen=True)
class SessionInfo:
    id: str
    user_id: str
    expires_at: datetime
    # True when expires_at was just extended and the cookie must be re-issued
    fresh: bool = False


@dataclass(frozen=True)
class SessionCookie:
    name: str
    value: str
    attributes: Dict[str, Any] = field(default_factory=dict)

    def apply(self, response) -> None:
        """Write this cookie onto a Starlette/FastAPI response."""
        response.set_cookie(key=self.name, value=self.value, **self.attributes)


@dataclass(frozen=True)
class ValidationResult:
    session: Optional[SessionInfo]
    user: Optional[User]

    @property
    def valid(self) -> bool:
        return self.session is not None and self.user is not None


_INVALID = ValidationResult(session=None, user=None)


class SessionManager:
    """
    Create, validate, refresh and invalidate sessions.

    Built once per process with its stores and passed to requests
    through app.state. Holds no session state of its own: every call
    reads through to the SessionStore.
    """

    def __init__(self, session_store: SessionStore, credential_store: CredentialStore, settings: Settings):
        self._sessions = session_store
        self._credentials = credential_store
        self._settings = settings
        self._ttl = timedelta(hours=settings.session_expire_hours)
        self._refresh_threshold = timedelta(hours=settings.refresh_threshold_hours)

    @property
    def cookie_name(self) -> str:
        return self._settings.cookie_name

    async def create_session(self, user_id: str) -> SessionInfo:
        """
        Create new session for user.

        The returned id is the token to put in the cookie.
        """
        expires_at = self._now() + self._ttl
        row = await self._sessions.insert(generate_session_id(), user_id, expires_at)
        logger.debug("Session created for user %s, expires %s", user_id, expires_at.isoformat())
        return SessionInfo(id=row.id, user_id=row.user_id, expires_at=expires_at)

    async def validate_session(self, session_id: str) -> ValidationResult:
        """
        Validate session and retrieve associated user.

        Returns an empty result if:
        - Session doesn't exist
        - Session is expired (the row is purged as a side effect)
        - User doesn't exist (shouldn't happen with FK constraint)

        Never writes an expiry extension; see refresh_session_if_near_expiry.
        """
        if not session_id:
            return _INVALID

        row = await self._sessions.get(session_id)
        if row is None:
            return _INVALID

        expires_at = as_utc(row.expires_at)
        if expires_at <= self._now():
            await self._sessions.delete(session_id)
            logger.info("Purged expired session for user %s", row.user_id)
            return _INVALID

        user = await self._credentials.get_by_id(row.user_id)
        if user is None:
            await self._sessions.delete(session_id)
            return _INVALID

        return ValidationResult(
            session=SessionInfo(id=row.id, user_id=row.user_id, expires_at=expires_at),
            user=user,
        )

    def needs_refresh(self, session: SessionInfo) -> bool:
        return as_utc(session.expires_at) - self._now() < self._refresh_threshold

    async def refresh_session_if_near_expiry(self, session: SessionInfo) -> SessionInfo:
        """
        Extend the session when its remaining lifetime is under the threshold.

        Returns the same object when no write was needed, otherwise a copy
        with the new expiry and fresh=True. The update is a single statement,
        so an aborted request leaves either the old or the new expiry.
        """
        if not self.needs_refresh(session):
            return session

        expires_at = self._now() + self._ttl
        updated = await self._sessions.update_expiration(session.id, expires_at)
        if not updated:
            # Invalidated concurrently; keep the old view, the next request will see it gone
            return session

        logger.debug("Session for user %s extended to %s", session.user_id, expires_at.isoformat())
        return replace(session, expires_at=expires_at, fresh=True)

    async def invalidate_session(self, session_id: str) -> None:
        """
        Delete session (logout). Missing sessions are not an error.
        """
        await self._sessions.delete(session_id)

    async def invalidate_user_sessions(self, user_id: str) -> int:
        """
        Delete all sessions for a user.

        Used for:
        - Password reset (invalidate all sessions)
        - "logout all devices"

        Returns number of sessions deleted.
        """
        count = await self._sessions.delete_for_user(user_id)
        logger.info("Invalidated %d session(s) for user %s", count, user_id)
        return count

    async def delete_expired_sessions(self) -> int:
        """
        Remove expired sessions from database.

        Returns number of sessions cleaned up.
        """
        count = await self._sessions.delete_expired(self._now())
        if count:
            logger.info("Removed %d expired session(s)", count)
        return count

    def create_session_cookie(self, session_id: str) -> SessionCookie:
        """
        Cookie carrying the session id.

        Cookie attributes:
        - httponly: Prevents JavaScript access (XSS protection)
        - secure: HTTPS only outside local development
        - samesite: Lax for CSRF protection while allowing normal navigation
        - max_age: Cookie lifetime in seconds
        - path: Cookie sent on all paths

        The cookie only contains the session ID (opaque token).
        All user data stays server-side.
        """
        return SessionCookie(
            name=self.cookie_name,
            value=session_id,
            attributes=self._cookie_attributes(max_age=int(self._ttl.total_seconds())),
        )

    def create_blank_session_cookie(self) -> SessionCookie:
        """
        Empty, already-expired cookie so the client stops presenting the token.
        """
        return SessionCookie(name=self.cookie_name, value="", attributes=self._cookie_attributes(max_age=0))

    def _cookie_attributes(self, max_age: int) -> Dict[str, Any]:
        return {
            "httponly": self._settings.cookie_httponly,
            "secure": self._settings.cookie_secure,
            "samesite": self._settings.cookie_samesite,
            "max_age": max_age,
            "path": "/",
            "domain": self._settings.cookie_domain,
        }

    def _now(self) -> datetime:
        return utcnow()


__all__ = [
    "SessionCookie",
    "SessionInfo",
    "SessionManager",
    "ValidationResult",
    "generate_session_id",
]
