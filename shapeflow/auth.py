"""
Authentication and authorization gates.

AuthenticationGate answers "who is calling": it turns a session token
into a Principal or raises Unauthorized. AuthorizationGate answers "what
may they do": it re-reads the caller's role from the CredentialStore on
every check and raises Forbidden when it is insufficient.
"""

import logging
from dataclasses import dataclass, replace
from typing import Optional

from shapeflow.errors import Forbidden, Unauthorized
from shapeflow.models import ROLE_ADMIN, User
from shapeflow.sessions import SessionInfo, SessionManager
from shapeflow.stores import CredentialStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Principal:
    """The resolved (user, session) pair for one request."""
    user: User
    session: SessionInfo

    @property
    def user_id(self) -> str:
        return self.user.id


class AuthenticationGate:

    def __init__(self, session_manager: SessionManager):
        self._manager = session_manager

    async def resolve_request(self, token: Optional[str], response=None) -> Principal:
        """
        Resolve a session token to a Principal.

        With a response, a session close to expiry is extended and the
        cookie re-issued on it. Without one (a read-only context) the
        refresh is skipped; the next request that can write a cookie
        will do it.
        """
        if not token:
            raise Unauthorized()

        result = await self._manager.validate_session(token)
        if not result.valid:
            raise Unauthorized()

        session = result.session
        if response is not None:
            session = await self._manager.refresh_session_if_near_expiry(session)
            if session.fresh:
                self._manager.create_session_cookie(session.id).apply(response)

        return Principal(user=result.user, session=session)

    async def resolve_optional(self, token: Optional[str], response=None) -> Optional[Principal]:
        try:
            return await self.resolve_request(token, response)
        except Unauthorized:
            return None


class AuthorizationGate:

    def __init__(self, credential_store: CredentialStore):
        self._credentials = credential_store

    async def require_role(self, principal: Principal, required_role: str) -> Principal:
        """
        Check the caller's current role.

        The role on principal.user may be stale (the user could have been
        demoted since the session was resolved), so it is ignored and the
        stored role is read again. Returns a Principal carrying the fresh
        user row.
        """
        user = await self._credentials.get_by_id(principal.user_id)
        if user is None:
            # Deleted between authentication and this check
            raise Unauthorized()
        if user.role != required_role:
            logger.warning("User %s with role %r denied %r access", user.id, user.role, required_role)
            raise Forbidden()
        return replace(principal, user=user)

    async def require_admin(self, principal: Principal) -> Principal:
        return await self.require_role(principal, ROLE_ADMIN)
