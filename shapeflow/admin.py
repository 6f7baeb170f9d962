"""
User management for the admin back-office.

Callers must have passed AuthorizationGate.require_admin; the actor
passed in here is that checked principal. This layer adds the
self-protection rules: an admin cannot demote or delete their own
account.
"""

import logging
from typing import List, Optional

from shapeflow.audit import RequestMeta, log_audit
from shapeflow.auth import Principal
from shapeflow.errors import Forbidden, InvalidInput, InvalidOperation, NotFound
from shapeflow.models import ROLE_ADMIN, ROLE_USER, ROLES, User, generate_id
from shapeflow.passwords import hash_password
from shapeflow.sessions import SessionManager
from shapeflow.stores import AuditStore, CredentialStore

logger = logging.getLogger(__name__)


class AdminService:

    def __init__(
        self,
        credential_store: CredentialStore,
        session_manager: SessionManager,
        audit_store: AuditStore,
    ):
        self._credentials = credential_store
        self._sessions = session_manager
        self._audit = audit_store

    async def list_users(self) -> List[User]:
        return await self._credentials.list_users()

    async def create_user(
        self,
        actor: Principal,
        email: str,
        password: str,
        role: str = ROLE_USER,
        meta: Optional[RequestMeta] = None,
    ) -> User:
        _check_role(role)
        user = await self._credentials.create_user(generate_id(), email, hash_password(password), role)
        logger.info("Admin %s created user %s (%s)", actor.user_id, user.id, role)
        await log_audit(
            self._audit, actor.user_id, "create", "user", user.id,
            details={"email": user.email, "role": role}, meta=meta,
        )
        return user

    async def update_role(
        self,
        actor: Principal,
        user_id: str,
        role: str,
        meta: Optional[RequestMeta] = None,
    ) -> User:
        _check_role(role)
        user = await self._require_user(user_id)

        if user.id == actor.user_id and role != ROLE_ADMIN:
            raise Forbidden("You cannot remove your own admin role")

        await self._credentials.update_role(user.id, role)
        logger.info("Admin %s changed role of %s from %s to %s", actor.user_id, user.id, user.role, role)
        await log_audit(
            self._audit, actor.user_id, "update", "user", user.id,
            details={"role": {"from": user.role, "to": role}}, meta=meta,
        )
        user.role = role
        return user

    async def reset_password(
        self,
        actor: Principal,
        user_id: str,
        password: str,
        meta: Optional[RequestMeta] = None,
    ) -> None:
        """
        Set a new password and log the user out everywhere.
        """
        user = await self._require_user(user_id)
        await self._credentials.update_password(user.id, hash_password(password))
        await self._sessions.invalidate_user_sessions(user.id)
        logger.info("Admin %s reset password of %s", actor.user_id, user.id)
        await log_audit(
            self._audit, actor.user_id, "update", "user", user.id,
            details={"field": "password"}, meta=meta,
        )

    async def delete_user(self, actor: Principal, user_id: str, meta: Optional[RequestMeta] = None) -> None:
        user = await self._require_user(user_id)

        if user.id == actor.user_id:
            raise InvalidOperation("You cannot delete your own account")

        await self._credentials.delete_user(user.id)
        logger.info("Admin %s deleted user %s", actor.user_id, user.id)
        await log_audit(
            self._audit, actor.user_id, "delete", "user", user.id,
            details={"email": user.email}, meta=meta,
        )

    async def _require_user(self, user_id: str) -> User:
        user = await self._credentials.get_by_id(user_id)
        if user is None:
            raise NotFound("User not found")
        return user


def _check_role(role: str) -> None:
    if role not in ROLES:
        raise InvalidInput(f"Role must be one of: {', '.join(ROLES)}")
