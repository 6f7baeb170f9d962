"""
Persistence contracts for users, sessions and audit entries.

Every method opens its own short AsyncSession and commits a single
statement, so each write is atomic on its own and nothing is cached
between calls. Rows are returned detached (expire_on_commit=False).
"""

import json
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import async_sessionmaker

from shapeflow.errors import Conflict
from shapeflow.models import ROLE_USER, AuditLog, Session, User, utcnow

logger = logging.getLogger(__name__)


def normalize_email(email: str) -> str:
    # Prevents duplicate accounts with different casing
    return email.strip().lower()


class CredentialStore:
    """Users: identity, password hash and role."""

    def __init__(self, sessionmaker: async_sessionmaker):
        self._sessionmaker = sessionmaker

    async def get_by_id(self, user_id: str) -> Optional[User]:
        async with self._sessionmaker() as db:
            return await db.get(User, user_id)

    async def get_by_email(self, email: str) -> Optional[User]:
        async with self._sessionmaker() as db:
            result = await db.execute(select(User).where(User.email == normalize_email(email)))
            return result.scalar_one_or_none()

    async def list_users(self) -> List[User]:
        async with self._sessionmaker() as db:
            result = await db.execute(select(User).order_by(User.created_at.desc()))
            return list(result.scalars().all())

    async def create_user(self, user_id: str, email: str, password_hash: str, role: str = ROLE_USER) -> User:
        """
        Insert a user. Raises Conflict when the email is already taken.
        """
        user = User(id=user_id, email=normalize_email(email), password_hash=password_hash, role=role)
        async with self._sessionmaker() as db:
            db.add(user)
            try:
                await db.commit()
            except IntegrityError:
                await db.rollback()
                raise Conflict()
        return user

    async def update_role(self, user_id: str, role: str) -> bool:
        return await self._update(user_id, role=role)

    async def update_password(self, user_id: str, password_hash: str) -> bool:
        return await self._update(user_id, password_hash=password_hash)

    async def update_theme(self, user_id: str, theme: str) -> bool:
        return await self._update(user_id, theme=theme)

    async def delete_user(self, user_id: str) -> bool:
        """
        Delete a user. Sessions go with it through ON DELETE CASCADE.
        """
        async with self._sessionmaker() as db:
            result = await db.execute(delete(User).where(User.id == user_id))
            await db.commit()
            return result.rowcount > 0

    async def _update(self, user_id: str, **values: Any) -> bool:
        async with self._sessionmaker() as db:
            result = await db.execute(update(User).where(User.id == user_id).values(**values))
            await db.commit()
            return result.rowcount > 0


class SessionStore:
    """Session rows keyed by the opaque token."""

    def __init__(self, sessionmaker: async_sessionmaker):
        self._sessionmaker = sessionmaker

    async def insert(self, session_id: str, user_id: str, expires_at: datetime) -> Session:
        session = Session(id=session_id, user_id=user_id, expires_at=expires_at)
        async with self._sessionmaker() as db:
            db.add(session)
            await db.commit()
        return session

    async def get(self, session_id: str) -> Optional[Session]:
        async with self._sessionmaker() as db:
            return await db.get(Session, session_id)

    async def update_expiration(self, session_id: str, expires_at: datetime) -> bool:
        async with self._sessionmaker() as db:
            result = await db.execute(
                update(Session).where(Session.id == session_id).values(expires_at=expires_at)
            )
            await db.commit()
            return result.rowcount > 0

    async def delete(self, session_id: str) -> bool:
        """
        Returns True if session was deleted, False if not found.
        """
        async with self._sessionmaker() as db:
            result = await db.execute(delete(Session).where(Session.id == session_id))
            await db.commit()
            return result.rowcount > 0

    async def delete_for_user(self, user_id: str) -> int:
        async with self._sessionmaker() as db:
            result = await db.execute(delete(Session).where(Session.user_id == user_id))
            await db.commit()
            return result.rowcount

    async def delete_expired(self, now: Optional[datetime] = None) -> int:
        async with self._sessionmaker() as db:
            result = await db.execute(delete(Session).where(Session.expires_at <= (now or utcnow())))
            await db.commit()
            return result.rowcount


class AuditStore:
    """Audit trail of admin actions."""

    def __init__(self, sessionmaker: async_sessionmaker):
        self._sessionmaker = sessionmaker

    async def insert(
        self,
        user_id: str,
        action: str,
        entity_type: str,
        entity_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> AuditLog:
        entry = AuditLog(
            user_id=user_id,
            action=action,
            entity_type=entity_type,
            entity_id=str(entity_id) if entity_id is not None else None,
            details=json.dumps(details) if details else None,
            ip_address=ip_address,
            user_agent=user_agent,
        )
        async with self._sessionmaker() as db:
            db.add(entry)
            await db.commit()
        return entry

    async def list(
        self,
        user_id: Optional[str] = None,
        action: Optional[str] = None,
        entity_type: Optional[str] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        limit: int = 100,
    ) -> List[AuditLog]:
        query = select(AuditLog)
        if user_id:
            query = query.where(AuditLog.user_id == user_id)
        if action:
            query = query.where(AuditLog.action == action)
        if entity_type:
            query = query.where(AuditLog.entity_type.ilike(f"%{entity_type}%"))
        if start_date:
            query = query.where(AuditLog.created_at >= start_date)
        if end_date:
            query = query.where(AuditLog.created_at <= end_date)
        query = query.order_by(AuditLog.created_at.desc(), AuditLog.id.desc()).limit(limit)

        async with self._sessionmaker() as db:
            result = await db.execute(query)
            return list(result.scalars().all())
