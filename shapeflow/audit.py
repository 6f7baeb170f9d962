import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from shapeflow.stores import AuditStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RequestMeta:
    """Where an action came from."""
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None


async def log_audit(
    store: AuditStore,
    user_id: str,
    action: str,
    entity_type: str,
    entity_id: Optional[str] = None,
    details: Optional[Dict[str, Any]] = None,
    meta: Optional[RequestMeta] = None,
) -> None:
    """
    Record an admin action.

    The action has already happened when this runs, so a failed write is
    logged and dropped rather than reported to the caller.
    """
    meta = meta or RequestMeta()
    try:
        await store.insert(
            user_id=user_id,
            action=action,
            entity_type=entity_type,
            entity_id=entity_id,
            details=details,
            ip_address=meta.ip_address,
            user_agent=meta.user_agent,
        )
    except Exception:
        logger.exception("Failed to record audit entry %s %s:%s", action, entity_type, entity_id)
