from datetime import datetime, timezone
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status

from shapeflow.admin import AdminService
from shapeflow.audit import RequestMeta
from shapeflow.auth import Principal
from shapeflow.dependencies import get_admin_service, get_audit_store, get_request_meta, require_admin
from shapeflow.schemas import (
    AuditLogResponse,
    CreateUserRequest,
    SuccessResponse,
    UpdatePasswordRequest,
    UpdateRoleRequest,
    UserResponse,
)
from shapeflow.stores import AuditStore

router = APIRouter(prefix="/admin", tags=["admin"])


@router.get("/users", response_model=List[UserResponse])
async def list_users(
    admin: Principal = Depends(require_admin),
    service: AdminService = Depends(get_admin_service),
):
    return await service.list_users()


@router.post("/users", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
async def create_user(
    request: CreateUserRequest,
    admin: Principal = Depends(require_admin),
    service: AdminService = Depends(get_admin_service),
    meta: RequestMeta = Depends(get_request_meta),
):
    return await service.create_user(admin, request.email, request.password, request.role, meta=meta)


@router.patch("/users/{user_id}", response_model=SuccessResponse)
async def update_user_role(
    user_id: str,
    request: UpdateRoleRequest,
    admin: Principal = Depends(require_admin),
    service: AdminService = Depends(get_admin_service),
    meta: RequestMeta = Depends(get_request_meta),
):
    """
    Change a user's role. Admins cannot demote themselves (403).
    """
    await service.update_role(admin, user_id, request.role, meta=meta)
    return SuccessResponse()


@router.patch("/users/{user_id}/password", response_model=SuccessResponse)
async def reset_user_password(
    user_id: str,
    request: UpdatePasswordRequest,
    admin: Principal = Depends(require_admin),
    service: AdminService = Depends(get_admin_service),
    meta: RequestMeta = Depends(get_request_meta),
):
    await service.reset_password(admin, user_id, request.password, meta=meta)
    return SuccessResponse(message="Password updated")


@router.delete("/users/{user_id}", response_model=SuccessResponse)
async def delete_user(
    user_id: str,
    admin: Principal = Depends(require_admin),
    service: AdminService = Depends(get_admin_service),
    meta: RequestMeta = Depends(get_request_meta),
):
    """
    Delete a user and everything they own. Deleting yourself is a 400.
    """
    await service.delete_user(admin, user_id, meta=meta)
    return SuccessResponse()


@router.get("/audit", response_model=List[AuditLogResponse])
async def list_audit_logs(
    user_id: Optional[str] = Query(None, alias="userId"),
    action: Optional[str] = None,
    entity_type: Optional[str] = Query(None, alias="entityType"),
    start_date: Optional[datetime] = Query(None, alias="startDate"),
    end_date: Optional[datetime] = Query(None, alias="endDate"),
    limit: int = Query(100, ge=1, le=1000),
    admin: Principal = Depends(require_admin),
    store: AuditStore = Depends(get_audit_store),
):
    return await store.list(
        user_id=user_id,
        action=action,
        entity_type=entity_type,
        start_date=_to_utc(start_date),
        end_date=_to_utc(end_date),
        limit=limit,
    )


def _to_utc(value: Optional[datetime]) -> Optional[datetime]:
    # Stored timestamps are UTC; naive query values are taken as UTC
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc)
