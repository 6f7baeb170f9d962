"""
FastAPI dependencies wiring the gates into route handlers.

Everything here reads the per-process objects built by create_app from
request.app.state; nothing is a module-level singleton.
"""

from typing import Optional

from fastapi import Depends, Request, Response

from shapeflow.admin import AdminService
from shapeflow.audit import RequestMeta
from shapeflow.auth import AuthenticationGate, AuthorizationGate, Principal
from shapeflow.sessions import SessionManager
from shapeflow.stores import AuditStore, CredentialStore


def get_session_manager(request: Request) -> SessionManager:
    return request.app.state.session_manager


def get_credential_store(request: Request) -> CredentialStore:
    return request.app.state.credential_store


def get_audit_store(request: Request) -> AuditStore:
    return request.app.state.audit_store


def get_admin_service(request: Request) -> AdminService:
    return request.app.state.admin_service


def get_authentication_gate(request: Request) -> AuthenticationGate:
    return request.app.state.authentication_gate


def get_authorization_gate(request: Request) -> AuthorizationGate:
    return request.app.state.authorization_gate


def get_session_token(request: Request) -> Optional[str]:
    """Session id from the cookie, or None when absent or blank."""
    name = request.app.state.settings.cookie_name
    return request.cookies.get(name) or None


def get_request_meta(request: Request) -> RequestMeta:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        ip = forwarded.split(",")[0].strip()
    else:
        ip = request.client.host if request.client else None
    return RequestMeta(ip_address=ip, user_agent=request.headers.get("user-agent"))


def _remember_refreshed_cookie(request: Request, principal: Optional[Principal]) -> None:
    # Error responses are built by the exception handlers, not from the
    # dependency's Response, so they pick the cookie up from request.state.
    if principal is not None and principal.session.fresh:
        manager = request.app.state.session_manager
        request.state.refreshed_cookie = manager.create_session_cookie(principal.session.id)


async def get_current_principal(
    request: Request,
    response: Response,
    token: Optional[str] = Depends(get_session_token),
    gate: AuthenticationGate = Depends(get_authentication_gate),
) -> Principal:
    """
    Resolve the caller or raise Unauthorized (401).

    A refreshed session cookie is set on the outgoing response, including
    error responses raised later in the request.
    """
    principal = await gate.resolve_request(token, response)
    _remember_refreshed_cookie(request, principal)
    return principal


async def get_optional_principal(
    request: Request,
    response: Response,
    token: Optional[str] = Depends(get_session_token),
    gate: AuthenticationGate = Depends(get_authentication_gate),
) -> Optional[Principal]:
    principal = await gate.resolve_optional(token, response)
    _remember_refreshed_cookie(request, principal)
    return principal


async def require_admin(
    principal: Principal = Depends(get_current_principal),
    gate: AuthorizationGate = Depends(get_authorization_gate),
) -> Principal:
    """
    Current caller, checked against their stored role (403 if not admin).
    """
    return await gate.require_admin(principal)
