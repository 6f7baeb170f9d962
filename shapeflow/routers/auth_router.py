import logging
from typing import Optional

from fastapi import APIRouter, Depends, Response, status
from fastapi.responses import RedirectResponse

from shapeflow.auth import Principal
from shapeflow.dependencies import (
    get_credential_store,
    get_current_principal,
    get_optional_principal,
    get_session_manager,
    get_session_token,
)
from shapeflow.errors import Conflict, Unauthorized
from shapeflow.models import ROLE_USER, generate_id
from shapeflow.passwords import burn_verification, hash_password, needs_rehash, verify_password
from shapeflow.schemas import AuthCheckResponse, LoginRequest, RegisterRequest, SuccessResponse, UserResponse
from shapeflow.sessions import SessionManager
from shapeflow.stores import CredentialStore

router = APIRouter(prefix="/auth", tags=["auth"])
logger = logging.getLogger(__name__)

# Same answer for unknown email and wrong password
INVALID_CREDENTIALS = "Email or password incorrect"


@router.post("/register", response_model=SuccessResponse, status_code=status.HTTP_201_CREATED)
async def register(
    request: RegisterRequest,
    response: Response,
    credentials: CredentialStore = Depends(get_credential_store),
    sessions: SessionManager = Depends(get_session_manager),
):
    """
    Create new user account.

    Process:
    1. Validate input (done by Pydantic)
    2. Hash password
    3. Insert user with role "user" (email normalized by the store)
    4. Create session
    5. Set session cookie

    Error cases:
    - 400: Validation failed
    - 409: Email already exists
    """
    try:
        user = await credentials.create_user(
            generate_id(), request.email, hash_password(request.password), ROLE_USER
        )
    except Conflict:
        logger.info("Registration rejected, email already in use: %s", request.email)
        raise Conflict("Email already in use")

    session = await sessions.create_session(user.id)
    sessions.create_session_cookie(session.id).apply(response)
    logger.info("Registered user %s", user.id)

    return SuccessResponse()


@router.post("/login", response_model=SuccessResponse)
async def login(
    request: LoginRequest,
    response: Response,
    credentials: CredentialStore = Depends(get_credential_store),
    sessions: SessionManager = Depends(get_session_manager),
):
    """
    Authenticate user and create session.

    Security notes:
    - Generic error message prevents email enumeration
    - Unknown emails still pay for one hash verification
    - No indication whether email or password was wrong
    """
    user = await credentials.get_by_email(request.email)

    if user is None:
        burn_verification(request.password)
        logger.warning("Login failed for unknown email %s", request.email)
        raise Unauthorized(INVALID_CREDENTIALS)

    if not verify_password(user.password_hash, request.password):
        logger.warning("Login failed for %s: wrong password", user.email)
        raise Unauthorized(INVALID_CREDENTIALS)

    if needs_rehash(user.password_hash):
        await credentials.update_password(user.id, hash_password(request.password))

    session = await sessions.create_session(user.id)
    sessions.create_session_cookie(session.id).apply(response)
    logger.info("Login successful for %s", user.email)

    return SuccessResponse()


@router.post("/logout")
async def logout(
    token: Optional[str] = Depends(get_session_token),
    sessions: SessionManager = Depends(get_session_manager),
):
    """
    Invalidate session, clear cookie and send the client to the login page.

    Succeeds even if the session doesn't exist (idempotent).
    """
    if token:
        await sessions.invalidate_session(token)
        logger.info("Session invalidated on logout")

    redirect = RedirectResponse(url="/login", status_code=status.HTTP_303_SEE_OTHER)
    sessions.create_blank_session_cookie().apply(redirect)
    return redirect


@router.get("/check", response_model=AuthCheckResponse)
async def check(principal: Optional[Principal] = Depends(get_optional_principal)):
    """
    Client-side gating helper. Never 401s; re-issues the cookie when the
    session was just extended.
    """
    if principal is None:
        return AuthCheckResponse(authenticated=False)
    return AuthCheckResponse(
        authenticated=True,
        user_id=principal.user.id,
        email=principal.user.email,
        role=principal.user.role,
    )


@router.get("/me", response_model=UserResponse)
async def me(principal: Principal = Depends(get_current_principal)):
    """
    Get authenticated user's information.
    """
    return principal.user
