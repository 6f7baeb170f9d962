import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from shapeflow.admin import AdminService
from shapeflow.auth import AuthenticationGate, AuthorizationGate, Principal
from shapeflow.config import Settings, get_settings
from shapeflow.database import create_engine, create_sessionmaker, init_db
from shapeflow.dependencies import get_current_principal
from shapeflow.errors import AuthError
from shapeflow.routers import admin_router, auth_router, user_router
from shapeflow.sessions import SessionManager
from shapeflow.stores import AuditStore, CredentialStore, SessionStore

logger = logging.getLogger(__name__)


def configure_logging(settings: Settings) -> None:
    logging.basicConfig(
        level=logging.DEBUG if settings.is_development else settings.log_level.upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.
    Runs on startup and shutdown.
    """
    # Startup: Initialize database and drop sessions that expired while we were down
    await init_db(app.state.engine)
    await app.state.session_manager.delete_expired_sessions()
    logger.info("ShapeFlow started (%s)", app.state.settings.environment)
    yield
    # Shutdown: release pooled connections
    await app.state.engine.dispose()
    logger.info("ShapeFlow stopped")


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """
    Build the application with one engine, one set of stores and one
    SessionManager, all kept on app.state for the request dependencies.
    """
    settings = settings or get_settings()
    configure_logging(settings)

    app = FastAPI(
        title="ShapeFlow",
        description="Personal health tracking: accounts, sessions and admin back-office",
        version="1.0.0",
        lifespan=lifespan,
        docs_url="/docs" if settings.is_development else None,
        redoc_url=None,
    )

    engine = create_engine(settings)
    sessionmaker = create_sessionmaker(engine)
    credential_store = CredentialStore(sessionmaker)
    session_store = SessionStore(sessionmaker)
    audit_store = AuditStore(sessionmaker)
    session_manager = SessionManager(session_store, credential_store, settings)

    app.state.settings = settings
    app.state.engine = engine
    app.state.credential_store = credential_store
    app.state.session_store = session_store
    app.state.audit_store = audit_store
    app.state.session_manager = session_manager
    app.state.authentication_gate = AuthenticationGate(session_manager)
    app.state.authorization_gate = AuthorizationGate(credential_store)
    app.state.admin_service = AdminService(credential_store, session_manager, audit_store)

    # Credentialed CORS for local frontends only
    if settings.is_development:
        app.add_middleware(
            CORSMiddleware,
            allow_origin_regex=r"https?://(localhost|127\.0\.0\.1)(:\d+)?",
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    # No edge middleware guards protected routes: every check happens in
    # the gates, per request, against the stores.
    _register_exception_handlers(app)

    app.include_router(auth_router.router)
    app.include_router(admin_router.router)
    app.include_router(user_router.router)

    @app.get("/")
    async def root():
        """
        Health check endpoint.
        """
        return {
            "status": "running",
            "version": "1.0.0"
        }

    @app.get("/protected")
    async def protected_route(principal: Principal = Depends(get_current_principal)):
        """
        Example protected route.

        Returns 401 if not authenticated.
        """
        return {
            "message": "This is a protected route",
            "user_id": principal.user.id,
            "user_email": principal.user.email
        }

    return app


def _with_session_cookie(request: Request, response: JSONResponse) -> JSONResponse:
    """Carry a cookie refreshed earlier in the request onto an error response."""
    cookie = getattr(request.state, "refreshed_cookie", None)
    if cookie is not None:
        cookie.apply(response)
    return response


def _register_exception_handlers(app: FastAPI) -> None:

    @app.exception_handler(AuthError)
    async def auth_error_handler(request: Request, exc: AuthError):
        response = JSONResponse(status_code=exc.status_code, content={"error": exc.message})
        return _with_session_cookie(request, response)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        fields = [".".join(str(part) for part in error["loc"] if part != "body") for error in exc.errors()]
        response = JSONResponse(status_code=400, content={"error": "Invalid input", "fields": fields})
        return _with_session_cookie(request, response)

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        # Store errors stay in the server log; the client gets a generic message
        logger.error("Unhandled error on %s %s: %s", request.method, request.url.path, exc, exc_info=True)
        response = JSONResponse(status_code=500, content={"error": "Internal server error"})
        return _with_session_cookie(request, response)


app = create_app()


if __name__ == "__main__":
    import uvicorn
    settings = get_settings()
    uvicorn.run(
        "shapeflow.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.is_development
    )
