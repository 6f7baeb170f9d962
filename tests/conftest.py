"""Test configuration and fixtures for the ShapeFlow auth service."""

from typing import AsyncGenerator, Optional

import pytest
from httpx import ASGITransport, AsyncClient

from shapeflow.config import Settings
from shapeflow.database import create_engine, create_sessionmaker, init_db
from shapeflow.main import create_app
from shapeflow.models import ROLE_USER, generate_id
from shapeflow.passwords import hash_password
from shapeflow.sessions import SessionManager
from shapeflow.stores import AuditStore, CredentialStore, SessionStore

COOKIE_NAME = "auth_session"
BASE_URL = "http://test"


@pytest.fixture
def settings(tmp_path) -> Settings:
    """Development settings against a throwaway SQLite file."""
    return Settings(
        _env_file=None,
        environment="development",
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'shapeflow-test.db'}",
        session_expire_hours=720,
        cookie_name=COOKIE_NAME,
    )


# ==================== STORES ====================


@pytest.fixture
async def sessionmaker(settings):
    engine = create_engine(settings)
    await init_db(engine)
    yield create_sessionmaker(engine)
    await engine.dispose()


@pytest.fixture
def credential_store(sessionmaker) -> CredentialStore:
    return CredentialStore(sessionmaker)


@pytest.fixture
def session_store(sessionmaker) -> SessionStore:
    return SessionStore(sessionmaker)


@pytest.fixture
def audit_store(sessionmaker) -> AuditStore:
    return AuditStore(sessionmaker)


@pytest.fixture
def session_manager(session_store, credential_store, settings) -> SessionManager:
    return SessionManager(session_store, credential_store, settings)


async def create_user(store: CredentialStore, email: str, password: str = "secret1", role: str = ROLE_USER):
    return await store.create_user(generate_id(), email, hash_password(password), role)


# ==================== HTTP ====================


@pytest.fixture
async def app(settings):
    """Application with its schema created (ASGITransport skips lifespan)."""
    application = create_app(settings)
    await init_db(application.state.engine)
    yield application
    await application.state.engine.dispose()


def make_client(application, token: Optional[str] = None, raise_app_exceptions: bool = True) -> AsyncClient:
    """Fresh client with its own cookie jar, optionally presenting a token."""
    cookies = {COOKIE_NAME: token} if token else None
    transport = ASGITransport(app=application, raise_app_exceptions=raise_app_exceptions)
    return AsyncClient(transport=transport, base_url=BASE_URL, cookies=cookies)


@pytest.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    async with make_client(app) as ac:
        yield ac


async def login(client: AsyncClient, email: str, password: str) -> str:
    """Log in and return the issued session token."""
    response = await client.post("/auth/login", json={"email": email, "password": password})
    assert response.status_code == 200, response.text
    return response.cookies[COOKIE_NAME]
