"""Tests for the /auth endpoints."""

import logging
from datetime import timedelta

from conftest import COOKIE_NAME, login, make_client

from shapeflow.main import configure_logging
from shapeflow.models import as_utc, utcnow


def _register_body(email="a@x.com", password="secret1", confirm=None):
    return {"email": email, "password": password, "confirmPassword": confirm or password}


class TestRegister:

    async def test_register_sets_session_cookie(self, client):
        response = await client.post("/auth/register", json=_register_body())

        assert response.status_code == 201
        assert response.json()["success"] is True
        assert response.cookies.get(COOKIE_NAME)

        me = await client.get("/auth/me")
        assert me.status_code == 200
        assert me.json()["email"] == "a@x.com"
        assert me.json()["role"] == "user"
        assert "password_hash" not in me.json()

    async def test_register_duplicate_email_conflicts(self, client):
        await client.post("/auth/register", json=_register_body())

        response = await client.post("/auth/register", json=_register_body(email="A@X.com"))

        assert response.status_code == 409
        assert "error" in response.json()

    async def test_register_password_mismatch(self, client):
        response = await client.post("/auth/register", json=_register_body(confirm="secret2"))
        assert response.status_code == 400
        assert response.json()["error"] == "Invalid input"

    async def test_register_invalid_email(self, client):
        response = await client.post("/auth/register", json=_register_body(email="not-an-email"))
        assert response.status_code == 400
        assert "email" in response.json()["fields"]

    async def test_register_short_password(self, client):
        response = await client.post("/auth/register", json=_register_body(password="abc"))
        assert response.status_code == 400


class TestLogin:

    async def test_register_then_login_scenario(self, app):
        async with make_client(app) as ac:
            assert (await ac.post("/auth/register", json=_register_body())).status_code == 201

        async with make_client(app) as ac:
            wrong = await ac.post("/auth/login", json={"email": "a@x.com", "password": "wrong"})
            assert wrong.status_code == 401
            assert wrong.json() == {"error": "Email or password incorrect"}
            assert COOKIE_NAME not in wrong.cookies

            token = await login(ac, "a@x.com", "secret1")
            assert len(token) == 64

            protected = await ac.get("/protected")
            assert protected.status_code == 200
            assert protected.json()["user_email"] == "a@x.com"

    async def test_unknown_email_gets_same_message(self, client):
        response = await client.post("/auth/login", json={"email": "nobody@x.com", "password": "secret1"})
        assert response.status_code == 401
        assert response.json() == {"error": "Email or password incorrect"}

    async def test_login_email_is_case_insensitive(self, app):
        async with make_client(app) as ac:
            await ac.post("/auth/register", json=_register_body(email="Mixed@X.com"))
        async with make_client(app) as ac:
            assert await login(ac, "mixed@x.com", "secret1")

    async def test_each_login_is_a_new_session(self, app):
        async with make_client(app) as ac:
            await ac.post("/auth/register", json=_register_body())
        async with make_client(app) as first, make_client(app) as second:
            assert await login(first, "a@x.com", "secret1") != await login(second, "a@x.com", "secret1")


class TestLogoutAndCheck:

    async def test_check_without_session(self, client):
        response = await client.get("/auth/check")
        assert response.status_code == 200
        assert response.json()["authenticated"] is False

    async def test_check_with_session(self, client):
        await client.post("/auth/register", json=_register_body())

        body = (await client.get("/auth/check")).json()

        assert body["authenticated"] is True
        assert body["email"] == "a@x.com"
        assert body["role"] == "user"
        assert body["userId"]

    async def test_protected_routes_require_session(self, client):
        assert (await client.get("/auth/me")).status_code == 401
        assert (await client.get("/protected")).status_code == 401

    async def test_logout_invalidates_and_clears_cookie(self, app):
        async with make_client(app) as ac:
            await ac.post("/auth/register", json=_register_body())
            token = await login(ac, "a@x.com", "secret1")

        async with make_client(app, token) as ac:
            response = await ac.post("/auth/logout")
            assert response.status_code == 303
            assert response.headers["location"] == "/login"
            set_cookie = response.headers["set-cookie"]
            assert set_cookie.startswith(f"{COOKIE_NAME}=")
            assert "Max-Age=0" in set_cookie

        async with make_client(app, token) as ac:
            assert (await ac.get("/auth/check")).json()["authenticated"] is False
            assert (await ac.get("/auth/me")).status_code == 401

    async def test_logout_without_session_is_fine(self, client):
        response = await client.post("/auth/logout")
        assert response.status_code == 303

    async def test_check_reissues_cookie_for_refreshed_session(self, app):
        async with make_client(app) as ac:
            await ac.post("/auth/register", json=_register_body())
            token = await login(ac, "a@x.com", "secret1")
        await app.state.session_store.update_expiration(token, utcnow() + timedelta(hours=1))

        async with make_client(app, token) as ac:
            response = await ac.get("/auth/check")

        assert response.json()["authenticated"] is True
        assert response.cookies.get(COOKIE_NAME) == token

    async def test_expired_session_is_rejected(self, app):
        async with make_client(app) as ac:
            await ac.post("/auth/register", json=_register_body())
            token = await login(ac, "a@x.com", "secret1")
        await app.state.session_store.update_expiration(token, utcnow() - timedelta(minutes=1))

        async with make_client(app, token) as ac:
            assert (await ac.get("/auth/me")).status_code == 401
        assert await app.state.session_store.get(token) is None


class TestPreferences:

    async def test_theme_defaults_to_dark_and_updates(self, client):
        await client.post("/auth/register", json=_register_body())

        assert (await client.get("/user/preferences")).json() == {"theme": "dark"}

        updated = await client.patch("/user/preferences", json={"theme": "light"})
        assert updated.status_code == 200
        assert (await client.get("/user/preferences")).json() == {"theme": "light"}

    async def test_invalid_theme(self, client):
        await client.post("/auth/register", json=_register_body())
        response = await client.patch("/user/preferences", json={"theme": "neon"})
        assert response.status_code == 400

    async def test_preferences_require_session(self, client):
        assert (await client.get("/user/preferences")).status_code == 401

    async def test_invalid_theme_still_reissues_refreshed_cookie(self, app):
        async with make_client(app) as ac:
            await ac.post("/auth/register", json=_register_body())
            token = await login(ac, "a@x.com", "secret1")
        await app.state.session_store.update_expiration(token, utcnow() + timedelta(hours=1))

        async with make_client(app, token) as ac:
            response = await ac.patch("/user/preferences", json={"theme": "neon"})

        assert response.status_code == 400
        assert response.cookies.get(COOKIE_NAME) == token
        stored = await app.state.session_store.get(token)
        assert as_utc(stored.expires_at) > utcnow() + timedelta(hours=600)


class TestServerErrors:

    async def test_store_failure_is_generic_500(self, app, monkeypatch):
        async def broken_create_user(*args, **kwargs):
            raise RuntimeError("disk I/O error in users table")

        monkeypatch.setattr(app.state.credential_store, "create_user", broken_create_user)

        async with make_client(app, raise_app_exceptions=False) as ac:
            response = await ac.post("/auth/register", json=_register_body())

        assert response.status_code == 500
        assert response.json() == {"error": "Internal server error"}
        assert "disk I/O" not in response.text
        assert "RuntimeError" not in response.text


class TestLogging:

    def test_development_logs_at_debug(self, settings, monkeypatch):
        calls = []
        monkeypatch.setattr(logging, "basicConfig", lambda **kwargs: calls.append(kwargs))

        configure_logging(settings.model_copy(update={"log_level": "WARNING"}))
        configure_logging(settings.model_copy(update={"environment": "production", "log_level": "warning"}))

        assert calls[0]["level"] == logging.DEBUG
        assert calls[1]["level"] == "WARNING"
