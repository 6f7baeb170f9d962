"""Tests for the admin back-office endpoints."""

from datetime import timedelta

import pytest
from conftest import COOKIE_NAME, create_user, login, make_client

from shapeflow.models import ROLE_ADMIN, utcnow


@pytest.fixture
async def root_token(app):
    await create_user(app.state.credential_store, "root@x.com", "rootpass", role=ROLE_ADMIN)
    async with make_client(app) as ac:
        return await login(ac, "root@x.com", "rootpass")


@pytest.fixture
async def bob(app):
    return await create_user(app.state.credential_store, "bob@x.com", "bobpass")


class TestAdminScenario:

    async def test_promote_bob_then_fail_to_demote_self(self, app, root_token, bob):
        root = await app.state.credential_store.get_by_email("root@x.com")

        async with make_client(app, root_token) as ac:
            promoted = await ac.patch(f"/admin/users/{bob.id}", json={"role": "admin"})
            assert promoted.status_code == 200
            assert promoted.json()["success"] is True

            demote_self = await ac.patch(f"/admin/users/{root.id}", json={"role": "user"})
            assert demote_self.status_code == 403
            assert "error" in demote_self.json()

        assert (await app.state.credential_store.get_by_id(bob.id)).role == "admin"
        assert (await app.state.credential_store.get_by_id(root.id)).role == "admin"

    async def test_delete_self_is_rejected_but_other_admin_is_not(self, app, root_token):
        root = await app.state.credential_store.get_by_email("root@x.com")
        other = await create_user(app.state.credential_store, "other@x.com", role=ROLE_ADMIN)

        async with make_client(app, root_token) as ac:
            self_delete = await ac.delete(f"/admin/users/{root.id}")
            assert self_delete.status_code == 400
            assert self_delete.json() == {"error": "You cannot delete your own account"}

            other_delete = await ac.delete(f"/admin/users/{other.id}")
            assert other_delete.status_code == 200

        assert await app.state.credential_store.get_by_id(other.id) is None

    async def test_unknown_user_is_404(self, app, root_token):
        async with make_client(app, root_token) as ac:
            assert (await ac.patch("/admin/users/missing", json={"role": "admin"})).status_code == 404
            assert (await ac.delete("/admin/users/missing")).status_code == 404
            assert (
                await ac.patch("/admin/users/missing/password", json={"password": "newpass1"})
            ).status_code == 404

    async def test_invalid_role_is_400(self, app, root_token, bob):
        async with make_client(app, root_token) as ac:
            response = await ac.patch(f"/admin/users/{bob.id}", json={"role": "owner"})
        assert response.status_code == 400


class TestAdminAccess:

    async def test_anonymous_is_401(self, client):
        assert (await client.get("/admin/users")).status_code == 401

    async def test_plain_user_is_403_until_promoted(self, app, bob):
        """The same token starts working once the stored role changes."""
        async with make_client(app) as ac:
            token = await login(ac, "bob@x.com", "bobpass")

        async with make_client(app, token) as ac:
            assert (await ac.get("/admin/users")).status_code == 403

            await app.state.credential_store.update_role(bob.id, ROLE_ADMIN)

            assert (await ac.get("/admin/users")).status_code == 200

    async def test_forbidden_response_reissues_refreshed_cookie(self, app, bob):
        async with make_client(app) as ac:
            token = await login(ac, "bob@x.com", "bobpass")
        await app.state.session_store.update_expiration(token, utcnow() + timedelta(hours=1))

        async with make_client(app, token) as ac:
            response = await ac.get("/admin/users")

        assert response.status_code == 403
        assert response.cookies.get(COOKIE_NAME) == token

    async def test_non_admin_cannot_touch_users(self, app, bob):
        victim = await create_user(app.state.credential_store, "victim@x.com")
        async with make_client(app) as ac:
            token = await login(ac, "bob@x.com", "bobpass")

        async with make_client(app, token) as ac:
            assert (await ac.delete(f"/admin/users/{victim.id}")).status_code == 403
            assert (await ac.patch(f"/admin/users/{bob.id}", json={"role": "admin"})).status_code == 403
            assert (await ac.post(
                "/admin/users", json={"email": "x@x.com", "password": "secret1", "role": "admin"}
            )).status_code == 403

        assert await app.state.credential_store.get_by_id(victim.id) is not None
        assert (await app.state.credential_store.get_by_id(bob.id)).role == "user"


class TestUserManagement:

    async def test_list_users(self, app, root_token, bob):
        async with make_client(app, root_token) as ac:
            response = await ac.get("/admin/users")

        assert response.status_code == 200
        users = response.json()
        assert {u["email"] for u in users} == {"root@x.com", "bob@x.com"}
        assert all(set(u) >= {"id", "email", "role", "createdAt"} for u in users)
        assert all("password_hash" not in u for u in users)

    async def test_create_user(self, app, root_token):
        async with make_client(app, root_token) as ac:
            created = await ac.post("/admin/users", json={"email": "Carol@x.com", "password": "secret1"})
            duplicate = await ac.post("/admin/users", json={"email": "carol@x.com", "password": "secret1"})

        assert created.status_code == 201
        assert created.json()["email"] == "carol@x.com"
        assert created.json()["role"] == "user"
        assert duplicate.status_code == 409

    async def test_reset_password(self, app, root_token, bob):
        async with make_client(app) as ac:
            bob_token = await login(ac, "bob@x.com", "bobpass")

        async with make_client(app, root_token) as ac:
            response = await ac.patch(f"/admin/users/{bob.id}/password", json={"password": "newpass1"})
            assert response.status_code == 200
            short = await ac.patch(f"/admin/users/{bob.id}/password", json={"password": "abc"})
            assert short.status_code == 400

        async with make_client(app, bob_token) as ac:
            assert (await ac.get("/auth/me")).status_code == 401

        async with make_client(app) as ac:
            wrong = await ac.post("/auth/login", json={"email": "bob@x.com", "password": "bobpass"})
            assert wrong.status_code == 401
            assert await login(ac, "bob@x.com", "newpass1")

    async def test_audit_log(self, app, root_token, bob):
        async with make_client(app, root_token) as ac:
            await ac.patch(f"/admin/users/{bob.id}", json={"role": "admin"}, headers={"user-agent": "ops-console"})
            response = await ac.get("/admin/audit", params={"action": "update"})

        assert response.status_code == 200
        entries = response.json()
        assert len(entries) == 1
        assert entries[0]["entityType"] == "user"
        assert entries[0]["entityId"] == bob.id
        assert entries[0]["userAgent"] == "ops-console"

    async def test_audit_requires_admin(self, app, bob):
        async with make_client(app) as ac:
            token = await login(ac, "bob@x.com", "bobpass")
        async with make_client(app, token) as ac:
            assert (await ac.get("/admin/audit")).status_code == 403
