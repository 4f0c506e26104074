import uuid

import pytest
from jose import jwt
from sqlalchemy import select

import app.auth.dependencies as auth_dependencies
from app.audit.models import AuditLog
from app.auth.dependencies import get_current_user
from app.config import settings
from app.main import app as fastapi_app

SECRET = "x" * 40


@pytest.fixture
def real_auth(client, monkeypatch):
    """Drop the user override so requests go through token verification."""
    fastapi_app.dependency_overrides.pop(get_current_user, None)
    monkeypatch.setattr(settings, "jwt_algorithm", "HS256")
    monkeypatch.setattr(settings, "jwt_secret_key", SECRET)
    revoked: set[str] = set()

    async def _is_token_revoked(jti: str) -> bool:
        return jti in revoked

    monkeypatch.setattr(auth_dependencies, "is_token_revoked", _is_token_revoked)
    return client, revoked


def token_for(user_id, jti="t-1", token_type="access"):
    return jwt.encode(
        {"sub": str(user_id), "jti": jti, "type": token_type}, SECRET, algorithm="HS256"
    )


async def test_missing_token_is_401(real_auth):
    client, _ = real_auth
    resp = await client.get("/api/users/me")
    assert resp.status_code == 401


async def test_bearer_and_cookie_tokens_are_accepted(real_auth, admin):
    client, _ = real_auth
    resp = await client.get(
        "/api/users/me", headers={"Authorization": f"Bearer {token_for(admin.id)}"}
    )
    assert resp.status_code == 200
    assert resp.json()["id"] == str(admin.id)

    client.cookies.set(settings.cookie_name, token_for(admin.id))
    resp = await client.get("/api/users/me")
    client.cookies.clear()
    assert resp.status_code == 200


async def test_rejected_tokens(real_auth, admin, make_user):
    client, revoked = real_auth

    async def me(token):
        return await client.get("/api/users/me", headers={"Authorization": f"Bearer {token}"})

    assert (await me("not-a-jwt")).status_code == 401
    assert (await me(token_for(admin.id, token_type="refresh"))).status_code == 401
    assert (await me(token_for(uuid.uuid4()))).status_code == 401

    inactive = await make_user("dormant", is_active=False)
    assert (await me(token_for(inactive.id))).status_code == 401

    revoked.add("t-9")
    resp = await me(token_for(admin.id, jti="t-9"))
    assert resp.status_code == 401
    assert resp.json()["detail"] == "Token revoked"


async def test_audit_log_records_authenticated_user(real_auth, admin, session_factory):
    client, _ = real_auth
    resp = await client.post(
        "/api/teams",
        json={"name": "Audited", "description": "d"},
        headers={"Authorization": f"Bearer {token_for(admin.id)}"},
    )
    assert resp.status_code == 201

    async with session_factory() as session:
        entry = (await session.execute(select(AuditLog))).scalars().one()
    assert entry.user_id == admin.id
    assert entry.username == "admin"
    assert entry.action == "teams.create"
    assert entry.method == "POST"
