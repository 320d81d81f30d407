"""
Compyy Backend — Authentication API Tests
===========================================

End-to-end through the ASGI app on the SQLite test database.
"""

from datetime import timedelta
from unittest.mock import patch

import pytest
from sqlalchemy import select

from compyy.database import async_session_factory, utcnow
from compyy.models.user import User
from compyy.services.auth_service import auth_service


@pytest.mark.asyncio
async def test_register_returns_user_token_and_cookie(test_client):
    response = await test_client.post(
        "/api/auth/register",
        json={"email": "Ada@Example.com", "password": "secret1", "firstName": "Ada"},
    )
    assert response.status_code == 201
    body = response.json()
    assert body["user"]["email"] == "ada@example.com"
    assert body["user"]["isVerified"] is False
    assert "passwordHash" not in body["user"]
    assert body["token"]
    assert "auth-token" in response.cookies


@pytest.mark.asyncio
async def test_duplicate_email_rejected(test_client, register_user):
    await register_user(email="dup@example.com")
    response = await test_client.post(
        "/api/auth/register", json={"email": "DUP@example.com", "password": "another1"},
    )
    assert response.status_code == 409
    body = response.json()
    assert body["error"] == "conflict"
    assert body["message"] == "User with this email already exists"


@pytest.mark.asyncio
async def test_short_password_rejected(test_client):
    response = await test_client.post(
        "/api/auth/register", json={"email": "short@example.com", "password": "12345"},
    )
    assert response.status_code == 400
    assert response.json()["error"] == "validation_error"


@pytest.mark.asyncio
@pytest.mark.parametrize("password", ["a" * 100, "é" * 40])
async def test_password_over_bcrypt_limit_rejected(test_client, password):
    """bcrypt reads 72 bytes at most, so longer passwords are refused up front."""
    response = await test_client.post(
        "/api/auth/register", json={"email": "long@example.com", "password": password},
    )
    assert response.status_code == 400
    assert response.json()["message"] == "Password must be at most 72 bytes long"


@pytest.mark.asyncio
async def test_long_password_on_change_and_login(test_client, register_user):
    user = await register_user()
    response = await test_client.post(
        "/api/auth/change-password",
        json={"currentPassword": user["password"], "newPassword": "b" * 100},
        headers=user["headers"],
    )
    assert response.status_code == 400

    login = await test_client.post("/api/auth/login", json={"email": user["email"], "password": "c" * 100})
    assert login.status_code == 401


@pytest.mark.asyncio
async def test_login_and_me(test_client, register_user):
    user = await register_user()

    bad = await test_client.post("/api/auth/login", json={"email": user["email"], "password": "wrong-pass"})
    assert bad.status_code == 401
    assert bad.json()["message"] == "Invalid email or password"

    login = await test_client.post("/api/auth/login", json={"email": user["email"], "password": user["password"]})
    assert login.status_code == 200

    # the login cookie alone authenticates
    me = await test_client.get("/api/auth/me")
    assert me.status_code == 200
    assert me.json()["id"] == user["id"]

    await test_client.post("/api/auth/logout")
    test_client.cookies.clear()
    assert (await test_client.get("/api/auth/me")).status_code == 401


@pytest.mark.asyncio
async def test_change_password(test_client, register_user):
    user = await register_user()
    wrong = await test_client.post(
        "/api/auth/change-password",
        json={"currentPassword": "nope-nope", "newPassword": "brand-new-1"},
        headers=user["headers"],
    )
    assert wrong.status_code == 401

    ok = await test_client.post(
        "/api/auth/change-password",
        json={"currentPassword": user["password"], "newPassword": "brand-new-1"},
        headers=user["headers"],
    )
    assert ok.status_code == 200
    login = await test_client.post("/api/auth/login", json={"email": user["email"], "password": "brand-new-1"})
    assert login.status_code == 200


@pytest.mark.asyncio
async def test_reset_token_is_single_use(test_client, register_user):
    user = await register_user()
    with patch("compyy.services.auth_service.generate_one_time_token", return_value="known-reset-token"):
        forgot = await test_client.post("/api/auth/forgot-password", json={"email": user["email"]})
    assert forgot.status_code == 200

    check = await test_client.get("/api/auth/reset-password", params={"token": "known-reset-token"})
    assert check.status_code == 200
    assert check.json()["email"] == user["email"]

    reset = await test_client.post(
        "/api/auth/reset-password", json={"token": "known-reset-token", "password": "after-reset"},
    )
    assert reset.status_code == 200

    again = await test_client.post(
        "/api/auth/reset-password", json={"token": "known-reset-token", "password": "second-try"},
    )
    assert again.status_code == 400
    assert again.json()["message"] == "Invalid or expired reset token"

    login = await test_client.post("/api/auth/login", json={"email": user["email"], "password": "after-reset"})
    assert login.status_code == 200


@pytest.mark.asyncio
async def test_reset_token_expires_after_an_hour(test_client, register_user):
    user = await register_user()
    with patch("compyy.services.auth_service.generate_one_time_token", return_value="expiring-token"):
        await test_client.post("/api/auth/forgot-password", json={"email": user["email"]})

    async with async_session_factory() as db:
        stored = (await db.execute(select(User).where(User.email == user["email"]))).scalar_one()
        stored.reset_token_expires_at = utcnow() - timedelta(seconds=1)
        await db.commit()

    response = await test_client.post(
        "/api/auth/reset-password", json={"token": "expiring-token", "password": "too-late-1"},
    )
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_forgot_password_does_not_reveal_accounts(test_client, register_user):
    user = await register_user()
    known = await test_client.post("/api/auth/forgot-password", json={"email": user["email"]})
    unknown = await test_client.post("/api/auth/forgot-password", json={"email": "nobody@example.com"})
    assert known.json()["message"] == unknown.json()["message"]


@pytest.mark.asyncio
async def test_confirm_email(test_client, register_user):
    user = await register_user()
    async with async_session_factory() as db:
        stored = (await db.execute(select(User).where(User.email == user["email"]))).scalar_one()
        token = auth_service.confirmation_token(stored)

    first = await test_client.get("/api/auth/confirm", params={"token": token})
    assert first.json()["message"] == "email-verified"
    second = await test_client.get("/api/auth/confirm", params={"token": token})
    assert second.json()["message"] == "already-verified"

    # a session token is not a confirmation token
    invalid = await test_client.get("/api/auth/confirm", params={"token": user["token"]})
    assert invalid.status_code == 400


@pytest.mark.asyncio
async def test_auth_rate_limit(test_client):
    limiter = test_client._transport.app.state.auth_limiter
    limiter.limit = 2
    for _ in range(2):
        await test_client.post("/api/auth/login", json={"email": "x@example.com", "password": "whatever"})
    response = await test_client.post("/api/auth/login", json={"email": "x@example.com", "password": "whatever"})
    assert response.status_code == 429
    assert "Retry-After" in response.headers
