"""
Ariya Backend — Auth Route Tests
==================================

What:  End-to-end tests of /api/v1/auth/* and /api/v1/profile over ASGI with
       a real SQLite database, an in-memory mail outbox and a fake social
       identity provider.

What we test:
    ✅ Login success / wrong password / unknown email / unverified / suspended
    ✅ Lockout after repeated failures
    ✅ Registration, duplicate email, email verification and resend
    ✅ Refresh-token rotation and reuse detection
    ✅ Logout (single session and all sessions)
    ✅ Forgot / reset password
    ✅ Social login
    ✅ Six auth attempts from one IP → 429 regardless of credentials
"""

import asyncio
import logging
from unittest.mock import MagicMock

import pytest
from httpx import ASGITransport, AsyncClient

from app.main import create_app
from app.models.user import UserRole
from app.services.credentials import TokenKind
from app.services.mail import LoggingMailSender, verification_message

DEFAULT_PASSWORD = "Str0ng!Pass"
NEW_PASSWORD = "N3w!Password"


def token_from(message) -> str:
    return message.link.split("token=", 1)[1]


async def login(client, email="planner@ariya.com", password=DEFAULT_PASSWORD, **kwargs):
    return await client.post("/api/v1/auth/login", json={"email": email, "password": password}, **kwargs)


# ══════════════════════════════════════════════════════════════════════════
# Login
# ══════════════════════════════════════════════════════════════════════════


class TestLogin:
    @pytest.mark.asyncio
    async def test_login_success(self, client, make_user, app):
        user = await make_user()

        response = await login(client)

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["message"] == "Login successful"
        assert set(body["data"]) == {"user", "accessToken", "refreshToken"}
        assert body["data"]["user"]["email"] == "planner@ariya.com"
        assert body["data"]["user"]["role"] == "PLANNER"
        assert "passwordHash" not in body["data"]["user"]

        claims = app.state.credentials.verify(body["data"]["accessToken"], TokenKind.ACCESS)
        assert claims.subject == str(user.id)

    @pytest.mark.asyncio
    async def test_wrong_password(self, client, make_user):
        await make_user()
        response = await login(client, password="Wr0ng!Pass")
        assert response.status_code == 401
        assert response.json() == {"success": False, "message": "Invalid email or password"}

    @pytest.mark.asyncio
    async def test_unknown_email_same_message(self, client, database):
        response = await login(client, email="nobody@ariya.com")
        assert response.status_code == 401
        assert response.json()["message"] == "Invalid email or password"

    @pytest.mark.asyncio
    async def test_unknown_email_still_checks_a_password(self, client, app, database):
        spy = MagicMock(wraps=app.state.password_hasher)
        app.state.password_hasher = spy

        response = await login(client, email="nobody@ariya.com")

        assert response.status_code == 401
        spy.verify.assert_called_once()
        assert spy.verify.call_args.args[1] == DEFAULT_PASSWORD

    @pytest.mark.asyncio
    async def test_social_account_password_login(self, client, app, make_user):
        await make_user(email="social@ariya.com", password=None, social_provider="google")
        spy = MagicMock(wraps=app.state.password_hasher)
        app.state.password_hasher = spy

        response = await login(client, email="social@ariya.com")

        assert response.status_code == 401
        spy.verify.assert_called_once()

    @pytest.mark.asyncio
    async def test_email_is_case_insensitive(self, client, make_user):
        await make_user()
        response = await login(client, email="Planner@Ariya.com")
        assert response.status_code == 200

    @pytest.mark.asyncio
    async def test_unverified_account(self, client, make_user):
        await make_user(is_verified=False)
        response = await login(client)
        assert response.status_code == 403
        assert response.json()["message"] == "Please verify your email before logging in"

    @pytest.mark.asyncio
    async def test_suspended_account(self, client, make_user):
        await make_user(is_suspended=True)
        response = await login(client)
        assert response.status_code == 403
        assert response.json()["message"] == "Your account has been suspended. Please contact support."

    @pytest.mark.asyncio
    async def test_lockout_after_repeated_failures(self, client, make_user):
        await make_user()
        for _ in range(5):
            response = await login(client, password="Wr0ng!Pass")
            assert response.status_code == 401

        response = await login(client)
        assert response.status_code == 403
        assert response.json()["message"] == "Account temporarily locked. Please try again later."

    @pytest.mark.asyncio
    async def test_validation_errors(self, client, database):
        response = await client.post("/api/v1/auth/login", json={"email": "not-an-email"})
        assert response.status_code == 400
        body = response.json()
        assert body["message"] == "Validation failed"
        assert body["errors"]["email"] == "Invalid email format"
        assert body["errors"]["password"] == "password is required"

    @pytest.mark.asyncio
    async def test_invalid_json(self, client, database):
        response = await client.post(
            "/api/v1/auth/login",
            content=b"{not json",
            headers={"Content-Type": "application/json"},
        )
        assert response.status_code == 400
        assert response.json()["message"] == "Invalid JSON in request body"


class TestAuthRateLimit:
    @pytest.mark.asyncio
    async def test_sixth_attempt_is_rate_limited(self, database, make_user):
        await make_user()
        app = create_app()
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
            statuses = []
            for attempt in range(6):
                password = DEFAULT_PASSWORD if attempt % 2 else "Wr0ng!Pass"
                statuses.append((await login(ac, password=password)).status_code)
            last = await login(ac)

        assert statuses[5] == 429
        assert 429 not in statuses[:5]
        assert last.status_code == 429
        assert last.json()["message"] == "Too many login attempts. Please try again later."
        assert int(last.headers["Retry-After"]) > 0
        assert last.headers["X-RateLimit-Remaining"] == "0"


# ══════════════════════════════════════════════════════════════════════════
# Registration & verification
# ══════════════════════════════════════════════════════════════════════════

REGISTRATION = {
    "email": "new.vendor@ariya.com",
    "password": DEFAULT_PASSWORD,
    "firstName": "Chioma",
    "lastName": "Eze",
    "role": "VENDOR",
    "phone": "+2348012345678",
}


class TestRegistration:
    @pytest.mark.asyncio
    async def test_register_then_verify_then_login(self, client, mailer):
        response = await client.post("/api/v1/auth/register", json=REGISTRATION)

        assert response.status_code == 201
        user = response.json()["data"]["user"]
        assert user["email"] == "new.vendor@ariya.com"
        assert user["name"] == "Chioma Eze"
        assert user["role"] == "VENDOR"
        assert user["isVerified"] is False
        assert len(mailer.outbox) == 1

        blocked = await login(client, email="new.vendor@ariya.com")
        assert blocked.status_code == 403

        verified = await client.post(
            "/api/v1/auth/verify-email", json={"token": token_from(mailer.outbox[0])}
        )
        assert verified.status_code == 200
        assert verified.json()["data"]["user"]["isVerified"] is True

        assert (await login(client, email="new.vendor@ariya.com")).status_code == 200

    @pytest.mark.asyncio
    async def test_default_mailer_keeps_nothing(self, caplog):
        mailer = create_app().state.mailer
        assert isinstance(mailer, LoggingMailSender)

        with caplog.at_level(logging.INFO, logger="app.services.mail"):
            await mailer.send(verification_message("a@ariya.com", "Ada", "http://x/verify-email?token=t"))

        assert not hasattr(mailer, "outbox")
        assert "Mail queued to a@ariya.com" in caplog.text

    @pytest.mark.asyncio
    async def test_duplicate_email(self, client, make_user):
        await make_user(email="new.vendor@ariya.com")
        response = await client.post("/api/v1/auth/register", json=REGISTRATION)
        assert response.status_code == 409
        assert response.json() == {"success": False, "message": "A user with this email already exists"}

    @pytest.mark.asyncio
    async def test_weak_password(self, client, database):
        response = await client.post("/api/v1/auth/register", json={**REGISTRATION, "password": "weak"})
        assert response.status_code == 400
        assert "password" in response.json()["errors"]

    @pytest.mark.asyncio
    async def test_admin_self_registration_rejected(self, client, database):
        response = await client.post("/api/v1/auth/register", json={**REGISTRATION, "role": "ADMIN"})
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_verification_token_is_single_use(self, client, mailer):
        await client.post("/api/v1/auth/register", json=REGISTRATION)
        token = token_from(mailer.outbox[0])

        assert (await client.post("/api/v1/auth/verify-email", json={"token": token})).status_code == 200
        again = await client.post("/api/v1/auth/verify-email", json={"token": token})
        assert again.status_code == 400
        assert again.json()["message"] == "Invalid or expired email verification token"

    @pytest.mark.asyncio
    async def test_resend_verification(self, client, mailer):
        await client.post("/api/v1/auth/register", json=REGISTRATION)

        response = await client.get("/api/v1/auth/verify-email", params={"email": "new.vendor@ariya.com"})
        assert response.status_code == 200
        assert len(mailer.outbox) == 2

        # The first link was superseded by the resend
        stale = await client.post("/api/v1/auth/verify-email", json={"token": token_from(mailer.outbox[0])})
        assert stale.status_code == 400
        fresh = await client.post("/api/v1/auth/verify-email", json={"token": token_from(mailer.outbox[1])})
        assert fresh.status_code == 200

    @pytest.mark.asyncio
    async def test_resend_does_not_reveal_accounts(self, client, mailer, make_user):
        await make_user()
        unknown = await client.get("/api/v1/auth/verify-email", params={"email": "ghost@ariya.com"})
        verified = await client.get("/api/v1/auth/verify-email", params={"email": "planner@ariya.com"})
        assert unknown.status_code == verified.status_code == 200
        assert unknown.json() == verified.json()
        assert mailer.outbox == []


# ══════════════════════════════════════════════════════════════════════════
# Sessions
# ══════════════════════════════════════════════════════════════════════════


class TestRefreshAndLogout:
    @pytest.mark.asyncio
    async def test_refresh_rotates_tokens(self, client, make_user):
        await make_user()
        tokens = (await login(client)).json()["data"]

        response = await client.post(
            "/api/v1/auth/refresh-token", json={"refreshToken": tokens["refreshToken"]}
        )
        assert response.status_code == 200
        assert response.json()["message"] == "Tokens refreshed successfully"
        rotated = response.json()["data"]
        assert rotated["refreshToken"] != tokens["refreshToken"]

        reuse = await client.post(
            "/api/v1/auth/refresh-token", json={"refreshToken": tokens["refreshToken"]}
        )
        assert reuse.status_code == 401
        assert reuse.json()["message"] == "Refresh token has been revoked. Please log in again."

    @pytest.mark.asyncio
    async def test_concurrent_rotation_of_one_token(self, client, make_user):
        await make_user()
        tokens = (await login(client)).json()["data"]
        body = {"refreshToken": tokens["refreshToken"]}

        responses = await asyncio.gather(
            client.post("/api/v1/auth/refresh-token", json=body),
            client.post("/api/v1/auth/refresh-token", json=body),
        )

        assert sorted(r.status_code for r in responses) == [200, 401]
        rejected = next(r for r in responses if r.status_code == 401)
        assert rejected.json() == {
            "success": False,
            "message": "Refresh token has been revoked. Please log in again.",
        }

    @pytest.mark.asyncio
    async def test_access_token_is_not_a_refresh_token(self, client, make_user):
        await make_user()
        tokens = (await login(client)).json()["data"]
        response = await client.post(
            "/api/v1/auth/refresh-token", json={"refreshToken": tokens["accessToken"]}
        )
        assert response.status_code == 401
        assert response.json()["message"] == "Invalid refresh token"

    @pytest.mark.asyncio
    async def test_refresh_token_required(self, client, database):
        response = await client.post("/api/v1/auth/refresh-token", json={})
        assert response.status_code == 400
        assert response.json()["errors"] == {"refreshToken": "Refresh token is required"}

    @pytest.mark.asyncio
    async def test_logout_requires_auth(self, client, database):
        response = await client.post("/api/v1/auth/logout")
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_logout_revokes_refresh_token(self, client, make_user):
        await make_user()
        tokens = (await login(client)).json()["data"]
        headers = {"Authorization": f"Bearer {tokens['accessToken']}"}

        response = await client.post(
            "/api/v1/auth/logout", json={"refreshToken": tokens["refreshToken"]}, headers=headers
        )
        assert response.status_code == 200
        assert response.json() == {"success": True, "message": "Logout successful"}

        refresh = await client.post(
            "/api/v1/auth/refresh-token", json={"refreshToken": tokens["refreshToken"]}
        )
        assert refresh.status_code == 401

    @pytest.mark.asyncio
    async def test_logout_without_body(self, client, make_user, auth_headers):
        user = await make_user()
        response = await client.post("/api/v1/auth/logout", headers=auth_headers(user))
        assert response.status_code == 200

    @pytest.mark.asyncio
    async def test_logout_all_sessions_revokes_access_tokens(self, client, make_user):
        await make_user()
        tokens = (await login(client)).json()["data"]
        headers = {"Authorization": f"Bearer {tokens['accessToken']}"}

        await client.post("/api/v1/auth/logout", json={"allSessions": True}, headers=headers)

        profile = await client.get("/api/v1/profile", headers=headers)
        assert profile.status_code == 401
        assert profile.json()["message"] == "Session has been revoked. Please log in again."


# ══════════════════════════════════════════════════════════════════════════
# Password reset
# ══════════════════════════════════════════════════════════════════════════


class TestPasswordReset:
    @pytest.mark.asyncio
    async def test_forgot_password_reply_is_generic(self, client, make_user, mailer):
        await make_user()
        known = await client.post("/api/v1/auth/forgot-password", json={"email": "planner@ariya.com"})
        unknown = await client.post("/api/v1/auth/forgot-password", json={"email": "ghost@ariya.com"})

        assert known.status_code == unknown.status_code == 200
        assert known.json() == unknown.json()
        assert known.json()["message"] == (
            "If an account exists with this email, a password reset link has been sent."
        )
        assert len(mailer.outbox) == 1

    @pytest.mark.asyncio
    async def test_reset_password_flow(self, client, make_user, mailer):
        await make_user()
        old_tokens = (await login(client)).json()["data"]
        await client.post("/api/v1/auth/forgot-password", json={"email": "planner@ariya.com"})
        token = token_from(mailer.outbox[0])

        response = await client.post(
            "/api/v1/auth/reset-password", json={"token": token, "password": NEW_PASSWORD}
        )
        assert response.status_code == 200

        assert (await login(client)).status_code == 401
        assert (await login(client, password=NEW_PASSWORD)).status_code == 200

        # Sessions issued before the reset are revoked
        profile = await client.get(
            "/api/v1/profile", headers={"Authorization": f"Bearer {old_tokens['accessToken']}"}
        )
        assert profile.status_code == 401

        reused = await client.post(
            "/api/v1/auth/reset-password", json={"token": token, "password": NEW_PASSWORD}
        )
        assert reused.status_code == 400
        assert reused.json()["message"] == "Invalid or expired reset token"

    @pytest.mark.asyncio
    async def test_reset_requires_strong_password(self, client, database):
        response = await client.post(
            "/api/v1/auth/reset-password", json={"token": "abc", "password": "short"}
        )
        assert response.status_code == 400
        assert "password" in response.json()["errors"]


# ══════════════════════════════════════════════════════════════════════════
# Social login
# ══════════════════════════════════════════════════════════════════════════


class TestSocialLogin:
    @pytest.mark.asyncio
    async def test_new_social_user(self, client, social):
        social.register("good-token", "social@ariya.com", name="Social Sam")

        response = await client.post(
            "/api/v1/auth/social-login",
            json={"provider": "google", "accessToken": "good-token", "role": "VENDOR"},
        )

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["isNewUser"] is True
        assert data["user"]["isVerified"] is True
        assert data["user"]["role"] == "VENDOR"

        again = await client.post(
            "/api/v1/auth/social-login", json={"provider": "google", "accessToken": "good-token"}
        )
        assert again.json()["data"]["isNewUser"] is False

    @pytest.mark.asyncio
    async def test_invalid_provider_token(self, client, database):
        response = await client.post(
            "/api/v1/auth/social-login", json={"provider": "google", "accessToken": "bogus"}
        )
        assert response.status_code == 400
        assert response.json()["message"] == "Invalid social login access token"

    @pytest.mark.asyncio
    async def test_unverified_social_email(self, client, social):
        social.register("unverified", "maybe@ariya.com", verified=False)
        response = await client.post(
            "/api/v1/auth/social-login", json={"provider": "google", "accessToken": "unverified"}
        )
        assert response.status_code == 400
        assert response.json()["message"] == "Please verify your social account before logging in"

    @pytest.mark.asyncio
    async def test_email_owned_by_password_account(self, client, social, make_user):
        await make_user()
        social.register("collide", "planner@ariya.com")
        response = await client.post(
            "/api/v1/auth/social-login", json={"provider": "google", "accessToken": "collide"}
        )
        assert response.status_code == 409


# ══════════════════════════════════════════════════════════════════════════
# Profile
# ══════════════════════════════════════════════════════════════════════════


class TestProfile:
    @pytest.mark.asyncio
    async def test_profile(self, client, make_user, auth_headers):
        user = await make_user(role=UserRole.VENDOR)
        response = await client.get("/api/v1/profile", headers=auth_headers(user))

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["user"]["id"] == str(user.id)
        assert data["user"]["role"] == "VENDOR"
        assert "expiresAt" in data["session"]

    @pytest.mark.asyncio
    async def test_access_token_cookie(self, client, make_user, app):
        user = await make_user()
        token = app.state.credentials.issue(user, TokenKind.ACCESS).token
        response = await client.get("/api/v1/profile", headers={"Cookie": f"access_token={token}"})
        assert response.status_code == 200

    @pytest.mark.asyncio
    async def test_malformed_bearer(self, client, database):
        response = await client.get("/api/v1/profile", headers={"Authorization": "Bearer nope"})
        assert response.status_code == 401
        assert response.json()["message"] == "Invalid access token"
