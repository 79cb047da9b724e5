"""
Ariya Backend — Test Configuration (conftest.py)
==================================================

What:  Shared pytest fixtures for the entire test suite.
How:   The environment is pointed at a throwaway SQLite file BEFORE any app
       module is imported, so `app.config.settings` and the engine pick it up.

Fixture Hierarchy:
    Function-scoped (created fresh for each test):
    ├── database:      schema created on the SQLite engine, dropped afterwards
    ├── db_session:    session for seeding and asserting rows
    ├── make_user:     factory inserting accounts with a known password
    ├── mailer:        OutboxMailSender capturing sent messages
    ├── social:        FakeSocialProvider standing in for Google
    ├── app:           fresh create_app() with a roomy rate limiter
    ├── client:        HTTPX AsyncClient talking to `app` over ASGI
    └── auth_headers:  Authorization header for a given user
"""

import os
import tempfile

# Override settings for testing BEFORE any app imports
_TEST_DIR = tempfile.mkdtemp(prefix="ariya_test_")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_TEST_DIR}/ariya_test.db"
os.environ["ENVIRONMENT"] = "test"
os.environ["LOG_LEVEL"] = "WARNING"
os.environ["ARGON2_TIME_COST"] = "1"
os.environ["ARGON2_MEMORY_COST"] = "8"
os.environ["ARGON2_PARALLELISM"] = "1"

from datetime import datetime  # noqa: E402
from typing import Dict, List, Optional  # noqa: E402

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402

from app.config import settings  # noqa: E402
from app.database import Base, async_session_factory, engine  # noqa: E402
from app.main import create_app  # noqa: E402
from app.models.user import User, UserRole  # noqa: E402
from app.services.auth_service import build_password_hasher  # noqa: E402
from app.services.credentials import TokenKind  # noqa: E402
from app.services.mail import MailMessage, MailSender  # noqa: E402
from app.services.rate_limiter import RateLimiter, RateLimitRule  # noqa: E402
from app.services.social import InvalidSocialTokenError, SocialIdentityProvider, SocialProfile  # noqa: E402

from app.models.moderation_report import ModerationReport, UserRestriction  # noqa: E402,F401
from app.models.token import RevokedToken, VerificationToken  # noqa: E402,F401

DEFAULT_PASSWORD = "Str0ng!Pass"

# Flow tests make more auth calls than the production 5 / 15 min allows
ROOMY_RULES = {
    "auth": RateLimitRule(max_requests=1000, window_ms=60_000, message="Too many auth requests"),
    "api": RateLimitRule(max_requests=1000, window_ms=60_000, message="Too many API requests"),
    "default": RateLimitRule(max_requests=1000, window_ms=60_000, message="Too many requests"),
}


class OutboxMailSender(MailSender):
    """Keeps every sent message so tests can pull tokens out of the links."""

    def __init__(self):
        self.outbox: List[MailMessage] = []

    async def send(self, message: MailMessage) -> None:
        self.outbox.append(message)


class FakeSocialProvider(SocialIdentityProvider):
    """Maps known access tokens to profiles; anything else is rejected."""

    name = "google"

    def __init__(self):
        self.profiles: Dict[str, SocialProfile] = {}

    def register(self, token: str, email: str, name: str = "Social User", verified: bool = True) -> None:
        self.profiles[token] = SocialProfile(
            provider=self.name,
            provider_user_id=f"sub-{token}",
            email=email,
            name=name,
            email_verified=verified,
        )

    async def verify(self, access_token: str) -> SocialProfile:
        try:
            return self.profiles[access_token]
        except KeyError:
            raise InvalidSocialTokenError("unknown token")


# ══════════════════════════════════════════════════════════════════════════
# Database
# ══════════════════════════════════════════════════════════════════════════

@pytest_asyncio.fixture
async def database():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    # Pooled aiosqlite connections are bound to this test's event loop
    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(database):
    async with async_session_factory() as session:
        yield session


@pytest.fixture
def password_hasher():
    return build_password_hasher(settings)


@pytest.fixture
def make_user(db_session, password_hasher):
    """
    Factory inserting a committed account.

    Usage:
        admin = await make_user(email="admin@ariya.com", role=UserRole.ADMIN)
    """

    async def factory(
        email: str = "planner@ariya.com",
        password: Optional[str] = DEFAULT_PASSWORD,
        name: str = "Ada Planner",
        role: UserRole = UserRole.PLANNER,
        is_verified: bool = True,
        is_suspended: bool = False,
        lockout_until: Optional[datetime] = None,
        social_provider: Optional[str] = None,
    ) -> User:
        user = User(
            email=email,
            password_hash=password_hasher.hash(password) if password else None,
            name=name,
            role=role,
            is_verified=is_verified,
            is_suspended=is_suspended,
            lockout_until=lockout_until,
            social_provider=social_provider,
        )
        db_session.add(user)
        await db_session.commit()
        return user

    return factory


# ══════════════════════════════════════════════════════════════════════════
# Application
# ══════════════════════════════════════════════════════════════════════════

@pytest.fixture
def mailer():
    return OutboxMailSender()


@pytest.fixture
def social():
    return FakeSocialProvider()


@pytest.fixture
def app(database, mailer, social):
    return create_app(
        rate_limiter=RateLimiter(rules=ROOMY_RULES),
        mailer=mailer,
        social_providers={"google": social},
    )


@pytest_asyncio.fixture
async def client(app):
    """
    HTTPX AsyncClient routed straight into the ASGI app.

    Usage:
        async def test_health(client):
            response = await client.get("/health")
            assert response.status_code == 200
    """
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture
def auth_headers(app):
    def build(user: User) -> Dict[str, str]:
        token = app.state.credentials.issue(user, TokenKind.ACCESS).token
        return {"Authorization": f"Bearer {token}"}

    return build
