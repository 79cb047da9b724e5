"""
Ariya Backend — Auth Resolver
===============================

What:  Turns a bearer credential into the caller's Principal and Session,
       optionally enforcing a set of allowed roles.
Why:   Every protected route needs the same checks in the same order; none
       of them may be skipped because the signature happens to be valid.
How:   1. CredentialStore.verify()          → signature, expiry, token kind
       2. UserDirectory.get_by_id()         → account still exists
       3. claims.ver == user.token_version  → not revoked
       4. not suspended / not locked        → account usable
       5. role ∈ allowed (require_role)     → authorized
Who:   The `require_auth` / `require_role` dependencies in app/dependencies.py.

The resolver is read-only. It never refreshes, rotates or revokes anything,
so resolving the same token twice yields equal principals.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Iterable, Optional

from app.exceptions import ForbiddenError, UnauthenticatedError
from app.middleware.logging import log_security
from app.models.user import User, as_utc
from app.services.credentials import CredentialStore, TokenKind
from app.services.user_directory import UserDirectory

logger = logging.getLogger(__name__)

SUSPENDED_MESSAGE = "Your account has been suspended. Please contact support."
LOCKED_MESSAGE = "Account temporarily locked. Please try again later."
FORBIDDEN_MESSAGE = "Access denied: Insufficient permissions"


@dataclass(frozen=True)
class Principal:
    """The authenticated caller, valid for one request."""

    user_id: str
    role: str
    email: str
    name: str
    is_verified: bool

    @classmethod
    def from_user(cls, user: User) -> "Principal":
        return cls(
            user_id=str(user.id),
            role=getattr(user.role, "value", user.role),
            email=user.email,
            name=user.name,
            is_verified=bool(user.is_verified),
        )


@dataclass(frozen=True)
class Session:
    token_id: str
    token_version: int
    issued_at: datetime
    expires_at: datetime


@dataclass(frozen=True)
class AuthResult:
    user: Principal
    session: Session


def ensure_account_usable(user: User, now: datetime, route: Optional[str] = None) -> None:
    """Raise ForbiddenError for suspended or currently locked accounts."""
    if user.is_suspended:
        log_security("Suspended account access attempt", user_id=str(user.id), route=route)
        raise ForbiddenError(SUSPENDED_MESSAGE)
    lockout_until = as_utc(user.lockout_until)
    if lockout_until is not None and lockout_until > now:
        log_security("Locked account access attempt", user_id=str(user.id), route=route)
        raise ForbiddenError(LOCKED_MESSAGE)


class AuthResolver:
    def __init__(
        self,
        credentials: CredentialStore,
        directory: UserDirectory,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self.credentials = credentials
        self.directory = directory
        self._clock = clock

    async def resolve(self, token: Optional[str]) -> AuthResult:
        """
        Resolve an access token.

        Raises:
            UnauthenticatedError: missing, invalid, expired or revoked token,
                or the account no longer exists.
            ForbiddenError: the account is suspended or locked.
        """
        if not token:
            raise UnauthenticatedError("Authentication required")

        claims = self.credentials.verify(token, TokenKind.ACCESS)
        user = await self.directory.get_by_id(claims.subject)
        if user is None:
            raise UnauthenticatedError("Invalid access token")
        if claims.token_version != user.token_version:
            raise UnauthenticatedError("Session has been revoked. Please log in again.")

        ensure_account_usable(user, self._clock())

        return AuthResult(
            user=Principal.from_user(user),
            session=Session(
                token_id=claims.token_id,
                token_version=claims.token_version,
                issued_at=claims.issued_at,
                expires_at=claims.expires_at,
            ),
        )

    async def require_role(self, token: Optional[str], allowed_roles: Iterable[str]) -> AuthResult:
        """Resolve, then check the principal's role; ForbiddenError otherwise."""
        return self.authorize(await self.resolve(token), allowed_roles)

    @staticmethod
    def authorize(result: AuthResult, allowed_roles: Iterable[str]) -> AuthResult:
        allowed = {getattr(role, "value", role) for role in allowed_roles}
        if result.user.role not in allowed:
            logger.info(
                "Role %s denied (allowed: %s) for user %s",
                result.user.role,
                ",".join(sorted(allowed)),
                result.user.user_id,
            )
            raise ForbiddenError(FORBIDDEN_MESSAGE)
        return result
