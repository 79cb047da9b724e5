"""
Ariya Backend — Credential Store
==================================

What:  Issues and verifies signed access / refresh tokens.
Why:   The Auth Resolver and the Auth Service depend on the abstract
       CredentialStore, so tests can swap in a fake and a future
       session-table implementation needs no caller changes.
How:   JWTCredentialStore signs HS256 tokens with python-jose. Access and
       refresh tokens use separate secrets and carry a `type` claim so one
       can never be replayed as the other.

Claims:
    sub    user id (UUID string)
    email  user email
    role   PLANNER | VENDOR | ADMIN
    ver    user.token_version at issue time (revocation marker)
    type   "access" | "refresh"
    jti    unique token id
    iss    ariya-backend
    aud    ariya-users
    iat / exp
"""

import enum
import logging
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from jose import ExpiredSignatureError, JWTError, jwt

from app.exceptions import UnauthenticatedError

logger = logging.getLogger(__name__)


class TokenKind(str, enum.Enum):
    ACCESS = "access"
    REFRESH = "refresh"


@dataclass(frozen=True)
class IssuedToken:
    token: str
    token_id: str
    issued_at: datetime
    expires_at: datetime


@dataclass(frozen=True)
class TokenClaims:
    """Verified token content."""

    subject: str
    kind: TokenKind
    token_id: str
    token_version: int
    email: Optional[str]
    role: Optional[str]
    issued_at: datetime
    expires_at: datetime


_MESSAGES = {
    TokenKind.ACCESS: {
        "expired": "Access token has expired",
        "invalid": "Invalid access token",
    },
    TokenKind.REFRESH: {
        "expired": "Refresh token has expired. Please log in again.",
        "invalid": "Invalid refresh token",
    },
}


class CredentialStore(ABC):
    """
    Abstract token issuer / verifier.

    `verify` must raise UnauthenticatedError for any token that is
    malformed, wrongly signed, expired, or of the wrong kind.
    """

    @abstractmethod
    def issue(self, user, kind: TokenKind) -> IssuedToken:
        """Mint a token of `kind` for `user` (anything with id/email/role/token_version)."""

    @abstractmethod
    def verify(self, token: str, kind: TokenKind = TokenKind.ACCESS) -> TokenClaims:
        """Return the claims of a valid token."""


class JWTCredentialStore(CredentialStore):
    def __init__(
        self,
        access_secret: str,
        refresh_secret: str,
        algorithm: str = "HS256",
        issuer: str = "ariya-backend",
        audience: str = "ariya-users",
        access_ttl: timedelta = timedelta(minutes=15),
        refresh_ttl: timedelta = timedelta(days=7),
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self._secrets = {TokenKind.ACCESS: access_secret, TokenKind.REFRESH: refresh_secret}
        self._ttls = {TokenKind.ACCESS: access_ttl, TokenKind.REFRESH: refresh_ttl}
        self.algorithm = algorithm
        self.issuer = issuer
        self.audience = audience
        self._clock = clock

    @classmethod
    def from_settings(cls, settings) -> "JWTCredentialStore":
        return cls(
            access_secret=settings.jwt_secret,
            refresh_secret=settings.jwt_refresh_secret,
            algorithm=settings.jwt_algorithm,
            issuer=settings.jwt_issuer,
            audience=settings.jwt_audience,
            access_ttl=timedelta(minutes=settings.access_token_expire_minutes),
            refresh_ttl=timedelta(days=settings.refresh_token_expire_days),
        )

    def issue(self, user, kind: TokenKind) -> IssuedToken:
        issued_at = self._clock().replace(microsecond=0)
        expires_at = issued_at + self._ttls[kind]
        token_id = uuid.uuid4().hex
        role = getattr(user.role, "value", user.role)
        claims = {
            "sub": str(user.id),
            "email": user.email,
            "role": role,
            "ver": user.token_version,
            "type": kind.value,
            "jti": token_id,
            "iss": self.issuer,
            "aud": self.audience,
            "iat": int(issued_at.timestamp()),
            "exp": int(expires_at.timestamp()),
        }
        token = jwt.encode(claims, self._secrets[kind], algorithm=self.algorithm)
        return IssuedToken(token=token, token_id=token_id, issued_at=issued_at, expires_at=expires_at)

    def verify(self, token: str, kind: TokenKind = TokenKind.ACCESS) -> TokenClaims:
        messages = _MESSAGES[kind]
        try:
            payload = jwt.decode(
                token,
                self._secrets[kind],
                algorithms=[self.algorithm],
                audience=self.audience,
                issuer=self.issuer,
            )
        except ExpiredSignatureError:
            raise UnauthenticatedError(messages["expired"])
        except JWTError as exc:
            logger.debug("Rejected %s token: %s", kind.value, exc)
            raise UnauthenticatedError(messages["invalid"])

        if payload.get("type") != kind.value or not payload.get("sub"):
            raise UnauthenticatedError(messages["invalid"])
        try:
            version = int(payload.get("ver", 0))
        except (TypeError, ValueError):
            raise UnauthenticatedError(messages["invalid"])

        return TokenClaims(
            subject=payload["sub"],
            kind=kind,
            token_id=str(payload.get("jti", "")),
            token_version=version,
            email=payload.get("email"),
            role=payload.get("role"),
            issued_at=datetime.fromtimestamp(payload.get("iat", 0), tz=timezone.utc),
            expires_at=datetime.fromtimestamp(payload["exp"], tz=timezone.utc),
        )
