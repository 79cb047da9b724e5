"""
Ariya Backend — Auth Service (Account & Session Mutations)
============================================================

What:  Login, registration, token refresh, logout, password reset, email
       verification and social login.
Why:   Everything that changes credentials or sessions lives here, so the
       Auth Resolver can stay strictly read-only.
How:   One instance per request, bound to the request's AsyncSession.
       Collaborators (credential store, password hasher, mail sender,
       social providers) are injected by app/dependencies.py.
Who:   Called by the /api/v1/auth route handlers.

Security rules:
    - Wrong email and wrong password produce the same 401 message.
    - Unknown emails and password-less accounts still pay for one argon2
      verify, so login latency does not reveal which accounts exist.
    - After `max_failed_login_attempts` failures the account is locked for
      `lockout_minutes`; the counter increment is committed before the 401
      is raised so the request rollback cannot undo it.
    - Refresh tokens are rotated: the presented `jti` is revoked and a new
      pair issued. Presenting a revoked refresh token is a security event.
    - Password reset and resend-verification answer identically whether or
      not the account exists.
    - Password reset bumps `token_version`, invalidating every outstanding
      access and refresh token of the user.
"""

import logging
import secrets
from datetime import datetime, timedelta
from functools import lru_cache
from typing import Callable, Dict, Optional

from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import Settings, settings as default_settings
from app.exceptions import ConflictError, ForbiddenError, UnauthenticatedError, ValidationError
from app.middleware.logging import log_security
from app.models.token import RevokedToken, VerificationToken, VerificationTokenType
from app.models.user import User, UserRole, as_utc, utcnow
from app.schemas.auth import AuthPayload, RegisterRequest, SocialLoginRequest, UserPayload
from app.services.auth_resolver import LOCKED_MESSAGE, Principal, Session, ensure_account_usable
from app.services.credentials import CredentialStore, TokenKind
from app.services.mail import MailSender, password_reset_message, verification_message
from app.services.social import InvalidSocialTokenError, SocialIdentityProvider
from app.services.user_directory import SqlUserDirectory

logger = logging.getLogger(__name__)

INVALID_CREDENTIALS = "Invalid email or password"
UNVERIFIED_EMAIL = "Please verify your email before logging in"
DUPLICATE_EMAIL = "A user with this email already exists"
REVOKED_REFRESH = "Refresh token has been revoked. Please log in again."
INVALID_REFRESH = "Invalid refresh token"
INVALID_RESET_TOKEN = "Invalid or expired reset token"
INVALID_VERIFICATION_TOKEN = "Invalid or expired email verification token"
ALREADY_VERIFIED = "Email is already verified"
INVALID_SOCIAL_TOKEN = "Invalid social login access token"
UNVERIFIED_SOCIAL = "Please verify your social account before logging in"
SOCIAL_EMAIL_TAKEN = (
    "An account with this email already exists. "
    "Please log in with your existing credentials."
)


def build_password_hasher(config: Settings) -> PasswordHasher:
    return PasswordHasher(
        time_cost=config.argon2_time_cost,
        memory_cost=config.argon2_memory_cost,
        parallelism=config.argon2_parallelism,
    )


@lru_cache(maxsize=8)
def _dummy_hash(hasher: PasswordHasher) -> str:
    return hasher.hash(secrets.token_urlsafe(16))


class AuthService:
    def __init__(
        self,
        db: AsyncSession,
        credentials: CredentialStore,
        hasher: PasswordHasher,
        mailer: MailSender,
        providers: Optional[Dict[str, SocialIdentityProvider]] = None,
        config: Settings = default_settings,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.db = db
        self.directory = SqlUserDirectory(db)
        self.credentials = credentials
        self.hasher = hasher
        self.mailer = mailer
        self.providers = providers or {}
        self.config = config
        self._clock = clock

    # ── Login ─────────────────────────────────────────────────────────────

    async def login(self, email: str, password: str, ip: str = "unknown") -> AuthPayload:
        """
        Verify an email/password pair and issue a token pair.

        Raises:
            UnauthenticatedError: unknown email or wrong password (same message)
            ForbiddenError: suspended, locked or unverified account
        """
        now = self._clock()
        user = await self.directory.get_by_email(email)
        if user is None:
            self._verify_dummy(password)
            log_security("Login failed: unknown email", email=email, ip=ip)
            raise UnauthenticatedError(INVALID_CREDENTIALS)

        lockout_until = as_utc(user.lockout_until)
        if lockout_until is not None and lockout_until > now:
            log_security("Login attempt on locked account", user_id=str(user.id), ip=ip)
            raise ForbiddenError(LOCKED_MESSAGE)

        if not self._password_matches(user, password):
            await self._record_failed_login(user, now, ip)
            raise UnauthenticatedError(INVALID_CREDENTIALS)

        ensure_account_usable(user, now, route="login")

        if not user.is_verified:
            raise ForbiddenError(UNVERIFIED_EMAIL)

        user.failed_login_attempts = 0
        user.lockout_until = None
        user.last_login_at = now
        if self.hasher.check_needs_rehash(user.password_hash):
            user.password_hash = self.hasher.hash(password)

        payload = self._auth_payload(user)
        await self.db.commit()
        logger.info("User %s logged in from %s", user.id, ip)
        return payload

    def _password_matches(self, user: User, password: str) -> bool:
        if not user.password_hash:
            self._verify_dummy(password)
            return False
        try:
            return self.hasher.verify(user.password_hash, password)
        except (VerificationError, InvalidHashError):
            return False

    def _verify_dummy(self, password: str) -> None:
        """One argon2 verify against a throwaway hash, matching the cost of a real check."""
        try:
            self.hasher.verify(_dummy_hash(self.hasher), password)
        except (VerificationError, InvalidHashError):
            pass

    async def _record_failed_login(self, user: User, now: datetime, ip: str) -> None:
        user.failed_login_attempts += 1
        if user.failed_login_attempts >= self.config.max_failed_login_attempts:
            user.lockout_until = now + timedelta(minutes=self.config.lockout_minutes)
            user.failed_login_attempts = 0
            log_security(
                "Account locked after repeated failed logins",
                user_id=str(user.id),
                ip=ip,
                minutes=self.config.lockout_minutes,
            )
        else:
            log_security(
                "Login failed: wrong password",
                user_id=str(user.id),
                ip=ip,
                attempts=user.failed_login_attempts,
            )
        await self.db.commit()

    # ── Registration & verification ───────────────────────────────────────

    async def register(self, request: RegisterRequest) -> UserPayload:
        """Create an unverified account and mail its verification link."""
        if await self.directory.get_by_email(request.email) is not None:
            raise ConflictError(DUPLICATE_EMAIL)

        user = User(
            email=request.email,
            password_hash=self.hasher.hash(request.password),
            name=request.full_name,
            phone=request.phone,
            role=UserRole(request.role or UserRole.PLANNER.value),
            is_verified=False,
            password_changed_at=self._clock(),
        )
        self.db.add(user)
        try:
            await self.db.flush()
        except IntegrityError:
            await self.db.rollback()
            raise ConflictError(DUPLICATE_EMAIL)

        token = await self._create_verification_token(user, VerificationTokenType.EMAIL_VERIFICATION)
        payload = UserPayload.from_user(user)
        await self.db.commit()
        logger.info("Registered user %s as %s", user.id, user.role.value)

        await self._send_verification(user, token)
        return payload

    async def verify_email(self, token: str) -> UserPayload:
        record = await self._consume_token(token, VerificationTokenType.EMAIL_VERIFICATION)
        if record is None:
            raise ValidationError(INVALID_VERIFICATION_TOKEN)
        user = await self.db.get(User, record.user_id)
        if user is None:
            raise ValidationError(INVALID_VERIFICATION_TOKEN)
        if user.is_verified:
            raise ValidationError(ALREADY_VERIFIED)

        user.is_verified = True
        user.email_verified_at = self._clock()
        payload = UserPayload.from_user(user)
        await self.db.commit()
        logger.info("User %s verified their email", user.id)
        return payload

    async def resend_verification(self, email: str) -> None:
        user = await self.directory.get_by_email(email)
        if user is None or user.is_verified:
            return
        await self._invalidate_tokens(user, VerificationTokenType.EMAIL_VERIFICATION)
        token = await self._create_verification_token(user, VerificationTokenType.EMAIL_VERIFICATION)
        await self.db.commit()
        await self._send_verification(user, token)

    # ── Password reset ────────────────────────────────────────────────────

    async def forgot_password(self, email: str) -> None:
        """Mail a reset link when the account exists. Callers always answer the same."""
        user = await self.directory.get_by_email(email)
        if user is None or user.is_suspended:
            logger.info("Password reset requested for unknown or suspended account")
            return

        await self._invalidate_tokens(user, VerificationTokenType.PASSWORD_RESET)
        token = await self._create_verification_token(user, VerificationTokenType.PASSWORD_RESET)
        await self.db.commit()

        link = f"{self.config.frontend_url}/reset-password?token={token}"
        try:
            await self.mailer.send(password_reset_message(user.email, user.name, link))
        except Exception:
            logger.exception("Failed to send password reset mail to user %s", user.id)

    async def reset_password(self, token: str, new_password: str) -> None:
        record = await self._consume_token(token, VerificationTokenType.PASSWORD_RESET)
        if record is None:
            raise ValidationError(INVALID_RESET_TOKEN)
        user = await self.db.get(User, record.user_id)
        if user is None:
            raise ValidationError(INVALID_RESET_TOKEN)

        now = self._clock()
        user.password_hash = self.hasher.hash(new_password)
        user.password_changed_at = now
        user.token_version += 1
        user.failed_login_attempts = 0
        user.lockout_until = None
        await self.db.commit()
        log_security("Password reset completed", user_id=str(user.id))

    # ── Sessions ──────────────────────────────────────────────────────────

    async def refresh(self, refresh_token: str) -> AuthPayload:
        """Rotate a refresh token: revoke the presented one, issue a new pair."""
        claims = self.credentials.verify(refresh_token, TokenKind.REFRESH)

        if await self.db.get(RevokedToken, claims.token_id) is not None:
            log_security("Revoked refresh token presented", user_id=claims.subject)
            raise UnauthenticatedError(REVOKED_REFRESH)

        user = await self.directory.get_by_id(claims.subject)
        if user is None:
            raise UnauthenticatedError(INVALID_REFRESH)
        if claims.token_version != user.token_version:
            raise UnauthenticatedError(REVOKED_REFRESH)
        ensure_account_usable(user, self._clock(), route="refresh-token")

        # A concurrent rotation of the same token loses on the jti primary key
        self._revoke(claims.token_id, user, claims.expires_at)
        try:
            await self.db.flush()
        except IntegrityError:
            await self.db.rollback()
            log_security("Concurrent reuse of refresh token", user_id=claims.subject)
            raise UnauthenticatedError(REVOKED_REFRESH)

        payload = self._auth_payload(user)
        await self.db.commit()
        return payload

    async def logout(
        self,
        principal: Principal,
        session: Session,
        refresh_token: Optional[str] = None,
        all_sessions: bool = False,
    ) -> None:
        """
        End the caller's session.

        The presented refresh token (if any) is revoked. `all_sessions`
        bumps token_version, which also invalidates outstanding access tokens.
        """
        user = await self.directory.get_by_id(principal.user_id)
        if user is None:
            return

        if refresh_token:
            try:
                claims = self.credentials.verify(refresh_token, TokenKind.REFRESH)
            except UnauthenticatedError:
                claims = None
            if claims is not None and claims.subject == principal.user_id:
                if await self.db.get(RevokedToken, claims.token_id) is None:
                    self._revoke(claims.token_id, user, claims.expires_at)

        if all_sessions:
            user.token_version += 1
        await self.db.commit()
        logger.info(
            "User %s logged out (session %s, all_sessions=%s)",
            principal.user_id,
            session.token_id,
            all_sessions,
        )

    # ── Social login ──────────────────────────────────────────────────────

    async def social_login(self, request: SocialLoginRequest) -> AuthPayload:
        provider = self.providers.get(request.provider)
        if provider is None:
            raise ValidationError(f"Provider must be one of: {', '.join(sorted(self.providers))}")
        try:
            profile = await provider.verify(request.access_token)
        except InvalidSocialTokenError:
            log_security("Social login rejected by provider", provider=request.provider)
            raise ValidationError(INVALID_SOCIAL_TOKEN)
        if not profile.email_verified:
            raise ValidationError(UNVERIFIED_SOCIAL)

        now = self._clock()
        user = await self.directory.get_by_email(profile.email)
        is_new = user is None
        if user is None:
            user = User(
                email=profile.email,
                password_hash=None,
                name=profile.name,
                role=UserRole(request.role),
                is_verified=True,
                email_verified_at=now,
                social_provider=profile.provider,
            )
            self.db.add(user)
            await self.db.flush()
        elif user.social_provider != profile.provider:
            raise ConflictError(SOCIAL_EMAIL_TAKEN)
        else:
            ensure_account_usable(user, now, route="social-login")

        user.last_login_at = now
        payload = self._auth_payload(user, is_new_user=is_new)
        await self.db.commit()
        return payload

    # ── Helpers ───────────────────────────────────────────────────────────

    def _auth_payload(self, user: User, is_new_user: Optional[bool] = None) -> AuthPayload:
        access = self.credentials.issue(user, TokenKind.ACCESS)
        refresh = self.credentials.issue(user, TokenKind.REFRESH)
        return AuthPayload(
            user=UserPayload.from_user(user),
            access_token=access.token,
            refresh_token=refresh.token,
            is_new_user=is_new_user,
        )

    def _revoke(self, jti: str, user: User, expires_at: datetime) -> None:
        self.db.add(RevokedToken(jti=jti, user_id=user.id, expires_at=expires_at))

    def _token_lifetime(self, kind: VerificationTokenType) -> timedelta:
        if kind is VerificationTokenType.PASSWORD_RESET:
            return timedelta(minutes=self.config.password_reset_expire_minutes)
        return timedelta(hours=self.config.email_verification_expire_hours)

    async def _create_verification_token(self, user: User, kind: VerificationTokenType) -> str:
        token = secrets.token_hex(32)
        self.db.add(
            VerificationToken(
                user_id=user.id,
                token=token,
                type=kind,
                expires_at=self._clock() + self._token_lifetime(kind),
            )
        )
        await self.db.flush()
        return token

    async def _invalidate_tokens(self, user: User, kind: VerificationTokenType) -> None:
        await self.db.execute(
            update(VerificationToken)
            .where(
                VerificationToken.user_id == user.id,
                VerificationToken.type == kind,
                VerificationToken.used_at.is_(None),
            )
            .values(used_at=self._clock())
        )

    async def _consume_token(
        self, token: str, kind: VerificationTokenType
    ) -> Optional[VerificationToken]:
        """Mark a valid, unused, unexpired token as used and return it."""
        result = await self.db.execute(
            select(VerificationToken).where(
                VerificationToken.token == token,
                VerificationToken.type == kind,
            )
        )
        record = result.scalar_one_or_none()
        if record is None or record.used_at is not None:
            return None
        if as_utc(record.expires_at) <= self._clock():
            return None
        record.used_at = self._clock()
        return record

    async def _send_verification(self, user: User, token: str) -> None:
        link = f"{self.config.frontend_url}/verify-email?token={token}"
        try:
            await self.mailer.send(verification_message(user.email, user.name, link))
        except Exception:
            logger.exception("Failed to send verification mail to user %s", user.id)

