"""
Ariya Backend — User Model
============================

What:  SQLAlchemy ORM model for platform accounts (planners, vendors, admins).
Why:   The Auth Service mutates it; the User Directory reads it for the
       Auth Resolver.
How:   SQLAlchemy 2.0 Mapped/mapped_column declarations with portable column
       types so the same model runs on PostgreSQL and on SQLite in tests.

Revocation:
    `token_version` is embedded in every issued token as the `ver` claim.
    Bumping it (logout from all sessions, password reset) invalidates every
    outstanding token for the user at the next resolve.
"""

import enum
import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import Boolean, DateTime, Enum, Integer, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite hands back naive datetimes; treat them as UTC."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class UserRole(str, enum.Enum):
    PLANNER = "PLANNER"
    VENDOR = "VENDOR"
    ADMIN = "ADMIN"


class User(Base):
    """
    A platform account.

    Lifecycle:
        1. Registered (is_verified = False) or created by social login
           (is_verified = True, no password)
        2. Verified through the emailed token
        3. Optionally suspended by moderation or locked after repeated
           failed logins (lockout_until in the future)
    """

    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    # Stored lower-cased; uniqueness is enforced on the normalized form
    email: Mapped[str] = mapped_column(String(255), unique=True, index=True, nullable=False)

    # NULL for accounts created through social login
    password_hash: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    name: Mapped[str] = mapped_column(String(120), nullable=False)
    phone: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    role: Mapped[UserRole] = mapped_column(
        Enum(UserRole, name="user_role", native_enum=False, length=16),
        nullable=False,
        default=UserRole.PLANNER,
    )

    # ── Account state ─────────────────────────────────────────────────────
    is_verified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    email_verified_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    is_suspended: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    failed_login_attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    lockout_until: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    token_version: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    social_provider: Mapped[Optional[str]] = mapped_column(String(20))

    # ── Timestamps ────────────────────────────────────────────────────────
    password_changed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    last_login_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow
    )

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email='{self.email}', role={self.role.value})>"
