"""
Ariya Backend — Moderation Models
===================================

ModerationReport: user-submitted reports against platform content (vendors,
reviews, events, users, messages). Admins move them through
PENDING_REVIEW → IN_REVIEW → RESOLVED.

UserRestriction: an active limit on what an account may do (suspension,
messaging restriction, booking lock). Consulted by the action-check endpoint.
"""

import enum
import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, DateTime, Enum, ForeignKey, Index, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base
from app.models.user import utcnow


class ReportStatus(str, enum.Enum):
    PENDING_REVIEW = "PENDING_REVIEW"
    IN_REVIEW = "IN_REVIEW"
    RESOLVED = "RESOLVED"


class RestrictionType(str, enum.Enum):
    ACCOUNT_SUSPENSION = "ACCOUNT_SUSPENSION"
    MESSAGING_RESTRICTION = "MESSAGING_RESTRICTION"
    FEATURE_LOCK = "FEATURE_LOCK"


class ModerationReport(Base):
    __tablename__ = "moderation_reports"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    reporter_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    target_type: Mapped[str] = mapped_column(String(32), nullable=False)
    target_id: Mapped[str] = mapped_column(String(64), nullable=False)
    reason: Mapped[str] = mapped_column(String(200), nullable=False)
    details: Mapped[Optional[str]] = mapped_column(Text)
    status: Mapped[ReportStatus] = mapped_column(
        Enum(ReportStatus, name="report_status", native_enum=False, length=32),
        nullable=False,
        default=ReportStatus.PENDING_REVIEW,
    )
    reviewed_by: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="SET NULL")
    )
    resolution_notes: Mapped[Optional[str]] = mapped_column(Text)
    # Set only when the report reaches RESOLVED
    reviewed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )

    # Admin queue: filter by status, newest first
    __table_args__ = (
        Index("idx_moderation_reports_status_created", "status", "created_at"),
    )


class UserRestriction(Base):
    __tablename__ = "user_restrictions"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    type: Mapped[RestrictionType] = mapped_column(
        Enum(RestrictionType, name="restriction_type", native_enum=False, length=32),
        nullable=False,
    )
    reason: Mapped[str] = mapped_column(String(500), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    # None means permanent
    expires_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
