"""
Ariya Backend — Moderation Service
====================================

Stores user reports, serves the admin review queue, records review
decisions and answers action checks against active user restrictions.
Stateless apart from the AsyncSession it is given per call, like the other
services.
"""

import logging
import uuid
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import desc, func, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.exceptions import DatabaseError, NotFoundError
from app.models.moderation_report import ModerationReport, ReportStatus, RestrictionType, UserRestriction
from app.models.user import utcnow

logger = logging.getLogger(__name__)

REPORT_TARGET_TYPES = ("VENDOR", "REVIEW", "EVENT", "USER", "MESSAGE")
MODERATED_ACTIONS = ("MESSAGE", "BOOK", "CREATE_EVENT", "CREATE_VENDOR_PROFILE")

# Restriction type → actions it blocks
BLOCKED_ACTIONS = {
    RestrictionType.ACCOUNT_SUSPENSION: (MODERATED_ACTIONS, "Account is suspended"),
    RestrictionType.MESSAGING_RESTRICTION: (("MESSAGE",), "Messaging is restricted"),
    RestrictionType.FEATURE_LOCK: (("BOOK",), "Booking is restricted"),
}


def serialize_report(report: ModerationReport) -> Dict[str, Any]:
    return {
        "id": str(report.id),
        "reporterId": str(report.reporter_id),
        "targetType": report.target_type,
        "targetId": report.target_id,
        "reason": report.reason,
        "details": report.details,
        "status": report.status.value,
        "reviewedBy": str(report.reviewed_by) if report.reviewed_by else None,
        "resolutionNotes": report.resolution_notes,
        "reviewedAt": report.reviewed_at,
        "createdAt": report.created_at,
    }


class ModerationService:
    async def create_report(
        self,
        db: AsyncSession,
        reporter_id: str,
        target_type: str,
        target_id: str,
        reason: str,
        details: Optional[str] = None,
    ) -> ModerationReport:
        report = ModerationReport(
            reporter_id=uuid.UUID(reporter_id),
            target_type=target_type.upper(),
            target_id=target_id,
            reason=reason.strip(),
            details=details,
            status=ReportStatus.PENDING_REVIEW,
        )
        db.add(report)
        await db.flush()
        logger.info("Report %s filed by %s against %s %s", report.id, reporter_id, target_type, target_id)
        return report

    async def list_reports(
        self,
        db: AsyncSession,
        status: Optional[ReportStatus],
        page: int,
        limit: int,
    ) -> Tuple[List[ModerationReport], int]:
        """Newest-first page of reports, optionally filtered by status."""
        try:
            count_query = select(func.count(ModerationReport.id))
            query = select(ModerationReport)
            if status is not None:
                count_query = count_query.where(ModerationReport.status == status)
                query = query.where(ModerationReport.status == status)

            total = (await db.execute(count_query)).scalar_one()
            query = (
                query.order_by(desc(ModerationReport.created_at))
                .offset((page - 1) * limit)
                .limit(limit)
            )
            items = list((await db.execute(query)).scalars().all())
        except SQLAlchemyError as e:
            raise DatabaseError(
                message="Failed to list moderation reports",
                context={"operation": "list_reports", "error": str(e)},
            )
        return items, total

    async def update_report_status(
        self,
        db: AsyncSession,
        report_id: str,
        status: ReportStatus,
        reviewer_id: str,
        resolution_notes: Optional[str] = None,
    ) -> ModerationReport:
        """
        Move a report to `status` on behalf of an admin.

        Raises:
            NotFoundError: unknown or malformed report id
        """
        try:
            key = uuid.UUID(report_id)
        except ValueError:
            raise NotFoundError(resource="Moderation report", resource_id=report_id)
        report = await db.get(ModerationReport, key)
        if report is None:
            raise NotFoundError(resource="Moderation report", resource_id=report_id)

        report.status = status
        report.reviewed_by = uuid.UUID(reviewer_id)
        if resolution_notes is not None:
            report.resolution_notes = resolution_notes
        if status is ReportStatus.RESOLVED:
            report.reviewed_at = utcnow()
        await db.flush()
        logger.info("Report %s moved to %s by %s", report.id, status.value, reviewer_id)
        return report

    async def check_action(self, db: AsyncSession, user_id: str, action: str) -> Optional[str]:
        """Reason `action` is blocked for the user, or None when it is allowed."""
        now = utcnow()
        result = await db.execute(
            select(UserRestriction)
            .where(
                UserRestriction.user_id == uuid.UUID(user_id),
                UserRestriction.is_active.is_(True),
                or_(UserRestriction.expires_at.is_(None), UserRestriction.expires_at > now),
            )
            .order_by(UserRestriction.created_at)
        )
        for restriction in result.scalars():
            blocked, reason = BLOCKED_ACTIONS[restriction.type]
            if action in blocked:
                return reason
        return None


moderation_service = ModerationService()
