"""
Ariya Backend — Moderation Route Handlers
===========================================

What:  Handles POST /api/v1/moderation/report (any signed-in user files a
       report), GET /api/v1/moderation/reports (admin review queue),
       PUT /api/v1/moderation/reports/{id} (admin review decision) and
       POST /api/v1/moderation/action-check (may the caller do X?).
How:   The report body is checked with a declarative rule table; the queue
       uses the shared pagination parameters and an ADMIN role gate.
Who:   Report buttons on vendor, review and event pages; the admin console.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.responses import JSONResponse

from app import responses
from app.database import get_db_session
from app.dependencies import pagination_params, rate_limit, require_auth, require_role
from app.exceptions import ForbiddenError, ValidationError
from app.models.moderation_report import ReportStatus
from app.schemas.common import ERROR_RESPONSES, PAGINATED_RESPONSE, SUCCESS_RESPONSE, PaginationParams
from app.services.auth_resolver import AuthResult
from app.services.moderation_service import (
    MODERATED_ACTIONS,
    REPORT_TARGET_TYPES,
    moderation_service,
    serialize_report,
)
from app.services.rate_limiter import RateLimitResult
from app.validation import ValidationRule, validated_rules

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/moderation", tags=["Moderation"], responses=ERROR_RESPONSES)


def _known_target_type(value: str):
    if value.upper() in REPORT_TARGET_TYPES:
        return True
    return f"targetType must be one of: {', '.join(REPORT_TARGET_TYPES)}"


REPORT_RULES = {
    "targetType": ValidationRule(required=True, type="string", custom=_known_target_type),
    "targetId": ValidationRule(required=True, type="string", min_length=1, max_length=64),
    "reason": ValidationRule(required=True, type="string", min_length=5, max_length=200),
    "details": ValidationRule(type="string", max_length=2000),
}


def _known_status(value: str):
    if value.upper() in ReportStatus.__members__:
        return True
    return f"status must be one of: {', '.join(ReportStatus.__members__)}"


REVIEW_RULES = {
    "status": ValidationRule(required=True, type="string", custom=_known_status),
    "resolutionNotes": ValidationRule(type="string", max_length=2000),
}


def _known_action(value: str):
    if value.upper() in MODERATED_ACTIONS:
        return True
    return f"action must be one of: {', '.join(MODERATED_ACTIONS)}"


ACTION_CHECK_RULES = {
    "action": ValidationRule(required=True, type="string", custom=_known_action),
}


def _status_filter(request: Request) -> Optional[ReportStatus]:
    raw = request.query_params.get("status")
    if not raw:
        return None
    try:
        return ReportStatus(raw.upper())
    except ValueError:
        raise ValidationError("Invalid status parameter")


@router.post("/report", status_code=201, summary="Report a vendor, review, event, user or message")
async def create_report(
    _rl: RateLimitResult = Depends(rate_limit("default")),
    body: dict = Depends(validated_rules(REPORT_RULES)),
    auth: AuthResult = Depends(require_auth),
    db: AsyncSession = Depends(get_db_session),
) -> JSONResponse:
    report = await moderation_service.create_report(
        db,
        reporter_id=auth.user.user_id,
        target_type=body["targetType"],
        target_id=body["targetId"],
        reason=body["reason"],
        details=body.get("details") or None,
    )
    data = serialize_report(report)
    await db.commit()
    return responses.success(data, "Report submitted successfully", status_code=201)


@router.get("/reports", summary="List moderation reports (admin)", responses=PAGINATED_RESPONSE)
async def list_reports(
    _rl: RateLimitResult = Depends(rate_limit("api")),
    paging: PaginationParams = Depends(pagination_params),
    status: Optional[ReportStatus] = Depends(_status_filter),
    auth: AuthResult = Depends(require_role("ADMIN")),
    db: AsyncSession = Depends(get_db_session),
) -> JSONResponse:
    """
    Newest-first page of reports, optionally filtered by `?status=`.

    Example:
        GET /api/v1/moderation/reports?page=2&limit=20&status=PENDING_REVIEW
    """
    items, total = await moderation_service.list_reports(db, status, paging.page, paging.limit)
    return responses.paginated(
        [serialize_report(item) for item in items],
        total,
        paging.page,
        paging.limit,
        "Reports retrieved successfully",
    )


@router.put(
    "/reports/{report_id}",
    summary="Record an admin review decision on a report",
    responses=SUCCESS_RESPONSE,
)
async def update_report(
    report_id: str,
    _rl: RateLimitResult = Depends(rate_limit("api")),
    body: dict = Depends(validated_rules(REVIEW_RULES)),
    auth: AuthResult = Depends(require_role("ADMIN")),
    db: AsyncSession = Depends(get_db_session),
) -> JSONResponse:
    report = await moderation_service.update_report_status(
        db,
        report_id,
        ReportStatus(body["status"].upper()),
        reviewer_id=auth.user.user_id,
        resolution_notes=body.get("resolutionNotes"),
    )
    data = serialize_report(report)
    await db.commit()
    return responses.success(data, "Moderation report updated successfully")


@router.post("/action-check", summary="Check whether the caller may perform an action")
async def action_check(
    _rl: RateLimitResult = Depends(rate_limit("default")),
    body: dict = Depends(validated_rules(ACTION_CHECK_RULES)),
    auth: AuthResult = Depends(require_auth),
    db: AsyncSession = Depends(get_db_session),
) -> JSONResponse:
    action = body["action"].upper()
    blocked_reason = await moderation_service.check_action(db, auth.user.user_id, action)
    if blocked_reason is not None:
        raise ForbiddenError(f"Cannot perform action: {blocked_reason}")
    return responses.success({"canPerform": True, "action": action}, "Action is permitted")
