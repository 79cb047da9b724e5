"""
Ariya Backend — Profile Route
===============================

GET /api/v1/profile returns the caller's account as the Auth Resolver sees
it, plus the expiry of the access token that was presented.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.responses import JSONResponse

from app import responses
from app.database import get_db_session
from app.dependencies import rate_limit, require_auth
from app.exceptions import NotFoundError
from app.schemas.auth import UserPayload
from app.schemas.common import ERROR_RESPONSES, SUCCESS_RESPONSE
from app.services.auth_resolver import AuthResult
from app.services.rate_limiter import RateLimitResult
from app.services.user_directory import SqlUserDirectory

router = APIRouter(prefix="/api/v1", tags=["Profile"], responses=ERROR_RESPONSES)


@router.get("/profile", summary="Current user's profile", responses=SUCCESS_RESPONSE)
async def get_profile(
    _rl: RateLimitResult = Depends(rate_limit("api")),
    auth: AuthResult = Depends(require_auth),
    db: AsyncSession = Depends(get_db_session),
) -> JSONResponse:
    user = await SqlUserDirectory(db).get_by_id(auth.user.user_id)
    if user is None:
        raise NotFoundError(resource="User", resource_id=auth.user.user_id)
    return responses.success(
        {
            "user": UserPayload.from_user(user).to_json(),
            "session": {"expiresAt": auth.session.expires_at},
        },
        "Profile retrieved successfully",
    )
