"""
Ariya Backend — Route Dependencies
====================================

What:  FastAPI dependencies that compose the request pipeline:
       rate_limit(category) → validated body / pagination → require_auth /
       require_role(...) → service factories.
Why:   Route handlers declare the stages as parameters and stay a few lines
       long. FastAPI resolves dependencies in declaration order, so the
       parameter order of a handler IS its pipeline order, and any stage that
       raises short-circuits the rest.
How:   Shared collaborators (rate limiter, credential store, password hasher,
       mail sender, social providers) are created once in create_app() and
       read from `request.app.state`; per-request objects (AsyncSession,
       AuthResolver, AuthService) are built here.

Example:
    @router.get("/reports")
    async def list_reports(
        _rl: RateLimitResult = Depends(rate_limit("api")),
        paging: PaginationParams = Depends(pagination_params),
        auth: AuthResult = Depends(require_role("ADMIN")),
        db: AsyncSession = Depends(get_db_session),
    ): ...
"""

from typing import Callable, Optional

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.database import get_db_session
from app.exceptions import RateLimitExceededError, ValidationError
from app.middleware.logging import log_security
from app.middleware.request_id import get_client_ip
from app.schemas.common import PaginationParams
from app.services.auth_resolver import AuthResolver, AuthResult
from app.services.auth_service import AuthService
from app.services.rate_limiter import RateLimiter, RateLimitResult
from app.services.user_directory import SqlUserDirectory

ACCESS_TOKEN_COOKIE = "access_token"
INVALID_PAGINATION = "Invalid pagination parameters"


# ── Rate limiting ─────────────────────────────────────────────────────────

def get_rate_limiter(request: Request) -> RateLimiter:
    return request.app.state.rate_limiter


def rate_limit(
    category: str = "default",
    key_func: Callable[[Request], str] = get_client_ip,
) -> Callable:
    """
    Dependency factory: count the request against `category` keyed by
    `key_func(request)` (client IP by default).

    The admitted result is stored on `request.state.rate_limit` so the
    RateLimitHeadersMiddleware can emit X-RateLimit-* headers.
    """

    async def dependency(request: Request) -> RateLimitResult:
        identifier = key_func(request)
        try:
            result = get_rate_limiter(request).check(identifier, category)
        except RateLimitExceededError as exc:
            log_security(
                "Rate limit exceeded",
                category=category,
                identifier=identifier,
                path=request.url.path,
                retry_after=exc.retry_after,
            )
            raise
        request.state.rate_limit = result
        return result

    return dependency


# ── Pagination ────────────────────────────────────────────────────────────

def _int_param(request: Request, name: str, default: int) -> int:
    raw = request.query_params.get(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValidationError(INVALID_PAGINATION)


async def pagination_params(request: Request) -> PaginationParams:
    """`page` ≥ 1 and 1 ≤ `limit` ≤ max; anything else is a 400."""
    page = _int_param(request, "page", 1)
    limit = _int_param(request, "limit", settings.pagination_default_limit)
    if page < 1 or limit < 1 or limit > settings.pagination_max_limit:
        raise ValidationError(INVALID_PAGINATION)
    return PaginationParams.model_construct(page=page, limit=limit)


# ── Authentication ────────────────────────────────────────────────────────

def extract_access_token(request: Request) -> Optional[str]:
    """Bearer token from the Authorization header, else the access_token cookie."""
    auth_header = request.headers.get("Authorization", "")
    if auth_header.lower().startswith("bearer "):
        token = auth_header.split(" ", 1)[1].strip()
        if token:
            return token
    return request.cookies.get(ACCESS_TOKEN_COOKIE) or None


async def get_auth_resolver(
    request: Request,
    db: AsyncSession = Depends(get_db_session),
) -> AuthResolver:
    return AuthResolver(request.app.state.credentials, SqlUserDirectory(db))


def _remember(request: Request, result: AuthResult) -> AuthResult:
    request.state.user_id = result.user.user_id
    request.state.auth = result
    return result


async def require_auth(
    request: Request,
    resolver: AuthResolver = Depends(get_auth_resolver),
) -> AuthResult:
    """401 unless the request carries a valid, unrevoked access token."""
    return _remember(request, await resolver.resolve(extract_access_token(request)))


def require_role(*roles: str) -> Callable:
    """`require_auth`, then 403 "Access denied: Insufficient permissions" unless role ∈ roles."""

    async def dependency(
        request: Request,
        resolver: AuthResolver = Depends(get_auth_resolver),
    ) -> AuthResult:
        result = _remember(request, await resolver.resolve(extract_access_token(request)))
        return resolver.authorize(result, roles)

    return dependency


# ── Services ──────────────────────────────────────────────────────────────

async def get_auth_service(
    request: Request,
    db: AsyncSession = Depends(get_db_session),
) -> AuthService:
    state = request.app.state
    return AuthService(
        db=db,
        credentials=state.credentials,
        hasher=state.password_hasher,
        mailer=state.mailer,
        providers=state.social_providers,
    )
