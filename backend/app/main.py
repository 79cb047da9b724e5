"""
Ariya Backend — FastAPI Application Factory
=============================================

What:  Creates and configures the FastAPI application instance.
Why:   Centralizes middleware registration, shared collaborators, exception
       handlers, route mounting and lifecycle management in one place.
How:   Factory pattern: create_app() returns a configured FastAPI instance.
Who:   Called by uvicorn (uvicorn app.main:app) and by the test suite, which
       builds a fresh app per test.

Application Architecture:
    ┌──────────────────────────────────────────────────────────────┐
    │                         FastAPI App                          │
    │                                                              │
    │  Middleware (outermost first):                               │
    │   CORS → GZip → /api rewrite → Request context → Logging     │
    │        → Regional headers → Rate limit headers               │
    │                                                              │
    │  Route dependencies (declaration order):                     │
    │   rate_limit → validate → require_auth/role → service        │
    │                                                              │
    │  Routes:                                                     │
    │   /api/v1/auth/*   /api/v1/profile   /api/v1/moderation/*    │
    │   /health                                                    │
    │                                                              │
    │  Exception Handlers:                                         │
    │   AriyaError → own status │ validation → 400 │ other → 500   │
    └──────────────────────────────────────────────────────────────┘

Lifecycle:
    Startup:
    1. Initialize logging
    2. Validate production configuration (fail fast on default secrets)
    3. Log startup complete

    Shutdown:
    1. Dispose database engine (close all connections)
    2. Log shutdown complete
"""

import logging
import sys
from contextlib import asynccontextmanager
from http import HTTPStatus
from typing import AsyncGenerator, Mapping, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException

from app import __version__, responses
from app.config import settings
from app.database import dispose_engine
from app.exceptions import AriyaError
from app.middleware.gateway import ApiVersionRewriteMiddleware, RegionalHeadersMiddleware
from app.middleware.logging import RequestLoggingMiddleware
from app.middleware.rate_limit import RateLimitHeadersMiddleware
from app.middleware.request_id import RequestIDMiddleware
from app.routes import auth, health, moderation, profile
from app.services.auth_service import build_password_hasher
from app.services.credentials import CredentialStore, JWTCredentialStore
from app.services.mail import LoggingMailSender, MailSender
from app.services.rate_limiter import RateLimiter
from app.services.social import SocialIdentityProvider, default_providers

logger = logging.getLogger(__name__)

CORS_ALLOWED_HEADERS = [
    "Content-Type",
    "Authorization",
    "X-Requested-With",
    "Accept",
    "Origin",
    "X-Request-ID",
    "X-Country-Code",
]
CORS_EXPOSED_HEADERS = [
    "X-Request-ID",
    "Retry-After",
    "X-RateLimit-Limit",
    "X-RateLimit-Remaining",
    "X-RateLimit-Reset",
]


# ══════════════════════════════════════════════════════════════════════════
# Logging Configuration
# ══════════════════════════════════════════════════════════════════════════

def setup_logging() -> None:
    """
    Configure logging for the entire application.

    Access, error and security entries carry their structured fields via
    `extra=`; the line format stays human-readable for local development.
    """
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True,
    )

    # Third-party libraries log every operation at DEBUG/INFO
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)


# ══════════════════════════════════════════════════════════════════════════
# Application Lifespan (Startup & Shutdown)
# ══════════════════════════════════════════════════════════════════════════

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    setup_logging()
    logger.info("=" * 60)
    logger.info("%s starting up (environment=%s, region=%s)", settings.app_name, settings.environment, settings.region)

    # Raises in production so the process never serves with dev secrets
    settings.validate_required_for_production()

    logger.info("Server ready at http://%s:%d", settings.backend_host, settings.backend_port)
    logger.info("=" * 60)

    yield

    logger.info("%s shutting down...", settings.app_name)
    await dispose_engine()
    logger.info("Shutdown complete.")


# ══════════════════════════════════════════════════════════════════════════
# Exception Handlers
# ══════════════════════════════════════════════════════════════════════════

def _context(request: Request):
    return getattr(request.state, "context", None) or request.url.path


def register_exception_handlers(app: FastAPI) -> None:
    """
    Register global exception handlers for consistent error envelopes.

    Handler hierarchy:
        AriyaError subclasses   → their own status (400/401/403/404/409/429/500)
        RequestValidationError  → 400 "Validation failed" with field detail
        HTTPException           → its status (unknown routes, wrong methods)
        Exception (fallback)    → 500 "An unexpected error occurred"

    Internal details (stack traces, SQL) are logged server-side and never
    returned unless DEBUG is on.
    """

    @app.exception_handler(AriyaError)
    async def handle_ariya_error(request: Request, exc: AriyaError):
        return responses.from_exception(exc, _context(request))

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(request: Request, exc: RequestValidationError):
        detail = {}
        for err in exc.errors():
            path = ".".join(str(part) for part in err.get("loc", ()) if part not in ("body", "query", "path"))
            detail.setdefault(path or "__root__", err.get("msg", "Invalid value"))
        return responses.error("Validation failed", 400, detail)

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_exception(request: Request, exc: StarletteHTTPException):
        message = exc.detail if isinstance(exc.detail, str) else None
        headers: Optional[Mapping[str, str]] = getattr(exc, "headers", None)
        return responses.error(
            message or HTTPStatus(exc.status_code).phrase,
            exc.status_code,
            headers=headers,
        )

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception):
        return responses.from_exception(exc, _context(request))


# ══════════════════════════════════════════════════════════════════════════
# Application Factory
# ══════════════════════════════════════════════════════════════════════════

def create_app(
    rate_limiter: Optional[RateLimiter] = None,
    credentials: Optional[CredentialStore] = None,
    mailer: Optional[MailSender] = None,
    social_providers: Optional[Mapping[str, SocialIdentityProvider]] = None,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Every collaborator can be injected; the defaults come from `settings`.
    Each app owns its rate limiter, so separate apps never share counters.
    """
    app = FastAPI(
        title="Ariya API",
        description=(
            "Event marketplace backend: authentication, profiles and moderation "
            "behind a shared rate-limit, validation and auth pipeline."
        ),
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    app.state.rate_limiter = rate_limiter or RateLimiter.from_settings(settings)
    app.state.credentials = credentials or JWTCredentialStore.from_settings(settings)
    app.state.password_hasher = build_password_hasher(settings)
    app.state.mailer = mailer or LoggingMailSender()
    app.state.social_providers = (
        dict(social_providers) if social_providers is not None else default_providers(settings)
    )

    # ── Register Middleware ───────────────────────────────────────────────
    # Middleware executes in REVERSE order of addition (last added = outermost).
    app.add_middleware(RateLimitHeadersMiddleware)
    app.add_middleware(RegionalHeadersMiddleware)
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(RequestIDMiddleware)
    # Rewrite before the request context is built so logs show the routed path
    app.add_middleware(ApiVersionRewriteMiddleware)
    app.add_middleware(GZipMiddleware, minimum_size=500)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=CORS_ALLOWED_HEADERS,
        expose_headers=CORS_EXPOSED_HEADERS,
        max_age=86400,
    )

    register_exception_handlers(app)

    app.include_router(auth.router)
    app.include_router(profile.router)
    app.include_router(moderation.router)
    app.include_router(health.router)

    return app


app = create_app()
