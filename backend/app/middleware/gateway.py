"""
Ariya Backend — Gateway Middleware
====================================

What:  Edge concerns applied before routing:
       - ApiVersionRewriteMiddleware: `/api/<x>` → `/api/v1/<x>`, so clients
         pinned to the unversioned prefix reach the current API.
       - RegionalHeadersMiddleware: stamps X-Country-Code, X-Region,
         X-Currency-Code and X-Timezone on every `/api` response.
Why:   The frontend renders prices and dates from these headers without an
       extra settings round-trip.
How:   The rewrite mutates the ASGI scope path before the router sees it.
       The country comes from the X-Country-Code header, then the
       `?country=` query parameter, then the configured default.

Paths already under `/api/v1/` and anything under `/api/auth/` (reserved
for identity-provider callbacks) are never rewritten.
"""

import logging
from dataclasses import dataclass
from typing import Dict

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from app.config import settings

logger = logging.getLogger(__name__)

API_PREFIX = "/api/"
CURRENT_VERSION_PREFIX = "/api/v1/"
UNVERSIONED_PREFIXES = ("/api/v1/", "/api/auth/")


@dataclass(frozen=True)
class RegionalSettings:
    currency: str
    timezone: str
    locale: str


REGIONAL_SETTINGS: Dict[str, RegionalSettings] = {
    "US": RegionalSettings("USD", "America/New_York", "en-US"),
    "NG": RegionalSettings("NGN", "Africa/Lagos", "en-NG"),
    "GB": RegionalSettings("GBP", "Europe/London", "en-GB"),
    "DE": RegionalSettings("EUR", "Europe/Berlin", "de-DE"),
    "JP": RegionalSettings("JPY", "Asia/Tokyo", "ja-JP"),
    "IN": RegionalSettings("INR", "Asia/Kolkata", "en-IN"),
    "FR": RegionalSettings("EUR", "Europe/Paris", "fr-FR"),
    "CA": RegionalSettings("CAD", "America/Toronto", "en-CA"),
    "AU": RegionalSettings("AUD", "Australia/Sydney", "en-AU"),
}


def regional_settings(country: str) -> RegionalSettings:
    """Settings for an ISO 3166-1 alpha-2 code; configured defaults when unknown."""
    found = REGIONAL_SETTINGS.get(country.upper())
    if found is not None:
        return found
    return RegionalSettings(settings.default_currency, settings.default_timezone, "en-US")


def rewrite_api_path(path: str) -> str:
    if path.startswith(API_PREFIX) and not path.startswith(UNVERSIONED_PREFIXES):
        return CURRENT_VERSION_PREFIX + path[len(API_PREFIX):]
    return path


def detect_country(request: Request) -> str:
    country = (
        request.headers.get("X-Country-Code")
        or request.query_params.get("country")
        or settings.default_country
    )
    return country.strip().upper()[:2] or settings.default_country


class ApiVersionRewriteMiddleware(BaseHTTPMiddleware):
    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        path = request.scope["path"]
        rewritten = rewrite_api_path(path)
        if rewritten != path:
            logger.debug("Rewriting %s -> %s", path, rewritten)
            request.scope["path"] = rewritten
            request.scope["raw_path"] = rewritten.encode("utf-8")
        return await call_next(request)


class RegionalHeadersMiddleware(BaseHTTPMiddleware):
    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        response = await call_next(request)
        if request.url.path.startswith("/api"):
            country = detect_country(request)
            region = regional_settings(country)
            response.headers["X-Country-Code"] = country
            response.headers["X-Region"] = settings.region
            response.headers["X-Currency-Code"] = region.currency
            response.headers["X-Timezone"] = region.timezone
        return response
