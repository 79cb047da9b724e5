"""
Ariya Backend — Rate Limit Headers Middleware
===============================================

What:  Adds X-RateLimit-Limit / X-RateLimit-Remaining / X-RateLimit-Reset to
       responses of rate-limited routes.
Why:   Clients can back off before they hit a 429.
How:   The counting happens in the `rate_limit(category)` route dependency
       (app/dependencies.py), which runs in the pipeline order the route
       declares. It leaves its RateLimitResult on `request.state`; this
       middleware copies it onto the outgoing response.

Rejected requests never reach here with a result: their 429 carries the
same headers plus Retry-After straight from RateLimitExceededError.
"""

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response


class RateLimitHeadersMiddleware(BaseHTTPMiddleware):
    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        response = await call_next(request)

        result = getattr(request.state, "rate_limit", None)
        if result is not None and "X-RateLimit-Limit" not in response.headers:
            response.headers["X-RateLimit-Limit"] = str(result.limit)
            response.headers["X-RateLimit-Remaining"] = str(result.remaining)
            response.headers["X-RateLimit-Reset"] = str(result.reset_after)
        return response
