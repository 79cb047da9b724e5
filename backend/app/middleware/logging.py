"""
Ariya Backend — Request Lifecycle Logging
===========================================

What:  Structured log lines for request completion, request failure and
       security events, plus the middleware that emits them.
Why:   One access line per request (with request id, status, elapsed time
       and user) is the primary operational signal; security events get a
       dedicated logger so they can be routed to a separate sink.
How:   Plain `logging` with structured fields passed through `extra=`.
When:  `log_end` after every response; `log_error` before any generic 500;
       `log_security` on rate-limit rejections, suspended-account access and
       other sensitive failures.

Logging is observability only: none of these helpers alter the response.

What we log vs what we DON'T log (privacy):
    Log: method, path, status, duration, IP, request id, user id
    Don't log: request bodies, passwords, tokens, Authorization headers
"""

import logging
import traceback
from typing import Any, Optional

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from app.config import settings
from app.middleware.request_id import RequestContext, get_request_context, request_id_var

logger = logging.getLogger("ariya.access")
error_logger = logging.getLogger("ariya.error")
security_logger = logging.getLogger("ariya.security")

# Paths too noisy to log on success
QUIET_PATHS = {"/health"}


def log_end(
    context: RequestContext,
    status_code: int,
    user_id: Optional[str] = None,
) -> None:
    """One line per completed request; level follows the status class."""
    duration_ms = round(context.elapsed_ms, 2)
    if status_code >= 500:
        level = logging.ERROR
    elif status_code >= 400:
        level = logging.WARNING
    else:
        level = logging.INFO

    logger.log(
        level,
        "%s %s %d %.1fms [%s] user=%s from %s",
        context.method,
        context.path,
        status_code,
        duration_ms,
        context.request_id,
        user_id or "-",
        context.ip,
        extra={
            "request_id": context.request_id,
            "method": context.method,
            "path": context.path,
            "status": status_code,
            "duration_ms": duration_ms,
            "client_ip": context.ip,
            "user_id": user_id,
        },
    )

    if duration_ms > settings.slow_request_ms:
        logger.warning(
            "Slow request %s %s took %.1fms [%s]",
            context.method,
            context.path,
            duration_ms,
            context.request_id,
            extra={"request_id": context.request_id, "duration_ms": duration_ms},
        )


def log_error(
    context: Optional[RequestContext],
    error: BaseException,
    route: Optional[str] = None,
) -> None:
    """Logs an unexpected failure with its traceback, request id and route name."""
    rid = context.request_id if context else request_id_var.get("")
    stack = "".join(traceback.format_exception(type(error), error, error.__traceback__))
    error_logger.error(
        "[%s] Unhandled %s in %s: %s",
        rid,
        type(error).__name__,
        route or (context.path if context else "-"),
        error,
        extra={
            "request_id": rid,
            "route": route,
            "method": context.method if context else None,
            "path": context.path if context else None,
            "client_ip": context.ip if context else None,
            "stack": stack,
        },
        exc_info=(type(error), error, error.__traceback__),
    )


def log_security(message: str, **fields: Any) -> None:
    """Security-relevant event (lockouts, rejected credentials, rate limits)."""
    fields.setdefault("request_id", request_id_var.get(""))
    details = " ".join(f"{key}={value}" for key, value in sorted(fields.items()))
    security_logger.warning("%s %s", message, details, extra={"security": fields})


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    Emits `log_end` for every request and converts unhandled exceptions into
    the generic 500 envelope after logging them.

    The user id is read from `request.state.user_id`, which the auth
    dependencies set once a principal is resolved.
    """

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        context = get_request_context(request)
        try:
            response = await call_next(request)
        except Exception as exc:
            from app.responses import from_exception

            response = from_exception(exc, context)

        if not (context.path in QUIET_PATHS and response.status_code < 400):
            log_end(context, response.status_code, getattr(request.state, "user_id", None))
        return response
