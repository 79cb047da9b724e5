"""
Ariya Backend — Request Context Middleware
============================================

What:  Builds a RequestContext (correlation id, client IP, start time) for
       every request and echoes the id back in the X-Request-ID header.
Why:   Every log line emitted while serving a request carries the same id,
       so one failing request can be traced end to end.
How:   The context is stored on `request.state.context` for handlers and in
       a ContextVar for loggers deep in the service layer.
When:  Runs before access logging and before any route dependency.

Id format:
    A client-supplied X-Request-ID is reused as-is (frontend correlation).
    Otherwise `req_<epoch ms>_<16 hex chars>` is generated.
"""

import secrets
import time
from contextvars import ContextVar
from dataclasses import dataclass, field
from typing import Optional

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

# Coroutine-local storage for the current request id
request_id_var: ContextVar[str] = ContextVar("request_id", default="")

MAX_CLIENT_REQUEST_ID_LENGTH = 128


@dataclass
class RequestContext:
    """Per-request observability data. Never shared across requests."""

    request_id: str
    ip: str
    start_time: float = field(default_factory=time.perf_counter)
    method: str = ""
    path: str = ""
    user_agent: str = ""

    @property
    def elapsed_ms(self) -> float:
        return (time.perf_counter() - self.start_time) * 1000


def generate_request_id() -> str:
    return f"req_{int(time.time() * 1000)}_{secrets.token_hex(8)}"


def get_client_ip(request: Request) -> str:
    """
    Best-effort client IP.

    Order: first X-Forwarded-For entry, X-Real-IP, CF-Connecting-IP, socket
    peer, then "unknown". Headers are trusted as-is; the deployment's proxy
    is expected to overwrite them.
    """
    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        first = forwarded_for.split(",")[0].strip()
        if first:
            return first

    for header in ("X-Real-IP", "CF-Connecting-IP"):
        value = request.headers.get(header)
        if value and value.strip():
            return value.strip()

    if request.client and request.client.host:
        return request.client.host
    return "unknown"


def create_context(request: Request) -> RequestContext:
    """Build a fresh context. Two calls never share a generated id."""
    client_id = request.headers.get("X-Request-ID", "").strip()
    if client_id and len(client_id) <= MAX_CLIENT_REQUEST_ID_LENGTH:
        rid = client_id
    else:
        rid = generate_request_id()
    return RequestContext(
        request_id=rid,
        ip=get_client_ip(request),
        method=request.method,
        path=request.url.path,
        user_agent=request.headers.get("User-Agent", ""),
    )


def get_request_context(request: Request) -> RequestContext:
    """Context stored by the middleware, or a new one outside it (unit tests)."""
    context: Optional[RequestContext] = getattr(request.state, "context", None)
    if context is None:
        context = create_context(request)
        request.state.context = context
    return context


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Assigns the RequestContext and returns its id in X-Request-ID."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        context = create_context(request)
        request.state.context = context
        request.state.request_id = context.request_id
        token = request_id_var.set(context.request_id)
        try:
            response = await call_next(request)
        finally:
            request_id_var.reset(token)

        response.headers["X-Request-ID"] = context.request_id
        return response
