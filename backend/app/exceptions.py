"""
Ariya Backend — Custom Exception Hierarchy
============================================

What:  Closed set of application errors, each bound to one HTTP status.
Why:   Services raise a typed error; the global handlers in main.py turn it
       into the standard envelope. Routes never branch on message strings.
How:   Each exception carries a user-facing message, an optional `errors`
       payload (field-level detail that IS returned to the client) and an
       optional `context` dict (debug detail that is only logged).
Who:   Raised by services, dependencies and validators; caught by handlers.

Exception Hierarchy:
    AriyaError (base)                → 500
    ├── ValidationError              → 400 Bad Request
    ├── UnauthenticatedError         → 401 Unauthorized
    ├── ForbiddenError               → 403 Forbidden
    ├── NotFoundError                → 404 Not Found
    ├── ConflictError                → 409 Conflict
    ├── RateLimitExceededError       → 429 Too Many Requests
    ├── InternalError                → 500 Internal Server Error
    └── DatabaseError                → 500 Internal Server Error
"""

from typing import Any, Dict, List, Optional, Union

ErrorDetail = Union[List[str], Dict[str, str], None]


class AriyaError(Exception):
    """
    Base exception for all Ariya application errors.

    Attributes:
        message:  User-facing error description (safe to return in API response)
        errors:   Optional structured detail returned alongside the message
        context:  Additional debug info (logged but NOT returned to client)
    """

    status_code: int = 500
    code: str = "internal_error"
    default_message: str = "An unexpected error occurred"

    def __init__(
        self,
        message: Optional[str] = None,
        errors: ErrorDetail = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message or self.default_message
        self.errors = errors
        self.context = context or {}
        super().__init__(self.message)

    @property
    def headers(self) -> Dict[str, str]:
        """Extra response headers the error requires."""
        return {}


class ValidationError(AriyaError):
    """
    Raised when client input fails validation.

    `errors` is either a list of messages (rule-table validation) or a
    mapping of field path to message (schema validation).
    """

    status_code = 400
    code = "validation_error"
    default_message = "Validation failed"


class UnauthenticatedError(AriyaError):
    """Missing, malformed, expired or revoked credential."""

    status_code = 401
    code = "unauthenticated"
    default_message = "Authentication required"


class ForbiddenError(AriyaError):
    """Authenticated principal may not perform the operation."""

    status_code = 403
    code = "forbidden"
    default_message = "Access denied: Insufficient permissions"


class NotFoundError(AriyaError):
    status_code = 404
    code = "not_found"
    default_message = "The requested resource was not found"

    def __init__(
        self,
        resource: str = "resource",
        resource_id: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = f"The requested {resource} was not found"
        if resource_id:
            message = f"{resource} with ID '{resource_id}' was not found"
        ctx = context or {}
        ctx["resource"] = resource
        if resource_id:
            ctx["resource_id"] = resource_id
        super().__init__(message=message, context=ctx)


class ConflictError(AriyaError):
    """Unique resource already exists (duplicate email, linked account...)."""

    status_code = 409
    code = "conflict"
    default_message = "Resource already exists"


class RateLimitExceededError(AriyaError):
    """
    Raised when a client exceeds its rate limit for a category.

    Carries enough state to rebuild the `Retry-After` and `X-RateLimit-*`
    headers on the 429 response.
    """

    status_code = 429
    code = "rate_limit_exceeded"
    default_message = "Too many requests. Please slow down."

    def __init__(
        self,
        message: Optional[str] = None,
        retry_after: int = 60,
        limit: int = 0,
        category: str = "default",
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        ctx.update({"category": category, "retry_after": retry_after})
        super().__init__(message=message, context=ctx)
        self.retry_after = max(1, int(retry_after))
        self.limit = limit
        self.category = category

    @property
    def headers(self) -> Dict[str, str]:
        return {
            "Retry-After": str(self.retry_after),
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": "0",
            "X-RateLimit-Reset": str(self.retry_after),
        }


class InternalError(AriyaError):
    """Unclassified failure. `from_exception` wraps unknown exceptions in it."""

    status_code = 500
    code = "internal_error"


class DatabaseError(AriyaError):
    """
    Raised when database operations fail.

    The response always uses the generic message; `context` holds the
    operation name and driver error for the logs.
    """

    status_code = 500
    code = "database_error"
    default_message = "An unexpected error occurred"
