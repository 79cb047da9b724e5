"""
Ariya Backend — Response Formatter
====================================

What:  Builds the uniform JSON envelope every endpoint returns.
Why:   Clients branch on `success` and read `message` / `data` / `errors`
       without caring which handler produced the response.
How:   Thin helpers around Starlette's JSONResponse, plus `from_exception`
       which maps any raised error to an envelope.

Envelope shapes:
    success:   {"success": true,  "message": str, "data": any}
    paginated: {"success": true,  "message": str, "data": [...],
                "pagination": {"page", "limit", "total", "pages"}}
    error:     {"success": false, "message": str, "errors": [...] | {...}}

`success` always agrees with the status code: 2xx helpers refuse error
statuses and `error()` refuses anything below 400.
"""

import math
from typing import Any, Dict, Mapping, Optional, Sequence, Union

from fastapi.encoders import jsonable_encoder
from pydantic import ValidationError as PydanticValidationError
from starlette.responses import JSONResponse

from app.config import settings
from app.exceptions import AriyaError, ErrorDetail, InternalError
from app.middleware.logging import log_error
from app.middleware.request_id import RequestContext

GENERIC_ERROR_MESSAGE = InternalError.default_message

_BASE_HEADERS = {"Cache-Control": "no-store"}


def _headers(extra: Optional[Mapping[str, str]]) -> Dict[str, str]:
    headers = dict(_BASE_HEADERS)
    if extra:
        headers.update(extra)
    return headers


def success(
    data: Any = None,
    message: str = "Success",
    status_code: int = 200,
    headers: Optional[Mapping[str, str]] = None,
) -> JSONResponse:
    if not 200 <= status_code < 300:
        raise ValueError(f"success() requires a 2xx status, got {status_code}")
    body: Dict[str, Any] = {"success": True, "message": message}
    if data is not None:
        body["data"] = jsonable_encoder(data)
    return JSONResponse(status_code=status_code, content=body, headers=_headers(headers))


def error(
    message: str,
    status_code: int = 400,
    errors: ErrorDetail = None,
    headers: Optional[Mapping[str, str]] = None,
) -> JSONResponse:
    if status_code < 400:
        raise ValueError(f"error() requires a 4xx/5xx status, got {status_code}")
    body: Dict[str, Any] = {"success": False, "message": message}
    if errors:
        body["errors"] = jsonable_encoder(errors)
    return JSONResponse(status_code=status_code, content=body, headers=_headers(headers))


def paginated(
    items: Sequence[Any],
    total: int,
    page: int,
    limit: int,
    message: str = "Success",
) -> JSONResponse:
    """Success envelope with a `pagination` block; `pages` is ceil(total / limit)."""
    pages = math.ceil(total / limit) if limit > 0 else 0
    body = {
        "success": True,
        "message": message,
        "data": jsonable_encoder(list(items)),
        "pagination": {"page": page, "limit": limit, "total": total, "pages": pages},
    }
    return JSONResponse(status_code=200, content=body, headers=_headers(None))


def pydantic_errors(exc: PydanticValidationError) -> Dict[str, str]:
    """Flattens pydantic errors into {"field.path": "message"}."""
    detail: Dict[str, str] = {}
    for err in exc.errors():
        path = ".".join(str(part) for part in err.get("loc", ()) if part not in ("body", "query"))
        message = err.get("msg", "Invalid value")
        if err.get("type") == "missing":
            message = f"{path} is required"
        elif message.startswith("Value error, "):
            message = message[len("Value error, "):]
        detail.setdefault(path or "__root__", message)
    return detail


def from_exception(
    exc: BaseException,
    context: Union[RequestContext, str, None] = None,
) -> JSONResponse:
    """
    Maps any exception to an envelope response.

    `context` is the request context or, outside a request, the name of the
    originating route or job.

    AriyaError subclasses keep their status, message, field detail and
    headers. Pydantic validation errors become 400 "Validation failed".
    Anything else is logged with the request context and reported as a
    generic 500; the original text is exposed only when DEBUG is on.
    """
    if isinstance(exc, AriyaError):
        if exc.status_code >= 500:
            _log_unexpected(context, exc)
            message = exc.message if settings.debug else GENERIC_ERROR_MESSAGE
            return error(message, exc.status_code)
        return error(exc.message, exc.status_code, exc.errors, headers=exc.headers)

    if isinstance(exc, PydanticValidationError):
        return error("Validation failed", 400, pydantic_errors(exc))

    _log_unexpected(context, exc)
    internal = InternalError(
        errors=[f"{type(exc).__name__}: {exc}"] if settings.debug else None,
        context={"error_type": type(exc).__name__},
    )
    return error(internal.message, internal.status_code, internal.errors)


def _log_unexpected(context: Union[RequestContext, str, None], exc: BaseException) -> None:
    if isinstance(context, RequestContext):
        log_error(context, exc)
    else:
        log_error(None, exc, route=context)
