"""
Ariya Backend — Shared API Schemas
====================================

What:  Envelope, pagination and health models shared by every router.
Why:   The envelope is built by app/responses.py at runtime; these models
       document the same shapes in the OpenAPI schema.
"""

from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Accepts and emits camelCase keys (the client contract) with snake_case attributes."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_json(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json", exclude_none=True)


# ══════════════════════════════════════════════════════════════════════════
# Envelope
# ══════════════════════════════════════════════════════════════════════════


class SuccessResponse(BaseModel):
    success: bool = Field(default=True)
    message: str = Field(description="Human-readable outcome")
    data: Optional[Any] = Field(default=None, description="Operation payload")


class ErrorResponse(BaseModel):
    """
    Example:
        {
            "success": false,
            "message": "Validation failed",
            "errors": {"email": "Invalid email format"}
        }
    """
    success: bool = Field(default=False)
    message: str = Field(description="Human-readable error description")
    errors: Optional[Union[List[str], Dict[str, str]]] = Field(
        default=None, description="Per-field validation detail"
    )


SUCCESS_RESPONSE = {200: {"model": SuccessResponse, "description": "Success envelope"}}

ERROR_RESPONSES = {
    400: {"model": ErrorResponse, "description": "Validation failed"},
    401: {"model": ErrorResponse, "description": "Authentication required"},
    403: {"model": ErrorResponse, "description": "Forbidden"},
    429: {"model": ErrorResponse, "description": "Rate limit exceeded"},
}


# ══════════════════════════════════════════════════════════════════════════
# Pagination
# ══════════════════════════════════════════════════════════════════════════


class PaginationParams(BaseModel):
    """
    Validated `page` / `limit` query parameters.

    page:  1-based page number (default 1)
    limit: items per page, 1..100 (default 10)
    """
    page: int = Field(default=1, ge=1)
    limit: int = Field(default=10, ge=1, le=100)

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


class PaginationMeta(BaseModel):
    page: int
    limit: int
    total: int
    pages: int


class PaginatedResponse(SuccessResponse):
    pagination: PaginationMeta


PAGINATED_RESPONSE = {200: {"model": PaginatedResponse, "description": "Paginated envelope"}}


# ══════════════════════════════════════════════════════════════════════════
# Health
# ══════════════════════════════════════════════════════════════════════════


class HealthResponse(BaseModel):
    status: str = Field(description="Overall service status: healthy, unhealthy")
    version: str = Field(description="Application version")
    database: str = Field(description="Database connectivity: connected, disconnected")
    region: str = Field(description="Deployment region")
    uptime_seconds: float = Field(description="Seconds since service started")
