"""
Ariya Backend — Health Check Route
====================================

What:  Liveness/readiness probe for load balancers and uptime monitors.
How:   Pings the database and reports the result with the service version,
       region and uptime.

Status levels:
    - healthy:   database reachable (HTTP 200)
    - unhealthy: database unreachable (HTTP 503, stop routing traffic)

Not rate limited, and kept out of the access log by RequestLoggingMiddleware.
"""

import time

from fastapi import APIRouter
from starlette.responses import JSONResponse

from app import __version__
from app.config import settings
from app.database import check_database
from app.schemas.common import HealthResponse

router = APIRouter(tags=["Health"])

_start_time = time.time()


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Service health check",
    responses={503: {"model": HealthResponse, "description": "Database unreachable"}},
)
async def health_check() -> JSONResponse:
    healthy = await check_database()
    body = HealthResponse(
        status="healthy" if healthy else "unhealthy",
        version=__version__,
        database="connected" if healthy else "disconnected",
        region=settings.region,
        uptime_seconds=round(time.time() - _start_time, 2),
    )
    return JSONResponse(status_code=200 if healthy else 503, content=body.model_dump())
