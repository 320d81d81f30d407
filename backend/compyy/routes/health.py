"""
Compyy Backend — Health Check Route
=====================================

What:  Health check endpoint for monitoring and load balancer probes.
How:   Checks the database and reports the email provider state.
Who:   Called by Docker health checks, load balancers and monitoring.

Status levels:
    - healthy:   database reachable, email deliverable (HTTP 200)
    - degraded:  email circuit open or email only logged (HTTP 200)
    - unhealthy: database unreachable (HTTP 503)
"""

import logging
import time

from fastapi import APIRouter, Response
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from compyy import __version__
from compyy.database import engine
from compyy.schemas.common import HealthResponse
from compyy.services.mail_service import mail_service

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])

_start_time = time.time()


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Service health check",
    responses={503: {"description": "Database unreachable", "model": HealthResponse}},
)
async def health_check(response: Response) -> HealthResponse:
    db_status = "connected"
    overall = "healthy"

    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except (SQLAlchemyError, OSError) as e:
        db_status = "disconnected"
        overall = "unhealthy"
        logger.warning("Health check: database unreachable: %s", str(e))

    email_status = await mail_service.health_check()
    if email_status != "available" and overall == "healthy":
        overall = "degraded"

    if overall == "unhealthy":
        response.status_code = 503

    return HealthResponse(
        status=overall,
        version=__version__,
        database=db_status,
        email=email_status,
        uptime_seconds=round(time.time() - _start_time, 2),
    )
