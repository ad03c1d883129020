"""
ApiCommons — Health Check Route
================================

What:  Liveness/readiness check for load balancers and monitoring.
How:   Runs SELECT 1 through the app's Database and reports the result in
       an ApiResponse envelope: 200 when healthy, a 503 failure envelope
       when the database cannot be reached.
"""

import logging
import time

from fastapi import APIRouter, Request
from sqlalchemy import text
from starlette.responses import JSONResponse

from apicommons import __version__
from apicommons.schemas.health import HealthStatus
from apicommons.schemas.response import ApiResponse, envelope_response

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])

_start_time = time.time()


@router.get("/health", summary="Service health check")
async def health_check(request: Request) -> JSONResponse:
    database = request.app.state.database
    registry = request.app.state.registry

    db_status = "connected"
    try:
        async with database.engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except Exception as e:
        db_status = "disconnected"
        logger.warning("Health check: database unreachable: %s", str(e))

    health = HealthStatus(
        status="healthy" if db_status == "connected" else "unhealthy",
        version=__version__,
        database=db_status,
        transactional_endpoints=len(registry),
        uptime_seconds=round(time.time() - _start_time, 2),
    )
    if db_status != "connected":
        return envelope_response(ApiResponse.fail(503, "Database is unreachable", health))
    return envelope_response(ApiResponse.from_value(health))
