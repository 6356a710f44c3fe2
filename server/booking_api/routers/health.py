"""Health check router."""

import logging

from fastapi import APIRouter

from ..core.clock import utcnow
from ..schemas.health import HealthResponse, HealthStatus

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/health", tags=["health"])

SERVICE_VERSION = "1.0.0"


@router.api_route("/ping", methods=["GET", "POST"], response_model=HealthResponse)
async def health_ping() -> HealthResponse:
    """
    Liveness probe used by the partner app before it starts a sync.

    Returns current service status and timestamp.
    """
    response = HealthResponse(
        status=HealthStatus.HEALTHY,
        timestamp=utcnow(),
        version=SERVICE_VERSION
    )
    logger.debug("Health check requested", extra={"status": response.status})
    return response
