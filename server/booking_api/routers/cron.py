"""Endpoints invoked by the external scheduler."""

import logging

from fastapi import APIRouter, Depends

from ..core.clock import utcnow
from ..core.database import async_session_factory
from ..core.dependencies import verify_cron_secret
from ..schemas.cron import ExpireBookingsResponse
from ..services.expiry_service import ExpiryService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/cron", tags=["cron"])

CRON_AUTH_DEPENDENCY = Depends(verify_cron_secret)


def get_expiry_service() -> ExpiryService:
    """Expiry service bound to the application session factory."""
    return ExpiryService(async_session_factory)


EXPIRY_SERVICE_DEPENDENCY = Depends(get_expiry_service)


@router.get("/expire-bookings", response_model=ExpireBookingsResponse)
async def expire_bookings(
    _: None = CRON_AUTH_DEPENDENCY,
    expiry_service: ExpiryService = EXPIRY_SERVICE_DEPENDENCY,
) -> ExpireBookingsResponse:
    """
    Cancel pending bookings whose payment window has lapsed.

    Safe to call repeatedly; a second call at the same time cancels nothing.
    """
    now = utcnow()
    result = await expiry_service.sweep(now)

    logger.info(
        "Scheduled expiry sweep finished",
        extra={
            "cancelled_count": result.cancelled_count,
            "failed_count": result.failed_count,
            "skipped_count": result.skipped_count,
        }
    )

    return ExpireBookingsResponse(
        success=True,
        cancelled_count=result.cancelled_count,
        failed_count=result.failed_count,
        skipped_count=result.skipped_count,
        timestamp=result.timestamp,
    )
