"""Scheduled job Pydantic schemas."""

from datetime import datetime

from pydantic import BaseModel, Field


class ExpireBookingsResponse(BaseModel):
    """Result of one expiry sweep triggered by the scheduler."""

    success: bool = Field(..., description="False only when the sweep could not run at all")
    cancelled_count: int = Field(..., ge=0, description="Bookings cancelled by this sweep")
    failed_count: int = Field(0, ge=0, description="Bookings that could not be cancelled")
    skipped_count: int = Field(0, ge=0, description="Bookings resolved by another writer first")
    timestamp: datetime = Field(..., description="Sweep reference time (ISO 8601)")
