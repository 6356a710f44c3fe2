"""Booking-related Pydantic schemas."""

from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field, field_serializer, model_validator

from ..domain.status import BookingFeeStatus, BookingStatus, PaymentStatus


class CreateBookingRequest(BaseModel):
    """Request schema for creating a booking."""

    hotel_id: str = Field(..., description="Hotel the room belongs to")
    room_id: str = Field(..., description="Room to reserve")
    check_in: date = Field(..., description="Arrival date")
    check_out: date = Field(..., description="Departure date")
    guest_name: str = Field(..., min_length=1, max_length=255, description="Lead guest name")
    guest_phone: str = Field(..., min_length=1, max_length=32, description="Lead guest phone")
    guest_count: int = Field(1, ge=1, le=20, description="Number of guests")
    total_amount: Decimal = Field(..., ge=0, max_digits=10, decimal_places=2, description="Total price of the stay")

    @model_validator(mode="after")
    def check_dates(self) -> "CreateBookingRequest":
        """Reject stays that end before they start."""
        if self.check_out <= self.check_in:
            raise ValueError("check_out must be after check_in")
        return self


class CancelBookingRequest(BaseModel):
    """Request schema for cancelling a booking."""

    reason: str = Field(..., min_length=1, max_length=500, description="Why the guest is cancelling")


class ConfirmPaymentRequest(BaseModel):
    """Request schema for recording a captured payment."""

    amount_paid: Decimal = Field(..., gt=0, max_digits=10, decimal_places=2, description="Amount the gateway captured")
    payment_method: str = Field(..., min_length=1, max_length=32, description="Gateway name, e.g. BKASH or STRIPE")
    payment_reference: Optional[str] = Field(None, max_length=128, description="Gateway transaction reference")


class Booking(BaseModel):
    """Booking response schema."""

    id: str = Field(..., description="Unique booking ID")
    user_id: Optional[str] = Field(None, description="Owning user, absent for guest bookings")
    hotel_id: str = Field(..., description="Hotel ID")
    room_id: str = Field(..., description="Room ID")
    check_in: date = Field(..., description="Arrival date")
    check_out: date = Field(..., description="Departure date")
    guest_name: str = Field(..., description="Lead guest name")
    guest_phone: str = Field(..., description="Lead guest phone")
    guest_count: int = Field(..., ge=1, description="Number of guests")
    status: BookingStatus = Field(..., description="Booking status")
    payment_status: PaymentStatus = Field(..., description="Payment status")
    booking_fee_status: BookingFeeStatus = Field(..., description="Booking fee status")
    total_amount: Decimal = Field(..., description="Total price of the stay")
    booking_fee: Decimal = Field(..., description="Advance required to hold the room")
    expires_at: Optional[datetime] = Field(None, description="Payment hold deadline (ISO 8601)")
    cancellation_reason: Optional[str] = Field(None, description="Why the booking was cancelled")
    cancelled_at: Optional[datetime] = Field(None, description="When the booking was cancelled")
    created_at: datetime = Field(..., description="Booking creation time (ISO 8601)")
    updated_at: datetime = Field(..., description="Last modification time (ISO 8601)")

    model_config = {"from_attributes": True}

    @field_serializer("total_amount", "booking_fee")
    def serialize_money(self, value: Decimal) -> float:
        """Amounts travel as JSON numbers."""
        return float(value)


class BookingList(BaseModel):
    """List of bookings."""

    items: list[Booking] = Field(default_factory=list, description="Bookings")
    count: int = Field(..., ge=0, description="Number of bookings returned")


class CancellationResult(BaseModel):
    """Outcome of a successful cancellation."""

    success: bool = Field(True, description="Always true for a completed cancellation")
    booking_id: str = Field(..., description="Cancelled booking")
    refund_amount: Decimal = Field(..., ge=0, description="Amount credited to the wallet")
    is_late: bool = Field(..., description="Whether the cancellation fell inside the late window")
    message: str = Field(..., description="Human-readable summary for the guest")

    @field_serializer("refund_amount")
    def serialize_money(self, value: Decimal) -> float:
        """Amounts travel as JSON numbers."""
        return float(value)
