"""Booking router for booking lifecycle operations."""

import logging
from datetime import date
from typing import Any, Awaitable, Callable, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.database import get_db
from ..core.dependencies import Actor, get_current_user, get_idempotency_key, require_payment_gateway
from ..core.exceptions import ProblemDetailsException
from ..schemas.booking import (
    Booking,
    BookingList,
    CancelBookingRequest,
    CancellationResult,
    ConfirmPaymentRequest,
    CreateBookingRequest,
)
from ..schemas.problem import Problem
from ..services.booking_service import BookingService
from ..services.cancellation_service import CancellationService
from ..services.idempotency_service import IdempotencyService

logger = logging.getLogger(__name__)

PROBLEM_RESPONSES = {
    401: {"model": Problem, "description": "Missing or invalid bearer token"},
    403: {"model": Problem, "description": "Caller may not act on this booking"},
    404: {"model": Problem, "description": "Booking not found"},
    409: {"model": Problem, "description": "Booking is not in a status that allows the operation"},
    422: {"model": Problem, "description": "Request validation failed"},
}

router = APIRouter(prefix="/bookings", tags=["bookings"], responses=PROBLEM_RESPONSES)

# Define dependencies to avoid B008 linting errors
DB_DEPENDENCY = Depends(get_db)
ACTOR_DEPENDENCY = Depends(get_current_user)
PAYMENT_GATEWAY_DEPENDENCY = Depends(require_payment_gateway)
IDEMPOTENCY_KEY_DEPENDENCY = Depends(get_idempotency_key)


def _convert_booking_to_schema(booking_model) -> Booking:
    """Convert booking model to schema."""
    return Booking(
        id=str(booking_model.id),
        user_id=str(booking_model.user_id) if booking_model.user_id else None,
        hotel_id=str(booking_model.hotel_id),
        room_id=str(booking_model.room_id),
        check_in=booking_model.check_in,
        check_out=booking_model.check_out,
        guest_name=booking_model.guest_name,
        guest_phone=booking_model.guest_phone,
        guest_count=booking_model.guest_count,
        status=booking_model.status,
        payment_status=booking_model.payment_status,
        booking_fee_status=booking_model.booking_fee_status,
        total_amount=booking_model.total_amount,
        booking_fee=booking_model.booking_fee,
        expires_at=booking_model.expires_at,
        cancellation_reason=booking_model.cancellation_reason,
        cancelled_at=booking_model.cancelled_at,
        created_at=booking_model.created_at,
        updated_at=booking_model.updated_at,
    )


async def _handle_idempotent_operation(
    operation: str,
    actor: Actor,
    idempotency_key: Optional[str],
    request_body: dict[str, Any],
    operation_func: Callable[[], Awaitable[dict[str, Any]]],
    db: AsyncSession,
) -> JSONResponse:
    """Run an operation, replaying the stored response when the key was seen before."""
    if not idempotency_key:
        return JSONResponse(status_code=status.HTTP_200_OK, content=await operation_func())

    idempotency_service = IdempotencyService(db)
    actor_id = str(actor.user_id)

    cached_response = await idempotency_service.check_idempotency(
        idempotency_key=idempotency_key,
        operation=operation,
        request_body=request_body,
        actor_id=actor_id,
    )
    if cached_response:
        status_code, response_body = cached_response
        return JSONResponse(status_code=status_code, content=response_body)

    try:
        response_body = await operation_func()
    except ProblemDetailsException as e:
        # Retryable failures must not be replayed to the next attempt
        if not e.problem_details.get("retryable"):
            await idempotency_service.store_response(
                idempotency_key=idempotency_key,
                operation=operation,
                request_body=request_body,
                status_code=e.status_code,
                response_body=e.problem_details,
                actor_id=actor_id,
            )
        raise

    await idempotency_service.store_response(
        idempotency_key=idempotency_key,
        operation=operation,
        request_body=request_body,
        status_code=status.HTTP_200_OK,
        response_body=response_body,
        actor_id=actor_id,
    )
    return JSONResponse(status_code=status.HTTP_200_OK, content=response_body)


@router.get("", response_model=BookingList)
async def list_bookings(
    hotel_id: Optional[UUID] = Query(None, description="Only bookings of this hotel"),
    on_date: Optional[date] = Query(None, alias="date", description="Only stays starting or ending on this date"),
    db: AsyncSession = DB_DEPENDENCY,
    actor: Actor = ACTOR_DEPENDENCY,
) -> BookingList:
    """
    List bookings.

    Guests receive their own bookings; hotel staff may filter by hotel and date.
    """
    bookings = await BookingService(db).list_bookings(actor, hotel_id=hotel_id, on_date=on_date)
    items = [_convert_booking_to_schema(booking) for booking in bookings]
    return BookingList(items=items, count=len(items))


@router.post("", response_model=Booking, status_code=status.HTTP_201_CREATED)
async def create_booking(
    request: CreateBookingRequest,
    db: AsyncSession = DB_DEPENDENCY,
    actor: Actor = ACTOR_DEPENDENCY,
) -> Booking:
    """Create a pending booking held for the payment window."""
    booking = await BookingService(db).create_booking(request, actor)
    return _convert_booking_to_schema(booking)


@router.get("/{booking_id}", response_model=Booking)
async def get_booking(
    booking_id: UUID,
    db: AsyncSession = DB_DEPENDENCY,
    actor: Actor = ACTOR_DEPENDENCY,
) -> Booking:
    """Get one booking."""
    booking = await BookingService(db).get_booking(booking_id, actor)
    return _convert_booking_to_schema(booking)


@router.delete("/{booking_id}", response_model=CancellationResult)
async def cancel_booking(
    booking_id: UUID,
    request: CancelBookingRequest,
    db: AsyncSession = DB_DEPENDENCY,
    actor: Actor = ACTOR_DEPENDENCY,
) -> CancellationResult:
    """
    Cancel a booking.

    The refund, if any, is credited to the owner's wallet in the same
    transaction as the status change.
    """
    return await CancellationService(db).cancel(booking_id, actor, request.reason)


@router.post("/{booking_id}/confirm-payment", response_model=Booking)
async def confirm_payment(
    booking_id: UUID,
    request: ConfirmPaymentRequest,
    db: AsyncSession = DB_DEPENDENCY,
    actor: Actor = PAYMENT_GATEWAY_DEPENDENCY,
    idempotency_key: Optional[str] = IDEMPOTENCY_KEY_DEPENDENCY,
) -> JSONResponse:
    """
    Record a captured payment and confirm the booking.

    Called by the payment gateway once it has executed the payment.
    """
    booking_service = BookingService(db)

    async def operation():
        booking = await booking_service.confirm_payment(
            booking_id,
            request.amount_paid,
            request.payment_method,
            request.payment_reference,
        )
        return _convert_booking_to_schema(booking).model_dump(mode="json")

    return await _handle_idempotent_operation(
        operation=f"bookings/{booking_id}/confirm-payment",
        actor=actor,
        idempotency_key=idempotency_key,
        request_body=request.model_dump(mode="json"),
        operation_func=operation,
        db=db,
    )


@router.post("/{booking_id}/check-in", response_model=Booking)
async def check_in(
    booking_id: UUID,
    db: AsyncSession = DB_DEPENDENCY,
    actor: Actor = ACTOR_DEPENDENCY,
    idempotency_key: Optional[str] = IDEMPOTENCY_KEY_DEPENDENCY,
) -> JSONResponse:
    """
    Check a guest in.

    This operation is idempotent based on the Idempotency-Key header.
    """
    booking_service = BookingService(db)

    async def operation():
        booking = await booking_service.check_in(booking_id, actor)
        return _convert_booking_to_schema(booking).model_dump(mode="json")

    return await _handle_idempotent_operation(
        operation=f"bookings/{booking_id}/check-in",
        actor=actor,
        idempotency_key=idempotency_key,
        request_body={"booking_id": str(booking_id)},
        operation_func=operation,
        db=db,
    )


@router.post("/{booking_id}/check-out", response_model=Booking)
async def check_out(
    booking_id: UUID,
    db: AsyncSession = DB_DEPENDENCY,
    actor: Actor = ACTOR_DEPENDENCY,
    idempotency_key: Optional[str] = IDEMPOTENCY_KEY_DEPENDENCY,
) -> JSONResponse:
    """
    Check a guest out.

    This operation is idempotent based on the Idempotency-Key header.
    """
    booking_service = BookingService(db)

    async def operation():
        booking = await booking_service.check_out(booking_id, actor)
        return _convert_booking_to_schema(booking).model_dump(mode="json")

    return await _handle_idempotent_operation(
        operation=f"bookings/{booking_id}/check-out",
        actor=actor,
        idempotency_key=idempotency_key,
        request_body={"booking_id": str(booking_id)},
        operation_func=operation,
        db=db,
    )


@router.post("/{booking_id}/no-show", response_model=Booking)
async def mark_no_show(
    booking_id: UUID,
    db: AsyncSession = DB_DEPENDENCY,
    actor: Actor = ACTOR_DEPENDENCY,
) -> Booking:
    """Cancel a confirmed booking whose guest never arrived."""
    booking = await BookingService(db).mark_no_show(booking_id, actor)
    return _convert_booking_to_schema(booking)
