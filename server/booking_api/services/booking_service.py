"""Booking service for business logic operations."""

import logging
from datetime import date, datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Optional
from uuid import UUID

from sqlalchemy import case, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.clock import utcnow
from ..core.config import settings
from ..core.dependencies import Actor
from ..core.exceptions import (
    ConflictError,
    InvalidTransitionError,
    NotCancellableError,
    NotFoundError,
    UnauthorizedActorError,
)
from ..core.observability import metrics_collector
from ..domain import BookingSnapshot, apply_transition, coerce_status
from ..domain.status import BookingFeeStatus, BookingStatus, PaymentStatus
from ..models.booking import Booking
from ..models.hotel import Room
from ..models.user import User
from ..schemas.booking import CreateBookingRequest
from .booking_repository import BookingRepository
from .event_service import (
    BOOKING_CANCELLED,
    BOOKING_CHECKED_IN,
    BOOKING_CHECKED_OUT,
    BOOKING_CONFIRMED,
    BOOKING_CREATED,
    EventEmitter,
    event_emitter,
)

logger = logging.getLogger(__name__)

CENTS = Decimal("0.01")
NO_SHOW_REASON = "NO_SHOW"
NO_SHOW_TRUST_PENALTY = 15


class NoShowTooEarlyError(ConflictError):
    """Exception when a no-show is reported before the guest was due."""

    def __init__(self, booking_id: str, check_in: date):
        super().__init__(
            detail=f"Booking {booking_id} cannot be marked as no-show before its check-in date {check_in.isoformat()}",
            title="No-Show Too Early",
        )
        self.problem_details.update({
            "code": "NO_SHOW_TOO_EARLY",
            "retryable": False,
            "booking_id": booking_id,
            "check_in": check_in.isoformat(),
        })


def booking_event_payload(booking: Booking, **extra: Any) -> dict[str, Any]:
    """Event data describing a booking after a change."""
    payload = {
        "booking_id": str(booking.id),
        "user_id": str(booking.user_id) if booking.user_id else None,
        "hotel_id": str(booking.hotel_id),
        "room_id": str(booking.room_id),
        "status": coerce_status(booking.status).value,
        "check_in": booking.check_in.isoformat(),
        "check_out": booking.check_out.isoformat(),
    }
    payload.update(extra)
    return payload


class BookingService:
    """Service for booking-related operations."""

    def __init__(self, db: AsyncSession, emitter: Optional[EventEmitter] = None):
        self.db = db
        self.repository = BookingRepository(db)
        self.emitter = emitter or event_emitter

    @staticmethod
    def booking_fee_for(total_amount: Decimal) -> Decimal:
        """Advance charged to hold a room for the configured payment window."""
        fee = Decimal(total_amount) * Decimal(settings.booking_fee_percent) / Decimal(100)
        return fee.quantize(CENTS, rounding=ROUND_HALF_UP)

    async def create_booking(
        self,
        request: CreateBookingRequest,
        actor: Actor,
        now: Optional[datetime] = None,
    ) -> Booking:
        """
        Create a pending booking with a payment hold.

        Args:
            request: Booking creation request
            actor: Guest making the booking
            now: Creation time, defaults to the current UTC time

        Returns:
            Created booking entity

        Raises:
            NotFoundError: If the room does not exist in the given hotel
        """
        now = now or utcnow()
        hotel_id = UUID(request.hotel_id)
        room_id = UUID(request.room_id)

        result = await self.db.execute(
            select(Room).where(Room.id == room_id, Room.hotel_id == hotel_id)
        )
        if result.scalar_one_or_none() is None:
            logger.warning(
                "Room not found for booking",
                extra={"hotel_id": request.hotel_id, "room_id": request.room_id}
            )
            raise NotFoundError(resource_type="room", resource_id=request.room_id)

        booking = Booking(
            user_id=actor.user_id,
            hotel_id=hotel_id,
            room_id=room_id,
            check_in=request.check_in,
            check_out=request.check_out,
            guest_name=request.guest_name,
            guest_phone=request.guest_phone,
            guest_count=request.guest_count,
            status=BookingStatus.PENDING.value,
            payment_status=PaymentStatus.PENDING.value,
            booking_fee_status=BookingFeeStatus.PENDING.value,
            total_amount=request.total_amount,
            booking_fee=self.booking_fee_for(request.total_amount),
            expires_at=now + timedelta(minutes=settings.payment_hold_minutes),
            created_at=now,
            updated_at=now,
        )

        await self.repository.insert(booking)
        await self.db.commit()

        metrics_collector.record_booking_created()
        logger.info(
            "Booking created",
            extra={
                "booking_id": str(booking.id),
                "hotel_id": request.hotel_id,
                "room_id": request.room_id,
                "booking_fee": str(booking.booking_fee),
                "expires_at": booking.expires_at.isoformat(),
            }
        )

        await self.emitter.emit(
            BOOKING_CREATED,
            booking_event_payload(booking, expires_at=booking.expires_at.isoformat()),
        )
        return booking

    async def confirm_payment(
        self,
        booking_id: UUID,
        amount_paid: Decimal,
        payment_method: str,
        payment_reference: Optional[str] = None,
    ) -> Booking:
        """
        Record a captured payment and confirm the booking.

        Competes with the expiry sweeper: both write conditionally on the
        booking still being PENDING, so exactly one of them wins.

        Args:
            booking_id: Booking that was paid for
            amount_paid: Amount the gateway captured
            payment_method: Gateway name
            payment_reference: Gateway transaction reference

        Returns:
            The confirmed booking

        Raises:
            NotFoundError: If the booking does not exist
            InvalidTransitionError: If the booking was already cancelled or moved on
        """
        booking = await self.repository.find_by_id_or_raise(booking_id)
        current = coerce_status(booking.status)

        if current == BookingStatus.CONFIRMED:
            logger.info(
                "Payment already recorded - returning confirmed booking",
                extra={"booking_id": str(booking_id), "payment_reference": payment_reference}
            )
            return booking

        confirmed = apply_transition(BookingSnapshot.of(booking), BookingStatus.CONFIRMED)
        paid_in_full = Decimal(amount_paid) >= Decimal(booking.total_amount)

        patch = confirmed.as_patch()
        patch.update({
            "booking_fee_status": BookingFeeStatus.PAID.value,
            "payment_status": (PaymentStatus.PAID if paid_in_full else PaymentStatus.PAY_AT_HOTEL).value,
            "payment_method": payment_method,
            "payment_reference": payment_reference,
        })

        winner = await self._write(booking_id, current, patch, operation="confirm")
        if winner is not None:
            if coerce_status(winner.status) == BookingStatus.CONFIRMED:
                return winner
            raise InvalidTransitionError(coerce_status(winner.status).value, BookingStatus.CONFIRMED.value)

        booking = await self.repository.reload(booking_id)
        metrics_collector.record_booking_confirmed()
        metrics_collector.record_transition(current.value, BookingStatus.CONFIRMED.value)
        logger.info(
            "Booking payment confirmed",
            extra={
                "booking_id": str(booking_id),
                "amount_paid": str(amount_paid),
                "payment_method": payment_method,
                "payment_status": booking.payment_status,
            }
        )

        await self.emitter.emit(
            BOOKING_CONFIRMED,
            booking_event_payload(booking, payment_status=booking.payment_status),
        )
        return booking

    async def check_in(self, booking_id: UUID, actor: Actor) -> Booking:
        """Mark a confirmed guest as arrived."""
        return await self._staff_transition(booking_id, actor, BookingStatus.CHECKED_IN, BOOKING_CHECKED_IN)

    async def check_out(self, booking_id: UUID, actor: Actor) -> Booking:
        """Mark a checked-in guest as departed."""
        return await self._staff_transition(booking_id, actor, BookingStatus.CHECKED_OUT, BOOKING_CHECKED_OUT)

    async def mark_no_show(
        self,
        booking_id: UUID,
        actor: Actor,
        today: Optional[date] = None,
        now: Optional[datetime] = None,
    ) -> Booking:
        """
        Cancel a confirmed booking whose guest never arrived.

        No refund is granted. The guest's trust score drops and their late
        cancellation count grows in the same transaction.

        Raises:
            UnauthorizedActorError: If the actor is not hotel staff
            NotCancellableError: If the booking is not CONFIRMED
            NoShowTooEarlyError: If the check-in date has not been reached
        """
        self._require_staff(actor, booking_id)
        now = now or utcnow()
        today = today or now.date()

        booking = await self.repository.find_by_id_or_raise(booking_id)
        current = coerce_status(booking.status)
        if current != BookingStatus.CONFIRMED:
            raise NotCancellableError(
                str(booking_id),
                current.value,
                detail=f"Only confirmed bookings can be marked as no-show, booking is {current.value}",
            )
        if today < booking.check_in:
            raise NoShowTooEarlyError(str(booking_id), booking.check_in)

        cancelled = apply_transition(BookingSnapshot.of(booking), BookingStatus.CANCELLED, at=now, reason=NO_SHOW_REASON)
        guest_id = booking.user_id

        async def penalise_guest():
            if guest_id is None:
                return
            await self.db.execute(
                update(User)
                .where(User.id == guest_id)
                .values(
                    trust_score=case(
                        (User.trust_score > NO_SHOW_TRUST_PENALTY, User.trust_score - NO_SHOW_TRUST_PENALTY),
                        else_=0,
                    ),
                    late_cancellation_count=User.late_cancellation_count + 1,
                )
                .execution_options(synchronize_session=False)
            )

        winner = await self._write(booking_id, current, cancelled.as_patch(), operation="no_show", also=penalise_guest)
        if winner is not None:
            raise NotCancellableError(
                str(booking_id),
                coerce_status(winner.status).value,
                detail=f"Booking {booking_id} was changed by another request",
            )

        booking = await self.repository.reload(booking_id)
        metrics_collector.record_booking_cancelled("NO_SHOW")
        metrics_collector.record_transition(current.value, BookingStatus.CANCELLED.value)
        logger.info(
            "Booking marked as no-show",
            extra={
                "booking_id": str(booking_id),
                "guest_id": str(guest_id) if guest_id else None,
                "actor_id": str(actor.user_id),
            }
        )

        await self.emitter.emit(
            BOOKING_CANCELLED,
            booking_event_payload(booking, reason=NO_SHOW_REASON, refund_amount=0),
        )
        return booking

    async def get_booking(self, booking_id: UUID, actor: Actor) -> Booking:
        """
        Get booking by ID.

        Raises:
            NotFoundError: If booking not found
            UnauthorizedActorError: If the actor is neither owner nor staff
        """
        booking = await self.repository.find_by_id_or_raise(booking_id)
        if not (actor.owns(booking) or actor.is_staff or actor.can_override):
            raise UnauthorizedActorError(
                detail="You are not allowed to view this booking",
                booking_id=str(booking_id),
            )
        return booking

    async def list_bookings(
        self,
        actor: Actor,
        hotel_id: Optional[UUID] = None,
        on_date: Optional[date] = None,
    ) -> list[Booking]:
        """
        List bookings visible to the actor.

        Staff see every booking, optionally narrowed to one hotel and to stays
        that start or end on a given date. Guests see their own bookings.
        """
        criteria = []
        if not (actor.is_staff or actor.can_override):
            criteria.append(Booking.user_id == actor.user_id)
        if hotel_id is not None:
            criteria.append(Booking.hotel_id == hotel_id)
        if on_date is not None:
            criteria.append(or_(Booking.check_in == on_date, Booking.check_out == on_date))

        return await self.repository.find_many(
            *criteria,
            order_by=(Booking.check_in, Booking.created_at),
        )

    def _require_staff(self, actor: Actor, booking_id: UUID) -> None:
        if not (actor.is_staff or actor.can_override):
            logger.warning(
                "Staff operation refused",
                extra={"booking_id": str(booking_id), "actor_id": str(actor.user_id)}
            )
            raise UnauthorizedActorError(
                detail="Only hotel staff can perform this operation",
                booking_id=str(booking_id),
                required_roles=list(settings.staff_roles),
            )

    async def _staff_transition(
        self,
        booking_id: UUID,
        actor: Actor,
        target: BookingStatus,
        event_type: str,
    ) -> Booking:
        self._require_staff(actor, booking_id)

        booking = await self.repository.find_by_id_or_raise(booking_id)
        current = coerce_status(booking.status)
        if current == target:
            logger.info(
                "Booking already in requested status",
                extra={"booking_id": str(booking_id), "status": target.value}
            )
            return booking

        moved = apply_transition(BookingSnapshot.of(booking), target)
        winner = await self._write(booking_id, current, moved.as_patch(), operation=target.value.lower())
        if winner is not None:
            if coerce_status(winner.status) == target:
                return winner
            raise InvalidTransitionError(coerce_status(winner.status).value, target.value)

        booking = await self.repository.reload(booking_id)
        metrics_collector.record_transition(current.value, target.value)
        logger.info(
            "Booking status changed",
            extra={
                "booking_id": str(booking_id),
                "from_status": current.value,
                "to_status": target.value,
                "actor_id": str(actor.user_id),
            }
        )

        await self.emitter.emit(event_type, booking_event_payload(booking))
        return booking

    async def _write(
        self,
        booking_id: UUID,
        expected: BookingStatus,
        patch: dict[str, Any],
        operation: str,
        also=None,
    ) -> Optional[Booking]:
        """
        Apply a conditional update and commit it.

        Returns:
            None when the write landed, otherwise the booking as the winning
            writer left it
        """
        try:
            updated = await self.repository.update(booking_id, expected, patch)
            if updated:
                if also is not None:
                    await also()
                await self.db.commit()
                return None
        except Exception:
            await self.db.rollback()
            raise

        await self.db.rollback()
        metrics_collector.record_race_lost(operation)
        winner = await self.repository.reload(booking_id)
        if winner is None:
            raise NotFoundError(resource_type="booking", resource_id=str(booking_id))
        return winner
