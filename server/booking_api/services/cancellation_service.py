"""Guest cancellation with refund to the wallet."""

import logging
from datetime import datetime
from typing import Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from ..core.clock import utcnow
from ..core.config import settings
from ..core.dependencies import Actor
from ..core.exceptions import NotCancellableError, UnauthorizedActorError
from ..core.observability import metrics_collector
from ..domain import BookingSnapshot, RefundPolicy, RefundQuote, apply_transition, coerce_status
from ..domain.state_machine import CANCELLABLE_STATUSES
from ..domain.status import BookingStatus, PaymentStatus
from ..models.wallet import WalletTransactionReason
from ..schemas.booking import CancellationResult
from .booking_repository import BookingRepository
from .event_service import BOOKING_CANCELLED, EventEmitter, event_emitter
from .wallet_service import WalletService

logger = logging.getLogger(__name__)


def cancellation_message(quote: RefundQuote) -> str:
    """Human readable outcome shown to the guest."""
    if quote.refund_amount > 0:
        return f"Booking cancelled. {quote.refund_amount:.2f} has been refunded to your wallet."
    if quote.amount_paid > 0 and quote.is_late:
        return "Booking cancelled. Late cancellations are not refunded."
    if quote.amount_paid > 0:
        return "Booking cancelled. No refund applies under the cancellation policy."
    return "Booking cancelled."


class CancellationService:
    """
    Cancels bookings on behalf of their owner and refunds captured money.

    The status change, the payment status and the wallet credit share one
    transaction; the event goes out only after it committed.
    """

    def __init__(
        self,
        db: AsyncSession,
        policy: Optional[RefundPolicy] = None,
        wallet_service: Optional[WalletService] = None,
        emitter: Optional[EventEmitter] = None,
    ):
        self.db = db
        self.repository = BookingRepository(db)
        self.policy = policy or RefundPolicy.from_settings(settings)
        self.wallet_service = wallet_service or WalletService(db)
        self.emitter = emitter or event_emitter

    async def cancel(
        self,
        booking_id: UUID,
        actor: Actor,
        reason: str,
        now: Optional[datetime] = None,
    ) -> CancellationResult:
        """
        Cancel a booking and refund what the policy allows.

        Args:
            booking_id: Booking to cancel
            actor: Caller; must own the booking or hold an override role
            reason: Free-text reason recorded on the booking
            now: Cancellation time, defaults to the current UTC time

        Returns:
            Refund amount, lateness and a message for the guest

        Raises:
            NotFoundError: If the booking does not exist
            UnauthorizedActorError: If the actor may not cancel this booking
            NotCancellableError: If the booking is past the point of cancellation,
                another writer changed it first, or a refund is owed to a guest
                booking without a wallet
            TransientIOError: If the store is unavailable
        """
        now = now or utcnow()
        booking = await self.repository.find_by_id_or_raise(booking_id)

        if not (actor.owns(booking) or actor.can_override):
            logger.warning(
                "Cancellation refused for non-owner",
                extra={"booking_id": str(booking_id), "actor_id": str(actor.user_id)}
            )
            raise UnauthorizedActorError(
                detail="Only the booking owner can cancel this booking",
                booking_id=str(booking_id),
                required_roles=list(settings.override_roles),
            )

        current = coerce_status(booking.status)
        if current not in CANCELLABLE_STATUSES:
            raise NotCancellableError(str(booking_id), current.value)

        quote = self.policy.evaluate(booking, now)
        if quote.refund_amount > 0 and booking.user_id is None:
            raise NotCancellableError(
                str(booking_id),
                current.value,
                detail="Guest bookings with a refundable payment must be cancelled by the hotel",
            )

        cancelled = apply_transition(BookingSnapshot.of(booking), BookingStatus.CANCELLED, at=now, reason=reason)
        patch = cancelled.as_patch()
        if quote.refund_amount > 0:
            patch["payment_status"] = PaymentStatus.REFUNDED.value

        owner_id = booking.user_id
        hotel_id = booking.hotel_id
        transaction_id = None
        try:
            updated = await self.repository.update(booking_id, current, patch)
            if updated:
                if quote.refund_amount > 0:
                    transaction_id = await self.wallet_service.credit(
                        owner_id,
                        quote.refund_amount,
                        WalletTransactionReason.BOOKING_REFUND,
                        booking_id,
                    )
                await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        if not updated:
            await self.db.rollback()
            metrics_collector.record_race_lost("cancel")
            winner = await self.repository.reload(booking_id)
            raise NotCancellableError(
                str(booking_id),
                coerce_status(winner.status).value if winner else None,
                detail=f"Booking {booking_id} was changed by another request and can no longer be cancelled",
            )

        metrics_collector.record_booking_cancelled("LATE" if quote.is_late else "GUEST")
        metrics_collector.record_transition(current.value, BookingStatus.CANCELLED.value)
        if quote.refund_amount > 0:
            metrics_collector.record_refund(float(quote.refund_amount))

        logger.info(
            "Booking cancelled",
            extra={
                "booking_id": str(booking_id),
                "previous_status": current.value,
                "refund_amount": str(quote.refund_amount),
                "amount_paid": str(quote.amount_paid),
                "is_late": quote.is_late,
                "wallet_transaction_id": str(transaction_id) if transaction_id else None,
            }
        )

        await self.emitter.emit(
            BOOKING_CANCELLED,
            {
                "booking_id": str(booking_id),
                "user_id": str(owner_id) if owner_id else None,
                "hotel_id": str(hotel_id),
                "status": BookingStatus.CANCELLED.value,
                "reason": reason,
                "refund_amount": float(quote.refund_amount),
                "is_late": quote.is_late,
            },
        )

        return CancellationResult(
            success=True,
            booking_id=str(booking_id),
            refund_amount=quote.refund_amount,
            is_late=quote.is_late,
            message=cancellation_message(quote),
        )

