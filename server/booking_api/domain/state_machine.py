"""Booking status state machine.

Pure rules: nothing here touches the database. Callers persist the result
with a conditional update guarded by the status they started from.
"""

from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any, Mapping, Optional

from ..core.exceptions import InvalidTransitionError, InvariantViolationError
from .status import BookingFeeStatus, BookingStatus

ALLOWED_TRANSITIONS: Mapping[BookingStatus, frozenset[BookingStatus]] = {
    BookingStatus.PENDING: frozenset({BookingStatus.CONFIRMED, BookingStatus.CANCELLED}),
    BookingStatus.CONFIRMED: frozenset({BookingStatus.CHECKED_IN, BookingStatus.CANCELLED}),
    BookingStatus.CHECKED_IN: frozenset({BookingStatus.CHECKED_OUT}),
    BookingStatus.CHECKED_OUT: frozenset(),
    BookingStatus.CANCELLED: frozenset(),
}

CANCELLABLE_STATUSES = frozenset(
    status for status, targets in ALLOWED_TRANSITIONS.items()
    if BookingStatus.CANCELLED in targets
)


def coerce_status(value: Any) -> BookingStatus:
    """
    Turn a stored or transmitted status value into a BookingStatus.

    Raises:
        InvariantViolationError: If the value is missing or not a known status
    """
    if isinstance(value, BookingStatus):
        return value
    if value is None:
        raise InvariantViolationError("Booking has no status")
    try:
        return BookingStatus(value)
    except ValueError:
        raise InvariantViolationError(
            f"Booking has unknown status {value!r}",
            context={"status": str(value)},
        ) from None


def can_transition(current: Any, target: Any) -> bool:
    """Return True if the table allows moving from current to target."""
    return coerce_status(target) in ALLOWED_TRANSITIONS[coerce_status(current)]


def is_terminal(status: Any) -> bool:
    """Return True for statuses with no outgoing transitions."""
    return not ALLOWED_TRANSITIONS[coerce_status(status)]


@dataclass(frozen=True)
class BookingSnapshot:
    """Lifecycle fields of one booking at a point in time."""

    status: BookingStatus
    booking_fee_status: BookingFeeStatus = BookingFeeStatus.PENDING
    expires_at: Optional[datetime] = None
    cancellation_reason: Optional[str] = None
    cancelled_at: Optional[datetime] = None

    @classmethod
    def of(cls, booking: Any) -> "BookingSnapshot":
        """Capture the lifecycle fields of a model or any object carrying them."""
        return cls(
            status=coerce_status(booking.status),
            booking_fee_status=BookingFeeStatus(booking.booking_fee_status),
            expires_at=booking.expires_at,
            cancellation_reason=booking.cancellation_reason,
            cancelled_at=booking.cancelled_at,
        )

    def as_patch(self) -> dict[str, Any]:
        """Column values to write for this snapshot."""
        return {
            "status": self.status.value,
            "expires_at": self.expires_at,
            "cancellation_reason": self.cancellation_reason,
            "cancelled_at": self.cancelled_at,
        }


def apply_transition(
    booking: BookingSnapshot,
    target: Any,
    *,
    at: Optional[datetime] = None,
    reason: Optional[str] = None,
) -> BookingSnapshot:
    """
    Move a booking snapshot to a new status.

    The input is never modified. Leaving PENDING always clears the payment
    hold expiry; entering CANCELLED stamps the reason and time together.

    Args:
        booking: Snapshot to move
        target: Status to move to
        at: Time of the change, required when cancelling
        reason: Cancellation reason, required when cancelling

    Returns:
        A new snapshot in the target status

    Raises:
        InvalidTransitionError: If the pair is not in the transition table
        InvariantViolationError: If the current status is unknown
    """
    current = coerce_status(booking.status)
    target = coerce_status(target)

    if target not in ALLOWED_TRANSITIONS[current]:
        raise InvalidTransitionError(current.value, target.value)

    changes: dict[str, Any] = {"status": target, "expires_at": None}
    if target == BookingStatus.CANCELLED:
        if at is None or not reason:
            raise InvariantViolationError(
                "Cancellation requires both a reason and a timestamp",
                context={"current_status": current.value},
            )
        changes["cancellation_reason"] = reason
        changes["cancelled_at"] = at

    return replace(booking, **changes)
