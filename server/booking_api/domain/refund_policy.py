"""Cancellation refund policy."""

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from decimal import ROUND_DOWN, Decimal
from typing import Any

from .status import BookingFeeStatus, PaymentStatus

CENTS = Decimal("0.01")


@dataclass(frozen=True)
class RefundQuote:
    """Outcome of evaluating the policy for one cancellation."""

    amount_paid: Decimal
    refund_amount: Decimal
    is_late: bool
    paid_in_full: bool


@dataclass(frozen=True)
class RefundPolicy:
    """
    Refund rules for guest cancellations.

    Percentages are whole numbers between 0 and 100. Only money that was
    actually captured is ever refunded.
    """

    late_window_hours: float = 24
    full_payment_refund_percent: int = 100
    booking_fee_refund_percent: int = 100
    late_refund_percent: int = 0
    check_in_hour: int = 14

    def __post_init__(self):
        for name in ("full_payment_refund_percent", "booking_fee_refund_percent", "late_refund_percent"):
            value = getattr(self, name)
            if not 0 <= value <= 100:
                raise ValueError(f"{name} must be between 0 and 100, got {value}")
        if self.late_window_hours < 0:
            raise ValueError("late_window_hours must not be negative")

    @classmethod
    def from_settings(cls, settings) -> "RefundPolicy":
        """Build the policy configured for this deployment."""
        return cls(
            late_window_hours=settings.late_cancellation_window_hours,
            full_payment_refund_percent=settings.full_payment_refund_percent,
            booking_fee_refund_percent=settings.booking_fee_refund_percent,
            late_refund_percent=settings.late_refund_percent,
            check_in_hour=settings.check_in_hour,
        )

    def check_in_at(self, check_in: date) -> datetime:
        """Moment a stay starts on its check-in date."""
        return datetime.combine(check_in, time(hour=self.check_in_hour))

    def is_late(self, check_in: date, now: datetime) -> bool:
        """True when now falls inside the late window before check-in."""
        return self.check_in_at(check_in) - now < timedelta(hours=self.late_window_hours)

    @staticmethod
    def amount_paid(booking: Any) -> tuple[Decimal, bool]:
        """
        Money captured for a booking and whether it was the full amount.

        Returns:
            Tuple of (amount, paid_in_full)
        """
        if booking.payment_status == PaymentStatus.PAID:
            return Decimal(booking.total_amount), True
        if booking.booking_fee_status == BookingFeeStatus.PAID:
            return Decimal(booking.booking_fee), False
        return Decimal("0"), False

    def evaluate(self, booking: Any, now: datetime) -> RefundQuote:
        """Quote the refund for cancelling booking at now."""
        amount_paid, paid_in_full = self.amount_paid(booking)
        late = self.is_late(booking.check_in, now)

        if late:
            percent = self.late_refund_percent
        elif paid_in_full:
            percent = self.full_payment_refund_percent
        else:
            percent = self.booking_fee_refund_percent

        refund = (amount_paid * Decimal(percent) / Decimal(100)).quantize(CENTS, rounding=ROUND_DOWN)
        refund = min(max(refund, Decimal("0")), amount_paid)

        return RefundQuote(
            amount_paid=amount_paid,
            refund_amount=refund,
            is_late=late,
            paid_in_full=paid_in_full,
        )
