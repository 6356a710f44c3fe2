"""Pure booking lifecycle rules with no database or HTTP dependencies."""

from .refund_policy import RefundPolicy, RefundQuote
from .state_machine import (
    ALLOWED_TRANSITIONS,
    BookingSnapshot,
    apply_transition,
    can_transition,
    coerce_status,
    is_terminal,
)
from .status import BookingFeeStatus, BookingStatus, PaymentStatus

__all__ = [
    "ALLOWED_TRANSITIONS",
    "BookingSnapshot",
    "apply_transition",
    "can_transition",
    "coerce_status",
    "is_terminal",
    "RefundPolicy",
    "RefundQuote",
    "BookingStatus",
    "PaymentStatus",
    "BookingFeeStatus",
]
