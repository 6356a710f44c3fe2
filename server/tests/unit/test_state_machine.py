"""Unit tests for the booking status state machine."""

from datetime import datetime, timedelta

import pytest

from booking_api.core.exceptions import InvalidTransitionError, InvariantViolationError
from booking_api.domain import BookingSnapshot, apply_transition, can_transition, coerce_status, is_terminal
from booking_api.domain.state_machine import ALLOWED_TRANSITIONS, CANCELLABLE_STATUSES
from booking_api.domain.status import BookingFeeStatus, BookingStatus

AT = datetime(2026, 3, 1, 9, 0, 0)


def test_transition_table():
    """The table lists exactly the allowed moves."""
    assert can_transition(BookingStatus.PENDING, BookingStatus.CONFIRMED)
    assert can_transition(BookingStatus.PENDING, BookingStatus.CANCELLED)
    assert can_transition(BookingStatus.CONFIRMED, BookingStatus.CHECKED_IN)
    assert can_transition(BookingStatus.CONFIRMED, BookingStatus.CANCELLED)
    assert can_transition(BookingStatus.CHECKED_IN, BookingStatus.CHECKED_OUT)

    assert not can_transition(BookingStatus.PENDING, BookingStatus.CHECKED_IN)
    assert not can_transition(BookingStatus.CHECKED_IN, BookingStatus.CANCELLED)
    assert not can_transition(BookingStatus.CANCELLED, BookingStatus.CONFIRMED)
    assert not can_transition(BookingStatus.CHECKED_OUT, BookingStatus.CHECKED_IN)


def test_string_statuses_are_accepted():
    assert can_transition("PENDING", "CONFIRMED")
    assert coerce_status("CHECKED_OUT") is BookingStatus.CHECKED_OUT


def test_terminal_statuses():
    assert is_terminal(BookingStatus.CANCELLED)
    assert is_terminal("CHECKED_OUT")
    assert not is_terminal(BookingStatus.PENDING)
    assert not is_terminal(BookingStatus.CHECKED_IN)


def test_cancellable_statuses():
    assert CANCELLABLE_STATUSES == {BookingStatus.PENDING, BookingStatus.CONFIRMED}


def test_unknown_status_is_invariant_violation():
    with pytest.raises(InvariantViolationError):
        coerce_status("ON_HOLD")
    with pytest.raises(InvariantViolationError):
        coerce_status(None)


def test_confirm_clears_expiry_and_keeps_input():
    """Leaving PENDING clears the payment hold; the input snapshot is untouched."""
    pending = BookingSnapshot(status=BookingStatus.PENDING, expires_at=AT + timedelta(minutes=20))

    confirmed = apply_transition(pending, BookingStatus.CONFIRMED)

    assert confirmed.status is BookingStatus.CONFIRMED
    assert confirmed.expires_at is None
    assert pending.status is BookingStatus.PENDING
    assert pending.expires_at == AT + timedelta(minutes=20)


def test_cancel_stamps_reason_and_time():
    pending = BookingSnapshot(status=BookingStatus.PENDING, expires_at=AT)

    cancelled = apply_transition(pending, BookingStatus.CANCELLED, at=AT, reason="Changed plans")

    assert cancelled.status is BookingStatus.CANCELLED
    assert cancelled.cancellation_reason == "Changed plans"
    assert cancelled.cancelled_at == AT
    assert cancelled.expires_at is None


def test_cancel_without_reason_is_rejected():
    confirmed = BookingSnapshot(status=BookingStatus.CONFIRMED)
    with pytest.raises(InvariantViolationError):
        apply_transition(confirmed, BookingStatus.CANCELLED, at=AT)
    with pytest.raises(InvariantViolationError):
        apply_transition(confirmed, BookingStatus.CANCELLED, reason="no time")


@pytest.mark.parametrize("current", list(BookingStatus))
def test_disallowed_pairs_raise(current):
    snapshot = BookingSnapshot(status=current, booking_fee_status=BookingFeeStatus.PAID)
    for target in BookingStatus:
        if target in ALLOWED_TRANSITIONS[current]:
            continue
        with pytest.raises(InvalidTransitionError) as exc_info:
            apply_transition(snapshot, target, at=AT, reason="test")
        assert exc_info.value.code == "INVALID_TRANSITION"
        assert exc_info.value.problem_details["current_status"] == current.value
        assert snapshot.status is current


def test_snapshot_patch():
    snapshot = BookingSnapshot(status=BookingStatus.CANCELLED, cancellation_reason="x", cancelled_at=AT)
    assert snapshot.as_patch() == {
        "status": "CANCELLED",
        "expires_at": None,
        "cancellation_reason": "x",
        "cancelled_at": AT,
    }
