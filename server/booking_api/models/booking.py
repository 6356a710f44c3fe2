"""Booking model definition."""

from datetime import date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID, uuid4

from sqlalchemy import CheckConstraint, Date, DateTime, ForeignKey, Integer, Numeric, String, Text, func
from sqlalchemy.dialects.postgresql import UUID as PgUUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..core.clock import utcnow
from ..core.database import Base
from ..domain.status import BookingFeeStatus, BookingStatus, PaymentStatus

if TYPE_CHECKING:
    from .hotel import Hotel, Room
    from .user import User


class Booking(Base):
    """Booking entity representing one room reservation."""

    __tablename__ = "bookings"

    # Primary key
    id: Mapped[UUID] = mapped_column(
        PgUUID(as_uuid=True),
        primary_key=True,
        default=uuid4
    )

    # Ownership; guest bookings have no user
    user_id: Mapped[UUID | None] = mapped_column(
        PgUUID(as_uuid=True),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        index=True
    )
    hotel_id: Mapped[UUID] = mapped_column(
        PgUUID(as_uuid=True),
        ForeignKey("hotels.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    room_id: Mapped[UUID] = mapped_column(
        PgUUID(as_uuid=True),
        ForeignKey("rooms.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    # Stay details
    check_in: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    check_out: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    guest_name: Mapped[str] = mapped_column(String(255), nullable=False)
    guest_phone: Mapped[str] = mapped_column(String(32), nullable=False)
    guest_count: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    # Lifecycle
    status: Mapped[BookingStatus] = mapped_column(
        String(20),
        nullable=False,
        default=BookingStatus.PENDING,
        index=True
    )
    payment_status: Mapped[PaymentStatus] = mapped_column(
        String(20),
        nullable=False,
        default=PaymentStatus.PENDING
    )
    booking_fee_status: Mapped[BookingFeeStatus] = mapped_column(
        String(20),
        nullable=False,
        default=BookingFeeStatus.PENDING,
        index=True
    )

    # Money
    total_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    booking_fee: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False, default=Decimal("0"))
    payment_method: Mapped[str | None] = mapped_column(String(32), nullable=True)
    payment_reference: Mapped[str | None] = mapped_column(String(128), nullable=True)

    # Payment hold and cancellation
    expires_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True, index=True)
    cancellation_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        nullable=False,
        default=utcnow,
        server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        nullable=False,
        default=utcnow,
        server_default=func.now(),
        onupdate=utcnow
    )

    # Constraints
    __table_args__ = (
        CheckConstraint("total_amount >= 0", name="ck_booking_total_amount_non_negative"),
        CheckConstraint("booking_fee >= 0", name="ck_booking_fee_non_negative"),
        CheckConstraint("booking_fee <= total_amount", name="ck_booking_fee_lte_total"),
        CheckConstraint("guest_count > 0", name="ck_booking_guest_count_positive"),
        CheckConstraint("check_out > check_in", name="ck_booking_stay_dates_ordered"),
        CheckConstraint(
            "expires_at IS NULL OR (status = 'PENDING' AND booking_fee_status = 'PENDING')",
            name="ck_booking_expiry_only_while_unpaid"
        ),
    )

    # Relationships
    user: Mapped["User | None"] = relationship("User", back_populates="bookings")
    hotel: Mapped["Hotel"] = relationship("Hotel", back_populates="bookings")
    room: Mapped["Room"] = relationship("Room", back_populates="bookings")

    def __repr__(self) -> str:
        return (
            f"<Booking(id={self.id}, status={self.status}, "
            f"payment_status={self.payment_status}, expires_at={self.expires_at})>"
        )
