"""User model definition."""

from datetime import datetime
from typing import TYPE_CHECKING
from uuid import UUID, uuid4

from sqlalchemy import CheckConstraint, Integer, String, func
from sqlalchemy.dialects.postgresql import UUID as PgUUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..core.clock import utcnow
from ..core.database import Base

if TYPE_CHECKING:
    from .booking import Booking
    from .wallet import Wallet


class User(Base):
    """Guest account that owns bookings and a wallet."""

    __tablename__ = "users"

    id: Mapped[UUID] = mapped_column(
        PgUUID(as_uuid=True),
        primary_key=True,
        default=uuid4
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True, unique=True)

    # Reliability signals adjusted by no-shows
    trust_score: Mapped[int] = mapped_column(Integer, nullable=False, default=100)
    late_cancellation_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    created_at: Mapped[datetime] = mapped_column(
        nullable=False,
        default=utcnow,
        server_default=func.now()
    )

    __table_args__ = (
        CheckConstraint("trust_score >= 0", name="ck_user_trust_score_non_negative"),
    )

    bookings: Mapped[list["Booking"]] = relationship("Booking", back_populates="user")
    wallet: Mapped["Wallet | None"] = relationship("Wallet", back_populates="user", uselist=False)

    def __repr__(self) -> str:
        return f"<User(id={self.id}, name='{self.name}')>"
