"""Idempotency record model definition."""

from datetime import datetime
from typing import Optional
from uuid import UUID, uuid4

from sqlalchemy import CheckConstraint, Integer, String, Text, UniqueConstraint, func
from sqlalchemy.dialects.postgresql import UUID as PgUUID
from sqlalchemy.orm import Mapped, mapped_column

from ..core.clock import utcnow
from ..core.database import Base


class IdempotencyRecord(Base):
    """
    Outcome of a keyed booking mutation, replayed when the caller retries.

    A key is scoped to the operation it was sent with (for example
    ``bookings/<id>/check-in``) and to the caller that sent it.
    """

    __tablename__ = "idempotency_records"

    id: Mapped[UUID] = mapped_column(
        PgUUID(as_uuid=True),
        primary_key=True,
        default=uuid4
    )

    idempotency_key: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    operation: Mapped[str] = mapped_column(String(100), nullable=False)
    actor_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    # SHA-256 of the normalized request body
    request_hash: Mapped[str] = mapped_column(String(64), nullable=False)

    status_code: Mapped[int] = mapped_column(Integer, nullable=False)
    response_body: Mapped[str] = mapped_column(Text, nullable=False)

    expires_at: Mapped[datetime] = mapped_column(nullable=False, index=True)
    created_at: Mapped[datetime] = mapped_column(
        nullable=False,
        default=utcnow,
        server_default=func.now()
    )

    __table_args__ = (
        CheckConstraint("length(idempotency_key) > 0", name="ck_idempotency_key_not_empty"),
        CheckConstraint("status_code BETWEEN 100 AND 599", name="ck_idempotency_status_code_range"),
        UniqueConstraint("idempotency_key", "operation", "actor_id", name="uq_idempotency_key_operation_actor"),
    )

    def __repr__(self) -> str:
        return (
            f"<IdempotencyRecord(key='{self.idempotency_key}', operation='{self.operation}', "
            f"actor_id={self.actor_id}, status_code={self.status_code})>"
        )
