"""Replay of stored responses for retried partner submissions."""

import hashlib
import json
import logging
from datetime import timedelta
from typing import Any, Optional

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.clock import utcnow
from ..core.config import settings
from ..core.exceptions import ProblemDetailsException
from ..models.idempotency import IdempotencyRecord

logger = logging.getLogger(__name__)


def request_fingerprint(request_body: dict[str, Any]) -> str:
    """SHA-256 of a request body with keys sorted."""
    normalized = json.dumps(request_body, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(normalized.encode("utf-8")).hexdigest()


class IdempotencyMismatchError(ProblemDetailsException):
    """An idempotency key was sent again with a different request body."""

    def __init__(self, idempotency_key: str, operation: str):
        super().__init__(
            status_code=422,
            title="Idempotency Key Mismatch",
            detail=f"Idempotency key '{idempotency_key}' was already used for '{operation}' with a different body",
            type_uri="https://example.com/problems/idempotency-key-mismatch",
            extensions={
                "code": "IDEMPOTENCY_KEY_MISMATCH",
                "retryable": False,
                "idempotency_key": idempotency_key,
                "operation": operation,
            },
        )


class IdempotencyService:
    """
    Stores the outcome of a keyed request and replays it on retries.

    The partner app reuses the local action id as the key, so a submission
    whose acknowledgement was lost returns the original answer instead of a
    conflict. Records are private to the caller that created them.
    """

    def __init__(self, db: AsyncSession, ttl_hours: int | None = None):
        self.db = db
        self.ttl_hours = ttl_hours or settings.idempotency_ttl_hours

    def _lookup(self, idempotency_key: str, operation: str, actor_id: Optional[str]):
        stmt = select(IdempotencyRecord).where(
            IdempotencyRecord.idempotency_key == idempotency_key,
            IdempotencyRecord.operation == operation,
            IdempotencyRecord.expires_at > utcnow(),
        )
        if actor_id is None:
            return stmt.where(IdempotencyRecord.actor_id.is_(None))
        return stmt.where(IdempotencyRecord.actor_id == actor_id)

    async def check_idempotency(
        self,
        idempotency_key: str,
        operation: str,
        request_body: dict[str, Any],
        actor_id: Optional[str] = None,
    ) -> tuple[int, dict[str, Any]] | None:
        """
        Look up the stored response for a key.

        Args:
            idempotency_key: Key sent by the caller
            operation: Operation the key was used for
            request_body: Request body to compare with the stored one
            actor_id: Caller the key belongs to

        Returns:
            Tuple of (status_code, response_body) if a live record exists,
            None if this is a new request

        Raises:
            IdempotencyMismatchError: If the key was used with a different body
        """
        result = await self.db.execute(self._lookup(idempotency_key, operation, actor_id))
        record = result.scalar_one_or_none()
        if record is None:
            return None

        if record.request_hash != request_fingerprint(request_body):
            logger.warning(
                "Idempotency key reused with a different body",
                extra={"idempotency_key": idempotency_key, "operation": operation, "actor_id": actor_id}
            )
            raise IdempotencyMismatchError(idempotency_key, operation)

        logger.info(
            "Replaying stored response",
            extra={
                "idempotency_key": idempotency_key,
                "operation": operation,
                "status_code": record.status_code,
            }
        )
        return record.status_code, json.loads(record.response_body)

    async def store_response(
        self,
        idempotency_key: str,
        operation: str,
        request_body: dict[str, Any],
        status_code: int,
        response_body: dict[str, Any],
        actor_id: Optional[str] = None,
    ) -> None:
        """
        Store the response of a keyed operation.

        A concurrent request that stored the same key first wins; the
        duplicate insert is rolled back and ignored.
        """
        record = IdempotencyRecord(
            idempotency_key=idempotency_key,
            operation=operation,
            actor_id=actor_id,
            request_hash=request_fingerprint(request_body),
            status_code=status_code,
            response_body=json.dumps(response_body, sort_keys=True, separators=(",", ":"), default=str),
            expires_at=utcnow() + timedelta(hours=self.ttl_hours),
        )

        try:
            self.db.add(record)
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            logger.info(
                "Idempotency record stored concurrently, keeping the first",
                extra={"idempotency_key": idempotency_key, "operation": operation}
            )
            return

        logger.debug(
            "Stored idempotency record",
            extra={"idempotency_key": idempotency_key, "operation": operation, "status_code": status_code}
        )

    async def cleanup_expired_records(self) -> int:
        """
        Delete expired idempotency records.

        Returns:
            Number of records deleted
        """
        result = await self.db.execute(
            delete(IdempotencyRecord).where(IdempotencyRecord.expires_at <= utcnow())
        )
        await self.db.commit()

        if result.rowcount > 0:
            logger.info(
                "Cleaned up expired idempotency records",
                extra={"deleted_count": result.rowcount}
            )
        return result.rowcount
