"""Wallet ledger operations."""

import logging
from decimal import Decimal
from typing import Optional
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.clock import utcnow
from ..core.exceptions import InvariantViolationError, TransientIOError
from ..models.wallet import Wallet, WalletTransaction, WalletTransactionReason, WalletTransactionType

logger = logging.getLogger(__name__)


class WalletService:
    """
    Service for wallet balances and their ledger.

    Credits join the caller's transaction and are never committed here, so a
    refund and the booking change that caused it land together or not at all.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_wallet(self, user_id: UUID) -> Optional[Wallet]:
        """Get a user's wallet, if one was ever created."""
        stmt = (
            select(Wallet)
            .where(Wallet.user_id == user_id)
            .execution_options(populate_existing=True)
        )
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def recent_transactions(self, wallet_id: UUID, limit: int = 20) -> list[WalletTransaction]:
        """Most recent ledger rows of a wallet, newest first."""
        stmt = (
            select(WalletTransaction)
            .where(WalletTransaction.wallet_id == wallet_id)
            .order_by(WalletTransaction.created_at.desc())
            .limit(limit)
        )
        result = await self.db.execute(stmt)
        return list(result.scalars())

    async def _get_or_create_wallet(self, user_id: UUID) -> Wallet:
        wallet = await self.get_wallet(user_id)
        if wallet is None:
            wallet = Wallet(user_id=user_id, balance=Decimal("0"))
            self.db.add(wallet)
            try:
                await self.db.flush()
            except IntegrityError as e:
                # Another refund created this user's first wallet in the meantime
                logger.warning("Wallet created concurrently", extra={"user_id": str(user_id)})
                raise TransientIOError("The wallet was created by a concurrent request, please retry") from e
            logger.info("Wallet created", extra={"user_id": str(user_id)})
        return wallet

    async def credit(
        self,
        user_id: UUID,
        amount: Decimal,
        reason: WalletTransactionReason = WalletTransactionReason.BOOKING_REFUND,
        booking_id: Optional[UUID] = None,
    ) -> UUID:
        """
        Credit a wallet and append the matching ledger row.

        Args:
            user_id: Wallet owner
            amount: Positive amount to add
            reason: Why the money moves
            booking_id: Booking that caused the credit, if any

        Returns:
            ID of the new wallet transaction

        Raises:
            InvariantViolationError: If amount is not positive
            TransientIOError: If the store is unavailable
        """
        amount = Decimal(amount)
        if amount <= 0:
            raise InvariantViolationError(
                "Wallet credits must be positive",
                context={"user_id": str(user_id), "amount": str(amount)},
            )

        try:
            wallet = await self._get_or_create_wallet(user_id)

            await self.db.execute(
                update(Wallet)
                .where(Wallet.id == wallet.id)
                .values(balance=Wallet.balance + amount, updated_at=utcnow())
                .execution_options(synchronize_session=False)
            )

            transaction = WalletTransaction(
                wallet_id=wallet.id,
                user_id=user_id,
                booking_id=booking_id,
                type=WalletTransactionType.CREDIT.value,
                reason=WalletTransactionReason(reason).value,
                amount=amount,
            )
            self.db.add(transaction)
            await self.db.flush()
        except OperationalError as e:
            raise TransientIOError("Could not update the wallet") from e

        logger.info(
            "Wallet credited",
            extra={
                "user_id": str(user_id),
                "wallet_id": str(wallet.id),
                "transaction_id": str(transaction.id),
                "booking_id": str(booking_id) if booking_id else None,
                "amount": str(amount),
                "reason": WalletTransactionReason(reason).value,
            }
        )

        return transaction.id
