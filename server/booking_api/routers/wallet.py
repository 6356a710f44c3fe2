"""Wallet router."""

from decimal import Decimal

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.database import get_db
from ..core.dependencies import Actor, get_current_user
from ..schemas.wallet import Wallet, WalletTransaction
from ..services.wallet_service import WalletService

router = APIRouter(prefix="/wallet", tags=["wallet"])

DB_DEPENDENCY = Depends(get_db)
ACTOR_DEPENDENCY = Depends(get_current_user)


@router.get("", response_model=Wallet)
async def get_wallet(
    db: AsyncSession = DB_DEPENDENCY,
    actor: Actor = ACTOR_DEPENDENCY,
) -> Wallet:
    """Current balance and recent refunds of the caller's wallet."""
    wallet_service = WalletService(db)
    wallet = await wallet_service.get_wallet(actor.user_id)
    if wallet is None:
        return Wallet(user_id=str(actor.user_id), balance=Decimal("0"), transactions=[])

    transactions = await wallet_service.recent_transactions(wallet.id)

    return Wallet(
        user_id=str(wallet.user_id),
        balance=wallet.balance,
        transactions=[
            WalletTransaction(
                id=str(transaction.id),
                type=transaction.type,
                reason=transaction.reason,
                amount=transaction.amount,
                booking_id=str(transaction.booking_id) if transaction.booking_id else None,
                created_at=transaction.created_at,
            )
            for transaction in transactions
        ],
    )
