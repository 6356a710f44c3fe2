"""Wallet Pydantic schemas."""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field, field_serializer

from ..models.wallet import WalletTransactionReason, WalletTransactionType


class WalletTransaction(BaseModel):
    """Wallet ledger entry response schema."""

    id: str = Field(..., description="Ledger entry ID")
    type: WalletTransactionType = Field(..., description="CREDIT or DEBIT")
    reason: WalletTransactionReason = Field(..., description="Why the entry was written")
    amount: Decimal = Field(..., gt=0, description="Amount moved")
    booking_id: Optional[str] = Field(None, description="Booking the entry relates to")
    created_at: datetime = Field(..., description="Entry time (ISO 8601)")

    @field_serializer("amount")
    def serialize_money(self, value: Decimal) -> float:
        """Amounts travel as JSON numbers."""
        return float(value)


class Wallet(BaseModel):
    """Wallet response schema."""

    user_id: str = Field(..., description="Wallet owner")
    balance: Decimal = Field(..., ge=0, description="Current balance")
    transactions: list[WalletTransaction] = Field(default_factory=list, description="Most recent entries first")

    @field_serializer("balance")
    def serialize_money(self, value: Decimal) -> float:
        """Amounts travel as JSON numbers."""
        return float(value)
