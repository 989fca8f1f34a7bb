"""Purchase models - executor results and ledger records."""

import re
from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from dca_service.models.subscription import Subscription

TX_HASH_PATTERN = re.compile(r"^0x[a-fA-F0-9]{64}$")


def normalize_tx_hash(tx_hash: str) -> str:
    """Lower-case a transaction hash after checking its shape.

    Raises:
        ValueError: If the hash is not 0x + 64 hex chars
    """
    if not TX_HASH_PATTERN.match(tx_hash):
        raise ValueError(f"Invalid transaction hash: {tx_hash!r}")
    return tx_hash.lower()


class PurchaseResult(BaseModel):
    """What the purchase executor reports after a successful swap."""

    symbol: str = Field(..., description="Purchased token symbol")
    amount: str = Field(..., description="Amount spent")
    price_at_purchase: str = Field(..., description="Token price at purchase time")
    tx_hash: str = Field(..., description="Transaction hash")
    coin_address: Optional[str] = Field(None, description="Purchased token contract address")

    @field_validator("tx_hash")
    @classmethod
    def _normalize_tx_hash(cls, value: str) -> str:
        return normalize_tx_hash(value)


class PurchaseRecord(BaseModel):
    """Ledger entry for one completed purchase. Never mutated once appended."""

    subscription_id: str = Field(..., description="Owning schedule_id")
    wallet_address: str = Field(..., description="Wallet that made the purchase")
    purchased_at: datetime = Field(..., description="Tick start time of the purchase")
    symbol: str = Field(..., description="Purchased token symbol")
    amount: str = Field(..., description="Amount spent")
    price_at_purchase: str = Field(..., description="Token price at purchase time")
    tx_hash: str = Field(..., description="Transaction hash (unique)")
    coin_address: Optional[str] = Field(None, description="Purchased token contract address")

    @field_validator("tx_hash")
    @classmethod
    def _normalize_tx_hash(cls, value: str) -> str:
        return normalize_tx_hash(value)

    @field_validator("purchased_at")
    @classmethod
    def _ensure_utc(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    @classmethod
    def from_result(
        cls,
        subscription: Subscription,
        result: PurchaseResult,
        purchased_at: datetime,
    ) -> "PurchaseRecord":
        """Build a ledger record from an executor result."""
        return cls(
            subscription_id=subscription.schedule_id,
            wallet_address=subscription.wallet_address,
            purchased_at=purchased_at,
            symbol=result.symbol,
            amount=result.amount,
            price_at_purchase=result.price_at_purchase,
            tx_hash=result.tx_hash,
            coin_address=result.coin_address,
        )

    class Config:
        json_schema_extra = {
            "example": {
                "subscription_id": "65f1c2a9e4b0a1b2c3d4e5f6",
                "wallet_address": "0xe42534ce546f54234d9da51f6ca3c2ed1d682990",
                "purchased_at": "2024-03-13T12:01:00Z",
                "symbol": "WETH",
                "amount": "0.0001",
                "price_at_purchase": "3512.44",
                "tx_hash": "0x" + "ab" * 32,
                "coin_address": "0x4200000000000000000000000000000000000006",
            }
        }
