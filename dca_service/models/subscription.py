"""DCA subscription model.

One record per wallet address: purchase interval, amount, registration time
and the active flag consulted by the scheduler.
"""

import re
from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, Field, field_validator

WALLET_ADDRESS_PATTERN = re.compile(r"^0x[a-fA-F0-9]{40}$")
DECIMAL_AMOUNT_PATTERN = re.compile(r"^\d*\.?\d+$")


def normalize_wallet_address(address: str) -> str:
    """Return the canonical (lower-case) form of a wallet address.

    Raises:
        ValueError: If the address is not a 0x-prefixed 40 hex char string
    """
    address = address.strip()
    if not WALLET_ADDRESS_PATTERN.match(address):
        raise ValueError(f"Invalid wallet address: {address!r}")
    return address.lower()


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Subscription(BaseModel):
    """Recurring purchase configuration for one wallet."""

    schedule_id: str = Field(..., description="Unique schedule identifier")
    wallet_address: str = Field(..., description="Wallet address (lower-cased)")
    purchase_interval_seconds: int = Field(
        ..., gt=0, le=31_536_000, description="Minimum time between purchases"
    )
    purchase_amount: str = Field(..., description="Amount spent per purchase (decimal string)")
    active: bool = Field(default=True, description="Inactive subscriptions are skipped by the scheduler")
    registered_at: datetime = Field(default_factory=utc_now, description="Subscription creation time")
    updated_at: datetime = Field(default_factory=utc_now, description="Last modification time")

    @field_validator("wallet_address")
    @classmethod
    def _normalize_wallet(cls, value: str) -> str:
        return normalize_wallet_address(value)

    @field_validator("purchase_amount")
    @classmethod
    def _validate_amount(cls, value: str) -> str:
        if not DECIMAL_AMOUNT_PATTERN.match(value):
            raise ValueError("Purchase amount must be a valid decimal number")
        return value

    @field_validator("registered_at", "updated_at")
    @classmethod
    def _ensure_utc(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    def set_active(self, active: bool, reason: Optional[str] = None) -> bool:
        """Change the active flag and log the transition.

        Args:
            active: New value
            reason: Reason for the change

        Returns:
            True if the flag changed
        """
        from dca_service.state_logger import log_subscription_active_change

        old_value = self.active
        if old_value == active:
            return False
        self.active = active
        self.updated_at = utc_now()
        log_subscription_active_change(
            schedule_id=self.schedule_id,
            wallet_address=self.wallet_address,
            old_value=old_value,
            new_value=active,
            reason=reason,
        )
        return True

    class Config:
        json_schema_extra = {
            "example": {
                "schedule_id": "65f1c2a9e4b0a1b2c3d4e5f6",
                "wallet_address": "0xe42534ce546f54234d9da51f6ca3c2ed1d682990",
                "purchase_interval_seconds": 60,
                "purchase_amount": "0.0001",
                "active": True,
                "registered_at": "2024-03-13T12:00:00Z",
                "updated_at": "2024-03-13T12:00:00Z",
            }
        }
