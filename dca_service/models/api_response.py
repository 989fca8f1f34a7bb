"""API response models for schedules, transactions and scheduler status."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from dca_service.models.purchase import PurchaseRecord
from dca_service.models.subscription import Subscription


class ScheduleResponse(BaseModel):
    """A DCA schedule as exposed over REST."""

    schedule_id: str = Field(..., description="Schedule identifier")
    wallet_address: str = Field(..., description="Wallet address")
    purchase_interval_seconds: int = Field(..., description="Seconds between purchases")
    purchase_amount: str = Field(..., description="Amount per purchase")
    active: bool = Field(..., description="Whether the scheduler picks this schedule up")
    registered_at: datetime = Field(..., description="Registration time")

    @classmethod
    def from_subscription(cls, subscription: Subscription) -> "ScheduleResponse":
        return cls(
            schedule_id=subscription.schedule_id,
            wallet_address=subscription.wallet_address,
            purchase_interval_seconds=subscription.purchase_interval_seconds,
            purchase_amount=subscription.purchase_amount,
            active=subscription.active,
            registered_at=subscription.registered_at,
        )


class PurchaseResponse(BaseModel):
    """A ledger entry as exposed over REST."""

    schedule_id: str = Field(..., description="Owning schedule")
    wallet_address: str = Field(..., description="Wallet address")
    purchased_at: datetime = Field(..., description="Purchase time")
    symbol: str = Field(..., description="Purchased token symbol")
    amount: str = Field(..., description="Amount spent")
    price_at_purchase: str = Field(..., description="Token price at purchase time")
    tx_hash: str = Field(..., description="Transaction hash")
    coin_address: Optional[str] = Field(None, description="Purchased token contract address")

    @classmethod
    def from_record(cls, record: PurchaseRecord) -> "PurchaseResponse":
        return cls(
            schedule_id=record.subscription_id,
            wallet_address=record.wallet_address,
            purchased_at=record.purchased_at,
            symbol=record.symbol,
            amount=record.amount,
            price_at_purchase=record.price_at_purchase,
            tx_hash=record.tx_hash,
            coin_address=record.coin_address,
        )


class TickReportResponse(BaseModel):
    """Summary of one scheduler tick."""

    started_at: datetime
    candidates: int
    due: int
    succeeded: int
    failed: int
    skipped: int
    abandoned: int = 0
    store_failed: bool


class SchedulerStatusResponse(BaseModel):
    """Current scheduler lifecycle state."""

    state: str = Field(..., description="stopped, starting, running or stopping")
    tick_count: int = Field(..., description="Ticks completed since start")
    in_flight: list[str] = Field(default_factory=list, description="Schedules with a purchase in progress")
    last_tick: Optional[TickReportResponse] = Field(None, description="Most recent tick")


class ErrorResponse(BaseModel):
    """Error body returned by the API."""

    error: str = Field(..., description="Short error title")
    message: str = Field(..., description="Human-readable details")
