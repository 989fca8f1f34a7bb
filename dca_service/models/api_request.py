"""API request models for the schedule endpoints."""

from pydantic import BaseModel, Field


class CreateScheduleRequest(BaseModel):
    """Request to register a new DCA schedule."""

    wallet_address: str = Field(..., description="Wallet that will receive the purchases")
    purchase_interval_seconds: int = Field(..., description="Seconds between purchases")
    purchase_amount: str = Field(..., description="Amount to spend per purchase (decimal string)")

    class Config:
        json_schema_extra = {
            "example": {
                "wallet_address": "0xE42534Ce546f54234d9DA51F6CA3c2eD1D682990",
                "purchase_interval_seconds": 60,
                "purchase_amount": "0.0001",
            }
        }
