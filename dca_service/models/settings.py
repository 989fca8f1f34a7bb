"""Service settings models.

Models for config/service.yaml.
"""

from typing import Optional

from pydantic import BaseModel, Field


class SchedulerSettings(BaseModel):
    """Tick loop and shutdown behaviour."""

    enabled: bool = Field(default=True, description="Start the scheduler with the application")
    tick_interval_seconds: float = Field(
        default=1.0, gt=0, description="Delay between the start of consecutive ticks"
    )
    drain_timeout_seconds: float = Field(
        default=3.0, ge=0, description="How long shutdown waits for in-flight purchases"
    )

    class Config:
        json_schema_extra = {
            "example": {
                "enabled": True,
                "tick_interval_seconds": 1.0,
                "drain_timeout_seconds": 3.0,
            }
        }


class SubscriptionSettings(BaseModel):
    """Registration limits for DCA subscriptions."""

    min_purchase_interval_seconds: int = Field(
        default=10, gt=0, description="Shortest interval accepted at registration"
    )
    max_purchase_interval_seconds: int = Field(
        default=31_536_000, gt=0, description="Longest interval accepted at registration (1 year)"
    )


class ExecutorSettings(BaseModel):
    """Simulated purchase executor configuration."""

    symbol: str = Field(default="WETH", description="Symbol reported for simulated purchases")
    coin_address: Optional[str] = Field(
        default="0x4200000000000000000000000000000000000006",
        description="Token contract reported for simulated purchases",
    )
    price: str = Field(default="1.0", description="Price reported for simulated purchases")
    latency_seconds: float = Field(default=0.0, ge=0, description="Simulated swap latency")
    simulate_failures: bool = Field(default=False, description="Randomly fail purchases")
    failure_rate: float = Field(default=0.05, ge=0.0, le=1.0, description="Failure rate (0.0-1.0)")


class ServiceSettings(BaseModel):
    """Complete service.yaml configuration."""

    service_name: str = Field(default="dca-scheduler-service", description="Service name")
    scheduler: SchedulerSettings = Field(default_factory=SchedulerSettings)
    subscriptions: SubscriptionSettings = Field(default_factory=SubscriptionSettings)
    executor: ExecutorSettings = Field(default_factory=ExecutorSettings)
