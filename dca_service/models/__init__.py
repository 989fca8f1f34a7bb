"""Pydantic models for settings, domain records and API payloads."""

# Settings models
from .settings import (
    ExecutorSettings,
    SchedulerSettings,
    ServiceSettings,
    SubscriptionSettings,
)

# Subscription models
from .subscription import (
    Subscription,
    normalize_wallet_address,
)

# Purchase models
from .purchase import (
    PurchaseRecord,
    PurchaseResult,
    normalize_tx_hash,
)

# API request models
from .api_request import CreateScheduleRequest

# API response models
from .api_response import (
    ErrorResponse,
    PurchaseResponse,
    ScheduleResponse,
    SchedulerStatusResponse,
    TickReportResponse,
)

__all__ = [
    # Settings
    "ExecutorSettings",
    "SchedulerSettings",
    "ServiceSettings",
    "SubscriptionSettings",
    # Subscription
    "Subscription",
    "normalize_wallet_address",
    # Purchase
    "PurchaseRecord",
    "PurchaseResult",
    "normalize_tx_hash",
    # API requests
    "CreateScheduleRequest",
    # API responses
    "ErrorResponse",
    "PurchaseResponse",
    "ScheduleResponse",
    "SchedulerStatusResponse",
    "TickReportResponse",
]
