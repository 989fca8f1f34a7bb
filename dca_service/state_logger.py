"""State change logging for the scheduler, subscriptions and the ledger.

Tracks transitions with before/after values for debugging and auditing.
"""

from datetime import datetime
from typing import Any, Optional

from dca_service.logging_config import get_logger

logger = get_logger(__name__)


def log_scheduler_state_change(
    old_state: Any,
    new_state: Any,
    reason: Optional[str] = None,
    **extra_context: Any,
) -> None:
    """Log a lifecycle controller state transition.

    Args:
        old_state: Previous SchedulerState
        new_state: New SchedulerState
        reason: Why the transition happened
        **extra_context: Additional context (tick_count, in_flight, etc.)
    """
    logger.info(
        "scheduler_state_changed",
        old_state=str(old_state),
        new_state=str(new_state),
        reason=reason,
        **extra_context,
    )


def log_subscription_active_change(
    schedule_id: str,
    wallet_address: str,
    old_value: bool,
    new_value: bool,
    reason: Optional[str] = None,
    **extra_context: Any,
) -> None:
    """Log activation/deactivation of a subscription.

    Args:
        schedule_id: Subscription identifier
        wallet_address: Wallet address
        old_value: Previous active flag
        new_value: New active flag
        reason: Reason for the change
        **extra_context: Additional context
    """
    logger.info(
        "subscription_active_changed",
        schedule_id=schedule_id,
        wallet_address=wallet_address,
        old_value=old_value,
        new_value=new_value,
        reason=reason,
        **extra_context,
    )


def log_purchase_recorded(
    schedule_id: str,
    tx_hash: str,
    purchased_at: datetime,
    previous_purchase_at: Optional[datetime] = None,
    **extra_context: Any,
) -> None:
    """Log a new ledger entry and the gap since the previous one."""
    logger.info(
        "purchase_recorded",
        schedule_id=schedule_id,
        tx_hash=tx_hash,
        purchased_at=purchased_at.isoformat(),
        seconds_since_previous=(
            round((purchased_at - previous_purchase_at).total_seconds(), 3)
            if previous_purchase_at
            else None
        ),
        **extra_context,
    )
