"""Subscription registration and activation.

Responsibilities:
- Validate and register new DCA subscriptions (one per wallet)
- Activate / deactivate subscriptions
- Lookups used by the REST layer
"""

from datetime import datetime
from typing import List, Optional

from pydantic import ValidationError

from dca_service.logging_config import get_logger
from dca_service.models.settings import SubscriptionSettings
from dca_service.models.subscription import Subscription
from dca_service.repositories.subscription_store import (
    SubscriptionExistsError,
    SubscriptionStore,
    get_subscription_store,
)
from dca_service.services.clock import Clock, SystemClock
from dca_service.utils.identifiers import generate_schedule_id

logger = get_logger(__name__)


class InvalidSubscriptionError(ValueError):
    """Raised when registration data is invalid."""

    pass


class SubscriptionManager:
    """Registration front-end over the subscription store."""

    def __init__(
        self,
        store: Optional[SubscriptionStore] = None,
        clock: Optional[Clock] = None,
        settings: Optional[SubscriptionSettings] = None,
    ):
        """Initialize subscription manager.

        Args:
            store: Subscription store (defaults to global instance)
            clock: Time source for registered_at (defaults to SystemClock)
            settings: Registration limits (defaults to configured limits)
        """
        self.store = store or get_subscription_store()
        self.clock = clock or SystemClock()
        if settings is None:
            from dca_service.config import get_config

            settings = get_config().subscription_settings
        self.settings = settings

    def register(
        self,
        wallet_address: str,
        purchase_interval_seconds: int,
        purchase_amount: str,
        registered_at: Optional[datetime] = None,
    ) -> Subscription:
        """Register a new subscription.

        Args:
            wallet_address: Wallet address (any letter case)
            purchase_interval_seconds: Seconds between purchases
            purchase_amount: Decimal string amount per purchase
            registered_at: Registration time (defaults to clock.now())

        Returns:
            The stored Subscription

        Raises:
            InvalidSubscriptionError: If any field is invalid
            SubscriptionExistsError: If the wallet already has a subscription
        """
        minimum = self.settings.min_purchase_interval_seconds
        maximum = self.settings.max_purchase_interval_seconds
        if not minimum <= purchase_interval_seconds <= maximum:
            raise InvalidSubscriptionError(
                f"Purchase interval must be between {minimum} and {maximum} seconds, "
                f"got {purchase_interval_seconds}"
            )

        now = registered_at or self.clock.now()
        try:
            subscription = Subscription(
                schedule_id=generate_schedule_id(int(now.timestamp())),
                wallet_address=wallet_address,
                purchase_interval_seconds=purchase_interval_seconds,
                purchase_amount=purchase_amount,
                registered_at=now,
                updated_at=now,
            )
        except ValidationError as e:
            messages = "; ".join(err["msg"] for err in e.errors())
            raise InvalidSubscriptionError(messages) from e

        if self.store.find_by_wallet(subscription.wallet_address) is not None:
            raise SubscriptionExistsError(
                f"Wallet {subscription.wallet_address} already has a subscription"
            )
        self.store.add(subscription)

        logger.info(
            "subscription_registered",
            schedule_id=subscription.schedule_id,
            wallet_address=subscription.wallet_address,
            interval_seconds=subscription.purchase_interval_seconds,
            amount=subscription.purchase_amount,
        )
        return subscription

    def activate(self, schedule_id: str, reason: str = "activated via API") -> Subscription:
        """Raises SubscriptionNotFoundError if the schedule does not exist."""
        return self.store.set_active(schedule_id, True, reason=reason)

    def deactivate(self, schedule_id: str, reason: str = "deactivated via API") -> Subscription:
        """Stop future purchases; recorded history is kept."""
        return self.store.set_active(schedule_id, False, reason=reason)

    def get(self, schedule_id: str) -> Subscription:
        return self.store.get_by_id(schedule_id)

    def find_by_wallet(self, wallet_address: str) -> Optional[Subscription]:
        return self.store.find_by_wallet(wallet_address)

    def list_all(self) -> List[Subscription]:
        return self.store.get_all()


# Global manager instance
_manager_instance: Optional[SubscriptionManager] = None


def get_subscription_manager() -> SubscriptionManager:
    """Get global subscription manager instance (singleton)."""
    global _manager_instance
    if _manager_instance is None:
        _manager_instance = SubscriptionManager()
    return _manager_instance


def reset_subscription_manager() -> None:
    global _manager_instance
    _manager_instance = None
