"""Subscription store - in-memory storage for DCA subscriptions.

One subscription per wallet address; lookups by schedule id and wallet.
"""

import threading
from typing import Dict, List, Optional

from dca_service.models.subscription import Subscription, normalize_wallet_address


class SubscriptionNotFoundError(Exception):
    """Raised when a subscription is not found in the store."""

    pass


class SubscriptionExistsError(ValueError):
    """Raised when a wallet address or schedule id is already registered."""

    pass


class SubscriptionStore:
    """In-memory storage for subscriptions.

    Thread-safe storage with lookup by schedule_id and wallet address. The
    scheduler reads it from worker threads, the API from the event loop.
    """

    def __init__(self):
        """Initialize subscription store with empty storage."""
        self._subscriptions: Dict[str, Subscription] = {}
        self._by_wallet: Dict[str, str] = {}
        self._lock = threading.RLock()

    def add(self, subscription: Subscription) -> None:
        """Add a subscription to the store.

        Args:
            subscription: Subscription to store

        Raises:
            SubscriptionExistsError: If the schedule id or wallet is already registered
        """
        with self._lock:
            if subscription.schedule_id in self._subscriptions:
                raise SubscriptionExistsError(
                    f"Subscription '{subscription.schedule_id}' already exists"
                )
            if subscription.wallet_address in self._by_wallet:
                raise SubscriptionExistsError(
                    f"Wallet {subscription.wallet_address} already has a subscription"
                )
            self._subscriptions[subscription.schedule_id] = subscription
            self._by_wallet[subscription.wallet_address] = subscription.schedule_id

    def get_by_id(self, schedule_id: str) -> Subscription:
        """Get subscription by schedule id.

        Raises:
            SubscriptionNotFoundError: If schedule id not found
        """
        with self._lock:
            subscription = self._subscriptions.get(schedule_id)
            if subscription is None:
                raise SubscriptionNotFoundError(f"Subscription not found: {schedule_id}")
            return subscription

    def find_by_id(self, schedule_id: str) -> Optional[Subscription]:
        """Find subscription by schedule id (returns None if not found)."""
        with self._lock:
            return self._subscriptions.get(schedule_id)

    def find_by_wallet(self, address: str) -> Optional[Subscription]:
        """Find the subscription for a wallet address (case-insensitive).

        Args:
            address: Wallet address in any letter case

        Returns:
            Subscription if found, None otherwise (also for malformed addresses)
        """
        try:
            wallet = normalize_wallet_address(address)
        except ValueError:
            return None
        with self._lock:
            schedule_id = self._by_wallet.get(wallet)
            if schedule_id is None:
                return None
            return self._subscriptions.get(schedule_id)

    def list_active(self) -> List[Subscription]:
        """Get all subscriptions the scheduler should consider.

        Returns:
            Subscriptions with active=True
        """
        with self._lock:
            return [s for s in self._subscriptions.values() if s.active]

    def get_all(self) -> List[Subscription]:
        """Get all subscriptions, oldest registration first."""
        with self._lock:
            return sorted(self._subscriptions.values(), key=lambda s: s.registered_at)

    def update(self, subscription: Subscription) -> None:
        """Replace an existing subscription.

        Raises:
            SubscriptionNotFoundError: If schedule id not found
        """
        with self._lock:
            existing = self._subscriptions.get(subscription.schedule_id)
            if existing is None:
                raise SubscriptionNotFoundError(
                    f"Subscription not found: {subscription.schedule_id}"
                )
            if existing.wallet_address != subscription.wallet_address:
                raise SubscriptionExistsError("Wallet address of a subscription cannot change")
            self._subscriptions[subscription.schedule_id] = subscription

    def set_active(self, schedule_id: str, active: bool, reason: Optional[str] = None) -> Subscription:
        """Activate or deactivate a subscription.

        Args:
            schedule_id: Subscription identifier
            active: New active flag
            reason: Reason recorded in the state change log

        Returns:
            Updated Subscription

        Raises:
            SubscriptionNotFoundError: If schedule id not found
        """
        with self._lock:
            subscription = self.get_by_id(schedule_id)
            subscription.set_active(active, reason=reason)
            return subscription

    def exists(self, schedule_id: str) -> bool:
        with self._lock:
            return schedule_id in self._subscriptions

    def count(self) -> int:
        with self._lock:
            return len(self._subscriptions)

    def clear(self) -> None:
        """Clear all subscriptions from the store.

        Warning: This removes all data. Use with caution.
        """
        with self._lock:
            self._subscriptions.clear()
            self._by_wallet.clear()

    def get_statistics(self) -> Dict[str, int]:
        """Get subscription store statistics.

        Returns:
            Dictionary with total, active and inactive counts
        """
        with self._lock:
            subscriptions = list(self._subscriptions.values())
            active = sum(1 for s in subscriptions if s.active)
            return {
                "total_subscriptions": len(subscriptions),
                "active": active,
                "inactive": len(subscriptions) - active,
            }

    def __len__(self) -> int:
        return self.count()

    def __contains__(self, schedule_id: str) -> bool:
        return self.exists(schedule_id)

    def __repr__(self) -> str:
        return f"SubscriptionStore(subscriptions={self.count()})"


# Global store instance
_store_instance: Optional[SubscriptionStore] = None
_store_lock = threading.Lock()


def get_subscription_store() -> SubscriptionStore:
    """Get global subscription store instance (singleton)."""
    global _store_instance
    if _store_instance is None:
        with _store_lock:
            if _store_instance is None:
                _store_instance = SubscriptionStore()
    return _store_instance


def reset_subscription_store() -> None:
    """Reset global subscription store (clears all data)."""
    get_subscription_store().clear()
