"""Purchase ledger - append-only in-memory record of completed purchases.

Thread-safe; tx_hash is the uniqueness key that keeps retried or abandoned
executor calls from producing duplicate entries.
"""

import threading
from typing import Dict, List, Optional

from dca_service.models.purchase import PurchaseRecord
from dca_service.models.subscription import normalize_wallet_address


class DuplicateTxHashError(ValueError):
    """Raised when a purchase with the same tx_hash is already recorded."""

    def __init__(self, tx_hash: str):
        super().__init__(f"Purchase with tx_hash '{tx_hash}' already recorded")
        self.tx_hash = tx_hash


class PurchaseLedger:
    """In-memory append-only ledger of PurchaseRecord entries."""

    def __init__(self):
        self._records: List[PurchaseRecord] = []
        self._by_tx_hash: Dict[str, PurchaseRecord] = {}
        self._latest: Dict[str, PurchaseRecord] = {}
        self._lock = threading.RLock()

    def append(self, record: PurchaseRecord) -> PurchaseRecord:
        """Append a purchase record.

        Args:
            record: PurchaseRecord to store

        Returns:
            The stored record

        Raises:
            DuplicateTxHashError: If the tx_hash is already recorded
        """
        with self._lock:
            if record.tx_hash in self._by_tx_hash:
                raise DuplicateTxHashError(record.tx_hash)
            self._records.append(record)
            self._by_tx_hash[record.tx_hash] = record

            latest = self._latest.get(record.subscription_id)
            if latest is None or record.purchased_at >= latest.purchased_at:
                self._latest[record.subscription_id] = record
            return record

    def find_latest(self, subscription_id: str) -> Optional[PurchaseRecord]:
        """Most recent purchase (by purchased_at) for a subscription, or None."""
        with self._lock:
            return self._latest.get(subscription_id)

    def find_by_tx_hash(self, tx_hash: str) -> Optional[PurchaseRecord]:
        with self._lock:
            return self._by_tx_hash.get(tx_hash.lower())

    def exists(self, tx_hash: str) -> bool:
        with self._lock:
            return tx_hash.lower() in self._by_tx_hash

    def get_by_subscription(self, subscription_id: str) -> List[PurchaseRecord]:
        """All purchases of a subscription, newest first."""
        with self._lock:
            records = [r for r in self._records if r.subscription_id == subscription_id]
        return sorted(records, key=lambda r: r.purchased_at, reverse=True)

    def get_by_wallet(self, address: str) -> List[PurchaseRecord]:
        """All purchases for a wallet address (case-insensitive), newest first."""
        try:
            wallet = normalize_wallet_address(address)
        except ValueError:
            return []
        with self._lock:
            records = [r for r in self._records if r.wallet_address == wallet]
        return sorted(records, key=lambda r: r.purchased_at, reverse=True)

    def find_latest_by_wallet(self, address: str) -> Optional[PurchaseRecord]:
        records = self.get_by_wallet(address)
        return records[0] if records else None

    def get_all(self) -> List[PurchaseRecord]:
        """All purchases, newest first."""
        with self._lock:
            records = list(self._records)
        return sorted(records, key=lambda r: r.purchased_at, reverse=True)

    def count(self) -> int:
        with self._lock:
            return len(self._records)

    def count_by_subscription(self, subscription_id: str) -> int:
        with self._lock:
            return sum(1 for r in self._records if r.subscription_id == subscription_id)

    def clear(self) -> None:
        """Clear all records.

        Warning: This removes all data. Use with caution.
        """
        with self._lock:
            self._records.clear()
            self._by_tx_hash.clear()
            self._latest.clear()

    def get_statistics(self) -> Dict[str, int]:
        """Get ledger statistics.

        Returns:
            Dictionary with total_purchases, unique_subscriptions and unique_wallets
        """
        with self._lock:
            records = list(self._records)
        return {
            "total_purchases": len(records),
            "unique_subscriptions": len(set(r.subscription_id for r in records)),
            "unique_wallets": len(set(r.wallet_address for r in records)),
        }

    def __len__(self) -> int:
        return self.count()

    def __contains__(self, tx_hash: str) -> bool:
        return self.exists(tx_hash)

    def __repr__(self) -> str:
        return f"PurchaseLedger(purchases={self.count()})"


# Global ledger instance
_ledger_instance: Optional[PurchaseLedger] = None
_ledger_lock = threading.Lock()


def get_purchase_ledger() -> PurchaseLedger:
    """Get global purchase ledger instance (singleton)."""
    global _ledger_instance
    if _ledger_instance is None:
        with _ledger_lock:
            if _ledger_instance is None:
                _ledger_instance = PurchaseLedger()
    return _ledger_instance


def reset_purchase_ledger() -> None:
    """Reset global purchase ledger (clears all data)."""
    get_purchase_ledger().clear()
