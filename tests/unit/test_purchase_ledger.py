"""Tests for PurchaseLedger - append-only purchase history."""

from datetime import datetime, timedelta, timezone

import pytest

from dca_service.models.purchase import PurchaseRecord
from dca_service.repositories.purchase_ledger import (
    DuplicateTxHashError,
    PurchaseLedger,
    get_purchase_ledger,
    reset_purchase_ledger,
)

WALLET = "0xe42534ce546f54234d9da51f6ca3c2ed1d682990"
OTHER_WALLET = "0x2222222222222222222222222222222222222222"
T0 = datetime(2024, 3, 13, 12, 0, tzinfo=timezone.utc)


def make_record(tx_byte="aa", subscription_id="a" * 24, wallet=WALLET, purchased_at=T0):
    return PurchaseRecord(
        subscription_id=subscription_id,
        wallet_address=wallet,
        purchased_at=purchased_at,
        symbol="WETH",
        amount="0.0001",
        price_at_purchase="3500.00",
        tx_hash="0x" + tx_byte * 32,
    )


@pytest.fixture
def ledger():
    ledger = PurchaseLedger()
    yield ledger
    ledger.clear()


class TestAppend:
    """Test appending records."""

    def test_append_and_count(self, ledger):
        ledger.append(make_record())
        assert ledger.count() == 1
        assert len(ledger) == 1

    def test_duplicate_tx_hash_rejected(self, ledger):
        ledger.append(make_record())
        with pytest.raises(DuplicateTxHashError) as exc_info:
            ledger.append(make_record(purchased_at=T0 + timedelta(seconds=5)))
        assert exc_info.value.tx_hash == "0x" + "aa" * 32
        assert ledger.count() == 1

    def test_tx_hash_is_normalized(self, ledger):
        record = PurchaseRecord(**{**make_record().model_dump(), "tx_hash": "0x" + "AB" * 32})
        ledger.append(record)
        assert ledger.exists("0x" + "ab" * 32)
        assert ("0x" + "AB" * 32) in ledger


class TestLatest:
    """Test most-recent lookups."""

    def test_find_latest_none_when_empty(self, ledger):
        assert ledger.find_latest("a" * 24) is None

    def test_find_latest_returns_newest(self, ledger):
        ledger.append(make_record("01", purchased_at=T0))
        newest = ledger.append(make_record("02", purchased_at=T0 + timedelta(seconds=60)))
        assert ledger.find_latest("a" * 24) is newest

    def test_out_of_order_append_keeps_newest(self, ledger):
        newest = ledger.append(make_record("02", purchased_at=T0 + timedelta(seconds=60)))
        ledger.append(make_record("01", purchased_at=T0))
        assert ledger.find_latest("a" * 24) is newest

    def test_latest_is_per_subscription(self, ledger):
        ledger.append(make_record("01"))
        assert ledger.find_latest("b" * 24) is None


class TestQueries:
    """Test history queries."""

    def test_get_by_wallet_newest_first(self, ledger):
        ledger.append(make_record("01", purchased_at=T0))
        ledger.append(make_record("02", purchased_at=T0 + timedelta(seconds=60)))
        ledger.append(make_record("03", subscription_id="b" * 24, wallet=OTHER_WALLET))

        records = ledger.get_by_wallet(WALLET.upper().replace("0X", "0x"))
        assert [r.tx_hash[:4] for r in records] == ["0x02", "0x01"]

    def test_get_by_wallet_malformed_returns_empty(self, ledger):
        assert ledger.get_by_wallet("nope") == []

    def test_find_latest_by_wallet(self, ledger):
        ledger.append(make_record("01", purchased_at=T0))
        newest = ledger.append(make_record("02", purchased_at=T0 + timedelta(seconds=60)))
        assert ledger.find_latest_by_wallet(WALLET) is newest
        assert ledger.find_latest_by_wallet(OTHER_WALLET) is None

    def test_get_by_subscription_and_count(self, ledger):
        ledger.append(make_record("01"))
        ledger.append(make_record("02", purchased_at=T0 + timedelta(seconds=1)))
        ledger.append(make_record("03", subscription_id="b" * 24, wallet=OTHER_WALLET))
        assert len(ledger.get_by_subscription("a" * 24)) == 2
        assert ledger.count_by_subscription("b" * 24) == 1

    def test_get_all_newest_first(self, ledger):
        ledger.append(make_record("01", purchased_at=T0 + timedelta(seconds=10)))
        ledger.append(make_record("02", purchased_at=T0 + timedelta(seconds=20)))
        assert [r.tx_hash[:4] for r in ledger.get_all()] == ["0x02", "0x01"]

    def test_find_by_tx_hash(self, ledger):
        record = ledger.append(make_record("0f"))
        assert ledger.find_by_tx_hash("0x" + "0F" * 32) is record

    def test_statistics(self, ledger):
        ledger.append(make_record("01"))
        ledger.append(make_record("02", purchased_at=T0 + timedelta(seconds=1)))
        ledger.append(make_record("03", subscription_id="b" * 24, wallet=OTHER_WALLET))
        assert ledger.get_statistics() == {
            "total_purchases": 3,
            "unique_subscriptions": 2,
            "unique_wallets": 2,
        }

    def test_clear(self, ledger):
        ledger.append(make_record())
        ledger.clear()
        assert ledger.count() == 0
        assert ledger.find_latest("a" * 24) is None
        assert repr(ledger) == "PurchaseLedger(purchases=0)"


class TestGlobalLedger:
    def test_singleton_and_reset(self):
        ledger = get_purchase_ledger()
        assert ledger is get_purchase_ledger()
        ledger.append(make_record("ee"))
        reset_purchase_ledger()
        assert ledger.count() == 0
