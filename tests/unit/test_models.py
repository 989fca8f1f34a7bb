"""Tests for subscription and purchase models."""

from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from dca_service.models import (
    PurchaseRecord,
    PurchaseResponse,
    PurchaseResult,
    ScheduleResponse,
    Subscription,
    normalize_tx_hash,
    normalize_wallet_address,
)

WALLET = "0xE42534Ce546f54234d9DA51F6CA3c2eD1D682990"


@pytest.fixture
def subscription():
    return Subscription(
        schedule_id="a" * 24,
        wallet_address=WALLET,
        purchase_interval_seconds=60,
        purchase_amount="0.0001",
    )


class TestSubscription:
    def test_wallet_is_lower_cased(self, subscription):
        assert subscription.wallet_address == WALLET.lower()

    def test_defaults(self, subscription):
        assert subscription.active is True
        assert subscription.registered_at.tzinfo is not None

    def test_naive_registration_time_is_utc(self):
        subscription = Subscription(
            schedule_id="a" * 24,
            wallet_address=WALLET,
            purchase_interval_seconds=60,
            purchase_amount="1",
            registered_at=datetime(2024, 3, 13, 12, 0),
        )
        assert subscription.registered_at == datetime(2024, 3, 13, 12, 0, tzinfo=timezone.utc)

    def test_offset_registration_time_converted_to_utc(self):
        tz = timezone(timedelta(hours=2))
        subscription = Subscription(
            schedule_id="a" * 24,
            wallet_address=WALLET,
            purchase_interval_seconds=60,
            purchase_amount="1",
            registered_at=datetime(2024, 3, 13, 14, 0, tzinfo=tz),
        )
        assert subscription.registered_at.utcoffset() == timedelta(0)
        assert subscription.registered_at.hour == 12

    @pytest.mark.parametrize("interval", [0, -5, 31_536_001])
    def test_interval_bounds(self, interval):
        with pytest.raises(ValidationError):
            Subscription(
                schedule_id="a" * 24,
                wallet_address=WALLET,
                purchase_interval_seconds=interval,
                purchase_amount="1",
            )

    @pytest.mark.parametrize("amount", ["1", "0.5", ".5", "100.25"])
    def test_valid_amounts(self, amount):
        Subscription(
            schedule_id="a" * 24,
            wallet_address=WALLET,
            purchase_interval_seconds=60,
            purchase_amount=amount,
        )

    def test_invalid_wallet(self):
        with pytest.raises(ValidationError):
            Subscription(
                schedule_id="a" * 24,
                wallet_address="0xnothex",
                purchase_interval_seconds=60,
                purchase_amount="1",
            )

    def test_normalize_wallet_address(self):
        assert normalize_wallet_address(f"  {WALLET} ") == WALLET.lower()
        with pytest.raises(ValueError):
            normalize_wallet_address("0x12")


class TestPurchaseModels:
    def test_tx_hash_normalized(self):
        assert normalize_tx_hash("0x" + "AB" * 32) == "0x" + "ab" * 32
        with pytest.raises(ValueError):
            normalize_tx_hash("0x1234")

    def test_record_from_result(self, subscription):
        result = PurchaseResult(
            symbol="WETH",
            amount="0.0001",
            price_at_purchase="3500.0",
            tx_hash="0x" + "CD" * 32,
            coin_address="0x4200000000000000000000000000000000000006",
        )
        purchased_at = datetime(2024, 3, 13, 12, 1, tzinfo=timezone.utc)

        record = PurchaseRecord.from_result(subscription, result, purchased_at=purchased_at)

        assert record.subscription_id == subscription.schedule_id
        assert record.wallet_address == subscription.wallet_address
        assert record.purchased_at == purchased_at
        assert record.tx_hash == "0x" + "cd" * 32
        assert record.coin_address == result.coin_address

    def test_response_models(self, subscription):
        record = PurchaseRecord(
            subscription_id=subscription.schedule_id,
            wallet_address=subscription.wallet_address,
            purchased_at=datetime(2024, 3, 13, 12, 1, tzinfo=timezone.utc),
            symbol="WETH",
            amount="0.0001",
            price_at_purchase="3500.0",
            tx_hash="0x" + "ef" * 32,
        )
        assert PurchaseResponse.from_record(record).schedule_id == subscription.schedule_id
        assert ScheduleResponse.from_subscription(subscription).active is True
