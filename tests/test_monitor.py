"""Tests for the periodic vault review."""

from decimal import Decimal
from unittest.mock import MagicMock

from vault_guardian.config import Settings
from vault_guardian.models import (
    MarketPrice,
    StopLossTriggerData,
    TriggerStates,
    VaultProtocol,
)
from vault_guardian.monitor import VaultMonitor

MAKER_VAULT = {
    "ilk": "ETH-A",
    "locked_collateral": "10",
    "debt": "5000",
    "debt_floor": "1000",
    "liquidation_ratio": "1.5",
    "liquidation_penalty": "0.13",
    "owner": "0xowner",
}


def make_monitor(watched="maker:0xowner:ETH-A", triggers=None):
    redis = MagicMock()
    redis.get_market_price.return_value = MarketPrice(
        token="ETH", current=Decimal("1100"), next=Decimal("900")
    )
    redis.get_native_position.return_value = dict(MAKER_VAULT)
    redis.get_trigger_states.return_value = triggers or TriggerStates()
    config = Settings(
        watched_vaults=watched,
        min_col_ratio_trigger_offset=Decimal("5"),
        next_coll_ratio_offset=Decimal("3"),
        default_threshold_from_lowest_sl=Decimal("45"),
    )
    return VaultMonitor(redis_client=redis, config=config), redis


class TestCheckVault:

    def test_reports_live_stop_loss(self):
        triggers = TriggerStates(
            stop_loss=StopLossTriggerData(is_trigger_enabled=True, stop_loss_level=Decimal("170"))
        )
        monitor, redis = make_monitor(triggers=triggers)

        report = monitor.check_vault(VaultProtocol.MAKER, "0xowner", "ETH-A")

        redis.get_market_price.assert_called_once_with("ETH")
        redis.get_native_position.assert_called_once_with(VaultProtocol.MAKER, "0xowner")
        assert report.position.liquidation_price == Decimal("750")
        assert report.metadata.values.slider_max == Decimal("177")
        assert report.validation is not None
        assert not report.validation.blocks_submission

    def test_no_trigger_has_no_validation(self):
        monitor, _ = make_monitor()

        report = monitor.check_vault(VaultProtocol.MAKER, "0xowner", "ETH-A")

        assert report.validation is None
        assert report.metadata.values.initial_sl_ratio_when_trigger_doesnt_exist == Decimal("200")

    def test_missing_price_skips(self):
        monitor, redis = make_monitor()
        redis.get_market_price.return_value = None

        assert monitor.check_vault(VaultProtocol.MAKER, "0xowner", "ETH-A") is None

    def test_missing_position_skips(self):
        monitor, redis = make_monitor()
        redis.get_native_position.return_value = None

        assert monitor.check_vault(VaultProtocol.MAKER, "0xowner", "ETH-A") is None


class TestCheckAllVaults:

    def test_checks_each_watched_vault(self):
        monitor, _ = make_monitor(watched="maker:0xowner:ETH-A, maker:0xother:ETH-A")

        reports = monitor.check_all_vaults()

        assert [r.owner for r in reports] == ["0xowner", "0xother"]

    def test_one_broken_vault_does_not_stop_the_rest(self):
        monitor, redis = make_monitor(watched="maker:0xbroken:ETH-A,maker:0xowner:ETH-A")
        redis.get_native_position.side_effect = [{"debt": "1"}, dict(MAKER_VAULT)]

        reports = monitor.check_all_vaults()

        assert [r.owner for r in reports] == ["0xowner"]

    def test_unknown_protocol_is_skipped(self):
        monitor, _ = make_monitor(watched="compound:0xowner:ETH-A")

        assert monitor.check_all_vaults() == []

    def test_nothing_watched(self):
        monitor, redis = make_monitor(watched="")

        assert monitor.check_all_vaults() == []
        redis.get_market_price.assert_not_called()

    def test_malformed_entries_ignored(self):
        monitor, _ = make_monitor(watched="maker:0xowner,,maker:0xowner:ETH-A")

        assert monitor.config.watched_vault_list == [("maker", "0xowner", "ETH-A")]


class TestStop:

    def test_stop_is_idempotent(self):
        monitor, redis = make_monitor()
        monitor._running = True

        monitor.stop()
        redis.client = None
        monitor.stop()

        redis.close.assert_called_once()
