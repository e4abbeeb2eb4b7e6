"""Tests for the Redis readers, with the Redis connection mocked out."""

import asyncio
import json
import pytest
from decimal import Decimal
from unittest.mock import MagicMock

from vault_guardian.models import MarketPrice, TriggerStates, VaultProtocol
from vault_guardian.protocols import get_adapter
from vault_guardian.redis_client import RedisChainReader, RedisClient


def make_client(hashes=None, markets=()):
    """RedisClient backed by a MagicMock that serves ``hashes[key][field]``."""
    hashes = hashes or {}
    mock = MagicMock()
    mock.hget.side_effect = lambda key, field: hashes.get(key, {}).get(field)
    mock.smembers.return_value = set(markets)
    return RedisClient(client=mock, prefix="vaults"), mock


class TestReads:

    def test_market_price(self):
        client, _ = make_client({"vaults:prices": {"ETH": json.dumps({"current": "1000", "next": "990.5"})}})

        assert client.get_market_price("ETH") == MarketPrice(
            token="ETH", current=Decimal("1000"), next=Decimal("990.5")
        )

    def test_next_price_defaults_to_current(self):
        client, _ = make_client({"vaults:prices": {"ETH": json.dumps({"current": "1000"})}})

        assert client.get_market_price("ETH").next == Decimal("1000")

    def test_missing_or_malformed_price(self):
        client, _ = make_client({"vaults:prices": {"WBTC": "{not json"}})

        assert client.get_market_price("ETH") is None
        assert client.get_market_price("WBTC") is None

    def test_valid_markets(self):
        client, mock = make_client(markets={"ETH-A", "WBTC-A"})

        assert client.get_valid_markets() == {"ETH-A", "WBTC-A"}
        mock.smembers.assert_called_once_with("vaults:markets")

    def test_redis_error_yields_empty_markets(self):
        client, mock = make_client()
        mock.smembers.side_effect = ConnectionError("down")

        assert client.get_valid_markets() == set()

    def test_proxy_and_allowance(self):
        client, _ = make_client({
            "vaults:proxies": {"0xowner": "0xproxy"},
            "vaults:allowances": {"WBTC:0xowner:0xproxy": "1"},
        })

        assert client.get_proxy_address("0xowner") == "0xproxy"
        assert client.get_proxy_address("0xother") is None
        assert client.has_allowance("WBTC", "0xowner", "0xproxy") is True
        assert client.has_allowance("USDC", "0xowner", "0xproxy") is False

    def test_native_position_key_per_protocol(self):
        snapshot = {"ilk": "ETH-A", "liquidation_ratio": "1.5"}
        client, _ = make_client({"vaults:positions:maker": {"0xowner": json.dumps(snapshot)}})

        assert client.get_native_position(VaultProtocol.MAKER, "0xowner") == snapshot
        assert client.get_native_position("aave", "0xowner") is None

    @pytest.mark.parametrize("stored, expected", [
        ("1", True), ("true", True), ("True", True),
        ("0", False), ("false", False), ("False", False), ("", False),
    ])
    def test_string_allowance_flags(self, stored, expected):
        client, _ = make_client({"vaults:allowances": {"WBTC:0xowner:0xproxy": stored}})

        assert client.has_allowance("WBTC", "0xowner", "0xproxy") is expected

    def test_market_parameters(self):
        params = {"liquidation_ratio": "1.5", "debt_floor": "5000"}
        client, _ = make_client({"vaults:market_params": {"WBTC-A": json.dumps(params)}})

        assert client.get_market_parameters("WBTC-A") == params
        assert client.get_market_parameters("ETH-A") is None


class TestTriggerStates:

    def test_partial_triggers_keep_defaults(self):
        stored = {"stop_loss": {"is_trigger_enabled": True, "stop_loss_level": "180", "trigger_id": 12}}
        client, _ = make_client({"vaults:triggers": {"0xowner": json.dumps(stored)}})
        defaults = get_adapter("aave").default_trigger_states()

        states = client.get_trigger_states("0xowner", defaults=defaults)

        assert states.stop_loss.is_trigger_enabled is True
        assert states.stop_loss.stop_loss_level == Decimal("180")
        assert states.stop_loss.is_to_collateral is True
        assert states.stop_loss.trigger_id == 12
        assert states.auto_sell == defaults.auto_sell

    def test_sibling_triggers(self):
        stored = {
            "auto_sell": {"is_trigger_enabled": True, "exec_coll_ratio": 180, "target_coll_ratio": 200},
            "constant_multiple": {"is_trigger_enabled": True, "sell_execution_coll_ratio": "170"},
        }
        client, _ = make_client({"vaults:triggers": {"0xowner": json.dumps(stored)}})

        states = client.get_trigger_states("0xowner")

        assert states.auto_sell.exec_coll_ratio == Decimal("180")
        assert states.constant_multiple.sell_execution_coll_ratio == Decimal("170")

    def test_unparseable_triggers_fall_back(self):
        client, _ = make_client({"vaults:triggers": {"0xowner": json.dumps({"stop_loss": "on"})}})

        assert client.get_trigger_states("0xowner") == TriggerStates()

    def test_string_trigger_flags(self):
        stored = {
            "stop_loss": {"is_trigger_enabled": "false", "stop_loss_level": "180", "is_to_collateral": "0"},
            "auto_sell": {"is_trigger_enabled": "true", "exec_coll_ratio": "180"},
        }
        client, _ = make_client({"vaults:triggers": {"0xowner": json.dumps(stored)}})
        defaults = get_adapter("aave").default_trigger_states()

        states = client.get_trigger_states("0xowner", defaults=defaults)

        assert states.stop_loss.is_trigger_enabled is False
        assert states.stop_loss.is_to_collateral is False
        assert states.auto_sell.is_trigger_enabled is True


class TestChainReader:

    def test_async_reads_delegate(self):
        client, _ = make_client(
            {"vaults:proxies": {"0xowner": "0xproxy"}},
            markets={"ETH-A"},
        )
        reader = RedisChainReader(client)

        async def scenario():
            return await reader.valid_markets(), await reader.proxy_address("0xowner")

        markets, proxy = asyncio.run(scenario())

        assert markets == {"ETH-A"}
        assert proxy == "0xproxy"

    def test_async_market_parameters(self):
        params = {"liquidation_threshold": "0.8"}
        client, _ = make_client({"vaults:market_params": {"ETH-USDC": json.dumps(params)}})
        reader = RedisChainReader(client)

        assert asyncio.run(reader.market_parameters("ETH-USDC")) == params
