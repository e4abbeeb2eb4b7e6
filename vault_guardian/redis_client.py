"""Redis client for chain data published by the indexer."""

import asyncio
import json
import logging
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Optional, Set

import redis

from .config import settings
from .models import (
    AutoBuyTriggerData,
    AutoSellTriggerData,
    ConstantMultipleTriggerData,
    MarketPrice,
    StopLossTriggerData,
    TriggerStates,
    VaultProtocol,
)

logger = logging.getLogger(__name__)

TRUE_VALUES = ("1", "true", "yes")


def _decimal(value: Any, default: str = "0") -> Decimal:
    return Decimal(str(value if value is not None else default))


def _flag(value: Any, default: bool = False) -> bool:
    """Stored flags arrive as JSON bools or as strings like 'true' and '0'."""
    if value is None:
        return default
    if isinstance(value, str):
        return value.strip().lower() in TRUE_VALUES
    return bool(value)


class RedisClient:
    """Reads prices, markets, proxies, allowances, positions and triggers.

    Keys (prefix from ``REDIS_KEY_PREFIX``):
        {prefix}:markets                  set of valid market ids
        {prefix}:market_params            hash market -> risk parameters
        {prefix}:prices                   hash token -> {"current", "next"}
        {prefix}:proxies                  hash owner -> proxy address
        {prefix}:allowances               hash "token:owner:spender" -> "1"/"0"
        {prefix}:positions:{protocol}     hash owner -> native snapshot
        {prefix}:triggers                 hash owner -> trigger states
    """

    def __init__(self, client: Optional[redis.Redis] = None, prefix: Optional[str] = None):
        self.client: Optional[redis.Redis] = client
        self.prefix = prefix or settings.redis_key_prefix

    def connect(self):
        """Establish Redis connection."""
        try:
            self.client = redis.Redis(
                host=settings.redis_host,
                port=settings.redis_port,
                db=settings.redis_db,
                decode_responses=True,
            )
            self.client.ping()
            logger.info("Connected to Redis")
        except Exception as e:
            logger.error(f"Failed to connect to Redis: {e}")
            raise

    def close(self):
        """Close Redis connection."""
        if self.client:
            self.client.close()
            self.client = None

    def _key(self, *parts: str) -> str:
        return ":".join((self.prefix,) + parts)

    def _hget_json(self, key: str, field: str) -> Optional[Dict]:
        try:
            data_str = self.client.hget(key, field)
            if not data_str:
                return None
            return json.loads(data_str)
        except json.JSONDecodeError as e:
            logger.warning(f"Failed to parse {key}[{field}]: {e}")
            return None
        except Exception as e:
            logger.error(f"Failed to read {key}[{field}] from Redis: {e}")
            return None

    def get_valid_markets(self) -> Set[str]:
        try:
            return set(self.client.smembers(self._key("markets")))
        except Exception as e:
            logger.error(f"Failed to get markets from Redis: {e}")
            return set()

    def get_market_parameters(self, market_id: str) -> Optional[Dict]:
        """Ilk or reserve risk parameters for projecting a new position."""
        return self._hget_json(self._key("market_params"), market_id)

    def get_market_price(self, token: str) -> Optional[MarketPrice]:
        """Current and next oracle price for a collateral token."""
        data = self._hget_json(self._key("prices"), token)
        if not data:
            return None
        try:
            current = _decimal(data.get("current"))
            return MarketPrice(token=token, current=current, next=_decimal(data.get("next"), str(current)))
        except InvalidOperation as e:
            logger.warning(f"Invalid price for {token}: {e}")
            return None

    def get_proxy_address(self, owner: str) -> Optional[str]:
        try:
            return self.client.hget(self._key("proxies"), owner) or None
        except Exception as e:
            logger.error(f"Failed to get proxy for {owner}: {e}")
            return None

    def has_allowance(self, token: str, owner: str, spender: str) -> bool:
        try:
            value = self.client.hget(self._key("allowances"), f"{token}:{owner}:{spender}")
        except Exception as e:
            logger.error(f"Failed to get {token} allowance for {owner}: {e}")
            return False
        return _flag(value)

    def get_native_position(self, protocol: VaultProtocol, owner: str) -> Optional[Dict]:
        return self._hget_json(self._key("positions", VaultProtocol(protocol).value), owner)

    def get_trigger_states(self, owner: str, defaults: Optional[TriggerStates] = None) -> TriggerStates:
        """Triggers stored for ``owner``; missing triggers keep ``defaults``."""
        defaults = defaults or TriggerStates()
        data = self._hget_json(self._key("triggers"), owner)
        if not data:
            return defaults

        try:
            stop_loss = data.get("stop_loss")
            auto_buy = data.get("auto_buy")
            auto_sell = data.get("auto_sell")
            constant_multiple = data.get("constant_multiple")
            return TriggerStates(
                stop_loss=StopLossTriggerData(
                    is_trigger_enabled=_flag(stop_loss.get("is_trigger_enabled")),
                    stop_loss_level=_decimal(stop_loss.get("stop_loss_level")),
                    is_to_collateral=_flag(
                        stop_loss.get("is_to_collateral"), defaults.stop_loss.is_to_collateral
                    ),
                    trigger_id=stop_loss.get("trigger_id"),
                ) if stop_loss else defaults.stop_loss,
                auto_buy=AutoBuyTriggerData(
                    is_trigger_enabled=_flag(auto_buy.get("is_trigger_enabled")),
                    exec_coll_ratio=_decimal(auto_buy.get("exec_coll_ratio")),
                    target_coll_ratio=_decimal(auto_buy.get("target_coll_ratio")),
                    deviation=_decimal(auto_buy.get("deviation")),
                    trigger_id=auto_buy.get("trigger_id"),
                ) if auto_buy else defaults.auto_buy,
                auto_sell=AutoSellTriggerData(
                    is_trigger_enabled=_flag(auto_sell.get("is_trigger_enabled")),
                    exec_coll_ratio=_decimal(auto_sell.get("exec_coll_ratio")),
                    target_coll_ratio=_decimal(auto_sell.get("target_coll_ratio")),
                    deviation=_decimal(auto_sell.get("deviation")),
                    trigger_id=auto_sell.get("trigger_id"),
                ) if auto_sell else defaults.auto_sell,
                constant_multiple=ConstantMultipleTriggerData(
                    is_trigger_enabled=_flag(constant_multiple.get("is_trigger_enabled")),
                    buy_execution_coll_ratio=_decimal(constant_multiple.get("buy_execution_coll_ratio")),
                    sell_execution_coll_ratio=_decimal(constant_multiple.get("sell_execution_coll_ratio")),
                    target_coll_ratio=_decimal(constant_multiple.get("target_coll_ratio")),
                ) if constant_multiple else defaults.constant_multiple,
            )
        except (AttributeError, InvalidOperation) as e:
            logger.warning(f"Failed to parse triggers for {owner}: {e}")
            return defaults


class RedisChainReader:
    """Async view of ``RedisClient`` for the pipeline."""

    def __init__(self, client: RedisClient):
        self.client = client

    async def market_price(self, token: str) -> Optional[MarketPrice]:
        return await asyncio.to_thread(self.client.get_market_price, token)

    async def valid_markets(self) -> Set[str]:
        return await asyncio.to_thread(self.client.get_valid_markets)

    async def market_parameters(self, market_id: str) -> Optional[Dict]:
        return await asyncio.to_thread(self.client.get_market_parameters, market_id)

    async def proxy_address(self, owner: str) -> Optional[str]:
        return await asyncio.to_thread(self.client.get_proxy_address, owner)

    async def allowance(self, token: str, owner: str, spender: str) -> bool:
        return await asyncio.to_thread(self.client.has_allowance, token, owner, spender)

    async def native_position_state(self, protocol: VaultProtocol, owner: str) -> Optional[Dict]:
        return await asyncio.to_thread(self.client.get_native_position, protocol, owner)
