"""Data models for Vault Guardian."""

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Optional

ZERO = Decimal("0")


class VaultProtocol(str, Enum):
    MAKER = "maker"
    AAVE = "aave"


class TriggerType(str, Enum):
    STOP_LOSS = "stop_loss"
    AUTO_BUY = "auto_buy"
    AUTO_SELL = "auto_sell"
    CONSTANT_MULTIPLE = "constant_multiple"


class CloseVaultTo(str, Enum):
    COLLATERAL = "collateral"
    DAI = "dai"


@dataclass(frozen=True)
class MarketPrice:
    """Oracle price for a collateral token, now and at the next oracle update."""
    token: str
    current: Decimal
    next: Decimal


@dataclass(frozen=True)
class PositionData:
    """Protocol-agnostic snapshot of a vault, consumed by the risk engine.

    Ratios are plain multiples (1.5 = 150%). ``liquidation_penalty`` is a
    fraction (0.13 = 13%). ``debt`` is denominated in the debt token and
    prices are debt-token per unit of collateral.
    """
    locked_collateral: Decimal
    debt: Decimal
    debt_floor: Decimal
    liquidation_ratio: Decimal
    liquidation_price: Decimal
    liquidation_penalty: Decimal
    position_ratio: Decimal
    next_position_ratio: Decimal
    token: str
    debt_token: str = "DAI"
    owner: Optional[str] = None
    market_id: Optional[str] = None
    protocol: VaultProtocol = VaultProtocol.MAKER

    @property
    def has_debt(self) -> bool:
        return self.debt > 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "protocol": self.protocol.value,
            "market_id": self.market_id,
            "owner": self.owner,
            "token": self.token,
            "debt_token": self.debt_token,
            "locked_collateral": str(self.locked_collateral),
            "debt": str(self.debt),
            "debt_floor": str(self.debt_floor),
            "liquidation_ratio": str(self.liquidation_ratio),
            "liquidation_price": str(self.liquidation_price),
            "liquidation_penalty": str(self.liquidation_penalty),
            "position_ratio": str(self.position_ratio),
            "next_position_ratio": str(self.next_position_ratio),
        }


# Trigger levels and execution ratios below are in percentage points (200 = 200%).

@dataclass(frozen=True)
class StopLossTriggerData:
    is_trigger_enabled: bool = False
    stop_loss_level: Decimal = ZERO
    is_to_collateral: bool = False
    trigger_id: Optional[int] = None


@dataclass(frozen=True)
class AutoBuyTriggerData:
    is_trigger_enabled: bool = False
    exec_coll_ratio: Decimal = ZERO
    target_coll_ratio: Decimal = ZERO
    deviation: Decimal = ZERO
    max_buy_or_min_sell_price: Optional[Decimal] = None
    trigger_id: Optional[int] = None


@dataclass(frozen=True)
class AutoSellTriggerData:
    is_trigger_enabled: bool = False
    exec_coll_ratio: Decimal = ZERO
    target_coll_ratio: Decimal = ZERO
    deviation: Decimal = ZERO
    max_buy_or_min_sell_price: Optional[Decimal] = None
    trigger_id: Optional[int] = None


@dataclass(frozen=True)
class ConstantMultipleTriggerData:
    is_trigger_enabled: bool = False
    buy_execution_coll_ratio: Decimal = ZERO
    sell_execution_coll_ratio: Decimal = ZERO
    target_coll_ratio: Decimal = ZERO


@dataclass(frozen=True)
class TriggerStates:
    """All automation triggers of one position."""
    stop_loss: StopLossTriggerData = field(default_factory=StopLossTriggerData)
    auto_buy: AutoBuyTriggerData = field(default_factory=AutoBuyTriggerData)
    auto_sell: AutoSellTriggerData = field(default_factory=AutoSellTriggerData)
    constant_multiple: ConstantMultipleTriggerData = field(default_factory=ConstantMultipleTriggerData)

    def get(self, trigger: TriggerType):
        return getattr(self, trigger.value)


@dataclass(frozen=True)
class EnvironmentData:
    """Wallet and market figures needed by gas and boundary checks."""
    eth_balance: Decimal = ZERO
    eth_price: Decimal = ZERO
    next_collateral_price: Decimal = ZERO
