"""Aave position adapter.

Aave expresses risk through a per-reserve liquidation threshold (a variable
collateral factor) instead of a fixed ratio; the equivalent liquidation
ratio is its reciprocal. Positions may hold collateral with no debt at all,
and there is no debt floor.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, Mapping, Optional

from ..models import (
    ZERO,
    MarketPrice,
    PositionData,
    StopLossTriggerData,
    TriggerStates,
    VaultProtocol,
)
from .. import risk_math
from . import validators
from .base import Predicate

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AavePositionState:
    """Reserve configuration and balances of one Aave position.

    ``liquidation_threshold`` and ``liquidation_bonus`` are fractions
    (0.825 = 82.5%, 0.05 = 5%).
    """
    collateral_token: str
    debt_token: str
    collateral_amount: Decimal
    debt_amount: Decimal
    liquidation_threshold: Decimal
    liquidation_bonus: Decimal
    owner: Optional[str] = None
    market_id: Optional[str] = None

    @property
    def liquidation_ratio(self) -> Decimal:
        if self.liquidation_threshold <= 0:
            return ZERO
        return Decimal("1") / self.liquidation_threshold


class AaveAdapter:
    """Maps Aave positions into ``PositionData`` and validates stop-loss edits."""

    protocol = VaultProtocol.AAVE

    add_errors: Dict[str, Predicate] = {
        "hasInsufficientEthFundsForTx": validators.has_insufficient_eth_funds_for_tx,
        "hasNoDebtForStopLoss": validators.has_no_debt_for_stop_loss,
        "isStopLossTriggerAboveCurrentRatio": validators.is_stop_loss_trigger_above_current_ratio,
    }
    add_warnings: Dict[str, Predicate] = {
        "hasPotentialInsufficientEthFundsForTx": validators.has_potential_insufficient_eth_funds_for_tx,
    }
    cancel_errors = ("hasInsufficientEthFundsForTx",)
    cancel_warnings = ("hasPotentialInsufficientEthFundsForTx",)

    def parse_native(self, raw: Mapping[str, Any]) -> AavePositionState:
        return AavePositionState(
            collateral_token=raw["collateral_token"],
            debt_token=raw["debt_token"],
            collateral_amount=Decimal(str(raw.get("collateral_amount", "0"))),
            debt_amount=Decimal(str(raw.get("debt_amount", "0"))),
            liquidation_threshold=Decimal(str(raw["liquidation_threshold"])),
            liquidation_bonus=Decimal(str(raw.get("liquidation_bonus", "0"))),
            owner=raw.get("owner"),
            market_id=raw.get("market_id"),
        )

    def project_native(
        self,
        market_id: str,
        params: Mapping[str, Any],
        deposit_amount: Decimal,
        generate_amount: Decimal,
        owner: Optional[str] = None,
    ) -> AavePositionState:
        """Position that would exist after supplying ``deposit_amount`` and borrowing ``generate_amount``."""
        collateral_token, _, debt_token = market_id.partition("-")
        return AavePositionState(
            collateral_token=collateral_token,
            debt_token=params.get("debt_token") or debt_token,
            collateral_amount=deposit_amount,
            debt_amount=generate_amount,
            liquidation_threshold=Decimal(str(params["liquidation_threshold"])),
            liquidation_bonus=Decimal(str(params.get("liquidation_bonus", "0"))),
            owner=owner,
            market_id=market_id,
        )

    def to_position_data(self, native: AavePositionState, price: MarketPrice) -> PositionData:
        """Map an Aave position, with ``price`` quoted in the debt token."""
        liquidation_ratio = native.liquidation_ratio
        if liquidation_ratio == ZERO:
            logger.warning(
                f"Aave reserve {native.collateral_token} has no liquidation threshold; "
                f"position {native.owner} cannot be protected"
            )
        if not native.debt_amount and native.collateral_amount:
            logger.debug(f"Aave position {native.owner} holds collateral without debt")

        return PositionData(
            locked_collateral=native.collateral_amount,
            debt=native.debt_amount,
            debt_floor=ZERO,
            liquidation_ratio=liquidation_ratio,
            liquidation_price=risk_math.liquidation_price(
                native.collateral_amount, native.debt_amount, liquidation_ratio
            ),
            liquidation_penalty=native.liquidation_bonus,
            position_ratio=risk_math.collateralization_ratio(
                native.collateral_amount, price.current, native.debt_amount
            ),
            next_position_ratio=risk_math.collateralization_ratio(
                native.collateral_amount, price.next, native.debt_amount
            ),
            token=native.collateral_token,
            debt_token=native.debt_token,
            owner=native.owner,
            market_id=native.market_id or f"{native.collateral_token}-{native.debt_token}",
            protocol=self.protocol,
        )

    def default_trigger_states(self) -> TriggerStates:
        return TriggerStates(stop_loss=StopLossTriggerData(is_to_collateral=True, stop_loss_level=ZERO))
