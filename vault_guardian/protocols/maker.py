"""Maker vault adapter.

Maker markets (ilks) have a fixed liquidation ratio. Vaults whose debt sits
below the ilk's debt floor can only be closed, never adjusted.
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


def token_from_market(market_id: str) -> str:
    """``ETH-A`` -> ``ETH``."""
    return market_id.split("-")[0]


@dataclass(frozen=True)
class MakerVaultState:
    """Urn and ilk figures for one Maker vault."""
    ilk: str
    locked_collateral: Decimal
    debt: Decimal
    debt_floor: Decimal
    liquidation_ratio: Decimal
    liquidation_penalty: Decimal
    vault_id: Optional[int] = None
    owner: Optional[str] = None

    @property
    def token(self) -> str:
        return token_from_market(self.ilk)


class MakerAdapter:
    """Maps Maker vaults into ``PositionData`` and validates stop-loss edits."""

    protocol = VaultProtocol.MAKER

    add_errors: Dict[str, Predicate] = {
        "hasInsufficientEthFundsForTx": validators.has_insufficient_eth_funds_for_tx,
        "hasMoreDebtThanMaxForStopLoss": validators.has_more_debt_than_max_for_stop_loss,
        "isStopLossTriggerHigherThanAutoBuyTarget": validators.is_stop_loss_trigger_higher_than_auto_buy_target,
        "isVaultBelowDebtFloor": validators.is_vault_below_debt_floor,
    }
    add_warnings: Dict[str, Predicate] = {
        "hasPotentialInsufficientEthFundsForTx": validators.has_potential_insufficient_eth_funds_for_tx,
        "isStopLossTriggerCloseToAutoSellTrigger": validators.is_stop_loss_trigger_close_to_auto_sell_trigger,
        "isStopLossTriggerCloseToConstantMultipleSellTrigger": (
            validators.is_stop_loss_trigger_close_to_constant_multiple_sell_trigger
        ),
    }
    cancel_errors = ("hasInsufficientEthFundsForTx",)
    cancel_warnings = ("hasPotentialInsufficientEthFundsForTx",)

    def parse_native(self, raw: Mapping[str, Any]) -> MakerVaultState:
        return MakerVaultState(
            ilk=raw["ilk"],
            locked_collateral=Decimal(str(raw.get("locked_collateral", "0"))),
            debt=Decimal(str(raw.get("debt", "0"))),
            debt_floor=Decimal(str(raw.get("debt_floor", "0"))),
            liquidation_ratio=Decimal(str(raw["liquidation_ratio"])),
            liquidation_penalty=Decimal(str(raw.get("liquidation_penalty", "0"))),
            vault_id=raw.get("vault_id"),
            owner=raw.get("owner"),
        )

    def project_native(
        self,
        market_id: str,
        params: Mapping[str, Any],
        deposit_amount: Decimal,
        generate_amount: Decimal,
        owner: Optional[str] = None,
    ) -> MakerVaultState:
        """Vault that would exist after locking ``deposit_amount`` and drawing ``generate_amount``.

        ``params`` holds the ilk figures: ``liquidation_ratio``,
        ``liquidation_penalty`` and ``debt_floor``.
        """
        return MakerVaultState(
            ilk=market_id,
            locked_collateral=deposit_amount,
            debt=generate_amount,
            debt_floor=Decimal(str(params.get("debt_floor", "0"))),
            liquidation_ratio=Decimal(str(params["liquidation_ratio"])),
            liquidation_penalty=Decimal(str(params.get("liquidation_penalty", "0"))),
            owner=owner,
        )

    def to_position_data(self, native: MakerVaultState, price: MarketPrice) -> PositionData:
        if native.liquidation_ratio <= 1:
            logger.warning(
                f"Maker ilk {native.ilk} reports liquidation ratio {native.liquidation_ratio} <= 1"
            )
        return PositionData(
            locked_collateral=native.locked_collateral,
            debt=native.debt,
            debt_floor=native.debt_floor,
            liquidation_ratio=native.liquidation_ratio,
            liquidation_price=risk_math.liquidation_price(
                native.locked_collateral, native.debt, native.liquidation_ratio
            ),
            liquidation_penalty=native.liquidation_penalty,
            position_ratio=risk_math.collateralization_ratio(
                native.locked_collateral, price.current, native.debt
            ),
            next_position_ratio=risk_math.collateralization_ratio(
                native.locked_collateral, price.next, native.debt
            ),
            token=native.token,
            debt_token="DAI",
            owner=native.owner,
            market_id=native.ilk,
            protocol=self.protocol,
        )

    def default_trigger_states(self) -> TriggerStates:
        return TriggerStates(stop_loss=StopLossTriggerData(is_to_collateral=False, stop_loss_level=ZERO))
