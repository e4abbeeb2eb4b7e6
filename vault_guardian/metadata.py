"""Stop-loss trigger metadata.

``compute_trigger_metadata`` combines a protocol adapter, the risk math and
the slider bounds into one immutable descriptor. Presentation code reads the
same fields for every protocol; only values and predicates differ. The
descriptor is rebuilt whenever the position, any trigger or the price
changes, never mutated.
"""

import logging
from dataclasses import dataclass, field
from decimal import Decimal, ROUND_DOWN
from typing import Callable, Dict, Optional, Tuple, Union

from . import risk_math
from .config import Settings, settings as default_settings
from .models import (
    ZERO,
    CloseVaultTo,
    EnvironmentData,
    PositionData,
    TriggerStates,
    VaultProtocol,
)
from .protocols import ProtocolAdapter, get_adapter
from .protocols.base import ValidationContext, evaluate
from .trigger_bounds import TriggerBoundsCalculator
from .trigger_state import TriggerStateEdit, close_type_edit, stop_loss_level_edit

logger = logging.getLogger(__name__)

LevelFn = Callable[[Decimal], Decimal]
EditSink = Callable[[TriggerStateEdit], None]


@dataclass(frozen=True)
class StopLossResetData:
    stop_loss_level: Decimal
    collateral_active: bool


@dataclass(frozen=True)
class TriggerValues:
    """Figures precomputed for the trigger's current on-chain level."""
    slider_min: Decimal
    slider_max: Decimal
    initial_sl_ratio_when_trigger_doesnt_exist: Decimal
    reset_data: StopLossResetData
    collateral_during_liquidation: Decimal
    trigger_max_token: Decimal
    dynamic_stop_loss_price: Decimal
    saving_compared_to_liquidation: Decimal
    trigger_token_amount: Decimal
    below_current_position_ratio: Decimal


@dataclass(frozen=True)
class TriggerMethods:
    """Re-evaluate derived figures at an arbitrary candidate level."""
    get_execution_price: LevelFn
    get_max_token: LevelFn
    get_dynamic_stop_price: LevelFn
    get_right_boundary: LevelFn
    get_slider_percentage_fill: LevelFn


@dataclass(frozen=True)
class ValidationResult:
    errors: Dict[str, bool]
    warnings: Dict[str, bool]
    cancel_errors: Tuple[str, ...]
    cancel_warnings: Tuple[str, ...]

    @property
    def active_errors(self) -> Tuple[str, ...]:
        return tuple(name for name, flagged in self.errors.items() if flagged)

    @property
    def active_warnings(self) -> Tuple[str, ...]:
        return tuple(name for name, flagged in self.warnings.items() if flagged)

    @property
    def blocks_submission(self) -> bool:
        """Any error blocks; of the warnings only the cancelling ones do."""
        if self.active_errors:
            return True
        return any(self.warnings.get(name) for name in self.cancel_warnings)

    @property
    def blocks_cancel(self) -> bool:
        return any(self.errors.get(name) for name in self.cancel_errors) or any(
            self.warnings.get(name) for name in self.cancel_warnings
        )


@dataclass(frozen=True)
class TriggerValidation:
    get_add_errors: Callable[..., Dict[str, bool]]
    get_add_warnings: Callable[..., Dict[str, bool]]
    validate: Callable[..., ValidationResult]
    cancel_errors: Tuple[str, ...]
    cancel_warnings: Tuple[str, ...]


@dataclass(frozen=True)
class TriggerCallbacks:
    on_slider_change: Callable[[Decimal], None]
    on_close_to_change: Callable[[Union[CloseVaultTo, str]], None]


@dataclass(frozen=True)
class TriggerSettings:
    slider_step: int = 1


@dataclass(frozen=True)
class TriggerMetadata:
    protocol: VaultProtocol
    values: TriggerValues
    methods: TriggerMethods = field(compare=False)
    validation: TriggerValidation = field(compare=False)
    callbacks: TriggerCallbacks = field(compare=False)
    settings: TriggerSettings = field(default_factory=TriggerSettings)


def _discard_edit(edit: TriggerStateEdit) -> None:
    logger.debug(f"No edit channel attached; dropping {edit.trigger.value} edit")


def compute_trigger_metadata(
    protocol: Union[VaultProtocol, str, ProtocolAdapter],
    position: PositionData,
    triggers: TriggerStates,
    environment: Optional[EnvironmentData] = None,
    dispatch: Optional[EditSink] = None,
    config: Optional[Settings] = None,
) -> TriggerMetadata:
    """Build the stop-loss metadata for one position tick."""
    config = config or default_settings
    adapter = protocol if hasattr(protocol, "to_position_data") else get_adapter(protocol)
    environment = environment or EnvironmentData()
    dispatch = dispatch or _discard_edit

    stop_loss = triggers.stop_loss
    bounds = TriggerBoundsCalculator(config=config).calculate(position, triggers)
    slider_min, slider_max = bounds.slider_min, bounds.slider_max

    initial_level = risk_math.starting_sl_ratio(
        stop_loss_level=stop_loss.stop_loss_level,
        is_enabled=stop_loss.is_trigger_enabled,
        initial_selected=slider_min + config.default_threshold_from_lowest_sl,
    ).to_integral_value(rounding=ROUND_DOWN)

    locked = position.locked_collateral
    debt = position.debt
    liq_ratio = position.liquidation_ratio
    liq_price = position.liquidation_price

    during_liquidation = risk_math.collateral_during_liquidation(
        locked, debt, liq_price, position.liquidation_penalty
    )
    trigger_max_token = risk_math.max_recoverable_token(
        stop_loss.stop_loss_level, locked, liq_ratio, liq_price, debt
    )
    dynamic_price = risk_math.dynamic_stop_loss_price(liq_price, liq_ratio, stop_loss.stop_loss_level)
    below_current = ZERO
    if stop_loss.is_trigger_enabled:
        below_current = position.position_ratio * risk_math.HUNDRED - stop_loss.stop_loss_level

    values = TriggerValues(
        slider_min=slider_min,
        slider_max=slider_max,
        initial_sl_ratio_when_trigger_doesnt_exist=initial_level,
        reset_data=StopLossResetData(
            stop_loss_level=initial_level,
            collateral_active=stop_loss.is_to_collateral,
        ),
        collateral_during_liquidation=during_liquidation,
        trigger_max_token=trigger_max_token,
        dynamic_stop_loss_price=dynamic_price,
        saving_compared_to_liquidation=risk_math.saving_compared_to_liquidation(
            trigger_max_token, during_liquidation
        ),
        trigger_token_amount=risk_math.token_amount_on_trigger(
            trigger_max_token, dynamic_price, stop_loss.is_to_collateral
        ),
        below_current_position_ratio=below_current,
    )

    methods = TriggerMethods(
        get_execution_price=lambda level: risk_math.collateral_price_at_ratio(
            level / risk_math.HUNDRED, locked, debt
        ),
        get_max_token=lambda level: risk_math.max_recoverable_token(level, locked, liq_ratio, liq_price, debt),
        get_dynamic_stop_price=lambda level: risk_math.dynamic_stop_loss_price(liq_price, liq_ratio, level),
        get_right_boundary=lambda level: risk_math.right_boundary_price(
            level, environment.next_collateral_price, position.next_position_ratio
        ),
        get_slider_percentage_fill=lambda level: risk_math.slider_percentage_fill(level, slider_min, slider_max),
    )

    def _context(level: Decimal, tx_error: Optional[str], gas_estimation_usd: Optional[Decimal]):
        return ValidationContext(
            position=position,
            triggers=triggers,
            stop_loss_level=level,
            slider_max=slider_max,
            environment=environment,
            max_debt_for_stop_loss=config.max_debt_for_stop_loss,
            min_offset=config.min_col_ratio_trigger_offset,
            tx_error=tx_error,
            gas_estimation_usd=gas_estimation_usd,
        )

    def get_add_errors(level: Decimal, tx_error: Optional[str] = None) -> Dict[str, bool]:
        return evaluate(adapter.add_errors, _context(level, tx_error, None))

    def get_add_warnings(level: Decimal, gas_estimation_usd: Optional[Decimal] = None) -> Dict[str, bool]:
        return evaluate(adapter.add_warnings, _context(level, None, gas_estimation_usd))

    def validate(
        level: Decimal,
        tx_error: Optional[str] = None,
        gas_estimation_usd: Optional[Decimal] = None,
    ) -> ValidationResult:
        ctx = _context(level, tx_error, gas_estimation_usd)
        return ValidationResult(
            errors=evaluate(adapter.add_errors, ctx),
            warnings=evaluate(adapter.add_warnings, ctx),
            cancel_errors=tuple(adapter.cancel_errors),
            cancel_warnings=tuple(adapter.cancel_warnings),
        )

    validation = TriggerValidation(
        get_add_errors=get_add_errors,
        get_add_warnings=get_add_warnings,
        validate=validate,
        cancel_errors=tuple(adapter.cancel_errors),
        cancel_warnings=tuple(adapter.cancel_warnings),
    )

    callbacks = TriggerCallbacks(
        on_slider_change=lambda value: dispatch(stop_loss_level_edit(value)),
        on_close_to_change=lambda option: dispatch(close_type_edit(option)),
    )

    return TriggerMetadata(
        protocol=adapter.protocol,
        values=values,
        methods=methods,
        validation=validation,
        callbacks=callbacks,
        settings=TriggerSettings(slider_step=config.slider_step),
    )
