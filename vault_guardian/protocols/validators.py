"""Validation predicates for stop-loss edits.

Each predicate takes a ``ValidationContext`` and returns True when the
condition it names holds. Protocol adapters pick which ones they use and
whether each is an error or a warning.
"""

from ..models import ZERO
from ..risk_math import HUNDRED
from .base import ValidationContext

INSUFFICIENT_FUNDS_MARKERS = ("insufficient funds", "insufficient balance")


def has_insufficient_eth_funds_for_tx(ctx: ValidationContext) -> bool:
    """The last submission failed because the wallet could not pay for gas."""
    if not ctx.tx_error:
        return False
    message = ctx.tx_error.lower()
    return any(marker in message for marker in INSUFFICIENT_FUNDS_MARKERS)


def has_potential_insufficient_eth_funds_for_tx(ctx: ValidationContext) -> bool:
    """The wallet's ETH is worth less than the estimated gas cost."""
    if ctx.gas_estimation_usd is None or ctx.gas_estimation_usd <= 0:
        return False
    eth_funds_usd = ctx.environment.eth_balance * ctx.environment.eth_price
    return eth_funds_usd < ctx.gas_estimation_usd


def has_more_debt_than_max_for_stop_loss(ctx: ValidationContext) -> bool:
    if ctx.max_debt_for_stop_loss is None:
        return False
    return ctx.position.debt > ctx.max_debt_for_stop_loss


def is_stop_loss_trigger_higher_than_auto_buy_target(ctx: ValidationContext) -> bool:
    auto_buy = ctx.triggers.auto_buy
    if not auto_buy.is_trigger_enabled:
        return False
    return ctx.stop_loss_level + ctx.min_offset > auto_buy.target_coll_ratio


def is_stop_loss_trigger_close_to_auto_sell_trigger(ctx: ValidationContext) -> bool:
    if not ctx.triggers.auto_sell.is_trigger_enabled:
        return False
    return ctx.slider_max - ctx.min_offset <= ctx.stop_loss_level


def is_stop_loss_trigger_close_to_constant_multiple_sell_trigger(ctx: ValidationContext) -> bool:
    if not ctx.triggers.constant_multiple.is_trigger_enabled:
        return False
    return ctx.slider_max - ctx.min_offset <= ctx.stop_loss_level


def is_vault_below_debt_floor(ctx: ValidationContext) -> bool:
    """Debt is outstanding but under the dust limit: the vault can only be closed."""
    position = ctx.position
    return ZERO < position.debt < position.debt_floor


def has_no_debt_for_stop_loss(ctx: ValidationContext) -> bool:
    return not ctx.position.has_debt


def is_stop_loss_trigger_above_current_ratio(ctx: ValidationContext) -> bool:
    """A level at or above the current ratio would fire immediately."""
    position = ctx.position
    if not position.has_debt:
        return False
    return ctx.stop_loss_level >= position.position_ratio * HUNDRED
