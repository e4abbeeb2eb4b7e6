"""Risk math for collateralized debt positions.

Pure Decimal functions. Every function fails closed: a zero divisor or a
negative intermediate yields ``Decimal("0")`` instead of raising, so a caller
holding a half-updated snapshot gets "no meaningful value" rather than a crash.

Stop-loss levels are in percentage points (200 = 200%); ratios passed as
``col_ratio``/``liquidation_ratio`` are plain multiples (1.5 = 150%).
"""

from decimal import Decimal

from .models import ZERO

HUNDRED = Decimal("100")
ONE = Decimal("1")


def collateral_price_at_ratio(col_ratio: Decimal, collateral: Decimal, debt: Decimal) -> Decimal:
    """Collateral price at which the position sits exactly at ``col_ratio``."""
    if collateral <= 0 or col_ratio <= 0 or debt <= 0:
        return ZERO
    return col_ratio * debt / collateral


def collateral_during_liquidation(
    locked_collateral: Decimal,
    debt: Decimal,
    liquidation_price: Decimal,
    liquidation_penalty: Decimal,
) -> Decimal:
    """Collateral left to the owner after a forced liquidation, net of penalty."""
    if liquidation_price <= 0:
        return ZERO
    remaining = locked_collateral - debt / liquidation_price * (ONE + liquidation_penalty)
    return max(remaining, ZERO)


def dynamic_stop_loss_price(
    liquidation_price: Decimal,
    liquidation_ratio: Decimal,
    stop_loss_level: Decimal,
) -> Decimal:
    """Oracle price at which a stop-loss at ``stop_loss_level`` fires.

    Scaled from the liquidation price by the ratio of the liquidation level
    to the stop-loss level, so a higher level yields a lower price.
    """
    if stop_loss_level <= 0 or liquidation_price <= 0 or liquidation_ratio <= 0:
        return ZERO
    return liquidation_price * (liquidation_ratio * HUNDRED) / stop_loss_level


def max_recoverable_token(
    stop_loss_level: Decimal,
    locked_collateral: Decimal,
    liquidation_ratio: Decimal,
    liquidation_price: Decimal,
    debt: Decimal,
) -> Decimal:
    """Collateral recoverable if the stop-loss closes the position.

    The debt is repaid at the dynamic stop price. No liquidation penalty is
    charged because the stop-loss closes the vault before liquidation. At
    ``stop_loss_level == liquidation_ratio * 100`` this equals
    ``collateral_during_liquidation`` with a zero penalty.
    """
    stop_price = dynamic_stop_loss_price(liquidation_price, liquidation_ratio, stop_loss_level)
    if stop_price <= 0:
        return ZERO
    return max(locked_collateral - debt / stop_price, ZERO)


def saving_compared_to_liquidation(max_token: Decimal, during_liquidation: Decimal) -> Decimal:
    """Extra collateral kept by closing at the stop-loss instead of being liquidated."""
    return max(max_token - during_liquidation, ZERO)


def token_amount_on_trigger(amount: Decimal, stop_price: Decimal, is_to_collateral: bool) -> Decimal:
    """Express a collateral amount in the token the position closes to."""
    if is_to_collateral:
        return max(amount, ZERO)
    if stop_price <= 0:
        return ZERO
    return max(amount * stop_price, ZERO)


def slider_percentage_fill(value: Decimal, min_value: Decimal, max_value: Decimal) -> Decimal:
    """Position of ``value`` between the slider bounds, clamped to [0, 100]."""
    span = max_value - min_value
    if span <= 0:
        return ZERO
    fill = (value - min_value) / span * HUNDRED
    if fill < 0:
        return ZERO
    if fill > HUNDRED:
        return HUNDRED
    return fill


def starting_sl_ratio(stop_loss_level: Decimal, is_enabled: bool, initial_selected: Decimal) -> Decimal:
    """Level a stop-loss form opens at: the live trigger's level, else the default."""
    if is_enabled and stop_loss_level > 0:
        return stop_loss_level
    return initial_selected


def right_boundary_price(
    stop_loss_level: Decimal,
    next_collateral_price: Decimal,
    next_position_ratio: Decimal,
) -> Decimal:
    """Next-price collateral value at which the position reaches ``stop_loss_level``."""
    if next_position_ratio <= 0 or stop_loss_level <= 0:
        return ZERO
    return stop_loss_level / HUNDRED * next_collateral_price / next_position_ratio


def collateralization_ratio(collateral: Decimal, price: Decimal, debt: Decimal) -> Decimal:
    """Collateral value divided by debt; zero when there is no debt."""
    if debt <= 0 or collateral <= 0 or price <= 0:
        return ZERO
    return collateral * price / debt


def liquidation_price(collateral: Decimal, debt: Decimal, liquidation_ratio: Decimal) -> Decimal:
    """Collateral price at which the position hits its liquidation ratio."""
    if collateral <= 0 or debt <= 0:
        return ZERO
    return debt * liquidation_ratio / collateral
