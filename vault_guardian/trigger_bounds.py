"""Slider bounds for the stop-loss level.

Keeps a proposed stop-loss strictly above forced liquidation and below any
other automated sell, so it fires first and stays reachable after the next
oracle price update.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal, ROUND_DOWN
from typing import List, Optional

from .config import Settings, settings as default_settings
from .models import PositionData, TriggerStates
from .risk_math import HUNDRED

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SliderBounds:
    """Advisory slider range in percentage points."""
    slider_min: Decimal
    slider_max: Decimal

    def contains(self, level: Decimal) -> bool:
        return self.slider_min <= level <= self.slider_max


class TriggerBoundsCalculator:
    """Derives stop-loss slider bounds from the position and sibling triggers."""

    def __init__(
        self,
        min_offset: Optional[Decimal] = None,
        next_ratio_offset: Optional[Decimal] = None,
        config: Optional[Settings] = None,
    ):
        config = config or default_settings
        self.min_offset = min_offset if min_offset is not None else config.min_col_ratio_trigger_offset
        self.next_ratio_offset = (
            next_ratio_offset if next_ratio_offset is not None else config.next_coll_ratio_offset
        )
        # sliderMin must stay strictly above the liquidation ratio
        if self.min_offset <= 0:
            raise ValueError(f"min_offset must be positive, got {self.min_offset}")
        if self.next_ratio_offset < 0:
            raise ValueError(f"next_ratio_offset must not be negative, got {self.next_ratio_offset}")

    def slider_min(self, position: PositionData) -> Decimal:
        return position.liquidation_ratio * HUNDRED + self.min_offset

    def slider_max(self, position: PositionData, triggers: TriggerStates) -> Decimal:
        """Lowest sibling sell ratio minus the safety offset, else the next-price ratio.

        Rounded down to a whole percentage point.
        """
        candidates: List[Decimal] = []
        if triggers.auto_sell.is_trigger_enabled:
            candidates.append(triggers.auto_sell.exec_coll_ratio - self.min_offset)
        if triggers.constant_multiple.is_trigger_enabled:
            candidates.append(triggers.constant_multiple.sell_execution_coll_ratio - self.min_offset)

        if candidates:
            upper = min(candidates)
        else:
            upper = position.next_position_ratio * HUNDRED - self.next_ratio_offset

        return upper.to_integral_value(rounding=ROUND_DOWN)

    def calculate(self, position: PositionData, triggers: TriggerStates) -> SliderBounds:
        bounds = SliderBounds(
            slider_min=self.slider_min(position),
            slider_max=self.slider_max(position, triggers),
        )
        if bounds.slider_max < bounds.slider_min:
            logger.debug(
                f"Empty stop-loss range for {position.market_id or position.token}: "
                f"min={bounds.slider_min} max={bounds.slider_max}"
            )
        return bounds
