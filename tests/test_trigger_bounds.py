"""Tests for stop-loss slider bounds."""

import pytest
from decimal import Decimal

from vault_guardian.models import (
    AutoSellTriggerData,
    ConstantMultipleTriggerData,
    PositionData,
    TriggerStates,
)
from vault_guardian.trigger_bounds import SliderBounds, TriggerBoundsCalculator


def make_position(liquidation_ratio="1.5", next_position_ratio="2.2", **overrides) -> PositionData:
    fields = dict(
        locked_collateral=Decimal("10"),
        debt=Decimal("5000"),
        debt_floor=Decimal("15000"),
        liquidation_ratio=Decimal(liquidation_ratio),
        liquidation_price=Decimal("750"),
        liquidation_penalty=Decimal("0.13"),
        position_ratio=Decimal("2.4"),
        next_position_ratio=Decimal(next_position_ratio),
        token="ETH",
        market_id="ETH-A",
    )
    fields.update(overrides)
    return PositionData(**fields)


class TestSliderMin:

    def setup_method(self):
        self.calculator = TriggerBoundsCalculator(min_offset=Decimal("5"), next_ratio_offset=Decimal("3"))

    def test_liquidation_ratio_plus_offset(self):
        assert self.calculator.slider_min(make_position()) == Decimal("155")

    @pytest.mark.parametrize("liquidation_ratio", ["1.01", "1.3", "1.5", "1.75", "2.5"])
    def test_always_strictly_above_liquidation(self, liquidation_ratio):
        position = make_position(liquidation_ratio=liquidation_ratio)
        assert self.calculator.slider_min(position) > position.liquidation_ratio * 100


class TestSliderMax:

    def setup_method(self):
        self.calculator = TriggerBoundsCalculator(min_offset=Decimal("5"), next_ratio_offset=Decimal("3"))

    def test_next_ratio_when_no_siblings(self):
        assert self.calculator.slider_max(make_position(), TriggerStates()) == Decimal("217")

    def test_rounds_down_to_whole_percent(self):
        position = make_position(next_position_ratio="2.1234")
        # 212.34 - 3 = 209.34
        assert self.calculator.slider_max(position, TriggerStates()) == Decimal("209")

    def test_enabled_auto_sell_caps_range(self):
        triggers = TriggerStates(
            auto_sell=AutoSellTriggerData(is_trigger_enabled=True, exec_coll_ratio=Decimal("180"))
        )
        assert self.calculator.slider_max(make_position(), triggers) == Decimal("175")

    def test_disabled_auto_sell_is_ignored(self):
        triggers = TriggerStates(
            auto_sell=AutoSellTriggerData(is_trigger_enabled=False, exec_coll_ratio=Decimal("180"))
        )
        assert self.calculator.slider_max(make_position(), triggers) == Decimal("217")

    def test_lowest_sibling_wins(self):
        triggers = TriggerStates(
            auto_sell=AutoSellTriggerData(is_trigger_enabled=True, exec_coll_ratio=Decimal("180")),
            constant_multiple=ConstantMultipleTriggerData(
                is_trigger_enabled=True, sell_execution_coll_ratio=Decimal("170")
            ),
        )
        assert self.calculator.slider_max(make_position(), triggers) == Decimal("165")


class TestCalculate:

    def test_returns_both_bounds(self):
        calculator = TriggerBoundsCalculator(min_offset=Decimal("5"), next_ratio_offset=Decimal("3"))
        bounds = calculator.calculate(make_position(), TriggerStates())

        assert bounds == SliderBounds(slider_min=Decimal("155"), slider_max=Decimal("217"))
        assert bounds.contains(Decimal("200"))
        assert not bounds.contains(Decimal("150"))

    def test_empty_range_is_reported_not_raised(self):
        calculator = TriggerBoundsCalculator(min_offset=Decimal("5"), next_ratio_offset=Decimal("3"))
        bounds = calculator.calculate(make_position(next_position_ratio="1.55"), TriggerStates())

        assert bounds.slider_max < bounds.slider_min

    def test_offsets_default_to_settings(self):
        from vault_guardian.config import Settings

        config = Settings(min_col_ratio_trigger_offset=Decimal("10"), next_coll_ratio_offset=Decimal("0"))
        calculator = TriggerBoundsCalculator(config=config)

        assert calculator.slider_min(make_position()) == Decimal("160")
        assert calculator.slider_max(make_position(), TriggerStates()) == Decimal("220")

    @pytest.mark.parametrize("offset", [Decimal("0"), Decimal("-5")])
    def test_rejects_non_positive_min_offset(self, offset):
        with pytest.raises(ValueError):
            TriggerBoundsCalculator(min_offset=offset, next_ratio_offset=Decimal("3"))

    def test_rejects_negative_next_ratio_offset(self):
        with pytest.raises(ValueError):
            TriggerBoundsCalculator(min_offset=Decimal("5"), next_ratio_offset=Decimal("-1"))
