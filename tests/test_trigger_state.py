"""Tests for typed trigger state patches."""

import pytest
from decimal import Decimal

from vault_guardian.models import CloseVaultTo, TriggerStates, TriggerType
from vault_guardian.trigger_state import (
    InvalidTriggerPatch,
    TriggerStateEdit,
    TriggerStateStore,
    apply_patch,
    close_type_edit,
    stop_loss_level_edit,
)


class TestApplyPatch:

    def test_sequential_partial_edits_both_survive(self):
        store = TriggerStateStore()

        store.patch(TriggerType.STOP_LOSS, stop_loss_level=Decimal("180"))
        store.patch(TriggerType.STOP_LOSS, is_to_collateral=True)

        assert store.states.stop_loss.stop_loss_level == Decimal("180")
        assert store.states.stop_loss.is_to_collateral is True

    def test_last_write_wins_per_key(self):
        store = TriggerStateStore()

        store.apply(stop_loss_level_edit(180))
        store.apply(stop_loss_level_edit("190"))

        assert store.states.stop_loss.stop_loss_level == Decimal("190")

    def test_edit_leaves_other_triggers_untouched(self):
        store = TriggerStateStore()
        store.patch("stop_loss", stop_loss_level=Decimal("180"))
        store.patch("auto_sell", is_trigger_enabled=True, exec_coll_ratio="190")

        assert store.states.stop_loss.stop_loss_level == Decimal("180")
        assert store.states.auto_sell.exec_coll_ratio == Decimal("190")
        assert store.states.auto_buy == TriggerStates().auto_buy

    def test_original_states_are_not_mutated(self):
        states = TriggerStates()
        updated = apply_patch(states, stop_loss_level_edit(200))

        assert states.stop_loss.stop_loss_level == Decimal("0")
        assert updated.stop_loss.stop_loss_level == Decimal("200")

    def test_unknown_field_rejected(self):
        edit = TriggerStateEdit(TriggerType.STOP_LOSS, {"trigger_id": 7})
        with pytest.raises(InvalidTriggerPatch):
            apply_patch(TriggerStates(), edit)

    def test_negative_level_rejected(self):
        with pytest.raises(InvalidTriggerPatch):
            apply_patch(TriggerStates(), stop_loss_level_edit("-5"))

    def test_non_numeric_level_rejected(self):
        edit = TriggerStateEdit(TriggerType.STOP_LOSS, {"stop_loss_level": "high"})
        with pytest.raises(InvalidTriggerPatch):
            apply_patch(TriggerStates(), edit)

    def test_flag_must_be_bool(self):
        edit = TriggerStateEdit(TriggerType.STOP_LOSS, {"is_trigger_enabled": "yes"})
        with pytest.raises(InvalidTriggerPatch):
            apply_patch(TriggerStates(), edit)

    def test_rejected_patch_leaves_store_unchanged(self):
        store = TriggerStateStore()
        store.patch(TriggerType.STOP_LOSS, stop_loss_level=Decimal("180"))

        with pytest.raises(InvalidTriggerPatch):
            store.patch(TriggerType.STOP_LOSS, stop_loss_level=Decimal("190"), bogus=1)

        assert store.states.stop_loss.stop_loss_level == Decimal("180")


class TestEditHelpers:

    def test_close_type_edit(self):
        assert dict(close_type_edit(CloseVaultTo.COLLATERAL).changes) == {"is_to_collateral": True}
        assert dict(close_type_edit("dai").changes) == {"is_to_collateral": False}

    def test_close_type_edit_unknown_option(self):
        with pytest.raises(ValueError):
            close_type_edit("usdc")

    def test_reset_replaces_everything(self):
        store = TriggerStateStore()
        store.patch(TriggerType.STOP_LOSS, stop_loss_level=Decimal("180"))

        store.reset(TriggerStates())

        assert store.states == TriggerStates()
