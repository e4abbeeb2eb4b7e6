"""Tests for the transaction lifecycle and pipeline stage tags."""

import pytest

from vault_guardian.pipeline.lifecycle import (
    InvalidTransition,
    TxLifecycleEvent,
    allowed_events,
    can_transition,
    transition,
)
from vault_guardian.pipeline.stages import (
    STAGE_FLAGS,
    TERMINAL_STAGES,
    PipelineStage,
    TxStageName,
    TxState,
    stage_flags,
    tx_stage,
)


class TestTransitions:

    def test_happy_path(self):
        state = TxState.WAITING_FOR_CONFIRMATION
        for event in (
            TxLifecycleEvent.SUBMIT,
            TxLifecycleEvent.WALLET_APPROVED,
            TxLifecycleEvent.RECEIPT_SUCCESS,
        ):
            state = transition(state, event).new

        assert state == TxState.SUCCESS

    def test_rejection_returns_to_confirmation(self):
        result = transition(TxState.WAITING_FOR_APPROVAL, TxLifecycleEvent.WALLET_REJECTED)

        assert result.previous == TxState.WAITING_FOR_APPROVAL
        assert result.new == TxState.WAITING_FOR_CONFIRMATION

    @pytest.mark.parametrize("event", [TxLifecycleEvent.RECEIPT_REVERT, TxLifecycleEvent.TIMEOUT])
    def test_revert_or_timeout_fails(self, event):
        assert transition(TxState.IN_PROGRESS, event).new == TxState.FAILURE

    def test_failure_only_retries(self):
        assert allowed_events(TxState.FAILURE) == frozenset({TxLifecycleEvent.RETRY})
        assert transition(TxState.FAILURE, TxLifecycleEvent.RETRY).new == TxState.WAITING_FOR_CONFIRMATION

    def test_success_can_wait_for_downstream(self):
        assert transition(TxState.SUCCESS, TxLifecycleEvent.DOWNSTREAM_PENDING).new == TxState.WAIT_TO_CONTINUE

    def test_invalid_transition_raises(self):
        assert not can_transition(TxState.WAITING_FOR_CONFIRMATION, TxLifecycleEvent.RECEIPT_SUCCESS)
        with pytest.raises(InvalidTransition):
            transition(TxState.WAITING_FOR_CONFIRMATION, TxLifecycleEvent.RECEIPT_SUCCESS)

    def test_no_automatic_exit_from_wait_to_continue(self):
        assert allowed_events(TxState.WAIT_TO_CONTINUE) == frozenset()


class TestStages:

    def test_tx_stage_names(self):
        assert tx_stage(TxStageName.PROXY, TxState.IN_PROGRESS) == PipelineStage.PROXY_IN_PROGRESS
        assert tx_stage(TxStageName.ALLOWANCE, TxState.WAITING_FOR_CONFIRMATION).value == (
            "allowanceWaitingForConfirmation"
        )
        assert tx_stage(TxStageName.ACTION, TxState.SUCCESS) == PipelineStage.ACTION_SUCCESS

    def test_every_stage_has_flags(self):
        assert set(STAGE_FLAGS) == set(PipelineStage)
        assert len(PipelineStage) == 23

    def test_flags(self):
        assert stage_flags(PipelineStage.EDITING_READONLY).is_readonly
        assert not stage_flags(PipelineStage.EDITING_READONLY).is_connected
        assert stage_flags(PipelineStage.EDITING_CONNECTED).is_connected
        assert stage_flags(PipelineStage.PROXY_FAILURE).is_proxy_stage
        assert stage_flags(PipelineStage.ALLOWANCE_SUCCESS).is_allowance_stage
        assert stage_flags(PipelineStage.ACTION_IN_PROGRESS).is_action_stage
        assert stage_flags(PipelineStage.ILK_VALIDATION_LOADING).is_ilk_validation_stage
        assert not stage_flags(PipelineStage.ILK_VALIDATION_FAILURE).is_connected

    def test_terminal_stages(self):
        assert TERMINAL_STAGES == {PipelineStage.ILK_VALIDATION_FAILURE, PipelineStage.ACTION_SUCCESS}
