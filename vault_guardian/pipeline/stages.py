"""Pipeline stages and the flags presentation derives from them."""

from dataclasses import dataclass
from enum import Enum
from typing import Dict


class TxState(str, Enum):
    """Transaction lifecycle of one prerequisite or the primary action."""
    WAITING_FOR_CONFIRMATION = "waitingForConfirmation"
    WAITING_FOR_APPROVAL = "waitingForApproval"
    IN_PROGRESS = "inProgress"
    FAILURE = "failure"
    SUCCESS = "success"
    WAIT_TO_CONTINUE = "waitToContinue"


class TxStageName(str, Enum):
    PROXY = "proxy"
    ALLOWANCE = "allowance"
    ACTION = "action"


class PipelineStage(str, Enum):
    ILK_VALIDATION_LOADING = "ilkValidationLoading"
    ILK_VALIDATION_FAILURE = "ilkValidationFailure"
    ILK_VALIDATION_SUCCESS = "ilkValidationSuccess"

    EDITING_READONLY = "editingReadonly"
    EDITING_CONNECTED = "editingConnected"

    PROXY_WAITING_FOR_CONFIRMATION = "proxyWaitingForConfirmation"
    PROXY_WAITING_FOR_APPROVAL = "proxyWaitingForApproval"
    PROXY_IN_PROGRESS = "proxyInProgress"
    PROXY_FAILURE = "proxyFailure"
    PROXY_SUCCESS = "proxySuccess"
    PROXY_WAIT_TO_CONTINUE = "proxyWaitToContinue"

    ALLOWANCE_WAITING_FOR_CONFIRMATION = "allowanceWaitingForConfirmation"
    ALLOWANCE_WAITING_FOR_APPROVAL = "allowanceWaitingForApproval"
    ALLOWANCE_IN_PROGRESS = "allowanceInProgress"
    ALLOWANCE_FAILURE = "allowanceFailure"
    ALLOWANCE_SUCCESS = "allowanceSuccess"
    ALLOWANCE_WAIT_TO_CONTINUE = "allowanceWaitToContinue"

    ACTION_WAITING_FOR_CONFIRMATION = "actionWaitingForConfirmation"
    ACTION_WAITING_FOR_APPROVAL = "actionWaitingForApproval"
    ACTION_IN_PROGRESS = "actionInProgress"
    ACTION_FAILURE = "actionFailure"
    ACTION_SUCCESS = "actionSuccess"
    ACTION_WAIT_TO_CONTINUE = "actionWaitToContinue"


def tx_stage(name: TxStageName, state: TxState) -> PipelineStage:
    """``(proxy, inProgress)`` -> ``proxyInProgress``."""
    suffix = state.value[0].upper() + state.value[1:]
    return PipelineStage(f"{name.value}{suffix}")


TERMINAL_STAGES = frozenset({PipelineStage.ILK_VALIDATION_FAILURE, PipelineStage.ACTION_SUCCESS})


@dataclass(frozen=True)
class StageFlags:
    is_ilk_validation_stage: bool = False
    is_editing_stage: bool = False
    is_proxy_stage: bool = False
    is_allowance_stage: bool = False
    is_action_stage: bool = False
    is_connected: bool = False
    is_readonly: bool = False


_VALIDATION = StageFlags(is_ilk_validation_stage=True)
_PROXY = StageFlags(is_proxy_stage=True, is_connected=True)
_ALLOWANCE = StageFlags(is_allowance_stage=True, is_connected=True)
_ACTION = StageFlags(is_action_stage=True, is_connected=True)

_TX_FLAGS = {TxStageName.PROXY: _PROXY, TxStageName.ALLOWANCE: _ALLOWANCE, TxStageName.ACTION: _ACTION}

STAGE_FLAGS: Dict[PipelineStage, StageFlags] = {
    PipelineStage.ILK_VALIDATION_LOADING: _VALIDATION,
    PipelineStage.ILK_VALIDATION_FAILURE: _VALIDATION,
    PipelineStage.ILK_VALIDATION_SUCCESS: _VALIDATION,
    PipelineStage.EDITING_READONLY: StageFlags(is_editing_stage=True, is_readonly=True),
    PipelineStage.EDITING_CONNECTED: StageFlags(is_editing_stage=True, is_connected=True),
}
for _name, _flags in _TX_FLAGS.items():
    for _state in TxState:
        STAGE_FLAGS[tx_stage(_name, _state)] = _flags

_unmapped = set(PipelineStage) - set(STAGE_FLAGS)
if _unmapped:
    raise RuntimeError(f"Pipeline stages without flags: {sorted(s.value for s in _unmapped)}")


def stage_flags(stage: PipelineStage) -> StageFlags:
    return STAGE_FLAGS[stage]
