"""Transaction lifecycle state machine.

waitingForConfirmation -> waitingForApproval -> inProgress -> success | failure

A wallet rejection returns to waitingForConfirmation with no partial effect.
A failure is always retriable by the user; nothing here retries on its own.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, FrozenSet

from .stages import TxState


class TxLifecycleEvent(str, Enum):
    SUBMIT = "submit"
    WALLET_APPROVED = "walletApproved"
    WALLET_REJECTED = "walletRejected"
    RECEIPT_SUCCESS = "receiptSuccess"
    RECEIPT_REVERT = "receiptRevert"
    TIMEOUT = "timeout"
    RETRY = "retry"
    DOWNSTREAM_PENDING = "downstreamPending"


class InvalidTransition(ValueError):
    pass


TRANSITIONS: Dict[TxState, Dict[TxLifecycleEvent, TxState]] = {
    TxState.WAITING_FOR_CONFIRMATION: {
        TxLifecycleEvent.SUBMIT: TxState.WAITING_FOR_APPROVAL,
    },
    TxState.WAITING_FOR_APPROVAL: {
        TxLifecycleEvent.WALLET_APPROVED: TxState.IN_PROGRESS,
        TxLifecycleEvent.WALLET_REJECTED: TxState.WAITING_FOR_CONFIRMATION,
        TxLifecycleEvent.TIMEOUT: TxState.FAILURE,
    },
    TxState.IN_PROGRESS: {
        TxLifecycleEvent.RECEIPT_SUCCESS: TxState.SUCCESS,
        TxLifecycleEvent.RECEIPT_REVERT: TxState.FAILURE,
        TxLifecycleEvent.TIMEOUT: TxState.FAILURE,
    },
    TxState.FAILURE: {
        TxLifecycleEvent.RETRY: TxState.WAITING_FOR_CONFIRMATION,
    },
    TxState.SUCCESS: {
        TxLifecycleEvent.DOWNSTREAM_PENDING: TxState.WAIT_TO_CONTINUE,
    },
    TxState.WAIT_TO_CONTINUE: {},
}


@dataclass(frozen=True)
class TxTransition:
    previous: TxState
    new: TxState
    event: TxLifecycleEvent


def allowed_events(state: TxState) -> FrozenSet[TxLifecycleEvent]:
    return frozenset(TRANSITIONS.get(state, {}))


def can_transition(state: TxState, event: TxLifecycleEvent) -> bool:
    return event in TRANSITIONS.get(state, {})


def transition(state: TxState, event: TxLifecycleEvent) -> TxTransition:
    new_state = TRANSITIONS.get(state, {}).get(event)
    if new_state is None:
        raise InvalidTransition(f"Invalid transition {state.value} --{event.value}-->")
    return TxTransition(previous=state, new=new_state, event=event)
