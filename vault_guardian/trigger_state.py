"""Typed partial updates of trigger state.

Edits touch only the keys they name (last write wins per key), so a
stop-loss form and an auto-sell form editing the same position never
clobber each other. Only declared mutable fields may be patched.
"""

import logging
from dataclasses import dataclass, replace
from decimal import Decimal
from typing import Any, Dict, FrozenSet, Mapping, Optional, Union

from .models import CloseVaultTo, TriggerStates, TriggerType

logger = logging.getLogger(__name__)


class InvalidTriggerPatch(ValueError):
    """A patch named an undeclared field or broke a trigger invariant."""


MUTABLE_FIELDS: Dict[TriggerType, FrozenSet[str]] = {
    TriggerType.STOP_LOSS: frozenset({"is_trigger_enabled", "stop_loss_level", "is_to_collateral"}),
    TriggerType.AUTO_BUY: frozenset(
        {"is_trigger_enabled", "exec_coll_ratio", "target_coll_ratio", "deviation", "max_buy_or_min_sell_price"}
    ),
    TriggerType.AUTO_SELL: frozenset(
        {"is_trigger_enabled", "exec_coll_ratio", "target_coll_ratio", "deviation", "max_buy_or_min_sell_price"}
    ),
    TriggerType.CONSTANT_MULTIPLE: frozenset(
        {"is_trigger_enabled", "buy_execution_coll_ratio", "sell_execution_coll_ratio", "target_coll_ratio"}
    ),
}

_BOOL_FIELDS = frozenset({"is_trigger_enabled", "is_to_collateral"})


@dataclass(frozen=True)
class TriggerStateEdit:
    """One partial update to one trigger, as sent over the edit channel."""
    trigger: TriggerType
    changes: Mapping[str, Any]


def _check_value(name: str, value: Any) -> Any:
    if name in _BOOL_FIELDS:
        if not isinstance(value, bool):
            raise InvalidTriggerPatch(f"{name} must be a bool, got {value!r}")
        return value
    if value is None and name == "max_buy_or_min_sell_price":
        return None
    try:
        number = Decimal(str(value))
    except ArithmeticError as e:
        raise InvalidTriggerPatch(f"{name} must be numeric, got {value!r}") from e
    if not number.is_finite() or number < 0:
        raise InvalidTriggerPatch(f"{name} must be a non-negative number, got {value!r}")
    return number


def apply_patch(states: TriggerStates, edit: TriggerStateEdit) -> TriggerStates:
    """Return ``states`` with the edit's keys replaced on the edited trigger only."""
    allowed = MUTABLE_FIELDS[edit.trigger]
    unknown = set(edit.changes) - allowed
    if unknown:
        raise InvalidTriggerPatch(
            f"Cannot patch {sorted(unknown)} on {edit.trigger.value}; allowed: {sorted(allowed)}"
        )

    checked = {name: _check_value(name, value) for name, value in edit.changes.items()}
    current = states.get(edit.trigger)
    return replace(states, **{edit.trigger.value: replace(current, **checked)})


def stop_loss_level_edit(level: Union[Decimal, int, str]) -> TriggerStateEdit:
    return TriggerStateEdit(TriggerType.STOP_LOSS, {"stop_loss_level": Decimal(str(level))})


def close_type_edit(close_to: Union[CloseVaultTo, str]) -> TriggerStateEdit:
    """Close the position to collateral or to the debt token."""
    close_to = CloseVaultTo(close_to)
    return TriggerStateEdit(
        TriggerType.STOP_LOSS, {"is_to_collateral": close_to == CloseVaultTo.COLLATERAL}
    )


class TriggerStateStore:
    """Holds the trigger states of one position and applies edits in order."""

    def __init__(self, initial: Optional[TriggerStates] = None):
        self._states = initial or TriggerStates()

    @property
    def states(self) -> TriggerStates:
        return self._states

    def apply(self, edit: TriggerStateEdit) -> TriggerStates:
        self._states = apply_patch(self._states, edit)
        logger.debug(f"Applied {edit.trigger.value} edit: {dict(edit.changes)}")
        return self._states

    def patch(self, trigger: Union[TriggerType, str], **changes: Any) -> TriggerStates:
        return self.apply(TriggerStateEdit(TriggerType(trigger), changes))

    def reset(self, states: TriggerStates) -> None:
        """Replace everything, e.g. after re-reading triggers from chain."""
        self._states = states
