"""Protocol adapter interface and validation context.

Each lending protocol supplies its own complete adapter; there is no shared
base implementation.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Callable, Dict, Mapping, Optional, Protocol, Tuple

from ..models import (
    EnvironmentData,
    MarketPrice,
    PositionData,
    TriggerStates,
    VaultProtocol,
)


@dataclass(frozen=True)
class ValidationContext:
    """Everything a validation predicate may look at for one candidate level."""
    position: PositionData
    triggers: TriggerStates
    stop_loss_level: Decimal
    slider_max: Decimal
    environment: EnvironmentData = field(default_factory=EnvironmentData)
    max_debt_for_stop_loss: Optional[Decimal] = None
    min_offset: Decimal = Decimal("5")
    tx_error: Optional[str] = None
    gas_estimation_usd: Optional[Decimal] = None


Predicate = Callable[[ValidationContext], bool]


class ProtocolAdapter(Protocol):
    """Capability set every protocol variant provides."""

    protocol: VaultProtocol
    add_errors: Mapping[str, Predicate]
    add_warnings: Mapping[str, Predicate]
    cancel_errors: Tuple[str, ...]
    cancel_warnings: Tuple[str, ...]

    def parse_native(self, raw: Mapping[str, Any]) -> Any:
        ...

    def project_native(
        self,
        market_id: str,
        params: Mapping[str, Any],
        deposit_amount: Decimal,
        generate_amount: Decimal,
        owner: Optional[str] = None,
    ) -> Any:
        ...

    def to_position_data(self, native: Any, price: MarketPrice) -> PositionData:
        ...

    def default_trigger_states(self) -> TriggerStates:
        ...


def evaluate(predicates: Mapping[str, Predicate], ctx: ValidationContext) -> Dict[str, bool]:
    """Run named predicates, returning name -> flag."""
    return {name: bool(predicate(ctx)) for name, predicate in predicates.items()}
