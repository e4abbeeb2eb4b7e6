"""Lending protocol adapters."""

from typing import Union

from ..models import VaultProtocol
from .aave import AaveAdapter, AavePositionState
from .base import ProtocolAdapter, ValidationContext
from .maker import MakerAdapter, MakerVaultState, token_from_market

_ADAPTERS = {
    VaultProtocol.MAKER: MakerAdapter(),
    VaultProtocol.AAVE: AaveAdapter(),
}


def get_adapter(protocol: Union[VaultProtocol, str]) -> ProtocolAdapter:
    """Look up the adapter for a protocol name or enum member."""
    return _ADAPTERS[VaultProtocol(protocol)]


__all__ = [
    "AaveAdapter",
    "AavePositionState",
    "MakerAdapter",
    "MakerVaultState",
    "ProtocolAdapter",
    "ValidationContext",
    "get_adapter",
    "token_from_market",
]
