"""Capabilities the host application supplies to the pipeline.

Reads are awaitable so the pipeline only suspends at these I/O boundaries.
Submission returns a stream of lifecycle events; timeouts are the
submitter's responsibility and arrive as a ``TIMEOUT`` event.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any, AsyncIterator, Dict, Mapping, Optional, Protocol, Set

from ..models import MarketPrice, VaultProtocol


class TxEventKind(str, Enum):
    APPROVED = "approved"
    REJECTED = "rejected"
    RECEIPT_SUCCESS = "receiptSuccess"
    RECEIPT_REVERT = "receiptRevert"
    TIMEOUT = "timeout"


@dataclass(frozen=True)
class TxEvent:
    kind: TxEventKind
    tx_hash: Optional[str] = None
    error: Optional[str] = None


class TxKind(str, Enum):
    CREATE_PROXY = "createProxy"
    APPROVE_ALLOWANCE = "approveAllowance"
    OPEN_VAULT = "openVault"


@dataclass(frozen=True)
class TransactionDescriptor:
    """What to submit; call encoding is left to the submitter."""
    kind: TxKind
    owner: str
    market_id: str
    token: str
    proxy_address: Optional[str] = None
    amount: Optional[Decimal] = None
    params: Mapping[str, Any] = field(default_factory=dict)


class ChainReader(Protocol):
    async def market_price(self, token: str) -> Optional[MarketPrice]:
        ...

    async def valid_markets(self) -> Set[str]:
        ...

    async def market_parameters(self, market_id: str) -> Optional[Dict[str, Any]]:
        """Risk parameters of a market (ilk or reserve), used to project new positions."""
        ...

    async def proxy_address(self, owner: str) -> Optional[str]:
        ...

    async def allowance(self, token: str, owner: str, spender: str) -> bool:
        ...

    async def native_position_state(self, protocol: VaultProtocol, owner: str) -> Optional[Dict[str, Any]]:
        ...


class TransactionSubmitter(Protocol):
    def submit(self, descriptor: TransactionDescriptor) -> AsyncIterator[TxEvent]:
        ...


@dataclass(frozen=True)
class ConnectivityContext:
    """Wallet connectivity; read-only sessions may still watch an address."""
    is_connected: bool
    account: Optional[str] = None
