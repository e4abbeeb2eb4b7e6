"""Staged pipeline for opening a vault.

market validation -> connectivity routing -> proxy -> allowance -> action

One driver task owns the pipeline state and emits a ``PipelineState`` on
every change. User intents and trigger edits arrive on a single inbox and
are processed in order; intents that do not fit the current stage are
ignored. Without an existing position the pipeline projects the vault the
open flow would create from the deposit and generate amounts.

Disposing the pipeline cancels the driver; a transaction already handed to
the wallet stays pending on chain.
"""

import asyncio
import logging
from dataclasses import dataclass, replace
from decimal import Decimal
from enum import Enum
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, Mapping, Optional, Set, Tuple, Union

from ..config import Settings, settings as default_settings
from ..metadata import TriggerMetadata, compute_trigger_metadata
from ..models import EnvironmentData, PositionData, TriggerStates, VaultProtocol
from ..protocols import get_adapter, token_from_market
from ..trigger_state import InvalidTriggerPatch, TriggerStateEdit, TriggerStateStore
from .capabilities import (
    ChainReader,
    ConnectivityContext,
    TransactionDescriptor,
    TransactionSubmitter,
    TxEventKind,
    TxKind,
)
from .lifecycle import TxLifecycleEvent, can_transition, transition
from .stages import (
    TERMINAL_STAGES,
    PipelineStage,
    StageFlags,
    TxStageName,
    TxState,
    stage_flags,
    tx_stage,
)

logger = logging.getLogger(__name__)

NATIVE_TOKENS = frozenset({"ETH"})


class Intent(str, Enum):
    PROCEED = "proceed"
    SUBMIT = "submit"
    RETRY = "retry"
    CONTINUE = "continue"
    REFRESH = "refresh"


@dataclass(frozen=True)
class AmountsEdit:
    """New deposit and/or generate amounts for the vault being opened."""
    deposit_amount: Optional[Decimal] = None
    generate_amount: Optional[Decimal] = None

    def changes(self) -> Dict[str, Decimal]:
        changes = {}
        for name in ("deposit_amount", "generate_amount"):
            value = getattr(self, name)
            if value is None:
                continue
            amount = Decimal(str(value))
            if not amount.is_finite() or amount < 0:
                raise ValueError(f"{name} must be a non-negative amount, got {value!r}")
            changes[name] = amount
        return changes


PipelineMessage = Union[Intent, TriggerStateEdit, AmountsEdit]

_EVENT_MAP = {
    TxEventKind.APPROVED: TxLifecycleEvent.WALLET_APPROVED,
    TxEventKind.REJECTED: TxLifecycleEvent.WALLET_REJECTED,
    TxEventKind.RECEIPT_SUCCESS: TxLifecycleEvent.RECEIPT_SUCCESS,
    TxEventKind.RECEIPT_REVERT: TxLifecycleEvent.RECEIPT_REVERT,
    TxEventKind.TIMEOUT: TxLifecycleEvent.TIMEOUT,
}

_SETTLED = (TxState.SUCCESS, TxState.FAILURE, TxState.WAITING_FOR_CONFIRMATION)


@dataclass(frozen=True)
class PipelineState:
    """What the host observes after each change."""
    stage: PipelineStage
    market_id: str
    token: str
    tx_state: Optional[TxState] = None
    position: Optional[PositionData] = None
    metadata: Optional[TriggerMetadata] = None
    triggers: Optional[TriggerStates] = None
    proxy_address: Optional[str] = None
    tx_hash: Optional[str] = None
    tx_error: Optional[str] = None

    @property
    def flags(self) -> StageFlags:
        return stage_flags(self.stage)

    @property
    def is_terminal(self) -> bool:
        return self.stage in TERMINAL_STAGES


_DONE = object()


class VaultPipeline:
    """Drives one market/owner through the open-vault stages."""

    def __init__(
        self,
        market_id: str,
        connectivity: ConnectivityContext,
        reader: ChainReader,
        submitter: Optional[TransactionSubmitter] = None,
        protocol: VaultProtocol = VaultProtocol.MAKER,
        trigger_store: Optional[TriggerStateStore] = None,
        environment: Optional[EnvironmentData] = None,
        action_params: Optional[Mapping[str, Any]] = None,
        config: Optional[Settings] = None,
    ):
        self.market_id = market_id
        self.token = token_from_market(market_id)
        self.connectivity = connectivity
        self.reader = reader
        self.submitter = submitter
        self.protocol = VaultProtocol(protocol)
        self.adapter = get_adapter(self.protocol)
        self.trigger_store = trigger_store or TriggerStateStore(self.adapter.default_trigger_states())
        self.environment = environment or EnvironmentData()
        self.action_params = dict(action_params or {})
        self.config = config or default_settings

        self._inbox: "asyncio.Queue[PipelineMessage]" = asyncio.Queue()
        self._outbox: "asyncio.Queue[Any]" = asyncio.Queue()
        self._task: Optional[asyncio.Task] = None
        self._current: Optional[PipelineState] = None

        self._position: Optional[PositionData] = None
        self._metadata: Optional[TriggerMetadata] = None
        self._proxy_address: Optional[str] = None
        self._tx_hash: Optional[str] = None
        self._tx_error: Optional[str] = None

    # ------------------------------------------------------------------
    # Host-facing API
    # ------------------------------------------------------------------

    @property
    def current(self) -> Optional[PipelineState]:
        return self._current

    def send(self, message: PipelineMessage) -> None:
        """Queue a user intent, trigger edit or amount edit for the driver."""
        self._inbox.put_nowait(message)

    async def observe(self) -> AsyncIterator[PipelineState]:
        """Run the pipeline, yielding one state per change."""
        if self._task is not None:
            raise RuntimeError(f"Pipeline for {self.market_id} is already running")
        self._task = asyncio.create_task(self._run(), name=f"vault-pipeline-{self.market_id}")
        try:
            while True:
                item = await self._outbox.get()
                if item is _DONE:
                    break
                yield item
            await asyncio.wait({self._task})
            if not self._task.cancelled():
                self._task.result()
        finally:
            self.dispose()

    def dispose(self) -> None:
        if self._task is not None and not self._task.done():
            logger.info(f"Disposing pipeline for {self.market_id} at {self._current and self._current.stage.value}")
            self._task.cancel()

    # ------------------------------------------------------------------
    # Driver
    # ------------------------------------------------------------------

    async def _run(self) -> None:
        try:
            await self._drive()
        finally:
            self._outbox.put_nowait(_DONE)

    async def _drive(self) -> None:
        self._emit(PipelineStage.ILK_VALIDATION_LOADING)

        try:
            markets = await self.reader.valid_markets()
        except Exception as e:
            logger.error(f"Could not read valid markets for {self.market_id}: {e}", exc_info=True)
            self._tx_error = str(e)
            self._emit(PipelineStage.ILK_VALIDATION_FAILURE)
            return
        if self.market_id not in markets:
            logger.warning(f"Unknown market {self.market_id}; pipeline halted")
            self._emit(PipelineStage.ILK_VALIDATION_FAILURE)
            return
        self._emit(PipelineStage.ILK_VALIDATION_SUCCESS)

        await self._refresh_position()

        if not self.connectivity.is_connected or not self.connectivity.account:
            if self.connectivity.is_connected:
                logger.warning("Connected context without an account; falling back to read-only")
            await self._run_readonly()
        else:
            await self._run_connected(self.connectivity.account)

    async def _run_readonly(self) -> None:
        self._emit(PipelineStage.EDITING_READONLY)
        await self._wait_for(set())

    async def _run_connected(self, owner: str) -> None:
        self._emit(PipelineStage.EDITING_CONNECTED)
        await self._wait_for({Intent.PROCEED})

        await self._run_prerequisite(
            TxStageName.PROXY,
            check=lambda: self._check_proxy(owner),
            make_descriptor=lambda: self._descriptor(TxKind.CREATE_PROXY, owner),
            gate=self.config.proxy_wait_to_continue,
            confirm=True,
        )
        await self._run_prerequisite(
            TxStageName.ALLOWANCE,
            check=lambda: self._check_allowance(owner),
            make_descriptor=lambda: self._descriptor(
                TxKind.APPROVE_ALLOWANCE, owner, amount=self.action_params.get("deposit_amount")
            ),
        )
        await self._run_transaction(
            TxStageName.ACTION,
            make_descriptor=lambda: self._action_descriptor(owner),
        )
        logger.info(f"Vault opened on {self.market_id} for {owner} (tx {self._tx_hash})")

    async def _run_prerequisite(
        self,
        name: TxStageName,
        check: Callable[[], Awaitable[bool]],
        make_descriptor: Callable[[], TransactionDescriptor],
        gate: bool = False,
        confirm: bool = False,
    ) -> None:
        """Skip ``name`` when ``check`` passes, else run its transaction.

        With ``confirm`` the stage only completes once ``check`` observes the
        prerequisite on chain, so later stages never act on a missing result.
        """
        while True:
            satisfied, error = await self._safe_check(name, check)
            if error is None:
                break
            self._fail(name, error)
            await self._wait_for({Intent.RETRY})
            self._tx_error = None

        if satisfied:
            logger.info(f"{name.value} already satisfied for {self.market_id}")
            self._emit_tx(name, TxState.SUCCESS)
            return
        await self._run_transaction(
            name, make_descriptor, recheck=check, gate=gate, confirm=check if confirm else None
        )

    async def _run_transaction(
        self,
        name: TxStageName,
        make_descriptor: Callable[[], TransactionDescriptor],
        recheck: Optional[Callable[[], Awaitable[bool]]] = None,
        gate: bool = False,
        confirm: Optional[Callable[[], Awaitable[bool]]] = None,
    ) -> None:
        self._tx_hash = None
        self._tx_error = None
        state = TxState.WAITING_FOR_CONFIRMATION
        self._emit_tx(name, state)

        while True:
            if state == TxState.WAITING_FOR_CONFIRMATION:
                await self._wait_for({Intent.SUBMIT})
                state = self._advance(name, state, TxLifecycleEvent.SUBMIT)
                state = await self._submit(name, make_descriptor(), state)
            elif state == TxState.FAILURE:
                await self._wait_for({Intent.RETRY})
                satisfied = False
                if recheck is not None:
                    satisfied, error = await self._safe_check(name, recheck)
                    if error is not None:
                        self._fail(name, error)
                        continue
                self._tx_error = None
                state = self._advance(name, state, TxLifecycleEvent.RETRY)
                if satisfied:
                    logger.info(f"{name.value} satisfied on re-check; skipping resubmission")
                    state = TxState.SUCCESS
                    self._emit_tx(name, state)
            elif state == TxState.SUCCESS:
                ready = True
                if confirm is not None:
                    ready = await self._confirmed(name, confirm)
                if gate or not ready:
                    self._advance(name, state, TxLifecycleEvent.DOWNSTREAM_PENDING)
                    while True:
                        await self._wait_for({Intent.CONTINUE})
                        if ready or await self._confirmed(name, confirm):
                            break
                        self._emit_tx(name, TxState.WAIT_TO_CONTINUE)
                    self._tx_error = None
                return
            else:
                raise RuntimeError(f"{name.value} stalled in {state.value}")

    async def _safe_check(
        self, name: TxStageName, check: Callable[[], Awaitable[bool]]
    ) -> Tuple[bool, Optional[str]]:
        """Run a prerequisite read, turning reader errors into data."""
        try:
            return bool(await check()), None
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"{self.market_id} {name.value} check failed: {e}", exc_info=True)
            return False, str(e) or e.__class__.__name__

    async def _confirmed(self, name: TxStageName, confirm: Callable[[], Awaitable[bool]]) -> bool:
        satisfied, error = await self._safe_check(name, confirm)
        if satisfied:
            return True
        self._tx_error = error or f"{name.value} not yet visible on chain"
        logger.warning(f"{self.market_id} {name.value} succeeded but is not observed yet: {self._tx_error}")
        return False

    async def _submit(self, name: TxStageName, descriptor: TransactionDescriptor, state: TxState) -> TxState:
        if self.submitter is None:
            return self._fail(name, "No transaction submitter configured")
        if descriptor.kind != TxKind.CREATE_PROXY and descriptor.proxy_address is None:
            return self._fail(name, f"No proxy address for {descriptor.kind.value}")

        try:
            async for event in self.submitter.submit(descriptor):
                lifecycle_event = _EVENT_MAP[event.kind]
                if not can_transition(state, lifecycle_event):
                    logger.debug(f"Ignoring {event.kind.value} for {name.value} in {state.value}")
                    continue
                if event.tx_hash:
                    self._tx_hash = event.tx_hash
                if event.error:
                    self._tx_error = event.error
                state = self._advance(name, state, lifecycle_event)
                if state in _SETTLED:
                    return state
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"{name.value} submission failed: {e}", exc_info=True)
            return self._fail(name, str(e))

        return self._fail(name, "Transaction stream ended without a receipt")

    def _advance(self, name: TxStageName, state: TxState, event: TxLifecycleEvent) -> TxState:
        step = transition(state, event)
        logger.info(f"{self.market_id} {name.value}: {step.previous.value} --{event.value}--> {step.new.value}")
        self._emit_tx(name, step.new)
        return step.new

    def _fail(self, name: TxStageName, error: str) -> TxState:
        logger.warning(f"{self.market_id} {name.value} failed: {error}")
        self._tx_error = error
        self._emit_tx(name, TxState.FAILURE)
        return TxState.FAILURE

    async def _wait_for(self, accepted: Set[Intent]) -> Intent:
        """Block until an accepted intent arrives, applying edits meanwhile."""
        while True:
            message = await self._inbox.get()

            if isinstance(message, TriggerStateEdit):
                try:
                    self.trigger_store.apply(message)
                except InvalidTriggerPatch as e:
                    logger.warning(f"Rejected trigger edit: {e}")
                    continue
                self._recompute_metadata()
                self._reemit()
                continue

            if isinstance(message, AmountsEdit):
                if self._current is None or not self._current.flags.is_editing_stage:
                    logger.debug(f"Ignoring amount edit outside editing for {self.market_id}")
                    continue
                try:
                    changes = message.changes()
                except (ValueError, ArithmeticError) as e:
                    logger.warning(f"Rejected amount edit: {e}")
                    continue
                self.action_params.update(changes)
                await self._refresh_position()
                self._reemit()
                continue

            if message == Intent.REFRESH:
                await self._refresh_position()
                self._reemit()
                continue

            if message in accepted:
                return message

            stage = self._current.stage.value if self._current else "startup"
            logger.debug(f"Ignoring {message.value} intent in {stage}")

    # ------------------------------------------------------------------
    # Prerequisite checks and descriptors
    # ------------------------------------------------------------------

    async def _check_proxy(self, owner: str) -> bool:
        self._proxy_address = await self.reader.proxy_address(owner)
        return self._proxy_address is not None

    async def _check_allowance(self, owner: str) -> bool:
        if self.token in NATIVE_TOKENS:
            return True
        if self._proxy_address is None:
            self._proxy_address = await self.reader.proxy_address(owner)
        if self._proxy_address is None:
            return False
        return await self.reader.allowance(self.token, owner, self._proxy_address)

    def _descriptor(self, kind: TxKind, owner: str, amount=None, params=None) -> TransactionDescriptor:
        return TransactionDescriptor(
            kind=kind,
            owner=owner,
            market_id=self.market_id,
            token=self.token,
            proxy_address=self._proxy_address,
            amount=amount,
            params=params or {},
        )

    def _action_descriptor(self, owner: str) -> TransactionDescriptor:
        params = dict(self.action_params)
        stop_loss = self.trigger_store.states.stop_loss
        if stop_loss.is_trigger_enabled:
            params["stop_loss_level"] = stop_loss.stop_loss_level
            params["stop_loss_to_collateral"] = stop_loss.is_to_collateral
        return self._descriptor(TxKind.OPEN_VAULT, owner, amount=params.get("deposit_amount"), params=params)

    # ------------------------------------------------------------------
    # Position data
    # ------------------------------------------------------------------

    def _amount(self, key: str) -> Optional[Decimal]:
        value = self.action_params.get(key)
        if value is None:
            return None
        return Decimal(str(value))

    async def _refresh_position(self) -> None:
        """Load the owner's position, or project the one the open flow would create.

        Reader errors keep the previous figures.
        """
        owner = self.connectivity.account
        try:
            price = await self.reader.market_price(self.token)
            raw = None
            if owner:
                raw = await self.reader.native_position_state(self.protocol, owner)
            params = None
            deposit = self._amount("deposit_amount")
            if raw is None and deposit:
                params = await self.reader.market_parameters(self.market_id)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"Could not read position data for {self.market_id}: {e}", exc_info=True)
            return

        if price is None or (raw is None and params is None):
            self._position = None
            self._metadata = None
            return

        self.environment = replace(self.environment, next_collateral_price=price.next)
        try:
            if raw is not None:
                native = self.adapter.parse_native(raw)
            else:
                native = self.adapter.project_native(
                    self.market_id,
                    params,
                    deposit_amount=deposit,
                    generate_amount=self._amount("generate_amount") or Decimal("0"),
                    owner=owner,
                )
            self._position = self.adapter.to_position_data(native, price)
        except (KeyError, TypeError, ArithmeticError) as e:
            logger.warning(f"Unreadable {self.protocol.value} position for {owner or self.market_id}: {e}")
            self._position = None
        self._recompute_metadata()

    def _recompute_metadata(self) -> None:
        if self._position is None:
            self._metadata = None
            return
        self._metadata = compute_trigger_metadata(
            self.adapter,
            self._position,
            self.trigger_store.states,
            environment=self.environment,
            dispatch=self.send,
            config=self.config,
        )

    # ------------------------------------------------------------------
    # Emission
    # ------------------------------------------------------------------

    def _emit(self, stage: PipelineStage, tx_state: Optional[TxState] = None) -> None:
        self._current = PipelineState(
            stage=stage,
            market_id=self.market_id,
            token=self.token,
            tx_state=tx_state,
            position=self._position,
            metadata=self._metadata,
            triggers=self.trigger_store.states,
            proxy_address=self._proxy_address,
            tx_hash=self._tx_hash,
            tx_error=self._tx_error,
        )
        self._outbox.put_nowait(self._current)

    def _emit_tx(self, name: TxStageName, state: TxState) -> None:
        self._emit(tx_stage(name, state), state)

    def _reemit(self) -> None:
        if self._current is not None:
            self._emit(self._current.stage, self._current.tx_state)
