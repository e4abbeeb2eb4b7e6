"""Staged transaction pipeline for opening and modifying vaults."""

from .capabilities import (
    ChainReader,
    ConnectivityContext,
    TransactionDescriptor,
    TransactionSubmitter,
    TxEvent,
    TxEventKind,
    TxKind,
)
from .lifecycle import InvalidTransition, TxLifecycleEvent
from .stages import PipelineStage, StageFlags, TxStageName, TxState, stage_flags
from .vault_pipeline import AmountsEdit, Intent, PipelineState, VaultPipeline


def observe_pipeline(market_id: str, connectivity: ConnectivityContext, reader: ChainReader, **kwargs):
    """Create a pipeline and return it with its state stream."""
    pipeline = VaultPipeline(market_id, connectivity, reader, **kwargs)
    return pipeline, pipeline.observe()


__all__ = [
    "AmountsEdit",
    "ChainReader",
    "ConnectivityContext",
    "Intent",
    "InvalidTransition",
    "PipelineStage",
    "PipelineState",
    "StageFlags",
    "TransactionDescriptor",
    "TransactionSubmitter",
    "TxEvent",
    "TxEventKind",
    "TxKind",
    "TxLifecycleEvent",
    "TxStageName",
    "TxState",
    "VaultPipeline",
    "observe_pipeline",
    "stage_flags",
]
