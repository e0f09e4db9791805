from __future__ import annotations

from .checkpoints import CheckpointStore
from .descriptors import DESCRIPTORS, EntityDescriptor, ExportQuery, get_descriptor
from .errors import (
    BatchTimeout,
    CheckpointWriteFailure,
    ExportFailure,
    SyncError,
    TransactionFailure,
    TransientWriteFailure,
    is_unique_violation,
    register_conflict_detector,
)
from .executor import BatchResult, UpsertExecutor
from .exporter import IncrementalExporter

__all__ = [
    "BatchResult",
    "BatchTimeout",
    "CheckpointStore",
    "CheckpointWriteFailure",
    "DESCRIPTORS",
    "EntityDescriptor",
    "ExportFailure",
    "ExportQuery",
    "IncrementalExporter",
    "SyncError",
    "TransactionFailure",
    "TransientWriteFailure",
    "UpsertExecutor",
    "get_descriptor",
    "is_unique_violation",
    "register_conflict_detector",
]
