from __future__ import annotations

from .pipeline import TransformationPipeline
from .provider import SyncProvider, open_provider
from .synchronizers import AuditSynchronizer, EntitySynchronizer, TicketSynchronizer

__all__ = [
    "AuditSynchronizer",
    "EntitySynchronizer",
    "SyncProvider",
    "TicketSynchronizer",
    "TransformationPipeline",
    "open_provider",
]
