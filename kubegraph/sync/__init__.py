"""Object-to-graph synchronization pipeline."""

from kubegraph.sync.engine import GraphSyncEngine, SyncResult
from kubegraph.sync.projector import ResourceProjector

__all__ = ["GraphSyncEngine", "ResourceProjector", "SyncResult"]
