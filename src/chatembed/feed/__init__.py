from .embeds import EmbedLifecycleController, EmbedRecord, LinkCandidate, LinkState
from .ingest import MutationIngestionPipeline
from .monitor import MonitorState, StreamContainerMonitor

__all__ = [
    "EmbedLifecycleController",
    "EmbedRecord",
    "LinkCandidate",
    "LinkState",
    "MonitorState",
    "MutationIngestionPipeline",
    "StreamContainerMonitor",
]
