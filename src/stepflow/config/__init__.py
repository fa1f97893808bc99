"""Configuration artifacts and their synchronization with the workflow graph."""

from .store import ConfigArtifactStore, Artifact
from .sync import GraphSyncEngine
from .loader import ConfigLoader, merge_loaded_nodes

__all__ = [
    "ConfigArtifactStore",
    "Artifact",
    "GraphSyncEngine",
    "ConfigLoader",
    "merge_loaded_nodes",
]
