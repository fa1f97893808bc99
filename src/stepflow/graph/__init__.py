"""Workflow graph model, layout and run bookkeeping.

The execution engine lives in ``stepflow.graph.engine``; it depends on the
executor registry, which in turn depends on the models exported here.
"""

from .models import (
    Node,
    NodeKind,
    Edge,
    FileRef,
    ExecutionResult,
    SyncResult,
    to_slug,
    is_valid_slug,
    is_valid_run_id,
    validate_connection,
)
from .events import NodeEvent, LogEvent, RunEvent, NodeStatus, RunStatus, LogLevel
from .results import RunResults
from .layout import LayoutEngine

__all__ = [
    "Node",
    "NodeKind",
    "Edge",
    "FileRef",
    "ExecutionResult",
    "SyncResult",
    "to_slug",
    "is_valid_slug",
    "is_valid_run_id",
    "validate_connection",
    "NodeEvent",
    "LogEvent",
    "RunEvent",
    "NodeStatus",
    "RunStatus",
    "LogLevel",
    "RunResults",
    "LayoutEngine",
]
