"""Per-run storage of node execution results."""

from typing import Dict, Any, Optional, List
from dataclasses import dataclass, field
from datetime import datetime
from loguru import logger

from .models import ExecutionResult, FileRef


@dataclass
class ResultEntry:
    """Execution result with bookkeeping metadata."""
    result: ExecutionResult
    timestamp: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        data = self.result.to_dict()
        data["timestamp"] = self.timestamp.isoformat()
        return data


class RunResults:
    """Results of one run keyed by node id, in completion order."""

    def __init__(self):
        """Initialize an empty result set."""
        self._entries: Dict[str, ResultEntry] = {}

    def record(self, result: ExecutionResult) -> None:
        """Store the result of a node.

        Args:
            result: Result to store, replacing any earlier one for the node
        """
        self._entries[result.node_id] = ResultEntry(result=result)
        status = "ok" if result.success else f"error: {result.error}"
        logger.debug(f"[RESULTS] {result.node_id} -> {status}")

    def get(self, node_id: str) -> Optional[ExecutionResult]:
        """Get the result of a node, None if it has not run."""
        entry = self._entries.get(node_id)
        return entry.result if entry else None

    def has(self, node_id: str) -> bool:
        return node_id in self._entries

    def output_of(self, node_id: str) -> Optional[str]:
        """Text output of a node, None if it has not produced any."""
        result = self.get(node_id)
        return result.output if result else None

    def artifacts(self) -> List[FileRef]:
        """Files produced so far, in completion order."""
        files: List[FileRef] = []
        for entry in self._entries.values():
            files.extend(entry.result.artifacts)
        return files

    def get_all(self) -> Dict[str, ExecutionResult]:
        return {node_id: entry.result for node_id, entry in self._entries.items()}

    def clear(self) -> None:
        """Discard all results."""
        self._entries.clear()

    def to_dict(self) -> Dict[str, Any]:
        """Export results as dictionary."""
        return {node_id: entry.to_dict() for node_id, entry in self._entries.items()}

    def __len__(self) -> int:
        return len(self._entries)

    def __repr__(self) -> str:
        return f"RunResults(entries={len(self._entries)})"
