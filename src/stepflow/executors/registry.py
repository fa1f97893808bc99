"""Executor registry and the context handed to node executors."""

from typing import Dict, List, Optional, Callable, Union, Awaitable
from dataclasses import dataclass, field
from loguru import logger

from ..exceptions import ExecutorNotFoundError
from ..graph.models import Node, NodeKind, ExecutionResult
from ..graph.results import RunResults


ProgressCallback = Callable[[int], None]
LogCallback = Callable[[str, str], None]


@dataclass
class NodeContext:
    """Everything an executor may look at while running one node."""
    node: Node
    run_id: str
    input_text: str = ""
    inputs: Dict[str, str] = field(default_factory=dict)  # Run-time values keyed by node id
    results: RunResults = field(default_factory=RunResults)
    on_progress: Optional[ProgressCallback] = None
    on_log: Optional[LogCallback] = None

    def report_progress(self, progress: int) -> None:
        """Report intermediate progress (0-100) of the node."""
        if self.on_progress is not None:
            self.on_progress(max(0, min(100, int(progress))))

    def log(self, message: str, level: str = "info") -> None:
        """Emit a log line attributed to the node."""
        if self.on_log is not None:
            self.on_log(level, message)

    def success(self, output: Optional[str] = None, artifacts=None) -> ExecutionResult:
        return ExecutionResult(
            node_id=self.node.id,
            success=True,
            output=output,
            artifacts=list(artifacts or [])
        )

    def failure(self, error: str) -> ExecutionResult:
        return ExecutionResult(node_id=self.node.id, success=False, error=error)


# Executors are plain callables, sync or async
Executor = Callable[[NodeContext], Union[ExecutionResult, Awaitable[ExecutionResult]]]


class ExecutorRegistry:
    """Maps node kinds to the executors that run them."""

    def __init__(self):
        self._executors: Dict[NodeKind, Executor] = {}

    def register(self, kind: Union[NodeKind, str], executor: Executor) -> 'ExecutorRegistry':
        """Register (or replace) the executor for a node kind.

        Args:
            kind: Node kind handled by the executor
            executor: Callable taking a NodeContext

        Returns:
            Self for chaining
        """
        kind = NodeKind(kind)
        if kind in self._executors:
            logger.debug(f"[EXECUTORS] Replacing executor for '{kind.value}'")
        self._executors[kind] = executor
        return self

    def unregister(self, kind: Union[NodeKind, str]) -> None:
        self._executors.pop(NodeKind(kind), None)

    def get(self, kind: Union[NodeKind, str]) -> Executor:
        """Get the executor for a node kind.

        Raises:
            ExecutorNotFoundError: If nothing is registered for the kind
        """
        kind = NodeKind(kind)
        executor = self._executors.get(kind)
        if executor is None:
            raise ExecutorNotFoundError(kind.value)
        return executor

    def has(self, kind: Union[NodeKind, str]) -> bool:
        return NodeKind(kind) in self._executors

    def kinds(self) -> List[NodeKind]:
        return list(self._executors)

    def __repr__(self) -> str:
        return f"ExecutorRegistry(kinds={[kind.value for kind in self._executors]})"
