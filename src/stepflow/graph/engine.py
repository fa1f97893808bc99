"""Sequential execution of workflow graphs."""

from typing import Dict, List, Optional, Any, Callable, Tuple
from dataclasses import dataclass, field
from collections import deque
import asyncio
import inspect
import threading
import time
import uuid
from loguru import logger

from ..exceptions import RunInProgressError
from ..executors.registry import ExecutorRegistry, NodeContext
from .events import ExecutionEvent, NodeEvent, LogEvent, RunEvent, NodeStatus, RunStatus, LogLevel
from .models import Node, Edge, ExecutionResult
from .results import RunResults


INPUT_SEPARATOR = "\n\n---\n\n"

EventCallback = Callable[[ExecutionEvent], Any]


def topological_order(nodes: List[Node], edges: List[Edge]) -> Tuple[List[Node], List[Node]]:
    """Order nodes with Kahn's algorithm.

    Args:
        nodes: Nodes of the graph
        edges: Edges of the graph; edges touching unknown nodes are ignored

    Returns:
        (ordered, unreached): nodes in dependency order, and nodes never
        dequeued because they sit on or behind a cycle
    """
    by_id = {node.id: node for node in nodes}
    in_degree = {node.id: 0 for node in nodes}
    adjacency: Dict[str, List[str]] = {node.id: [] for node in nodes}

    for edge in edges:
        if edge.source in by_id and edge.target in by_id:
            adjacency[edge.source].append(edge.target)
            in_degree[edge.target] += 1

    queue = deque(node.id for node in nodes if in_degree[node.id] == 0)
    ordered: List[Node] = []

    while queue:
        node_id = queue.popleft()
        ordered.append(by_id[node_id])
        for target in adjacency[node_id]:
            in_degree[target] -= 1
            if in_degree[target] == 0:
                queue.append(target)

    seen = {node.id for node in ordered}
    unreached = [node for node in nodes if node.id not in seen]
    return ordered, unreached


@dataclass
class RunResult:
    """Outcome of one run."""
    run_id: str
    status: RunStatus
    results: Dict[str, ExecutionResult] = field(default_factory=dict)
    error: Optional[str] = None
    failed_node: Optional[str] = None
    unreached: List[str] = field(default_factory=list)
    execution_time_seconds: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "run_id": self.run_id,
            "status": self.status.value,
            "results": {node_id: result.to_dict() for node_id, result in self.results.items()},
            "error": self.error,
            "failed_node": self.failed_node,
            "unreached": self.unreached,
            "execution_time_seconds": round(self.execution_time_seconds, 3)
        }


class _EventSink:
    """Delivers events to a sync or async callback, preserving order.

    Executors may report progress from the event loop or from a worker
    thread; both paths end up on the loop in emission order.
    """

    def __init__(self, callback: Optional[EventCallback], loop: asyncio.AbstractEventLoop):
        self.callback = callback
        self.loop = loop
        self._thread_id = threading.get_ident()
        self._last: Optional[asyncio.Future] = None

    def push(self, event: ExecutionEvent) -> None:
        if self.callback is None:
            return
        if threading.get_ident() != self._thread_id:
            self.loop.call_soon_threadsafe(self._dispatch, event)
        else:
            self._dispatch(event)

    def _dispatch(self, event: ExecutionEvent) -> None:
        try:
            outcome = self.callback(event)
        except Exception as e:
            logger.exception(f"[ENGINE] Event callback failed: {e}")
            return
        if inspect.isawaitable(outcome):
            self._last = asyncio.ensure_future(self._after(self._last, outcome))

    async def _after(self, previous: Optional[asyncio.Future], awaitable) -> None:
        if previous is not None:
            await previous
        try:
            await awaitable
        except Exception as e:
            logger.exception(f"[ENGINE] Event callback failed: {e}")

    async def emit(self, event: ExecutionEvent) -> None:
        """Deliver an event and wait until everything before it is delivered."""
        self.push(event)
        await self.drain()

    async def drain(self) -> None:
        # Let thread-safe callbacks scheduled before this point run first
        await asyncio.sleep(0)
        if self._last is not None:
            await self._last


class ExecutionEngine:
    """Runs a workflow graph one node at a time.

    Nodes run in topological order. Each node receives the outputs of its
    upstream nodes joined with a separator. The first failing node ends the
    run. Only one run may be active at a time.
    """

    def __init__(self, registry: ExecutorRegistry):
        """Initialize the engine.

        Args:
            registry: Executors keyed by node kind
        """
        self.registry = registry
        self.results = RunResults()
        self.status = RunStatus.IDLE
        self.run_id: Optional[str] = None
        self._cancel_requested = False

    @property
    def is_running(self) -> bool:
        return self.status == RunStatus.RUNNING

    def cancel(self, run_id: Optional[str] = None) -> bool:
        """Request cancellation of the active run.

        The node already dispatched finishes; no further node starts.

        Args:
            run_id: Run to cancel; None cancels whatever is active

        Returns:
            True if an active run was flagged
        """
        if not self.is_running or (run_id is not None and run_id != self.run_id):
            logger.info(f"[ENGINE] Cancel ignored: run '{run_id}' is not active")
            return False
        logger.info(f"[ENGINE] Cancellation requested for run '{self.run_id}'")
        self._cancel_requested = True
        return True

    async def execute(
        self,
        nodes: List[Node],
        edges: List[Edge],
        run_id: Optional[str] = None,
        inputs: Optional[Dict[str, str]] = None,
        on_event: Optional[EventCallback] = None
    ) -> RunResult:
        """Execute a graph.

        Args:
            nodes: Nodes to run
            edges: Edges carrying outputs downstream
            run_id: Identifier echoed in every event (generated if None)
            inputs: Run-time values for input nodes keyed by node id
            on_event: Sync or async callback receiving node, log and run events

        Returns:
            Outcome of the run

        Raises:
            RunInProgressError: If another run is active
        """
        if self.is_running:
            raise RunInProgressError(self.run_id)

        run_id = run_id or uuid.uuid4().hex
        self.run_id = run_id
        self.status = RunStatus.RUNNING
        self._cancel_requested = False
        self.results.clear()

        sink = _EventSink(on_event, asyncio.get_running_loop())
        start_time = time.time()

        try:
            result = await self._run(run_id, nodes, edges, inputs or {}, sink)
        except BaseException:
            self.status = RunStatus.FAILED
            raise
        finally:
            self.results.clear()

        result.execution_time_seconds = time.time() - start_time
        self.status = result.status

        logger.info(
            f"[ENGINE] Run '{run_id}' {result.status.value}: "
            f"{len(result.results)}/{len(nodes)} nodes, time={result.execution_time_seconds:.2f}s"
        )
        return result

    async def _run(
        self,
        run_id: str,
        nodes: List[Node],
        edges: List[Edge],
        inputs: Dict[str, str],
        sink: _EventSink
    ) -> RunResult:
        ordered, unreached = topological_order(nodes, edges)
        unreached_ids = [node.id for node in unreached]
        logger.info(f"[ENGINE] Starting run '{run_id}': {[node.id for node in ordered]}")

        if unreached:
            message = f"Skipping nodes on a cycle: {', '.join(unreached_ids)}"
            logger.warning(f"[ENGINE] {message}")
            await sink.emit(LogEvent(run_id=run_id, level=LogLevel.WARN, message=message))

        upstream: Dict[str, List[str]] = {node.id: [] for node in nodes}
        for edge in edges:
            if edge.target in upstream:
                upstream[edge.target].append(edge.source)

        for node in ordered:
            if self._cancel_requested:
                return await self._finish_cancelled(run_id, sink, unreached_ids)

            await sink.emit(NodeEvent(run_id=run_id, node_id=node.id, status=NodeStatus.RUNNING, progress=0))
            result = await self._execute_node(run_id, node, upstream[node.id], inputs, sink)
            self.results.record(result)

            if not result.success:
                error = result.error or "Unknown error"
                await sink.emit(NodeEvent(run_id=run_id, node_id=node.id, status=NodeStatus.ERROR, error=error))
                await sink.emit(RunEvent(run_id=run_id, status="error", error=error))
                return RunResult(
                    run_id=run_id,
                    status=RunStatus.FAILED,
                    results=self.results.get_all(),
                    error=error,
                    failed_node=node.id,
                    unreached=unreached_ids
                )

            await sink.emit(NodeEvent(
                run_id=run_id,
                node_id=node.id,
                status=NodeStatus.COMPLETED,
                progress=100,
                result=result.output
            ))

        # A cancel that arrived during the last node still ends as cancelled
        if self._cancel_requested:
            return await self._finish_cancelled(run_id, sink, unreached_ids)

        await sink.emit(RunEvent(run_id=run_id, status="completed", results=self.results.to_dict()))
        return RunResult(
            run_id=run_id,
            status=RunStatus.COMPLETED,
            results=self.results.get_all(),
            unreached=unreached_ids
        )

    async def _finish_cancelled(self, run_id: str, sink: _EventSink, unreached: List[str]) -> RunResult:
        logger.info(f"[ENGINE] Run '{run_id}' cancelled")
        await sink.emit(RunEvent(run_id=run_id, status="cancelled", results=self.results.to_dict()))
        return RunResult(
            run_id=run_id,
            status=RunStatus.CANCELLED,
            results=self.results.get_all(),
            unreached=unreached
        )

    def _gather_input(self, sources: List[str]) -> str:
        outputs = [self.results.output_of(source) for source in sources]
        return INPUT_SEPARATOR.join(output for output in outputs if output)

    async def _execute_node(
        self,
        run_id: str,
        node: Node,
        sources: List[str],
        inputs: Dict[str, str],
        sink: _EventSink
    ) -> ExecutionResult:
        """Run one node; exceptions become a failed result."""
        context = NodeContext(
            node=node,
            run_id=run_id,
            input_text=self._gather_input(sources),
            inputs=inputs,
            results=self.results,
            on_progress=lambda progress: sink.push(NodeEvent(
                run_id=run_id, node_id=node.id, status=NodeStatus.RUNNING, progress=progress
            )),
            on_log=lambda level, message: sink.push(LogEvent(
                run_id=run_id, level=_log_level(level), message=message, node_id=node.id
            ))
        )

        logger.info(f"[ENGINE] Executing node '{node.id}' ({node.kind.value})")
        try:
            executor = self.registry.get(node.kind)
            if inspect.iscoroutinefunction(executor):
                result = await executor(context)
            else:
                loop = asyncio.get_running_loop()
                result = await loop.run_in_executor(None, executor, context)
                if inspect.isawaitable(result):
                    result = await result
        except Exception as e:
            logger.exception(f"[ENGINE] Node '{node.id}' failed: {e}")
            result = ExecutionResult(node_id=node.id, success=False, error=str(e) or type(e).__name__)

        await sink.drain()
        # Results are keyed by the node that ran, whatever the executor set
        result.node_id = node.id
        return result


def _log_level(level: str) -> LogLevel:
    if level == "warning":
        return LogLevel.WARN
    try:
        return LogLevel(level)
    except ValueError:
        return LogLevel.INFO
