"""Tests for sequential graph execution."""

import sys
import os
import asyncio
import pytest
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from stepflow.exceptions import RunInProgressError
from stepflow.executors import ExecutorRegistry
from stepflow.graph import Node, NodeKind, Edge, NodeEvent, LogEvent, RunEvent, RunStatus
from stepflow.graph.engine import ExecutionEngine, topological_order, INPUT_SEPARATOR


def echo(context):
    """Output the node id and what it received."""
    return context.success(f"{context.node.id}({context.input_text})")


def value_of(context):
    return context.success(context.inputs.get(context.node.id) or context.node.value or "")


def make_registry():
    registry = ExecutorRegistry()
    for kind in NodeKind:
        registry.register(kind, echo)
    registry.register(NodeKind.INPUT, value_of)
    return registry


def pipeline():
    nodes = [
        Node(id="i1", kind=NodeKind.INPUT, label="Input", value="topic"),
        Node(id="a1", kind=NodeKind.AGENT, label="Writer"),
        Node(id="o1", kind=NodeKind.OUTPUT, label="Output"),
    ]
    edges = [
        Edge(id="e1", source="i1", target="a1"),
        Edge(id="e2", source="a1", target="o1"),
    ]
    return nodes, edges


def run(engine, nodes, edges, **kwargs):
    """Execute a graph and collect its events."""
    events = []
    result = asyncio.run(engine.execute(nodes, edges, on_event=events.append, **kwargs))
    return result, events


def node_events(events, node_id):
    return [e for e in events if isinstance(e, NodeEvent) and e.node_id == node_id]


def test_topological_order():
    nodes = [Node(id=n, kind=NodeKind.AGENT, label=n) for n in ("c", "b", "a")]
    edges = [Edge(id="1", source="a", target="b"), Edge(id="2", source="b", target="c")]

    ordered, unreached = topological_order(nodes, edges)

    assert [node.id for node in ordered] == ["a", "b", "c"]
    assert unreached == []


def test_topological_order_with_cycle_is_partial():
    nodes = [Node(id=n, kind=NodeKind.AGENT, label=n) for n in ("i", "a", "b")]
    edges = [
        Edge(id="1", source="i", target="a"),
        Edge(id="2", source="a", target="b"),
        Edge(id="3", source="b", target="a"),
    ]

    ordered, unreached = topological_order(nodes, edges)

    assert [node.id for node in ordered] == ["i"]
    assert [node.id for node in unreached] == ["a", "b"]


def test_successful_run_events():
    engine = ExecutionEngine(make_registry())
    nodes, edges = pipeline()

    result, events = run(engine, nodes, edges, run_id="run-1")

    assert result.status == RunStatus.COMPLETED
    assert result.results["o1"].output == "o1(a1(topic))"
    for node in nodes:
        statuses = [(e.status.value, e.progress) for e in node_events(events, node.id)]
        assert statuses == [("running", 0), ("completed", 100)]
    assert all(e.run_id == "run-1" for e in events)

    terminal = events[-1]
    assert isinstance(terminal, RunEvent)
    assert terminal.status == "completed"
    assert set(terminal.results) == {"i1", "a1", "o1"}
    assert not engine.is_running
    assert len(engine.results) == 0


def test_failing_node_stops_the_run():
    """Input -> A -> Output with A failing: one error event for A, none for Output."""
    registry = make_registry()
    registry.register(NodeKind.AGENT, lambda context: context.failure("boom"))
    engine = ExecutionEngine(registry)
    nodes, edges = pipeline()

    result, events = run(engine, nodes, edges)

    errors = [e for e in node_events(events, "a1") if e.status.value == "error"]
    assert len(errors) == 1
    assert errors[0].error == "boom"
    assert node_events(events, "o1") == []
    assert result.status == RunStatus.FAILED
    assert result.failed_node == "a1"
    assert result.error == "boom"
    assert events[-1].status == "error"
    assert events[-1].error == "boom"
    assert engine.status == RunStatus.FAILED


def test_raising_executor_fails_the_node():
    async def explode(context):
        raise RuntimeError("kaput")

    registry = make_registry()
    registry.register(NodeKind.AGENT, explode)
    engine = ExecutionEngine(registry)
    nodes, edges = pipeline()

    result, events = run(engine, nodes, edges)

    assert result.status == RunStatus.FAILED
    assert node_events(events, "a1")[-1].error == "kaput"
    assert node_events(events, "o1") == []


def test_missing_executor_fails_the_node():
    registry = make_registry()
    registry.unregister(NodeKind.OUTPUT)
    engine = ExecutionEngine(registry)
    nodes, edges = pipeline()

    result, _ = run(engine, nodes, edges)

    assert result.status == RunStatus.FAILED
    assert result.failed_node == "o1"
    assert "output" in result.error


def test_upstream_outputs_are_joined():
    engine = ExecutionEngine(make_registry())
    nodes = [
        Node(id="i1", kind=NodeKind.INPUT, label="First"),
        Node(id="i2", kind=NodeKind.INPUT, label="Second", value="stored"),
        Node(id="i3", kind=NodeKind.INPUT, label="Empty"),
        Node(id="a1", kind=NodeKind.AGENT, label="Writer"),
    ]
    edges = [
        Edge(id="e1", source="i1", target="a1"),
        Edge(id="e2", source="i2", target="a1"),
        Edge(id="e3", source="i3", target="a1"),
    ]

    result, _ = run(engine, nodes, edges, inputs={"i1": "given"})

    assert result.results["a1"].output == f"a1(given{INPUT_SEPARATOR}stored)"


def test_cycle_nodes_are_skipped_with_warning():
    engine = ExecutionEngine(make_registry())
    nodes = [
        Node(id="i", kind=NodeKind.INPUT, label="i", value="x"),
        Node(id="a", kind=NodeKind.AGENT, label="a"),
        Node(id="b", kind=NodeKind.AGENT, label="b"),
    ]
    edges = [
        Edge(id="1", source="i", target="a"),
        Edge(id="2", source="a", target="b"),
        Edge(id="3", source="b", target="a"),
    ]

    result, events = run(engine, nodes, edges)

    assert result.status == RunStatus.COMPLETED
    assert set(result.results) == {"i"}
    assert result.unreached == ["a", "b"]
    warnings = [e for e in events if isinstance(e, LogEvent)]
    assert warnings[0].level.value == "warn"
    assert node_events(events, "a") == []


def test_cancel_stops_before_next_node():
    engine = ExecutionEngine(make_registry())

    async def cancel_midway(context):
        assert engine.cancel()
        return context.success("partial")

    engine.registry.register(NodeKind.AGENT, cancel_midway)
    nodes, edges = pipeline()

    result, events = run(engine, nodes, edges)

    assert result.status == RunStatus.CANCELLED
    assert node_events(events, "a1")[-1].status.value == "completed"
    assert node_events(events, "o1") == []
    assert events[-1].status == "cancelled"
    assert engine.status == RunStatus.CANCELLED


def test_cancel_during_last_node_still_cancels():
    engine = ExecutionEngine(make_registry())

    async def cancel_at_end(context):
        engine.cancel()
        return context.success("done")

    engine.registry.register(NodeKind.OUTPUT, cancel_at_end)
    nodes, edges = pipeline()

    result, events = run(engine, nodes, edges)

    assert result.status == RunStatus.CANCELLED
    assert [e.status for e in events if isinstance(e, RunEvent)] == ["cancelled"]


def test_failure_wins_over_cancel():
    engine = ExecutionEngine(make_registry())

    async def cancel_and_fail(context):
        engine.cancel()
        return context.failure("broken")

    engine.registry.register(NodeKind.AGENT, cancel_and_fail)
    nodes, edges = pipeline()

    result, events = run(engine, nodes, edges)

    assert result.status == RunStatus.FAILED
    assert [e.status for e in events if isinstance(e, RunEvent)] == ["error"]


def test_cancel_when_idle():
    engine = ExecutionEngine(make_registry())
    assert engine.cancel() is False
    assert engine.cancel("unknown") is False


def test_only_one_run_at_a_time():
    async def scenario():
        gate = asyncio.Event()

        async def wait_for_gate(context):
            await gate.wait()
            return context.success("released")

        registry = make_registry()
        registry.register(NodeKind.AGENT, wait_for_gate)
        engine = ExecutionEngine(registry)
        nodes = [Node(id="a1", kind=NodeKind.AGENT, label="Slow")]

        first = asyncio.create_task(engine.execute(nodes, [], run_id="first"))
        await asyncio.sleep(0)
        assert engine.is_running
        assert engine.run_id == "first"
        assert engine.cancel("other") is False

        with pytest.raises(RunInProgressError):
            await engine.execute(nodes, [], run_id="second")

        gate.set()
        result = await first
        assert result.status == RunStatus.COMPLETED
        assert not engine.is_running

        second = await engine.execute(nodes, [], run_id="second")
        assert second.status == RunStatus.COMPLETED

    asyncio.run(scenario())


def test_progress_and_log_events_are_ordered():
    async def chatty(context):
        context.report_progress(50)
        context.log("halfway")
        return context.success("done")

    def chatty_in_thread(context):
        context.report_progress(30)
        context.log("from a worker", level="warning")
        return context.success("done")

    registry = make_registry()
    registry.register(NodeKind.AGENT, chatty)
    registry.register(NodeKind.OUTPUT, chatty_in_thread)
    engine = ExecutionEngine(registry)
    nodes, edges = pipeline()

    _, events = run(engine, nodes, edges)

    for node_id, progress, message in (("a1", 50, "halfway"), ("o1", 30, "from a worker")):
        relevant = [e for e in events if getattr(e, "node_id", None) == node_id]
        assert [type(e).__name__ for e in relevant] == ["NodeEvent", "NodeEvent", "LogEvent", "NodeEvent"]
        assert relevant[1].progress == progress
        assert relevant[2].message == message
        assert relevant[3].status.value == "completed"


def test_async_event_callback():
    received = []

    async def on_event(event):
        await asyncio.sleep(0)
        received.append(event.to_wire())

    engine = ExecutionEngine(make_registry())
    nodes, edges = pipeline()

    asyncio.run(engine.execute(nodes, edges, run_id="r", on_event=on_event))

    assert received[0] == {
        "type": "node",
        "runId": "r",
        "nodeId": "i1",
        "status": "running",
        "progress": 0,
        "timestamp": received[0]["timestamp"],
    }
    assert received[-1]["type"] == "run"
    assert received[-1]["status"] == "completed"
    assert [e["nodeId"] for e in received if e["type"] == "node"] == [
        "i1", "i1", "a1", "a1", "o1", "o1"
    ]


def test_failing_event_callback_does_not_break_the_run():
    def broken(event):
        raise ValueError("listener bug")

    engine = ExecutionEngine(make_registry())
    nodes, edges = pipeline()

    result = asyncio.run(engine.execute(nodes, edges, on_event=broken))

    assert result.status == RunStatus.COMPLETED
