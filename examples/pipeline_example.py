"""Example: build a workflow graph, sync it to disk, lay it out and run it."""

import sys
import os
import asyncio
import tempfile
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from stepflow.config import ConfigArtifactStore, GraphSyncEngine, ConfigLoader
from stepflow.executors import OpenAIContentGenerator, default_registry
from stepflow.graph import Node, NodeKind, Edge, LayoutEngine
from stepflow.graph.engine import ExecutionEngine
from stepflow.logging_config import setup_rich_logging, log_run_summary
from stepflow.settings import Settings
from loguru import logger


def build_graph():
    """
    Pipeline:
    1. Topic input
    2. Writer agent drafts a page
    3. PDF skill turns the draft into a document outline
    4. Output collects everything into a summary
    """
    nodes = [
        Node(id="topic", kind=NodeKind.INPUT, label="Topic", value="Solar powered bicycles"),
        Node(
            id="writer",
            kind=NodeKind.AGENT,
            label="Writer",
            description="Write a short product page for the topic",
            tools=["Read", "Write"]
        ),
        Node(
            id="pdf",
            kind=NodeKind.SKILL,
            label="PDF",
            skill_id="pdf",
            description="Outline a printable PDF from the draft"
        ),
        Node(id="result", kind=NodeKind.OUTPUT, label="Output"),
    ]
    edges = [
        Edge(id="e1", source="topic", target="writer"),
        Edge(id="e2", source="writer", target="pdf"),
        Edge(id="e3", source="pdf", target="result"),
    ]
    return nodes, edges


def example_sync(project_dir: str):
    """Write the graph's agents and skills as configuration artifacts."""
    print("="*80)
    print("SYNC GRAPH TO ARTIFACTS")
    print("="*80)

    nodes, edges = build_graph()
    store = ConfigArtifactStore(project_dir)
    sync = GraphSyncEngine(store)

    for node in nodes:
        result = sync.sync_node(node)
        print(f"  {node.id:<8} -> {result.path or '(no artifact)'}")
    for edge in edges:
        result = sync.sync_edge(edge, nodes)
        print(f"  {edge.source} -> {edge.target}: updated {len(result.updated)} artifact(s)")

    print(f"\nWriter skills: {nodes[1].skills}, PDF upstream: {nodes[2].upstream}")

    loaded = ConfigLoader(store).load()
    print(f"Reloaded from disk: {[node.id for node in loaded]}")


def example_layout():
    print("\n" + "="*80)
    print("LAYOUT")
    print("="*80)

    nodes, edges = build_graph()
    for node_id, (x, y) in LayoutEngine().layout(nodes, edges).items():
        print(f"  {node_id:<8} x={x:.0f} y={y:.0f}")


async def example_run(project_dir: str):
    """Run the graph against the configured OpenAI-compatible endpoint."""
    print("\n" + "="*80)
    print("EXECUTING PIPELINE")
    print("="*80)

    settings = Settings(project_path=project_dir)
    generator = OpenAIContentGenerator(
        api_base=settings.llm_api_base,
        model=settings.llm_model,
        api_key=settings.llm_api_key,
        temperature=settings.llm_temperature,
        max_tokens=settings.llm_max_tokens
    )
    engine = ExecutionEngine(default_registry(generator, settings.output_root))

    def print_event(event):
        wire = event.to_wire()
        if wire["type"] == "node":
            print(f"  [{wire['nodeId']}] {wire['status']} {wire.get('progress', '')}")
        elif wire["type"] == "log":
            print(f"  ({wire['level']}) {wire['message']}")

    nodes, edges = build_graph()
    result = await engine.execute(nodes, edges, on_event=print_event)
    log_run_summary(result)


if __name__ == "__main__":
    setup_rich_logging(level="INFO")

    with tempfile.TemporaryDirectory() as project_dir:
        try:
            example_sync(project_dir)
        except Exception as e:
            logger.exception(f"Sync example failed: {e}")

        example_layout()

        try:
            asyncio.run(example_run(project_dir))
        except Exception as e:
            logger.exception(f"Run example failed: {e}")

    print("\n" + "="*80)
    print("EXAMPLES COMPLETE")
    print("="*80)
