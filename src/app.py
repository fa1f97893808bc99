"""FastAPI service exposing graph synchronization, loading, layout and execution."""

from fastapi import FastAPI, HTTPException, WebSocket, WebSocketDisconnect
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic.alias_generators import to_camel
from typing import List, Dict, Any, Optional, Set
from contextlib import asynccontextmanager
import asyncio
from loguru import logger

from dotenv import load_dotenv

load_dotenv()

from stepflow.config import ConfigArtifactStore, GraphSyncEngine, ConfigLoader, merge_loaded_nodes
from stepflow.exceptions import RunInProgressError
from stepflow.executors import ContentGenerator, OpenAIContentGenerator, ExecutorRegistry, default_registry
from stepflow.graph import (
    Node, NodeKind, Edge, LayoutEngine, RunEvent, SyncResult, validate_connection, is_valid_run_id
)
from stepflow.graph.engine import ExecutionEngine
from stepflow.settings import Settings


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Position(_CamelModel):
    x: float
    y: float


class NodeSnapshot(_CamelModel):
    """Wire form of a graph node."""
    id: str
    kind: NodeKind
    label: str
    description: Optional[str] = None
    skill_id: Optional[str] = None
    upstream: List[str] = Field(default_factory=list)
    downstream: List[str] = Field(default_factory=list)
    content: Optional[str] = None
    tools: List[str] = Field(default_factory=list)
    model: Optional[str] = None
    skills: List[str] = Field(default_factory=list)
    system_prompt: Optional[str] = None
    command_name: Optional[str] = None
    command_content: Optional[str] = None
    hook_event: Optional[str] = None
    hook_matcher: Optional[str] = None
    hook_command: Optional[str] = None
    value: Optional[str] = None
    position: Optional[Position] = None

    def to_node(self) -> Node:
        data = self.model_dump(exclude={"position"})
        position = (self.position.x, self.position.y) if self.position else None
        return Node(**data, position=position)

    @classmethod
    def from_node(cls, node: Node) -> "NodeSnapshot":
        position = Position(x=node.position[0], y=node.position[1]) if node.position else None
        return cls(
            id=node.id,
            kind=node.kind,
            label=node.label,
            description=node.description,
            skill_id=node.skill_id,
            upstream=list(node.upstream),
            downstream=list(node.downstream),
            content=node.content,
            tools=list(node.tools),
            model=node.model,
            skills=list(node.skills),
            system_prompt=node.system_prompt,
            command_name=node.command_name,
            command_content=node.command_content,
            hook_event=node.hook_event,
            hook_matcher=node.hook_matcher,
            hook_command=node.hook_command,
            value=node.value,
            position=position
        )


class EdgeSnapshot(_CamelModel):
    """Wire form of a graph edge."""
    id: str
    source: str
    target: str

    def to_edge(self) -> Edge:
        return Edge(id=self.id, source=self.source, target=self.target)


class NodeRequest(_CamelModel):
    node: NodeSnapshot


class NodeDeleteRequest(_CamelModel):
    node: NodeSnapshot
    nodes: List[NodeSnapshot] = Field(default_factory=list)


class EdgeRequest(_CamelModel):
    edge: EdgeSnapshot
    nodes: List[NodeSnapshot]


class NodesRequest(_CamelModel):
    nodes: List[NodeSnapshot] = Field(default_factory=list)


class GraphRequest(_CamelModel):
    nodes: List[NodeSnapshot] = Field(default_factory=list)
    edges: List[EdgeSnapshot] = Field(default_factory=list)


class ExecuteRequest(GraphRequest):
    """Client message starting a run."""
    run_id: str
    inputs: Dict[str, str] = Field(default_factory=dict)

    @field_validator("run_id")
    @classmethod
    def check_run_id(cls, value: str) -> str:
        # Names the run's output directory
        if not is_valid_run_id(value):
            raise ValueError("runId may only contain letters, digits, '.', '_' and '-'")
        return value


class SyncResponse(BaseModel):
    success: bool
    path: Optional[str] = None
    error: Optional[str] = None
    updated: List[str] = []


class HealthResponse(BaseModel):
    status: str
    project_path: str
    running: bool


def _dump_nodes(nodes: List[Node]) -> List[Dict[str, Any]]:
    return [NodeSnapshot.from_node(node).model_dump(mode="json", by_alias=True) for node in nodes]


def create_app(
    settings: Optional[Settings] = None,
    generator: Optional[ContentGenerator] = None,
    registry: Optional[ExecutorRegistry] = None
) -> FastAPI:
    """Build the service.

    Args:
        settings: Application settings (loaded from the environment if None)
        generator: Content generator for agent and skill nodes
        registry: Executor registry (built-in executors if None)

    Returns:
        Configured FastAPI application
    """
    settings = settings or Settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(f"Starting {settings.app_name} for project {settings.project_path}")
        yield
        if app.state.engine.is_running:
            app.state.engine.cancel()
        logger.info(f"Shutting down {settings.app_name}...")

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        lifespan=lifespan
    )

    if registry is None:
        generator = generator or OpenAIContentGenerator(
            api_base=settings.llm_api_base,
            model=settings.llm_model,
            api_key=settings.llm_api_key,
            temperature=settings.llm_temperature,
            max_tokens=settings.llm_max_tokens,
            model_aliases=settings.model_aliases
        )
        registry = default_registry(generator, settings.output_root)

    store = ConfigArtifactStore(settings.project_path, settings.config_dir)
    app.state.settings = settings
    app.state.store = store
    app.state.sync = GraphSyncEngine(store)
    app.state.loader = ConfigLoader(store)
    app.state.layout = LayoutEngine()
    app.state.engine = ExecutionEngine(registry)

    _add_routes(app)
    return app


def _add_routes(app: FastAPI) -> None:
    state = app.state

    @app.get("/", response_model=Dict[str, str])
    async def root():
        """Root endpoint."""
        return {
            "name": state.settings.app_name,
            "version": state.settings.app_version,
            "status": "running"
        }

    @app.get("/health", response_model=HealthResponse)
    async def health_check():
        return HealthResponse(
            status="healthy",
            project_path=str(state.settings.project_path),
            running=state.engine.is_running
        )

    @app.get("/api/project-path")
    async def project_path():
        return {"projectPath": str(state.settings.project_path)}

    @app.post("/api/sync/node", response_model=SyncResponse)
    async def sync_node(request: NodeRequest):
        """Create or update the artifact of a node."""
        try:
            return state.sync.sync_node(request.node.to_node()).to_dict()
        except Exception as e:
            logger.exception(f"[API] Node sync failed: {e}")
            raise HTTPException(status_code=500, detail=str(e))

    @app.post("/api/sync/node/delete", response_model=SyncResponse)
    async def delete_node(request: NodeDeleteRequest):
        """Remove references to a node, then its artifact."""
        try:
            nodes = [snapshot.to_node() for snapshot in request.nodes]
            return state.sync.delete_node(request.node.to_node(), nodes).to_dict()
        except Exception as e:
            logger.exception(f"[API] Node delete failed: {e}")
            raise HTTPException(status_code=500, detail=str(e))

    @app.post("/api/sync/edge", response_model=SyncResponse)
    async def sync_edge(request: EdgeRequest):
        """Record a new connection, rejecting it if the graph rules forbid it."""
        try:
            nodes = [snapshot.to_node() for snapshot in request.nodes]
            edge = request.edge.to_edge()
            reason = validate_connection(edge.source, edge.target, nodes)
            if reason:
                logger.warning(f"[API] Rejected edge {edge.source} -> {edge.target}: {reason}")
                return SyncResult(success=False, error=reason).to_dict()
            return state.sync.sync_edge(edge, nodes).to_dict()
        except Exception as e:
            logger.exception(f"[API] Edge sync failed: {e}")
            raise HTTPException(status_code=500, detail=str(e))

    @app.post("/api/sync/edge/remove", response_model=SyncResponse)
    async def remove_edge(request: EdgeRequest):
        try:
            nodes = [snapshot.to_node() for snapshot in request.nodes]
            return state.sync.remove_edge(request.edge.to_edge(), nodes).to_dict()
        except Exception as e:
            logger.exception(f"[API] Edge removal failed: {e}")
            raise HTTPException(status_code=500, detail=str(e))

    @app.get("/api/load/config")
    async def load_config():
        """Nodes reconstructed from the artifacts on disk."""
        try:
            return {"nodes": _dump_nodes(state.loader.load())}
        except Exception as e:
            logger.exception(f"[API] Config load failed: {e}")
            raise HTTPException(status_code=500, detail=str(e))

    @app.post("/api/load/merge")
    async def merge_config(request: NodesRequest):
        """Reload artifacts into a live graph."""
        try:
            live = [snapshot.to_node() for snapshot in request.nodes]
            return {"nodes": _dump_nodes(merge_loaded_nodes(live, state.loader.load()))}
        except Exception as e:
            logger.exception(f"[API] Config merge failed: {e}")
            raise HTTPException(status_code=500, detail=str(e))

    @app.post("/api/layout")
    async def layout(request: GraphRequest):
        nodes = [snapshot.to_node() for snapshot in request.nodes]
        edges = [snapshot.to_edge() for snapshot in request.edges]
        positions = state.layout.layout(nodes, edges)
        return {"positions": {node_id: {"x": x, "y": y} for node_id, (x, y) in positions.items()}}

    @app.websocket("/ws/execution")
    async def execution_socket(websocket: WebSocket):
        """Run graphs and stream their events.

        Client messages are ``{"type": "execute", ...}`` and
        ``{"type": "cancel", "runId": ...}``. Runs execute in a background
        task so cancel messages are read while a run is in flight.
        """
        await websocket.accept()
        engine: ExecutionEngine = state.engine
        tasks: Set[asyncio.Task] = set()

        async def send(event):
            await websocket.send_json(event.to_wire())

        async def run(request: ExecuteRequest):
            try:
                await engine.execute(
                    [snapshot.to_node() for snapshot in request.nodes],
                    [snapshot.to_edge() for snapshot in request.edges],
                    run_id=request.run_id,
                    inputs=request.inputs,
                    on_event=send
                )
            except RunInProgressError as e:
                await send(RunEvent(run_id=request.run_id, status="error", error=str(e)))
            except WebSocketDisconnect:
                logger.info(f"[API] Client left during run '{request.run_id}'")
            except Exception as e:
                logger.exception(f"[API] Run '{request.run_id}' crashed: {e}")
                await send(RunEvent(run_id=request.run_id, status="error", error=str(e)))

        try:
            while True:
                message = await websocket.receive_json()
                kind = message.get("type") if isinstance(message, dict) else None

                if kind == "execute":
                    try:
                        request = ExecuteRequest.model_validate(message)
                    except ValidationError as e:
                        await send(RunEvent(run_id=str(message.get("runId", "")), status="error", error=str(e)))
                        continue
                    if engine.is_running:
                        await send(RunEvent(
                            run_id=request.run_id,
                            status="error",
                            error=str(RunInProgressError(engine.run_id))
                        ))
                        continue
                    task = asyncio.create_task(run(request))
                    tasks.add(task)
                    task.add_done_callback(tasks.discard)

                elif kind == "cancel":
                    run_id = str(message.get("runId", ""))
                    if not engine.cancel(run_id or None):
                        # Nothing active to stop; the client still gets its terminal event
                        await send(RunEvent(run_id=run_id, status="cancelled"))

                else:
                    await websocket.send_json({"type": "error", "error": f"Unknown message type: {kind}"})

        except WebSocketDisconnect:
            logger.info("[API] Execution client disconnected")
            if engine.is_running:
                engine.cancel()
        finally:
            if tasks:
                await asyncio.gather(*tasks, return_exceptions=True)


app = create_app()


if __name__ == "__main__":
    from stepflow.launcher import main

    raise SystemExit(main())
