"""Events streamed while a run executes."""

from typing import Dict, Any, Optional, Literal, Union
from datetime import datetime
from enum import Enum
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class NodeStatus(str, Enum):
    """Lifecycle status of a node within a run."""
    RUNNING = "running"
    COMPLETED = "completed"
    ERROR = "error"


class RunStatus(str, Enum):
    """Lifecycle status of a run."""
    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class LogLevel(str, Enum):
    DEBUG = "debug"
    INFO = "info"
    WARN = "warn"
    ERROR = "error"


class _Event(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    run_id: str
    timestamp: datetime = Field(default_factory=datetime.now)

    def to_wire(self) -> Dict[str, Any]:
        """JSON-ready payload with camelCase keys."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class NodeEvent(_Event):
    """Progress of a single node."""
    type: Literal["node"] = "node"
    node_id: str
    status: NodeStatus
    progress: Optional[int] = None
    result: Optional[str] = None
    error: Optional[str] = None


class LogEvent(_Event):
    """Free-text log line."""
    type: Literal["log"] = "log"
    level: LogLevel = LogLevel.INFO
    message: str
    node_id: Optional[str] = None


class RunEvent(_Event):
    """Terminal status of a run."""
    type: Literal["run"] = "run"
    status: Literal["completed", "error", "cancelled"]
    results: Optional[Dict[str, Any]] = None
    error: Optional[str] = None


ExecutionEvent = Union[NodeEvent, LogEvent, RunEvent]
