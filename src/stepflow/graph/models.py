"""Data models for workflow graphs."""

from typing import Dict, List, Any, Optional, Tuple
from dataclasses import dataclass, field
from enum import Enum
import re


DEFAULT_HOOK_EVENT = "PreToolUse"
DEFAULT_HOOK_MATCHER = "*"

_SLUG_SEPARATORS = re.compile(r"[\W_]+")
_RUN_ID = re.compile(r"[A-Za-z0-9][A-Za-z0-9._-]*")


class NodeKind(str, Enum):
    """Kind of a step in the workflow graph."""
    INPUT = "input"
    AGENT = "agent"
    SKILL = "skill"
    HOOK = "hook"
    COMMAND = "command"
    OUTPUT = "output"


def to_slug(text: str) -> str:
    """Lower-case and hyphenate a label into a filesystem-safe slug.

    Args:
        text: Label or identifier

    Returns:
        Slug, empty if the text has no letters or digits
    """
    return _SLUG_SEPARATORS.sub("-", (text or "").lower()).strip("-")


def is_valid_slug(slug: Optional[str]) -> bool:
    """Check that a slug can be used as a single path component."""
    if not slug or slug in (".", ".."):
        return False
    return "/" not in slug and "\\" not in slug


def is_valid_run_id(run_id: Optional[str]) -> bool:
    """Check that a run id can name its own output directory."""
    return bool(run_id) and _RUN_ID.fullmatch(run_id) is not None


@dataclass
class Node:
    """One typed step of the workflow graph."""
    id: str
    kind: NodeKind
    label: str
    description: Optional[str] = None

    # Skill specific
    skill_id: Optional[str] = None
    upstream: List[str] = field(default_factory=list)
    downstream: List[str] = field(default_factory=list)
    content: Optional[str] = None  # Replacement SKILL.md body

    # Agent specific
    tools: List[str] = field(default_factory=list)
    model: Optional[str] = None
    skills: List[str] = field(default_factory=list)
    system_prompt: Optional[str] = None  # Replacement agent body

    # Command specific
    command_name: Optional[str] = None
    command_content: Optional[str] = None

    # Hook specific
    hook_event: Optional[str] = None
    hook_matcher: Optional[str] = None
    hook_command: Optional[str] = None

    # Input specific
    value: Optional[str] = None

    position: Optional[Tuple[float, float]] = None

    def __post_init__(self):
        self.kind = NodeKind(self.kind)

    @property
    def slug(self) -> str:
        """Cross-reference key used inside artifacts."""
        if self.kind == NodeKind.SKILL and self.skill_id:
            return self.skill_id
        if self.kind == NodeKind.COMMAND and self.command_name:
            return self.command_name
        return to_slug(self.label)

    @property
    def event(self) -> str:
        return self.hook_event or DEFAULT_HOOK_EVENT

    @property
    def matcher(self) -> str:
        return self.hook_matcher or DEFAULT_HOOK_MATCHER


@dataclass
class Edge:
    """Directed connection between two nodes."""
    id: str
    source: str
    target: str


def validate_connection(source_id: str, target_id: str, nodes: List[Node]) -> Optional[str]:
    """Check a new connection against the graph rules.

    Args:
        source_id: Source node id
        target_id: Target node id
        nodes: Nodes of the graph

    Returns:
        None if the connection is allowed, otherwise the reason it is rejected
    """
    if source_id == target_id:
        return "Self-connections are not allowed"

    by_id = {node.id: node for node in nodes}
    source = by_id.get(source_id)
    target = by_id.get(target_id)
    if source is None or target is None:
        return "Source or target node not found"
    if source.kind == NodeKind.OUTPUT:
        return "Output nodes cannot have outgoing connections"
    if target.kind == NodeKind.INPUT:
        return "Input nodes cannot have incoming connections"
    return None


@dataclass
class FileRef:
    """File produced by a node executor."""
    path: str
    type: str
    name: str

    def to_dict(self) -> Dict[str, str]:
        return {"path": self.path, "type": self.type, "name": self.name}


@dataclass
class ExecutionResult:
    """Result of executing one node."""
    node_id: str
    success: bool
    output: Optional[str] = None
    artifacts: List[FileRef] = field(default_factory=list)
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "node_id": self.node_id,
            "success": self.success,
            "output": self.output,
            "artifacts": [ref.to_dict() for ref in self.artifacts],
            "error": self.error
        }


@dataclass
class SyncResult:
    """Outcome of a graph-to-artifact synchronization."""
    success: bool
    path: Optional[str] = None
    error: Optional[str] = None
    updated: List[str] = field(default_factory=list)  # Artifacts written

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "success": self.success,
            "path": self.path,
            "error": self.error,
            "updated": list(self.updated)
        }
