"""
DEREN SCHEMAS - The Grammar of the Mind Map

If ontology.py is the Dictionary (defining the words we can use),
schemas.py is the Grammar (defining how we structure records).

This module defines the core data structures that flow through the system:
- MindMapNode / Connection: The graph payloads
- AgentTask: A tracked unit of orchestrator work
- StepResult / Synthesis / GeneratedBatch: Mission pipeline outputs
- Session: Per-orchestrator working and long-term memory
- ProjectFile: The on-disk project document
- Factories and serialization helpers

Design Principles:
1. STRICT TYPING: msgspec.Struct, validated on decode
2. KW_ONLY: Enforce keyword arguments to prevent positional mix-ups
3. WIRE NAMES: Connections serialize their endpoints as "from"/"to"
"""
import msgspec
from typing import Optional, Dict, Any, List, Annotated
from datetime import datetime, timezone
import random
import string
import time
import uuid

from core.ontology import (
    NodeType,
    ConnectionType,
    TaskType,
    TaskStatus,
    connection_id,
)


# Values in [0, 1] (confidence, strength)
UnitFloat = Annotated[float, msgspec.Meta(ge=0.0, le=1.0)]

PROJECT_VERSION = "1.0"
DEFAULT_PROJECT_TITLE = "DEREN Project"

_BASE36 = string.digits + string.ascii_lowercase


# =============================================================================
# UTILITY FUNCTIONS
# =============================================================================

def now_utc() -> str:
    """Fast UTC timestamp as ISO8601 string."""
    return datetime.now(timezone.utc).isoformat()


def generate_id() -> str:
    """Generate a new UUID4 string for node ids."""
    return str(uuid.uuid4())


def generate_task_id() -> str:
    """Task id: task_<epoch ms>_<9 base36 chars>."""
    suffix = "".join(random.choices(_BASE36, k=9))
    return f"task_{int(time.time() * 1000)}_{suffix}"


# =============================================================================
# GRAPH PAYLOADS
# =============================================================================

class Position(msgspec.Struct, kw_only=True):
    """A point on the unconstrained canvas plane."""
    x: float = 0.0
    y: float = 0.0


class NodeMetadata(msgspec.Struct, kw_only=True):
    """Provenance attached to every node."""
    timestamp: str = msgspec.field(default_factory=now_utc)
    confidence: UnitFloat = 1.0
    tags: List[str] = msgspec.field(default_factory=list)


class MindMapNode(msgspec.Struct, kw_only=True):
    """
    A node in the mind map.

    `content` is free-form text. Canvas pages may additionally carry
    `paths`, a list of vector-path descriptors (SVG path strings).
    `relationships` is reserved and unused.
    """
    id: str
    label: str
    type: NodeType
    position: Position = msgspec.field(default_factory=Position)
    content: str = ""
    paths: List[str] = msgspec.field(default_factory=list)
    relationships: List[str] = msgspec.field(default_factory=list)
    metadata: NodeMetadata = msgspec.field(default_factory=NodeMetadata)


class Connection(msgspec.Struct, kw_only=True):
    """
    A directed connection between two nodes.

    Endpoints are exposed as `source`/`target` in Python and
    serialized as `from`/`to` on the wire.
    """
    id: str
    source: str = msgspec.field(name="from")
    target: str = msgspec.field(name="to")
    type: ConnectionType = ConnectionType.RELATES_TO
    strength: UnitFloat = 1.0


# =============================================================================
# TASKS & PIPELINE OUTPUTS
# =============================================================================

class AgentTask(msgspec.Struct, kw_only=True):
    """A tracked unit of orchestrator work."""
    id: str
    type: TaskType
    description: str
    status: TaskStatus = TaskStatus.PENDING
    timestamp: str = msgspec.field(default_factory=now_utc)
    result: Any = None
    error: Optional[str] = None


class StepResult(msgspec.Struct, kw_only=True):
    """
    Output of one execution step.

    `label` is the semantic label of the payload shape ("sources",
    "concepts", ..., or "data" for the generic fallback).
    `evidence` holds whatever the search capability returned, if anything.
    """
    step: str
    label: str
    payload: Dict[str, Any]
    evidence: List[Dict[str, Any]] = msgspec.field(default_factory=list)


class Synthesis(msgspec.Struct, kw_only=True):
    """Summary of one mission's step results."""
    summary: str
    key_findings: List[str]
    confidence: UnitFloat
    recommendations: List[str]


class GeneratedBatch(msgspec.Struct, kw_only=True):
    """The node/connection set produced by one mission run."""
    nodes: List[MindMapNode] = msgspec.field(default_factory=list)
    connections: List[Connection] = msgspec.field(default_factory=list)


# =============================================================================
# SESSION MEMORY
# =============================================================================

class WorkingMemory(msgspec.Struct, kw_only=True):
    current_mission: str = ""
    recent_tasks: List[AgentTask] = msgspec.field(default_factory=list)
    context_summary: str = ""


class LongTermMemory(msgspec.Struct, kw_only=True):
    saved_maps: List[Any] = msgspec.field(default_factory=list)
    knowledge_base: List[Any] = msgspec.field(default_factory=list)


class Session(msgspec.Struct, kw_only=True):
    """
    Memory scoped to one orchestrator instance.

    Created with the orchestrator (or handed to it by reference), mutated only
    by the orchestrator, never persisted.
    """
    working_memory: WorkingMemory = msgspec.field(default_factory=WorkingMemory)
    long_term_memory: LongTermMemory = msgspec.field(default_factory=LongTermMemory)

    def reset(self) -> None:
        """Drop all working and long-term memory."""
        self.working_memory = WorkingMemory()
        self.long_term_memory = LongTermMemory()

    def remember_task(self, task: AgentTask) -> None:
        self.working_memory.recent_tasks.append(task)


# =============================================================================
# PROJECT FILE
# =============================================================================

class ProjectMetadata(msgspec.Struct, kw_only=True):
    version: str = PROJECT_VERSION
    created: str = msgspec.field(default_factory=now_utc)
    title: str = DEFAULT_PROJECT_TITLE


class ProjectFile(msgspec.Struct, kw_only=True):
    """The saved project document. Both collections are required."""
    nodes: List[MindMapNode]
    connections: List[Connection]
    metadata: ProjectMetadata = msgspec.field(default_factory=ProjectMetadata)


# =============================================================================
# FACTORIES
# =============================================================================

def check_unit(name: str, value: float) -> float:
    """Return `value` if it lies in [0, 1]; raise ValueError otherwise."""
    if not 0.0 <= value <= 1.0:
        raise ValueError(f"{name} must be within [0, 1], got {value}")
    return value


def create_node(
    id: str,
    label: str,
    type: NodeType,
    position: Optional[Position] = None,
    content: str = "",
    confidence: float = 1.0,
    tags: Optional[List[str]] = None,
) -> MindMapNode:
    """
    Create a node with fresh metadata. Tags are de-duplicated, order kept.

    Raises:
        ValueError: If confidence is outside [0, 1]
    """
    return MindMapNode(
        id=id,
        label=label,
        type=NodeType(type),
        position=position or Position(),
        content=content,
        metadata=NodeMetadata(
            confidence=check_unit("confidence", confidence),
            tags=list(dict.fromkeys(tags or [])),
        ),
    )


def create_connection(
    source: str,
    target: str,
    type: ConnectionType = ConnectionType.RELATES_TO,
    strength: float = 1.0,
    id: Optional[str] = None,
) -> Connection:
    """
    Create a connection; the id defaults to conn_{source}_{target}.

    Raises:
        ValueError: If strength is outside [0, 1]
    """
    return Connection(
        id=id or connection_id(source, target),
        source=source,
        target=target,
        type=ConnectionType(type),
        strength=check_unit("strength", strength),
    )


def create_task(type: TaskType, description: str) -> AgentTask:
    """Create a pending task."""
    return AgentTask(
        id=generate_task_id(),
        type=TaskType(type),
        description=description,
    )


def create_research_node(position: Position) -> MindMapNode:
    """A hand-placed concept node, as created from the canvas context menu."""
    return create_node(
        f"node-{generate_id()}",
        "New Research Node",
        NodeType.CONCEPT,
        position,
        "Click to edit this research node",
    )


def create_canvas_page(position: Position, label: str = "Canvas Page") -> MindMapNode:
    """An empty canvas page at the given position."""
    return create_node(f"canvas-{generate_id()}", label, NodeType.CANVAS, position)


# =============================================================================
# SERIALIZATION HELPERS
# =============================================================================

# Pre-compiled encoders/decoders, reused across the application
_encoder = msgspec.json.Encoder()
_node_decoder = msgspec.json.Decoder(type=MindMapNode)
_connection_decoder = msgspec.json.Decoder(type=Connection)
_project_decoder = msgspec.json.Decoder(type=ProjectFile)


def serialize_node(node: MindMapNode) -> bytes:
    return _encoder.encode(node)


def deserialize_node(data: bytes) -> MindMapNode:
    return _node_decoder.decode(data)


def serialize_connection(connection: Connection) -> bytes:
    return _encoder.encode(connection)


def deserialize_connection(data: bytes) -> Connection:
    return _connection_decoder.decode(data)


def serialize_project(project: ProjectFile) -> bytes:
    """Encode a project as indented JSON bytes."""
    return msgspec.json.format(_encoder.encode(project), indent=2)


def deserialize_project(data: bytes) -> ProjectFile:
    """
    Decode and validate a project document.

    Raises:
        msgspec.ValidationError: If a required collection is missing or a
            record has the wrong shape.
        msgspec.DecodeError: If the bytes are not JSON.
    """
    return _project_decoder.decode(data)
