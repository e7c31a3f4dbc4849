"""
DEREN ONTOLOGY - The Dictionary of the Mind Map

If schemas.py is the Grammar (how we structure records),
ontology.py is the Dictionary (the words we can use).

This module defines:
- Enums: The vocabulary (NodeType, ConnectionType, TaskType, TaskStatus)
- The reserved id prefix that marks agent-generated graph entries
- Id derivation for connections

Key Principle: Ownership is encoded in the id.
Anything whose id starts with GENERATED_PREFIX belongs to the last mission
and is replaced wholesale by the next one. Everything else is user-authored.
"""
from typing import Literal
from enum import Enum


# =============================================================================
# ENUMS (The Vocabulary)
# =============================================================================

class NodeType(str, Enum):
    """Types of nodes in the mind map."""
    ROOT = "root"                    # Mission centre (one per generated batch)
    CONCEPT = "concept"              # Research area / key concept
    FINDING = "finding"              # Insight or recommendation
    QUESTION = "question"            # Open question
    SOURCE = "source"                # Supporting material
    CANVAS = "canvas"                # Free-form page (text + vector paths)


class ConnectionType(str, Enum):
    """Types of connections between nodes."""
    RELATES_TO = "relates_to"
    SUPPORTS = "supports"
    CONTRADICTS = "contradicts"
    DEPENDS_ON = "depends_on"


class TaskType(str, Enum):
    """Kinds of tracked orchestrator work."""
    SEARCH = "search"
    ANALYZE = "analyze"
    SUMMARIZE = "summarize"
    EXTRACT = "extract"
    LINK = "link"
    CREATE_NODE = "create_node"


class TaskStatus(str, Enum):
    """
    Lifecycle of a task.

    PENDING -> EXECUTING -> COMPLETED | FAILED
    """
    PENDING = "pending"
    EXECUTING = "executing"
    COMPLETED = "completed"
    FAILED = "failed"


TERMINAL_TASK_STATUSES = frozenset({TaskStatus.COMPLETED, TaskStatus.FAILED})


class MissionPhase(str, Enum):
    """Phases of the mission pipeline, in execution order."""
    PLANNING = "planning"
    EXECUTION = "execution"
    SYNTHESIS = "synthesis"
    MIND_MAP = "mind_map"


# =============================================================================
# Type Aliases
# =============================================================================

FailureReason = Literal["dangling_connection", "unknown_node", "invalid_record"]


# =============================================================================
# IDENTITY RULES
# =============================================================================

# Reserved marker for agent-generated nodes and connections
GENERATED_PREFIX = "ai-gen-"


def is_generated(entry_id: str) -> bool:
    """True if the id belongs to an agent-generated batch."""
    return entry_id.startswith(GENERATED_PREFIX)


def connection_id(source_id: str, target_id: str) -> str:
    """
    Id for an interactively created connection.

    At most one such connection per ordered (source, target) pair.
    """
    return f"conn_{source_id}_{target_id}"


def generated_connection_id(source_id: str, target_id: str) -> str:
    """Id for a connection inside a generated batch (carries the marker)."""
    return f"{GENERATED_PREFIX}{connection_id(source_id, target_id)}"
