"""
DEREN CORE - Central exports for the mind map model.

This module provides access to:
- The graph store (MindMapDB) and its merge contract
- The layout engine and result synthesizer
- The task ledger
"""

from core.graph_db import (
    MindMapDB,
    merge_generated,
    MergeReport,
    GraphError,
    ValidationError,
    NodeNotFoundError,
    DanglingConnectionError,
    DuplicateNodeError,
    DuplicateConnectionError,
    ConnectionNotFoundError,
)
from core.layout import compute_layout, build_mind_map
from core.ledger import TaskLedger, TaskNotFoundError
from core.synthesis import synthesize_results

__all__ = [
    # Graph store
    "MindMapDB",
    "merge_generated",
    "MergeReport",
    "GraphError",
    "ValidationError",
    "NodeNotFoundError",
    "DanglingConnectionError",
    "DuplicateNodeError",
    "DuplicateConnectionError",
    "ConnectionNotFoundError",
    # Pipeline stages
    "compute_layout",
    "build_mind_map",
    "synthesize_results",
    # Ledger
    "TaskLedger",
    "TaskNotFoundError",
]
