"""
Demo content for a fresh project.

Four user-authored nodes and four connections introducing the system.
None of the ids carry the generated prefix, so a mission run never
replaces them.
"""
from typing import List, Tuple

from core.ontology import NodeType, ConnectionType
from core.schemas import (
    MindMapNode,
    Connection,
    Position,
    create_node,
    create_connection,
)


def build_demo_graph() -> Tuple[List[MindMapNode], List[Connection]]:
    nodes = [
        create_node(
            "demo-root", "DEREN Research System", NodeType.ROOT,
            Position(x=0, y=0),
            "Your AI-powered research companion for deep investigation and knowledge synthesis",
        ),
        create_node(
            "demo-concept-1", "AI Research Agent", NodeType.CONCEPT,
            Position(x=-300, y=-200),
            "Autonomous reasoning and task execution capabilities",
        ),
        create_node(
            "demo-concept-2", "Visual Mind Mapping", NodeType.CONCEPT,
            Position(x=300, y=-200),
            "Interactive knowledge graph visualization",
        ),
        create_node(
            "demo-finding-1", "Human-AI Collaboration", NodeType.FINDING,
            Position(x=0, y=250),
            "Seamless integration of human intuition and AI analysis",
        ),
    ]

    connections = [
        create_connection("demo-root", "demo-concept-1", ConnectionType.RELATES_TO, 0.9),
        create_connection("demo-root", "demo-concept-2", ConnectionType.RELATES_TO, 0.9),
        create_connection("demo-root", "demo-finding-1", ConnectionType.SUPPORTS, 0.8),
        create_connection("demo-concept-1", "demo-finding-1", ConnectionType.SUPPORTS, 0.7),
    ]

    return nodes, connections
