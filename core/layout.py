"""
DEREN LAYOUT ENGINE - Deterministic Radial Placement

Turns a Synthesis into a generated batch of nodes and connections laid out
in concentric rings around the mission root:

    R3 = 250   four fixed source slots at pi/4, 3pi/4, 5pi/4, 7pi/4
    R1 = 350   concept ring, angle 2*pi*i/C
    R2 = 550   finding ring, angle 2*pi*j/M + pi/M (offset from concepts)

Placement is a pure function of the counts (C, M), so identical counts give
bit-identical positions. Ids are fresh per call and all carry GENERATED_PREFIX.
"""
import math
import uuid
from typing import List, Tuple

import msgspec

from core.ontology import (
    NodeType,
    ConnectionType,
    GENERATED_PREFIX,
    generated_connection_id,
)
from core.schemas import (
    Position,
    Synthesis,
    GeneratedBatch,
    MindMapNode,
    Connection,
    create_node,
    create_connection,
)


CONCEPT_RADIUS = 350.0
FINDING_RADIUS = 550.0
SOURCE_RADIUS = 250.0

# (angle, label) for the fixed source slots
SOURCE_SLOTS: Tuple[Tuple[float, str], ...] = (
    (math.pi / 4, "Primary Sources"),
    (3 * math.pi / 4, "Expert Opinions"),
    (5 * math.pi / 4, "Research Data"),
    (7 * math.pi / 4, "Case Studies"),
)

ROOT_CONCEPT_STRENGTH = 0.8
ROOT_FINDING_STRENGTH = 0.9
CONCEPT_FINDING_STRENGTH = 0.7
ROOT_SOURCE_STRENGTH = 0.6


# =============================================================================
# PURE LAYOUT
# =============================================================================

class LayoutEdge(msgspec.Struct, kw_only=True, frozen=True):
    """An edge between two layout slots ("root", "concept:0", "finding:2", ...)."""
    source: str
    target: str
    type: ConnectionType
    strength: float


class RadialLayout(msgspec.Struct, kw_only=True, frozen=True):
    """Positions and edge roles for one batch, independent of ids."""
    root: Position
    concepts: List[Position]
    findings: List[Position]
    sources: List[Position]
    edges: List[LayoutEdge]

    @property
    def node_count(self) -> int:
        return 1 + len(self.concepts) + len(self.findings) + len(self.sources)


def polar(radius: float, angle: float) -> Position:
    return Position(x=math.cos(angle) * radius, y=math.sin(angle) * radius)


def concept_angle(index: int, count: int) -> float:
    return 2 * math.pi * index / count


def finding_angle(index: int, count: int) -> float:
    return 2 * math.pi * index / count + math.pi / count


def compute_layout(concept_count: int, finding_count: int) -> RadialLayout:
    """
    Place a root, C concepts, M findings and the fixed sources.

    Edges:
        root -> concept[i]        relates_to 0.8
        root -> finding[j]        supports   0.9
        concept[j] -> finding[j]  supports   0.7   for j < min(C, M)
        root -> source[k]         depends_on 0.6

    Raises:
        ValueError: If a count is negative
    """
    if concept_count < 0 or finding_count < 0:
        raise ValueError(
            f"Counts must be non-negative (concepts={concept_count}, findings={finding_count})"
        )

    # Angle formulas are only evaluated for non-empty rings
    concepts = [
        polar(CONCEPT_RADIUS, concept_angle(i, concept_count))
        for i in range(concept_count)
    ]
    findings = [
        polar(FINDING_RADIUS, finding_angle(j, finding_count))
        for j in range(finding_count)
    ]
    sources = [polar(SOURCE_RADIUS, angle) for angle, _ in SOURCE_SLOTS]

    edges: List[LayoutEdge] = []
    for i in range(concept_count):
        edges.append(LayoutEdge(
            source="root", target=f"concept:{i}",
            type=ConnectionType.RELATES_TO, strength=ROOT_CONCEPT_STRENGTH,
        ))
    for j in range(finding_count):
        edges.append(LayoutEdge(
            source="root", target=f"finding:{j}",
            type=ConnectionType.SUPPORTS, strength=ROOT_FINDING_STRENGTH,
        ))
        if j < concept_count:
            edges.append(LayoutEdge(
                source=f"concept:{j}", target=f"finding:{j}",
                type=ConnectionType.SUPPORTS, strength=CONCEPT_FINDING_STRENGTH,
            ))
    for k in range(len(SOURCE_SLOTS)):
        edges.append(LayoutEdge(
            source="root", target=f"source:{k}",
            type=ConnectionType.DEPENDS_ON, strength=ROOT_SOURCE_STRENGTH,
        ))

    return RadialLayout(
        root=Position(x=0.0, y=0.0),
        concepts=concepts,
        findings=findings,
        sources=sources,
        edges=edges,
    )


# =============================================================================
# BATCH CONSTRUCTION
# =============================================================================

def _generated_id(kind: str) -> str:
    return f"{GENERATED_PREFIX}{kind}-{uuid.uuid4()}"


def build_mind_map(mission: str, synthesis: Synthesis) -> GeneratedBatch:
    """
    Lay out a synthesis as a generated batch.

    Counts come from the synthesis: C = len(key_findings),
    M = len(recommendations), plus the four source slots.
    """
    layout = compute_layout(len(synthesis.key_findings), len(synthesis.recommendations))

    slots = {}
    nodes: List[MindMapNode] = []

    root = create_node(
        _generated_id("root"), mission, NodeType.ROOT, layout.root, synthesis.summary,
        confidence=synthesis.confidence,
    )
    slots["root"] = root.id
    nodes.append(root)

    for i, (finding, position) in enumerate(zip(synthesis.key_findings, layout.concepts)):
        node = create_node(
            _generated_id("concept"),
            finding.replace("Finding ", "Research Area ", 1),
            NodeType.CONCEPT,
            position,
            f"Detailed analysis of {finding}",
        )
        slots[f"concept:{i}"] = node.id
        nodes.append(node)

    for j, (recommendation, position) in enumerate(zip(synthesis.recommendations, layout.findings)):
        node = create_node(
            _generated_id("finding"),
            f"Key Insight {j + 1}",
            NodeType.FINDING,
            position,
            recommendation,
        )
        slots[f"finding:{j}"] = node.id
        nodes.append(node)

    for k, ((_, label), position) in enumerate(zip(SOURCE_SLOTS, layout.sources)):
        node = create_node(
            _generated_id("source"),
            label,
            NodeType.SOURCE,
            position,
            f"Supporting documentation and references for {label.lower()}",
        )
        slots[f"source:{k}"] = node.id
        nodes.append(node)

    connections: List[Connection] = []
    for edge in layout.edges:
        source_id = slots[edge.source]
        target_id = slots[edge.target]
        connections.append(create_connection(
            source_id,
            target_id,
            edge.type,
            edge.strength,
            id=generated_connection_id(source_id, target_id),
        ))

    return GeneratedBatch(nodes=nodes, connections=connections)
