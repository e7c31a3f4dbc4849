"""
DEREN GRAPH DATABASE - The Canonical Mind Map

Owns the nodes and connections the user sees. Everything that changes the
mind map goes through MindMapDB, which keeps these invariants:

- node ids are unique
- connection ids are unique
- every connection's endpoints are present (no dangling connections)
- removing a node removes exactly the connections that touch it
- stored records pass the same checks as a decoded project file
  (known enum values, confidence and strength in [0, 1])

Reads return copies; the stored records change only through this class.

Architecture (The Bridge Pattern):
  Python Layer      string ids: "node-...", "ai-gen-root-..."
  Bridge Layer      _node_map: id -> rustworkx index
                    _inv_map:  rustworkx index -> id
                    _edge_map: connection id -> rustworkx edge index
  Rust Layer        rustworkx.PyDiGraph (multigraph; connections are keyed by id)

The maps are insertion-ordered, so nodes() and connections() list entries in
the order they were added even though rustworkx reuses freed indices.

Agent output is folded in through merge_generated(): every entry whose id
carries GENERATED_PREFIX is dropped and the new batch is appended, in one swap.
"""
import rustworkx as rx
import copy
import logging
from collections import Counter
from typing import Dict, List, Optional, Tuple, Any, Iterable, Sequence
from pathlib import Path

import msgspec

from core.ontology import NodeType, ConnectionType, FailureReason, is_generated
from core.schemas import (
    MindMapNode,
    Connection,
    GeneratedBatch,
    ProjectFile,
    DEFAULT_PROJECT_TITLE,
    create_connection,
)
from infrastructure.event_bus import EventBus, EventType, get_event_bus
from infrastructure.logger import MutationLogger, get_logger as get_mutation_logger
from infrastructure import project_io


logger = logging.getLogger(__name__)


# =============================================================================
# CUSTOM EXCEPTIONS
# =============================================================================

class GraphError(Exception):
    """Base exception for graph operations."""
    pass


class ValidationError(GraphError):
    """
    Raised when a mutation would break a graph invariant.

    Attributes:
        reason: "dangling_connection", "unknown_node" or "invalid_record"
    """
    def __init__(self, reason: FailureReason, message: str):
        self.reason = reason
        super().__init__(message)


class NodeNotFoundError(ValidationError):
    """Raised when a node id is not in the graph."""
    def __init__(self, node_id: str):
        self.node_id = node_id
        super().__init__("unknown_node", f"Node not found: {node_id}")


class DanglingConnectionError(ValidationError):
    """Raised when a connection references an absent endpoint."""
    def __init__(self, connection: Connection, missing_id: str):
        self.connection_id = connection.id
        self.missing_id = missing_id
        super().__init__(
            "dangling_connection",
            f"Connection {connection.id} references missing node: {missing_id}",
        )


class InvalidRecordError(ValidationError):
    """Raised when a node or connection has a field of the wrong type or range."""
    def __init__(self, record_id: str, detail: str):
        self.record_id = record_id
        super().__init__("invalid_record", f"Invalid record {record_id}: {detail}")


class DuplicateNodeError(GraphError):
    """Raised when attempting to add a node with existing ID."""
    def __init__(self, node_id: str):
        self.node_id = node_id
        super().__init__(f"Node already exists: {node_id}")


class DuplicateConnectionError(GraphError):
    """Raised when attempting to add a connection with existing ID."""
    def __init__(self, connection_id: str):
        self.connection_id = connection_id
        super().__init__(f"Connection already exists: {connection_id}")


class ConnectionNotFoundError(GraphError):
    """Raised when a connection id is not in the graph."""
    def __init__(self, connection_id: str):
        self.connection_id = connection_id
        super().__init__(f"Connection not found: {connection_id}")


# =============================================================================
# PURE MERGE
# =============================================================================

def merge_generated(
    existing_nodes: Sequence[MindMapNode],
    existing_connections: Sequence[Connection],
    batch: GeneratedBatch,
) -> Tuple[List[MindMapNode], List[Connection]]:
    """
    Replace the previous generated batch with a new one.

    Drops every node and connection whose id carries the generated prefix,
    then appends the batch. User-authored entries keep their order.
    Applying the same batch twice gives the same result as applying it once.
    """
    nodes = [n for n in existing_nodes if not is_generated(n.id)]
    connections = [c for c in existing_connections if not is_generated(c.id)]
    nodes.extend(batch.nodes)
    connections.extend(batch.connections)
    return nodes, connections


def checked_record(record):
    """
    A validated, detached copy of a node or connection.

    The record is round-tripped through its wire form, so it gets the same
    checks a project file gets on load.

    Raises:
        InvalidRecordError: If a field has the wrong type or is out of range
    """
    try:
        return msgspec.convert(msgspec.to_builtins(record), type=type(record))
    except (msgspec.ValidationError, TypeError) as e:
        raise InvalidRecordError(getattr(record, "id", "?"), str(e)) from e


class MergeReport(msgspec.Struct, kw_only=True):
    """What one merge_generated() call changed."""
    nodes_added: int = 0
    nodes_removed: int = 0
    connections_added: int = 0
    connections_removed: int = 0
    orphaned_connections: List[str] = msgspec.field(default_factory=list)


# =============================================================================
# MIND MAP DATABASE
# =============================================================================

class MindMapDB:
    """
    In-memory mind map backed by rustworkx.

    Usage:
        db = MindMapDB()
        db.add_node(create_node("a", "Topic", NodeType.CONCEPT))
        db.add_node(create_node("b", "Subtopic", NodeType.CONCEPT))
        db.connect("a", "b")

        db.merge_generated(batch)   # swap in the latest mission output

    Thread Safety:
        NOT thread-safe. Mutate from one task at a time.
    """

    def __init__(
        self,
        event_bus: Optional[EventBus] = None,
        mutation_logger: Optional[MutationLogger] = None,
    ):
        self._graph: rx.PyDiGraph = rx.PyDiGraph(multigraph=True)
        self._node_map: Dict[str, int] = {}
        self._inv_map: Dict[int, str] = {}
        self._edge_map: Dict[str, int] = {}

        self._event_bus = event_bus or get_event_bus()
        self._mutations = mutation_logger or get_mutation_logger()

    # =========================================================================
    # PROPERTIES
    # =========================================================================

    @property
    def node_count(self) -> int:
        return self._graph.num_nodes()

    @property
    def connection_count(self) -> int:
        return self._graph.num_edges()

    @property
    def is_empty(self) -> bool:
        return self.node_count == 0

    def _publish(self, event_type: EventType, **payload: Any) -> None:
        self._event_bus.emit(event_type, payload, source="graph_db")

    # =========================================================================
    # NODE OPERATIONS
    # =========================================================================

    def add_node(self, node: MindMapNode) -> MindMapNode:
        """
        Add a node to the graph.

        Raises:
            DuplicateNodeError: If the node id already exists
            InvalidRecordError: If a field has the wrong type or is out of range
        """
        if node.id in self._node_map:
            raise DuplicateNodeError(node.id)
        node = checked_record(node)

        idx = self._graph.add_node(node)
        self._node_map[node.id] = idx
        self._inv_map[idx] = node.id

        self._mutations.log_node_created(node.id, node.type.value)
        self._publish(
            EventType.NODE_CREATED,
            node_id=node.id,
            node_type=node.type.value,
            label=node.label,
        )
        return copy.deepcopy(node)

    def get_node(self, node_id: str) -> MindMapNode:
        """
        Retrieve a node by id.

        Raises:
            NodeNotFoundError: (reason "unknown_node") if the node doesn't exist
        """
        if node_id not in self._node_map:
            raise NodeNotFoundError(node_id)
        return copy.deepcopy(self._graph[self._node_map[node_id]])

    def has_node(self, node_id: str) -> bool:
        return node_id in self._node_map

    def update_node(self, node_id: str, **changes: Any) -> MindMapNode:
        """
        Replace fields of a node (label, content, position, paths, ...).

        The id cannot change. The edited node is validated before it is
        stored; on error the node is unchanged.

        Raises:
            NodeNotFoundError: If the node doesn't exist
            ValueError: If `id` or an unknown field is given
            InvalidRecordError: If a new value has the wrong type or is out of range
        """
        node = self.get_node(node_id)

        if "id" in changes:
            raise ValueError(f"Node id cannot be changed: {node_id}")
        unknown = set(changes) - set(MindMapNode.__struct_fields__)
        if unknown:
            raise ValueError(f"Unknown node fields: {sorted(unknown)}")

        updated = checked_record(msgspec.structs.replace(node, **changes))
        self._graph[self._node_map[node_id]] = updated

        self._mutations.log_node_updated(node_id, updated.type.value)
        self._publish(
            EventType.NODE_UPDATED,
            node_id=node_id,
            node_type=updated.type.value,
            fields=sorted(changes),
        )
        return copy.deepcopy(updated)

    def remove_node(self, node_id: str) -> MindMapNode:
        """
        Remove a node and every connection that starts or ends at it.

        Raises:
            NodeNotFoundError: If the node doesn't exist
        """
        node = self.get_node(node_id)
        idx = self._node_map[node_id]

        touching = [
            conn_id for conn_id, edge_idx in self._edge_map.items()
            if node_id in self._endpoints(edge_idx)
        ]
        for conn_id in touching:
            self.remove_connection(conn_id)

        self._graph.remove_node(idx)
        del self._node_map[node_id]
        del self._inv_map[idx]

        self._mutations.log_node_deleted(node_id, node.type.value)
        self._publish(
            EventType.NODE_DELETED,
            node_id=node_id,
            node_type=node.type.value,
            connections_removed=len(touching),
        )
        return node

    def nodes(self) -> List[MindMapNode]:
        """Copies of all nodes, in insertion order."""
        return [copy.deepcopy(self._graph[idx]) for idx in self._node_map.values()]

    def get_nodes_by_type(self, node_type: NodeType) -> List[MindMapNode]:
        return [n for n in self.nodes() if n.type == node_type]

    def generated_nodes(self) -> List[MindMapNode]:
        return [n for n in self.nodes() if is_generated(n.id)]

    # =========================================================================
    # CONNECTION OPERATIONS
    # =========================================================================

    def _endpoints(self, edge_idx: int) -> Tuple[str, str]:
        conn: Connection = self._graph.get_edge_data_by_index(edge_idx)
        return conn.source, conn.target

    def add_connection(self, connection: Connection) -> Connection:
        """
        Add a connection between two existing nodes.

        Raises:
            DanglingConnectionError: (reason "dangling_connection") if an
                endpoint is absent
            DuplicateConnectionError: If the connection id already exists
            InvalidRecordError: If a field has the wrong type or is out of range
        """
        for endpoint in (connection.source, connection.target):
            if endpoint not in self._node_map:
                raise DanglingConnectionError(connection, endpoint)
        if connection.id in self._edge_map:
            raise DuplicateConnectionError(connection.id)
        connection = checked_record(connection)

        edge_idx = self._graph.add_edge(
            self._node_map[connection.source],
            self._node_map[connection.target],
            connection,
        )
        self._edge_map[connection.id] = edge_idx

        self._mutations.log_connection_created(
            connection.id, connection.source, connection.target, connection.type.value,
        )
        self._publish(
            EventType.CONNECTION_CREATED,
            connection_id=connection.id,
            source_id=connection.source,
            target_id=connection.target,
            connection_type=connection.type.value,
            strength=connection.strength,
        )
        return copy.deepcopy(connection)

    def connect(
        self,
        source_id: str,
        target_id: str,
        type: ConnectionType = ConnectionType.RELATES_TO,
        strength: float = 1.0,
    ) -> Connection:
        """
        Create an interactive connection with id conn_{source}_{target}.

        Raises:
            ValueError: If source and target are the same node, or strength
                is outside [0, 1]
            DanglingConnectionError: If an endpoint is absent
            DuplicateConnectionError: If the pair is already connected
        """
        if source_id == target_id:
            raise ValueError(f"Cannot connect a node to itself: {source_id}")
        return self.add_connection(create_connection(source_id, target_id, type, strength))

    def get_connection(self, connection_id: str) -> Connection:
        if connection_id not in self._edge_map:
            raise ConnectionNotFoundError(connection_id)
        return copy.deepcopy(self._graph.get_edge_data_by_index(self._edge_map[connection_id]))

    def has_connection(self, connection_id: str) -> bool:
        return connection_id in self._edge_map

    def remove_connection(self, connection_id: str) -> Connection:
        """
        Remove a single connection.

        Raises:
            ConnectionNotFoundError: If the connection doesn't exist
        """
        connection = self.get_connection(connection_id)
        self._graph.remove_edge_from_index(self._edge_map.pop(connection_id))

        self._mutations.log_connection_deleted(
            connection_id, connection.source, connection.target,
        )
        self._publish(
            EventType.CONNECTION_DELETED,
            connection_id=connection_id,
            source_id=connection.source,
            target_id=connection.target,
        )
        return connection

    def connections(self) -> List[Connection]:
        """Copies of all connections, in insertion order."""
        return [
            copy.deepcopy(self._graph.get_edge_data_by_index(edge_idx))
            for edge_idx in self._edge_map.values()
        ]

    def get_connections_for(self, node_id: str) -> List[Connection]:
        """Connections with `node_id` as either endpoint."""
        return [c for c in self.connections() if node_id in (c.source, c.target)]

    # =========================================================================
    # BULK OPERATIONS
    # =========================================================================

    def _validate(
        self,
        nodes: Sequence[MindMapNode],
        connections: Sequence[Connection],
    ) -> Tuple[List[MindMapNode], List[Connection]]:
        """Check a whole graph; returns validated copies of its records."""
        node_ids = set()
        for node in nodes:
            if node.id in node_ids:
                raise DuplicateNodeError(node.id)
            node_ids.add(node.id)

        connection_ids = set()
        for conn in connections:
            for endpoint in (conn.source, conn.target):
                if endpoint not in node_ids:
                    raise DanglingConnectionError(conn, endpoint)
            if conn.id in connection_ids:
                raise DuplicateConnectionError(conn.id)
            connection_ids.add(conn.id)

        return [checked_record(n) for n in nodes], [checked_record(c) for c in connections]

    def _rebuild(self, nodes: Sequence[MindMapNode], connections: Sequence[Connection]) -> None:
        """Swap in a new graph built from already-validated entries."""
        graph = rx.PyDiGraph(multigraph=True)
        indices = graph.add_nodes_from(list(nodes))
        node_map = {node.id: idx for node, idx in zip(nodes, indices)}

        edge_indices = graph.add_edges_from([
            (node_map[c.source], node_map[c.target], c) for c in connections
        ])

        self._graph = graph
        self._node_map = node_map
        self._inv_map = {idx: node_id for node_id, idx in node_map.items()}
        self._edge_map = {c.id: idx for c, idx in zip(connections, edge_indices)}

    def replace_all(
        self,
        nodes: Iterable[MindMapNode],
        connections: Iterable[Connection],
    ) -> None:
        """
        Replace the whole graph.

        Everything is validated first; on error the graph is unchanged.

        Raises:
            DuplicateNodeError, DuplicateConnectionError, DanglingConnectionError,
            InvalidRecordError
        """
        nodes = list(nodes)
        connections = list(connections)
        nodes, connections = self._validate(nodes, connections)
        self._rebuild(nodes, connections)

        self._mutations.log_graph_replaced(len(nodes), len(connections))
        self._publish(
            EventType.GRAPH_LOADED,
            node_count=len(nodes),
            connection_count=len(connections),
        )

    def clear(self) -> None:
        """Remove every node and connection."""
        removed_nodes = self.node_count
        removed_connections = self.connection_count
        self._rebuild([], [])

        self._mutations.log_graph_cleared(removed_nodes, removed_connections)
        self._publish(
            EventType.GRAPH_CLEARED,
            nodes_removed=removed_nodes,
            connections_removed=removed_connections,
        )

    def merge_generated(self, batch: GeneratedBatch) -> MergeReport:
        """
        Swap the previous generated batch for `batch`, atomically.

        User connections that pointed at a discarded generated node would be
        left dangling; they are dropped and listed in the report.

        Raises:
            DuplicateNodeError: If the batch reuses a user node id
            DanglingConnectionError: If a batch connection points nowhere
        """
        old_nodes = self.nodes()
        old_connections = self.connections()
        nodes, connections = merge_generated(old_nodes, old_connections, batch)

        node_ids = {n.id for n in nodes}
        orphaned = [
            c.id for c in connections
            if not is_generated(c.id) and (c.source not in node_ids or c.target not in node_ids)
        ]
        if orphaned:
            orphaned_set = set(orphaned)
            connections = [c for c in connections if c.id not in orphaned_set]
            logger.info(f"Dropped {len(orphaned)} user connection(s) left dangling by merge")

        nodes, connections = self._validate(nodes, connections)
        self._rebuild(nodes, connections)

        report = MergeReport(
            nodes_added=len(batch.nodes),
            nodes_removed=sum(1 for n in old_nodes if is_generated(n.id)),
            connections_added=len(batch.connections),
            connections_removed=sum(1 for c in old_connections if is_generated(c.id)) + len(orphaned),
            orphaned_connections=orphaned,
        )

        self._mutations.log_batch_merged(
            nodes_added=report.nodes_added,
            nodes_removed=report.nodes_removed,
            connections_added=report.connections_added,
            connections_removed=report.connections_removed,
        )
        self._publish(EventType.BATCH_MERGED, **msgspec.structs.asdict(report))
        return report

    # =========================================================================
    # PERSISTENCE
    # =========================================================================

    def save_project(self, path: Path, title: str = DEFAULT_PROJECT_TITLE) -> ProjectFile:
        return project_io.save_project(path, self.nodes(), self.connections(), title=title)

    def load_project(self, path: Path) -> ProjectFile:
        """
        Replace the graph with the contents of a project file.

        Raises:
            LoadFormatError: If the file is malformed or its connections
                dangle; the graph is left untouched
        """
        project = project_io.load_project(path)
        try:
            self.replace_all(project.nodes, project.connections)
        except GraphError as e:
            raise project_io.LoadFormatError(path, str(e)) from e
        return project

    # =========================================================================
    # STATISTICS
    # =========================================================================

    def stats(self) -> Dict[str, Any]:
        nodes = self.nodes()
        connections = self.connections()
        return {
            "nodes": len(nodes),
            "connections": len(connections),
            "generated_nodes": sum(1 for n in nodes if is_generated(n.id)),
            "generated_connections": sum(1 for c in connections if is_generated(c.id)),
            "nodes_by_type": dict(Counter(n.type.value for n in nodes)),
            "connections_by_type": dict(Counter(c.type.value for c in connections)),
        }

    def __len__(self) -> int:
        return self.node_count

    def __contains__(self, node_id: str) -> bool:
        return node_id in self._node_map

    def __repr__(self) -> str:
        return f"MindMapDB(nodes={self.node_count}, connections={self.connection_count})"
