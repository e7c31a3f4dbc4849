"""
Unit tests for core/graph_db.py - MindMapDB

Tests the canonical mind map store including:
- Node creation, update and retrieval
- Connection creation and validation
- Cascading node removal
- The generated-batch merge contract
- Bulk replacement and project round-trips
- Event bus and mutation log integration
"""
import pytest

from core.graph_db import (
    MindMapDB,
    merge_generated,
    ValidationError,
    InvalidRecordError,
    NodeNotFoundError,
    DanglingConnectionError,
    DuplicateNodeError,
    DuplicateConnectionError,
    ConnectionNotFoundError,
)
from core.schemas import (
    Connection,
    GeneratedBatch,
    MindMapNode,
    NodeMetadata,
    Position,
    create_node,
    create_connection,
)
from core.ontology import NodeType, ConnectionType, GENERATED_PREFIX, generated_connection_id
from infrastructure.event_bus import get_event_bus, EventType
from infrastructure.logger import get_logger, MutationType
from infrastructure.project_io import LoadFormatError, save_project


def make_batch(tag: str, count: int = 3) -> GeneratedBatch:
    """A small generated batch: one root linked to `count` children."""
    root = create_node(f"{GENERATED_PREFIX}root-{tag}", f"Mission {tag}", NodeType.ROOT)
    children = [
        create_node(f"{GENERATED_PREFIX}concept-{tag}-{i}", f"Area {i}", NodeType.CONCEPT)
        for i in range(count)
    ]
    connections = [
        create_connection(
            root.id, child.id, ConnectionType.RELATES_TO, 0.8,
            id=generated_connection_id(root.id, child.id),
        )
        for child in children
    ]
    return GeneratedBatch(nodes=[root, *children], connections=connections)


# =============================================================================
# NODE OPERATIONS TESTS
# =============================================================================

def test_add_node_creates_node(fresh_db):
    """
    Validate that add_node stores the node and makes it retrievable.

    Verifies:
    - Node count increases by 1
    - Node can be retrieved by ID with its fields intact
    """
    node = create_node("n1", "Quantum Computing", NodeType.CONCEPT, Position(x=10, y=20), "qubits")

    fresh_db.add_node(node)

    assert fresh_db.node_count == 1
    assert fresh_db.has_node("n1")
    retrieved = fresh_db.get_node("n1")
    assert retrieved.label == "Quantum Computing"
    assert retrieved.position.x == 10
    assert retrieved.content == "qubits"


def test_add_node_duplicate_id_fails(fresh_db):
    """
    Validate that adding a node with a duplicate ID raises DuplicateNodeError.

    Verifies:
    - Second add with same ID raises
    - Graph still contains only one node
    """
    node = create_node("n1", "A", NodeType.CONCEPT)
    fresh_db.add_node(node)

    with pytest.raises(DuplicateNodeError) as exc_info:
        fresh_db.add_node(create_node("n1", "B", NodeType.FINDING))

    assert "n1" in str(exc_info.value)
    assert fresh_db.node_count == 1
    assert fresh_db.get_node("n1").label == "A"


def test_get_node_unknown_raises_validation_error(fresh_db):
    with pytest.raises(ValidationError) as exc_info:
        fresh_db.get_node("missing")

    assert exc_info.value.reason == "unknown_node"
    assert isinstance(exc_info.value, NodeNotFoundError)


def test_update_node_replaces_fields(fresh_db):
    """
    Validate the node edit flow.

    Verifies:
    - Label and content change
    - Position can be moved
    - Other fields are preserved
    """
    fresh_db.add_node(create_node("n1", "Draft", NodeType.CONCEPT, content="old", tags=["x"]))

    updated = fresh_db.update_node("n1", label="Final", content="new", position=Position(x=5, y=6))

    assert updated.label == "Final"
    assert fresh_db.get_node("n1").content == "new"
    assert fresh_db.get_node("n1").position == Position(x=5, y=6)
    assert fresh_db.get_node("n1").metadata.tags == ["x"]


def test_update_node_coerces_wire_values(fresh_db):
    fresh_db.add_node(create_node("n1", "A", NodeType.CONCEPT))

    updated = fresh_db.update_node("n1", type="finding", position={"x": 1, "y": 2})

    assert updated.type is NodeType.FINDING
    assert fresh_db.get_node("n1").position == Position(x=1, y=2)
    assert fresh_db.stats()["nodes_by_type"] == {"finding": 1}


@pytest.mark.parametrize("changes", [
    {"type": "banana"},
    {"position": "nowhere"},
    {"position": {"x": "far", "y": 0}},
    {"metadata": NodeMetadata(confidence=3.0)},
    {"label": 42},
])
def test_update_node_invalid_value_leaves_node_unchanged(fresh_db, changes):
    """
    Validate that a bad edit is rejected before it is stored.

    Verifies:
    - InvalidRecordError (reason "invalid_record") is raised
    - The stored node is exactly as before
    - No update is logged
    """
    original = fresh_db.add_node(create_node("n1", "A", NodeType.CONCEPT))

    with pytest.raises(InvalidRecordError) as exc_info:
        fresh_db.update_node("n1", **changes)

    assert exc_info.value.reason == "invalid_record"
    assert fresh_db.get_node("n1") == original
    assert get_logger().get_events_by_type(MutationType.NODE_UPDATED.value) == []


def test_update_node_rejects_id_change(fresh_db):
    fresh_db.add_node(create_node("n1", "A", NodeType.CONCEPT))

    with pytest.raises(ValueError):
        fresh_db.update_node("n1", id="n2")
    with pytest.raises(ValueError):
        fresh_db.update_node("n1", colour="red")


def test_nodes_preserve_insertion_order_after_removal(fresh_db):
    for node_id in ("a", "b", "c"):
        fresh_db.add_node(create_node(node_id, node_id.upper(), NodeType.CONCEPT))
    fresh_db.remove_node("a")
    fresh_db.add_node(create_node("d", "D", NodeType.CONCEPT))

    assert [n.id for n in fresh_db.nodes()] == ["b", "c", "d"]


def test_nodes_returns_copy(fresh_db):
    fresh_db.add_node(create_node("a", "A", NodeType.CONCEPT))

    snapshot = fresh_db.nodes()
    snapshot.clear()

    assert fresh_db.node_count == 1


def test_returned_records_are_detached_from_store(db_with_sample_nodes):
    """
    Validate that reads hand out copies.

    Verifies:
    - Mutating a node from nodes(), get_node() or add_node() changes nothing stored
    - Mutating a connection from connections() changes nothing stored
    """
    db, _ = db_with_sample_nodes

    db.nodes()[0].position.x = 999
    db.get_node("topic").metadata.tags.append("leaked")
    added = db.add_node(create_node("extra", "Extra", NodeType.QUESTION))
    added.label = "Changed"
    db.connections()[0].strength = 0.1

    assert db.get_node("topic").position.x == 0
    assert db.get_node("topic").metadata.tags == []
    assert db.get_node("extra").label == "Extra"
    assert db.get_connection("conn_topic_cause").strength == 1.0


def test_add_node_out_of_range_confidence_rejected(fresh_db):
    node = MindMapNode(
        id="n1",
        label="A",
        type=NodeType.CONCEPT,
        metadata=NodeMetadata(confidence=3.0),
    )

    with pytest.raises(InvalidRecordError):
        fresh_db.add_node(node)

    assert fresh_db.is_empty


# =============================================================================
# CONNECTION OPERATIONS TESTS
# =============================================================================

def test_connect_creates_interactive_connection(db_with_sample_nodes):
    """
    Validate that connect() creates a relates_to connection.

    Verifies:
    - Id is conn_{from}_{to}
    - Type relates_to, strength 1.0
    """
    db, _ = db_with_sample_nodes

    conn = db.connect("cause", "effect")

    assert conn.id == "conn_cause_effect"
    assert conn.type == ConnectionType.RELATES_TO
    assert conn.strength == 1.0
    assert db.has_connection("conn_cause_effect")


def test_connect_same_pair_twice_fails(db_with_sample_nodes):
    db, _ = db_with_sample_nodes

    with pytest.raises(DuplicateConnectionError):
        db.connect("topic", "cause")
    assert db.connection_count == 1


def test_connect_opposite_direction_is_distinct(db_with_sample_nodes):
    db, _ = db_with_sample_nodes

    db.connect("cause", "topic")

    assert db.connection_count == 2


def test_connect_self_rejected(db_with_sample_nodes):
    db, _ = db_with_sample_nodes

    with pytest.raises(ValueError):
        db.connect("topic", "topic")


@pytest.mark.parametrize("strength", [1.5, -0.2])
def test_add_connection_out_of_range_strength_rejected(db_with_sample_nodes, strength):
    db, _ = db_with_sample_nodes
    connection = Connection(id="conn_cause_effect", source="cause", target="effect", strength=strength)

    with pytest.raises(InvalidRecordError):
        db.add_connection(connection)
    with pytest.raises(ValueError):
        db.connect("cause", "effect", strength=strength)

    assert not db.has_connection("conn_cause_effect")


def test_add_connection_dangling_endpoint_rejected(db_with_sample_nodes):
    """
    Validate that a connection to a missing node is rejected.

    Verifies:
    - ValidationError with reason dangling_connection
    - The missing id is reported
    - No connection is added
    """
    db, _ = db_with_sample_nodes

    with pytest.raises(ValidationError) as exc_info:
        db.add_connection(create_connection("topic", "ghost"))

    assert exc_info.value.reason == "dangling_connection"
    assert isinstance(exc_info.value, DanglingConnectionError)
    assert exc_info.value.missing_id == "ghost"
    assert db.connection_count == 1


def test_remove_connection(db_with_sample_nodes):
    db, _ = db_with_sample_nodes

    removed = db.remove_connection("conn_topic_cause")

    assert removed.source == "topic"
    assert db.connection_count == 0
    with pytest.raises(ConnectionNotFoundError):
        db.remove_connection("conn_topic_cause")


def test_get_connections_for(db_with_sample_nodes):
    db, _ = db_with_sample_nodes
    db.connect("effect", "topic")

    ids = {c.id for c in db.get_connections_for("topic")}

    assert ids == {"conn_topic_cause", "conn_effect_topic"}


# =============================================================================
# NODE REMOVAL TESTS
# =============================================================================

def test_remove_node_cascades_exactly_incident_connections(db_with_sample_nodes):
    """
    Validate that deleting X removes exactly the connections touching X.

    Verifies:
    - Outgoing and incoming connections of X are removed
    - Connections between other nodes survive
    """
    db, _ = db_with_sample_nodes
    db.connect("effect", "topic")
    db.connect("cause", "effect")

    db.remove_node("topic")

    remaining = db.connections()
    assert [c.id for c in remaining] == ["conn_cause_effect"]
    assert all("topic" not in (c.source, c.target) for c in remaining)
    assert not db.has_node("topic")


def test_remove_node_unknown_raises(fresh_db):
    with pytest.raises(NodeNotFoundError):
        fresh_db.remove_node("nope")


# =============================================================================
# MERGE CONTRACT TESTS
# =============================================================================

def test_pure_merge_replaces_generated_entries():
    """
    Validate the pure merge function.

    Verifies:
    - Previous generated nodes and connections are dropped
    - User entries keep their order
    - The new batch is appended
    """
    user = create_node("user-1", "Mine", NodeType.CONCEPT)
    user_conn = create_connection("user-1", "user-1", id="user-conn")
    old = make_batch("old")
    new = make_batch("new", count=2)

    nodes, connections = merge_generated(
        [user, *old.nodes], [user_conn, *old.connections], new,
    )

    assert nodes[0] is user
    assert [n.id for n in nodes[1:]] == [n.id for n in new.nodes]
    assert connections[0] is user_conn
    assert len(connections) == 1 + len(new.connections)


def test_pure_merge_is_idempotent():
    user = create_node("user-1", "Mine", NodeType.CONCEPT)
    batch = make_batch("b")

    once = merge_generated([user], [], batch)
    twice = merge_generated(once[0], once[1], batch)

    assert [n.id for n in twice[0]] == [n.id for n in once[0]]
    assert [c.id for c in twice[1]] == [c.id for c in once[1]]


def test_merge_generated_swaps_batches(db_with_sample_nodes):
    """
    Validate that a second merge fully replaces the first batch.

    Verifies:
    - User nodes and connections are untouched
    - Only the latest batch's generated entries remain
    - The report counts what changed
    """
    db, _ = db_with_sample_nodes
    first = make_batch("first")
    second = make_batch("second", count=2)

    db.merge_generated(first)
    report = db.merge_generated(second)

    generated = {n.id for n in db.generated_nodes()}
    assert generated == {n.id for n in second.nodes}
    assert {"topic", "cause", "effect"} <= {n.id for n in db.nodes()}
    assert db.has_connection("conn_topic_cause")
    assert report.nodes_removed == len(first.nodes)
    assert report.nodes_added == len(second.nodes)
    assert report.connections_removed == len(first.connections)


def test_merge_generated_same_batch_twice_is_stable(db_with_sample_nodes):
    db, _ = db_with_sample_nodes
    batch = make_batch("x")

    db.merge_generated(batch)
    first_nodes = [n.id for n in db.nodes()]
    first_connections = [c.id for c in db.connections()]
    db.merge_generated(batch)

    assert [n.id for n in db.nodes()] == first_nodes
    assert [c.id for c in db.connections()] == first_connections


def test_merge_generated_drops_user_connections_to_discarded_nodes(db_with_sample_nodes):
    """
    Validate that user connections into a replaced batch do not dangle.

    Verifies:
    - The user connection is removed with the old batch
    - It is listed in the report
    """
    db, _ = db_with_sample_nodes
    first = make_batch("first")
    db.merge_generated(first)
    user_conn = db.connect("topic", first.nodes[0].id)

    report = db.merge_generated(make_batch("second"))

    assert not db.has_connection(user_conn.id)
    assert report.orphaned_connections == [user_conn.id]
    node_ids = {n.id for n in db.nodes()}
    assert all(c.source in node_ids and c.target in node_ids for c in db.connections())


def test_merge_generated_rejects_dangling_batch(db_with_sample_nodes):
    db, _ = db_with_sample_nodes
    before = [n.id for n in db.nodes()]
    bad = GeneratedBatch(
        nodes=[create_node(f"{GENERATED_PREFIX}root-1", "Root", NodeType.ROOT)],
        connections=[create_connection(f"{GENERATED_PREFIX}root-1", "ghost", id=f"{GENERATED_PREFIX}c")],
    )

    with pytest.raises(DanglingConnectionError):
        db.merge_generated(bad)

    assert [n.id for n in db.nodes()] == before


def test_merge_generated_rejects_batch_colliding_with_user_node(db_with_sample_nodes):
    db, _ = db_with_sample_nodes
    bad = GeneratedBatch(nodes=[create_node("topic", "Clash", NodeType.ROOT)])

    with pytest.raises(DuplicateNodeError):
        db.merge_generated(bad)

    assert db.get_node("topic").label == "Ocean Acidification"


# =============================================================================
# BULK & PERSISTENCE TESTS
# =============================================================================

def test_replace_all_validates_before_mutating(db_with_sample_nodes):
    db, _ = db_with_sample_nodes

    with pytest.raises(DanglingConnectionError):
        db.replace_all(
            [create_node("solo", "Solo", NodeType.CONCEPT)],
            [create_connection("solo", "missing")],
        )

    assert db.node_count == 3
    assert db.connection_count == 1


def test_clear_empties_graph(db_with_sample_nodes):
    db, _ = db_with_sample_nodes

    db.clear()

    assert db.is_empty
    assert db.connections() == []


def test_clear_is_logged(db_with_sample_nodes):
    db, _ = db_with_sample_nodes

    db.clear()

    events = get_logger().get_events_by_type(MutationType.GRAPH_CLEARED.value)
    assert len(events) == 1
    assert events[0].nodes_removed == 3
    assert events[0].connections_removed == 1


def test_replace_all_rejects_invalid_record(db_with_sample_nodes):
    db, _ = db_with_sample_nodes
    bad = MindMapNode(id="x", label="X", type=NodeType.CONCEPT, metadata=NodeMetadata(confidence=-1.0))

    with pytest.raises(InvalidRecordError):
        db.replace_all([bad], [])

    assert db.node_count == 3


def test_every_accepted_graph_reloads(tmp_path, db_with_sample_nodes):
    db, _ = db_with_sample_nodes
    db.connect("cause", "effect", strength=0.0)
    db.update_node("effect", metadata=NodeMetadata(confidence=1.0))
    path = tmp_path / "edge_values.json"
    db.save_project(path)

    reloaded = MindMapDB()
    reloaded.load_project(path)

    assert reloaded.nodes() == db.nodes()
    assert reloaded.connections() == db.connections()


def test_project_round_trip(tmp_path, db_with_sample_nodes):
    """
    Validate that load(save(graph)) reproduces the graph.

    Verifies:
    - Same nodes and connections, same order
    - Wire field names survive
    """
    db, _ = db_with_sample_nodes
    db.merge_generated(make_batch("saved"))
    path = tmp_path / "project.json"

    db.save_project(path)
    restored = MindMapDB()
    restored.load_project(path)

    assert restored.nodes() == db.nodes()
    assert restored.connections() == db.connections()


def test_load_project_malformed_leaves_store_untouched(tmp_path, db_with_sample_nodes):
    db, _ = db_with_sample_nodes
    path = tmp_path / "broken.json"
    path.write_text('{"nodes": []}')

    with pytest.raises(LoadFormatError):
        db.load_project(path)

    assert db.node_count == 3


def test_load_project_with_dangling_connection_is_format_error(tmp_path, fresh_db):
    path = tmp_path / "dangling.json"
    save_project(
        path,
        [create_node("a", "A", NodeType.CONCEPT)],
        [create_connection("a", "b")],
    )

    with pytest.raises(LoadFormatError) as exc_info:
        fresh_db.load_project(path)

    assert "b" in str(exc_info.value)
    assert fresh_db.is_empty


def test_stats_counts_generated_entries(db_with_sample_nodes):
    db, _ = db_with_sample_nodes
    db.merge_generated(make_batch("s", count=2))

    stats = db.stats()

    assert stats["nodes"] == 6
    assert stats["generated_nodes"] == 3
    assert stats["connections"] == 3
    assert stats["generated_connections"] == 2
    assert stats["nodes_by_type"]["concept"] == 4


# =============================================================================
# OBSERVABILITY TESTS
# =============================================================================

def test_mutations_publish_events(fresh_db):
    """
    Validate that graph mutations reach the event bus.

    Verifies:
    - node_created and connection_created are published
    - Payload carries the affected ids
    """
    seen = []
    bus = get_event_bus()
    bus.subscribe(EventType.NODE_CREATED, seen.append)
    bus.subscribe(EventType.CONNECTION_CREATED, seen.append)

    fresh_db.add_node(create_node("a", "A", NodeType.CONCEPT))
    fresh_db.add_node(create_node("b", "B", NodeType.CONCEPT))
    fresh_db.connect("a", "b")

    assert [e.type for e in seen] == [
        EventType.NODE_CREATED, EventType.NODE_CREATED, EventType.CONNECTION_CREATED,
    ]
    assert seen[-1].payload["connection_id"] == "conn_a_b"
    assert seen[-1].source == "graph_db"


def test_merge_publishes_single_batch_event(db_with_sample_nodes):
    db, _ = db_with_sample_nodes
    seen = []
    get_event_bus().subscribe(EventType.BATCH_MERGED, seen.append)

    db.merge_generated(make_batch("m"))

    assert len(seen) == 1
    assert seen[0].payload["nodes_added"] == 4


def test_mutations_are_logged(fresh_db):
    fresh_db.add_node(create_node("a", "A", NodeType.CONCEPT))
    fresh_db.remove_node("a")

    types = [e.mutation_type for e in get_logger().get_events_for_node("a")]

    assert types == [MutationType.NODE_CREATED.value, MutationType.NODE_DELETED.value]
