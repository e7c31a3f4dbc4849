"""
Unit tests for infrastructure/logger.py - MutationLogger.
"""
from infrastructure.logger import (
    MutationLogger,
    LoggerConfig,
    MutationType,
    FileLogger,
)


def test_events_are_sequenced():
    logger = MutationLogger()

    first = logger.log_node_created("a", "concept")
    second = logger.log_connection_created("conn_a_b", "a", "b", "relates_to")

    assert second.sequence == first.sequence + 1
    assert [e.mutation_type for e in logger.get_recent_events()] == [
        MutationType.NODE_CREATED.value,
        MutationType.CONNECTION_CREATED.value,
    ]


def test_events_for_node_include_connections():
    logger = MutationLogger()
    logger.log_node_created("a", "concept")
    logger.log_node_created("b", "concept")
    logger.log_connection_deleted("conn_a_b", "a", "b")

    assert len(logger.get_events_for_node("b")) == 2


def test_buffer_is_bounded():
    logger = MutationLogger(LoggerConfig(buffer_size=3))
    for i in range(5):
        logger.log_node_created(f"n{i}", "concept")

    assert [e.node_id for e in logger.get_recent_events()] == ["n2", "n3", "n4"]


def test_subscriber_notified_and_isolated():
    logger = MutationLogger()
    seen = []

    def broken(event):
        raise RuntimeError("subscriber bug")

    logger.subscribe(broken)
    logger.subscribe(seen.append)
    logger.log_batch_merged(nodes_added=13, nodes_removed=13)

    assert seen[0].nodes_added == 13


def test_file_log_round_trip(tmp_path):
    """
    Validate JSONL file logging.

    Verifies:
    - Events are written one per line under log_path
    - read_log decodes them back
    """
    config = LoggerConfig(enable_file_log=True, log_path=tmp_path)
    with MutationLogger(config) as logger:
        event = logger.log_graph_replaced(nodes_added=4, connections_added=4)

    date = event.timestamp[:10]
    events = FileLogger(tmp_path).read_log(date)

    assert len(events) == 1
    assert events[0].mutation_type == MutationType.GRAPH_REPLACED.value
    assert events[0].connections_added == 4
