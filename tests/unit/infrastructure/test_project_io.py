"""
Unit tests for infrastructure/project_io.py - project file save/load.
"""
import json

import pytest

from core.ontology import NodeType, ConnectionType
from core.schemas import create_node, create_connection
from infrastructure.project_io import save_project, load_project, LoadFormatError


def sample_graph():
    nodes = [
        create_node("a", "Alpha", NodeType.CONCEPT, content="first"),
        create_node("b", "Beta", NodeType.CANVAS),
    ]
    nodes[1].paths.append("M 0 0 L 10 10")
    connections = [create_connection("a", "b", ConnectionType.SUPPORTS, 0.4)]
    return nodes, connections


def test_saved_document_shape(tmp_path):
    """
    Validate the on-disk format.

    Verifies:
    - Top-level nodes, connections, metadata
    - metadata version "1.0" and default title
    - Connections use from/to
    """
    nodes, connections = sample_graph()
    path = tmp_path / "project.json"

    save_project(path, nodes, connections)

    document = json.loads(path.read_text())
    assert set(document) == {"nodes", "connections", "metadata"}
    assert document["metadata"]["version"] == "1.0"
    assert document["metadata"]["title"] == "DEREN Project"
    assert document["metadata"]["created"]
    assert document["connections"][0]["from"] == "a"
    assert document["connections"][0]["to"] == "b"


def test_round_trip_preserves_graph(tmp_path):
    nodes, connections = sample_graph()
    path = tmp_path / "nested" / "project.json"

    save_project(path, nodes, connections, title="Harbour History")
    project = load_project(path)

    assert project.nodes == nodes
    assert project.connections == connections
    assert project.metadata.title == "Harbour History"
    assert project.nodes[1].paths == ["M 0 0 L 10 10"]


@pytest.mark.parametrize("content", [
    "not json at all",
    '{"nodes": []}',
    '{"connections": []}',
    '{"nodes": [{"id": "a"}], "connections": []}',
    '{"nodes": [], "connections": [{"id": "c", "from": "a", "to": "b", "strength": 2}]}',
])
def test_malformed_files_raise_load_format_error(tmp_path, content):
    path = tmp_path / "bad.json"
    path.write_text(content)

    with pytest.raises(LoadFormatError) as exc_info:
        load_project(path)

    assert exc_info.value.path == str(path)


def test_missing_file_raises_load_format_error(tmp_path):
    with pytest.raises(LoadFormatError):
        load_project(tmp_path / "absent.json")
