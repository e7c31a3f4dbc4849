"""
DEREN PROJECT I/O - Save and Load Project Files

A project file is one JSON document:

    {
      "nodes": [...],
      "connections": [...],
      "metadata": {"version": "1.0", "created": "<ISO-8601>", "title": "DEREN Project"}
    }

Loading is all-or-nothing: the document is fully decoded and validated
before anything is returned, so a malformed file never reaches the store.
"""
import logging
from pathlib import Path
from typing import Iterable, Union

import msgspec

from core.schemas import (
    MindMapNode,
    Connection,
    ProjectFile,
    ProjectMetadata,
    DEFAULT_PROJECT_TITLE,
    serialize_project,
    deserialize_project,
)


logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


class LoadFormatError(Exception):
    """Raised when a project file is missing, not JSON, or has the wrong shape."""
    def __init__(self, path: PathLike, reason: str):
        self.path = str(path)
        self.reason = reason
        super().__init__(f"Invalid project file {self.path}: {reason}")


def build_project(
    nodes: Iterable[MindMapNode],
    connections: Iterable[Connection],
    title: str = DEFAULT_PROJECT_TITLE,
) -> ProjectFile:
    return ProjectFile(
        nodes=list(nodes),
        connections=list(connections),
        metadata=ProjectMetadata(title=title),
    )


def save_project(
    path: PathLike,
    nodes: Iterable[MindMapNode],
    connections: Iterable[Connection],
    title: str = DEFAULT_PROJECT_TITLE,
) -> ProjectFile:
    """
    Write nodes and connections to a project file.

    Parent directories are created as needed.

    Returns:
        The ProjectFile that was written
    """
    path = Path(path)
    project = build_project(nodes, connections, title)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(serialize_project(project))
    logger.info(
        f"Saved project to {path} "
        f"({len(project.nodes)} nodes, {len(project.connections)} connections)"
    )
    return project


def load_project(path: PathLike) -> ProjectFile:
    """
    Read and validate a project file.

    Raises:
        LoadFormatError: If the file cannot be read, is not JSON, lacks
            `nodes` or `connections`, or contains a malformed record
    """
    path = Path(path)
    try:
        data = path.read_bytes()
    except OSError as e:
        raise LoadFormatError(path, str(e)) from e

    try:
        project = deserialize_project(data)
    except msgspec.ValidationError as e:
        raise LoadFormatError(path, str(e)) from e
    except msgspec.DecodeError as e:
        raise LoadFormatError(path, f"not valid JSON ({e})") from e

    logger.info(
        f"Loaded project {project.metadata.title!r} from {path} "
        f"({len(project.nodes)} nodes, {len(project.connections)} connections)"
    )
    return project
