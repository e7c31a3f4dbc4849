"""
DEREN MUTATION LOGGER - Audit Trail of Graph Changes

Records every change to the mind map with a timestamp and sequence number
so a session can be replayed or inspected after the fact.

Architecture:
- MutationLogger: Core logging interface
- FileLogger: JSONL file log, one file per UTC day
- EventBuffer: In-memory ring buffer for recent events

Usage:
    logger = get_logger()
    logger.log_node_created("node_123", "concept")
    logger.log_batch_merged(nodes_removed=13, nodes_added=13)

    for event in logger.get_recent_events(10):
        print(f"{event.timestamp}: {event.mutation_type}")
"""
import msgspec
from typing import Optional, List, Callable
from datetime import datetime, timezone
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from collections import deque
import threading
import io
import logging


log = logging.getLogger(__name__)


# =============================================================================
# EVENT MODEL
# =============================================================================

class MutationType(str, Enum):
    """Types of graph mutations for event tracking."""
    NODE_CREATED = "NODE_CREATED"
    NODE_UPDATED = "NODE_UPDATED"
    NODE_DELETED = "NODE_DELETED"
    CONNECTION_CREATED = "CONNECTION_CREATED"
    CONNECTION_DELETED = "CONNECTION_DELETED"
    BATCH_MERGED = "BATCH_MERGED"
    GRAPH_REPLACED = "GRAPH_REPLACED"
    GRAPH_CLEARED = "GRAPH_CLEARED"


class MutationEvent(msgspec.Struct, kw_only=True):
    """A single recorded mutation."""
    timestamp: str
    sequence: int
    mutation_type: str                  # MutationType value
    node_id: Optional[str] = None
    node_type: Optional[str] = None
    connection_id: Optional[str] = None
    source_id: Optional[str] = None
    target_id: Optional[str] = None
    connection_type: Optional[str] = None

    # Batch merges and bulk replacement
    nodes_added: int = 0
    nodes_removed: int = 0
    connections_added: int = 0
    connections_removed: int = 0


# =============================================================================
# CONFIGURATION
# =============================================================================

@dataclass
class LoggerConfig:
    """Configuration for the mutation logger."""
    enable_file_log: bool = False       # Write JSONL files under log_path
    log_path: Optional[Path] = None     # Directory for log files
    buffer_size: int = 10000            # In-memory buffer size

    def __post_init__(self):
        if self.log_path is None:
            self.log_path = Path("./workspace/logs")


# =============================================================================
# EVENT BUFFER
# =============================================================================

class EventBuffer:
    """Thread-safe ring buffer for recent mutation events."""

    def __init__(self, max_size: int = 10000):
        self._buffer: deque[MutationEvent] = deque(maxlen=max_size)
        self._lock = threading.RLock()
        self._sequence = 0

    def append(self, event: MutationEvent) -> None:
        with self._lock:
            self._buffer.append(event)

    def get_last(self, n: int) -> List[MutationEvent]:
        with self._lock:
            items = list(self._buffer)
            return items[-n:] if n > 0 else []

    def get_by_node(self, node_id: str) -> List[MutationEvent]:
        with self._lock:
            return [
                e for e in self._buffer
                if node_id in (e.node_id, e.source_id, e.target_id)
            ]

    def get_by_type(self, mutation_type: str) -> List[MutationEvent]:
        with self._lock:
            return [e for e in self._buffer if e.mutation_type == mutation_type]

    def next_sequence(self) -> int:
        with self._lock:
            self._sequence += 1
            return self._sequence

    def clear(self) -> None:
        with self._lock:
            self._buffer.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._buffer)


# =============================================================================
# FILE LOGGER
# =============================================================================

class FileLogger:
    """
    File-based event logger.

    Writes events as newline-delimited JSON. Rotates logs daily.
    """

    def __init__(self, log_path: Path):
        self._log_path = log_path
        self._current_file: Optional[io.TextIOWrapper] = None
        self._current_date: Optional[str] = None
        self._lock = threading.Lock()
        self._encoder = msgspec.json.Encoder()

        log_path.mkdir(parents=True, exist_ok=True)

    def write(self, event: MutationEvent) -> None:
        with self._lock:
            self._ensure_file()
            self._current_file.write(self._encoder.encode(event).decode("utf-8") + "\n")
            self._current_file.flush()

    def _ensure_file(self) -> None:
        today = datetime.now(timezone.utc).strftime("%Y-%m-%d")

        if self._current_date != today:
            if self._current_file:
                self._current_file.close()

            filepath = self._log_path / f"mutations_{today}.jsonl"
            self._current_file = open(filepath, "a", encoding="utf-8")
            self._current_date = today

    def close(self) -> None:
        with self._lock:
            if self._current_file:
                self._current_file.close()
                self._current_file = None

    def read_log(self, date: str) -> List[MutationEvent]:
        """Read events from a specific date's log. Corrupt lines are skipped."""
        filepath = self._log_path / f"mutations_{date}.jsonl"

        if not filepath.exists():
            return []

        events = []
        decoder = msgspec.json.Decoder(type=MutationEvent)

        with open(filepath, "r", encoding="utf-8") as f:
            for line in f:
                line = line.strip()
                if not line:
                    continue
                try:
                    events.append(decoder.decode(line.encode()))
                except msgspec.DecodeError:
                    log.warning(f"Skipping corrupt mutation log line in {filepath.name}")

        return events


# =============================================================================
# MUTATION LOGGER (Main Interface)
# =============================================================================

class MutationLogger:
    """
    Main logging interface for graph mutations.

    Provides a unified API for logging events to:
    - In-memory buffer (always)
    - File-based logs (configurable)
    - Subscribers (callbacks)
    """

    def __init__(self, config: Optional[LoggerConfig] = None):
        self.config = config or LoggerConfig()

        self._buffer = EventBuffer(self.config.buffer_size)
        self._file_logger: Optional[FileLogger] = None

        if self.config.enable_file_log and self.config.log_path:
            self._file_logger = FileLogger(self.config.log_path)

        self._subscribers: List[Callable[[MutationEvent], None]] = []

    def _now(self) -> str:
        return datetime.now(timezone.utc).isoformat()

    def _record(self, mutation_type: MutationType, **fields) -> MutationEvent:
        event = MutationEvent(
            timestamp=self._now(),
            sequence=self._buffer.next_sequence(),
            mutation_type=mutation_type.value,
            **fields,
        )
        self._buffer.append(event)

        if self._file_logger:
            self._file_logger.write(event)

        for subscriber in self._subscribers:
            try:
                subscriber(event)
            except Exception as e:
                log.error(f"Mutation subscriber error: {e}", exc_info=True)

        return event

    # =========================================================================
    # LOGGING METHODS
    # =========================================================================

    def log_node_created(self, node_id: str, node_type: str) -> MutationEvent:
        return self._record(MutationType.NODE_CREATED, node_id=node_id, node_type=node_type)

    def log_node_updated(self, node_id: str, node_type: str) -> MutationEvent:
        return self._record(MutationType.NODE_UPDATED, node_id=node_id, node_type=node_type)

    def log_node_deleted(self, node_id: str, node_type: str) -> MutationEvent:
        return self._record(MutationType.NODE_DELETED, node_id=node_id, node_type=node_type)

    def log_connection_created(
        self,
        connection_id: str,
        source_id: str,
        target_id: str,
        connection_type: str,
    ) -> MutationEvent:
        return self._record(
            MutationType.CONNECTION_CREATED,
            connection_id=connection_id,
            source_id=source_id,
            target_id=target_id,
            connection_type=connection_type,
        )

    def log_connection_deleted(
        self,
        connection_id: str,
        source_id: str,
        target_id: str,
    ) -> MutationEvent:
        return self._record(
            MutationType.CONNECTION_DELETED,
            connection_id=connection_id,
            source_id=source_id,
            target_id=target_id,
        )

    def log_batch_merged(
        self,
        nodes_added: int = 0,
        nodes_removed: int = 0,
        connections_added: int = 0,
        connections_removed: int = 0,
    ) -> MutationEvent:
        """Log the atomic swap of one generated batch for another."""
        return self._record(
            MutationType.BATCH_MERGED,
            nodes_added=nodes_added,
            nodes_removed=nodes_removed,
            connections_added=connections_added,
            connections_removed=connections_removed,
        )

    def log_graph_replaced(self, nodes_added: int, connections_added: int) -> MutationEvent:
        return self._record(
            MutationType.GRAPH_REPLACED,
            nodes_added=nodes_added,
            connections_added=connections_added,
        )

    def log_graph_cleared(self, nodes_removed: int, connections_removed: int) -> MutationEvent:
        return self._record(
            MutationType.GRAPH_CLEARED,
            nodes_removed=nodes_removed,
            connections_removed=connections_removed,
        )

    # =========================================================================
    # QUERY METHODS
    # =========================================================================

    def get_recent_events(self, n: int = 100) -> List[MutationEvent]:
        return self._buffer.get_last(n)

    def get_events_for_node(self, node_id: str) -> List[MutationEvent]:
        return self._buffer.get_by_node(node_id)

    def get_events_by_type(self, mutation_type: str) -> List[MutationEvent]:
        return self._buffer.get_by_type(mutation_type)

    # =========================================================================
    # SUBSCRIPTION
    # =========================================================================

    def subscribe(self, callback: Callable[[MutationEvent], None]) -> None:
        self._subscribers.append(callback)

    def unsubscribe(self, callback: Callable[[MutationEvent], None]) -> None:
        if callback in self._subscribers:
            self._subscribers.remove(callback)

    def close(self) -> None:
        if self._file_logger:
            self._file_logger.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False


# =============================================================================
# GLOBAL INSTANCE
# =============================================================================

_global_logger: Optional[MutationLogger] = None


def get_logger() -> MutationLogger:
    """Get or create the global mutation logger."""
    global _global_logger
    if _global_logger is None:
        _global_logger = MutationLogger()
    return _global_logger


def configure_logger(config: LoggerConfig) -> MutationLogger:
    """Replace the global mutation logger with a newly configured one."""
    global _global_logger
    if _global_logger:
        _global_logger.close()
    _global_logger = MutationLogger(config)
    return _global_logger
