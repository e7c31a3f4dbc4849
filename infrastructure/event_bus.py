"""
Lightweight event bus for decoupled mind map change notifications.

Follows publisher-subscriber pattern for real-time updates without coupling.

Design Principles:
- Publisher-subscriber pattern (decoupled)
- Supports both sync and async handlers
- Non-blocking (async handlers scheduled via create_task)
- Singleton for global access
- Type-safe events via msgspec

Architecture:
    MindMapDB / MissionOrchestrator -> EventBus -> [renderer, logger, CLI]

Usage:
    from infrastructure.event_bus import get_event_bus, GraphEvent, EventType

    bus = get_event_bus()
    bus.subscribe(EventType.BATCH_MERGED, lambda e: print(e.payload))
"""
from typing import Callable, List, Dict, Any, Optional, Set
from enum import Enum
import msgspec
import asyncio
import time
from collections import defaultdict
import logging


logger = logging.getLogger("deren.event_bus")


class EventType(str, Enum):
    """Types of events published by the graph store and the orchestrator."""
    NODE_CREATED = "node_created"
    NODE_UPDATED = "node_updated"
    NODE_DELETED = "node_deleted"
    CONNECTION_CREATED = "connection_created"
    CONNECTION_DELETED = "connection_deleted"
    BATCH_MERGED = "batch_merged"
    GRAPH_LOADED = "graph_loaded"
    GRAPH_CLEARED = "graph_cleared"
    PHASE_CHANGED = "phase_changed"
    MISSION_COMPLETED = "mission_completed"
    MISSION_FAILED = "mission_failed"


class GraphEvent(msgspec.Struct, kw_only=True):
    """
    Event emitted when the mind map or a mission changes.

    Attributes:
        type: Type of event
        payload: Event-specific data (node_id, phase, counts, ...)
        timestamp: Unix timestamp when event occurred
        source: Source of event ("graph_db", "orchestrator", "commands")
    """
    type: EventType
    payload: Dict[str, Any]
    timestamp: float
    source: str


class EventBus:
    """
    Event bus for graph and mission notifications.

    Thread Safety:
        NOT thread-safe. Async handlers are scheduled on the running loop
        with create_task, which is safe within one asyncio context.
    """

    def __init__(self):
        self._subscribers: Dict[EventType, List[Callable]] = defaultdict(list)
        self._async_subscribers: Dict[EventType, List[Callable]] = defaultdict(list)
        # Scheduled async handler runs, held until they finish
        self._pending: Set[asyncio.Task] = set()

    def subscribe(self, event_type: EventType, handler: Callable[[GraphEvent], None]):
        """Subscribe to events with a synchronous handler."""
        if handler not in self._subscribers[event_type]:
            self._subscribers[event_type].append(handler)
            logger.debug(f"Subscribed sync handler to {event_type.value}")

    def subscribe_async(self, event_type: EventType, handler: Callable[[GraphEvent], Any]):
        """Subscribe to events with an async handler."""
        if handler not in self._async_subscribers[event_type]:
            self._async_subscribers[event_type].append(handler)
            logger.debug(f"Subscribed async handler to {event_type.value}")

    def publish(self, event: GraphEvent):
        """
        Publish an event to all subscribers.

        Note:
            - Sync handlers run immediately (blocking)
            - Async handlers are scheduled and run in the background
            - Exceptions in handlers are logged but don't propagate
        """
        logger.debug(
            f"Publishing {event.type.value} from {event.source} "
            f"(payload keys: {list(event.payload.keys())})"
        )

        for handler in list(self._subscribers[event.type]):
            try:
                handler(event)
            except Exception as e:
                logger.error(
                    f"Error in sync handler for {event.type.value}: {e}",
                    exc_info=True
                )

        for handler in list(self._async_subscribers[event.type]):
            try:
                loop = asyncio.get_running_loop()
            except RuntimeError:
                logger.warning(
                    f"Cannot schedule async handler for {event.type.value}: "
                    "no event loop running"
                )
                continue
            task = loop.create_task(handler(event))
            self._pending.add(task)
            task.add_done_callback(self._handler_done)

    def _handler_done(self, task: asyncio.Task) -> None:
        self._pending.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error(
                f"Error in async handler: {error}",
                exc_info=(type(error), error, error.__traceback__),
            )

    @property
    def pending_handlers(self) -> int:
        """Async handler runs that have not finished yet."""
        return len(self._pending)

    def emit(self, event_type: EventType, payload: Dict[str, Any], source: str) -> GraphEvent:
        """Build and publish an event stamped with the current time."""
        event = GraphEvent(
            type=event_type,
            payload=payload,
            timestamp=time.time(),
            source=source,
        )
        self.publish(event)
        return event

    def unsubscribe(self, event_type: EventType, handler: Callable):
        if handler in self._subscribers[event_type]:
            self._subscribers[event_type].remove(handler)
            logger.debug(f"Unsubscribed sync handler from {event_type.value}")

        if handler in self._async_subscribers[event_type]:
            self._async_subscribers[event_type].remove(handler)
            logger.debug(f"Unsubscribed async handler from {event_type.value}")

    def clear_subscribers(self, event_type: Optional[EventType] = None):
        """
        Clear all subscribers for an event type (or all types).

        Warning:
            This is primarily for testing.
        """
        if event_type is None:
            self._subscribers.clear()
            self._async_subscribers.clear()
            logger.info("Cleared all event subscribers")
        else:
            self._subscribers[event_type].clear()
            self._async_subscribers[event_type].clear()
            logger.info(f"Cleared subscribers for {event_type.value}")

    def subscriber_count(self, event_type: Optional[EventType] = None) -> int:
        """Total number of subscribers (sync + async) for a type, or overall."""
        if event_type is None:
            total = sum(len(handlers) for handlers in self._subscribers.values())
            total += sum(len(handlers) for handlers in self._async_subscribers.values())
            return total
        return (
            len(self._subscribers[event_type]) +
            len(self._async_subscribers[event_type])
        )


# =============================================================================
# SINGLETON INSTANCE
# =============================================================================

_event_bus: Optional[EventBus] = None


def get_event_bus() -> EventBus:
    """Get the global event bus instance (singleton)."""
    global _event_bus
    if _event_bus is None:
        _event_bus = EventBus()
        logger.info("Initialized global event bus")
    return _event_bus


def reset_event_bus() -> None:
    """Drop the global bus so the next get_event_bus() starts clean."""
    global _event_bus
    _event_bus = None
