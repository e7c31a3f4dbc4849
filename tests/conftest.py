"""
Pytest configuration and shared fixtures for the DEREN test suite.
"""
import sys
import random
from pathlib import Path

import pytest

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))


@pytest.fixture(autouse=True)
def reset_global_state():
    """Reset global singletons before each test to ensure isolation."""
    from infrastructure.event_bus import reset_event_bus
    from infrastructure.diagnostics import reset_diagnostics
    from infrastructure.logger import LoggerConfig, configure_logger

    reset_event_bus()
    reset_diagnostics()
    configure_logger(LoggerConfig())

    yield

    reset_event_bus()
    reset_diagnostics()


@pytest.fixture
def fresh_db():
    """Provide a fresh MindMapDB instance."""
    from core.graph_db import MindMapDB
    return MindMapDB()


@pytest.fixture
def db_with_sample_nodes(fresh_db):
    """A store with three user nodes and one interactive connection."""
    from core.schemas import create_node, Position
    from core.ontology import NodeType

    topic = create_node("topic", "Ocean Acidification", NodeType.CONCEPT, Position(x=0, y=0))
    cause = create_node("cause", "CO2 Uptake", NodeType.CONCEPT, Position(x=200, y=0))
    effect = create_node("effect", "Coral Bleaching", NodeType.FINDING, Position(x=0, y=200))

    for node in (topic, cause, effect):
        fresh_db.add_node(node)
    fresh_db.connect("topic", "cause")

    return fresh_db, {"topic": topic, "cause": cause, "effect": effect}


@pytest.fixture
def instant_config():
    """Orchestrator config with every simulated delay disabled."""
    from infrastructure.config import OrchestratorConfig
    return OrchestratorConfig(
        progress_delay=0,
        planning_delay=0,
        step_delay=0,
        synthesis_delay=0,
        tool_latency_scale=0,
    )


@pytest.fixture
def instant_registry():
    from agents.tools import create_default_registry
    return create_default_registry(latency_scale=0)


@pytest.fixture
def orchestrator(instant_config, instant_registry):
    """Zero-latency orchestrator with simulated capabilities."""
    from agents.orchestrator import MissionOrchestrator
    from infrastructure.diagnostics import DiagnosticLogger
    return MissionOrchestrator(
        tools=instant_registry,
        config=instant_config,
        diagnostics=DiagnosticLogger(),
    )


@pytest.fixture
def router(fresh_db, orchestrator):
    from agents.commands import CommandRouter
    return CommandRouter(fresh_db, orchestrator, rng=random.Random(7))


@pytest.fixture
def progress_log():
    """A progress callback that records every event it receives."""
    events = []

    def record(event):
        events.append(event)

    record.events = events
    return record
