# Agents layer - LangGraph mission orchestration, capabilities and command routing

from agents.orchestrator import (
    MissionOrchestrator,
    MissionProgress,
    CancellationToken,
    MissionError,
    MissionExecutionError,
    MissionPlanningError,
    SynthesisError,
    MissionCancelledError,
    MissionBusyError,
)
from agents.tools import ToolRegistry, ToolResult, create_default_registry
from agents.commands import CommandRouter

__all__ = [
    # Orchestrator
    "MissionOrchestrator",
    "MissionProgress",
    "CancellationToken",
    # Errors
    "MissionError",
    "MissionExecutionError",
    "MissionPlanningError",
    "SynthesisError",
    "MissionCancelledError",
    "MissionBusyError",
    # Capabilities
    "ToolRegistry",
    "ToolResult",
    "create_default_registry",
    # Commands
    "CommandRouter",
]
