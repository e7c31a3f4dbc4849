"""
DEREN ORCHESTRATOR - LangGraph Mission Pipeline

Turns a research mission into a generated mind-map batch.

State Machine:
    PLANNING -> EXECUTION -> SYNTHESIS -> MIND_MAP -> END

Progress (percent):
    10              planning
    25              execution starts
    25 + i/n * 50   before step i of n
    80              synthesis
    95              mind-map creation
    100             done (success only)

Design:
- StateGraph for declarative phase wiring, one node per phase
- TypedDict state; each node returns only the keys it produces
- Capabilities reached by name through an injected ToolRegistry
- Every unit of work is tracked in a TaskLedger
- One mission at a time; a second call while busy is rejected

Failure:
    Any phase error surfaces as MissionExecutionError carrying the phase.
    The in-flight task is marked failed, one final progress event with
    failed=True is emitted, and nothing is merged.
"""
from typing import List, Dict, Any, Optional, Callable, Awaitable, Sequence, TypedDict
import asyncio
import copy
import logging

import msgspec
from langgraph.graph import StateGraph, END

from agents.tools import ToolRegistry, create_default_registry
from core.layout import build_mind_map
from core.ledger import TaskLedger
from core.ontology import MissionPhase, TaskType
from core.schemas import (
    AgentTask,
    GeneratedBatch,
    Session,
    StepResult,
    Synthesis,
    create_task,
)
from core.synthesis import synthesize_results
from infrastructure.config import OrchestratorConfig
from infrastructure.diagnostics import DiagnosticLogger, get_diagnostics
from infrastructure.event_bus import EventBus, EventType, get_event_bus


logger = logging.getLogger(__name__)


# =============================================================================
# ERRORS
# =============================================================================

class MissionError(Exception):
    """Base exception for mission orchestration."""
    pass


class MissionBusyError(MissionError):
    """Raised when a mission is started while another is in flight."""
    def __init__(self, current_mission: Optional[str]):
        self.current_mission = current_mission
        super().__init__(f"A mission is already running: {current_mission!r}")


class MissionExecutionError(MissionError):
    """
    Raised when a mission phase fails.

    Attributes:
        phase: The MissionPhase that failed
        reason: "failed" or "cancelled"
    """
    reason = "failed"

    def __init__(self, phase: MissionPhase, message: str):
        self.phase = phase
        super().__init__(f"[{phase.value}] {message}")


class MissionPlanningError(MissionExecutionError):
    def __init__(self, message: str):
        super().__init__(MissionPhase.PLANNING, message)


class SynthesisError(MissionExecutionError):
    def __init__(self, message: str):
        super().__init__(MissionPhase.SYNTHESIS, message)


class MissionCancelledError(MissionExecutionError):
    reason = "cancelled"

    def __init__(self, phase: MissionPhase, message: str = "Mission cancelled"):
        super().__init__(phase, message)


# =============================================================================
# PUBLIC TYPES
# =============================================================================

class CancellationToken:
    """
    Cooperative cancellation flag.

    The orchestrator checks it at every phase boundary and between
    execution steps.
    """

    def __init__(self):
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    def is_set(self) -> bool:
        return self._cancelled


class MissionProgress(msgspec.Struct, kw_only=True, frozen=True):
    """One progress notification."""
    message: str
    progress: float
    phase: MissionPhase
    failed: bool = False


class OrchestratorStatus(msgspec.Struct, kw_only=True):
    is_active: bool
    current_mission: Optional[str]
    tasks: List[AgentTask]
    session: Session


ProgressCallback = Callable[[MissionProgress], None]
Planner = Callable[[str], Awaitable[Sequence[str]]]
Synthesizer = Callable[[Sequence[StepResult]], Synthesis]


class MissionState(TypedDict):
    mission: str
    steps: List[str]
    step_results: List[StepResult]
    synthesized: Optional[Synthesis]
    batch: Optional[GeneratedBatch]


# =============================================================================
# PLANNING & STEP RESULTS
# =============================================================================

DEFAULT_PLAN = (
    "Search for primary sources",
    "Identify key concepts",
    "Find expert opinions",
    "Analyze contradictions",
    "Synthesize findings",
)


async def default_planner(mission: str) -> List[str]:
    """The fixed five-step research plan."""
    return list(DEFAULT_PLAN)


# Payload shape per known step; the first key is the step's semantic label
STEP_RESULT_TEMPLATES: Dict[str, Dict[str, Any]] = {
    "Search for primary sources": {
        "sources": [
            {"title": "Academic Research Paper", "url": "https://example.com/paper1", "confidence": 0.9},
            {"title": "Industry Report", "url": "https://example.com/report1", "confidence": 0.8},
            {"title": "Expert Interview", "url": "https://example.com/interview1", "confidence": 0.7},
        ],
    },
    "Identify key concepts": {
        "concepts": [
            {"name": "Core Concept A", "relevance": 0.9, "definition": "A fundamental principle in this domain"},
            {"name": "Key Factor B", "relevance": 0.8, "definition": "An important influencing factor"},
            {"name": "Related Theory C", "relevance": 0.7, "definition": "A supporting theoretical framework"},
        ],
    },
    "Find expert opinions": {
        "opinions": [
            {"expert": "Dr. Jane Smith", "opinion": "This approach shows promise but requires careful consideration", "confidence": 0.9},
            {"expert": "Prof. John Doe", "opinion": "The evidence suggests a more nuanced view is needed", "confidence": 0.8},
        ],
    },
    "Analyze contradictions": {
        "contradictions": [
            {"topic": "Implementation Approach", "viewpoint1": "Rapid deployment is essential", "viewpoint2": "Gradual implementation reduces risk"},
            {"topic": "Cost-Benefit Analysis", "viewpoint1": "Short-term costs are justified", "viewpoint2": "Long-term sustainability is more important"},
        ],
    },
    "Synthesize findings": {
        "synthesis": (
            "The research reveals a complex landscape with multiple valid perspectives. "
            "Key considerations include implementation timeline, cost factors, and stakeholder engagement."
        ),
    },
}

FALLBACK_CONFIDENCE = 0.8


def build_step_result(step: str, evidence: Optional[List[Dict[str, Any]]] = None) -> StepResult:
    """Result for one step; unknown steps get the generic {data, confidence} shape."""
    template = STEP_RESULT_TEMPLATES.get(step)
    if template is not None:
        payload = copy.deepcopy(template)
    else:
        payload = {"data": f"Results for {step}", "confidence": FALLBACK_CONFIDENCE}
    return StepResult(
        step=step,
        label=next(iter(payload)),
        payload=payload,
        evidence=list(evidence or []),
    )


# =============================================================================
# GRAPH BUILDER
# =============================================================================

def create_mission_graph(orchestrator: "MissionOrchestrator") -> StateGraph:
    """
    Create the mission StateGraph.

    Graph structure:
        planning -> execution -> synthesis -> mind_map -> END
    """
    graph = StateGraph(MissionState)

    graph.add_node("planning", orchestrator.planning_node)
    graph.add_node("execution", orchestrator.execution_node)
    graph.add_node("synthesis", orchestrator.synthesis_node)
    graph.add_node("mind_map", orchestrator.mind_map_node)

    graph.add_edge("planning", "execution")
    graph.add_edge("execution", "synthesis")
    graph.add_edge("synthesis", "mind_map")
    graph.add_edge("mind_map", END)

    graph.set_entry_point("planning")

    return graph


# =============================================================================
# ORCHESTRATOR
# =============================================================================

class MissionOrchestrator:
    """
    Runs one research mission at a time.

    Usage:
        orchestrator = MissionOrchestrator()
        batch = await orchestrator.execute_mission(
            "research renewable storage",
            on_progress=lambda p: print(p.progress, p.message),
        )
        db.merge_generated(batch)
    """

    def __init__(
        self,
        tools: Optional[ToolRegistry] = None,
        config: Optional[OrchestratorConfig] = None,
        planner: Planner = default_planner,
        synthesizer: Synthesizer = synthesize_results,
        session: Optional[Session] = None,
        ledger: Optional[TaskLedger] = None,
        event_bus: Optional[EventBus] = None,
        diagnostics: Optional[DiagnosticLogger] = None,
    ):
        self.config = config or OrchestratorConfig()
        self.tools = tools or create_default_registry(self.config.tool_latency_scale)
        self.planner = planner
        self.synthesizer = synthesizer
        self.session = session if session is not None else Session()
        self.ledger = ledger if ledger is not None else TaskLedger()

        self._event_bus = event_bus or get_event_bus()
        self._diagnostics = diagnostics or get_diagnostics()

        self._lock = asyncio.Lock()
        self.is_active = False
        self.current_mission: Optional[str] = None

        # Per-run context, only valid while the lock is held
        self._on_progress: Optional[ProgressCallback] = None
        self._cancel: Optional[CancellationToken] = None
        self._phase = MissionPhase.PLANNING
        self._last_progress = 0.0

        self.graph = create_mission_graph(self).compile()

    # =========================================================================
    # ENTRY POINT
    # =========================================================================

    async def execute_mission(
        self,
        mission_text: str,
        on_progress: Optional[ProgressCallback] = None,
        cancel: Optional[CancellationToken] = None,
    ) -> GeneratedBatch:
        """
        Run planning, execution, synthesis and layout for one mission.

        Returns:
            The generated batch, ready for MindMapDB.merge_generated()

        Raises:
            ValueError: If the mission text is blank
            MissionBusyError: If another mission is in flight
            MissionExecutionError: If a phase fails (see subclasses)
            MissionCancelledError: If the token was set
        """
        if not mission_text or not mission_text.strip():
            raise ValueError("Mission text must not be empty")
        if self._lock.locked():
            raise MissionBusyError(self.current_mission)

        async with self._lock:
            self.is_active = True
            self.current_mission = mission_text
            self.session.working_memory.current_mission = mission_text
            self._on_progress = on_progress
            self._cancel = cancel
            self._phase = MissionPhase.PLANNING
            self._last_progress = 0.0

            correlation_id = self._diagnostics.set_session(mission_text)
            logger.info(f"Mission started: {mission_text!r} (correlation={correlation_id})")

            try:
                final_state = await self.graph.ainvoke({
                    "mission": mission_text,
                    "steps": [],
                    "step_results": [],
                    "synthesized": None,
                    "batch": None,
                })
                self._check_cancelled()
                batch = final_state["batch"]

                self._report("Mission completed", 100, MissionPhase.MIND_MAP)
                self._event_bus.emit(
                    EventType.MISSION_COMPLETED,
                    {
                        "mission": mission_text,
                        "node_count": len(batch.nodes),
                        "connection_count": len(batch.connections),
                    },
                    source="orchestrator",
                )
                logger.info(
                    f"Mission completed: {len(batch.nodes)} nodes, "
                    f"{len(batch.connections)} connections"
                )
                return batch

            except MissionExecutionError as e:
                self._fail(e)
                raise
            except asyncio.CancelledError:
                self._fail(MissionCancelledError(self._phase, "Mission task was cancelled"))
                raise
            except Exception as e:
                error = MissionExecutionError(self._phase, str(e))
                self._fail(error)
                raise error from e
            finally:
                self.is_active = False
                self._on_progress = None
                self._cancel = None

    def get_status(self) -> OrchestratorStatus:
        return OrchestratorStatus(
            is_active=self.is_active,
            current_mission=self.current_mission,
            tasks=self.ledger.tasks(),
            session=self.session,
        )

    # =========================================================================
    # PHASE NODES
    # =========================================================================

    async def planning_node(self, state: MissionState) -> Dict[str, Any]:
        mission = state["mission"]
        self._enter_phase(MissionPhase.PLANNING)

        with self._diagnostics.phase(MissionPhase.PLANNING.value):
            await self._progress("Planning research strategy...", 10)
            task = self._start_task(TaskType.ANALYZE, f"Generate research plan for: {mission}")

            await self._sleep(self.config.planning_delay)
            try:
                steps = [str(s) for s in await self.planner(mission)]
            except MissionError:
                raise
            except Exception as e:
                raise MissionPlanningError(f"Planner failed: {e}") from e
            if not steps:
                raise MissionPlanningError("Planner returned an empty plan")

            self.ledger.complete_task(task.id, {"steps": steps})

        logger.debug(f"Plan: {steps}")
        return {"steps": steps}

    async def execution_node(self, state: MissionState) -> Dict[str, Any]:
        mission = state["mission"]
        steps = state["steps"]
        self._enter_phase(MissionPhase.EXECUTION)

        results: List[StepResult] = []
        with self._diagnostics.phase(MissionPhase.EXECUTION.value):
            await self._progress("Executing research plan...", 25)

            for i, step in enumerate(steps):
                self._check_cancelled()
                await self._progress(f"Executing: {step}", 25 + (i / len(steps)) * 50)

                task = self._start_task(TaskType.SEARCH, step)
                await self._sleep(self.config.step_delay)

                evidence = await self._search(f"{mission}: {step}")
                result = build_step_result(step, evidence)
                self.ledger.complete_task(task.id, msgspec.to_builtins(result))
                results.append(result)

        return {"step_results": results}

    async def synthesis_node(self, state: MissionState) -> Dict[str, Any]:
        self._enter_phase(MissionPhase.SYNTHESIS)

        with self._diagnostics.phase(MissionPhase.SYNTHESIS.value):
            await self._progress("Synthesizing findings...", 80)
            task = self._start_task(TaskType.ANALYZE, "Synthesizing all research findings")

            await self._sleep(self.config.synthesis_delay)
            try:
                synthesized = self.synthesizer(state["step_results"])
            except Exception as e:
                raise SynthesisError(f"Synthesizer failed: {e}") from e

            self.ledger.complete_task(task.id, msgspec.to_builtins(synthesized))

        return {"synthesized": synthesized}

    async def mind_map_node(self, state: MissionState) -> Dict[str, Any]:
        self._enter_phase(MissionPhase.MIND_MAP)

        with self._diagnostics.phase(MissionPhase.MIND_MAP.value):
            await self._progress("Creating mind map...", 95)
            try:
                batch = build_mind_map(state["mission"], state["synthesized"])
            except Exception as e:
                raise MissionExecutionError(MissionPhase.MIND_MAP, f"Layout failed: {e}") from e

        return {"batch": batch}

    # =========================================================================
    # HELPERS
    # =========================================================================

    def _enter_phase(self, phase: MissionPhase) -> None:
        self._check_cancelled()
        self._phase = phase
        self._event_bus.emit(
            EventType.PHASE_CHANGED,
            {"mission": self.current_mission, "phase": phase.value},
            source="orchestrator",
        )

    def _check_cancelled(self) -> None:
        if self._cancel is not None and self._cancel.is_set():
            raise MissionCancelledError(self._phase)

    def _start_task(self, task_type: TaskType, description: str) -> AgentTask:
        task = self.ledger.add_task(create_task(task_type, description))
        self.session.remember_task(task)
        return task

    async def _search(self, query: str) -> List[Dict[str, Any]]:
        """Evidence from search_web; any failure means no evidence."""
        with self._diagnostics.tool_call("search_web") as call:
            result = await self.tools.execute("search_web", query)
            call.set_success(result.success, result.error)

        if not result.success:
            logger.info(f"search_web unavailable, continuing without evidence: {result.error}")
            return []
        if isinstance(result.data, list):
            return [item for item in result.data if isinstance(item, dict)]
        return []

    def _report(self, message: str, progress: float, phase: MissionPhase, failed: bool = False) -> None:
        self._last_progress = max(self._last_progress, progress)
        if self._on_progress is None:
            return
        event = MissionProgress(
            message=message,
            progress=self._last_progress,
            phase=phase,
            failed=failed,
        )
        try:
            self._on_progress(event)
        except Exception as e:
            logger.error(f"Error in progress callback: {e}", exc_info=True)

    async def _progress(self, message: str, progress: float) -> None:
        self._report(message, progress, self._phase)
        await self._sleep(self.config.progress_delay)

    async def _sleep(self, seconds: float) -> None:
        if seconds > 0:
            await asyncio.sleep(seconds)

    def _fail(self, error: MissionExecutionError) -> None:
        """Fail in-flight tasks, emit the final failed event, publish the error."""
        for task in self.ledger.in_flight():
            self.ledger.fail_task(task.id, str(error))

        self._report(f"Mission failed: {error}", self._last_progress, error.phase, failed=True)
        self._event_bus.emit(
            EventType.MISSION_FAILED,
            {
                "mission": self.current_mission,
                "phase": error.phase.value,
                "reason": error.reason,
                "error": str(error),
            },
            source="orchestrator",
        )
        logger.warning(f"Mission failed in {error.phase.value}: {error}")
