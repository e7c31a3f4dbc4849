"""
DEREN DIAGNOSTICS - Mission Phase & Capability Timing

Fast diagnosis of slow or failing missions:
- Mission phase timing (planning, execution, synthesis, mind_map)
- Capability call metrics (timing, success)

Correlation IDs link diagnostic entries to each mission run.

Usage:
    from infrastructure.diagnostics import get_diagnostics

    dx = get_diagnostics()
    dx.set_session("research quantum computing")

    with dx.phase("planning"):
        plan = await planner(mission)

    with dx.tool_call("search_web") as call:
        result = await registry.execute("search_web", query)
        call.set_success(result.success)

    dx.print_summary()
"""
import time
import logging
import uuid
from typing import Optional, Dict, Any, List
from dataclasses import dataclass
from datetime import datetime, timezone
from contextlib import contextmanager
from pathlib import Path
import json

logger = logging.getLogger(__name__)


def generate_correlation_id() -> str:
    """Generate a unique correlation ID for linking logs."""
    return f"dx_{datetime.now(timezone.utc).strftime('%Y%m%d_%H%M%S')}_{uuid.uuid4().hex[:8]}"


# =============================================================================
# METRICS
# =============================================================================

@dataclass
class ToolCallMetric:
    """Metrics for a single capability call."""
    tool_name: str
    start_time: float
    end_time: Optional[float] = None
    success: bool = False
    error: Optional[str] = None

    @property
    def duration_ms(self) -> float:
        if self.end_time is None:
            return 0
        return (self.end_time - self.start_time) * 1000

    def to_dict(self) -> Dict[str, Any]:
        return {
            "tool": self.tool_name,
            "duration_ms": round(self.duration_ms, 1),
            "success": self.success,
            "error": self.error,
        }


@dataclass
class ToolCallContext:
    """Context manager for tracking a capability call."""
    metric: ToolCallMetric
    diagnostics: "DiagnosticLogger"

    def set_success(self, success: bool, error: Optional[str] = None) -> None:
        self.metric.success = success
        self.metric.error = error

    def __enter__(self) -> "ToolCallContext":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.metric.end_time = time.time()
        if exc_type is not None:
            self.metric.error = str(exc_val)
            self.metric.success = False
        self.diagnostics._record_tool_call(self.metric)


@dataclass
class PhaseMetric:
    """Metrics for a mission phase."""
    phase_name: str
    start_time: float
    end_time: Optional[float] = None
    success: bool = True
    error: Optional[str] = None

    @property
    def duration_ms(self) -> float:
        if self.end_time is None:
            return 0
        return (self.end_time - self.start_time) * 1000


# =============================================================================
# DIAGNOSTIC LOGGER
# =============================================================================

class DiagnosticLogger:
    """
    Mission performance diagnostics.

    Tracks:
    - Mission phase timing
    - Capability call metrics

    If `log_path` is given, every phase and call is also appended there
    as one JSON object per line.
    """

    def __init__(self, log_path: Optional[Path] = None):
        self.log_path = log_path
        if self.log_path is not None:
            self.log_path.parent.mkdir(parents=True, exist_ok=True)

        self._tool_calls: List[ToolCallMetric] = []
        self._phase_metrics: List[PhaseMetric] = []
        self._current_phase: Optional[PhaseMetric] = None
        self._session_start = time.time()
        self._session_id: Optional[str] = None
        self._correlation_id: Optional[str] = None

    @property
    def correlation_id(self) -> Optional[str]:
        return self._correlation_id

    @property
    def phases(self) -> List[PhaseMetric]:
        return list(self._phase_metrics)

    @property
    def tool_calls(self) -> List[ToolCallMetric]:
        return list(self._tool_calls)

    def set_session(self, session_id: str) -> str:
        """
        Start a new diagnostic session (one per mission).

        Returns:
            The generated correlation_id
        """
        self._session_id = session_id
        self._correlation_id = generate_correlation_id()
        self._session_start = time.time()
        self._tool_calls = []
        self._phase_metrics = []
        self._current_phase = None

        self._write_log("session_start", {})
        logger.info(f"[DIAG] Session started: {session_id} (correlation={self._correlation_id})")
        return self._correlation_id

    # =========================================================================
    # CAPABILITY CALLS
    # =========================================================================

    def tool_call(self, tool_name: str) -> ToolCallContext:
        """Context manager timing one capability call."""
        metric = ToolCallMetric(tool_name=tool_name, start_time=time.time())
        return ToolCallContext(metric=metric, diagnostics=self)

    def _record_tool_call(self, metric: ToolCallMetric) -> None:
        self._tool_calls.append(metric)
        if not metric.success:
            logger.debug(f"[TOOL] {metric.tool_name} failed after {metric.duration_ms:.0f}ms: {metric.error}")
        self._write_log("tool_call", metric.to_dict())

    # =========================================================================
    # PHASE TRACKING
    # =========================================================================

    def start_phase(self, phase_name: str) -> None:
        if self._current_phase is not None:
            self.end_phase()

        self._current_phase = PhaseMetric(
            phase_name=phase_name,
            start_time=time.time(),
        )
        logger.info(f"[PHASE] Starting: {phase_name}")

    def end_phase(self, success: bool = True, error: Optional[str] = None) -> None:
        if self._current_phase is None:
            return

        self._current_phase.end_time = time.time()
        self._current_phase.success = success
        self._current_phase.error = error

        status = "OK" if success else "FAIL"
        msg = f"[PHASE] {self._current_phase.phase_name}: {self._current_phase.duration_ms:.0f}ms [{status}]"

        if success:
            logger.info(msg)
        else:
            logger.warning(f"{msg} - {error}")

        self._phase_metrics.append(self._current_phase)
        self._write_log("phase", {
            "phase": self._current_phase.phase_name,
            "duration_ms": round(self._current_phase.duration_ms, 1),
            "success": success,
            "error": error,
        })
        self._current_phase = None

    @contextmanager
    def phase(self, phase_name: str):
        """Context manager for phase tracking. Cancellation counts as failure."""
        self.start_phase(phase_name)
        try:
            yield
        except BaseException as e:
            self.end_phase(success=False, error=str(e) or type(e).__name__)
            raise
        self.end_phase(success=True)

    # =========================================================================
    # SUMMARY & LOGGING
    # =========================================================================

    def summary(self) -> Dict[str, Any]:
        return {
            "session_id": self._session_id,
            "correlation_id": self._correlation_id,
            "duration_ms": round((time.time() - self._session_start) * 1000, 1),
            "phases": [
                {
                    "phase": p.phase_name,
                    "duration_ms": round(p.duration_ms, 1),
                    "success": p.success,
                    "error": p.error,
                }
                for p in self._phase_metrics
            ],
            "tool_calls": len(self._tool_calls),
            "tool_failures": sum(1 for c in self._tool_calls if not c.success),
        }

    def print_summary(self) -> None:
        data = self.summary()

        print("\n" + "=" * 60)
        print("DEREN DIAGNOSTICS - Mission Summary")
        print("=" * 60)
        if data["session_id"]:
            print(f"Mission: {data['session_id']}")
        print(f"Duration: {data['duration_ms']:.0f}ms")
        print(f"Capability calls: {data['tool_calls']} ({data['tool_failures']} failed)")

        if data["phases"]:
            print(f"\nPhases: {len(data['phases'])}")
            for phase in data["phases"]:
                status = "OK" if phase["success"] else "FAIL"
                print(f"  {phase['phase']}: {phase['duration_ms']:.0f}ms [{status}]")

        print("=" * 60 + "\n")

    def _write_log(self, event_type: str, data: Dict[str, Any]) -> None:
        if self.log_path is None:
            return
        entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "session_id": self._session_id,
            "correlation_id": self._correlation_id,
            "type": event_type,
            **data,
        }
        try:
            with open(self.log_path, "a") as f:
                f.write(json.dumps(entry) + "\n")
        except OSError as e:
            logger.warning(f"Failed to write diagnostic log: {e}")

    def reset(self) -> None:
        self._tool_calls = []
        self._phase_metrics = []
        self._current_phase = None
        self._session_start = time.time()


# =============================================================================
# GLOBAL INSTANCE
# =============================================================================

_diagnostics: Optional[DiagnosticLogger] = None


def get_diagnostics() -> DiagnosticLogger:
    """Get or create the global diagnostics instance."""
    global _diagnostics
    if _diagnostics is None:
        _diagnostics = DiagnosticLogger()
    return _diagnostics


def reset_diagnostics() -> None:
    global _diagnostics
    if _diagnostics is not None:
        _diagnostics.reset()
    _diagnostics = None
