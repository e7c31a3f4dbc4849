"""
DEREN TASK LEDGER - Lifecycle Tracking for Orchestrator Work

Records every task the orchestrator starts and where it ended up:

    PENDING -> EXECUTING -> COMPLETED | FAILED

A task that raised is moved to FAILED by the orchestrator, so no entry stays
EXECUTING after its mission has returned.
"""
import logging
from typing import Any, Dict, List, Optional

from core.ontology import TaskStatus, TERMINAL_TASK_STATUSES
from core.schemas import AgentTask


logger = logging.getLogger(__name__)


class TaskNotFoundError(KeyError):
    """Raised when a task id is not in the ledger."""
    def __init__(self, task_id: str):
        self.task_id = task_id
        super().__init__(f"Task not found: {task_id}")


class TaskLedger:
    """
    Append-only record of tasks, in insertion order.

    Owned by exactly one orchestrator instance.
    """

    def __init__(self):
        self._tasks: List[AgentTask] = []
        self._index: Dict[str, AgentTask] = {}

    def add_task(self, task: AgentTask) -> AgentTask:
        """Append a task and mark it executing."""
        task.status = TaskStatus.EXECUTING
        self._tasks.append(task)
        self._index[task.id] = task
        logger.debug(f"Task {task.id} executing: {task.description}")
        return task

    def complete_task(self, task_id: str, result: Any = None) -> AgentTask:
        """Mark a task completed and attach its result."""
        task = self.get_task(task_id)
        task.status = TaskStatus.COMPLETED
        task.result = result
        logger.debug(f"Task {task_id} completed")
        return task

    def fail_task(self, task_id: str, error: str) -> AgentTask:
        """Mark a task failed and record the error message."""
        task = self.get_task(task_id)
        task.status = TaskStatus.FAILED
        task.error = error
        logger.warning(f"Task {task_id} failed: {error}")
        return task

    def get_task(self, task_id: str) -> AgentTask:
        try:
            return self._index[task_id]
        except KeyError:
            raise TaskNotFoundError(task_id) from None

    def tasks(self) -> List[AgentTask]:
        """All tasks in insertion order (a copy of the list)."""
        return list(self._tasks)

    def in_flight(self) -> List[AgentTask]:
        """Tasks not yet completed or failed."""
        return [t for t in self._tasks if t.status not in TERMINAL_TASK_STATUSES]

    def last(self) -> Optional[AgentTask]:
        return self._tasks[-1] if self._tasks else None

    def __len__(self) -> int:
        return len(self._tasks)
