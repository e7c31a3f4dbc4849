"""
DEREN COMMAND ROUTER - Terminal Commands to Graph Mutations

Routes one line of user input:

    "create canvas ..." / "new page ..."   -> add a canvas page, no mission
    anything else                           -> run a mission, merge the batch

Matching is a case-insensitive substring test. A canvas command never
touches the orchestrator and emits no progress events.
"""
import logging
import random
from typing import List, Optional

import msgspec

from agents.orchestrator import MissionOrchestrator, ProgressCallback
from core.graph_db import MindMapDB, MergeReport
from core.schemas import AgentTask, MindMapNode, Position, create_canvas_page


logger = logging.getLogger(__name__)


CANVAS_TRIGGERS = ("create canvas", "new page")
CANVAS_PAGE_LABEL = "New Canvas Page"

# Canvas pages land at x in [200, 600), y in [200, 500)
CANVAS_ORIGIN = (200.0, 200.0)
CANVAS_SPREAD = (400.0, 300.0)


def is_canvas_command(command: str) -> bool:
    lowered = command.lower()
    return any(trigger in lowered for trigger in CANVAS_TRIGGERS)


class CommandOutcome(msgspec.Struct, kw_only=True):
    """What a handled command did."""
    command: str
    kind: str                               # "canvas" or "mission"
    canvas_page: Optional[MindMapNode] = None
    merge: Optional[MergeReport] = None


class CommandRouter:
    """
    Sits between the terminal and the store.

    Usage:
        router = CommandRouter(db, MissionOrchestrator())
        outcome = await router.handle("research ocean acidification", print)
    """

    def __init__(
        self,
        db: MindMapDB,
        orchestrator: MissionOrchestrator,
        rng: Optional[random.Random] = None,
    ):
        self.db = db
        self.orchestrator = orchestrator
        self._rng = rng or random.Random()

    def random_canvas_position(self) -> Position:
        return Position(
            x=self._rng.random() * CANVAS_SPREAD[0] + CANVAS_ORIGIN[0],
            y=self._rng.random() * CANVAS_SPREAD[1] + CANVAS_ORIGIN[1],
        )

    def add_canvas_page(self, position: Optional[Position] = None) -> MindMapNode:
        page = create_canvas_page(position or self.random_canvas_position(), CANVAS_PAGE_LABEL)
        self.db.add_node(page)
        logger.info(f"Created canvas page {page.id}")
        return page

    async def handle(
        self,
        command: str,
        on_progress: Optional[ProgressCallback] = None,
    ) -> CommandOutcome:
        """
        Handle one command.

        Raises:
            ValueError: If the command is blank
            MissionBusyError, MissionExecutionError: From the orchestrator;
                nothing is merged in that case
        """
        command = command.strip() if command else ""
        if not command:
            raise ValueError("Command must not be empty")

        if is_canvas_command(command):
            return CommandOutcome(
                command=command,
                kind="canvas",
                canvas_page=self.add_canvas_page(),
            )

        batch = await self.orchestrator.execute_mission(command, on_progress=on_progress)
        report = self.db.merge_generated(batch)
        return CommandOutcome(command=command, kind="mission", merge=report)

    def history(self) -> List[AgentTask]:
        """Tasks recorded by the orchestrator, oldest first."""
        return self.orchestrator.ledger.tasks()
