"""
DEREN AGENT TOOLS - Named Async Capabilities

The orchestrator reaches the outside world only through named capabilities
held in a ToolRegistry.

Contract:
- Each capability is an async callable taking one input
- Each returns a ToolResult; failure is a value, never an exception
- The registry converts a raising provider into a failed result, and an
  unknown name into a failed result

Capability Names:
    search_web, fetch_url, summarize, extract_data,
    store_node, ask_followup, embed, read_file

create_default_registry() wires simulated providers with fixed outputs.
Real search, LLM and embedding backends register under the same names.
"""
import asyncio
import logging
import random
import uuid
from typing import Any, Awaitable, Callable, Dict, List, Optional

import msgspec


logger = logging.getLogger(__name__)


# =============================================================================
# RESULT TYPES
# =============================================================================

class ToolResult(msgspec.Struct, kw_only=True):
    """Result of one capability call."""
    success: bool
    data: Any = None
    error: Optional[str] = None

    @classmethod
    def ok(cls, data: Any) -> "ToolResult":
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, error: str) -> "ToolResult":
        return cls(success=False, error=error)


Capability = Callable[[Any], Awaitable[ToolResult]]

TOOL_NAMES = (
    "search_web",
    "fetch_url",
    "summarize",
    "extract_data",
    "store_node",
    "ask_followup",
    "embed",
    "read_file",
)

EMBEDDING_DIMENSIONS = 384


# =============================================================================
# REGISTRY
# =============================================================================

class ToolRegistry:
    """
    Name -> capability lookup, injected into the orchestrator.

    Usage:
        registry = ToolRegistry()
        registry.register("search_web", my_search)
        result = await registry.execute("search_web", "quantum computing")
    """

    def __init__(self):
        self._tools: Dict[str, Capability] = {}

    def register(self, name: str, capability: Capability) -> None:
        """Register (or replace) the capability for `name`."""
        if name in self._tools:
            logger.debug(f"Replacing capability {name}")
        self._tools[name] = capability

    def unregister(self, name: str) -> None:
        self._tools.pop(name, None)

    def get(self, name: str) -> Optional[Capability]:
        """Get a capability by name."""
        return self._tools.get(name)

    def names(self) -> List[str]:
        """List all registered capability names."""
        return list(self._tools.keys())

    def __contains__(self, name: str) -> bool:
        return name in self._tools

    async def execute(self, name: str, tool_input: Any) -> ToolResult:
        """
        Run a capability by name.

        Never raises for provider errors; asyncio cancellation still propagates.
        """
        capability = self._tools.get(name)
        if capability is None:
            return ToolResult.fail(f"Unknown capability: {name}")

        try:
            result = await capability(tool_input)
        except Exception as e:
            logger.warning(f"Capability {name} raised: {e}")
            return ToolResult.fail(f"{type(e).__name__}: {e}")

        if not isinstance(result, ToolResult):
            return ToolResult.fail(
                f"Capability {name} returned {type(result).__name__}, expected ToolResult"
            )
        return result


# =============================================================================
# SIMULATED PROVIDERS
# =============================================================================

# Seconds per call before scaling
SIMULATED_LATENCY = {
    "search_web": 0.8,
    "fetch_url": 0.6,
    "summarize": 0.5,
    "extract_data": 0.4,
    "store_node": 0.3,
    "ask_followup": 1.0,
    "embed": 0.2,
    "read_file": 0.3,
}


class SimulatedTools:
    """
    Canned capability outputs for demos and tests.

    Args:
        latency_scale: Multiplier on SIMULATED_LATENCY; 0 disables sleeping
    """

    def __init__(self, latency_scale: float = 1.0):
        self.latency_scale = latency_scale

    async def _wait(self, name: str) -> None:
        delay = SIMULATED_LATENCY[name] * self.latency_scale
        if delay > 0:
            await asyncio.sleep(delay)

    async def search_web(self, query: str) -> ToolResult:
        await self._wait("search_web")
        return ToolResult.ok([{
            "title": f"Search result for {query}",
            "url": "https://example.com",
            "snippet": "Relevant information found...",
        }])

    async def fetch_url(self, url: str) -> ToolResult:
        await self._wait("fetch_url")
        return ToolResult.ok({
            "content": f"Content from {url}",
            "metadata": {"title": "Example Page"},
        })

    async def summarize(self, text: str) -> ToolResult:
        await self._wait("summarize")
        return ToolResult.ok({
            "summary": f"Summary of: {text[:50]}...",
            "key_points": ["Point 1", "Point 2"],
        })

    async def extract_data(self, text: str) -> ToolResult:
        await self._wait("extract_data")
        return ToolResult.ok({
            "entities": ["Entity 1", "Entity 2"],
            "facts": ["Fact 1", "Fact 2"],
        })

    async def store_node(self, node_data: Any) -> ToolResult:
        await self._wait("store_node")
        return ToolResult.ok({"node_id": str(uuid.uuid4()), "stored": True})

    async def ask_followup(self, question: str) -> ToolResult:
        await self._wait("ask_followup")
        return ToolResult.ok({"answer": f"Analysis of: {question}", "confidence": 0.8})

    async def embed(self, text: str) -> ToolResult:
        await self._wait("embed")
        return ToolResult.ok({
            "vector": [random.random() for _ in range(EMBEDDING_DIMENSIONS)],
            "stored": True,
        })

    async def read_file(self, filepath: str) -> ToolResult:
        await self._wait("read_file")
        return ToolResult.ok({"content": f"File content from {filepath}", "type": "text"})


def create_default_registry(latency_scale: float = 1.0) -> ToolRegistry:
    """Registry with every capability name bound to its simulated provider."""
    tools = SimulatedTools(latency_scale)
    registry = ToolRegistry()
    for name in TOOL_NAMES:
        registry.register(name, getattr(tools, name))
    return registry
