"""
DEREN RESULT SYNTHESIZER

Pure reduction of ordered step results into a Synthesis.

Guarantees:
- len(key_findings) == len(results), in input order
- recommendations has a fixed length (RECOMMENDATIONS)
- no dependency on wall-clock time or randomness

The templated text here can be swapped for a real aggregation step without
touching the layout engine or the merge protocol, as long as these
guarantees hold.
"""
from typing import Sequence

from core.schemas import StepResult, Synthesis


SYNTHESIS_SUMMARY = "Comprehensive analysis completed with multiple perspectives identified"
SYNTHESIS_CONFIDENCE = 0.85

RECOMMENDATIONS = (
    "Further investigation recommended for contradictory viewpoints",
    "Stakeholder consultation advised before implementation",
    "Pilot program could validate key assumptions",
)


def key_finding(index: int, result: StepResult) -> str:
    """Finding text for the result at `index` (0-based)."""
    return f"Finding {index + 1}: {result.label}"


def synthesize_results(results: Sequence[StepResult]) -> Synthesis:
    """
    Summarize the ordered step results of one mission.

    Args:
        results: Step results in execution order

    Returns:
        Synthesis with one key finding per result
    """
    return Synthesis(
        summary=SYNTHESIS_SUMMARY,
        key_findings=[key_finding(i, r) for i, r in enumerate(results)],
        confidence=SYNTHESIS_CONFIDENCE,
        recommendations=list(RECOMMENDATIONS),
    )
