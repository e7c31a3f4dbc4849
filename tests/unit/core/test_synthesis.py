"""
Unit tests for core/synthesis.py - step results to Synthesis.
"""
from core.schemas import StepResult
from core.synthesis import (
    synthesize_results,
    SYNTHESIS_CONFIDENCE,
    SYNTHESIS_SUMMARY,
    RECOMMENDATIONS,
)


def make_result(step: str, label: str) -> StepResult:
    return StepResult(step=step, label=label, payload={label: []})


def test_one_finding_per_result_in_order():
    """
    Validate key findings.

    Verifies:
    - One finding per step result, in input order
    - Text is "Finding {i+1}: {label}"
    """
    results = [
        make_result("Search for primary sources", "sources"),
        make_result("Identify key concepts", "concepts"),
        make_result("Unknown step", "data"),
    ]

    synthesis = synthesize_results(results)

    assert synthesis.key_findings == [
        "Finding 1: sources",
        "Finding 2: concepts",
        "Finding 3: data",
    ]


def test_fixed_fields():
    synthesis = synthesize_results([make_result("s", "sources")])

    assert synthesis.summary == SYNTHESIS_SUMMARY
    assert synthesis.confidence == SYNTHESIS_CONFIDENCE == 0.85
    assert synthesis.recommendations == list(RECOMMENDATIONS)
    assert len(synthesis.recommendations) == 3


def test_pure_and_repeatable():
    results = [make_result("a", "sources"), make_result("b", "opinions")]

    assert synthesize_results(results) == synthesize_results(results)


def test_empty_results():
    synthesis = synthesize_results([])

    assert synthesis.key_findings == []
    assert len(synthesis.recommendations) == 3
