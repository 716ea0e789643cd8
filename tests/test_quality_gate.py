# tests/test_quality_gate.py
import pytest
from conftest import ScriptedProvider

from agents.quality_gate_agent import (
    QualityGateAgent,
    assemble_assessment,
    coverage_gate,
    formatting_gate,
    length_gate,
    structure_gate,
)

PERFECT_SCORES = (
    "COHERENCE: 10\nRELEVANCE: 10\nCLARITY: 10\nENGAGEMENT: 10\nCOMPLETENESS: 10\n"
    "ISSUES: none"
)


def _unit(words: int) -> str:
    return "## Heading\n\n" + " ".join(["word"] * (words - 2))


@pytest.mark.asyncio
async def test_short_unit_blocks_even_with_perfect_scores(make_llm):
    provider = ScriptedProvider([("Score each dimension", PERFECT_SCORES)])
    gate = QualityGateAgent(make_llm(provider), model_name="m")

    assessment = await gate.assess("Focus", _unit(500), "context")

    assert assessment.blocking_issues
    assert "500 words" in assessment.blocking_issues[0]
    assert assessment.overall_passed is False
    assert all(g.score == 10 for g in assessment.gates if g.name == "clarity")


@pytest.mark.asyncio
async def test_good_unit_passes_and_checks_coverage(make_llm):
    provider = ScriptedProvider(
        [
            ("Score each dimension", PERFECT_SCORES),
            ("Check if this unit addresses", "Q1: YES\nQ2: NO"),
        ]
    )
    gate = QualityGateAgent(make_llm(provider), model_name="m")

    assessment = await gate.assess(
        "Focus", _unit(900), "context", forwarded_questions=["Why?", "How?"]
    )

    names = [g.name for g in assessment.gates]
    assert names[:3] == ["length", "structure", "formatting"]
    assert names[-1] == "question_coverage"
    assert assessment.overall_passed is True
    assert "Address reader question: How?" in assessment.revision_suggestions
    assert assessment.max_possible_score == 90


@pytest.mark.asyncio
async def test_low_scores_and_issues_become_suggestions(make_llm):
    provider = ScriptedProvider(
        [
            (
                "Score each dimension",
                "COHERENCE: 3\nRELEVANCE: 7\nCLARITY: 7\nENGAGEMENT: 7\n"
                "COMPLETENESS: 7\nISSUES: Repeats the intro twice",
            )
        ]
    )
    gate = QualityGateAgent(make_llm(provider), model_name="m")
    gates, suggestions = await gate.score_dimensions("Focus", _unit(900), "ctx")

    coherence = next(g for g in gates if g.name == "coherence")
    assert coherence.passed is False
    assert "Improve coherence (scored 3/10)" in suggestions
    assert "Reviewer issues: Repeats the intro twice" in suggestions


@pytest.mark.asyncio
async def test_unparseable_scores_default_to_five(make_llm):
    provider = ScriptedProvider(default="I liked it.")
    gate = QualityGateAgent(make_llm(provider), model_name="m")
    gates, _ = await gate.score_dimensions("Focus", _unit(900), "ctx")
    assert {g.score for g in gates} == {5}


def test_deterministic_gates():
    assert length_gate(_unit(700)).score == 10
    assert length_gate(_unit(450)).score == 5
    assert length_gate(_unit(100)).score == 0
    assert length_gate(_unit(2500)).passed is False

    assert structure_gate("no headings at all").passed is False
    bullets = "\n".join(f"- item {i}" for i in range(6))
    assert formatting_gate(bullets).score == 5
    assert formatting_gate("prose only").score == 10


def test_long_unit_gets_trim_suggestion(make_llm):
    gate = QualityGateAgent(make_llm(ScriptedProvider()), model_name="m")
    _, blocking, suggestions = gate.deterministic_checks(_unit(2100))
    assert blocking == []
    assert any("Consider trimming" in s for s in suggestions)


def test_coverage_gate_threshold():
    result, missing = coverage_gate(["a", "b", "c"], [True, False, False])
    assert result.passed is False
    assert missing == ["b", "c"]
    result, _ = coverage_gate(["a", "b"], [True, False])
    assert result.passed is True
    assert result.score == 5


def test_assessment_ratio():
    gates = [length_gate(_unit(700)), structure_gate("plain")]
    assessment = assemble_assessment(gates, [], [], pass_ratio=0.6)
    assert assessment.total_score == 10
    assert assessment.max_possible_score == 20
    assert assessment.overall_passed is False
