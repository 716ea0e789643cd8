# agents/quality_gate_agent.py
"""Final quality assessment of a polished unit."""

from __future__ import annotations

from collections.abc import Sequence

import structlog

from config import settings
from models import GateResult, QualityAssessment
from parsing import parse_coverage_answers, parse_dimension_scores, parse_labeled_sections
from processing.text_cleanup import count_bullets, word_count
from prompt_renderer import excerpt, render_prompt
from resilience import ResilientLLM

logger = structlog.get_logger(__name__)

AI_DIMENSIONS = ["COHERENCE", "RELEVANCE", "CLARITY", "ENGAGEMENT", "COMPLETENESS"]
GATE_MAX_SCORE = 10
UNIT_EXCERPT_CHARS = 4000
BOOK_CONTEXT_EXCERPT_CHARS = 1000


def length_gate(
    text: str,
    min_words: int = settings.GATE_MIN_WORDS,
    max_words: int = settings.GATE_MAX_WORDS,
    partial_words: int = settings.GATE_PARTIAL_WORDS,
) -> GateResult:
    words = word_count(text)
    if min_words <= words <= max_words:
        score = 10
    elif words >= partial_words:
        score = 5
    else:
        score = 0
    return GateResult(
        name="length",
        passed=min_words <= words <= max_words,
        score=score,
        max_score=GATE_MAX_SCORE,
        feedback=f"{words} words (target {min_words}-{max_words})",
    )


def structure_gate(text: str) -> GateResult:
    has_headings = "##" in text or "# " in text
    return GateResult(
        name="structure",
        passed=has_headings,
        score=10 if has_headings else 0,
        max_score=GATE_MAX_SCORE,
        feedback="Has section headings" if has_headings else "Missing section headings",
    )


def formatting_gate(text: str, max_bullets: int = settings.GATE_MAX_BULLETS) -> GateResult:
    bullets = count_bullets(text)
    within = bullets <= max_bullets
    return GateResult(
        name="formatting",
        passed=within,
        score=10 if within else 5,
        max_score=GATE_MAX_SCORE,
        feedback=f"{bullets} bullet points" + ("" if within else " (prefer prose)"),
    )


def coverage_gate(
    questions: Sequence[str], answers: Sequence[bool]
) -> tuple[GateResult, list[str]]:
    """Gate plus the questions left unaddressed."""
    addressed = sum(1 for answer in answers if answer)
    total = len(questions)
    missing = [q for q, answer in zip(questions, answers) if not answer]
    result = GateResult(
        name="question_coverage",
        passed=addressed >= total * 0.5,
        score=round(addressed / total * 10) if total else 0,
        max_score=GATE_MAX_SCORE,
        feedback=f"{addressed}/{total} reader questions addressed",
    )
    return result, missing


def assemble_assessment(
    gates: list[GateResult],
    blocking_issues: list[str],
    suggestions: list[str],
    pass_ratio: float = settings.GATE_PASS_RATIO,
) -> QualityAssessment:
    total = sum(g.score for g in gates)
    max_possible = sum(g.max_score for g in gates)
    return QualityAssessment(
        gates=gates,
        total_score=total,
        max_possible_score=max_possible,
        blocking_issues=blocking_issues,
        revision_suggestions=suggestions,
        overall_passed=total >= max_possible * pass_ratio and not blocking_issues,
    )


class QualityGateAgent:
    """Deterministic checks, AI-scored dimensions and reader-question coverage."""

    def __init__(
        self,
        llm: ResilientLLM,
        model_name: str = settings.EVALUATION_MODEL,
        pass_score: int = settings.GATE_DIMENSION_PASS_SCORE,
    ) -> None:
        self.llm = llm
        self.model_name = model_name
        self.pass_score = pass_score
        logger.info("QualityGateAgent initialized", model=self.model_name)

    def deterministic_checks(
        self, text: str
    ) -> tuple[list[GateResult], list[str], list[str]]:
        blocking: list[str] = []
        suggestions: list[str] = []

        length = length_gate(text)
        words = word_count(text)
        if words < settings.GATE_MIN_WORDS:
            blocking.append(
                f"Unit too short: {words} words (minimum {settings.GATE_MIN_WORDS})"
            )
        elif words > settings.GATE_MAX_WORDS:
            suggestions.append(
                f"Consider trimming: {words} words (maximum {settings.GATE_MAX_WORDS})"
            )

        structure = structure_gate(text)
        if not structure.passed:
            suggestions.append("Add section headings (##) to improve structure")

        formatting = formatting_gate(text)
        if not formatting.passed:
            suggestions.append("Convert bullet points into flowing prose")

        return [length, structure, formatting], blocking, suggestions

    async def score_dimensions(
        self, unit_title: str, text: str, book_context: str
    ) -> tuple[list[GateResult], list[str]]:
        prompt = render_prompt(
            "quality_scores.j2",
            {
                "unit_title": unit_title,
                "unit_excerpt": excerpt(text, UNIT_EXCERPT_CHARS),
                "book_context_excerpt": excerpt(book_context, BOOK_CONTEXT_EXCERPT_CHARS),
            },
        )
        result = await self.llm.generate(
            prompt,
            model=self.model_name,
            operation_kind="evaluation",
            temperature=settings.TEMPERATURE_EVALUATION,
            topic=unit_title,
        )
        scores = parse_dimension_scores(result.text, AI_DIMENSIONS)
        gates: list[GateResult] = []
        suggestions: list[str] = []
        for dimension in AI_DIMENSIONS:
            score = scores[dimension]
            passed = score >= self.pass_score
            gates.append(
                GateResult(
                    name=dimension.lower(),
                    passed=passed,
                    score=score,
                    max_score=GATE_MAX_SCORE,
                    feedback=f"{dimension.title()}: {score}/10",
                )
            )
            if not passed:
                suggestions.append(f"Improve {dimension.lower()} (scored {score}/10)")

        issues = parse_labeled_sections(result.text, ["ISSUES"]).get("ISSUES", "")
        if issues and issues.strip().lower().rstrip(".") != "none":
            suggestions.append(f"Reviewer issues: {issues.splitlines()[0].strip()}")
        return gates, suggestions

    async def check_coverage(
        self, unit_title: str, text: str, questions: Sequence[str]
    ) -> tuple[GateResult, list[str]]:
        prompt = render_prompt(
            "question_coverage.j2",
            {
                "unit_title": unit_title,
                "unit_excerpt": excerpt(text, UNIT_EXCERPT_CHARS),
                "questions": list(questions),
            },
        )
        result = await self.llm.generate(
            prompt,
            model=self.model_name,
            operation_kind="evaluation",
            temperature=settings.TEMPERATURE_EVALUATION,
            topic=unit_title,
        )
        gate, missing = coverage_gate(
            questions, parse_coverage_answers(result.text, len(questions))
        )
        return gate, [f"Address reader question: {q}" for q in missing]

    async def assess(
        self,
        unit_title: str,
        text: str,
        book_context: str,
        forwarded_questions: Sequence[str] = (),
    ) -> QualityAssessment:
        gates, blocking, suggestions = self.deterministic_checks(text)

        ai_gates, ai_suggestions = await self.score_dimensions(unit_title, text, book_context)
        gates.extend(ai_gates)
        suggestions.extend(ai_suggestions)

        if forwarded_questions:
            coverage, coverage_suggestions = await self.check_coverage(
                unit_title, text, forwarded_questions
            )
            gates.append(coverage)
            suggestions.extend(coverage_suggestions)

        assessment = assemble_assessment(gates, blocking, suggestions)
        logger.info(
            "Quality gate evaluated",
            unit_title=unit_title,
            score=assessment.total_score,
            max_score=assessment.max_possible_score,
            passed=assessment.overall_passed,
            blocking=len(assessment.blocking_issues),
        )
        return assessment
