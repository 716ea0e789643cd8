# orchestration/unit_pipeline.py
"""Multi-pass generation of a single unit as an explicit state machine."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Protocol

import structlog

from agents.drafting_agent import DraftingAgent, PassOutput
from agents.finalize_agent import FinalizeAgent
from agents.perspective_panel_agent import PerspectivePanel
from agents.quality_gate_agent import QualityGateAgent
from config import settings
from memory.tiered_memory import TieredContextMemory
from models import BookSpecModel, QualityAssessment, RankedQuestion, UnitSpecModel
from orchestration.models import UnitReport
from research.research_service import ResearchService, format_for_prompt

logger = structlog.get_logger(__name__)


class UnitStage(str, Enum):
    RESEARCH = "research"
    SKELETON = "skeleton"
    DRAFT = "draft"
    CRITIQUE = "critique"
    REVISION = "revision"
    POLISH = "polish"
    QUALITY_GATE = "quality_gate"
    COMMITTED = "committed"


# None is the state before the first pass. QUALITY_GATE -> DRAFT is the re-loop.
TRANSITIONS: dict[UnitStage | None, frozenset[UnitStage]] = {
    None: frozenset({UnitStage.RESEARCH, UnitStage.SKELETON}),
    UnitStage.RESEARCH: frozenset({UnitStage.SKELETON}),
    UnitStage.SKELETON: frozenset({UnitStage.DRAFT}),
    UnitStage.DRAFT: frozenset({UnitStage.CRITIQUE}),
    UnitStage.CRITIQUE: frozenset({UnitStage.REVISION}),
    UnitStage.REVISION: frozenset({UnitStage.POLISH}),
    UnitStage.POLISH: frozenset({UnitStage.QUALITY_GATE}),
    UnitStage.QUALITY_GATE: frozenset({UnitStage.COMMITTED, UnitStage.DRAFT}),
    UnitStage.COMMITTED: frozenset(),
}


class StageListener(Protocol):
    def update(
        self,
        book_title: str | None = None,
        unit_num: int | None = None,
        step: str | None = None,
    ) -> None: ...


@dataclass
class UnitPipelineState:
    unit_number: int
    title: str
    stage: UnitStage | None = None
    history: list[UnitStage] = field(default_factory=list)
    research_context: str = ""
    skeleton: str = ""
    draft: str = ""
    critical_feedback: list[RankedQuestion] = field(default_factory=list)
    revised: str = ""
    polished: str = ""
    quality: QualityAssessment | None = None
    reloops: int = 0
    strategies: dict[str, str | None] = field(default_factory=dict)
    degraded: bool = False

    def advance(self, stage: UnitStage) -> None:
        if stage not in TRANSITIONS[self.stage]:
            raise ValueError(
                f"Illegal unit transition {self.stage} -> {stage} (unit {self.unit_number})"
            )
        self.stage = stage
        self.history.append(stage)

    def record_pass(self, name: str, output: PassOutput) -> str:
        self.strategies[name] = output.strategy
        self.degraded = self.degraded or output.degraded
        return output.text


def should_reloop(quality: QualityAssessment, reloops: int, max_reloops: int) -> bool:
    return not quality.overall_passed and reloops < max_reloops


class UnitPipeline:
    """Runs RESEARCH -> SKELETON -> DRAFT -> CRITIQUE -> REVISION -> POLISH ->
    QUALITY_GATE -> COMMITTED for one unit.

    The unit is committed whatever the gate decides. With ``max_reloops`` above
    zero a failed gate sends the unit back to DRAFT with the gate's notes, at
    most that many times.
    """

    def __init__(
        self,
        memory: TieredContextMemory,
        drafting: DraftingAgent,
        panel: PerspectivePanel,
        gate: QualityGateAgent,
        finalizer: FinalizeAgent,
        research: ResearchService | None = None,
        listener: StageListener | None = None,
        max_reloops: int = settings.MAX_QUALITY_RELOOPS,
        critical_count: int = settings.CRITICAL_FEEDBACK_COUNT,
        forwarded_count: int = settings.FORWARDED_FEEDBACK_COUNT,
    ) -> None:
        self.memory = memory
        self.drafting = drafting
        self.panel = panel
        self.gate = gate
        self.finalizer = finalizer
        self.research = research
        self.listener = listener
        self.max_reloops = max(0, max_reloops)
        self.critical_count = critical_count
        self.forwarded_count = forwarded_count

    def _enter(self, state: UnitPipelineState, stage: UnitStage) -> None:
        state.advance(stage)
        logger.info("Unit stage", unit=state.unit_number, stage=stage.value)
        if self.listener:
            self.listener.update(unit_num=state.unit_number, step=stage.value)

    async def run(
        self,
        unit_number: int,
        unit: UnitSpecModel,
        book: BookSpecModel,
        forwarded_feedback: list[str] | None = None,
    ) -> UnitReport:
        forwarded = list(forwarded_feedback or [])
        state = UnitPipelineState(unit_number=unit_number, title=unit.title)

        if self.research is not None and book.niche:
            self._enter(state, UnitStage.RESEARCH)
            research = await self.research.research_unit(
                book.title, unit.title, unit.description, book.niche
            )
            state.research_context = format_for_prompt(research)

        book_context = self.memory.build_prompt_context()

        self._enter(state, UnitStage.SKELETON)
        state.skeleton = state.record_pass(
            "skeleton",
            await self.drafting.skeleton(
                unit_number,
                unit.title,
                unit.description,
                book_context,
                state.research_context,
                forwarded,
            ),
        )

        revision_notes: list[str] = []
        while True:
            self._enter(state, UnitStage.DRAFT)
            state.draft = state.record_pass(
                "draft",
                await self.drafting.draft(
                    unit_number,
                    unit.title,
                    state.skeleton,
                    book_context,
                    state.research_context,
                    forwarded,
                    revision_notes,
                ),
            )

            self._enter(state, UnitStage.CRITIQUE)
            critique = await self.panel.critique(
                unit.title, state.draft, topic_context=f"{unit.title} {unit.description}"
            )
            state.critical_feedback = critique[: self.critical_count]

            self._enter(state, UnitStage.REVISION)
            state.revised = state.record_pass(
                "revision",
                await self.drafting.revise(unit.title, state.draft, state.critical_feedback),
            )

            self._enter(state, UnitStage.POLISH)
            state.polished = state.record_pass(
                "polish", await self.drafting.polish(unit.title, state.revised)
            )

            self._enter(state, UnitStage.QUALITY_GATE)
            state.quality = await self.gate.assess(
                unit.title, state.polished, book_context, forwarded
            )
            if not should_reloop(state.quality, state.reloops, self.max_reloops):
                break
            state.reloops += 1
            revision_notes = [
                *state.quality.blocking_issues,
                *state.quality.revision_suggestions,
            ]
            logger.warning(
                "Quality gate failed, redrafting",
                unit=unit_number,
                reloop=state.reloops,
                notes=len(revision_notes),
            )

        if not state.quality.overall_passed:
            logger.warning(
                "Committing unit that did not pass the quality gate",
                unit=unit_number,
                blocking=state.quality.blocking_issues,
            )

        self._enter(state, UnitStage.COMMITTED)
        finalization = await self.finalizer.finalize_unit(
            unit_number, unit.title, state.polished, state.quality
        )

        return UnitReport(
            unit_number=unit_number,
            title=unit.title,
            final_text=state.polished,
            quality=state.quality,
            critical_feedback=list(state.critical_feedback),
            forwarded_feedback=[
                q.text for q in state.critical_feedback[: self.forwarded_count]
            ],
            degraded=state.degraded,
            strategies=dict(state.strategies),
            reloops=state.reloops,
            version=finalization.get("version"),
        )
