# orchestration/book_orchestrator.py
"""Drives a whole book: setup, then every unit in order through the pipeline."""

from __future__ import annotations

import random

import structlog

from agents.book_setup_agent import BookIdentity, BookSetupAgent
from agents.discussion_agent import DiscussionSimulator
from agents.drafting_agent import DraftingAgent
from agents.finalize_agent import FinalizeAgent
from agents.perspective_panel_agent import PerspectivePanel
from agents.quality_gate_agent import QualityGateAgent
from config import settings
from core.llm_interface import TextGenerationProvider
from memory.tiered_memory import TieredContextMemory
from models import AutoGenerationConfig, BookSpecModel, DiscussionTranscript
from orchestration.models import BookRunReport, UnitReport
from orchestration.unit_pipeline import StageListener, UnitPipeline
from research.research_service import (
    LLMResearchProvider,
    ResearchProvider,
    ResearchService,
)
from resilience import (
    FallbackConfig,
    PerformanceLedger,
    ResilientExecutor,
    ResilientLLM,
)
from storage.file_manager import FileManager, UnitContentStore
from storage.memory_store import JsonMemoryStore, MemoryStore

logger = structlog.get_logger(__name__)


class BookOrchestrator:
    """One instance per book. Nothing here is shared between books."""

    def __init__(
        self,
        spec: BookSpecModel,
        llm: ResilientLLM,
        memory: TieredContextMemory,
        pipeline: UnitPipeline,
        setup_agent: BookSetupAgent,
        panel: PerspectivePanel,
        listener: StageListener | None = None,
        calibrate_profiles: bool = settings.ENABLE_CALIBRATED_PERSONAS,
        content_store: UnitContentStore | None = None,
    ) -> None:
        self.spec = spec
        self.llm = llm
        self.memory = memory
        self.pipeline = pipeline
        self.setup_agent = setup_agent
        self.panel = panel
        self.listener = listener
        self.calibrate_profiles = calibrate_profiles
        self.content_store = content_store
        logger.info(
            "BookOrchestrator initialized",
            book_id=spec.book_id,
            units=len(spec.units),
        )

    @classmethod
    def create(
        cls,
        spec: BookSpecModel,
        provider: TextGenerationProvider,
        *,
        memory_store: MemoryStore | None = None,
        content_store: UnitContentStore | None = None,
        research_provider: ResearchProvider | None = None,
        enable_research: bool = settings.ENABLE_RESEARCH,
        fallback_config: FallbackConfig | None = None,
        executor: ResilientExecutor | None = None,
        rng: random.Random | None = None,
        listener: StageListener | None = None,
        max_reloops: int = settings.MAX_QUALITY_RELOOPS,
        calibrate_profiles: bool = settings.ENABLE_CALIBRATED_PERSONAS,
    ) -> BookOrchestrator:
        """Wire a fresh set of per-book collaborators around ``provider``."""
        ledger = PerformanceLedger(settings.LEDGER_CAPACITY)
        llm = ResilientLLM(provider, ledger, executor=executor, fallback_config=fallback_config)
        memory = TieredContextMemory(spec.book_id, memory_store or JsonMemoryStore())
        content_store = content_store or FileManager()
        panel = PerspectivePanel(llm, rng=rng)
        research = (
            ResearchService(research_provider or LLMResearchProvider(llm))
            if enable_research
            else None
        )
        pipeline = UnitPipeline(
            memory=memory,
            drafting=DraftingAgent(llm),
            panel=panel,
            gate=QualityGateAgent(llm),
            finalizer=FinalizeAgent(llm, memory, content_store),
            research=research,
            listener=listener,
            max_reloops=max_reloops,
        )
        return cls(
            spec,
            llm,
            memory,
            pipeline,
            BookSetupAgent(llm),
            panel,
            listener=listener,
            calibrate_profiles=calibrate_profiles,
            content_store=content_store,
        )

    def _identity_from_state(self) -> BookIdentity:
        state = self.memory.state
        return BookIdentity(
            thesis=state.thesis,
            core_argument=state.core_argument,
            audience=state.audience,
            archetype=state.archetype,
            tone_markers=list(state.tone_markers),
        )

    async def prepare_book(self) -> None:
        """Book identity, style guide and reader profiles, each set up once."""
        if self.listener:
            self.listener.update(book_title=self.spec.title, step="Book setup")

        if not self.memory.initialized:
            identity = await self.setup_agent.derive_identity(self.spec)
            self.memory.initialize(
                identity.thesis,
                identity.core_argument,
                identity.audience,
                identity.archetype,
                identity.tone_markers,
            )
        else:
            logger.info("Resuming book with existing context", book_id=self.spec.book_id)

        if self.memory.state.style_guide.is_empty():
            guide = await self.setup_agent.generate_style_guide(
                self.spec, self._identity_from_state()
            )
            if not guide.is_empty():
                self.memory.update_style_guide(guide)

        if self.calibrate_profiles and self.spec.niche:
            await self.panel.calibrate_profiles(
                self.spec.title, self.spec.niche, self.memory.state.audience
            )

    async def run(self, start_unit: int = 1) -> BookRunReport:
        report = BookRunReport(book_id=self.spec.book_id)
        await self.prepare_book()

        forwarded: list[str] = []
        for number, unit in enumerate(self.spec.units, start=1):
            if number < start_unit:
                continue
            if number in self.memory.committed_units:
                logger.info("Skipping committed unit", unit=number, title=unit.title)
                report.skipped_units.append(number)
                forwarded = []
                continue

            try:
                unit_report = await self.pipeline.run(number, unit, self.spec, forwarded)
            except Exception as exc:
                logger.error(
                    "Unit failed with an unexpected error",
                    unit=number,
                    title=unit.title,
                    error=str(exc),
                    exc_info=True,
                )
                report.units.append(
                    UnitReport(
                        unit_number=number,
                        title=unit.title,
                        final_text="",
                        quality=None,
                        error=f"{type(exc).__name__}: {exc}",
                    )
                )
                forwarded = []
                continue
            report.units.append(unit_report)
            forwarded = list(unit_report.forwarded_feedback)
            logger.info(
                "Unit complete",
                unit=number,
                passed=unit_report.passed,
                degraded=unit_report.degraded,
                reloops=unit_report.reloops,
            )

        report.ledger = self.llm.ledger.report()
        report.llm_calls = self.llm.call_count
        report.degraded_calls = self.llm.degraded_count
        report.memory_write_failures = self.memory.write_failures
        logger.info(
            "Book run complete",
            book_id=self.spec.book_id,
            units=len(report.units),
            skipped=len(report.skipped_units),
            failed=len(report.failed_units),
            degraded_calls=report.degraded_calls,
        )
        return report

    async def discuss_unit(
        self, unit_number: int, config: AutoGenerationConfig | None = None
    ) -> DiscussionTranscript | None:
        """Simulate a reader discussion of an already committed unit.

        Falls back to the latest saved version when the unit is not in memory.
        """
        text = self.memory.get_unit(unit_number)
        if text is None and self.content_store is not None:
            text = await self.content_store.read_latest_version(
                self.spec.book_id, unit_number
            )
        if text is None:
            logger.warning("Unit not committed, nothing to discuss", unit=unit_number)
            return None
        titles = {entry.number: entry.title for entry in self.memory.summaries()}
        if unit_number not in titles and 0 < unit_number <= len(self.spec.units):
            titles[unit_number] = self.spec.units[unit_number - 1].title
        if self.calibrate_profiles and self.spec.niche:
            await self.panel.calibrate_profiles(
                self.spec.title, self.spec.niche, self.memory.state.audience
            )
        simulator = DiscussionSimulator(self.panel, config)
        return await simulator.simulate(titles.get(unit_number, f"Unit {unit_number}"), text)
