# agents/drafting_agent.py
"""Prose passes for a unit: skeleton, draft, revision and polish."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

import structlog

from config import settings
from models import RankedQuestion
from processing.text_cleanup import clean_unit_text, word_count
from prompt_renderer import render_prompt
from resilience import GenerationResult, ResilientLLM

logger = structlog.get_logger(__name__)


@dataclass
class PassOutput:
    """Text of one pass and how the fallback chain produced it."""

    text: str
    degraded: bool = False
    strategy: str | None = None
    emergency: bool = False

    @classmethod
    def from_result(cls, result: GenerationResult, text: str) -> PassOutput:
        strategy = "emergency" if result.emergency else result.outcome.strategy_used
        return cls(
            text=text,
            degraded=result.degraded,
            strategy=strategy,
            emergency=result.emergency,
        )


class DraftingAgent:
    def __init__(
        self,
        llm: ResilientLLM,
        model_name: str = settings.DRAFTING_MODEL,
        target_words: int = settings.TARGET_UNIT_WORDS,
        skeleton_max_words: int = settings.SKELETON_MAX_WORDS,
    ) -> None:
        self.llm = llm
        self.model_name = model_name
        self.target_words = target_words
        self.skeleton_max_words = skeleton_max_words
        logger.info("DraftingAgent initialized", model=self.model_name)

    async def _run(
        self,
        template: str,
        context: dict,
        *,
        operation_kind: str,
        temperature: float,
        unit_title: str,
        max_words: int | None,
        clean: bool = True,
    ) -> PassOutput:
        prompt = render_prompt(template, context)
        result = await self.llm.generate(
            prompt,
            model=self.model_name,
            operation_kind=operation_kind,
            temperature=temperature,
            topic=unit_title,
            max_words=max_words,
        )
        text = clean_unit_text(result.text) if clean else result.text.strip()
        output = PassOutput.from_result(result, text)
        logger.info(
            "Pass complete",
            operation=operation_kind,
            unit_title=unit_title,
            words=word_count(text),
            degraded=output.degraded,
        )
        return output

    async def skeleton(
        self,
        unit_number: int,
        unit_title: str,
        unit_description: str,
        book_context: str,
        research_context: str = "",
        forwarded_feedback: Sequence[str] = (),
    ) -> PassOutput:
        """Outline only, no prose."""
        return await self._run(
            "skeleton.j2",
            {
                "book_context": book_context,
                "unit_number": unit_number,
                "unit_title": unit_title,
                "unit_description": unit_description,
                "research_context": research_context,
                "forwarded_feedback": list(forwarded_feedback),
                "max_words": self.skeleton_max_words,
            },
            operation_kind="skeleton",
            temperature=settings.TEMPERATURE_SKELETON,
            unit_title=unit_title,
            max_words=self.skeleton_max_words,
            clean=False,
        )

    async def draft(
        self,
        unit_number: int,
        unit_title: str,
        skeleton: str,
        book_context: str,
        research_context: str = "",
        forwarded_feedback: Sequence[str] = (),
        revision_notes: Sequence[str] = (),
    ) -> PassOutput:
        return await self._run(
            "draft.j2",
            {
                "book_context": book_context,
                "unit_number": unit_number,
                "unit_title": unit_title,
                "skeleton": skeleton,
                "research_context": research_context,
                "revision_notes": list(revision_notes),
                "forwarded_feedback": list(forwarded_feedback),
                "target_words": self.target_words,
            },
            operation_kind="draft",
            temperature=settings.TEMPERATURE_DRAFTING,
            unit_title=unit_title,
            max_words=self.target_words,
        )

    async def revise(
        self,
        unit_title: str,
        draft: str,
        critical_feedback: Sequence[RankedQuestion],
    ) -> PassOutput:
        """Address the panel's top questions while keeping the structure."""
        if not critical_feedback:
            logger.info("No critical feedback, keeping draft", unit_title=unit_title)
            return PassOutput(text=draft)
        return await self._run(
            "revision.j2",
            {
                "unit_title": unit_title,
                "draft": draft,
                "critical_feedback": list(critical_feedback),
                "target_words": self.target_words,
            },
            operation_kind="revision",
            temperature=settings.TEMPERATURE_REVISION,
            unit_title=unit_title,
            max_words=self.target_words,
        )

    async def polish(self, unit_title: str, draft: str) -> PassOutput:
        return await self._run(
            "polish.j2",
            {"unit_title": unit_title, "draft": draft},
            operation_kind="polish",
            temperature=settings.TEMPERATURE_POLISH,
            unit_title=unit_title,
            max_words=self.target_words,
        )
