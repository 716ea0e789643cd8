# agents/finalize_agent.py
"""Finalize unit text: extract metadata, update book memory and store the version."""

from __future__ import annotations

import re
from typing import TypedDict

import structlog

from config import settings
from memory.tiered_memory import TieredContextMemory
from models import ConceptEntry, EntityEntry, QualityAssessment, UnitMetadata
from parsing import parse_dash_items, parse_labeled_sections, parse_name_definition
from prompt_renderer import excerpt, render_prompt
from resilience import ResilientLLM
from storage.file_manager import UnitContentStore

logger = structlog.get_logger(__name__)

MAX_KEY_POINTS = 5
MAX_CONCEPTS = 5
MAX_DECISIONS = 3
MAX_ENTITIES = 5
SUMMARY_FALLBACK_CHARS = 300
UNIT_EXCERPT_CHARS = 5000

_ENTITY_KIND = re.compile(r"^(.*?)\s*\(([^()]*)\)$")


class FinalizationResult(TypedDict, total=False):
    metadata: UnitMetadata
    version: int | None
    concepts_added: int


def parse_unit_metadata(text: str, unit_text: str) -> UnitMetadata:
    """Read SUMMARY / KEY_POINTS / CONCEPTS / DECISIONS / ENTITIES sections.

    A missing summary falls back to the opening of the unit itself.
    """
    sections = parse_labeled_sections(
        text, ["SUMMARY", "KEY_POINTS", "CONCEPTS", "DECISIONS", "ENTITIES"]
    )
    summary = " ".join(sections.get("SUMMARY", "").split())
    if not summary:
        summary = unit_text[:SUMMARY_FALLBACK_CHARS].strip()

    concepts = []
    for item in parse_dash_items(sections.get("CONCEPTS"), MAX_CONCEPTS):
        name, definition = parse_name_definition(item)
        if name:
            concepts.append(ConceptEntry(name=name, definition=definition))

    entities = []
    for item in parse_dash_items(sections.get("ENTITIES"), MAX_ENTITIES):
        name, description = parse_name_definition(item)
        kind = ""
        match = _ENTITY_KIND.match(name)
        if match and match.group(1).strip():
            name, kind = match.group(1).strip(), match.group(2).strip().lower()
        if name:
            entities.append(EntityEntry(name=name, kind=kind, description=description))

    return UnitMetadata(
        summary=summary,
        key_points=parse_dash_items(sections.get("KEY_POINTS"), MAX_KEY_POINTS),
        concepts=concepts,
        decisions=parse_dash_items(sections.get("DECISIONS"), MAX_DECISIONS),
        entities=entities,
    )


class FinalizeAgent:
    """Handle unit finalization and book memory updates."""

    def __init__(
        self,
        llm: ResilientLLM,
        memory: TieredContextMemory,
        content_store: UnitContentStore,
        model_name: str = settings.SMALL_MODEL,
    ) -> None:
        self.llm = llm
        self.memory = memory
        self.content_store = content_store
        self.model_name = model_name
        logger.info("FinalizeAgent initialized", book_id=memory.book_id)

    async def extract_metadata(self, unit_title: str, unit_text: str) -> UnitMetadata:
        prompt = render_prompt(
            "unit_metadata.j2",
            {"unit_title": unit_title, "unit_excerpt": excerpt(unit_text, UNIT_EXCERPT_CHARS)},
        )
        result = await self.llm.generate(
            prompt,
            model=self.model_name,
            operation_kind="metadata",
            temperature=settings.TEMPERATURE_SUMMARY,
            topic=unit_title,
        )
        metadata = parse_unit_metadata(result.text, unit_text)
        logger.debug(
            "Unit metadata extracted",
            unit_title=unit_title,
            key_points=len(metadata.key_points),
            concepts=len(metadata.concepts),
            decisions=len(metadata.decisions),
            entities=len(metadata.entities),
        )
        return metadata

    async def finalize_unit(
        self,
        unit_number: int,
        unit_title: str,
        final_text: str,
        quality: QualityAssessment | None = None,
    ) -> FinalizationResult:
        """Commit a unit to memory and save it as a new version.

        The unit is committed whatever the gate said; the assessment is only
        stored alongside the saved text.
        """
        metadata = await self.extract_metadata(unit_title, final_text)

        concepts_added = 0
        for concept in metadata.concepts:
            if self.memory.record_concept_introduction(
                concept.name, unit_number, concept.definition
            ):
                concepts_added += 1
        for decision in metadata.decisions:
            self.memory.record_decision(decision, unit_number)
        for entity in metadata.entities:
            self.memory.record_entity(
                entity.name, entity.kind, entity.description, unit_number
            )

        self.memory.commit_unit(
            unit_number, unit_title, final_text, metadata.summary, metadata.key_points
        )

        version: int | None = None
        try:
            version = await self.content_store.save_version(
                self.memory.book_id,
                unit_number,
                final_text,
                {
                    "title": unit_title,
                    "metadata": metadata.model_dump(),
                    "quality": quality.model_dump() if quality else None,
                },
            )
        except OSError as exc:
            logger.error(
                "Failed to save unit version",
                unit=unit_number,
                error=str(exc),
                exc_info=True,
            )

        logger.info(
            "Unit finalized",
            unit=unit_number,
            version=version,
            concepts_added=concepts_added,
        )
        return {"metadata": metadata, "version": version, "concepts_added": concepts_added}
