# agents/book_setup_agent.py
"""Derives a book's identity and writing style guide before the first unit."""

from __future__ import annotations

import re

import structlog
from pydantic import BaseModel, Field

from config import settings
from models import BookSpecModel, StyleGuide
from parsing import parse_comma_list, parse_dash_items, parse_labeled_sections
from prompt_renderer import excerpt, render_prompt
from resilience import ResilientLLM

logger = structlog.get_logger(__name__)

DEFAULT_THESIS = "Explore and explain the subject matter thoroughly"
DEFAULT_CORE_ARGUMENT = "Provide valuable insights to readers"
DEFAULT_AUDIENCE = "General readers interested in the topic"
DEFAULT_ARCHETYPE = "educational"
DEFAULT_TONE = ["informative", "engaging"]

_ARCHETYPE = re.compile(r"[a-z][\w-]*", re.IGNORECASE)
STYLE_SAMPLE_CHARS = 1500


class BookIdentity(BaseModel):
    thesis: str = DEFAULT_THESIS
    core_argument: str = DEFAULT_CORE_ARGUMENT
    audience: str = DEFAULT_AUDIENCE
    archetype: str = DEFAULT_ARCHETYPE
    tone_markers: list[str] = Field(default_factory=lambda: list(DEFAULT_TONE))


def _first_line(value: str | None) -> str:
    if not value:
        return ""
    return value.strip().splitlines()[0].strip() if value.strip() else ""


def parse_book_identity(text: str, audience_hint: str | None = None) -> BookIdentity:
    """Read THESIS / CORE_ARGUMENT / AUDIENCE / ARCHETYPE / TONE output."""
    sections = parse_labeled_sections(
        text, ["THESIS", "CORE_ARGUMENT", "AUDIENCE", "ARCHETYPE", "TONE"]
    )
    archetype_match = _ARCHETYPE.search(sections.get("ARCHETYPE", ""))
    return BookIdentity(
        thesis=_first_line(sections.get("THESIS")) or DEFAULT_THESIS,
        core_argument=_first_line(sections.get("CORE_ARGUMENT")) or DEFAULT_CORE_ARGUMENT,
        audience=_first_line(sections.get("AUDIENCE")) or audience_hint or DEFAULT_AUDIENCE,
        archetype=archetype_match.group(0).lower() if archetype_match else DEFAULT_ARCHETYPE,
        tone_markers=parse_comma_list(sections.get("TONE")) or list(DEFAULT_TONE),
    )


def parse_style_guide(text: str) -> StyleGuide:
    sections = parse_labeled_sections(
        text,
        [
            "VOICE",
            "SENTENCE_STYLE",
            "VOCABULARY",
            "FORMATTING",
            "AVOID",
            "GOOD_EXAMPLES",
            "BAD_EXAMPLES",
        ],
    )
    return StyleGuide(
        voice=" ".join(sections.get("VOICE", "").split()),
        sentence_style=" ".join(sections.get("SENTENCE_STYLE", "").split()),
        vocabulary_level=_first_line(sections.get("VOCABULARY")),
        formatting_rules=parse_dash_items(sections.get("FORMATTING")),
        avoid_list=parse_dash_items(sections.get("AVOID")),
        examples_good=parse_dash_items(sections.get("GOOD_EXAMPLES")),
        examples_bad=parse_dash_items(sections.get("BAD_EXAMPLES")),
    )


class BookSetupAgent:
    def __init__(self, llm: ResilientLLM, model_name: str = settings.SETUP_MODEL) -> None:
        self.llm = llm
        self.model_name = model_name
        logger.info("BookSetupAgent initialized", model=self.model_name)

    async def derive_identity(self, spec: BookSpecModel) -> BookIdentity:
        """Fields given in the book file win over generated ones."""
        given = {
            "thesis": spec.thesis,
            "core_argument": spec.core_argument,
            "audience": spec.audience,
            "archetype": spec.archetype,
            "tone_markers": spec.tone or None,
        }
        if all(given.values()):
            return BookIdentity(**given)

        prompt = render_prompt(
            "book_setup.j2",
            {
                "book_title": spec.title,
                "description": spec.description or spec.title,
                "audience": spec.audience,
            },
        )
        result = await self.llm.generate(
            prompt,
            model=self.model_name,
            operation_kind="setup",
            temperature=settings.TEMPERATURE_SETUP,
            topic=spec.title,
        )
        derived = parse_book_identity(result.text, spec.audience)
        identity = derived.model_copy(
            update={key: value for key, value in given.items() if value}
        )
        logger.info(
            "Book identity derived",
            book_id=spec.book_id,
            archetype=identity.archetype,
            generated=[key for key, value in given.items() if not value],
        )
        return identity

    async def generate_style_guide(
        self,
        spec: BookSpecModel,
        identity: BookIdentity,
        sample_text: str = "",
    ) -> StyleGuide:
        prompt = render_prompt(
            "style_guide.j2",
            {
                "book_title": spec.title,
                "description": spec.description,
                "audience": identity.audience,
                "archetype": identity.archetype,
                "tone_markers": identity.tone_markers,
                "sample_text": excerpt(sample_text, STYLE_SAMPLE_CHARS) if sample_text else "",
            },
        )
        result = await self.llm.generate(
            prompt,
            model=self.model_name,
            operation_kind="setup",
            temperature=settings.TEMPERATURE_SETUP,
            topic=spec.title,
        )
        guide = parse_style_guide(result.text)
        if guide.is_empty():
            logger.warning("Style guide could not be parsed", book_id=spec.book_id)
        return guide
