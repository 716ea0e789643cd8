# research/research_service.py
"""Unit research: key topics, a provider call and a 24h per-book cache."""

from __future__ import annotations

import re
from collections import Counter
from typing import Protocol

import structlog
from async_lru import alru_cache

from config import settings
from core.errors import TransientProviderError
from models import ResearchResult
from parsing import parse_dash_items, parse_labeled_sections
from prompt_renderer import render_prompt
from resilience import ResilientLLM

logger = structlog.get_logger(__name__)

MAX_KEY_TOPICS = 5
MIN_TOPIC_CHARS = 4

STOP_WORDS = frozenset(
    """
    the a an and or but in on at to for of with by from as is was are were been
    be have has had do does did will would could should may might must shall can
    need chapter introduction conclusion part section unit how what why when where
    who which this that these those your our their its my his her
    """.split()
)

_CHAPTER_PREFIX = re.compile(r"^(?:chapter|unit)\s*\d+:?\s*", re.IGNORECASE)
_NON_WORD = re.compile(r"[^\w\s]")


def extract_key_topics(title: str, description: str, niche: str = "") -> list[str]:
    """Cleaned title first, then the most frequent significant words."""
    topics: list[str] = []
    main_topic = " ".join(_NON_WORD.sub(" ", _CHAPTER_PREFIX.sub("", title)).split())
    if len(main_topic) >= MIN_TOPIC_CHARS:
        topics.append(main_topic)

    words = [
        word
        for word in _NON_WORD.sub(" ", f"{title} {description}".lower()).split()
        if len(word) >= MIN_TOPIC_CHARS and word not in STOP_WORDS
    ]
    for word, _ in Counter(words).most_common(MAX_KEY_TOPICS):
        if not any(word in topic.lower() for topic in topics):
            topics.append(word)

    if topics and niche and niche.lower() not in topics[0].lower():
        topics[0] = f"{topics[0]} {niche}"
    return topics[:MAX_KEY_TOPICS]


def format_for_prompt(research: ResearchResult) -> str:
    """Research block for the skeleton and draft prompts; empty when nothing was found."""
    if research.is_empty():
        return ""
    lines = [
        "=== REAL-WORLD RESEARCH DATA ===",
        "Use this current research to enhance your writing with credible, up-to-date information:",
        "",
    ]
    if research.summary:
        lines += ["RESEARCH OVERVIEW:", research.summary, ""]
    for heading, items in (
        ("KEY STATISTICS (cite these in your writing):", research.statistics),
        ("CURRENT TRENDS:", research.trends),
        ("EXPERT QUOTES:", research.quotes),
        ("SOURCES:", research.citations),
    ):
        if items:
            lines.append(heading)
            lines.extend(f"• {item}" for item in items)
            lines.append("")
    lines += [
        "INTEGRATION GUIDELINES:",
        "- Naturally weave statistics into your narrative",
        "- Reference trends when discussing the current state or the future",
        '- Use "According to recent research..." or "Studies show..." for citations',
        "- Bold key statistics for emphasis",
        "=================================",
    ]
    return "\n".join(lines)


def parse_research(text: str) -> ResearchResult:
    sections = parse_labeled_sections(
        text, ["SUMMARY", "STATISTICS", "TRENDS", "QUOTES", "CITATIONS"]
    )
    return ResearchResult(
        summary=" ".join(sections.get("SUMMARY", "").split()),
        statistics=parse_dash_items(sections.get("STATISTICS")),
        trends=parse_dash_items(sections.get("TRENDS")),
        quotes=parse_dash_items(sections.get("QUOTES")),
        citations=parse_dash_items(sections.get("CITATIONS")),
    )


class ResearchProvider(Protocol):
    async def research(
        self, topic: str, niche: str, key_topics: list[str]
    ) -> ResearchResult: ...


class NullResearchProvider:
    async def research(
        self, topic: str, niche: str, key_topics: list[str]
    ) -> ResearchResult:
        return ResearchResult()


class LLMResearchProvider:
    """Asks the model for well-established facts about the unit's topic."""

    def __init__(self, llm: ResilientLLM, model_name: str = settings.DEFAULT_MODEL) -> None:
        self.llm = llm
        self.model_name = model_name

    async def research(
        self, topic: str, niche: str, key_topics: list[str]
    ) -> ResearchResult:
        prompt = render_prompt(
            "research.j2", {"niche": niche, "topic": topic, "key_topics": key_topics}
        )
        result = await self.llm.generate(
            prompt,
            model=self.model_name,
            operation_kind="research",
            temperature=settings.TEMPERATURE_RESEARCH,
            topic=topic,
        )
        if result.emergency:
            raise TransientProviderError("Research generation exhausted its fallbacks")
        return parse_research(result.text)


class ResearchService:
    """Per-book research with a TTL cache keyed by (book title, unit title).

    Failures are never cached and degrade to an empty result.
    """

    def __init__(
        self,
        provider: ResearchProvider,
        ttl_seconds: int = settings.RESEARCH_CACHE_TTL_SECONDS,
        cache_size: int = settings.RESEARCH_CACHE_SIZE,
    ) -> None:
        self.provider = provider
        self.provider_calls = 0
        self._cached_research = alru_cache(maxsize=cache_size, ttl=ttl_seconds)(
            self._research
        )

    async def _research(
        self, book_key: str, title_key: str, title: str, description: str, niche: str
    ) -> ResearchResult:
        self.provider_calls += 1
        key_topics = extract_key_topics(title, description, niche)
        logger.info("Researching unit", unit_title=title, key_topics=key_topics)
        return await self.provider.research(title, niche, key_topics)

    async def research_unit(
        self, book_title: str, unit_title: str, description: str = "", niche: str = ""
    ) -> ResearchResult:
        try:
            return await self._cached_research(
                book_title.strip().lower(),
                unit_title.strip().lower(),
                unit_title,
                description,
                niche,
            )
        except Exception as exc:
            logger.warning(
                "Research failed, continuing without it",
                unit_title=unit_title,
                error=str(exc),
            )
            return ResearchResult()

    def cache_clear(self) -> None:
        self._cached_research.cache_clear()
