# tests/test_research_service.py
import pytest
from conftest import ScriptedProvider

from core.errors import TransientProviderError
from models import ResearchResult
from research.research_service import (
    LLMResearchProvider,
    NullResearchProvider,
    ResearchService,
    extract_key_topics,
    format_for_prompt,
    parse_research,
)

RESEARCH_TEXT = """SUMMARY: Deep work is
well studied.
STATISTICS:
- 23 minutes to refocus (UC Irvine)
TRENDS:
- Remote teams adopt focus blocks
QUOTES:
- "Clarity about what matters" - Cal Newport
CITATIONS:
- Deep Work, Cal Newport, 2016
"""


class CountingProvider:
    def __init__(self, result=None, error=None) -> None:
        self.result = result or ResearchResult(summary="found")
        self.error = error
        self.calls: list[tuple[str, str, list[str]]] = []

    async def research(self, topic, niche, key_topics):
        self.calls.append((topic, niche, key_topics))
        if self.error:
            raise self.error
        return self.result


def test_extract_key_topics():
    topics = extract_key_topics(
        "Chapter 3: Building Habits", "Habits and routines shape focus. Routines matter.", "productivity"
    )
    assert topics[0] == "Building Habits productivity"
    assert "routines" in topics
    assert "habits" not in topics
    assert len(topics) <= 5
    assert extract_key_topics("Go", "", "") == []


def test_format_for_prompt():
    assert format_for_prompt(ResearchResult()) == ""
    block = format_for_prompt(parse_research(RESEARCH_TEXT))
    assert block.startswith("=== REAL-WORLD RESEARCH DATA ===")
    assert "RESEARCH OVERVIEW:\nDeep work is well studied." in block
    assert "• 23 minutes to refocus (UC Irvine)" in block
    assert "SOURCES:\n• Deep Work, Cal Newport, 2016" in block
    assert "INTEGRATION GUIDELINES:" in block


@pytest.mark.asyncio
async def test_research_is_cached_per_book_and_unit():
    provider = CountingProvider()
    service = ResearchService(provider)

    first = await service.research_unit("Book", "Focus", "desc", "productivity")
    second = await service.research_unit("book ", "Focus", "desc", "productivity")
    other = await service.research_unit("Other Book", "Focus", "desc", "productivity")

    assert first.summary == second.summary == other.summary == "found"
    assert service.provider_calls == 2
    service.cache_clear()
    await service.research_unit("Book", "Focus", "desc", "productivity")
    assert service.provider_calls == 3


@pytest.mark.asyncio
async def test_research_failure_degrades_and_is_not_cached():
    provider = CountingProvider(error=TransientProviderError("offline"))
    service = ResearchService(provider)

    assert (await service.research_unit("Book", "Focus")).is_empty()
    provider.error = None
    assert (await service.research_unit("Book", "Focus")).summary == "found"
    assert len(provider.calls) == 2


@pytest.mark.asyncio
async def test_null_provider_returns_empty():
    service = ResearchService(NullResearchProvider())
    assert (await service.research_unit("Book", "Focus")).is_empty()


@pytest.mark.asyncio
async def test_llm_provider_parses_sections(make_llm):
    provider = ScriptedProvider([("research assistant", RESEARCH_TEXT)])
    research = await LLMResearchProvider(make_llm(provider), model_name="m").research(
        "Deep Work", "productivity", ["deep work"]
    )
    assert research.statistics == ["23 minutes to refocus (UC Irvine)"]
    assert research.quotes == ['"Clarity about what matters" - Cal Newport']
    assert "Key topics: deep work" in provider.calls[0]["prompt"]


@pytest.mark.asyncio
async def test_llm_provider_refuses_emergency_output(make_llm):
    provider = ScriptedProvider(default=TransientProviderError("down"))
    research_provider = LLMResearchProvider(make_llm(provider), model_name="m")
    with pytest.raises(TransientProviderError):
        await research_provider.research("Deep Work", "productivity", [])
