# tests/test_agents.py
import pytest
from conftest import UNIT_METADATA, ScriptedProvider

from agents.book_setup_agent import (
    DEFAULT_ARCHETYPE,
    DEFAULT_TONE,
    BookSetupAgent,
    parse_book_identity,
    parse_style_guide,
)
from agents.drafting_agent import DraftingAgent
from agents.finalize_agent import FinalizeAgent, parse_unit_metadata
from core.errors import TransientProviderError
from memory.tiered_memory import TieredContextMemory
from models import BookSpecModel, RankedQuestion
from storage.memory_store import InMemoryStore


class RecordingContentStore:
    def __init__(self, error: Exception | None = None) -> None:
        self.saved: list[tuple] = []
        self.error = error

    async def save_version(self, book_id, unit_number, text, metadata=None):
        if self.error:
            raise self.error
        self.saved.append((book_id, unit_number, text, metadata))
        return len(self.saved)

    async def read_latest_version(self, book_id, unit_number):
        return None


def test_parse_unit_metadata():
    metadata = parse_unit_metadata(UNIT_METADATA, "unit text")
    assert metadata.summary == "A unit about staying focused."
    assert metadata.key_points == ["Focus is trainable", "Depth beats breadth"]
    assert metadata.concepts[0].name == "Flow State"
    assert metadata.concepts[0].definition == "effortless concentration"
    assert metadata.decisions == ["Prefer depth over breadth"]
    assert [(e.name, e.kind) for e in metadata.entities] == [
        ("Deep Work Lab", "organization"),
        ("deep work lab", ""),
    ]
    assert metadata.entities[0].description == "a research group studying attention"


def test_parse_unit_metadata_limits_and_fallback():
    many = "KEY_POINTS:\n" + "\n".join(f"- point {i}" for i in range(9))
    metadata = parse_unit_metadata(many, "x" * 500)
    assert len(metadata.key_points) == 5
    assert metadata.summary == "x" * 300


@pytest.mark.asyncio
async def test_finalize_commits_and_saves(make_llm):
    provider = ScriptedProvider([("Extract metadata", UNIT_METADATA)])
    memory = TieredContextMemory("book", InMemoryStore())
    store = RecordingContentStore()
    agent = FinalizeAgent(make_llm(provider), memory, store, model_name="m")

    result = await agent.finalize_unit(1, "One", "Final text")

    assert result["version"] == 1
    assert result["concepts_added"] == 1
    assert memory.get_unit(1) == "Final text"
    assert memory.summaries()[0].summary == "A unit about staying focused."
    assert [d.decision for d in memory.state.key_decisions] == ["Prefer depth over breadth"]
    assert [e.name for e in memory.state.named_entities] == ["Deep Work Lab"]
    assert memory.state.named_entities[0].first_unit == 1
    book_id, unit_number, text, metadata = store.saved[0]
    assert (book_id, unit_number, text) == ("book", 1, "Final text")
    assert metadata["title"] == "One"
    assert metadata["quality"] is None


@pytest.mark.asyncio
async def test_finalize_survives_storage_failure(make_llm):
    provider = ScriptedProvider([("Extract metadata", UNIT_METADATA)])
    memory = TieredContextMemory("book", InMemoryStore())
    agent = FinalizeAgent(
        make_llm(provider), memory, RecordingContentStore(OSError("disk")), model_name="m"
    )

    result = await agent.finalize_unit(1, "One", "Final text")

    assert result["version"] is None
    assert memory.committed_units == [1]


@pytest.mark.asyncio
async def test_revise_without_feedback_keeps_draft(make_llm):
    provider = ScriptedProvider()
    agent = DraftingAgent(make_llm(provider), model_name="m")

    output = await agent.revise("One", "The draft", [])

    assert output.text == "The draft"
    assert output.strategy is None
    assert provider.calls == []


@pytest.mark.asyncio
async def test_passes_report_degradation(make_llm):
    responses = iter([TransientProviderError("busy"), "## Revised\n\n- a\n\nBody"])

    def flaky(prompt: str) -> str:
        item = next(responses)
        if isinstance(item, Exception):
            raise item
        return item

    provider = ScriptedProvider(default=flaky)
    agent = DraftingAgent(make_llm(provider), model_name="m", target_words=900)
    feedback = [RankedQuestion(text="Why now?", source_profile_id="skeptic-sam", vote_count=2)]

    output = await agent.revise("One", "Draft text", feedback)

    assert output.degraded
    assert output.strategy == "retry"
    assert output.text == "## Revised\n\na\n\nBody"
    assert "[skeptic-sam] (2 votes): Why now?" in provider.calls[0]["prompt"]
    assert "about 900 words" in provider.calls[0]["prompt"]


@pytest.mark.asyncio
async def test_skeleton_keeps_outline_verbatim(make_llm):
    provider = ScriptedProvider(default="1. Hook\n2. Sections\n")
    agent = DraftingAgent(make_llm(provider), model_name="m", skeleton_max_words=250)

    output = await agent.skeleton(4, "Habits", "Daily loops", "CTX", "", ["Why?"])

    assert output.text == "1. Hook\n2. Sections"
    prompt = provider.calls[0]["prompt"]
    assert "UNIT 4" in prompt and "Description: Daily loops" in prompt
    assert "at most 250 words" in prompt
    assert "1. Why?" in prompt


def test_parse_book_identity_defaults():
    identity = parse_book_identity("THESIS: Focus wins\nARCHETYPE: **How-to** guide", "Makers")
    assert identity.thesis == "Focus wins"
    assert identity.archetype == "how-to"
    assert identity.audience == "Makers"
    assert identity.tone_markers == DEFAULT_TONE

    empty = parse_book_identity("", None)
    assert empty.archetype == DEFAULT_ARCHETYPE


def test_parse_style_guide():
    guide = parse_style_guide(
        "VOICE: Warm\nSENTENCE_STYLE: Short\nVOCABULARY: intermediate\n"
        "FORMATTING:\n- Use headings\nAVOID:\n- hype\n- jargon\nGOOD_EXAMPLES:\n- Start here."
    )
    assert guide.voice == "Warm"
    assert guide.formatting_rules == ["Use headings"]
    assert guide.avoid_list == ["hype", "jargon"]
    assert guide.examples_good == ["Start here."]
    assert parse_style_guide("nothing").is_empty()


@pytest.mark.asyncio
async def test_derive_identity_merges_given_fields(make_llm):
    provider = ScriptedProvider(
        [("Analyze this book", "THESIS: Generated\nAUDIENCE: Generated readers\nTONE: bold")]
    )
    agent = BookSetupAgent(make_llm(provider), model_name="m")
    spec = BookSpecModel(title="Deep Focus", audience="Engineers", tone="calm, direct")

    identity = await agent.derive_identity(spec)

    assert identity.thesis == "Generated"
    assert identity.audience == "Engineers"
    assert identity.tone_markers == ["calm", "direct"]
    assert "TARGET AUDIENCE: Engineers" in provider.calls[0]["prompt"]
