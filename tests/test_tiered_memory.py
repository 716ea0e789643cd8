# tests/test_tiered_memory.py
import json

import pytest

from core.errors import PersistenceWriteError
from memory.tiered_memory import TRUNCATION_MARKER, TieredContextMemory
from models import StyleGuide
from storage.memory_store import InMemoryStore, JsonMemoryStore


def _memory(store=None, **kwargs) -> TieredContextMemory:
    return TieredContextMemory("book-1", store or InMemoryStore(), **kwargs)


class FailingStore(InMemoryStore):
    def __init__(self, failures: int) -> None:
        super().__init__()
        self.failures = failures
        self.attempts = 0

    def save_context(self, state) -> None:
        self.attempts += 1
        if self.failures > 0:
            self.failures -= 1
            raise PersistenceWriteError("disk full")
        super().save_context(state)


def test_hot_tier_keeps_two_most_recent_units():
    memory = _memory()
    for number in (1, 2, 3):
        memory.commit_unit(number, f"T{number}", f"text {number}", f"sum {number}", [])

    assert memory.hot_units == [2, 3]
    assert memory.get_unit(1) == "text 1"
    assert "text 1" not in memory.build_prompt_context()


def test_concept_introductions_dedupe_case_insensitively():
    memory = _memory()
    assert memory.record_concept_introduction("Flow State", 1) is True
    assert memory.record_concept_introduction("flow state", 2) is False
    assert [c.name for c in memory.state.concept_introductions] == ["Flow State"]


def test_named_entities_dedupe_case_insensitively():
    memory = _memory()
    assert memory.record_entity("Acme Corp", "organization", "tool maker", 1) is True
    assert memory.record_entity("acme corp", "company", "again", 2) is False
    assert memory.record_entity("  ", unit_number=2) is False

    assert len(memory.state.named_entities) == 1
    entity = memory.state.named_entities[0]
    assert (entity.name, entity.kind, entity.first_unit) == ("Acme Corp", "organization", 1)


def test_prompt_context_for_third_unit():
    memory = _memory()
    memory.initialize("X", "Argument", "Engineers", "practical guide", ["direct"])
    unit_one = "a" * 2500
    unit_two = "unit two body"
    memory.commit_unit(1, "Start", unit_one, "summary one", ["p1"])
    memory.commit_unit(2, "Middle", unit_two, "summary two", ["p2"])

    context = memory.build_prompt_context()

    assert context.startswith(memory.permanent_digest)
    assert "Thesis: X" in context
    assert 'Unit 1 - "Start":' in context
    assert 'Unit 2 - "Middle":' in context
    assert "a" * 2000 + TRUNCATION_MARKER in context
    assert "a" * 2001 not in context
    assert unit_two in context
    assert "Unit 0" not in context


def test_cold_only_units_stay_out_of_prompt():
    memory = _memory()
    for number in (1, 2, 3, 4):
        memory.commit_unit(number, f"T{number}", f"body-of-{number}", f"s{number}", [])

    context = memory.build_prompt_context()
    assert "body-of-1" not in context
    assert "body-of-2" not in context
    assert "body-of-3" in context and "body-of-4" in context
    assert "s1" in context


def test_recommit_replaces_entries():
    memory = _memory()
    memory.commit_unit(1, "First", "old", "old summary", [])
    memory.commit_unit(1, "First", "new", "new summary", [])

    assert memory.get_unit(1) == "new"
    assert [w.summary for w in memory.summaries()] == ["new summary"]
    assert memory.hot_units == [1]


def test_initialize_only_once():
    memory = _memory()
    assert memory.initialize("X", "A", "B", "C", []) is True
    assert memory.initialize("Y", "A", "B", "C", []) is False
    assert memory.state.thesis == "X"


def test_decisions_and_promises_in_context():
    memory = _memory(recent_decisions=1)
    memory.record_decision("Use plain language", 1)
    memory.record_decision("Avoid jargon", 2)
    index = memory.record_promise("We will cover habits", 1)
    memory.record_promise("Examples later", 1)
    assert memory.fulfill_promise(index, 3) is True
    assert memory.fulfill_promise(99, 3) is False

    context = memory.build_prompt_context()
    assert "Avoid jargon" in context
    assert "Use plain language" not in context
    assert "Examples later" in context
    assert "We will cover habits" not in context


def test_style_guide_enters_digest():
    memory = _memory()
    memory.update_style_guide(StyleGuide(voice="warm", avoid_list=["hype"]))
    assert "Voice: warm" in memory.permanent_digest
    assert "Avoid: hype" in memory.permanent_digest


def test_state_survives_reload():
    store = InMemoryStore()
    memory = _memory(store)
    memory.initialize("X", "A", "B", "C", ["calm"])
    memory.commit_unit(1, "One", "text", "summary", ["k"])

    reloaded = _memory(store)
    assert reloaded.initialized
    assert reloaded.committed_units == [1]
    assert reloaded.hot_units == [1]
    assert reloaded.permanent_digest == memory.permanent_digest


def test_write_failure_is_retried_then_counted():
    store = FailingStore(failures=1)
    memory = _memory(store, write_attempts=2)
    memory.record_decision("d", 1)
    assert memory.write_failures == 0

    store.failures = 5
    memory.record_decision("e", 1)
    assert memory.write_failures == 1
    assert [d.decision for d in memory.state.key_decisions] == ["d", "e"]


def test_clear_keeps_identity():
    memory = _memory()
    memory.initialize("X", "A", "B", "C", [])
    memory.commit_unit(1, "One", "text", "summary", [])
    memory.clear()
    assert memory.committed_units == []
    assert memory.initialized


def test_json_store_round_trip(tmp_path):
    store = JsonMemoryStore(str(tmp_path))
    memory = TieredContextMemory("my book/1", store)
    memory.initialize("X", "A", "B", "C", [])
    memory.commit_unit(2, "Two", "text two", "summary", [])

    files = sorted(p.name for p in tmp_path.iterdir())
    assert files == ["book-context-my_book_1.json", "book-memory-my_book_1.json"]
    payload = json.loads((tmp_path / "book-memory-my_book_1.json").read_text())
    assert payload["cold"] == {"2": "text two"}

    reloaded = TieredContextMemory("my book/1", JsonMemoryStore(str(tmp_path)))
    assert reloaded.get_unit(2) == "text two"

    store.delete("my book/1")
    assert list(tmp_path.iterdir()) == []


def test_json_store_ignores_corrupted_files(tmp_path):
    (tmp_path / "book-context-b.json").write_text("{not json")
    store = JsonMemoryStore(str(tmp_path))
    assert store.load_context("b") is None
    assert store.load_memory("b") is None


def test_json_store_raises_persistence_error(tmp_path):
    blocker = tmp_path / "file"
    blocker.write_text("x")
    store = JsonMemoryStore(str(blocker / "sub"))
    memory = TieredContextMemory("b", InMemoryStore())
    with pytest.raises(PersistenceWriteError):
        store.save_context(memory.state)
