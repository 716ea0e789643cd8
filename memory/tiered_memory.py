# memory/tiered_memory.py
"""Book-level context plus permanent / warm / hot / cold memory of past units.

The cold store owns every committed unit's full text and is append-only by
unit number. The warm tier keeps one summary per unit and the hot tier only
keeps the numbers of the most recent units, whose text is read back from
the cold store when the prompt context is assembled.
"""

from __future__ import annotations

import structlog

from config import settings
from core.errors import PersistenceWriteError
from models import (
    BookContextState,
    ConceptIntroduction,
    KeyDecision,
    NamedEntity,
    ReaderPromise,
    StyleGuide,
    TieredMemorySnapshot,
    WarmEntry,
)
from storage.memory_store import MemoryStore

logger = structlog.get_logger(__name__)

TRUNCATION_MARKER = "...[truncated]"


def render_permanent_digest(state: BookContextState) -> str:
    """Always-included section: identity, style guide and concept names."""
    lines = [
        "=== BOOK CONTEXT ===",
        f"Thesis: {state.thesis}",
        f"Core Argument: {state.core_argument}",
        f"Target Audience: {state.audience}",
        f"Book Type: {state.archetype}",
        f"Tone: {', '.join(state.tone_markers)}",
        "",
    ]
    guide = state.style_guide
    if not guide.is_empty():
        lines.append("=== STYLE GUIDE ===")
        if guide.voice:
            lines.append(f"Voice: {guide.voice}")
        if guide.sentence_style:
            lines.append(f"Sentence Style: {guide.sentence_style}")
        if guide.vocabulary_level:
            lines.append(f"Vocabulary: {guide.vocabulary_level}")
        if guide.formatting_rules:
            lines.append("Formatting Rules:")
            lines.extend(f"  - {rule}" for rule in guide.formatting_rules)
        if guide.avoid_list:
            lines.append(f"Avoid: {', '.join(guide.avoid_list)}")
        if guide.examples_good:
            lines.append("Style Examples:")
            lines.extend(f'  - "{example}"' for example in guide.examples_good)
        lines.append("")
    if state.concept_introductions:
        lines.append("=== CONCEPTS INTRODUCED ===")
        lines.extend(
            f"- {c.name} (Unit {c.unit_number})" for c in state.concept_introductions
        )
        lines.append("")
    return "\n".join(lines)


class TieredContextMemory:
    """Per-book memory. Every mutation is persisted through ``store``."""

    def __init__(
        self,
        book_id: str,
        store: MemoryStore,
        hot_size: int = settings.HOT_TIER_SIZE,
        hot_char_limit: int = settings.HOT_TIER_CHAR_LIMIT,
        recent_decisions: int = settings.RECENT_DECISIONS_IN_CONTEXT,
        write_attempts: int = settings.PERSISTENCE_WRITE_ATTEMPTS,
    ) -> None:
        self.book_id = book_id
        self.store = store
        self.hot_size = hot_size
        self.hot_char_limit = hot_char_limit
        self.recent_decisions = recent_decisions
        self.write_attempts = max(1, write_attempts)
        self.write_failures = 0

        self.state = store.load_context(book_id) or BookContextState(book_id=book_id)
        snapshot = store.load_memory(book_id)
        self._warm: list[WarmEntry] = list(snapshot.warm) if snapshot else []
        self._hot: list[int] = list(snapshot.hot) if snapshot else []
        self._cold: dict[int, str] = dict(snapshot.cold) if snapshot else {}
        self.permanent_digest = render_permanent_digest(self.state)

    # --- book context state -------------------------------------------------

    @property
    def initialized(self) -> bool:
        return self.state.initialized

    def initialize(
        self,
        thesis: str,
        core_argument: str,
        audience: str,
        archetype: str,
        tone_markers: list[str],
    ) -> bool:
        """Set the book's identity once. Returns False when already set."""
        if self.state.initialized:
            logger.debug("Book context already initialized", book_id=self.book_id)
            return False
        self.state.thesis = thesis
        self.state.core_argument = core_argument
        self.state.audience = audience
        self.state.archetype = archetype
        self.state.tone_markers = list(tone_markers)
        self.state.initialized = True
        self._persist()
        logger.info("Book context initialized", book_id=self.book_id, archetype=archetype)
        return True

    def update_style_guide(self, style_guide: StyleGuide) -> None:
        self.state.style_guide = style_guide
        self._persist()

    def record_decision(self, decision: str, unit_number: int, reasoning: str = "") -> None:
        self.state.key_decisions.append(
            KeyDecision(decision=decision, unit_number=unit_number, reasoning=reasoning)
        )
        self._persist()

    def record_concept_introduction(
        self, name: str, unit_number: int, definition: str = ""
    ) -> bool:
        """Add a concept unless one with the same name (any case) exists."""
        key = name.strip().lower()
        if not key or any(c.name.lower() == key for c in self.state.concept_introductions):
            return False
        self.state.concept_introductions.append(
            ConceptIntroduction(name=name.strip(), unit_number=unit_number, definition=definition)
        )
        self._persist()
        return True

    def record_promise(self, text: str, unit_number: int) -> int:
        self.state.promises.append(ReaderPromise(text=text, made_in_unit=unit_number))
        self._persist()
        return len(self.state.promises) - 1

    def fulfill_promise(self, index: int, unit_number: int) -> bool:
        if not 0 <= index < len(self.state.promises):
            logger.warning("Unknown promise index", index=index, book_id=self.book_id)
            return False
        promise = self.state.promises[index]
        promise.status = "fulfilled"
        promise.fulfilled_in_unit = unit_number
        self._persist()
        return True

    def record_entity(
        self, name: str, kind: str = "", description: str = "", unit_number: int = 0
    ) -> bool:
        key = name.strip().lower()
        if not key or any(e.name.lower() == key for e in self.state.named_entities):
            return False
        self.state.named_entities.append(
            NamedEntity(name=name.strip(), kind=kind, description=description, first_unit=unit_number)
        )
        self._persist()
        return True

    # --- tiers ----------------------------------------------------------------

    def commit_unit(
        self,
        number: int,
        title: str,
        full_text: str,
        summary: str,
        key_points: list[str],
    ) -> None:
        entry = WarmEntry(number=number, title=title, summary=summary, key_points=list(key_points))
        if number in self._cold:
            logger.info("Recommitting unit, replacing stored text", unit=number)
            self._warm = [w for w in self._warm if w.number != number]
            self._hot = [n for n in self._hot if n != number]
        self._cold[number] = full_text
        self._warm.append(entry)
        self._hot.append(number)
        while len(self._hot) > self.hot_size:
            self._hot.pop(0)
        self._persist()

    def get_unit(self, number: int) -> str | None:
        return self._cold.get(number)

    def summaries(self) -> list[WarmEntry]:
        return list(self._warm)

    @property
    def hot_units(self) -> list[int]:
        return list(self._hot)

    @property
    def committed_units(self) -> list[int]:
        return sorted(self._cold)

    def build_prompt_context(self) -> str:
        """The only text about past units that is ever sent to the provider."""
        sections = [self.permanent_digest]

        decisions = self.state.key_decisions[-self.recent_decisions :]
        if decisions:
            sections.append(
                "\n".join(
                    ["=== KEY DECISIONS MADE ==="]
                    + [f"- Unit {d.unit_number}: {d.decision}" for d in decisions]
                )
                + "\n"
            )

        pending = self.state.pending_promises()
        if pending:
            sections.append(
                "\n".join(
                    ["=== PROMISES TO FULFILL ==="]
                    + [f"- From Unit {p.made_in_unit}: {p.text}" for p in pending]
                )
                + "\n"
            )

        if self._warm:
            lines = ["=== PREVIOUS UNITS SUMMARY ==="]
            for entry in self._warm:
                lines.append(f'Unit {entry.number} - "{entry.title}":')
                lines.append(f"  Summary: {entry.summary}")
                lines.append(f"  Key Points: {'; '.join(entry.key_points)}")
                lines.append("")
            sections.append("\n".join(lines))

        if self._hot:
            titles = {entry.number: entry.title for entry in self._warm}
            lines = ["=== RECENT UNITS (Full Text) ==="]
            for number in self._hot:
                text = self._cold.get(number, "")
                if len(text) > self.hot_char_limit:
                    text = text[: self.hot_char_limit] + TRUNCATION_MARKER
                lines.append(f"\n--- Unit {number}: {titles.get(number, '')} ---")
                lines.append(text)
            sections.append("\n".join(lines) + "\n")

        return "\n".join(sections)

    def clear(self) -> None:
        """Forget all committed units. Book identity is kept."""
        self._warm = []
        self._hot = []
        self._cold = {}
        self._persist()

    def snapshot(self) -> TieredMemorySnapshot:
        return TieredMemorySnapshot(
            book_id=self.book_id,
            permanent_digest=self.permanent_digest,
            warm=list(self._warm),
            hot=list(self._hot),
            cold=dict(self._cold),
        )

    # --- persistence ------------------------------------------------------------

    def _persist(self) -> None:
        self.permanent_digest = render_permanent_digest(self.state)
        snapshot = self.snapshot()
        for attempt in range(1, self.write_attempts + 1):
            try:
                self.store.save_context(self.state)
                self.store.save_memory(snapshot)
                return
            except PersistenceWriteError as exc:
                logger.warning(
                    "Persisting book memory failed",
                    book_id=self.book_id,
                    attempt=attempt,
                    error=str(exc),
                )
        self.write_failures += 1
        logger.error(
            "Giving up on persisting book memory, continuing in memory",
            book_id=self.book_id,
        )
