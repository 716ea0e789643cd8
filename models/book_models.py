# models/book_models.py
"""Book-level state and the tiered memory snapshot persisted per book."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field

PromiseStatus = Literal["pending", "fulfilled"]


class StyleGuide(BaseModel):
    voice: str = ""
    sentence_style: str = ""
    vocabulary_level: str = ""
    formatting_rules: list[str] = Field(default_factory=list)
    avoid_list: list[str] = Field(default_factory=list)
    examples_good: list[str] = Field(default_factory=list)
    examples_bad: list[str] = Field(default_factory=list)

    def is_empty(self) -> bool:
        return not (self.voice or self.sentence_style or self.formatting_rules)


class KeyDecision(BaseModel):
    decision: str
    unit_number: int
    reasoning: str = ""


class ConceptIntroduction(BaseModel):
    name: str
    unit_number: int
    definition: str = ""


class ReaderPromise(BaseModel):
    text: str
    made_in_unit: int
    fulfilled_in_unit: int | None = None
    status: PromiseStatus = "pending"


class NamedEntity(BaseModel):
    name: str
    kind: str = ""
    description: str = ""
    first_unit: int = 0


class BookContextState(BaseModel):
    book_id: str
    initialized: bool = False
    thesis: str = ""
    core_argument: str = ""
    audience: str = ""
    archetype: str = ""
    tone_markers: list[str] = Field(default_factory=list)
    style_guide: StyleGuide = Field(default_factory=StyleGuide)
    key_decisions: list[KeyDecision] = Field(default_factory=list)
    concept_introductions: list[ConceptIntroduction] = Field(default_factory=list)
    promises: list[ReaderPromise] = Field(default_factory=list)
    named_entities: list[NamedEntity] = Field(default_factory=list)

    def pending_promises(self) -> list[ReaderPromise]:
        return [p for p in self.promises if p.status == "pending"]


class WarmEntry(BaseModel):
    number: int
    title: str
    summary: str
    key_points: list[str] = Field(default_factory=list)


class TieredMemorySnapshot(BaseModel):
    """Serialized form of the warm, hot and cold tiers.

    ``cold`` owns the unit text. ``hot`` only holds unit numbers into it.
    """

    book_id: str
    permanent_digest: str = ""
    warm: list[WarmEntry] = Field(default_factory=list)
    hot: list[int] = Field(default_factory=list)
    cold: dict[int, str] = Field(default_factory=dict)
