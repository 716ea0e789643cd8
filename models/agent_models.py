# models/agent_models.py
"""Structures exchanged between the panel, gate and writing agents."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class AgentBaseModel(BaseModel):
    """Base model supporting mapping style access."""

    model_config = ConfigDict(from_attributes=True, extra="allow")

    def __getitem__(self, item: str) -> Any:  # pragma: no cover - convenience
        return getattr(self, item)

    def get(
        self, item: str, default: Any = None
    ) -> Any:  # pragma: no cover - convenience
        return getattr(self, item, default)


class PerspectiveProfile(AgentBaseModel):
    """A reviewer viewpoint used to generate critique questions."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    id: str
    name: str
    focus_descriptors: list[str] = Field(default_factory=list)
    questioning_style: str = ""
    engagement_level: int = Field(default=7, ge=0, le=10)
    topical_interests: list[str] = Field(default_factory=list)
    background: str = ""


class RankedQuestion(AgentBaseModel):
    text: str
    source_profile_id: str
    vote_count: int = 0


class GateResult(AgentBaseModel):
    name: str
    passed: bool
    score: float
    max_score: float
    feedback: str = ""


class QualityAssessment(AgentBaseModel):
    gates: list[GateResult] = Field(default_factory=list)
    total_score: float = 0
    max_possible_score: float = 0
    blocking_issues: list[str] = Field(default_factory=list)
    revision_suggestions: list[str] = Field(default_factory=list)
    overall_passed: bool = False


class ConceptEntry(AgentBaseModel):
    name: str
    definition: str = ""


class EntityEntry(AgentBaseModel):
    name: str
    kind: str = ""
    description: str = ""


class UnitMetadata(AgentBaseModel):
    """Summary and book-state deltas pulled from a finished unit."""

    summary: str = ""
    key_points: list[str] = Field(default_factory=list)
    concepts: list[ConceptEntry] = Field(default_factory=list)
    decisions: list[str] = Field(default_factory=list)
    entities: list[EntityEntry] = Field(default_factory=list)


class ResearchResult(AgentBaseModel):
    summary: str = ""
    statistics: list[str] = Field(default_factory=list)
    trends: list[str] = Field(default_factory=list)
    quotes: list[str] = Field(default_factory=list)
    citations: list[str] = Field(default_factory=list)

    def is_empty(self) -> bool:
        return not (
            self.summary
            or self.statistics
            or self.trends
            or self.quotes
            or self.citations
        )


class AutoGenerationConfig(BaseModel):
    """Knobs for the standalone reader-discussion simulation."""

    questions_per_persona: int = Field(default=2, ge=1)
    voting_rounds: int = Field(default=1, ge=1)
    debate_depth: int = Field(default=1, ge=0)
    persona_count: int = Field(default=6, ge=1)


class DebateAnswer(AgentBaseModel):
    profile_id: str
    text: str
    round: int = 0


class Debate(AgentBaseModel):
    question: RankedQuestion
    answers: list[DebateAnswer] = Field(default_factory=list)


class DiscussionTranscript(AgentBaseModel):
    unit_title: str
    participants: list[str] = Field(default_factory=list)
    questions: list[RankedQuestion] = Field(default_factory=list)
    debates: list[Debate] = Field(default_factory=list)
