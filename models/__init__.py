"""Central package for Tome data models."""

from .agent_models import (
    AgentBaseModel,
    AutoGenerationConfig,
    ConceptEntry,
    Debate,
    DebateAnswer,
    DiscussionTranscript,
    EntityEntry,
    GateResult,
    PerspectiveProfile,
    QualityAssessment,
    RankedQuestion,
    ResearchResult,
    UnitMetadata,
)
from .book_models import (
    BookContextState,
    ConceptIntroduction,
    KeyDecision,
    NamedEntity,
    ReaderPromise,
    StyleGuide,
    TieredMemorySnapshot,
    WarmEntry,
)
from .user_input_models import BookSpecModel, UnitSpecModel

__all__ = [
    "AgentBaseModel",
    "AutoGenerationConfig",
    "ConceptEntry",
    "Debate",
    "DebateAnswer",
    "DiscussionTranscript",
    "EntityEntry",
    "GateResult",
    "PerspectiveProfile",
    "QualityAssessment",
    "RankedQuestion",
    "ResearchResult",
    "UnitMetadata",
    "BookContextState",
    "ConceptIntroduction",
    "KeyDecision",
    "NamedEntity",
    "ReaderPromise",
    "StyleGuide",
    "TieredMemorySnapshot",
    "WarmEntry",
    "BookSpecModel",
    "UnitSpecModel",
]
