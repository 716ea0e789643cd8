# orchestration/models.py
"""Shared dataclasses for orchestration services."""

from dataclasses import dataclass, field
from typing import Any

from models import QualityAssessment, RankedQuestion


@dataclass
class UnitReport:
    """Outcome of one unit's pipeline as surfaced to the caller."""

    unit_number: int
    title: str
    final_text: str
    quality: QualityAssessment | None
    critical_feedback: list[RankedQuestion] = field(default_factory=list)
    forwarded_feedback: list[str] = field(default_factory=list)
    degraded: bool = False
    strategies: dict[str, str | None] = field(default_factory=dict)
    reloops: int = 0
    version: int | None = None
    error: str | None = None

    @property
    def failed(self) -> bool:
        return self.error is not None

    @property
    def passed(self) -> bool:
        return bool(self.quality and self.quality.overall_passed)

    def to_dict(self) -> dict[str, Any]:
        return {
            "unit_number": self.unit_number,
            "title": self.title,
            "words": len(self.final_text.split()),
            "quality": self.quality.model_dump() if self.quality else None,
            "critical_feedback": [q.model_dump() for q in self.critical_feedback],
            "forwarded_feedback": list(self.forwarded_feedback),
            "degraded": self.degraded,
            "strategies": dict(self.strategies),
            "reloops": self.reloops,
            "version": self.version,
            "error": self.error,
        }


@dataclass
class BookRunReport:
    book_id: str
    units: list[UnitReport] = field(default_factory=list)
    skipped_units: list[int] = field(default_factory=list)
    ledger: dict[str, dict[str, Any]] = field(default_factory=dict)
    llm_calls: int = 0
    degraded_calls: int = 0
    memory_write_failures: int = 0

    @property
    def failed_units(self) -> list[int]:
        return [unit.unit_number for unit in self.units if unit.failed]

    def to_dict(self) -> dict[str, Any]:
        return {
            "book_id": self.book_id,
            "units": [unit.to_dict() for unit in self.units],
            "skipped_units": list(self.skipped_units),
            "failed_units": self.failed_units,
            "ledger": self.ledger,
            "llm_calls": self.llm_calls,
            "degraded_calls": self.degraded_calls,
            "memory_write_failures": self.memory_write_failures,
        }
