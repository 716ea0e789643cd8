# resilience/performance_ledger.py
"""Timing ledger for generation calls and the adaptive timeouts derived from it."""

from __future__ import annotations

import time
from collections import deque
from collections.abc import Callable, Iterable
from dataclasses import asdict, dataclass
from typing import Any

import numpy as np
import structlog

from config import settings

logger = structlog.get_logger(__name__)

MIN_TIMEOUT_MS = 60_000
MAX_TIMEOUT_MS = 900_000
SAFETY_MARGIN_MS = 60_000
TREND_MULTIPLIER = 2.5
MIN_SUCCESS_SAMPLES = 3
RECENT_WINDOW = 10
DEGRADATION_MIN_SAMPLES = 10
DEGRADATION_WINDOW = 20
DEGRADATION_FACTOR = 1.5

DEFAULT_TIMEOUTS_MS: dict[str, int] = {
    "skeleton": 240_000,
    "section": 240_000,
    "question": 180_000,
    "answer": 180_000,
    "analysis": 120_000,
    "revision": 300_000,
    "redraft": 300_000,
}
UNKNOWN_KIND_TIMEOUT_MS = 240_000

# Pipeline operation kinds mapped onto the timing classes above.
OPERATION_KIND_ALIASES: dict[str, str] = {
    "draft": "section",
    "polish": "revision",
    "research": "analysis",
    "metadata": "analysis",
    "evaluation": "analysis",
    "vote": "analysis",
    "setup": "analysis",
    "persona": "analysis",
}


def timing_class(operation_kind: str) -> str:
    return OPERATION_KIND_ALIASES.get(operation_kind, operation_kind)


@dataclass(frozen=True)
class OperationRecord:
    model_id: str
    operation_kind: str
    duration_ms: float
    timestamp_ms: float
    succeeded: bool
    output_length: int | None = None


@dataclass(frozen=True)
class PerformanceProfile:
    avg_duration: float
    min_duration: float
    max_duration: float
    success_rate: float
    sample_count: int
    recent_avg: float


def _now_ms() -> float:
    return time.time() * 1000


class PerformanceLedger:
    """Bounded record of call outcomes for one book run.

    Nothing in here raises: missing data yields the default timeout table.
    """

    def __init__(
        self,
        capacity: int = settings.LEDGER_CAPACITY,
        clock: Callable[[], float] = _now_ms,
    ) -> None:
        self.capacity = capacity
        self._clock = clock
        self._records: deque[OperationRecord] = deque(maxlen=capacity)

    def __len__(self) -> int:
        return len(self._records)

    @property
    def records(self) -> list[OperationRecord]:
        return list(self._records)

    def record(
        self,
        model: str,
        op_kind: str,
        duration_ms: float,
        succeeded: bool,
        output_length: int | None = None,
    ) -> None:
        self._records.append(
            OperationRecord(
                model_id=model,
                operation_kind=timing_class(op_kind),
                duration_ms=float(duration_ms),
                timestamp_ms=self._clock(),
                succeeded=succeeded,
                output_length=output_length,
            )
        )

    def _matching(self, model: str, op_kind: str | None = None) -> list[OperationRecord]:
        kind = timing_class(op_kind) if op_kind is not None else None
        return [
            r
            for r in self._records
            if r.model_id == model and (kind is None or r.operation_kind == kind)
        ]

    def profile(self, model: str, op_kind: str | None = None) -> PerformanceProfile | None:
        """Summary statistics for a model, optionally narrowed to one op kind."""
        samples = self._matching(model, op_kind)
        if not samples:
            return None
        durations = np.array([r.duration_ms for r in samples], dtype=float)
        successes = sum(1 for r in samples if r.succeeded)
        return PerformanceProfile(
            avg_duration=float(durations.mean()),
            min_duration=float(durations.min()),
            max_duration=float(durations.max()),
            success_rate=successes / len(samples),
            sample_count=len(samples),
            recent_avg=float(durations[-RECENT_WINDOW:].mean()),
        )

    def recommended_timeout(self, model: str, op_kind: str) -> int:
        """Adaptive timeout in milliseconds, always within [60s, 900s]."""
        kind = timing_class(op_kind)
        successes = [r.duration_ms for r in self._matching(model, kind) if r.succeeded]
        if len(successes) < MIN_SUCCESS_SAMPLES:
            return DEFAULT_TIMEOUTS_MS.get(kind, UNKNOWN_KIND_TIMEOUT_MS)

        recent = np.array(successes[-RECENT_WINDOW:], dtype=float)
        trend = float(recent.mean()) * TREND_MULTIPLIER
        safety = max(successes) + SAFETY_MARGIN_MS
        timeout = max(trend, safety)
        return int(round(min(max(timeout, MIN_TIMEOUT_MS), MAX_TIMEOUT_MS)))

    def is_degrading(self, model: str) -> bool:
        """Recent successful calls are much slower than the model's usual pace.

        The sample threshold counts every call; the averages use successes only
        so timeouts do not skew the signal.
        """
        samples = self._matching(model)
        if len(samples) < DEGRADATION_MIN_SAMPLES:
            return False
        successes = [r.duration_ms for r in samples if r.succeeded]
        recent = [r.duration_ms for r in samples[-DEGRADATION_WINDOW:] if r.succeeded]
        if not successes or not recent:
            return False
        overall_avg = float(np.mean(successes))
        recent_avg = float(np.mean(recent))
        return recent_avg > DEGRADATION_FACTOR * overall_avg

    def report(self) -> dict[str, dict[str, Any]]:
        """Per-model summary used for the end-of-run report."""
        summary: dict[str, dict[str, Any]] = {}
        for model in sorted({r.model_id for r in self._records}):
            model_profile = self.profile(model)
            if model_profile is None:
                continue
            kinds = sorted({r.operation_kind for r in self._matching(model)})
            summary[model] = {
                "average_duration_ms": round(model_profile.avg_duration),
                "success_rate": round(model_profile.success_rate, 3),
                "total_operations": model_profile.sample_count,
                "degrading": self.is_degrading(model),
                "recommended_timeouts_ms": {
                    kind: self.recommended_timeout(model, kind) for kind in kinds
                },
            }
        return summary

    def clear_older_than(self, days: float = 7) -> int:
        """Drop records older than ``days``; returns how many were removed."""
        cutoff = self._clock() - days * 24 * 60 * 60 * 1000
        kept = [r for r in self._records if r.timestamp_ms >= cutoff]
        removed = len(self._records) - len(kept)
        self._records = deque(kept, maxlen=self.capacity)
        if removed:
            logger.info("Cleared old performance records.", removed=removed)
        return removed

    def export_records(self) -> list[dict[str, Any]]:
        return [asdict(r) for r in self._records]

    def import_records(self, rows: Iterable[dict[str, Any]]) -> int:
        """Load previously exported rows, skipping malformed ones."""
        imported = 0
        for row in rows:
            try:
                record = OperationRecord(
                    model_id=str(row["model_id"]),
                    operation_kind=timing_class(str(row["operation_kind"])),
                    duration_ms=float(row["duration_ms"]),
                    timestamp_ms=float(row["timestamp_ms"]),
                    succeeded=bool(row["succeeded"]),
                    output_length=row.get("output_length"),
                )
            except (KeyError, TypeError, ValueError):
                logger.warning("Skipping malformed performance record.", row=row)
                continue
            self._records.append(record)
            imported += 1
        return imported
