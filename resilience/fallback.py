# resilience/fallback.py
"""Primary attempt plus an ordered chain of fallback strategies."""

from __future__ import annotations

import asyncio
import re
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, replace
from enum import Enum
from typing import Generic, TypeVar

import structlog
from pydantic import BaseModel, Field

from config import settings
from resilience.emergency_content import DEFAULT_TOPIC, minimal_prompt

logger = structlog.get_logger(__name__)

T = TypeVar("T")

MIN_REDUCED_WORDS = 100
DEFAULT_SIMPLIFIED_WORDS = 300
LOWER_TEMP_STEP = 0.3
MIN_TEMPERATURE = 0.1

_WORD_COUNT_PATTERN = re.compile(r"(\d+)(\s*(?:-\s*\d+\s*)?words)", re.IGNORECASE)


@dataclass(frozen=True)
class GenerationRequest:
    """Everything an attempt needs to issue one generation call."""

    prompt: str
    operation_kind: str = "section"
    temperature: float = 0.7
    max_words: int | None = None
    topic: str | None = None


def _reduced_words(request: GenerationRequest) -> int:
    base = request.max_words or DEFAULT_SIMPLIFIED_WORDS * 2
    return max(MIN_REDUCED_WORDS, int(base * 0.5))


def _reduce_length(request: GenerationRequest) -> GenerationRequest:
    target = _reduced_words(request)

    def _halve(match: re.Match[str]) -> str:
        return f"{max(MIN_REDUCED_WORDS, int(match.group(1)) // 2)}{match.group(2)}"

    prompt, replaced = _WORD_COUNT_PATTERN.subn(_halve, request.prompt)
    if not replaced:
        prompt = f"{prompt}\n\nKeep the response under {target} words."
    return replace(request, prompt=prompt, max_words=target)


def _simplify_prompt(request: GenerationRequest) -> GenerationRequest:
    lines = [line for line in request.prompt.splitlines() if line.strip()]
    target = request.max_words or DEFAULT_SIMPLIFIED_WORDS
    prompt = "\n".join(lines[:3]) + f"\n\nWrite {target} words maximum. Be concise and direct."
    return replace(request, prompt=prompt, max_words=target)


def _lower_temp(request: GenerationRequest) -> GenerationRequest:
    return replace(
        request,
        temperature=round(max(MIN_TEMPERATURE, request.temperature - LOWER_TEMP_STEP), 2),
    )


def _split_task(request: GenerationRequest) -> GenerationRequest:
    target = _reduced_words(request)
    prompt = (
        "Complete only the first part of the task below. Stop after roughly "
        f"{target} words at a natural break.\n\n{request.prompt}"
    )
    return replace(request, prompt=prompt, max_words=target)


def _minimal(request: GenerationRequest) -> GenerationRequest:
    prompt = minimal_prompt(request.operation_kind, request.topic or DEFAULT_TOPIC)
    return replace(request, prompt=prompt, max_words=MIN_REDUCED_WORDS)


class FallbackStrategy(str, Enum):
    RETRY = "retry"
    REDUCE_LENGTH = "reduce_length"
    SIMPLIFY_PROMPT = "simplify_prompt"
    LOWER_TEMP = "lower_temp"
    SPLIT_TASK = "split_task"
    MINIMAL = "minimal"

    def transform(self, request: GenerationRequest) -> GenerationRequest:
        """Reshape ``request`` for an attempt made under this strategy."""
        return _TRANSFORMS[self](request)

    @property
    def backoff_seconds(self) -> float:
        if self is FallbackStrategy.RETRY:
            return settings.FALLBACK_RETRY_BACKOFF_SECONDS
        return settings.FALLBACK_STRATEGY_BACKOFF_SECONDS


_TRANSFORMS: dict[FallbackStrategy, Callable[[GenerationRequest], GenerationRequest]] = {
    FallbackStrategy.RETRY: lambda request: request,
    FallbackStrategy.REDUCE_LENGTH: _reduce_length,
    FallbackStrategy.SIMPLIFY_PROMPT: _simplify_prompt,
    FallbackStrategy.LOWER_TEMP: _lower_temp,
    FallbackStrategy.SPLIT_TASK: _split_task,
    FallbackStrategy.MINIMAL: _minimal,
}


class FallbackConfig(BaseModel):
    max_retries: int = Field(default=3, ge=1)
    strategies: list[FallbackStrategy] = Field(
        default_factory=lambda: [
            FallbackStrategy.RETRY,
            FallbackStrategy.REDUCE_LENGTH,
            FallbackStrategy.MINIMAL,
        ]
    )
    emergency_mode: bool = False

    @classmethod
    def from_settings(cls) -> FallbackConfig:
        return cls(
            max_retries=settings.FALLBACK_MAX_RETRIES,
            strategies=[FallbackStrategy(s) for s in settings.FALLBACK_STRATEGIES],
        )

    def effective_strategies(self) -> list[FallbackStrategy]:
        if self.emergency_mode:
            return [FallbackStrategy.MINIMAL]
        return list(self.strategies)


@dataclass
class FallbackOutcome(Generic[T]):
    succeeded: bool
    strategy_used: str
    attempts_used: int
    degraded: bool
    payload: T | None = None
    error_message: str | None = None


def should_enter_emergency_mode(
    recent_failures: int, threshold: int = settings.EMERGENCY_FAILURE_THRESHOLD
) -> bool:
    return recent_failures >= threshold


class ResilientExecutor:
    """Runs an operation through the primary attempt and the fallback chain.

    ``run`` never raises for operation errors; an exhausted chain comes back
    as an outcome with ``succeeded=False`` for the caller to substitute.
    """

    def __init__(
        self,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        backoff_scale: float = 1.0,
    ) -> None:
        self._sleep = sleep
        self._backoff_scale = backoff_scale

    async def run(
        self,
        name: str,
        operation: Callable[[GenerationRequest], Awaitable[T]],
        request: GenerationRequest,
        config: FallbackConfig,
    ) -> FallbackOutcome[T]:
        try:
            payload = await operation(request)
            return FallbackOutcome(
                succeeded=True,
                payload=payload,
                strategy_used="primary",
                attempts_used=1,
                degraded=False,
            )
        except Exception as exc:
            last_error = str(exc) or type(exc).__name__
            logger.warning("Primary attempt failed.", operation=name, error=last_error)

        attempts = 1
        for strategy in config.effective_strategies():
            if attempts >= config.max_retries:
                logger.info(
                    "Max retries reached.", operation=name, max_retries=config.max_retries
                )
                break
            attempts += 1
            await self._sleep(strategy.backoff_seconds * self._backoff_scale)
            attempt_request = strategy.transform(request)
            logger.info(
                "Fallback attempt.",
                operation=name,
                attempt=attempts,
                strategy=strategy.value,
            )
            try:
                payload = await operation(attempt_request)
            except Exception as exc:
                last_error = str(exc) or type(exc).__name__
                logger.warning(
                    "Fallback strategy failed.",
                    operation=name,
                    strategy=strategy.value,
                    error=last_error,
                )
                continue
            outcome: FallbackOutcome[T] = FallbackOutcome(
                succeeded=True,
                payload=payload,
                strategy_used=strategy.value,
                attempts_used=attempts,
                degraded=True,
            )
            log_outcome(outcome, name)
            return outcome

        outcome = FallbackOutcome(
            succeeded=False,
            strategy_used="none",
            attempts_used=attempts,
            degraded=True,
            error_message=last_error,
        )
        log_outcome(outcome, name)
        return outcome

    async def run_with_timeout(
        self,
        operation: Callable[[], Awaitable[T]],
        timeout_ms: float,
        fallback_operation: Callable[[], Awaitable[T]],
    ) -> T:
        """Cancel ``operation`` after ``timeout_ms`` and use the fallback's result."""
        try:
            return await asyncio.wait_for(operation(), timeout=timeout_ms / 1000)
        except asyncio.TimeoutError:
            logger.warning("Operation timed out, using fallback.", timeout_ms=timeout_ms)
            return await fallback_operation()


def log_outcome(outcome: FallbackOutcome, name: str) -> None:
    if not outcome.succeeded:
        logger.error(
            "All fallback strategies exhausted.",
            operation=name,
            attempts=outcome.attempts_used,
            error=outcome.error_message,
        )
    elif outcome.degraded:
        logger.warning(
            "Degraded success.",
            operation=name,
            strategy=outcome.strategy_used,
            attempts=outcome.attempts_used,
        )
    else:
        logger.debug("Primary attempt succeeded.", operation=name)
