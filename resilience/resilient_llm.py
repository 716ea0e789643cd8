# resilience/resilient_llm.py
"""Generation gateway combining the provider, the ledger and the fallback chain."""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass

import structlog

from config import settings
from core.errors import ExhaustedFallbackError, TransientProviderError
from core.llm_interface import TextGenerationProvider
from resilience.emergency_content import emergency_content, extract_topic
from resilience.fallback import (
    FallbackConfig,
    FallbackOutcome,
    GenerationRequest,
    ResilientExecutor,
    should_enter_emergency_mode,
)
from resilience.performance_ledger import PerformanceLedger

logger = structlog.get_logger(__name__)


@dataclass
class GenerationResult:
    text: str
    outcome: FallbackOutcome[str]
    emergency: bool = False

    @property
    def degraded(self) -> bool:
        return self.outcome.degraded or self.emergency


class ResilientLLM:
    """Every generation call of a book run goes through here.

    Timeouts come from the ledger, failures walk the fallback chain and an
    exhausted chain is replaced with emergency content, so ``generate``
    always returns non-empty text.
    """

    def __init__(
        self,
        provider: TextGenerationProvider,
        ledger: PerformanceLedger,
        executor: ResilientExecutor | None = None,
        fallback_config: FallbackConfig | None = None,
        emergency_threshold: int = settings.EMERGENCY_FAILURE_THRESHOLD,
    ) -> None:
        self.provider = provider
        self.ledger = ledger
        self.executor = executor or ResilientExecutor()
        self.fallback_config = fallback_config or FallbackConfig.from_settings()
        self.emergency_threshold = emergency_threshold
        self.recent_failures = 0
        self.call_count = 0
        self.degraded_count = 0

    def _config_for_call(self) -> FallbackConfig:
        if self.fallback_config.emergency_mode or not should_enter_emergency_mode(
            self.recent_failures, self.emergency_threshold
        ):
            return self.fallback_config
        logger.warning(
            "Entering emergency mode after repeated failures.",
            recent_failures=self.recent_failures,
        )
        return self.fallback_config.model_copy(update={"emergency_mode": True})

    async def _attempt(self, model: str, request: GenerationRequest) -> str:
        timeout_ms = self.ledger.recommended_timeout(model, request.operation_kind)
        started = time.monotonic()
        try:
            text = await asyncio.wait_for(
                self.provider.complete(
                    request.prompt,
                    model=model,
                    temperature=request.temperature,
                    operation_kind=request.operation_kind,
                ),
                timeout=timeout_ms / 1000,
            )
        except asyncio.TimeoutError as exc:
            self._record(model, request, started, succeeded=False)
            raise TransientProviderError(
                f"Generation timed out after {timeout_ms / 1000:.0f}s"
            ) from exc
        except Exception:
            self._record(model, request, started, succeeded=False)
            raise

        if not text or not text.strip():
            self._record(model, request, started, succeeded=False)
            raise TransientProviderError("Empty response from provider")
        self._record(model, request, started, succeeded=True, output_length=len(text))
        return text

    def _record(
        self,
        model: str,
        request: GenerationRequest,
        started: float,
        *,
        succeeded: bool,
        output_length: int | None = None,
    ) -> None:
        duration_ms = (time.monotonic() - started) * 1000
        self.ledger.record(
            model, request.operation_kind, duration_ms, succeeded, output_length
        )

    async def generate(
        self,
        prompt: str,
        *,
        model: str,
        operation_kind: str,
        temperature: float = 0.7,
        topic: str | None = None,
        max_words: int | None = None,
    ) -> GenerationResult:
        self.call_count += 1
        topic = topic or extract_topic(prompt)
        request = GenerationRequest(
            prompt=prompt,
            operation_kind=operation_kind,
            temperature=temperature,
            max_words=max_words,
            topic=topic,
        )
        if self.ledger.is_degrading(model):
            logger.warning("Model performance is degrading.", model=model)

        try:
            return await self._run_chain(model, request)
        except ExhaustedFallbackError as exc:
            self.recent_failures += 1
            self.degraded_count += 1
            logger.warning(
                "Substituting emergency content.",
                error=str(exc),
                recent_failures=self.recent_failures,
            )
            return GenerationResult(
                text=emergency_content(operation_kind, request.topic or ""),
                outcome=exc.outcome,
                emergency=True,
            )

    async def _run_chain(
        self, model: str, request: GenerationRequest
    ) -> GenerationResult:
        outcome = await self.executor.run(
            f"{request.operation_kind}:{request.topic}",
            lambda attempt_request: self._attempt(model, attempt_request),
            request,
            self._config_for_call(),
        )
        if not outcome.succeeded or not outcome.payload:
            raise ExhaustedFallbackError(
                request.operation_kind,
                outcome.attempts_used,
                outcome.error_message,
                outcome=outcome,
            )
        self.recent_failures = 0
        if outcome.degraded:
            self.degraded_count += 1
        return GenerationResult(text=outcome.payload, outcome=outcome)
