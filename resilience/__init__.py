"""Adaptive timeouts, fallback chains and emergency content for generation calls."""

from .emergency_content import emergency_content, extract_topic
from .fallback import (
    FallbackConfig,
    FallbackOutcome,
    FallbackStrategy,
    GenerationRequest,
    ResilientExecutor,
    should_enter_emergency_mode,
)
from .performance_ledger import OperationRecord, PerformanceLedger, PerformanceProfile
from .resilient_llm import GenerationResult, ResilientLLM

__all__ = [
    "OperationRecord",
    "PerformanceLedger",
    "PerformanceProfile",
    "FallbackConfig",
    "FallbackOutcome",
    "FallbackStrategy",
    "GenerationRequest",
    "ResilientExecutor",
    "should_enter_emergency_mode",
    "emergency_content",
    "extract_topic",
    "GenerationResult",
    "ResilientLLM",
]
