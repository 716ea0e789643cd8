# config.py
"""Configuration settings for the Tome book generation pipeline.
Uses Pydantic BaseSettings for automatic environment variable loading.
"""

from __future__ import annotations

import os

import structlog
from dotenv import load_dotenv
from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

load_dotenv()

logger = structlog.get_logger()


class TomeSettings(BaseSettings):
    """Full configuration for the Tome system."""

    # API and Provider Configuration
    LLM_PROVIDER: str = "openai"  # "openai" (chat/completions) or "ollama"
    OPENAI_API_BASE: str = "http://127.0.0.1:8080/v1"
    OPENAI_API_KEY: str = "nope"
    OLLAMA_API_BASE: str = "http://127.0.0.1:11434"

    # Base Model Definitions
    DEFAULT_MODEL: str = "Qwen3-14B"
    SMALL_MODEL: str = "Qwen3-4B"

    # Dynamic Model Assignments (set from DEFAULT_MODEL if not specified in env)
    DRAFTING_MODEL: str | None = None
    CRITIQUE_MODEL: str | None = None
    EVALUATION_MODEL: str | None = None
    SETUP_MODEL: str | None = None

    # Temperature Settings
    TEMPERATURE_SETUP: float = 0.5
    TEMPERATURE_SKELETON: float = 0.6
    TEMPERATURE_DRAFTING: float = 0.8
    TEMPERATURE_REVISION: float = 0.6
    TEMPERATURE_POLISH: float = 0.4
    TEMPERATURE_CRITIQUE: float = 0.7
    TEMPERATURE_VOTING: float = 0.3
    TEMPERATURE_EVALUATION: float = 0.2
    TEMPERATURE_SUMMARY: float = 0.3
    TEMPERATURE_RESEARCH: float = 0.4

    # HTTP Client Settings
    HTTPX_TIMEOUT: float = 900.0
    MAX_CONCURRENT_LLM_CALLS: int = 2
    ENABLE_LLM_NO_THINK_DIRECTIVE: bool = True
    TIKTOKEN_DEFAULT_ENCODING: str = "cl100k_base"
    FALLBACK_CHARS_PER_TOKEN: float = 4.0

    # Resilience
    FALLBACK_MAX_RETRIES: int = 3
    FALLBACK_STRATEGIES: list[str] = ["retry", "reduce_length", "minimal"]
    FALLBACK_RETRY_BACKOFF_SECONDS: float = 2.0
    FALLBACK_STRATEGY_BACKOFF_SECONDS: float = 3.0
    EMERGENCY_FAILURE_THRESHOLD: int = 3
    LEDGER_CAPACITY: int = 500

    # Tiered Memory
    HOT_TIER_SIZE: int = 2
    HOT_TIER_CHAR_LIMIT: int = 2000
    RECENT_DECISIONS_IN_CONTEXT: int = 5
    PERSISTENCE_WRITE_ATTEMPTS: int = 2

    # Writing Targets
    TARGET_UNIT_WORDS: int = 1200
    SKELETON_MAX_WORDS: int = 400

    # Quality Gate
    GATE_MIN_WORDS: int = 600
    GATE_MAX_WORDS: int = 2000
    GATE_PARTIAL_WORDS: int = 400
    GATE_MAX_BULLETS: int = 5
    GATE_DIMENSION_PASS_SCORE: int = 6
    GATE_PASS_RATIO: float = 0.6
    MAX_QUALITY_RELOOPS: int = 0

    # Perspective Panel
    CRITIQUE_PANEL_SIZE: int = 5
    CRITICAL_FEEDBACK_COUNT: int = 3
    FORWARDED_FEEDBACK_COUNT: int = 2
    ENABLE_CALIBRATED_PERSONAS: bool = True
    PERSPECTIVE_PROFILES_FILE: str | None = None

    # Research
    ENABLE_RESEARCH: bool = True
    RESEARCH_CACHE_TTL_SECONDS: int = 24 * 60 * 60
    RESEARCH_CACHE_SIZE: int = 64

    # Output and File Paths
    BASE_OUTPUT_DIR: str = "tome_output"
    UNITS_DIR: str = "units"
    MEMORY_DIR: str = "memory"

    # Logging & UI
    LOG_LEVEL_STR: str = Field("INFO", alias="TOME_LOG_LEVEL")
    LOG_FORMAT: str = (
        "%(asctime)s - %(levelname)s - [%(name)s:%(funcName)s:%(lineno)d] - %(message)s"
    )
    LOG_DATE_FORMAT: str = "%Y-%m-%d %H:%M:%S"
    LOG_FILE: str | None = "tome_run.log"
    ENABLE_RICH_PROGRESS: bool = True

    @model_validator(mode="after")
    def set_dynamic_model_defaults(self) -> TomeSettings:
        if self.DRAFTING_MODEL is None:
            self.DRAFTING_MODEL = self.DEFAULT_MODEL
        if self.CRITIQUE_MODEL is None:
            self.CRITIQUE_MODEL = self.DEFAULT_MODEL
        if self.EVALUATION_MODEL is None:
            self.EVALUATION_MODEL = self.DEFAULT_MODEL
        if self.SETUP_MODEL is None:
            self.SETUP_MODEL = self.SMALL_MODEL
        return self

    model_config = SettingsConfigDict(
        env_prefix="", env_file=".env", extra="ignore", populate_by_name=True
    )


settings = TomeSettings()

UNITS_OUTPUT_DIR = os.path.join(settings.BASE_OUTPUT_DIR, settings.UNITS_DIR)
MEMORY_OUTPUT_DIR = os.path.join(settings.BASE_OUTPUT_DIR, settings.MEMORY_DIR)
