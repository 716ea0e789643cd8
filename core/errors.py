# core/errors.py
"""Exception taxonomy for the generation pipeline."""

from __future__ import annotations

from typing import Any


class TomeError(Exception):
    """Base class for pipeline errors."""


class TransientProviderError(TomeError):
    """A provider call timed out, returned a non-2xx status or a malformed body."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class ExhaustedFallbackError(TomeError):
    """Every strategy of a resilient call failed."""

    def __init__(
        self,
        name: str,
        attempts: int,
        last_error: str | None,
        *,
        outcome: Any = None,
    ) -> None:
        super().__init__(
            f"'{name}' exhausted after {attempts} attempt(s): {last_error or 'unknown error'}"
        )
        self.name = name
        self.attempts = attempts
        self.last_error = last_error
        self.outcome = outcome


class ParseError(TomeError):
    """Model output did not have the expected shape."""


class PersistenceWriteError(TomeError):
    """Serializing state to durable storage failed."""
