# tests/conftest.py
import os
import re
import sys
from collections.abc import Callable

import pytest

# Ensure repository root is on PYTHONPATH for tests
repo_root = os.path.abspath(os.path.join(os.path.dirname(__file__), os.pardir))
if repo_root not in sys.path:
    sys.path.insert(0, repo_root)

# Keep test runs away from real endpoints and the user's output directory
os.environ.setdefault("OPENAI_API_KEY", "test-key")
os.environ.setdefault("LOG_FILE", "")
os.environ.setdefault("ENABLE_RICH_PROGRESS", "false")

from resilience import (  # noqa: E402
    FallbackConfig,
    PerformanceLedger,
    ResilientExecutor,
    ResilientLLM,
)

Response = str | Exception | Callable[[str], str]


class ScriptedProvider:
    """Answers prompts by the first rule whose marker appears in the prompt."""

    def __init__(
        self, rules: list[tuple[str, Response]] | None = None, default: Response = ""
    ) -> None:
        self.rules = list(rules or [])
        self.default = default
        self.calls: list[dict] = []

    def add(self, marker: str, response: Response) -> None:
        self.rules.append((marker, response))

    def prompts_with(self, marker: str) -> list[str]:
        return [c["prompt"] for c in self.calls if marker in c["prompt"]]

    async def complete(
        self,
        prompt: str,
        model: str | None = None,
        temperature: float | None = None,
        operation_kind: str | None = None,
    ) -> str:
        self.calls.append(
            {
                "prompt": prompt,
                "model": model,
                "temperature": temperature,
                "operation_kind": operation_kind,
            }
        )
        response = next(
            (resp for marker, resp in self.rules if marker in prompt), self.default
        )
        if isinstance(response, Exception):
            raise response
        if callable(response):
            return response(prompt)
        return response


PERFECT_SCORES = (
    "COHERENCE: 9\nRELEVANCE: 9\nCLARITY: 9\nENGAGEMENT: 9\nCOMPLETENESS: 9\n"
    "ISSUES: none"
)
UNIT_METADATA = """SUMMARY: A unit about staying focused.
KEY_POINTS:
- Focus is trainable
- Depth beats breadth
CONCEPTS:
- Flow State: effortless concentration
DECISIONS:
- Prefer depth over breadth
ENTITIES:
- Deep Work Lab (Organization): a research group studying attention
- deep work lab: the same group again
"""


def unit_body(label: str, words: int) -> str:
    return f"## {label}\n\n" + " ".join(["insight"] * (words - 2))


def _reader_question(prompt: str) -> str:
    name = re.search(r"You are ([^,.\n]+)", prompt).group(1)
    return f"1. What would {name} need to try this tomorrow?"


def book_provider(unit_words: int = 800) -> ScriptedProvider:
    """Plausible answers for every prompt a book run sends."""
    return ScriptedProvider(
        [
            ("Analyze this book", "THESIS: Focus wins\nCORE_ARGUMENT: Depth beats breadth\n"
             "AUDIENCE: Engineers\nARCHETYPE: how-to\nTONE: calm, direct"),
            ("Define a writing style guide", "VOICE: Warm and direct\n"
             "VOCABULARY: intermediate\nAVOID:\n- hype"),
            ("Create a detailed structure", "1. Opening hook\n2. Three sections\n3. Close"),
            ("Write the complete unit", unit_body("Draft", unit_words)),
            ("Revise this unit", unit_body("Revised", unit_words)),
            ("Polish this unit", unit_body("Polished", unit_words)),
            ("You just read this unit.", _reader_question),
            ("reader discussion of this unit", _reader_question),
            ("Now each reader votes", "No strong preferences."),
            ("Score each dimension", PERFECT_SCORES),
            ("Check if this unit addresses", "Q1: YES\nQ2: YES\nQ3: YES"),
            ("Extract metadata from this unit", UNIT_METADATA),
            ("QUESTION:", "Start small and keep at it."),
        ]
    )


@pytest.fixture
def scripted_provider() -> ScriptedProvider:
    return ScriptedProvider()


@pytest.fixture
def fast_executor() -> ResilientExecutor:
    return ResilientExecutor(backoff_scale=0)


@pytest.fixture
def make_llm(fast_executor: ResilientExecutor):
    def _make(provider, **config) -> ResilientLLM:
        return ResilientLLM(
            provider,
            PerformanceLedger(),
            executor=fast_executor,
            fallback_config=FallbackConfig(**config) if config else FallbackConfig(),
        )

    return _make
