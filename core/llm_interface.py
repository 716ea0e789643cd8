# core/llm_interface.py
"""
Handles all direct interactions with the text-generation endpoint.
Includes the single-attempt completion call, response cleaning and
token counting helpers. Retries and fallbacks are owned by the
resilience layer, so every failure here surfaces as a
TransientProviderError.

Licensed under the Apache License, Version 2.0 (the "License");
you may not use this file except in compliance with the License.
You may obtain a copy of the License at

    http://www.apache.org/licenses/LICENSE-2.0

Unless required by applicable law or agreed to in writing, software
distributed under the License is distributed on an "AS IS" BASIS,
WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
See the License for the specific language governing permissions and
limitations under the License.

Copyright 2025 Dennis Lewis
"""

# Standard library imports
import asyncio
import functools
import json
import re

# Type hints
from typing import Any, Protocol

import httpx

# Third-party imports
import structlog
import tiktoken

# Local imports
from config import settings
from core.errors import TransientProviderError

logger = structlog.get_logger(__name__)


class TextGenerationProvider(Protocol):
    """Anything that can turn a prompt into text."""

    async def complete(
        self,
        prompt: str,
        model: str | None = None,
        temperature: float | None = None,
        operation_kind: str | None = None,
    ) -> str: ...


# Token parameter handling
def _completion_token_param(api_base: str) -> str:
    """Return the token count parameter expected by the provider."""
    if "api.openai.com" in api_base or "api.anthropic.com" in api_base:
        return "max_completion_tokens"
    return "max_tokens"


@functools.lru_cache(maxsize=8)
def _get_tokenizer(model_name: str) -> tiktoken.Encoding | None:
    """
    Gets a tiktoken encoder for the given model name, with caching.
    Tries model-specific encoding, then a default, then returns None.
    """
    try:
        try:
            return tiktoken.encoding_for_model(model_name)
        except KeyError:
            return tiktoken.get_encoding(settings.TIKTOKEN_DEFAULT_ENCODING)
    except Exception as e:
        logger.error(
            "Tokenizer unavailable, using character heuristic.",
            model=model_name,
            error=str(e),
        )
        return None


def count_tokens(text: str, model_name: str) -> int:
    """
    Counts the number of tokens in a string for a given model.
    Falls back to a character-based estimate when no tokenizer is available.
    """
    if not text:
        return 0

    encoder = _get_tokenizer(model_name)
    if encoder:
        return len(encoder.encode(text, allowed_special="all"))
    return int(len(text) / settings.FALLBACK_CHARS_PER_TOKEN)


def clean_model_response(text: str) -> str:
    """Cleans common artifacts from LLM text responses, including content within <think> tags and normalizes newlines."""
    if not isinstance(text, str):
        logger.warning(
            "clean_model_response received non-string input.",
            input_type=type(text).__name__,
        )
        return ""

    cleaned_text = text
    for tag_name in ("think", "thought", "thinking", "reasoning", "no_think"):
        cleaned_text = re.sub(
            rf"<\s*{tag_name}\s*>.*?<\s*/\s*{tag_name}\s*>",
            "",
            cleaned_text,
            flags=re.DOTALL | re.IGNORECASE,
        )
        cleaned_text = re.sub(
            rf"<\s*/?\s*{tag_name}\s*/?\s*>", "", cleaned_text, flags=re.IGNORECASE
        )

    cleaned_text = re.sub(
        r"```(?:[a-zA-Z0-9_-]+)?\s*(.*?)\s*```",
        r"\1",
        cleaned_text,
        flags=re.DOTALL,
    ).strip()

    leading_patterns = [
        r"^\s*(Okay,\s*)?(Sure,\s*)?(Here's|Here is)\s+(the|your)\s+[\w\s]+?:\s*",
        r"^\s*I've written the\s+[\w\s]+?\s+as requested:\s*",
        r"^\s*Certainly! Here is the text:\s*",
    ]
    for pattern_str in leading_patterns:
        cleaned_text = re.sub(
            pattern_str, "", cleaned_text, count=1, flags=re.IGNORECASE
        ).strip()

    trailing_patterns = [
        r"\s*Let me know if you (need|have) any(thing else| other questions| further revisions| adjustments)\b.*?\.?[^\w\n]*$",
        r"\s*I hope this (meets your expectations|helps|is what you were looking for)\b.*?\.?[^\w\n]*$",
        r"\s*Feel free to ask for (adjustments|anything else)\b.*?\.?[^\w\n]*$",
    ]
    for pattern_str in trailing_patterns:
        cleaned_text = re.sub(
            pattern_str, "", cleaned_text, count=1, flags=re.IGNORECASE
        ).strip()

    return re.sub(r"\n{3,}", "\n\n", cleaned_text).strip()


class LLMService:
    """Single-attempt client for OpenAI-compatible or Ollama endpoints."""

    def __init__(
        self,
        provider: str = settings.LLM_PROVIDER,
        default_model: str = settings.DEFAULT_MODEL,
        timeout: float = settings.HTTPX_TIMEOUT,
        max_concurrent_calls: int = settings.MAX_CONCURRENT_LLM_CALLS,
        client: httpx.AsyncClient | None = None,
    ):
        self.provider = provider
        self.default_model = default_model
        # Use a single async client for all requests to reuse connections
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self._semaphore = asyncio.Semaphore(max_concurrent_calls)
        self.request_count = 0
        logger.info(
            "LLMService initialized.",
            provider=provider,
            concurrency_limit=max_concurrent_calls,
        )

    async def aclose(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()

    def _openai_request(
        self, prompt: str, model: str, temperature: float
    ) -> tuple[str, dict[str, Any], dict[str, str]]:
        if settings.ENABLE_LLM_NO_THINK_DIRECTIVE:
            prompt = f"{prompt}\n\n/no_think"
        payload: dict[str, Any] = {
            "model": model,
            "messages": [{"role": "user", "content": prompt}],
            "temperature": temperature,
            "stream": False,
        }
        token_param_name = _completion_token_param(settings.OPENAI_API_BASE)
        payload[token_param_name] = 8192
        headers = {
            "Authorization": f"Bearer {settings.OPENAI_API_KEY}",
            "Content-Type": "application/json",
        }
        return f"{settings.OPENAI_API_BASE}/chat/completions", payload, headers

    def _ollama_request(
        self, prompt: str, model: str, temperature: float
    ) -> tuple[str, dict[str, Any], dict[str, str]]:
        payload: dict[str, Any] = {
            "model": model,
            "prompt": prompt,
            "stream": False,
            "options": {"temperature": temperature},
        }
        return (
            f"{settings.OLLAMA_API_BASE}/api/generate",
            payload,
            {"Content-Type": "application/json"},
        )

    @staticmethod
    def _extract_text(provider: str, data: Any) -> str:
        if not isinstance(data, dict):
            return ""
        if provider == "ollama":
            response = data.get("response")
            return response if isinstance(response, str) else ""
        choices = data.get("choices")
        if choices:
            message = choices[0].get("message") or {}
            content = message.get("content")
            if isinstance(content, str):
                return content
        return ""

    async def complete(
        self,
        prompt: str,
        model: str | None = None,
        temperature: float | None = None,
        operation_kind: str | None = None,
    ) -> str:
        """Send ``prompt`` once and return the cleaned completion text."""
        model_name = model or self.default_model
        effective_temperature = 0.7 if temperature is None else temperature
        if self.provider == "ollama":
            url, payload, headers = self._ollama_request(
                prompt, model_name, effective_temperature
            )
        else:
            url, payload, headers = self._openai_request(
                prompt, model_name, effective_temperature
            )

        logger.debug(
            "Calling LLM.",
            model=model_name,
            operation_kind=operation_kind,
            prompt_tokens=count_tokens(prompt, model_name),
            temperature=effective_temperature,
        )

        async with self._semaphore:
            self.request_count += 1
            try:
                response = await self._client.post(url, json=payload, headers=headers)
                response.raise_for_status()
                data = response.json()
            except httpx.TimeoutException as exc:
                raise TransientProviderError(f"Request timed out: {exc}") from exc
            except httpx.HTTPStatusError as exc:
                raise TransientProviderError(
                    f"HTTP status {exc.response.status_code}: {exc.response.text[:200]}",
                    status_code=exc.response.status_code,
                ) from exc
            except httpx.RequestError as exc:
                raise TransientProviderError(f"Request error: {exc}") from exc
            except json.JSONDecodeError as exc:
                raise TransientProviderError(
                    f"Failed to decode JSON response: {exc}"
                ) from exc

        raw_text = self._extract_text(self.provider, data)
        if not raw_text.strip():
            logger.error(
                "Invalid response structure - missing content despite 200 OK.",
                model=model_name,
            )
            raise TransientProviderError("Response did not contain any text")
        return clean_model_response(raw_text)
