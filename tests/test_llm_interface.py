# tests/test_llm_interface.py
import json

import httpx
import pytest

from core import llm_interface
from core.errors import TransientProviderError
from core.llm_interface import LLMService, clean_model_response


@pytest.fixture(autouse=True)
def no_tokenizer(monkeypatch):
    monkeypatch.setattr(llm_interface, "count_tokens", lambda text, model: len(text))


def _service(handler, provider="openai") -> LLMService:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return LLMService(provider=provider, default_model="m", client=client)


def test_clean_model_response():
    raw = "<think>plan</think>Here is the unit:\n```markdown\n## Title\n\nBody\n```\nI hope this helps!"
    assert clean_model_response(raw) == "## Title\n\nBody"
    assert clean_model_response(None) == ""


@pytest.mark.asyncio
async def test_openai_completion():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"choices": [{"message": {"content": "Hello"}}]})

    service = _service(handler)
    assert await service.complete("Hi", temperature=0.2) == "Hello"
    assert seen["url"].endswith("/chat/completions")
    assert seen["body"]["model"] == "m"
    assert seen["body"]["temperature"] == 0.2
    assert service.request_count == 1
    await service.aclose()


@pytest.mark.asyncio
async def test_ollama_completion():
    def handler(request: httpx.Request) -> httpx.Response:
        assert str(request.url).endswith("/api/generate")
        return httpx.Response(200, json={"response": "From ollama"})

    service = _service(handler, provider="ollama")
    assert await service.complete("Hi", model="llama") == "From ollama"
    await service.aclose()


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(503, text="busy"),
        httpx.Response(200, text="not json"),
        httpx.Response(200, json={"choices": []}),
    ],
)
async def test_failures_are_transient(response):
    service = _service(lambda request: response)
    with pytest.raises(TransientProviderError):
        await service.complete("Hi")
    await service.aclose()


@pytest.mark.asyncio
async def test_status_code_is_kept():
    service = _service(lambda request: httpx.Response(429, text="slow down"))
    with pytest.raises(TransientProviderError) as excinfo:
        await service.complete("Hi")
    assert excinfo.value.status_code == 429
    await service.aclose()


@pytest.mark.asyncio
async def test_connection_errors_are_transient():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    service = _service(handler)
    with pytest.raises(TransientProviderError):
        await service.complete("Hi")
    await service.aclose()
