"""Tests for the OpenRouter and Ollama providers and the model manager."""

from __future__ import annotations

import asyncio
import json
from types import SimpleNamespace

import httpx
import pytest
from httpx import Request, Response
from openai import RateLimitError

from config.settings import ModelConfig, OpenRouterConfig, SystemConfig
from models.manager import ModelManager
from models.providers import (
    OllamaProvider,
    OpenRouterProvider,
    ProviderError,
    ProviderFactory,
    ProviderRateLimitError,
)
from models.rate_limiter import RateLimiter

FRONTIER = ModelConfig(name="openai/gpt-4o", provider="openrouter", max_tokens=300, temperature=0.7)
LOCAL = ModelConfig(name="qwen2.5:7b", provider="ollama", max_tokens=200, temperature=0.5)
MESSAGES = [{"role": "user", "content": "Argue for bike lanes."}]


def completion_body(content: str = "Bike lanes save lives.") -> dict:
    return {
        "model": "openai/gpt-4o",
        "choices": [{"message": {"content": content}, "finish_reason": "stop"}],
        "usage": {"prompt_tokens": 12, "completion_tokens": 5},
    }


@pytest.fixture
def system_config() -> SystemConfig:
    return SystemConfig(openrouter=OpenRouterConfig(api_key="test-key", app_name="Live Debates"))


@pytest.fixture
def limiter(ms_clock) -> RateLimiter:
    return RateLimiter(clock=ms_clock, sleep=ms_clock.sleep)


def make_openrouter(system_config, limiter, handler) -> OpenRouterProvider:
    return OpenRouterProvider(system_config, limiter, transport=httpx.MockTransport(handler))


def test_openrouter_completion_reports_usage_and_quota(system_config, limiter) -> None:
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(
            200,
            json=completion_body("  Bike lanes save lives.  "),
            headers={"X-RateLimit-Limit": "50", "X-RateLimit-Remaining": "49"},
        )

    provider = make_openrouter(system_config, limiter, handler)
    result = asyncio.run(provider.complete(FRONTIER, MESSAGES, temperature=0.2))

    assert result.content == "Bike lanes save lives."
    assert result.prompt_tokens == 12
    assert result.completion_tokens == 5

    sent = json.loads(requests[0].content)
    assert sent["model"] == "openai/gpt-4o"
    assert sent["temperature"] == 0.2
    assert sent["max_tokens"] == 300
    assert requests[0].headers["Authorization"] == "Bearer test-key"
    assert requests[0].headers["X-Title"] == "Live Debates"

    model_stats = limiter.get_stats()["models"]["openai/gpt-4o"]  # type: ignore[index]
    assert model_stats["known_limit"] == 50
    assert model_stats["requests_in_window"] == 1


def test_openrouter_backs_off_after_429(system_config, limiter, ms_clock) -> None:
    responses = [httpx.Response(429, json={"error": "slow down"}), httpx.Response(200, json=completion_body())]

    provider = make_openrouter(system_config, limiter, lambda request: responses.pop(0))
    result = asyncio.run(provider.complete(FRONTIER, MESSAGES))

    assert result.content == "Bike lanes save lives."
    # Frontier tier backoff when no reset is reported.
    assert 3.0 in ms_clock.sleeps


def test_openrouter_gives_up_after_repeated_429(system_config, limiter) -> None:
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(429, json={"error": "slow down"})

    provider = make_openrouter(system_config, limiter, handler)
    with pytest.raises(ProviderRateLimitError) as excinfo:
        asyncio.run(provider.complete(FRONTIER, MESSAGES))

    assert len(calls) == limiter.config.max_rate_limit_retries + 1
    assert excinfo.value.status_code == 429
    assert excinfo.value.retry_after_ms == 3000


def test_openrouter_server_error_is_raised(system_config, limiter) -> None:
    provider = make_openrouter(system_config, limiter, lambda request: httpx.Response(500, text="boom"))

    with pytest.raises(ProviderError) as excinfo:
        asyncio.run(provider.complete(FRONTIER, MESSAGES))
    assert excinfo.value.status_code == 500


def test_openrouter_requires_api_key(limiter, monkeypatch) -> None:
    monkeypatch.delenv("OPENROUTER_API_KEY", raising=False)
    provider = make_openrouter(SystemConfig(), limiter, lambda request: httpx.Response(200, json=completion_body()))

    with pytest.raises(ProviderError, match="API key"):
        asyncio.run(provider.complete(FRONTIER, MESSAGES))


class FakeCompletions:
    """Simplified AsyncOpenAI chat.completions for testing."""

    def __init__(self, *responses):
        self._responses = list(responses)
        self.requests: list[dict] = []

    async def create(self, **kwargs):
        self.requests.append(kwargs)
        item = self._responses.pop(0)
        if isinstance(item, Exception):
            raise item
        return item


def chat_completion(content: str):
    return SimpleNamespace(
        choices=[SimpleNamespace(message=SimpleNamespace(content=content), finish_reason="stop")],
        usage=SimpleNamespace(prompt_tokens=8, completion_tokens=3),
    )


def rate_limit_error() -> RateLimitError:
    request = Request("POST", "http://localhost:11434/v1/chat/completions")
    response = Response(429, request=request, json={"error": {"message": "Too many requests"}})
    return RateLimitError("Too many requests", response=response, body=response.json())


def test_ollama_waits_out_rate_limit(limiter, ms_clock) -> None:
    completions = FakeCompletions(rate_limit_error(), chat_completion(" Local answer. "))
    client = SimpleNamespace(chat=SimpleNamespace(completions=completions))
    provider = OllamaProvider(SystemConfig(), limiter, client=client)  # type: ignore[arg-type]

    result = asyncio.run(provider.complete(LOCAL, MESSAGES, max_tokens=50))

    assert result.content == "Local answer."
    assert result.model == "qwen2.5:7b"
    assert len(completions.requests) == 2
    assert completions.requests[0]["max_tokens"] == 50
    assert completions.requests[0]["temperature"] == 0.5
    assert ms_clock.sleeps  # backed off before retrying


def test_manager_routes_to_registered_provider(system_config, limiter) -> None:
    provider = make_openrouter(
        system_config, limiter, lambda request: httpx.Response(200, json=completion_body("Routed."))
    )
    manager = ModelManager(system_config, limiter)
    manager.register_provider(provider)
    manager.register_model("pro", FRONTIER)

    client = manager.client_for("pro")
    result = asyncio.run(client.complete(MESSAGES, temperature=0.5, max_tokens=100))

    assert client.model_name == "openai/gpt-4o"
    assert result.content == "Routed."
    assert manager.rate_limiter is limiter


def test_manager_rejects_unknown_models_and_providers(system_config, limiter) -> None:
    manager = ModelManager(system_config, limiter)

    with pytest.raises(ValueError, match="not registered"):
        manager.client_for("con")
    with pytest.raises(ValueError, match="Unknown provider"):
        ProviderFactory.create_provider("carrier-pigeon", system_config, limiter)


def test_request_timeout_reaches_the_http_call(system_config, limiter) -> None:
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(200, json=completion_body())

    manager = ModelManager(system_config, limiter, request_timeout_ms=12_500)
    manager.register_provider(make_openrouter(system_config, limiter, handler))
    manager.register_model("pro", FRONTIER)

    asyncio.run(manager.client_for("pro").complete(MESSAGES, temperature=0.5, max_tokens=100))

    assert requests[0].extensions["timeout"]["read"] == 12.5


def test_openrouter_uses_configured_timeout_by_default(system_config, limiter) -> None:
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(200, json=completion_body())

    asyncio.run(make_openrouter(system_config, limiter, handler).complete(FRONTIER, MESSAGES))

    assert requests[0].extensions["timeout"]["read"] == system_config.openrouter.timeout


def test_ollama_passes_request_timeout(limiter) -> None:
    completions = FakeCompletions(chat_completion("Local answer."))
    client = SimpleNamespace(chat=SimpleNamespace(completions=completions))
    provider = OllamaProvider(SystemConfig(), limiter, client=client)  # type: ignore[arg-type]

    asyncio.run(provider.complete(LOCAL, MESSAGES, timeout=30.0))

    assert completions.requests[0]["timeout"] == 30.0
