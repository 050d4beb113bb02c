from typing import TYPE_CHECKING, Any
from openai import AsyncOpenAI, APIError, RateLimitError
from .base_model_provider import BaseModelProvider, GenerationResult
from .exceptions import ProviderError, ProviderRateLimitError
import logging
import time

if TYPE_CHECKING:
    from openai.types.chat import ChatCompletion
    from config.settings import SystemConfig, ModelConfig
    from models.rate_limiter import RateLimiter

logger = logging.getLogger(__name__)


class OllamaProvider(BaseModelProvider):
    """Ollama model provider implementation (OpenAI-compatible endpoint)."""

    def __init__(
        self,
        system_config: "SystemConfig",
        rate_limiter: "RateLimiter",
        client: AsyncOpenAI | None = None,
    ):
        super().__init__(system_config, rate_limiter)
        self._client = client or AsyncOpenAI(
            base_url=f"{system_config.ollama_base_url}/v1",
            api_key="ollama",  # Ollama doesn't require real API key
            timeout=120.0,  # Allow for model loading and generation
            max_retries=0,
        )

    @property
    def provider_name(self) -> str:
        return "ollama"

    async def complete(
        self,
        model_config: "ModelConfig",
        messages: list[dict[str, str]],
        temperature: float | None = None,
        max_tokens: int | None = None,
        timeout: float | None = None,
    ) -> GenerationResult:
        """Generate a completion using Ollama."""
        params: dict[str, Any] = {
            "model": model_config.name,
            "messages": messages,
            "max_tokens": max_tokens if max_tokens is not None else model_config.max_tokens,
            "temperature": temperature if temperature is not None else model_config.temperature,
        }

        ollama_config = self.system_config.ollama
        extra_body = {}
        if ollama_config.keep_alive is not None:
            extra_body["keep_alive"] = ollama_config.keep_alive
        if ollama_config.repeat_penalty is not None:
            extra_body["repeat_penalty"] = ollama_config.repeat_penalty
        if extra_body:
            params["extra_body"] = extra_body
        if timeout is not None:
            params["timeout"] = timeout

        max_waits = self.rate_limiter.config.max_rate_limit_retries
        attempt = 0
        while True:
            await self.rate_limiter.wait_if_needed(model_config.name)
            self.rate_limiter.record_request(model_config.name)

            start_time = time.time()
            try:
                response: "ChatCompletion" = await self._client.chat.completions.create(**params)
                break
            except RateLimitError as e:
                if attempt >= max_waits:
                    raise ProviderRateLimitError(
                        self.provider_name,
                        model_config.name,
                        self.rate_limiter.get_retry_after(model_config.name),
                    ) from e
                attempt += 1
                await self.rate_limiter.wait_after_rejection(model_config.name)
            except APIError as e:
                logger.error(f"Ollama generation failed for {model_config.name}: {e}")
                raise ProviderError(self.provider_name, model_config.name, str(e)) from e

        choice = response.choices[0]
        content = choice.message.content or ""
        usage = response.usage

        logger.debug(
            f"Generated {len(content)} chars from Ollama model {model_config.name}"
        )
        return GenerationResult(
            content=content.strip(),
            finish_reason=choice.finish_reason or "stop",
            model=model_config.name,
            prompt_tokens=usage.prompt_tokens if usage else None,
            completion_tokens=usage.completion_tokens if usage else None,
            generation_time_ms=int((time.time() - start_time) * 1000),
        )
