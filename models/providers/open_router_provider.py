import os
import time
from typing import TYPE_CHECKING
import logging
import httpx

from .base_model_provider import BaseModelProvider, GenerationResult
from .exceptions import ProviderError, ProviderRateLimitError
from models.rate_limiter import parse_rate_limit_headers

if TYPE_CHECKING:
    from config.settings import SystemConfig, ModelConfig
    from models.rate_limiter import RateLimiter

logger = logging.getLogger(__name__)


class OpenRouterProvider(BaseModelProvider):
    """OpenRouter model provider implementation."""

    def __init__(
        self,
        system_config: "SystemConfig",
        rate_limiter: "RateLimiter",
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        super().__init__(system_config, rate_limiter)
        self._transport = transport

        # Get API key from config or environment
        self._api_key = system_config.openrouter.api_key or os.getenv("OPENROUTER_API_KEY")
        if not self._api_key:
            logger.warning(
                "No OpenRouter API key found. Set OPENROUTER_API_KEY or configure in system settings."
            )

    @property
    def provider_name(self) -> str:
        return "openrouter"

    def _headers(self) -> dict[str, str]:
        headers = {
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": "application/json",
        }
        if self.system_config.openrouter.site_url:
            headers["HTTP-Referer"] = self.system_config.openrouter.site_url
        if self.system_config.openrouter.app_name:
            headers["X-Title"] = self.system_config.openrouter.app_name
        return headers

    async def complete(
        self,
        model_config: "ModelConfig",
        messages: list[dict[str, str]],
        temperature: float | None = None,
        max_tokens: int | None = None,
        timeout: float | None = None,
    ) -> GenerationResult:
        """Generate a completion, waiting out local and provider rate limits."""
        if not self._api_key:
            raise ProviderError(self.provider_name, model_config.name, "client not initialized - check API key")

        payload = {
            "model": model_config.name,
            "messages": messages,
            "max_tokens": max_tokens if max_tokens is not None else model_config.max_tokens,
            "temperature": temperature if temperature is not None else model_config.temperature,
            "reasoning": {"exclude": True},
        }
        max_waits = self.rate_limiter.config.max_rate_limit_retries

        async with httpx.AsyncClient(transport=self._transport) as client:
            attempt = 0
            while True:
                await self.rate_limiter.wait_if_needed(model_config.name)
                self.rate_limiter.record_request(model_config.name)

                start_time = time.time()
                try:
                    http_response = await client.post(
                        f"{self.system_config.openrouter.base_url}/chat/completions",
                        json=payload,
                        headers=self._headers(),
                        timeout=timeout if timeout is not None else self.system_config.openrouter.timeout,
                    )
                except httpx.HTTPError as e:
                    logger.error(f"OpenRouter request failed for {model_config.name}: {e}")
                    raise ProviderError(self.provider_name, model_config.name, str(e)) from e

                quota = parse_rate_limit_headers(http_response.headers)
                if quota.limit is not None or quota.remaining is not None or quota.reset is not None:
                    self.rate_limiter.update_from_headers(model_config.name, quota)

                if http_response.status_code == 429:
                    if attempt >= max_waits:
                        logger.error(
                            f"OpenRouter kept rate limiting {model_config.name} after {attempt} wait(s)"
                        )
                        raise ProviderRateLimitError(
                            self.provider_name,
                            model_config.name,
                            self.rate_limiter.get_retry_after(model_config.name, quota),
                        )
                    attempt += 1
                    logger.warning(
                        f"OpenRouter rate limited {model_config.name} ({attempt}/{max_waits})"
                    )
                    await self.rate_limiter.wait_after_rejection(model_config.name, quota)
                    continue

                if http_response.is_error:
                    logger.error(
                        f"OpenRouter returned {http_response.status_code} for {model_config.name}: {http_response.text[:200]}"
                    )
                    raise ProviderError(
                        self.provider_name,
                        model_config.name,
                        http_response.text[:200] or http_response.reason_phrase,
                        status_code=http_response.status_code,
                    )
                break

        generation_time_ms = int((time.time() - start_time) * 1000)
        response_data = http_response.json()
        choice = response_data["choices"][0]
        content = choice["message"]["content"] or ""
        usage = response_data.get("usage") or {}

        if not content.strip():
            logger.warning(
                f"OpenRouter model {model_config.name} returned empty content. Response data: {response_data}"
            )
        else:
            logger.debug(f"Generated {len(content)} chars from OpenRouter model {model_config.name}")

        return GenerationResult(
            content=content.strip(),
            finish_reason=choice.get("finish_reason") or "stop",
            model=response_data.get("model") or model_config.name,
            prompt_tokens=usage.get("prompt_tokens"),
            completion_tokens=usage.get("completion_tokens"),
            generation_time_ms=generation_time_ms,
        )
