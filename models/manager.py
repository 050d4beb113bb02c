"""Model manager with multi-provider support."""

from __future__ import annotations

import logging
from typing import TypeAlias

from config.settings import ModelConfig, SystemConfig

from .providers.base_model_provider import BaseModelProvider, GenerationResult
from .providers.providers import ProviderFactory
from .rate_limiter import RateLimiter, get_rate_limiter

MessageDict: TypeAlias = dict[str, str]
MessageList: TypeAlias = list[MessageDict]

logger = logging.getLogger(__name__)


class ModelManager:
    """Routes generation calls for registered model ids to their providers."""

    def __init__(
        self,
        system_config: SystemConfig,
        rate_limiter: RateLimiter | None = None,
        request_timeout_ms: int | None = None,
    ):
        self._system_config = system_config
        self._rate_limiter = rate_limiter or get_rate_limiter()
        self._request_timeout_s = request_timeout_ms / 1000 if request_timeout_ms else None
        self._model_configs: dict[str, ModelConfig] = {}
        self._providers: dict[str, BaseModelProvider] = {}

    @property
    def rate_limiter(self) -> RateLimiter:
        return self._rate_limiter

    def _get_provider(self, provider_name: str) -> BaseModelProvider:
        """Return (and cache) the provider instance identified by name."""
        if provider_name not in self._providers:
            self._providers[provider_name] = ProviderFactory.create_provider(
                provider_name, self._system_config, self._rate_limiter
            )
        return self._providers[provider_name]

    def register_provider(self, provider: BaseModelProvider) -> None:
        """Use a pre-built provider instance instead of the factory default."""
        self._providers[provider.provider_name] = provider

    def register_model(self, model_id: str, config: ModelConfig) -> None:
        """Register a model configuration for quick lookup."""
        try:
            provider = self._get_provider(config.provider)
            if not provider.validate_model_config(config):
                msg = f"Invalid model config for provider {config.provider}"
                raise ValueError(msg)
        except ValueError as exc:
            logger.error("Failed to register model %s: %s", model_id, exc)
            raise

        self._model_configs[model_id] = config
        logger.info("Registered model %s: %s (%s)", model_id, config.name, config.provider)

    def get_model_config(self, model_id: str) -> ModelConfig:
        if model_id not in self._model_configs:
            raise ValueError(f"Model {model_id} not registered")
        return self._model_configs[model_id]

    async def complete(
        self,
        model_id: str,
        messages: MessageList,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> GenerationResult:
        """Generate a completion from the specified model."""
        config = self.get_model_config(model_id)
        provider = self._get_provider(config.provider)

        result = await provider.complete(
            config,
            messages,
            temperature=temperature,
            max_tokens=max_tokens,
            timeout=self._request_timeout_s,
        )
        logger.debug(
            "Generated %s chars from %s (%s), finish_reason=%s",
            len(result.content),
            model_id,
            config.provider,
            result.finish_reason,
        )
        return result

    def client_for(self, model_id: str) -> "ManagedModelClient":
        """Bind a registered model id as a generation client."""
        self.get_model_config(model_id)
        return ManagedModelClient(self, model_id)


class ManagedModelClient:
    """Generation client for one model registered with a ``ModelManager``."""

    def __init__(self, manager: ModelManager, model_id: str):
        self._manager = manager
        self._model_id = model_id

    @property
    def model_name(self) -> str:
        return self._manager.get_model_config(self._model_id).name

    async def complete(
        self, messages: MessageList, temperature: float, max_tokens: int
    ) -> GenerationResult:
        return await self._manager.complete(
            self._model_id, messages, temperature=temperature, max_tokens=max_tokens
        )
