from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from config.settings import SystemConfig, ModelConfig
    from models.rate_limiter import RateLimiter


@dataclass(frozen=True)
class GenerationResult:
    """Content and bookkeeping returned by a provider call."""

    content: str
    finish_reason: str
    model: str
    prompt_tokens: int | None = None
    completion_tokens: int | None = None
    generation_time_ms: int = 0


class BaseModelProvider(ABC):
    """Abstract base class for model providers."""

    def __init__(self, system_config: "SystemConfig", rate_limiter: "RateLimiter"):
        self.system_config = system_config
        self.rate_limiter = rate_limiter

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Return the name of this provider."""
        pass

    @abstractmethod
    async def complete(
        self,
        model_config: "ModelConfig",
        messages: list[dict[str, str]],
        temperature: float | None = None,
        max_tokens: int | None = None,
        timeout: float | None = None,
    ) -> GenerationResult:
        """Generate a completion for the given messages.

        Args:
            model_config: Configuration for the model to use
            messages: Chat messages in OpenAI format
            temperature: Overrides the configured temperature when given
            max_tokens: Overrides the configured token cap when given
            timeout: Seconds allowed for each provider request; rate limit
                waits before a request are not counted

        Returns:
            The generated content with finish reason and usage
        """
        pass

    def validate_model_config(self, model_config: "ModelConfig") -> bool:
        """Validate that a model configuration is compatible with this provider."""
        return model_config.provider == self.provider_name
