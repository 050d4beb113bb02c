"""Model providers package."""

from .providers import ProviderFactory
from .ollama_provider import OllamaProvider
from .open_router_provider import OpenRouterProvider
from .base_model_provider import BaseModelProvider, GenerationResult
from .exceptions import ProviderError, ProviderRateLimitError

__all__ = [
    "ProviderFactory",
    "OllamaProvider",
    "OpenRouterProvider",
    "BaseModelProvider",
    "GenerationResult",
    "ProviderError",
    "ProviderRateLimitError",
]
