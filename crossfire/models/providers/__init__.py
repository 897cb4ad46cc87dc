"""Model providers package."""

from .base_model_provider import BaseModelProvider, ChatMessage
from .exceptions import ProviderError, ProviderRateLimitError, is_rate_limit_error
from .ollama_provider import OllamaProvider
from .open_router_provider import OpenRouterProvider
from .providers import ProviderFactory

__all__ = [
    "BaseModelProvider",
    "ChatMessage",
    "ProviderError",
    "ProviderFactory",
    "ProviderRateLimitError",
    "OllamaProvider",
    "OpenRouterProvider",
    "is_rate_limit_error",
]
