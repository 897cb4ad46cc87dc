"""Provider lookup by configured name."""

import logging
from typing import TYPE_CHECKING

from .base_model_provider import BaseModelProvider
from .ollama_provider import OllamaProvider
from .open_router_provider import OpenRouterProvider

if TYPE_CHECKING:
    from crossfire.config.settings import GenerationConfig, SystemConfig

logger = logging.getLogger(__name__)


class ProviderFactory:
    """Builds the generation provider a deployment is configured for."""

    _providers: dict[str, type[BaseModelProvider]] = {
        "openrouter": OpenRouterProvider,
        "ollama": OllamaProvider,
    }

    @classmethod
    def create_provider(cls, provider_name: str, system_config: "SystemConfig") -> BaseModelProvider:
        provider_class = cls._providers.get(provider_name.lower())
        if provider_class is None:
            raise ValueError(
                f"Unknown generation provider '{provider_name}' "
                f"(expected one of: {', '.join(cls.get_available_providers())})"
            )
        logger.info(f"Using {provider_name} generation provider")
        return provider_class(system_config)

    @classmethod
    def for_generation(cls, generation: "GenerationConfig", system_config: "SystemConfig") -> BaseModelProvider:
        """Provider named by the generation settings."""
        return cls.create_provider(generation.provider, system_config)

    @classmethod
    def get_available_providers(cls) -> list[str]:
        return sorted(cls._providers)
