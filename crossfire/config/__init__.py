"""Configuration models and loaders."""

from .settings import (
    AppConfig,
    DebateConfig,
    GenerationConfig,
    IdentityConfig,
    OllamaConfig,
    OpenRouterConfig,
    RateLimitConfig,
    RateLimitTierConfig,
    StorageConfig,
    SystemConfig,
    get_default_config,
    get_template_config,
)

__all__ = [
    "AppConfig",
    "DebateConfig",
    "GenerationConfig",
    "IdentityConfig",
    "OllamaConfig",
    "OpenRouterConfig",
    "RateLimitConfig",
    "RateLimitTierConfig",
    "StorageConfig",
    "SystemConfig",
    "get_default_config",
    "get_template_config",
]
