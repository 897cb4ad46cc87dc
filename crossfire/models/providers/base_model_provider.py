from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from typing import TYPE_CHECKING, Any, TypeAlias

if TYPE_CHECKING:
    from crossfire.config.settings import SystemConfig

ChatMessage: TypeAlias = dict[str, str]


class BaseModelProvider(ABC):
    """Abstract base class for model providers."""

    def __init__(self, system_config: "SystemConfig"):
        self.system_config = system_config

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Return the name of this provider."""
        pass

    @abstractmethod
    async def generate_response(
        self, model: str, messages: list[ChatMessage], **overrides: Any
    ) -> str:
        """Generate a complete response using this provider."""
        pass

    async def stream_response(
        self, model: str, messages: list[ChatMessage], **overrides: Any
    ) -> AsyncIterator[str]:
        """
        Generate a streaming response using this provider.

        Args:
            model: Model identifier to call
            messages: Chat-formatted conversation (system/user/assistant roles)
            **overrides: max_tokens, temperature, response_format

        Yields:
            Text chunks in arrival order

        Note:
            Default implementation falls back to non-streaming generate_response().
            Providers should override this method to implement true streaming.
        """
        complete_response = await self.generate_response(model, messages, **overrides)
        if complete_response:
            yield complete_response

    async def aclose(self) -> None:
        """Release any pooled connections held by the provider."""
        return None
