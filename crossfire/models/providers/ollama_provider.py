import logging
from collections.abc import AsyncIterator
from typing import TYPE_CHECKING, Any, Optional

from openai import APIStatusError, AsyncOpenAI, RateLimitError

from .base_model_provider import BaseModelProvider, ChatMessage
from .exceptions import ProviderError, ProviderRateLimitError, is_rate_limit_error

if TYPE_CHECKING:
    from crossfire.config.settings import SystemConfig

logger = logging.getLogger(__name__)


class OllamaProvider(BaseModelProvider):
    """Ollama model provider using its OpenAI-compatible endpoint."""

    def __init__(self, system_config: "SystemConfig", client: Optional[AsyncOpenAI] = None):
        super().__init__(system_config)
        self._client = client or AsyncOpenAI(
            base_url=f"{system_config.ollama.base_url}/v1",
            api_key="ollama",  # Ollama doesn't require real API key
            timeout=system_config.ollama.timeout,
            max_retries=0,  # throttling is handled by the fallback chain
        )

    @property
    def provider_name(self) -> str:
        return "ollama"

    def _translate(self, exc: Exception, model: str) -> ProviderError:
        status = exc.status_code if isinstance(exc, APIStatusError) else None
        if isinstance(exc, RateLimitError) or is_rate_limit_error(exc):
            return ProviderRateLimitError(
                f"Ollama throttled {model}: {exc}",
                provider=self.provider_name,
                model=model,
                status_code=status or 429,
            )
        return ProviderError(
            f"Ollama request for {model} failed: {exc}",
            provider=self.provider_name,
            model=model,
            status_code=status,
        )

    @staticmethod
    def _params(model: str, messages: list[ChatMessage], **overrides: Any) -> dict[str, Any]:
        params: dict[str, Any] = {
            "model": model,
            "messages": messages,
            "max_tokens": overrides.get("max_tokens", 500),
            "temperature": overrides.get("temperature", 0.7),
        }
        if overrides.get("response_format"):
            params["response_format"] = overrides["response_format"]
        return params

    async def generate_response(
        self, model: str, messages: list[ChatMessage], **overrides: Any
    ) -> str:
        try:
            response = await self._client.chat.completions.create(
                **self._params(model, messages, **overrides)
            )
        except APIStatusError as e:
            raise self._translate(e, model) from e

        content = response.choices[0].message.content or ""
        logger.debug(f"Generated {len(content)} chars from Ollama model {model}")
        return content.strip()

    async def stream_response(
        self, model: str, messages: list[ChatMessage], **overrides: Any
    ) -> AsyncIterator[str]:
        try:
            stream = await self._client.chat.completions.create(
                stream=True, **self._params(model, messages, **overrides)
            )
        except APIStatusError as e:
            raise self._translate(e, model) from e

        async for chunk in stream:
            if not chunk.choices:
                continue
            content_chunk = chunk.choices[0].delta.content
            if content_chunk:
                yield content_chunk

    async def aclose(self) -> None:
        await self._client.close()
