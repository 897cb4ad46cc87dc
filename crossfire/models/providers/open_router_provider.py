import json
import logging
import os
from collections.abc import AsyncIterator
from typing import TYPE_CHECKING, Any, Optional

import httpx

from .base_model_provider import BaseModelProvider, ChatMessage
from .exceptions import (
    RATE_LIMIT_STATUS_CODES,
    ProviderError,
    ProviderRateLimitError,
    has_rate_limit_marker,
)

if TYPE_CHECKING:
    from crossfire.config.settings import SystemConfig

logger = logging.getLogger(__name__)


class OpenRouterProvider(BaseModelProvider):
    """OpenRouter model provider implementation."""

    def __init__(
        self,
        system_config: "SystemConfig",
        client: Optional[httpx.AsyncClient] = None,
    ):
        super().__init__(system_config)
        self._api_key = system_config.openrouter.api_key or os.getenv("OPENROUTER_API_KEY")

        if not self._api_key:
            logger.warning(
                "No OpenRouter API key found. Set OPENROUTER_API_KEY or configure in system settings."
            )

        self._client = client or httpx.AsyncClient(
            base_url=system_config.openrouter.base_url,
            timeout=system_config.openrouter.timeout,
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

    @staticmethod
    def _payload(model: str, messages: list[ChatMessage], stream: bool, **overrides: Any) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "model": model,
            "messages": messages,
            "max_tokens": overrides.get("max_tokens", 500),
            "temperature": overrides.get("temperature", 0.7),
            "reasoning": {"exclude": True},
        }
        if stream:
            payload["stream"] = True
        if overrides.get("response_format"):
            payload["response_format"] = overrides["response_format"]
        return payload

    def _raise_for_status(self, response: httpx.Response, model: str) -> None:
        """Translate HTTP failures into provider exceptions."""
        if response.is_success:
            return

        body = response.text[:500]
        if response.status_code in RATE_LIMIT_STATUS_CODES or has_rate_limit_marker(body):
            retry_after = response.headers.get("retry-after")
            raise ProviderRateLimitError(
                f"OpenRouter throttled {model} (HTTP {response.status_code}): {body}",
                provider=self.provider_name,
                model=model,
                status_code=response.status_code,
                retry_after=float(retry_after) if retry_after and retry_after.isdigit() else None,
            )
        raise ProviderError(
            f"OpenRouter request for {model} failed (HTTP {response.status_code}): {body}",
            provider=self.provider_name,
            model=model,
            status_code=response.status_code,
        )

    def _raise_stream_error(self, error: dict[str, Any], model: str) -> None:
        message = str(error.get("message", "Unknown streaming error"))
        code = error.get("code")
        if (isinstance(code, int) and code in RATE_LIMIT_STATUS_CODES) or has_rate_limit_marker(message):
            raise ProviderRateLimitError(
                f"OpenRouter throttled {model} mid-request: {message}",
                provider=self.provider_name,
                model=model,
                status_code=code if isinstance(code, int) else 429,
            )
        raise ProviderError(
            f"Streaming error from {model}: {message}",
            provider=self.provider_name,
            model=model,
            status_code=code if isinstance(code, int) else None,
        )

    async def generate_response(
        self, model: str, messages: list[ChatMessage], **overrides: Any
    ) -> str:
        """Generate a response using OpenRouter."""
        if not self._api_key:
            raise ProviderError("OpenRouter client not initialized - check API key", provider="openrouter", model=model)

        response = await self._client.post(
            "/chat/completions",
            json=self._payload(model, messages, stream=False, **overrides),
            headers=self._headers(),
        )
        self._raise_for_status(response, model)
        response_data = response.json()

        if "error" in response_data:
            self._raise_stream_error(response_data["error"], model)

        content = response_data["choices"][0]["message"]["content"] or ""

        if not content.strip():
            logger.warning(f"OpenRouter model {model} returned empty content. Response data: {response_data}")
        else:
            logger.debug(f"Generated {len(content)} chars from OpenRouter model {model}")

        return content.strip()

    async def stream_response(
        self, model: str, messages: list[ChatMessage], **overrides: Any
    ) -> AsyncIterator[str]:
        """Generate a streaming response using OpenRouter with SSE."""
        if not self._api_key:
            raise ProviderError("OpenRouter client not initialized - check API key", provider="openrouter", model=model)

        total_chars = 0
        async with self._client.stream(
            "POST",
            "/chat/completions",
            json=self._payload(model, messages, stream=True, **overrides),
            headers=self._headers(),
        ) as response:
            if not response.is_success:
                await response.aread()
                self._raise_for_status(response, model)

            # Process SSE stream line by line
            async for line in response.aiter_lines():
                line = line.strip()

                # Skip empty lines and comments
                if not line or line.startswith(":"):
                    continue
                if not line.startswith("data: "):
                    continue

                data = line[6:]
                if data == "[DONE]":
                    break

                try:
                    parsed = json.loads(data)
                except json.JSONDecodeError:
                    logger.debug(f"Skipping invalid JSON in stream: {data[:100]}...")
                    continue

                if "error" in parsed:
                    self._raise_stream_error(parsed["error"], model)

                choices = parsed.get("choices", [])
                if not choices:
                    continue

                content_chunk = choices[0].get("delta", {}).get("content") or ""
                if content_chunk:
                    total_chars += len(content_chunk)
                    yield content_chunk

                if choices[0].get("finish_reason"):
                    break

        logger.debug(f"OpenRouter streaming completed: {total_chars} chars from {model}")

    async def aclose(self) -> None:
        await self._client.aclose()
