"""Ordered model fallback for generation calls.

Only throttling/overload failures move on to the next candidate. Anything
else propagates unchanged so malformed requests and integration bugs are not
disguised as transient upstream trouble.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Sequence
from typing import Any

from .providers.base_model_provider import BaseModelProvider, ChatMessage
from .providers.exceptions import is_rate_limit_error

logger = logging.getLogger(__name__)


class ModelFallbackInvoker:
    """Runs a generation call against an ordered chain of model identifiers."""

    def __init__(
        self,
        provider: BaseModelProvider,
        models: Sequence[str],
        model_override: str | None = None,
    ):
        if not models and not model_override:
            raise ValueError("At least one candidate model is required")
        self._provider = provider
        self._models: tuple[str, ...] = tuple(models)
        self._model_override = model_override or None

    @property
    def provider(self) -> BaseModelProvider:
        return self._provider

    def attempt_order(self, primary_model: str | None) -> list[str]:
        """Return the models to try, in order.

        A configured override pins every call to that single model. Otherwise
        the primary goes first, followed by the declared chain minus duplicates.
        """
        if self._model_override:
            return [self._model_override]

        order: list[str] = []
        for model in ([primary_model] if primary_model else []) + list(self._models):
            if model not in order:
                order.append(model)
        return order

    def _can_fall_back(self, exc: Exception, index: int, candidates: list[str]) -> bool:
        if index >= len(candidates) - 1 or not is_rate_limit_error(exc):
            return False
        logger.warning(
            "Model %s is rate limited or overloaded (%s); falling back to %s",
            candidates[index],
            exc,
            candidates[index + 1],
        )
        return True

    async def generate(
        self, primary_model: str | None, messages: list[ChatMessage], **overrides: Any
    ) -> str:
        """Generate a complete response, falling back on throttled candidates."""
        candidates = self.attempt_order(primary_model)
        for index, model in enumerate(candidates):
            try:
                response = await self._provider.generate_response(model, messages, **overrides)
            except Exception as exc:
                if self._can_fall_back(exc, index, candidates):
                    continue
                raise
            if index:
                logger.info("Generated response with fallback model %s", model)
            return response

        # attempt_order never returns an empty list
        raise RuntimeError("No candidate models available")

    async def stream(
        self, primary_model: str | None, messages: list[ChatMessage], **overrides: Any
    ) -> AsyncIterator[str]:
        """Stream a response from the first candidate that starts successfully.

        Failover is decided on the first chunk. Once data has been yielded, an
        upstream failure ends the stream with that error. Closing this
        generator closes the upstream stream as well.
        """
        candidates = self.attempt_order(primary_model)
        for index, model in enumerate(candidates):
            upstream = self._provider.stream_response(model, messages, **overrides)
            try:
                first_chunk: str | None = await anext(upstream)
            except StopAsyncIteration:
                first_chunk = None
            except Exception as exc:
                await upstream.aclose()
                if self._can_fall_back(exc, index, candidates):
                    continue
                raise

            if index:
                logger.info("Streaming response from fallback model %s", model)

            try:
                if first_chunk is not None:
                    yield first_chunk
                async for chunk in upstream:
                    yield chunk
            finally:
                await upstream.aclose()
            return
