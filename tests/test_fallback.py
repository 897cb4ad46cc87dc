"""Tests for the model fallback invoker and failure classification."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from types import SimpleNamespace
from typing import Any

import pytest

from crossfire.config.settings import SystemConfig
from crossfire.models.fallback import ModelFallbackInvoker
from crossfire.models.providers.base_model_provider import BaseModelProvider
from crossfire.models.providers.exceptions import (
    ProviderError,
    ProviderRateLimitError,
    is_rate_limit_error,
)

MESSAGES = [{"role": "user", "content": "hello"}]


class StreamingProvider(BaseModelProvider):
    """Streams fixed chunks per model; can fail before or after the first chunk."""

    def __init__(
        self,
        chunks: dict[str, list[str]],
        fail_before: dict[str, Exception] | None = None,
        fail_after_first: dict[str, Exception] | None = None,
    ):
        super().__init__(SystemConfig())
        self.chunks = chunks
        self.fail_before = fail_before or {}
        self.fail_after_first = fail_after_first or {}
        self.started: list[str] = []
        self.closed: list[str] = []

    @property
    def provider_name(self) -> str:
        return "streaming-fake"

    async def generate_response(self, model: str, messages: list[dict[str, str]], **overrides: Any) -> str:
        return "".join(self.chunks[model])

    async def stream_response(self, model: str, messages: list[dict[str, str]], **overrides: Any) -> AsyncIterator[str]:
        self.started.append(model)
        try:
            if model in self.fail_before:
                raise self.fail_before[model]
            for index, chunk in enumerate(self.chunks[model]):
                if index == 1 and model in self.fail_after_first:
                    raise self.fail_after_first[model]
                yield chunk
        finally:
            self.closed.append(model)


async def _collect(stream: AsyncIterator[str]) -> list[str]:
    return [chunk async for chunk in stream]


@pytest.mark.unit
def test_attempt_order_primary_first_without_duplicates(fake_provider):
    invoker = ModelFallbackInvoker(fake_provider, ["a", "b", "c"])

    assert invoker.attempt_order("b") == ["b", "a", "c"]
    assert invoker.attempt_order("z") == ["z", "a", "b", "c"]
    assert invoker.attempt_order(None) == ["a", "b", "c"]


@pytest.mark.unit
def test_override_pins_single_model(fake_provider):
    invoker = ModelFallbackInvoker(fake_provider, ["a", "b"], model_override="pinned")

    assert invoker.attempt_order("a") == ["pinned"]


@pytest.mark.unit
def test_requires_a_candidate(fake_provider):
    with pytest.raises(ValueError):
        ModelFallbackInvoker(fake_provider, [])


@pytest.mark.unit
def test_rate_limited_primary_falls_back(make_provider):
    provider = make_provider(
        replies=["from backup"],
        failures={"a": ProviderRateLimitError("busy", model="a")},
    )
    invoker = ModelFallbackInvoker(provider, ["a", "b"])

    result = asyncio.run(invoker.generate("a", MESSAGES))

    assert result == "from backup"
    assert [c["model"] for c in provider.calls] == ["a", "b"]


@pytest.mark.unit
def test_non_rate_limit_error_propagates_without_fallback(make_provider):
    provider = make_provider(failures={"a": ProviderError("bad request", status_code=400)})
    invoker = ModelFallbackInvoker(provider, ["a", "b"])

    with pytest.raises(ProviderError, match="bad request"):
        asyncio.run(invoker.generate("a", MESSAGES))

    assert [c["model"] for c in provider.calls] == ["a"]


@pytest.mark.unit
def test_last_candidate_rate_limit_propagates(make_provider):
    provider = make_provider(
        failures={
            "a": ProviderRateLimitError("busy"),
            "b": ProviderRateLimitError("also busy"),
        }
    )
    invoker = ModelFallbackInvoker(provider, ["a", "b"])

    with pytest.raises(ProviderRateLimitError, match="also busy"):
        asyncio.run(invoker.generate("a", MESSAGES))


@pytest.mark.unit
def test_override_does_not_fall_back(make_provider):
    provider = make_provider(failures={"pinned": ProviderRateLimitError("busy")})
    invoker = ModelFallbackInvoker(provider, ["a", "b"], model_override="pinned")

    with pytest.raises(ProviderRateLimitError):
        asyncio.run(invoker.generate("a", MESSAGES))

    assert [c["model"] for c in provider.calls] == ["pinned"]


@pytest.mark.unit
def test_overrides_are_forwarded(make_provider):
    provider = make_provider(replies=["ok"])
    invoker = ModelFallbackInvoker(provider, ["a"])

    asyncio.run(invoker.generate("a", MESSAGES, max_tokens=42, temperature=0.1))

    assert provider.calls[0]["overrides"] == {"max_tokens": 42, "temperature": 0.1}


@pytest.mark.unit
def test_stream_falls_back_before_first_chunk():
    provider = StreamingProvider(
        chunks={"a": ["never"], "b": ["hello ", "world"]},
        fail_before={"a": ProviderRateLimitError("overloaded")},
    )
    invoker = ModelFallbackInvoker(provider, ["a", "b"])

    chunks = asyncio.run(_collect(invoker.stream("a", MESSAGES)))

    assert chunks == ["hello ", "world"]
    assert provider.started == ["a", "b"]
    assert provider.closed == ["a", "b"]


@pytest.mark.unit
def test_stream_non_rate_limit_error_does_not_fall_back():
    provider = StreamingProvider(
        chunks={"a": ["x"], "b": ["y"]},
        fail_before={"a": ProviderError("invalid model", status_code=404)},
    )
    invoker = ModelFallbackInvoker(provider, ["a", "b"])

    with pytest.raises(ProviderError, match="invalid model"):
        asyncio.run(_collect(invoker.stream("a", MESSAGES)))

    assert provider.started == ["a"]


@pytest.mark.unit
def test_mid_stream_failure_is_terminal():
    provider = StreamingProvider(
        chunks={"a": ["first ", "second"], "b": ["backup"]},
        fail_after_first={"a": ProviderRateLimitError("overloaded")},
    )
    invoker = ModelFallbackInvoker(provider, ["a", "b"])
    received: list[str] = []

    async def consume():
        async for chunk in invoker.stream("a", MESSAGES):
            received.append(chunk)

    with pytest.raises(ProviderRateLimitError):
        asyncio.run(consume())

    assert received == ["first "]
    assert provider.started == ["a"]


@pytest.mark.unit
def test_closing_stream_early_closes_upstream():
    provider = StreamingProvider(chunks={"a": ["one ", "two ", "three"]})
    invoker = ModelFallbackInvoker(provider, ["a"])

    async def take_one():
        stream = invoker.stream("a", MESSAGES)
        first = await anext(stream)
        await stream.aclose()
        return first

    assert asyncio.run(take_one()) == "one "
    assert provider.closed == ["a"]


@pytest.mark.unit
@pytest.mark.parametrize(
    "exc, expected",
    [
        (ProviderRateLimitError("x"), True),
        (ProviderError("x", status_code=529), True),
        (ProviderError("x", status_code=500), False),
        (SimpleNamespace(response=SimpleNamespace(status_code=429)), True),
        (RuntimeError("RESOURCE_EXHAUSTED: quota"), True),
        (RuntimeError("overloaded_error"), True),
        (ValueError("malformed request"), False),
    ],
)
def test_is_rate_limit_error(exc, expected):
    assert is_rate_limit_error(exc) is expected
