"""Pytest configuration and shared fixtures.

Provides a scripted generation provider, a controllable clock and a wired
application, so no test needs network access.
"""

from __future__ import annotations

import json
from collections.abc import AsyncIterator, Callable
from typing import Any

import pytest
from fastapi.testclient import TestClient

from crossfire.config.settings import (
    AppConfig,
    GenerationConfig,
    IdentityConfig,
    RateLimitConfig,
    RateLimitTierConfig,
    SystemConfig,
)
from crossfire.debate_engine.core import DebateEngine
from crossfire.debate_engine.session_store import InMemorySessionStore
from crossfire.models.fallback import ModelFallbackInvoker
from crossfire.models.providers.base_model_provider import BaseModelProvider, ChatMessage
from crossfire.web.api import create_app

DEFAULT_JUDGE_RESPONSE = json.dumps(
    {
        "winner": "user",
        "userScore": 78,
        "aiScore": 64,
        "categories": {
            "logic": {"user": 80, "ai": 65},
            "evidence": {"user": 70, "ai": 60},
        },
        "summary": "The user answered every objection.",
    }
)


class FakeClock:
    """Manually advanced stand-in for time.time()."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeProvider(BaseModelProvider):
    """Scripted provider recording every call.

    Opponent calls return ``replies`` in order (then a numbered default);
    calls that ask for JSON output return ``judge_response``. ``failures``
    maps a model name to the exception that model raises.
    """

    def __init__(
        self,
        replies: list[str] | None = None,
        judge_response: str = DEFAULT_JUDGE_RESPONSE,
        failures: dict[str, Exception] | None = None,
    ):
        super().__init__(SystemConfig())
        self.replies = list(replies or [])
        self.judge_response = judge_response
        self.failures = dict(failures or {})
        self.calls: list[dict[str, Any]] = []
        self.closed = False

    @property
    def provider_name(self) -> str:
        return "fake"

    @property
    def judge_calls(self) -> list[dict[str, Any]]:
        return [c for c in self.calls if c["overrides"].get("response_format")]

    @property
    def opponent_calls(self) -> list[dict[str, Any]]:
        return [c for c in self.calls if not c["overrides"].get("response_format")]

    def _next_text(self, model: str, messages: list[ChatMessage], overrides: dict[str, Any]) -> str:
        self.calls.append({"model": model, "messages": messages, "overrides": overrides})
        if model in self.failures:
            raise self.failures[model]
        if overrides.get("response_format"):
            return self.judge_response
        if self.replies:
            return self.replies.pop(0)
        return f"Counterpoint number {len(self.opponent_calls)}."

    async def generate_response(self, model: str, messages: list[ChatMessage], **overrides: Any) -> str:
        return self._next_text(model, messages, overrides)

    async def stream_response(self, model: str, messages: list[ChatMessage], **overrides: Any) -> AsyncIterator[str]:
        text = self._next_text(model, messages, overrides)
        for word in text.split(" "):
            yield word + " "

    async def aclose(self) -> None:
        self.closed = True


# =============================================================================
# SHARED FIXTURES - Available to all test modules
# =============================================================================


@pytest.fixture
def sample_debate_topic() -> str:
    return "Should artificial intelligence be regulated by governments?"


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def fake_provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture
def make_provider() -> Callable[..., FakeProvider]:
    """Factory for providers with custom replies or failures."""
    return FakeProvider


@pytest.fixture
def app_config() -> AppConfig:
    """Configuration used by the HTTP tests: two anonymous creates per IP per day."""
    return AppConfig(
        identity=IdentityConfig(guest_token_secret="test-guest-secret", jwt_secret_key="test-jwt-secret"),
        generation=GenerationConfig(provider="openrouter", models=["primary-model", "backup-model"]),
        rate_limits=RateLimitConfig(
            anonymous_create_ip_daily=RateLimitTierConfig(max_requests=2, window_seconds=86400),
        ),
    )


@pytest.fixture
def engine(fake_provider: FakeProvider) -> DebateEngine:
    config = AppConfig(generation=GenerationConfig(models=["primary-model", "backup-model"]))
    invoker = ModelFallbackInvoker(fake_provider, config.generation.models)
    return DebateEngine(InMemorySessionStore(), invoker, config.debate, config.generation)


@pytest.fixture
def client(app_config: AppConfig, fake_provider: FakeProvider, fake_clock: FakeClock):
    app = create_app(app_config, provider=fake_provider, store=InMemorySessionStore(), clock=fake_clock)
    with TestClient(app) as test_client:
        yield test_client


# =============================================================================
# PYTEST CONFIGURATION HOOKS
# =============================================================================


def pytest_configure(config: pytest.Config) -> None:
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests"
    )
    config.addinivalue_line(
        "markers", "unit: marks tests as unit tests"
    )
