"""Application services shared by the endpoints."""

import logging
import time
from dataclasses import dataclass
from typing import Optional

from fastapi import Request

from crossfire.config.settings import AppConfig
from crossfire.debate_engine.core import DebateEngine
from crossfire.debate_engine.session_store import InMemorySessionStore, SessionStore, SQLiteSessionStore
from crossfire.judges.ai_judge import ScoringJudge
from crossfire.judges.leaderboard import LeaderboardRecorder
from crossfire.judges.live_feedback import LiveFeedbackJudge
from crossfire.judges.scoring import ScoringService
from crossfire.models.fallback import ModelFallbackInvoker
from crossfire.models.providers.base_model_provider import BaseModelProvider
from crossfire.models.providers.providers import ProviderFactory

from .auth import AuthenticationError, JWTUtils, get_authenticated_subject
from .identity import Identity, IdentityResolver
from .rate_limit import Clock, RateLimitTiers

logger = logging.getLogger(__name__)


@dataclass
class Services:
    config: AppConfig
    engine: DebateEngine
    scoring: ScoringService
    feedback: LiveFeedbackJudge
    identity_resolver: IdentityResolver
    jwt: JWTUtils
    limits: RateLimitTiers
    leaderboard: LeaderboardRecorder
    provider: BaseModelProvider


def build_store(config: AppConfig) -> SessionStore:
    if config.storage.backend == "sqlite":
        logger.info(f"Using SQLite session store at {config.storage.db_path}")
        return SQLiteSessionStore(config.storage.db_path)
    logger.info("Using in-memory session store")
    return InMemorySessionStore()


def build_services(
    config: AppConfig,
    *,
    provider: Optional[BaseModelProvider] = None,
    store: Optional[SessionStore] = None,
    clock: Clock = time.time,
) -> Services:
    """Wire the engine, judge, limiter tiers and identity resolver from config."""
    provider = provider or ProviderFactory.for_generation(config.generation, config.system)
    store = store or build_store(config)
    invoker = ModelFallbackInvoker(provider, config.generation.models, config.generation.model_override)

    leaderboard = LeaderboardRecorder()
    return Services(
        config=config,
        engine=DebateEngine(store, invoker, config.debate, config.generation),
        scoring=ScoringService(store, ScoringJudge(invoker, config.generation), effects=[leaderboard]),
        feedback=LiveFeedbackJudge(invoker, config.generation),
        identity_resolver=IdentityResolver(config.resolved_guest_secret()),
        jwt=JWTUtils(config.resolved_jwt_secret(), config.identity.jwt_algorithm),
        limits=RateLimitTiers(config.rate_limits, clock=clock),
        leaderboard=leaderboard,
        provider=provider,
    )


def get_services(request: Request) -> Services:
    return request.app.state.services


def resolve_request_identity(request: Request, services: Services) -> Identity:
    """Identity from the access token, else from the signed guest cookie."""
    identity_config = services.config.identity
    subject = get_authenticated_subject(request, services.jwt, identity_config.access_token_cookie_name)
    return services.identity_resolver.resolve_identity(
        authenticated_subject=subject,
        cookie_token=request.cookies.get(identity_config.guest_cookie_name),
    )


def require_owner_identity(request: Request, services: Services) -> str:
    owner = resolve_request_identity(request, services).owner_identity
    if owner is None:
        raise AuthenticationError()
    return owner
