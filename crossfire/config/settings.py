"""Configuration settings and data models."""

import json
import logging
import os
from pathlib import Path
from typing import List, Literal, Optional

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator

logger = logging.getLogger(__name__)

# Development-only signing secret. Production deployments must set
# GUEST_TOKEN_SECRET (or ADMIN_SECRET).
DEV_GUEST_TOKEN_SECRET = "dev-guest-secret-change-in-production"
DEV_JWT_SECRET_KEY = "dev-secret-key-change-in-production"

CONFIG_FILENAME = "crossfire_config.json"

VALID_PROVIDERS = {"openrouter", "ollama"}


class DebateConfig(BaseModel):
    """Round structure and per-session ceilings."""

    total_rounds: int = Field(default=3, description="Rounds per session (user turn + AI turn each)")
    anonymous_turn_cap: int = Field(
        default=2, description="Maximum user turns an anonymous owner may submit per session"
    )
    topic_max_length: int = Field(default=500, description="Maximum topic length in characters")
    message_max_length: int = Field(default=10000, description="Maximum user turn length in characters")
    opponent_max_length: int = Field(default=200, description="Maximum opponent descriptor length")
    default_opponent: str = Field(
        default="a sharp, skeptical debater", description="Opponent descriptor used when none is supplied"
    )
    duplicate_window_seconds: float = Field(
        default=30.0, description="A repeat create for the same owner and topic inside this window returns the existing session"
    )
    running_summary_max_length: int = Field(
        default=2000, description="Maximum running summary length accepted by live feedback"
    )

    @field_validator("total_rounds", "anonymous_turn_cap")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("Round and turn ceilings must be at least 1")
        return v


class RateLimitTierConfig(BaseModel):
    """A single fixed-window ceiling."""

    max_requests: int = Field(..., ge=1, description="Requests allowed per window")
    window_seconds: float = Field(..., gt=0, description="Window length in seconds")


class RateLimitConfig(BaseModel):
    """Throttle tiers applied by the HTTP layer."""

    turn_ip: RateLimitTierConfig = Field(
        default_factory=lambda: RateLimitTierConfig(max_requests=60, window_seconds=60)
    )
    turn_identity: RateLimitTierConfig = Field(
        default_factory=lambda: RateLimitTierConfig(max_requests=20, window_seconds=60)
    )
    create_ip: RateLimitTierConfig = Field(
        default_factory=lambda: RateLimitTierConfig(max_requests=30, window_seconds=60)
    )
    create_identity: RateLimitTierConfig = Field(
        default_factory=lambda: RateLimitTierConfig(max_requests=10, window_seconds=60)
    )
    anonymous_create_ip_daily: RateLimitTierConfig = Field(
        default_factory=lambda: RateLimitTierConfig(max_requests=3, window_seconds=86400)
    )
    score_ip: RateLimitTierConfig = Field(
        default_factory=lambda: RateLimitTierConfig(max_requests=15, window_seconds=60)
    )
    score_identity: RateLimitTierConfig = Field(
        default_factory=lambda: RateLimitTierConfig(max_requests=5, window_seconds=60)
    )
    takeover_ip: RateLimitTierConfig = Field(
        default_factory=lambda: RateLimitTierConfig(max_requests=30, window_seconds=60)
    )
    takeover_identity: RateLimitTierConfig = Field(
        default_factory=lambda: RateLimitTierConfig(max_requests=10, window_seconds=60)
    )
    feedback_ip: RateLimitTierConfig = Field(
        default_factory=lambda: RateLimitTierConfig(max_requests=20, window_seconds=60)
    )
    feedback_identity: RateLimitTierConfig = Field(
        default_factory=lambda: RateLimitTierConfig(max_requests=10, window_seconds=60)
    )
    cleanup_interval_seconds: float = Field(
        default=60.0, description="Minimum spacing between opportunistic sweeps inside check()"
    )


class IdentityConfig(BaseModel):
    """Anonymous identity and registered-user token settings."""

    guest_token_secret: Optional[str] = Field(
        default=None, description="Signing secret for anonymous identity cookies (GUEST_TOKEN_SECRET)"
    )
    guest_cookie_name: str = Field(default="guest_id")
    guest_cookie_max_age: int = Field(default=31536000, description="One year, in seconds")
    jwt_secret_key: Optional[str] = Field(default=None, description="HS256 secret for access tokens (JWT_SECRET_KEY)")
    jwt_algorithm: str = Field(default="HS256")
    access_token_cookie_name: str = Field(default="access_token")
    secure_cookies: bool = Field(default=False, description="Set the Secure flag on cookies (HTTPS deployments)")


class OllamaConfig(BaseModel):
    """Ollama (OpenAI-compatible endpoint) settings."""

    base_url: str = Field(default="http://localhost:11434", description="Ollama API URL")
    timeout: float = Field(default=120.0, description="Request timeout in seconds")


class OpenRouterConfig(BaseModel):
    """OpenRouter-specific configuration."""

    api_key: Optional[str] = Field(
        default=None, description="OpenRouter API key (can also be set via OPENROUTER_API_KEY env var)"
    )
    base_url: str = Field(default="https://openrouter.ai/api/v1", description="OpenRouter API base URL")
    site_url: Optional[str] = Field(default=None, description="Your site URL for OpenRouter referrer tracking")
    app_name: Optional[str] = Field(default="Crossfire Debate Arena", description="App name for OpenRouter tracking")
    timeout: int = Field(default=60, description="API request timeout in seconds")


class GenerationConfig(BaseModel):
    """Model chain used for opponent replies and judging."""

    provider: str = Field(default="openrouter", description="Generation provider (openrouter, ollama)")
    models: List[str] = Field(
        default=[
            "anthropic/claude-haiku-4.5",
            "google/gemini-2.5-flash",
            "openai/gpt-4o-mini",
        ],
        description="Ordered fallback chain of model identifiers",
    )
    model_override: Optional[str] = Field(
        default=None, description="Single forced model; disables the fallback chain when set"
    )
    opponent_model: Optional[str] = Field(
        default=None, description="Primary model for opponent replies (defaults to the first chain entry)"
    )
    judge_model: Optional[str] = Field(
        default="google/gemini-2.5-flash", description="Primary model for scoring"
    )
    max_tokens: int = Field(default=500, description="Maximum tokens per opponent reply")
    judge_max_tokens: int = Field(default=1500, description="Maximum tokens for a scoring response")
    temperature: float = Field(default=0.7)
    judge_temperature: float = Field(default=0.2)
    feedback_max_tokens: int = Field(default=800, description="Maximum tokens for a live feedback response")

    @field_validator("provider")
    @classmethod
    def validate_provider(cls, v: str) -> str:
        if v not in VALID_PROVIDERS:
            raise ValueError(f"Provider must be one of: {VALID_PROVIDERS}")
        return v

    @field_validator("models")
    @classmethod
    def validate_models(cls, v: List[str]) -> List[str]:
        if not v:
            raise ValueError("At least one generation model must be configured")
        return v

    @property
    def primary_opponent_model(self) -> str:
        return self.opponent_model or self.models[0]

    @property
    def primary_judge_model(self) -> str:
        return self.judge_model or self.models[0]


class StorageConfig(BaseModel):
    """Session persistence backend."""

    backend: Literal["memory", "sqlite"] = Field(default="memory")
    db_path: str = Field(default="sessions.db", description="SQLite file used by the sqlite backend")


class SystemConfig(BaseModel):
    """System-wide configuration."""

    openrouter: OpenRouterConfig = Field(default_factory=OpenRouterConfig)
    ollama: OllamaConfig = Field(default_factory=OllamaConfig)
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(default="INFO")
    allowed_origins: List[str] = Field(default=[], description="CORS origins; empty allows localhost only")
    rate_limit_sweep_seconds: float = Field(
        default=3600.0, description="Interval of the background rate-limit sweep"
    )


class AppConfig(BaseModel):
    """Complete application configuration."""

    debate: DebateConfig = Field(default_factory=DebateConfig)
    rate_limits: RateLimitConfig = Field(default_factory=RateLimitConfig)
    identity: IdentityConfig = Field(default_factory=IdentityConfig)
    generation: GenerationConfig = Field(default_factory=GenerationConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    system: SystemConfig = Field(default_factory=SystemConfig)

    @model_validator(mode="after")
    def check_turn_cap(self) -> "AppConfig":
        if self.debate.anonymous_turn_cap > self.debate.total_rounds:
            logger.warning(
                "anonymous_turn_cap (%s) exceeds total_rounds (%s); the cap will never trigger",
                self.debate.anonymous_turn_cap,
                self.debate.total_rounds,
            )
        return self

    @classmethod
    def load_from_file(cls, config_path: Path) -> "AppConfig":
        """Load configuration from a JSON or YAML file."""
        if not config_path.exists():
            raise FileNotFoundError(f"Config file not found: {config_path}")

        with open(config_path, "r", encoding="utf-8") as f:
            if config_path.suffix in (".yaml", ".yml"):
                data = yaml.safe_load(f) or {}
            else:
                data = json.load(f)

        if not isinstance(data, dict):
            raise ValueError(f"Config file must contain a mapping: {config_path}")

        return cls(**data)

    def save_to_file(self, config_path: Path) -> None:
        """Save configuration to YAML file."""
        config_path.parent.mkdir(parents=True, exist_ok=True)

        with open(config_path, "w", encoding="utf-8") as f:
            yaml.dump(
                self.model_dump(exclude_unset=True),
                f,
                default_flow_style=False,
                indent=2,
            )

    def apply_env_overrides(self) -> "AppConfig":
        """Overlay secrets and model pinning from the process environment."""
        guest_secret = os.environ.get("GUEST_TOKEN_SECRET") or os.environ.get("ADMIN_SECRET")
        if guest_secret:
            self.identity.guest_token_secret = guest_secret

        jwt_secret = os.environ.get("JWT_SECRET_KEY")
        if jwt_secret:
            self.identity.jwt_secret_key = jwt_secret

        override = os.environ.get("GENERATION_MODEL_OVERRIDE")
        if override:
            self.generation.model_override = override.strip()

        chain = os.environ.get("GENERATION_MODELS")
        if chain:
            models = [m.strip() for m in chain.split(",") if m.strip()]
            if models:
                self.generation.models = models

        api_key = os.environ.get("OPENROUTER_API_KEY")
        if api_key:
            self.system.openrouter.api_key = api_key

        db_path = os.environ.get("SESSION_DB_PATH")
        if db_path:
            self.storage.backend = "sqlite"
            self.storage.db_path = db_path

        return self

    def resolved_guest_secret(self) -> str:
        """Return the configured signing secret, or the development fallback."""
        if self.identity.guest_token_secret:
            return self.identity.guest_token_secret
        logger.warning(
            "No GUEST_TOKEN_SECRET or ADMIN_SECRET configured. Using the development "
            "fallback secret; set GUEST_TOKEN_SECRET in production."
        )
        return DEV_GUEST_TOKEN_SECRET

    def resolved_jwt_secret(self) -> str:
        return self.identity.jwt_secret_key or DEV_JWT_SECRET_KEY


def get_default_config() -> AppConfig:
    """Load the config file if present, else the template, then apply env overrides.

    ``CROSSFIRE_CONFIG`` names the file explicitly; otherwise
    crossfire_config.json and then crossfire_config.yaml are tried.
    """
    explicit = os.environ.get("CROSSFIRE_CONFIG")
    candidates = [Path(explicit)] if explicit else [Path(CONFIG_FILENAME), Path(CONFIG_FILENAME).with_suffix(".yaml")]
    for path in candidates:
        if path.exists():
            logger.info(f"Loading configuration from {path}")
            return AppConfig.load_from_file(path).apply_env_overrides()
    return get_template_config().apply_env_overrides()


def get_template_config() -> AppConfig:
    """Get template configuration for config file generation."""
    return AppConfig(
        debate=DebateConfig(
            total_rounds=3,
            anonymous_turn_cap=2,
        ),
        rate_limits=RateLimitConfig(),
        identity=IdentityConfig(
            guest_token_secret=None,  # Set GUEST_TOKEN_SECRET in production
            jwt_secret_key=None,  # Set JWT_SECRET_KEY in production
        ),
        generation=GenerationConfig(
            provider="openrouter",
            models=[
                "anthropic/claude-haiku-4.5",
                "google/gemini-2.5-flash",
                "openai/gpt-4o-mini",
            ],
            judge_model="google/gemini-2.5-flash",
        ),
        storage=StorageConfig(backend="memory"),
        system=SystemConfig(),
    )
