"""Debate session engine: round state machine, sessions and persistence."""

from .core import DebateEngine, PendingTurn, TurnResult
from .exceptions import (
    AnonymousTurnLimitError,
    AppendConflictError,
    DebateError,
    GenerationFailedError,
    InsufficientTurnsError,
    NoExchangeError,
    SessionAccessError,
    SessionCompletedError,
    SessionExistsError,
    SessionNotFoundError,
)
from .models import (
    ANONYMOUS_PREFIX,
    REGISTERED_PREFIX,
    CategoryScore,
    DebateMessage,
    ScoreResult,
    Session,
    anonymous_owner,
    registered_owner,
)
from .session_store import InMemorySessionStore, SessionStore, SQLiteSessionStore
from .state import current_phase, current_round, is_completed
from .types import DebatePhase, IdentityKind, Role, SessionStatus, Winner

__all__ = [
    "ANONYMOUS_PREFIX",
    "AnonymousTurnLimitError",
    "AppendConflictError",
    "CategoryScore",
    "DebateEngine",
    "DebateError",
    "DebateMessage",
    "DebatePhase",
    "GenerationFailedError",
    "IdentityKind",
    "InMemorySessionStore",
    "InsufficientTurnsError",
    "NoExchangeError",
    "PendingTurn",
    "REGISTERED_PREFIX",
    "Role",
    "SQLiteSessionStore",
    "ScoreResult",
    "Session",
    "SessionAccessError",
    "SessionCompletedError",
    "SessionExistsError",
    "SessionNotFoundError",
    "SessionStatus",
    "SessionStore",
    "TurnResult",
    "Winner",
    "anonymous_owner",
    "current_phase",
    "current_round",
    "is_completed",
    "registered_owner",
]
