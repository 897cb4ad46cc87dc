"""Shared types and enums for the debate engine."""

from enum import Enum


class Role(Enum):
    """Author of a session message."""

    SYSTEM = "system"
    USER = "user"
    AI = "ai"


class SessionStatus(Enum):
    """Lifecycle of a session; moves active -> completed exactly once."""

    ACTIVE = "active"
    COMPLETED = "completed"


class DebatePhase(Enum):
    """Named stage for each round of a session."""

    OPENING = "opening"
    REBUTTAL = "rebuttal"
    CLOSING = "closing"
    COMPLETED = "completed"


class Winner(Enum):
    """Outcome declared by the judge."""

    USER = "user"
    AI = "ai"
    DRAW = "draw"


class IdentityKind(Enum):
    """How the caller of a request was identified."""

    REGISTERED = "registered"
    ANONYMOUS = "anonymous"
    NONE = "none"
