"""Data models for the debate engine."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from .state import TOTAL_ROUNDS, current_phase, current_round, is_completed
from .types import DebatePhase, Role, SessionStatus, Winner

ANONYMOUS_PREFIX = "guest_"
REGISTERED_PREFIX = "user:"


def anonymous_owner(identifier: str) -> str:
    return f"{ANONYMOUS_PREFIX}{identifier}"


def registered_owner(subject: str) -> str:
    """Owner value for an authenticated subject; never collides with a guest owner."""
    return f"{REGISTERED_PREFIX}{subject}"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class DebateMessage:
    """A single message in a session transcript."""

    role: Role
    content: str
    created_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> dict[str, Any]:
        return {
            "role": self.role.value,
            "content": self.content,
            "created_at": self.created_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> DebateMessage:
        created_at = data.get("created_at")
        return cls(
            role=Role(data["role"]),
            content=data["content"],
            created_at=datetime.fromisoformat(created_at) if created_at else utcnow(),
        )


@dataclass(frozen=True)
class CategoryScore:
    """Per-category split of the judge's scores."""

    user: float
    ai: float


@dataclass(frozen=True)
class ScoreResult:
    """Validated judge verdict. Scores are already clamped to 0-100."""

    winner: Winner
    user_score: float
    ai_score: float
    category_breakdown: dict[str, CategoryScore] = field(default_factory=dict)
    narrative: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "winner": self.winner.value,
            "user_score": self.user_score,
            "ai_score": self.ai_score,
            "category_breakdown": {
                name: {"user": cat.user, "ai": cat.ai}
                for name, cat in self.category_breakdown.items()
            },
            "narrative": self.narrative,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ScoreResult:
        return cls(
            winner=Winner(data["winner"]),
            user_score=float(data["user_score"]),
            ai_score=float(data["ai_score"]),
            category_breakdown={
                name: CategoryScore(user=float(cat["user"]), ai=float(cat["ai"]))
                for name, cat in (data.get("category_breakdown") or {}).items()
            },
            narrative=data.get("narrative", ""),
        )


@dataclass
class Session:
    """One debate between a participant and the generated opponent.

    ``messages`` is append-only and always starts with the system message.
    ``round`` and ``phase`` are derived from its length and never stored.
    """

    id: str
    owner_identity: str
    topic: str
    opponent: str
    messages: list[DebateMessage] = field(default_factory=list)
    status: SessionStatus = SessionStatus.ACTIVE
    score: ScoreResult | None = None
    total_rounds: int = TOTAL_ROUNDS
    created_at: datetime = field(default_factory=utcnow)

    @property
    def round(self) -> int:
        return current_round(len(self.messages), self.total_rounds)

    @property
    def phase(self) -> DebatePhase:
        return current_phase(len(self.messages), self.total_rounds)

    @property
    def is_completed(self) -> bool:
        return self.status is SessionStatus.COMPLETED or is_completed(
            len(self.messages), self.total_rounds
        )

    @property
    def is_anonymous(self) -> bool:
        return self.owner_identity.startswith(ANONYMOUS_PREFIX)

    def count_turns(self, role: Role) -> int:
        return sum(1 for m in self.messages if m.role is role)
