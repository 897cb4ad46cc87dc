"""Request and response models. JSON keys are camelCase."""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from crossfire.debate_engine.core import TurnResult
from crossfire.debate_engine.models import DebateMessage, ScoreResult, Session
from crossfire.judges.live_feedback import LiveFeedback
from crossfire.judges.leaderboard import LeaderboardEntry


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class CreateSessionRequest(CamelModel):
    """Request model for creating a session."""

    topic: str = Field(..., min_length=1, description="Debate topic")
    opponent_descriptor: Optional[str] = Field(default=None, description="Opponent persona")
    session_id: Optional[str] = Field(
        default=None, min_length=1, max_length=128, description="Client-supplied session id"
    )


class TurnRequest(CamelModel):
    content: str = Field(..., min_length=1)


class MessageSchema(CamelModel):
    role: str
    content: str
    created_at: datetime

    @classmethod
    def from_message(cls, message: DebateMessage) -> "MessageSchema":
        return cls(role=message.role.value, content=message.content, created_at=message.created_at)


class CategoryScoreSchema(CamelModel):
    user: float
    ai: float


class ScoreSchema(CamelModel):
    winner: str
    user_score: float
    ai_score: float
    category_breakdown: dict[str, CategoryScoreSchema] = Field(default_factory=dict)
    narrative: str = ""

    @classmethod
    def from_score(cls, score: ScoreResult) -> "ScoreSchema":
        return cls(
            winner=score.winner.value,
            user_score=score.user_score,
            ai_score=score.ai_score,
            category_breakdown={
                name: CategoryScoreSchema(user=cat.user, ai=cat.ai)
                for name, cat in score.category_breakdown.items()
            },
            narrative=score.narrative,
        )


class SessionResponse(CamelModel):
    """Public view of a session."""

    id: str
    topic: str
    opponent: str
    messages: list[MessageSchema]
    message_count: int
    round: int
    total_rounds: int
    phase: str
    status: str
    is_anonymous: bool
    score: Optional[ScoreSchema] = None
    created_at: datetime

    @classmethod
    def from_session(cls, session: Session) -> "SessionResponse":
        return cls(
            id=session.id,
            topic=session.topic,
            opponent=session.opponent,
            messages=[MessageSchema.from_message(m) for m in session.messages],
            message_count=len(session.messages),
            round=session.round,
            total_rounds=session.total_rounds,
            phase=session.phase.value,
            status=session.status.value,
            is_anonymous=session.is_anonymous,
            score=ScoreSchema.from_score(session.score) if session.score else None,
            created_at=session.created_at,
        )


class CreateSessionResponse(CamelModel):
    session_id: str
    is_anonymous: bool
    anonymous_identity_cookie: Optional[str] = None
    deduplicated: bool = False
    session: SessionResponse


class TurnResponse(CamelModel):
    user_message: MessageSchema
    ai_message: MessageSchema
    round: int
    status: str
    message_count: int

    @classmethod
    def from_result(cls, result: TurnResult) -> "TurnResponse":
        return cls(
            user_message=MessageSchema.from_message(result.user_message),
            ai_message=MessageSchema.from_message(result.ai_message),
            round=result.round,
            status=result.status.value,
            message_count=result.message_count,
        )


class SessionSummarySchema(CamelModel):
    """One row of a session history listing."""

    id: str
    topic: str
    opponent: str
    message_count: int
    round: int
    status: str
    winner: Optional[str] = None
    created_at: datetime

    @classmethod
    def from_session(cls, session: Session) -> "SessionSummarySchema":
        return cls(
            id=session.id,
            topic=session.topic,
            opponent=session.opponent,
            message_count=len(session.messages),
            round=session.round,
            status=session.status.value,
            winner=session.score.winner.value if session.score else None,
            created_at=session.created_at,
        )


class PaginationSchema(CamelModel):
    total: int
    limit: int
    offset: int
    has_more: bool


class SessionListResponse(CamelModel):
    sessions: list[SessionSummarySchema]
    pagination: PaginationSchema


class FeedbackRequest(CamelModel):
    running_summary: Optional[str] = Field(default=None, description="Summary returned by the previous feedback call")


class HighlightSchema(CamelModel):
    text: str
    type: str
    comment: str


class FeedbackResponse(CamelModel):
    overall_score: int
    strengths: list[str]
    weaknesses: list[str]
    tip: str
    highlights: list[HighlightSchema]
    debate_summary_so_far: str

    @classmethod
    def from_feedback(cls, feedback: LiveFeedback) -> "FeedbackResponse":
        return cls(
            overall_score=feedback.overall_score,
            strengths=feedback.strengths,
            weaknesses=feedback.weaknesses,
            tip=feedback.tip,
            highlights=[HighlightSchema(text=h.text, type=h.type, comment=h.comment) for h in feedback.highlights],
            debate_summary_so_far=feedback.summary_so_far,
        )


class ScoreResponse(CamelModel):
    score: ScoreSchema
    cached: bool


class LeaderboardEntrySchema(CamelModel):
    owner_identity: str
    debates: int
    wins: int
    losses: int
    draws: int
    points: float
    current_streak: int
    best_streak: int

    @classmethod
    def from_entry(cls, entry: LeaderboardEntry) -> "LeaderboardEntrySchema":
        return cls(**entry.to_dict())


class LeaderboardResponse(CamelModel):
    entries: list[LeaderboardEntrySchema]


class ErrorResponse(CamelModel):
    error: str
    code: str
    message: str
    details: dict[str, Any] = Field(default_factory=dict)
