"""Judging and scoring."""

from .ai_judge import ScoringJudge, parse_score, strip_code_fence
from .base import BaseJudge, ScoreEffect
from .exceptions import JudgeResponseInvalidError
from .leaderboard import LeaderboardEntry, LeaderboardRecorder
from .live_feedback import FeedbackHighlight, LiveFeedback, LiveFeedbackJudge, parse_live_feedback
from .scoring import ScoreOutcome, ScoringService

__all__ = [
    "BaseJudge",
    "FeedbackHighlight",
    "JudgeResponseInvalidError",
    "LeaderboardEntry",
    "LeaderboardRecorder",
    "LiveFeedback",
    "LiveFeedbackJudge",
    "ScoreEffect",
    "ScoreOutcome",
    "ScoringJudge",
    "ScoringService",
    "parse_live_feedback",
    "parse_score",
    "strip_code_fence",
]
