import logging
import threading
from dataclasses import asdict, dataclass
from typing import Any

from crossfire.debate_engine.models import ScoreResult, Session
from crossfire.debate_engine.types import Winner

from .base import ScoreEffect

logger = logging.getLogger(__name__)


@dataclass
class LeaderboardEntry:
    """Aggregated results for one registered participant."""

    owner_identity: str
    debates: int = 0
    wins: int = 0
    losses: int = 0
    draws: int = 0
    points: float = 0.0
    current_streak: int = 0
    best_streak: int = 0

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class LeaderboardRecorder(ScoreEffect):
    """Keeps per-participant win/loss totals and win streaks in memory.

    Anonymous owners are not ranked. Points are the participant's own score
    for each judged debate.
    """

    def __init__(self):
        self._entries: dict[str, LeaderboardEntry] = {}
        self._lock = threading.Lock()

    async def apply(self, session: Session, score: ScoreResult) -> None:
        if session.is_anonymous:
            logger.debug(f"Skipping leaderboard update for anonymous session {session.id}")
            return

        with self._lock:
            entry = self._entries.setdefault(
                session.owner_identity, LeaderboardEntry(owner_identity=session.owner_identity)
            )
            entry.debates += 1
            entry.points += score.user_score
            if score.winner is Winner.USER:
                entry.wins += 1
                entry.current_streak += 1
                entry.best_streak = max(entry.best_streak, entry.current_streak)
            elif score.winner is Winner.AI:
                entry.losses += 1
                entry.current_streak = 0
            else:
                entry.draws += 1
            summary = f"{entry.wins}W/{entry.losses}L/{entry.draws}D, streak {entry.current_streak}"

        logger.info(f"Leaderboard updated for {session.owner_identity}: {summary}")

    def get(self, owner_identity: str) -> LeaderboardEntry | None:
        with self._lock:
            entry = self._entries.get(owner_identity)
            return LeaderboardEntry(**asdict(entry)) if entry else None

    def standings(self, limit: int = 20) -> list[LeaderboardEntry]:
        """Entries ordered by points, then wins."""
        with self._lock:
            entries = [LeaderboardEntry(**asdict(e)) for e in self._entries.values()]
        entries.sort(key=lambda e: (e.points, e.wins), reverse=True)
        return entries[:limit]
