"""Exactly-once scoring of sessions."""

import logging
from dataclasses import dataclass, replace
from typing import Optional, Sequence

from crossfire.debate_engine.exceptions import (
    DebateError,
    GenerationFailedError,
    InsufficientTurnsError,
    SessionAccessError,
)
from crossfire.debate_engine.models import ScoreResult, Session
from crossfire.debate_engine.session_store import SessionStore
from crossfire.debate_engine.types import Role

from .base import BaseJudge, ScoreEffect

logger = logging.getLogger(__name__)

MIN_SCORING_TURNS = 2


@dataclass(frozen=True)
class ScoreOutcome:
    score: ScoreResult
    cached: bool


class ScoringService:
    """Scores a session at most once and fans the result out to effects."""

    def __init__(
        self,
        store: SessionStore,
        judge: BaseJudge,
        effects: Optional[Sequence[ScoreEffect]] = None,
    ):
        self.store = store
        self.judge = judge
        self.effects: list[ScoreEffect] = list(effects or [])

    async def score(self, session_id: str, owner_identity: str) -> ScoreOutcome:
        """Return the stored score, or judge the session and store the result.

        A stored score short-circuits without contacting the judge. Saving the
        score and running effects never fail the call once a score exists.

        Raises:
            SessionNotFoundError: unknown session
            SessionAccessError: the caller does not own the session
            InsufficientTurnsError: fewer than two user and two AI turns
            JudgeResponseInvalidError: the judge output failed validation
            GenerationFailedError: the judge call itself failed
        """
        session = self.store.get(session_id)
        if session.owner_identity != owner_identity:
            raise SessionAccessError(session_id)

        if session.score is not None:
            logger.debug(f"Returning stored score for session {session_id}")
            return ScoreOutcome(score=session.score, cached=True)

        user_turns = session.count_turns(Role.USER)
        ai_turns = session.count_turns(Role.AI)
        if user_turns < MIN_SCORING_TURNS or ai_turns < MIN_SCORING_TURNS:
            raise InsufficientTurnsError(user_turns, ai_turns, MIN_SCORING_TURNS)

        logger.info(f"Scoring session {session_id} ({len(session.messages)} messages)")
        try:
            score = await self.judge.evaluate(session)
        except DebateError:
            raise
        except Exception as e:
            logger.error(f"Judge call failed for session {session_id}: {type(e).__name__}: {e}")
            raise GenerationFailedError("Failed to score debate") from e

        try:
            stored = self.store.save_score(session_id, score)
        except Exception as e:
            logger.error(f"Failed to persist score for session {session_id}: {e}")
            stored = score
        else:
            if stored != score:
                # a concurrent request stored its score first
                logger.info(f"Session {session_id} was scored concurrently; returning stored score")
                return ScoreOutcome(score=stored, cached=True)

        await self._run_effects(replace(session, score=stored), stored)
        return ScoreOutcome(score=stored, cached=False)

    async def _run_effects(self, session: Session, score: ScoreResult) -> None:
        for effect in self.effects:
            try:
                await effect.apply(session, score)
            except Exception as e:
                logger.error(f"Score effect {effect.name} failed for session {session.id}: {e}")
