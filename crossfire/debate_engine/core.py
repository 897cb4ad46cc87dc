"""Turn-based session engine."""

from __future__ import annotations

import logging
import time
import uuid
from collections.abc import AsyncIterator
from contextlib import aclosing
from dataclasses import dataclass, field
from datetime import timedelta
from typing import TYPE_CHECKING

from crossfire.models.providers.base_model_provider import ChatMessage

from .exceptions import (
    AnonymousTurnLimitError,
    DebateError,
    GenerationFailedError,
    NoExchangeError,
    SessionAccessError,
    SessionCompletedError,
)
from .models import DebateMessage, Session, utcnow
from .prompts import build_opponent_messages, takeover_messages, welcome_message
from .session_store import SessionStore
from .state import current_round, is_completed
from .types import Role, SessionStatus

if TYPE_CHECKING:
    from crossfire.config.settings import DebateConfig, GenerationConfig
    from crossfire.models.fallback import ModelFallbackInvoker

logger = logging.getLogger(__name__)


@dataclass
class TurnResult:
    """Outcome of a committed turn."""

    session_id: str
    user_message: DebateMessage
    ai_message: DebateMessage
    round: int
    status: SessionStatus
    message_count: int


@dataclass
class PendingTurn:
    """A validated turn whose opponent reply has not been committed yet."""

    session: Session
    user_message: DebateMessage
    prompt: list[ChatMessage]
    expected_length: int
    result: TurnResult | None = field(default=None)


class DebateEngine:
    """Creates sessions and drives them through their rounds."""

    def __init__(
        self,
        store: SessionStore,
        invoker: ModelFallbackInvoker,
        debate_config: DebateConfig,
        generation_config: GenerationConfig,
    ):
        self.store = store
        self.invoker = invoker
        self.debate_config = debate_config
        self.generation_config = generation_config

    def create_session(
        self,
        owner_identity: str,
        topic: str,
        opponent: str | None = None,
        session_id: str | None = None,
    ) -> Session:
        """Create a session whose transcript starts with the welcome system message."""
        topic = topic.strip()
        if not topic:
            raise DebateError("Topic is required")
        if len(topic) > self.debate_config.topic_max_length:
            raise DebateError(
                "Topic is too long", max_length=self.debate_config.topic_max_length
            )

        opponent = (opponent or "").strip() or None
        session = Session(
            id=session_id or str(uuid.uuid4()),
            owner_identity=owner_identity,
            topic=topic,
            opponent=opponent or self.debate_config.default_opponent,
            messages=[DebateMessage(role=Role.SYSTEM, content=welcome_message(topic, opponent))],
            total_rounds=self.debate_config.total_rounds,
        )
        created = self.store.create(session)
        logger.info(f"Created session {created.id}: {topic[:100]}")
        return created

    def find_recent_duplicate(self, owner_identity: str, topic: str) -> Session | None:
        """A session the owner opened on the same topic within the duplicate window."""
        window = self.debate_config.duplicate_window_seconds
        if window <= 0:
            return None
        since = utcnow() - timedelta(seconds=window)
        return self.store.find_recent(owner_identity, topic.strip(), since)

    def list_sessions(self, owner_identity: str, limit: int = 20, offset: int = 0) -> tuple[list[Session], int]:
        return self.store.list_for_owner(owner_identity, limit, offset)

    def get_session(self, session_id: str) -> Session:
        return self.store.get(session_id)

    def get_owned_session(self, session_id: str, owner_identity: str) -> Session:
        session = self.store.get(session_id)
        if session.owner_identity != owner_identity:
            raise SessionAccessError(session_id)
        return session

    def prepare_turn(self, session_id: str, owner_identity: str, content: str) -> PendingTurn:
        """Validate a user turn against the session state without mutating it.

        Raises:
            SessionCompletedError: all rounds have been played
            AnonymousTurnLimitError: an anonymous owner used up its free turns
        """
        content = content.strip()
        if not content:
            raise DebateError("Message is required")
        if len(content) > self.debate_config.message_max_length:
            raise DebateError(
                "Message is too long", max_length=self.debate_config.message_max_length
            )

        session = self.get_owned_session(session_id, owner_identity)
        self._check_turn_allowed(session)

        user_message = DebateMessage(role=Role.USER, content=content)
        history = session.messages + [user_message]
        prompt = build_opponent_messages(
            session.topic,
            session.opponent,
            history,
            session.phase,
            session.round,
            session.total_rounds,
        )
        return PendingTurn(
            session=session,
            user_message=user_message,
            prompt=prompt,
            expected_length=len(session.messages),
        )

    def _generation_overrides(self) -> dict[str, object]:
        return {
            "max_tokens": self.generation_config.max_tokens,
            "temperature": self.generation_config.temperature,
        }

    def commit_turn(self, turn: PendingTurn, reply: str) -> TurnResult:
        """Append the user message and opponent reply in one guarded write."""
        reply = reply.strip()
        if not reply:
            raise GenerationFailedError("The opponent returned an empty response")

        ai_message = DebateMessage(role=Role.AI, content=reply)
        new_count = turn.expected_length + 2
        completed = is_completed(new_count, turn.session.total_rounds)

        updated = self.store.append_messages(
            turn.session.id,
            [turn.user_message, ai_message],
            expected_length=turn.expected_length,
            status=SessionStatus.COMPLETED if completed else None,
        )
        if completed:
            logger.info(f"Session {turn.session.id} completed after {new_count} messages")

        turn.result = TurnResult(
            session_id=updated.id,
            user_message=turn.user_message,
            ai_message=ai_message,
            round=current_round(len(updated.messages), updated.total_rounds),
            status=updated.status,
            message_count=len(updated.messages),
        )
        return turn.result

    async def submit_turn(self, session_id: str, owner_identity: str, content: str) -> TurnResult:
        """Run a complete, non-streaming turn."""
        turn = self.prepare_turn(session_id, owner_identity, content)

        start = time.monotonic()
        try:
            reply = await self.invoker.generate(
                self.generation_config.primary_opponent_model,
                turn.prompt,
                **self._generation_overrides(),
            )
        except Exception as e:
            logger.error(f"Opponent generation failed for session {session_id}: {type(e).__name__}: {e}")
            raise GenerationFailedError() from e

        logger.info(f"Session {session_id}: opponent reply in {int((time.monotonic() - start) * 1000)}ms")
        return self.commit_turn(turn, reply)

    async def stream_turn(self, turn: PendingTurn) -> AsyncIterator[str]:
        """Yield opponent reply chunks, committing the turn once the stream ends.

        If the consumer stops early the upstream stream is closed and nothing
        is persisted. ``turn.result`` is set after a successful commit.
        """
        parts: list[str] = []
        try:
            async with aclosing(
                self.invoker.stream(
                    self.generation_config.primary_opponent_model,
                    turn.prompt,
                    **self._generation_overrides(),
                )
            ) as chunks:
                async for chunk in chunks:
                    parts.append(chunk)
                    yield chunk
        except Exception as e:
            logger.error(
                f"Opponent stream failed for session {turn.session.id} after {len(parts)} chunks: "
                f"{type(e).__name__}: {e}"
            )
            raise GenerationFailedError() from e

        self.commit_turn(turn, "".join(parts))

    def _check_turn_allowed(self, session: Session) -> None:
        if session.is_completed:
            raise SessionCompletedError(session.id)

        if session.is_anonymous:
            user_turns = session.count_turns(Role.USER)
            cap = self.debate_config.anonymous_turn_cap
            if user_turns >= cap:
                logger.info(f"Anonymous turn cap reached for session {session.id} ({user_turns}/{cap})")
                raise AnonymousTurnLimitError(limit=cap, current=user_turns)

    def prepare_takeover(self, session_id: str, owner_identity: str) -> tuple[Session, list[ChatMessage]]:
        """Validate a takeover request and build the prompt that drafts the user's next turn.

        A takeover is subject to the same ceilings as a turn because its
        output is meant to be submitted as one.
        """
        session = self.get_owned_session(session_id, owner_identity)
        self._check_turn_allowed(session)
        return session, takeover_messages(session.topic, session.opponent, session.messages)

    async def stream_takeover(self, session: Session, prompt: list[ChatMessage]) -> AsyncIterator[str]:
        """Yield a drafted argument for the user. Nothing is persisted."""
        chunk_count = 0
        try:
            async with aclosing(
                self.invoker.stream(
                    self.generation_config.primary_opponent_model,
                    prompt,
                    **self._generation_overrides(),
                )
            ) as chunks:
                async for chunk in chunks:
                    chunk_count += 1
                    yield chunk
        except Exception as e:
            logger.error(
                f"Takeover stream failed for session {session.id} after {chunk_count} chunks: "
                f"{type(e).__name__}: {e}"
            )
            raise GenerationFailedError("Failed to generate an argument") from e

    def latest_exchange(self, session_id: str, owner_identity: str) -> tuple[Session, DebateMessage, DebateMessage]:
        """The owner's session with its most recent user turn and the reply to it.

        Raises:
            NoExchangeError: no user turn has been answered yet
        """
        session = self.get_owned_session(session_id, owner_identity)
        for index in range(len(session.messages) - 1, 0, -1):
            message = session.messages[index]
            previous = session.messages[index - 1]
            if message.role is Role.AI and previous.role is Role.USER:
                return session, previous, message
        raise NoExchangeError(session_id)
