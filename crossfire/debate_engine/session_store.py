"""Session persistence.

Stores expose two guarded writes the engine relies on:

* ``append_messages`` is a compare-and-set on the transcript length, so two
  turns racing on one session cannot interleave.
* ``save_score`` is write-once and always returns the value actually stored.
"""

import json
import logging
import sqlite3
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import replace
from datetime import datetime
from pathlib import Path
from typing import Iterator, Optional, Sequence

from .exceptions import AppendConflictError, SessionExistsError, SessionNotFoundError
from .models import DebateMessage, ScoreResult, Session
from .types import SessionStatus

logger = logging.getLogger(__name__)


class SessionStore(ABC):
    """Abstract persistence collaborator for sessions."""

    @abstractmethod
    def create(self, session: Session) -> Session:
        """Persist a new session. Raises SessionExistsError on id collision."""

    @abstractmethod
    def get(self, session_id: str) -> Session:
        """Load a session. Raises SessionNotFoundError."""

    @abstractmethod
    def append_messages(
        self,
        session_id: str,
        messages: Sequence[DebateMessage],
        expected_length: int,
        status: Optional[SessionStatus] = None,
    ) -> Session:
        """Append messages if the transcript still has ``expected_length`` entries.

        Raises:
            AppendConflictError: the transcript length changed since it was read
        """

    @abstractmethod
    def save_score(self, session_id: str, score: ScoreResult) -> ScoreResult:
        """Store ``score`` unless one is already set; return the stored score."""

    @abstractmethod
    def list_for_owner(self, owner_identity: str, limit: int, offset: int = 0) -> tuple[list[Session], int]:
        """One page of an owner's sessions, newest first, plus the owner's total."""

    @abstractmethod
    def find_recent(self, owner_identity: str, topic: str, since: datetime) -> Optional[Session]:
        """The newest session for ``owner_identity`` on ``topic`` created at or after ``since``."""

    def exists(self, session_id: str) -> bool:
        try:
            self.get(session_id)
        except SessionNotFoundError:
            return False
        return True


def _merge_status(current: SessionStatus, requested: Optional[SessionStatus]) -> SessionStatus:
    # completed never regresses
    if current is SessionStatus.COMPLETED or requested is None:
        return current
    return requested


class InMemorySessionStore(SessionStore):
    """Process-local store. State is lost on restart and not shared between instances."""

    def __init__(self):
        self._sessions: dict[str, Session] = {}
        self._lock = threading.Lock()

    @staticmethod
    def _copy(session: Session) -> Session:
        return replace(session, messages=list(session.messages))

    def create(self, session: Session) -> Session:
        with self._lock:
            if session.id in self._sessions:
                raise SessionExistsError(session.id)
            self._sessions[session.id] = self._copy(session)
        logger.debug(f"Created in-memory session {session.id}")
        return self._copy(session)

    def get(self, session_id: str) -> Session:
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                raise SessionNotFoundError(session_id)
            return self._copy(session)

    def append_messages(
        self,
        session_id: str,
        messages: Sequence[DebateMessage],
        expected_length: int,
        status: Optional[SessionStatus] = None,
    ) -> Session:
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                raise SessionNotFoundError(session_id)
            if len(session.messages) != expected_length:
                raise AppendConflictError(session_id, expected_length, len(session.messages))
            session.messages = session.messages + list(messages)
            session.status = _merge_status(session.status, status)
            return self._copy(session)

    def save_score(self, session_id: str, score: ScoreResult) -> ScoreResult:
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                raise SessionNotFoundError(session_id)
            if session.score is None:
                session.score = score
            return session.score

    def _owned(self, owner_identity: str) -> list[Session]:
        owned = [s for s in self._sessions.values() if s.owner_identity == owner_identity]
        return sorted(owned, key=lambda s: s.created_at, reverse=True)

    def list_for_owner(self, owner_identity: str, limit: int, offset: int = 0) -> tuple[list[Session], int]:
        with self._lock:
            owned = self._owned(owner_identity)
            return [self._copy(s) for s in owned[offset : offset + limit]], len(owned)

    def find_recent(self, owner_identity: str, topic: str, since: datetime) -> Optional[Session]:
        with self._lock:
            for session in self._owned(owner_identity):
                if session.created_at < since:
                    break
                if session.topic == topic:
                    return self._copy(session)
        return None


class SQLiteSessionStore(SessionStore):
    """SQLite-backed store using conditional UPDATEs for the guarded writes."""

    def __init__(self, db_path: str = "sessions.db"):
        self.db_path = Path(db_path)
        self._init_database()

    def _init_database(self):
        """Create the sessions table if it does not exist."""
        with self._get_connection() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS sessions (
                    id TEXT PRIMARY KEY,
                    owner_identity TEXT NOT NULL,
                    topic TEXT NOT NULL,
                    opponent TEXT NOT NULL,
                    messages TEXT NOT NULL,
                    message_count INTEGER NOT NULL,
                    status TEXT NOT NULL,
                    score TEXT,
                    total_rounds INTEGER NOT NULL,
                    created_at TEXT NOT NULL
                )
            """
            )
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_sessions_owner ON sessions(owner_identity)"
            )
            conn.commit()
            logger.info(f"Session database initialized at {self.db_path}")

    @contextmanager
    def _get_connection(self) -> Iterator[sqlite3.Connection]:
        """Get a database connection with proper error handling."""
        conn = None
        try:
            conn = sqlite3.connect(self.db_path)
            conn.row_factory = sqlite3.Row  # Enable column access by name
            yield conn
        except sqlite3.Error as e:
            if conn:
                conn.rollback()
            logger.error(f"Database error: {e}")
            raise
        finally:
            if conn:
                conn.close()

    @staticmethod
    def _row_to_session(row: sqlite3.Row) -> Session:
        score_data = json.loads(row["score"]) if row["score"] else None
        return Session(
            id=row["id"],
            owner_identity=row["owner_identity"],
            topic=row["topic"],
            opponent=row["opponent"],
            messages=[DebateMessage.from_dict(m) for m in json.loads(row["messages"])],
            status=SessionStatus(row["status"]),
            score=ScoreResult.from_dict(score_data) if score_data else None,
            total_rounds=row["total_rounds"],
            created_at=datetime.fromisoformat(row["created_at"]),
        )

    def create(self, session: Session) -> Session:
        with self._get_connection() as conn:
            try:
                conn.execute(
                    """
                    INSERT INTO sessions (
                        id, owner_identity, topic, opponent, messages, message_count,
                        status, score, total_rounds, created_at
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                    (
                        session.id,
                        session.owner_identity,
                        session.topic,
                        session.opponent,
                        json.dumps([m.to_dict() for m in session.messages]),
                        len(session.messages),
                        session.status.value,
                        json.dumps(session.score.to_dict()) if session.score else None,
                        session.total_rounds,
                        session.created_at.isoformat(),
                    ),
                )
            except sqlite3.IntegrityError as e:
                raise SessionExistsError(session.id) from e
            conn.commit()
        logger.debug(f"Created session {session.id} in {self.db_path}")
        return session

    def get(self, session_id: str) -> Session:
        with self._get_connection() as conn:
            row = conn.execute("SELECT * FROM sessions WHERE id = ?", (session_id,)).fetchone()
        if not row:
            raise SessionNotFoundError(session_id)
        return self._row_to_session(row)

    def append_messages(
        self,
        session_id: str,
        messages: Sequence[DebateMessage],
        expected_length: int,
        status: Optional[SessionStatus] = None,
    ) -> Session:
        current = self.get(session_id)
        if len(current.messages) != expected_length:
            raise AppendConflictError(session_id, expected_length, len(current.messages))

        updated = current.messages + list(messages)
        new_status = _merge_status(current.status, status)

        with self._get_connection() as conn:
            cursor = conn.execute(
                """
                UPDATE sessions
                SET messages = ?,
                    message_count = ?,
                    status = CASE WHEN status = 'completed' THEN 'completed' ELSE ? END
                WHERE id = ? AND message_count = ?
            """,
                (
                    json.dumps([m.to_dict() for m in updated]),
                    len(updated),
                    new_status.value,
                    session_id,
                    expected_length,
                ),
            )
            conn.commit()
            if cursor.rowcount == 0:
                actual = self.get(session_id)
                raise AppendConflictError(session_id, expected_length, len(actual.messages))

        return replace(current, messages=updated, status=new_status)

    def save_score(self, session_id: str, score: ScoreResult) -> ScoreResult:
        with self._get_connection() as conn:
            cursor = conn.execute(
                "UPDATE sessions SET score = ? WHERE id = ? AND score IS NULL",
                (json.dumps(score.to_dict()), session_id),
            )
            conn.commit()
            if cursor.rowcount:
                return score

        stored = self.get(session_id).score
        if stored is None:
            raise RuntimeError(f"Score for session {session_id} was not stored")
        return stored

    def list_for_owner(self, owner_identity: str, limit: int, offset: int = 0) -> tuple[list[Session], int]:
        with self._get_connection() as conn:
            total = conn.execute(
                "SELECT COUNT(*) FROM sessions WHERE owner_identity = ?", (owner_identity,)
            ).fetchone()[0]
            rows = conn.execute(
                """
                SELECT * FROM sessions
                WHERE owner_identity = ?
                ORDER BY created_at DESC
                LIMIT ? OFFSET ?
            """,
                (owner_identity, limit, offset),
            ).fetchall()
        return [self._row_to_session(row) for row in rows], total

    def find_recent(self, owner_identity: str, topic: str, since: datetime) -> Optional[Session]:
        with self._get_connection() as conn:
            row = conn.execute(
                """
                SELECT * FROM sessions
                WHERE owner_identity = ? AND topic = ? AND created_at >= ?
                ORDER BY created_at DESC
                LIMIT 1
            """,
                (owner_identity, topic, since.isoformat()),
            ).fetchone()
        return self._row_to_session(row) if row else None
