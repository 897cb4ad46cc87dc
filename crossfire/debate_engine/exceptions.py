"""Exceptions raised by the debate engine.

Every error a caller can act on carries a stable ``code`` so the HTTP layer can
render machine-readable responses without parsing messages.
"""

from typing import Any


class DebateError(Exception):
    """Base class for recoverable engine errors."""

    code = "debate_error"
    status_code = 400

    def __init__(self, message: str, **details: Any):
        super().__init__(message)
        self.message = message
        self.details: dict[str, Any] = details


class SessionNotFoundError(DebateError):
    code = "session_not_found"
    status_code = 404

    def __init__(self, session_id: str):
        super().__init__(f"Session {session_id} not found", session_id=session_id)


class SessionExistsError(DebateError):
    code = "session_exists"
    status_code = 409

    def __init__(self, session_id: str):
        super().__init__(f"Session {session_id} already exists", session_id=session_id)


class SessionAccessError(DebateError):
    """The caller does not own the session."""

    code = "forbidden"
    status_code = 403

    def __init__(self, session_id: str):
        super().__init__("You do not have access to this session", session_id=session_id)


class SessionCompletedError(DebateError):
    code = "session_completed"
    status_code = 409

    def __init__(self, session_id: str):
        super().__init__("This debate has already finished.", session_id=session_id)


class AnonymousTurnLimitError(DebateError):
    code = "anonymous_turn_limit_reached"
    status_code = 403

    def __init__(self, limit: int, current: int):
        super().__init__(
            "You have reached the free limit. Please sign up to continue.",
            limit=limit,
            current=current,
            signup_required=True,
        )
        self.limit = limit


class InsufficientTurnsError(DebateError):
    code = "insufficient_turns"
    status_code = 400

    def __init__(self, user_turns: int, ai_turns: int, required: int = 2):
        super().__init__(
            f"Need at least {required} exchanges to score a debate",
            user_turns=user_turns,
            ai_turns=ai_turns,
            required=required,
        )


class AppendConflictError(DebateError):
    """The session changed between read and write; the turn may be retried."""

    code = "append_conflict"
    status_code = 409

    def __init__(self, session_id: str, expected_length: int, actual_length: int):
        super().__init__(
            "The session was modified concurrently; retry the turn",
            session_id=session_id,
            expected_length=expected_length,
            actual_length=actual_length,
            retryable=True,
        )


class GenerationFailedError(DebateError):
    code = "generation_failed"
    status_code = 502

    def __init__(self, message: str = "Failed to generate response"):
        super().__init__(message)


class NoExchangeError(DebateError):
    code = "no_exchange"
    status_code = 400

    def __init__(self, session_id: str):
        super().__init__(
            "Feedback needs at least one completed exchange", session_id=session_id
        )
