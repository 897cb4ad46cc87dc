"""Session creation, turn submission and scoring endpoints."""

import json
import logging
from collections.abc import AsyncIterator
from typing import Any

from fastapi import APIRouter, Depends, Query, Request, Response
from fastapi.responses import StreamingResponse

from crossfire.debate_engine.core import PendingTurn
from crossfire.debate_engine.exceptions import DebateError
from crossfire.debate_engine.models import Session
from crossfire.debate_engine.types import IdentityKind
from crossfire.models.providers.base_model_provider import ChatMessage
from crossfire.web.auth import AuthenticationError
from crossfire.web.dependencies import Services, get_services, require_owner_identity, resolve_request_identity
from crossfire.web.identity import Identity
from crossfire.web.rate_limit import enforce_tier, get_client_ip, passed_rate_limit_headers
from crossfire.web.schemas import (
    CreateSessionRequest,
    CreateSessionResponse,
    ErrorResponse,
    FeedbackRequest,
    FeedbackResponse,
    MessageSchema,
    PaginationSchema,
    ScoreResponse,
    ScoreSchema,
    SessionListResponse,
    SessionResponse,
    SessionSummarySchema,
    TurnRequest,
    TurnResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api")

ERROR_RESPONSES: dict[int | str, dict[str, Any]] = {
    status: {"model": ErrorResponse} for status in (400, 401, 403, 404, 409, 429, 502)
}

STREAM_HEADERS = {"Cache-Control": "no-cache", "X-Accel-Buffering": "no"}


@router.post("/sessions", response_model=CreateSessionResponse, status_code=201, responses=ERROR_RESPONSES)
async def create_session(
    body: CreateSessionRequest,
    request: Request,
    response: Response,
    services: Services = Depends(get_services),
):
    """Create a session, minting an anonymous identity when the caller has none.

    Repeating a create for the same topic within a few seconds returns the
    session the first request opened, with ``deduplicated`` set.
    """
    ip = get_client_ip(request)
    limits = services.limits
    enforce_tier(request, limits.create_ip, ip)

    identity = resolve_request_identity(request, services)
    minted = None
    if identity.kind is IdentityKind.NONE:
        minted = services.identity_resolver.mint_anonymous_identity()
        identity = Identity(kind=IdentityKind.ANONYMOUS, id=minted.id)

    if identity.is_anonymous:
        enforce_tier(request, limits.anonymous_create_ip_daily, f"anon-create:{ip}")
    else:
        enforce_tier(request, limits.create_identity, identity.owner_identity)

    opponent = body.opponent_descriptor
    if opponent and len(opponent) > services.config.debate.opponent_max_length:
        raise DebateError(
            "Opponent description is too long", max_length=services.config.debate.opponent_max_length
        )

    duplicate = None
    if minted is None and body.session_id is None:
        duplicate = services.engine.find_recent_duplicate(identity.owner_identity, body.topic)

    if duplicate:
        logger.info(f"Returning recent session {duplicate.id} for a repeated create")
        session = duplicate
        response.status_code = 200
    else:
        session = services.engine.create_session(
            identity.owner_identity, body.topic, opponent, session_id=body.session_id
        )

    if minted:
        identity_config = services.config.identity
        response.set_cookie(
            key=identity_config.guest_cookie_name,
            value=minted.token,
            max_age=identity_config.guest_cookie_max_age,
            httponly=True,
            secure=identity_config.secure_cookies,
            samesite="lax",
        )
    response.headers.update(passed_rate_limit_headers(request))

    return CreateSessionResponse(
        session_id=session.id,
        is_anonymous=identity.is_anonymous,
        anonymous_identity_cookie=minted.token if minted else None,
        deduplicated=duplicate is not None,
        session=SessionResponse.from_session(session),
    )


@router.get("/sessions", response_model=SessionListResponse, responses=ERROR_RESPONSES)
async def list_sessions(
    request: Request,
    limit: int = Query(default=20, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
    services: Services = Depends(get_services),
):
    """The caller's own sessions, newest first."""
    owner = require_owner_identity(request, services)
    sessions, total = services.engine.list_sessions(owner, limit, offset)
    return SessionListResponse(
        sessions=[SessionSummarySchema.from_session(s) for s in sessions],
        pagination=PaginationSchema(total=total, limit=limit, offset=offset, has_more=offset + len(sessions) < total),
    )


@router.get("/sessions/{session_id}", response_model=SessionResponse, responses=ERROR_RESPONSES)
async def get_session(session_id: str, services: Services = Depends(get_services)):
    """Get session transcript, round and status."""
    return SessionResponse.from_session(services.engine.get_session(session_id))


def _check_turn_limits(request: Request, services: Services) -> str:
    # IP tier first, then the tighter per-identity tier
    enforce_tier(request, services.limits.turn_ip, get_client_ip(request))
    owner = require_owner_identity(request, services)
    enforce_tier(request, services.limits.turn_identity, owner)
    return owner


@router.post("/sessions/{session_id}/messages", response_model=TurnResponse, responses=ERROR_RESPONSES)
async def submit_turn(
    session_id: str,
    body: TurnRequest,
    request: Request,
    response: Response,
    services: Services = Depends(get_services),
):
    """Submit a user turn and return the opponent's reply."""
    owner = _check_turn_limits(request, services)
    result = await services.engine.submit_turn(session_id, owner, body.content)
    response.headers.update(passed_rate_limit_headers(request))
    return TurnResponse.from_result(result)


def _sse(payload: dict[str, Any]) -> str:
    return f"data: {json.dumps(payload)}\n\n"


def _unexpected_error_event(session_id: str) -> str:
    logger.exception(f"Stream for session {session_id} failed unexpectedly")
    return _sse({"type": "error", "code": "internal_error", "message": "An unexpected error occurred"})


async def _turn_events(services: Services, turn: PendingTurn) -> AsyncIterator[str]:
    yield _sse({"type": "start", "sessionId": turn.session.id, "round": turn.session.round})

    try:
        async for chunk in services.engine.stream_turn(turn):
            yield _sse({"type": "chunk", "content": chunk})
    except DebateError as e:
        yield _sse({"type": "error", "code": e.code, "message": e.message})
    except Exception:
        yield _unexpected_error_event(turn.session.id)
    else:
        result = turn.result
        if result is not None:
            yield _sse(
                {
                    "type": "complete",
                    "round": result.round,
                    "status": result.status.value,
                    "messageCount": result.message_count,
                    "userMessage": MessageSchema.from_message(result.user_message).model_dump(
                        by_alias=True, mode="json"
                    ),
                    "aiMessage": MessageSchema.from_message(result.ai_message).model_dump(
                        by_alias=True, mode="json"
                    ),
                }
            )

    yield "data: [DONE]\n\n"


@router.post("/sessions/{session_id}/messages/stream", responses=ERROR_RESPONSES)
async def stream_turn(
    session_id: str,
    body: TurnRequest,
    request: Request,
    services: Services = Depends(get_services),
):
    """Submit a user turn and stream the opponent's reply as server-sent events.

    Validation and throttling happen before the stream opens, so those
    failures are ordinary JSON error responses.
    """
    owner = _check_turn_limits(request, services)
    turn = services.engine.prepare_turn(session_id, owner, body.content)

    headers = {**STREAM_HEADERS, **passed_rate_limit_headers(request)}
    return StreamingResponse(_turn_events(services, turn), media_type="text/event-stream", headers=headers)


async def _takeover_events(services: Services, session: Session, prompt: list[ChatMessage]) -> AsyncIterator[str]:
    parts: list[str] = []
    try:
        async for chunk in services.engine.stream_takeover(session, prompt):
            parts.append(chunk)
            yield _sse({"type": "chunk", "content": chunk})
    except DebateError as e:
        yield _sse({"type": "error", "code": e.code, "message": e.message})
    except Exception:
        yield _unexpected_error_event(session.id)
    else:
        yield _sse({"type": "complete", "content": "".join(parts).strip()})

    yield "data: [DONE]\n\n"


@router.post("/sessions/{session_id}/takeover", responses=ERROR_RESPONSES)
async def takeover(
    session_id: str,
    request: Request,
    services: Services = Depends(get_services),
):
    """Stream a drafted argument for the caller's next turn.

    The draft is not submitted or stored; the client sends it as a normal
    turn if the user accepts it.
    """
    enforce_tier(request, services.limits.takeover_ip, get_client_ip(request))
    identity = resolve_request_identity(request, services)
    owner = identity.owner_identity
    if owner is None:
        raise AuthenticationError()
    if not identity.is_anonymous:
        enforce_tier(request, services.limits.takeover_identity, owner)

    session, prompt = services.engine.prepare_takeover(session_id, owner)

    headers = {**STREAM_HEADERS, **passed_rate_limit_headers(request)}
    return StreamingResponse(
        _takeover_events(services, session, prompt), media_type="text/event-stream", headers=headers
    )


@router.post("/sessions/{session_id}/feedback", response_model=FeedbackResponse, responses=ERROR_RESPONSES)
async def live_feedback(
    session_id: str,
    request: Request,
    response: Response,
    body: FeedbackRequest | None = None,
    services: Services = Depends(get_services),
):
    """Coaching feedback on the latest exchange. Not stored."""
    enforce_tier(request, services.limits.feedback_ip, get_client_ip(request))
    owner = require_owner_identity(request, services)
    enforce_tier(request, services.limits.feedback_identity, owner)

    running_summary = body.running_summary if body else None
    max_length = services.config.debate.running_summary_max_length
    if running_summary and len(running_summary) > max_length:
        raise DebateError("Running summary is too long", max_length=max_length)

    session, user_message, ai_message = services.engine.latest_exchange(session_id, owner)
    feedback = await services.feedback.evaluate(session, user_message, ai_message, running_summary)
    response.headers.update(passed_rate_limit_headers(request))
    return FeedbackResponse.from_feedback(feedback)


@router.post("/sessions/{session_id}/score", response_model=ScoreResponse, responses=ERROR_RESPONSES)
async def score_session(
    session_id: str,
    request: Request,
    response: Response,
    services: Services = Depends(get_services),
):
    """Score a session once; later calls return the stored score."""
    enforce_tier(request, services.limits.score_ip, get_client_ip(request))
    owner = require_owner_identity(request, services)
    enforce_tier(request, services.limits.score_identity, owner)

    outcome = await services.scoring.score(session_id, owner)
    response.headers.update(passed_rate_limit_headers(request))
    return ScoreResponse(score=ScoreSchema.from_score(outcome.score), cached=outcome.cached)
