"""Tests for judge output validation, exactly-once scoring and score effects."""

import asyncio
import json

import pytest

from crossfire.config.settings import GenerationConfig
from crossfire.debate_engine.exceptions import (
    GenerationFailedError,
    InsufficientTurnsError,
    SessionAccessError,
)
from crossfire.debate_engine.models import DebateMessage, ScoreResult, Session
from crossfire.debate_engine.session_store import InMemorySessionStore
from crossfire.debate_engine.types import Role, Winner
from crossfire.judges.ai_judge import ScoringJudge, parse_score, strip_code_fence
from crossfire.judges.base import ScoreEffect
from crossfire.judges.exceptions import JudgeResponseInvalidError
from crossfire.judges.leaderboard import LeaderboardRecorder
from crossfire.judges.live_feedback import LiveFeedbackJudge, parse_live_feedback
from crossfire.judges.scoring import ScoringService
from crossfire.models.fallback import ModelFallbackInvoker
from crossfire.models.providers.exceptions import ProviderError

OWNER = "user:1"


def _session(owner: str = OWNER, exchanges: int = 2, session_id: str = "s1") -> Session:
    messages = [DebateMessage(role=Role.SYSTEM, content="Welcome")]
    for n in range(exchanges):
        messages.append(DebateMessage(role=Role.USER, content=f"argument {n}"))
        messages.append(DebateMessage(role=Role.AI, content=f"rebuttal {n}"))
    return Session(id=session_id, owner_identity=owner, topic="Cats vs dogs", opponent="a cat person", messages=messages)


def _service(provider, store, effects=None) -> ScoringService:
    generation = GenerationConfig(models=["judge-model"], judge_model="judge-model")
    invoker = ModelFallbackInvoker(provider, generation.models)
    return ScoringService(store, ScoringJudge(invoker, generation), effects=effects)


class RecordingEffect(ScoreEffect):
    def __init__(self):
        self.applied: list[tuple[str, ScoreResult]] = []

    async def apply(self, session, score):
        self.applied.append((session.id, score))


class ExplodingEffect(ScoreEffect):
    async def apply(self, session, score):
        raise RuntimeError("leaderboard database is down")


# parse_score -----------------------------------------------------------------


@pytest.mark.unit
def test_parse_plain_json():
    score = parse_score('{"winner": "ai", "userScore": 40, "aiScore": 71.5, "summary": "Close."}')

    assert score.winner is Winner.AI
    assert score.user_score == 40
    assert score.ai_score == 71.5
    assert score.narrative == "Close."


@pytest.mark.unit
@pytest.mark.parametrize(
    "wrapped",
    [
        '```json\n{"winner": "draw", "userScore": 50, "aiScore": 50}\n```',
        '```\n{"winner": "draw", "userScore": 50, "aiScore": 50}\n```',
        '  ```JSON {"winner": "draw", "userScore": 50, "aiScore": 50}```  ',
    ],
)
def test_parse_strips_markdown_fence(wrapped: str):
    assert parse_score(wrapped).winner is Winner.DRAW


@pytest.mark.unit
def test_strip_code_fence_leaves_plain_text():
    assert strip_code_fence('  {"a": 1}  ') == '{"a": 1}'


@pytest.mark.unit
def test_scores_are_clamped():
    score = parse_score(
        json.dumps(
            {
                "winner": "user",
                "userScore": 140,
                "aiScore": -12,
                "categories": {"logic": {"user": 101, "ai": -1}},
            }
        )
    )

    assert score.user_score == 100
    assert score.ai_score == 0
    assert score.category_breakdown["logic"].user == 100
    assert score.category_breakdown["logic"].ai == 0


@pytest.mark.unit
def test_malformed_categories_are_skipped():
    score = parse_score(
        json.dumps(
            {
                "winner": "user",
                "userScore": 60,
                "aiScore": 50,
                "categories": {"logic": {"user": 70, "ai": 60}, "clarity": "great", "evidence": {"user": "high"}},
            }
        )
    )

    assert list(score.category_breakdown) == ["logic"]


@pytest.mark.unit
@pytest.mark.parametrize(
    "raw",
    [
        "not json at all",
        "[1, 2, 3]",
        '{"winner": "nobody", "userScore": 1, "aiScore": 2}',
        '{"winner": "USER", "userScore": 1, "aiScore": 2}',
        '{"userScore": 1, "aiScore": 2}',
        '{"winner": "user", "userScore": "80", "aiScore": 2}',
        '{"winner": "user", "userScore": 80}',
        '{"winner": "user", "userScore": true, "aiScore": 2}',
    ],
)
def test_invalid_shapes_are_rejected(raw: str):
    with pytest.raises(JudgeResponseInvalidError) as excinfo:
        parse_score(raw)

    assert excinfo.value.code == "judge_response_invalid"
    assert excinfo.value.status_code == 502


# ScoringService --------------------------------------------------------------


@pytest.mark.unit
def test_scoring_is_idempotent(fake_provider):
    store = InMemorySessionStore()
    store.create(_session())
    service = _service(fake_provider, store)

    first = asyncio.run(service.score("s1", OWNER))
    second = asyncio.run(service.score("s1", OWNER))

    assert len(fake_provider.judge_calls) == 1
    assert first.cached is False
    assert second.cached is True
    assert second.score == first.score
    assert store.get("s1").score == first.score


@pytest.mark.unit
def test_judge_request_asks_for_json(fake_provider):
    store = InMemorySessionStore()
    store.create(_session())

    asyncio.run(_service(fake_provider, store).score("s1", OWNER))

    call = fake_provider.judge_calls[0]
    assert call["model"] == "judge-model"
    assert call["overrides"]["response_format"] == {"type": "json_object"}
    assert "argument 1" in call["messages"][-1]["content"]


@pytest.mark.unit
def test_requires_two_exchanges(fake_provider):
    store = InMemorySessionStore()
    store.create(_session(exchanges=1))

    with pytest.raises(InsufficientTurnsError):
        asyncio.run(_service(fake_provider, store).score("s1", OWNER))

    assert fake_provider.calls == []


@pytest.mark.unit
def test_only_owner_can_score(fake_provider):
    store = InMemorySessionStore()
    store.create(_session())

    with pytest.raises(SessionAccessError):
        asyncio.run(_service(fake_provider, store).score("s1", "someone_else"))


@pytest.mark.unit
def test_invalid_judge_output_is_not_stored(make_provider):
    provider = make_provider(judge_response="I think the user won!")
    store = InMemorySessionStore()
    store.create(_session())

    with pytest.raises(JudgeResponseInvalidError):
        asyncio.run(_service(provider, store).score("s1", OWNER))

    assert store.get("s1").score is None


@pytest.mark.unit
def test_judge_transport_failure_is_generation_failed(make_provider):
    provider = make_provider(failures={"judge-model": ProviderError("upstream 500", status_code=500)})
    store = InMemorySessionStore()
    store.create(_session())

    with pytest.raises(GenerationFailedError):
        asyncio.run(_service(provider, store).score("s1", OWNER))


@pytest.mark.unit
def test_effects_run_once_and_failures_are_swallowed(fake_provider):
    store = InMemorySessionStore()
    store.create(_session())
    recorder = RecordingEffect()
    service = _service(fake_provider, store, effects=[ExplodingEffect(), recorder])

    outcome = asyncio.run(service.score("s1", OWNER))
    asyncio.run(service.score("s1", OWNER))

    assert outcome.cached is False
    assert recorder.applied == [("s1", outcome.score)]


@pytest.mark.unit
def test_score_persistence_failure_still_returns_score(fake_provider, monkeypatch):
    store = InMemorySessionStore()
    store.create(_session())

    def broken_save(session_id, score):
        raise RuntimeError("disk full")

    monkeypatch.setattr(store, "save_score", broken_save)

    outcome = asyncio.run(_service(fake_provider, store).score("s1", OWNER))

    assert outcome.score.winner is Winner.USER
    assert outcome.cached is False


@pytest.mark.unit
def test_concurrently_stored_score_wins(fake_provider):
    store = InMemorySessionStore()
    store.create(_session())
    earlier = ScoreResult(winner=Winner.AI, user_score=10, ai_score=90)
    recorder = RecordingEffect()
    service = _service(fake_provider, store, effects=[recorder])

    original_get = store.get

    def get_then_race(session_id):
        session = original_get(session_id)
        # another request stores its score between our read and our write
        store.save_score(session_id, earlier)
        return session

    store.get = get_then_race
    outcome = asyncio.run(service.score("s1", OWNER))

    assert outcome.score == earlier
    assert outcome.cached is True
    assert recorder.applied == []


# LeaderboardRecorder ---------------------------------------------------------


@pytest.mark.unit
def test_leaderboard_tracks_results_and_streaks():
    board = LeaderboardRecorder()
    win = ScoreResult(winner=Winner.USER, user_score=80, ai_score=60)
    loss = ScoreResult(winner=Winner.AI, user_score=30, ai_score=70)

    for score in (win, win, loss, win):
        asyncio.run(board.apply(_session(), score))

    entry = board.get(OWNER)
    assert entry is not None
    assert (entry.wins, entry.losses, entry.draws, entry.debates) == (3, 1, 0, 4)
    assert entry.current_streak == 1
    assert entry.best_streak == 2
    assert entry.points == 270


@pytest.mark.unit
def test_leaderboard_ignores_anonymous_owners():
    board = LeaderboardRecorder()

    asyncio.run(board.apply(_session(owner="guest_abc"), ScoreResult(winner=Winner.USER, user_score=90, ai_score=10)))

    assert board.standings() == []


@pytest.mark.unit
def test_leaderboard_standings_order():
    board = LeaderboardRecorder()
    asyncio.run(board.apply(_session(owner="user:low"), ScoreResult(winner=Winner.DRAW, user_score=20, ai_score=20)))
    asyncio.run(board.apply(_session(owner="user:high"), ScoreResult(winner=Winner.USER, user_score=95, ai_score=20)))

    assert [e.owner_identity for e in board.standings()] == ["user:high", "user:low"]
    assert len(board.standings(limit=1)) == 1


@pytest.mark.unit
def test_leaderboard_log_reports_updated_record(caplog):
    board = LeaderboardRecorder()

    with caplog.at_level("INFO", logger="crossfire.judges.leaderboard"):
        asyncio.run(board.apply(_session(), ScoreResult(winner=Winner.USER, user_score=80, ai_score=60)))
        asyncio.run(board.apply(_session(), ScoreResult(winner=Winner.AI, user_score=40, ai_score=70)))

    messages = [r.getMessage() for r in caplog.records if r.name == "crossfire.judges.leaderboard"]
    assert messages[-2].endswith(f"{OWNER}: 1W/0L/0D, streak 1")
    assert messages[-1].endswith(f"{OWNER}: 1W/1L/0D, streak 0")


# Live feedback ---------------------------------------------------------------

FEEDBACK = {
    "overallScore": 72.6,
    "strengths": ["Clear claim"],
    "weaknesses": ["No source"],
    "tip": "Cite a study.",
    "highlights": [
        {"text": "argument 1", "type": "strong", "comment": "Direct."},
        {"text": "never said this", "type": "weak", "comment": "Invented."},
        {"text": "argument", "type": "brilliant", "comment": "Unknown type."},
    ],
    "debateSummarySoFar": "The user leads.",
}


def _feedback_judge(provider) -> LiveFeedbackJudge:
    generation = GenerationConfig(models=["judge-model"], judge_model="judge-model")
    return LiveFeedbackJudge(ModelFallbackInvoker(provider, generation.models), generation)


@pytest.mark.unit
def test_parse_live_feedback_filters_highlights():
    feedback = parse_live_feedback("```json\n" + json.dumps(FEEDBACK) + "\n```", "my argument 1 stands")

    assert feedback.overall_score == 73
    assert feedback.strengths == ["Clear claim"]
    assert feedback.tip == "Cite a study."
    assert [(h.text, h.type) for h in feedback.highlights] == [("argument 1", "strong")]
    assert feedback.summary_so_far == "The user leads."


@pytest.mark.unit
def test_live_feedback_score_is_clamped():
    feedback = parse_live_feedback(json.dumps({**FEEDBACK, "overallScore": 140}), "x")

    assert feedback.overall_score == 100


@pytest.mark.unit
@pytest.mark.parametrize(
    "raw",
    [
        "not json",
        "[1, 2]",
        json.dumps({**FEEDBACK, "overallScore": "high"}),
        json.dumps({**FEEDBACK, "strengths": "one"}),
        json.dumps({**FEEDBACK, "tip": None}),
    ],
)
def test_live_feedback_invalid_shapes_are_rejected(raw: str):
    with pytest.raises(JudgeResponseInvalidError):
        parse_live_feedback(raw, "x")


@pytest.mark.unit
def test_live_feedback_judge_uses_latest_exchange(make_provider):
    provider = make_provider(judge_response=json.dumps(FEEDBACK))
    session = _session()

    feedback = asyncio.run(
        _feedback_judge(provider).evaluate(session, session.messages[3], session.messages[4], "Earlier: even.")
    )

    assert feedback.overall_score == 73
    call = provider.judge_calls[0]
    assert call["model"] == "judge-model"
    prompt = call["messages"][-1]["content"]
    assert "argument 1" in prompt
    assert "rebuttal 1" in prompt
    assert "Earlier: even." in prompt


@pytest.mark.unit
def test_live_feedback_transport_failure_is_generation_failed(make_provider):
    provider = make_provider(failures={"judge-model": ProviderError("down", status_code=400)})
    session = _session()

    with pytest.raises(GenerationFailedError):
        asyncio.run(_feedback_judge(provider).evaluate(session, session.messages[1], session.messages[2]))
