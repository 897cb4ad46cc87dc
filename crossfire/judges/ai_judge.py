import json
import logging
import re
from typing import TYPE_CHECKING, Any

from crossfire.debate_engine.models import CategoryScore, ScoreResult, Session
from crossfire.debate_engine.prompts import scoring_messages
from crossfire.debate_engine.types import Winner

from .base import BaseJudge
from .exceptions import JudgeResponseInvalidError

if TYPE_CHECKING:
    from crossfire.config.settings import GenerationConfig
    from crossfire.models.fallback import ModelFallbackInvoker

logger = logging.getLogger(__name__)

SCORE_MIN = 0.0
SCORE_MAX = 100.0

_FENCE_RE = re.compile(r"^```[a-zA-Z]*\s*|\s*```$")


def clamp_score(value: float) -> float:
    return max(SCORE_MIN, min(SCORE_MAX, float(value)))


def is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def strip_code_fence(text: str) -> str:
    """Remove a surrounding markdown fence such as ```json ... ```."""
    text = text.strip()
    if text.startswith("```"):
        text = _FENCE_RE.sub("", text).strip()
    return text


def _parse_categories(raw: Any) -> dict[str, CategoryScore]:
    if not isinstance(raw, dict):
        return {}

    categories: dict[str, CategoryScore] = {}
    for name, value in raw.items():
        if not isinstance(value, dict) or not is_number(value.get("user")) or not is_number(value.get("ai")):
            logger.debug(f"Skipping malformed category {name!r}: {value!r}")
            continue
        categories[str(name)] = CategoryScore(
            user=clamp_score(value["user"]), ai=clamp_score(value["ai"])
        )
    return categories


def parse_score(response: str) -> ScoreResult:
    """Parse and validate a judge response.

    Raises:
        JudgeResponseInvalidError: not JSON, or ``winner``/``userScore``/``aiScore``
            do not have the required shape
    """
    json_text = strip_code_fence(response)
    try:
        data = json.loads(json_text)
    except json.JSONDecodeError as e:
        logger.error(f"Failed to parse judge response as JSON: {e}")
        logger.debug(f"Raw judge response: {response}")
        raise JudgeResponseInvalidError(f"Judge response is not valid JSON: {e}", response) from e

    if not isinstance(data, dict):
        raise JudgeResponseInvalidError("Judge response must be a JSON object", response)

    winner = data.get("winner")
    if winner not in {w.value for w in Winner}:
        raise JudgeResponseInvalidError(f"Invalid winner in judge response: {winner!r}", response)

    user_score = data.get("userScore")
    ai_score = data.get("aiScore")
    if not is_number(user_score) or not is_number(ai_score):
        raise JudgeResponseInvalidError("userScore and aiScore must be numbers", response)

    narrative = data.get("summary") or data.get("narrative") or ""

    return ScoreResult(
        winner=Winner(winner),
        user_score=clamp_score(user_score),
        ai_score=clamp_score(ai_score),
        category_breakdown=_parse_categories(data.get("categories")),
        narrative=narrative if isinstance(narrative, str) else str(narrative),
    )


class ScoringJudge(BaseJudge):
    """Scores a transcript with a single model call requesting JSON output."""

    def __init__(self, invoker: "ModelFallbackInvoker", generation_config: "GenerationConfig"):
        self.invoker = invoker
        self.generation_config = generation_config

    @property
    def name(self) -> str:
        return f"ai-judge:{self.generation_config.primary_judge_model}"

    async def evaluate(self, session: Session) -> ScoreResult:
        logger.info(f"Judging session {session.id}: {session.topic[:50]}")

        response = await self.invoker.generate(
            self.generation_config.primary_judge_model,
            scoring_messages(session.topic, session.messages),
            max_tokens=self.generation_config.judge_max_tokens,
            temperature=self.generation_config.judge_temperature,
            response_format={"type": "json_object"},
        )
        score = parse_score(response)

        logger.info(
            f"Session {session.id} judged: winner={score.winner.value}, "
            f"user={score.user_score:.0f}, ai={score.ai_score:.0f}"
        )
        return score
