"""Per-exchange coaching feedback.

Unlike scoring, feedback is advisory: it is recomputed on every request and
never stored.
"""

import json
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Optional

from crossfire.debate_engine.exceptions import GenerationFailedError
from crossfire.debate_engine.models import DebateMessage, Session
from crossfire.debate_engine.prompts import live_feedback_messages

from .ai_judge import is_number, clamp_score, strip_code_fence
from .exceptions import JudgeResponseInvalidError

if TYPE_CHECKING:
    from crossfire.config.settings import GenerationConfig
    from crossfire.models.fallback import ModelFallbackInvoker

logger = logging.getLogger(__name__)

HIGHLIGHT_TYPES = ("strong", "weak", "fallacy", "good-evidence")


@dataclass(frozen=True)
class FeedbackHighlight:
    text: str
    type: str
    comment: str


@dataclass
class LiveFeedback:
    overall_score: int
    strengths: list[str] = field(default_factory=list)
    weaknesses: list[str] = field(default_factory=list)
    tip: str = ""
    highlights: list[FeedbackHighlight] = field(default_factory=list)
    summary_so_far: str = ""


def _string_list(value: Any, name: str, response: str) -> list[str]:
    if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
        raise JudgeResponseInvalidError(f"{name} must be a list of strings", response)
    return value


def _parse_highlights(raw: Any, user_message: str) -> list[FeedbackHighlight]:
    if not isinstance(raw, list):
        return []

    highlights = []
    for item in raw:
        if not isinstance(item, dict):
            continue
        text = item.get("text")
        kind = item.get("type")
        # quotes must point at something the user actually wrote
        if not isinstance(text, str) or not text or text not in user_message:
            logger.debug(f"Dropping highlight not found in the user message: {text!r}")
            continue
        if kind not in HIGHLIGHT_TYPES:
            continue
        comment = item.get("comment")
        highlights.append(FeedbackHighlight(text=text, type=kind, comment=comment if isinstance(comment, str) else ""))
    return highlights


def parse_live_feedback(response: str, user_message: str) -> LiveFeedback:
    """Parse and validate a coaching response.

    Raises:
        JudgeResponseInvalidError: not JSON, or the score, lists or tip have
            the wrong shape
    """
    try:
        data = json.loads(strip_code_fence(response))
    except json.JSONDecodeError as e:
        logger.error(f"Failed to parse feedback response as JSON: {e}")
        raise JudgeResponseInvalidError(f"Feedback response is not valid JSON: {e}", response) from e

    if not isinstance(data, dict):
        raise JudgeResponseInvalidError("Feedback response must be a JSON object", response)

    score = data.get("overallScore")
    if not is_number(score):
        raise JudgeResponseInvalidError("overallScore must be a number", response)

    tip = data.get("tip")
    if not isinstance(tip, str):
        raise JudgeResponseInvalidError("tip must be a string", response)

    summary = data.get("debateSummarySoFar")

    return LiveFeedback(
        overall_score=round(clamp_score(score)),
        strengths=_string_list(data.get("strengths"), "strengths", response),
        weaknesses=_string_list(data.get("weaknesses"), "weaknesses", response),
        tip=tip,
        highlights=_parse_highlights(data.get("highlights"), user_message),
        summary_so_far=summary if isinstance(summary, str) else "",
    )


class LiveFeedbackJudge:
    """Coaches the latest exchange of a session with one JSON model call."""

    def __init__(self, invoker: "ModelFallbackInvoker", generation_config: "GenerationConfig"):
        self.invoker = invoker
        self.generation_config = generation_config

    async def evaluate(
        self,
        session: Session,
        user_message: DebateMessage,
        ai_message: DebateMessage,
        running_summary: Optional[str] = None,
    ) -> LiveFeedback:
        try:
            response = await self.invoker.generate(
                self.generation_config.primary_judge_model,
                live_feedback_messages(session.topic, user_message.content, ai_message.content, running_summary),
                max_tokens=self.generation_config.feedback_max_tokens,
                temperature=self.generation_config.judge_temperature,
                response_format={"type": "json_object"},
            )
        except Exception as e:
            logger.error(f"Feedback call failed for session {session.id}: {type(e).__name__}: {e}")
            raise GenerationFailedError("Failed to generate feedback") from e
        feedback = parse_live_feedback(response, user_message.content)
        logger.info(f"Live feedback for session {session.id}: score={feedback.overall_score}")
        return feedback
