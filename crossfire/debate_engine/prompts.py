"""Prompt construction for opponent replies and scoring."""

from typing import Sequence

from crossfire.models.providers.base_model_provider import ChatMessage

from .models import DebateMessage
from .types import DebatePhase, Role

ROUND_INSTRUCTIONS = {
    DebatePhase.OPENING: (
        "This is the OPENING round. Take the opposing side of the user's position "
        "and lay out your strongest one or two arguments."
    ),
    DebatePhase.REBUTTAL: (
        "This is the REBUTTAL round. Attack the weakest point in the user's last "
        "argument directly, then reinforce your own case."
    ),
    DebatePhase.CLOSING: (
        "This is the CLOSING round. Summarise why your side won the exchange and "
        "name the point the user never answered."
    ),
}

SCORING_CATEGORIES = ("logic", "evidence", "rebuttal", "clarity")


def welcome_message(topic: str, opponent: str | None) -> str:
    """Text of the system message that opens every session."""
    text = f'Welcome to the debate arena! Today\'s topic: "{topic}".'
    if opponent:
        text += f" Your opponent's style: {opponent}"
    return text


def opponent_system_prompt(topic: str, opponent: str, phase: DebatePhase, round_number: int, total_rounds: int) -> str:
    instruction = ROUND_INSTRUCTIONS.get(phase, ROUND_INSTRUCTIONS[DebatePhase.REBUTTAL])
    return f"""You are debating a human on the topic: "{topic}".

PERSONA: {opponent}

ROUND {round_number} OF {total_rounds}. {instruction}

RULES:
- Stay in persona and argue against the user's position.
- Keep it short and punchy: under 120 words.
- Engage with what the user actually said; do not repeat earlier points verbatim.
- Never concede the debate outright and never mention that you are an AI model."""


def build_opponent_messages(
    topic: str,
    opponent: str,
    history: Sequence[DebateMessage],
    phase: DebatePhase,
    round_number: int,
    total_rounds: int,
) -> list[ChatMessage]:
    """Translate a transcript into chat messages for the opponent model.

    System and empty messages are skipped; ``ai`` turns become ``assistant``.
    """
    messages: list[ChatMessage] = [
        {
            "role": "system",
            "content": opponent_system_prompt(topic, opponent, phase, round_number, total_rounds),
        }
    ]
    for message in history:
        if not message.content or not message.content.strip():
            continue
        if message.role is Role.USER:
            messages.append({"role": "user", "content": message.content})
        elif message.role is Role.AI:
            messages.append({"role": "assistant", "content": message.content})
    return messages


def format_transcript(topic: str, history: Sequence[DebateMessage]) -> str:
    """Render the transcript for the judge, labelled by round."""
    lines = [f"DEBATE TOPIC: {topic}", ""]
    exchange = 0
    for message in history:
        if message.role is Role.SYSTEM:
            continue
        if message.role is Role.USER:
            exchange += 1
            lines.append(f"=== ROUND {exchange} ===")
            lines.append("USER:")
        else:
            lines.append("AI OPPONENT:")
        lines.append(message.content)
        lines.append("")
    return "\n".join(lines).rstrip()


def scoring_messages(topic: str, history: Sequence[DebateMessage]) -> list[ChatMessage]:
    """Build the judge request asking for a JSON verdict."""
    categories = ",\n".join(
        f'    "{name}": {{"user": <0-100>, "ai": <0-100>}}' for name in SCORING_CATEGORIES
    )
    prompt = f"""Judge this debate between a human USER and an AI OPPONENT.

Score both sides from 0 to 100 on the quality of their arguments. Ignore which
side of the topic you personally agree with. Short, evasive or off-topic turns
must score low.

Respond with ONLY valid JSON in exactly this shape:
{{
  "winner": "user" | "ai" | "draw",
  "userScore": <0-100>,
  "aiScore": <0-100>,
  "categories": {{
{categories}
  }},
  "summary": "<2-3 sentences explaining the verdict>"
}}

{format_transcript(topic, history)}"""
    return [
        {
            "role": "system",
            "content": "You are an impartial, experienced debate judge. You reply with JSON only.",
        },
        {"role": "user", "content": prompt},
    ]


def takeover_messages(topic: str, opponent: str, history: Sequence[DebateMessage]) -> list[ChatMessage]:
    """Ask the model to draft the user's next argument, in the user's own voice."""
    exchanges = []
    own_arguments = []
    for message in history:
        if not message.content or not message.content.strip():
            continue
        if message.role is Role.USER:
            exchanges.append(f"Human's argument: {message.content}")
            own_arguments.append(message.content)
        elif message.role is Role.AI:
            exchanges.append(f"Opponent's argument: {message.content}")

    last_opponent = next((m.content for m in reversed(history) if m.role is Role.AI), None)

    system = f"""You are writing the next turn for the HUMAN side of a debate on: "{topic}".
The opponent is {opponent}.

Write in the first person as the human, using "I" statements. Stay consistent
with the positions the human has already taken and do not contradict them.
Under 120 words. Output only the argument itself, with no preamble or labels."""
    if own_arguments:
        previous = "\n".join(f"- {argument}" for argument in own_arguments)
        system += f"\n\nThe human's earlier arguments:\n{previous}"

    if last_opponent:
        request = f'Respond to the opponent\'s latest point:\n"{last_opponent}"'
    else:
        request = "Write the human's opening argument."

    messages: list[ChatMessage] = [{"role": "system", "content": system}]
    if exchanges:
        messages.append({"role": "user", "content": "Debate so far:\n" + "\n\n".join(exchanges)})
    messages.append({"role": "user", "content": request})
    return messages


def live_feedback_messages(
    topic: str, user_message: str, ai_message: str, running_summary: str | None = None
) -> list[ChatMessage]:
    """Build the coaching request for the latest exchange."""
    summary = f"\nDEBATE SO FAR (summary): {running_summary}\n" if running_summary else ""
    prompt = f"""Give live coaching on the human's latest argument.

TOPIC: {topic}
{summary}
HUMAN: {user_message}

OPPONENT REPLY: {ai_message}

Respond with ONLY valid JSON in exactly this shape:
{{
  "overallScore": <0-100>,
  "strengths": ["<short point>", ...],
  "weaknesses": ["<short point>", ...],
  "tip": "<one concrete suggestion for the next turn>",
  "highlights": [
    {{"text": "<exact quote from the HUMAN argument>", "type": "strong" | "weak" | "fallacy" | "good-evidence", "comment": "<why>"}}
  ],
  "debateSummarySoFar": "<2 sentences updating the summary>"
}}"""
    return [
        {
            "role": "system",
            "content": (
                "You are a strict debate coach. Grade against a rubric of logic, evidence, "
                "rebuttal and clarity. Unsupported claims, evasions and fallacies score low. "
                "You reply with JSON only."
            ),
        },
        {"role": "user", "content": prompt},
    ]
