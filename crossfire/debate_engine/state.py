"""Round state machine.

A session's round and completion are pure functions of its message count.
The leading system message occupies index 0; each round is one user turn
followed by one AI turn:

    count 1-2 -> round 1 (opening)
    count 3-4 -> round 2 (rebuttal)
    count 5-6 -> round 3 (closing)
    count >= 7 -> completed, still reported as round 3

After an AI reply lands, the reported round is the one the *next* user turn
belongs to, so three messages (system, user, ai) report round 2.
"""

from .types import DebatePhase

TOTAL_ROUNDS = 3
COMPLETED_MESSAGE_COUNT = 2 * TOTAL_ROUNDS + 1


def current_round(message_count: int, total_rounds: int = TOTAL_ROUNDS) -> int:
    """Return the round the next user turn belongs to, clamped to [1, total_rounds]."""
    if message_count < 1:
        return 1
    round_number = (message_count - 1) // 2 + 1
    return max(1, min(round_number, total_rounds))


def is_completed(message_count: int, total_rounds: int = TOTAL_ROUNDS) -> bool:
    """True once the system message plus every user and AI turn are present."""
    return message_count >= 2 * total_rounds + 1


def current_phase(message_count: int, total_rounds: int = TOTAL_ROUNDS) -> DebatePhase:
    if is_completed(message_count, total_rounds):
        return DebatePhase.COMPLETED
    round_number = current_round(message_count, total_rounds)
    if round_number == 1:
        return DebatePhase.OPENING
    if round_number == total_rounds:
        return DebatePhase.CLOSING
    return DebatePhase.REBUTTAL
