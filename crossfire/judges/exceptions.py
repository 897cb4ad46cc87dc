from crossfire.debate_engine.exceptions import DebateError


class JudgeResponseInvalidError(DebateError):
    """The judge model returned output that does not match the score shape."""

    code = "judge_response_invalid"
    status_code = 502

    def __init__(self, message: str, raw_response: str = ""):
        super().__init__(message, raw_excerpt=raw_response[:200])
        self.raw_response = raw_response
