"""Base classes and interfaces for judging."""

from abc import ABC, abstractmethod

from crossfire.debate_engine.models import ScoreResult, Session


class BaseJudge(ABC):
    """Abstract base class for judges."""

    @abstractmethod
    async def evaluate(self, session: Session) -> ScoreResult:
        """Evaluate a session transcript and return a validated score."""
        pass

    @property
    @abstractmethod
    def name(self) -> str:
        """Judge name/identifier."""
        pass


class ScoreEffect(ABC):
    """Downstream work triggered once a session has been scored.

    Effects are best-effort. A failing effect is logged and never turns a
    successful scoring call into an error.
    """

    @property
    def name(self) -> str:
        return type(self).__name__

    @abstractmethod
    async def apply(self, session: Session, score: ScoreResult) -> None:
        pass
