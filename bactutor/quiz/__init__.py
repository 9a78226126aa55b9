"""Quiz taking and scoring."""

from .engine import QuizEngine, QuizPhase, QuizSession

__all__ = ["QuizEngine", "QuizPhase", "QuizSession"]
