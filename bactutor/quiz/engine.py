"""
Quiz engine.

A QuizSession walks a generated quiz forward one question at a time:

    answering(0) -> answering(1) -> ... -> result -> review

Answers are recorded once and never revisited while answering. The score
is always recomputed from the recorded answers.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from loguru import logger

from bactutor.errors import NavigationError
from bactutor.generation.orchestrator import GenerationOrchestrator, GenerationRequest
from bactutor.generation.modes import AIMode
from bactutor.generation.schemas import Quiz


class QuizPhase(str, Enum):
    ANSWERING = "answering"
    RESULT = "result"
    REVIEW = "review"


@dataclass
class QuizSession:
    quiz: Quiz
    current_index: int = 0
    answers: list[int | None] = field(default_factory=list)
    phase: QuizPhase = QuizPhase.ANSWERING

    def __post_init__(self):
        if not self.answers:
            self.answers = [None] * len(self.quiz.questions)

    @property
    def total(self) -> int:
        return len(self.quiz.questions)

    @property
    def current_question(self):
        if self.phase != QuizPhase.ANSWERING:
            return None
        return self.quiz.questions[self.current_index]

    def submit_answer(self, option_index: int) -> bool:
        """
        Record the answer for the current question and move on.

        Returns:
            True if the answer was correct
        """
        if self.phase != QuizPhase.ANSWERING:
            raise NavigationError(f"Cannot answer while quiz is in {self.phase.value}")

        question = self.quiz.questions[self.current_index]
        if not 0 <= option_index < len(question.options):
            raise NavigationError(f"Option {option_index} out of range")

        self.answers[self.current_index] = option_index
        if self.current_index == self.total - 1:
            self.phase = QuizPhase.RESULT
            logger.debug(f"Quiz finished: {self.score_label}")
        else:
            self.current_index += 1
        return option_index == question.correct_answer_index

    def open_review(self) -> None:
        if self.phase == QuizPhase.ANSWERING:
            raise NavigationError("Review is available once the quiz is finished")
        self.phase = QuizPhase.REVIEW

    def is_correct(self, index: int) -> bool:
        return self.answers[index] == self.quiz.questions[index].correct_answer_index

    @property
    def score(self) -> int:
        return sum(1 for i in range(self.total) if self.is_correct(i))

    @property
    def score_label(self) -> str:
        return f"{self.score}/{self.total}"


class QuizEngine:
    """Creates quiz sessions from orchestrator output."""

    def __init__(self, orchestrator: GenerationOrchestrator):
        self.orchestrator = orchestrator

    @staticmethod
    def start(quiz: Quiz) -> QuizSession:
        return QuizSession(quiz=quiz)

    async def generate(self, request: GenerationRequest) -> QuizSession:
        """Request a brand-new quiz and open a session on it."""
        if request.mode != AIMode.QUIZ:
            raise ValueError(f"QuizEngine cannot serve mode {request.mode.value}")
        result = await self.orchestrator.generate(request)
        return self.start(result.quiz)
