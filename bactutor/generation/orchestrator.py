"""
Generation orchestrator.

Turns a (mode, resolved context) request into an artifact:

1. Look up the mode's strategy (profile, contract, grounding, secondary).
2. Build the prompt from the grounding policy and the subject's notation
   register.
3. Call the backend. JSON contracts are validated with pydantic and
   retried once on failure before SchemaInvalidError surfaces.
4. Run the best-effort secondary call (follow-up suggestions) for chat
   modes. Its failure never discards the primary result.

A CredentialMissingError from the backend runs the credential selector
once and retries the call once. Nothing here touches session state; the
caller commits the returned artifact.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Awaitable, Callable

from loguru import logger
from pydantic import BaseModel

from bactutor.curriculum.models import Lesson, SpecialtyInfo, Subject
from bactutor.errors import (
    ContextIncompleteError,
    CredentialMissingError,
    GenerationError,
    ProviderFailureError,
    SchemaInvalidError,
    SecondaryGenerationError,
)
from bactutor.generation import prompts
from bactutor.generation.gemini_client import GenerativeBackend
from bactutor.generation.modes import (
    AIMode,
    Grounding,
    ModelProfile,
    ModeStrategy,
    OutputContract,
    PromptTemplate,
    SecondaryAction,
    build_profiles,
    strategy_for,
)
from bactutor.generation.schemas import (
    QUIZ_LENGTH,
    RESPONSE_SCHEMAS,
    ExamPayload,
    Quiz,
    SuggestionsPayload,
    parse_structured,
)
from config import Settings, get_settings

CredentialSelector = Callable[[], Awaitable[bool]]


@dataclass(frozen=True)
class GenerationRequest:
    """Everything a single generation needs. Built by the session."""

    mode: AIMode
    specialty: SpecialtyInfo | None
    subject: Subject | None
    lesson: Lesson | None
    message: str | None = None  # learner text; None means the mode's opening prompt
    history: tuple[tuple[str, str], ...] = ()  # (role, content), oldest first
    program_text: str | None = None
    semester: int | None = None
    semester_lessons: tuple[Lesson, ...] = ()

    @property
    def is_resolved(self) -> bool:
        return self.specialty is not None and self.subject is not None and self.lesson is not None


@dataclass
class GenerationResult:
    mode: AIMode
    text: str | None = None
    payload: BaseModel | None = None
    suggestions: list[str] = field(default_factory=list)

    @property
    def quiz(self) -> Quiz | None:
        return self.payload if isinstance(self.payload, Quiz) else None

    @property
    def exam(self) -> ExamPayload | None:
        return self.payload if isinstance(self.payload, ExamPayload) else None


class GenerationOrchestrator:
    """Mode-table driven generation over a GenerativeBackend."""

    def __init__(
        self,
        backend: GenerativeBackend,
        settings: Settings | None = None,
        credential_selector: CredentialSelector | None = None,
    ):
        self.backend = backend
        self.settings = settings or get_settings()
        self.profiles: dict[str, ModelProfile] = build_profiles(self.settings)
        self.credential_selector = credential_selector

    # ========================================
    # Public API
    # ========================================

    async def generate(self, request: GenerationRequest) -> GenerationResult:
        """
        Produce the artifact for `request.mode`.

        Raises:
            ContextIncompleteError: specialty, subject or lesson missing
            SchemaInvalidError: structured output invalid after the retry
            ProviderFailureError: transport or provider error
        """
        if not request.is_resolved:
            raise ContextIncompleteError()

        strategy = strategy_for(request.mode)
        profile = self.profiles[strategy.profile]
        prompt = self.build_prompt(request, strategy)
        result = GenerationResult(mode=request.mode)

        try:
            if strategy.contract == OutputContract.JSON:
                result.payload = await self._structured(profile, prompt, strategy.payload)
            else:
                result.text = await self._call(profile, prompt)
        except ProviderFailureError as e:
            logger.error(f"{request.mode.value} generation failed: {e.message}")
            raise

        if strategy.secondary == SecondaryAction.SUGGESTIONS and result.text:
            result.suggestions = await self.suggest(result.text, request.lesson.title)

        return result

    async def suggest(self, reply: str, lesson_title: str) -> list[str]:
        """Follow-up questions for a reply. Best effort: [] on any failure."""
        count = self.settings.suggestion_count
        if count <= 0:
            return []
        prompt = prompts.suggestions_prompt(reply, lesson_title, count)
        try:
            raw = await self.backend.generate(
                self.profiles["structured"], prompt, RESPONSE_SCHEMAS[SuggestionsPayload]
            )
            payload = parse_structured(raw, SuggestionsPayload)
        except GenerationError as e:
            logger.warning(f"Suggestion generation failed, continuing without: {e.message}")
            return []
        return [s.strip() for s in payload.suggestions if s.strip()][:count]

    async def generate_solution(self, exercise_text: str) -> str:
        """
        Model solution for an exercise sheet, grounded in the sheet itself.

        Raises:
            SecondaryGenerationError: the solution call failed
        """
        try:
            return await self._call(self.profiles["fast"], prompts.solution_prompt(exercise_text))
        except GenerationError as e:
            logger.warning(f"Solution generation failed: {e.message}")
            raise SecondaryGenerationError(e.message) from e

    # ========================================
    # Prompt assembly
    # ========================================

    def build_prompt(self, request: GenerationRequest, strategy: ModeStrategy) -> str:
        builders = {
            PromptTemplate.CHAT: self._chat_prompt,
            PromptTemplate.EXERCISES: self._exercises_prompt,
            PromptTemplate.QUIZ: self._quiz_prompt,
            PromptTemplate.LESSON_PLAN: self._lesson_plan_prompt,
            PromptTemplate.EXAM: self._exam_prompt,
        }
        return builders[strategy.template](request, strategy)

    def _program(self, request: GenerationRequest, strategy: ModeStrategy) -> str | None:
        if strategy.grounding in (Grounding.LESSON_AND_PROGRAM, Grounding.TITLE_AND_PROGRAM):
            return request.program_text
        return None

    def _math(self, request: GenerationRequest) -> bool:
        return self.settings.uses_math_notation(request.subject.id)

    def _exam_prompt(self, request: GenerationRequest, strategy: ModeStrategy) -> str:
        return prompts.exam_prompt(
            request.subject.name,
            request.specialty.name,
            request.semester or 1,
            [lesson.title for lesson in request.semester_lessons],
            math_notation=self._math(request),
        )

    def _quiz_prompt(self, request: GenerationRequest, strategy: ModeStrategy) -> str:
        return prompts.quiz_prompt(
            request.lesson.title,
            request.subject.name,
            request.specialty.name,
            math_notation=self._math(request),
            lesson_content=request.lesson.content,
            program_text=self._program(request, strategy),
            question_count=QUIZ_LENGTH,
        )

    def _exercises_prompt(self, request: GenerationRequest, strategy: ModeStrategy) -> str:
        return prompts.exercises_prompt(
            request.lesson.title,
            request.subject.name,
            request.specialty.name,
            math_notation=self._math(request),
            lesson_content=request.lesson.content,
            program_text=self._program(request, strategy),
        )

    def _lesson_plan_prompt(self, request: GenerationRequest, strategy: ModeStrategy) -> str:
        # Follow-up questions on a plan are ordinary chat turns
        if request.message is not None:
            return self._chat_prompt(request, strategy)
        return prompts.lesson_plan_prompt(
            request.lesson.title,
            request.subject.name,
            request.specialty.name,
            math_notation=self._math(request),
            program_text=self._program(request, strategy),
        )

    def _chat_prompt(self, request: GenerationRequest, strategy: ModeStrategy) -> str:
        subject, lesson = request.subject, request.lesson
        specialty_name = request.specialty.name
        math = self._math(request)
        message = request.message or prompts.explain_prompt(lesson.title, subject.name, specialty_name)
        history = request.history[-self.settings.chat_history_turns :] if self.settings.chat_history_turns else ()
        prompt = prompts.chat_prompt(request.mode.value, message, math_notation=math, history=history)
        if lesson.content:
            return prompts.with_grounding(prompt, lesson.content)
        return f"{prompts.lesson_context(lesson.title, subject.name)}\n\n{prompt}"

    # ========================================
    # Backend calls
    # ========================================

    async def _call(self, profile: ModelProfile, prompt: str, schema: dict | None = None) -> str:
        """One backend call with the one-time credential selection flow."""
        try:
            return await self.backend.generate(profile, prompt, schema)
        except CredentialMissingError as e:
            if self.credential_selector is None:
                raise
            logger.warning(f"Credential rejected ({e.message}); asking for a new one")
            if not await self.credential_selector():
                raise
            return await self.backend.generate(profile, prompt, schema)

    async def _structured(self, profile: ModelProfile, prompt: str, model: type[BaseModel]) -> BaseModel:
        schema = RESPONSE_SCHEMAS[model]
        attempts = 1 + max(0, self.settings.schema_retry_attempts)
        last_error: SchemaInvalidError | None = None

        for attempt in range(1, attempts + 1):
            raw = await self._call(profile, prompt, schema)
            try:
                return parse_structured(raw, model)
            except SchemaInvalidError as e:
                last_error = e
                detail = "; ".join(e.errors[:3]) or e.message
                if attempt < attempts:
                    logger.warning(f"{model.__name__} failed validation, retrying ({attempt}/{attempts}): {detail}")
                else:
                    logger.error(f"{model.__name__} failed validation after {attempts} attempts: {detail}")

        raise last_error
