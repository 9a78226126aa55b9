"""
Study modes and the mode -> strategy table.

Every mode is described by data: which model profile serves it, whether
the answer is free text or schema-validated JSON, what grounding goes into
the prompt and which secondary call (if any) follows. The orchestrator
reads this table; it does not branch on mode names.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from pydantic import BaseModel

from bactutor.curriculum.models import UserRole
from bactutor.generation.schemas import ExamPayload, Quiz


class AIMode(str, Enum):
    FAST = "fast"
    THINK = "think"
    SEARCH = "search"
    ANALYZE = "analyze"
    EXERCISES = "exercises"
    QUIZ = "quiz"
    LESSON_PLAN = "lesson_plan"
    EXAM_BUILDER = "exam_builder"


class OutputContract(str, Enum):
    TEXT = "text"
    JSON = "json"


class Grounding(str, Enum):
    LESSON = "lesson"  # lesson.content, else title
    LESSON_AND_PROGRAM = "lesson_and_program"  # + teacher program text
    TITLE_AND_PROGRAM = "title_and_program"
    SEMESTER_TITLES = "semester_titles"  # every lesson title of one semester


class SecondaryAction(str, Enum):
    NONE = "none"
    SUGGESTIONS = "suggestions"
    SOLUTION = "solution"  # on demand


class PromptTemplate(str, Enum):
    CHAT = "chat"
    EXERCISES = "exercises"
    QUIZ = "quiz"
    LESSON_PLAN = "lesson_plan"
    EXAM = "exam"


class ArtifactSlot(str, Enum):
    """Where a mode's result lands on the session."""

    CHAT = "chat"
    EXERCISES = "exercises"
    QUIZ = "quiz"
    EXAM = "exam"


@dataclass(frozen=True)
class ModelProfile:
    """Concrete model settings for one class of request."""

    name: str
    model: str
    temperature: float
    max_output_tokens: int
    tools: tuple[str, ...] = ()


@dataclass(frozen=True)
class ModeStrategy:
    profile: str
    contract: OutputContract
    grounding: Grounding
    secondary: SecondaryAction
    slot: ArtifactSlot
    template: PromptTemplate
    label: str
    icon: str
    payload: type[BaseModel] | None = None
    roles: frozenset[UserRole] = field(default_factory=lambda: frozenset({UserRole.STUDENT}))


_STUDENT = frozenset({UserRole.STUDENT})
_TEACHER = frozenset({UserRole.TEACHER})
_BOTH = frozenset({UserRole.STUDENT, UserRole.TEACHER})


MODE_STRATEGIES: dict[AIMode, ModeStrategy] = {
    AIMode.FAST: ModeStrategy(
        profile="fast",
        contract=OutputContract.TEXT,
        grounding=Grounding.LESSON,
        secondary=SecondaryAction.SUGGESTIONS,
        slot=ArtifactSlot.CHAT,
        template=PromptTemplate.CHAT,
        label="شرح سريع",
        icon="⚡",
        roles=_BOTH,
    ),
    AIMode.THINK: ModeStrategy(
        profile="think",
        contract=OutputContract.TEXT,
        grounding=Grounding.LESSON,
        secondary=SecondaryAction.SUGGESTIONS,
        slot=ArtifactSlot.CHAT,
        template=PromptTemplate.CHAT,
        label="تفكير عميق",
        icon="🧠",
    ),
    AIMode.SEARCH: ModeStrategy(
        profile="search",
        contract=OutputContract.TEXT,
        grounding=Grounding.LESSON,
        secondary=SecondaryAction.SUGGESTIONS,
        slot=ArtifactSlot.CHAT,
        template=PromptTemplate.CHAT,
        label="بحث في الويب",
        icon="🔎",
    ),
    AIMode.ANALYZE: ModeStrategy(
        profile="analyze",
        contract=OutputContract.TEXT,
        grounding=Grounding.LESSON,
        secondary=SecondaryAction.SUGGESTIONS,
        slot=ArtifactSlot.CHAT,
        template=PromptTemplate.CHAT,
        label="تحليل معمق",
        icon="🔬",
    ),
    AIMode.EXERCISES: ModeStrategy(
        profile="fast",
        contract=OutputContract.TEXT,
        grounding=Grounding.LESSON_AND_PROGRAM,
        secondary=SecondaryAction.SOLUTION,
        slot=ArtifactSlot.EXERCISES,
        template=PromptTemplate.EXERCISES,
        label="تمارين وحلول",
        icon="📝",
        roles=_BOTH,
    ),
    AIMode.QUIZ: ModeStrategy(
        profile="structured",
        contract=OutputContract.JSON,
        grounding=Grounding.LESSON_AND_PROGRAM,
        secondary=SecondaryAction.NONE,
        slot=ArtifactSlot.QUIZ,
        template=PromptTemplate.QUIZ,
        label="اختبار قصير",
        icon="🎯",
        payload=Quiz,
    ),
    AIMode.LESSON_PLAN: ModeStrategy(
        profile="analyze",
        contract=OutputContract.TEXT,
        grounding=Grounding.TITLE_AND_PROGRAM,
        secondary=SecondaryAction.NONE,
        slot=ArtifactSlot.CHAT,
        template=PromptTemplate.LESSON_PLAN,
        label="مذكرة بيداغوجية",
        icon="📋",
        roles=_TEACHER,
    ),
    AIMode.EXAM_BUILDER: ModeStrategy(
        profile="structured",
        contract=OutputContract.JSON,
        grounding=Grounding.SEMESTER_TITLES,
        secondary=SecondaryAction.NONE,
        slot=ArtifactSlot.EXAM,
        template=PromptTemplate.EXAM,
        label="بناء امتحان",
        icon="✍️",
        payload=ExamPayload,
        roles=_TEACHER,
    ),
}

# Menu order per role
ROLE_MENUS: dict[UserRole, tuple[AIMode, ...]] = {
    UserRole.STUDENT: (
        AIMode.FAST,
        AIMode.THINK,
        AIMode.SEARCH,
        AIMode.ANALYZE,
        AIMode.QUIZ,
        AIMode.EXERCISES,
    ),
    UserRole.TEACHER: (
        AIMode.LESSON_PLAN,
        AIMode.EXAM_BUILDER,
        AIMode.EXERCISES,
        AIMode.FAST,
    ),
}


def strategy_for(mode: AIMode | str) -> ModeStrategy:
    return MODE_STRATEGIES[AIMode(mode)]


def modes_for(role: UserRole | None) -> tuple[AIMode, ...]:
    return ROLE_MENUS[role or UserRole.STUDENT]


def build_profiles(settings) -> dict[str, ModelProfile]:
    """Model profiles keyed by the names used in MODE_STRATEGIES."""
    text_tokens = settings.ai_max_output_tokens
    return {
        "fast": ModelProfile("fast", settings.ai_model_fast, settings.ai_temperature, text_tokens),
        "think": ModelProfile("think", settings.ai_model_think, settings.ai_temperature, text_tokens),
        "analyze": ModelProfile("analyze", settings.ai_model_analyze, settings.ai_temperature, text_tokens),
        "search": ModelProfile(
            "search",
            settings.ai_model_search,
            settings.ai_temperature,
            text_tokens,
            tools=("google_search",),
        ),
        "structured": ModelProfile(
            "structured", settings.ai_model_fast, settings.ai_structured_temperature, text_tokens
        ),
    }
