"""
Navigation types.

NavigationStep is the single active screen. The other types here are the
values SessionState owns: the resolved context, the chat transcript and
the per-mode artifacts. EVENT_SOURCES lists the steps each event may fire
from; events mapped to None are valid from any step.
"""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass
from enum import Enum

from bactutor.curriculum.models import Lesson, SpecialtyInfo, Subject
from bactutor.errors import ErrorKind, TutorError
from bactutor.generation.modes import AIMode


class NavigationStep(str, Enum):
    ROLE_SELECTION = "role_selection"
    SPECIALTY = "specialty"
    SUBJECT = "subject"
    LESSON = "lesson"
    MODE = "mode"
    CHAT = "chat"
    EXERCISES = "exercises"
    QUIZ = "quiz"
    DOCUMENT_UPLOAD = "pdf_upload"
    TEACHER_SUBJECT_SELECTION = "teacher_subject_selection"
    TEACHER_DASHBOARD = "teacher_dashboard"
    PROGRAM_UPLOAD = "program_upload"
    GRADEBOOK = "gradebook"
    EXAM_BUILDER = "exam_builder_flow"


class TeacherAction(str, Enum):
    PREPARE_LESSON = "prepare_lesson"
    BUILD_EXAM = "build_exam"
    GRADEBOOK = "gradebook"
    UPLOAD_PROGRAM = "upload_program"
    SETTINGS = "settings"


class MessageRole(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"


_S = NavigationStep

EVENT_SOURCES: dict[str, frozenset[NavigationStep] | None] = {
    "choose_role": frozenset({_S.ROLE_SELECTION}),
    "pick_specialty": frozenset({_S.SPECIALTY}),
    "pick_subject": frozenset({_S.SUBJECT}),
    "pick_lesson": frozenset({_S.LESSON}),
    "pick_mode": frozenset({_S.MODE}),
    "send_message": frozenset({_S.CHAT}),
    "answer_quiz": frozenset({_S.QUIZ}),
    "review_quiz": frozenset({_S.QUIZ}),
    "retake_quiz": frozenset({_S.QUIZ}),
    "toggle_exercise_solution": frozenset({_S.EXERCISES}),
    "regenerate_exercises": frozenset({_S.EXERCISES}),
    "build_exam": frozenset({_S.EXAM_BUILDER}),
    "toggle_exam_solution": frozenset({_S.EXAM_BUILDER}),
    "upload_document": frozenset({_S.DOCUMENT_UPLOAD}),
    "configure_teacher": frozenset({_S.TEACHER_SUBJECT_SELECTION}),
    "teacher_action": frozenset({_S.TEACHER_DASHBOARD}),
    "upload_program": frozenset({_S.PROGRAM_UPLOAD, _S.TEACHER_DASHBOARD}),
    "delete_program": frozenset({_S.PROGRAM_UPLOAD, _S.TEACHER_DASHBOARD}),
    "change_specialty": None,
    "change_subject": None,
    "change_lesson": None,
    "change_mode": None,
    "open_dashboard": None,
    "logout": None,
}


def allowed_from(event: str, step: NavigationStep) -> bool:
    sources = EVENT_SOURCES[event]
    return sources is None or step in sources


@dataclass(frozen=True)
class SessionContext:
    """(specialty, subject, lesson), each unset until chosen."""

    specialty: SpecialtyInfo | None = None
    subject: Subject | None = None
    lesson: Lesson | None = None

    @property
    def is_resolved(self) -> bool:
        return self.specialty is not None and self.subject is not None and self.lesson is not None


@dataclass(frozen=True)
class Message:
    id: str
    role: MessageRole
    content: str
    mode: AIMode
    timestamp: float
    image_url: str | None = None
    suggestions: tuple[str, ...] = ()

    @classmethod
    def create(
        cls, role: MessageRole, content: str, mode: AIMode, suggestions: list[str] | tuple[str, ...] = ()
    ) -> Message:
        return cls(
            id=f"{role.value}-{uuid.uuid4().hex[:10]}",
            role=role,
            content=content,
            mode=mode,
            timestamp=time.time(),
            suggestions=tuple(suggestions),
        )


@dataclass(frozen=True)
class ExerciseArtifact:
    prompt_text: str
    solution_text: str | None = None
    solution_revealed: bool = False


@dataclass(frozen=True)
class ExamArtifact:
    semester: int
    exam_text: str
    solution_text: str
    solution_revealed: bool = False


NOTICE_MESSAGES = {
    ErrorKind.SCHEMA_INVALID: "تعذر الحصول على إجابة صالحة من المساعد. حاول مرة أخرى.",
    ErrorKind.PROVIDER_FAILURE: "حدث خطأ أثناء الاتصال بالمساعد الذكي. حاول مرة أخرى.",
    ErrorKind.CREDENTIAL_MISSING: "يرجى اختيار مفتاح API صالح ثم إعادة المحاولة.",
    ErrorKind.EXTRACTION_FAILURE: "حدث خطأ أثناء قراءة الملف. تأكد من أن الملف سليم.",
}


@dataclass(frozen=True)
class Notice:
    """Short user-facing message, optionally with a retry affordance."""

    message: str
    kind: ErrorKind | None = None
    retryable: bool = False

    @classmethod
    def from_error(cls, error: TutorError) -> Notice:
        kind = error.kind
        return cls(
            message=NOTICE_MESSAGES.get(kind, str(error)),
            kind=kind,
            retryable=kind in (ErrorKind.SCHEMA_INVALID, ErrorKind.PROVIDER_FAILURE, ErrorKind.CREDENTIAL_MISSING),
        )
