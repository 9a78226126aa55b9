"""Navigation state machine and the artifacts it owns."""

from .navigation import (
    ExamArtifact,
    ExerciseArtifact,
    Message,
    MessageRole,
    NavigationStep,
    Notice,
    SessionContext,
    TeacherAction,
)
from .state import SessionState

__all__ = [
    "ExamArtifact",
    "ExerciseArtifact",
    "Message",
    "MessageRole",
    "NavigationStep",
    "Notice",
    "SessionContext",
    "SessionState",
    "TeacherAction",
]
