"""Data models for the baccalaureate curriculum."""

from __future__ import annotations

from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class Specialty(str, Enum):
    """Baccalaureate track. The set is fixed."""

    EXPERIMENTAL_SCIENCES = "Sciences Expérimentales"
    MATHEMATICS = "Mathématiques"
    TECHNICAL_MATHEMATICS = "Technique Mathématique"
    MANAGEMENT_ECONOMICS = "Gestion et Économie"
    LETTERS_PHILOSOPHY = "Lettres et Philosophie"
    FOREIGN_LANGUAGES = "Langues Étrangères"
    PERSONAL_DOCUMENT = "Document Personnel"  # upload-your-own-lesson track

    @classmethod
    def parse(cls, value: Specialty | str | None) -> Specialty | None:
        """Resolve an id to a known specialty, or None when it is unknown."""
        if value is None or isinstance(value, Specialty):
            return value
        try:
            return cls(value)
        except ValueError:
            return None


class UserRole(str, Enum):
    STUDENT = "student"
    TEACHER = "teacher"


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True)


class SpecialtyInfo(_Frozen):
    """Display data for a specialty."""

    id: Specialty
    name: str
    icon: str = ""


class Lesson(_Frozen):
    id: str
    title: str
    content: str | None = None  # raw grounding text, e.g. from an uploaded PDF

    @property
    def grounding(self) -> str:
        """Lesson content when present, else the title."""
        return self.content if self.content else self.title


class Unit(_Frozen):
    id: str
    title: str
    semester: Literal[1, 2, 3]
    lessons: tuple[Lesson, ...] = ()


class Subject(_Frozen):
    id: str
    name: str
    specialties: frozenset[Specialty] = Field(default_factory=frozenset)
    icon: str = ""
    curriculum: tuple[Unit, ...] | None = None

    def offered_to(self, specialty: Specialty | None) -> bool:
        return specialty is not None and specialty in self.specialties

    def find_lesson(self, lesson_id: str) -> Lesson | None:
        for unit in self.curriculum or ():
            for lesson in unit.lessons:
                if lesson.id == lesson_id:
                    return lesson
        return None
