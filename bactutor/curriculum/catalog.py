"""
Curriculum catalog.

Read-only access to specialties, subjects, units and lessons loaded from
YAML. Subject curricula are raw; use CurriculumFilter for what a learner
actually sees.
"""

from __future__ import annotations

from pathlib import Path
from typing import Iterable

import yaml
from loguru import logger
from pydantic import BaseModel, ValidationError

from bactutor.curriculum.models import Lesson, Specialty, SpecialtyInfo, Subject, Unit
from bactutor.errors import CatalogError

DEFAULT_CATALOG_PATH = Path(__file__).parent / "data" / "catalog.yaml"

PERSONAL_SUBJECT_ID = "personal"
PERSONAL_LESSON_ID = "personal-doc"


class _CatalogFile(BaseModel):
    specialties: list[SpecialtyInfo]
    subjects: list[Subject]


class CurriculumCatalog:
    """In-memory curriculum index."""

    def __init__(self, specialties: Iterable[SpecialtyInfo], subjects: Iterable[Subject]):
        self._specialties: dict[Specialty, SpecialtyInfo] = {}
        for info in specialties:
            if info.id in self._specialties:
                raise CatalogError(f"Duplicate specialty: {info.id.value}")
            self._specialties[info.id] = info

        self._subjects: dict[str, Subject] = {}
        for subject in subjects:
            if subject.id in self._subjects:
                raise CatalogError(f"Duplicate subject id: {subject.id}")
            self._check_ids(subject)
            self._subjects[subject.id] = subject

    @staticmethod
    def _check_ids(subject: Subject) -> None:
        unit_ids: set[str] = set()
        lesson_ids: set[str] = set()
        for unit in subject.curriculum or ():
            if unit.id in unit_ids:
                raise CatalogError(f"Duplicate unit id '{unit.id}' in subject '{subject.id}'")
            unit_ids.add(unit.id)
            for lesson in unit.lessons:
                if lesson.id in lesson_ids:
                    raise CatalogError(f"Duplicate lesson id '{lesson.id}' in subject '{subject.id}'")
                lesson_ids.add(lesson.id)

    @classmethod
    def from_yaml(cls, path: Path | str | None = None) -> CurriculumCatalog:
        path = Path(path) if path else DEFAULT_CATALOG_PATH
        try:
            raw = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
            data = _CatalogFile.model_validate(raw)
        except (OSError, yaml.YAMLError) as e:
            raise CatalogError(f"Cannot read catalog {path}: {e}") from e
        except ValidationError as e:
            raise CatalogError(f"Invalid catalog {path}: {e}") from e

        catalog = cls(data.specialties, data.subjects)
        logger.debug(
            f"Loaded catalog: {len(catalog._specialties)} specialties, "
            f"{len(catalog._subjects)} subjects from {path.name}"
        )
        return catalog

    # ========================================
    # Lookups
    # ========================================

    def specialties(self) -> list[SpecialtyInfo]:
        return list(self._specialties.values())

    def specialty_info(self, specialty: Specialty | str) -> SpecialtyInfo | None:
        resolved = Specialty.parse(specialty)
        return self._specialties.get(resolved) if resolved else None

    def subjects_for(self, specialty: Specialty | str | None) -> list[Subject]:
        """Subjects offered to a specialty, in catalog order."""
        resolved = Specialty.parse(specialty)
        return [s for s in self._subjects.values() if s.offered_to(resolved)]

    def subject(self, subject_id: str) -> Subject | None:
        return self._subjects.get(subject_id)

    def lesson(self, subject_id: str, lesson_id: str) -> Lesson | None:
        subject = self._subjects.get(subject_id)
        return subject.find_lesson(lesson_id) if subject else None

    @staticmethod
    def lessons_for_semester(units: Iterable[Unit], semester: int) -> list[Lesson]:
        """All lessons of the given units that belong to `semester`."""
        return [lesson for unit in units if unit.semester == semester for lesson in unit.lessons]


def document_subject(title: str, text: str) -> Subject:
    """Ad-hoc subject wrapping an uploaded document as a single lesson."""
    lesson = Lesson(id=PERSONAL_LESSON_ID, title=title, content=text)
    unit = Unit(id="personal-unit", title=title, semester=1, lessons=(lesson,))
    return Subject(
        id=PERSONAL_SUBJECT_ID,
        name=title,
        specialties=frozenset({Specialty.PERSONAL_DOCUMENT}),
        icon="📄",
        curriculum=(unit,),
    )


def load_catalog(path: Path | str | None = None) -> CurriculumCatalog:
    return CurriculumCatalog.from_yaml(path)
