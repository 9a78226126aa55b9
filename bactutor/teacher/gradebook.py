"""
Teacher gradebook.

One entry per student with per-subject marks, assessment marks and free
text assessment notes. Marks arrive as text from input fields: blank or
unparseable input counts as 0, numbers outside [0, 20] are rejected.
Every mutation is handed to `on_change` so the caller can persist it.
"""

from __future__ import annotations

import uuid
from typing import Callable

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field

from bactutor.errors import GradebookError

MIN_MARK = 0.0
MAX_MARK = 20.0


class GradebookEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    student_id: str
    name: str
    marks: dict[str, float] = Field(default_factory=dict)
    assessment_marks: dict[str, float] = Field(default_factory=dict)
    assessment_notes: dict[str, str] = Field(default_factory=dict)


def parse_mark(value: str | float | int | None) -> float:
    """Text input -> mark. Blank/unparseable is 0; out of range raises."""
    if value is None:
        return 0.0
    if isinstance(value, (int, float)):
        mark = float(value)
    else:
        text = value.strip().replace(",", ".")
        try:
            mark = float(text) if text else 0.0
        except ValueError:
            return 0.0
    if mark != mark:  # NaN
        return 0.0
    if not MIN_MARK <= mark <= MAX_MARK:
        raise GradebookError(f"Mark {mark:g} is outside {MIN_MARK:g}..{MAX_MARK:g}")
    return mark


class Gradebook:
    """Ordered collection of GradebookEntry values."""

    def __init__(
        self,
        entries: list[GradebookEntry] | None = None,
        on_change: Callable[[list[GradebookEntry]], None] | None = None,
    ):
        self._entries: list[GradebookEntry] = list(entries or [])
        self.on_change = on_change

    @property
    def entries(self) -> list[GradebookEntry]:
        return list(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, student_id: str) -> GradebookEntry | None:
        return next((e for e in self._entries if e.student_id == student_id), None)

    def find(self, ref: str) -> GradebookEntry | None:
        """Look up by id, then by exact name."""
        return self.get(ref) or next((e for e in self._entries if e.name == ref), None)

    # ========================================
    # Mutations
    # ========================================

    def add_student(self, name: str) -> GradebookEntry:
        name = name.strip()
        if not name:
            raise GradebookError("Student name must not be blank")
        entry = GradebookEntry(student_id=uuid.uuid4().hex[:12], name=name)
        self._entries.append(entry)
        logger.debug(f"Gradebook: added {name} ({entry.student_id})")
        self._changed()
        return entry

    def set_mark(self, student_id: str, subject_id: str, value: str | float | None) -> GradebookEntry:
        mark = parse_mark(value)
        return self._update(student_id, lambda e: {"marks": {**e.marks, subject_id: mark}})

    def set_assessment_mark(self, student_id: str, subject_id: str, value: str | float | None) -> GradebookEntry:
        mark = parse_mark(value)
        return self._update(
            student_id, lambda e: {"assessment_marks": {**e.assessment_marks, subject_id: mark}}
        )

    def set_assessment_note(self, student_id: str, subject_id: str, note: str) -> GradebookEntry:
        return self._update(
            student_id, lambda e: {"assessment_notes": {**e.assessment_notes, subject_id: note}}
        )

    def remove_student(self, student_id: str) -> None:
        before = len(self._entries)
        self._entries = [e for e in self._entries if e.student_id != student_id]
        if len(self._entries) == before:
            raise GradebookError(f"Unknown student: {student_id}")
        logger.debug(f"Gradebook: removed {student_id}")
        self._changed()

    def _update(self, student_id: str, changes: Callable[[GradebookEntry], dict]) -> GradebookEntry:
        for i, entry in enumerate(self._entries):
            if entry.student_id == student_id:
                updated = entry.model_copy(update=changes(entry))
                self._entries[i] = updated
                self._changed()
                return updated
        raise GradebookError(f"Unknown student: {student_id}")

    def _changed(self) -> None:
        if self.on_change is not None:
            self.on_change(self.entries)
