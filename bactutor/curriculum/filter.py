"""
Curriculum filter.

Derives the units and lessons visible to a learner from a subject's raw
curriculum, the learner's specialty and the configured rule set:

1. Subjects without rules are returned unchanged.
2. Unit rules drop whole units whose id matches the prefix, unless the
   specialty belongs to one of the rule's tracks.
3. Lesson rules drop individual lessons the same way.
4. Units left without lessons are dropped.

The input subject is never modified. An unknown specialty matches no track
and therefore gets the most restrictive result.
"""

from __future__ import annotations

from bactutor.curriculum.filter_rules import FilterRuleSet, load_filter_rules
from bactutor.curriculum.models import Specialty, Subject, Unit, UserRole


class CurriculumFilter:
    """Pure visibility function over a rule set."""

    def __init__(self, rules: FilterRuleSet):
        self.rules = rules

    def visible_units(
        self,
        subject: Subject,
        specialty: Specialty | str | None,
        role: UserRole = UserRole.STUDENT,
    ) -> list[Unit]:
        if not subject.curriculum:
            return []

        # Teacher browsing before picking a specialty sees everything
        if specialty is None and role == UserRole.TEACHER:
            return list(subject.curriculum)

        rules = self.rules.rules_for(subject.id)
        if not rules:
            return list(subject.curriculum)

        resolved = Specialty.parse(specialty)
        unit_rules = [r for r in rules if r.target == "unit"]
        lesson_rules = [r for r in rules if r.target == "lesson"]

        visible: list[Unit] = []
        for unit in subject.curriculum:
            if any(r.matches_unit(unit.id) and not self.rules.keeps(r, resolved) for r in unit_rules):
                continue

            lessons = tuple(
                lesson
                for lesson in unit.lessons
                if not any(
                    r.matches_lesson(unit.id, lesson.id) and not self.rules.keeps(r, resolved)
                    for r in lesson_rules
                )
            )
            if not lessons:
                continue

            if len(lessons) == len(unit.lessons):
                visible.append(unit)
            else:
                visible.append(unit.model_copy(update={"lessons": lessons}))

        return visible

    def visible_lesson_count(
        self,
        subject: Subject,
        specialty: Specialty | str | None,
        role: UserRole = UserRole.STUDENT,
    ) -> int:
        return sum(len(u.lessons) for u in self.visible_units(subject, specialty, role))


def default_filter() -> CurriculumFilter:
    """Filter over the packaged rule file."""
    return CurriculumFilter(load_filter_rules())
