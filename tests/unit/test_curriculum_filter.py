"""
Unit tests for the curriculum filter.

Tests cover:
- Unit rules (math m6, physics p6, science s3, philosophy ph4)
- Lesson rules restricted to one unit (arabic arl6, french frl4)
- Unknown / missing specialties
- Idempotence and immutability of the input subject
"""

import pytest

from bactutor.curriculum.filter import CurriculumFilter
from bactutor.curriculum.filter_rules import FilterRuleSet
from bactutor.curriculum.models import Lesson, Specialty, Subject, Unit, UserRole


def unit_ids(units):
    return [u.id for u in units]


def lesson_ids(units):
    return [lesson.id for u in units for lesson in u.lessons]


# =============================================================================
# Unit rules
# =============================================================================


class TestUnitRules:
    """Whole units kept only for certain tracks."""

    @pytest.mark.parametrize(
        "specialty",
        [
            Specialty.EXPERIMENTAL_SCIENCES,
            Specialty.MANAGEMENT_ECONOMICS,
            Specialty.LETTERS_PHILOSOPHY,
            Specialty.FOREIGN_LANGUAGES,
        ],
    )
    def test_arithmetic_unit_hidden_outside_math_track(self, catalog, curriculum_filter, specialty):
        units = curriculum_filter.visible_units(catalog.subject("math"), specialty)
        assert "m6" not in unit_ids(units)
        assert unit_ids(units) == ["m1", "m2", "m3", "m4", "m5"]

    @pytest.mark.parametrize("specialty", [Specialty.MATHEMATICS, Specialty.TECHNICAL_MATHEMATICS])
    def test_arithmetic_unit_kept_for_math_track(self, catalog, curriculum_filter, specialty):
        units = curriculum_filter.visible_units(catalog.subject("math"), specialty)
        assert unit_ids(units)[-1] == "m6"
        assert len(units) == 6

    def test_physics_oscillations_math_track_only(self, catalog, curriculum_filter):
        physics = catalog.subject("physics")
        assert "p6" in unit_ids(curriculum_filter.visible_units(physics, Specialty.MATHEMATICS))
        assert "p6" not in unit_ids(curriculum_filter.visible_units(physics, Specialty.EXPERIMENTAL_SCIENCES))

    def test_geology_experimental_only(self, catalog, curriculum_filter):
        science = catalog.subject("science")
        assert "s3" in unit_ids(curriculum_filter.visible_units(science, Specialty.EXPERIMENTAL_SCIENCES))
        assert "s3" not in unit_ids(curriculum_filter.visible_units(science, Specialty.MATHEMATICS))

    def test_philosophy_logic_unit_for_philosophy_track(self, catalog, curriculum_filter):
        philosophy = catalog.subject("philosophy")
        assert "ph4" in unit_ids(curriculum_filter.visible_units(philosophy, Specialty.LETTERS_PHILOSOPHY))
        assert "ph4" not in unit_ids(curriculum_filter.visible_units(philosophy, Specialty.FOREIGN_LANGUAGES))


# =============================================================================
# Lesson rules
# =============================================================================


class TestLessonRules:
    """Individual lessons dropped within one unit."""

    def test_theatre_lesson_literary_only(self, catalog, curriculum_filter):
        arabic = catalog.subject("arabic")

        literary = curriculum_filter.visible_units(arabic, Specialty.LETTERS_PHILOSOPHY)
        scientific = curriculum_filter.visible_units(arabic, Specialty.MATHEMATICS)

        assert "arl6" in lesson_ids(literary)
        assert "arl6" not in lesson_ids(scientific)
        # The unit itself stays, with its other lesson
        ar3 = next(u for u in scientific if u.id == "ar3")
        assert [lesson.id for lesson in ar3.lessons] == ["arl5"]

    def test_memoir_lesson_languages_only(self, catalog, curriculum_filter):
        french = catalog.subject("french")
        assert "frl4" in lesson_ids(curriculum_filter.visible_units(french, Specialty.FOREIGN_LANGUAGES))
        assert "frl4" not in lesson_ids(curriculum_filter.visible_units(french, Specialty.EXPERIMENTAL_SCIENCES))

    def test_lesson_rule_scoped_to_its_unit(self):
        rules = FilterRuleSet.model_validate(
            {
                "tracks": {"t": ["Mathématiques"]},
                "subjects": {"x": [{"target": "lesson", "unit": "u1", "prefix": "l", "keep_for": ["t"]}]},
            }
        )
        subject = Subject(
            id="x",
            name="X",
            specialties=frozenset({Specialty.EXPERIMENTAL_SCIENCES}),
            curriculum=(
                Unit(id="u1", title="U1", semester=1, lessons=(Lesson(id="l1", title="a"), Lesson(id="k1", title="b"))),
                Unit(id="u2", title="U2", semester=2, lessons=(Lesson(id="l2", title="c"),)),
            ),
        )
        units = CurriculumFilter(rules).visible_units(subject, Specialty.EXPERIMENTAL_SCIENCES)
        assert lesson_ids(units) == ["k1", "l2"]


# =============================================================================
# Edge cases
# =============================================================================


class TestEdgeCases:
    def test_unknown_specialty_gets_most_restrictive_view(self, catalog, curriculum_filter):
        math = catalog.subject("math")
        units = curriculum_filter.visible_units(math, "Bac Inconnu")
        assert "m6" not in unit_ids(units)

    def test_student_without_specialty_is_restricted(self, catalog, curriculum_filter):
        units = curriculum_filter.visible_units(catalog.subject("math"), None, UserRole.STUDENT)
        assert "m6" not in unit_ids(units)

    def test_teacher_without_specialty_sees_everything(self, catalog, curriculum_filter):
        math = catalog.subject("math")
        units = curriculum_filter.visible_units(math, None, UserRole.TEACHER)
        assert units == list(math.curriculum)

    def test_subject_without_rules_unchanged(self, catalog, curriculum_filter):
        history = catalog.subject("history_geo")
        assert curriculum_filter.visible_units(history, Specialty.MATHEMATICS) == list(history.curriculum)

    def test_subject_without_curriculum_is_empty(self, curriculum_filter):
        subject = Subject(id="math", name="Empty", specialties=frozenset({Specialty.MATHEMATICS}))
        assert curriculum_filter.visible_units(subject, Specialty.MATHEMATICS) == []

    def test_units_emptied_by_lesson_rules_are_dropped(self):
        rules = FilterRuleSet.model_validate(
            {
                "tracks": {"t": ["Mathématiques"]},
                "subjects": {"x": [{"target": "lesson", "prefix": "x", "keep_for": ["t"]}]},
            }
        )
        subject = Subject(
            id="x",
            name="X",
            curriculum=(
                Unit(id="u1", title="U1", semester=1, lessons=(Lesson(id="x1", title="a"),)),
                Unit(id="u2", title="U2", semester=1, lessons=(Lesson(id="y1", title="b"),)),
            ),
        )
        units = CurriculumFilter(rules).visible_units(subject, Specialty.FOREIGN_LANGUAGES)
        assert unit_ids(units) == ["u2"]

    def test_no_visible_unit_is_empty(self, catalog, curriculum_filter):
        for subject in catalog.subjects_for(Specialty.MATHEMATICS):
            for specialty in Specialty:
                for unit in curriculum_filter.visible_units(subject, specialty):
                    assert unit.lessons


class TestPurity:
    def test_filter_is_idempotent(self, catalog, curriculum_filter):
        arabic = catalog.subject("arabic")
        once = curriculum_filter.visible_units(arabic, Specialty.MATHEMATICS)
        filtered = arabic.model_copy(update={"curriculum": tuple(once)})
        twice = curriculum_filter.visible_units(filtered, Specialty.MATHEMATICS)
        assert twice == once

    def test_input_subject_not_modified(self, catalog, curriculum_filter):
        arabic = catalog.subject("arabic")
        before = arabic.model_dump()
        curriculum_filter.visible_units(arabic, Specialty.MATHEMATICS)
        assert arabic.model_dump() == before

    def test_visible_lesson_count(self, catalog, curriculum_filter):
        math = catalog.subject("math")
        assert curriculum_filter.visible_lesson_count(math, Specialty.MATHEMATICS) == 14
        assert curriculum_filter.visible_lesson_count(math, Specialty.EXPERIMENTAL_SCIENCES) == 12
