"""
Curriculum visibility rules.

Rules are configuration data, not logic. Each subject id maps to a list of
rules; a rule names the units (or lessons) it governs by id prefix and the
tracks allowed to keep them. Tracks are named sets of specialties.

    tracks:
      math_track: [Mathématiques, Technique Mathématique]
    subjects:
      math:
        - {target: unit, prefix: m6, keep_for: [math_track]}
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

import yaml
from loguru import logger
from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from bactutor.curriculum.models import Specialty
from bactutor.errors import CatalogError

DEFAULT_RULES_PATH = Path(__file__).parent / "data" / "filter_rules.yaml"


class FilterRule(BaseModel):
    """Keep matching units/lessons only for specialties in `keep_for` tracks."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    target: Literal["unit", "lesson"]
    prefix: str = Field(min_length=1)
    unit: str | None = None  # lesson rules only: restrict to one unit id
    keep_for: tuple[str, ...] = Field(min_length=1)

    @model_validator(mode="after")
    def _unit_only_for_lessons(self) -> FilterRule:
        if self.target == "unit" and self.unit is not None:
            raise ValueError("'unit' is only meaningful for lesson rules")
        return self

    def matches_unit(self, unit_id: str) -> bool:
        return self.target == "unit" and unit_id.startswith(self.prefix)

    def matches_lesson(self, unit_id: str, lesson_id: str) -> bool:
        if self.target != "lesson":
            return False
        if self.unit is not None and unit_id != self.unit:
            return False
        return lesson_id.startswith(self.prefix)


class FilterRuleSet(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    tracks: dict[str, frozenset[Specialty]] = Field(default_factory=dict)
    subjects: dict[str, tuple[FilterRule, ...]] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _tracks_exist(self) -> FilterRuleSet:
        for subject_id, rules in self.subjects.items():
            for rule in rules:
                missing = [t for t in rule.keep_for if t not in self.tracks]
                if missing:
                    raise ValueError(
                        f"subject '{subject_id}' references unknown track(s): {', '.join(missing)}"
                    )
        return self

    def rules_for(self, subject_id: str) -> tuple[FilterRule, ...]:
        return self.subjects.get(subject_id, ())

    def keeps(self, rule: FilterRule, specialty: Specialty | None) -> bool:
        """True when `specialty` belongs to one of the rule's tracks."""
        if specialty is None:
            return False
        return any(specialty in self.tracks[track] for track in rule.keep_for)


def load_filter_rules(path: Path | str | None = None) -> FilterRuleSet:
    """Load and validate a rule file. Raises CatalogError on malformed data."""
    path = Path(path) if path else DEFAULT_RULES_PATH
    try:
        raw = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except (OSError, yaml.YAMLError) as e:
        raise CatalogError(f"Cannot read filter rules {path}: {e}") from e

    try:
        rule_set = FilterRuleSet.model_validate(raw)
    except ValidationError as e:
        raise CatalogError(f"Invalid filter rules in {path}: {e}") from e

    logger.debug(f"Loaded filter rules for {len(rule_set.subjects)} subjects from {path.name}")
    return rule_set
