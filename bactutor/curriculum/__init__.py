"""Curriculum catalog, visibility rules and filter."""

from .catalog import CurriculumCatalog, document_subject, load_catalog
from .filter import CurriculumFilter, default_filter
from .filter_rules import FilterRule, FilterRuleSet, load_filter_rules
from .models import Lesson, Specialty, SpecialtyInfo, Subject, Unit, UserRole

__all__ = [
    "CurriculumCatalog",
    "CurriculumFilter",
    "FilterRule",
    "FilterRuleSet",
    "Lesson",
    "Specialty",
    "SpecialtyInfo",
    "Subject",
    "Unit",
    "UserRole",
    "default_filter",
    "document_subject",
    "load_catalog",
    "load_filter_rules",
]
