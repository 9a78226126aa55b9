"""Teacher-only tools."""

from .gradebook import Gradebook, GradebookEntry, parse_mark

__all__ = ["Gradebook", "GradebookEntry", "parse_mark"]
