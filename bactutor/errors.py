"""
Error taxonomy for the tutor.

Generation failures carry an ``ErrorKind`` so the session layer can decide
whether a failure is silent, logged, or shown to the learner with a retry
affordance.
"""

from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    """Classification of tutor failures."""

    CONTEXT_INCOMPLETE = "context_incomplete"  # silently refused
    SCHEMA_INVALID = "schema_invalid"  # one retry, then user-visible
    PROVIDER_FAILURE = "provider_failure"  # user-visible, retryable
    CREDENTIAL_MISSING = "credential_missing"  # triggers credential selection
    EXTRACTION_FAILURE = "extraction_failure"  # user-visible, state untouched
    SECONDARY_FAILURE = "secondary_failure"  # logged only


class TutorError(Exception):
    """Base class for all tutor errors."""

    kind: ErrorKind | None = None


class GenerationError(TutorError):
    """A generation request did not produce an acceptable artifact."""

    def __init__(self, kind: ErrorKind, message: str):
        super().__init__(message)
        self.kind = kind
        self.message = message

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.kind.value}: {self.message})"


class ContextIncompleteError(GenerationError):
    def __init__(self, message: str = "Specialty, subject and lesson must be selected"):
        super().__init__(ErrorKind.CONTEXT_INCOMPLETE, message)


class SchemaInvalidError(GenerationError):
    def __init__(self, message: str, errors: list[str] | None = None):
        super().__init__(ErrorKind.SCHEMA_INVALID, message)
        self.errors = errors or []


class ProviderFailureError(GenerationError):
    def __init__(self, message: str, kind: ErrorKind = ErrorKind.PROVIDER_FAILURE):
        super().__init__(kind, message)


class CredentialMissingError(ProviderFailureError):
    """The provider rejected the call because no usable credential is selected."""

    def __init__(self, message: str = "No usable API key is selected"):
        super().__init__(message, kind=ErrorKind.CREDENTIAL_MISSING)


class SecondaryGenerationError(GenerationError):
    def __init__(self, message: str):
        super().__init__(ErrorKind.SECONDARY_FAILURE, message)


class ExtractionError(TutorError):
    """Text could not be extracted from an uploaded document."""

    kind = ErrorKind.EXTRACTION_FAILURE


class NavigationError(TutorError, ValueError):
    """An event is not valid from the current navigation step."""


class CatalogError(TutorError, ValueError):
    """Curriculum data or filter rules failed validation."""


class GradebookError(TutorError, ValueError):
    """Invalid gradebook input."""


class ProfileStoreError(TutorError):
    """The profile store could not be read or written."""
