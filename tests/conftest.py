"""
Pytest Configuration and Fixtures.

This file configures pytest and provides shared fixtures for all tests.
No test talks to Gemini or Supabase: generation goes through FakeBackend,
auth through httpx.MockTransport.
"""
import json
import sys
from pathlib import Path

import pytest

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from bactutor.curriculum.catalog import CurriculumCatalog  # noqa: E402
from bactutor.curriculum.filter import default_filter  # noqa: E402
from bactutor.generation.orchestrator import GenerationOrchestrator  # noqa: E402
from bactutor.generation.schemas import SUGGESTIONS_SCHEMA  # noqa: E402
from bactutor.session.state import SessionState  # noqa: E402
from config import Settings  # noqa: E402


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Integration tests (sqlite files on disk)")
    config.addinivalue_line("markers", "smoke: Smoke tests for CLI commands")
    config.addinivalue_line("markers", "slow: Slow tests")


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their location."""
    for item in items:
        # Mark based on test file location
        if "unit" in str(item.fspath):
            item.add_marker(pytest.mark.unit)
        elif "integration" in str(item.fspath):
            item.add_marker(pytest.mark.integration)
        elif "smoke" in str(item.fspath):
            item.add_marker(pytest.mark.smoke)


# =============================================================================
# Fake generative backend
# =============================================================================


class FakeBackend:
    """
    Scripted GenerativeBackend.

    Primary calls consume `responses` in order; an Exception instance is
    raised instead of returned. Suggestion calls (identified by their
    response schema) are answered from `suggestions`, which may also be an
    Exception.
    """

    def __init__(self, responses=None, suggestions='{"suggestions": ["لماذا؟", "مثال آخر", "تمرين"]}'):
        self.responses = list(responses or [])
        self.suggestions = suggestions
        self.calls = []
        self.default = "رد افتراضي"

    def queue(self, *items):
        self.responses.extend(items)

    @property
    def primary_calls(self):
        return [c for c in self.calls if c[2] is not SUGGESTIONS_SCHEMA]

    @property
    def suggestion_calls(self):
        return [c for c in self.calls if c[2] is SUGGESTIONS_SCHEMA]

    async def generate(self, profile, prompt, schema=None):
        self.calls.append((profile, prompt, schema))
        if schema is SUGGESTIONS_SCHEMA:
            item = self.suggestions
        elif self.responses:
            item = self.responses.pop(0)
        else:
            item = self.default
        if isinstance(item, Exception):
            raise item
        return item


def quiz_json(n: int = 10, correct: int = 0, bad_index: int | None = None) -> str:
    """A quiz response; `bad_index` puts an out-of-range answer on question 0."""
    questions = [
        {
            "question": f"سؤال {i + 1}",
            "options": ["أ", "ب", "ج", "د"],
            "correctAnswerIndex": correct,
            "explanation": f"شرح {i + 1}",
        }
        for i in range(n)
    ]
    if bad_index is not None and questions:
        questions[0]["correctAnswerIndex"] = bad_index
    return json.dumps({"title": "اختبار", "questions": questions}, ensure_ascii=False)


def exam_json(exam: str = "الموضوع", solution: str = "الحل") -> str:
    return json.dumps({"examText": exam, "solutionText": solution}, ensure_ascii=False)


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture(scope="session")
def project_root():
    """Return the project root directory."""
    return PROJECT_ROOT


@pytest.fixture
def settings(tmp_path):
    """Settings isolated from the environment and the user's home."""
    return Settings(
        _env_file=None,
        gemini_api_key="test-key",
        database_url=f"sqlite:///{tmp_path / 'profiles.db'}",
        local_cache_path=tmp_path / "preferences.db",
        supabase_url=None,
        supabase_anon_key=None,
        single_role_mode=False,
        schema_retry_attempts=1,
        suggestion_count=3,
    )


@pytest.fixture(scope="session")
def catalog():
    return CurriculumCatalog.from_yaml()


@pytest.fixture(scope="session")
def curriculum_filter():
    return default_filter()


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
def orchestrator(backend, settings):
    return GenerationOrchestrator(backend, settings=settings)


@pytest.fixture
def session(catalog, curriculum_filter, orchestrator, settings):
    """Student/teacher session without persistence."""
    return SessionState(catalog, curriculum_filter, orchestrator, settings=settings)


@pytest.fixture
def math_context(catalog):
    """(specialty info, subject, lesson) for Mathématiques / math / ml1."""
    specialty = catalog.specialty_info("Mathématiques")
    subject = catalog.subject("math")
    return specialty, subject, subject.find_lesson("ml1")


@pytest.fixture
def make_quiz():
    return quiz_json


@pytest.fixture
def make_exam():
    return exam_json
