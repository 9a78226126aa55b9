"""
Structured response contracts.

Two halves per contract:
- a Gemini `response_schema` dict sent with the request (JSON mode)
- a pydantic model the raw response must validate against before it is
  accepted

The request schema only steers the model; acceptance is decided by the
pydantic model, which also enforces the bounds the provider cannot
(exactly 10 questions, 4 options, answer index inside the options).
"""

from __future__ import annotations

import json
import re
from typing import TypeVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from bactutor.errors import SchemaInvalidError

QUIZ_LENGTH = 10
OPTIONS_PER_QUESTION = 4


# =============================================================================
# Payload models
# =============================================================================


class _Payload(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)


class QuizQuestion(_Payload):
    question: str = Field(min_length=1)
    options: tuple[str, ...]
    correct_answer_index: int = Field(alias="correctAnswerIndex")
    explanation: str

    @field_validator("options")
    @classmethod
    def _four_options(cls, options: tuple[str, ...]) -> tuple[str, ...]:
        if len(options) != OPTIONS_PER_QUESTION:
            raise ValueError(f"expected {OPTIONS_PER_QUESTION} options, got {len(options)}")
        if any(not o.strip() for o in options):
            raise ValueError("options must not be blank")
        return options

    @model_validator(mode="after")
    def _answer_in_options(self) -> QuizQuestion:
        if not 0 <= self.correct_answer_index < len(self.options):
            raise ValueError(
                f"correctAnswerIndex {self.correct_answer_index} outside 0..{len(self.options) - 1}"
            )
        return self


class Quiz(_Payload):
    title: str
    questions: tuple[QuizQuestion, ...]

    @field_validator("questions")
    @classmethod
    def _exact_length(cls, questions: tuple[QuizQuestion, ...]) -> tuple[QuizQuestion, ...]:
        if len(questions) != QUIZ_LENGTH:
            raise ValueError(f"expected {QUIZ_LENGTH} questions, got {len(questions)}")
        return questions


class ExamPayload(_Payload):
    exam_text: str = Field(alias="examText", min_length=1)
    solution_text: str = Field(alias="solutionText", min_length=1)


class SuggestionsPayload(_Payload):
    suggestions: list[str] = Field(default_factory=list)


# =============================================================================
# Gemini response schemas
# =============================================================================

QUIZ_SCHEMA = {
    "type": "OBJECT",
    "properties": {
        "title": {"type": "STRING"},
        "questions": {
            "type": "ARRAY",
            "items": {
                "type": "OBJECT",
                "properties": {
                    "question": {"type": "STRING"},
                    "options": {"type": "ARRAY", "items": {"type": "STRING"}},
                    "correctAnswerIndex": {"type": "INTEGER"},
                    "explanation": {"type": "STRING"},
                },
                "required": ["question", "options", "correctAnswerIndex", "explanation"],
            },
        },
    },
    "required": ["title", "questions"],
}

EXAM_SCHEMA = {
    "type": "OBJECT",
    "properties": {
        "examText": {"type": "STRING"},
        "solutionText": {"type": "STRING"},
    },
    "required": ["examText", "solutionText"],
}

SUGGESTIONS_SCHEMA = {
    "type": "OBJECT",
    "properties": {
        "suggestions": {"type": "ARRAY", "items": {"type": "STRING"}},
    },
    "required": ["suggestions"],
}

RESPONSE_SCHEMAS: dict[type[BaseModel], dict] = {
    Quiz: QUIZ_SCHEMA,
    ExamPayload: EXAM_SCHEMA,
    SuggestionsPayload: SUGGESTIONS_SCHEMA,
}


# =============================================================================
# Parsing
# =============================================================================

PayloadT = TypeVar("PayloadT", bound=BaseModel)

_FENCE_RE = re.compile(r"^```(?:json)?\s*|\s*```$")


def strip_fences(text: str) -> str:
    """Remove a surrounding markdown code fence, if any."""
    text = text.strip()
    if text.startswith("```"):
        text = _FENCE_RE.sub("", text).strip()
    return text


def parse_structured(raw: str, model: type[PayloadT]) -> PayloadT:
    """
    Decode and validate a JSON response.

    Raises:
        SchemaInvalidError: response is not JSON or fails validation
    """
    try:
        data = json.loads(strip_fences(raw))
    except (json.JSONDecodeError, TypeError) as e:
        raise SchemaInvalidError(f"Response is not valid JSON: {e}") from e

    try:
        return model.model_validate(data)
    except ValidationError as e:
        errors = [f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()]
        raise SchemaInvalidError(
            f"{model.__name__} response failed validation ({len(errors)} errors)", errors
        ) from e
