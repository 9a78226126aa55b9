"""Content generation: mode table, prompts, response contracts and orchestration."""

from .gemini_client import GeminiBackend, GenerativeBackend
from .modes import MODE_STRATEGIES, AIMode, ModelProfile, ModeStrategy, modes_for, strategy_for
from .orchestrator import GenerationOrchestrator, GenerationRequest, GenerationResult
from .schemas import ExamPayload, Quiz, QuizQuestion, parse_structured

__all__ = [
    "AIMode",
    "ExamPayload",
    "GeminiBackend",
    "GenerationOrchestrator",
    "GenerationRequest",
    "GenerationResult",
    "GenerativeBackend",
    "MODE_STRATEGIES",
    "ModeStrategy",
    "ModelProfile",
    "Quiz",
    "QuizQuestion",
    "modes_for",
    "parse_structured",
    "strategy_for",
]
