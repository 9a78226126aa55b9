"""
bacdz-tutor: baccalaureate tutoring driven by a generative backend.

Sub-packages:
- curriculum: static catalog and per-specialty visibility filter
- session: navigation state machine and per-mode artifacts
- generation: mode table, prompts, schemas, Gemini backend, orchestrator
- quiz: nested quiz-taking state machine
- teacher: gradebook
- integrations: identity provider, profile store, document extraction, local cache
- cli: Typer commands and Rich rendering
"""

__version__ = "1.0.0"
