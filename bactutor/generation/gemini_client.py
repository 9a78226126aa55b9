"""
Gemini backend.

Thin async adapter around the google-genai SDK: one `generate` call per
request, JSON mode when a response schema is given, grounding tools taken
from the model profile, and provider errors translated into the tutor's
error taxonomy.
"""

from __future__ import annotations

from typing import Callable, Protocol

import httpx
from google import genai
from google.genai import errors as genai_errors
from google.genai import types
from loguru import logger

from bactutor.errors import CredentialMissingError, ProviderFailureError
from bactutor.generation.modes import ModelProfile
from bactutor.generation.prompts import SYSTEM_INSTRUCTION

# Provider message meaning the selected key/project cannot serve the model
ENTITY_NOT_FOUND = "Requested entity was not found"

# Profile tool names -> SDK tool objects. Gemini 2.x grounds with google_search.
TOOLS: dict[str, Callable[[], types.Tool]] = {
    "google_search": lambda: types.Tool(google_search=types.GoogleSearch()),
    "code_execution": lambda: types.Tool(code_execution=types.ToolCodeExecution()),
}


class GenerativeBackend(Protocol):
    """Anything that turns (profile, prompt, schema) into raw response text."""

    async def generate(self, profile: ModelProfile, prompt: str, schema: dict | None = None) -> str: ...


def build_tools(names: tuple[str, ...]) -> list[types.Tool]:
    unknown = [name for name in names if name not in TOOLS]
    if unknown:
        raise ValueError(f"Unsupported Gemini tool(s): {', '.join(unknown)}")
    return [TOOLS[name]() for name in names]


class GeminiBackend:
    """google-genai implementation of GenerativeBackend."""

    def __init__(self, api_key: str | None = None, system_instruction: str = SYSTEM_INSTRUCTION):
        self.system_instruction = system_instruction
        self.api_key: str | None = None
        self._client: genai.Client | None = None
        if api_key:
            self.set_api_key(api_key)

    def set_api_key(self, api_key: str) -> None:
        """Select a (new) credential. The previous client is dropped."""
        self._client = genai.Client(api_key=api_key)
        self.api_key = api_key

    def request_config(self, profile: ModelProfile, schema: dict | None = None) -> types.GenerateContentConfig:
        options: dict = {
            "system_instruction": self.system_instruction,
            "temperature": profile.temperature,
            "max_output_tokens": profile.max_output_tokens,
        }
        if profile.tools:
            options["tools"] = build_tools(profile.tools)
        if schema is not None:
            options["response_mime_type"] = "application/json"
            options["response_schema"] = schema
        return types.GenerateContentConfig(**options)

    async def generate(self, profile: ModelProfile, prompt: str, schema: dict | None = None) -> str:
        if self._client is None:
            raise CredentialMissingError()

        config = self.request_config(profile, schema)
        logger.debug(
            f"Gemini call: profile={profile.name} model={profile.model} "
            f"json={schema is not None} tools={list(profile.tools)}"
        )

        try:
            response = await self._client.aio.models.generate_content(
                model=profile.model, contents=prompt, config=config
            )
        except genai_errors.APIError as e:
            raise _translate(e) from e
        except httpx.HTTPError as e:
            raise ProviderFailureError(f"Gemini transport error: {e}") from e

        text = response.text
        if not text or not text.strip():
            # Blocked prompts and empty candidates come back without text
            raise ProviderFailureError("Gemini returned no usable text")
        return text


def _translate(error: genai_errors.APIError) -> ProviderFailureError:
    message = error.message or str(error)
    if error.code in (401, 403):
        return CredentialMissingError(message)
    if error.code == 404:
        if ENTITY_NOT_FOUND in message:
            return CredentialMissingError(message)
        return ProviderFailureError(f"Gemini model not found: {message}")
    if error.code == 400:
        if "API key" in message:
            return CredentialMissingError(message)
        return ProviderFailureError(f"Gemini rejected the request: {message}")
    return ProviderFailureError(f"Gemini API error {error.code}: {message}")
