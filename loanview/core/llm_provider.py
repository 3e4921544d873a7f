"""
LLM Provider Abstraction for the LoanView advisor.

Unified interface over OpenAI and Gemini for the free-text fallback.
Unlike a process-wide singleton, a provider is built per engine from the
settings it is given, so tests and multiple engines never share one.

Usage:
    from loanview.core.llm_provider import build_llm_provider

    provider = build_llm_provider(settings)
    text = await provider.async_complete(user_prompt="...", system_prompt="...")

Settings (environment variables):
    LLM_PROVIDER       "openai" (default) or "gemini"
    LLM_API_KEY        OpenAI secret key  (required when provider=openai)
    GOOGLE_API_KEY     Google/Gemini key  (required when provider=gemini)
    CUSTOM_MODEL_NAME  Model override (e.g. "gpt-4o", "gemini-1.5-flash")
"""

from __future__ import annotations

import asyncio
import logging
from typing import Protocol, Union

from loanview.config import Settings

logger = logging.getLogger(__name__)

DEFAULT_OPENAI_MODEL = "gpt-4o-mini"
DEFAULT_GEMINI_MODEL = "gemini-1.5-flash"


class CompletionProvider(Protocol):
    """Anything that can turn a prompt into text asynchronously"""

    async def async_complete(
        self,
        user_prompt: str,
        system_prompt: str = "",
        max_tokens: int = 1024,
        temperature: float = 0.3,
    ) -> str:
        ...


# ─────────────────────────────────────────────────────────────────────────────
# Provider implementations
# ─────────────────────────────────────────────────────────────────────────────

class _OpenAIProvider:
    """Thin wrapper around the OpenAI chat-completions API."""

    def __init__(self, api_key: str, model: str) -> None:
        from openai import OpenAI
        self._client = OpenAI(api_key=api_key)
        self._model = model
        logger.info(f"[LLMProvider] OpenAI initialised: model={model}")

    def complete(
        self,
        user_prompt: str,
        system_prompt: str = "",
        max_tokens: int = 1024,
        temperature: float = 0.3,
    ) -> str:
        messages = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": user_prompt})

        response = self._client.chat.completions.create(
            model=self._model,
            messages=messages,
            temperature=temperature,
            max_tokens=max_tokens,
            response_format={"type": "json_object"},
        )
        return (response.choices[0].message.content or "").strip()

    async def async_complete(
        self,
        user_prompt: str,
        system_prompt: str = "",
        max_tokens: int = 1024,
        temperature: float = 0.3,
    ) -> str:
        return await asyncio.to_thread(
            self.complete,
            user_prompt,
            system_prompt,
            max_tokens,
            temperature,
        )

    @property
    def model_name(self) -> str:
        return self._model


class _GeminiProvider:
    """Thin wrapper around the Google Generative AI SDK (google-generativeai)."""

    def __init__(self, api_key: str, model: str) -> None:
        try:
            import google.generativeai as genai
        except ImportError:
            raise ImportError(
                "google-generativeai package is required for Gemini provider. "
                "Install with: pip install 'loanview[gemini]'"
            )
        genai.configure(api_key=api_key)
        self._model_name = model
        self._genai = genai
        logger.info(f"[LLMProvider] Gemini initialised: model={model}")

    def complete(
        self,
        user_prompt: str,
        system_prompt: str = "",
        max_tokens: int = 1024,
        temperature: float = 0.3,
    ) -> str:
        model = self._genai.GenerativeModel(
            model_name=self._model_name,
            system_instruction=system_prompt or None,
            generation_config=self._genai.types.GenerationConfig(
                temperature=temperature,
                max_output_tokens=max_tokens,
                response_mime_type="application/json",
            ),
        )
        response = model.generate_content(user_prompt)
        return (response.text or "").strip()

    async def async_complete(
        self,
        user_prompt: str,
        system_prompt: str = "",
        max_tokens: int = 1024,
        temperature: float = 0.3,
    ) -> str:
        return await asyncio.to_thread(
            self.complete,
            user_prompt,
            system_prompt,
            max_tokens,
            temperature,
        )

    @property
    def model_name(self) -> str:
        return self._model_name


# ─────────────────────────────────────────────────────────────────────────────
# Public API
# ─────────────────────────────────────────────────────────────────────────────

LLMProvider = Union[_OpenAIProvider, _GeminiProvider]


def build_llm_provider(config: Settings) -> LLMProvider:
    """
    Build the provider selected by config.llm_provider.

    Raises:
        RuntimeError: if the selected provider has no API key configured
        ImportError: if the Gemini SDK is selected but not installed
    """
    provider_name = (config.llm_provider or "openai").strip().lower()
    model_override = (config.custom_model_name or "").strip()

    if provider_name == "gemini":
        api_key = (config.google_api_key or "").strip()
        if not api_key:
            raise RuntimeError("LLM_PROVIDER=gemini but GOOGLE_API_KEY is not set.")
        return _GeminiProvider(api_key=api_key, model=model_override or DEFAULT_GEMINI_MODEL)

    if provider_name != "openai":
        logger.warning(f"[LLMProvider] Unknown provider '{provider_name}', defaulting to 'openai'.")
    api_key = (config.llm_api_key or "").strip()
    if not api_key:
        raise RuntimeError("LLM_PROVIDER=openai but LLM_API_KEY is not set.")
    return _OpenAIProvider(api_key=api_key, model=model_override or DEFAULT_OPENAI_MODEL)
