"""
Text-generation providers for reports and intent clarification.

Both providers expose generate(prompt) -> str and raise on any failure.
Callers decide what a failure means (the report service marks the report
failed; the intent flow falls back to the user's own words).
"""

import logging
from typing import Optional, Protocol

import google.generativeai as genai
from openai import OpenAI

import config
from ai.api_keys import PROVIDERS, ApiKeyStore

logger = logging.getLogger(__name__)


class TextGenerationError(RuntimeError):
    """Raised when a provider returns no usable text."""


class TextGenerator(Protocol):
    def generate(self, prompt: str, max_tokens: int = config.REPORT_MAX_TOKENS) -> str:
        ...


class OpenAITextGenerator:
    """Chat Completions backed generator."""

    SYSTEM_PROMPT = (
        "You are a careful behavioral analyst. You answer only with the JSON "
        "format you are asked for."
    )

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        timeout: float = config.AI_REQUEST_TIMEOUT,
    ):
        """
        Args:
            api_key: OpenAI API key (defaults to config.OPENAI_API_KEY)
            model: Model name (defaults to config.OPENAI_REPORT_MODEL)
            timeout: Request timeout in seconds
        """
        self.api_key = api_key or config.OPENAI_API_KEY
        self.model = model or config.OPENAI_REPORT_MODEL
        if not self.api_key:
            raise ValueError("OpenAI API key required! Set OPENAI_API_KEY in .env")
        self.client = OpenAI(api_key=self.api_key, timeout=timeout)
        logger.info(f"OpenAI text generator initialized with {self.model}")

    def generate(self, prompt: str, max_tokens: int = config.REPORT_MAX_TOKENS) -> str:
        # JSON mode only on models that support it
        json_mode_supported = any(name in self.model.lower() for name in [
            "gpt-4o", "gpt-4.1", "gpt-3.5-turbo-1106", "gpt-3.5-turbo-0125"
        ])

        api_params = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": self.SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
            "temperature": 0.4,
            "max_tokens": max_tokens,
        }
        if json_mode_supported:
            api_params["response_format"] = {"type": "json_object"}

        response = self.client.chat.completions.create(**api_params)
        content = response.choices[0].message.content
        if not content:
            raise TextGenerationError("Empty response from OpenAI")
        return content


class GeminiTextGenerator:
    """Gemini backed generator."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        timeout: float = config.AI_REQUEST_TIMEOUT,
    ):
        """
        Args:
            api_key: Gemini API key (defaults to config.GEMINI_API_KEY)
            model: Model name (defaults to config.GEMINI_REPORT_MODEL)
            timeout: Request timeout in seconds
        """
        self.api_key = api_key or config.GEMINI_API_KEY
        self.model_name = model or config.GEMINI_REPORT_MODEL
        if not self.api_key:
            raise ValueError("Gemini API key required! Set GEMINI_API_KEY in .env")

        genai.configure(api_key=self.api_key)
        self.model = genai.GenerativeModel(model_name=self.model_name)
        self.request_timeout = timeout
        logger.info(f"Gemini text generator initialized with {self.model_name}")

    def generate(self, prompt: str, max_tokens: int = config.REPORT_MAX_TOKENS) -> str:
        response = self.model.generate_content(
            prompt,
            generation_config=genai.GenerationConfig(
                temperature=0.4,
                max_output_tokens=max_tokens,
                response_mime_type="application/json",
            ),
            request_options={"timeout": self.request_timeout},
        )
        # response.text raises ValueError when the candidate was blocked
        content = response.text
        if not content:
            raise TextGenerationError("Empty response from Gemini")
        return content


def create_text_generator(
    provider: Optional[str] = None,
    key_store: Optional[ApiKeyStore] = None,
) -> Optional[TextGenerator]:
    """
    Build the configured text generator.

    Args:
        provider: "openai" or "gemini" (defaults to config.REPORT_PROVIDER).
        key_store: Where to look up the API key (defaults to the saved-key
            file with the .env key as fallback).

    Returns:
        A generator, or None when the provider has no API key configured.
    """
    provider = (provider or config.REPORT_PROVIDER).lower()
    if provider not in PROVIDERS:
        logger.warning(f"Unknown report provider '{provider}', using OpenAI")
        provider = "openai"

    key_store = key_store or ApiKeyStore()
    api_key = key_store.get_key(provider)

    if provider == "gemini":
        if not api_key:
            logger.warning("Gemini API key not found. Reports can't be generated.")
            return None
        return GeminiTextGenerator(api_key=api_key)

    if not api_key:
        logger.warning("OpenAI API key not found. Reports can't be generated.")
        return None
    return OpenAITextGenerator(api_key=api_key)
