"""
AI capability client.

This module initializes environment variables (via dotenv) and exposes:
- get_client(): a single shared OpenAI client instance (reads OPENAI_API_KEY).
- TextGenerator: the `generate(prompt, model, media=None) -> text` contract the
  extraction gateway and the matching engine depend on.
- OpenAIGenerator: the chat-completions implementation (text, inline images,
  inline PDF file parts).
- UnconfiguredGenerator: stand-in used when no API key is configured; every
  call raises AIUnavailableError.
- build_generator(): picks one of the two once, at process start.
"""

from __future__ import annotations

import logging
import os
from typing import Optional, Protocol

from dotenv import load_dotenv
from openai import OpenAI

from config import DEFAULT_TEMPERATURE, LLM_TIMEOUT_SECONDS, MAX_OUTPUT_TOKENS, PDF_MULTIMODAL_ENABLED
from domain.errors import AIUnavailableError
from input_readers import InlineMedia

load_dotenv()

logger = logging.getLogger(__name__)

_client: OpenAI | None = None


def get_client() -> OpenAI:
    """Return a singleton OpenAI client instance."""
    global _client
    if _client is None:
        _client = OpenAI(timeout=LLM_TIMEOUT_SECONDS, max_retries=1)
    return _client


class TextGenerator(Protocol):
    supports_pdf: bool

    def generate(
        self,
        prompt: str,
        model: str,
        media: Optional[InlineMedia] = None,
        max_tokens: Optional[int] = None,
    ) -> str:
        ...


class OpenAIGenerator:
    """TextGenerator backed by OpenAI chat completions."""

    def __init__(
        self,
        client: OpenAI | None = None,
        temperature: float = DEFAULT_TEMPERATURE,
        supports_pdf: bool = PDF_MULTIMODAL_ENABLED,
    ):
        self._client = client
        self.temperature = temperature
        self.supports_pdf = supports_pdf

    @property
    def client(self) -> OpenAI:
        if self._client is None:
            self._client = get_client()
        return self._client

    def _build_content(self, prompt: str, media: Optional[InlineMedia]):
        if media is None:
            return prompt

        if media.is_image:
            media_part = {"type": "image_url", "image_url": {"url": media.data_url}}
        else:
            media_part = {
                "type": "file",
                "file": {"filename": "price_list.pdf", "file_data": media.data_url},
            }
        return [{"type": "text", "text": prompt}, media_part]

    def generate(
        self,
        prompt: str,
        model: str,
        media: Optional[InlineMedia] = None,
        max_tokens: Optional[int] = None,
    ) -> str:
        try:
            response = self.client.chat.completions.create(
                model=model,
                messages=[{"role": "user", "content": self._build_content(prompt, media)}],
                temperature=self.temperature,
                max_tokens=max_tokens or MAX_OUTPUT_TOKENS,
            )
        except Exception as e:
            raise AIUnavailableError(f"AI call to model '{model}' failed: {e}") from e

        raw_output = response.choices[0].message.content if response.choices else None
        if not raw_output:
            raise AIUnavailableError(f"AI model '{model}' returned an empty response")
        return raw_output


class UnconfiguredGenerator:
    """TextGenerator used when the AI capability is not configured."""

    supports_pdf = False

    def __init__(self, reason: str = "OPENAI_API_KEY is not configured"):
        self.reason = reason

    def generate(
        self,
        prompt: str,
        model: str,
        media: Optional[InlineMedia] = None,
        max_tokens: Optional[int] = None,
    ) -> str:
        raise AIUnavailableError(f"AI capability unavailable: {self.reason}")


def build_generator() -> TextGenerator:
    """Choose the AI implementation once, based on the environment."""
    if not os.getenv("OPENAI_API_KEY"):
        logger.warning("OPENAI_API_KEY not set; AI extraction and pairwise matching are disabled")
        return UnconfiguredGenerator()
    return OpenAIGenerator()
