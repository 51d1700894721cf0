"""
Free-form text generation via the OpenAI chat completions API.

The pipeline only depends on the TextGenerator protocol: one prompt in, one
block of text out, possibly failing. Structured output is not requested;
callers extract JSON from the reply with parse_embedded_json.
"""

import logging
import os
from typing import Optional, Protocol

from openai import OpenAI, OpenAIError

logger = logging.getLogger(__name__)

DEFAULT_GENERATOR_MODEL = "gpt-4o-mini"

# Runtime knobs, clamped to prevent misconfiguration
OPENAI_TIMEOUT_SECONDS = max(5.0, min(600.0, float(os.getenv("OPENAI_TIMEOUT_SECONDS", "60"))))
OPENAI_MAX_RETRIES = max(0, min(10, int(os.getenv("OPENAI_MAX_RETRIES", "2"))))


class GeneratorError(Exception):
    """Raised when the generator could not produce a reply."""

    pass


class TextGenerator(Protocol):
    """Protocol for text generators used by the pipeline."""

    def generate(self, prompt: str, max_tokens: int) -> str:
        """Generate a reply for prompt. Raises GeneratorError on failure."""
        ...


class OpenAITextGenerator:
    """Text generator backed by an OpenAI chat model."""

    def __init__(
        self,
        model: Optional[str] = None,
        temperature: float = 0.2,
        client: Optional[OpenAI] = None,
    ):
        """
        Initialize the generator.

        Args:
            model: Chat model name (default from FEEDBACK_GENERATOR_MODEL)
            temperature: Sampling temperature
            client: Pre-built OpenAI client (mainly for tests)
        """
        self.model = model or os.getenv("FEEDBACK_GENERATOR_MODEL", DEFAULT_GENERATOR_MODEL)
        self.temperature = temperature
        self._client = client

    @property
    def client(self) -> OpenAI:
        """Lazy-initialize the OpenAI client."""
        if self._client is None:
            self._client = OpenAI(
                api_key=os.getenv("OPENAI_API_KEY"),
                timeout=OPENAI_TIMEOUT_SECONDS,
                max_retries=OPENAI_MAX_RETRIES,
            )
        return self._client

    def generate(self, prompt: str, max_tokens: int) -> str:
        try:
            response = self.client.chat.completions.create(
                model=self.model,
                messages=[{"role": "user", "content": prompt}],
                temperature=self.temperature,
                max_tokens=max_tokens,
            )
        except OpenAIError as e:
            raise GeneratorError(f"Text generation failed ({type(e).__name__}): {e}") from e

        if not response.choices:
            raise GeneratorError("Text generation returned no choices")
        return response.choices[0].message.content or ""
