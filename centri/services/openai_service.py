"""
Text generation capability backed by OpenAI.

Callers treat it as a black box with a forced-JSON contract: it may be
absent (no API key), slow, or return malformed output, and every such
case surfaces as TextGenerationError.
"""

import json
from typing import Any

import openai
from openai import AsyncOpenAI

from centri.config import settings
from centri.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class TextGenerationError(Exception):
    """Raised when the text generation capability is unavailable or fails."""

    def __init__(self, message: str, api_error: str | None = None, recoverable: bool = True):
        super().__init__(message)
        self.api_error = api_error
        self.recoverable = recoverable


class TextGenerationService:
    """Thin wrapper over AsyncOpenAI chat completions with JSON output."""

    def __init__(self, client: AsyncOpenAI | None = None, model: str | None = None):
        self.model = model or settings.OPENAI_MODEL
        self.client = client
        if self.client is None and settings.OPENAI_API_KEY:
            self.client = AsyncOpenAI(
                api_key=settings.OPENAI_API_KEY,
                timeout=settings.OPENAI_TIMEOUT_SECONDS,
            )

    @property
    def is_available(self) -> bool:
        return self.client is not None

    async def generate_json(
        self, system_message: str, user_message: str, temperature: float = 0.2
    ) -> dict[str, Any]:
        """
        Run one chat completion and parse its content as a JSON object.

        Args:
            system_message: Instructions, including the expected JSON shape
            user_message: The data to operate on
            temperature: Sampling temperature

        Returns:
            Parsed JSON object

        Raises:
            TextGenerationError: Client missing, API failure, or non-object output
        """
        if not self.client:
            raise TextGenerationError("Text generation not configured", recoverable=False)

        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": system_message},
                    {"role": "user", "content": user_message},
                ],
                temperature=temperature,
                response_format={"type": "json_object"},
            )
        except openai.APITimeoutError as e:
            logger.warning("OpenAI API timeout", model=self.model)
            raise TextGenerationError("Text generation timed out", api_error=str(e)) from e
        except openai.APIError as e:
            logger.warning("OpenAI API error", model=self.model, error=str(e))
            raise TextGenerationError("Text generation failed", api_error=str(e)) from e

        if not response.choices or not response.choices[0].message.content:
            raise TextGenerationError("Empty response from OpenAI API")

        content = response.choices[0].message.content.strip()
        try:
            parsed = json.loads(content)
        except json.JSONDecodeError as e:
            logger.warning("OpenAI returned invalid JSON", response_length=len(content))
            raise TextGenerationError("Malformed JSON from text generation") from e

        if not isinstance(parsed, dict):
            raise TextGenerationError("Text generation returned a non-object JSON value")

        logger.debug(
            "OpenAI API call successful",
            response_length=len(content),
            usage_tokens=response.usage.total_tokens if response.usage else 0,
        )
        return parsed
