"""
Gemini Model Client for Aura

ModelClient implementation on the google.genai SDK. The SDK call is
synchronous, so it runs in a worker thread under a per-call timeout.
"""

import asyncio
from typing import Any, Dict, Optional
import logging

from google import genai
from google.genai import types

from aura.infrastructure.exceptions import (
    ConfigurationError,
    ModelUnavailableError,
    RateLimitError,
)


logger = logging.getLogger(__name__)


class GeminiClient:
    """
    Gemini text generation client.

    Features:
    - System instructions for persona prompts
    - JSON output mode for structured analysis calls
    - Rate-limit detection
    """

    DEFAULT_MODEL = "gemini-2.5-flash"
    MAX_OUTPUT_TOKENS = 8192
    TEMPERATURE = 0.7

    def __init__(
        self,
        api_key: Optional[str],
        model: str = DEFAULT_MODEL,
        temperature: float = TEMPERATURE,
        timeout_seconds: float = 20.0,
    ):
        if not api_key:
            raise ConfigurationError(
                "Missing GOOGLE_API_KEY environment variable",
                missing_keys=["GOOGLE_API_KEY"]
            )

        self.client = genai.Client(api_key=api_key)
        self.model_name = model
        self.temperature = temperature
        self.timeout_seconds = timeout_seconds

        logger.info(f"GeminiClient initialized with model: {self.model_name}")

    def _build_config(
        self,
        system_instruction: Optional[str],
        response_schema: Optional[Dict[str, Any]],
    ) -> types.GenerateContentConfig:
        kwargs: Dict[str, Any] = {
            "temperature": self.temperature,
            "max_output_tokens": self.MAX_OUTPUT_TOKENS,
        }
        if system_instruction:
            kwargs["system_instruction"] = system_instruction
        if response_schema is not None:
            kwargs["response_mime_type"] = "application/json"
            kwargs["response_schema"] = response_schema
        return types.GenerateContentConfig(**kwargs)

    async def generate(
        self,
        prompt: str,
        *,
        system_instruction: Optional[str] = None,
        response_schema: Optional[Dict[str, Any]] = None,
    ) -> str:
        """
        Generate text with Gemini.

        Args:
            prompt: User-turn contents
            system_instruction: Optional persona/system prompt
            response_schema: Optional JSON schema; switches to JSON output

        Returns:
            The response text

        Raises:
            RateLimitError: on quota exhaustion
            ModelUnavailableError: on timeout, provider error or empty output
        """
        config = self._build_config(system_instruction, response_schema)

        try:
            response = await asyncio.wait_for(
                asyncio.to_thread(
                    lambda: self.client.models.generate_content(
                        model=self.model_name,
                        contents=prompt,
                        config=config,
                    )
                ),
                timeout=self.timeout_seconds,
            )
        except asyncio.TimeoutError as e:
            raise ModelUnavailableError(
                f"Gemini call timed out after {self.timeout_seconds}s",
                model=self.model_name,
                operation="generate",
                original_error=e,
            )
        except Exception as e:
            error_msg = str(e).lower()

            if "rate" in error_msg or "quota" in error_msg or "resource_exhausted" in error_msg:
                raise RateLimitError(
                    "Gemini API rate limit exceeded",
                    original_error=e
                )

            raise ModelUnavailableError(
                f"Gemini generation failed: {str(e)}",
                model=self.model_name,
                operation="generate",
                original_error=e
            )

        text = response.text
        if not text:
            raise ModelUnavailableError(
                "Gemini returned an empty response",
                model=self.model_name,
                operation="generate",
            )
        return text
