"""
Generative Model Client Interface

The narrow contract every call site uses to reach a text model, plus the
offline client selected when no model is configured.
"""

import json
import logging
from typing import Any, Dict, Optional, Protocol, runtime_checkable

from aura.infrastructure.exceptions import ModelUnavailableError


logger = logging.getLogger(__name__)


@runtime_checkable
class ModelClient(Protocol):
    """Single-shot text generation."""

    model_name: str

    async def generate(
        self,
        prompt: str,
        *,
        system_instruction: Optional[str] = None,
        response_schema: Optional[Dict[str, Any]] = None,
    ) -> str:
        """
        Generate text for prompt.

        When response_schema is given the model is asked for JSON output.

        Raises:
            ModelUnavailableError: on any provider error, timeout or empty output
        """
        ...


class OfflineModelClient:
    """
    Model client used when LLM_PROVIDER=offline.

    Every call raises, so each call site runs on its documented default.
    """

    model_name = "offline"

    async def generate(
        self,
        prompt: str,
        *,
        system_instruction: Optional[str] = None,
        response_schema: Optional[Dict[str, Any]] = None,
    ) -> str:
        raise ModelUnavailableError(
            "No generative model configured",
            model=self.model_name,
            operation="generate",
        )


def parse_json_response(response_text: str) -> Dict[str, Any]:
    """
    Parse a JSON object from model output, handling markdown code blocks.

    Raises:
        ModelUnavailableError: if the text is not a JSON object
    """
    text = (response_text or "").strip()

    # Remove markdown code blocks
    if text.startswith("```json"):
        text = text[7:]
    elif text.startswith("```"):
        text = text[3:]

    if text.endswith("```"):
        text = text[:-3]

    text = text.strip()

    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise ModelUnavailableError(
            "Model response was not valid JSON",
            operation="parse",
            original_error=e,
        )

    if not isinstance(data, dict):
        raise ModelUnavailableError("Model response was not a JSON object", operation="parse")
    return data
