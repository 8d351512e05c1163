"""Abstract base class for LLM providers and shared response parsing."""

import json
import logging
import os
import re
from abc import ABC, abstractmethod
from typing import Any

logger = logging.getLogger(__name__)

DEFAULT_SYSTEM_PROMPT = (
    "You are an analyst for NSW Government job advertisements. "
    "Return ONLY a JSON object (no markdown, no explanation)."
)


def parse_json_response(raw_text: str) -> dict[str, Any]:
    """Parse an LLM response into a JSON object.

    Handles markdown-wrapped JSON (```json ... ```) and plain JSON.

    Raises:
        ValueError: if the text is not a JSON object.
    """
    cleaned = re.sub(r"^```(?:json)?\s*\n?", "", raw_text.strip())
    cleaned = re.sub(r"\n?```\s*$", "", cleaned)

    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError as e:
        msg = f"Failed to parse LLM response as JSON: {e}"
        raise ValueError(msg) from e

    if not isinstance(data, dict):
        msg = f"Expected a JSON object from LLM, got {type(data).__name__}"
        raise ValueError(msg)
    return data


class LLMProvider(ABC):
    """Base class for chat-style LLM backends.

    Subclasses declare ``provider_id``, ``default_model`` and ``env_var`` and
    implement ``_send``. ``complete`` resolves the API key, model and system
    prompt before handing off.
    """

    provider_id: str
    default_model: str
    env_var: str | None = None

    def complete(
        self,
        prompt: str,
        model: str | None = None,
        *,
        system: str | None = None,
    ) -> str:
        """Send a prompt to the LLM and return the raw response text.

        Args:
            prompt: User message, usually job fields plus instructions.
            model: Override the provider's default model.
            system: Override the system prompt. None falls back to DEFAULT_SYSTEM_PROMPT.

        Raises:
            ValueError: if the provider needs an API key and none is set.
            ImportError: if the provider's optional SDK is not installed.
        """
        api_key = self._api_key()
        use_model = model or self.default_model
        logger.debug("Requesting %s completion (%s, %d chars)", self.provider_id, use_model, len(prompt))
        return self._send(
            prompt,
            model=use_model,
            system=DEFAULT_SYSTEM_PROMPT if system is None else system,
            api_key=api_key,
        )

    def _api_key(self) -> str | None:
        if self.env_var is None:
            return None
        api_key = os.environ.get(self.env_var)
        if not api_key:
            msg = f"{self.env_var} environment variable is required"
            raise ValueError(msg)
        return api_key

    @abstractmethod
    def _send(self, prompt: str, *, model: str, system: str, api_key: str | None) -> str:
        """Make the API call and return the response text ("" if empty)."""
