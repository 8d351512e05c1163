"""Local Ollama models through Ollama's OpenAI-compatible endpoint."""

import os
from typing import Any

from jobs_etl.llm.openai import OpenAIProvider

DEFAULT_BASE_URL = "http://localhost:11434/v1"


class OllamaProvider(OpenAIProvider):
    """Same request shape as OpenAI; no API key, endpoint from OLLAMA_BASE_URL."""

    provider_id = "ollama"
    default_model = "llama3"
    env_var = None

    def _client(self, api_key: str | None) -> Any:
        import openai

        base_url = os.environ.get("OLLAMA_BASE_URL", DEFAULT_BASE_URL)
        # The client insists on a key; Ollama ignores it.
        return openai.OpenAI(base_url=base_url, api_key="ollama")
