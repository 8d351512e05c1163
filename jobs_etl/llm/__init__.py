"""Pluggable LLM backends used by the job analyzer.

Provider modules are imported on first use, so the optional SDKs
(anthropic, google-genai) are only needed when selected:

    provider = get_provider(settings.processor.llm_provider)
    data = parse_json_response(provider.complete(prompt, system=TAXONOMY_PROMPT))
"""

import importlib
from functools import lru_cache

from jobs_etl.llm.base import LLMProvider, parse_json_response

__all__ = ["LLMProvider", "available_providers", "get_provider", "parse_json_response"]

# name -> "module:ClassName"
_PROVIDERS = {
    "anthropic": "jobs_etl.llm.anthropic:AnthropicProvider",
    "gemini": "jobs_etl.llm.gemini:GeminiProvider",
    "ollama": "jobs_etl.llm.ollama:OllamaProvider",
    "openai": "jobs_etl.llm.openai:OpenAIProvider",
}


@lru_cache(maxsize=None)
def _provider_class(name: str) -> type[LLMProvider]:
    module_path, _, class_name = _PROVIDERS[name].partition(":")
    cls: type[LLMProvider] = getattr(importlib.import_module(module_path), class_name)
    return cls


def get_provider(name: str) -> LLMProvider:
    """Return a new provider instance for ``name``.

    Raises:
        ValueError: If the provider name is unknown.
    """
    if name not in _PROVIDERS:
        msg = f"Unknown LLM provider '{name}'. Available: {', '.join(available_providers())}"
        raise ValueError(msg)
    return _provider_class(name)()


def available_providers() -> list[str]:
    return sorted(_PROVIDERS)
