"""Anthropic Messages API provider (optional ``anthropic`` extra)."""

from jobs_etl.llm.base import LLMProvider

MAX_TOKENS = 2048


class AnthropicProvider(LLMProvider):
    provider_id = "anthropic"
    default_model = "claude-sonnet-4-20250514"
    env_var = "ANTHROPIC_API_KEY"

    def _send(self, prompt: str, *, model: str, system: str, api_key: str | None) -> str:
        try:
            import anthropic
        except ImportError:
            msg = "anthropic is required for this provider. Install with: pip install 'nsw-jobs-etl[anthropic]'"
            raise ImportError(msg) from None

        reply = anthropic.Anthropic(api_key=api_key).messages.create(
            model=model,
            max_tokens=MAX_TOKENS,
            system=system,
            messages=[{"role": "user", "content": prompt}],
        )
        return "".join(getattr(block, "text", "") for block in reply.content)
