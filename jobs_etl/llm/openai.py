"""OpenAI chat completions provider."""

from typing import Any

from jobs_etl.llm.base import LLMProvider


class OpenAIProvider(LLMProvider):
    provider_id = "openai"
    default_model = "gpt-4o-mini"
    env_var = "OPENAI_API_KEY"

    def _client(self, api_key: str | None) -> Any:
        import openai

        return openai.OpenAI(api_key=api_key)

    def _send(self, prompt: str, *, model: str, system: str, api_key: str | None) -> str:
        response = self._client(api_key).chat.completions.create(
            model=model,
            messages=[
                {"role": "system", "content": system},
                {"role": "user", "content": prompt},
            ],
            response_format={"type": "json_object"},
        )
        return response.choices[0].message.content or ""
