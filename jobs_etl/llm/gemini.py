"""Google Gemini provider via the google-genai SDK (optional ``gemini`` extra)."""

from jobs_etl.llm.base import LLMProvider


class GeminiProvider(LLMProvider):
    provider_id = "gemini"
    default_model = "gemini-2.5-flash"
    env_var = "GOOGLE_API_KEY"

    def _send(self, prompt: str, *, model: str, system: str, api_key: str | None) -> str:
        try:
            from google import genai
            from google.genai import types
        except ImportError:
            msg = "google-genai is required for this provider. Install with: pip install 'nsw-jobs-etl[gemini]'"
            raise ImportError(msg) from None

        response = genai.Client(api_key=api_key).models.generate_content(
            model=model,
            contents=prompt,
            config=types.GenerateContentConfig(system_instruction=system, response_mime_type="application/json"),
        )
        return response.text or ""
