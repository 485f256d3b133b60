# analysis_gateway/providers/google.py
# Google Gemini API-Integration: generateContent via async httpx
from __future__ import annotations

from ..models import GenerationRequest, GenerationResponse, Provider, TokenUsage
from .base import BaseProvider

GOOGLE_API_BASE = "https://generativelanguage.googleapis.com/v1beta"


class GoogleProvider(BaseProvider):
    """
    Google Gemini-Anbieter.
    API: Gemini generateContent (eigenes Format, Konvertierung erforderlich)
    System-Prompt und Transkript werden zu einem einzigen Text-Part zusammengefügt,
    der API-Schlüssel geht im Header x-goog-api-key mit, nie in der URL.
    """

    provider = Provider.GOOGLE

    async def generate_response(self, request: GenerationRequest) -> GenerationResponse:
        """Completion über Gemini generateContent API."""
        model = request.model or self.default_model()
        payload = {
            "contents": [
                {"parts": [{"text": f"{request.system_prompt}\n\nUser: {request.user_message}"}]}
            ],
            "generationConfig": {
                "maxOutputTokens": request.max_tokens,
                "temperature": request.temperature,
            },
        }

        data = await self._post_json(
            f"{GOOGLE_API_BASE}/models/{model}:generateContent",
            payload,
            headers={"Content-Type": "application/json", "x-goog-api-key": self._api_key},
        )

        try:
            content_text = data["candidates"][0]["content"]["parts"][0]["text"]
        except (KeyError, IndexError, TypeError) as exc:
            raise self._malformed(data, exc) from exc

        usage_meta = data.get("usageMetadata") or {}
        prompt_tokens = usage_meta.get("promptTokenCount") or 0
        completion_tokens = usage_meta.get("candidatesTokenCount") or 0
        return GenerationResponse(
            content=content_text or "",
            model=model,
            provider=self.provider,
            usage=TokenUsage(
                prompt_tokens=prompt_tokens,
                completion_tokens=completion_tokens,
                total_tokens=usage_meta.get("totalTokenCount") or prompt_tokens + completion_tokens,
            ),
        )
