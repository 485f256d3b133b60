# analysis_gateway/providers/cohere.py
# Cohere Command API-Integration: Chat API (v1) via async httpx
from __future__ import annotations

from ..models import GenerationRequest, GenerationResponse, Provider, TokenUsage
from .base import BaseProvider

COHERE_API_BASE = "https://api.cohere.ai/v1"


class CohereProvider(BaseProvider):
    """
    Cohere-Anbieter.
    API: Cohere Chat v1, System-Prompt als 'preamble', Transkript als 'message'.
    """

    provider = Provider.COHERE

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": "application/json",
        }

    async def generate_response(self, request: GenerationRequest) -> GenerationResponse:
        """Completion über Cohere Chat API."""
        model = request.model or self.default_model()
        payload = {
            "model": model,
            "message": request.user_message,
            "preamble": request.system_prompt,
            "max_tokens": request.max_tokens,
            "temperature": request.temperature,
        }

        data = await self._post_json(
            f"{COHERE_API_BASE}/chat", payload, headers=self._headers()
        )

        try:
            content_text = data["text"]
        except (KeyError, TypeError) as exc:
            raise self._malformed(data, exc) from exc

        tokens = (data.get("meta") or {}).get("tokens") or {}
        input_tokens = tokens.get("input_tokens") or 0
        output_tokens = tokens.get("output_tokens") or 0

        return GenerationResponse(
            content=content_text or "",
            model=model,
            provider=self.provider,
            usage=TokenUsage(
                prompt_tokens=input_tokens,
                completion_tokens=output_tokens,
                total_tokens=input_tokens + output_tokens,
            ),
        )
