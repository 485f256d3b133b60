# analysis_gateway/providers/openai.py
# OpenAI GPT API-Integration: Chat Completions API via async httpx
from __future__ import annotations

from ..models import GenerationRequest, GenerationResponse, Provider, TokenUsage
from .base import BaseProvider

OPENAI_API_BASE = "https://api.openai.com/v1"


class OpenAIProvider(BaseProvider):
    """
    OpenAI GPT-Anbieter.
    API: Chat Completions, System-Prompt als erste Nachricht mit role=system.
    """

    provider = Provider.OPENAI

    def _headers(self) -> dict[str, str]:
        """Bearer-Token-Header für OpenAI API."""
        return {
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": "application/json",
        }

    async def generate_response(self, request: GenerationRequest) -> GenerationResponse:
        """Chat-Completion über OpenAI Chat Completions API."""
        model = request.model or self.default_model()
        payload = {
            "model": model,
            "messages": [
                {"role": "system", "content": request.system_prompt},
                {"role": "user", "content": request.user_message},
            ],
            "max_tokens": request.max_tokens,
            "temperature": request.temperature,
        }

        data = await self._post_json(
            f"{OPENAI_API_BASE}/chat/completions", payload, headers=self._headers()
        )

        try:
            content = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as exc:
            raise self._malformed(data, exc) from exc

        usage_data = data.get("usage") or {}
        prompt_tokens = usage_data.get("prompt_tokens") or 0
        completion_tokens = usage_data.get("completion_tokens") or 0
        return GenerationResponse(
            content=content or "",
            model=data.get("model") or model,
            provider=self.provider,
            usage=TokenUsage(
                prompt_tokens=prompt_tokens,
                completion_tokens=completion_tokens,
                total_tokens=usage_data.get("total_tokens") or prompt_tokens + completion_tokens,
            ),
        )
