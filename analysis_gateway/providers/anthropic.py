# analysis_gateway/providers/anthropic.py
# Anthropic Claude API-Integration: Messages API via async httpx
from __future__ import annotations

from ..models import GenerationRequest, GenerationResponse, Provider, TokenUsage
from .base import BaseProvider

ANTHROPIC_API_BASE = "https://api.anthropic.com/v1"
ANTHROPIC_VERSION = "2023-06-01"


class AnthropicProvider(BaseProvider):
    """
    Anthropic Claude-Anbieter.
    API: Anthropic Messages API (kein SDK, direktes httpx für maximale Kontrolle)
    System-Prompt als separater 'system'-Parameter, nur die User-Nachricht in 'messages'.
    """

    provider = Provider.ANTHROPIC

    def _headers(self) -> dict[str, str]:
        """Authentifizierungs-Header für Anthropic Messages API."""
        return {
            "x-api-key": self._api_key,
            "anthropic-version": ANTHROPIC_VERSION,
            "content-type": "application/json",
        }

    async def generate_response(self, request: GenerationRequest) -> GenerationResponse:
        """Completion über Anthropic Messages API."""
        model = request.model or self.default_model()
        payload = {
            "model": model,
            "system": request.system_prompt,
            "messages": [{"role": "user", "content": request.user_message}],
            "max_tokens": request.max_tokens,
            "temperature": request.temperature,
        }

        data = await self._post_json(
            f"{ANTHROPIC_API_BASE}/messages", payload, headers=self._headers()
        )

        try:
            content_text = data["content"][0]["text"]
        except (KeyError, IndexError, TypeError) as exc:
            raise self._malformed(data, exc) from exc

        # Anthropic liefert keine Gesamtsumme, selbst addieren
        usage_data = data.get("usage") or {}
        input_tokens = usage_data.get("input_tokens") or 0
        output_tokens = usage_data.get("output_tokens") or 0

        return GenerationResponse(
            content=content_text or "",
            model=data.get("model") or model,
            provider=self.provider,
            usage=TokenUsage(
                prompt_tokens=input_tokens,
                completion_tokens=output_tokens,
                total_tokens=input_tokens + output_tokens,
            ),
        )
