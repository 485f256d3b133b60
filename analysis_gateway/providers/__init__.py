# analysis_gateway/providers/__init__.py
# Anbieter-Factory: erzeugt pro Anfrage einen Adapter mit dem aufgelösten Schlüssel
from __future__ import annotations

import logging

import httpx

from ..models import Provider
from .anthropic import AnthropicProvider
from .base import BaseProvider, create_http_client
from .cohere import CohereProvider
from .google import GoogleProvider
from .openai import OpenAIProvider

logger = logging.getLogger(__name__)

# Genau ein Adapter pro Provider-Wert
ADAPTERS: dict[Provider, type[BaseProvider]] = {
    Provider.OPENAI: OpenAIProvider,
    Provider.ANTHROPIC: AnthropicProvider,
    Provider.GOOGLE: GoogleProvider,
    Provider.COHERE: CohereProvider,
}


class ProviderFactory:
    """
    Factory für LLM-Adapter.
    Besitzt den gemeinsamen HTTP-Client (Verbindungspool); Adapter selbst sind
    kurzlebig und an genau einen API-Schlüssel gebunden.
    """

    def __init__(self, client: httpx.AsyncClient | None = None, read_timeout: float = 300.0) -> None:
        self._read_timeout = read_timeout
        self._client = client
        self._owns_client = client is None

    async def initialize(self) -> None:
        """HTTP-Client mit Verbindungspool erstellen (falls nicht von außen übergeben)."""
        if self._client is None:
            self._client = create_http_client(self._read_timeout)
            logger.info("HTTP-Client für Anbieter initialisiert (Read-Timeout: %.0fs)", self._read_timeout)

    async def shutdown(self) -> None:
        """HTTP-Client ordnungsgemäß schließen (alle Verbindungen freigeben)."""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    def create(self, provider: Provider, api_key: str) -> BaseProvider:
        """Adapter für genau diese Anfrage erzeugen."""
        if self._client is None:
            raise RuntimeError("ProviderFactory nicht initialisiert, initialize() aufrufen")
        adapter_cls = ADAPTERS.get(provider)
        if adapter_cls is None:
            raise ValueError(f"Unbekannter Provider: {provider}")
        return adapter_cls(api_key=api_key, client=self._client)


__all__ = [
    "ADAPTERS",
    "AnthropicProvider",
    "BaseProvider",
    "CohereProvider",
    "GoogleProvider",
    "OpenAIProvider",
    "ProviderFactory",
    "create_http_client",
]
