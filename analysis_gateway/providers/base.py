# analysis_gateway/providers/base.py
# Abstrakte Basisklasse: gemeinsames Interface für alle LLM-Anbieter
from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any, ClassVar

import httpx

from ..catalog import get_default_model, get_models
from ..errors import ProviderError
from ..models import GenerationRequest, GenerationResponse, Provider

logger = logging.getLogger(__name__)

# Fehlerkörper des Anbieters werden für Diagnose weitergereicht, aber begrenzt
MAX_ERROR_BODY_CHARS = 2000


def create_http_client(read_timeout: float = 300.0) -> httpx.AsyncClient:
    """Gemeinsamer async HTTP-Client mit Verbindungspool (zustandslos, von allen Adaptern geteilt)."""
    return httpx.AsyncClient(
        timeout=httpx.Timeout(connect=10.0, read=read_timeout, write=30.0, pool=10.0),
        limits=httpx.Limits(max_connections=20, max_keepalive_connections=10),
    )


class BaseProvider(ABC):
    """
    Abstrakte Basis für alle LLM-Anbieter-Implementierungen.

    Eine Instanz gehört zu genau einer Anfrage (API-Schlüssel ist Teil der Instanz).
    Der HTTP-Client wird geteilt, die Instanz selbst wird nie verändert.
    Kein automatischer Retry: jeder Fehler geht sofort als ProviderError an den Aufrufer.
    """

    provider: ClassVar[Provider]

    def __init__(self, api_key: str, client: httpx.AsyncClient) -> None:
        self._api_key = api_key
        self._client = client

    def __repr__(self) -> str:
        return f"{type(self).__name__}(provider={self.provider.value})"

    def default_model(self) -> str:
        return get_default_model(self.provider)

    def available_models(self) -> list[str]:
        return get_models(self.provider)

    async def _post_json(
        self,
        url: str,
        payload: dict[str, Any],
        headers: dict[str, str] | None = None,
    ) -> dict[str, Any]:
        """
        Genau ein HTTP-POST. Nicht-2xx, Netzwerkfehler, Timeout und nicht-JSON-Antworten
        werden in ProviderError umgewandelt (mit Upstream-Status und Rohkörper).
        """
        try:
            response = await self._client.post(url, headers=headers, json=payload)
        except httpx.TimeoutException as exc:
            raise ProviderError(self.provider.value, "Zeitüberschreitung beim Anbieter") from exc
        except httpx.HTTPError as exc:
            raise ProviderError(self.provider.value, f"Netzwerkfehler: {exc}") from exc

        if not response.is_success:
            body = response.text[:MAX_ERROR_BODY_CHARS]
            logger.warning(
                "%s antwortete mit HTTP %d", self.provider.value, response.status_code
            )
            raise ProviderError(
                self.provider.value,
                body,
                upstream_status=response.status_code,
                body=body,
            )

        try:
            data = response.json()
        except ValueError as exc:
            raise ProviderError(
                self.provider.value,
                "Antwort ist kein gültiges JSON",
                upstream_status=response.status_code,
                body=response.text[:MAX_ERROR_BODY_CHARS],
            ) from exc
        if not isinstance(data, dict):
            raise ProviderError(
                self.provider.value,
                "Unerwartetes Antwortformat",
                upstream_status=response.status_code,
            )
        return data

    def _malformed(self, data: dict[str, Any], exc: Exception) -> ProviderError:
        """Fehlende Pflichtfelder in einer 2xx-Antwort."""
        return ProviderError(
            self.provider.value,
            f"Unerwartetes Antwortformat ({type(exc).__name__}: {exc})",
            upstream_status=200,
            body=str(data)[:MAX_ERROR_BODY_CHARS],
        )

    @abstractmethod
    async def generate_response(self, request: GenerationRequest) -> GenerationResponse:
        """Kanonische Anfrage → Wire-Format → ein HTTP-Aufruf → kanonische Antwort."""
        ...
