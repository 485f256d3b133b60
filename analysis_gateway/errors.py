# analysis_gateway/errors.py
# Fehler-Taxonomie des Gateways: jede Fehlerart trägt ihren HTTP-Statuscode
from __future__ import annotations


class GatewayError(Exception):
    """Basis für alle erwarteten Gateway-Fehler."""

    status_code: int = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_body(self) -> dict:
        """JSON-Fehlerkörper für die HTTP-Antwort."""
        return {"error": self.message}


class ValidationError(GatewayError):
    """Fehlende, fehlerhafte oder außerhalb des Bereichs liegende Eingaben."""

    status_code = 400

    def __init__(self, message: str, fields: list[str] | None = None) -> None:
        super().__init__(message)
        # Vollständige Liste, nie nur das erste fehlerhafte Feld
        self.fields: list[str] = list(fields or [])

    def to_body(self) -> dict:
        body = super().to_body()
        if self.fields:
            body["fields"] = self.fields
        return body


class AuthenticationError(GatewayError):
    """Keine oder ungültige Aufrufer-Identität."""

    status_code = 401


class AuthorizationError(GatewayError):
    """Aufrufer darf die angeforderte Schlüsselquelle nicht nutzen."""

    status_code = 403


class NotFoundError(GatewayError):
    """Referenzierter Schlüssel oder Template existiert nicht (oder gehört jemand anderem)."""

    status_code = 404


class ConflictError(GatewayError):
    """Schlüssel mit gleichem Anbieter und Spitznamen existiert bereits."""

    status_code = 409


class DecryptionError(GatewayError):
    """Gespeicherter Schlüssel nicht entschlüsselbar (Integritätsproblem auf Serverseite)."""

    status_code = 500


class ConfigurationError(GatewayError):
    """Serverkonfiguration unvollständig (z.B. fehlender Owner-Schlüssel)."""

    status_code = 500


class ProviderError(GatewayError):
    """Upstream-LLM-API hat nicht erfolgreich geantwortet (HTTP-Fehler, Timeout, kaputte Antwort)."""

    status_code = 502

    def __init__(
        self,
        provider: str,
        message: str,
        upstream_status: int | None = None,
        body: str | None = None,
    ) -> None:
        self.provider = provider
        self.upstream_status = upstream_status
        self.body = body
        detail = f"{provider} API-Fehler"
        if upstream_status is not None:
            detail += f": {upstream_status}"
        detail += f" - {message}"
        super().__init__(detail)
