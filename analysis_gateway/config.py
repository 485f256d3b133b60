# analysis_gateway/config.py
# Konfiguration aus Umgebungsvariablen, einmal beim Start geladen, danach explizit weitergereicht
from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Mapping

from .errors import ConfigurationError
from .models import Provider

DEFAULT_DATABASE_URL = "./analysis_gateway.db"
DEFAULT_PROVIDER_TIMEOUT = 300.0  # Lange Transkripte: Antwortzeiten von Minuten sind normal


def _owner_env_var(provider: Provider) -> str:
    return f"OWNER_{provider.value.upper()}_API_KEY"


@dataclass(frozen=True)
class OwnerKeyConfig:
    """
    Systemschlüssel des Betreibers: genau ein Geheimnis pro Anbieter, nie pro Nutzer.
    Fehlende Einträge sind beim Start erlaubt und fallen erst bei einer Owner-Anfrage auf.
    """

    keys: Mapping[Provider, str] = field(default_factory=dict)

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> OwnerKeyConfig:
        env = os.environ if environ is None else environ
        keys = {
            provider: env[_owner_env_var(provider)]
            for provider in Provider
            if env.get(_owner_env_var(provider))
        }
        return cls(keys=keys)

    def get(self, provider: Provider) -> str | None:
        return self.keys.get(provider)

    def configured_providers(self) -> list[Provider]:
        return [p for p in Provider if p in self.keys]

    def __repr__(self) -> str:
        # Geheimnisse nie in Logs/Tracebacks
        names = ", ".join(p.value for p in self.configured_providers())
        return f"OwnerKeyConfig(configured=[{names}])"


@dataclass(frozen=True)
class GatewayConfig:
    """Prozessweite Gateway-Konfiguration."""

    database_url: str
    encryption_secret: str = field(repr=False)
    owner_keys: OwnerKeyConfig
    admin_api_key: str | None = field(default=None, repr=False)
    provider_timeout: float = DEFAULT_PROVIDER_TIMEOUT
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> GatewayConfig:
        """Konfiguration lesen. Fehlt das Verschlüsselungsgeheimnis → ConfigurationError."""
        env = os.environ if environ is None else environ

        secret = env.get("USER_API_KEY_ENCRYPTION_SECRET", "")
        if len(secret) != 32:
            raise ConfigurationError(
                "USER_API_KEY_ENCRYPTION_SECRET muss genau 32 Zeichen lang sein"
            )

        timeout_raw = env.get("PROVIDER_TIMEOUT_SECONDS")
        try:
            timeout = float(timeout_raw) if timeout_raw else DEFAULT_PROVIDER_TIMEOUT
        except ValueError as exc:
            raise ConfigurationError(
                f"PROVIDER_TIMEOUT_SECONDS ist keine Zahl: {timeout_raw!r}"
            ) from exc

        return cls(
            database_url=env.get("DATABASE_URL", DEFAULT_DATABASE_URL),
            encryption_secret=secret,
            owner_keys=OwnerKeyConfig.from_env(env),
            admin_api_key=env.get("ADMIN_API_KEY") or None,
            provider_timeout=timeout,
            log_level=env.get("LOG_LEVEL", "INFO").upper(),
        )
