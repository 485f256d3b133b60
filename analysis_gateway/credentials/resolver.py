# analysis_gateway/credentials/resolver.py
# Schlüsselauflösung: Schlüsselquelle + Aufrufer → Klartext-API-Schlüssel für genau eine Anfrage
from __future__ import annotations

import logging
from dataclasses import dataclass, field

from ..config import OwnerKeyConfig
from ..errors import (
    AuthorizationError,
    ConfigurationError,
    DecryptionError,
    NotFoundError,
    ValidationError,
)
from ..models import (
    CallerIdentity,
    KeySource,
    OwnerKeySource,
    Provider,
    UserSavedKeySource,
    UserTemporaryKeySource,
)
from .store import CredentialStore
from .vault import CryptoVault

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ResolvedKey:
    """Ergebnis der Auflösung. Der Klartext lebt nur so lange wie die Anfrage."""

    api_key: str = field(repr=False)
    used_owner_key: bool
    default_model: str | None = None


class KeyResolver:
    """
    Löst pro Anfrage den zu verwendenden API-Schlüssel auf.

    - Owner: nur mit can_use_owner_key; Schlüssel aus OwnerKeyConfig
    - UserSaved: gespeicherter Schlüssel des Aufrufers für genau diesen Anbieter, frisch entschlüsselt
    - UserTemporary: Klartext wird unverändert durchgereicht und nirgends gespeichert

    Kein Caching entschlüsselter Schlüssel zwischen Anfragen.
    """

    def __init__(
        self,
        owner_keys: OwnerKeyConfig,
        store: CredentialStore,
        vault: CryptoVault,
    ) -> None:
        self._owner_keys = owner_keys
        self._store = store
        self._vault = vault

    async def resolve(
        self,
        source: KeySource,
        caller: CallerIdentity,
        provider: Provider,
    ) -> ResolvedKey:
        if isinstance(source, OwnerKeySource):
            return self._resolve_owner(caller, provider)
        if isinstance(source, UserSavedKeySource):
            return await self._resolve_saved(source, caller, provider)
        if isinstance(source, UserTemporaryKeySource):
            return self._resolve_temporary(source)
        raise ValidationError("Ungültige Schlüsselquelle", fields=["keySource"])

    def _resolve_owner(self, caller: CallerIdentity, provider: Provider) -> ResolvedKey:
        if not caller.can_use_owner_key:
            logger.warning(
                "Owner-Schlüssel verweigert für Nutzer %s (Anbieter: %s)",
                caller.user_id, provider.value,
            )
            raise AuthorizationError("Keine Berechtigung für den Owner-API-Schlüssel")

        api_key = self._owner_keys.get(provider)
        if not api_key:
            logger.error("Owner-Schlüssel für %s nicht konfiguriert", provider.value)
            raise ConfigurationError(f"Owner-Schlüssel für {provider.value} nicht konfiguriert")

        return ResolvedKey(api_key=api_key, used_owner_key=True)

    async def _resolve_saved(
        self,
        source: UserSavedKeySource,
        caller: CallerIdentity,
        provider: Provider,
    ) -> ResolvedKey:
        credential = await self._store.get(source.key_id, caller.user_id, provider)
        if credential is None:
            raise NotFoundError("API-Schlüssel nicht gefunden")

        try:
            api_key = self._vault.decrypt_text(credential.ciphertext, credential.iv)
        except DecryptionError:
            # Integritätsproblem: Chiffrat beschädigt oder Geheimnis rotiert
            logger.error(
                "Entschlüsselung fehlgeschlagen für Schlüssel %s (Nutzer: %s)",
                credential.id, caller.user_id,
            )
            raise

        return ResolvedKey(
            api_key=api_key,
            used_owner_key=False,
            default_model=credential.default_model,
        )

    def _resolve_temporary(self, source: UserTemporaryKeySource) -> ResolvedKey:
        api_key = source.api_key.get_secret_value()
        if not api_key.strip():
            raise ValidationError("Temporärer API-Schlüssel fehlt", fields=["temporaryApiKey"])
        return ResolvedKey(api_key=api_key, used_owner_key=False)
