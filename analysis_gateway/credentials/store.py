# analysis_gateway/credentials/store.py
# Gespeicherte API-Schlüssel: nur Chiffrat + IV in der DB, nie Klartext
from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone

from ..db import execute_query, execute_script
from ..errors import ConflictError, NotFoundError, ValidationError
from ..models import Provider, StoredCredential
from .vault import CryptoVault

logger = logging.getLogger(__name__)

_SCHEMA = [
    """
    CREATE TABLE IF NOT EXISTS user_api_keys (
        id                 TEXT PRIMARY KEY,
        user_id            TEXT NOT NULL,
        provider           TEXT NOT NULL,
        encrypted_api_key  TEXT NOT NULL,
        encryption_iv      TEXT NOT NULL,
        nickname           TEXT,
        default_model      TEXT,
        created_at         DOUBLE PRECISION NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_user_api_keys_user ON user_api_keys(user_id, provider)",
]

_COLUMNS = "id, user_id, provider, encrypted_api_key, encryption_iv, nickname, default_model, created_at"
_UPDATABLE = frozenset({"nickname", "default_model"})


def _row_to_credential(row: dict) -> StoredCredential:
    return StoredCredential(
        id=row["id"],
        owner_user_id=row["user_id"],
        provider=Provider(row["provider"]),
        ciphertext=row["encrypted_api_key"],
        iv=row["encryption_iv"],
        nickname=row["nickname"],
        default_model=row["default_model"],
        created_at=datetime.fromtimestamp(row["created_at"], tz=timezone.utc),
    )


class CredentialStore:
    """
    Persistenz für StoredCredential.

    Verschlüsselung passiert hier beim Anlegen; Entschlüsselung ausschließlich
    im KeyResolver. Alle Lesezugriffe sind auf den besitzenden Nutzer beschränkt.
    """

    def __init__(self, db_url: str, vault: CryptoVault) -> None:
        self._db_url = db_url
        self._vault = vault

    async def initialize(self) -> None:
        """Tabelle anlegen (idempotent)."""
        await execute_script(self._db_url, _SCHEMA)

    async def add(
        self,
        user_id: str,
        provider: Provider,
        api_key: str,
        nickname: str | None = None,
        default_model: str | None = None,
    ) -> StoredCredential:
        """Schlüssel verschlüsseln und speichern. Gleicher Anbieter + Spitzname → ConflictError."""
        if not api_key:
            raise ValidationError("API-Schlüssel darf nicht leer sein", fields=["apiKey"])

        await self._ensure_nickname_free(user_id, provider, nickname)

        ciphertext, iv = self._vault.encrypt(api_key)
        credential = StoredCredential(
            id=str(uuid.uuid4()),
            owner_user_id=user_id,
            provider=provider,
            ciphertext=ciphertext,
            iv=iv,
            nickname=nickname,
            default_model=default_model,
            created_at=datetime.now(timezone.utc),
        )
        await execute_query(
            self._db_url,
            f"INSERT INTO user_api_keys ({_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
            (
                credential.id,
                user_id,
                provider.value,
                ciphertext,
                iv,
                nickname,
                default_model,
                credential.created_at.timestamp(),
            ),
        )
        logger.info(
            "API-Schlüssel %s gespeichert (Nutzer: %s, Anbieter: %s)",
            credential.id, user_id, provider.value,
        )
        return credential

    async def _ensure_nickname_free(
        self,
        user_id: str,
        provider: Provider,
        nickname: str | None,
        exclude_id: str | None = None,
    ) -> None:
        if nickname is None:
            query = "SELECT id FROM user_api_keys WHERE user_id = ? AND provider = ? AND nickname IS NULL"
            params: tuple = (user_id, provider.value)
        else:
            query = "SELECT id FROM user_api_keys WHERE user_id = ? AND provider = ? AND nickname = ?"
            params = (user_id, provider.value, nickname)
        if exclude_id is not None:
            query += " AND id != ?"
            params = (*params, exclude_id)
        if await execute_query(self._db_url, query, params, fetch="val"):
            raise ConflictError("Schlüssel mit diesem Anbieter und Spitznamen existiert bereits")

    async def get(
        self, key_id: str, user_id: str, provider: Provider
    ) -> StoredCredential | None:
        """Schlüssel nach ID lesen, nur wenn er dem Nutzer UND dem Anbieter gehört."""
        row = await execute_query(
            self._db_url,
            f"SELECT {_COLUMNS} FROM user_api_keys WHERE id = ? AND user_id = ? AND provider = ?",
            (key_id, user_id, provider.value),
            fetch="one",
        )
        return _row_to_credential(row) if row else None

    async def list_for_user(self, user_id: str) -> list[StoredCredential]:
        """Alle Schlüssel eines Nutzers, neueste zuerst."""
        rows = await execute_query(
            self._db_url,
            f"SELECT {_COLUMNS} FROM user_api_keys WHERE user_id = ? ORDER BY created_at DESC",
            (user_id,),
            fetch="all",
        )
        return [_row_to_credential(row) for row in rows]

    async def update(self, key_id: str, user_id: str, **changes: str | None) -> StoredCredential:
        """
        Spitzname/Standardmodell ändern. Nur übergebene Felder werden geschrieben,
        fehlende bleiben unverändert. Fremde oder fehlende Schlüssel → NotFoundError,
        Spitzname bereits beim gleichen Anbieter vergeben → ConflictError.
        """
        unknown = set(changes) - _UPDATABLE
        if unknown:
            raise ValidationError("Nicht änderbare Felder", fields=sorted(unknown))

        row = await execute_query(
            self._db_url,
            f"SELECT {_COLUMNS} FROM user_api_keys WHERE id = ? AND user_id = ?",
            (key_id, user_id),
            fetch="one",
        )
        if not row:
            raise NotFoundError("API-Schlüssel nicht gefunden")
        if not changes:
            return _row_to_credential(row)

        if "nickname" in changes and changes["nickname"] != row["nickname"]:
            await self._ensure_nickname_free(
                user_id, Provider(row["provider"]), changes["nickname"], exclude_id=key_id
            )

        columns = sorted(changes)
        assignments = ", ".join(f"{column} = ?" for column in columns)
        await execute_query(
            self._db_url,
            f"UPDATE user_api_keys SET {assignments} WHERE id = ? AND user_id = ?",
            (*(changes[column] for column in columns), key_id, user_id),
        )
        logger.info("API-Schlüssel %s geändert (Felder: %s)", key_id, ", ".join(columns))
        return _row_to_credential({**row, **changes})

    async def delete(self, key_id: str, user_id: str) -> None:
        """Schlüssel löschen. Fremde oder fehlende Schlüssel → NotFoundError."""
        count = await execute_query(
            self._db_url,
            "DELETE FROM user_api_keys WHERE id = ? AND user_id = ?",
            (key_id, user_id),
            fetch="count",
        )
        if not count:
            raise NotFoundError("API-Schlüssel nicht gefunden")
        logger.info("API-Schlüssel %s gelöscht (Nutzer: %s)", key_id, user_id)
