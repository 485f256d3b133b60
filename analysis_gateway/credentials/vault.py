# analysis_gateway/credentials/vault.py
# Crypto-Vault: AES-256-GCM für gespeicherte API-Schlüssel
# Speicherformat: ciphertext = "<hex(chiffrat)>:<hex(auth_tag)>", iv = hex(12 Byte Nonce)
from __future__ import annotations

import os

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from ..errors import ConfigurationError, DecryptionError

IV_LENGTH = 12
TAG_LENGTH = 16
SECRET_LENGTH = 32


class CryptoVault:
    """
    Symmetrische Ver-/Entschlüsselung mit einem einzigen prozessweiten Geheimnis.

    Das Geheimnis stammt aus der Konfiguration (USER_API_KEY_ENCRYPTION_SECRET),
    nie aus einer Anfrage. Entschlüsselungsfehler sind harte Fehler: ein
    manipuliertes Chiffrat oder ein rotiertes Geheimnis liefert DecryptionError,
    niemals unbrauchbaren Klartext.
    """

    def __init__(self, secret: str | bytes) -> None:
        key = secret.encode("utf-8") if isinstance(secret, str) else secret
        if len(key) != SECRET_LENGTH:
            raise ConfigurationError(
                f"Verschlüsselungsgeheimnis muss genau {SECRET_LENGTH} Byte lang sein"
            )
        self._aesgcm = AESGCM(key)

    def __repr__(self) -> str:
        return "CryptoVault(<secret>)"

    def encrypt(self, plaintext: str | bytes) -> tuple[str, str]:
        """Klartext verschlüsseln → (ciphertext, iv), beide hex-kodiert."""
        data = plaintext.encode("utf-8") if isinstance(plaintext, str) else plaintext
        iv = os.urandom(IV_LENGTH)
        # AESGCM hängt den Auth-Tag an das Chiffrat an
        sealed = self._aesgcm.encrypt(iv, data, None)
        body, tag = sealed[:-TAG_LENGTH], sealed[-TAG_LENGTH:]
        return f"{body.hex()}:{tag.hex()}", iv.hex()

    def decrypt(self, ciphertext: str, iv: str) -> bytes:
        """(ciphertext, iv) entschlüsseln. Jeder Formfehler oder falsche Tag → DecryptionError."""
        try:
            body_hex, tag_hex = ciphertext.split(":")
            body = bytes.fromhex(body_hex)
            tag = bytes.fromhex(tag_hex)
            nonce = bytes.fromhex(iv)
        except (ValueError, AttributeError) as exc:
            raise DecryptionError("Gespeicherter Schlüssel hat ein ungültiges Format") from exc

        if len(nonce) != IV_LENGTH or len(tag) != TAG_LENGTH:
            raise DecryptionError("Gespeicherter Schlüssel hat ein ungültiges Format")

        try:
            return self._aesgcm.decrypt(nonce, body + tag, None)
        except InvalidTag as exc:
            raise DecryptionError(
                "Gespeicherter Schlüssel konnte nicht entschlüsselt werden"
            ) from exc

    def decrypt_text(self, ciphertext: str, iv: str) -> str:
        """Wie decrypt(), Ergebnis als UTF-8-Text."""
        raw = self.decrypt(ciphertext, iv)
        try:
            return raw.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise DecryptionError("Entschlüsselter Schlüssel ist kein gültiger Text") from exc
