# Zugangsdaten: Vault, Persistenz und Schlüsselauflösung
from .resolver import KeyResolver, ResolvedKey
from .store import CredentialStore
from .vault import CryptoVault

__all__ = ["CredentialStore", "CryptoVault", "KeyResolver", "ResolvedKey"]
