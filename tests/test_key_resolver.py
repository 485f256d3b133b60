# tests/test_key_resolver.py
# KeyResolver + CredentialStore: drei Schlüsselquellen, Besitzer-Scoping, Fehlerarten
import pytest

from analysis_gateway.config import OwnerKeyConfig
from analysis_gateway.credentials import CryptoVault, KeyResolver
from analysis_gateway.errors import (
    AuthorizationError,
    ConfigurationError,
    ConflictError,
    DecryptionError,
    NotFoundError,
    ValidationError,
)
from analysis_gateway.models import (
    OwnerKeySource,
    Provider,
    UserSavedKeySource,
    UserTemporaryKeySource,
)


# ─── Owner-Schlüssel ────────────────────────────────────────────────────────


@pytest.mark.parametrize("provider", list(Provider))
async def test_owner_without_permission_always_forbidden(key_resolver, caller, provider):
    """Ohne can_use_owner_key → AuthorizationError, unabhängig vom Anbieter."""
    with pytest.raises(AuthorizationError):
        await key_resolver.resolve(OwnerKeySource(), caller, provider)


async def test_owner_key_resolved(key_resolver, privileged_caller):
    resolved = await key_resolver.resolve(OwnerKeySource(), privileged_caller, Provider.OPENAI)
    assert resolved.api_key == "sk-owner-openai"
    assert resolved.used_owner_key is True


async def test_owner_key_missing_is_configuration_error(key_resolver, privileged_caller):
    with pytest.raises(ConfigurationError):
        await key_resolver.resolve(OwnerKeySource(), privileged_caller, Provider.COHERE)


def test_owner_key_config_from_env():
    config = OwnerKeyConfig.from_env(
        {"OWNER_ANTHROPIC_API_KEY": "sk-ant", "OWNER_GOOGLE_API_KEY": ""}
    )
    assert config.get(Provider.ANTHROPIC) == "sk-ant"
    assert config.get(Provider.GOOGLE) is None
    assert "sk-ant" not in repr(config)


# ─── Gespeicherte Schlüssel ─────────────────────────────────────────────────


async def test_saved_key_decrypted_fresh(key_resolver, credential_store, caller):
    credential = await credential_store.add(
        caller.user_id, Provider.ANTHROPIC, "sk-ant-saved", default_model="claude-4-sonnet"
    )
    resolved = await key_resolver.resolve(
        UserSavedKeySource(key_id=credential.id), caller, Provider.ANTHROPIC
    )
    assert resolved.api_key == "sk-ant-saved"
    assert resolved.used_owner_key is False
    assert resolved.default_model == "claude-4-sonnet"


async def test_saved_key_never_stored_in_plaintext(credential_store, caller):
    credential = await credential_store.add(caller.user_id, Provider.OPENAI, "sk-plain")
    assert "sk-plain" not in credential.ciphertext
    assert "sk-plain" not in repr(credential)


async def test_saved_key_of_other_user_not_found(key_resolver, credential_store, caller):
    credential = await credential_store.add("someone-else", Provider.OPENAI, "sk-foreign")
    with pytest.raises(NotFoundError):
        await key_resolver.resolve(
            UserSavedKeySource(key_id=credential.id), caller, Provider.OPENAI
        )


async def test_saved_key_for_other_provider_not_found(key_resolver, credential_store, caller):
    credential = await credential_store.add(caller.user_id, Provider.OPENAI, "sk-openai")
    with pytest.raises(NotFoundError):
        await key_resolver.resolve(
            UserSavedKeySource(key_id=credential.id), caller, Provider.GOOGLE
        )


async def test_saved_key_unknown_id_not_found(key_resolver, caller):
    with pytest.raises(NotFoundError):
        await key_resolver.resolve(
            UserSavedKeySource(key_id="does-not-exist"), caller, Provider.OPENAI
        )


async def test_saved_key_with_rotated_secret_fails(credential_store, owner_keys, caller):
    """Geheimnis rotiert → DecryptionError, kein Ausweichen auf einen anderen Schlüssel."""
    credential = await credential_store.add(caller.user_id, Provider.OPENAI, "sk-old")
    resolver = KeyResolver(owner_keys, credential_store, CryptoVault("r" * 32))
    with pytest.raises(DecryptionError):
        await resolver.resolve(UserSavedKeySource(key_id=credential.id), caller, Provider.OPENAI)


# ─── Temporäre Schlüssel ────────────────────────────────────────────────────


async def test_temporary_key_passed_through(key_resolver, caller):
    resolved = await key_resolver.resolve(
        UserTemporaryKeySource(api_key="sk-temp"), caller, Provider.COHERE
    )
    assert resolved.api_key == "sk-temp"
    assert resolved.used_owner_key is False
    assert "sk-temp" not in repr(resolved)


@pytest.mark.parametrize("api_key", ["", "   ", "\t\n"])
async def test_empty_temporary_key_rejected(key_resolver, caller, api_key):
    with pytest.raises(ValidationError) as exc_info:
        await key_resolver.resolve(UserTemporaryKeySource(api_key=api_key), caller, Provider.OPENAI)
    assert exc_info.value.fields == ["temporaryApiKey"]


async def test_temporary_key_is_not_persisted(key_resolver, credential_store, caller):
    await key_resolver.resolve(UserTemporaryKeySource(api_key="sk-temp"), caller, Provider.OPENAI)
    assert await credential_store.list_for_user(caller.user_id) == []


# ─── CredentialStore-Verwaltung ─────────────────────────────────────────────


async def test_duplicate_nickname_conflicts(credential_store, caller):
    await credential_store.add(caller.user_id, Provider.OPENAI, "sk-1", nickname="Arbeit")
    with pytest.raises(ConflictError):
        await credential_store.add(caller.user_id, Provider.OPENAI, "sk-2", nickname="Arbeit")
    # Gleicher Spitzname bei anderem Anbieter ist erlaubt
    await credential_store.add(caller.user_id, Provider.COHERE, "sk-3", nickname="Arbeit")


async def test_empty_key_rejected(credential_store, caller):
    with pytest.raises(ValidationError):
        await credential_store.add(caller.user_id, Provider.OPENAI, "")


async def test_update_and_delete_scoped_to_owner(credential_store, caller):
    credential = await credential_store.add(caller.user_id, Provider.OPENAI, "sk-1")

    with pytest.raises(NotFoundError):
        await credential_store.update(credential.id, "someone-else", nickname="x")
    with pytest.raises(NotFoundError):
        await credential_store.delete(credential.id, "someone-else")

    updated = await credential_store.update(
        credential.id, caller.user_id, nickname="Privat", default_model="gpt-4o"
    )
    assert updated.nickname == "Privat"
    assert updated.default_model == "gpt-4o"

    await credential_store.delete(credential.id, caller.user_id)
    assert await credential_store.list_for_user(caller.user_id) == []


async def test_partial_update_keeps_other_fields(credential_store, caller):
    credential = await credential_store.add(
        caller.user_id, Provider.OPENAI, "sk-1", nickname="Arbeit", default_model="gpt-4o"
    )

    updated = await credential_store.update(credential.id, caller.user_id, default_model="gpt-4.1")
    assert updated.nickname == "Arbeit"
    assert updated.default_model == "gpt-4.1"

    stored = await credential_store.get(credential.id, caller.user_id, Provider.OPENAI)
    assert stored.nickname == "Arbeit"
    assert stored.default_model == "gpt-4.1"


async def test_update_to_taken_nickname_conflicts(credential_store, caller):
    await credential_store.add(caller.user_id, Provider.OPENAI, "sk-1", nickname="Arbeit")
    other = await credential_store.add(caller.user_id, Provider.OPENAI, "sk-2", nickname="Privat")

    with pytest.raises(ConflictError):
        await credential_store.update(other.id, caller.user_id, nickname="Arbeit")
    # Eigenen Spitznamen erneut setzen ist kein Konflikt
    same = await credential_store.update(other.id, caller.user_id, nickname="Privat")
    assert same.nickname == "Privat"
