# tests/conftest.py
# Pytest-Konfiguration und gemeinsame Fixtures
import pytest
import pytest_asyncio

from analysis_gateway.config import OwnerKeyConfig
from analysis_gateway.credentials import CredentialStore, CryptoVault, KeyResolver
from analysis_gateway.middleware.usage_logger import UsageLogger
from analysis_gateway.models import (
    CallerIdentity,
    GenerationSettingsOverride,
    Provider,
    Template,
)
from analysis_gateway.templates import TemplateStore

TEST_SECRET = "0123456789abcdef0123456789abcdef"  # genau 32 Zeichen


@pytest.fixture
def vault():
    return CryptoVault(TEST_SECRET)


@pytest.fixture
def db_path(tmp_path):
    """Eigene SQLite-Datei pro Test (kein Shared-State)."""
    return str(tmp_path / "test_gateway.db")


@pytest_asyncio.fixture
async def credential_store(db_path, vault):
    store = CredentialStore(db_path, vault)
    await store.initialize()
    return store


@pytest_asyncio.fixture
async def template_store(db_path):
    store = TemplateStore(db_path)
    await store.initialize()
    return store


@pytest_asyncio.fixture
async def usage_logger(db_path):
    logger = UsageLogger(db_path)
    await logger.initialize()
    return logger


@pytest.fixture
def owner_keys():
    return OwnerKeyConfig(keys={Provider.OPENAI: "sk-owner-openai"})


@pytest.fixture
def key_resolver(owner_keys, credential_store, vault):
    return KeyResolver(owner_keys, credential_store, vault)


@pytest.fixture
def caller():
    """Normaler Nutzer ohne Owner-Berechtigung."""
    return CallerIdentity(user_id="user-1", can_use_owner_key=False)


@pytest.fixture
def privileged_caller():
    return CallerIdentity(user_id="user-2", can_use_owner_key=True)


@pytest.fixture
def sample_template():
    """Standard-Template mit Platzhaltern und eigenen Default-Einstellungen."""
    return Template(
        id="t1",
        name="Banking",
        description="Analyse von Bank-Transkripten",
        system_prompt_template="{role}\nRegeln: {validation_rules}\nSektor: {sector}",
        classification_rules={"temporal_tags": ["Q1", "Q2"]},
        key_metrics={"financial_metrics": ["net_interest_margin"]},
        validation_rules=["Zahlen prüfen", "Quellen nennen"],
        llm_settings=GenerationSettingsOverride(temperature=0.3, max_tokens=4000),
    )
