# analysis_gateway/models.py
# Pydantic v2 Datenschemas: Domänenobjekte, kanonisches LLM-Format, HTTP-Ein- und Ausgaben
from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, SecretStr
from pydantic.alias_generators import to_camel


class Provider(str, Enum):
    """Unterstützte LLM-Anbieter (geschlossene Menge)."""

    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    GOOGLE = "google"
    COHERE = "cohere"


class WireModel(BaseModel):
    """Basis für JSON-Schnittstellen: camelCase nach außen, snake_case im Code."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ─── Generierungseinstellungen ──────────────────────────────────────────────


class GenerationSettings(BaseModel):
    """Vollständige, validierte Generierungseinstellungen (alle Felder im gültigen Bereich)."""

    temperature: float = Field(default=0.7, ge=0.0, le=2.0)
    top_p: float = Field(default=1.0, ge=0.0, le=1.0)
    max_tokens: int = Field(default=16384, ge=1)
    frequency_penalty: float = Field(default=0.0, ge=-2.0, le=2.0)
    presence_penalty: float = Field(default=0.0, ge=-2.0, le=2.0)


class GenerationSettingsOverride(BaseModel):
    """
    Teilweise Einstellungen (Template-Defaults oder Request-Override).
    None = Feld nicht gesetzt. Bereichsprüfung erfolgt erst nach dem Merge.
    """

    temperature: float | None = None
    top_p: float | None = None
    max_tokens: int | None = None
    frequency_penalty: float | None = None
    presence_penalty: float | None = None


# ─── Templates ──────────────────────────────────────────────────────────────


class Template(BaseModel):
    """Analyse-Template aus dem Katalog. Das Gateway liest Templates nur."""

    id: str
    name: str
    description: str | None = None
    system_prompt_template: str = ""
    classification_rules: dict[str, Any] = Field(default_factory=dict)
    key_metrics: dict[str, Any] = Field(default_factory=dict)
    output_format: dict[str, Any] = Field(default_factory=dict)
    validation_rules: list[str] = Field(default_factory=list)
    special_considerations: dict[str, Any] = Field(default_factory=dict)
    llm_settings: GenerationSettingsOverride = Field(default_factory=GenerationSettingsOverride)
    is_active: bool = True


class TemplateSummary(WireModel):
    id: str
    name: str
    description: str | None = None


# ─── Schlüsselquellen (getaggte Variante) ──────────────────────────────────


class OwnerKeySource(BaseModel):
    """Systemschlüssel des Betreibers (nur mit can_use_owner_key)."""

    kind: Literal["owner"] = "owner"


class UserSavedKeySource(BaseModel):
    """Gespeicherter, verschlüsselter Schlüssel des Aufrufers."""

    kind: Literal["user_saved"] = "user_saved"
    key_id: str


class UserTemporaryKeySource(BaseModel):
    """Einmaliger Klartext-Schlüssel, wird niemals persistiert."""

    kind: Literal["user_temporary"] = "user_temporary"
    api_key: SecretStr


KeySource = Annotated[
    Union[OwnerKeySource, UserSavedKeySource, UserTemporaryKeySource],
    Field(discriminator="kind"),
]


# ─── Gespeicherte Zugangsdaten ──────────────────────────────────────────────


class StoredCredential(BaseModel):
    """Verschlüsselter API-Schlüssel eines Nutzers (Klartext nie im Objekt)."""

    id: str
    owner_user_id: str
    provider: Provider
    ciphertext: str = Field(repr=False)
    iv: str = Field(repr=False)
    nickname: str | None = None
    default_model: str | None = None
    created_at: datetime


class StoredCredentialPublic(WireModel):
    """Öffentliche Sicht auf einen gespeicherten Schlüssel, ohne Chiffrat."""

    id: str
    provider: Provider
    nickname: str | None = None
    default_model: str | None = None
    created_at: datetime

    @classmethod
    def from_credential(cls, credential: StoredCredential) -> StoredCredentialPublic:
        return cls(
            id=credential.id,
            provider=credential.provider,
            nickname=credential.nickname,
            default_model=credential.default_model,
            created_at=credential.created_at,
        )


class CredentialCreate(WireModel):
    """Anfrage: neuen API-Schlüssel speichern."""

    provider: Provider
    api_key: SecretStr
    nickname: str | None = None
    default_model: str | None = Field(
        default=None,
        validation_alias=AliasChoices("defaultModel", "preferredModel", "default_model"),
    )


class CredentialUpdate(WireModel):
    """Anfrage: Metadaten eines gespeicherten Schlüssels ändern."""

    nickname: str | None = None
    default_model: str | None = Field(
        default=None,
        validation_alias=AliasChoices("defaultModel", "preferredModel", "default_model"),
    )


# ─── Nutzung ────────────────────────────────────────────────────────────────


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UsageRecord(BaseModel):
    """Append-only Nutzungseintrag: ein Eintrag pro abgerechnetem Generierungsaufruf."""

    user_id: str
    provider: Provider
    model: str
    token_count: int
    estimated_cost: float
    used_owner_key: bool
    created_at: datetime = Field(default_factory=_utcnow)


# ─── Aufrufer ───────────────────────────────────────────────────────────────


class CallerIdentity(BaseModel):
    """Authentifizierter Aufrufer (aus Bearer-Token aufgelöst)."""

    user_id: str
    can_use_owner_key: bool = False
    is_admin: bool = False


class CallerTokenCreate(WireModel):
    """Admin-Anfrage: Zugangstoken für einen Nutzer ausstellen."""

    user_id: str
    can_use_owner_key: bool = False
    is_admin: bool = False


# ─── Kanonisches LLM-Format ─────────────────────────────────────────────────


class GenerationRequest(BaseModel):
    """Provider-neutrale Anfrage an einen Adapter."""

    system_prompt: str
    user_message: str
    model: str | None = None
    max_tokens: int = Field(default=16384, ge=1)
    temperature: float = Field(default=0.7, ge=0.0, le=2.0)


class TokenUsage(WireModel):
    """Token-Verbrauch im kanonischen Format."""

    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


class GenerationResponse(BaseModel):
    """Provider-neutrale Antwort eines Adapters."""

    content: str
    model: str
    provider: Provider
    usage: TokenUsage = Field(default_factory=TokenUsage)


# ─── HTTP-Schnittstelle /api/analyze ────────────────────────────────────────


class AnalyzeRequest(WireModel):
    """Eingehende Analyse-Anfrage (JSON, camelCase)."""

    transcript: str = Field(min_length=1)
    template_id: str = Field(
        min_length=1,
        validation_alias=AliasChoices("templateId", "promptId", "template_id"),
    )
    key_source: Literal["owner", "user_saved", "user_temporary"]
    user_api_key_id: str | None = None
    temporary_api_key: SecretStr | None = None
    provider: Provider
    model: str | None = None
    settings: GenerationSettingsOverride | None = None
    variables: dict[str, str] = Field(default_factory=dict)


class AnalyzeResponse(WireModel):
    """Erfolgreiche Analyse-Antwort."""

    success: bool = True
    result: str
    usage: TokenUsage
    model: str
    provider: Provider
    estimated_cost: float = 0.0


class ProviderInfo(WireModel):
    """Katalogeintrag eines Anbieters für GET /api/providers."""

    id: Provider
    name: str
    default_model: str
    models: list[str]


class HealthResponse(BaseModel):
    """Gateway-Gesundheitsstatus."""

    status: str
    providers: dict[str, Any]
