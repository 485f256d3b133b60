# analysis_gateway/main.py
# FastAPI-Hauptanwendung: Middleware-Stack, Endpunkte, Fehlerabbildung, Lifecycle
from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response

from .catalog import PROVIDER_CATALOG, get_models
from .config import GatewayConfig
from .credentials import CredentialStore, CryptoVault, KeyResolver
from .errors import AuthenticationError, DecryptionError, GatewayError, NotFoundError
from .metrics import get_metrics_response
from .middleware.auth import AuthMiddleware, CallerStore
from .middleware.usage_logger import UsageLogger
from .models import (
    AnalyzeRequest,
    AnalyzeResponse,
    CallerIdentity,
    CallerTokenCreate,
    CredentialCreate,
    CredentialUpdate,
    HealthResponse,
    ProviderInfo,
    StoredCredentialPublic,
    Template,
    TemplateSummary,
)
from .orchestrator import AnalysisGateway
from .providers import ProviderFactory
from .templates import TemplateRenderer, TemplateStore

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(name)s %(levelname)s %(message)s",
)
# httpx protokolliert jede Request-URL auf INFO
logging.getLogger("httpx").setLevel(logging.WARNING)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Anwendungs-Lifecycle: Startup-Initialisierung und Shutdown-Bereinigung."""
    config = GatewayConfig.from_env()
    logging.getLogger().setLevel(config.log_level)
    app.state.config = config

    # Startup: Tabellen anlegen, Komponenten explizit verdrahten
    vault = CryptoVault(config.encryption_secret)
    credential_store = CredentialStore(config.database_url, vault)
    template_store = TemplateStore(config.database_url)
    usage_logger = UsageLogger(config.database_url)
    caller_store = CallerStore(config.database_url)
    for store in (credential_store, template_store, usage_logger, caller_store):
        await store.initialize()

    factory = ProviderFactory(read_timeout=config.provider_timeout)
    await factory.initialize()

    app.state.credential_store = credential_store
    app.state.template_store = template_store
    app.state.usage_logger = usage_logger
    app.state.caller_store = caller_store
    app.state.gateway = AnalysisGateway(
        key_resolver=KeyResolver(config.owner_keys, credential_store, vault),
        template_store=template_store,
        usage_logger=usage_logger,
        provider_factory=factory,
    )

    logger.info(
        "✅ Analyse-Gateway gestartet (DB: %s, Owner-Schlüssel: %s)",
        config.database_url,
        [p.value for p in config.owner_keys.configured_providers()] or "keine",
    )
    yield

    # Shutdown: HTTP-Verbindungen ordnungsgemäß schließen
    await factory.shutdown()
    logger.info("Analyse-Gateway heruntergefahren")


app = FastAPI(
    title="Earnings Analysis Gateway",
    description="LLM-Gateway für Transkript-Analysen mit austauschbaren Anbietern und Schlüsselquellen",
    version="1.0.0",
    lifespan=lifespan,
)

# Middleware-Reihenfolge: zuerst registriert = zuletzt ausgeführt
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(AuthMiddleware)


# ─── Fehlerabbildung ────────────────────────────────────────────────────────


@app.exception_handler(GatewayError)
async def gateway_error_handler(request: Request, exc: GatewayError) -> JSONResponse:
    if isinstance(exc, DecryptionError):
        logger.error("Integritätsproblem bei %s: %s", request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_body())


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Body-Validierung → 400 mit allen fehlerhaften Feldern (statt FastAPI-Standard 422)."""
    fields = sorted({
        ".".join(str(part) for part in err["loc"][1:]) or str(err["loc"][0])
        for err in exc.errors()
    })
    return JSONResponse(
        status_code=400,
        content={"error": f"Ungültige Anfrage: {', '.join(fields)}", "fields": fields},
    )


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unerwarteter Fehler bei %s", request.url.path)
    return JSONResponse(status_code=500, content={"error": "Interner Serverfehler"})


def _caller(request: Request) -> CallerIdentity:
    caller = getattr(request.state, "caller", None)
    if caller is None:
        raise AuthenticationError("Keine gültige Aufrufer-Identität")
    return caller


# ─── Monitoring ─────────────────────────────────────────────────────────────


@app.get("/metrics", include_in_schema=False, tags=["Monitoring"])
async def prometheus_metrics() -> Response:
    """Prometheus-Metriken im Textformat (für Scraping durch Prometheus-Server)."""
    data, content_type = get_metrics_response()
    return Response(content=data, media_type=content_type)


@app.get("/health", response_model=HealthResponse, tags=["Monitoring"])
async def health_check(request: Request) -> HealthResponse:
    """Gateway-Status und Owner-Schlüssel-Konfiguration pro Anbieter."""
    owner_keys = request.app.state.config.owner_keys
    return HealthResponse(
        status="healthy",
        providers={
            provider.value: {"owner_key_configured": owner_keys.get(provider) is not None}
            for provider in PROVIDER_CATALOG
        },
    )


# ─── Analyse ────────────────────────────────────────────────────────────────


@app.post(
    "/api/analyze",
    response_model=AnalyzeResponse,
    tags=["Analyse"],
    summary="Transkript mit Template und gewähltem Anbieter analysieren",
)
async def analyze(request: Request, payload: AnalyzeRequest) -> AnalyzeResponse:
    """
    Ablauf:
    1. Pflichtfelder prüfen
    2. Schlüssel auflösen (owner / user_saved / user_temporary)
    3. Template rendern (Einstellungen + Variablen)
    4. Anbieter aufrufen
    5. Kosten schätzen, Nutzung protokollieren
    """
    result = await request.app.state.gateway.analyze(payload, _caller(request))
    response = result.response
    return AnalyzeResponse(
        result=response.content,
        usage=response.usage,
        model=response.model,
        provider=response.provider,
        estimated_cost=result.estimated_cost,
    )


@app.get("/api/providers", response_model=list[ProviderInfo], tags=["Analyse"])
async def list_providers() -> list[ProviderInfo]:
    """Unterstützte Anbieter mit Standardmodell und aktuellen (nicht veralteten) Modellen."""
    return [
        ProviderInfo(
            id=config.provider,
            name=config.name,
            default_model=config.default_model,
            models=get_models(config.provider, include_deprecated=False),
        )
        for config in PROVIDER_CATALOG.values()
    ]


@app.get("/api/templates", response_model=list[TemplateSummary], tags=["Analyse"])
async def list_templates(request: Request) -> list[TemplateSummary]:
    templates = await request.app.state.template_store.list_active()
    return [TemplateSummary(id=t.id, name=t.name, description=t.description) for t in templates]


# ─── Gespeicherte API-Schlüssel ─────────────────────────────────────────────


def _public(credential) -> dict:
    return StoredCredentialPublic.from_credential(credential).model_dump(by_alias=True, mode="json")


@app.get("/api/user-api-keys", tags=["API-Schlüssel"])
async def list_user_api_keys(request: Request) -> dict:
    """Eigene Schlüssel auflisten, nie Chiffrat oder Klartext."""
    credentials = await request.app.state.credential_store.list_for_user(_caller(request).user_id)
    return {"success": True, "apiKeys": [_public(c) for c in credentials]}


@app.post("/api/user-api-keys", tags=["API-Schlüssel"])
async def add_user_api_key(request: Request, payload: CredentialCreate) -> dict:
    credential = await request.app.state.credential_store.add(
        user_id=_caller(request).user_id,
        provider=payload.provider,
        api_key=payload.api_key.get_secret_value(),
        nickname=payload.nickname,
        default_model=payload.default_model,
    )
    return {"success": True, "apiKey": _public(credential)}


@app.put("/api/user-api-keys/{key_id}", tags=["API-Schlüssel"])
async def update_user_api_key(request: Request, key_id: str, payload: CredentialUpdate) -> dict:
    """Nur die im Body gesetzten Felder werden geändert."""
    credential = await request.app.state.credential_store.update(
        key_id,
        _caller(request).user_id,
        **payload.model_dump(exclude_unset=True),
    )
    return {"success": True, "apiKey": _public(credential)}


@app.delete("/api/user-api-keys/{key_id}", tags=["API-Schlüssel"])
async def delete_user_api_key(request: Request, key_id: str) -> dict:
    await request.app.state.credential_store.delete(key_id, _caller(request).user_id)
    return {"success": True}


# ─── Admin ──────────────────────────────────────────────────────────────────


@app.post("/admin/users", tags=["Admin"], include_in_schema=False)
async def create_user_token(request: Request, payload: CallerTokenCreate) -> dict:
    """
    Admin-Endpunkt: Zugangstoken für einen Nutzer erstellen.
    Token wird EINMALIG im Klartext zurückgegeben, sicher speichern!
    """
    token = await request.app.state.caller_store.create_token(
        payload.user_id,
        can_use_owner_key=payload.can_use_owner_key,
        is_admin=payload.is_admin,
    )
    return {
        "userId": payload.user_id,
        "token": token,
        "canUseOwnerKey": payload.can_use_owner_key,
        "warning": "Token wird nicht erneut angezeigt. Sofort sicher speichern!",
    }


@app.delete("/admin/users/{user_id}/tokens", tags=["Admin"], include_in_schema=False)
async def revoke_user_tokens(request: Request, user_id: str) -> dict:
    """Admin-Endpunkt: alle Zugangstokens eines Nutzers sofort deaktivieren."""
    revoked = await request.app.state.caller_store.revoke(user_id)
    if not revoked:
        raise NotFoundError(f"Keine aktiven Tokens für Nutzer {user_id}")
    return {"success": True, "userId": user_id, "revoked": revoked}


@app.post("/admin/users/{user_id}/api-keys", tags=["Admin"], include_in_schema=False)
async def assign_user_api_key(request: Request, user_id: str, payload: CredentialCreate) -> dict:
    """Admin-Endpunkt: API-Schlüssel im Namen eines Nutzers speichern."""
    credential = await request.app.state.credential_store.add(
        user_id=user_id,
        provider=payload.provider,
        api_key=payload.api_key.get_secret_value(),
        nickname=payload.nickname,
        default_model=payload.default_model,
    )
    logger.info("Admin hat Schlüssel %s für Nutzer %s hinterlegt", credential.id, user_id)
    return {"success": True, "apiKey": _public(credential)}


@app.post("/admin/templates", response_model=TemplateSummary, tags=["Admin"], include_in_schema=False)
async def save_template(request: Request, payload: Template) -> TemplateSummary:
    """Admin-Endpunkt: Template anlegen oder ersetzen. Einstellungen werden vorab geprüft."""
    TemplateRenderer().merge_settings(payload.llm_settings)
    template = await request.app.state.template_store.save(payload)
    return TemplateSummary(id=template.id, name=template.name, description=template.description)


@app.get("/admin/usage", tags=["Admin"], include_in_schema=False)
async def usage_records(
    request: Request,
    limit: int = Query(default=50, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
) -> dict:
    """Nutzungseinträge seitenweise, neueste zuerst."""
    usage = await request.app.state.usage_logger.list_records(limit=limit, offset=offset)
    return {"usage": usage, "limit": limit, "offset": offset}


@app.get("/admin/usage/summary", tags=["Admin"], include_in_schema=False)
async def usage_summary(request: Request) -> dict:
    """
    Kostenzusammenfassung pro Nutzer für den laufenden Monat.

    Gibt für jeden Nutzer zurück:
    - requests:            Anzahl abgerechneter Aufrufe
    - tokens:              verbrauchte Token
    - cost_usd:            geschätzte Kosten in USD
    - owner_key_requests:  davon über den Owner-Schlüssel abgerechnet
    """
    now = datetime.now(timezone.utc)
    month_start = datetime(now.year, now.month, 1, tzinfo=timezone.utc)
    users = await request.app.state.usage_logger.summary_by_user(
        since_timestamp=month_start.timestamp()
    )
    return {"month": now.strftime("%Y-%m"), "users": users}
