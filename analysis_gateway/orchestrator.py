# analysis_gateway/orchestrator.py
# Analyse-Ablauf: Schlüssel auflösen → Template rendern → Anbieter aufrufen → Kosten → Nutzungsprotokoll
# Zustände: Authenticated → Authorized → KeyResolved → Rendered → Dispatched → Logged → Completed
#           (Failed von jedem Schritt aus erreichbar)
from __future__ import annotations

import logging
import time
import uuid
from dataclasses import dataclass
from enum import Enum

from .credentials import KeyResolver
from .errors import AuthenticationError, GatewayError, NotFoundError, ValidationError
from .metrics import (
    COST_TOTAL,
    FAILURES_TOTAL,
    PROVIDER_LATENCY,
    REQUEST_COUNT,
    TOKENS_TOTAL,
    USAGE_LOG_FAILURES,
)
from .middleware.usage_logger import UsageLogger
from .models import (
    AnalyzeRequest,
    CallerIdentity,
    GenerationRequest,
    GenerationResponse,
    KeySource,
    OwnerKeySource,
    UsageRecord,
    UserSavedKeySource,
    UserTemporaryKeySource,
)
from .policies.cost_policy import CostEstimator
from .providers import ProviderFactory
from .templates import TemplateRenderer, TemplateStore

logger = logging.getLogger(__name__)


class AnalysisState(str, Enum):
    AUTHENTICATED = "authenticated"
    AUTHORIZED = "authorized"
    KEY_RESOLVED = "key_resolved"
    RENDERED = "rendered"
    DISPATCHED = "dispatched"
    LOGGED = "logged"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(frozen=True)
class AnalysisResult:
    response: GenerationResponse
    estimated_cost: float
    used_owner_key: bool
    usage_logged: bool


def build_key_source(request: AnalyzeRequest) -> KeySource:
    """Flache Wire-Felder in genau eine Schlüsselquellen-Variante übersetzen."""
    if request.key_source == "owner":
        return OwnerKeySource()
    if request.key_source == "user_saved":
        if not request.user_api_key_id:
            raise ValidationError(
                "Schlüssel-ID für gespeicherten Schlüssel erforderlich",
                fields=["userApiKeyId"],
            )
        return UserSavedKeySource(key_id=request.user_api_key_id)
    # Leerer/fehlender temporärer Schlüssel wird vom KeyResolver abgelehnt
    return UserTemporaryKeySource(
        api_key=request.temporary_api_key.get_secret_value() if request.temporary_api_key else ""
    )


class AnalysisGateway:
    """
    Zentrale Orchestrierung einer Analyse-Anfrage.

    Jede Anfrage ist unabhängig: kein gemeinsamer veränderlicher Zustand außer dem
    append-only Nutzungsprotokoll. Fehler behalten ihre Art (kein Herabstufen auf 500).
    Ein fehlgeschlagener Protokolleintrag macht die bereits erhaltene Antwort NICHT ungültig.
    """

    def __init__(
        self,
        key_resolver: KeyResolver,
        template_store: TemplateStore,
        usage_logger: UsageLogger,
        provider_factory: ProviderFactory,
        renderer: TemplateRenderer | None = None,
        cost_estimator: CostEstimator | None = None,
    ) -> None:
        self._key_resolver = key_resolver
        self._template_store = template_store
        self._usage_logger = usage_logger
        self._factory = provider_factory
        self._renderer = renderer or TemplateRenderer()
        self._cost_estimator = cost_estimator or CostEstimator()

    async def analyze(
        self, request: AnalyzeRequest, caller: CallerIdentity | None
    ) -> AnalysisResult:
        request_id = str(uuid.uuid4())
        state = AnalysisState.AUTHENTICATED
        provider = request.provider.value

        try:
            # Schritt 1: Aufrufer und Pflichtfelder prüfen, vor jeder Auflösung
            if caller is None:
                raise AuthenticationError("Keine gültige Aufrufer-Identität")
            if not request.transcript.strip():
                raise ValidationError("Transkript darf nicht leer sein", fields=["transcript"])
            key_source = build_key_source(request)
            state = AnalysisState.AUTHORIZED

            logger.info(
                "[%s] Analyse-Anfrage: Nutzer=%s, Anbieter=%s, Modell=%s, Schlüsselquelle=%s, "
                "Template=%s, Transkriptlänge=%d",
                request_id, caller.user_id, provider, request.model or "-",
                request.key_source, request.template_id, len(request.transcript),
            )

            # Schritt 2: Schlüssel auflösen (Fehlerart bleibt unverändert)
            resolved = await self._key_resolver.resolve(key_source, caller, request.provider)
            state = AnalysisState.KEY_RESOLVED

            # Schritt 3: Template laden, Einstellungen mergen/validieren, Variablen ersetzen
            template = await self._template_store.get_active(request.template_id)
            if template is None:
                raise NotFoundError("Template nicht gefunden oder inaktiv")
            rendered = self._renderer.render(template, request.variables, request.settings)
            state = AnalysisState.RENDERED
            logger.info(
                "[%s] System-Prompt vorbereitet (Länge: %d)", request_id, len(rendered.system_prompt)
            )

            # Schritt 4: genau ein Anbieter-Aufruf, kein automatischer Retry
            adapter = self._factory.create(request.provider, resolved.api_key)
            model = request.model or resolved.default_model or adapter.default_model()
            start_time = time.monotonic()
            response = await adapter.generate_response(
                GenerationRequest(
                    system_prompt=rendered.system_prompt,
                    user_message=request.transcript,
                    model=model,
                    max_tokens=rendered.settings.max_tokens,
                    temperature=rendered.settings.temperature,
                )
            )
            latency_ms = (time.monotonic() - start_time) * 1000
            state = AnalysisState.DISPATCHED
            PROVIDER_LATENCY.labels(provider=provider).observe(latency_ms)
            logger.info(
                "[%s] LLM-Aufruf abgeschlossen in %.0fms (Modell: %s, Token: %d)",
                request_id, latency_ms, response.model, response.usage.total_tokens,
            )
        except Exception as exc:
            self._record_failure(request_id, state, exc)
            raise

        # Schritt 5: Kosten schätzen (nie fehlschlagend) und Nutzung protokollieren (best effort)
        cost = self._cost_estimator.estimate(
            request.provider, response.model, response.usage.total_tokens
        )
        usage_logged = await self._log_usage(
            request_id,
            UsageRecord(
                user_id=caller.user_id,
                provider=request.provider,
                model=response.model,
                token_count=response.usage.total_tokens,
                estimated_cost=cost,
                used_owner_key=resolved.used_owner_key,
            ),
        )
        state = AnalysisState.LOGGED

        REQUEST_COUNT.labels(provider=provider, model=response.model, status="success").inc()
        COST_TOTAL.labels(provider=provider, model=response.model).inc(cost)
        TOKENS_TOTAL.labels(direction="input", provider=provider, model=response.model).inc(
            response.usage.prompt_tokens
        )
        TOKENS_TOTAL.labels(direction="output", provider=provider, model=response.model).inc(
            response.usage.completion_tokens
        )

        # Schritt 6: Ergebnis an den Aufrufer
        state = AnalysisState.COMPLETED
        logger.info(
            "[%s] Analyse abgeschlossen (Zustand: %s, Kosten: $%.6f, Owner-Schlüssel: %s)",
            request_id, state.value, cost, resolved.used_owner_key,
        )
        return AnalysisResult(
            response=response,
            estimated_cost=cost,
            used_owner_key=resolved.used_owner_key,
            usage_logged=usage_logged,
        )

    async def _log_usage(self, request_id: str, record: UsageRecord) -> bool:
        try:
            await self._usage_logger.log(record)
        except Exception:
            logger.exception(
                "[%s] Nutzungseintrag konnte nicht geschrieben werden, Antwort wird trotzdem geliefert",
                request_id,
            )
            USAGE_LOG_FAILURES.labels(provider=record.provider.value).inc()
            return False
        return True

    def _record_failure(
        self, request_id: str, state: AnalysisState, exc: Exception
    ) -> None:
        error_kind = type(exc).__name__
        FAILURES_TOTAL.labels(state=state.value, error=error_kind).inc()
        if isinstance(exc, GatewayError):
            logger.warning(
                "[%s] Analyse fehlgeschlagen nach Zustand %s: %s (%s)",
                request_id, state.value, error_kind, exc.message,
            )
        else:
            logger.exception(
                "[%s] Unerwarteter Fehler nach Zustand %s", request_id, state.value
            )
