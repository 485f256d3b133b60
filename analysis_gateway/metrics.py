# analysis_gateway/metrics.py
# Prometheus-Metriken: Anfragen, Latenz, Kosten, Token, Fehler pro Zustand, Usage-Log-Ausfälle
from __future__ import annotations

from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest

# ── Metriken-Definitionen ──────────────────────────────────────────────────

REQUEST_COUNT = Counter(
    "analysis_requests_total",
    "Gesamtanzahl abgeschlossener Analyse-Anfragen",
    ["provider", "model", "status"],
)

PROVIDER_LATENCY = Histogram(
    "analysis_provider_latency_ms",
    "Antwortzeit des LLM-Anbieters in Millisekunden",
    ["provider"],
    buckets=[250, 500, 1000, 2500, 5000, 10000, 30000, 60000, 120000, 300000],
)

COST_TOTAL = Counter(
    "analysis_cost_usd_total",
    "Geschätzte Gesamtkosten in USD",
    ["provider", "model"],
)

TOKENS_TOTAL = Counter(
    "analysis_tokens_total",
    "Verarbeitete Token (prompt + completion)",
    ["direction", "provider", "model"],
)

FAILURES_TOTAL = Counter(
    "analysis_failures_total",
    "Fehlgeschlagene Analysen nach letztem erreichten Zustand und Fehlerart",
    ["state", "error"],
)

USAGE_LOG_FAILURES = Counter(
    "analysis_usage_log_failures_total",
    "Nutzungseinträge, die nicht geschrieben werden konnten (Antwort wurde trotzdem geliefert)",
    ["provider"],
)


def get_metrics_response() -> tuple[bytes, str]:
    """Prometheus-Metriken im Textformat zurückgeben."""
    return generate_latest(), CONTENT_TYPE_LATEST
