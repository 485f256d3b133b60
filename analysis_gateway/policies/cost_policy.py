# analysis_gateway/policies/cost_policy.py
# Kostenschätzung: statische Preistabelle, USD pro 1.000 Token (Gesamt-Token, Stand: 2025)
from __future__ import annotations

import logging

from ..models import Provider

logger = logging.getLogger(__name__)

# (Anbieter, Modell): $/1K Token
# Aktualisierung: Werte hier anpassen, Schätzung ist rein informativ
PRICING_TABLE: dict[tuple[Provider, str], float] = {
    # OpenAI
    (Provider.OPENAI, "gpt-4.1"):                      0.006,
    (Provider.OPENAI, "gpt-4.1-mini"):                 0.0001,
    (Provider.OPENAI, "gpt-4.1-nano"):                 0.00005,
    (Provider.OPENAI, "o3"):                           0.020,
    (Provider.OPENAI, "o3-pro"):                       0.030,
    (Provider.OPENAI, "o4-mini"):                      0.010,
    (Provider.OPENAI, "o4-mini-high"):                 0.015,
    (Provider.OPENAI, "gpt-4o"):                       0.005,
    (Provider.OPENAI, "gpt-4o-mini"):                  0.00015,
    (Provider.OPENAI, "gpt-4o-audio"):                 0.007,
    (Provider.OPENAI, "gpt-4-turbo"):                  0.01,
    (Provider.OPENAI, "gpt-4"):                        0.015,
    (Provider.OPENAI, "gpt-3.5-turbo"):                0.0015,
    # Anthropic
    (Provider.ANTHROPIC, "claude-4-opus"):             0.020,
    (Provider.ANTHROPIC, "claude-4-sonnet"):           0.004,
    (Provider.ANTHROPIC, "claude-3.7-sonnet"):         0.0035,
    (Provider.ANTHROPIC, "claude-3-5-sonnet-20241022"): 0.003,
    (Provider.ANTHROPIC, "claude-3-5-haiku-20241022"): 0.0003,
    (Provider.ANTHROPIC, "claude-3-opus-20240229"):    0.015,
    (Provider.ANTHROPIC, "claude-3-sonnet-20240229"):  0.003,
    (Provider.ANTHROPIC, "claude-3-haiku-20240307"):   0.00025,
    # Google
    (Provider.GOOGLE, "gemini-2.5-flash"):             0.0002,
    (Provider.GOOGLE, "gemini-2.5-pro"):               0.004,
    (Provider.GOOGLE, "gemini-2.5-flash-lite"):        0.0001,
    (Provider.GOOGLE, "gemini-2.0-flash"):             0.0003,
    (Provider.GOOGLE, "gemini-2.0-flash-lite"):        0.00015,
    (Provider.GOOGLE, "gemini-1.5-pro"):               0.0035,
    (Provider.GOOGLE, "gemini-1.5-flash"):             0.00035,
    (Provider.GOOGLE, "gemini-1.5-flash-8b"):          0.0002,
    (Provider.GOOGLE, "gemma-3"):                      0.0001,
    (Provider.GOOGLE, "gemma-2"):                      0.00008,
    # Cohere
    (Provider.COHERE, "command-a-03-2025"):            0.0025,
    (Provider.COHERE, "command-r-plus-08-2024"):       0.003,
    (Provider.COHERE, "command-r-08-2024"):            0.0005,
    (Provider.COHERE, "command-r7b"):                  0.0003,
    (Provider.COHERE, "command-r-plus"):               0.003,
    (Provider.COHERE, "command-r"):                    0.0005,
    (Provider.COHERE, "command"):                      0.0015,
}


class CostEstimator:
    """
    Kostenschätzung pro Anfrage.

    Unbekannter Anbieter oder unbekanntes Modell → 0.0, kein Fehler:
    die Schätzung ist informativ und darf nie eine Antwort blockieren.
    """

    def rate_per_1k(self, provider: Provider | str, model: str) -> float:
        try:
            key = (Provider(provider), model)
        except ValueError:
            return 0.0
        return PRICING_TABLE.get(key, 0.0)

    def estimate(self, provider: Provider | str, model: str, total_tokens: int) -> float:
        """Geschätzte Kosten in USD für total_tokens Token."""
        rate = self.rate_per_1k(provider, model)
        if rate == 0.0:
            logger.debug("Kein Preis für %s/%s: Kosten 0", provider, model)
            return 0.0
        return max(0, total_tokens) / 1000 * rate
