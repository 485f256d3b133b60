# analysis_gateway/catalog.py
# Modellkatalog: verfügbare Modelle und Standardmodell pro Anbieter (Stand: August 2025)
from __future__ import annotations

from dataclasses import dataclass

from .models import Provider


@dataclass(frozen=True)
class ModelConfig:
    id: str
    name: str
    deprecated: bool = False


@dataclass(frozen=True)
class ProviderConfig:
    provider: Provider
    name: str
    default_model: str
    models: tuple[ModelConfig, ...]


# HINWEIS: Modell-IDs regelmäßig gegen die Dokumentation der Anbieter prüfen
PROVIDER_CATALOG: dict[Provider, ProviderConfig] = {
    Provider.OPENAI: ProviderConfig(
        provider=Provider.OPENAI,
        name="OpenAI",
        default_model="gpt-4.1-mini",
        models=(
            ModelConfig("gpt-4.1", "GPT-4.1"),
            ModelConfig("gpt-4.1-mini", "GPT-4.1 Mini"),
            ModelConfig("gpt-4.1-nano", "GPT-4.1 Nano"),
            ModelConfig("o3", "O3"),
            ModelConfig("o3-pro", "O3 Pro"),
            ModelConfig("o4-mini", "O4 Mini"),
            ModelConfig("o4-mini-high", "O4 Mini High"),
            ModelConfig("gpt-4o", "GPT-4 Omni"),
            ModelConfig("gpt-4o-mini", "GPT-4 Omni Mini"),
            ModelConfig("gpt-4o-audio", "GPT-4 Omni Audio"),
            ModelConfig("gpt-4-turbo", "GPT-4 Turbo", deprecated=True),
            ModelConfig("gpt-4", "GPT-4", deprecated=True),
            ModelConfig("gpt-3.5-turbo", "GPT-3.5 Turbo", deprecated=True),
        ),
    ),
    Provider.ANTHROPIC: ProviderConfig(
        provider=Provider.ANTHROPIC,
        name="Anthropic",
        default_model="claude-4-sonnet",
        models=(
            ModelConfig("claude-4-opus", "Claude 4 Opus"),
            ModelConfig("claude-4-sonnet", "Claude 4 Sonnet"),
            ModelConfig("claude-3.7-sonnet", "Claude 3.7 Sonnet"),
            ModelConfig("claude-3-5-sonnet-20241022", "Claude 3.5 Sonnet"),
            ModelConfig("claude-3-5-haiku-20241022", "Claude 3.5 Haiku"),
            ModelConfig("claude-3-opus-20240229", "Claude 3 Opus", deprecated=True),
            ModelConfig("claude-3-sonnet-20240229", "Claude 3 Sonnet", deprecated=True),
            ModelConfig("claude-3-haiku-20240307", "Claude 3 Haiku", deprecated=True),
        ),
    ),
    Provider.GOOGLE: ProviderConfig(
        provider=Provider.GOOGLE,
        name="Google",
        default_model="gemini-2.5-flash",
        models=(
            ModelConfig("gemini-2.5-flash", "Gemini 2.5 Flash"),
            ModelConfig("gemini-2.5-pro", "Gemini 2.5 Pro"),
            ModelConfig("gemini-2.5-flash-lite", "Gemini 2.5 Flash Lite"),
            ModelConfig("gemini-2.0-flash", "Gemini 2.0 Flash"),
            ModelConfig("gemini-2.0-flash-lite", "Gemini 2.0 Flash Lite"),
            ModelConfig("gemini-1.5-pro", "Gemini 1.5 Pro", deprecated=True),
            ModelConfig("gemini-1.5-flash", "Gemini 1.5 Flash", deprecated=True),
            ModelConfig("gemini-1.5-flash-8b", "Gemini 1.5 Flash 8B", deprecated=True),
            ModelConfig("gemma-3", "Gemma 3"),
            ModelConfig("gemma-2", "Gemma 2"),
        ),
    ),
    Provider.COHERE: ProviderConfig(
        provider=Provider.COHERE,
        name="Cohere",
        default_model="command-a-03-2025",
        models=(
            ModelConfig("command-a-03-2025", "Command A"),
            ModelConfig("command-r-plus-08-2024", "Command R+"),
            ModelConfig("command-r-08-2024", "Command R"),
            ModelConfig("command-r7b", "Command R 7B"),
            ModelConfig("command-r-plus", "Command R+ Legacy", deprecated=True),
            ModelConfig("command-r", "Command R Legacy", deprecated=True),
            ModelConfig("command", "Command Legacy", deprecated=True),
        ),
    ),
}


def get_default_model(provider: Provider) -> str:
    """Standardmodell eines Anbieters."""
    return PROVIDER_CATALOG[provider].default_model


def get_models(provider: Provider, include_deprecated: bool = True) -> list[str]:
    """Modell-IDs eines Anbieters, optional ohne veraltete Modelle."""
    return [
        m.id
        for m in PROVIDER_CATALOG[provider].models
        if include_deprecated or not m.deprecated
    ]
