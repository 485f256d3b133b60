# tests/test_providers.py
# Anbieter-Adapter: Wire-Format, Token-Mapping, Fehlerumwandlung
# Alle externen HTTP-Aufrufe werden mit respx gemockt
from __future__ import annotations

import json
import logging

import httpx
import pytest
import pytest_asyncio
import respx

from analysis_gateway.errors import ProviderError
from analysis_gateway.models import GenerationRequest, Provider
from analysis_gateway.providers import (
    ADAPTERS,
    AnthropicProvider,
    CohereProvider,
    GoogleProvider,
    OpenAIProvider,
    ProviderFactory,
)

OPENAI_URL = "https://api.openai.com/v1/chat/completions"
ANTHROPIC_URL = "https://api.anthropic.com/v1/messages"
GOOGLE_URL = (
    "https://generativelanguage.googleapis.com/v1beta/models/gemini-2.5-flash:generateContent"
)
COHERE_URL = "https://api.cohere.ai/v1/chat"


# ─── Hilfsfunktionen ────────────────────────────────────────────────────────


@pytest_asyncio.fixture
async def client():
    async with httpx.AsyncClient() as http_client:
        yield http_client


def make_request(model: str | None = None) -> GenerationRequest:
    return GenerationRequest(
        system_prompt="Du bist Finanzanalyst.",
        user_message="Transkript Q2...",
        model=model,
        max_tokens=1234,
        temperature=0.2,
    )


def sent_json(route) -> dict:
    return json.loads(route.calls.last.request.content)


# ─── Wire-Format und Token-Mapping ──────────────────────────────────────────


@respx.mock
async def test_openai_wire_format(client):
    route = respx.post(OPENAI_URL).mock(
        return_value=httpx.Response(
            200,
            json={
                "model": "gpt-4o-mini-2024-07-18",
                "choices": [{"message": {"role": "assistant", "content": "Summary..."}}],
                "usage": {"prompt_tokens": 100, "completion_tokens": 50, "total_tokens": 150},
            },
        )
    )
    response = await OpenAIProvider("sk-test", client).generate_response(
        make_request("gpt-4o-mini")
    )

    payload = sent_json(route)
    assert payload["model"] == "gpt-4o-mini"
    assert payload["messages"] == [
        {"role": "system", "content": "Du bist Finanzanalyst."},
        {"role": "user", "content": "Transkript Q2..."},
    ]
    assert payload["max_tokens"] == 1234
    assert payload["temperature"] == 0.2
    assert route.calls.last.request.headers["Authorization"] == "Bearer sk-test"

    assert response.content == "Summary..."
    assert response.model == "gpt-4o-mini-2024-07-18"
    assert response.provider == Provider.OPENAI
    assert (response.usage.prompt_tokens, response.usage.completion_tokens) == (100, 50)
    assert response.usage.total_tokens == 150


@respx.mock
async def test_anthropic_wire_format(client):
    route = respx.post(ANTHROPIC_URL).mock(
        return_value=httpx.Response(
            200,
            json={
                "content": [{"type": "text", "text": "Analyse"}],
                "usage": {"input_tokens": 30, "output_tokens": 12},
            },
        )
    )
    response = await AnthropicProvider("sk-ant", client).generate_response(make_request())

    payload = sent_json(route)
    assert payload["model"] == "claude-4-sonnet"
    assert payload["system"] == "Du bist Finanzanalyst."
    assert payload["messages"] == [{"role": "user", "content": "Transkript Q2..."}]
    assert payload["max_tokens"] == 1234
    headers = route.calls.last.request.headers
    assert headers["x-api-key"] == "sk-ant"
    assert headers["anthropic-version"] == "2023-06-01"

    assert response.content == "Analyse"
    assert response.usage.total_tokens == 42


@respx.mock
async def test_google_wire_format(client):
    route = respx.post(GOOGLE_URL).mock(
        return_value=httpx.Response(
            200,
            json={
                "candidates": [{"content": {"parts": [{"text": "Gemini-Analyse"}]}}],
                "usageMetadata": {
                    "promptTokenCount": 7,
                    "candidatesTokenCount": 5,
                    "totalTokenCount": 12,
                },
            },
        )
    )
    response = await GoogleProvider("g-key", client).generate_response(make_request())

    request = route.calls.last.request
    assert request.headers["x-goog-api-key"] == "g-key"
    assert "g-key" not in str(request.url)
    payload = sent_json(route)
    assert payload["contents"] == [
        {"parts": [{"text": "Du bist Finanzanalyst.\n\nUser: Transkript Q2..."}]}
    ]
    assert payload["generationConfig"] == {"maxOutputTokens": 1234, "temperature": 0.2}

    assert response.content == "Gemini-Analyse"
    assert response.model == "gemini-2.5-flash"
    assert response.usage.total_tokens == 12


@respx.mock
async def test_google_key_never_logged(client, caplog):
    respx.post(GOOGLE_URL).mock(
        return_value=httpx.Response(
            200, json={"candidates": [{"content": {"parts": [{"text": "x"}]}}]}
        )
    )
    caplog.set_level(logging.DEBUG, logger="httpx")

    await GoogleProvider("AIza-geheim", client).generate_response(make_request())

    assert caplog.records
    assert "AIza-geheim" not in caplog.text


@respx.mock
async def test_cohere_wire_format(client):
    route = respx.post(COHERE_URL).mock(
        return_value=httpx.Response(
            200,
            json={"text": "Cohere-Analyse", "meta": {"tokens": {"input_tokens": 9, "output_tokens": 4}}},
        )
    )
    response = await CohereProvider("co-key", client).generate_response(make_request("command-r"))

    payload = sent_json(route)
    assert payload == {
        "model": "command-r",
        "message": "Transkript Q2...",
        "preamble": "Du bist Finanzanalyst.",
        "max_tokens": 1234,
        "temperature": 0.2,
    }
    assert response.content == "Cohere-Analyse"
    assert response.usage.total_tokens == 13


# ─── Fehlende Usage-Daten ───────────────────────────────────────────────────


@pytest.mark.parametrize(
    "adapter_cls, url, body",
    [
        (OpenAIProvider, OPENAI_URL, {"choices": [{"message": {"content": "x"}}]}),
        (AnthropicProvider, ANTHROPIC_URL, {"content": [{"text": "x"}]}),
        (GoogleProvider, GOOGLE_URL, {"candidates": [{"content": {"parts": [{"text": "x"}]}}]}),
        (CohereProvider, COHERE_URL, {"text": "x"}),
    ],
)
@respx.mock
async def test_missing_usage_reports_zeros(client, adapter_cls, url, body):
    respx.post(url__startswith=url).mock(return_value=httpx.Response(200, json=body))
    response = await adapter_cls("key", client).generate_response(make_request())
    assert response.content == "x"
    assert response.usage.model_dump() == {
        "prompt_tokens": 0,
        "completion_tokens": 0,
        "total_tokens": 0,
    }


# ─── Fehlerumwandlung ───────────────────────────────────────────────────────


@respx.mock
async def test_non_2xx_becomes_provider_error(client):
    respx.post(OPENAI_URL).mock(
        return_value=httpx.Response(429, json={"error": {"message": "Rate limit"}})
    )
    with pytest.raises(ProviderError) as exc_info:
        await OpenAIProvider("sk-test", client).generate_response(make_request())

    error = exc_info.value
    assert error.status_code == 502
    assert error.upstream_status == 429
    assert "Rate limit" in error.body
    assert "429" in error.message


@respx.mock
async def test_single_call_without_retry(client):
    route = respx.post(ANTHROPIC_URL).mock(return_value=httpx.Response(503, text="overloaded"))
    with pytest.raises(ProviderError):
        await AnthropicProvider("sk-ant", client).generate_response(make_request())
    assert route.call_count == 1


@respx.mock
async def test_timeout_becomes_provider_error(client):
    respx.post(COHERE_URL).mock(side_effect=httpx.ReadTimeout("zu langsam"))
    with pytest.raises(ProviderError) as exc_info:
        await CohereProvider("co-key", client).generate_response(make_request())
    assert exc_info.value.upstream_status is None


@respx.mock
async def test_malformed_success_body_becomes_provider_error(client):
    respx.post(OPENAI_URL).mock(return_value=httpx.Response(200, json={"choices": []}))
    with pytest.raises(ProviderError):
        await OpenAIProvider("sk-test", client).generate_response(make_request())


@respx.mock
async def test_non_json_body_becomes_provider_error(client):
    respx.post(COHERE_URL).mock(return_value=httpx.Response(200, text="<html>"))
    with pytest.raises(ProviderError):
        await CohereProvider("co-key", client).generate_response(make_request())


# ─── Factory ────────────────────────────────────────────────────────────────


def test_every_provider_has_exactly_one_adapter():
    assert set(ADAPTERS) == set(Provider)
    for provider, adapter_cls in ADAPTERS.items():
        assert adapter_cls.provider == provider


async def test_factory_creates_independent_adapters(client):
    factory = ProviderFactory(client=client)
    first = factory.create(Provider.OPENAI, "sk-a")
    second = factory.create(Provider.OPENAI, "sk-b")
    assert first is not second
    assert first.default_model() == "gpt-4.1-mini"
    assert "sk-a" not in repr(first)
    # Fremder Client wird beim Shutdown nicht geschlossen
    await factory.shutdown()
    assert not client.is_closed


def test_factory_requires_initialize():
    with pytest.raises(RuntimeError):
        ProviderFactory().create(Provider.OPENAI, "sk")
