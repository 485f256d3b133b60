# tests/test_template_renderer.py
# TemplateRenderer + TemplateStore: Settings-Merge, vollständige Validierung, Platzhalter-Ersetzung
import pytest

from analysis_gateway.errors import ValidationError
from analysis_gateway.models import GenerationSettings, GenerationSettingsOverride, Template
from analysis_gateway.templates import TemplateRenderer


@pytest.fixture
def renderer():
    return TemplateRenderer()


# ─── Settings-Merge ─────────────────────────────────────────────────────────


def test_override_wins_field_by_field(renderer):
    """{temperature:0.3, top_p:0.9} + {temperature:0.7} → {temperature:0.7, top_p:0.9}."""
    merged = renderer.merge_settings({"temperature": 0.3, "top_p": 0.9}, {"temperature": 0.7})
    assert merged.temperature == 0.7
    assert merged.top_p == 0.9


def test_unset_fields_keep_builtin_defaults(renderer):
    merged = renderer.merge_settings(None, None)
    assert merged == GenerationSettings()


def test_zero_temperature_is_kept(renderer):
    """0 ist ein gültiger Wert und darf nicht durch den Default ersetzt werden."""
    merged = renderer.merge_settings(
        GenerationSettingsOverride(temperature=0.9), GenerationSettingsOverride(temperature=0.0)
    )
    assert merged.temperature == 0.0


def test_validation_reports_every_failing_field(renderer):
    with pytest.raises(ValidationError) as exc_info:
        renderer.merge_settings({}, {"temperature": 2.5, "top_p": -0.1})
    assert exc_info.value.fields == ["temperature", "top_p"]
    assert exc_info.value.to_body()["fields"] == ["temperature", "top_p"]


@pytest.mark.parametrize(
    "override, field",
    [
        ({"max_tokens": 0}, "max_tokens"),
        ({"frequency_penalty": -2.1}, "frequency_penalty"),
        ({"presence_penalty": 2.1}, "presence_penalty"),
    ],
)
def test_out_of_range_rejected(renderer, override, field):
    with pytest.raises(ValidationError) as exc_info:
        renderer.merge_settings(None, override)
    assert exc_info.value.fields == [field]


def test_range_bounds_are_inclusive(renderer):
    merged = renderer.merge_settings(
        None,
        {"temperature": 2.0, "top_p": 0.0, "max_tokens": 1,
         "frequency_penalty": -2.0, "presence_penalty": 2.0},
    )
    assert merged.max_tokens == 1


# ─── Platzhalter ────────────────────────────────────────────────────────────


def test_unknown_placeholder_left_intact(renderer):
    result = renderer.substitute("Role: {role}, X: {missing}", {"role": "Analyst"})
    assert result == "Role: Analyst, X: {missing}"


def test_substitution_is_not_recursive(renderer):
    result = renderer.substitute("{a} {b}", {"a": "{b}", "b": "B"})
    assert result == "{b} B"


def test_empty_value_replaces_token(renderer):
    assert renderer.substitute("[{x}]", {"x": ""}) == "[]"


def test_non_identifier_braces_untouched(renderer):
    body = 'JSON: {"key": 1} und { role }'
    assert renderer.substitute(body, {"role": "R", "key": "K"}) == body


# ─── Rendern ────────────────────────────────────────────────────────────────


def test_render_precedence(renderer, sample_template):
    """Defaults ← Template ← Request; Request-Variablen überschreiben abgeleitete."""
    rendered = renderer.render(
        sample_template,
        {"sector": "Banken", "role": "Du bist Prüfer."},
        GenerationSettingsOverride(max_tokens=100),
    )
    assert rendered.settings.temperature == 0.3
    assert rendered.settings.max_tokens == 100
    assert rendered.settings.top_p == 1.0
    assert rendered.system_prompt == (
        "Du bist Prüfer.\nRegeln: Zahlen prüfen, Quellen nennen\nSektor: Banken"
    )


def test_render_derives_role_from_template_name(renderer, sample_template):
    rendered = renderer.render(sample_template)
    assert rendered.system_prompt.startswith(
        "You are a financial analyst specializing in Banking companies."
    )
    assert rendered.system_prompt.endswith("Sektor: {sector}")


def test_render_without_prompt_uses_fallback(renderer):
    rendered = renderer.render(Template(id="t2", name="Retail"))
    assert "Retail companies" in rendered.system_prompt


def test_invalid_template_settings_fail_before_substitution(renderer, sample_template):
    with pytest.raises(ValidationError):
        renderer.render(sample_template, override={"temperature": 3})


# ─── TemplateStore ──────────────────────────────────────────────────────────


async def test_store_round_trip(template_store, sample_template):
    await template_store.save(sample_template)
    loaded = await template_store.get_active("t1")
    assert loaded == sample_template


async def test_inactive_template_is_invisible(template_store, sample_template):
    await template_store.save(sample_template.model_copy(update={"is_active": False}))
    assert await template_store.get_active("t1") is None
    assert await template_store.list_active() == []


async def test_save_replaces_existing(template_store, sample_template):
    await template_store.save(sample_template)
    await template_store.save(sample_template.model_copy(update={"name": "Versicherung"}))
    templates = await template_store.list_active()
    assert [t.name for t in templates] == ["Versicherung"]
