# analysis_gateway/templates/renderer.py
# Template-Renderer: Einstellungen zusammenführen + validieren, {platzhalter} ersetzen
from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import Any, Mapping

from pydantic import ValidationError as PydanticValidationError

from ..errors import ValidationError
from ..models import GenerationSettings, GenerationSettingsOverride, Template

# {identifier}: Bezeichner wie in Python, keine Leerzeichen, keine verschachtelten Klammern
PLACEHOLDER_PATTERN = re.compile(r"\{([A-Za-z_][A-Za-z0-9_]*)\}")

FALLBACK_PROMPT = (
    "You are a financial analyst specializing in {name} companies. "
    "Please provide a detailed analysis of this earnings transcript."
)


@dataclass(frozen=True)
class RenderedPrompt:
    system_prompt: str
    settings: GenerationSettings


def _as_override(
    settings: GenerationSettings | GenerationSettingsOverride | Mapping[str, Any] | None,
) -> dict[str, Any]:
    """Gesetzte Felder als dict (None = nicht gesetzt)."""
    if settings is None:
        return {}
    if isinstance(settings, (GenerationSettings, GenerationSettingsOverride)):
        return settings.model_dump(exclude_none=True)
    return {key: value for key, value in settings.items() if value is not None}


class TemplateRenderer:
    """
    Zwei unabhängige Operationen:

    1. merge_settings(): Felder des Overrides gewinnen einzeln, nicht gesetzte Felder
       behalten den Default (flacher Feld-für-Feld-Merge, kein Ersetzen).
       Danach Bereichsprüfung, ALLE fehlerhaften Felder werden gemeldet.
    2. substitute(): einmaliger, nicht rekursiver Durchlauf über {identifier}-Token.
       Unbekannte Token bleiben wörtlich stehen.
    """

    def merge_settings(
        self,
        defaults: GenerationSettings | GenerationSettingsOverride | Mapping[str, Any] | None,
        override: GenerationSettingsOverride | Mapping[str, Any] | None = None,
    ) -> GenerationSettings:
        merged = {**_as_override(defaults), **_as_override(override)}
        try:
            return GenerationSettings.model_validate(merged)
        except PydanticValidationError as exc:
            fields = sorted({str(err["loc"][0]) for err in exc.errors() if err["loc"]})
            raise ValidationError(
                f"Ungültige Generierungseinstellungen: {', '.join(fields)}",
                fields=fields,
            ) from exc

    def substitute(self, body: str, variables: Mapping[str, Any]) -> str:
        def _replace(match: re.Match) -> str:
            name = match.group(1)
            if name not in variables:
                return match.group(0)
            return str(variables[name])

        # re.sub scannt das Ergebnis nicht erneut → ersetzte Werte bleiben unberührt
        return PLACEHOLDER_PATTERN.sub(_replace, body)

    def template_variables(self, template: Template) -> dict[str, str]:
        """Aus dem Template abgeleitete Standardvariablen."""
        rules = template.classification_rules or {}
        metrics = template.key_metrics or {}
        return {
            "role": f"You are a financial analyst specializing in {template.name} companies.",
            "classification_rules": json.dumps(rules),
            "temporal_tags": json.dumps(rules.get("temporal_tags", [])),
            "operating_metrics": json.dumps(metrics.get("operating_performance", [])),
            "segment_metrics": json.dumps(metrics.get("segment_performance", [])),
            "financial_metrics": json.dumps(metrics.get("financial_metrics", [])),
            "validation_rules": ", ".join(template.validation_rules or []),
            "special_considerations": json.dumps(template.special_considerations or {}),
            "output_format": json.dumps(template.output_format or {}),
        }

    def render(
        self,
        template: Template,
        variables: Mapping[str, Any] | None = None,
        override: GenerationSettingsOverride | Mapping[str, Any] | None = None,
    ) -> RenderedPrompt:
        """
        System-Prompt und Einstellungen für eine Anfrage erzeugen.

        Reihenfolge der Einstellungen: eingebaute Defaults ← Template ← Request-Override.
        Request-Variablen überschreiben die aus dem Template abgeleiteten.
        Die Einstellungen werden zuerst geprüft (fail fast vor jedem Provider-Aufruf).
        """
        settings = self.merge_settings(template.llm_settings, override)

        body = template.system_prompt_template or FALLBACK_PROMPT.replace("{name}", template.name)
        merged_vars = {**self.template_variables(template), **(variables or {})}
        return RenderedPrompt(system_prompt=self.substitute(body, merged_vars), settings=settings)
