# analysis_gateway/templates/store.py
# Template-Katalog: JSON-Spalten als Text, Gateway liest nur aktive Templates
from __future__ import annotations

import json
import logging

from ..db import execute_query, execute_script, is_postgres
from ..models import GenerationSettingsOverride, Template

logger = logging.getLogger(__name__)

_SCHEMA = [
    """
    CREATE TABLE IF NOT EXISTS templates (
        id                      TEXT PRIMARY KEY,
        name                    TEXT NOT NULL,
        description             TEXT,
        system_prompt_template  TEXT NOT NULL DEFAULT '',
        classification_rules    TEXT,
        key_metrics             TEXT,
        output_format           TEXT,
        validation_rules        TEXT,
        special_considerations  TEXT,
        llm_settings            TEXT,
        is_active               INTEGER NOT NULL DEFAULT 1
    )
    """,
]

_COLUMNS = (
    "id, name, description, system_prompt_template, classification_rules, key_metrics, "
    "output_format, validation_rules, special_considerations, llm_settings, is_active"
)


def _loads(raw: str | None, default):
    if not raw:
        return default
    value = json.loads(raw)
    return default if value is None else value


def _row_to_template(row: dict) -> Template:
    return Template(
        id=row["id"],
        name=row["name"],
        description=row["description"],
        system_prompt_template=row["system_prompt_template"] or "",
        classification_rules=_loads(row["classification_rules"], {}),
        key_metrics=_loads(row["key_metrics"], {}),
        output_format=_loads(row["output_format"], {}),
        validation_rules=_loads(row["validation_rules"], []),
        special_considerations=_loads(row["special_considerations"], {}),
        llm_settings=GenerationSettingsOverride.model_validate(_loads(row["llm_settings"], {})),
        is_active=bool(row["is_active"]),
    )


class TemplateStore:
    """Lesender Zugriff auf den Template-Katalog (Schreiben nur über Admin-Endpunkt)."""

    def __init__(self, db_url: str) -> None:
        self._db_url = db_url

    async def initialize(self) -> None:
        await execute_script(self._db_url, _SCHEMA)

    async def save(self, template: Template) -> Template:
        """Template anlegen oder ersetzen (Upsert nach ID)."""
        params = (
            template.id,
            template.name,
            template.description,
            template.system_prompt_template,
            json.dumps(template.classification_rules),
            json.dumps(template.key_metrics),
            json.dumps(template.output_format),
            json.dumps(template.validation_rules),
            json.dumps(template.special_considerations),
            template.llm_settings.model_dump_json(exclude_none=True),
            1 if template.is_active else 0,
        )
        placeholders = ", ".join("?" for _ in params)
        if is_postgres(self._db_url):
            query = (
                f"INSERT INTO templates ({_COLUMNS}) VALUES ({placeholders}) "
                "ON CONFLICT (id) DO UPDATE SET "
                "name = EXCLUDED.name, description = EXCLUDED.description, "
                "system_prompt_template = EXCLUDED.system_prompt_template, "
                "classification_rules = EXCLUDED.classification_rules, "
                "key_metrics = EXCLUDED.key_metrics, output_format = EXCLUDED.output_format, "
                "validation_rules = EXCLUDED.validation_rules, "
                "special_considerations = EXCLUDED.special_considerations, "
                "llm_settings = EXCLUDED.llm_settings, is_active = EXCLUDED.is_active"
            )
        else:
            query = f"INSERT OR REPLACE INTO templates ({_COLUMNS}) VALUES ({placeholders})"
        await execute_query(self._db_url, query, params)
        logger.info("Template %s gespeichert (aktiv: %s)", template.id, template.is_active)
        return template

    async def get_active(self, template_id: str) -> Template | None:
        """Aktives Template nach ID; inaktive Templates gelten als nicht vorhanden."""
        row = await execute_query(
            self._db_url,
            f"SELECT {_COLUMNS} FROM templates WHERE id = ? AND is_active = 1",
            (template_id,),
            fetch="one",
        )
        return _row_to_template(row) if row else None

    async def list_active(self) -> list[Template]:
        rows = await execute_query(
            self._db_url,
            f"SELECT {_COLUMNS} FROM templates WHERE is_active = 1 ORDER BY name",
            fetch="all",
        )
        return [_row_to_template(row) for row in rows]
