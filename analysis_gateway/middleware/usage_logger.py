# analysis_gateway/middleware/usage_logger.py
# Append-only Nutzungsprotokoll: ein Eintrag pro abgerechnetem LLM-Aufruf, KEIN Prompt-Inhalt.
from __future__ import annotations

import asyncio
import logging
import sqlite3
import uuid
from datetime import datetime, timezone

from tenacity import retry, retry_if_exception, stop_after_attempt, wait_exponential

from ..db import execute_query, execute_script
from ..models import UsageRecord

logger = logging.getLogger(__name__)

_SCHEMA = [
    """
    CREATE TABLE IF NOT EXISTS usage_logs (
        id              TEXT PRIMARY KEY,
        user_id         TEXT NOT NULL,
        provider        TEXT NOT NULL,
        model           TEXT NOT NULL,
        token_count     INTEGER NOT NULL,
        estimated_cost  DOUBLE PRECISION NOT NULL,
        used_owner_key  INTEGER NOT NULL DEFAULT 0,
        created_at      DOUBLE PRECISION NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_usage_user ON usage_logs(user_id, created_at)",
    "CREATE INDEX IF NOT EXISTS idx_usage_created ON usage_logs(created_at)",
]


def is_transient_db_error(exc: BaseException) -> bool:
    """
    Nur bei transienten Fehlern erneut versuchen (gesperrte SQLite-Datei, Verbindungsabbruch).
    Schema- oder Datenfehler sofort weiterleiten.
    """
    if isinstance(exc, sqlite3.OperationalError):
        return "locked" in str(exc) or "busy" in str(exc)
    return isinstance(exc, (ConnectionError, asyncio.TimeoutError, OSError))


class UsageLogger:
    """
    Append-Only-Protokoll aller abgerechneten Generierungsaufrufe.

    - Keine UPDATE/DELETE-Operationen auf usage_logs
    - Keine Prompts, Transkripte oder Schlüssel, nur Metadaten und Kosten
    - Einfügen braucht keine Koordination außer dem atomaren INSERT
    """

    def __init__(self, db_url: str) -> None:
        self._db_url = db_url

    async def initialize(self) -> None:
        """Datenbankschema erstellen (idempotent, sicher für mehrfachen Aufruf)."""
        await execute_script(self._db_url, _SCHEMA)
        logger.info("Nutzungsprotokoll initialisiert: %s", self._db_url)

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.1, min=0.1, max=1),
        retry=retry_if_exception(is_transient_db_error),
        reraise=True,
    )
    async def log(self, record: UsageRecord) -> str:
        """Nutzungseintrag schreiben. Gibt die ID des Eintrags zurück."""
        record_id = str(uuid.uuid4())
        await execute_query(
            self._db_url,
            """
            INSERT INTO usage_logs
                (id, user_id, provider, model, token_count, estimated_cost, used_owner_key, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                record_id,
                record.user_id,
                record.provider.value,
                record.model,
                record.token_count,
                record.estimated_cost,
                1 if record.used_owner_key else 0,
                record.created_at.timestamp(),
            ),
        )
        return record_id

    async def list_records(self, limit: int = 50, offset: int = 0) -> list[dict]:
        """Einträge seitenweise, neueste zuerst."""
        rows = await execute_query(
            self._db_url,
            """
            SELECT id, user_id, provider, model, token_count, estimated_cost, used_owner_key, created_at
            FROM usage_logs
            ORDER BY created_at DESC, id DESC
            LIMIT ? OFFSET ?
            """,
            (limit, offset),
            fetch="all",
        )
        return [
            {
                **row,
                "used_owner_key": bool(row["used_owner_key"]),
                "created_at": datetime.fromtimestamp(row["created_at"], tz=timezone.utc).isoformat(),
            }
            for row in rows
        ]

    async def summary_by_user(self, since_timestamp: float = 0.0) -> list[dict]:
        """Token und Kosten pro Nutzer seit since_timestamp (für Admin-Übersicht)."""
        rows = await execute_query(
            self._db_url,
            """
            SELECT user_id,
                   COUNT(*)            AS requests,
                   SUM(token_count)    AS tokens,
                   SUM(estimated_cost) AS cost_usd,
                   SUM(used_owner_key) AS owner_key_requests
            FROM usage_logs
            WHERE created_at >= ?
            GROUP BY user_id
            ORDER BY user_id
            """,
            (since_timestamp,),
            fetch="all",
        )
        return [
            {
                "user_id": row["user_id"],
                "requests": int(row["requests"]),
                "tokens": int(row["tokens"] or 0),
                "cost_usd": round(float(row["cost_usd"] or 0.0), 6),
                "owner_key_requests": int(row["owner_key_requests"] or 0),
            }
            for row in rows
        ]
