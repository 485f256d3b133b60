# analysis_gateway/middleware/auth.py
# Aufrufer-Authentifizierung: Bearer-Token → CallerIdentity, SHA256-Hash in der DB
from __future__ import annotations

import hashlib
import logging
import secrets
import time

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from ..db import execute_query, execute_script
from ..models import CallerIdentity

logger = logging.getLogger(__name__)

# Endpunkte ohne Authentifizierungspflicht
# /metrics: Prometheus-Scraping benötigt keinen Token (Netzwerk-Level-Schutz)
PUBLIC_PATHS = frozenset({"/health", "/docs", "/openapi.json", "/redoc", "/metrics", "/api/providers"})
ADMIN_PREFIX = "/admin/"

_SCHEMA = [
    """
    CREATE TABLE IF NOT EXISTS user_tokens (
        token_hash         TEXT PRIMARY KEY,
        user_id            TEXT NOT NULL,
        can_use_owner_key  INTEGER NOT NULL DEFAULT 0,
        is_admin           INTEGER NOT NULL DEFAULT 0,
        is_active          INTEGER NOT NULL DEFAULT 1,
        created_at         DOUBLE PRECISION NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_user_tokens_user ON user_tokens(user_id)",
]


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode()).hexdigest()


def _extract_token(request: Request) -> str | None:
    """Authorization: Bearer <token> oder X-API-Key Header."""
    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        return auth_header[7:].strip() or None
    return request.headers.get("X-API-Key") or None


class CallerStore:
    """
    Zugangstokens der Nutzer.
    Tokens werden als SHA256-Hash gespeichert (nie im Klartext in der DB).
    """

    def __init__(self, db_url: str) -> None:
        self._db_url = db_url

    async def initialize(self) -> None:
        await execute_script(self._db_url, _SCHEMA)

    async def create_token(
        self,
        user_id: str,
        can_use_owner_key: bool = False,
        is_admin: bool = False,
    ) -> str:
        """
        Neues Zugangstoken für einen Nutzer erstellen.

        - Präfix 'agw_' für einfache Erkennung bei versehentlichem Leak
        - Klartext-Token wird nur EINMALIG zurückgegeben
        """
        raw_token = f"agw_{secrets.token_urlsafe(32)}"
        await execute_query(
            self._db_url,
            """
            INSERT INTO user_tokens
                (token_hash, user_id, can_use_owner_key, is_admin, is_active, created_at)
            VALUES (?, ?, ?, ?, 1, ?)
            """,
            (hash_token(raw_token), user_id, int(can_use_owner_key), int(is_admin), time.time()),
        )
        logger.info(
            "Zugangstoken erstellt für Nutzer %s (Owner-Schlüssel: %s, Admin: %s)",
            user_id, can_use_owner_key, is_admin,
        )
        return raw_token

    async def find_caller(self, token: str) -> CallerIdentity | None:
        row = await execute_query(
            self._db_url,
            """
            SELECT user_id, can_use_owner_key, is_admin
            FROM user_tokens WHERE token_hash = ? AND is_active = 1
            """,
            (hash_token(token),),
            fetch="one",
        )
        if not row:
            return None
        return CallerIdentity(
            user_id=row["user_id"],
            can_use_owner_key=bool(row["can_use_owner_key"]),
            is_admin=bool(row["is_admin"]),
        )

    async def revoke(self, user_id: str) -> int:
        """Alle Tokens eines Nutzers deaktivieren. Gibt Anzahl deaktivierter Tokens zurück."""
        count = await execute_query(
            self._db_url,
            "UPDATE user_tokens SET is_active = 0 WHERE user_id = ? AND is_active = 1",
            (user_id,),
            fetch="count",
        )
        logger.info("%d Tokens für Nutzer %s deaktiviert", count, user_id)
        return count


class AuthMiddleware(BaseHTTPMiddleware):
    """
    Token-Validierung für alle geschützten Endpunkte.
    Setzt request.state.caller (CallerIdentity). /admin/* verlangt Admin-Rechte.
    """

    async def dispatch(self, request: Request, call_next) -> Response:
        if request.url.path in PUBLIC_PATHS:
            return await call_next(request)

        token = _extract_token(request)
        if not token:
            # JSONResponse statt Exception: BaseHTTPMiddleware wraps exceptions
            # in ExceptionGroup via anyio → führt zu 500 statt 401
            return JSONResponse(
                status_code=401,
                content={"error": "Authorization-Header fehlt oder ist ungültig"},
            )

        config = request.app.state.config
        if config.admin_api_key and secrets.compare_digest(token, config.admin_api_key):
            request.state.caller = CallerIdentity(user_id="admin", is_admin=True)
            return await call_next(request)

        try:
            caller = await request.app.state.caller_store.find_caller(token)
        except Exception as exc:
            logger.error("Datenbankfehler bei Token-Prüfung: %s", exc)
            return JSONResponse(status_code=500, content={"error": "Interner Serverfehler"})

        if caller is None:
            return JSONResponse(
                status_code=401,
                content={"error": "Ungültige oder abgelaufene Sitzung"},
            )

        if request.url.path.startswith(ADMIN_PREFIX) and not caller.is_admin:
            return JSONResponse(status_code=403, content={"error": "Admin-Zugriff erforderlich"})

        request.state.caller = caller
        return await call_next(request)
