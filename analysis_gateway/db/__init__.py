# Datenbank-Abstraktion (SQLite für dev, PostgreSQL für production)

from .database import execute_query, execute_script, is_postgres

__all__ = ["execute_query", "execute_script", "is_postgres"]
