"""
Dependency wiring for the FastAPI app.
"""

from __future__ import annotations

import logging

from portfolio_api.config import get_settings
from portfolio_api.db import DbClient, InMemoryDbClient, PostgresDbClient

logger = logging.getLogger(__name__)

_db_client: DbClient | None = None


def get_db_client() -> DbClient:
    """
    Return a singleton DB client so every request shares one connection pool.
    """
    global _db_client
    if _db_client:
        return _db_client

    settings = get_settings()
    if settings.use_in_memory_backends or not settings.database_url:
        logger.warning("No DATABASE_URL configured; using the in-memory backend")
        _db_client = InMemoryDbClient()
    else:
        _db_client = PostgresDbClient(
            settings.database_url,
            timeout_seconds=settings.storage_timeout_seconds,
            ssl=settings.database_ssl,
        )
    return _db_client


def reset_db_client() -> None:
    global _db_client
    _db_client = None
