from __future__ import annotations

import logging
from typing import Iterable

import aiosqlite

from .errors import PersistenceError
from .services.document_store import DocumentStore

log = logging.getLogger("tipline.database")


async def initialize_database(sqlite_path: str, stores: Iterable[DocumentStore]) -> None:
    """Apply SQLite pragmas and create the document tables."""
    try:
        async with aiosqlite.connect(sqlite_path) as db:
            await db.execute("PRAGMA journal_mode=WAL")
            await db.execute("PRAGMA synchronous=NORMAL")
            await db.execute("PRAGMA temp_store=MEMORY")
            await db.commit()
        log.info("Applied SQLite optimizations")

        for store in stores:
            await store.init()
            log.info("Initialized %s at %s", store.__class__.__name__, store.path)

        log.info("Database initialization completed")
    except aiosqlite.Error as e:
        log.error("Failed to initialize database: %s", e)
        raise PersistenceError(detail=f"database init failed: {e}") from e
