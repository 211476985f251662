"""Prepare the SQLite store at startup: journaling, integrity, tables, model metadata.

Safe to run on every start; all DDL is ``IF NOT EXISTS``.
"""

from __future__ import annotations

import logging
import sqlite3
from pathlib import Path

from app.config import settings
from app.errors import ModelMismatchError
from app.models.schema import ModelMetadata
from app.store import queries as Q
from app.store.codec import blob_size
from app.store.connection import sqlite_connection, transaction

logger = logging.getLogger(__name__)


def _check_integrity(conn: sqlite3.Connection) -> bool:
    """Run PRAGMA integrity_check; log instead of failing the process."""
    try:
        rows = conn.execute(Q.PRAGMA_INTEGRITY).fetchall()
    except sqlite3.DatabaseError as exc:
        logger.error("Database integrity check could not run: %s", exc)
        return False
    messages = [r[0] for r in rows]
    if messages != ["ok"]:
        logger.warning("Database integrity check warning: %s", "; ".join(messages))
        return False
    return True


def check_model_metadata(conn: sqlite3.Connection) -> ModelMetadata:
    """Record the configured model on first start, warn on later mismatch.

    Returns the metadata as stored in the database.
    """
    with transaction(conn):
        row = conn.execute(Q.GET_METADATA, (Q.MODEL_KEY,)).fetchone()
        if row is None:
            conn.execute(Q.INSERT_METADATA, (Q.MODEL_KEY, settings.embedding_model))
            logger.info("Recorded embedding model '%s' in metadata.", settings.embedding_model)
            return ModelMetadata(model=settings.embedding_model)

    stored = row["value"]
    if stored != settings.embedding_model:
        if settings.model_mismatch_fatal:
            raise ModelMismatchError(
                "Embedding model mismatch",
                f"DB has {stored}, configured {settings.embedding_model}",
            )
        logger.warning(
            "Model mismatch: DB has %s, using %s", stored, settings.embedding_model
        )
    return ModelMetadata(model=stored)


def initialize_store() -> None:
    """Enable WAL, verify integrity, create tables and record model metadata."""
    db_path = Path(settings.database_path)
    db_path.parent.mkdir(parents=True, exist_ok=True)

    with sqlite_connection() as conn:
        mode = conn.execute(Q.PRAGMA_WAL).fetchone()[0]
        if str(mode).lower() != "wal":
            logger.warning("Could not enable WAL journaling (journal_mode=%s)", mode)

        _check_integrity(conn)

        conn.execute(Q.CREATE_METADATA)
        conn.execute(Q.CREATE_EMBEDDINGS.format(blob_size=blob_size()))
        check_model_metadata(conn)

    logger.info("Database initialized at %s", db_path)
