"""Read-side access to the ``embeddings`` table: counts, bounded scans, stats."""

from __future__ import annotations

import logging
import sqlite3
from typing import Optional

from app.config import settings
from app.errors import ResourceLimitError
from app.models.schema import (
    DatabaseStats,
    DistanceRange,
    EmbeddingRecord,
    EmbeddingStats,
    LimitStats,
    StatsResponse,
)
from app.store import queries as Q
from app.store.codec import from_blob
from app.store.connection import sqlite_connection, transaction

logger = logging.getLogger(__name__)


def count_rows(conn: sqlite3.Connection) -> int:
    return int(conn.execute(Q.COUNT_EMBEDDINGS).fetchone()["count"])


def _too_large(max_rows: int) -> ResourceLimitError:
    return ResourceLimitError(
        "Database too large for fallback mode",
        f"Fallback mode supports up to {max_rows} rows. Please install a vector extension.",
    )


def all_rows(conn: sqlite3.Connection, max_rows: int) -> list[sqlite3.Row]:
    """Load every (id, content, embedding) row, refusing if more than *max_rows*.

    The count check runs before anything is materialised; the scan itself is
    also capped so rows committed in between cannot push past the ceiling.
    """
    with transaction(conn, immediate=False):
        total = count_rows(conn)
        if total > max_rows:
            raise _too_large(max_rows)
        rows = conn.execute(f"{Q.ALL_EMBEDDINGS} LIMIT ?", (max_rows + 1,)).fetchall()
    if len(rows) > max_rows:
        raise _too_large(max_rows)
    return rows


def get_record(record_id: str) -> Optional[EmbeddingRecord]:
    """Fetch and decode one stored record, or None."""
    with sqlite_connection() as conn:
        row = conn.execute(Q.GET_EMBEDDING, (record_id,)).fetchone()
    if row is None:
        return None
    return EmbeddingRecord(
        id=row["id"],
        content=row["content"],
        embedding=from_blob(row["embedding"]).tolist(),
    )


def collect_stats() -> StatsResponse:
    """Row count, blob sizes and on-disk size of the store."""
    with sqlite_connection() as conn:
        stats = conn.execute(Q.EMBEDDING_STATS).fetchone()
        db_size = conn.execute(Q.DATABASE_SIZE).fetchone()

    return StatsResponse(
        embeddings=EmbeddingStats(
            count=stats["total_embeddings"] or 0,
            avg_size=round(stats["avg_embedding_size"] or 0),
            total_size=stats["total_storage_bytes"] or 0,
            dimension=settings.embedding_dim,
        ),
        database=DatabaseStats(
            total_size=db_size["size"] if db_size else 0,
            model=settings.embedding_model,
        ),
        limits=LimitStats(
            max_fallback_rows=settings.max_fallback_rows,
            max_top_k=settings.max_top_k,
            max_batch_size=settings.max_batch_size,
            distance_range=DistanceRange(
                min=settings.distance_min, max=settings.distance_max
            ),
        ),
    )
