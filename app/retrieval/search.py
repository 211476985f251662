"""Nearest-neighbour search over the ``embeddings`` table.

Two interchangeable strategies, selected by the cached distance resolution:

  • NativeSearch   — one SQL scan; the extension computes the distance
  • FallbackSearch — bounded row load + numpy cosine distance in-process

Both return hits with ``distance <= threshold``, ascending by distance
(ties by id), truncated to ``top_k``.
"""

from __future__ import annotations

import logging
import math
import numbers
import sqlite3
from typing import Any, Optional, Sequence

import numpy as np

from app.config import settings
from app.embeddings.provider import embed_text
from app.errors import ValidationError
from app.models.schema import SearchHit, SearchMetadata, SearchResponse
from app.retrieval.utils import cosine_distances
from app.store import queries as Q
from app.store.codec import from_blob, to_blob
from app.store.connection import sqlite_connection, transaction
from app.store.distance import DistanceResolution, NativeDistance, get_distance_function
from app.store.reader import all_rows

logger = logging.getLogger(__name__)


# ── Strategies ─────────────────────────────────────────────────────────────────


def _decode_row(row: sqlite3.Row) -> np.ndarray | None:
    """Decode a stored embedding; log and return None for corrupt rows."""
    try:
        vector = from_blob(row["embedding"])
        if not np.all(np.isfinite(vector)):
            raise ValueError("non-finite component")
    except ValueError as exc:
        logger.warning("Skipping invalid embedding for id %s: %s", row["id"], exc)
        return None
    return vector


class NativeSearch:
    def __init__(self, function: str):
        self.function = function

    def __call__(
        self, conn: sqlite3.Connection, query: np.ndarray, top_k: int, threshold: float
    ) -> list[SearchHit]:
        sql = Q.NATIVE_SEARCH.format(func=self.function)
        with transaction(conn, immediate=False):
            rows = conn.execute(sql, (to_blob(query), threshold, top_k)).fetchall()
            undefined = [
                conn.execute(Q.GET_EMBEDDING, (r["id"],)).fetchone()
                for r in rows
                if r["distance"] is None
            ]

        hits = [
            SearchHit(id=r["id"], content=r["content"], distance=float(r["distance"]))
            for r in rows
            if r["distance"] is not None
        ]
        hits.extend(self._resolve_undefined(undefined, query))
        hits.sort(key=lambda h: (h.distance, h.id))
        return hits[:top_k]

    @staticmethod
    def _resolve_undefined(rows: list[sqlite3.Row | None], query: np.ndarray) -> list[SearchHit]:
        """Zero-magnitude pairs score 0.0, as in the fallback; corrupt rows are skipped."""
        query_is_zero = not np.any(query)
        hits = []
        for row in rows:
            if row is None:
                continue
            vector = _decode_row(row)
            if vector is None:
                continue
            if query_is_zero or not np.any(vector):
                hits.append(SearchHit(id=row["id"], content=row["content"], distance=0.0))
            else:
                logger.warning("Skipping id %s: distance function returned NULL", row["id"])
        return hits


class FallbackSearch:
    def __init__(self, max_rows: int):
        self.max_rows = max_rows

    def __call__(
        self, conn: sqlite3.Connection, query: np.ndarray, top_k: int, threshold: float
    ) -> list[SearchHit]:
        rows = all_rows(conn, self.max_rows)

        kept: list[sqlite3.Row] = []
        vectors: list[np.ndarray] = []
        for row in rows:
            vector = _decode_row(row)
            if vector is None:
                continue
            kept.append(row)
            vectors.append(vector)

        if not vectors:
            return []

        distances = cosine_distances(np.vstack(vectors), query)
        hits = [
            SearchHit(id=row["id"], content=row["content"], distance=float(d))
            for row, d in zip(kept, distances)
            if d <= threshold
        ]
        hits.sort(key=lambda h: (h.distance, h.id))
        return hits[:top_k]


def strategy_for(resolution: DistanceResolution):
    if isinstance(resolution, NativeDistance):
        return NativeSearch(resolution.function)
    return FallbackSearch(settings.max_fallback_rows)


# ── Validation ─────────────────────────────────────────────────────────────────


def _validate_top_k(top_k: Any) -> int:
    if isinstance(top_k, bool) or not isinstance(top_k, numbers.Integral):
        raise ValidationError("Invalid topK value", "topK must be an integer")
    if top_k <= 0 or top_k > settings.max_top_k:
        raise ValidationError(
            "Invalid topK value",
            f"topK must be between 1 and {settings.max_top_k}",
        )
    return int(top_k)


def _validate_threshold(threshold: Any) -> float:
    if isinstance(threshold, bool) or not isinstance(threshold, numbers.Real):
        raise ValidationError("Invalid threshold value", "threshold must be a number")
    if (
        math.isnan(threshold)
        or threshold < settings.distance_min
        or threshold > settings.distance_max
    ):
        raise ValidationError(
            "Invalid threshold value",
            f"Threshold must be between {settings.distance_min:g} and {settings.distance_max:g}",
        )
    return float(threshold)


def validate_query_embedding(values: Any) -> np.ndarray:
    """Check a caller-supplied vector: D finite numbers, nothing else."""
    if isinstance(values, (str, bytes)) or not isinstance(values, (Sequence, np.ndarray)):
        raise ValidationError(
            "Invalid queryEmbedding format",
            "queryEmbedding must be an array of numbers",
        )
    if any(isinstance(v, bool) or not isinstance(v, numbers.Real) for v in values):
        raise ValidationError(
            "Invalid embedding values", "All embedding values must be valid numbers"
        )
    arr = np.asarray(values, dtype=np.float64)
    if not np.all(np.isfinite(arr)):
        raise ValidationError(
            "Invalid embedding values", "All embedding values must be valid numbers"
        )
    if arr.ndim != 1 or arr.shape[0] != settings.embedding_dim:
        raise ValidationError(
            "Invalid embedding dimension",
            f"Query embedding must have exactly {settings.embedding_dim} dimensions",
        )
    with np.errstate(over="ignore"):
        arr32 = arr.astype(np.float32)
    if not np.all(np.isfinite(arr32)):
        raise ValidationError(
            "Invalid embedding values",
            "All embedding values must fit in a 32-bit float",
        )
    return arr32


# ── Entry point ────────────────────────────────────────────────────────────────


def search(
    query_text: Optional[str] = None,
    query_embedding: Optional[Sequence[float]] = None,
    top_k: Optional[int] = None,
    threshold: Optional[float] = None,
) -> SearchResponse:
    """Rank stored records by cosine distance to a text or a raw vector."""
    has_text = query_text is not None and query_text != ""
    has_vector = query_embedding is not None

    if not has_text and not has_vector:
        raise ValidationError(
            "Missing query input",
            "Either 'queryText' or 'queryEmbedding' must be provided",
        )
    if has_text and has_vector:
        raise ValidationError(
            "Ambiguous query input",
            "Provide only one of 'queryText' or 'queryEmbedding'",
        )

    top_k = _validate_top_k(settings.default_top_k if top_k is None else top_k)
    threshold = _validate_threshold(
        settings.default_threshold if threshold is None else threshold
    )

    if has_vector:
        query = validate_query_embedding(query_embedding)
    else:
        if not isinstance(query_text, str):
            raise ValidationError("Invalid queryText", "queryText must be a string")
        query = embed_text(query_text)

    resolution = get_distance_function()
    strategy = strategy_for(resolution)
    logger.debug("Search via %s (topK=%d, threshold=%.3f)", resolution.query_method, top_k, threshold)

    with sqlite_connection() as conn:
        hits = strategy(conn, query, top_k, threshold)

    return SearchResponse(
        results=hits,
        metadata=SearchMetadata(
            query_method=resolution.query_method,
            result_count=len(hits),
            top_k=top_k,
            threshold=threshold,
            distance_range=(
                f"{settings.distance_min:g} (identical) to {settings.distance_max:g} (opposite)"
            ),
            embedding_model=settings.embedding_model,
            embedding_dimension=settings.embedding_dim,
        ),
    )
