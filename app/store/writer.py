"""Transactional writer for the ``embeddings`` table.

Write path for both POST /insert and POST /insert-batch:
  1. Validate every item (no embedding or I/O on failure)
  2. Embed all texts in one model call
  3. Upsert every row inside a single BEGIN IMMEDIATE transaction

A failure in step 3 rolls back the whole batch, so readers never observe a
partial write. Re-inserting an id replaces its content and embedding.
"""

from __future__ import annotations

import logging
from typing import Any, Mapping, Sequence, Union

from app.config import settings
from app.embeddings.provider import embed_batch
from app.errors import ValidationError
from app.models.schema import InsertBatchResponse, InsertItem, InsertResponse
from app.store import queries as Q
from app.store.codec import to_blob
from app.store.connection import sqlite_connection, transaction

logger = logging.getLogger(__name__)

ItemLike = Union[InsertItem, Mapping[str, Any]]


def _field(item: ItemLike, name: str) -> Any:
    if isinstance(item, Mapping):
        return item.get(name)
    return getattr(item, name, None)


def _validate_item(item: ItemLike, position: int | None = None) -> tuple[str, str]:
    where = f" (item {position})" if position is not None else ""
    record_id = _field(item, "id")
    text = _field(item, "text")

    if not record_id or not text:
        raise ValidationError(
            "Missing required fields",
            f"Each item must have 'id' and 'text' fields{where}",
        )
    if not isinstance(record_id, str) or not isinstance(text, str):
        raise ValidationError(
            "Invalid input types",
            f"Both 'id' and 'text' must be strings{where}",
        )
    if not text.strip():
        raise ValidationError("Empty text", f"Text content cannot be empty{where}")
    return record_id, text


def _validate_batch(items: Sequence[ItemLike] | None) -> list[tuple[str, str]]:
    if not isinstance(items, Sequence) or isinstance(items, (str, bytes)) or len(items) == 0:
        raise ValidationError("Invalid input", "'items' must be a non-empty array")
    if len(items) > settings.max_batch_size:
        raise ValidationError(
            "Batch too large",
            f"Maximum {settings.max_batch_size} items per batch",
        )
    return [_validate_item(item, i) for i, item in enumerate(items)]


def _write(pairs: list[tuple[str, str]], blobs: list[bytes]) -> int:
    changes = 0
    with sqlite_connection() as conn:
        with transaction(conn):
            for (record_id, text), blob in zip(pairs, blobs):
                cursor = conn.execute(Q.UPSERT_EMBEDDING, (record_id, text, blob))
                changes += cursor.rowcount
    return changes


def insert_batch(items: Sequence[ItemLike] | None) -> InsertBatchResponse:
    """Validate, embed and atomically upsert up to ``max_batch_size`` items."""
    pairs = _validate_batch(items)

    vectors = embed_batch([text for _, text in pairs])
    blobs = [to_blob(v) for v in vectors]

    changes = _write(pairs, blobs)
    logger.info("Batch upserted %d items (%d changes).", len(pairs), changes)
    return InsertBatchResponse(inserted=len(pairs), changes=changes)


def insert_one(record_id: Any, text: Any) -> InsertResponse:
    """Single-item insert, still wrapped in its own transaction."""
    pair = _validate_item({"id": record_id, "text": text})

    vector = embed_batch([pair[1]])[0]
    changes = _write([pair], [to_blob(vector)])
    logger.debug("Upserted %s", pair[0])
    return InsertResponse(id=pair[0], embedding_dimension=len(vector), changes=changes)
