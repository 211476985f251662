"""Vector ⇄ BLOB conversion.

Embeddings are stored as a contiguous buffer of D little-endian float32
values (``4 * D`` bytes), the layout sqlite-vec reads natively.
"""

from __future__ import annotations

from typing import Sequence

import numpy as np

from app.config import settings

VECTOR_DTYPE = np.dtype("<f4")


def blob_size(dim: int | None = None) -> int:
    return (dim or settings.embedding_dim) * VECTOR_DTYPE.itemsize


def to_blob(vector: Sequence[float] | np.ndarray) -> bytes:
    """Serialise a D-length vector to its on-disk bytes."""
    arr = np.asarray(vector, dtype=VECTOR_DTYPE)
    if arr.ndim != 1 or arr.shape[0] != settings.embedding_dim:
        raise ValueError(
            f"Vector must have exactly {settings.embedding_dim} dimensions, got shape {arr.shape}"
        )
    return arr.tobytes()


def from_blob(blob: bytes) -> np.ndarray:
    """Decode a stored BLOB. Raises ValueError on truncated or mis-sized data."""
    if not isinstance(blob, (bytes, bytearray, memoryview)):
        raise ValueError(f"Expected bytes, got {type(blob).__name__}")
    if len(blob) != blob_size():
        raise ValueError(f"Embedding blob has {len(blob)} bytes, expected {blob_size()}")
    return np.frombuffer(blob, dtype=VECTOR_DTYPE)
