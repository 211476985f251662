"""Shared embedding provider — lock-guarded singleton around sentence-transformers.

Uses all-MiniLM-L6-v2 (384 dimensions) by default. Every vector leaving this
module is mean-pooled, L2-normalised float32 with exactly
``settings.embedding_dim`` components.
Called by: the batch writer and the search engine.
"""

from __future__ import annotations

import logging
import threading
from typing import Any

import numpy as np

from app.config import settings
from app.errors import ProviderError, ValidationError

logger = logging.getLogger(__name__)

_model = None
_model_lock = threading.Lock()
_encode_lock = threading.Lock()


def _load_model():
    """Lazily load the sentence-transformers model (downloads ~90 MB on first run)."""
    global _model
    if _model is None:
        with _model_lock:
            if _model is None:
                from sentence_transformers import SentenceTransformer

                logger.info("Loading embedding model '%s' …", settings.embedding_model)
                try:
                    model = SentenceTransformer(settings.embedding_model)
                except Exception as exc:
                    raise ProviderError(
                        "Failed to load embedding model",
                        f"{settings.embedding_model}: {exc}",
                    ) from exc
                logger.info(
                    "Embedding model loaded (dim=%s).",
                    model.get_sentence_embedding_dimension(),
                )
                _model = model
    return _model


def warm_load() -> None:
    """Force-load the model at startup so the first request isn't slow."""
    _load_model()


def _check_text(text: Any) -> str:
    if not isinstance(text, str) or not text.strip():
        raise ValidationError(
            "Invalid embedding input",
            "Text input must be a non-empty string",
        )
    return text


def _decode_output(output: Any, expected_rows: int) -> np.ndarray:
    """Parse raw model output into an (expected_rows, D) float32 matrix."""
    if output is None or not hasattr(output, "shape") or not hasattr(output, "dtype"):
        raise ProviderError(
            "Invalid embedding output",
            "missing or malformed data/shape",
        )

    arr = np.asarray(output, dtype=np.float32)
    if arr.ndim == 1:
        arr = arr.reshape(1, -1)
    if arr.ndim != 2:
        raise ProviderError("Invalid embedding output", f"unexpected rank {arr.ndim}")

    batch_size, dim = arr.shape
    if batch_size != expected_rows or dim <= 0:
        raise ProviderError(
            "Invalid embedding output",
            f"Invalid dimensions: batchSize={batch_size}, dim={dim}",
        )
    if dim != settings.embedding_dim:
        raise ProviderError(
            "Unexpected embedding dimension",
            f"expected {settings.embedding_dim}, got {dim}",
        )
    if not np.all(np.isfinite(arr)):
        raise ProviderError("Invalid embedding output", "non-finite values in embedding")
    return arr


def _encode(texts: list[str]) -> np.ndarray:
    model = _load_model()
    try:
        with _encode_lock:
            output = model.encode(
                texts,
                normalize_embeddings=True,
                convert_to_numpy=True,
                show_progress_bar=False,
            )
    except Exception as exc:
        logger.error("Embedding generation failed: %s", exc)
        raise ProviderError("Failed to generate embedding", str(exc)) from exc
    return _decode_output(output, expected_rows=len(texts))


def embed_text(text: str) -> np.ndarray:
    """Embed a single text string → float32 vector of length D."""
    return _encode([_check_text(text)])[0]


def embed_batch(texts: list[str]) -> list[np.ndarray]:
    """Embed a batch of texts in a single model call."""
    if not texts:
        return []
    checked = [_check_text(t) for t in texts]
    return list(_encode(checked))
