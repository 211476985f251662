"""Shared fixtures: temporary SQLite store and a deterministic stand-in embedder."""

import hashlib
import re

import numpy as np
import pytest

from app.config import settings
from app.embeddings import provider
from app.store import distance
from app.store.distance import FallbackDistance
from app.store.schema_setup import initialize_store

DIM = 384


def hashed_vector(text: str) -> np.ndarray:
    """Bag-of-words vector: each token bumps one hashed coordinate."""
    vec = np.zeros(DIM, dtype=np.float32)
    for token in re.findall(r"\w+", text.lower()):
        idx = int(hashlib.md5(token.encode("utf-8")).hexdigest(), 16) % DIM
        vec[idx] += 1.0
    norm = np.linalg.norm(vec)
    return vec / norm if norm else vec


class FakeSentenceTransformer:
    """Mimics SentenceTransformer.encode for a list of texts."""

    def __init__(self):
        self.calls = 0

    def encode(self, texts, normalize_embeddings=True, convert_to_numpy=True, show_progress_bar=False):
        self.calls += 1
        return np.vstack([hashed_vector(t) for t in texts])

    def get_sentence_embedding_dimension(self):
        return DIM


@pytest.fixture
def fake_model(monkeypatch):
    model = FakeSentenceTransformer()
    monkeypatch.setattr(provider, "_model", model)
    return model


@pytest.fixture
def store(tmp_path, monkeypatch, fake_model):
    """Fresh, initialized database file with the distance resolution reset."""
    db_path = tmp_path / "vectors.db"
    monkeypatch.setattr(settings, "database_path", str(db_path))
    monkeypatch.setattr(distance, "_resolution", None)
    initialize_store()
    return db_path


@pytest.fixture
def fallback(store, monkeypatch):
    """Force the in-process search path."""
    monkeypatch.setattr(distance, "_resolution", FallbackDistance())
    return store
