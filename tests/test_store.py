"""Tests for store initialization, the BLOB codec and stats."""

import logging
import sqlite3

import numpy as np
import pytest

from app.config import settings
from app.errors import ModelMismatchError, StorageError
from app.store.codec import from_blob, to_blob
from app.store.connection import sqlite_connection, transaction
from app.store.reader import collect_stats, get_record
from app.store.schema_setup import initialize_store
from app.store.writer import insert_batch


class TestInitialize:
    def test_enables_wal(self, store):
        with sqlite3.connect(store) as conn:
            mode = conn.execute("PRAGMA journal_mode").fetchone()[0]
        assert mode.lower() == "wal"

    def test_creates_tables(self, store):
        with sqlite3.connect(store) as conn:
            names = {r[0] for r in conn.execute("SELECT name FROM sqlite_master WHERE type='table'")}
        assert {"embeddings", "metadata"} <= names

    def test_records_model_on_first_start(self, store):
        with sqlite3.connect(store) as conn:
            value = conn.execute("SELECT value FROM metadata WHERE key = 'model'").fetchone()[0]
        assert value == settings.embedding_model

    def test_is_idempotent(self, store):
        initialize_store()
        with sqlite3.connect(store) as conn:
            count = conn.execute("SELECT COUNT(*) FROM metadata").fetchone()[0]
        assert count == 1

    def test_model_mismatch_warns(self, store, monkeypatch, caplog):
        monkeypatch.setattr(settings, "embedding_model", "some/other-model")
        with caplog.at_level(logging.WARNING):
            initialize_store()
        assert "Model mismatch" in caplog.text
        with sqlite3.connect(store) as conn:
            value = conn.execute("SELECT value FROM metadata WHERE key = 'model'").fetchone()[0]
        assert value != "some/other-model"

    def test_model_mismatch_fatal_when_opted_in(self, store, monkeypatch):
        monkeypatch.setattr(settings, "embedding_model", "some/other-model")
        monkeypatch.setattr(settings, "model_mismatch_fatal", True)
        with pytest.raises(ModelMismatchError):
            initialize_store()

    def test_wrong_blob_size_rejected_by_table(self, store):
        with sqlite3.connect(store) as conn:
            with pytest.raises(sqlite3.IntegrityError):
                conn.execute(
                    "INSERT INTO embeddings (id, content, embedding) VALUES (?, ?, ?)",
                    ("x", "x", b"\x00" * 16),
                )


class TestConnection:
    def test_sqlite_errors_become_storage_errors(self, store):
        with pytest.raises(StorageError):
            with sqlite_connection() as conn:
                conn.execute("SELECT * FROM no_such_table")

    def test_engine_rollback_does_not_mask_original_error(self, store):
        with sqlite_connection() as conn:
            with pytest.raises(RuntimeError, match="disk full"):
                with transaction(conn):
                    conn.execute("ROLLBACK")
                    raise RuntimeError("disk full")
            assert not conn.in_transaction


class TestCodec:
    def test_little_endian_float32_layout(self):
        vec = np.zeros(384, dtype=np.float32)
        vec[0] = 1.0
        blob = to_blob(vec)
        assert len(blob) == 384 * 4
        assert blob[:4] == b"\x00\x00\x80\x3f"
        assert from_blob(blob)[0] == 1.0

    def test_rejects_wrong_dimension(self):
        with pytest.raises(ValueError):
            to_blob([0.1] * 10)
        with pytest.raises(ValueError):
            from_blob(b"\x00" * 12)


class TestStats:
    def test_empty_store(self, store):
        stats = collect_stats()
        assert stats.embeddings.count == 0
        assert stats.embeddings.total_size == 0
        assert stats.embeddings.dimension == 384
        assert stats.database.total_size > 0

    def test_counts_and_sizes(self, store):
        insert_batch([{"id": "a", "text": "alpha"}, {"id": "b", "text": "beta"}])
        stats = collect_stats()
        assert stats.embeddings.count == 2
        assert stats.embeddings.avg_size == 384 * 4
        assert stats.embeddings.total_size == 2 * 384 * 4
        assert stats.limits.max_top_k == 100

    def test_get_record_decodes_embedding(self, store):
        insert_batch([{"id": "a", "text": "alpha"}])
        record = get_record("a")
        assert record.content == "alpha"
        assert len(record.embedding) == 384
        assert get_record("missing") is None
