"""Tests for the transactional insert / batch-insert path."""

import sqlite3

import pytest

from app.config import settings
from app.errors import StorageError, ValidationError
from app.models.schema import InsertItem
from app.store import writer
from app.store.codec import to_blob
from app.store.reader import get_record
from app.store.writer import insert_batch, insert_one


def row_count(db_path) -> int:
    with sqlite3.connect(db_path) as conn:
        return conn.execute("SELECT COUNT(*) FROM embeddings").fetchone()[0]


class TestInsertOne:
    def test_insert_reports_dimension_and_changes(self, store):
        result = insert_one("a", "hello world")
        assert result.success
        assert result.id == "a"
        assert result.embedding_dimension == 384
        assert result.changes == 1

    def test_upsert_replaces_content(self, store):
        insert_one("a", "first text")
        insert_one("a", "second text")
        assert row_count(store) == 1
        assert get_record("a").content == "second text"

    @pytest.mark.parametrize(
        "record_id,text",
        [(None, "text"), ("a", None), ("", "text"), ("a", "   "), (5, "text"), ("a", ["text"])],
    )
    def test_invalid_input_writes_nothing(self, store, fake_model, record_id, text):
        with pytest.raises(ValidationError):
            insert_one(record_id, text)
        assert fake_model.calls == 0
        assert row_count(store) == 0


class TestInsertBatch:
    def test_inserts_all_items(self, store):
        result = insert_batch([InsertItem(id=f"id{i}", text=f"text number {i}") for i in range(5)])
        assert result.inserted == 5
        assert result.changes == 5
        assert row_count(store) == 5

    def test_one_invalid_item_commits_nothing(self, store, fake_model):
        items = [
            {"id": "a", "text": "alpha"},
            {"id": "b", "text": "beta"},
            {"id": "c", "text": "gamma"},
            {"id": "d"},
        ]
        with pytest.raises(ValidationError, match="Missing required fields"):
            insert_batch(items)
        assert fake_model.calls == 0
        assert row_count(store) == 0

    def test_empty_batch_rejected(self, store):
        with pytest.raises(ValidationError):
            insert_batch([])
        with pytest.raises(ValidationError):
            insert_batch(None)

    def test_batch_size_limit(self, store):
        items = [{"id": str(i), "text": "x"} for i in range(settings.max_batch_size)]
        assert insert_batch(items).inserted == settings.max_batch_size
        with pytest.raises(ValidationError, match="Batch too large"):
            insert_batch(items + [{"id": "extra", "text": "x"}])

    def test_write_failure_rolls_back_whole_batch(self, store, monkeypatch):
        insert_one("existing", "already here")
        calls = []

        def flaky_to_blob(vector):
            calls.append(vector)
            if len(calls) == 3:
                return b"\x00" * 8  # violates the blob-size CHECK
            return to_blob(vector)

        monkeypatch.setattr(writer, "to_blob", flaky_to_blob)
        items = [{"id": f"n{i}", "text": f"new {i}"} for i in range(4)]
        with pytest.raises(StorageError):
            insert_batch(items)
        assert row_count(store) == 1
        assert get_record("n0") is None
