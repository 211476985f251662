"""Tests for native distance-function detection."""

import sqlite3
from contextlib import contextmanager

import pytest

from app.errors import ExtensionUnavailable
from app.store import distance
from app.store.distance import CANDIDATES, FallbackDistance, NativeDistance


class FakeConnection:
    """Answers only the SQL functions it was given."""

    def __init__(self, functions):
        self.functions = set(functions)
        self.executed = []

    def execute(self, sql, params=()):
        self.executed.append(sql)
        name = sql.split("SELECT ", 1)[1].split("(", 1)[0].strip()
        if name not in self.functions:
            raise sqlite3.OperationalError(f"no such function: {name}")
        return self

    def fetchone(self):
        return (0.0,)


def patch_connection(monkeypatch, conn):
    @contextmanager
    def fake_sqlite_connection():
        yield conn

    monkeypatch.setattr(distance, "sqlite_connection", fake_sqlite_connection)
    monkeypatch.setattr(distance, "_resolution", None)


class TestProbe:
    def test_missing_version_function(self):
        with pytest.raises(ExtensionUnavailable):
            distance._probe(FakeConnection([]), CANDIDATES[0])

    def test_version_without_distance_function(self):
        conn = FakeConnection(["vec_version"])
        with pytest.raises(ExtensionUnavailable, match="not callable"):
            distance._probe(conn, CANDIDATES[0])

    def test_both_functions_present(self):
        distance._probe(FakeConnection(["vec_version", "vec_distance_cosine"]), CANDIDATES[0])


class TestResolution:
    def test_first_working_candidate_wins(self, monkeypatch):
        conn = FakeConnection(
            ["vec_version", "vector_version", "vector_distance_cosine", "vss_version", "vss_distance_cosine"]
        )
        patch_connection(monkeypatch, conn)
        resolution = distance.get_distance_function()
        assert resolution == NativeDistance(function="vector_distance_cosine", extension="sqlite-vss")
        assert resolution.query_method == "vector_distance_cosine"

    def test_nothing_available_falls_back(self, monkeypatch):
        patch_connection(monkeypatch, FakeConnection([]))
        resolution = distance.get_distance_function()
        assert isinstance(resolution, FallbackDistance)
        assert resolution.query_method == "fallback"

    def test_result_is_cached(self, monkeypatch):
        conn = FakeConnection([])
        patch_connection(monkeypatch, conn)
        first = distance.get_distance_function()
        probes = len(conn.executed)
        second = distance.get_distance_function()
        assert first is second
        assert len(conn.executed) == probes
