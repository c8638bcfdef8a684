"""Tests for the seen set and its persisted stores."""

import json
from unittest.mock import MagicMock, patch

import pytest

from newsdesk.config import Settings
from newsdesk.state import JsonSeenStore, PostgresSeenStore, SeenSet, build_store


class TestSeenSet:
    def test_insertion_order_and_readd(self):
        seen = SeenSet(["a", "b"])
        assert seen.add("c") is True
        assert seen.add("a") is False
        assert list(seen) == ["a", "b", "c"]

    def test_memory_cap_evicts_oldest(self):
        seen = SeenSet(cap=3)
        seen.add_all(["a", "b", "c", "d"])
        assert list(seen) == ["b", "c", "d"]
        assert "a" not in seen

    def test_snapshot_keeps_newest_and_skips_pending(self):
        seen = SeenSet([f"u{i}" for i in range(150)])
        snap = seen.snapshot(100)
        assert len(snap) == 100
        assert snap[0] == "u50"
        assert snap[-1] == "u149"

        snap = seen.snapshot(3, exclude={"u149"})
        assert snap == ["u146", "u147", "u148"]

    def test_discard(self):
        seen = SeenSet(["a", "b"])
        seen.discard("a")
        seen.discard("missing")
        assert list(seen) == ["b"]


class TestJsonSeenStore:
    def test_missing_file_loads_none(self, tmp_path):
        assert JsonSeenStore(tmp_path).load("truthout") is None

    def test_save_then_load(self, tmp_path):
        store = JsonSeenStore(tmp_path / "state")
        store.save("truthout", ["https://a", "https://b"])
        assert store.load("truthout") == ["https://a", "https://b"]
        assert json.loads((tmp_path / "state" / "truthout_seen_urls.json").read_text()) == [
            "https://a",
            "https://b",
        ]
        assert not (tmp_path / "state" / "truthout_seen_urls.json.tmp").exists()

    def test_empty_list_is_not_missing(self, tmp_path):
        store = JsonSeenStore(tmp_path)
        store.save("propublica", [])
        assert store.load("propublica") == []

    def test_corrupt_file_loads_none(self, tmp_path):
        (tmp_path / "propublica_seen_urls.json").write_text("{not json")
        assert JsonSeenStore(tmp_path).load("propublica") is None


class TestPostgresSeenStore:
    def _connection(self, rows=None):
        cur = MagicMock()
        cur.__enter__.return_value = cur
        cur.fetchall.return_value = rows or []
        conn = MagicMock()
        conn.__enter__.return_value = conn
        conn.cursor.return_value = cur
        return conn, cur

    @patch("newsdesk.state.psycopg2.connect")
    def test_load_orders_by_position(self, mock_connect):
        conn, cur = self._connection([{"url": "https://a"}, {"url": "https://b"}])
        mock_connect.return_value = conn

        store = PostgresSeenStore("postgres://x")
        assert store.load("truthout") == ["https://a", "https://b"]
        sql = " ".join(call.args[0] for call in cur.execute.call_args_list)
        assert "CREATE TABLE IF NOT EXISTS seen_urls" in sql
        assert "ORDER BY position" in sql

    @patch("newsdesk.state.psycopg2.connect")
    def test_load_empty_is_none(self, mock_connect):
        conn, _ = self._connection([])
        mock_connect.return_value = conn
        assert PostgresSeenStore("postgres://x").load("truthout") is None

    @patch("newsdesk.state.psycopg2.extras.execute_values")
    @patch("newsdesk.state.psycopg2.connect")
    def test_save_replaces_rows(self, mock_connect, mock_execute_values):
        conn, cur = self._connection()
        mock_connect.return_value = conn

        PostgresSeenStore("postgres://x").save("truthout", ["https://a", "https://b"])

        delete_calls = [c for c in cur.execute.call_args_list if c.args[0].startswith("DELETE")]
        assert delete_calls[0].args[1] == ("truthout",)
        rows = mock_execute_values.call_args.args[2]
        assert rows == [("truthout", "https://a", 0), ("truthout", "https://b", 1)]

    def test_requires_dsn(self):
        with pytest.raises(RuntimeError):
            PostgresSeenStore("")


class TestBuildStore:
    def test_file_backend(self, tmp_path):
        store = build_store(Settings(seen_store_backend="file", seen_store_dir=tmp_path))
        assert isinstance(store, JsonSeenStore)

    def test_postgres_backend(self):
        store = build_store(Settings(seen_store_backend="postgres", database_url="postgres://x"))
        assert isinstance(store, PostgresSeenStore)

    def test_unknown_backend(self):
        with pytest.raises(ValueError):
            build_store(Settings(seen_store_backend="redis"))
