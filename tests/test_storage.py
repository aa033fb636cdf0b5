"""Tests for the DurableStore backends."""
import asyncio
import json
from unittest.mock import MagicMock

import psycopg2
import pytest

from syncqueue.storage import postgres_store
from syncqueue.storage.file_store import FileStore
from syncqueue.storage.memory_store import MemoryStore
from syncqueue.storage.postgres_store import PostgresStore


class TestMemoryStore:

    def test_missing_key_is_none(self):
        assert asyncio.run(MemoryStore().get("nothing")) is None

    def test_values_are_copied(self):
        store = MemoryStore()
        value = [{"id": "a"}]
        asyncio.run(store.set("k", value))
        value[0]["id"] = "changed"

        loaded = asyncio.run(store.get("k"))
        loaded.append("junk")

        assert asyncio.run(store.get("k")) == [{"id": "a"}]

    def test_delete_missing_key(self):
        store = MemoryStore()
        asyncio.run(store.delete("nothing"))
        assert "nothing" not in store


class TestFileStore:

    def test_set_get_delete(self, tmp_path):
        store = FileStore(tmp_path / "queue")

        asyncio.run(store.set("sync-queue", [{"id": "a"}]))
        assert asyncio.run(store.get("sync-queue")) == [{"id": "a"}]

        asyncio.run(store.delete("sync-queue"))
        assert asyncio.run(store.get("sync-queue")) is None
        asyncio.run(store.delete("sync-queue"))

    def test_unsafe_keys_stay_inside_directory(self, tmp_path):
        store = FileStore(tmp_path)

        asyncio.run(store.set("../escape/key", {"x": 1}))

        files = list(tmp_path.iterdir())
        assert len(files) == 1
        assert files[0].name.startswith(".._escape_key-")
        assert files[0].suffix == ".json"
        assert asyncio.run(store.get("../escape/key")) == {"x": 1}

    def test_similar_keys_do_not_share_a_file(self, tmp_path):
        store = FileStore(tmp_path)

        asyncio.run(store.set("team/a", ["slash"]))
        asyncio.run(store.set("team_a", ["underscore"]))

        assert asyncio.run(store.get("team/a")) == ["slash"]
        assert asyncio.run(store.get("team_a")) == ["underscore"]
        assert len(list(tmp_path.iterdir())) == 2

        asyncio.run(store.delete("team/a"))
        assert asyncio.run(store.get("team_a")) == ["underscore"]

    def test_long_keys_with_common_prefix(self, tmp_path):
        store = FileStore(tmp_path)
        prefix = "q" * 120

        asyncio.run(store.set(prefix + "1", [1]))
        asyncio.run(store.set(prefix + "2", [2]))

        assert asyncio.run(store.get(prefix + "1")) == [1]
        assert asyncio.run(store.get(prefix + "2")) == [2]

    def test_no_temp_files_left(self, tmp_path):
        store = FileStore(tmp_path)
        asyncio.run(store.set("k", [1]))
        asyncio.run(store.set("k", [1, 2]))
        assert list(tmp_path.iterdir()) == [store._path("k")]
        assert json.loads(store._path("k").read_text()) == [1, 2]

    def test_corrupt_file_reads_as_empty(self, tmp_path):
        store = FileStore(tmp_path)
        store._path("k").write_text("{not json")
        assert asyncio.run(store.get("k")) is None

    def test_unavailable_directory_degrades(self, tmp_path, caplog):
        blocker = tmp_path / "blocker"
        blocker.write_text("a file where a directory should be")
        store = FileStore(blocker / "queue")

        asyncio.run(store.set("k", [1]))
        asyncio.run(store.set("k", [2]))

        assert asyncio.run(store.get("k")) is None
        warnings = [r for r in caplog.records if "unavailable" in r.getMessage()]
        assert len(warnings) == 1

    def test_unserializable_value_degrades(self, tmp_path):
        store = FileStore(tmp_path)
        asyncio.run(store.set("k", {"when": object()}))
        assert asyncio.run(store.get("k")) is None


class TestPostgresStore:

    @pytest.fixture
    def connection(self, monkeypatch):
        conn = MagicMock()
        conn.closed = False
        cursor = conn.cursor.return_value
        monkeypatch.setattr(postgres_store.psycopg2, "connect", MagicMock(return_value=conn))
        return conn, cursor

    def test_get_returns_value(self, connection):
        conn, cursor = connection
        cursor.fetchone.return_value = {"value": [{"id": "a"}]}

        result = asyncio.run(PostgresStore("postgres://x").get("k"))

        assert result == [{"id": "a"}]
        assert conn.commit.called

    def test_get_missing_key(self, connection):
        _, cursor = connection
        cursor.fetchone.return_value = None
        assert asyncio.run(PostgresStore("postgres://x").get("k")) is None

    def test_table_created_once(self, connection):
        _, cursor = connection
        cursor.fetchone.return_value = None
        store = PostgresStore("postgres://x")

        asyncio.run(store.get("a"))
        asyncio.run(store.set("a", [1]))

        # CREATE TABLE, SELECT, INSERT
        assert cursor.execute.call_count == 3
        assert cursor.execute.call_args.args[1][0] == "a"

    def test_database_error_degrades(self, connection):
        conn, cursor = connection
        cursor.execute.side_effect = psycopg2.OperationalError("server gone")
        store = PostgresStore("postgres://x")

        assert asyncio.run(store.get("k")) is None
        asyncio.run(store.set("k", [1]))
        asyncio.run(store.delete("k"))
        assert conn.rollback.called

    def test_unserializable_value_degrades(self, connection):
        conn, cursor = connection
        cursor.execute.side_effect = [None, TypeError("Object of type datetime is not JSON serializable")]
        store = PostgresStore("postgres://x")

        asyncio.run(store.set("k", {"when": object()}))

        assert store._unavailable_logged
        assert conn.rollback.called

    def test_connect_failure_degrades(self, monkeypatch):
        monkeypatch.setattr(
            postgres_store.psycopg2, "connect",
            MagicMock(side_effect=psycopg2.OperationalError("refused")),
        )
        assert asyncio.run(PostgresStore("postgres://x").get("k")) is None

    def test_close(self, connection):
        conn, _ = connection
        store = PostgresStore("postgres://x")
        store.conn
        asyncio.run(store.close())
        assert conn.close.called
