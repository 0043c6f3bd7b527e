"""
Tests for the record store backends.
"""

import json

import pytest

from blueme.storage import JsonFileStore, SQLRecordStore, build_store


class TestJsonFileStore:

    def test_lazily_creates_files_with_defaults(self, tmp_path):
        store = JsonFileStore(tmp_path / "nested" / "data")

        assert store.load("users") == []
        assert store.load("contacts") == {}
        assert store.load("messages") == []
        assert json.loads((tmp_path / "nested" / "data" / "contacts.json").read_text()) == {}

    def test_save_overwrites_whole_collection(self, tmp_path):
        store = JsonFileStore(tmp_path)

        store.save("users", [{"id": "1"}, {"id": "2"}])
        store.save("users", [{"id": "3"}])

        assert store.load("users") == [{"id": "3"}]
        assert json.loads((tmp_path / "users.json").read_text()) == [{"id": "3"}]

    def test_no_temp_files_left_behind(self, tmp_path):
        store = JsonFileStore(tmp_path)
        store.save("messages", [{"id": "m"}])

        assert sorted(p.name for p in tmp_path.iterdir()) == ["messages.json"]

    def test_corrupt_file_reads_as_empty(self, tmp_path):
        (tmp_path / "users.json").write_text("{not json")
        store = JsonFileStore(tmp_path)

        assert store.load("users") == []

    def test_blank_file_reads_as_empty(self, tmp_path):
        (tmp_path / "messages.json").write_text("   ")
        assert JsonFileStore(tmp_path).load("messages") == []

    def test_wrong_shape_reads_as_empty(self, tmp_path):
        (tmp_path / "contacts.json").write_text("[]")
        assert JsonFileStore(tmp_path).load("contacts") == {}

    def test_unwritable_location_degrades_to_memory(self, tmp_path):
        blocker = tmp_path / "blocker"
        blocker.write_text("a file where the data directory should be")
        store = JsonFileStore(blocker / "data")

        # Neither call raises; the write is lost
        store.save("users", [{"id": "1"}])
        assert store.load("users") == []
        assert store.check_health() is False

    def test_unknown_collection(self, tmp_path):
        store = JsonFileStore(tmp_path)
        with pytest.raises(ValueError):
            store.load("groups")
        with pytest.raises(ValueError):
            store.save("groups", [])

    def test_health(self, tmp_path):
        assert JsonFileStore(tmp_path / "data").check_health() is True


class TestSQLRecordStore:

    @pytest.fixture
    def sql_store(self, tmp_path):
        store = SQLRecordStore(f"sqlite:///{tmp_path / 'db' / 'blueme.db'}")
        yield store
        store.engine.dispose()

    def test_defaults(self, sql_store):
        assert sql_store.load("users") == []
        assert sql_store.load("contacts") == {}

    def test_save_and_load(self, sql_store):
        sql_store.save("contacts", {"u1": [{"userId": "u1", "contactId": "u2", "addedAt": "x"}]})
        sql_store.save("contacts", {"u1": []})

        assert sql_store.load("contacts") == {"u1": []}

    def test_health(self, sql_store):
        assert sql_store.check_health() is True

    def test_persists_across_instances(self, tmp_path):
        url = f"sqlite:///{tmp_path / 'shared.db'}"
        first = SQLRecordStore(url)
        first.save("messages", [{"id": "m1"}])
        first.engine.dispose()

        second = SQLRecordStore(url)
        assert second.load("messages") == [{"id": "m1"}]
        second.engine.dispose()


class TestBuildStore:

    def test_json(self, tmp_path):
        assert isinstance(build_store("json", str(tmp_path), "sqlite://"), JsonFileStore)

    def test_sql(self, tmp_path):
        store = build_store("sql", str(tmp_path), f"sqlite:///{tmp_path / 'x.db'}")
        assert isinstance(store, SQLRecordStore)
        store.engine.dispose()

    def test_unknown(self, tmp_path):
        with pytest.raises(ValueError):
            build_store("redis", str(tmp_path), "")
