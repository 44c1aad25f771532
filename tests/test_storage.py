"""
Tests for the entry stores (MemoryStore and SQLiteStore share the contract).
"""
from datetime import timedelta

import pytest

from passvault.exceptions import AlreadyExists, InvalidEntry, NotFound, StorageError
from passvault.storage import Entry, MemoryStore, SQLiteStore, create_store
from passvault.storage.base import utcnow


def make_entry(name: str = "mail", **fields) -> Entry:
    fields.setdefault("password", b"\x00encrypted-blob")
    return Entry(name=name, **fields)


@pytest.fixture(params=["memory", "sqlite"])
def store(request, tmp_path):
    if request.param == "memory":
        store = MemoryStore()
    else:
        store = SQLiteStore(tmp_path / "entries.db")
    store.initialize()
    yield store
    store.close()


class TestCrud:
    """Tests for put/get/update/delete."""

    def test_put_and_get(self, store):
        stored = store.put(make_entry(username="alice", url="https://mail", tags=["work"]))
        assert stored.id is not None
        entry = store.get("mail")
        assert entry.username == "alice"
        assert entry.url == "https://mail"
        assert entry.tags == ["work"]
        assert entry.password == b"\x00encrypted-blob"

    def test_put_duplicate(self, store):
        store.put(make_entry())
        with pytest.raises(AlreadyExists):
            store.put(make_entry())

    def test_put_invalid(self, store):
        with pytest.raises(InvalidEntry):
            store.put(make_entry(password=b""))
        with pytest.raises(InvalidEntry):
            store.put(make_entry(name=""))

    def test_get_missing(self, store):
        with pytest.raises(NotFound):
            store.get("nope")

    def test_not_found_is_key_error(self, store):
        with pytest.raises(KeyError):
            store.get("nope")

    def test_update(self, store):
        store.put(make_entry(notes="old"))
        entry = store.get("mail")
        updated = store.update(entry.model_copy(update={"notes": "new", "password": b"\x01blob"}))
        assert updated.notes == "new"
        assert store.get("mail").password == b"\x01blob"
        assert updated.created_at == entry.created_at
        assert updated.updated_at >= entry.updated_at

    def test_update_without_touch_keeps_timestamp(self, store):
        old = utcnow() - timedelta(days=200)
        store.put(make_entry(created_at=old, updated_at=old))
        entry = store.get("mail")
        store.update(entry.model_copy(update={"password": b"\x02blob"}), touch=False)
        assert store.get("mail").updated_at == old

    def test_update_missing(self, store):
        with pytest.raises(NotFound):
            store.update(make_entry(name="ghost"))

    def test_update_many(self, store):
        store.put(make_entry("mail"))
        store.put(make_entry("bank"))
        batch = [
            store.get(name).model_copy(update={"password": b"\x03" + name.encode()})
            for name in ("mail", "bank")
        ]
        store.update_many(batch, touch=False)
        assert store.get("mail").password == b"\x03mail"
        assert store.get("bank").password == b"\x03bank"

    def test_update_many_is_all_or_nothing(self, store):
        """Test a missing entry late in the batch leaves earlier ones untouched."""
        store.put(make_entry("mail"))
        store.put(make_entry("bank"))
        batch = [
            store.get("bank").model_copy(update={"password": b"\x04new"}),
            store.get("mail").model_copy(update={"password": b"\x04new"}),
            make_entry("ghost"),
        ]
        with pytest.raises(NotFound):
            store.update_many(batch)
        assert store.get("bank").password == b"\x00encrypted-blob"
        assert store.get("mail").password == b"\x00encrypted-blob"

    def test_delete(self, store):
        store.put(make_entry())
        store.delete("mail")
        with pytest.raises(NotFound):
            store.get("mail")

    def test_delete_missing(self, store):
        with pytest.raises(NotFound):
            store.delete("ghost")


class TestQueries:
    """Tests for list/search/by_tag/stats."""

    @pytest.fixture
    def populated(self, store):
        store.put(make_entry("mail", username="alice", tags=["personal"]))
        store.put(make_entry("bank", url="https://bank.example", tags=["finance"]))
        store.put(make_entry("work-vpn", notes="50% of the time", tags=["work", "finance"]))
        return store

    def test_list_sorted_by_name(self, populated):
        assert [e.name for e in populated.list_entries()] == ["bank", "mail", "work-vpn"]

    def test_search_case_insensitive(self, populated):
        assert [e.name for e in populated.search("ALICE")] == ["mail"]
        assert [e.name for e in populated.search("bank.example")] == ["bank"]

    def test_search_wildcards_are_literal(self, populated):
        assert [e.name for e in populated.search("50%")] == ["work-vpn"]
        assert populated.search("_") == []

    def test_by_tag(self, populated):
        assert [e.name for e in populated.by_tag("finance")] == ["bank", "work-vpn"]
        assert populated.by_tag("missing") == []

    def test_stats(self, populated):
        stats = populated.stats()
        assert stats.total_entries == 3
        assert stats.oldest_entry <= stats.newest_entry
        assert stats.average_pass_age < 1

    def test_stats_empty(self, store):
        stats = store.stats()
        assert stats.total_entries == 0
        assert stats.oldest_entry is None


class TestSQLiteStore:
    """SQLite-specific behaviour."""

    def test_persists_across_connections(self, tmp_path):
        path = tmp_path / "entries.db"
        with SQLiteStore(path) as store:
            store.initialize()
            store.put(make_entry())
        with SQLiteStore(path) as store:
            assert store.get("mail").password == b"\x00encrypted-blob"

    def test_backup_and_restore(self, sqlite_store, tmp_path):
        sqlite_store.put(make_entry())
        backup = tmp_path / "backup.db"
        sqlite_store.backup(backup)
        sqlite_store.delete("mail")
        sqlite_store.restore(backup)
        assert sqlite_store.get("mail").name == "mail"

    def test_restore_missing_file(self, sqlite_store, tmp_path):
        with pytest.raises(StorageError):
            sqlite_store.restore(tmp_path / "missing.db")

    def test_uninitialized_table_is_storage_error(self, tmp_path):
        with SQLiteStore(tmp_path / "empty.db") as store:
            with pytest.raises(StorageError):
                store.list_entries()


class TestCreateStore:
    """Tests for create_store()."""

    def test_memory(self):
        assert isinstance(create_store("memory"), MemoryStore)

    def test_sqlite(self, tmp_path):
        store = create_store("sqlite", tmp_path / "sub" / "db.sqlite")
        assert isinstance(store, SQLiteStore)
        store.close()

    def test_sqlite_without_path(self):
        with pytest.raises(ValueError):
            create_store("sqlite")

    def test_unknown(self):
        with pytest.raises(ValueError):
            create_store("redis")
