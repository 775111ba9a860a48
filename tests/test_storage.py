"""
Test suite for storage module

Tests the in-memory and SQLite backends, including the compare-and-set
operation the audit chain and instance engine rely on.
"""

import pytest
import threading

from governance_engine.storage import InMemoryStorage, SQLiteStorage, create_storage


@pytest.fixture(params=["memory", "sqlite"])
def backend(request, tmp_path):
    """Run each test against both storage backends"""
    if request.param == "memory":
        store = InMemoryStorage()
    else:
        store = SQLiteStorage(tmp_path / "governance.db")
    yield store
    store.close()


class TestStorageInterface:
    """Test basic record operations"""

    def test_save_and_load(self, backend):
        backend.save("things", "t1", {"id": "t1", "name": "first", "size": 3})

        loaded = backend.load("things", "t1")
        assert loaded == {"id": "t1", "name": "first", "size": 3}
        assert backend.exists("things", "t1")
        assert backend.load("things", "missing") is None

    def test_load_returns_copy(self, backend):
        backend.save("things", "t1", {"id": "t1", "tags": ["a"]})

        loaded = backend.load("things", "t1")
        loaded["tags"].append("b")

        assert backend.load("things", "t1")["tags"] == ["a"]

    def test_find_and_count(self, backend):
        backend.save("things", "t1", {"id": "t1", "kind": "report"})
        backend.save("things", "t2", {"id": "t2", "kind": "policy"})
        backend.save("things", "t3", {"id": "t3", "kind": "report"})

        reports = backend.find("things", {"kind": "report"})
        assert sorted(r["id"] for r in reports) == ["t1", "t3"]
        assert backend.count("things") == 3
        assert len(backend.load_all("things")) == 3

    def test_delete_and_clear(self, backend):
        backend.save("things", "t1", {"id": "t1"})
        backend.save("things", "t2", {"id": "t2"})

        assert backend.delete("things", "t1") is True
        assert backend.delete("things", "t1") is False
        assert backend.count("things") == 1

        backend.clear_table("things")
        assert backend.count("things") == 0


class TestCompareAndSet:
    """Test the atomic compare-and-set primitive"""

    def test_insert_only_when_absent(self, backend):
        assert backend.compare_and_set("heads", "p1", "head_hash", None,
                                       {"id": "p1", "head_hash": "aaa"}) is True
        assert backend.compare_and_set("heads", "p1", "head_hash", None,
                                       {"id": "p1", "head_hash": "bbb"}) is False
        assert backend.load("heads", "p1")["head_hash"] == "aaa"

    def test_replace_when_field_matches(self, backend):
        backend.save("heads", "p1", {"id": "p1", "head_hash": "aaa"})

        assert backend.compare_and_set("heads", "p1", "head_hash", "aaa",
                                       {"id": "p1", "head_hash": "bbb"}) is True
        assert backend.compare_and_set("heads", "p1", "head_hash", "aaa",
                                       {"id": "p1", "head_hash": "ccc"}) is False
        assert backend.load("heads", "p1")["head_hash"] == "bbb"

    def test_integer_field(self, backend):
        backend.save("instances", "i1", {"id": "i1", "revision": 1})

        assert backend.compare_and_set("instances", "i1", "revision", 1,
                                       {"id": "i1", "revision": 2}) is True
        assert backend.compare_and_set("instances", "i1", "revision", 1,
                                       {"id": "i1", "revision": 2}) is False

    def test_missing_record_does_not_match(self, backend):
        assert backend.compare_and_set("heads", "nope", "head_hash", "aaa",
                                       {"id": "nope", "head_hash": "bbb"}) is False
        assert backend.load("heads", "nope") is None

    def test_concurrent_writers_single_winner(self, backend):
        backend.save("counters", "c1", {"id": "c1", "revision": 0})
        results = []

        def writer(n):
            results.append(backend.compare_and_set(
                "counters", "c1", "revision", 0, {"id": "c1", "revision": 1, "writer": n}
            ))

        threads = [threading.Thread(target=writer, args=(n,)) for n in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert results.count(True) == 1
        assert backend.load("counters", "c1")["revision"] == 1


class TestSQLitePersistence:
    """Test SQLite records survive reconnecting"""

    def test_sqlite_persists_across_connections(self, tmp_path):
        path = tmp_path / "persist.db"
        store = SQLiteStorage(path)
        store.save("things", "t1", {"id": "t1", "v": 1})
        store.close()

        reopened = SQLiteStorage(path)
        assert reopened.load("things", "t1") == {"id": "t1", "v": 1}
        reopened.close()


class TestCreateStorage:
    """Test building backends from database URLs"""

    def test_memory_urls(self):
        assert isinstance(create_storage("memory://"), InMemoryStorage)
        assert isinstance(create_storage(":memory:"), InMemoryStorage)

    def test_sqlite_url(self, tmp_path):
        store = create_storage(f"sqlite:///{tmp_path / 'url.db'}")
        assert isinstance(store, SQLiteStorage)
        store.close()

    def test_unsupported_url(self):
        with pytest.raises(ValueError):
            create_storage("postgresql://localhost/governance")
