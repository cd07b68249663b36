"""
Tests for LocalCache and StoreAdapter

Whole-collection caching, local write semantics and sticky failover.
"""
import pytest

from coop_ledger.local_cache import LocalCache
from coop_ledger.remote_client import RemoteTableClient
from coop_ledger.store import StoreAdapter, StoreMode

from conftest import FakeSession


@pytest.fixture
def cache(tmp_path):
    return LocalCache(tmp_path / "cache")


@pytest.fixture
def session():
    return FakeSession()


@pytest.fixture
def remote(session):
    return RemoteTableClient(
        {"enabled": True, "base_url": "http://tabular.example/exec", "timeout_ms": 1000},
        session=session,
    )


@pytest.fixture
def store(remote, cache):
    return StoreAdapter(remote, cache)


class TestLocalCache:
    """Test the on-disk collection cache."""

    def test_missing_collection_reads_empty(self, cache):
        """Test that an unwritten collection reads as []."""
        assert cache.read("Members") == []
        assert cache.get_cache_age("Members") is None

    def test_write_replaces_collection(self, cache):
        """Test that write() replaces the whole collection."""
        cache.write("Members", [{"member_id": "M-1"}, {"member_id": "M-2"}])
        cache.write("Members", [{"member_id": "M-3"}])
        assert cache.read("Members") == [{"member_id": "M-3"}]

    def test_no_temp_files_left_behind(self, cache):
        """Test that the atomic write leaves only the collection file."""
        cache.write("Loans", [])
        assert [p.name for p in cache.cache_dir.iterdir()] == ["Loans.json"]

    def test_cache_age_after_write(self, cache):
        """Test that a written collection has an age."""
        cache.write("Logs", [])
        age = cache.get_cache_age("Logs")
        assert age is not None and age >= 0


class TestRemoteMode:
    """Test the adapter while the remote service is reachable."""

    def test_starts_remote(self, store):
        """Test that an enabled remote starts in REMOTE mode."""
        assert store.mode is StoreMode.REMOTE
        assert store.offline is False

    def test_read_mirrors_into_cache(self, store, session, cache):
        """Test that a successful remote read is copied to the cache."""
        session.tables["Members"] = [{"member_id": "M-1", "name": "Siti"}]

        rows = store.read_all("Members")

        assert rows == [{"member_id": "M-1", "name": "Siti"}]
        assert cache.read("Members") == rows

    def test_read_without_mirroring(self, remote, cache, session):
        """Test that mirroring can be switched off."""
        store = StoreAdapter(remote, cache, mirror_remote_reads=False)
        session.tables["Members"] = [{"member_id": "M-1"}]
        store.read_all("Members")
        assert cache.read("Members") == []

    def test_write_goes_remote(self, store, session, cache):
        """Test that writes are sent to the remote service only."""
        ack = store.write("create", "Members", {"member_id": "M-1"}, id_field="member_id")

        assert ack.backend == "remote"
        assert session.tables["Members"] == [{"member_id": "M-1"}]
        assert cache.read("Members") == []


class TestFailover:
    """Test the sticky switch to the local cache."""

    def test_read_failure_falls_back_to_cache(self, store, session, cache):
        """Test that a failing read is served from the cache and flips the mode."""
        cache.write("Members", [{"member_id": "M-1"}])
        session.fail = True

        rows = store.read_all("Members")

        assert rows == [{"member_id": "M-1"}]
        assert store.mode is StoreMode.OFFLINE

    def test_write_failure_applies_locally(self, store, session, cache):
        """Test that a failing write is applied to the cache."""
        session.fail = True

        ack = store.write("create", "Members", {"member_id": "M-1"}, id_field="member_id")

        assert ack.backend == "local"
        assert cache.read("Members") == [{"member_id": "M-1"}]
        assert store.offline is True

    def test_offline_is_sticky(self, store, session):
        """Test that once offline, the remote is never called again."""
        session.fail = True
        store.read_all("Members")
        calls_after_failover = len(session.calls)

        session.fail = False
        store.read_all("Members")
        store.write("create", "Members", {"member_id": "M-1"}, id_field="member_id")

        assert len(session.calls) == calls_after_failover

    def test_constructed_offline(self, remote, cache, session):
        """Test that an adapter constructed offline never calls the remote."""
        store = StoreAdapter(remote, cache, offline=True)
        store.read_all("Members")
        assert store.mode is StoreMode.OFFLINE
        assert session.calls == []

    def test_disabled_remote_starts_offline(self, cache, session):
        """Test that a disabled remote implies OFFLINE mode."""
        remote = RemoteTableClient({"enabled": False}, session=session)
        assert StoreAdapter(remote, cache).offline is True


class TestLocalWrites:
    """Test create/update/delete against the cache."""

    @pytest.fixture
    def offline_store(self, remote, cache):
        store = StoreAdapter(remote, cache, offline=True)
        store.write("create", "Members", {"member_id": "M-1", "name": "Siti"}, id_field="member_id")
        store.write("create", "Members", {"member_id": "M-2", "name": "Budi"}, id_field="member_id")
        return store

    def test_update_merges_columns(self, offline_store):
        """Test that an update merges only the supplied columns."""
        ack = offline_store.write("update", "Members", {"name": "Siti A."},
                                  record_id="M-1", id_field="member_id")

        assert ack.applied is True
        assert offline_store.read_all("Members")[0] == {"member_id": "M-1", "name": "Siti A."}

    def test_update_missing_row(self, offline_store):
        """Test that updating an unknown id reports applied=False."""
        ack = offline_store.write("update", "Members", {"name": "X"},
                                  record_id="M-9", id_field="member_id")
        assert ack.applied is False
        assert len(offline_store.read_all("Members")) == 2

    def test_delete_removes_row(self, offline_store):
        """Test that a delete filters the row out."""
        ack = offline_store.write("delete", "Members", record_id="M-1", id_field="member_id")

        assert ack.applied is True
        assert [r["member_id"] for r in offline_store.read_all("Members")] == ["M-2"]

    def test_invalid_write_arguments(self, offline_store):
        """Test argument checking for write()."""
        with pytest.raises(ValueError):
            offline_store.write("upsert", "Members", {})
        with pytest.raises(ValueError):
            offline_store.write("create", "Members")
        with pytest.raises(ValueError):
            offline_store.write("delete", "Members")

    def test_status(self, offline_store):
        """Test the status report."""
        status = offline_store.status(["Members", "Loans"])
        assert status["mode"] == "offline"
        assert status["cache_age_seconds"]["Loans"] is None
        assert status["cache_age_seconds"]["Members"] is not None
