"""Tests for the snapshot cache."""

from leadsheet.models import DataSource, Lead, SystemData
from leadsheet.sync.cache import CACHE_KEY, DEFAULT_TTL_SECONDS, SnapshotCache
from tests.conftest import FakeClock


def _snapshot():
    return SystemData(
        leads=(Lead(lead_id="LD-2025-001", company_name="Stark Industries Corp"),),
        data_source=DataSource.CLOUD,
        read_only=False,
    )


class TestSnapshotCache:
    """Tests for SnapshotCache."""

    def test_default_ttl_is_fifteen_minutes(self):
        assert DEFAULT_TTL_SECONDS == 900

    def test_fresh_snapshot_served_as_cache(self, storage):
        clock = FakeClock()
        cache = SnapshotCache(storage, clock=clock)
        cache.put("sheet_a", _snapshot())

        clock.advance(899)
        data = cache.get("sheet_a")

        assert data is not None
        assert data.data_source == DataSource.CACHE
        assert data.read_only is False
        assert data.leads[0].company_name == "Stark Industries Corp"

    def test_expired_snapshot_not_served(self, storage):
        clock = FakeClock()
        cache = SnapshotCache(storage, clock=clock)
        cache.put("sheet_a", _snapshot())

        clock.advance(901)

        assert cache.get("sheet_a") is None

    def test_other_spreadsheet_not_served(self, storage):
        cache = SnapshotCache(storage, clock=FakeClock())
        cache.put("sheet_a", _snapshot())

        assert cache.get("sheet_b") is None

    def test_age(self, storage):
        clock = FakeClock()
        cache = SnapshotCache(storage, clock=clock)
        assert cache.age() is None

        cache.put("sheet_a", _snapshot())
        clock.advance(30)

        assert cache.age() == 30

    def test_invalidate(self, storage):
        cache = SnapshotCache(storage, clock=FakeClock())
        cache.put("sheet_a", _snapshot())
        cache.invalidate()

        assert not storage.exists(CACHE_KEY)
        assert cache.get("sheet_a") is None

    def test_unreadable_blob_ignored(self, storage):
        storage.save(CACHE_KEY, {"spreadsheet_id": "sheet_a", "timestamp": "yesterday"})
        cache = SnapshotCache(storage, clock=FakeClock())

        assert cache.get("sheet_a") is None
