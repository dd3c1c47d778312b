#!/usr/bin/env python3
"""Test the feature stores, dataset shard loading and per-view collection."""

import json
from concurrent.futures import ThreadPoolExecutor

import pytest

from feature_index import TrailEntry, dump_feature
from feature_store import (
    FeatureStoreError,
    MemoryFeatureStore,
    SqliteFeatureStore,
    features_in_view,
    group_by_shard,
    load_dataset_tiles,
    read_shard,
    shard_path,
)
from tile_geometry import data_split_tile
from viewport import Viewport

VIEW = Viewport.from_lon_lat_bound_box(((-121.6, 45.4), (-121.3, 45.7)))

TRAIL_A = TrailEntry.from_route(1, "A", [(-121.50, 45.50), (-121.49, 45.50), (-121.48, 45.50)])
TRAIL_B = TrailEntry.from_route(2, "B", [(-121.48, 45.50), (-121.48, 45.51)])
FAR = TrailEntry.from_route(3, "far", [(10.0, 10.0), (10.01, 10.0)])


def test_memory_store_lookup():
    store = MemoryFeatureStore([TRAIL_A, TRAIL_B])
    assert TRAIL_A in store.lookup_by_tile(TRAIL_A.tile)
    assert store.lookup_by_tile(FAR.tile) == []
    assert store.count() == 2


def test_memory_store_put_replaces_by_id():
    store = MemoryFeatureStore([TRAIL_A])
    moved = TrailEntry.from_route(1, "A moved", [(10.0, 10.0), (10.01, 10.0)])
    store.put(moved)
    assert store.count() == 1
    assert store.lookup_by_tile(moved.tile) == [moved]
    if moved.tile != TRAIL_A.tile:
        assert store.lookup_by_tile(TRAIL_A.tile) == []
    store.clear()
    assert store.count() == 0


def test_sqlite_store_round_trip():
    store = SqliteFeatureStore(":memory:")
    try:
        assert store.put_many([TRAIL_A, TRAIL_B, FAR]) == 3
        got = store.lookup_by_tile(TRAIL_A.tile)
        assert TRAIL_A in got
        assert store.count() == 3
        store.put(TRAIL_A)
        assert store.count() == 3
        stats = store.stats()
        assert stats["feature_count"] == 3
        assert stats["tile_count"] == len({TRAIL_A.tile, TRAIL_B.tile, FAR.tile})
        store.clear()
        assert store.count() == 0
    finally:
        store.close()


def test_features_in_view():
    store = MemoryFeatureStore([TRAIL_A, TRAIL_B, FAR])
    features = features_in_view(store, VIEW)
    assert sorted(f.id for f in features) == [1, 2]
    assert features.find_trail(1) == TRAIL_A


def test_features_in_view_reuses_old_features():
    store = MemoryFeatureStore([TRAIL_A, TRAIL_B])
    old = features_in_view(store, VIEW)
    # the tiles are all cached, so an empty store is never consulted
    again = features_in_view(MemoryFeatureStore(), VIEW, old)
    assert sorted(f.id for f in again) == [1, 2]


def _write_shard(directory, features):
    tile = data_split_tile(features[0].tile)
    path = shard_path(str(directory), tile)
    with open(path, "w", encoding="utf-8") as f:
        json.dump({"trails": [dump_feature(x) for x in features]}, f)
    return tile


def test_load_dataset_tiles(tmp_path):
    tile = _write_shard(tmp_path, [TRAIL_A])
    store = MemoryFeatureStore()
    loaded = set()
    assert load_dataset_tiles(store, str(tmp_path), VIEW, loaded) == 1
    assert tile in loaded
    assert store.count() == 1
    assert load_dataset_tiles(store, str(tmp_path), VIEW, loaded) == 0
    assert sorted(f.id for f in features_in_view(store, VIEW)) == [1]


def test_load_dataset_tiles_into_sqlite(tmp_path):
    _write_shard(tmp_path, [TRAIL_A, TRAIL_B])
    store = SqliteFeatureStore(str(tmp_path / "features.db"))
    try:
        assert load_dataset_tiles(store, str(tmp_path), VIEW, set()) == 2
        assert store.count() == 2
    finally:
        store.close()


def test_bad_shard_raises(tmp_path):
    path = tmp_path / "broken.json"
    path.write_text("{not json", encoding="utf-8")
    with pytest.raises(FeatureStoreError):
        read_shard(str(path))


def test_missing_shard_raises(tmp_path):
    with pytest.raises(FeatureStoreError):
        read_shard(str(tmp_path / "nope.json"))


def test_group_by_shard():
    shards = group_by_shard([TRAIL_A, TRAIL_B, FAR])
    assert FAR in shards[data_split_tile(FAR.tile)]
    assert sum(len(v) for v in shards.values()) == 3


def test_failed_shard_is_retried(tmp_path):
    tile = data_split_tile(TRAIL_A.tile)
    path = shard_path(str(tmp_path), tile)
    with open(path, "w", encoding="utf-8") as f:
        f.write("{not json")
    store = MemoryFeatureStore()
    loaded = set()
    with pytest.raises(FeatureStoreError):
        load_dataset_tiles(store, str(tmp_path), VIEW, loaded)
    assert tile not in loaded

    _write_shard(tmp_path, [TRAIL_A])
    assert load_dataset_tiles(store, str(tmp_path), VIEW, loaded) == 1
    assert tile in loaded
    assert store.count() == 1


def test_shard_with_invalid_record_raises(tmp_path):
    path = tmp_path / "bad_record.json"
    path.write_text(json.dumps({"trails": [{"id": 1, "type": "trail"}]}), encoding="utf-8")
    with pytest.raises(FeatureStoreError):
        read_shard(str(path))


def test_sqlite_store_shared_between_threads(tmp_path):
    store = SqliteFeatureStore(str(tmp_path / "features.db"))
    trails = [
        TrailEntry.from_route(100 + i, f"t{i}", [(-121.5 + 0.001 * i, 45.5), (-121.5 + 0.001 * i, 45.51)])
        for i in range(40)
    ]

    def work(t):
        store.put(t)
        return store.lookup_by_tile(t.tile)

    try:
        with ThreadPoolExecutor(max_workers=8) as pool:
            results = list(pool.map(work, trails))
        assert all(results)
        assert store.count() == len(trails)
    finally:
        store.close()
