# feature_store.py
"""
Feature storage keyed by packed tile id.

The routing / index code only needs ``lookup_by_tile(tile)``; two stores
provide it:

- MemoryFeatureStore: plain dict, used by tests and small datasets.
- SqliteFeatureStore: features table indexed on tile, filled from dataset
  shard files.

Dataset shards live in one directory as ``<packed tile>.json`` files holding
``{"trails": [...]}``, split by ``data_split_tile`` (zoom <= 9). Only the
shards under the current viewport are read (``load_dataset_tiles``).
"""

from __future__ import annotations

import json
import logging
import os
import sqlite3
import threading
from typing import Dict, Iterable, List, Optional, Protocol, Set, Union

from feature_index import FeatureEntrySet, SiteEntry, TrailEntry, dump_feature, parse_feature
from tile_codec import MAX_ZOOM_ENCODE, encode_tile
from tile_coords import MAX_ZOOM_DATA_SPLIT
from tile_geometry import data_split_tile
from viewport import Viewport, clamp_tile_range

Feature = Union[TrailEntry, SiteEntry]

logger = logging.getLogger("trails.store")


class FeatureStoreError(Exception):
    pass


class FeatureStore(Protocol):
    def lookup_by_tile(self, tile: int) -> List[Feature]:
        ...

    def put(self, feature: Feature) -> None:
        ...


# ------------------------- In memory --------------------------

class MemoryFeatureStore:
    def __init__(self, features: Iterable[Feature] = ()):
        self._by_tile: Dict[int, Dict[int, Feature]] = {}
        self._tile_of: Dict[int, int] = {}
        for f in features:
            self.put(f)

    def put(self, feature: Feature) -> None:
        # ids are unique; re-adding replaces
        old_tile = self._tile_of.get(feature.id)
        if old_tile is not None:
            self._by_tile[old_tile].pop(feature.id, None)
        self._tile_of[feature.id] = feature.tile
        self._by_tile.setdefault(feature.tile, {})[feature.id] = feature

    def lookup_by_tile(self, tile: int) -> List[Feature]:
        return list(self._by_tile.get(tile, {}).values())

    def count(self) -> int:
        return sum(len(b) for b in self._by_tile.values())

    def clear(self) -> None:
        self._by_tile.clear()
        self._tile_of.clear()


# --------------------------- SQLite ---------------------------

_SCHEMA = """
CREATE TABLE IF NOT EXISTS features (
    id   INTEGER PRIMARY KEY,
    tile INTEGER NOT NULL,
    name TEXT,
    body TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS features_tile ON features (tile);
"""


class SqliteFeatureStore:
    """Features table indexed on tile.

    The connection is shared by the service's worker threads; every statement
    runs under ``_lock``.
    """

    def __init__(self, path: str = ":memory:"):
        self.path = path
        self._lock = threading.Lock()
        self.conn = sqlite3.connect(path, check_same_thread=False)
        self.conn.row_factory = sqlite3.Row
        with self._lock:
            self.conn.executescript(_SCHEMA)
        logger.info("Opened feature store: %s (features=%s)", path, self.count())

    def close(self) -> None:
        with self._lock:
            self.conn.close()

    def put(self, feature: Feature) -> None:
        self.put_many([feature])

    def put_many(self, features: Iterable[Feature]) -> int:
        rows = [(f.id, f.tile, f.name, json.dumps(dump_feature(f))) for f in features]
        with self._lock, self.conn:
            self.conn.executemany(
                "INSERT OR REPLACE INTO features (id, tile, name, body) VALUES (?, ?, ?, ?)",
                rows,
            )
        return len(rows)

    def lookup_by_tile(self, tile: int) -> List[Feature]:
        with self._lock:
            rows = self.conn.execute("SELECT body FROM features WHERE tile=?", (tile,)).fetchall()
        return [parse_feature(json.loads(r["body"])) for r in rows]

    def count(self) -> int:
        with self._lock:
            row = self.conn.execute("SELECT COUNT(1) AS c FROM features").fetchone()
        return int(row["c"]) if row else 0

    def clear(self) -> None:
        with self._lock, self.conn:
            self.conn.execute("DELETE FROM features")

    def stats(self) -> Dict[str, Optional[int]]:
        with self._lock:
            row = self.conn.execute(
                "SELECT COUNT(1) AS c, COUNT(DISTINCT tile) AS t FROM features"
            ).fetchone()
        return {"feature_count": int(row["c"]), "tile_count": int(row["t"])}


# ------------------------ Dataset shards ----------------------

def shard_path(dataset_dir: str, tile: int) -> str:
    return os.path.join(dataset_dir, f"{tile}.json")


def read_shard(path: str) -> List[Feature]:
    """Parse one ``{"trails": [...]}`` shard file."""
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
        return [parse_feature(rec) for rec in data.get("trails", [])]
    except (OSError, ValueError, AttributeError) as e:
        raise FeatureStoreError(f"cannot read dataset shard {path}: {e}") from e


def group_by_shard(features: Iterable[Feature]) -> Dict[int, List[Feature]]:
    """Bucket features by the dataset shard they belong to."""
    shards: Dict[int, List[Feature]] = {}
    for f in features:
        shards.setdefault(data_split_tile(f.tile), []).append(f)
    return shards


def load_dataset_tiles(store: FeatureStore, dataset_dir: str, view: Viewport,
                       loaded: Set[int]) -> int:
    """Load the shard files under ``view`` not yet in ``loaded``.

    Missing shards are normal (no features there) and are remembered as loaded.
    A shard that fails to read stays out of ``loaded`` so a later call retries it.
    Returns the number of features added.
    """
    added = 0
    for tile in sorted(view.covered_tiles(MAX_ZOOM_DATA_SPLIT) - loaded):
        path = shard_path(dataset_dir, tile)
        if not os.path.exists(path):
            loaded.add(tile)
            continue
        features = read_shard(path)
        if isinstance(store, SqliteFeatureStore):
            store.put_many(features)
        else:
            for f in features:
                store.put(f)
        loaded.add(tile)
        added += len(features)
        logger.info("Loaded shard %s: %d features", path, len(features))
    return added


# ---------------------------- View ----------------------------

def features_in_view(store: FeatureStore, view: Viewport,
                     old_features: Optional[FeatureEntrySet] = None) -> FeatureEntrySet:
    """Collect every stored feature whose tile touches the viewport.

    Tiles already held by ``old_features`` are reused instead of queried again.
    """
    res = FeatureEntrySet()
    for z in range(MAX_ZOOM_ENCODE, -1, -1):
        # needed_tiles' upper corner is exclusive; the extra row is harmless
        (x_lo, y_lo), (x_hi, y_hi) = clamp_tile_range(view.needed_tiles(z), z)
        for x in range(x_lo, x_hi + 1):
            for y in range(y_lo, y_hi + 1):
                tile = encode_tile(z, x, y)
                cached = old_features.has_tile(tile) if old_features is not None else None
                features = cached if cached is not None else store.lookup_by_tile(tile)
                res.bulk_add_feature(list(features), tile, view)
    return res
