# main.py
from fastapi import FastAPI, HTTPException, Depends
from fastapi.middleware.cors import CORSMiddleware
import logging
import os
import threading
from functools import lru_cache
from pydantic import BaseModel, Field
from typing import List, Any, Set

from feature_index import FeatureEntrySet, dump_feature
from feature_store import (
    FeatureStoreError,
    MemoryFeatureStore,
    SqliteFeatureStore,
    features_in_view,
    load_dataset_tiles,
)
from tile_codec import decode_tile
from tile_coords import MAX_ZOOM_DATA_SPLIT, format_degrees
from trail_routing import Path, PathPoint
from viewport import Viewport

# lowest zoom to start loading features at
MIN_FEATURE_ZOOM = 12

# largest canvas side (pixels) accepted from clients
MAX_CANVAS_PX = 4096


class ViewportModel(BaseModel):
    x0: float
    y0: float
    x1: float
    y1: float


class CanvasModel(BaseModel):
    width: int = Field(1024, gt=0, le=MAX_CANVAS_PX)
    height: int = Field(768, gt=0, le=MAX_CANVAS_PX)
    tile_size: int = Field(256, ge=256, le=512)


class TilesRequest(BaseModel):
    viewport: ViewportModel
    max_zoom: int = Field(9, ge=0, le=MAX_ZOOM_DATA_SPLIT)


class TileOut(BaseModel):
    tile: int
    zoom: int
    x: int
    y: int


class ViewportInfoRequest(BaseModel):
    viewport: ViewportModel
    canvas: CanvasModel = CanvasModel()


class FeaturesRequest(BaseModel):
    viewport: ViewportModel
    canvas: CanvasModel = CanvasModel()


class PathPointIn(BaseModel):
    lon: float
    lat: float
    follow_features: bool = True


class PathRequest(BaseModel):
    viewport: ViewportModel
    canvas: CanvasModel = CanvasModel()
    points: List[PathPointIn] = Field(..., min_length=1)
    dist_threshold: float = Field(2e-3, gt=0, description="Snap distance for new points (degrees)")


class PathResponse(BaseModel):
    route: List[List[float]]
    points: List[PathPointIn]
    length_miles: float


app = FastAPI()
# Allow any origin (dev / testing). Tighten in production if needed.
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Basic logging config; respect LOG_LEVEL env var (default INFO)
log_level = os.getenv("LOG_LEVEL", "INFO").upper()
logging.basicConfig(
    level=getattr(logging, log_level, logging.INFO),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger("trails.api")

# dataset shards already copied into the store; guarded by _shards_lock
_loaded_shards: Set[int] = set()
_shards_lock = threading.Lock()


@lru_cache(maxsize=1)
def get_store():
    db_path = os.getenv("FEATURE_DB_PATH")
    if db_path:
        return SqliteFeatureStore(db_path)
    return MemoryFeatureStore()


def _viewport(vm: ViewportModel) -> Viewport:
    try:
        return Viewport(vm.x0, vm.y0, vm.x1, vm.y1)
    except ValueError as e:
        raise HTTPException(400, f"Invalid viewport: {e}")


def _zoomed_out(view: Viewport, c: CanvasModel) -> bool:
    return view.tile_zoom_level(c.width, c.height, c.tile_size) < MIN_FEATURE_ZOOM


def _load_shards(store, view: Viewport) -> None:
    dataset_dir = os.getenv("DATASET_DIR")
    if not dataset_dir:
        return
    try:
        with _shards_lock:
            added = load_dataset_tiles(store, dataset_dir, view, _loaded_shards)
    except FeatureStoreError as e:
        logger.warning("dataset load failed: %s", e)
        raise HTTPException(500, f"Failed to load dataset: {e}")
    if added:
        logger.info("loaded %d features from %s", added, dataset_dir)


@app.on_event("startup")
def _startup_log():
    store = get_store()
    logger.info("startup: store=%s dataset=%s", type(store).__name__, os.getenv("DATASET_DIR"))


@app.post("/viewport/tiles", response_model=List[TileOut])
def covered_tiles(req: TilesRequest):
    """Packed ids of all tiles under the viewport, zoom 0 through max_zoom."""
    view = _viewport(req.viewport)
    try:
        tiles = sorted(view.covered_tiles(req.max_zoom))
    except ValueError as e:
        raise HTTPException(400, f"Invalid request: {e}")
    out = []
    for t in tiles:
        z, x, y = decode_tile(t)
        out.append(TileOut(tile=t, zoom=z, x=x, y=y))
    return out


@app.post("/viewport/info")
def viewport_info(req: ViewportInfoRequest):
    view = _viewport(req.viewport)
    c = req.canvas
    lon, lat = view.center_lon_lat()
    return {
        "tile_zoom": view.tile_zoom_level(c.width, c.height, c.tile_size),
        "width_miles": view.width_miles(),
        "center": [lon, lat],
        "center_dms": [format_degrees(lon), format_degrees(lat)],
    }


@app.post("/features/in_view")
def visible_features(req: FeaturesRequest, store=Depends(get_store)):
    view = _viewport(req.viewport)
    if _zoomed_out(view, req.canvas):
        return {"features": [], "meta": {"reason": "zoomed out"}}
    _load_shards(store, view)
    features = features_in_view(store, view)
    logger.info("/features/in_view: visible=%d", len(features))
    return {"features": [dump_feature(f) for f in features], "meta": {"count": len(features)}}


@app.post("/path/route", response_model=PathResponse)
def route_path(req: PathRequest, store=Depends(get_store)):
    """Build a path from the given waypoints, following trails where asked.

    Zoomed out past MIN_FEATURE_ZOOM no features are loaded, so every point
    joins the path with a straight segment.
    """
    view = _viewport(req.viewport)
    if _zoomed_out(view, req.canvas):
        features = FeatureEntrySet()
    else:
        _load_shards(store, view)
        features = features_in_view(store, view)
    path = Path()
    for p in req.points:
        path.add_point(PathPoint((p.lon, p.lat), p.follow_features), features, req.dist_threshold)
    logger.info("/path/route: points=%d route=%d trails=%d", len(path.points), len(path.route), len(features))
    return PathResponse(
        route=[[lon, lat] for (lon, lat) in path.route],
        points=[PathPointIn(lon=pt.coord[0], lat=pt.coord[1], follow_features=pt.follow_features) for pt in path.points],
        length_miles=path.length_miles(),
    )


@app.get("/debug/store")
def debug_store(store=Depends(get_store)):
    """Return basic feature store stats for debugging."""
    stats: dict[str, Any] = {"type": type(store).__name__, "loaded_shards": len(_loaded_shards)}
    try:
        if isinstance(store, SqliteFeatureStore):
            stats.update(store.stats())
        else:
            stats["feature_count"] = store.count()
    except Exception as e:
        raise HTTPException(500, f"Failed to read store stats: {e}")
    return {"ok": True, "stats": stats}
