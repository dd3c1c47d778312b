# tile_geometry.py
"""
Tile geometry: which tiles a line crosses, tile containment, the smallest tile
enclosing a set of tiles or a route, and lon/lat bounding boxes.

Rasterization is a supercover walk: every cell the segment geometrically
touches is returned, not one cell per step of the dominant axis.
"""

from __future__ import annotations

import math
from typing import Iterable, List, Sequence, Tuple

from tile_codec import MAX_ZOOM_ENCODE, TileId, decode_tile, encode_tile
from tile_coords import MAX_ZOOM_DATA_SPLIT, BoundBox, Route, TileCoordinate

ROOT_TILE = TileId(0, 0, 0)


# ------------------------ Rasterization -----------------------

def _crossed_cells_shallow(x0: float, y0: float, x1: float, y1: float) -> List[Tuple[int, int]]:
    """Cells crossed by a segment with |dy| <= |dx| and x0 <= x1."""
    if x0 == x1:
        return [(math.floor(x0), math.floor(y0))]

    dx = x1 - x0
    dy = y1 - y0

    def y_at(x: float) -> float:
        return y0 + dy * ((x - x0) / dx)

    cells: List[Tuple[int, int]] = []
    x = x0
    while x < x1:
        # next whole x, or the segment end if that comes first
        next_x = min(math.floor(x) + 1, x1)
        b0, b1 = y_at(x), y_at(next_x)
        col = math.floor(x)
        for hit_y in range(math.floor(min(b0, b1)), math.floor(max(b0, b1)) + 1):
            cells.append((col, hit_y))
        x = next_x
    return cells


def get_line_crossed_tiles(l0: TileCoordinate, l1: TileCoordinate, zoom: int) -> List[TileId]:
    """All tiles at ``zoom`` crossed by the straight segment l0 -> l1."""
    x0, y0 = l0.at_zoom(zoom)
    x1, y1 = l1.at_zoom(zoom)
    dx = x1 - x0
    dy = y1 - y0

    if abs(dy) <= abs(dx):
        if dx < 0:
            x0, y0, x1, y1 = x1, y1, x0, y0
        cells = _crossed_cells_shallow(x0, y0, x1, y1)
    else:
        if dy < 0:
            x0, y0, x1, y1 = x1, y1, x0, y0
        cells = [(x, y) for (y, x) in _crossed_cells_shallow(y0, x0, y1, x1)]

    return [TileId(zoom, x, y) for (x, y) in cells]


# ------------------------ Containment -------------------------

def _tile_extent(tile: Sequence[int]) -> Tuple[float, float, float]:
    """(x, y, size) of a tile in zoom 0 space."""
    z, x, y = tile
    x0, y0 = TileCoordinate(z, x, y).at_zoom(0)
    size = TileCoordinate(z, 1, 1).at_zoom(0)[0]
    return x0, y0, size


def tile_contains(outer: Sequence[int], inner: Sequence[int]) -> bool:
    if inner[0] < outer[0]:
        return False
    ox, oy, osize = _tile_extent(outer)
    ix, iy, isize = _tile_extent(inner)
    return (
        ix >= ox and ix + isize <= ox + osize
        and iy >= oy and iy + isize <= oy + osize
    )


def parent_tile(tile: Sequence[int]) -> TileId:
    z, x, y = tile
    px, py = TileCoordinate(z, x, y).at_zoom(z - 1)
    return TileId(z - 1, math.floor(px), math.floor(py))


def join_tiles(tile0: Sequence[int], tile1: Sequence[int]) -> TileId:
    """Smallest tile containing both tiles."""
    res = TileId(*tile0)
    while not tile_contains(res, tile1):
        res = parent_tile(res)
    return res


def tile_containing(tiles: Iterable[Sequence[int]]) -> TileId:
    res = None
    for tile in tiles:
        res = TileId(*tile) if res is None else join_tiles(res, tile)
    return ROOT_TILE if res is None else res


def tile_containing_route(route: Route) -> TileId:
    """Smallest tile wholly containing a lon/lat route."""
    if not route:
        return ROOT_TILE
    if len(route) == 1:
        x, y = TileCoordinate.from_lon_lat(*route[0]).at_zoom(MAX_ZOOM_ENCODE)
        return TileId(MAX_ZOOM_ENCODE, math.floor(x), math.floor(y))

    per_segment = []
    for a, b in zip(route[:-1], route[1:]):
        p0 = TileCoordinate.from_lon_lat(a[0], a[1])
        p1 = TileCoordinate.from_lon_lat(b[0], b[1])
        per_segment.append(tile_containing(get_line_crossed_tiles(p0, p1, MAX_ZOOM_ENCODE)))
    return tile_containing(per_segment)


def data_split_tile(tile: int) -> int:
    """Packed tile clamped to MAX_ZOOM_DATA_SPLIT; the dataset shard a feature lives in."""
    tile_id = decode_tile(tile)
    if tile_id.zoom > MAX_ZOOM_DATA_SPLIT:
        x, y = TileCoordinate(*tile_id).at_zoom(MAX_ZOOM_DATA_SPLIT)
        tile_id = TileId(MAX_ZOOM_DATA_SPLIT, math.floor(x), math.floor(y))
    return encode_tile(*tile_id)


# ------------------------ Bounding boxes ----------------------

def bound_box_for_route(route: Route) -> BoundBox:
    if not route:
        return (0.0, 0.0), (0.0, 0.0)
    lons = [p[0] for p in route]
    lats = [p[1] for p in route]
    return (min(lons), min(lats)), (max(lons), max(lats))


def _overlap_1d(b0: BoundBox, b1: BoundBox, i: int) -> bool:
    return b0[1][i] >= b1[0][i] and b1[1][i] >= b0[0][i]


def bound_box_overlap(b0: BoundBox, b1: BoundBox) -> bool:
    """Inclusive overlap test; boxes sharing only an edge overlap."""
    return _overlap_1d(b0, b1, 0) and _overlap_1d(b0, b1, 1)
