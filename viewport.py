# viewport.py
"""Rectangular view onto the map, held in zoom 0 tile space."""

from __future__ import annotations

import math
from typing import Set, Tuple

from tile_codec import encode_tile
from tile_coords import MAX_ZOOM, BoundBox, LonLat, TileCoordinate
from tile_geometry import bound_box_overlap

TileRange = Tuple[Tuple[int, int], Tuple[int, int]]


class DegenerateViewport(ValueError):
    pass


class Viewport:
    """Top-left (x0, y0) and bottom-right (x1, y1) corners in zoom 0 tile space."""

    def __init__(self, x0: float, y0: float, x1: float, y1: float):
        self._set_corners(x0, y0, x1, y1)

    def __repr__(self) -> str:
        return f"Viewport({self.x0!r}, {self.y0!r}, {self.x1!r}, {self.y1!r})"

    def _set_corners(self, x0: float, y0: float, x1: float, y1: float) -> None:
        if not (x1 - x0 > 0.0 and y1 - y0 > 0.0):
            raise DegenerateViewport(f"viewport ({x0}, {y0}) - ({x1}, {y1}) has no area")
        self.x0, self.y0, self.x1, self.y1 = x0, y0, x1, y1

    @classmethod
    def from_lon_lat_bound_box(cls, bb: BoundBox) -> "Viewport":
        (min_lon, min_lat), (max_lon, max_lat) = bb
        top_left = TileCoordinate.from_lon_lat(min_lon, max_lat).at_zoom(0)
        bottom_right = TileCoordinate.from_lon_lat(max_lon, min_lat).at_zoom(0)
        return cls(top_left[0], top_left[1], bottom_right[0], bottom_right[1])

    @property
    def span(self) -> Tuple[float, float]:
        return self.x1 - self.x0, self.y1 - self.y0

    # ----------------------------- geo -----------------------------

    def width_miles(self) -> float:
        center = TileCoordinate(0, (self.x0 + self.x1) / 2, (self.y0 + self.y1) / 2)
        return center.scale() * (self.x1 - self.x0)

    def get_coordinate(self, fx: float, fy: float) -> LonLat:
        """lon/lat of a location inside the viewport; fx, fy in [0, 1]."""
        sx, sy = self.span
        return TileCoordinate(0, self.x0 + fx * sx, self.y0 + fy * sy).to_lon_lat()

    def center_lon_lat(self) -> LonLat:
        return TileCoordinate(0, (self.x0 + self.x1) / 2, (self.y0 + self.y1) / 2).to_lon_lat()

    def lon_lat_bound_box(self) -> BoundBox:
        # tile y grows southward, so the bottom edge holds the minimum latitude
        return (
            TileCoordinate(0, self.x0, self.y1).to_lon_lat(),
            TileCoordinate(0, self.x1, self.y0).to_lon_lat(),
        )

    def overlaps_lon_lat_bound_box(self, bb: BoundBox) -> bool:
        return bound_box_overlap(self.lon_lat_bound_box(), bb)

    # --------------------------- movement --------------------------

    def pan(self, dx: float, dy: float) -> None:
        """Move by (dx, dy) fractions of the current span."""
        sx, sy = self.span
        self._set_corners(self.x0 + dx * sx, self.y0 + dy * sy, self.x1 + dx * sx, self.y1 + dy * sy)

    def zoom(self, scale: float, cx: float, cy: float) -> None:
        """Scale by 2**scale around (cx, cy) given in [0, 1]; scale > 0 zooms out."""
        sx, sy = self.span
        cx = self.x0 + cx * sx
        cy = self.y0 + cy * sy
        factor = 2.0 ** scale
        self._set_corners(
            cx + (self.x0 - cx) * factor,
            cy + (self.y0 - cy) * factor,
            cx + (self.x1 - cx) * factor,
            cy + (self.y1 - cy) * factor,
        )

    def match_aspect(self, width: float, height: float) -> None:
        """Adjust width so the viewport matches a width:height pixel ratio."""
        if width <= 0 or height <= 0:
            raise DegenerateViewport(f"cannot match aspect of a {width}x{height} canvas")
        cx = (self.x0 + self.x1) / 2.0
        sx = (self.y1 - self.y0) * (width / height)
        self._set_corners(cx - sx * 0.5, self.y0, cx + sx * 0.5, self.y1)

    # ---------------------------- tiles ----------------------------

    def tile_zoom_level_raw(self, width: float, height: float, tile_size: float) -> int:
        sx, sy = self.span
        zoom = max(math.log2(width / tile_size / sx), math.log2(height / tile_size / sy))
        return math.ceil(zoom)

    def tile_zoom_level(self, width: float, height: float, tile_size: float) -> int:
        """Smallest zoom at which every tile is drawn at or below its native size."""
        return max(0, min(self.tile_zoom_level_raw(width, height, tile_size), MAX_ZOOM))

    def _corners_at(self, zoom: int) -> Tuple[float, float, float, float]:
        t0x, t0y = TileCoordinate(0, self.x0, self.y0).at_zoom(zoom)
        t1x, t1y = TileCoordinate(0, self.x1, self.y1).at_zoom(zoom)
        return t0x, t0y, t1x, t1y

    def needed_tiles(self, zoom: int) -> TileRange:
        """Tile range to load to cover the viewport; upper corner exclusive."""
        t0x, t0y, t1x, t1y = self._corners_at(zoom)
        return (math.floor(t0x), math.floor(t0y)), (math.ceil(t1x), math.ceil(t1y))

    def covered_tiles_zoom(self, zoom: int) -> TileRange:
        """Tile range under the viewport at zoom; both corners inclusive."""
        t0x, t0y, t1x, t1y = self._corners_at(zoom)
        return (math.floor(t0x), math.floor(t0y)), (math.floor(t1x), math.floor(t1y))

    def covered_tiles(self, max_zoom: int) -> Set[int]:
        """Packed ids of every tile under the viewport from zoom 0 to max_zoom."""
        tiles: Set[int] = set()
        for zoom in range(max_zoom + 1):
            (x_lo, y_lo), (x_hi, y_hi) = clamp_tile_range(self.covered_tiles_zoom(zoom), zoom)
            for x in range(x_lo, x_hi + 1):
                for y in range(y_lo, y_hi + 1):
                    tiles.add(encode_tile(zoom, x, y))
        return tiles


def clamp_tile_range(tile_range: TileRange, zoom: int) -> TileRange:
    """Clip an inclusive tile range to the tiles that exist at zoom."""
    (x0, y0), (x1, y1) = tile_range
    last = (1 << zoom) - 1
    return (max(x0, 0), max(y0, 0)), (min(x1, last), min(y1, last))
