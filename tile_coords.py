# tile_coords.py
"""
Fixed-point tile coordinates and spherical-mercator projection.

A tile coordinate can be expressed at any zoom level: at zoom 0 the whole world
is the single (0, 0) tile, at zoom 1 there are four tiles, and so on. The
zoom 1 (0, 1) tile is (0, 0.5) at zoom 0. Internally every coordinate is kept
at MAX_ZOOM so the stored values are mostly whole numbers.

Also carries the small distance / formatting helpers used by the viewer
(haversine miles, degrees-minutes-seconds labels, TMS url templates).
"""

from __future__ import annotations

import math
from typing import List, Sequence, Tuple

# --------------------------- Config ---------------------------

# maximum zoom level to handle tiles at
MAX_ZOOM = 16

# maximum zoom level to split the feature dataset down to
MAX_ZOOM_DATA_SPLIT = 9

# mean Earth radius (miles)
EARTH_RADIUS_MI = 3959.0

LonLat = Tuple[float, float]
Route = List[LonLat]
BoundBox = Tuple[LonLat, LonLat]


class InvalidZoom(ValueError):
    pass


# ------------------------ Tile coordinates --------------------

class TileCoordinate:
    """A position in tile space, stored at MAX_ZOOM."""

    __slots__ = ("x", "y")

    def __init__(self, zoom: int, x: float, y: float):
        if zoom > MAX_ZOOM or zoom < 0:
            raise InvalidZoom(f"zoom level {zoom} is outside [0, {MAX_ZOOM}]")
        factor = 1 << (MAX_ZOOM - zoom)
        self.x = x * factor
        self.y = y * factor

    def __repr__(self) -> str:
        return f"TileCoordinate(x={self.x!r}, y={self.y!r} @z{MAX_ZOOM})"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, TileCoordinate):
            return NotImplemented
        return self.x == other.x and self.y == other.y

    def at_zoom(self, zoom: float) -> Tuple[float, float]:
        """x, y expressed at the given zoom level (not bounded by MAX_ZOOM)."""
        factor = 2.0 ** (zoom - MAX_ZOOM)
        return self.x * factor, self.y * factor

    def to_lon_lat(self) -> LonLat:
        x, y = self.at_zoom(0)
        lon = (x - 0.5) * 360.0
        lat = (360.0 / math.pi * math.atan(math.exp(-2.0 * math.pi * y + math.pi))) - 90.0
        return lon, lat

    def scale(self) -> float:
        """Horizontal size, in miles, of a zoom 0 tile at this coordinate's latitude."""
        _lon, lat = self.to_lon_lat()
        return EARTH_RADIUS_MI * 2.0 * math.pi * math.cos(math.radians(lat))

    @classmethod
    def from_lon_lat(cls, lon: float, lat: float) -> "TileCoordinate":
        x = lon / 360.0 + 0.5
        y = 0.5 * (1.0 - 1.0 / math.pi * math.log(math.tan(math.pi / 4 + math.radians(lat) / 2.0)))
        return cls(0, x, y)


# -------------------------- Distances -------------------------

def coord_dist_miles(c0: Sequence[float], c1: Sequence[float]) -> float:
    """Haversine distance (miles) between two lon/lat points."""
    lon1, lat1 = c0[0], c0[1]
    lon2, lat2 = c1[0], c1[1]
    d_lat = math.radians(lat2 - lat1)
    d_lon = math.radians(lon2 - lon1)
    a = (math.sin(d_lat / 2) ** 2
         + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lon / 2) ** 2)
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_MI * c


def route_length_miles(route: Sequence[Sequence[float]]) -> float:
    return sum(coord_dist_miles(a, b) for a, b in zip(route[:-1], route[1:]))


# -------------------------- Formatting ------------------------

def decimal_to_dms(decimal: float) -> Tuple[float, int, float]:
    """Split decimal degrees into (degrees, minutes, seconds); sign stays on degrees."""
    sign = math.copysign(1.0, decimal) if decimal != 0 else 0.0
    decimal = abs(decimal)
    degree = math.floor(decimal)
    minute_float = (decimal - degree) * 60.0
    minute = math.floor(minute_float)
    second = (minute_float - minute) * 60.0
    return degree * sign, minute, second


def dms_to_decimal(degree: float, minute: float, seconds: float) -> float:
    return degree + minute / 60.0 + seconds / 3600.0


def format_dms_components(degree: float, minute: float, seconds: float) -> List[str]:
    seconds = round(seconds * 100.0) / 100.0
    if seconds >= 60.0:
        seconds -= 60.0
        minute += 1
    deg_s = f"{int(degree):02d}°"
    min_s = f"{int(minute):02d}' "
    if abs(seconds) <= 0.01:
        return [deg_s, min_s]
    if seconds - math.floor(seconds) <= 0.01:
        return [deg_s, min_s, f'{int(math.floor(seconds)):02d}"']
    return [deg_s, min_s, f'{seconds:.2f}"']


def format_dms(degree: float, minute: float, seconds: float) -> str:
    return "".join(format_dms_components(degree, minute, seconds))


def format_degrees(degrees: float) -> str:
    return format_dms(*decimal_to_dms(degrees))


def format_tms_url(template: str, z: int, x: int, y: int) -> str:
    """Expand ``{z}``/``${z}`` style placeholders of a tile endpoint."""
    for key, val in (("z", z), ("x", x), ("y", y)):
        template = template.replace("${" + key + "}", str(val)).replace("{" + key + "}", str(val))
    return template


def mod(n: float, m: float) -> float:
    # Python's % already follows the divisor's sign
    return n % m
